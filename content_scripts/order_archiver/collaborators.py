"""Interfaces of the collaborators the engine consumes, plus their payload shapes."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from bs4 import Tag


@dataclass
class OrderRecord:
    order_number: str
    order_date: str = "Unknown"
    order_total: str = "unknown"
    status: str = "unknown"
    tags: list[str] = field(default_factory=list)
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "orderNumber": self.order_number,
            "orderDate": self.order_date,
            "orderTotal": self.order_total,
            "status": self.status,
            "tags": list(self.tags),
            "notes": self.notes,
        }


@dataclass
class TagData:
    order_number: str
    tags: list[str] = field(default_factory=list)
    notes: str = ""

    @classmethod
    def from_dict(cls, raw: Any, *, order_number: str = "") -> TagData | None:
        if isinstance(raw, TagData):
            return raw
        if not isinstance(raw, dict):
            return None
        tags = raw.get("tags")
        notes = raw.get("notes")
        return cls(
            order_number=str(raw.get("orderNumber") or order_number),
            tags=[str(t) for t in tags] if isinstance(tags, list) else [],
            notes=str(notes) if isinstance(notes, str) else "",
        )

    def to_dict(self) -> dict[str, Any]:
        return {"orderNumber": self.order_number, "tags": list(self.tags), "notes": self.notes}


@dataclass
class HiddenOrderEntry:
    order_id: str
    kind: str = "details"
    order_data: dict[str, Any] = field(default_factory=dict)
    username: str | None = None

    @classmethod
    def from_dict(cls, raw: Any) -> HiddenOrderEntry | None:
        if isinstance(raw, HiddenOrderEntry):
            return raw
        if not isinstance(raw, dict):
            return None
        order_id = raw.get("orderId")
        if not isinstance(order_id, str) or not order_id.strip():
            return None
        data = raw.get("orderData")
        username = raw.get("username")
        return cls(
            order_id=order_id.strip(),
            kind=str(raw.get("type") or raw.get("kind") or "details"),
            order_data=dict(data) if isinstance(data, dict) else {},
            username=username if isinstance(username, str) and username else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "orderId": self.order_id,
            "type": self.kind,
            "orderData": dict(self.order_data),
            "username": self.username,
        }


class OrderParser(Protocol):
    def find_order_roots(self) -> list[Tag]: ...

    def parse_order_card(self, root: Tag) -> OrderRecord | None: ...


class Storage(Protocol):
    async def get(self, key: str) -> Any: ...

    async def get_order_tags(self, order_id: str) -> dict[str, Any] | None: ...

    async def store_order_tags(self, order_id: str, data: dict[str, Any]) -> None: ...

    async def get_all_hidden_orders(self) -> list[dict[str, Any]]: ...


class TaggingDialog(Protocol):
    def open_dialog(self, payload: dict[str, Any], anchor: Tag) -> bool: ...


OrderHiddenCallback = Callable[[str, str, dict[str, Any]], Any]
OrderShownCallback = Callable[[str, str, dict[str, Any]], Any]
OrderDetectedCallback = Callable[[Tag], Any]
OrderRemovedCallback = Callable[[str, Tag], Any]


@dataclass
class ArchiverCallbacks:
    """Caller hooks; each may be a plain function or a coroutine function."""

    on_order_hidden: OrderHiddenCallback | None = None
    on_order_shown: OrderShownCallback | None = None
    on_order_detected: OrderDetectedCallback | None = None
    on_order_removed: OrderRemovedCallback | None = None
