"""Async key-value stores for hidden orders, order tags and preferences.

Keys are namespaced with a prefix (`amazon_archiver_` by default):
- `hidden_order_{orderId}_{type}` -> {orderId, type, orderData, username, timestamp}
- `order_tags_{orderId}` -> {orderId, tagData, timestamp}
- `username` -> display name used in the "Hidden by" overlay

`JsonFileStorage` keeps everything in one JSON document:
- atomic writes (temp file then replace)
- the previous snapshot is copied to `.bak` before each write
- a missing or corrupt file reads as empty
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
from contextlib import suppress
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import DEFAULT_STORAGE_PREFIX, DEFAULT_USERNAME
from .errors import StorageError

_LOGGER = logging.getLogger("order_archiver.storage")

HIDDEN_ORDER_KEY = "hidden_order_"
ORDER_TAGS_KEY = "order_tags_"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class KeyValueStorage:
    """Shared logic; subclasses provide `_load` and `_save` of the whole prefixed mapping."""

    def __init__(self, *, prefix: str = DEFAULT_STORAGE_PREFIX) -> None:
        self.prefix = prefix
        self._lock = asyncio.Lock()

    async def _load(self) -> dict[str, Any]:
        raise NotImplementedError

    async def _save(self, data: dict[str, Any]) -> None:
        raise NotImplementedError

    # Raw access
    async def get(self, key: str) -> Any:
        data = await self._load()
        value = data.get(self.prefix + key)
        return value if value else None

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            data = await self._load()
            data[self.prefix + key] = value
            await self._save(data)

    async def remove(self, *keys: str) -> int:
        async with self._lock:
            data = await self._load()
            removed = 0
            for key in keys:
                if data.pop(self.prefix + key, None) is not None:
                    removed += 1
            if removed:
                await self._save(data)
            return removed

    async def clear(self) -> None:
        async with self._lock:
            await self._save({})

    async def items(self) -> dict[str, Any]:
        """Unprefixed view of every key this store owns."""
        data = await self._load()
        n = len(self.prefix)
        return {k[n:]: v for k, v in data.items() if k.startswith(self.prefix)}

    # Hidden orders
    async def store_hidden_order(self, order_id: str, kind: str, order_data: dict[str, Any] | None = None) -> None:
        username = await self.get("username") or DEFAULT_USERNAME
        await self.set(
            f"{HIDDEN_ORDER_KEY}{order_id}_{kind}",
            {
                "orderId": order_id,
                "type": kind,
                "orderData": dict(order_data or {}),
                "username": username,
                "timestamp": _now_iso(),
            },
        )
        _LOGGER.info("stored hidden order %s (%s)", order_id, kind)

    async def remove_hidden_order(self, order_id: str, kind: str) -> None:
        await self.remove(f"{HIDDEN_ORDER_KEY}{order_id}_{kind}")
        _LOGGER.info("removed hidden order %s (%s)", order_id, kind)

    async def get_hidden_order(self, order_id: str, kind: str) -> dict[str, Any] | None:
        value = await self.get(f"{HIDDEN_ORDER_KEY}{order_id}_{kind}")
        return value if isinstance(value, dict) else None

    async def get_all_hidden_orders(self) -> list[dict[str, Any]]:
        return [v for k, v in (await self.items()).items() if k.startswith(HIDDEN_ORDER_KEY) and isinstance(v, dict)]

    # Tags
    async def store_order_tags(self, order_id: str, tag_data: dict[str, Any]) -> None:
        await self.set(
            f"{ORDER_TAGS_KEY}{order_id}",
            {"orderId": order_id, "tagData": dict(tag_data), "timestamp": _now_iso()},
        )
        _LOGGER.info("stored tags for order %s", order_id)

    async def get_order_tags(self, order_id: str) -> dict[str, Any] | None:
        value = await self.get(f"{ORDER_TAGS_KEY}{order_id}")
        if not isinstance(value, dict):
            return None
        tag_data = value.get("tagData")
        return tag_data if isinstance(tag_data, dict) else None

    async def remove_order_tags(self, order_id: str) -> None:
        await self.remove(f"{ORDER_TAGS_KEY}{order_id}")

    async def get_all_order_tags(self) -> list[dict[str, Any]]:
        return [v for k, v in (await self.items()).items() if k.startswith(ORDER_TAGS_KEY) and isinstance(v, dict)]

    # Bulk removal
    async def clear_all_order_data(self, order_id: str) -> int:
        """Drop every key mentioning `order_id`; returns how many went away."""
        keys = [k for k in (await self.items()) if order_id in k]
        removed = await self.remove(*keys) if keys else 0
        _LOGGER.info("cleared %d keys for order %s", removed, order_id)
        return removed

    async def clear_all_stored_orders(self) -> int:
        keys = [k for k in (await self.items()) if k.startswith((HIDDEN_ORDER_KEY, ORDER_TAGS_KEY))]
        return await self.remove(*keys) if keys else 0


class MemoryStorage(KeyValueStorage):
    def __init__(self, initial: dict[str, Any] | None = None, *, prefix: str = DEFAULT_STORAGE_PREFIX) -> None:
        super().__init__(prefix=prefix)
        self.data: dict[str, Any] = {prefix + k: v for k, v in (initial or {}).items()}

    async def _load(self) -> dict[str, Any]:
        return dict(self.data)

    async def _save(self, data: dict[str, Any]) -> None:
        self.data = dict(data)


class JsonFileStorage(KeyValueStorage):
    def __init__(self, path: str | Path, *, prefix: str = DEFAULT_STORAGE_PREFIX) -> None:
        super().__init__(prefix=prefix)
        self.path = Path(path).expanduser()

    async def _load(self) -> dict[str, Any]:
        return load_store(self.path)

    async def _save(self, data: dict[str, Any]) -> None:
        save_store(self.path, data)


def load_store(path: Path) -> dict[str, Any]:
    try:
        if not path.exists() or not path.is_file():
            return {}
        obj = json.loads(path.read_text(encoding="utf-8", errors="replace"))
    except Exception as exc:  # noqa: BLE001
        _LOGGER.warning("ignoring unreadable store %s: %s", path, exc)
        return {}
    if not isinstance(obj, dict):
        return {}
    items = obj.get("items")
    return dict(items) if isinstance(items, dict) else {}


def save_store(path: Path, data: dict[str, Any]) -> None:
    payload = {"version": 1, "updatedAt": _now_iso(), "items": data}
    tmp = path.with_suffix(path.suffix + ".tmp")
    bak = path.with_suffix(path.suffix + ".bak")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(payload, ensure_ascii=True, indent=2, sort_keys=True)
    except (OSError, TypeError, ValueError) as exc:
        raise StorageError(f"cannot serialize store {path}: {exc}") from exc

    with suppress(Exception):
        if path.exists() and path.is_file():
            shutil.copyfile(path, bak)

    try:
        tmp.write_text(text, encoding="utf-8")
        with suppress(Exception):
            os.chmod(tmp, 0o600)
        tmp.replace(path)
    except OSError as exc:
        raise StorageError(f"cannot write store {path}: {exc}") from exc
