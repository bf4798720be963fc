from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from bs4 import Tag

from .config import DEFAULT_USERNAME
from .dom import index_of


def details_token(order_id: str) -> str:
    return f"{order_id}-details"


@dataclass(slots=True)
class ControlRecord:
    """Bookkeeping for one order's injected control.

    The control elements are owned by the record; `root` belongs to the host page.
    """

    order_id: str
    root: Tag
    container: Tag
    list_item: Tag
    button: Tag
    synthesized_container: Tag | None = None
    click_handler: Callable[..., Any] | None = None
    hidden_elements: list[Tag] = field(default_factory=list)

    def remember_hidden(self, element: Tag) -> None:
        if index_of(self.hidden_elements, element) < 0:
            self.hidden_elements.append(element)

    def forget_hidden(self, element: Tag) -> bool:
        i = index_of(self.hidden_elements, element)
        if i < 0:
            return False
        del self.hidden_elements[i]
        return True


@dataclass
class EngineState:
    """Shared mutable state of one page context."""

    records: dict[str, ControlRecord] = field(default_factory=dict)
    hidden_tokens: set[str] = field(default_factory=set)
    usernames: dict[str, str] = field(default_factory=dict)
    default_username: str = DEFAULT_USERNAME

    def is_hidden(self, order_id: str) -> bool:
        return details_token(order_id) in self.hidden_tokens

    def username_for(self, order_id: str) -> str:
        return self.usernames.get(order_id) or self.default_username

    def set_username(self, order_id: str, username: str) -> None:
        self.usernames[order_id] = username

    def clear(self) -> None:
        self.records.clear()
        self.hidden_tokens.clear()
        self.usernames.clear()
