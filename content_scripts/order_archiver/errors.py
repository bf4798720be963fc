from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(eq=False)
class ArchiverError(Exception):
    """Structured engine error: what was attempted, why it failed, what to try next."""

    action: str
    reason: str
    suggestion: str = ""
    order_id: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        target = f" (order {self.order_id})" if self.order_id else ""
        msg = f"{self.action} failed{target}: {self.reason}"
        if self.suggestion:
            msg += f". Suggestion: {self.suggestion}"
        return msg

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": True,
            "action": self.action,
            "reason": self.reason,
            "suggestion": self.suggestion,
            "orderId": self.order_id,
            "details": self.details,
        }


class StorageError(Exception):
    """Raised by storage backends when a read or write cannot be completed."""
