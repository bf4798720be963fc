"""Per-order "tags confirmed" handshake with the tagging dialog.

Each open dialog gets exactly one future keyed by order id. The dialog resolves
it once; closing the dialog, removing the order or cleaning up cancels it. No
listener outlives its dialog.
"""

from __future__ import annotations

import asyncio
import logging

from .collaborators import TagData

_LOGGER = logging.getLogger("order_archiver.confirmations")


class ConfirmationRegistry:
    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future[TagData]] = {}

    def is_pending(self, order_id: str) -> bool:
        fut = self._pending.get(order_id)
        return fut is not None and not fut.done()

    def pending_ids(self) -> list[str]:
        return [oid for oid, fut in self._pending.items() if not fut.done()]

    def expect(self, order_id: str) -> asyncio.Future[TagData]:
        self.cancel(order_id)
        fut: asyncio.Future[TagData] = asyncio.get_running_loop().create_future()
        self._pending[order_id] = fut
        return fut

    def resolve(self, data: TagData) -> bool:
        fut = self._pending.pop(data.order_number, None)
        if fut is None or fut.done():
            _LOGGER.warning("tags confirmed for order %s with no open dialog", data.order_number)
            return False
        fut.set_result(data)
        return True

    def cancel(self, order_id: str) -> bool:
        fut = self._pending.pop(order_id, None)
        if fut is None:
            return False
        if not fut.done():
            fut.cancel()
        return True

    def cancel_all(self) -> int:
        count = 0
        for order_id in list(self._pending):
            if self.cancel(order_id):
                count += 1
        return count
