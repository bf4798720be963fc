from __future__ import annotations

import logging
from collections.abc import Callable

from bs4 import Tag

from .collaborators import HiddenOrderEntry, Storage, TagData
from .dom import has_class
from .lookup import OrderLocator
from .markers import DETAILS_HIDDEN_CLASS, PROCESSED_ATTR
from .reconciler import HideShowReconciler
from .state import EngineState

_LOGGER = logging.getLogger("order_archiver.restore")


class RestorationBootstrapper:
    """Re-applies stored hidden state to a freshly loaded page."""

    def __init__(
        self,
        state: EngineState,
        locator: OrderLocator,
        reconciler: HideShowReconciler,
        *,
        inject: Callable[[Tag, str], bool],
    ) -> None:
        self.state = state
        self.locator = locator
        self.reconciler = reconciler
        self.inject = inject

    async def restore_from_storage(self, storage: Storage | None = None) -> int:
        storage = storage if storage is not None else self.reconciler.storage
        if storage is None:
            _LOGGER.warning("no storage available for restoration")
            return 0
        try:
            raw_entries = await storage.get_all_hidden_orders()
        except Exception:
            _LOGGER.exception("reading hidden orders failed")
            return 0

        restored = 0
        for raw in raw_entries or []:
            entry = HiddenOrderEntry.from_dict(raw)
            if entry is None:
                _LOGGER.warning("skipping malformed hidden-order entry: %r", raw)
                continue
            try:
                if await self._restore_one(storage, entry):
                    restored += 1
            except Exception:
                _LOGGER.exception("restoring hidden order failed order=%s", entry.order_id)
        if restored:
            _LOGGER.info("restored %d hidden orders", restored)
        return restored

    async def _restore_one(self, storage: Storage, entry: HiddenOrderEntry) -> bool:
        order_id = entry.order_id
        root = self.locator.find_root(order_id)
        if root is None:
            _LOGGER.debug("hidden order %s is not on this page", order_id)
            return False
        if has_class(root, DETAILS_HIDDEN_CLASS):
            _LOGGER.debug("order %s is already hidden", order_id)
            return False

        if order_id not in self.state.records and not self.inject(root, order_id):
            _LOGGER.warning("could not inject controls for order %s, skipping restoration", order_id)
            return False
        root[PROCESSED_ATTR] = "true"

        tag_data: TagData | None = None
        try:
            raw_tags = await storage.get_order_tags(order_id)
            tag_data = TagData.from_dict(raw_tags, order_number=order_id) if raw_tags else None
        except Exception:
            _LOGGER.warning("could not read stored tags for order %s", order_id, exc_info=True)

        if order_id not in self.state.records:
            _LOGGER.info("order %s went away during restoration", order_id)
            return False
        return await self.reconciler.apply_hide(order_id, tag_data, entry.username, notify=False)
