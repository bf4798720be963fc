"""Content-script lifecycle: page check, wiring, first pass, watching, restoration."""

from __future__ import annotations

import logging
import re
from typing import Any

from .collaborators import TaggingDialog
from .config import ArchiverConfig
from .dom import Page
from .engine import OrderArchiver
from .order_parser import DefaultOrderParser
from .storage import KeyValueStorage

_LOGGER = logging.getLogger("order_archiver.content_script")

SUPPORTED_URL_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"amazon\.com/gp/your-account/order-history"),
    re.compile(r"amazon\.com/gp/css/order-history"),
    re.compile(r"amazon\.com/gp/legacy/order-history"),
    re.compile(r"amazon\.com/your-orders"),
)

ORDER_HISTORY_MARKERS = "#ordersContainer, .your-orders-content-container, .js-yo-main-content, #yourOrders"


class ContentScript:
    def __init__(
        self,
        page: Page,
        storage: KeyValueStorage,
        *,
        dialog: TaggingDialog | None = None,
        config: ArchiverConfig | None = None,
        url: str | None = None,
    ) -> None:
        self.page = page
        self.storage = storage
        self.config = config or ArchiverConfig()
        self.url = url
        self.parser = DefaultOrderParser(page, root_selector=self.config.order_root_selector)
        self.engine = OrderArchiver(
            page,
            parser=self.parser,
            storage=storage,
            dialog=dialog,
            config=self.config,
            on_order_hidden=self._order_hidden,
            on_order_shown=self._order_shown,
        )
        self.started = False
        self.stats: dict[str, int] = {"processed": 0, "restored": 0}

    def is_supported_page(self) -> bool:
        if self.url is not None and any(p.search(self.url) for p in SUPPORTED_URL_PATTERNS):
            return True
        if self.parser.find_order_roots():
            return True
        return self.page.query(ORDER_HISTORY_MARKERS) is not None

    async def _order_hidden(self, order_id: str, kind: str, order_data: dict[str, Any]) -> None:
        await self.storage.store_hidden_order(order_id, kind, order_data)

    async def _order_shown(self, order_id: str, kind: str, order_data: dict[str, Any]) -> None:
        await self.storage.remove_hidden_order(order_id, kind)

    async def start(self) -> bool:
        if self.started:
            return True
        if not self.is_supported_page():
            _LOGGER.info("page not supported, content script idle")
            return False

        self.stats["processed"] = self.engine.process_existing_orders()
        self.engine.start_watching()
        self.stats["restored"] = await self.engine.restore_from_storage()
        self.started = True
        _LOGGER.info(
            "content script started: %d orders processed, %d restored",
            self.stats["processed"],
            self.stats["restored"],
        )
        return True

    def unload(self) -> None:
        if not self.started:
            return
        self.engine.cleanup()
        self.started = False
        _LOGGER.info("content script unloaded")
