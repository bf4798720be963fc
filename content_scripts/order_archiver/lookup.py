from __future__ import annotations

import logging
from typing import Any

from bs4 import Tag

from .collaborators import OrderParser, OrderRecord
from .config import DEFAULT_ORDER_ROOT_SELECTOR
from .dom import Page, query, query_all, text_content

_LOGGER = logging.getLogger("order_archiver.lookup")

ROOT_BY_ID_SELECTORS: tuple[str, ...] = (
    '.order-card[data-order-id*="{id}"]',
    '.js-order-card[data-order-id*="{id}"]',
    '[data-order-id*="{id}"]',
    '.a-box-group:has([data-order-id*="{id}"])',
    '.a-section:has([data-order-id*="{id}"])',
)
TEXT_SCAN_SELECTOR = ".order-card, .js-order-card, .a-box-group, .a-section"


class OrderLocator:
    """Finds order roots and parsed order data on a page."""

    def __init__(
        self,
        page: Page,
        parser: OrderParser | None = None,
        *,
        root_selector: str = DEFAULT_ORDER_ROOT_SELECTOR,
    ) -> None:
        self.page = page
        self.parser = parser
        self.root_selector = root_selector

    def find_root(self, order_id: str) -> Tag | None:
        if not order_id or '"' in order_id:
            return None
        for template in ROOT_BY_ID_SELECTORS:
            found = query(self.page.document, template.format(id=order_id))
            if found is not None:
                return found

        # Configured order roots first so a page-wide wrapper never wins the text scan.
        for selector in (self.root_selector, TEXT_SCAN_SELECTOR):
            for candidate in query_all(self.page.document, selector):
                if order_id in text_content(candidate):
                    return candidate
        return None

    def order_roots(self) -> list[Tag]:
        if self.parser is not None:
            try:
                return list(self.parser.find_order_roots())
            except Exception:
                _LOGGER.exception("find_order_roots failed")
                return []
        return query_all(self.page.document, self.root_selector)

    def order_record(self, order_id: str) -> OrderRecord | None:
        if self.parser is None:
            _LOGGER.warning("no order parser available")
            return None
        try:
            roots = self.order_roots()
            target = next((root for root in roots if order_id in text_content(root)), None)
            if target is not None:
                record = self.parser.parse_order_card(target)
                if record is not None and record.order_number == order_id:
                    return record
                _LOGGER.warning(
                    "order number mismatch: expected %s, got %s",
                    order_id,
                    record.order_number if record is not None else None,
                )
                return None
            for root in roots:
                record = self.parser.parse_order_card(root)
                if record is not None and record.order_number == order_id:
                    return record
        except Exception:
            _LOGGER.exception("get_order_data failed order=%s", order_id)
            return None
        _LOGGER.debug("no order data found for %s", order_id)
        return None

    def order_data(self, order_id: str) -> dict[str, Any] | None:
        record = self.order_record(order_id)
        return record.to_dict() if record is not None else None
