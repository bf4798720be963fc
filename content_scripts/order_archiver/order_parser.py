from __future__ import annotations

import logging
import re

from bs4 import Tag

from .collaborators import OrderRecord
from .config import DEFAULT_ORDER_ROOT_SELECTOR
from .dom import Page, query, query_all, text_content
from .order_ids import extract_order_id

_LOGGER = logging.getLogger("order_archiver.order_parser")

DATE_SELECTORS = ".order-date, [data-order-date], .yohtmlc-order-date"
TOTAL_SELECTORS = ".order-total, [data-order-total], .yohtmlc-order-total"
STATUS_SELECTORS = (
    ".order-status, [data-order-status], .yohtmlc-shipment-status-primaryText, .delivery-box__primary-text"
)

_DATE_RE = re.compile(r"(?:ordered\s+on\s+|order\s+placed\s*)?([A-Za-z]+\s+\d{1,2},?\s+\d{4})", re.IGNORECASE)
_PRICE_RE = re.compile(r"\$?(\d[\d,]*\.?\d*)")
_LABELLED_DATE_RE = re.compile(r"order\s+placed\s*([A-Za-z]+\s+\d{1,2},?\s+\d{4})", re.IGNORECASE)
_LABELLED_TOTAL_RE = re.compile(r"total\s*\$?\s*(\d[\d,]*\.\d{2})", re.IGNORECASE)


def _squash(text: str) -> str:
    return " ".join(text.split())


def extract_date(text: str | None) -> str:
    if not text:
        return "Unknown"
    match = _DATE_RE.search(text)
    return match.group(1) if match else _squash(text)


def extract_price(text: str | None) -> str:
    if not text:
        return "unknown"
    match = _PRICE_RE.search(text)
    return f"${match.group(1)}" if match else "unknown"


class DefaultOrderParser:
    """Reads order roots off a `Page`; tags and notes always start empty."""

    def __init__(self, page: Page, *, root_selector: str = DEFAULT_ORDER_ROOT_SELECTOR) -> None:
        self.page = page
        self.root_selector = root_selector

    def find_order_roots(self) -> list[Tag]:
        return query_all(self.page.document, self.root_selector)

    def parse_order_card(self, root: Tag) -> OrderRecord | None:
        order_number = extract_order_id(root)
        if not order_number:
            _LOGGER.debug("order root without a valid order id")
            return None

        text = _squash(text_content(root))

        date_el = query(root, DATE_SELECTORS)
        if date_el is not None:
            order_date = extract_date(text_content(date_el).strip())
        else:
            match = _LABELLED_DATE_RE.search(text)
            order_date = match.group(1) if match else "Unknown"

        total_el = query(root, TOTAL_SELECTORS)
        if total_el is not None:
            order_total = extract_price(text_content(total_el).strip())
        else:
            match = _LABELLED_TOTAL_RE.search(text)
            order_total = f"${match.group(1)}" if match else "unknown"

        status_el = query(root, STATUS_SELECTORS)
        status = _squash(text_content(status_el)) if status_el is not None else ""

        return OrderRecord(
            order_number=order_number,
            order_date=order_date,
            order_total=order_total,
            status=status or "unknown",
        )
