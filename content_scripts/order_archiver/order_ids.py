"""Order-id discovery: candidates first, validation second.

Candidates come from an ordered list of selector lookups (attribute values, then
text), then from regex scans over the root's text. The first candidate that
passes `is_valid_order_id` wins.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass

from bs4 import Tag

from .dom import class_list, query, query_all, text_content

_LOGGER = logging.getLogger("order_archiver.order_ids")

# Evaluated before the accept list: dates, weekday/month names, status words.
REJECT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^(Arriving|Delivered|Shipped|Ordered|Cancelled)", re.IGNORECASE),
    re.compile(
        r"^(January|February|March|April|May|June|July|August|September|October|November|December)",
        re.IGNORECASE,
    ),
    re.compile(r"^(Mon|Tue|Wed|Thu|Fri|Sat|Sun)", re.IGNORECASE),
    re.compile(r"^\d{1,2}/\d{1,2}/\d{4}$"),
    re.compile(r"^\d{1,2}/\d{1,2}$"),
    re.compile(r"^[A-Za-z\s]+$"),
)

ACCEPT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^[A-Z0-9]{3}-[A-Z0-9]{7}-[A-Z0-9]{7}$"),
    re.compile(r"^[0-9]{3}-[0-9]{7}-[0-9]{7}$"),
    re.compile(r"^[A-Z0-9]{10,}$"),
    re.compile(r"^[A-Z0-9\-]{8,}$"),
)

ID_ATTRIBUTES: tuple[str, ...] = ("data-order-id", "data-order-number", "data-order-reference")

ORDER_ID_SELECTORS: tuple[str, ...] = (
    "[data-order-id]",
    "[data-order-number]",
    "[data-order-reference]",
    ".order-id",
    ".order-number",
    ".order-reference",
    '.yohtmlc-order-id span.a-color-secondary[dir="ltr"]',
    ".yohtmlc-order-id span.a-color-secondary:last-child",
    ".yohtmlc-order-id",
    '[data-testid*="order-id"]',
    '[data-testid*="order-number"]',
    '[data-testid*="order-reference"]',
    'span[class*="order"]',
    'div[class*="order"]',
    'span[class*="number"]',
    'div[class*="number"]',
)

TEXT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"ORDER\s*#?\s*([A-Z0-9\-]+)", re.IGNORECASE),
    re.compile(r"([A-Z0-9]{3}-[A-Z0-9]{7}-[A-Z0-9]{7})"),
    re.compile(r"([0-9]{3}-[0-9]{7}-[0-9]{7})"),
    re.compile(r"([A-Z0-9]{10,})"),
    re.compile(r"Order\s*#\s*([0-9]{3}-[0-9]{7}-[0-9]{7})", re.IGNORECASE),
)

# Label spans inside `.yohtmlc-order-id` that are never the id itself.
_LABEL_FRAGMENTS = ("Order #", "Ordered", "Delivered")


@dataclass(frozen=True, slots=True)
class OrderIdCandidate:
    value: str
    source: str


def is_valid_order_id(text: object) -> bool:
    if not isinstance(text, str) or not text:
        return False
    trimmed = text.strip()
    if not trimmed:
        return False
    for pattern in REJECT_PATTERNS:
        if pattern.search(trimmed):
            return False
    return any(pattern.search(trimmed) for pattern in ACCEPT_PATTERNS)


def _attribute_value(element: Tag) -> str:
    for attr in ID_ATTRIBUTES:
        raw = element.get(attr)
        if isinstance(raw, str) and raw.strip():
            return raw.strip()
    return ""


def iter_order_id_candidates(root: Tag) -> Iterator[OrderIdCandidate]:
    for selector in ORDER_ID_SELECTORS:
        element = query(root, selector)
        if element is None:
            continue
        if selector == ".yohtmlc-order-id" and "yohtmlc-order-id" in class_list(element):
            for span in query_all(element, "span.a-color-secondary"):
                span_text = text_content(span).strip()
                if span_text and not any(frag in span_text for frag in _LABEL_FRAGMENTS):
                    yield OrderIdCandidate(span_text, f"{selector} span")
        value = _attribute_value(element) or text_content(element).strip()
        if value:
            yield OrderIdCandidate(value, selector)

    all_text = text_content(root)
    for pattern in TEXT_PATTERNS:
        match = pattern.search(all_text)
        if match and match.group(1):
            yield OrderIdCandidate(match.group(1), f"text:{pattern.pattern}")


def extract_order_id(root: Tag | None) -> str | None:
    """First validated order id found in `root`, or None."""
    if root is None:
        return None
    try:
        for candidate in iter_order_id_candidates(root):
            if is_valid_order_id(candidate.value):
                return candidate.value.strip()
    except Exception as e:
        _LOGGER.debug("order id lookup failed: %s", e)
    return None
