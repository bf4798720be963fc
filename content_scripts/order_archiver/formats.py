"""Page-format classification and the placement table keyed by format.

Three layouts of the order-history page are known:
- your-orders: newest layout, shipment-level connection column.
- css: legacy layout built from `.a-box-group` / `.order-actions` boxes.
- your-account: oldest layout, everything inside a `.delivery-box`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Literal

from bs4 import Tag

from .dom import query

_LOGGER = logging.getLogger("order_archiver.formats")

PageFormat = Literal["your-orders", "css", "your-account", "unknown"]

UNKNOWN_FORMAT: PageFormat = "unknown"

# Priority order matters: first marker found wins.
FORMAT_MARKERS: tuple[tuple[str, PageFormat], ...] = (
    (".yohtmlc-shipment-level-connections", "your-orders"),
    (".order-actions, .a-box-group", "css"),
    (".delivery-box", "your-account"),
    ('[data-testid*="order"]', "your-orders"),
)

STATUS_COLUMN_SELECTOR = ".delivery-box .a-fixed-right-grid-col.a-col-left"
SECONDARY_ANCHOR_SELECTOR = ".delivery-box"


@dataclass(frozen=True, slots=True)
class PlacementStrategy:
    container: str | None
    fallback: str | None
    status_column: str = STATUS_COLUMN_SELECTOR


PLACEMENT_STRATEGIES: dict[str, PlacementStrategy] = {
    "your-orders": PlacementStrategy(
        container=".yohtmlc-shipment-level-connections",
        fallback=".order-actions, .a-box-group",
    ),
    "css": PlacementStrategy(container=".order-actions, .a-box-group", fallback=".a-box-group"),
    "your-account": PlacementStrategy(container=".delivery-box", fallback=".a-unordered-list, .a-vertical"),
    "unknown": PlacementStrategy(container=".order-actions, .a-box-group", fallback=None),
}


def classify_page_format(root: Tag | None) -> PageFormat:
    if root is None:
        return UNKNOWN_FORMAT
    for selector, page_format in FORMAT_MARKERS:
        try:
            if query(root, selector) is not None:
                return page_format
        except Exception as e:
            _LOGGER.debug("format check failed selector=%r err=%s", selector, e)
    return UNKNOWN_FORMAT


def placement_for(page_format: str | None) -> PlacementStrategy:
    return PLACEMENT_STRATEGIES.get(str(page_format or ""), PLACEMENT_STRATEGIES[UNKNOWN_FORMAT])
