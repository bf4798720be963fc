"""Element hiding primitives and the sweeps that pick what to hide inside an order root.

Every hidden element carries three things so it can be restored without the
record that hid it: the hidden-details class, an inline `display: none`, and
the pre-hide computed display in `data-archivaz-original-display`.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from bs4 import Tag

from .dom import (
    add_class,
    ancestors_within,
    closest,
    computed_display,
    contains,
    default_display,
    has_class,
    is_element,
    query,
    query_all,
    remove_class,
    set_style_property,
    text_content,
    text_nodes,
)
from .markers import (
    CONTROL_CONTAINER_CLASS,
    CONTROL_TYPE_ATTR,
    HIDDEN_ELEMENT_CLASS,
    ORIGINAL_DISPLAY_ATTR,
    OVERLAY_CLASS,
)
from .state import ControlRecord

_LOGGER = logging.getLogger("order_archiver.sweeps")

DETAIL_SELECTOR_GROUPS: tuple[tuple[str, str], ...] = (
    ("images", 'img[src*="images"], img[src*="product"], .product-image, .item-image'),
    ("titles", 'a[href*="product"], a[href*="dp/"], .product-title, .item-title, .product-link'),
    ("price", ".product-price, .item-price, .product-quantity, .item-quantity"),
    ("metadata", ".product-meta, .item-meta, .product-info, .item-info"),
    ("test-ids", '[data-testid*="product"], [data-testid*="item"]'),
    ("legacy-links", '.a-link-normal[href*="product"], .a-text-normal[href*="product"]'),
)

HIDDEN_TEXT_PHRASES: tuple[str, ...] = (
    "Return or replace items: Eligible",
    "Return window closed on",
    "Auto-delivered: Every",
    "auto-delivered: Every",
    "When will I get my refund?",
)

STATUS_TEXT_CLASSES: tuple[str, ...] = (
    "yohtmlc-shipment-status-primaryText",
    "yohtmlc-shipment-status-secondaryText",
    "delivery-box__primary-text",
    "delivery-box__secondary-text",
)
STATUS_TEXT_SELECTOR = ", ".join(f".{name}" for name in STATUS_TEXT_CLASSES)

ACTION_TEXT_FRAGMENTS: tuple[str, ...] = (
    "Track package",
    "Return or replace items",
    "Share gift receipt",
    "View your Subscribe & Save",
    "Write a product review",
    "Ask Product Question",
    "Leave seller feedback",
    "Buy it again",
    "View your item",
    "Get product support",
    "Problem with order",
    "View return/refund status",
)

ACTION_CONTROL_SELECTORS: tuple[str, ...] = (
    "button",
    ".a-button",
    ".a-button-normal",
    ".a-button-text",
    ".a-button-base",
    ".a-button-primary",
    ".a-button-secondary",
    ".a-link-normal",
    ".a-text-normal",
    '[role="button"]',
    '[type="button"]',
    ".a-box-group button",
    ".order-actions button",
)

ACTION_CONTAINER_SELECTOR = ".a-box-group, .order-actions, .a-unordered-list, .a-fixed-right-grid-col"
VISIBLE_BUTTON_SELECTOR = "button, .a-button, .a-button-normal, .a-link-normal"

ESSENTIAL_HEADER_PHRASES: tuple[str, ...] = (
    "order placed",
    "total",
    "ship to",
    "order #",
    "view order details",
    "view invoice",
)

ORDER_ITEM_SELECTOR = ".order-item"
ESSENTIAL_STATUS_SELECTOR = '.delivery-box, [class*="shipment-status"], [class*="delivery-box"]'
ESSENTIAL_STATUS_TEXT: tuple[str, ...] = ("Return complete", "Delivered", "Shipped")


def is_hidden(element: Tag) -> bool:
    return has_class(element, HIDDEN_ELEMENT_CLASS)


def hide_element(element: Tag) -> bool:
    """Hide one element; False when it was already hidden."""
    if is_hidden(element):
        return False
    element[ORIGINAL_DISPLAY_ATTR] = computed_display(element)
    add_class(element, HIDDEN_ELEMENT_CLASS)
    set_style_property(element, "display", "none")
    return True


def restore_element(element: Tag) -> None:
    original = element.get(ORIGINAL_DISPLAY_ATTR)
    remove_class(element, HIDDEN_ELEMENT_CLASS)
    if isinstance(original, str) and original and original != default_display(element):
        set_style_property(element, "display", original)
    else:
        set_style_property(element, "display", None)
    if element.has_attr(ORIGINAL_DISPLAY_ATTR):
        del element[ORIGINAL_DISPLAY_ATTR]


def in_extension_markup(element: Tag, root: Tag) -> bool:
    """True for the injected control, anything inside it, and the attribution overlay."""
    for node in (element, *ancestors_within(element, root)):
        if node.has_attr(CONTROL_TYPE_ATTR):
            return True
        if has_class(node, CONTROL_CONTAINER_CLASS) or has_class(node, OVERLAY_CLASS):
            return True
    return False


def hide_candidates(root: Tag, record: ControlRecord, elements: Iterable[Tag]) -> int:
    count = 0
    for element in elements:
        if element is root or not contains(root, element):
            continue
        if in_extension_markup(element, root):
            continue
        if hide_element(element):
            record.remember_hidden(element)
            count += 1
    return count


def hide_detail_groups(root: Tag, record: ControlRecord) -> int:
    count = 0
    for name, selector in DETAIL_SELECTOR_GROUPS:
        hidden = hide_candidates(root, record, query_all(root, selector))
        if hidden:
            _LOGGER.debug("order %s: hid %d %s elements", record.order_id, hidden, name)
        count += hidden
    return count


def _carries_status_text(element: Tag, root: Tag) -> bool:
    for node in (element, *ancestors_within(element, root)):
        if any(has_class(node, name) for name in STATUS_TEXT_CLASSES):
            return True
    return False


def sweep_text(root: Tag, record: ControlRecord) -> int:
    """Hide the parents of text nodes carrying return/auto-delivery boilerplate."""
    parents: list[Tag] = []
    for node in text_nodes(root):
        text = str(node)
        if not any(phrase in text for phrase in HIDDEN_TEXT_PHRASES):
            continue
        parent = node.parent
        if not is_element(parent) or parent is root:
            continue
        if _carries_status_text(parent, root):
            continue
        if not any(p is parent for p in parents):
            parents.append(parent)
    return hide_candidates(root, record, parents)


def is_essential_order_header(element: Tag) -> bool:
    text = text_content(element).lower()
    return any(phrase in text for phrase in ESSENTIAL_HEADER_PHRASES)


def _action_controls(root: Tag) -> list[Tag]:
    found: list[Tag] = []
    seen: set[int] = set()
    for selector in ACTION_CONTROL_SELECTORS:
        for element in query_all(root, selector):
            if id(element) not in seen:
                seen.add(id(element))
                found.append(element)
    return found


def sweep_actions(root: Tag, record: ControlRecord) -> int:
    count = 0
    for control in _action_controls(root):
        if is_hidden(control) or in_extension_markup(control, root):
            continue
        text = text_content(control).strip()
        if not text or not any(fragment in text for fragment in ACTION_TEXT_FRAGMENTS):
            continue
        container = closest(control, ACTION_CONTAINER_SELECTOR)
        if container is not None and contains(root, container) and is_essential_order_header(container):
            continue
        count += hide_candidates(root, record, [control])

    for container in query_all(root, ACTION_CONTAINER_SELECTOR):
        if is_hidden(container) or is_essential_order_header(container):
            continue
        if in_extension_markup(container, root) or query(container, f"[{CONTROL_TYPE_ATTR}]") is not None:
            continue
        if query(container, f".{OVERLAY_CLASS}") is not None:
            continue
        if any(not is_hidden(btn) for btn in query_all(container, VISIBLE_BUTTON_SELECTOR)):
            count += hide_candidates(root, record, [container])
    return count


def has_essential_status(item: Tag) -> bool:
    if query(item, ESSENTIAL_STATUS_SELECTOR) is not None:
        return True
    text = text_content(item)
    return any(phrase in text for phrase in ESSENTIAL_STATUS_TEXT)


def hide_order_items(root: Tag, record: ControlRecord) -> int:
    items = [item for item in query_all(root, ORDER_ITEM_SELECTOR) if not has_essential_status(item)]
    return hide_candidates(root, record, items)
