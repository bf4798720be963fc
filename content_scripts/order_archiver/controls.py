"""Control injection and removal.

Placement cascade per order root:
1. the format's primary container
2. the format's fallback container
3. a synthesized slot appended to the secondary anchor (`.delivery-box`)
4. the order root itself (always succeeds)
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from typing import Any

from bs4 import Tag

from .config import DEFAULT_ORDER_ROOT_SELECTOR
from .dom import (
    Event,
    Page,
    add_class,
    closest,
    contains,
    element_children,
    has_class,
    new_element,
    query,
    query_all,
    remove_class,
    set_text,
)
from .formats import SECONDARY_ANCHOR_SELECTOR, PlacementStrategy, classify_page_format, placement_for
from .markers import (
    CONTROL_CONTAINER_CLASS,
    CONTROL_ITEM_CLASS,
    CONTROL_TYPE_ATTR,
    DETAILS_HIDDEN_CLASS,
    HIDE_DETAILS,
    HIDE_LABEL,
    ORDER_ID_ATTR,
    SHOW_DETAILS,
    SHOW_LABEL,
    SYNTHESIZED_ATTR,
    SYNTHESIZED_CONTAINER_CLASS,
)
from .order_ids import extract_order_id
from .state import ControlRecord, EngineState, details_token

_LOGGER = logging.getLogger("order_archiver.controls")

ActivateCallback = Callable[[str, Tag], Any]

_BUTTON_STYLES = {
    "background-color": "#7759b9",
    "border": "1px solid #888c8c",
    "border-radius": "8px",
    "color": "#ffffff",
    "cursor": "pointer",
    "padding": "4px 10px",
    "width": "100%",
}


def set_control_state(button: Tag, *, hidden: bool) -> None:
    if hidden:
        set_text(button, SHOW_LABEL)
        button[CONTROL_TYPE_ATTR] = SHOW_DETAILS
        add_class(button, DETAILS_HIDDEN_CLASS)
    else:
        set_text(button, HIDE_LABEL)
        button[CONTROL_TYPE_ATTR] = HIDE_DETAILS
        remove_class(button, DETAILS_HIDDEN_CLASS)


def build_control(order_id: str) -> tuple[Tag, Tag, Tag, Tag]:
    """container -> list -> list item -> button, not yet attached anywhere."""
    container = new_element("div", classes=(CONTROL_CONTAINER_CLASS,), attrs={ORDER_ID_ATTR: order_id})
    ul = new_element(
        "ul",
        classes=("a-unordered-list", "a-vertical", "a-spacing-mini"),
        styles={"margin": "0", "padding": "0", "list-style": "none"},
    )
    li = new_element("li", classes=("a-list-item", CONTROL_ITEM_CLASS), styles={"margin-bottom": "4px"})
    button = new_element(
        "button",
        classes=("a-button", "archivaz-button"),
        attrs={
            "type": "button",
            CONTROL_TYPE_ATTR: HIDE_DETAILS,
            ORDER_ID_ATTR: order_id,
            "aria-label": f"Hide details for order {order_id}",
        },
        text=HIDE_LABEL,
        styles=_BUTTON_STYLES,
    )
    li.append(button)
    ul.append(li)
    container.append(ul)
    return container, ul, li, button


def _detach_if_empty(element: Tag | None) -> None:
    if element is not None and element.parent is not None and not element_children(element):
        element.extract()


class ControlInjector:
    def __init__(
        self,
        page: Page,
        state: EngineState,
        *,
        on_activate: ActivateCallback,
        root_selector: str = DEFAULT_ORDER_ROOT_SELECTOR,
    ) -> None:
        self._page = page
        self._state = state
        self._on_activate = on_activate
        self._root_selector = root_selector

    def inject(self, root: Tag, order_id: str) -> bool:
        existing = self._state.records.get(order_id)
        if existing is not None:
            if existing.root is root:
                _LOGGER.debug("controls already injected for order %s", order_id)
                return True
            # Another root now carries this order id (host page re-render).
            _LOGGER.info("order %s re-rendered, moving controls to the new root", order_id)
            self.remove(order_id)

        container: Tag | None = None
        button: Tag | None = None
        synthesized: Tag | None = None
        handler: Callable[[Event], Any] | None = None
        try:
            self._drop_stale_controls(root, order_id)
            container, _ul, li, button = build_control(order_id)
            strategy = placement_for(classify_page_format(root))
            synthesized = self._place(root, container, strategy, order_id)

            handler = self._make_click_handler(order_id, button)
            self._page.add_event_listener(button, "click", handler)

            record = ControlRecord(
                order_id=order_id,
                root=root,
                container=container,
                list_item=li,
                button=button,
                synthesized_container=synthesized,
                click_handler=handler,
            )
            if has_class(root, DETAILS_HIDDEN_CLASS):
                # Root was hidden before this engine saw it (reloaded snapshot).
                set_control_state(button, hidden=True)
                self._state.hidden_tokens.add(details_token(order_id))
            else:
                self._state.hidden_tokens.discard(details_token(order_id))
            self._state.records[order_id] = record
            _LOGGER.info("injected controls for order %s", order_id)
            return True
        except Exception:
            _LOGGER.exception("inject_failed order=%s", order_id)
            if container is not None and container.parent is not None:
                container.extract()
            _detach_if_empty(synthesized)
            if button is not None and handler is not None:
                self._page.remove_event_listener(button, "click", handler)
            return False

    def remove(self, order_id: str) -> bool:
        record = self._state.records.get(order_id)
        if record is None:
            return True

        ok = True
        try:
            if record.container.parent is not None:
                record.container.extract()
        except Exception:
            ok = False
            _LOGGER.exception("detach_control_failed order=%s", order_id)
        try:
            _detach_if_empty(record.synthesized_container)
        except Exception:
            ok = False
            _LOGGER.exception("detach_synthesized_failed order=%s", order_id)
        try:
            if record.click_handler is not None:
                self._page.remove_event_listener(record.button, "click", record.click_handler)
        except Exception:
            ok = False
            _LOGGER.exception("detach_listener_failed order=%s", order_id)

        self._state.records.pop(order_id, None)
        self._state.hidden_tokens.discard(details_token(order_id))
        if ok:
            _LOGGER.info("removed controls for order %s", order_id)
        return ok

    def _place(self, root: Tag, container: Tag, strategy: PlacementStrategy, order_id: str) -> Tag | None:
        for selector in (strategy.container, strategy.fallback):
            if not selector:
                continue
            host = query(root, selector)
            if host is not None:
                host.append(container)
                _LOGGER.debug("order %s control placed in %s", order_id, selector)
                return None

        anchor = query(root, SECONDARY_ANCHOR_SELECTOR)
        if anchor is not None:
            slot = new_element(
                "div",
                classes=("a-section", SYNTHESIZED_CONTAINER_CLASS),
                attrs={SYNTHESIZED_ATTR: "true"},
            )
            slot.append(container)
            anchor.append(slot)
            _LOGGER.debug("order %s control placed in synthesized slot", order_id)
            return slot

        root.append(container)
        _LOGGER.debug("order %s control appended to order root", order_id)
        return None

    def _drop_stale_controls(self, root: Tag, order_id: str) -> None:
        for stale in query_all(root, f'.{CONTROL_CONTAINER_CLASS}[{ORDER_ID_ATTR}="{order_id}"]'):
            parent = stale.parent
            stale.extract()
            if parent is not None and parent.get(SYNTHESIZED_ATTR) == "true":
                _detach_if_empty(parent)
            _LOGGER.debug("dropped stale control for order %s", order_id)

    def _enclosing_root(self, button: Tag, order_id: str) -> Tag | None:
        root = closest(button, self._root_selector)
        if root is not None:
            return root
        record = self._state.records.get(order_id)
        if record is not None and contains(record.root, button):
            return record.root
        return None

    def _make_click_handler(self, order_id: str, button: Tag) -> Callable[[Event], Any]:
        async def on_click(event: Event) -> None:
            event.prevent_default()
            event.stop_propagation()
            try:
                clicked_id = button.get(ORDER_ID_ATTR)
                if clicked_id != order_id:
                    _LOGGER.error("control order id mismatch: expected %s, got %s", order_id, clicked_id)
                    return
                root = self._enclosing_root(button, order_id)
                if root is None:
                    _LOGGER.error("control for order %s is not inside an order root", order_id)
                    return
                root_id = extract_order_id(root)
                if root_id != order_id:
                    _LOGGER.error("order root id mismatch: expected %s, got %s", order_id, root_id)
                    return
                result = self._on_activate(order_id, button)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                _LOGGER.exception("control_click_failed order=%s", order_id)

        return on_click
