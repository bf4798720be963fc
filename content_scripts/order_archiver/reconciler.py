"""Per-order hide/show state machine.

States: Visible <-> DetailsHidden. The click path goes through the tagging
dialog and only hides once the dialog confirms; restoration replays
`apply_hide` directly with stored data.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from bs4 import Tag

from .collaborators import ArchiverCallbacks, Storage, TagData, TaggingDialog
from .confirmations import ConfirmationRegistry
from .controls import set_control_state
from .dom import (
    Page,
    add_class,
    ancestors_within,
    has_class,
    matches,
    new_element,
    query,
    query_all,
    remove_class,
    set_style_property,
)
from .errors import ArchiverError
from .formats import classify_page_format, placement_for
from .lookup import OrderLocator
from .markers import (
    CONTROL_TYPE_ATTR,
    DETAILS_HIDDEN_CLASS,
    HIDDEN_ELEMENT_CLASS,
    HIDE_DETAILS,
    HIDING_ATTR,
    OVERLAY_CLASS,
    OVERLAY_TAG_CLASS,
    OVERLAY_TAG_LIST_CLASS,
    SHOW_DETAILS,
)
from .state import ControlRecord, EngineState, details_token
from .sweeps import (
    STATUS_TEXT_SELECTOR,
    hide_detail_groups,
    hide_order_items,
    is_hidden,
    restore_element,
    sweep_actions,
    sweep_text,
)

_LOGGER = logging.getLogger("order_archiver.reconciler")

STATUS_SECONDARY_TEXT_SELECTOR = ".yohtmlc-shipment-status-secondaryText"


async def emit(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception:
        _LOGGER.exception("callback failed: %s", getattr(callback, "__name__", callback))


def build_overlay(username: str, tags: list[str]) -> Tag:
    overlay = new_element("div", classes=(OVERLAY_CLASS,), styles={"margin-top": "4px", "padding-top": "0"})
    overlay.append(new_element("div", classes=("a-row", "a-spacing-top-mini"), styles={"height": "36px"}))

    hidden_by = new_element("div", styles={"margin-bottom": "4px"})
    hidden_by.append(
        new_element(
            "span",
            text="Hidden by: ",
            styles={"font-size": "14px", "color": "#666", "font-weight": "500", "margin-right": "6px"},
        )
    )
    hidden_by.append(
        new_element(
            "span",
            text=f"@{username}",
            styles={"font-size": "14px", "color": "#0066cc", "font-weight": "600"},
        )
    )
    overlay.append(hidden_by)

    tag_list = new_element(
        "div", classes=(OVERLAY_TAG_LIST_CLASS,), styles={"display": "inline-block", "margin-top": "0"}
    )
    for tag in tags:
        tag_list.append(
            new_element(
                "span",
                classes=(OVERLAY_TAG_CLASS,),
                text=tag,
                styles={
                    "display": "inline-block",
                    "background": "#e7f3ff",
                    "color": "#0066cc",
                    "padding": "3px 8px",
                    "margin": "2px 4px 2px 0",
                    "border-radius": "12px",
                    "font-size": "14px",
                    "border": "1px solid #cce7ff",
                },
            )
        )
    overlay.append(tag_list)
    return overlay


def remove_overlay(root: Tag) -> int:
    overlays = query_all(root, f".{OVERLAY_CLASS}")
    for overlay in overlays:
        overlay.extract()
    return len(overlays)


class HideShowReconciler:
    def __init__(
        self,
        page: Page,
        state: EngineState,
        locator: OrderLocator,
        *,
        confirmations: ConfirmationRegistry | None = None,
        callbacks: ArchiverCallbacks | None = None,
        storage: Storage | None = None,
        dialog: TaggingDialog | None = None,
        hidden_opacity: str = "0.8",
    ) -> None:
        self.page = page
        self.state = state
        self.locator = locator
        self.confirmations = confirmations or ConfirmationRegistry()
        self.callbacks = callbacks or ArchiverCallbacks()
        self.storage = storage
        self.dialog = dialog
        self.hidden_opacity = hidden_opacity
        self._tasks: dict[str, asyncio.Task[None]] = {}

    # Click path
    async def handle_control(self, order_id: str, button: Tag) -> bool:
        kind = button.get(CONTROL_TYPE_ATTR)
        if kind == HIDE_DETAILS:
            return await self.request_hide(order_id)
        if kind == SHOW_DETAILS:
            return await self.show(order_id)
        _LOGGER.warning("unknown control type %r for order %s", kind, order_id)
        return False

    async def request_hide(self, order_id: str) -> bool:
        """Open the tagging dialog; the hide itself happens once the dialog confirms."""
        registered = False
        try:
            record = self._require_record(order_id, "hide")
            if has_class(record.root, DETAILS_HIDDEN_CLASS) or self.state.is_hidden(order_id):
                raise ArchiverError("hide", "order details already hidden", order_id=order_id)
            if self.confirmations.is_pending(order_id) or self._has_task(order_id):
                raise ArchiverError("hide", "tagging dialog already open", order_id=order_id)
            if self.storage is None:
                raise ArchiverError("hide", "no storage available", "attach a storage backend", order_id=order_id)
            order = self.locator.order_record(order_id)
            if order is None:
                raise ArchiverError(
                    "hide",
                    "no order data available",
                    "check the order parser",
                    order_id=order_id,
                    details={"parser": type(self.locator.parser).__name__ if self.locator.parser is not None else None},
                )
            if self.dialog is None:
                raise ArchiverError("hide", "no tagging dialog available", order_id=order_id)

            stored = await self._stored_tags(order_id)

            record = self._require_record(order_id, "hide")
            if self.confirmations.is_pending(order_id) or self._has_task(order_id):
                raise ArchiverError("hide", "tagging dialog already open", order_id=order_id)
            payload = {
                "orderNumber": order_id,
                "orderDate": order.order_date or "Unknown",
                "tags": list(stored.tags) if stored is not None else list(order.tags),
                "notes": stored.notes if stored is not None else order.notes,
            }

            future = self.confirmations.expect(order_id)
            registered = True
            if not self.dialog.open_dialog(payload, record.root):
                raise ArchiverError(
                    "hide",
                    "tagging dialog refused to open",
                    order_id=order_id,
                    details={"dialog": type(self.dialog).__name__, "tags": payload["tags"]},
                )

            task = asyncio.get_running_loop().create_task(self._await_confirmation(order_id, future))
            self._tasks[order_id] = task
            task.add_done_callback(lambda t, oid=order_id: self._forget_task(oid, t))
            _LOGGER.info("tagging dialog opened for order %s", order_id)
            return True
        except ArchiverError as e:
            if registered:
                self.confirmations.cancel(order_id)
            _LOGGER.warning("%s%s", e, f" details={e.details}" if e.details else "")
            return False
        except Exception:
            if registered:
                self.confirmations.cancel(order_id)
            _LOGGER.exception("request_hide failed order=%s", order_id)
            return False

    async def _await_confirmation(self, order_id: str, future: asyncio.Future[TagData]) -> None:
        try:
            data = await future
        except asyncio.CancelledError:
            _LOGGER.info("tagging dialog for order %s closed without confirmation", order_id)
            return
        try:
            if data.order_number != order_id:
                _LOGGER.warning("tags confirmed for wrong order: expected %s, got %s", order_id, data.order_number)
                return
            await self._store_tags(order_id, data)
            username = await self._stored_username()
            if order_id not in self.state.records:
                _LOGGER.info("order %s went away before the hide could be applied", order_id)
                return
            await self.apply_hide(order_id, data, username)
        except Exception:
            _LOGGER.exception("confirmed hide failed order=%s", order_id)

    def _forget_task(self, order_id: str, task: asyncio.Task[None]) -> None:
        if self._tasks.get(order_id) is task:
            del self._tasks[order_id]

    def _has_task(self, order_id: str) -> bool:
        task = self._tasks.get(order_id)
        return task is not None and not task.done()

    def pending_tasks(self) -> list[asyncio.Task[None]]:
        return [t for t in self._tasks.values() if not t.done()]

    async def wait_idle(self) -> None:
        while True:
            tasks = self.pending_tasks()
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    def cancel_pending(self, order_id: str) -> None:
        self.confirmations.cancel(order_id)

    def cancel_all_pending(self) -> int:
        return self.confirmations.cancel_all()

    # State transitions
    async def apply_hide(
        self,
        order_id: str,
        tag_data: TagData | None = None,
        username: str | None = None,
        *,
        notify: bool = True,
    ) -> bool:
        record = self.state.records.get(order_id)
        if record is None:
            _LOGGER.warning("hide failed (order %s): no control record", order_id)
            return False
        root = record.root
        if has_class(root, DETAILS_HIDDEN_CLASS) or self.state.is_hidden(order_id):
            _LOGGER.warning("order %s is already hidden", order_id)
            return False
        if root.has_attr(HIDING_ATTR):
            _LOGGER.warning("hide already in progress for order %s", order_id)
            return False

        root[HIDING_ATTR] = "true"
        try:
            if username:
                self.state.set_username(order_id, username)
            if tag_data is None and self.storage is not None:
                tag_data = await self._stored_tags(order_id)
            if self.state.records.get(order_id) is not record:
                _LOGGER.info("order %s went away while reading stored tags", order_id)
                return False

            hidden = hide_detail_groups(root, record)
            hidden += sweep_text(root, record)
            hidden += sweep_actions(root, record)
            hidden += hide_order_items(root, record)

            tags = list(tag_data.tags) if tag_data is not None else []
            self._reveal_status_column(record, self.state.username_for(order_id), tags)

            add_class(root, DETAILS_HIDDEN_CLASS)
            set_style_property(root, "opacity", self.hidden_opacity)
            set_control_state(record.button, hidden=True)
            self.state.hidden_tokens.add(details_token(order_id))
            _LOGGER.info("hid %d elements for order %s", hidden, order_id)
        except Exception:
            _LOGGER.exception("apply_hide failed order=%s", order_id)
            # Undo partial work; the order returns to fully visible.
            try:
                self.reveal(root, order_id)
            except Exception:
                _LOGGER.exception("rollback after failed hide failed order=%s", order_id)
            return False
        finally:
            if root.has_attr(HIDING_ATTR):
                del root[HIDING_ATTR]

        if notify:
            await emit(self.callbacks.on_order_hidden, order_id, "details", self._order_data(order_id))
        return True

    async def show(self, order_id: str) -> bool:
        record = self.state.records.get(order_id)
        if record is None:
            _LOGGER.warning("show failed (order %s): no control record", order_id)
            return False
        try:
            restored = self.reveal(record.root, order_id)
            _LOGGER.info("showed %d elements for order %s", restored, order_id)
        except Exception:
            _LOGGER.exception("show failed order=%s", order_id)
            return False

        await emit(self.callbacks.on_order_shown, order_id, "details", self._order_data(order_id))
        return True

    def reveal(self, root: Tag, order_id: str | None) -> int:
        """Undo every visual change on `root`; works with or without a control record."""
        record = self.state.records.get(order_id) if order_id else None
        if record is not None and record.root is not root:
            record = None

        restored = 0
        if record is not None:
            for element in list(record.hidden_elements):
                restore_element(element)
                restored += 1
        # Elements hidden by an earlier page context carry the class but are not in the record.
        for element in query_all(root, f".{HIDDEN_ELEMENT_CLASS}"):
            restore_element(element)
            restored += 1
        remove_overlay(root)
        remove_class(root, DETAILS_HIDDEN_CLASS)
        set_style_property(root, "opacity", None)
        if order_id:
            self.state.hidden_tokens.discard(details_token(order_id))

        buttons = [record.button] if record is not None else query_all(root, f"button[{CONTROL_TYPE_ATTR}]")
        for button in buttons:
            set_control_state(button, hidden=False)
        if record is not None:
            record.hidden_elements.clear()
        return restored

    def _reveal_status_column(self, record: ControlRecord, username: str, tags: list[str]) -> None:
        root = record.root
        column = query(root, placement_for(classify_page_format(root)).status_column)
        if column is None:
            _LOGGER.debug("order %s has no status column", record.order_id)
            return

        # The column stays visible, and so does any hidden piece of it that carries the status text.
        status_parts = [
            el
            for el in query_all(column, f".{HIDDEN_ELEMENT_CLASS}")
            if matches(el, STATUS_TEXT_SELECTOR) or query(el, STATUS_TEXT_SELECTOR) is not None
        ]
        for element in (column, *ancestors_within(column, root), *status_parts):
            if is_hidden(element):
                restore_element(element)
                record.forget_hidden(element)

        if query(column, f".{OVERLAY_CLASS}") is not None:
            return
        overlay = build_overlay(username, tags)
        anchor = query(column, STATUS_SECONDARY_TEXT_SELECTOR)
        if anchor is None:
            rows = query_all(column, ".a-row")
            anchor = rows[-1] if rows else None
        if anchor is not None:
            anchor.insert_after(overlay)
        else:
            column.append(overlay)

    # Collaborator access
    def _require_record(self, order_id: str, action: str) -> ControlRecord:
        record = self.state.records.get(order_id)
        if record is None:
            raise ArchiverError(action, "no control record", "wait for the order to be detected", order_id=order_id)
        return record

    def _order_data(self, order_id: str) -> dict[str, Any]:
        return self.locator.order_data(order_id) or {"orderNumber": order_id}

    async def _stored_tags(self, order_id: str) -> TagData | None:
        if self.storage is None:
            return None
        try:
            raw = await self.storage.get_order_tags(order_id)
        except Exception:
            _LOGGER.exception("reading stored tags failed order=%s", order_id)
            return None
        return TagData.from_dict(raw, order_number=order_id) if raw else None

    async def _store_tags(self, order_id: str, data: TagData) -> None:
        if self.storage is None:
            _LOGGER.warning("no storage available to persist tags for order %s", order_id)
            return
        try:
            await self.storage.store_order_tags(order_id, data.to_dict())
        except Exception:
            _LOGGER.exception("storing tags failed order=%s", order_id)

    async def _stored_username(self) -> str:
        if self.storage is None:
            return self.state.default_username
        try:
            username = await self.storage.get("username")
        except Exception:
            _LOGGER.exception("reading username failed")
            return self.state.default_username
        return username if isinstance(username, str) and username else self.state.default_username
