"""Engine facade: one `OrderArchiver` per page context.

Owns the shared state (control records, hidden-order tokens, usernames) and
wires the injector, reconciler, watcher and restorer together. Everything the
content script or a test needs goes through this class.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from bs4 import Tag

from .collaborators import (
    ArchiverCallbacks,
    OrderDetectedCallback,
    OrderHiddenCallback,
    OrderParser,
    OrderRemovedCallback,
    OrderShownCallback,
    Storage,
    TagData,
    TaggingDialog,
)
from .confirmations import ConfirmationRegistry
from .config import ArchiverConfig
from .controls import ControlInjector
from .dom import Page, query
from .formats import PageFormat, classify_page_format
from .lookup import OrderLocator
from .markers import CONTROL_TYPE_ATTR, DETAILS_HIDDEN_CLASS, ORDER_ID_ATTR, PROCESSED_ATTR
from .order_ids import extract_order_id
from .reconciler import HideShowReconciler
from .restore import RestorationBootstrapper
from .state import EngineState
from .watcher import MutationWatcher

_LOGGER = logging.getLogger("order_archiver.engine")


class OrderArchiver:
    def __init__(
        self,
        page: Page,
        *,
        parser: OrderParser | None = None,
        storage: Storage | None = None,
        dialog: TaggingDialog | None = None,
        config: ArchiverConfig | None = None,
        on_order_hidden: OrderHiddenCallback | None = None,
        on_order_shown: OrderShownCallback | None = None,
        on_order_detected: OrderDetectedCallback | None = None,
        on_order_removed: OrderRemovedCallback | None = None,
    ) -> None:
        self.page = page
        self.config = config or ArchiverConfig()
        self.state = EngineState(default_username=self.config.default_username)
        self.callbacks = ArchiverCallbacks(
            on_order_hidden=on_order_hidden,
            on_order_shown=on_order_shown,
            on_order_detected=on_order_detected,
            on_order_removed=on_order_removed,
        )
        self.confirmations = ConfirmationRegistry()
        self.locator = OrderLocator(page, parser, root_selector=self.config.order_root_selector)
        self.reconciler = HideShowReconciler(
            page,
            self.state,
            self.locator,
            confirmations=self.confirmations,
            callbacks=self.callbacks,
            storage=storage,
            dialog=dialog,
            hidden_opacity=self.config.hidden_opacity,
        )
        self.injector = ControlInjector(
            page,
            self.state,
            on_activate=self.reconciler.handle_control,
            root_selector=self.config.order_root_selector,
        )
        self.watcher = MutationWatcher(
            page,
            on_detected=self._order_detected,
            on_removed=self._order_removed,
            root_selector=self.config.order_root_selector,
            debounce_s=self.config.debounce_s,
        )
        self.restorer = RestorationBootstrapper(self.state, self.locator, self.reconciler, inject=self.inject_controls)
        self._background: set[asyncio.Task[Any]] = set()

    # Collaborators
    @property
    def parser(self) -> OrderParser | None:
        return self.locator.parser

    @parser.setter
    def parser(self, value: OrderParser | None) -> None:
        self.locator.parser = value

    @property
    def storage(self) -> Storage | None:
        return self.reconciler.storage

    @storage.setter
    def storage(self, value: Storage | None) -> None:
        self.reconciler.storage = value

    @property
    def dialog(self) -> TaggingDialog | None:
        return self.reconciler.dialog

    @dialog.setter
    def dialog(self, value: TaggingDialog | None) -> None:
        self.reconciler.dialog = value

    # Detection and controls
    def classify_page_format(self, root: Tag) -> PageFormat:
        return classify_page_format(root)

    def inject_controls(self, root: Tag, order_id: str) -> bool:
        return self.injector.inject(root, order_id)

    def remove_controls(self, order_id: str) -> bool:
        self.reconciler.cancel_pending(order_id)
        return self.injector.remove(order_id)

    def process_order(self, root: Tag) -> str | None:
        """Inject controls into one order root; returns its order id when one was found."""
        order_id = extract_order_id(root)
        if not order_id:
            _LOGGER.debug("no valid order id in order root")
            return None
        if not self.inject_controls(root, order_id):
            return None
        root[PROCESSED_ATTR] = "true"
        return order_id

    def process_existing_orders(self) -> int:
        count = 0
        for root in self.locator.order_roots():
            if self.process_order(root):
                count += 1
        return count

    def _order_detected(self, root: Tag) -> None:
        if self.process_order(root) is None:
            return
        self._fire(self.callbacks.on_order_detected, root)

    def _order_removed(self, order_id: str, root: Tag) -> None:
        record = self.state.records.get(order_id)
        if record is not None and record.root is not root:
            _LOGGER.debug("order %s: removed root is stale, controls live on its replacement", order_id)
            return
        self.remove_controls(order_id)
        self._fire(self.callbacks.on_order_removed, order_id, root)

    def _fire(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
        except Exception:
            _LOGGER.exception("callback failed: %s", getattr(callback, "__name__", callback))
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._background.add(task)
            task.add_done_callback(self._background_done)

    def _background_done(self, task: asyncio.Future[Any]) -> None:
        self._background.discard(task)  # type: ignore[arg-type]
        if not task.cancelled() and task.exception() is not None:
            _LOGGER.error("background callback failed", exc_info=task.exception())

    def start_watching(self) -> None:
        self.watcher.start()

    def stop_watching(self) -> None:
        self.watcher.stop()

    # Hide / show
    async def handle_control(self, order_id: str, button: Tag) -> bool:
        return await self.reconciler.handle_control(order_id, button)

    async def request_hide(self, order_id: str) -> bool:
        return await self.reconciler.request_hide(order_id)

    async def apply_hide(
        self,
        order_id: str,
        tag_data: TagData | dict[str, Any] | None = None,
        username: str | None = None,
        *,
        notify: bool = True,
    ) -> bool:
        data = TagData.from_dict(tag_data, order_number=order_id) if tag_data is not None else None
        return await self.reconciler.apply_hide(order_id, data, username, notify=notify)

    async def show(self, order_id: str) -> bool:
        return await self.reconciler.show(order_id)

    def tags_confirmed(self, data: TagData | dict[str, Any]) -> bool:
        """Called by the tagging dialog when the user saves tags."""
        tag_data = TagData.from_dict(data)
        if tag_data is None or not tag_data.order_number:
            _LOGGER.warning("ignoring malformed tag confirmation: %r", data)
            return False
        return self.confirmations.resolve(tag_data)

    def dialog_closed(self, order_id: str) -> None:
        """Called by the tagging dialog when it closes without confirming."""
        self.confirmations.cancel(order_id)
        close = getattr(self.dialog, "close_dialog", None)
        if callable(close):
            try:
                close(order_id)
            except Exception:
                _LOGGER.warning("closing tagging dialog failed order=%s", order_id, exc_info=True)

    async def wait_idle(self) -> None:
        """Wait for confirmation follow-ups and callback tasks to settle."""
        await self.reconciler.wait_idle()
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # Queries
    def are_details_hidden(self, order_id: str) -> bool:
        return self.state.is_hidden(order_id)

    def hidden_orders(self) -> list[str]:
        return sorted(token[: -len("-details")] for token in self.state.hidden_tokens)

    def get_username(self, order_id: str) -> str:
        return self.state.username_for(order_id)

    def set_username(self, order_id: str, username: str) -> None:
        self.state.set_username(order_id, username)

    def get_order_data(self, order_id: str) -> dict[str, Any] | None:
        return self.locator.order_data(order_id)

    def find_order_root_by_id(self, order_id: str) -> Tag | None:
        return self.locator.find_root(order_id)

    # Restoration
    async def restore_from_storage(self, storage: Storage | None = None) -> int:
        return await self.restorer.restore_from_storage(storage)

    async def restore_all_hidden_orders(self) -> int:
        """Show every hidden order on the page and forget all stored hide data."""
        restored = 0
        storage = self.storage
        for root in self.page.query_all(f".{DETAILS_HIDDEN_CLASS}"):
            if root.has_attr(CONTROL_TYPE_ATTR):
                continue
            try:
                order_id = self._order_id_for_root(root)
                self.reconciler.reveal(root, order_id)
                restored += 1
            except Exception:
                _LOGGER.exception("restoring hidden order card failed")
                continue
            clear = getattr(storage, "clear_all_order_data", None)
            if order_id and callable(clear):
                try:
                    await clear(order_id)
                except Exception:
                    _LOGGER.warning("could not clear stored data for order %s", order_id, exc_info=True)

        clear_everything = getattr(storage, "clear_all_stored_orders", None)
        if callable(clear_everything):
            try:
                await clear_everything()
            except Exception:
                _LOGGER.warning("could not clear stored order data", exc_info=True)
        _LOGGER.info("restored %d hidden orders", restored)
        return restored

    def _order_id_for_root(self, root: Tag) -> str | None:
        for order_id, record in self.state.records.items():
            if record.root is root:
                return order_id
        marked = query(root, f"[{ORDER_ID_ATTR}]")
        if marked is not None:
            value = marked.get(ORDER_ID_ATTR)
            if isinstance(value, str) and value:
                return value
        return extract_order_id(root)

    def cleanup(self) -> None:
        self.watcher.stop()
        for order_id in list(self.state.records):
            self.injector.remove(order_id)
        cancelled = self.reconciler.cancel_all_pending()
        for task in list(self._background):
            task.cancel()
        dialog_cleanup = getattr(self.dialog, "cleanup", None)
        if callable(dialog_cleanup):
            try:
                dialog_cleanup()
            except Exception:
                _LOGGER.warning("tagging dialog cleanup failed", exc_info=True)
        self.state.clear()
        _LOGGER.info("cleaned up (%d pending confirmations cancelled)", cancelled)
