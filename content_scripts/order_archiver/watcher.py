"""Debounced subtree watcher that reports order roots entering and leaving the page."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from bs4 import Tag

from .config import DEFAULT_ORDER_ROOT_SELECTOR
from .dom import MutationRecord, Page, is_element, matches, query_all
from .order_ids import extract_order_id

_LOGGER = logging.getLogger("order_archiver.watcher")

DetectedCallback = Callable[[Tag], Any]
RemovedCallback = Callable[[str, Tag], Any]


class MutationWatcher:
    def __init__(
        self,
        page: Page,
        *,
        on_detected: DetectedCallback,
        on_removed: RemovedCallback,
        root_selector: str = DEFAULT_ORDER_ROOT_SELECTOR,
        debounce_s: float = 0.05,
    ) -> None:
        self.page = page
        self.on_detected = on_detected
        self.on_removed = on_removed
        self.root_selector = root_selector
        self.debounce_s = max(0.0, float(debounce_s))

        self._loop: asyncio.AbstractEventLoop | None = None
        self._handle: asyncio.TimerHandle | None = None
        self._queue: list[MutationRecord] = []
        self._running = False
        self.flush_count = 0
        self._callback = self._on_records

    @property
    def running(self) -> bool:
        return self._running

    @property
    def queued(self) -> int:
        return len(self._queue)

    def start(self) -> None:
        if self._running:
            return
        self._loop = asyncio.get_running_loop()
        self.page.observe(self._callback)
        self._running = True
        _LOGGER.debug("watching %s (debounce %.3fs)", self.root_selector, self.debounce_s)

    def stop(self) -> None:
        if not self._running and self._handle is None:
            return
        self.page.disconnect(self._callback)
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._queue.clear()
        self._running = False
        _LOGGER.debug("watcher stopped")

    def _on_records(self, records: list[MutationRecord]) -> None:
        if not self._running or self._loop is None:
            return
        self._queue.extend(records)
        if self._handle is not None:
            self._handle.cancel()
        self._handle = self._loop.call_later(self.debounce_s, self.flush)

    def _roots_in(self, node: Any) -> list[Tag]:
        if not is_element(node):
            return []
        found: list[Tag] = []
        if matches(node, self.root_selector):
            found.append(node)
        found.extend(query_all(node, self.root_selector))
        return found

    def flush(self) -> None:
        self._handle = None
        records, self._queue = self._queue, []
        if not records:
            return
        self.flush_count += 1

        added: list[Any] = []
        removed: list[Any] = []
        seen_added: set[int] = set()
        seen_removed: set[int] = set()
        for record in records:
            for node in record.added:
                if id(node) not in seen_added:
                    seen_added.add(id(node))
                    added.append(node)
            for node in record.removed:
                if id(node) not in seen_removed:
                    seen_removed.add(id(node))
                    removed.append(node)

        reported: set[int] = set()
        for node in added:
            try:
                for root in self._roots_in(node):
                    if id(root) in reported:
                        continue
                    reported.add(id(root))
                    self.on_detected(root)
            except Exception:
                _LOGGER.exception("order detection failed")

        for node in removed:
            try:
                for root in self._roots_in(node):
                    order_id = extract_order_id(root)
                    if order_id:
                        self.on_removed(order_id, root)
            except Exception:
                _LOGGER.exception("order removal handling failed")

        _LOGGER.debug("flush %d: %d added, %d removed", self.flush_count, len(added), len(removed))
