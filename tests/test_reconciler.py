from __future__ import annotations

import asyncio
import logging

import pytest


def _setup(*cards: str, username: str | None = "alice", dialog=None, with_dialog: bool = True, **callbacks):
    from content_scripts.order_archiver.dom import Page
    from content_scripts.order_archiver.engine import OrderArchiver
    from content_scripts.order_archiver.order_parser import DefaultOrderParser
    from content_scripts.order_archiver.storage import MemoryStorage
    from order_pages import FakeDialog, page_html

    page = Page(page_html(*cards))
    storage = MemoryStorage({"username": username} if username else None)
    if dialog is None and with_dialog:
        dialog = FakeDialog()
    archiver = OrderArchiver(page, parser=DefaultOrderParser(page), storage=storage, dialog=dialog, **callbacks)
    archiver.process_existing_orders()
    return page, archiver, storage, dialog


def _hidden(root):
    from content_scripts.order_archiver.dom import query_all

    return query_all(root, ".archivaz-hidden-details")


def test_click_opens_dialog_and_hides_only_after_confirmation() -> None:
    from order_pages import ORDER_A, your_orders_card

    async def _main() -> None:
        hidden_events: list[tuple] = []
        page, archiver, storage, dialog = _setup(
            your_orders_card(ORDER_A), on_order_hidden=lambda *a: hidden_events.append(a)
        )
        record = archiver.state.records[ORDER_A]

        await page.click(record.button)
        payload, anchor = dialog.opened[0]
        assert payload == {"orderNumber": ORDER_A, "orderDate": "March 3, 2024", "tags": [], "notes": ""}
        assert anchor is record.root
        assert not archiver.are_details_hidden(ORDER_A)
        assert _hidden(record.root) == []

        assert archiver.tags_confirmed({"orderNumber": ORDER_A, "tags": ["gift", "returned"], "notes": "mom"})
        await archiver.wait_idle()

        assert archiver.are_details_hidden(ORDER_A)
        assert "archivaz-details-hidden" in record.root["class"]
        assert record.button.get_text() == "Show details"
        assert record.button["data-archivaz-type"] == "show-details"
        assert await storage.get_order_tags(ORDER_A) == {
            "orderNumber": ORDER_A,
            "tags": ["gift", "returned"],
            "notes": "mom",
        }

        overlay = page.query(".archivaz-delivery-status-tags")
        assert "@alice" in overlay.get_text()
        assert [t.get_text() for t in overlay.select(".archivaz-delivery-status-tag")] == ["gift", "returned"]
        assert archiver.get_username(ORDER_A) == "alice"

        assert len(hidden_events) == 1
        order_id, kind, data = hidden_events[0]
        assert (order_id, kind) == (ORDER_A, "details")
        assert data["orderNumber"] == ORDER_A

    asyncio.run(_main())


def test_dialog_prefilled_with_stored_tags() -> None:
    from order_pages import ORDER_A, your_orders_card

    async def _main() -> None:
        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A))
        await storage.store_order_tags(ORDER_A, {"orderNumber": ORDER_A, "tags": ["work"], "notes": "desk"})
        assert await archiver.request_hide(ORDER_A)
        payload, _anchor = dialog.opened[0]
        assert payload["tags"] == ["work"]
        assert payload["notes"] == "desk"

    asyncio.run(_main())


def test_dialog_cancel_hides_nothing() -> None:
    from order_pages import ORDER_A, your_orders_card

    async def _main() -> None:
        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A))
        assert await archiver.request_hide(ORDER_A)
        assert archiver.confirmations.is_pending(ORDER_A)

        archiver.dialog_closed(ORDER_A)
        await archiver.wait_idle()
        assert dialog.closed == [ORDER_A]
        assert not archiver.confirmations.is_pending(ORDER_A)
        assert not archiver.are_details_hidden(ORDER_A)
        assert not archiver.tags_confirmed({"orderNumber": ORDER_A, "tags": []})

        # A second attempt works normally.
        assert await archiver.request_hide(ORDER_A)

    asyncio.run(_main())


def test_second_request_while_dialog_open_is_rejected() -> None:
    from order_pages import ORDER_A, your_orders_card

    async def _main() -> None:
        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A))
        assert await archiver.request_hide(ORDER_A)
        assert not await archiver.request_hide(ORDER_A)
        assert len(dialog.opened) == 1

    asyncio.run(_main())


def test_hide_aborts_without_collaborators() -> None:
    from order_pages import ORDER_A, FakeDialog, your_orders_card

    async def _main() -> None:
        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A), with_dialog=False)
        assert not await archiver.request_hide(ORDER_A)
        assert not archiver.confirmations.is_pending(ORDER_A)

        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A), dialog=FakeDialog(accept=False))
        assert not await archiver.request_hide(ORDER_A)
        assert not archiver.confirmations.is_pending(ORDER_A)

        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A))
        archiver.storage = None
        assert not await archiver.request_hide(ORDER_A)

        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A))
        archiver.parser = None
        assert not await archiver.request_hide(ORDER_A)
        assert dialog.opened == []

        assert not await archiver.request_hide("999-9999999-9999999")
        assert not archiver.are_details_hidden(ORDER_A)

    asyncio.run(_main())


def test_order_removed_while_dialog_open_cancels_the_hide() -> None:
    from order_pages import ORDER_A, your_orders_card

    async def _main() -> None:
        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A))
        assert await archiver.request_hide(ORDER_A)
        archiver.remove_controls(ORDER_A)
        assert not archiver.tags_confirmed({"orderNumber": ORDER_A, "tags": ["x"]})
        await archiver.wait_idle()
        assert not archiver.are_details_hidden(ORDER_A)
        assert await storage.get_order_tags(ORDER_A) is None

    asyncio.run(_main())


def test_username_falls_back_when_store_has_none() -> None:
    from order_pages import ORDER_A, your_orders_card

    async def _main() -> None:
        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A), username=None)
        assert await archiver.request_hide(ORDER_A)
        archiver.tags_confirmed({"orderNumber": ORDER_A, "tags": []})
        await archiver.wait_idle()
        assert archiver.are_details_hidden(ORDER_A)
        assert "@Unknown User" in page.query(".archivaz-delivery-status-tags").get_text()

    asyncio.run(_main())


def test_hide_show_round_trip_restores_the_page() -> None:
    from order_pages import ORDER_A, your_orders_card

    async def _main() -> None:
        shown: list[tuple] = []
        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A), on_order_shown=lambda *a: shown.append(a))
        root = archiver.state.records[ORDER_A].root
        before = str(root)

        assert await archiver.apply_hide(ORDER_A, {"tags": ["gift"]}, "bob")
        assert str(root) != before
        hidden = _hidden(root)
        assert hidden
        assert all("display: none" in el["style"] for el in hidden)
        assert all(el.has_attr("data-archivaz-original-display") for el in hidden)

        assert await archiver.show(ORDER_A)
        assert str(root) == before
        assert not archiver.are_details_hidden(ORDER_A)
        assert archiver.state.records[ORDER_A].hidden_elements == []
        assert shown and shown[0][:2] == (ORDER_A, "details")

    asyncio.run(_main())


def test_show_restores_non_default_display() -> None:
    from order_pages import ORDER_C, your_account_card

    async def _main() -> None:
        page, archiver, storage, dialog = _setup(your_account_card(ORDER_C))
        info = page.query(".product-info")
        assert await archiver.apply_hide(ORDER_C)
        assert info["data-archivaz-original-display"] == "flex"
        assert info["style"] == "display: none"
        assert await archiver.show(ORDER_C)
        assert info["style"] == "display: flex"
        assert not info.has_attr("data-archivaz-original-display")

    asyncio.run(_main())


def test_untouched_orders_stay_untouched() -> None:
    from order_pages import ORDER_A, ORDER_B, css_card, your_orders_card

    async def _main() -> None:
        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A), css_card(ORDER_B))
        other = archiver.state.records[ORDER_B].root
        before = str(other)
        assert await archiver.apply_hide(ORDER_A)
        assert str(other) == before
        assert archiver.hidden_orders() == [ORDER_A]

    asyncio.run(_main())


def test_double_hide_is_a_no_op() -> None:
    from order_pages import ORDER_A, your_orders_card

    async def _main() -> None:
        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A))
        record = archiver.state.records[ORDER_A]
        assert await archiver.apply_hide(ORDER_A, {"tags": ["a"]})
        first = list(record.hidden_elements)
        assert not await archiver.apply_hide(ORDER_A, {"tags": ["a"]})
        assert len(record.hidden_elements) == len(first)
        assert all(a is b for a, b in zip(record.hidden_elements, first))
        assert archiver.state.hidden_tokens == {f"{ORDER_A}-details"}
        assert len(page.query_all(".archivaz-delivery-status-tags")) == 1
        assert not record.root.has_attr("data-archivaz-hiding")

    asyncio.run(_main())


def test_hide_in_progress_marker_blocks_reentry() -> None:
    from order_pages import ORDER_A, your_orders_card

    async def _main() -> None:
        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A))
        root = archiver.state.records[ORDER_A].root
        root["data-archivaz-hiding"] = "true"
        assert not await archiver.apply_hide(ORDER_A)
        assert _hidden(root) == []

    asyncio.run(_main())


def test_delivered_order_items_are_kept() -> None:
    from order_pages import ORDER_B, css_card

    async def _main() -> None:
        page, archiver, storage, dialog = _setup(css_card(ORDER_B))
        items = page.query_all(".order-item")
        assert await archiver.apply_hide(ORDER_B)
        shipped, plain = items
        assert "archivaz-hidden-details" not in shipped.get("class", [])
        assert "archivaz-hidden-details" in plain["class"]

    asyncio.run(_main())


def test_essential_header_actions_are_kept() -> None:
    from order_pages import ORDER_B, css_card

    async def _main() -> None:
        page, archiver, storage, dialog = _setup(css_card(ORDER_B))
        assert await archiver.apply_hide(ORDER_B)
        track = page.query('.order-actions a[href="/track"]')
        buy = page.query('a[href="/buy"]')
        assert "archivaz-hidden-details" not in track.get("class", [])
        assert "archivaz-hidden-details" not in page.query(".order-actions").get("class", [])
        assert "archivaz-hidden-details" in buy["class"]

    asyncio.run(_main())


def test_status_column_is_never_left_hidden() -> None:
    from order_pages import ORDER_A, your_orders_card

    async def _main() -> None:
        buy_again = '<span class="a-button"><a class="a-button-text" href="/buy">Buy it again</a></span>'
        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A, extra_left=buy_again))
        column = page.query(".delivery-box .a-fixed-right-grid-col.a-col-left")
        assert await archiver.apply_hide(ORDER_A)

        assert "archivaz-hidden-details" not in column.get("class", [])
        assert "display" not in column.get("style", "")
        assert not any(el is column for el in archiver.state.records[ORDER_A].hidden_elements)
        assert page.query(".yohtmlc-shipment-status-primaryText").find_parent(class_="archivaz-hidden-details") is None
        assert "archivaz-hidden-details" in page.query('span.a-button:has(a[href="/buy"])')["class"]

        overlay = column.select_one(".archivaz-delivery-status-tags")
        assert overlay is not None
        assert overlay.previous_sibling is page.query(".yohtmlc-shipment-status-secondaryText")

    asyncio.run(_main())


def test_overlay_goes_after_last_row_without_secondary_text() -> None:
    from order_pages import ORDER_C, your_account_card

    async def _main() -> None:
        page, archiver, storage, dialog = _setup(your_account_card(ORDER_C))
        assert await archiver.apply_hide(ORDER_C, None, "carol")
        rows = page.query_all(".a-fixed-right-grid-col.a-col-left > .a-row")
        overlay = page.query(".archivaz-delivery-status-tags")
        assert rows[-1].next_sibling is overlay
        assert "@carol" in overlay.get_text()

    asyncio.run(_main())


def test_boilerplate_text_is_hidden_but_status_text_is_not() -> None:
    from order_pages import ORDER_A, your_orders_card

    async def _main() -> None:
        extra = (
            '<div class="a-row"><span class="yohtmlc-shipment-status-secondaryText">'
            "Return window closed on Apr 4</span></div>"
            '<div class="a-row"><span class="auto">Auto-delivered: Every 2 months</span></div>'
        )
        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A, extra_left=extra))
        assert await archiver.apply_hide(ORDER_A)
        assert "archivaz-hidden-details" in page.query("span.auto")["class"]
        for status in page.query_all(".yohtmlc-shipment-status-secondaryText"):
            assert "archivaz-hidden-details" not in status.get("class", [])

    asyncio.run(_main())


def test_injected_control_is_never_hidden() -> None:
    from order_pages import ORDER_B, css_card

    async def _main() -> None:
        page, archiver, storage, dialog = _setup(css_card(ORDER_B))
        record = archiver.state.records[ORDER_B]
        assert await archiver.apply_hide(ORDER_B)
        for el in (record.container, record.list_item, record.button):
            assert "archivaz-hidden-details" not in el.get("class", [])

    asyncio.run(_main())


def test_show_without_record_warns() -> None:
    from order_pages import ORDER_A, your_orders_card

    async def _main() -> None:
        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A))
        assert not await archiver.show("999-9999999-9999999")
        assert not await archiver.apply_hide("999-9999999-9999999")

    asyncio.run(_main())


def test_store_failures_do_not_break_the_hide() -> None:
    from content_scripts.order_archiver.dom import Page
    from content_scripts.order_archiver.engine import OrderArchiver
    from content_scripts.order_archiver.order_parser import DefaultOrderParser
    from order_pages import ORDER_A, FailingStorage, FakeDialog, page_html, your_orders_card

    async def _main() -> None:
        page = Page(page_html(your_orders_card(ORDER_A)))
        dialog = FakeDialog()
        archiver = OrderArchiver(page, parser=DefaultOrderParser(page), storage=FailingStorage(), dialog=dialog)
        archiver.process_existing_orders()

        assert await archiver.request_hide(ORDER_A)
        assert dialog.opened[0][0]["tags"] == []
        archiver.tags_confirmed({"orderNumber": ORDER_A, "tags": ["t"]})
        await archiver.wait_idle()
        assert archiver.are_details_hidden(ORDER_A)
        assert "@Unknown User" in page.query(".archivaz-delivery-status-tags").get_text()

    asyncio.run(_main())


def test_failed_hide_leaves_the_order_fully_visible(monkeypatch: pytest.MonkeyPatch) -> None:
    from content_scripts.order_archiver import reconciler as reconciler_module
    from order_pages import ORDER_A, your_orders_card

    def broken_sweep(root, record) -> int:
        raise RuntimeError("sweep failed")

    async def _main() -> None:
        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A))
        record = archiver.state.records[ORDER_A]
        before = str(record.root)
        monkeypatch.setattr(reconciler_module, "sweep_actions", broken_sweep)

        assert not await archiver.apply_hide(ORDER_A)
        assert str(record.root) == before
        assert record.hidden_elements == []
        assert _hidden(record.root) == []
        assert not archiver.are_details_hidden(ORDER_A)
        assert record.button.get_text() == "Hide details"
        assert page.query(".archivaz-delivery-status-tags") is None

        monkeypatch.undo()
        assert await archiver.apply_hide(ORDER_A)

    asyncio.run(_main())


def test_only_status_pieces_of_the_column_are_unhidden() -> None:
    from order_pages import ORDER_A, your_orders_card

    async def _main() -> None:
        extra = (
            '<div class="item-info" id="status-info">'
            '<span class="yohtmlc-shipment-status-primaryText">Arriving Friday</span></div>'
            '<div class="item-info" id="plain-info">Gift wrap</div>'
        )
        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A, extra_left=extra))
        column = page.query(".delivery-box .a-fixed-right-grid-col.a-col-left")
        assert await archiver.apply_hide(ORDER_A)

        status_info = page.query("#status-info")
        assert "archivaz-hidden-details" not in status_info.get("class", [])
        assert "display" not in status_info.get("style", "")
        assert "archivaz-hidden-details" in page.query("#plain-info")["class"]
        assert "archivaz-hidden-details" in column.select_one(".order-item")["class"]
        assert "archivaz-hidden-details" not in column.get("class", [])

        hidden = archiver.state.records[ORDER_A].hidden_elements
        assert not any(el is status_info for el in hidden)
        assert any(el is page.query("#plain-info") for el in hidden)

    asyncio.run(_main())


def test_refused_dialog_is_logged_with_its_details(caplog: pytest.LogCaptureFixture) -> None:
    from order_pages import ORDER_A, FakeDialog, your_orders_card

    async def _main() -> None:
        page, archiver, storage, dialog = _setup(your_orders_card(ORDER_A), dialog=FakeDialog(accept=False))
        assert not await archiver.request_hide(ORDER_A)

    caplog.set_level(logging.WARNING, logger="order_archiver")
    asyncio.run(_main())
    messages = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert any("tagging dialog refused to open" in m and "'dialog': 'FakeDialog'" in m for m in messages)
