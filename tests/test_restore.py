from __future__ import annotations

import asyncio


def _archiver(storage, *cards: str, **kwargs):
    from content_scripts.order_archiver.dom import Page
    from content_scripts.order_archiver.engine import OrderArchiver
    from content_scripts.order_archiver.order_parser import DefaultOrderParser
    from order_pages import page_html

    page = Page(page_html(*cards))
    return page, OrderArchiver(page, parser=DefaultOrderParser(page), storage=storage, **kwargs)


def test_stored_hidden_order_is_rehidden_on_load() -> None:
    from content_scripts.order_archiver.storage import MemoryStorage
    from order_pages import ORDER_A, ORDER_B, css_card, your_orders_card

    async def _main() -> None:
        storage = MemoryStorage({"username": "dana"})
        await storage.store_hidden_order(ORDER_A, "details", {"orderNumber": ORDER_A})
        await storage.store_order_tags(ORDER_A, {"orderNumber": ORDER_A, "tags": ["gift"], "notes": ""})
        await storage.set("username", "someone-else")

        hidden_events: list = []
        page, archiver = _archiver(
            storage,
            your_orders_card(ORDER_A),
            css_card(ORDER_B),
            on_order_hidden=lambda *a: hidden_events.append(a),
        )

        assert await archiver.restore_from_storage() == 1
        assert archiver.hidden_orders() == [ORDER_A]
        assert ORDER_A in archiver.state.records
        assert ORDER_B not in archiver.state.records

        root = archiver.state.records[ORDER_A].root
        assert root["data-archivaz-processed"] == "true"
        assert archiver.state.records[ORDER_A].button.get_text() == "Show details"
        overlay = page.query(".archivaz-delivery-status-tags")
        assert "@dana" in overlay.get_text()
        assert "gift" in overlay.get_text()
        assert archiver.get_username(ORDER_A) == "dana"
        assert hidden_events == []

        # Already hidden orders are skipped on a second pass.
        assert await archiver.restore_from_storage() == 0
        assert len(page.query_all(".archivaz-delivery-status-tags")) == 1

    asyncio.run(_main())


def test_absent_orders_and_bad_entries_are_skipped() -> None:
    from content_scripts.order_archiver.storage import MemoryStorage
    from order_pages import ORDER_A, ORDER_C, your_orders_card

    async def _main() -> None:
        storage = MemoryStorage(
            {
                f"hidden_order_{ORDER_C}_details": {"orderId": ORDER_C, "type": "details", "username": "x"},
                "hidden_order_broken_details": {"type": "details"},
                "hidden_order_junk_details": "not a dict",
            }
        )
        page, archiver = _archiver(storage, your_orders_card(ORDER_A))
        before = page.html()

        assert await archiver.restore_from_storage() == 0
        assert archiver.hidden_orders() == []
        assert page.html() == before

    asyncio.run(_main())


def test_restoration_without_stored_tags_still_hides() -> None:
    from content_scripts.order_archiver.storage import MemoryStorage
    from order_pages import ORDER_C, your_account_card

    async def _main() -> None:
        storage = MemoryStorage()
        await storage.store_hidden_order(ORDER_C, "details")
        page, archiver = _archiver(storage, your_account_card(ORDER_C))
        archiver.process_existing_orders()

        assert await archiver.restore_from_storage() == 1
        assert archiver.are_details_hidden(ORDER_C)
        overlay = page.query(".archivaz-delivery-status-tags")
        assert "@Unknown User" in overlay.get_text()
        assert overlay.select(".archivaz-delivery-status-tag") == []

    asyncio.run(_main())


def test_store_outage_restores_nothing() -> None:
    from order_pages import ORDER_A, FailingStorage, your_orders_card

    async def _main() -> None:
        page, archiver = _archiver(FailingStorage(), your_orders_card(ORDER_A))
        assert await archiver.restore_from_storage() == 0

        page, archiver = _archiver(None, your_orders_card(ORDER_A))
        assert await archiver.restore_from_storage() == 0

    asyncio.run(_main())


def test_restored_order_can_be_shown_again() -> None:
    from content_scripts.order_archiver.storage import MemoryStorage
    from order_pages import ORDER_A, your_orders_card

    async def _main() -> None:
        storage = MemoryStorage()
        await storage.store_hidden_order(ORDER_A, "details")
        page, archiver = _archiver(storage, your_orders_card(ORDER_A))
        assert await archiver.restore_from_storage() == 1

        await page.click(archiver.state.records[ORDER_A].button)
        assert not archiver.are_details_hidden(ORDER_A)
        assert page.query_all(".archivaz-hidden-details") == []
        assert page.query(".archivaz-delivery-status-tags") is None

    asyncio.run(_main())
