"""order-archiver command line.

Usage examples:
  order-archiver apply orders.html -o orders.archived.html
  order-archiver list --json
  order-archiver reset --store ./store.json
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from .config import ArchiverConfig
from .content_script import ContentScript
from .dom import Page
from .storage import JsonFileStorage

logger = logging.getLogger("order_archiver.main")


def _storage(args: argparse.Namespace, config: ArchiverConfig) -> JsonFileStorage:
    return JsonFileStorage(args.store or config.store_path, prefix=config.storage_prefix)


async def _apply(args: argparse.Namespace, config: ArchiverConfig) -> int:
    source = Path(args.page)
    try:
        markup = source.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        print(f"cannot read {source}: {exc}", file=sys.stderr)
        return 2

    page = Page(markup)
    script = ContentScript(page, _storage(args, config), config=config, url=args.url)
    if not await script.start():
        print("page not supported: no order cards found", file=sys.stderr)
        return 1
    await script.engine.wait_idle()
    hidden = script.engine.hidden_orders()
    html = page.html()
    script.unload()

    if args.output:
        Path(args.output).write_text(html, encoding="utf-8")
    else:
        sys.stdout.write(html)
    logger.info(
        "processed %d orders, %d hidden: %s",
        script.stats["processed"],
        len(hidden),
        ", ".join(hidden) or "-",
    )
    return 0


def cmd_apply(args: argparse.Namespace) -> int:
    return asyncio.run(_apply(args, ArchiverConfig.from_env()))


async def _hidden_with_tags(storage: JsonFileStorage) -> list[dict]:
    entries = await storage.get_all_hidden_orders()
    tags_by_order = {
        str(rec.get("orderId")): (rec.get("tagData") or {}).get("tags") or []
        for rec in await storage.get_all_order_tags()
    }
    for entry in entries:
        entry["tags"] = list(tags_by_order.get(str(entry.get("orderId")), []))
    entries.sort(key=lambda e: str(e.get("orderId") or ""))
    return entries


def cmd_list(args: argparse.Namespace) -> int:
    storage = _storage(args, ArchiverConfig.from_env())
    entries = asyncio.run(_hidden_with_tags(storage))
    if args.json:
        print(json.dumps(entries, indent=2, ensure_ascii=False))
        return 0
    if not entries:
        print("(no hidden orders)")
        return 0
    for entry in entries:
        data = entry.get("orderData") or {}
        print(f"{entry.get('orderId', '?')} [{entry.get('type', 'details')}] hidden by @{entry.get('username') or '-'}")
        print(
            f"  date={data.get('orderDate', '-')} total={data.get('orderTotal', '-')}"
            f" at={entry.get('timestamp', '-')}"
        )
        if entry["tags"]:
            print(f"  tags={', '.join(entry['tags'])}")
    return 0


def cmd_reset(args: argparse.Namespace) -> int:
    storage = _storage(args, ArchiverConfig.from_env())
    removed = asyncio.run(storage.clear_all_stored_orders())
    print(f"removed {removed} stored entries")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="order-archiver", description="Hide order details on saved order-history pages."
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    apply_parser = sub.add_parser("apply", help="Inject controls and re-apply stored hidden state to a saved page")
    apply_parser.add_argument("page", help="Saved order-history HTML file")
    apply_parser.add_argument("--store", help="JSON store (default: $ORDER_ARCHIVER_STORE)")
    apply_parser.add_argument("--url", help="Original page URL, used for the supported-page check")
    apply_parser.add_argument("-o", "--output", help="Write the resulting HTML here instead of stdout")
    apply_parser.set_defaults(func=cmd_apply)

    list_parser = sub.add_parser("list", help="List stored hidden orders")
    list_parser.add_argument("--store", help="JSON store (default: $ORDER_ARCHIVER_STORE)")
    list_parser.add_argument("--json", action="store_true")
    list_parser.set_defaults(func=cmd_list)

    reset_parser = sub.add_parser("reset", help="Forget every stored hidden order and tag")
    reset_parser.add_argument("--store", help="JSON store (default: $ORDER_ARCHIVER_STORE)")
    reset_parser.set_defaults(func=cmd_reset)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )
    if not args.command:
        parser.print_help()
        return 1
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
