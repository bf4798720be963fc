#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

print(
    f"[order-archiver] store={os.environ.get('ORDER_ARCHIVER_STORE', '~/.order-archiver/store.json')} | "
    f"root={os.environ.get('ORDER_ARCHIVER_ROOT_SELECTOR', '.order-card.js-order-card')} | "
    f"debounce_ms={os.environ.get('ORDER_ARCHIVER_DEBOUNCE_MS', '50')}",
    file=sys.stderr,
)

from content_scripts.order_archiver.main import main  # noqa: E402

if __name__ == "__main__":
    raise SystemExit(main())
