from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_ORDER_ROOT_SELECTOR = ".order-card.js-order-card"
DEFAULT_USERNAME = "Unknown User"
DEFAULT_STORAGE_PREFIX = "amazon_archiver_"


def expand_path(raw: str) -> str:
    return str(Path(raw).expanduser())


def _float_env(name: str, *, default: float, lo: float, hi: float) -> float:
    try:
        val = float(os.environ.get(name) or default)
    except Exception:
        val = default
    return max(lo, min(val, hi))


def _str_env(name: str, *, default: str) -> str:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


@dataclass
class ArchiverConfig:
    debounce_s: float = 0.05
    order_root_selector: str = DEFAULT_ORDER_ROOT_SELECTOR
    default_username: str = DEFAULT_USERNAME
    hidden_opacity: str = "0.8"
    store_path: str = "~/.order-archiver/store.json"
    storage_prefix: str = DEFAULT_STORAGE_PREFIX

    @classmethod
    def from_env(cls) -> ArchiverConfig:
        debounce_ms = _float_env("ORDER_ARCHIVER_DEBOUNCE_MS", default=50.0, lo=0.0, hi=2000.0)
        opacity = _float_env("ORDER_ARCHIVER_HIDDEN_OPACITY", default=0.8, lo=0.0, hi=1.0)
        return cls(
            debounce_s=debounce_ms / 1000.0,
            order_root_selector=_str_env("ORDER_ARCHIVER_ROOT_SELECTOR", default=DEFAULT_ORDER_ROOT_SELECTOR),
            default_username=_str_env("ORDER_ARCHIVER_DEFAULT_USERNAME", default=DEFAULT_USERNAME),
            hidden_opacity=f"{opacity:g}",
            store_path=expand_path(_str_env("ORDER_ARCHIVER_STORE", default="~/.order-archiver/store.json")),
            storage_prefix=_str_env("ORDER_ARCHIVER_STORAGE_PREFIX", default=DEFAULT_STORAGE_PREFIX),
        )
