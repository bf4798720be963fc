from __future__ import annotations

import pytest


def test_defaults_without_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    from content_scripts.order_archiver.config import ArchiverConfig

    for name in (
        "ORDER_ARCHIVER_DEBOUNCE_MS",
        "ORDER_ARCHIVER_HIDDEN_OPACITY",
        "ORDER_ARCHIVER_ROOT_SELECTOR",
        "ORDER_ARCHIVER_DEFAULT_USERNAME",
        "ORDER_ARCHIVER_STORE",
        "ORDER_ARCHIVER_STORAGE_PREFIX",
    ):
        monkeypatch.delenv(name, raising=False)
    cfg = ArchiverConfig.from_env()
    assert cfg.debounce_s == pytest.approx(0.05)
    assert cfg.order_root_selector == ".order-card.js-order-card"
    assert cfg.default_username == "Unknown User"
    assert cfg.hidden_opacity == "0.8"
    assert cfg.storage_prefix == "amazon_archiver_"
    assert not cfg.store_path.startswith("~")


def test_environment_overrides_are_clamped(monkeypatch: pytest.MonkeyPatch) -> None:
    from content_scripts.order_archiver.config import ArchiverConfig

    monkeypatch.setenv("ORDER_ARCHIVER_DEBOUNCE_MS", "999999")
    monkeypatch.setenv("ORDER_ARCHIVER_HIDDEN_OPACITY", "0.5")
    monkeypatch.setenv("ORDER_ARCHIVER_DEFAULT_USERNAME", "  lee  ")
    monkeypatch.setenv("ORDER_ARCHIVER_ROOT_SELECTOR", "   ")
    cfg = ArchiverConfig.from_env()
    assert cfg.debounce_s == pytest.approx(2.0)
    assert cfg.hidden_opacity == "0.5"
    assert cfg.default_username == "lee"
    assert cfg.order_root_selector == ".order-card.js-order-card"


def test_garbage_numbers_fall_back(monkeypatch: pytest.MonkeyPatch) -> None:
    from content_scripts.order_archiver.config import ArchiverConfig

    monkeypatch.setenv("ORDER_ARCHIVER_DEBOUNCE_MS", "soon")
    monkeypatch.setenv("ORDER_ARCHIVER_HIDDEN_OPACITY", "-3")
    cfg = ArchiverConfig.from_env()
    assert cfg.debounce_s == pytest.approx(0.05)
    assert cfg.hidden_opacity == "0"
