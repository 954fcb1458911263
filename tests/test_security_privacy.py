"""Security and privacy tests.

Covers: log sanitization of URLs and cookie values, persisted state
holding hosts and rules only.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path

import pytest

from cubicle.core.logging import SanitizingFilter, install_sanitizing_filter, redact_message
from cubicle.core.types import IdentityDetails
from cubicle.tabs.coordinator import TabCoordinator, TabEvent


class TestLogSanitization:
    def test_url_path_and_query_are_redacted(self) -> None:
        msg = "Navigated to https://shop.example.com/cart?session=abc123#pay"
        result = redact_message(msg)
        assert "abc123" not in result
        assert "/cart" not in result
        assert "https://shop.example.com/[REDACTED]" in result

    def test_bare_origin_is_kept(self) -> None:
        msg = "Fetching https://publicsuffix.org"
        assert redact_message(msg) == msg

    def test_redacts_cookie_value(self) -> None:
        result = redact_message("Set cookie='sid=42; Path=/' for store")
        assert "sid=42" not in result
        assert "cookie=[REDACTED]" in result

    def test_redacts_url_key(self) -> None:
        result = redact_message("move url=https://example.com/private requested")
        assert "private" not in result
        assert "url=[REDACTED]" in result

    def test_preserves_safe_messages(self) -> None:
        msg = "Created container cubicle-0a1b2c3d4e5f (Shop) with 2 rule(s)"
        assert redact_message(msg) == msg

    def test_filter_formats_args(self) -> None:
        record = logging.LogRecord(
            "cubicle.test", logging.INFO, "", 0, "Opened %s in tab %d",
            ("https://mail.example.com/inbox/42", 7), None,
        )
        SanitizingFilter().filter(record)
        assert record.getMessage() == "Opened https://mail.example.com/[REDACTED] in tab 7"

    def test_filter_on_real_logger(self) -> None:
        logger = logging.getLogger("cubicle.test.sanitize")
        filt = install_sanitizing_filter(logger)
        try:
            record = logger.makeRecord(
                "cubicle.test", logging.INFO, "", 0,
                "Visiting https://bank.example/account?id=99", (), None,
            )
            filt.filter(record)
            assert "id=99" not in record.getMessage()
            assert "[REDACTED]" in record.getMessage()
        finally:
            logger.removeFilter(filt)


class TestNoUrlsInLogs:
    def test_coordinator_logs_hosts_only(
        self, registry, recordings, resolver, browser, caplog: pytest.LogCaptureFixture,
    ) -> None:
        registry.create(IdentityDetails(name="Bank"), ["*bank.example"])
        coordinator = TabCoordinator(registry, recordings, resolver, browser)
        with caplog.at_level(logging.DEBUG, logger="cubicle"):
            asyncio.run(coordinator.on_tab_updated(
                TabEvent(tab_id=1, url="https://www.bank.example/statements?acct=123"),
            ))
        assert "www.bank.example" in caplog.text
        assert "acct=123" not in caplog.text
        assert "/statements" not in caplog.text


class TestPersistedState:
    def test_state_file_holds_no_urls(self, tmp_path: Path, browser) -> None:
        from cubicle.context import CubicleEngine

        engine = CubicleEngine(browser, data_dir=tmp_path)
        asyncio.run(engine.start())
        engine.registry.create(IdentityDetails(name="Bank"), ["*bank.example"])
        asyncio.run(engine.tab_updated(
            TabEvent(tab_id=1, url="https://www.bank.example/statements?acct=123"),
        ))
        engine.save_state()
        text = (tmp_path / "state.json").read_text("utf-8")
        assert "acct" not in text
        assert "statements" not in text
        assert json.loads(text)["containers"][0]["rules"] == ["*bank.example"]
