"""Tests for cubicle.domain.host normalization."""

from __future__ import annotations

import pytest

from cubicle.core.errors import InvalidHost
from cubicle.domain.host import host_from_url, is_ip_literal, normalize_host, strip_host


class TestNormalizeHost:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Example.COM", "example.com"),
            ("example.com.", "example.com"),
            ("example.com:8080", "example.com"),
            ("  shop.example.com  ", "shop.example.com"),
            ("_dmarc.example.com", "_dmarc.example.com"),
        ],
    )
    def test_canonical_form(self, raw: str, expected: str) -> None:
        assert normalize_host(raw) == expected

    def test_internationalized_name_is_idna_encoded(self) -> None:
        assert normalize_host("bücher.de") == "xn--bcher-kva.de"

    def test_ipv4_with_port(self) -> None:
        assert normalize_host("192.168.0.1:80") == "192.168.0.1"

    def test_bracketed_ipv6_with_port(self) -> None:
        assert normalize_host("[::1]:8080") == "::1"

    def test_ipv6_is_compressed(self) -> None:
        assert normalize_host("[2001:0db8:0000:0000:0000:0000:0000:0001]") == "2001:db8::1"

    @pytest.mark.parametrize("raw", ["", ".", "a..b", "-bad.com", "bad-.com", "sp ace.com", "x" * 64 + ".com"])
    def test_invalid_hosts_rejected(self, raw: str) -> None:
        with pytest.raises(InvalidHost):
            normalize_host(raw)

    def test_overlong_domain_rejected(self) -> None:
        host = ".".join(["a" * 60] * 5)
        with pytest.raises(InvalidHost, match="too long"):
            normalize_host(host)


class TestStripHost:
    def test_keeps_unbracketed_ipv6_intact(self) -> None:
        assert strip_host("::1") == "::1"

    def test_drops_only_one_trailing_dot(self) -> None:
        assert strip_host("example.com.") == "example.com"


class TestIsIpLiteral:
    @pytest.mark.parametrize("host", ["127.0.0.1", "::1", "[::1]", "2001:db8::1"])
    def test_ip_literals(self, host: str) -> None:
        assert is_ip_literal(host)

    @pytest.mark.parametrize("host", ["example.com", "1.2.3.4.example", "localhost"])
    def test_names(self, host: str) -> None:
        assert not is_ip_literal(host)


class TestHostFromUrl:
    def test_extracts_lowercase_host(self) -> None:
        assert host_from_url("https://Shop.Example.com:443/cart?id=1#top") == "shop.example.com"

    @pytest.mark.parametrize(
        "url",
        [None, "", "about:blank", "moz-extension://abc/popup.html", "file:///tmp/x.html", "data:text/plain,hi"],
    )
    def test_uncontainable_urls(self, url: str | None) -> None:
        assert host_from_url(url) is None

    def test_websocket_scheme_is_containable(self) -> None:
        assert host_from_url("wss://chat.example.com/socket") == "chat.example.com"
