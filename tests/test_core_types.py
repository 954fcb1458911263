"""Tests for core data contracts: suffix rules, containers, identity details."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from cubicle.core.errors import MalformedRule
from cubicle.core.types import (
    Container,
    IdentityColor,
    IdentityDetails,
    IdentityIcon,
    Preferences,
    RecordingSession,
    RuleKind,
    SuffixRule,
    icon_url,
    next_rolling_color,
)


class TestSuffixRuleParse:
    @pytest.mark.parametrize(
        "text, kind, pattern",
        [
            ("example.com", RuleKind.EXACT, "example.com"),
            ("*example.com", RuleKind.WILDCARD, "example.com"),
            ("!ads.example.com", RuleKind.EXCLUSION, "ads.example.com"),
            ("*Example.COM", RuleKind.WILDCARD, "example.com"),
            ("*bücher.de", RuleKind.WILDCARD, "xn--bcher-kva.de"),
        ],
    )
    def test_prefixes(self, text: str, kind: RuleKind, pattern: str) -> None:
        rule = SuffixRule.parse(text)
        assert rule.kind is kind
        assert rule.pattern == pattern

    @pytest.mark.parametrize(
        "text", ["", "*", "!", "**example.com", "*!example.com", "ex ample.com", "a..b", " example.com"],
    )
    def test_malformed(self, text: str) -> None:
        with pytest.raises(MalformedRule):
            SuffixRule.parse(text)

    def test_malformed_carries_rule_detail(self) -> None:
        with pytest.raises(MalformedRule) as info:
            SuffixRule.parse("*a..b")
        assert info.value.details == {"rule": "*a..b"}
        assert info.value.to_payload()["kind"] == "MalformedRule"


class TestSuffixRuleForms:
    def test_wire_round_trips_user_input(self) -> None:
        for text in ("*Bücher.de", "!Ads.Example.com", "shop.example.com"):
            assert SuffixRule.parse(text).wire == text

    def test_encoded_form_is_normalized(self) -> None:
        assert SuffixRule.parse("*Bücher.de").encoded == "*xn--bcher-kva.de"

    def test_equality_ignores_raw_spelling(self) -> None:
        assert SuffixRule.parse("*EXAMPLE.com") == SuffixRule.parse("*example.com")
        assert hash(SuffixRule.parse("*EXAMPLE.com")) == hash(SuffixRule.parse("*example.com"))

    def test_kind_is_part_of_identity(self) -> None:
        assert SuffixRule.parse("example.com") != SuffixRule.parse("*example.com")

    def test_with_kind(self) -> None:
        rule = SuffixRule.parse("*example.com").with_kind(RuleKind.EXCLUSION)
        assert rule.wire == "!example.com"

    def test_str_is_wire(self) -> None:
        assert str(SuffixRule.parse("!x.example")) == "!x.example"


class TestContainer:
    def test_rules_serialize_to_wire_strings(self) -> None:
        container = Container(id="c1", name="Shop", rules=["*example.com", "!ads.example.com"])
        dumped = container.model_dump(mode="json")
        assert dumped["rules"] == ["*example.com", "!ads.example.com"]
        assert Container.model_validate(dumped) == container

    def test_unknown_style_preserved(self) -> None:
        container = Container(id="c1", name="Shop", color="ultraviolet", icon="rocket")
        dumped = container.model_dump(mode="json")
        assert dumped["color"] == "ultraviolet"
        assert dumped["icon"] == "rocket"

    def test_known_style_becomes_enum(self) -> None:
        container = Container(id="c1", name="Shop", color="red", icon="cart")
        assert container.color is IdentityColor.RED
        assert container.icon is IdentityIcon.CART

    def test_details(self) -> None:
        container = Container(id="c1", name="Shop", color="red")
        assert container.details == IdentityDetails(name="Shop", color=IdentityColor.RED)

    def test_immutable(self) -> None:
        container = Container(id="c1", name="Shop")
        with pytest.raises(ValidationError):
            container.name = "Other"  # type: ignore[misc]

    def test_bad_rule_rejected(self) -> None:
        with pytest.raises(MalformedRule):
            Container(id="c1", name="Shop", rules=["*a..b"])


class TestIdentityDetails:
    def test_name_is_stripped(self) -> None:
        assert IdentityDetails(name="  Work ").name == "Work"

    @pytest.mark.parametrize("name", ["", "   "])
    def test_blank_name_rejected(self, name: str) -> None:
        with pytest.raises(ValidationError):
            IdentityDetails(name=name)

    def test_defaults(self) -> None:
        details = IdentityDetails(name="Work")
        assert details.color is IdentityColor.BLUE
        assert details.icon is IdentityIcon.CIRCLE


class TestRecordingSession:
    def test_entries_round_trip(self) -> None:
        session = RecordingSession(container_id="c1", entries=["*example.com", "cdn.example.net"])
        dumped = session.model_dump(mode="json")
        assert dumped["entries"] == ["*example.com", "cdn.example.net"]
        assert session.patterns() == ["example.com", "cdn.example.net"]


class TestStyles:
    def test_rolling_colors_skip_toolbar(self) -> None:
        seen = {next_rolling_color() for _ in range(2 * len(IdentityColor))}
        assert IdentityColor.TOOLBAR not in seen
        assert len(seen) == len(IdentityColor) - 1

    def test_icon_url(self) -> None:
        assert icon_url("cart") == "resource://usercontext-content/cart.svg"

    def test_preferences_defaults(self) -> None:
        prefs = Preferences()
        assert prefs.assign_strategy == "none"
        assert prefs.eject_strategy == "remain_in_place"
        assert prefs.should_revert_old_tab is True
