"""Core data contracts: suffix rules, containers, recording sessions, tab bindings."""

from __future__ import annotations

import itertools
import threading
from enum import StrEnum
from typing import Annotated, Any, Final

from pydantic import BaseModel, Field, field_serializer, field_validator

from cubicle.core.errors import InvalidHost, MalformedRule
from cubicle.domain.host import encode_domain


class RuleKind(StrEnum):
    """Matching kind of a :class:`SuffixRule`.

    ``EXACT``
        Matches exactly the pattern host, not its subdomains.
    ``WILDCARD``
        Matches the pattern host and all of its subdomains.
    ``EXCLUSION``
        Matches like ``WILDCARD``; a match removes the owning container
        from candidacy for that host.
    """

    EXACT = "exact"
    WILDCARD = "wildcard"
    EXCLUSION = "exclusion"

    @property
    def prefix(self) -> str:
        return _KIND_PREFIX[self]


_KIND_PREFIX: Final[dict[RuleKind, str]] = {
    RuleKind.EXACT: "",
    RuleKind.WILDCARD: "*",
    RuleKind.EXCLUSION: "!",
}
_PREFIX_KIND: Final[dict[str, RuleKind]] = {
    "*": RuleKind.WILDCARD,
    "!": RuleKind.EXCLUSION,
}


class SuffixRule(BaseModel, frozen=True):
    """A single domain-suffix rule bound to a container.

    On the wire a rule is one string: ``*pattern`` (wildcard),
    ``!pattern`` (exclusion) or a bare ``pattern`` (exact).  ``raw`` keeps
    the pattern as the user typed it so :attr:`wire` round-trips
    byte-for-byte; ``pattern`` is the lowercase IDNA-encoded form used for
    every comparison.  Two rules are equal when kind and encoded pattern
    are equal.
    """

    kind: RuleKind = Field(description="Matching kind.")
    pattern: str = Field(description="Normalized (lowercase, IDNA-encoded) domain suffix.")
    raw: str = Field(description="Pattern exactly as supplied, without the kind prefix.")

    @classmethod
    def parse(cls, text: str) -> SuffixRule:
        """Parse the single-string wire form.

        Raises:
            MalformedRule: If the prefix or the domain part is unparseable.
        """
        if not isinstance(text, str) or not text:
            raise MalformedRule("empty suffix rule", rule=text)
        kind = _PREFIX_KIND.get(text[0], RuleKind.EXACT)
        raw = text[1:] if kind is not RuleKind.EXACT else text
        if not raw or raw != raw.strip() or any(c in raw for c in "*!/:"):
            raise MalformedRule(f"invalid suffix format `{text}`", rule=text)
        try:
            pattern = encode_domain(raw.lower())
        except InvalidHost as exc:
            raise MalformedRule(f"invalid suffix format `{text}`: {exc.message}", rule=text) from exc
        return cls(kind=kind, pattern=pattern, raw=raw)

    @classmethod
    def of(cls, kind: RuleKind, pattern: str) -> SuffixRule:
        """Build a rule from an already normalized *pattern*."""
        return cls(kind=kind, pattern=pattern, raw=pattern)

    @property
    def wire(self) -> str:
        """Single-string form, as exchanged with the UI collaborator."""
        return f"{self.kind.prefix}{self.raw}"

    @property
    def encoded(self) -> str:
        """Single-string form of the normalized pattern; the uniqueness key."""
        return f"{self.kind.prefix}{self.pattern}"

    def with_kind(self, kind: RuleKind) -> SuffixRule:
        return self.model_copy(update={"kind": kind})

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SuffixRule):
            return NotImplemented
        return (self.kind, self.pattern) == (other.kind, other.pattern)

    def __hash__(self) -> int:
        return hash((self.kind, self.pattern))

    def __str__(self) -> str:
        return self.wire


def parse_rules(values: Any) -> tuple[SuffixRule, ...]:
    """Coerce a sequence of wire strings and/or rules into rules."""
    if values is None:
        return ()
    return tuple(v if isinstance(v, SuffixRule) else SuffixRule.parse(v) for v in values)


class IdentityColor(StrEnum):
    BLUE = "blue"
    TURQUOISE = "turquoise"
    GREEN = "green"
    YELLOW = "yellow"
    ORANGE = "orange"
    RED = "red"
    PINK = "pink"
    PURPLE = "purple"
    TOOLBAR = "toolbar"


class IdentityIcon(StrEnum):
    FINGERPRINT = "fingerprint"
    BRIEFCASE = "briefcase"
    DOLLAR = "dollar"
    CART = "cart"
    CIRCLE = "circle"
    GIFT = "gift"
    VACATION = "vacation"
    FOOD = "food"
    FRUIT = "fruit"
    PET = "pet"
    TREE = "tree"
    CHILL = "chill"
    FENCE = "fence"


# Styles outside the known enums (newer browsers) are kept as plain strings.
ColorValue = Annotated[IdentityColor | str, Field(union_mode="left_to_right")]
IconValue = Annotated[IdentityIcon | str, Field(union_mode="left_to_right")]

_ICON_URL_TEMPLATE: Final[str] = "resource://usercontext-content/{name}.svg"

# Toolbar is excluded: it is the colour of the default store.
_ROLLING_COLORS = itertools.cycle([c for c in IdentityColor if c is not IdentityColor.TOOLBAR])
_ROLLING_LOCK = threading.Lock()


def next_rolling_color() -> IdentityColor:
    """Next colour of the process-wide cycle used for generated containers."""
    with _ROLLING_LOCK:
        return next(_ROLLING_COLORS)


def icon_url(icon: str) -> str:
    return _ICON_URL_TEMPLATE.format(name=icon)


class IdentityDetails(BaseModel, frozen=True):
    """Display styling of a container.

    ``color`` and ``icon`` accept values outside the known enums so that
    identities imported from the browser with newer styles survive a
    round trip.
    """

    name: str = Field(min_length=1, description="Display name.")
    color: ColorValue = IdentityColor.BLUE
    icon: IconValue = IdentityIcon.CIRCLE

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("name must not be empty")
        return value


class Container(BaseModel, frozen=True):
    """An isolated browsing identity and the rules that route hosts into it.

    Records are immutable; the registry swaps in a new instance on every
    edit so matcher snapshots are never mutated underneath a reader.
    """

    id: str = Field(description="Opaque cookie store identifier.")
    name: str
    color: ColorValue = IdentityColor.BLUE
    icon: IconValue = IdentityIcon.CIRCLE
    rules: tuple[SuffixRule, ...] = Field(default=(), description="Ordered, key-unique rule set.")
    is_temporary: bool = False

    @field_validator("rules", mode="before")
    @classmethod
    def _parse_rules(cls, value: Any) -> tuple[SuffixRule, ...]:
        return parse_rules(value)

    @field_serializer("rules")
    def _serialize_rules(self, rules: tuple[SuffixRule, ...]) -> list[str]:
        return [r.wire for r in rules]

    @property
    def details(self) -> IdentityDetails:
        return IdentityDetails(name=self.name, color=self.color, icon=self.icon)


class RecordingSession(BaseModel):
    """Suffixes observed while a container records, pending confirmation.

    ``entries`` is ordered by discovery and holds at most one rule per
    pattern; its kind defaults to wildcard unless the user customised it.
    """

    container_id: str
    entries: list[SuffixRule] = Field(default_factory=list)
    confirmed: bool = False

    @field_validator("entries", mode="before")
    @classmethod
    def _parse_entries(cls, value: Any) -> list[SuffixRule]:
        return list(parse_rules(value))

    @field_serializer("entries")
    def _serialize_entries(self, entries: list[SuffixRule]) -> list[str]:
        return [r.wire for r in entries]

    def patterns(self) -> list[str]:
        return [r.pattern for r in self.entries]


class TabBinding(BaseModel):
    """Ephemeral association of a live tab to its container and last host."""

    tab_id: int
    container_id: str
    host: str | None = None
    domain: str | None = Field(default=None, description="Effective domain of ``host``.")
    revision: int | None = Field(
        default=None, description="Registry revision ``host`` was last evaluated against.",
    )


class AssignStrategy(StrEnum):
    """What to do with an uncontained tab whose host no rule matches."""

    NONE = "none"
    SUFFIXED_TEMPORARY = "suffixed_temporary"
    ISOLATED_TEMPORARY = "isolated_temporary"


class EjectStrategy(StrEnum):
    """What to do with a contained tab whose new host no rule matches."""

    REMAIN_IN_PLACE = "remain_in_place"
    REASSIGNMENT = "reassignment"


class Preferences(BaseModel, frozen=True):
    """Policy flags consumed by the tab assignment coordinator."""

    assign_strategy: AssignStrategy = AssignStrategy.NONE
    eject_strategy: EjectStrategy = EjectStrategy.REMAIN_IN_PLACE
    should_revert_old_tab: bool = True
