"""Rule matcher: pick the container whose rules best fit a host.

A pure function over a host and a sequence of containers.  It holds no
state and takes no locks; callers pass in a registry snapshot.

Precedence, highest first:

1. Any exclusion rule of a container that applies to the host removes
   that container from candidacy.
2. An exact match beats a wildcard match.
3. Among matches of the same kind, the longer (more specific) pattern wins.
4. A remaining tie between different containers is ambiguous and yields
   no container.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from enum import StrEnum
from typing import NamedTuple

from pydantic import BaseModel

from cubicle.core.types import Container, RuleKind, SuffixRule
from cubicle.domain.host import is_ip_literal, normalize_host

logger = logging.getLogger(__name__)

_KIND_RANK = {RuleKind.EXACT: 1, RuleKind.WILDCARD: 0}


class MatchOutcome(StrEnum):
    MATCHED = "matched"
    NO_MATCH = "no_match"
    AMBIGUOUS = "ambiguous"


class MatchResult(BaseModel, frozen=True):
    """Detailed result of :func:`match_host`."""

    host: str
    outcome: MatchOutcome
    container_id: str | None = None
    rule: SuffixRule | None = None
    tied: tuple[str, ...] = ()


class _Candidate(NamedTuple):
    rank: tuple[int, int]
    container_id: str
    rule: SuffixRule


def rule_applies(rule: SuffixRule, host: str) -> bool:
    """Whether *rule* applies to an already normalized *host*.

    IP literals only ever match exact rules.
    """
    if rule.kind is RuleKind.EXACT:
        return host == rule.pattern
    if is_ip_literal(host):
        return False
    return host == rule.pattern or host.endswith("." + rule.pattern)


def _best_rule(container: Container, host: str) -> _Candidate | None:
    best: _Candidate | None = None
    for rule in container.rules:
        if not rule_applies(rule, host):
            continue
        if rule.kind is RuleKind.EXCLUSION:
            return None
        cand = _Candidate((_KIND_RANK[rule.kind], len(rule.pattern)), container.id, rule)
        if best is None or cand.rank > best.rank:
            best = cand
    return best


def match_host(host: str, containers: Iterable[Container]) -> MatchResult:
    """Evaluate every container's rules against *host*.

    Raises:
        InvalidHost: If *host* cannot be normalized.
    """
    normalized = normalize_host(host)
    candidates = [
        cand for cand in (_best_rule(c, normalized) for c in containers) if cand is not None
    ]
    if not candidates:
        return MatchResult(host=normalized, outcome=MatchOutcome.NO_MATCH)

    candidates.sort(key=lambda c: c.rank, reverse=True)
    top = candidates[0]
    tied = [c for c in candidates if c.rank == top.rank]
    if len(tied) > 1:
        logger.debug(
            "Ambiguous match for %s between %s", normalized, [c.container_id for c in tied],
        )
        return MatchResult(
            host=normalized,
            outcome=MatchOutcome.AMBIGUOUS,
            tied=tuple(c.container_id for c in tied),
        )
    return MatchResult(
        host=normalized,
        outcome=MatchOutcome.MATCHED,
        container_id=top.container_id,
        rule=top.rule,
    )


def match(host: str, containers: Iterable[Container]) -> str | None:
    """Id of the container *host* belongs to, or ``None``.

    Ambiguous and absent matches both yield ``None``: the caller keeps the
    tab where it is.
    """
    return match_host(host, containers).container_id


def covered_by_any(host: str, containers: Iterable[Container]) -> bool:
    """True if any inclusive or exclusion rule anywhere applies to *host*."""
    normalized = normalize_host(host)
    return any(rule_applies(r, normalized) for c in containers for r in c.rules)
