"""Tab assignment coordinator: turns tab lifecycle events into decisions.

For every navigation the coordinator matches the new host against a
registry snapshot and, when the best container differs from the one the
tab is in, asks the browser collaborator to move the tab.  It also feeds
recording sessions, creates temporary containers for unmatched
navigations when the assign strategy asks for it, and removes a
temporary container once its last tab is gone.

Decisions are returned as :class:`TabDecision` records so callers (and
tests) can see what happened without observing the browser.
"""

from __future__ import annotations

import itertools
import logging
from collections.abc import Callable
from enum import StrEnum

from pydantic import BaseModel

from cubicle.adapters.browser import BrowserCollaborator
from cubicle.containers.recording import RecordingSessionManager
from cubicle.containers.registry import ContainerRegistry
from cubicle.core.defaults import DEFAULT_COOKIE_STORE_ID, TEMPORARY_CONTAINER_PREFIX
from cubicle.core.errors import DuplicateRule, InvalidHost
from cubicle.core.types import (
    AssignStrategy,
    Container,
    EjectStrategy,
    IdentityDetails,
    IdentityIcon,
    Preferences,
    RuleKind,
    SuffixRule,
    TabBinding,
    next_rolling_color,
)
from cubicle.domain.host import host_from_url, is_ip_literal, normalize_host
from cubicle.domain.matcher import MatchOutcome, covered_by_any, match_host
from cubicle.domain.psl import PublicSuffixResolver

logger = logging.getLogger(__name__)


class TabEvent(BaseModel, frozen=True):
    """A tab created/updated notification from the browser."""

    tab_id: int
    url: str | None = None
    cookie_store_id: str = DEFAULT_COOKIE_STORE_ID
    opener_tab_id: int | None = None


class DecisionKind(StrEnum):
    KEEP = "keep"
    MOVE = "move"


class DecisionReason(StrEnum):
    NOT_CONTAINABLE = "not_containable"
    INVALID_HOST = "invalid_host"
    SAME_HOST = "same_host"
    OPENER = "opener"
    MATCHED = "matched"
    ALREADY_IN_PLACE = "already_in_place"
    AMBIGUOUS = "ambiguous"
    NO_MATCH = "no_match"
    RECORDING = "recording"
    TEMPORARY = "temporary"
    EJECTED = "ejected"


class TabDecision(BaseModel, frozen=True):
    tab_id: int
    kind: DecisionKind
    reason: DecisionReason
    host: str | None = None
    domain: str | None = None
    target: str | None = None
    captured: bool = False


class TabCoordinator:
    """Reacts to tab created / updated / removed signals.

    Args:
        registry: Container registry consulted through snapshots.
        recordings: Recording sessions fed with unseen domains.
        resolver: Public suffix resolver for effective domains.
        browser: Collaborator receiving move and identity requests.
        preferences: Returns the current policy flags on every call.
    """

    def __init__(
        self,
        registry: ContainerRegistry,
        recordings: RecordingSessionManager,
        resolver: PublicSuffixResolver,
        browser: BrowserCollaborator,
        preferences: Callable[[], Preferences] = Preferences,
    ) -> None:
        self._registry = registry
        self._recordings = recordings
        self._resolver = resolver
        self._browser = browser
        self._preferences = preferences
        self._bindings: dict[int, TabBinding] = {}
        self._isolated_counter = itertools.count(1)

    def binding(self, tab_id: int) -> TabBinding | None:
        return self._bindings.get(tab_id)

    def bindings(self) -> list[TabBinding]:
        return list(self._bindings.values())

    # ------------------------------------------------------------------
    # Signals
    # ------------------------------------------------------------------

    async def on_tab_created(self, event: TabEvent) -> TabDecision:
        self._bindings[event.tab_id] = TabBinding(
            tab_id=event.tab_id, container_id=event.cookie_store_id,
        )
        return await self._evaluate(event)

    async def on_tab_updated(self, event: TabEvent) -> TabDecision:
        if event.tab_id not in self._bindings:
            self._bindings[event.tab_id] = TabBinding(
                tab_id=event.tab_id, container_id=event.cookie_store_id,
            )
        return await self._evaluate(event)

    async def on_tab_removed(self, tab_id: int) -> TabBinding | None:
        """Forget *tab_id*; drop its temporary container if no tab is left in it.

        A pending recording session is left untouched.
        """
        binding = self._bindings.pop(tab_id, None)
        if binding is None:
            return None
        container = self._registry.find(binding.container_id)
        if container is not None and container.is_temporary and not self._has_tabs(container.id):
            logger.info("Last tab of temporary container %s closed, removing it", container.id)
            self._registry.delete(container.id)
            await self._browser.remove_identity(container.id)
        return binding

    def _has_tabs(self, container_id: str) -> bool:
        return any(b.container_id == container_id for b in self._bindings.values())

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------

    def _domain_of(self, host: str) -> str:
        if is_ip_literal(host):
            return host
        return self._resolver.effective_domain(host)

    async def _evaluate(self, event: TabEvent) -> TabDecision:
        current = event.cookie_store_id
        binding = self._bindings[event.tab_id]
        same_store = binding.container_id == current
        binding.container_id = current
        revision = self._registry.revision

        raw_host = host_from_url(event.url)
        if raw_host is None:
            binding.host = binding.domain = binding.revision = None
            return TabDecision(
                tab_id=event.tab_id, kind=DecisionKind.KEEP, reason=DecisionReason.NOT_CONTAINABLE,
            )
        try:
            host = normalize_host(raw_host)
            domain = self._domain_of(host)
        except InvalidHost as exc:
            logger.debug("Tab %d navigated to an invalid host: %s", event.tab_id, exc.message)
            binding.host = binding.domain = binding.revision = None
            return TabDecision(
                tab_id=event.tab_id, kind=DecisionKind.KEEP, reason=DecisionReason.INVALID_HOST,
            )

        def keep(reason: DecisionReason, captured: bool = False) -> TabDecision:
            binding.host, binding.domain, binding.revision = host, domain, revision
            return TabDecision(
                tab_id=event.tab_id, kind=DecisionKind.KEEP, reason=reason,
                host=host, domain=domain, captured=captured,
            )

        # Skips hold only while the host and the rule set are both unchanged.
        if same_store and binding.host == host and binding.revision == revision:
            return keep(DecisionReason.SAME_HOST)
        opener = self._bindings.get(event.opener_tab_id) if event.opener_tab_id is not None else None
        if (
            opener is not None
            and opener.container_id == current
            and opener.host == host
            and opener.revision == revision
        ):
            return keep(DecisionReason.OPENER)

        snapshot = self._registry.snapshot()
        result = match_host(host, snapshot)

        captured = False
        if self._recordings.is_recording(current) and not covered_by_any(host, snapshot):
            if is_ip_literal(host):
                logger.debug("Not capturing IP literal %s", host)
            else:
                captured = self._recordings.capture(current, domain)

        if result.outcome is MatchOutcome.AMBIGUOUS:
            return keep(DecisionReason.AMBIGUOUS, captured)
        if result.outcome is MatchOutcome.MATCHED:
            if result.container_id == current:
                return keep(DecisionReason.ALREADY_IN_PLACE, captured)
            return await self._move(event, host, domain, result.container_id, DecisionReason.MATCHED)

        if self._recordings.is_recording(current):
            return keep(DecisionReason.RECORDING, captured)

        policy = self._preferences()
        managed = self._registry.find(current)
        if managed is None:
            if current != DEFAULT_COOKIE_STORE_ID or policy.assign_strategy is AssignStrategy.NONE:
                return keep(DecisionReason.NO_MATCH)
            temporary = await self._create_temporary(host, domain, policy.assign_strategy)
            return await self._move(event, host, domain, temporary.id, DecisionReason.TEMPORARY)
        if policy.eject_strategy is EjectStrategy.REASSIGNMENT:
            return await self._move(
                event, host, domain, DEFAULT_COOKIE_STORE_ID, DecisionReason.EJECTED,
            )
        return keep(DecisionReason.NO_MATCH)

    async def _move(
        self, event: TabEvent, host: str, domain: str, target: str, reason: DecisionReason,
    ) -> TabDecision:
        # The binding keeps the tab's real container: the browser reopens
        # the page in a new tab and reports it with its own created event.
        binding = self._bindings[event.tab_id]
        binding.host = binding.domain = binding.revision = None
        logger.info("Moving tab %d (%s) to %s: %s", event.tab_id, host, target, reason)
        await self._browser.move_tab(
            event.tab_id,
            target,
            url=event.url,
            revert_old_tab=self._preferences().should_revert_old_tab,
        )
        return TabDecision(
            tab_id=event.tab_id, kind=DecisionKind.MOVE, reason=reason,
            host=host, domain=domain, target=target,
        )

    async def _create_temporary(
        self, host: str, domain: str, strategy: AssignStrategy,
    ) -> Container:
        rules: list[SuffixRule] = []
        if strategy is AssignStrategy.SUFFIXED_TEMPORARY:
            name = f"{TEMPORARY_CONTAINER_PREFIX}{domain}"
            kind = RuleKind.EXACT if is_ip_literal(host) else RuleKind.WILDCARD
            rules.append(SuffixRule.of(kind, domain))
        else:
            name = f"{TEMPORARY_CONTAINER_PREFIX}{next(self._isolated_counter)}"
        details = IdentityDetails(name=name, color=next_rolling_color(), icon=IdentityIcon.CIRCLE)
        cookie_store_id = await self._browser.create_identity(details)
        try:
            self._registry.create(details, rules, container_id=cookie_store_id, is_temporary=True)
        except DuplicateRule as exc:
            logger.debug("Temporary rule for %s not added: %s", domain, exc.message)
            self._registry.create(details, (), container_id=cookie_store_id, is_temporary=True)
        return self._registry.get(cookie_store_id)
