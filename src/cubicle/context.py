"""The engine: wires all components together and owns persistence.

Typical lifecycle::

    engine = CubicleEngine(browser, data_dir=Path("data"))
    await engine.start()              # readiness barrier
    await engine.tab_updated(TabEvent(tab_id=1, url="https://shop.example/"))
    reply = await engine.handle_message({"message_type": "psl_update", "url": None})

Events that arrive before :meth:`CubicleEngine.start` has completed are
rejected with :class:`~cubicle.core.errors.NotReady`.

Persisted files (all inside ``data_dir``)::

    state.json         containers, rules and pending recording sessions
    psl.json           the last refreshed public suffix list
    preferences.json   options page settings
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from cubicle.adapters.browser import BrowserCollaborator
from cubicle.adapters.psl_client import (
    bundled_table,
    fetch_psl,
    load_cached_table,
    save_cached_table,
)
from cubicle.containers.recording import RecordingSessionManager
from cubicle.containers.registry import ContainerRegistry
from cubicle.core.config import PreferenceStore
from cubicle.core.defaults import PSL_CACHE_FILENAME, STATE_FILENAME, STATE_VERSION
from cubicle.core.errors import NotReady, UnsupportedVersion
from cubicle.core.store import read_json, write_json_atomic
from cubicle.core.types import RecordingSession
from cubicle.domain.matcher import MatchResult, match_host
from cubicle.domain.psl import PslFetcher, PublicSuffixResolver, PublicSuffixTable
from cubicle.messages.dispatcher import Dispatcher, Reply
from cubicle.messages.views import PslStatus, psl_status
from cubicle.tabs.coordinator import TabCoordinator, TabDecision, TabEvent

logger = logging.getLogger(__name__)


def read_state(path: Path) -> dict[str, Any]:
    """Load ``state.json``; a missing file is an empty state.

    Raises:
        UnsupportedVersion: If the file was written by an incompatible
            version.
    """
    if not path.exists():
        logger.info("No state at %s, starting fresh", path)
        return {"version": list(STATE_VERSION), "containers": [], "recordings": []}
    payload = read_json(path)
    version = tuple(payload.get("version", ()))
    if version != STATE_VERSION:
        raise UnsupportedVersion(
            f"state version {'.'.join(map(str, version)) or '<none>'} is not supported",
            path=str(path),
        )
    return payload


class CubicleEngine:
    """All engine components plus the readiness barrier.

    Args:
        browser: Collaborator receiving identity and tab move requests.
        data_dir: Directory for persisted state; ``None`` keeps
            everything in memory.
        fetcher: Source of public suffix list text for refreshes.
        psl_table: Initial suffix list; defaults to the cache in
            *data_dir*, then to the bundled snapshot.
    """

    def __init__(
        self,
        browser: BrowserCollaborator,
        *,
        data_dir: Path | None = None,
        fetcher: PslFetcher = fetch_psl,
        psl_table: PublicSuffixTable | None = None,
    ) -> None:
        self.data_dir = data_dir
        self.browser = browser
        self._ready = asyncio.Event()

        state = (
            read_state(data_dir / STATE_FILENAME)
            if data_dir is not None
            else {"containers": [], "recordings": []}
        )
        self.preferences = PreferenceStore(data_dir)
        self.registry = ContainerRegistry.from_payload(state.get("containers", []))
        self.recordings = RecordingSessionManager(self.registry)
        self.recordings.restore(
            RecordingSession.model_validate(s) for s in state.get("recordings", [])
        )

        if psl_table is None and data_dir is not None:
            psl_table = load_cached_table(data_dir / PSL_CACHE_FILENAME)
        self.resolver = PublicSuffixResolver(psl_table or bundled_table(), fetcher)

        self.coordinator = TabCoordinator(
            self.registry,
            self.recordings,
            self.resolver,
            browser,
            preferences=lambda: self.preferences.policy,
        )
        self.dispatcher = Dispatcher(
            self.registry,
            self.recordings,
            self.resolver,
            browser,
            self.preferences,
            on_state_changed=self.save_state,
            on_psl_refreshed=self.save_psl,
        )

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    async def wait_ready(self) -> None:
        await self._ready.wait()

    def _require_ready(self) -> None:
        if not self._ready.is_set():
            raise NotReady("engine is still initialising")

    async def start(self) -> None:
        """Purge temporary containers left over from a previous run, then open the barrier."""
        leftovers = [c for c in self.registry.list() if c.is_temporary]
        for container in leftovers:
            self.registry.delete(container.id)
            await self.browser.remove_identity(container.id)
        if leftovers:
            logger.info("Purged %d leftover temporary container(s)", len(leftovers))
            self.save_state()
        self._ready.set()
        logger.info(
            "Engine ready: %d container(s), suffix list from %s",
            len(self.registry), self.resolver.last_updated(),
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def state_payload(self) -> dict[str, Any]:
        return {
            "version": list(STATE_VERSION),
            "containers": self.registry.to_payload(),
            "recordings": [s.model_dump(mode="json") for s in self.recordings.sessions()],
        }

    def save_state(self) -> None:
        if self.data_dir is not None:
            write_json_atomic(self.state_payload(), self.data_dir / STATE_FILENAME)

    def save_psl(self) -> None:
        if self.data_dir is not None:
            save_cached_table(self.resolver.table, self.data_dir / PSL_CACHE_FILENAME)

    # ------------------------------------------------------------------
    # Inbound events
    # ------------------------------------------------------------------

    async def handle_message(self, payload: Any) -> Reply:
        if not self.ready:
            return Reply.failure(NotReady("engine is still initialising"))
        return await self.dispatcher.handle(payload)

    async def tab_updated(self, event: TabEvent, *, created: bool = False) -> TabDecision:
        """Feed a tab created/updated event to the coordinator.

        Raises:
            NotReady: Before :meth:`start` has completed.
        """
        self._require_ready()
        revision = self.registry.revision
        if created:
            decision = await self.coordinator.on_tab_created(event)
        else:
            decision = await self.coordinator.on_tab_updated(event)
        if decision.captured or self.registry.revision != revision:
            self.save_state()
        return decision

    async def tab_removed(self, tab_id: int) -> None:
        self._require_ready()
        revision = self.registry.revision
        await self.coordinator.on_tab_removed(tab_id)
        if self.registry.revision != revision:
            self.save_state()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def match(self, host: str) -> MatchResult:
        return match_host(host, self.registry.snapshot())

    def psl_status(self) -> PslStatus:
        table = self.resolver.table
        return psl_status(table.last_updated, len(table))
