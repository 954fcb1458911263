"""Recording session manager: observed suffixes pending confirmation.

Each container is either inactive or has exactly one
:class:`~cubicle.core.types.RecordingSession`.  Operations on one
container are serialized by a lock of its own, so captures for
different containers never block each other.

Confirming merges the captured entries into the container through the
registry; an entry that conflicts with another container's rule is
dropped from the merge, since recording is advisory.  So is an entry
whose pattern the container already holds: the existing kind stays.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable

from cubicle.containers.registry import ContainerRegistry
from cubicle.core.errors import AlreadyRecording, DuplicateRule, NotRecording
from cubicle.core.types import Container, RecordingSession, RuleKind, SuffixRule
from cubicle.domain.host import normalize_host

logger = logging.getLogger(__name__)


class RecordingSessionManager:
    """Per-container ``Inactive -> Recording -> Inactive`` state machine.

    Deleting a container through *registry* discards its session.
    """

    def __init__(self, registry: ContainerRegistry) -> None:
        self._registry = registry
        self._sessions: dict[str, RecordingSession] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()
        registry.add_delete_listener(self._on_container_deleted)

    def _lock_for(self, container_id: str) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(container_id, threading.Lock())

    def _require(self, container_id: str) -> RecordingSession:
        session = self._sessions.get(container_id)
        if session is None:
            raise NotRecording(
                f"container {container_id} is not recording", cookie_store_id=container_id,
            )
        return session

    def is_recording(self, container_id: str | None) -> bool:
        return container_id is not None and container_id in self._sessions

    def get(self, container_id: str) -> RecordingSession | None:
        """Copy of the session of *container_id*, or ``None`` when inactive."""
        session = self._sessions.get(container_id)
        return session.model_copy(deep=True) if session is not None else None

    def sessions(self) -> list[RecordingSession]:
        return [s.model_copy(deep=True) for s in self._sessions.values()]

    def start(self, container_id: str) -> RecordingSession:
        """Begin recording for an existing container.

        Raises:
            NotFound: Unknown *container_id*.
            AlreadyRecording: A session already exists.
        """
        self._registry.get(container_id)
        with self._lock_for(container_id):
            if container_id in self._sessions:
                raise AlreadyRecording(
                    f"container {container_id} is already recording", cookie_store_id=container_id,
                )
            session = RecordingSession(container_id=container_id)
            self._sessions[container_id] = session
        logger.info("Recording started for %s", container_id)
        return session.model_copy(deep=True)

    def capture(self, container_id: str, suffix: str) -> bool:
        """Record *suffix* as a wildcard entry; ``False`` if already present.

        Raises:
            NotRecording: No session for *container_id*.
            InvalidHost: *suffix* is not a valid domain.
        """
        pattern = normalize_host(suffix)
        with self._lock_for(container_id):
            session = self._require(container_id)
            if pattern in session.patterns():
                return False
            session.entries.append(SuffixRule.of(RuleKind.WILDCARD, pattern))
        logger.debug("Captured %s for %s", pattern, container_id)
        return True

    def customize(
        self, container_id: str, old: SuffixRule | str, new: SuffixRule | str | None,
    ) -> RecordingSession:
        """Replace a captured entry by pattern, or drop it when *new* is empty.

        Changing only the prefix is how the user picks a non-wildcard kind
        before confirming.  An *old* entry that was never captured makes
        this an insertion.
        """
        old_rule = old if isinstance(old, SuffixRule) else SuffixRule.parse(old)
        new_rule = None
        if new:
            new_rule = new if isinstance(new, SuffixRule) else SuffixRule.parse(new)
        with self._lock_for(container_id):
            session = self._require(container_id)
            entries = [e for e in session.entries if e.pattern != old_rule.pattern]
            if new_rule is not None:
                position = next(
                    (i for i, e in enumerate(session.entries) if e.pattern == old_rule.pattern),
                    len(entries),
                )
                entries = [e for e in entries if e.pattern != new_rule.pattern]
                entries.insert(min(position, len(entries)), new_rule)
            session.entries = entries
            return session.model_copy(deep=True)

    def confirm(self, container_id: str) -> Container:
        """Merge the captured entries into the container and end the session.

        Returns:
            The container record after the merge.

        Raises:
            NotRecording: No session for *container_id*.
            NotFound: The container vanished meanwhile.
        """
        with self._lock_for(container_id):
            session = self._require(container_id)
            session.confirmed = True
            owned = {r.pattern for r in self._registry.get(container_id).rules}
            merged = 0
            for rule in session.entries:
                if rule.pattern in owned:
                    logger.debug("Kept existing rule for %s in %s", rule.pattern, container_id)
                    continue
                try:
                    self._registry.update_rules(container_id, add=[rule])
                except DuplicateRule as exc:
                    logger.debug("Dropped %s from recording of %s: %s", rule, container_id, exc.message)
                    continue
                merged += 1
            del self._sessions[container_id]
        logger.info(
            "Recording confirmed for %s: %d of %d suffix(es) merged",
            container_id, merged, len(session.entries),
        )
        return self._registry.get(container_id)

    def cancel(self, container_id: str) -> RecordingSession:
        """Discard the captured entries.

        Raises:
            NotRecording: No session for *container_id*.
        """
        with self._lock_for(container_id):
            session = self._require(container_id)
            del self._sessions[container_id]
        logger.info("Recording cancelled for %s (%d entries discarded)", container_id, len(session.entries))
        return session

    def restore(self, sessions: Iterable[RecordingSession]) -> None:
        """Reinstate pending sessions loaded from persisted state."""
        for session in sessions:
            if session.container_id not in self._registry:
                logger.warning("Skipping recording session of unknown container %s", session.container_id)
                continue
            with self._lock_for(session.container_id):
                self._sessions[session.container_id] = session.model_copy(deep=True)

    def _on_container_deleted(self, container: Container) -> None:
        with self._lock_for(container.id):
            if self._sessions.pop(container.id, None) is not None:
                logger.debug("Dropped recording session of deleted container %s", container.id)
        with self._guard:
            self._locks.pop(container.id, None)
