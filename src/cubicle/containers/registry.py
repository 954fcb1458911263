"""Container registry: the set of containers and the rules routing into them.

All mutating operations run under one re-entrant lock, and each
replaces whole immutable :class:`~cubicle.core.types.Container` records,
so a rule edit is fully applied before the next :meth:`snapshot` is
handed to the matcher.

Public surface:

* :class:`ContainerRegistry` -- create / update / delete / migrate containers
* :func:`new_container_id` -- mint an opaque store identifier
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections.abc import Callable, Iterable, Sequence
from typing import Any

from pydantic import ValidationError

from cubicle.core.errors import CubicleError, DuplicateRule, NotFound
from cubicle.core.types import Container, IdentityDetails, SuffixRule, parse_rules
from cubicle.containers.migrate import MigrationError, MigrationItem, MigrationReport

logger = logging.getLogger(__name__)

DeleteListener = Callable[[Container], None]


def new_container_id() -> str:
    return f"cubicle-{uuid.uuid4().hex[:12]}"


def _merge(existing: Sequence[SuffixRule], additions: Iterable[SuffixRule]) -> list[SuffixRule]:
    """Add rules keyed by pattern; a re-added pattern replaces the old kind in place."""
    merged = list(existing)
    for rule in additions:
        for i, current in enumerate(merged):
            if current.pattern == rule.pattern:
                merged[i] = rule
                break
        else:
            merged.append(rule)
    return merged


class ContainerRegistry:
    """Owns every container; the single writer for rule sets.

    Args:
        containers: Initial records, e.g. restored from ``state.json``.
    """

    def __init__(self, containers: Iterable[Container] = ()) -> None:
        self._lock = threading.RLock()
        self._containers: dict[str, Container] = {}
        self._snapshot: tuple[Container, ...] = ()
        self._revision = 0
        self._delete_listeners: list[DeleteListener] = []
        for container in containers:
            self._check_conflicts(container.id, container.rules)
            self._containers[container.id] = container
        self._publish()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def revision(self) -> int:
        """Incremented by every successful mutation."""
        return self._revision

    def snapshot(self) -> tuple[Container, ...]:
        """Immutable view of all containers for one matcher call."""
        return self._snapshot

    def list(self) -> list[Container]:
        return list(self._snapshot)

    def get(self, container_id: str) -> Container:
        """Raises :class:`NotFound` for an unknown id."""
        container = self._containers.get(container_id)
        if container is None:
            raise NotFound(f"no container with id {container_id}", cookie_store_id=container_id)
        return container

    def find(self, container_id: str | None) -> Container | None:
        if container_id is None:
            return None
        return self._containers.get(container_id)

    def __contains__(self, container_id: object) -> bool:
        return container_id in self._containers

    def __len__(self) -> int:
        return len(self._containers)

    def owner_of(self, rule: SuffixRule) -> str | None:
        """Id of the container holding a rule equal to *rule*, if any."""
        for container in self._snapshot:
            if rule in container.rules:
                return container.id
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_delete_listener(self, listener: DeleteListener) -> None:
        self._delete_listeners.append(listener)

    def create(
        self,
        details: IdentityDetails,
        rules: Iterable[SuffixRule | str] = (),
        *,
        container_id: str | None = None,
        is_temporary: bool = False,
    ) -> str:
        """Register a new container and return its id.

        Raises:
            MalformedRule: If a rule string cannot be parsed.
            DuplicateRule: If a rule is already owned by another container,
                or *container_id* is already registered.
        """
        parsed = _merge((), parse_rules(rules))
        with self._lock:
            cid = container_id or new_container_id()
            if cid in self._containers:
                raise DuplicateRule(f"container {cid} already exists", cookie_store_id=cid)
            self._check_conflicts(cid, parsed)
            self._containers[cid] = Container(
                id=cid,
                name=details.name,
                color=details.color,
                icon=details.icon,
                rules=tuple(parsed),
                is_temporary=is_temporary,
            )
            self._publish()
        logger.info("Created container %s (%s) with %d rule(s)", cid, details.name, len(parsed))
        return cid

    def update_details(self, container_id: str, details: IdentityDetails) -> Container:
        with self._lock:
            current = self.get(container_id)
            updated = current.model_copy(
                update={"name": details.name, "color": details.color, "icon": details.icon},
            )
            self._containers[container_id] = updated
            self._publish()
        return updated

    def update_rules(
        self,
        container_id: str,
        add: Iterable[SuffixRule | str] = (),
        remove: Iterable[SuffixRule | str] = (),
    ) -> Container:
        """Apply *remove* then *add* to one container's rule set atomically.

        Removing a rule the container does not hold is a no-op.  On any
        error the container is left exactly as it was.

        Raises:
            NotFound: Unknown *container_id*.
            MalformedRule: A rule string cannot be parsed.
            DuplicateRule: An added rule is owned by another container.
        """
        additions = parse_rules(add)
        removals = set(parse_rules(remove))
        with self._lock:
            current = self.get(container_id)
            kept = [r for r in current.rules if r not in removals]
            merged = _merge(kept, additions)
            self._check_conflicts(container_id, additions)
            updated = current.model_copy(update={"rules": tuple(merged)})
            self._containers[container_id] = updated
            self._publish()
        logger.debug(
            "Updated rules of %s: +%d -%d (now %d)",
            container_id, len(additions), len(removals), len(updated.rules),
        )
        return updated

    def delete(self, container_id: str) -> Container:
        """Remove a container; listeners drop any state tied to it.

        Raises:
            NotFound: Unknown *container_id*.
        """
        with self._lock:
            removed = self.get(container_id)
            del self._containers[container_id]
            self._publish()
        for listener in self._delete_listeners:
            listener(removed)
        logger.info("Deleted container %s (%s)", container_id, removed.name)
        return removed

    def migrate(self, source: str, items: Iterable[MigrationItem]) -> MigrationReport:
        """Best-effort bulk import; each item succeeds or fails on its own.

        An item whose id is already registered has its rules merged into
        the existing container instead of creating a new one.
        """
        report = MigrationReport(source=source)
        for index, item in enumerate(items):
            try:
                created = self._import_item(item)
            except CubicleError as exc:
                report.rejected += 1
                report.errors.append(
                    MigrationError(index=index, name=item.name, kind=exc.kind, message=exc.message)
                )
                continue
            except ValidationError as exc:
                report.rejected += 1
                report.errors.append(
                    MigrationError(
                        index=index, name=item.name, kind="InvalidIdentity",
                        message=str(exc.errors()[0]["msg"]),
                    )
                )
                continue
            report.imported += 1
            if created is not None:
                report.created.append(created)
        logger.info(
            "Migration from %s: %d imported, %d rejected", source, report.imported, report.rejected,
        )
        return report

    def _import_item(self, item: MigrationItem) -> str | None:
        """Import one item; returns the id of a newly created container."""
        rules = parse_rules(item.rules)
        with self._lock:
            if item.container_id is not None and item.container_id in self._containers:
                self.update_rules(item.container_id, add=rules)
                return None
            details = IdentityDetails(name=item.name, color=item.color, icon=item.icon)
            return self.create(
                details, rules, container_id=item.container_id, is_temporary=item.is_temporary,
            )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_payload(self) -> list[dict[str, Any]]:
        return [c.model_dump(mode="json") for c in self._snapshot]

    @classmethod
    def from_payload(cls, payload: Iterable[dict[str, Any]]) -> ContainerRegistry:
        return cls(Container.model_validate(item) for item in payload)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_conflicts(self, container_id: str, rules: Iterable[SuffixRule]) -> None:
        for rule in rules:
            for other in self._containers.values():
                if other.id != container_id and rule in other.rules:
                    raise DuplicateRule(
                        f"rule `{rule.wire}` is already used by container {other.name}",
                        rule=rule.wire,
                        owner=other.id,
                    )

    def _publish(self) -> None:
        self._snapshot = tuple(self._containers.values())
        self._revision += 1
