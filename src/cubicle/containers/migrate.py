"""Import sources for migrating containers from outside the engine.

Two sources are understood:

* ``native`` -- the identities the browser already knows about (as
  enumerated by the browser collaborator).  They carry no rules; names
  starting with ``"Temporary Container "`` can optionally be flagged as
  temporary.
* ``export`` -- a list of identity records exported by another container
  extension, each optionally carrying wire-encoded suffix rules.

Both produce :class:`MigrationItem` records consumed by
:meth:`~cubicle.containers.registry.ContainerRegistry.migrate`.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from cubicle.core.defaults import TEMPORARY_CONTAINER_PREFIX
from cubicle.core.types import ColorValue, IconValue, IdentityColor, IdentityIcon


class MigrateType(StrEnum):
    NATIVE = "native"
    EXPORT = "export"


class MigrationItem(BaseModel, frozen=True):
    """One container to import.  Rules stay unparsed until import time."""

    container_id: str | None = None
    name: str
    color: ColorValue = IdentityColor.BLUE
    icon: IconValue = IdentityIcon.CIRCLE
    rules: list[str] = Field(default_factory=list)
    is_temporary: bool = False


class MigrationError(BaseModel, frozen=True):
    index: int
    name: str
    kind: str
    message: str


class MigrationReport(BaseModel):
    """Aggregated outcome of a best-effort migration."""

    source: str
    imported: int = 0
    rejected: int = 0
    created: list[str] = Field(default_factory=list)
    errors: list[MigrationError] = Field(default_factory=list)


def native_items(identities: Iterable[Any], *, detect_temp: bool) -> list[MigrationItem]:
    """Items for identities enumerated by the browser.

    Each identity needs ``cookie_store_id``, ``name``, ``color`` and
    ``icon`` attributes.
    """
    items: list[MigrationItem] = []
    for identity in identities:
        items.append(
            MigrationItem(
                container_id=identity.cookie_store_id,
                name=identity.name,
                color=identity.color,
                icon=identity.icon,
                is_temporary=detect_temp and identity.name.startswith(TEMPORARY_CONTAINER_PREFIX),
            )
        )
    return items


def export_items(records: Sequence[dict[str, Any]], *, detect_temp: bool) -> list[MigrationItem]:
    """Items from exported records.

    Records use ``name``/``color``/``icon`` and either ``rules`` or
    ``suffixes`` for the wire-encoded rule strings.  Malformed records
    are kept as items so the registry can reject them one by one.
    """
    items: list[MigrationItem] = []
    for record in records:
        name = str(record.get("name", "")).strip()
        items.append(
            MigrationItem(
                container_id=record.get("cookie_store_id"),
                name=name,
                color=record.get("color", IdentityColor.BLUE),
                icon=record.get("icon", IdentityIcon.CIRCLE),
                rules=[str(r) for r in record.get("rules", record.get("suffixes", []))],
                is_temporary=detect_temp and name.startswith(TEMPORARY_CONTAINER_PREFIX),
            )
        )
    return items
