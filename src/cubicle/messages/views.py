"""Structured payloads answering ``request_page`` views.

The UI collaborator renders these; the engine only decides what goes in
them.  Builders are plain functions over registry / session / PSL state.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, Field

from cubicle.containers.migrate import MigrateType
from cubicle.core.defaults import PSL_STALE_AFTER_DAYS
from cubicle.core.types import (
    Container,
    IdentityColor,
    IdentityIcon,
    RecordingSession,
    SuffixRule,
    icon_url,
)


class RuleView(BaseModel, frozen=True):
    raw: str = Field(description="Wire form as typed by the user.")
    encoded: str = Field(description="Wire form of the IDNA-encoded pattern.")
    kind: str


class ContainerSummary(BaseModel, frozen=True):
    cookie_store_id: str
    name: str
    color: str
    icon: str
    icon_url: str
    is_temporary: bool
    is_recording: bool
    rule_count: int


class ContainerListing(BaseModel, frozen=True):
    containers: list[ContainerSummary]
    selected: str | None = None


class ContainerDetailPage(BaseModel, frozen=True):
    container: ContainerSummary
    rules: list[RuleView]
    is_recording: bool
    recorded: list[RuleView] = Field(default_factory=list)


class StylePage(BaseModel, frozen=True):
    """Shared by ``new_container`` and ``update_container``."""

    colors: list[str]
    icons: list[tuple[str, str]]
    update_existing: bool
    cookie_store_id: str | None = None
    details: dict[str, Any]


class DeletePromptPage(BaseModel, frozen=True):
    cookie_store_id: str
    name: str
    rule_count: int


class WelcomePage(BaseModel, frozen=True):
    container_count: int
    recording: list[str]


class ImportPage(BaseModel, frozen=True):
    migrate_types: list[str]


class PslStatus(BaseModel, frozen=True):
    last_updated: str
    psl_stale: bool
    entries: int


class OptionsBodyPage(BaseModel, frozen=True):
    psl: PslStatus
    preferences: dict[str, Any]


def rule_view(rule: SuffixRule) -> RuleView:
    return RuleView(raw=rule.wire, encoded=rule.encoded, kind=rule.kind)


def summarize(container: Container, *, is_recording: bool = False) -> ContainerSummary:
    return ContainerSummary(
        cookie_store_id=container.id,
        name=container.name,
        color=str(container.color),
        icon=str(container.icon),
        icon_url=icon_url(str(container.icon)),
        is_temporary=container.is_temporary,
        is_recording=is_recording,
        rule_count=len(container.rules),
    )


def container_listing(
    containers: Sequence[Container], recording: set[str], selected: str | None = None,
) -> ContainerListing:
    """Non-temporary containers; *selected* is dropped if it is not listed."""
    listed = [
        summarize(c, is_recording=c.id in recording) for c in containers if not c.is_temporary
    ]
    if selected is not None and not any(s.cookie_store_id == selected for s in listed):
        selected = None
    return ContainerListing(containers=listed, selected=selected)


def container_detail(container: Container, session: RecordingSession | None) -> ContainerDetailPage:
    return ContainerDetailPage(
        container=summarize(container, is_recording=session is not None),
        rules=[rule_view(r) for r in container.rules],
        is_recording=session is not None,
        recorded=[rule_view(r) for r in session.entries] if session is not None else [],
    )


def style_page(container: Container | None = None) -> StylePage:
    details = container.details if container is not None else None
    return StylePage(
        colors=[c.value for c in IdentityColor],
        icons=[(i.value, icon_url(i.value)) for i in IdentityIcon],
        update_existing=container is not None,
        cookie_store_id=container.id if container is not None else None,
        details=(
            details.model_dump(mode="json")
            if details is not None
            else {"name": "", "color": IdentityColor.BLUE.value, "icon": IdentityIcon.CIRCLE.value}
        ),
    )


def delete_prompt(container: Container) -> DeletePromptPage:
    return DeletePromptPage(
        cookie_store_id=container.id, name=container.name, rule_count=len(container.rules),
    )


def welcome(containers: Sequence[Container], recording: set[str]) -> WelcomePage:
    return WelcomePage(
        container_count=sum(1 for c in containers if not c.is_temporary),
        recording=sorted(recording),
    )


def import_page() -> ImportPage:
    return ImportPage(migrate_types=[m.value for m in MigrateType])


def psl_status(last_updated: dt.date, entries: int, *, today: dt.date | None = None) -> PslStatus:
    """``psl_stale`` is set once the list is older than a week."""
    today = today or dt.datetime.now(dt.UTC).date()
    return PslStatus(
        last_updated=last_updated.isoformat(),
        psl_stale=(today - last_updated) >= dt.timedelta(days=PSL_STALE_AFTER_DAYS),
        entries=entries,
    )


def options_body(status: PslStatus, preferences: dict[str, Any]) -> OptionsBodyPage:
    return OptionsBodyPage(psl=status, preferences=preferences)
