"""Action dispatcher: the single entry point for UI collaborator requests.

:meth:`Dispatcher.handle` validates a raw payload into a
:data:`~cubicle.messages.requests.Message`, forwards it to the owning
component and wraps the outcome in a :class:`Reply`.  Every
:class:`~cubicle.core.errors.CubicleError` becomes a tagged failure
reply; anything else propagates.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, assert_never

from pydantic import BaseModel

from cubicle.adapters.browser import BrowserCollaborator
from cubicle.containers.migrate import MigrateType, MigrationReport, export_items, native_items
from cubicle.containers.recording import RecordingSessionManager
from cubicle.containers.registry import ContainerRegistry
from cubicle.core.config import PreferenceStore
from cubicle.core.errors import CubicleError
from cubicle.domain.psl import PublicSuffixResolver
from cubicle.messages import views
from cubicle.messages.requests import (
    ApplyPreferences,
    CancelRecording,
    ConfirmRecording,
    ContainerActionRequest,
    ContainerDetailView,
    DeleteContainer,
    DeletePromptView,
    FetchAllContainersView,
    ImportView,
    Message,
    MigrateContainer,
    MigrateContainerRequest,
    NewContainerView,
    OptionsBodyView,
    PageView,
    PslUpdate,
    RequestPage,
    SubmitIdentityDetails,
    UpdateContainerView,
    UpdateSuffix,
    WelcomeView,
    parse_message,
)

logger = logging.getLogger(__name__)


class Reply(BaseModel):
    """Outcome of one request: ``data`` on success, ``error`` otherwise."""

    ok: bool
    data: Any = None
    error: dict[str, Any] | None = None

    @classmethod
    def success(cls, data: Any = None) -> Reply:
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, exc: CubicleError) -> Reply:
        return cls(ok=False, error=exc.to_payload())


def _noop() -> None:
    return None


class Dispatcher:
    """Maps each request kind to the component operation behind it.

    Holds no state of its own.  *on_state_changed* runs after every
    request that may have mutated containers, sessions or preferences;
    *on_psl_refreshed* after a successful suffix list refresh.
    """

    def __init__(
        self,
        registry: ContainerRegistry,
        recordings: RecordingSessionManager,
        resolver: PublicSuffixResolver,
        browser: BrowserCollaborator,
        preferences: PreferenceStore,
        *,
        on_state_changed: Callable[[], None] = _noop,
        on_psl_refreshed: Callable[[], None] = _noop,
    ) -> None:
        self._registry = registry
        self._recordings = recordings
        self._resolver = resolver
        self._browser = browser
        self._preferences = preferences
        self._on_state_changed = on_state_changed
        self._on_psl_refreshed = on_psl_refreshed

    async def handle(self, payload: Any) -> Reply:
        """Parse and dispatch a raw JSON payload."""
        try:
            message = parse_message(payload)
        except CubicleError as exc:
            logger.warning("Rejected request: %s", exc.message)
            return Reply.failure(exc)
        return await self.dispatch(message)

    async def dispatch(self, message: Message) -> Reply:
        try:
            data = await self._dispatch(message)
        except CubicleError as exc:
            logger.info("%s failed: %s (%s)", message.message_type, exc.kind, exc.message)
            return Reply.failure(exc)
        return Reply.success(data)

    async def _dispatch(self, message: Message) -> Any:
        if isinstance(message, RequestPage):
            return self.render(message.view).model_dump(mode="json")
        if isinstance(message, ContainerActionRequest):
            return await self._container_action(message)
        if isinstance(message, MigrateContainerRequest):
            report = await self._migrate(message.migrate_type, message.detect_temp, message.items)
            return report.model_dump(mode="json")
        if isinstance(message, PslUpdate):
            last_updated = await self._resolver.refresh(message.url)
            self._on_psl_refreshed()
            return last_updated.isoformat()
        if isinstance(message, ApplyPreferences):
            self._preferences.apply(message.preferences)
            return self._preferences.as_dict()
        assert_never(message)

    # ------------------------------------------------------------------
    # container_action
    # ------------------------------------------------------------------

    async def _container_action(self, message: ContainerActionRequest) -> dict[str, Any]:
        action = message.action
        migration: MigrationReport | None = None
        try:
            if isinstance(action, SubmitIdentityDetails):
                selected = await self._submit_identity_details(action)
            elif isinstance(action, UpdateSuffix):
                selected = self._update_suffix(action)
            elif isinstance(action, DeleteContainer):
                self._registry.delete(action.cookie_store_id)
                await self._browser.remove_identity(action.cookie_store_id)
                selected = None
            elif isinstance(action, ConfirmRecording):
                selected = self._recordings.confirm(action.cookie_store_id).id
            elif isinstance(action, CancelRecording):
                self._recordings.cancel(action.cookie_store_id)
                selected = action.cookie_store_id
            elif isinstance(action, MigrateContainer):
                migration = await self._migrate(action.migrate_type, action.detect_temp, action.items)
                selected = None
            else:
                assert_never(action)
        finally:
            self._on_state_changed()

        listing = views.container_listing(
            self._registry.snapshot(), self._recording_ids(), selected,
        ).model_dump(mode="json")
        if migration is not None:
            listing["migration"] = migration.model_dump(mode="json")
        return listing

    async def _submit_identity_details(self, action: SubmitIdentityDetails) -> str:
        cookie_store_id = action.cookie_store_id
        if cookie_store_id is None:
            cookie_store_id = await self._browser.create_identity(action.details)
            self._registry.create(action.details, container_id=cookie_store_id)
        else:
            self._registry.update_details(cookie_store_id, action.details)
            await self._browser.update_identity(cookie_store_id, action.details)
        if action.should_record and not self._recordings.is_recording(cookie_store_id):
            self._recordings.start(cookie_store_id)
        return cookie_store_id

    def _update_suffix(self, action: UpdateSuffix) -> str:
        """Edit a pending recording entry if the suffix belongs to one, else a rule."""
        cid = action.cookie_store_id
        old, new = action.old_suffix.strip(), action.new_suffix.strip()
        if not old and not new:
            self._registry.get(cid)
            return cid
        session = self._recordings.get(cid)
        if session is not None and (not old or old in {r.wire for r in session.entries}):
            self._recordings.customize(cid, old or new, new or None)
            return cid
        self._registry.update_rules(
            cid, add=[new] if new else [], remove=[old] if old else [],
        )
        return cid

    async def _migrate(
        self, migrate_type: MigrateType, detect_temp: bool, records: list[dict[str, Any]],
    ) -> MigrationReport:
        if migrate_type is MigrateType.NATIVE:
            identities = [
                i for i in await self._browser.list_identities()
                if i.cookie_store_id not in self._registry
            ]
            items = native_items(identities, detect_temp=detect_temp)
            return self._registry.migrate(migrate_type.value, items)
        if migrate_type is MigrateType.EXPORT:
            report = self._registry.migrate(
                migrate_type.value, export_items(records, detect_temp=detect_temp),
            )
            for cookie_store_id in report.created:
                container = self._registry.get(cookie_store_id)
                await self._browser.create_identity(container.details, cookie_store_id)
            return report
        assert_never(migrate_type)

    # ------------------------------------------------------------------
    # request_page
    # ------------------------------------------------------------------

    def _recording_ids(self) -> set[str]:
        return {s.container_id for s in self._recordings.sessions()}

    def render(self, view: PageView) -> BaseModel:
        """Structured payload of one page view."""
        if isinstance(view, NewContainerView):
            return views.style_page()
        if isinstance(view, WelcomeView):
            return views.welcome(self._registry.snapshot(), self._recording_ids())
        if isinstance(view, ImportView):
            return views.import_page()
        if isinstance(view, FetchAllContainersView):
            return views.container_listing(
                self._registry.snapshot(), self._recording_ids(), view.selected,
            )
        if isinstance(view, DeletePromptView):
            return views.delete_prompt(self._registry.get(view.cookie_store_id))
        if isinstance(view, UpdateContainerView):
            return views.style_page(self._registry.get(view.cookie_store_id))
        if isinstance(view, ContainerDetailView):
            return views.container_detail(
                self._registry.get(view.cookie_store_id),
                self._recordings.get(view.cookie_store_id),
            )
        if isinstance(view, OptionsBodyView):
            table = self._resolver.table
            return views.options_body(
                views.psl_status(table.last_updated, len(table)),
                self._preferences.as_dict(),
            )
        assert_never(view)
