"""Browser collaborator: the side that owns tabs and cookie stores.

The engine only decides; creating identities and moving tabs is left to
the browser.  :class:`BrowserCollaborator` is the contract the engine
calls, and :class:`EventBusBrowser` implements it by publishing actions
on the :class:`~cubicle.ui.events.EventBus`, which the ``/ws/actions``
WebSocket forwards to the connected browser extension.

Actions are fire-and-forget: the engine never waits for the browser to
acknowledge them.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Protocol

from pydantic import BaseModel

from cubicle.containers.registry import new_container_id
from cubicle.core.types import (
    ColorValue,
    IconValue,
    IdentityColor,
    IdentityDetails,
    IdentityIcon,
)
from cubicle.ui.events import EventBus

logger = logging.getLogger(__name__)


class BrowserIdentity(BaseModel, frozen=True):
    """One contextual identity as the browser reports it."""

    cookie_store_id: str
    name: str
    color: ColorValue = IdentityColor.BLUE
    icon: IconValue = IdentityIcon.CIRCLE


class BrowserCollaborator(Protocol):
    async def create_identity(
        self, details: IdentityDetails, cookie_store_id: str | None = None,
    ) -> str: ...

    async def update_identity(self, cookie_store_id: str, details: IdentityDetails) -> None: ...

    async def remove_identity(self, cookie_store_id: str) -> None: ...

    async def move_tab(
        self, tab_id: int, cookie_store_id: str, *, url: str | None, revert_old_tab: bool,
    ) -> None: ...

    async def list_identities(self) -> list[BrowserIdentity]: ...


class EventBusBrowser:
    """:class:`BrowserCollaborator` backed by an :class:`EventBus`.

    Identity ids are minted here unless the caller brings one (imports
    do), and announced in the ``create_identity`` action; the browser is
    expected to use them as its cookie store ids.
    The list of identities mirrors the last snapshot pushed by the
    browser plus the changes requested since.
    """

    def __init__(self, bus: EventBus) -> None:
        self._bus = bus
        self._identities: dict[str, BrowserIdentity] = {}

    def replace_identities(self, identities: Iterable[BrowserIdentity]) -> None:
        self._identities = {i.cookie_store_id: i for i in identities}
        logger.info("Browser reported %d identities", len(self._identities))

    async def _publish(self, action: str, **payload: Any) -> None:
        await self._bus.publish({"type": action, **payload})

    async def create_identity(
        self, details: IdentityDetails, cookie_store_id: str | None = None,
    ) -> str:
        cookie_store_id = cookie_store_id or new_container_id()
        self._identities[cookie_store_id] = BrowserIdentity(
            cookie_store_id=cookie_store_id, **details.model_dump(),
        )
        await self._publish(
            "create_identity", cookie_store_id=cookie_store_id, **details.model_dump(mode="json"),
        )
        return cookie_store_id

    async def update_identity(self, cookie_store_id: str, details: IdentityDetails) -> None:
        self._identities[cookie_store_id] = BrowserIdentity(
            cookie_store_id=cookie_store_id, **details.model_dump(),
        )
        await self._publish(
            "update_identity", cookie_store_id=cookie_store_id, **details.model_dump(mode="json"),
        )

    async def remove_identity(self, cookie_store_id: str) -> None:
        self._identities.pop(cookie_store_id, None)
        await self._publish("remove_identity", cookie_store_id=cookie_store_id)

    async def move_tab(
        self, tab_id: int, cookie_store_id: str, *, url: str | None, revert_old_tab: bool,
    ) -> None:
        logger.debug("Requesting move of tab %d to %s", tab_id, cookie_store_id)
        await self._publish(
            "move_tab",
            tab_id=tab_id,
            cookie_store_id=cookie_store_id,
            url=url,
            revert_old_tab=revert_old_tab,
        )

    async def list_identities(self) -> list[BrowserIdentity]:
        return list(self._identities.values())
