"""Shared fixtures for the cubicle test suite."""

from __future__ import annotations

import datetime as dt
from typing import Any

import pytest

from cubicle.adapters.browser import BrowserIdentity
from cubicle.containers.recording import RecordingSessionManager
from cubicle.containers.registry import ContainerRegistry
from cubicle.core.types import IdentityDetails
from cubicle.domain.psl import PublicSuffixResolver, PublicSuffixTable

SAMPLE_PSL = """\
// sample list
com
uk
co.uk
io
github.io
jp
*.kawasaki.jp
!city.kawasaki.jp
"""


class FakeBrowser:
    """Records every collaborator call instead of talking to a browser."""

    def __init__(self, identities: list[BrowserIdentity] | None = None) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.identities = list(identities or [])
        self._next = 0

    async def create_identity(
        self, details: IdentityDetails, cookie_store_id: str | None = None,
    ) -> str:
        if cookie_store_id is None:
            self._next += 1
            cookie_store_id = f"store-{self._next}"
        self.calls.append(("create_identity", {"cookie_store_id": cookie_store_id, "name": details.name}))
        return cookie_store_id

    async def update_identity(self, cookie_store_id: str, details: IdentityDetails) -> None:
        self.calls.append(("update_identity", {"cookie_store_id": cookie_store_id, "name": details.name}))

    async def remove_identity(self, cookie_store_id: str) -> None:
        self.calls.append(("remove_identity", {"cookie_store_id": cookie_store_id}))

    async def move_tab(
        self, tab_id: int, cookie_store_id: str, *, url: str | None, revert_old_tab: bool,
    ) -> None:
        self.calls.append(
            ("move_tab", {"tab_id": tab_id, "cookie_store_id": cookie_store_id, "url": url}),
        )

    async def list_identities(self) -> list[BrowserIdentity]:
        return list(self.identities)

    def names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture()
def psl_table() -> PublicSuffixTable:
    return PublicSuffixTable.from_text(SAMPLE_PSL, dt.date(2024, 1, 1))


@pytest.fixture()
def resolver(psl_table: PublicSuffixTable) -> PublicSuffixResolver:
    return PublicSuffixResolver(psl_table)


@pytest.fixture()
def registry() -> ContainerRegistry:
    return ContainerRegistry()


@pytest.fixture()
def recordings(registry: ContainerRegistry) -> RecordingSessionManager:
    return RecordingSessionManager(registry)


@pytest.fixture()
def browser() -> FakeBrowser:
    return FakeBrowser()