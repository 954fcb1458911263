"""Public suffix resolver: effective (registrable) domains from the PSL.

The list itself lives in an immutable :class:`PublicSuffixTable`.  The
:class:`PublicSuffixResolver` holds a reference to the current table and
replaces that reference in one assignment when a refresh completes, so a
reader that grabbed the table at the start of a lookup sees either the
old list or the new one, never a mix.

See `publicsuffix.org <https://publicsuffix.org/list/>`_ for the list
format: plain entries, ``*.`` wildcard entries and ``!`` exceptions.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import threading
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from cubicle.core.errors import InvalidHost, RefreshFailed
from cubicle.domain.host import encode_domain, is_ip_literal, normalize_host

logger = logging.getLogger(__name__)

PslFetcher = Callable[[str | None], Awaitable[tuple[str, dt.date]]]
"""Async callable returning ``(list_text, last_updated)`` for a source URL
(``None`` = bundled snapshot)."""


@dataclass(frozen=True)
class PublicSuffixTable:
    """One immutable snapshot of the public suffix list.

    ``wildcards`` holds the base of each ``*.base`` entry and
    ``exceptions`` the domain of each ``!domain`` entry; both are also
    kept in their list form by :meth:`entries` for persistence.
    """

    suffixes: frozenset[str] = field(default_factory=frozenset)
    wildcards: frozenset[str] = field(default_factory=frozenset)
    exceptions: frozenset[str] = field(default_factory=frozenset)
    last_updated: dt.date = dt.date.min

    @classmethod
    def from_lines(cls, lines: Iterable[str], last_updated: dt.date) -> PublicSuffixTable:
        """Parse list-format lines.

        Comments (``//`` at column 0) and blank lines are skipped; only
        the first whitespace-delimited token of an entry line counts.

        Raises:
            ValueError: If an entry is not a valid domain.
        """
        suffixes: set[str] = set()
        wildcards: set[str] = set()
        exceptions: set[str] = set()
        for lineno, line in enumerate(lines, start=1):
            line = line.strip()
            if not line or line.startswith("//"):
                continue
            entry = line.split()[0].lower()
            try:
                if entry.startswith("!"):
                    exceptions.add(encode_domain(entry[1:]))
                elif entry.startswith("*."):
                    wildcards.add(encode_domain(entry[2:]))
                else:
                    suffixes.add(encode_domain(entry))
            except InvalidHost as exc:
                raise ValueError(f"line {lineno}: invalid public suffix entry") from exc
        return cls(
            suffixes=frozenset(suffixes),
            wildcards=frozenset(wildcards),
            exceptions=frozenset(exceptions),
            last_updated=last_updated,
        )

    @classmethod
    def from_text(cls, text: str, last_updated: dt.date) -> PublicSuffixTable:
        return cls.from_lines(text.splitlines(), last_updated)

    def __len__(self) -> int:
        return len(self.suffixes) + len(self.wildcards) + len(self.exceptions)

    def entries(self) -> list[str]:
        """List-format entries, sorted for stable persistence."""
        return sorted(
            [*self.suffixes, *(f"*.{w}" for w in self.wildcards), *(f"!{e}" for e in self.exceptions)]
        )

    def to_payload(self) -> dict[str, Any]:
        return {"last_updated": self.last_updated.isoformat(), "entries": self.entries()}

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> PublicSuffixTable:
        return cls.from_lines(
            payload.get("entries", []),
            dt.date.fromisoformat(payload["last_updated"]),
        )

    def public_suffix(self, labels: list[str]) -> str:
        """Longest public suffix of a host given as labels.

        Falls back to the implicit ``*`` rule (the top-level label) when
        no entry matches.
        """
        for i in range(len(labels)):
            candidate = ".".join(labels[i:])
            if candidate in self.exceptions:
                return ".".join(labels[i + 1:])
            if candidate in self.suffixes:
                return candidate
            if i + 1 < len(labels) and ".".join(labels[i + 1:]) in self.wildcards:
                return candidate
        return labels[-1]

    def registrable_domain(self, host: str) -> str:
        """Public suffix of normalized *host* plus one label.

        A host that is itself a public suffix is returned unchanged.
        """
        labels = host.split(".")
        suffix = self.public_suffix(labels)
        suffix_len = suffix.count(".") + 1 if suffix else 0
        if len(labels) <= suffix_len:
            return host
        return ".".join(labels[-(suffix_len + 1):])


class PublicSuffixResolver:
    """Process-wide holder of the current :class:`PublicSuffixTable`.

    :meth:`refresh` is coalescing: while one refresh is in flight, further
    callers await the same result instead of fetching again.

    Args:
        table: Initial table (usually the bundled snapshot or the cache).
        fetcher: Async source of list text, see :data:`PslFetcher`.
    """

    def __init__(self, table: PublicSuffixTable, fetcher: PslFetcher | None = None) -> None:
        self._table = table
        self._fetcher = fetcher
        self._swap_lock = threading.Lock()
        self._inflight: asyncio.Future[dt.date] | None = None

    @property
    def table(self) -> PublicSuffixTable:
        """The current snapshot; hold on to it for the duration of one lookup."""
        return self._table

    def last_updated(self) -> dt.date:
        return self._table.last_updated

    def effective_domain(self, host: str) -> str:
        """Registrable domain of *host*.

        Raises:
            InvalidHost: If *host* is empty, syntactically invalid or an IP
                literal (IP literals are never suffix-matched).
        """
        normalized = normalize_host(host)
        if is_ip_literal(normalized):
            raise InvalidHost(f"IP literal {normalized} has no registrable domain", host=normalized)
        table = self._table
        return table.registrable_domain(normalized)

    def swap(self, table: PublicSuffixTable) -> None:
        """Atomically replace the current table."""
        with self._swap_lock:
            self._table = table
        logger.info("Public suffix list replaced: %d entries, updated %s", len(table), table.last_updated)

    async def refresh(self, url: str | None = None) -> dt.date:
        """Fetch a new list from *url* (``None`` = bundled snapshot) and swap it in.

        Returns:
            The ``last_updated`` date of the table now in use.

        Raises:
            RefreshFailed: If fetching or parsing fails; the previous table
                stays in place.
        """
        inflight = self._inflight
        if inflight is not None:
            logger.debug("Refresh already in flight, awaiting its result")
            return await asyncio.shield(inflight)

        inflight = asyncio.ensure_future(self._refresh(url))
        self._inflight = inflight
        inflight.add_done_callback(self._clear_inflight)
        return await asyncio.shield(inflight)

    def _clear_inflight(self, future: asyncio.Future[dt.date]) -> None:
        if self._inflight is future:
            self._inflight = None

    async def _refresh(self, url: str | None) -> dt.date:
        if self._fetcher is None:
            raise RefreshFailed("no public suffix list source configured")
        try:
            text, last_updated = await self._fetcher(url)
            table = PublicSuffixTable.from_text(text, last_updated)
        except RefreshFailed:
            raise
        except Exception as exc:
            logger.warning("Public suffix list refresh failed: %s", exc)
            raise RefreshFailed(f"failed to refresh public suffix list: {exc}") from exc
        if not len(table):
            raise RefreshFailed("fetched public suffix list is empty")
        self.swap(table)
        return table.last_updated
