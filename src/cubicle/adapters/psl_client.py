"""Public suffix list sources: bundled snapshot, local file, HTTP fetch, cache.

:func:`fetch_psl` conforms to :data:`~cubicle.domain.psl.PslFetcher` and
is what the engine hands to the resolver.  Network and file reads run in
a worker thread so a refresh never blocks the event loop.
"""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
import urllib.request
from pathlib import Path

from cubicle.core.defaults import (
    BUILTIN_PSL_DATE,
    BUNDLED_PSL_RESOURCE,
    DEFAULT_FETCH_TIMEOUT_SECONDS,
)
from cubicle.core.store import read_json, write_json_atomic
from cubicle.domain.psl import PublicSuffixTable

logger = logging.getLogger(__name__)

_DATA_DIR = Path(__file__).resolve().parent.parent / "data"
_HTTP_SCHEMES = ("http://", "https://")


def bundled_path() -> Path:
    return _DATA_DIR / BUNDLED_PSL_RESOURCE


def bundled_table() -> PublicSuffixTable:
    """The snapshot shipped with the package, dated :data:`BUILTIN_PSL_DATE`."""
    text = bundled_path().read_text(encoding="utf-8")
    return PublicSuffixTable.from_text(text, BUILTIN_PSL_DATE)


def _http_get_text(url: str) -> str:
    """Issue a GET request and return the decoded body."""
    req = urllib.request.Request(url, headers={"Accept": "text/plain"})
    with urllib.request.urlopen(req, timeout=DEFAULT_FETCH_TIMEOUT_SECONDS) as resp:
        return resp.read().decode("utf-8")


def _read_source(source: str | None) -> tuple[str, dt.date]:
    if source is None:
        return bundled_path().read_text(encoding="utf-8"), BUILTIN_PSL_DATE
    if source.lower().startswith(_HTTP_SCHEMES):
        logger.info("Fetching public suffix list from %s", source)
        return _http_get_text(source), dt.datetime.now(dt.UTC).date()
    path = Path(source.removeprefix("file://")).expanduser()
    logger.info("Reading public suffix list from %s", path)
    modified = dt.datetime.fromtimestamp(path.stat().st_mtime, dt.UTC).date()
    return path.read_text(encoding="utf-8"), modified


async def fetch_psl(source: str | None) -> tuple[str, dt.date]:
    """Fetch list text from *source*.

    Args:
        source: ``http(s)://`` URL, local file path (optionally
            ``file://``-prefixed), or ``None`` for the bundled snapshot.

    Returns:
        ``(text, last_updated)``; a download is dated today, a file by its
        modification time.

    Raises:
        OSError: If the file or URL cannot be read (``urllib.error.URLError``
            is an ``OSError``).
    """
    return await asyncio.to_thread(_read_source, source)


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


def load_cached_table(path: Path) -> PublicSuffixTable | None:
    """Read ``psl.json``; ``None`` when missing or unreadable."""
    if not path.exists():
        return None
    try:
        return PublicSuffixTable.from_payload(read_json(path))
    except (OSError, ValueError, KeyError) as exc:
        logger.warning("Ignoring unreadable public suffix cache %s: %s", path, exc)
        return None


def save_cached_table(table: PublicSuffixTable, path: Path) -> Path:
    return write_json_atomic(table.to_payload(), path)
