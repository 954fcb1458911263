"""Centralised default constants for cubicle.

Every project-wide magic number / string lives here.
Import these instead of hard-coding values in function signatures or CLI options.
"""

from __future__ import annotations

import datetime as dt
from typing import Final

# ── Paths ──
DEFAULT_DATA_DIR: Final[str] = "data"
STATE_FILENAME: Final[str] = "state.json"
PSL_CACHE_FILENAME: Final[str] = "psl.json"
PREFERENCES_FILENAME: Final[str] = "preferences.json"
BUNDLED_PSL_RESOURCE: Final[str] = "public_suffix_list.dat"

# ── State versioning ──
STATE_VERSION: Final[tuple[int, int, int]] = (0, 1, 0)

# ── Public suffix list ──
DEFAULT_PSL_URL: Final[str] = "https://publicsuffix.org/list/public_suffix_list.dat"
BUILTIN_PSL_DATE: Final[dt.date] = dt.date(2023, 5, 8)
PSL_STALE_AFTER_DAYS: Final[int] = 7
DEFAULT_FETCH_TIMEOUT_SECONDS: Final[int] = 30

# ── Browser ──
DEFAULT_COOKIE_STORE_ID: Final[str] = "firefox-default"
TEMPORARY_CONTAINER_PREFIX: Final[str] = "Temporary Container "

# ── Server ──
DEFAULT_SERVER_HOST: Final[str] = "127.0.0.1"
DEFAULT_SERVER_PORT: Final[int] = 8765
EVENT_QUEUE_SIZE: Final[int] = 256
