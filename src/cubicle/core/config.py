"""User preference persistence.

Stores the options page settings as a JSON file inside the data
directory.  Only a few keys influence the engine (see
:class:`~cubicle.core.types.Preferences`); every other key is kept
as-is so the options page can round-trip settings the engine does not
know about.

Typical location::

    data/preferences.json

Usage::

    from cubicle.core.config import PreferenceStore

    prefs = PreferenceStore(data_dir)
    prefs.policy.assign_strategy          # AssignStrategy.NONE
    prefs.apply({"assign_strategy": "suffixed_temporary"})   # persists
    prefs.as_dict()
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from cubicle.core.defaults import PREFERENCES_FILENAME
from cubicle.core.errors import InvalidPreference
from cubicle.core.store import write_json_atomic
from cubicle.core.types import Preferences

logger = logging.getLogger(__name__)

_RECOGNIZED_KEYS = frozenset(Preferences.model_fields)
_TRUE = frozenset({"true", "1", "yes", "on"})
_FALSE = frozenset({"false", "0", "no", "off"})


def _coerce(key: str, value: Any) -> Any:
    """Options page values arrive as strings; turn boolean ones into bools."""
    if key != "should_revert_old_tab" or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise InvalidPreference(f"{key} must be true or false, got {value!r}", key=key)


class PreferenceStore:
    """Read/write access to ``preferences.json`` in a data directory.

    With ``data_dir=None`` preferences live in memory only.  All
    mutations are persisted immediately; a corrupt file falls back to
    defaults.
    """

    def __init__(self, data_dir: Path | str | None = None) -> None:
        self._path = Path(data_dir) / PREFERENCES_FILENAME if data_dir is not None else None
        self._data: dict[str, Any] = self._load()
        try:
            self._policy = self._validate(self._data)
        except InvalidPreference as exc:
            logger.warning("Invalid stored preferences (%s), using defaults", exc.message)
            self._data = {k: v for k, v in self._data.items() if k not in _RECOGNIZED_KEYS}
            self._policy = Preferences()

    def _load(self) -> dict[str, Any]:
        if self._path is not None and self._path.exists():
            try:
                data = json.loads(self._path.read_text("utf-8"))
            except (json.JSONDecodeError, OSError):
                logger.warning("Corrupt preferences at %s, using defaults", self._path)
            else:
                if isinstance(data, dict):
                    return data
                logger.warning("Preferences at %s are not an object, using defaults", self._path)
        return {}

    def _persist(self) -> None:
        if self._path is not None:
            write_json_atomic(self._data, self._path)

    @staticmethod
    def _validate(data: dict[str, Any]) -> Preferences:
        known = {k: _coerce(k, v) for k, v in data.items() if k in _RECOGNIZED_KEYS}
        try:
            return Preferences.model_validate(known)
        except ValidationError as exc:
            err = exc.errors()[0]
            key = str(err["loc"][0]) if err["loc"] else ""
            raise InvalidPreference(f"invalid value for {key}: {err['msg']}", key=key) from exc

    @property
    def policy(self) -> Preferences:
        """Engine-relevant preferences, always valid."""
        return self._policy

    def as_dict(self) -> dict[str, Any]:
        return {**self._data, **self._policy.model_dump(mode="json")}

    def apply(self, patch: dict[str, Any]) -> Preferences:
        """Merge *patch* into the stored preferences and persist.

        Raises:
            InvalidPreference: If a recognized key has an invalid value;
                nothing is changed in that case.
        """
        merged = {**self._data, **patch}
        policy = self._validate(merged)
        self._data = merged
        self._policy = policy
        self._persist()
        logger.info("Preferences applied: %s", sorted(patch))
        return policy
