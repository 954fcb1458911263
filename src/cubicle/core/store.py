"""JSON I/O primitives for persisting engine state."""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import Any


def write_json_atomic(payload: Any, path: Path) -> Path:
    """Write *payload* as JSON to *path* atomically.

    Writes to a temporary file in the same directory first, then
    atomically replaces the target via :func:`os.replace`.  This
    prevents readers from ever seeing a partially-written file.

    Args:
        payload: JSON-serializable object.
        path: Destination file path (e.g. ``data/state.json``).

    Returns:
        The *path* that was written, for convenient chaining.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".json.tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2, ensure_ascii=False)
            fh.write("\n")
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise
    return path


def read_json(path: Path) -> Any:
    """Read a JSON file written by :func:`write_json_atomic`.

    Args:
        path: Path to an existing ``.json`` file.

    Returns:
        The decoded object.
    """
    return json.loads(path.read_text("utf-8"))
