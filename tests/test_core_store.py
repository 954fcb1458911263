"""Tests for JSON I/O primitives.

Covers: round-trip read/write, auto-creation of parent directories,
no temporary files left behind.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from cubicle.core.store import read_json, write_json_atomic


class TestJsonRoundTrip:
    def test_write_then_read_preserves_data(self, tmp_path: Path) -> None:
        payload = {"version": [0, 1, 0], "containers": [{"name": "Bücher"}]}
        out = write_json_atomic(payload, tmp_path / "state.json")
        assert read_json(out) == payload

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        nested = tmp_path / "deep" / "nested" / "state.json"
        write_json_atomic({}, nested)
        assert nested.exists()

    def test_returns_written_path(self, tmp_path: Path) -> None:
        target = tmp_path / "out.json"
        assert write_json_atomic([], target) == target

    def test_replaces_existing_file(self, tmp_path: Path) -> None:
        target = tmp_path / "out.json"
        write_json_atomic({"a": 1}, target)
        write_json_atomic({"b": 2}, target)
        assert read_json(target) == {"b": 2}
        assert [p.name for p in tmp_path.iterdir()] == ["out.json"]

    def test_unserializable_payload_leaves_no_temp_file(self, tmp_path: Path) -> None:
        target = tmp_path / "out.json"
        write_json_atomic({"a": 1}, target)
        with pytest.raises(TypeError):
            write_json_atomic({"a": object()}, target)
        assert read_json(target) == {"a": 1}
        assert [p.name for p in tmp_path.iterdir()] == ["out.json"]

    def test_read_nonexistent_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            read_json(tmp_path / "missing.json")

    def test_read_corrupt_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.json"
        path.write_text("{", encoding="utf-8")
        with pytest.raises(json.JSONDecodeError):
            read_json(path)
