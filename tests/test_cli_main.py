"""End-to-end CLI tests for cubicle commands.

Tests invoke the Typer CLI via CliRunner against a temporary data
directory and verify exit codes, printed output and persisted state.
"""

from __future__ import annotations

import json
import re
from pathlib import Path

import pytest
from typer.testing import CliRunner

from cubicle.adapters import psl_client
from cubicle.cli.main import app
from cubicle.core.defaults import BUILTIN_PSL_DATE, DEFAULT_PSL_URL

runner = CliRunner()


def _invoke(data_dir: Path, *args: str):
    return runner.invoke(app, [*args, "--data-dir", str(data_dir)])


def _create(data_dir: Path, name: str, *rules: str) -> str:
    args = ["containers", "create", name]
    for rule in rules:
        args += ["--rule", rule]
    result = _invoke(data_dir, *args)
    assert result.exit_code == 0, result.output
    found = re.search(r"^Created (\S+)$", result.output, re.MULTILINE)
    assert found is not None
    return found.group(1)


class TestContainers:
    def test_empty_list(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "containers", "list")
        assert result.exit_code == 0
        assert "No containers." in result.output

    def test_create_and_list(self, tmp_path: Path) -> None:
        cid = _create(tmp_path, "Shop", "*shop.example", "!ads.shop.example")
        result = _invoke(tmp_path, "containers", "list")
        assert result.exit_code == 0
        assert f"{cid}  Shop [blue/circle]" in result.output
        assert "    *shop.example" in result.output
        assert "    !ads.shop.example" in result.output

        state = json.loads((tmp_path / "state.json").read_text("utf-8"))
        assert state["containers"][0]["rules"] == ["*shop.example", "!ads.shop.example"]

    def test_create_duplicate_rule_fails(self, tmp_path: Path) -> None:
        _create(tmp_path, "A", "*example.com")
        result = _invoke(tmp_path, "containers", "create", "B", "--rule", "*example.com")
        assert result.exit_code == 1
        assert "DuplicateRule" in result.output

    def test_create_blank_name_fails(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "containers", "create", "   ")
        assert result.exit_code == 1

    def test_create_malformed_rule_fails(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "containers", "create", "A", "--rule", "*a..b")
        assert result.exit_code == 1
        assert "MalformedRule" in result.output

    def test_edit_rules(self, tmp_path: Path) -> None:
        cid = _create(tmp_path, "Shop", "*shop.example")
        result = _invoke(
            tmp_path, "containers", "rules", cid, "--add", "shop.example", "--add", "!ads.shop.example",
        )
        assert result.exit_code == 0
        assert "Shop: shop.example, !ads.shop.example" in result.output

        result = _invoke(
            tmp_path, "containers", "rules", cid, "--remove", "shop.example", "--remove", "!ads.shop.example",
        )
        assert "Shop: (no rules)" in result.output

    def test_edit_unknown_container(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "containers", "rules", "ghost", "--add", "*x.example")
        assert result.exit_code == 1
        assert "NotFound" in result.output

    def test_delete(self, tmp_path: Path) -> None:
        cid = _create(tmp_path, "Shop", "*shop.example")
        result = _invoke(tmp_path, "containers", "delete", cid)
        assert result.exit_code == 0
        assert "Deleted Shop" in result.output
        assert "No containers." in _invoke(tmp_path, "containers", "list").output

    def test_delete_unknown(self, tmp_path: Path) -> None:
        assert _invoke(tmp_path, "containers", "delete", "ghost").exit_code == 1


class TestMatch:
    def test_matched_host(self, tmp_path: Path) -> None:
        cid = _create(tmp_path, "Shop", "*shop.example")
        result = _invoke(tmp_path, "match", "cart.shop.example")
        assert result.exit_code == 0
        assert "Effective domain: shop.example" in result.output
        assert f"cart.shop.example: Shop [{cid}] via *shop.example" in result.output

    def test_unmatched_host(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "match", "www.example.co.uk")
        assert result.exit_code == 0
        assert "Effective domain: example.co.uk" in result.output
        assert "www.example.co.uk: no_match" in result.output

    def test_shop_deleted_no_longer_matches(self, tmp_path: Path) -> None:
        cid = _create(tmp_path, "Shop", "*shop.example")
        _invoke(tmp_path, "containers", "delete", cid)
        assert "cart.shop.example: no_match" in _invoke(tmp_path, "match", "cart.shop.example").output

    def test_ip_literal(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "match", "10.0.0.1")
        assert result.exit_code == 0
        assert "Effective domain" not in result.output

    def test_invalid_host(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "match", "bad..host")
        assert result.exit_code == 1


class TestPsl:
    def test_status_of_bundled_list(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "psl", "status")
        assert result.exit_code == 0
        assert f"Last updated: {BUILTIN_PSL_DATE.isoformat()} (stale)" in result.output

    def test_update_from_file(self, tmp_path: Path) -> None:
        source = tmp_path / "list.dat"
        source.write_text("// local list\ncom\nexample\n", encoding="utf-8")
        result = _invoke(tmp_path, "psl", "update", "--file", str(source))
        assert result.exit_code == 0, result.output
        assert "2 entries" in result.output
        assert (tmp_path / "psl.json").exists()

        status = _invoke(tmp_path, "psl", "status")
        assert "Entries:      2" in status.output
        # without a uk entry the default rule applies
        assert "Effective domain: co.uk" in _invoke(tmp_path, "match", "www.example.co.uk").output

    def test_update_from_official_list(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        requested: list[str] = []

        def fake_get(url: str) -> str:
            requested.append(url)
            return "com\nuk\nco.uk\n"

        monkeypatch.setattr(psl_client, "_http_get_text", fake_get)
        result = _invoke(tmp_path, "psl", "update", "--official")
        assert result.exit_code == 0, result.output
        assert requested == [DEFAULT_PSL_URL]
        assert "3 entries" in result.output

    def test_update_official_with_url_rejected(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "psl", "update", "--official", "--url", "https://psl.test/")
        assert result.exit_code == 2

    def test_update_missing_file(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "psl", "update", "--file", str(tmp_path / "missing.dat"))
        assert result.exit_code == 1

    def test_update_rejects_both_sources(self, tmp_path: Path) -> None:
        result = _invoke(tmp_path, "psl", "update", "--url", "https://psl.test/", "--file", "x.dat")
        assert result.exit_code == 2

    def test_update_from_empty_file_fails(self, tmp_path: Path) -> None:
        source = tmp_path / "empty.dat"
        source.write_text("// nothing\n", encoding="utf-8")
        result = _invoke(tmp_path, "psl", "update", "--file", str(source))
        assert result.exit_code == 1
        assert "Refresh failed" in result.output


class TestState:
    def test_unsupported_state_version(self, tmp_path: Path) -> None:
        (tmp_path / "state.json").write_text(json.dumps({"version": [9, 9, 9]}), encoding="utf-8")
        result = _invoke(tmp_path, "containers", "list")
        assert result.exit_code == 1
        assert "Cannot load state" in result.output


@pytest.mark.parametrize("command", [["serve"], ["psl"], ["containers"], ["match"]])
def test_help(command: list[str]) -> None:
    result = runner.invoke(app, [*command, "--help"])
    assert result.exit_code == 0
