"""Tests for the entry-tree CLI."""

import json
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from entry_tree.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def logging_mock() -> Iterator[MagicMock]:
    """Keep CLI runs from re-routing loguru onto the runner's streams."""
    with patch("entry_tree.cli.configure_logging") as mock:
        yield mock


@pytest.fixture
def data(tmp_path: Path) -> Path:
    """An initialised data dir with users alice and bob and one root entry."""
    data = tmp_path / "data"
    for args in (["init"], ["user-add", "alice"], ["user-add", "bob"]):
        result = runner.invoke(app, [*args, "--data-dir", str(data)])
        assert result.exit_code == 0, result.output
    result = runner.invoke(
        app, ["create", "Handbook", "--as", "alice", "-c", "Welcome", "--data-dir", str(data)]
    )
    assert result.exit_code == 0, result.output
    assert "Created entry 1" in result.output
    return data


def test_init_creates_database(tmp_path: Path) -> None:
    data = tmp_path / "data"
    result = runner.invoke(app, ["init", "--data-dir", str(data)])
    assert result.exit_code == 0, result.output
    assert (data / "entries.db").exists()


def test_commands_require_init(tmp_path: Path) -> None:
    result = runner.invoke(app, ["users", "--data-dir", str(tmp_path / "missing")])
    assert result.exit_code == 1


def test_verbose_flag_configures_debug_logging(tmp_path: Path, logging_mock: MagicMock) -> None:
    runner.invoke(app, ["--verbose", "init", "--data-dir", str(tmp_path)])
    logging_mock.assert_called_once_with(verbose=True)


def test_users_lists_registered_users(data: Path) -> None:
    result = runner.invoke(app, ["users", "--data-dir", str(data)])
    assert result.exit_code == 0, result.output
    assert "alice" in result.output
    assert "bob" in result.output


def test_duplicate_user_fails(data: Path) -> None:
    result = runner.invoke(app, ["user-add", "alice", "--data-dir", str(data)])
    assert result.exit_code == 1
    assert "already taken" in result.output


def test_show_markdown_and_json(data: Path) -> None:
    result = runner.invoke(app, ["show", "1", "--as", "alice", "--data-dir", str(data)])
    assert result.exit_code == 0, result.output
    assert "# Handbook" in result.output
    assert "Welcome" in result.output

    result = runner.invoke(app, ["show", "1", "--as", "alice", "--json", "--data-dir", str(data)])
    assert result.exit_code == 0, result.output
    parsed = json.loads(result.stdout)
    assert parsed["entry"]["title"] == "Handbook"
    assert parsed["entry"]["can_edit"] is True


def test_show_missing_entry_fails(data: Path) -> None:
    result = runner.invoke(app, ["show", "99", "--as", "alice", "--data-dir", str(data)])
    assert result.exit_code == 1
    assert "not found" in result.output


def test_show_hides_content_from_unauthorised_user(data: Path) -> None:
    result = runner.invoke(app, ["show", "1", "--as", "bob", "--data-dir", str(data)])
    assert result.exit_code == 0, result.output
    assert "Welcome" not in result.output
    assert "do not have access" in result.output


def test_edit_requires_editor(data: Path) -> None:
    result = runner.invoke(
        app, ["edit", "1", "--as", "bob", "--content", "defaced", "--data-dir", str(data)]
    )
    assert result.exit_code == 1
    assert "lacks edit permission" in result.output

    result = runner.invoke(
        app, ["edit", "1", "--as", "alice", "--content", "Welcome aboard", "--data-dir", str(data)]
    )
    assert result.exit_code == 0, result.output
    shown = runner.invoke(app, ["show", "1", "--as", "alice", "--data-dir", str(data)])
    assert "Welcome aboard" in shown.output
    assert "# Handbook" in shown.output


def test_grant_then_comment_and_uncomment(data: Path) -> None:
    result = runner.invoke(
        app, ["grant", "1", "bob", "commentor", "--as", "alice", "--data-dir", str(data)]
    )
    assert result.exit_code == 0, result.output

    result = runner.invoke(
        app, ["comment", "1", "nice intro", "--as", "bob", "--json", "--data-dir", str(data)]
    )
    assert result.exit_code == 0, result.output
    comment_id = json.loads(result.stdout)["comment_id"]

    result = runner.invoke(
        app, ["uncomment", "1", str(comment_id), "--as", "bob", "--data-dir", str(data)]
    )
    assert result.exit_code == 1

    result = runner.invoke(
        app, ["uncomment", "1", str(comment_id), "--as", "alice", "--data-dir", str(data)]
    )
    assert result.exit_code == 0, result.output


def test_grant_rejects_unknown_level(data: Path) -> None:
    result = runner.invoke(
        app, ["grant", "1", "bob", "owner", "--as", "alice", "--data-dir", str(data)]
    )
    assert result.exit_code == 1
    assert "Invalid permission" in result.output


def test_revoke_denies_access(data: Path) -> None:
    runner.invoke(app, ["grant", "1", "bob", "reader", "--as", "alice", "--data-dir", str(data)])
    result = runner.invoke(app, ["revoke", "1", "bob", "--as", "alice", "--data-dir", str(data)])
    assert result.exit_code == 0, result.output

    shown = runner.invoke(app, ["show", "1", "--as", "bob", "--json", "--data-dir", str(data)])
    assert json.loads(shown.stdout)["entry"]["can_view"] is False


def test_move_detach_and_delete(data: Path) -> None:
    for title in ("Chapter", "Appendix"):
        result = runner.invoke(
            app, ["create", title, "--as", "alice", "--parent", "1", "--data-dir", str(data)]
        )
        assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["move", "3", "--as", "alice", "-p", "2", "--data-dir", str(data)])
    assert result.exit_code == 0, result.output
    shown = runner.invoke(app, ["show", "3", "--as", "alice", "--json", "--data-dir", str(data)])
    assert json.loads(shown.stdout)["parent"]["id"] == 2

    result = runner.invoke(app, ["detach", "2", "3", "--as", "alice", "--data-dir", str(data)])
    assert result.exit_code == 0, result.output

    result = runner.invoke(app, ["delete", "1", "--as", "alice", "--data-dir", str(data)])
    assert result.exit_code == 0, result.output

    roots = runner.invoke(app, ["roots", "--as", "alice", "--json", "--data-dir", str(data)])
    titles = {r["title"] for r in json.loads(roots.stdout)["roots"]}
    assert titles == {"Chapter", "Appendix"}


def test_move_into_own_subtree_fails(data: Path) -> None:
    runner.invoke(app, ["create", "Chapter", "--as", "alice", "-p", "1", "--data-dir", str(data)])
    result = runner.invoke(app, ["move", "1", "--as", "alice", "-p", "2", "--data-dir", str(data)])
    assert result.exit_code == 1
    assert "circular" in result.output


def test_seed_is_idempotent(data: Path) -> None:
    first = runner.invoke(app, ["seed", "--as", "alice", "--data-dir", str(data)])
    second = runner.invoke(app, ["seed", "--as", "alice", "--data-dir", str(data)])
    assert first.exit_code == 0, first.output
    assert first.output == second.output

    roots = runner.invoke(app, ["roots", "--as", "alice", "--data-dir", str(data)])
    assert "Sample Project" in roots.output


def test_unknown_actor_fails(data: Path) -> None:
    result = runner.invoke(app, ["show", "1", "--as", "mallory", "--data-dir", str(data)])
    assert result.exit_code == 1
    assert "User not found" in result.output
