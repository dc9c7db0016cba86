"""Tests for CLI commands: scheduling, reviews, maintenance, reporting and config."""

import json

import pytest
from typer.testing import CliRunner

from mneme.interface.cli import app

runner = CliRunner()


@pytest.fixture
def data_file(tmp_path):
    return tmp_path / "data.json"


@pytest.fixture
def cli(data_file):
    """Invoke the app against a temporary data file."""

    def _invoke(*args, **kwargs):
        return runner.invoke(app, ["--data", str(data_file), *args], **kwargs)

    return _invoke


@pytest.fixture
def sm2(monkeypatch):
    monkeypatch.setenv("MNEME_DEFAULT_SCHEDULING_ALGORITHM", "sm2")


def _saved(data_file):
    return json.loads(data_file.read_text())


# --- Help ---


def test_cli_help():
    """Test that help text is displayed correctly."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    assert "spaced-repetition scheduler" in result.stdout
    for command in ("add", "due", "review", "skip", "convert", "stats", "config"):
        assert command in result.stdout


# --- Scheduling ---


def test_add_and_due(cli, data_file):
    result = cli("add", "a.md", "b.md")
    assert result.exit_code == 0
    assert "Scheduled 2 of 2 item(s)." in result.stdout

    saved = _saved(data_file)
    assert set(saved["schedules"]) == {"a.md", "b.md"}
    assert saved["customNoteOrder"] == ["a.md", "b.md"]

    result = cli("due", "--json")
    assert result.exit_code == 0
    rows = json.loads(result.stdout)
    assert [r["id"] for r in rows] == ["a.md", "b.md"]
    assert rows[0]["algorithm"] == "fsrs"


def test_add_nothing(cli):
    result = cli("add")
    assert result.exit_code == 1
    assert "Nothing to schedule." in result.stdout


def test_add_twice_reports_count(cli):
    cli("add", "a.md")
    result = cli("add", "a.md", "b.md")
    assert "Scheduled 1 of 2 item(s)." in result.stdout


def test_add_checks_vault(cli, mock_vault):
    (mock_vault / "a.md").write_text("# A")

    result = cli("--vault", str(mock_vault), "add", "a.md", "ghost.md")
    assert result.exit_code == 0
    assert "Scheduled 1 of 2 item(s)." in result.stdout


def test_add_all_from_vault(cli, mock_vault):
    (mock_vault / "a.md").write_text("# A")
    (mock_vault / "sub").mkdir()
    (mock_vault / "sub" / "b.md").write_text("# B")

    result = cli("--vault", str(mock_vault), "add", "--all")
    assert result.exit_code == 0
    assert "Scheduled 2 of 2 item(s)." in result.stdout


def test_add_all_needs_vault(cli):
    result = cli("add", "--all")
    assert result.exit_code == 2


def test_due_nothing_does_not_write(cli, data_file):
    result = cli("due")
    assert result.exit_code == 0
    assert "Nothing due." in result.stdout
    assert not data_file.exists()


def test_due_custom_order(cli):
    cli("add", "a.md", "b.md", "c.md")
    cli("order", "c.md", "a.md")

    ordered = json.loads(cli("due", "--json").stdout)
    assert [r["id"] for r in ordered] == ["c.md", "a.md", "b.md"]

    plain = json.loads(cli("due", "--json", "--no-custom-order").stdout)
    assert [r["id"] for r in plain] == ["a.md", "b.md", "c.md"]


def test_upcoming(cli, sm2):
    cli("add", "--days", "3", "a.md")
    result = cli("upcoming")
    assert result.exit_code == 0
    assert "a.md" in result.stdout


# --- Reviews ---


def test_review_sm2(cli, data_file, sm2):
    cli("add", "a.md")

    result = cli("review", "a.md", "4")
    assert result.exit_code == 0
    assert "Recorded. Next review of a.md" in result.stdout

    record = _saved(data_file)["schedules"]["a.md"]
    assert record["schedulingAlgorithm"] == "sm2"
    assert record["interval"] == 3
    assert record["reviewCount"] == 1

    history = json.loads(cli("history", "a.md", "--json").stdout)
    assert history[0]["response"] == 4


def test_review_preview(cli, data_file, sm2):
    cli("add", "a.md")
    cli("review", "a.md", "good")
    before = data_file.read_text()

    result = cli("review", "a.md", "perfect")
    assert result.exit_code == 0
    assert "not due yet" in result.stdout
    assert data_file.read_text() == before


def test_review_fsrs_at_moment(cli, data_file):
    cli("add", "a.md")

    result = cli("review", "a.md", "again", "--at", "2099-01-01T12:00:00")
    assert result.exit_code == 0

    card = _saved(data_file)["schedules"]["a.md"]["fsrsData"]
    assert card["state"] == 1
    assert card["reps"] == 1


def test_review_unknown_item(cli):
    result = cli("review", "ghost.md", "4")
    assert result.exit_code == 1
    assert "ghost.md is not scheduled." in result.stdout


def test_review_bad_input(cli):
    cli("add", "a.md")

    assert cli("review", "a.md", "banana").exit_code == 2
    assert cli("review", "a.md", "3", "--at", "yesterday").exit_code == 2


def test_skip(cli, data_file, sm2):
    cli("add", "a.md")

    result = cli("skip", "a.md")
    assert result.exit_code == 0
    assert "Skipped." in result.stdout
    assert _saved(data_file)["history"][0]["isSkipped"] is True

    assert cli("skip", "ghost.md").exit_code == 1


def test_postpone(cli):
    cli("add", "a.md")

    result = cli("postpone", "a.md", "--days", "3")
    assert result.exit_code == 0
    assert "Review postponed for 3 days." in result.stdout

    assert cli("postpone", "a.md", "--days", "0").exit_code == 1


def test_advance(cli, sm2):
    cli("add", "--days", "3", "a.md")
    result = cli("advance", "a.md")
    assert result.exit_code == 0
    assert "Advanced a.md by one day." in result.stdout

    cli("add", "b.md")
    assert cli("advance", "b.md").exit_code == 1


# --- Maintenance ---


def test_remove(cli, data_file):
    cli("add", "a.md", "b.md")

    assert cli("remove", "a.md").exit_code == 0
    assert list(_saved(data_file)["schedules"]) == ["b.md"]
    assert cli("remove", "a.md").exit_code == 1


def test_rename(cli, data_file):
    cli("add", "a.md")

    result = cli("rename", "a.md", "b.md")
    assert result.exit_code == 0
    saved = _saved(data_file)
    assert list(saved["schedules"]) == ["b.md"]
    assert saved["schedules"]["b.md"]["path"] == "b.md"

    assert cli("rename", "a.md", "c.md").exit_code == 1


def test_order_reports_ignored_ids(cli):
    cli("add", "a.md")
    result = cli("order", "a.md", "ghost.md")
    assert "Custom order set (1 item(s))." in result.stdout
    assert "Ignored 1" in result.stdout


def test_clear(cli, data_file):
    cli("add", "a.md", "b.md")

    aborted = cli("clear", input="n\n")
    assert aborted.exit_code == 1
    assert len(_saved(data_file)["schedules"]) == 2

    result = cli("clear", "--force")
    assert "Cleared 2 schedule(s)." in result.stdout
    assert _saved(data_file)["schedules"] == {}


def test_prune(cli, mock_vault):
    (mock_vault / "a.md").write_text("")
    (mock_vault / "b.md").write_text("")
    cli("--vault", str(mock_vault), "add", "a.md", "b.md")
    (mock_vault / "b.md").unlink()

    result = cli("--vault", str(mock_vault), "prune")
    assert result.exit_code == 0
    assert "Pruned 1 schedule(s)." in result.stdout


def test_prune_needs_vault(cli):
    assert cli("prune").exit_code == 2


def test_convert(cli, data_file, sm2):
    cli("add", "a.md")

    result = cli("convert", "fsrs", "--force")
    assert result.exit_code == 0
    assert "Converted 1 schedule(s) to fsrs." in result.stdout
    assert _saved(data_file)["schedules"]["a.md"]["schedulingAlgorithm"] == "fsrs"

    assert cli("convert", "leitner", "--force").exit_code == 2


# --- Reporting ---


def test_history_empty(cli):
    result = cli("history")
    assert "No reviews recorded." in result.stdout


def test_stats_json(cli, sm2):
    cli("add", "a.md", "b.md")

    result = cli("stats", "--json")
    assert result.exit_code == 0
    output = json.loads(result.stdout)
    assert output["forecast"]["today"] == 2
    assert {i["item_id"] for i in output["items"]} == {"a.md", "b.md"}


def test_stats_survives_corrupt_card(cli, data_file):
    reviewed = 1710000000000
    broken = {
        "path": "broken.md",
        "nextReviewDate": reviewed,
        "lastReviewDate": reviewed,
        "ease": 250,
        "schedulingAlgorithm": "fsrs",
        "fsrsData": {
            "stability": 0.0,
            "difficulty": 5.0,
            "reps": 3,
            "state": 2,
            "last_review": reviewed,
        },
    }
    data_file.write_text(json.dumps({"schedules": {"broken.md": broken}}))

    result = cli("stats", "--json")
    assert result.exit_code == 0
    (item,) = json.loads(result.stdout)["items"]
    assert item["item_id"] == "broken.md"
    assert item["current_retrievability"] is None


def test_add_keeps_unreadable_data_file(cli, data_file):
    data_file.write_text("{not json")

    assert cli("due").exit_code == 0
    assert data_file.read_text() == "{not json"

    assert cli("add", "a.md").exit_code == 0
    assert data_file.with_name("data.json.corrupt").read_text() == "{not json"
    assert set(_saved(data_file)["schedules"]) == {"a.md"}


def test_verbose_flag(cli):
    assert cli("-vv", "due").exit_code == 0


# --- Config ---


def test_config_show(cli, data_file):
    result = cli("config", "show")

    assert result.exit_code == 0
    output = json.loads(result.stdout)
    assert output["data_path"] == str(data_file)
    assert output["base_ease"] == 250
    assert output["default_scheduling_algorithm"] == "fsrs"


def test_config_show_reads_env(cli, sm2):
    output = json.loads(cli("config", "show").stdout)
    assert output["default_scheduling_algorithm"] == "sm2"
