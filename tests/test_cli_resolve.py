from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from nzplan.cli import app


@pytest.fixture(autouse=True)
def _reset_root_logging():
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)


def _write_config(plan_world, **plan_overrides) -> Path:
    plans = {
        "tool_override": plan_world.tool.as_posix(),
        "tool_paths": [],
        "archive_base": plan_world.archive_base.as_posix(),
        "archive_fallbacks": [],
        "work_dir": plan_world.work_dir.as_posix(),
        "output_dir": plan_world.output_dir.as_posix(),
    }
    plans.update(plan_overrides)
    config_path = plan_world.root / "nzplan.yaml"
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump({"plans": plans, "logging": {"level": "WARNING"}}, handle)
    return config_path


def test_resolve_prints_plan_and_reproducer(plan_world, make_plan) -> None:
    plan_world.add_archive(300)
    plan_world.add_archive(200, 4521, make_plan(12))
    config_path = _write_config(plan_world)

    result = CliRunner().invoke(app, ["resolve", "4521", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    assert "found in archive tier 200" in result.output
    assert "Plan saved to:" in result.output
    assert f"-tar 4521 -tardir {(plan_world.archive_base / '200').as_posix()}" in result.output
    assert list(plan_world.work_dir.iterdir()) == []


def test_resolve_reports_trace_and_exit_code_when_missing(plan_world) -> None:
    plan_world.add_archive(1)
    config_path = _write_config(plan_world)

    result = CliRunner().invoke(app, ["resolve", "8", "--config", str(config_path), "--no-input"])

    assert result.exit_code == 2, result.output
    assert "Plan ID 8 not found (exhausted)" in result.output
    assert "Tiers searched:" in result.output
    assert "default: error-signature" in result.output


def test_bounded_search_offers_comprehensive_continuation(plan_world, make_plan) -> None:
    for key in range(1, 5):
        plan_world.add_archive(key)
    plan_world.add_archive(1, 61, make_plan(6))
    config_path = _write_config(plan_world, max_archive_attempts=2)

    result = CliRunner().invoke(app, ["resolve", "61", "--config", str(config_path)], input="y\n")

    assert result.exit_code == 0, result.output
    assert "Remaining archives not searched: 2" in result.output
    assert "search ALL remaining archives" in result.output
    assert "found in archive tier 1" in result.output


def test_declining_continuation_keeps_failure(plan_world) -> None:
    for key in range(1, 5):
        plan_world.add_archive(key)
    config_path = _write_config(plan_world, max_archive_attempts=2)

    result = CliRunner().invoke(app, ["resolve", "61", "--config", str(config_path)], input="n\n")

    assert result.exit_code == 2
    assert plan_world.archive_calls() == ["4", "3"]


def test_missing_archive_base_prompts_for_manual_path(plan_world, make_plan) -> None:
    manual = plan_world.root / "restored"
    manual.mkdir()
    (manual / "plan_5.pln").write_text(make_plan(6), encoding="utf-8")
    config_path = _write_config(plan_world, archive_base=(plan_world.root / "absent").as_posix())

    result = CliRunner().invoke(app, ["resolve", "5", "--config", str(config_path)], input=f"{manual}\n")

    assert result.exit_code == 0, result.output
    assert "Plan archive base directory not found" in result.output
    assert "found in archive tier restored" in result.output


def test_resolve_json_output(plan_world, make_plan) -> None:
    plan_world.set_default(3, make_plan(5))
    config_path = _write_config(plan_world)

    result = CliRunner().invoke(app, ["resolve", "3", "--config", str(config_path), "--json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output[result.output.index("{") :])
    assert payload["state"] == "found"
    assert payload["tier"]["kind"] == "default"
    assert payload["saved_path"].endswith(".pln")


def test_resolve_with_missing_tool_exits_with_error(plan_world, tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("PATH", str(tmp_path / "empty-bin"))
    config_path = _write_config(plan_world, tool_override=(tmp_path / "nope").as_posix())

    result = CliRunner().invoke(app, ["resolve", "3", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "nz_plan utility not found" in result.output


def test_resolve_rejects_non_positive_plan_id(plan_world) -> None:
    config_path = _write_config(plan_world)

    result = CliRunner().invoke(app, ["resolve", "0", "--config", str(config_path)])

    assert result.exit_code != 0
    assert plan_world.calls() == []


def test_archives_lists_tiers_newest_first(plan_world) -> None:
    for name in ("30", "5", "100", "abc", "7"):
        plan_world.add_archive(name)
    config_path = _write_config(plan_world)

    result = CliRunner().invoke(app, ["archives", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    listed = [line.split(".")[1].split()[0] for line in result.output.splitlines() if line.startswith("  ")]
    assert listed == ["100", "30", "7", "5"]


def test_archives_falls_back_to_alternate_base(plan_world) -> None:
    alternate = plan_world.root / "planarchive"
    (alternate / "42").mkdir(parents=True)
    config_path = _write_config(
        plan_world,
        archive_base=(plan_world.root / "absent").as_posix(),
        archive_fallbacks=[alternate.as_posix()],
    )

    result = CliRunner().invoke(app, ["archives", "--config", str(config_path)])

    assert result.exit_code == 0, result.output
    assert f"using {alternate}" in result.output
    assert "1. 42" in result.output


def test_init_writes_default_config(tmp_path: Path) -> None:
    config_path = tmp_path / "nzplan.yaml"
    runner = CliRunner()

    first = runner.invoke(app, ["init", "--config", str(config_path)])
    second = runner.invoke(app, ["init", "--config", str(config_path)])

    assert first.exit_code == 0, first.output
    assert yaml.safe_load(config_path.read_text(encoding="utf-8"))["plans"]["max_archive_attempts"] == 10
    assert second.exit_code == 1
    assert "already exists" in second.output


def test_declined_continuation_prints_trace_once(plan_world) -> None:
    for key in range(1, 5):
        plan_world.add_archive(key)
    config_path = _write_config(plan_world, max_archive_attempts=2)

    result = CliRunner().invoke(app, ["resolve", "61", "--config", str(config_path)], input="n\n")

    assert result.output.count("Tiers searched:") == 1
    assert "not found in the 2 most recent archive(s)" in result.output


def test_skipped_manual_path_prints_trace_once(plan_world) -> None:
    config_path = _write_config(plan_world, archive_base=(plan_world.root / "absent").as_posix())

    result = CliRunner().invoke(app, ["resolve", "5", "--config", str(config_path)], input="\n")

    assert result.exit_code == 2
    assert result.output.count("Tiers searched:") == 1
    assert "Plan ID 5 not found (base-not-found)" in result.output


def test_check_reports_missing_nzsql(plan_world) -> None:
    config_path = plan_world.root / "nzplan.yaml"
    missing = (plan_world.root / "bin" / "nzsql").as_posix()
    with config_path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump({"database": {"nzsql_path": missing}, "logging": {"level": "WARNING"}}, handle)

    result = CliRunner().invoke(app, ["check", "--config", str(config_path)])

    assert result.exit_code == 1
    assert f"nzsql client not found: {missing}" in result.output
