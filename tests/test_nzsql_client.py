from __future__ import annotations

from pathlib import Path

from nzplan.config import DatabaseSettings
from nzplan.tools.nzsql import NzsqlClient

FAKE_NZSQL = """#!/bin/sh
for arg in "$@"; do
  case "$arg" in
    *VERBOSE*) echo "ERROR:  VERBOSE not permitted for this user" >&2; exit 1 ;;
  esac
done
echo "ARGS: $*"
"""


def _client(tmp_path: Path, make_executable, **overrides: str) -> NzsqlClient:
    nzsql = make_executable(tmp_path / "nzsql", FAKE_NZSQL)
    settings = DatabaseSettings(nzsql_path=nzsql.as_posix(), **overrides)
    return NzsqlClient(settings)


def test_base_command_includes_host_only_when_set() -> None:
    local = NzsqlClient(DatabaseSettings())
    remote = NzsqlClient(DatabaseSettings(host="nz-prod", name="SALES", user="OPS"))

    assert local.base_command() == ["nzsql", "-d", "SYSTEM", "-u", "ADMIN"]
    assert remote.base_command() == ["nzsql", "-host", "nz-prod", "-d", "SALES", "-u", "OPS"]


def test_check_connection_runs_timestamp_query(tmp_path: Path, make_executable) -> None:
    result = _client(tmp_path, make_executable).check_connection()

    assert result.ok
    assert result.command[-2:] == ["-c", "SELECT CURRENT_TIMESTAMP;"]
    assert "SELECT CURRENT_TIMESTAMP;" in result.stdout


def test_explain_falls_back_to_basic_explain(tmp_path: Path, make_executable) -> None:
    result = _client(tmp_path, make_executable).explain("select * from sales;")

    assert result.ok
    assert result.description == "Basic EXPLAIN Plan"
    assert "EXPLAIN select * from sales;" in result.stdout


def test_missing_nzsql_is_reported_as_launch_failure(tmp_path: Path) -> None:
    client = NzsqlClient(DatabaseSettings(nzsql_path=(tmp_path / "missing-nzsql").as_posix()))

    result = client.check_connection()

    assert result.status == "launch-failed"
    assert not client.available
    assert "Connection Test: launch-failed" in result.short_message()
