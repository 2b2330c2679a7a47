from __future__ import annotations

import stat
import sys
import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from nzplan.plans.extractor import PlanExtractor  # noqa: E402
from nzplan.plans.archives import ArchiveCatalog  # noqa: E402
from nzplan.plans.resolver import PlanResolver  # noqa: E402


PLAN_NOT_FOUND = textwrap.dedent(
    """
    NOTICE:  Trying to access the {plan_id}.pln file
    This script cannot find/access the requested {plan_id}.pln file
    """
).lstrip()


def plan_text(lines: int = 12) -> str:
    """Return plan-like output with ``lines`` meaningful lines."""
    body = [f"Node {index}.  [SPU Sequential Scan table \"SALES\" {{(SALES.ID)}}]" for index in range(1, lines + 1)]
    return "\n".join(body) + "\n"


def write_executable(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@dataclass(slots=True)
class PlanWorld:
    """Fake ``nz_plan`` installation with a default store and archive tiers."""

    root: Path
    tool: Path
    default_store: Path
    archive_base: Path
    work_dir: Path
    output_dir: Path
    calls_log: Path

    def set_default(self, plan_id: int, content: str) -> None:
        (self.default_store / f"plan_{plan_id}.pln").write_text(content, encoding="utf-8")

    def add_archive(self, key: int | str, plan_id: int | None = None, content: str | None = None) -> Path:
        directory = self.archive_base / str(key)
        directory.mkdir(parents=True, exist_ok=True)
        if plan_id is not None and content is not None:
            (directory / f"plan_{plan_id}.pln").write_text(content, encoding="utf-8")
        return directory

    def calls(self) -> list[list[str]]:
        if not self.calls_log.exists():
            return []
        return [line.split() for line in self.calls_log.read_text(encoding="utf-8").splitlines() if line]

    def archive_calls(self) -> list[str]:
        """Archive keys the tool was asked about, in call order."""
        return [Path(call[3]).name for call in self.calls() if call and call[0] == "-tar"]

    def extractor(self, **kwargs: Any) -> PlanExtractor:
        kwargs.setdefault("work_dir", self.work_dir)
        kwargs.setdefault("tool_paths", ())
        return PlanExtractor(self.tool, **kwargs)

    def resolver(self, **kwargs: Any) -> PlanResolver:
        extractor = kwargs.pop("extractor", None) or self.extractor()
        kwargs.setdefault("catalog", ArchiveCatalog(self.archive_base))
        kwargs.setdefault("output_dir", self.output_dir)
        return PlanResolver(extractor, **kwargs)


@pytest.fixture()
def make_plan():
    return plan_text


@pytest.fixture()
def make_executable():
    return write_executable


@pytest.fixture()
def not_found_text():
    return lambda plan_id: PLAN_NOT_FOUND.format(plan_id=plan_id)


@pytest.fixture()
def plan_world(tmp_path: Path) -> PlanWorld:
    """Install a shell stand-in for ``nz_plan`` that serves plans from disk.

    ``nz_plan <id>`` reads ``default/plan_<id>.pln``; ``nz_plan -tar <id>
    -tardir <dir>`` reads ``<dir>/plan_<id>.pln``. Missing files produce the
    tool's usual "cannot find/access" notice with exit status 0.
    """

    default_store = tmp_path / "default"
    default_store.mkdir()
    archive_base = tmp_path / "plansarchive"
    archive_base.mkdir()
    calls_log = tmp_path / "calls.log"
    script = textwrap.dedent(
        f"""\
        #!/bin/sh
        echo "$@" >> "{calls_log.as_posix()}"
        if [ "$1" = "-tar" ]; then
          plan="$2"
          dir="$4"
        else
          plan="$1"
          dir="{default_store.as_posix()}"
        fi
        if [ -f "$dir/plan_$plan.pln" ]; then
          cat "$dir/plan_$plan.pln"
        else
          echo "NOTICE:  Trying to access the $plan.pln file"
          echo "This script cannot find/access the requested $plan.pln file"
        fi
        exit 0
        """
    )
    tool = write_executable(tmp_path / "nz_plan", script)
    return PlanWorld(
        root=tmp_path,
        tool=tool,
        default_store=default_store,
        archive_base=archive_base,
        work_dir=tmp_path / "work",
        output_dir=tmp_path / "saved",
        calls_log=calls_log,
    )
