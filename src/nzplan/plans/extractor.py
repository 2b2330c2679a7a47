"""Wrapper around the external ``nz_plan`` retrieval tool."""

from __future__ import annotations

import logging
import os
import shutil
import signal
import subprocess
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence
from uuid import uuid4

from ..utils.slug import slugify
from .schema import PlanResolverError, ProcessStatus, RetrievalAttempt, Tier
from .validator import ContentValidator

LOGGER = logging.getLogger(__name__)

TOOL_NAME = "nz_plan"
DEFAULT_TOOL_PATHS: tuple[Path, ...] = (
    Path("/nz/support/contrib/bin/nz_plan"),
    Path("/opt/nz/support/contrib/bin/nz_plan"),
    Path("/usr/local/nz/support/contrib/bin/nz_plan"),
    Path("/nz/bin/nz_plan"),
    Path("/nz/kit/bin/nz_plan"),
)
DEFAULT_TIMEOUT = 300.0


class ToolNotFound(PlanResolverError):
    """Raised when no executable ``nz_plan`` can be located."""

    def __init__(self, probed: Sequence[Path]) -> None:
        locations = ", ".join(path.as_posix() for path in probed) or "(none)"
        super().__init__(f"{TOOL_NAME} utility not found; probed: {locations}")
        self.probed = tuple(probed)


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


def locate_plan_tool(
    candidates: Iterable[Path | str] = DEFAULT_TOOL_PATHS,
    *,
    override: Path | str | None = None,
    search_path: bool = True,
) -> Path:
    """Return the first executable ``nz_plan`` among ``override`` and ``candidates``.

    When none of the fixed install locations qualify and ``search_path`` is
    set, ``PATH`` is consulted as a last resort.
    """

    probed: list[Path] = []
    if override:
        probed.append(Path(override))
    probed.extend(Path(candidate) for candidate in candidates)

    for path in probed:
        if _is_executable(path):
            return path

    if search_path:
        found = shutil.which(TOOL_NAME)
        if found:
            return Path(found)

    raise ToolNotFound(probed)


def _kill_process_group(process: subprocess.Popen) -> None:
    """Kill ``process`` together with anything it forked, then reap it."""
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    process.wait()


def _run_to_file(
    command: Sequence[str],
    destination: Path,
    *,
    timeout: Optional[float],
) -> tuple[ProcessStatus, Optional[int], Optional[str]]:
    """Run ``command`` with stdout and stderr merged into ``destination``.

    The tool runs in its own session so that a timeout takes down the whole
    process group, not only the wrapper script.
    """
    try:
        destination.parent.mkdir(parents=True, exist_ok=True)
        handle = destination.open("wb")
    except OSError as error:
        return ProcessStatus.LAUNCH_FAILED, None, f"cannot open capture file {destination}: {error}"

    with handle:
        try:
            process = subprocess.Popen(  # noqa: S603 - executable located on the local install
                list(command),
                stdout=handle,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as error:
            return ProcessStatus.LAUNCH_FAILED, None, str(error)
        try:
            returncode = process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill_process_group(process)
            return ProcessStatus.TIMED_OUT, None, f"no response after {timeout:g}s"

    status = ProcessStatus.COMPLETED if returncode == 0 else ProcessStatus.FAILED
    return status, returncode, None


class PlanExtractor:
    """Invoke ``nz_plan`` against one tier and capture its output.

    Each attempt writes to its own temporary ``.pln`` file under ``work_dir``.
    The file only lives for the duration of :meth:`capture`; callers that
    want to keep a valid artifact must copy it out inside the block.
    """

    def __init__(
        self,
        executable: Path | str | None = None,
        *,
        tool_paths: Iterable[Path | str] = DEFAULT_TOOL_PATHS,
        work_dir: Path | str | None = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
    ) -> None:
        self._override = Path(executable) if executable else None
        self._tool_paths = tuple(Path(path) for path in tool_paths)
        self._executable: Optional[Path] = None
        self.work_dir = Path(work_dir) if work_dir else Path(tempfile.gettempdir())
        self.timeout = timeout if timeout and timeout > 0 else None

    def ensure_tool(self) -> Path:
        """Locate the executable once, raising :class:`ToolNotFound` if absent."""
        if self._executable is None:
            self._executable = locate_plan_tool(self._tool_paths, override=self._override)
            LOGGER.info("Using %s utility: %s", TOOL_NAME, self._executable)
        return self._executable

    def build_command(self, plan_id: int, tier: Tier) -> tuple[str, ...]:
        executable = self.ensure_tool().as_posix()
        if tier.is_default:
            return (executable, str(plan_id))
        if tier.path is None:
            raise ValueError(f"Archive tier {tier.label} has no path")
        return (executable, "-tar", str(plan_id), "-tardir", tier.path.as_posix())

    def _artifact_path(self, plan_id: int, tier: Tier) -> Path:
        stem = slugify(f"nzplan-{plan_id}-{tier.kind.value}-{tier.label}", fallback="nzplan")
        return self.work_dir / f"{stem}-{uuid4().hex[:12]}.pln"

    @contextmanager
    def capture(self, plan_id: int, tier: Tier) -> Iterator[RetrievalAttempt]:
        """Run the tool for ``tier`` and yield the attempt while its file exists."""
        command = self.build_command(plan_id, tier)
        artifact = self._artifact_path(plan_id, tier)
        try:
            LOGGER.debug("Running %s", " ".join(command))
            status, exit_code, error = _run_to_file(command, artifact, timeout=self.timeout)
            output = artifact.read_text(encoding="utf-8", errors="replace") if artifact.exists() else ""
            if status is not ProcessStatus.COMPLETED:
                LOGGER.debug("%s finished with status %s for tier %s", TOOL_NAME, status.value, tier.label)
            yield RetrievalAttempt(
                plan_id=plan_id,
                tier=tier,
                command=command,
                output=output,
                status=status,
                exit_code=exit_code,
                artifact_path=artifact,
                error=error,
            )
        finally:
            if artifact.exists():
                artifact.unlink()

    def extract(
        self,
        plan_id: int,
        tier: Tier,
        validator: ContentValidator | None = None,
    ) -> RetrievalAttempt:
        """Capture and classify one attempt; the temporary file is gone on return."""
        judge = validator or ContentValidator()
        with self.capture(plan_id, tier) as attempt:
            attempt.verdict = judge.judge(attempt)
        attempt.artifact_path = None
        return attempt


__all__ = [
    "DEFAULT_TIMEOUT",
    "DEFAULT_TOOL_PATHS",
    "PlanExtractor",
    "ToolNotFound",
    "locate_plan_tool",
]
