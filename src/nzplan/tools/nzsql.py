"""Minimal ``nzsql`` helpers.

Just enough to check connectivity and to ask the database for an EXPLAIN
plan next to the archived ``nz_plan`` output. Statements are passed with
``-c`` and their text is logged together with a short description.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from typing import List, Literal, Optional

from ..config import DatabaseSettings

LOGGER = logging.getLogger(__name__)

SqlStatus = Literal["ok", "failed", "launch-failed"]


@dataclass(slots=True)
class SqlResult:
    """Outcome of a single ``nzsql -c`` invocation."""

    description: str
    command: List[str]
    status: SqlStatus
    exit_code: int | None
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    def short_message(self) -> str:
        if self.ok:
            return f"{self.description}: ok"
        detail = self.stderr.strip() or self.stdout.strip()
        first = detail.splitlines()[0] if detail else f"exit code {self.exit_code}"
        return f"{self.description}: {self.status} ({first})"


class NzsqlClient:
    """Run SQL text through the ``nzsql`` command-line client."""

    def __init__(self, settings: DatabaseSettings, *, timeout: Optional[float] = None) -> None:
        self.settings = settings
        self.timeout = timeout

    def base_command(self) -> List[str]:
        command = [self.settings.nzsql_path]
        if self.settings.host:
            command.extend(["-host", self.settings.host])
        command.extend(["-d", self.settings.name, "-u", self.settings.user])
        return command

    @property
    def available(self) -> bool:
        return shutil.which(self.settings.nzsql_path) is not None

    def execute(self, sql: str, description: str) -> SqlResult:
        command = [*self.base_command(), "-c", sql]
        LOGGER.info("-- %s", description)
        LOGGER.debug("%s", sql)
        try:
            process = subprocess.run(  # noqa: S603 - nzsql path comes from configuration
                command,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as error:
            LOGGER.warning("Failed to execute %s: %s", description, error)
            return SqlResult(
                description=description,
                command=command,
                status="launch-failed",
                exit_code=None,
                stdout="",
                stderr=str(error),
            )

        status: SqlStatus = "ok" if process.returncode == 0 else "failed"
        if status != "ok":
            LOGGER.warning("Failed to execute: %s (exit %s)", description, process.returncode)
        return SqlResult(
            description=description,
            command=command,
            status=status,
            exit_code=process.returncode,
            stdout=process.stdout,
            stderr=process.stderr,
        )

    def check_connection(self) -> SqlResult:
        return self.execute("SELECT CURRENT_TIMESTAMP;", "Connection Test")

    def explain(self, sql: str) -> SqlResult:
        """Return ``EXPLAIN VERBOSE`` output, falling back to a plain ``EXPLAIN``."""
        statement = sql.strip().rstrip(";")
        verbose = self.execute(f"EXPLAIN VERBOSE {statement};", "EXPLAIN Plan Generation")
        if verbose.ok:
            return verbose
        LOGGER.info("EXPLAIN VERBOSE failed, trying basic EXPLAIN")
        return self.execute(f"EXPLAIN {statement};", "Basic EXPLAIN Plan")


__all__ = ["NzsqlClient", "SqlResult", "SqlStatus"]
