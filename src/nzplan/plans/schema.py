"""Typed records shared by the plan resolver components."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple


class PlanResolverError(RuntimeError):
    """Base class for errors raised while resolving a plan artifact."""


class TierKind(str, Enum):
    """Storage location categories searched for plan artifacts."""

    DEFAULT = "default"
    ARCHIVE = "archive"


class SearchMode(str, Enum):
    """How far past the default store a search is allowed to go."""

    DEFAULT_ONLY = "default-only"
    BOUNDED = "bounded"
    COMPREHENSIVE = "comprehensive"


class ProcessStatus(str, Enum):
    """Outcome of launching the retrieval tool, independent of its output."""

    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed-out"
    LAUNCH_FAILED = "launch-failed"


class RejectionKind(str, Enum):
    """Reasons an attempt's output is not accepted as a plan."""

    ERROR_SIGNATURE = "error-signature"
    INSUFFICIENT_CONTENT = "insufficient-content"
    TOOL_INVOCATION_FAILED = "tool-invocation-failed"
    TIMED_OUT = "timed-out"


class SearchState(str, Enum):
    """Progress of a single resolve call."""

    NOT_STARTED = "not-started"
    TRYING_DEFAULT = "trying-default"
    TRYING_ARCHIVES = "trying-archives"
    FOUND = "found"
    EXHAUSTED = "exhausted"


class FailureKind(str, Enum):
    """Why a search ended without a valid artifact."""

    DEFAULT_ONLY = "default-only"
    BASE_NOT_FOUND = "base-not-found"
    NO_ARCHIVES = "no-archives"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True, slots=True)
class Tier:
    """One location searched for a plan: the live store or an archive directory."""

    kind: TierKind
    key: Optional[int] = None
    path: Optional[Path] = None

    @classmethod
    def default(cls) -> "Tier":
        return cls(kind=TierKind.DEFAULT)

    @classmethod
    def archive(cls, key: Optional[int], path: Path | str) -> "Tier":
        return cls(kind=TierKind.ARCHIVE, key=key, path=Path(path))

    @property
    def is_default(self) -> bool:
        return self.kind is TierKind.DEFAULT

    @property
    def label(self) -> str:
        if self.is_default:
            return "default"
        if self.key is not None:
            return str(self.key)
        return self.path.name if self.path is not None else "archive"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "key": self.key,
            "path": self.path.as_posix() if self.path is not None else None,
        }


@dataclass(frozen=True, slots=True)
class RejectionReason:
    """Single explanation attached to an invalid verdict."""

    kind: RejectionKind
    detail: str = ""
    count: Optional[int] = None

    def describe(self) -> str:
        if self.kind is RejectionKind.INSUFFICIENT_CONTENT:
            return f"insufficient plan content (only {self.count or 0} meaningful lines)"
        if self.detail:
            return f"{self.kind.value}: {self.detail}"
        return self.kind.value


@dataclass(frozen=True, slots=True)
class Verdict:
    """Classifier judgement of one artifact.

    ``reasons`` is empty exactly when the verdict is valid.
    """

    reasons: Tuple[RejectionReason, ...] = ()

    @classmethod
    def valid(cls) -> "Verdict":
        return cls()

    @classmethod
    def invalid(cls, *reasons: RejectionReason) -> "Verdict":
        if not reasons:
            raise ValueError("An invalid verdict requires at least one reason.")
        return cls(reasons=tuple(reasons))

    @property
    def is_valid(self) -> bool:
        return not self.reasons

    def with_reasons(self, *extra: RejectionReason) -> "Verdict":
        """Return a verdict that also carries ``extra`` reasons."""
        if not extra:
            return self
        return Verdict(reasons=self.reasons + tuple(extra))

    def kinds(self) -> List[RejectionKind]:
        return [reason.kind for reason in self.reasons]


@dataclass(slots=True)
class RetrievalAttempt:
    """Result of running the retrieval tool for one (plan, tier) pair."""

    plan_id: int
    tier: Tier
    command: Tuple[str, ...]
    output: str
    status: ProcessStatus
    exit_code: Optional[int] = None
    artifact_path: Optional[Path] = None
    error: Optional[str] = None
    verdict: Optional[Verdict] = None

    @property
    def process_ok(self) -> bool:
        return self.status is ProcessStatus.COMPLETED

    @property
    def is_valid(self) -> bool:
        return self.verdict is not None and self.verdict.is_valid

    @property
    def reproducer(self) -> str:
        return shlex.join(self.command)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tier": self.tier.to_dict(),
            "command": list(self.command),
            "status": self.status.value,
            "exit_code": self.exit_code,
            "error": self.error,
            "valid": self.is_valid,
            "reasons": [reason.describe() for reason in (self.verdict.reasons if self.verdict else ())],
        }


@dataclass(slots=True)
class SearchResult:
    """Terminal outcome of a resolve call, including the full attempt trace."""

    plan_id: int
    mode: SearchMode
    state: SearchState = SearchState.NOT_STARTED
    failure: Optional[FailureKind] = None
    winner: Optional[RetrievalAttempt] = None
    saved_path: Optional[Path] = None
    attempts: List[RetrievalAttempt] = field(default_factory=list)
    hits: List[RetrievalAttempt] = field(default_factory=list)
    remaining: Tuple[Tier, ...] = ()
    archive_base: Optional[Path] = None

    @property
    def found(self) -> bool:
        return self.state is SearchState.FOUND and self.winner is not None

    @property
    def tier(self) -> Optional[Tier]:
        return self.winner.tier if self.winner is not None else None

    @property
    def artifact(self) -> str:
        return self.winner.output if self.winner is not None else ""

    @property
    def reproducer(self) -> Optional[str]:
        return self.winner.reproducer if self.winner is not None else None

    @property
    def can_continue(self) -> bool:
        """True when a bounded pass stopped with archive tiers still untried."""
        return not self.found and bool(self.remaining)

    def archive_attempts(self) -> List[RetrievalAttempt]:
        return [attempt for attempt in self.attempts if not attempt.tier.is_default]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "plan_id": self.plan_id,
            "mode": self.mode.value,
            "state": self.state.value,
            "failure": self.failure.value if self.failure else None,
            "tier": self.tier.to_dict() if self.tier else None,
            "saved_path": self.saved_path.as_posix() if self.saved_path else None,
            "reproducer": self.reproducer,
            "attempts": [attempt.to_dict() for attempt in self.attempts],
            "hits": [hit.tier.to_dict() for hit in self.hits],
            "remaining": [tier.to_dict() for tier in self.remaining],
            "archive_base": self.archive_base.as_posix() if self.archive_base else None,
        }


__all__ = [
    "FailureKind",
    "PlanResolverError",
    "ProcessStatus",
    "RejectionKind",
    "RejectionReason",
    "RetrievalAttempt",
    "SearchMode",
    "SearchResult",
    "SearchState",
    "Tier",
    "TierKind",
    "Verdict",
]
