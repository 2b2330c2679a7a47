"""Tiered search for a saved execution plan.

The resolver tries the live plan store first and then walks the archive
tiers newest-first, running every capture through the content validator.
The first valid capture wins and ends the search. A bounded search caps the
number of archive tiers it will try; the untried tiers are handed back on the
result so the caller can decide whether to continue with a comprehensive
pass via :meth:`PlanResolver.continue_search`.
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Sequence

from ..utils.slug import slugify
from .archives import ArchiveBaseNotFound, ArchiveCatalog
from .extractor import PlanExtractor
from .schema import (
    FailureKind,
    RetrievalAttempt,
    SearchMode,
    SearchResult,
    SearchState,
    Tier,
)
from .validator import ContentValidator

if TYPE_CHECKING:
    from ..config import Settings

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_ARCHIVE_ATTEMPTS = 10


def coerce_plan_id(value: int | str) -> int:
    """Validate a plan identifier, accepting ints and digit-only strings."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid plan id: {value!r}")
    if isinstance(value, str):
        candidate = value.strip()
        if not (candidate.isascii() and candidate.isdigit()):
            raise ValueError(f"Invalid plan id: {value!r}")
        value = int(candidate)
    if not isinstance(value, int) or value <= 0:
        raise ValueError(f"Plan id must be a positive integer, got {value!r}")
    return value


class PlanResolver:
    """Compose extraction, validation and archive discovery into one search."""

    def __init__(
        self,
        extractor: PlanExtractor,
        *,
        validator: ContentValidator | None = None,
        catalog: ArchiveCatalog | None = None,
        max_archive_attempts: int = DEFAULT_MAX_ARCHIVE_ATTEMPTS,
        output_dir: Path | str | None = None,
    ) -> None:
        if max_archive_attempts < 1:
            raise ValueError("max_archive_attempts must be at least 1")
        self.extractor = extractor
        self.validator = validator or ContentValidator()
        self.catalog = catalog or ArchiveCatalog()
        self.max_archive_attempts = max_archive_attempts
        self.output_dir = Path(output_dir) if output_dir else None

    @classmethod
    def from_settings(
        cls,
        settings: "Settings",
        *,
        archive_base: Path | str | None = None,
    ) -> "PlanResolver":
        """Build a resolver wired to the configured tool, limits and directories."""
        plans = settings.plans
        extractor = PlanExtractor(
            plans.tool_override,
            tool_paths=plans.tool_paths,
            work_dir=plans.work_dir,
            timeout=plans.timeout,
        )
        return cls(
            extractor,
            validator=ContentValidator(min_content_lines=plans.min_content_lines),
            catalog=ArchiveCatalog(archive_base or plans.archive_base),
            max_archive_attempts=plans.max_archive_attempts,
            output_dir=plans.output_dir,
        )

    # ------------------------------------------------------------------ search
    def resolve(
        self,
        plan_id: int | str,
        mode: SearchMode | str = SearchMode.BOUNDED,
        *,
        base_path: Path | str | None = None,
        collect_all: bool = False,
    ) -> SearchResult:
        """Search the default store and then the archive tiers for ``plan_id``.

        Raises :class:`~nzplan.plans.extractor.ToolNotFound` before any tier is
        tried when the retrieval tool is missing. Every other problem is
        recorded on the returned result.
        """

        plan_id = coerce_plan_id(plan_id)
        mode = SearchMode(mode)
        self.extractor.ensure_tool()

        result = SearchResult(plan_id=plan_id, mode=mode)
        self._transition(result, SearchState.TRYING_DEFAULT)
        default_attempt = self._attempt(result, Tier.default())
        if default_attempt.is_valid:
            self._record_hit(result, default_attempt)
            self._transition(result, SearchState.FOUND)
            return result

        if mode is SearchMode.DEFAULT_ONLY:
            return self._exhaust(result, FailureKind.DEFAULT_ONLY)

        if base_path is not None:
            self.catalog.rebase(base_path)
        result.archive_base = self.catalog.base_path
        try:
            tiers = self.catalog.tiers()
        except ArchiveBaseNotFound as error:
            LOGGER.warning("%s", error)
            return self._exhaust(result, FailureKind.BASE_NOT_FOUND)
        if not tiers:
            LOGGER.warning("No numeric plan archive directories found in %s", result.archive_base)
            return self._exhaust(result, FailureKind.NO_ARCHIVES)

        limit = self.max_archive_attempts if mode is SearchMode.BOUNDED else None
        collect = collect_all and mode is SearchMode.COMPREHENSIVE
        return self._search_archives(result, tiers, limit=limit, collect_all=collect)

    def continue_search(self, previous: SearchResult, *, collect_all: bool = False) -> SearchResult:
        """Re-enter the archive search over the tiers a bounded pass left untried."""
        if not previous.can_continue:
            return previous
        self.extractor.ensure_tool()
        result = SearchResult(
            plan_id=previous.plan_id,
            mode=SearchMode.COMPREHENSIVE,
            state=previous.state,
            attempts=list(previous.attempts),
            archive_base=previous.archive_base,
        )
        return self._search_archives(result, list(previous.remaining), limit=None, collect_all=collect_all)

    def resolve_manual(
        self,
        plan_id: int | str,
        archive_path: Path | str,
        *,
        previous: SearchResult | None = None,
    ) -> SearchResult:
        """Try a single, caller-supplied archive directory.

        Attempts already recorded on ``previous`` are carried over so the
        trace still shows the default-store lookup that preceded the prompt.
        """
        plan_id = coerce_plan_id(plan_id)
        path = Path(archive_path)
        if not path.is_dir():
            raise ArchiveBaseNotFound(path)
        self.extractor.ensure_tool()

        key = int(path.name) if path.name.isascii() and path.name.isdigit() else None
        result = SearchResult(plan_id=plan_id, mode=SearchMode.COMPREHENSIVE, archive_base=path.parent)
        if previous is not None and previous.plan_id == plan_id:
            result.attempts.extend(previous.attempts)
            result.state = previous.state
        return self._search_archives(result, [Tier.archive(key, path)], limit=None, collect_all=False)

    # --------------------------------------------------------------- internals
    def _search_archives(
        self,
        result: SearchResult,
        tiers: Sequence[Tier],
        *,
        limit: Optional[int],
        collect_all: bool,
    ) -> SearchResult:
        self._transition(result, SearchState.TRYING_ARCHIVES)
        result.remaining = ()
        total = len(tiers)
        for index, tier in enumerate(tiers):
            if limit is not None and index >= limit:
                result.remaining = tuple(tiers[index:])
                LOGGER.warning(
                    "Reached archive search limit (%d directories); %d archive(s) not searched",
                    limit,
                    len(result.remaining),
                )
                break
            LOGGER.info("[%d/%d] Checking archive %s", index + 1, total, tier.label)
            attempt = self._attempt(result, tier)
            if not attempt.is_valid:
                continue
            self._record_hit(result, attempt)
            if not collect_all:
                break

        if result.winner is not None:
            self._transition(result, SearchState.FOUND)
            return result
        return self._exhaust(result, FailureKind.EXHAUSTED)

    def _attempt(self, result: SearchResult, tier: Tier) -> RetrievalAttempt:
        with self.extractor.capture(result.plan_id, tier) as attempt:
            attempt.verdict = self.validator.judge(attempt)
            if attempt.is_valid and result.winner is None:
                result.saved_path = self._persist(attempt)
        attempt.artifact_path = None
        result.attempts.append(attempt)

        if attempt.is_valid:
            LOGGER.info("Valid plan %d found in %s tier %s", result.plan_id, tier.kind.value, tier.label)
        else:
            reasons = "; ".join(reason.describe() for reason in attempt.verdict.reasons)
            LOGGER.info("Plan %d not usable from tier %s: %s", result.plan_id, tier.label, reasons)
        return attempt

    def _record_hit(self, result: SearchResult, attempt: RetrievalAttempt) -> None:
        result.hits.append(attempt)
        if result.winner is None:
            result.winner = attempt

    def _persist(self, attempt: RetrievalAttempt) -> Optional[Path]:
        if self.output_dir is None or attempt.artifact_path is None:
            return None
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        stem = slugify(f"plan-{attempt.plan_id}-{attempt.tier.label}-{stamp}", fallback="plan")
        target = self.output_dir / f"{stem}.pln"
        suffix = 1
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            while target.exists():
                target = self.output_dir / f"{stem}-{suffix}.pln"
                suffix += 1
            shutil.copyfile(attempt.artifact_path, target)
        except OSError as error:
            LOGGER.warning("Could not save plan %d to %s: %s", attempt.plan_id, self.output_dir, error)
            return None
        LOGGER.info("Plan saved to %s", target)
        return target

    def _exhaust(self, result: SearchResult, failure: FailureKind) -> SearchResult:
        result.failure = failure
        self._transition(result, SearchState.EXHAUSTED)
        return result

    @staticmethod
    def _transition(result: SearchResult, state: SearchState) -> None:
        LOGGER.debug("Plan %d search: %s -> %s", result.plan_id, result.state.value, state.value)
        result.state = state


__all__ = ["DEFAULT_MAX_ARCHIVE_ATTEMPTS", "PlanResolver", "coerce_plan_id"]
