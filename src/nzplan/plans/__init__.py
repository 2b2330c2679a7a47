"""Execution-plan artifact resolution across the live store and archives."""

from .archives import ArchiveBaseNotFound, ArchiveCatalog, discover_archives, locate_archive_base
from .extractor import PlanExtractor, ToolNotFound, locate_plan_tool
from .resolver import PlanResolver, coerce_plan_id
from .schema import (
    FailureKind,
    PlanResolverError,
    ProcessStatus,
    RejectionKind,
    RejectionReason,
    RetrievalAttempt,
    SearchMode,
    SearchResult,
    SearchState,
    Tier,
    TierKind,
    Verdict,
)
from .validator import ContentValidator, SignatureRule, classify

__all__ = [
    "ArchiveBaseNotFound",
    "ArchiveCatalog",
    "ContentValidator",
    "FailureKind",
    "PlanExtractor",
    "PlanResolver",
    "PlanResolverError",
    "ProcessStatus",
    "RejectionKind",
    "RejectionReason",
    "RetrievalAttempt",
    "SearchMode",
    "SearchResult",
    "SearchState",
    "SignatureRule",
    "Tier",
    "TierKind",
    "ToolNotFound",
    "Verdict",
    "classify",
    "coerce_plan_id",
    "discover_archives",
    "locate_archive_base",
    "locate_plan_tool",
]
