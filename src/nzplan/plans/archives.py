"""Discovery of time-bucketed plan archive directories."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from .schema import PlanResolverError, Tier

LOGGER = logging.getLogger(__name__)

DEFAULT_ARCHIVE_BASE = Path("/nzscratch/monitor/log/plansarchive")
DEFAULT_ARCHIVE_FALLBACKS: tuple[Path, ...] = (
    Path("/nz/kit/log/planarchive"),
    Path("/opt/nz/log/planarchive"),
    Path("/var/log/nz/planarchive"),
)


class ArchiveBaseNotFound(PlanResolverError):
    """Raised when the archive base directory does not exist."""

    def __init__(self, path: Path) -> None:
        super().__init__(f"Plan archive base directory not found: {path}")
        self.path = path


def _is_bucket_name(name: str) -> bool:
    return name.isascii() and name.isdigit()


def discover_archives(base_path: Path | str) -> List[Tier]:
    """Return the numeric archive directories under ``base_path``, newest first.

    Only immediate, non-symlinked subdirectories with purely numeric names
    qualify; anything else is ignored. An empty list means the base exists
    but holds no archives. Archive contents are not inspected.
    """

    base = Path(base_path)
    if not base.is_dir():
        raise ArchiveBaseNotFound(base)

    buckets: list[tuple[int, Path]] = []
    for entry in base.iterdir():
        if entry.is_symlink() or not entry.is_dir():
            continue
        if not _is_bucket_name(entry.name):
            LOGGER.debug("Skipping non-numeric archive entry %s", entry.name)
            continue
        buckets.append((int(entry.name), entry))

    buckets.sort(key=lambda item: item[0], reverse=True)
    tiers = [Tier.archive(key, path) for key, path in buckets]
    LOGGER.debug("Discovered %d archive tier(s) under %s", len(tiers), base)
    return tiers


def locate_archive_base(candidates: Iterable[Path | str]) -> Optional[Path]:
    """Return the first candidate that is an existing directory."""
    for candidate in candidates:
        path = Path(candidate)
        if path.is_dir():
            return path
    return None


class ArchiveCatalog:
    """Lazily populated cache of archive tiers for one base directory."""

    def __init__(self, base_path: Path | str = DEFAULT_ARCHIVE_BASE) -> None:
        self._base_path = Path(base_path)
        self._tiers: Optional[List[Tier]] = None

    @property
    def base_path(self) -> Path:
        return self._base_path

    @property
    def populated(self) -> bool:
        return self._tiers is not None

    def tiers(self) -> List[Tier]:
        """Return the cached tier list, discovering it on first use."""
        if self._tiers is None:
            self._tiers = discover_archives(self._base_path)
        return list(self._tiers)

    def rebase(self, base_path: Path | str) -> None:
        """Point the catalog at ``base_path``, dropping the cache if it moved."""
        path = Path(base_path)
        if path != self._base_path:
            self._base_path = path
            self._tiers = None

    def invalidate(self) -> None:
        self._tiers = None


__all__ = [
    "ArchiveBaseNotFound",
    "ArchiveCatalog",
    "DEFAULT_ARCHIVE_BASE",
    "DEFAULT_ARCHIVE_FALLBACKS",
    "discover_archives",
    "locate_archive_base",
]
