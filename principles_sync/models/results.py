"""Typed outcomes returned by each pipeline stage.

Stages report what happened through these values instead of swallowing
errors, so callers and tests can branch on the exact failure mode.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


@dataclass
class Busy:
    """Another run holds a valid lock; the caller should yield and exit 0."""

    lock_path: Path
    owner_pid: int | None = None
    age_seconds: float = 0.0


class SyncStatus(Enum):
    """How the mirror was obtained for this run."""

    CLONED = "cloned"  # Fresh clone from one of the endpoints
    UPDATED = "updated"  # Existing mirror fast-forwarded
    DEGRADED = "degraded"  # Update failed, existing mirror reused as-is


@dataclass
class SyncResult:
    """Outcome of a mirror sync."""

    status: SyncStatus
    mirror_path: Path
    endpoint: str = ""
    reason: str = ""

    @property
    def degraded(self) -> bool:
        return self.status == SyncStatus.DEGRADED


class MergeStatus(Enum):
    """Outcome of a settings merge."""

    MERGED = "merged"
    UNCHANGED = "unchanged"
    DISABLED = "disabled"  # Opt-out flag set
    NO_PARTIAL = "no_partial"  # Mirror ships no permission partial
    NO_BACKEND = "no_backend"  # No JSON backend available
    INVALID_LOCAL = "invalid_local"
    INVALID_REMOTE = "invalid_remote"
    WRITE_FAILED = "write_failed"  # Settings file could not be replaced


@dataclass
class MergeResult:
    """Outcome of merging the remote permission partial into local settings."""

    status: MergeStatus
    settings_path: Path | None = None
    added: dict[str, list] = field(default_factory=dict)
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status not in (
            MergeStatus.INVALID_LOCAL,
            MergeStatus.INVALID_REMOTE,
            MergeStatus.WRITE_FAILED,
        )

    @property
    def added_count(self) -> int:
        return sum(len(v) for v in self.added.values())


@dataclass
class PipelineResult:
    """Summary of one pipeline run."""

    busy: Busy | None = None
    sync: SyncResult | None = None
    categories: list[str] = field(default_factory=list)
    output_path: Path | None = None
    merge: MergeResult | None = None

    def summary(self) -> str:
        if self.busy is not None:
            return "principles-sync: another run is in progress, skipping"
        labels = ", ".join(self.categories) if self.categories else "none"
        line = f"principles-sync: loaded {len(self.categories)} categories: {labels}"
        if self.sync is not None and self.sync.degraded:
            line += " (stale mirror)"
        return line
