"""Data structures describing the outcome of a deployment cycle."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class WorkingCopyState(str, Enum):
    """Judgement about the local checkout, recomputed at the start of every cycle."""

    ABSENT = "absent"
    INVALID = "invalid"
    VALID = "valid"


@dataclass(slots=True, frozen=True)
class BuildOutcome:
    """Result of running the external build against the working copy."""

    succeeded: bool
    message: str | None = None

    @classmethod
    def success(cls) -> "BuildOutcome":
        return cls(succeeded=True)

    @classmethod
    def failure(cls, message: str) -> "BuildOutcome":
        return cls(succeeded=False, message=message)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class CycleResult:
    """Structured summary of a reconcile, build and publish cycle."""

    reason: str
    state: WorkingCopyState | None = None
    outcome: BuildOutcome | None = None
    errors: list[str] = field(default_factory=list)
    fallback_written: bool = False
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: datetime | None = None

    @property
    def succeeded(self) -> bool:
        """Return ``True`` when the working copy was reconciled and the build succeeded."""

        return (
            self.state is WorkingCopyState.VALID
            and self.outcome is not None
            and self.outcome.succeeded
            and not self.errors
        )
