from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

"""Value types for the export job lifecycle (queue -> poll -> download).

State transitions: queued -> pending -> (ready | timed_out | failed)

None of these are persisted; they live for the duration of one export call.
"""

__all__ = [
    "JobState",
    "PollObservation",
    "PollResult",
    "DownloadCandidate",
    "DownloadAttempt",
    "DownloadOutcome",
    "ExportRun",
]


class JobState(Enum):
    QUEUED = "queued"
    PENDING = "pending"
    READY = "ready"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass(frozen=True)
class PollObservation:
    """Single poll response snapshot, after alias resolution."""
    status: Any
    file_url: str | None
    file_token: str | None
    raw: Any = None  # full response body for diagnostics


@dataclass(frozen=True)
class PollResult:
    file_url: str | None
    file_token: str | None
    last_snapshot: Any
    attempts: int
    state: JobState

    @property
    def has_signal(self) -> bool:
        return bool(self.file_url or self.file_token)


@dataclass(frozen=True)
class DownloadCandidate:
    """One hypothesis about where the finished file lives."""
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class DownloadAttempt:
    url: str
    status: int | None  # None when the request never got a response
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"url": self.url, "status": self.status, "error": self.error}


@dataclass(frozen=True)
class DownloadOutcome:
    """Result of the candidate loop: a payload, or the full attempt log."""
    buffer: bytes | None
    source_url: str | None
    attempts: tuple[DownloadAttempt, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.buffer is not None


@dataclass(frozen=True)
class ExportRun:
    export_id: str
    poll: PollResult
    outcome: DownloadOutcome

    @property
    def buffer(self) -> bytes | None:
        return self.outcome.buffer

    @property
    def source_url(self) -> str | None:
        return self.outcome.source_url
