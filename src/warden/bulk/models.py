from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .cancellation import CancellationToken


class ActionResult(str, Enum):
    """Terminal per-target outcome of a bulk action."""
    APPLIED = "applied"
    ALREADY_ABSENT = "already_absent"
    FAILED = "failed"
    SKIPPED_PROTECTED = "skipped_protected"

    @property
    def is_success(self) -> bool:
        return self in (ActionResult.APPLIED, ActionResult.ALREADY_ABSENT)


class CallStatus(str, Enum):
    """Classified result of one platform call."""
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    FORBIDDEN = "forbidden"
    OTHER = "other"


@dataclass(frozen=True)
class CallResult:
    status: CallStatus
    retry_after: Optional[float] = None
    message: str = ""

    @classmethod
    def success(cls) -> "CallResult":
        return cls(CallStatus.SUCCESS)

    @classmethod
    def not_found(cls, message: str = "") -> "CallResult":
        return cls(CallStatus.NOT_FOUND, message=message)

    @classmethod
    def rate_limited(cls, retry_after: Optional[float] = None) -> "CallResult":
        return cls(CallStatus.RATE_LIMITED, retry_after=retry_after)

    @classmethod
    def forbidden(cls, message: str = "") -> "CallResult":
        return cls(CallStatus.FORBIDDEN, message=message)

    @classmethod
    def other(cls, message: str) -> "CallResult":
        return cls(CallStatus.OTHER, message=message)


@dataclass(frozen=True)
class RemovalOptions:
    reason: str = "Bulk moderation job"
    delete_message_seconds: int = 0


@dataclass(frozen=True)
class Restriction:
    """A communication restriction (mute) applied for a fixed duration."""
    duration_seconds: int
    reason: str = "Cross-group moderation"


@dataclass(frozen=True)
class ActionOutcome:
    target_id: int
    result: ActionResult
    reason: Optional[str] = None
    attempts: int = 0


@dataclass(frozen=True)
class ProgressSnapshot:
    processed: int
    total: int
    applied: int
    already_absent: int
    failed: int
    skipped_protected: int
    aborted: bool


class JobKind(str, Enum):
    PURGE = "purge"
    PROPAGATE = "propagate"


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    CANCELLED = "cancelled"
    ABORTED = "aborted"
    COMPLETED = "completed"


class PurgeMode(str, Enum):
    BAN = "ban"
    # Ban immediately followed by an unban, so the member can rejoin.
    KICK = "kick"


class PropagationMode(str, Enum):
    MUTE = "mute"
    REMOVE = "remove"


@dataclass
class Job:
    """One bulk-action run, keyed by ``job_key``."""
    job_key: str
    kind: JobKind
    started_by: int
    mode: str
    group_id: Optional[int] = None
    identity_id: Optional[int] = None
    source_group_id: Optional[int] = None
    target_ids: list[int] = field(default_factory=list)
    protected_ids: set[int] = field(default_factory=set)
    labels: dict[int, str] = field(default_factory=dict)
    outcomes: list[ActionOutcome] = field(default_factory=list)
    counts: Counter = field(default_factory=Counter)
    status: JobStatus = JobStatus.QUEUED
    created_at: float = field(default_factory=time.time)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    completed: bool = False
    token: Optional["CancellationToken"] = None

    def start(self, token: "CancellationToken") -> None:
        self.token = token
        self.status = JobStatus.RUNNING
        self.started_at = time.time()

    def finish(self) -> None:
        self.finished_at = time.time()
        self.completed = not self.aborted
        self.status = JobStatus.ABORTED if self.aborted else JobStatus.COMPLETED

    @property
    def aborted(self) -> bool:
        return self.token is not None and self.token.aborted

    @property
    def aborted_by(self) -> Optional[int]:
        return self.token.aborted_by if self.token else None

    @property
    def aborted_at(self) -> Optional[float]:
        return self.token.aborted_at if self.token else None

    def record(self, outcome: ActionOutcome) -> None:
        self.outcomes.append(outcome)
        self.counts[outcome.result] += 1

    def count(self, result: ActionResult) -> int:
        return self.counts[result]

    def snapshot(self) -> ProgressSnapshot:
        return ProgressSnapshot(
            processed=len(self.outcomes),
            total=len(self.target_ids),
            applied=self.count(ActionResult.APPLIED),
            already_absent=self.count(ActionResult.ALREADY_ABSENT),
            failed=self.count(ActionResult.FAILED),
            skipped_protected=self.count(ActionResult.SKIPPED_PROTECTED),
            aborted=self.aborted,
        )


@dataclass(frozen=True)
class JobReport:
    job_key: str
    kind: JobKind
    mode: str
    snapshot: ProgressSnapshot
    outcomes: tuple[ActionOutcome, ...]
    aborted_by: Optional[int]
    abort_reason: Optional[str]
    started_by: int
    elapsed_seconds: float
    labels: dict[int, str] = field(default_factory=dict)
    pruned: int = 0

    @property
    def failures(self) -> list[ActionOutcome]:
        return [o for o in self.outcomes if o.result is ActionResult.FAILED]
