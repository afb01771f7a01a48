"""
Bulk job package

Priority scheduling, rate-limit aware bulk execution, throttled progress
reporting and cooperative cancellation for heavy moderation jobs.
"""

from .cancellation import CancellationController, CancellationToken
from .executor import BulkActionExecutor
from .models import (
    ActionOutcome,
    ActionResult,
    CallResult,
    CallStatus,
    Job,
    JobKind,
    JobReport,
    ProgressSnapshot,
)
from .policy import JitterPolicy, ProgressPolicy, RetryPolicy
from .progress import ProgressReporter
from .scheduler import Priority, PriorityScheduler, Task, normalize_priority
from .service import JobHandle, JobService

__all__ = [
    "ActionOutcome",
    "ActionResult",
    "BulkActionExecutor",
    "CallResult",
    "CallStatus",
    "CancellationController",
    "CancellationToken",
    "JitterPolicy",
    "Job",
    "JobHandle",
    "JobKind",
    "JobReport",
    "JobService",
    "Priority",
    "PriorityScheduler",
    "ProgressPolicy",
    "ProgressReporter",
    "ProgressSnapshot",
    "RetryPolicy",
    "Task",
    "normalize_priority",
]
