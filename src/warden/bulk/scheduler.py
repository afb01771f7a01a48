from __future__ import annotations

import asyncio
import itertools
import logging
import math
import uuid
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Awaitable, Callable, Optional, Union

from ..errors import ValidationError

log = logging.getLogger("warden.scheduler")

MAX_NUMERIC_PRIORITY = 10_000


class Priority(IntEnum):
    LOW = 10
    NORMAL = 50
    HIGH = 100
    CRITICAL = 1000


PriorityLike = Union[Priority, int, float, str, None]


def normalize_priority(value: PriorityLike) -> int:
    """Map a label or a number onto one comparable weight.

    Labels are case-insensitive. Numbers (or numeric strings) in
    ``[0, MAX_NUMERIC_PRIORITY]`` are accepted as an override. Anything else
    is rejected rather than silently defaulted.
    """
    if value is None:
        return int(Priority.NORMAL)
    if isinstance(value, Priority):
        return int(value)
    if isinstance(value, bool):
        raise ValidationError(f"Invalid priority: {value!r}")

    if isinstance(value, (int, float)):
        weight = float(value)
    elif isinstance(value, str):
        label = value.strip()
        if not label:
            return int(Priority.NORMAL)
        member = Priority.__members__.get(label.upper())
        if member is not None:
            return int(member)
        try:
            weight = float(label)
        except ValueError:
            names = ", ".join(p.name.lower() for p in Priority)
            raise ValidationError(f"Unknown priority {value!r} (use {names} or a number)") from None
    else:
        raise ValidationError(f"Invalid priority: {value!r}")

    if not math.isfinite(weight) or weight < 0 or weight > MAX_NUMERIC_PRIORITY:
        raise ValidationError(f"Priority must be between 0 and {MAX_NUMERIC_PRIORITY}")
    return int(weight)


class TaskStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


@dataclass(eq=False)
class Task:
    """A unit of scheduled work."""
    kind: str
    body: Callable[[], Awaitable[Any]]
    key: Optional[str] = None
    on_cancel: Optional[Callable[[str], None]] = None
    on_start: Optional[Callable[[], None]] = None
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    priority: int = int(Priority.NORMAL)
    sequence: int = 0
    status: TaskStatus = TaskStatus.QUEUED
    error: Optional[BaseException] = None
    cancel_reason: Optional[str] = None

    async def run(self) -> Any:
        self.status = TaskStatus.RUNNING
        return await self.body()

    def cancel(self, reason: str) -> bool:
        if self.status is not TaskStatus.QUEUED:
            return False
        self.status = TaskStatus.CANCELLED
        self.cancel_reason = reason
        if self.on_cancel is not None:
            try:
                self.on_cancel(reason)
            except Exception:
                log.exception("Cancel callback failed for task %s", self.id)
        return True


class PriorityScheduler:
    """Runs at most one task at a time, highest priority first.

    Ties break on enqueue order. The active slot is claimed before the task
    body starts, so re-entrant ``dispatch`` calls never start a second task.
    """

    def __init__(self) -> None:
        self._queue: list[Task] = []
        self._active: Optional[Task] = None
        self._runner: Optional[asyncio.Task[None]] = None
        self._seq = itertools.count(1)
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def active(self) -> Optional[Task]:
        return self._active

    def queued(self) -> list[Task]:
        """Queued tasks in the order they would be dispatched."""
        return sorted(self._queue, key=self._order)

    def size(self) -> int:
        return len(self._queue)

    @staticmethod
    def _order(task: Task) -> tuple[int, int]:
        return (-task.priority, task.sequence)

    def enqueue(self, task: Task, priority: PriorityLike = None) -> Task:
        task.priority = normalize_priority(priority)
        task.sequence = next(self._seq)
        task.status = TaskStatus.QUEUED
        self._queue.append(task)
        log.info("Enqueued task %s kind=%s key=%s priority=%s seq=%s",
                 task.id, task.kind, task.key, task.priority, task.sequence)
        self.dispatch()
        return task

    def dispatch(self) -> Optional[Task]:
        if self._active is not None or not self._queue:
            return None

        loop = asyncio.get_running_loop()
        task = min(self._queue, key=self._order)
        self._queue.remove(task)
        self._active = task
        self._idle.clear()
        task.status = TaskStatus.RUNNING
        if task.on_start is not None:
            try:
                task.on_start()
            except Exception:
                log.exception("Start hook failed for task %s", task.id)
        self._runner = loop.create_task(self._run(task), name=f"warden-task-{task.id}")
        log.info("Dispatched task %s kind=%s key=%s (%d still queued)", task.id, task.kind, task.key, len(self._queue))
        return task

    async def _run(self, task: Task) -> None:
        try:
            await task.run()
        except Exception as e:
            task.error = e
            log.exception("Task %s (%s) crashed", task.id, task.kind)
        finally:
            task.status = TaskStatus.COMPLETED
            self._active = None
            self._runner = None
            log.info("Task %s settled", task.id)
            self.dispatch()
            if self._active is None:
                self._idle.set()

    def cancel_queued(self, predicate: Callable[[Task], bool], reason: str = "cancelled") -> list[Task]:
        """Drop matching not-yet-started tasks and fire their cancel callbacks."""
        matched = [t for t in self._queue if predicate(t)]
        for task in matched:
            self._queue.remove(task)
        for task in matched:
            task.cancel(reason)
            log.info("Cancelled queued task %s key=%s: %s", task.id, task.key, reason)
        return matched

    async def wait_idle(self) -> None:
        await self._idle.wait()
