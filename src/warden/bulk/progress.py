from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Optional

from ..errors import StatusMessageGone, StatusUnchanged
from ..interfaces import StatusSink
from .models import ProgressSnapshot
from .policy import ProgressPolicy

log = logging.getLogger("warden.progress")


class ProgressReporter:
    """Throttled, single-flight status message for one running job.

    The message is created once and edited afterwards. Updates are emitted
    when ``policy.interval_seconds`` elapsed or ``policy.batch_size`` more
    targets were processed since the last emitted update. While an edit is in
    flight, newer requests overwrite a single pending slot which the flush
    loop picks up next, so edits never interleave.
    """

    def __init__(
        self,
        sink: StatusSink,
        render: Callable[[ProgressSnapshot], str],
        policy: ProgressPolicy,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sink = sink
        self._render = render
        self._policy = policy
        self._clock = clock

        self.handle: Any = None
        self._last_text: Optional[str] = None
        self._last_emit_at: Optional[float] = None
        self._last_processed = 0

        self._pending: Optional[str] = None
        self._inflight: Optional[asyncio.Task[None]] = None

    def _due(self, snapshot: ProgressSnapshot) -> bool:
        if self._last_emit_at is None:
            return True
        if snapshot.processed - self._last_processed >= self._policy.batch_size:
            return True
        return self._clock() - self._last_emit_at >= self._policy.interval_seconds

    async def start(self, snapshot: ProgressSnapshot) -> None:
        """Post the initial status message."""
        self._mark(snapshot)
        self._submit(self._render(snapshot))
        await self.drain()

    async def update(self, snapshot: ProgressSnapshot) -> bool:
        """Queue an edit if a threshold was crossed. Never waits for the edit."""
        if not self._due(snapshot):
            return False
        self._mark(snapshot)
        self._submit(self._render(snapshot))
        return True

    async def finalize(self, text: str) -> None:
        """Force the final message regardless of throttling."""
        self._submit(text)
        await self.drain()
        if self._last_text != text:
            # The message vanished mid-flight; post the summary fresh.
            await self._write(text)

    async def drain(self) -> None:
        while self._inflight is not None and not self._inflight.done():
            await self._inflight

    def _mark(self, snapshot: ProgressSnapshot) -> None:
        self._last_emit_at = self._clock()
        self._last_processed = snapshot.processed

    def _submit(self, text: str) -> None:
        self._pending = text
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.get_running_loop().create_task(self._flush())

    async def _flush(self) -> None:
        while self._pending is not None:
            text, self._pending = self._pending, None
            await self._write(text)

    async def _write(self, text: str) -> None:
        if text == self._last_text and self.handle is not None:
            return
        try:
            if self.handle is None:
                self.handle = await self.sink.send(text)
            else:
                await self.sink.edit(self.handle, text)
            self._last_text = text
        except StatusMessageGone:
            log.info("Status message is gone; it will be re-created on the next update")
            self.handle = None
            self._last_text = None
        except StatusUnchanged:
            self._last_text = text
        except Exception as e:
            log.error("Failed to update job status: %s", e)
