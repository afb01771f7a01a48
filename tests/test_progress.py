"""
Tests for the throttled single-flight progress reporter.
"""

from __future__ import annotations

import asyncio

from warden.bulk.models import ProgressSnapshot
from warden.bulk.policy import ProgressPolicy
from warden.bulk.progress import ProgressReporter
from warden.testing.fakes import FakeStatusSink, ManualClock


def _snap(processed: int, total: int = 100) -> ProgressSnapshot:
    return ProgressSnapshot(
        processed=processed,
        total=total,
        applied=processed,
        already_absent=0,
        failed=0,
        skipped_protected=0,
        aborted=False,
    )


def _reporter(sink: FakeStatusSink, clock: ManualClock) -> ProgressReporter:
    return ProgressReporter(
        sink,
        lambda s: f"{s.processed}/{s.total}",
        ProgressPolicy(interval_seconds=5.0, batch_size=25),
        clock=clock,
    )


class TestThrottling:
    async def test_start_posts_one_message(self) -> None:
        sink = FakeStatusSink()
        reporter = _reporter(sink, ManualClock())

        await reporter.start(_snap(0))

        assert sink.sent == ["0/100"]
        assert reporter.handle == 1

    async def test_update_below_both_thresholds_is_dropped(self) -> None:
        sink = FakeStatusSink()
        clock = ManualClock()
        reporter = _reporter(sink, clock)
        await reporter.start(_snap(0))

        clock.advance(1.0)
        assert await reporter.update(_snap(3)) is False
        await reporter.drain()
        assert sink.edits == []

    async def test_batch_threshold_triggers_edit(self) -> None:
        sink = FakeStatusSink()
        clock = ManualClock()
        reporter = _reporter(sink, clock)
        await reporter.start(_snap(0))

        assert await reporter.update(_snap(25)) is True
        await reporter.drain()
        assert sink.edits == ["25/100"]

    async def test_interval_threshold_triggers_edit(self) -> None:
        sink = FakeStatusSink()
        clock = ManualClock()
        reporter = _reporter(sink, clock)
        await reporter.start(_snap(0))

        clock.advance(5.0)
        assert await reporter.update(_snap(2)) is True
        await reporter.drain()
        assert sink.edits == ["2/100"]

    async def test_finalize_ignores_throttle(self) -> None:
        sink = FakeStatusSink()
        clock = ManualClock()
        reporter = _reporter(sink, clock)
        await reporter.start(_snap(0))

        await reporter.finalize("done")

        assert sink.last == "done"


class TestSingleFlight:
    async def test_edits_never_overlap_and_latest_wins(self) -> None:
        """Requests arriving during an edit collapse into one pending slot.

        Given: An edit blocked in flight
        When: Two more updates are requested
        Then: Only the newest is written after the first completes
        """
        # Given
        sink = FakeStatusSink()
        clock = ManualClock()
        reporter = _reporter(sink, clock)
        await reporter.start(_snap(0))
        sink.gate = asyncio.Event()
        await reporter.update(_snap(25))
        await asyncio.sleep(0)

        # When
        await reporter.update(_snap(50))
        await reporter.update(_snap(75))
        sink.gate.set()
        await reporter.drain()

        # Then
        assert sink.edits == ["25/100", "75/100"]
        assert sink.max_inflight == 1


class TestStatusErrors:
    async def test_deleted_message_is_recreated(self) -> None:
        sink = FakeStatusSink()
        reporter = _reporter(sink, ManualClock())
        await reporter.start(_snap(0))

        sink.gone = True
        await reporter.update(_snap(25))
        await reporter.drain()
        assert reporter.handle is None

        await reporter.update(_snap(50))
        await reporter.drain()
        assert sink.sent == ["0/100", "50/100"]
        assert reporter.handle == 2

    async def test_final_summary_survives_deleted_message(self) -> None:
        sink = FakeStatusSink()
        reporter = _reporter(sink, ManualClock())
        await reporter.start(_snap(0))

        sink.gone = True
        await reporter.finalize("summary")

        assert sink.sent[-1] == "summary"

    async def test_unchanged_edit_is_not_an_error(self) -> None:
        sink = FakeStatusSink()
        reporter = _reporter(sink, ManualClock())
        await reporter.start(_snap(0))

        sink.unchanged = True
        await reporter.update(_snap(25))
        await reporter.drain()

        assert reporter.handle == 1
        assert sink.edits == []

    async def test_recreated_message_is_latest_in_history(self) -> None:
        sink = FakeStatusSink()
        reporter = _reporter(sink, ManualClock())
        await reporter.start(_snap(0))
        await reporter.update(_snap(25))
        await reporter.drain()

        sink.gone = True
        await reporter.update(_snap(50))
        await reporter.drain()
        await reporter.update(_snap(75))
        await reporter.drain()

        assert sink.history == ["0/100", "25/100", "75/100"]
        assert sink.last == "75/100"
