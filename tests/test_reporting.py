from __future__ import annotations

from warden.bulk.models import ActionOutcome, ActionResult, JobKind, JobReport, ProgressSnapshot
from warden.bulk.reporting import render_progress, render_summary, truncate_message


def _report(**overrides) -> JobReport:
    outcomes = tuple(
        [ActionOutcome(i, ActionResult.APPLIED) for i in range(3)]
        + [ActionOutcome(100 + i, ActionResult.FAILED, reason=f"HTTP 500 #{i}") for i in range(8)]
    )
    values = dict(
        job_key="purge:1",
        kind=JobKind.PURGE,
        mode="ban",
        snapshot=ProgressSnapshot(11, 20, 3, 0, 8, 0, False),
        outcomes=outcomes,
        aborted_by=None,
        abort_reason=None,
        started_by=5,
        elapsed_seconds=75,
    )
    values.update(overrides)
    return JobReport(**values)


def test_progress_shows_counts_and_percentage() -> None:
    text = render_progress("Purge", ProgressSnapshot(10, 40, 7, 1, 1, 1, False), elapsed_seconds=61)

    assert "Progress: 10/40 (25%)" in text
    assert "Applied: 7" in text
    assert "Elapsed: 01:01" in text


def test_summary_samples_failures() -> None:
    text = render_summary(_report(), sample_limit=5)

    assert "finished" in text
    assert "HTTP 500 #4" in text
    assert "HTTP 500 #5" not in text
    assert "… and 3 more" in text


def test_summary_for_operator_abort() -> None:
    text = render_summary(_report(snapshot=ProgressSnapshot(11, 20, 3, 0, 8, 0, True), aborted_by=5))

    assert "aborted" in text
    assert "Aborted by <@5>." in text
    assert "Remaining targets were not processed." in text


def test_summary_for_automatic_abort() -> None:
    text = render_summary(
        _report(snapshot=ProgressSnapshot(11, 20, 3, 0, 8, 0, True), abort_reason="permission revoked")
    )

    assert "Aborted automatically: permission revoked." in text


def test_truncate_message_respects_limit() -> None:
    text = truncate_message("x" * 5000, max_length=100)
    assert len(text) == 100
    assert text.endswith("(truncated)")
