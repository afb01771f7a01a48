"""
Rendering for job status messages.

Everything here returns plain text that fits in one Discord message.
"""

from __future__ import annotations

from typing import Optional

from ..constants import SAFE_MESSAGE_LENGTH
from .models import JobKind, JobReport, ProgressSnapshot

_KIND_TITLES = {
    JobKind.PURGE: "Tracked member purge",
    JobKind.PROPAGATE: "Cross-group propagation",
}


def truncate_message(content: str, max_length: int = SAFE_MESSAGE_LENGTH) -> str:
    """
    Truncate a message to fit within Discord's limits.
    """
    if len(content) <= max_length:
        return content

    suffix = "\n… (truncated)"
    return content[: max_length - len(suffix)] + suffix


def _format_elapsed(seconds: float) -> str:
    seconds = int(max(0, seconds))
    return f"{seconds // 60:02d}:{seconds % 60:02d}"


def _actor(actor_id: Optional[int]) -> str:
    return f"<@{actor_id}>" if actor_id is not None else "the system"


def render_progress(title: str, snapshot: ProgressSnapshot, *, elapsed_seconds: Optional[float] = None) -> str:
    pct = int(snapshot.processed * 100 / snapshot.total) if snapshot.total else 100
    lines = [
        f"**{title}**",
        f"Progress: {snapshot.processed}/{snapshot.total} ({pct}%)",
        f"Applied: {snapshot.applied} | Already gone: {snapshot.already_absent} | "
        f"Protected: {snapshot.skipped_protected} | Failed: {snapshot.failed}",
    ]
    if snapshot.aborted:
        lines.append("⏹️ Abort requested, finishing in-flight actions…")
    if elapsed_seconds is not None:
        lines.append(f"Elapsed: {_format_elapsed(elapsed_seconds)}")
    return truncate_message("\n".join(lines))


def render_summary(report: JobReport, *, sample_limit: int = 5) -> str:
    snap = report.snapshot
    title = _KIND_TITLES.get(report.kind, report.kind.value)
    head = "⏹️" if snap.aborted else "✅"
    lines = [
        f"{head} **{title} ({report.mode})** {'aborted' if snap.aborted else 'finished'}",
        f"Processed: {snap.processed}/{snap.total} in {_format_elapsed(report.elapsed_seconds)}",
        f"Applied: {snap.applied}",
        f"Already absent: {snap.already_absent}",
        f"Skipped (protected): {snap.skipped_protected}",
        f"Failed: {snap.failed}",
    ]

    if snap.aborted:
        if report.abort_reason and report.aborted_by is None:
            lines.append(f"Aborted automatically: {report.abort_reason}.")
        else:
            lines.append(f"Aborted by {_actor(report.aborted_by)}.")
        lines.append("Remaining targets were not processed.")

    if report.kind is JobKind.PROPAGATE and report.outcomes:
        lines.append("")
        lines.append("**Groups:**")
        for outcome in report.outcomes:
            label = report.labels.get(outcome.target_id) or str(outcome.target_id)
            lines.append(f"• {label}: {outcome.result.value.replace('_', ' ')} ({report.mode})")

    failures = report.failures
    if failures and sample_limit > 0:
        lines.append("")
        lines.append("**Failure samples:**")
        for outcome in failures[:sample_limit]:
            label = report.labels.get(outcome.target_id) or str(outcome.target_id)
            lines.append(f"• {label}: {outcome.reason or 'unknown'}")
        if len(failures) > sample_limit:
            lines.append(f"• … and {len(failures) - sample_limit} more")

    return truncate_message("\n".join(lines))


def render_cancelled(job_key: str, reason: str) -> str:
    return f"🚫 Job `{job_key}` was cancelled before it started ({reason})."
