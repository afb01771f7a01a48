from __future__ import annotations

from dataclasses import dataclass

from ..bulk.models import JobReport


@dataclass
class RuntimeStats:
    jobs_submitted: int = 0
    jobs_completed: int = 0
    jobs_aborted: int = 0
    jobs_cancelled: int = 0
    jobs_crashed: int = 0
    actions_applied: int = 0
    actions_already_absent: int = 0
    actions_failed: int = 0
    actions_skipped_protected: int = 0
    presence_records: int = 0

    def record_report(self, report: JobReport) -> None:
        snap = report.snapshot
        if snap.aborted:
            self.jobs_aborted += 1
        else:
            self.jobs_completed += 1
        self.actions_applied += snap.applied
        self.actions_already_absent += snap.already_absent
        self.actions_failed += snap.failed
        self.actions_skipped_protected += snap.skipped_protected
