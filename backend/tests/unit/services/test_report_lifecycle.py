"""
Unit Tests for the report status graph
"""
import pytest

from edutrack.core.exceptions import AuthorizationError, InvalidTransitionError
from edutrack.models import Report, ReportStatus
from edutrack.services.report_workflow import (
    TERMINAL_STATUSES, append_history, apply_transition, can_transition, report_summary,
)


def new_report(status: ReportStatus = ReportStatus.DRAFT) -> Report:
    report = Report(
        id="report-1",
        student_id="profile-1",
        title="Lab report",
        description="Week 1",
        semester=3,
        academic_year="2024-2025",
        status=status,
        created_by="student-1",
        status_history=[],
        comments=[],
    )
    append_history(report, status, "student-1", "Report created")
    return report


class TestTransitionGraph:

    @pytest.mark.parametrize("current,requested", [
        (ReportStatus.DRAFT, ReportStatus.SUBMITTED),
        (ReportStatus.SUBMITTED, ReportStatus.REVIEWED),
        (ReportStatus.REVIEWED, ReportStatus.APPROVED),
        (ReportStatus.REVIEWED, ReportStatus.REJECTED),
        (ReportStatus.REVIEWED, ReportStatus.NEEDS_REVISION),
        (ReportStatus.NEEDS_REVISION, ReportStatus.SUBMITTED),
    ])
    def test_allowed_edges(self, current, requested):
        assert can_transition(current, requested)

    @pytest.mark.parametrize("current,requested", [
        (ReportStatus.DRAFT, ReportStatus.APPROVED),
        (ReportStatus.SUBMITTED, ReportStatus.APPROVED),
        (ReportStatus.APPROVED, ReportStatus.SUBMITTED),
        (ReportStatus.REJECTED, ReportStatus.REVIEWED),
        (ReportStatus.NEEDS_REVISION, ReportStatus.APPROVED),
    ])
    def test_forbidden_edges(self, current, requested):
        assert not can_transition(current, requested)

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_statuses_have_no_exits(self, terminal):
        assert not any(can_transition(terminal, s) for s in ReportStatus)


class TestApplyTransition:

    def test_draft_to_approved_rejected_without_side_effects(self):
        report = new_report(ReportStatus.DRAFT)

        with pytest.raises(InvalidTransitionError) as exc_info:
            apply_transition(report, ReportStatus.APPROVED, "reviewer-1")

        assert exc_info.value.status_code == 400
        assert exc_info.value.current == "draft"
        assert report.status == ReportStatus.DRAFT
        assert len(report.status_history) == 1

    def test_each_transition_appends_one_entry(self):
        report = new_report(ReportStatus.SUBMITTED)

        apply_transition(report, ReportStatus.REVIEWED, "reviewer-1")
        apply_transition(report, ReportStatus.NEEDS_REVISION, "reviewer-1", "Add references")
        apply_transition(report, ReportStatus.SUBMITTED, "student-1", owner=True)
        apply_transition(report, ReportStatus.REVIEWED, "reviewer-1")
        apply_transition(report, ReportStatus.APPROVED, "reviewer-1")

        assert report.status == ReportStatus.APPROVED
        assert [h.status for h in report.status_history] == [
            ReportStatus.SUBMITTED,
            ReportStatus.REVIEWED,
            ReportStatus.NEEDS_REVISION,
            ReportStatus.SUBMITTED,
            ReportStatus.REVIEWED,
            ReportStatus.APPROVED,
        ]
        assert [h.sequence for h in report.status_history] == [1, 2, 3, 4, 5, 6]
        assert report.status_history[2].comment == "Add references"

    def test_owner_cannot_review(self):
        report = new_report(ReportStatus.SUBMITTED)

        with pytest.raises(AuthorizationError):
            apply_transition(report, ReportStatus.REVIEWED, "student-1", owner=True)

        assert report.status == ReportStatus.SUBMITTED
        assert len(report.status_history) == 1

    def test_owner_submits_draft(self):
        report = new_report(ReportStatus.DRAFT)

        entry = apply_transition(report, ReportStatus.SUBMITTED, "student-1", owner=True)

        assert entry.changed_by == "student-1"
        assert report.status == ReportStatus.SUBMITTED


class TestReportSummary:

    def test_without_file(self):
        summary = report_summary(new_report())

        assert summary["file"] is None
        assert summary["status"] == "draft"
        assert "student" not in summary

    def test_file_descriptor_has_download_url(self):
        report = new_report(ReportStatus.SUBMITTED)
        report.file_key = "reports/abc.pdf"
        report.filename = "lab.pdf"
        report.mimetype = "application/pdf"
        report.size = 2048

        summary = report_summary(report)

        assert summary["file"] == {
            "filename": "lab.pdf",
            "mimetype": "application/pdf",
            "size": 2048,
            "url": "/api/v1/reports/report-1/download",
        }
