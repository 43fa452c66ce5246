"""Tests for reconciliation reports."""

from depbot.models import CloseReason, DecisionKind, ReconciliationDecision
from depbot.report import GroupOutcome, OutcomeStatus, ReconciliationReport, format_report
from helpers import make_request


def _report():
    existing = make_request(7)
    report = ReconciliationReport()
    report.add(
        GroupOutcome(
            "npm major updates",
            "depbot/update-npm-major-updates",
            ReconciliationDecision.create_new(),
            request_number=100,
            request_url="https://github.com/acme/app/pull/100",
        )
    )
    report.add(
        GroupOutcome(
            "Python non-major updates",
            "depbot/update-python-non-major-updates",
            ReconciliationDecision.skip(existing),
            request_number=7,
        )
    )
    report.add(
        GroupOutcome(
            "GitHub Actions major updates",
            "depbot/update-github-actions-major-updates",
            ReconciliationDecision.create_new(),
            status=OutcomeStatus.FAILED,
            error="push rejected",
        )
    )
    report.closed.append(
        GroupOutcome(
            "#5 old",
            "depbot/update-old",
            ReconciliationDecision.close_request(make_request(5), CloseReason.ALREADY_SATISFIED),
            request_number=5,
        )
    )
    return report


class TestReport:
    """Tests for ReconciliationReport aggregation."""

    def test_counts(self):
        """Test failures and writes are counted across groups and closures."""
        report = _report()

        assert report.ok is False
        assert [o.group_name for o in report.failed] == ["GitHub Actions major updates"]
        assert report.write_count == 2
        assert len(report.by_kind(DecisionKind.CREATE_NEW)) == 2

    def test_to_dict(self):
        """Test the JSON form carries decisions and reasons."""
        data = _report().to_dict()

        assert data["ok"] is False
        assert data["groups"][1]["decision"] == "skip"
        assert data["closed"][0]["reason"] == "already-satisfied"


class TestFormatReport:
    """Tests for the markdown summary."""

    def test_sections_and_summary(self):
        """Test failed creations are not reported as created."""
        text = format_report(_report())

        assert "### ✓ PRs Created" in text
        assert "- **npm major updates** (#100)" in text
        assert "  - <https://github.com/acme/app/pull/100>" in text
        assert "- **#5 old** (#5): already-satisfied" in text
        assert "### ✗ Failed" in text
        assert "  - push rejected" in text
        assert text.endswith(
            "**Summary:** 1 created, 0 updated, 1 closed, 1 unchanged, 1 failed"
        )

    def test_dry_run_and_deferred(self):
        """Test dry-run outcomes are marked and deferred groups listed."""
        report = ReconciliationReport()
        report.add(
            GroupOutcome(
                "a", "depbot/update-a", ReconciliationDecision.create_new(), OutcomeStatus.DRY_RUN
            )
        )
        report.add(
            GroupOutcome(
                "b", "depbot/update-b", ReconciliationDecision.create_new(), OutcomeStatus.DEFERRED
            )
        )

        text = format_report(report)

        assert "- **a** _(dry-run)_" in text
        assert "### Deferred (1 groups over max_prs_per_run)" in text
        assert "**Summary:** 1 created" in text

    def test_empty_report(self):
        """Test an empty pass still prints a summary."""
        assert format_report(ReconciliationReport()).endswith(
            "**Summary:** 0 created, 0 updated, 0 closed, 0 unchanged, 0 failed"
        )
