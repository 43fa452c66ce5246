"""Per-group outcomes of a reconciliation pass and their formatting."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from depbot.models import DecisionKind, ReconciliationDecision


class OutcomeStatus(Enum):
    APPLIED = "applied"
    DRY_RUN = "dry-run"
    DEFERRED = "deferred"
    EMPTY = "empty"
    FAILED = "failed"


@dataclass
class GroupOutcome:
    """Result of reconciling one group (or one request closed by the sweep)."""

    group_name: str
    branch: str
    decision: ReconciliationDecision
    status: OutcomeStatus = OutcomeStatus.APPLIED
    error: str | None = None
    request_number: int | None = None
    request_url: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is not OutcomeStatus.FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "group": self.group_name,
            "branch": self.branch,
            "decision": self.decision.kind.value,
            "reason": self.decision.reason.value if self.decision.reason else None,
            "status": self.status.value,
            "error": self.error,
            "request_number": self.request_number,
            "request_url": self.request_url,
        }


@dataclass
class ReconciliationReport:
    """Ordered outcomes for every group, followed by sweep closures."""

    outcomes: list[GroupOutcome] = field(default_factory=list)
    closed: list[GroupOutcome] = field(default_factory=list)

    def add(self, outcome: GroupOutcome) -> GroupOutcome:
        self.outcomes.append(outcome)
        return outcome

    @property
    def all_outcomes(self) -> list[GroupOutcome]:
        return self.outcomes + self.closed

    @property
    def failed(self) -> list[GroupOutcome]:
        return [o for o in self.all_outcomes if o.status is OutcomeStatus.FAILED]

    @property
    def ok(self) -> bool:
        return not self.failed

    def by_kind(self, kind: DecisionKind) -> list[GroupOutcome]:
        return [o for o in self.all_outcomes if o.decision.kind is kind]

    @property
    def write_count(self) -> int:
        """Outcomes that changed platform state."""
        return sum(
            1
            for o in self.all_outcomes
            if o.status is OutcomeStatus.APPLIED and o.decision.kind is not DecisionKind.SKIP
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "groups": [o.to_dict() for o in self.outcomes],
            "closed": [o.to_dict() for o in self.closed],
            "ok": self.ok,
        }


_SECTIONS = [
    (DecisionKind.CREATE_NEW, "### ✓ PRs Created"),
    (DecisionKind.UPDATE_IN_PLACE, "### ↻ PRs Updated"),
    (DecisionKind.CLOSE, "### ✗ PRs Closed"),
    (DecisionKind.SKIP, "### = Up To Date"),
]


def _done(report: ReconciliationReport, kind: DecisionKind) -> list[GroupOutcome]:
    return [
        o
        for o in report.by_kind(kind)
        if o.status in (OutcomeStatus.APPLIED, OutcomeStatus.DRY_RUN)
    ]


def _outcome_line(o: GroupOutcome) -> str:
    line = f"- **{o.group_name}**"
    if o.request_number:
        line += f" (#{o.request_number})"
    if o.decision.reason:
        line += f": {o.decision.reason.value}"
    if o.status is OutcomeStatus.DRY_RUN:
        line += " _(dry-run)_"
    return line


def format_report(report: ReconciliationReport) -> str:
    """Format a reconciliation report as markdown."""
    lines = ["## Dependency Update Results", ""]

    for kind, heading in _SECTIONS:
        outcomes = _done(report, kind)
        if not outcomes:
            continue
        lines.append(heading)
        for o in outcomes:
            lines.append(_outcome_line(o))
            if o.request_url and o.status is OutcomeStatus.APPLIED:
                lines.append(f"  - <{o.request_url}>")
        lines.append("")

    deferred = [o for o in report.all_outcomes if o.status is OutcomeStatus.DEFERRED]
    if deferred:
        lines.append(f"### Deferred ({len(deferred)} groups over max_prs_per_run)")
        for o in deferred:
            lines.append(f"- {o.group_name}")
        lines.append("")

    empty = [o for o in report.all_outcomes if o.status is OutcomeStatus.EMPTY]
    if empty:
        lines.append("### Nothing To Change")
        for o in empty:
            lines.append(f"- {o.group_name}")
        lines.append("")

    if report.failed:
        lines.append("### ✗ Failed")
        for o in report.failed:
            lines.append(f"- **{o.group_name}**")
            lines.append(f"  - {o.error}")
        lines.append("")

    created = len(_done(report, DecisionKind.CREATE_NEW))
    updated = len(_done(report, DecisionKind.UPDATE_IN_PLACE))
    closed = len(_done(report, DecisionKind.CLOSE))
    skipped = len(_done(report, DecisionKind.SKIP))
    lines.append(
        f"**Summary:** {created} created, {updated} updated, {closed} closed, "
        f"{skipped} unchanged, {len(report.failed)} failed"
    )
    return "\n".join(lines)
