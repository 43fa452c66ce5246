"""The dependency dashboard: one issue summarizing what the bot is doing.

The issue is found again on every run by its title plus a hidden marker and
rewritten in place. Its body lists the bot's open pull requests, groups that
could not be opened in this run, and every declared dependency grouped by
ecosystem and manifest. An unchanged body is not written back.
"""

from __future__ import annotations

import logging
import re

from depbot.config import ReconciliationConfig
from depbot.ecosystems.base import Ecosystem
from depbot.engine.body import recorded_updates
from depbot.engine.grouping import ecosystem_label
from depbot.engine.matcher import candidate_requests
from depbot.models import DetectedDependency, ExistingChangeRequest, ExistingIssue
from depbot.platform.base import IssueTracker
from depbot.report import OutcomeStatus, ReconciliationReport

logger = logging.getLogger(__name__)

DASHBOARD_MARKER = "<!-- depbot:dashboard -->"

_PULL_URL_RE = re.compile(r"^https://github\.com/[^/]+/[^/]+/pull/(\d+)$")

PENDING_STATUSES = {
    OutcomeStatus.DEFERRED: "waiting for the next run (`max_prs_per_run` reached)",
    OutcomeStatus.FAILED: "failed",
}


def relative_url(request: ExistingChangeRequest) -> str:
    """``../pull/N`` for pull requests of this repository, the full URL otherwise."""
    if _PULL_URL_RE.match(request.url or ""):
        return f"../pull/{request.number}"
    return request.url


def request_packages(request: ExistingChangeRequest) -> list[str]:
    """Package names a request updates, in first-seen order."""
    return list(dict.fromkeys(u.name for u in recorded_updates(request.body)))


def collect_dependencies(ecosystems: list[Ecosystem]) -> list[DetectedDependency]:
    found: list[DetectedDependency] = []
    for ecosystem in ecosystems:
        try:
            found.extend(ecosystem.dependencies())
        except Exception:
            logger.exception("Could not list %s dependencies", ecosystem.name)
    return found


def _open_section(requests: list[ExistingChangeRequest]) -> list[str]:
    lines = ["## Open", "", "The following updates have pull requests open:", ""]
    for request in sorted(requests, key=lambda r: r.number):
        line = f" - [{request.title}]({relative_url(request)})"
        packages = request_packages(request)
        if packages:
            line += " (" + ", ".join(f"`{p}`" for p in packages) + ")"
        lines.append(line)
    lines.append("")
    return lines


def _pending_section(report: ReconciliationReport) -> list[str]:
    pending = [o for o in report.outcomes if o.status in PENDING_STATUSES]
    if not pending:
        return []
    lines = ["## Pending", ""]
    for outcome in pending:
        line = f" - **{outcome.group_name}**: {PENDING_STATUSES[outcome.status]}"
        if outcome.error:
            line += f" ({outcome.error})"
        lines.append(line)
    lines.append("")
    return lines


def _dependencies_section(dependencies: list[DetectedDependency]) -> list[str]:
    lines = ["## Detected dependencies", ""]
    if not dependencies:
        return lines + ["No dependencies detected.", ""]

    by_ecosystem: dict[str, dict[str, list[DetectedDependency]]] = {}
    for dep in dependencies:
        by_ecosystem.setdefault(dep.ecosystem, {}).setdefault(dep.source_file, []).append(dep)

    for ecosystem, files in by_ecosystem.items():
        lines += [f"<details><summary>{ecosystem_label(ecosystem)}</summary>", "<blockquote>", ""]
        for source_file, deps in files.items():
            lines += [f"<details><summary>{source_file}</summary>", ""]
            seen = dict.fromkeys((d.name, d.version) for d in deps)
            lines += [f" - `{name} {version}`" for name, version in seen]
            lines += ["", "</details>", ""]
        lines += ["</blockquote>", "</details>", ""]
    return lines


def render_dashboard(
    requests: list[ExistingChangeRequest],
    dependencies: list[DetectedDependency],
    report: ReconciliationReport | None = None,
) -> str:
    """Markdown body of the dashboard issue."""
    lines = [
        "This issue lists depbot's open updates and the dependencies it detected. "
        "It is rewritten on every run.",
        "",
    ]
    if requests:
        lines += _open_section(requests)
    if report is not None:
        lines += _pending_section(report)
    lines += _dependencies_section(dependencies)
    lines += ["---", "", DASHBOARD_MARKER]
    return "\n".join(lines)


def update_dashboard(
    tracker: IssueTracker,
    ecosystems: list[Ecosystem],
    config: ReconciliationConfig,
    report: ReconciliationReport | None = None,
) -> ExistingIssue | None:
    """Create or refresh the dashboard issue.

    Returns:
        The dashboard issue, or None when it is disabled or a dry run has
        nothing to show yet.

    Raises:
        PlatformError: If the issue cannot be listed, created or updated.
    """
    if not config.dashboard:
        return None

    requests = candidate_requests(tracker.list_open_requests(), config)
    body = render_dashboard(requests, collect_dependencies(ecosystems), report)
    title = config.dashboard_title
    existing = tracker.find_issue(title, DASHBOARD_MARKER)

    if existing is not None and existing.body == body:
        logger.info("Dashboard #%s is up to date", existing.number)
        return existing

    if config.dry_run:
        action = f"update #{existing.number}" if existing else "create"
        logger.info("[dry-run] Would %s the dependency dashboard", action)
        return existing

    if existing is not None:
        tracker.update_issue(existing.number, title, body)
        existing.body = body
        logger.info("Updated dashboard #%s", existing.number)
        return existing

    created = tracker.create_issue(title, body, list(config.dashboard_labels))
    logger.info("Opened dashboard #%s", created.number)
    return created
