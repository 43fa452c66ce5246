"""Reconcile candidate updates with the pull requests already open.

For each group the orchestrator decides between skip, create, update in
place and close, then carries the decision out through the platform. The
pass keeps no state beyond its own duration: everything it knows about
earlier runs comes from the open pull requests themselves.

Groups are processed one at a time over a shared git working tree.
"""

from __future__ import annotations

import logging
from pathlib import Path

from depbot.config import ReconciliationConfig
from depbot.ecosystems.base import Ecosystem, generate_for, manifests_for
from depbot.engine.autoclose import close_comment, should_close
from depbot.engine.body import branch_name, recorded_updates, update_signature
from depbot.engine.differ import differs_from_disk, has_differences
from depbot.engine.filters import prepare_candidates
from depbot.engine.grouping import group_updates
from depbot.engine.matcher import candidate_requests, find_all_matches, find_match
from depbot.errors import (
    GenerationEmptyError,
    GitError,
    OpenRequestsUnavailableError,
    PlatformError,
)
from depbot.models import (
    CandidateUpdate,
    CloseReason,
    CloseVerdict,
    ExistingChangeRequest,
    FileUpdate,
    ReconciliationDecision,
    RequestOptions,
    ScanFailures,
    UpdateGroup,
)
from depbot.platform.base import Platform
from depbot.platform.git import GitRepo
from depbot.render import commit_message, recorded_from, render_group, render_labels
from depbot.report import GroupOutcome, OutcomeStatus, ReconciliationReport

logger = logging.getLogger(__name__)


class Reconciler:
    """One reconciliation pass over a repository.

    Args:
        platform: Pull request and branch operations.
        ecosystems: Generators for the manifests each group touches.
        config: Reconciliation settings.
        project_root: Working tree the ecosystems read and write.
        repo: Git checkout of ``project_root``; enables the clean reset
            before generation and branch content comparison.
        failures: What the scan behind the candidates could not look at.
    """

    def __init__(
        self,
        platform: Platform,
        ecosystems: list[Ecosystem],
        config: ReconciliationConfig,
        project_root: Path,
        repo: GitRepo | None = None,
        failures: ScanFailures | None = None,
    ):
        self.platform = platform
        self.ecosystems = ecosystems
        self.config = config
        self.project_root = project_root
        self.repo = repo
        self.failures = failures or ScanFailures()
        self.manifests = manifests_for(ecosystems)

        self._claimed: set[int] = set()
        self._group_branches: set[str] = set()
        self._created = 0

    # --- Pass ---

    def reconcile(self, candidates: list[CandidateUpdate]) -> ReconciliationReport:
        """Run the pass.

        Raises:
            OpenRequestsUnavailableError: If open requests cannot be listed
                at the start. Every other failure is confined to its group.
        """
        candidates = prepare_candidates(candidates, self.config)
        groups = [render_group(g, self.config) for g in group_updates(candidates, self.config)]
        logger.info("%d candidate update(s) in %d group(s)", len(candidates), len(groups))

        try:
            open_requests = self.platform.list_open_requests()
        except OpenRequestsUnavailableError:
            raise
        except PlatformError as e:
            raise OpenRequestsUnavailableError(str(e)) from e
        logger.info("%d open pull request(s)", len(open_requests))

        self._claimed = set()
        self._created = 0
        self._group_branches = {branch_name(g.name, self.config.branch_prefix) for g in groups}

        report = ReconciliationReport()
        for group in groups:
            report.add(self._reconcile_group(group, candidates, report))

        if self.config.close_obsolete:
            report.closed.extend(self._sweep(candidates))

        return report

    # --- Per group ---

    def _reconcile_group(
        self,
        group: UpdateGroup,
        candidates: list[CandidateUpdate],
        report: ReconciliationReport,
    ) -> GroupOutcome:
        branch = branch_name(group.name, self.config.branch_prefix)
        outcome = GroupOutcome(group.name, branch, ReconciliationDecision.create_new())
        try:
            # Earlier groups may have opened or closed requests
            requests = self.platform.list_open_requests()
            exclude = self._claimed | {
                r.number
                for r in requests
                if r.head_branch in self._group_branches and r.head_branch != branch
            }
            match = find_match(group, requests, self.config, exclude)
            if not match:
                return self._create(group, branch, requests, outcome)

            existing = match.matched
            self._claimed.add(existing.number)
            logger.debug("%s matches #%s (%s)", group.name, existing.number, match.basis.value)
            outcome.request_number = existing.number
            outcome.request_url = existing.url
            report.closed.extend(self._close_duplicates(group, existing, requests, exclude))

            verdict = should_close(
                existing,
                candidates,
                self.config,
                self.project_root,
                self.manifests,
                self.failures,
            )
            if verdict.close:
                outcome.decision = ReconciliationDecision.close_request(existing, verdict.reason)
                return self._close(existing, verdict, outcome)

            if update_signature(recorded_updates(existing.body)) == update_signature(
                recorded_from(group)
            ):
                logger.info("#%s is up to date for %s", existing.number, group.name)
                outcome.decision = ReconciliationDecision.skip(existing)
                return outcome

            outcome.decision = ReconciliationDecision.update_in_place(existing)
            return self._update(group, existing, outcome)

        except GenerationEmptyError as e:
            logger.warning("%s: %s", group.name, e)
            outcome.status = OutcomeStatus.EMPTY
            return outcome
        except Exception as e:
            logger.exception("Failed to reconcile %s", group.name)
            outcome.status = OutcomeStatus.FAILED
            outcome.error = str(e)
            return outcome

    def _create(
        self,
        group: UpdateGroup,
        branch: str,
        requests: list[ExistingChangeRequest],
        outcome: GroupOutcome,
    ) -> GroupOutcome:
        if self._created >= self.config.max_prs_per_run:
            logger.info("max_prs_per_run reached, deferring %s", group.name)
            outcome.status = OutcomeStatus.DEFERRED
            return outcome
        self._created += 1

        if self.config.dry_run:
            logger.info("[dry-run] Would open a pull request for %s", group.name)
            outcome.status = OutcomeStatus.DRY_RUN
            return outcome

        on_branch = [r for r in requests if r.head_branch == branch]
        if on_branch:
            raise PlatformError(f"{branch} is already used by #{on_branch[0].number}")
        if self.platform.branch_exists(branch):
            logger.info("Deleting orphaned branch %s", branch)
            self.platform.delete_branch(branch)

        self.platform.create_branch(branch, self.config.base_branch)
        try:
            files = self._generate(group)
            if not differs_from_disk(files, self.project_root):
                raise GenerationEmptyError("generated content matches the working tree")
        except GenerationEmptyError:
            self._created -= 1
            self.platform.delete_branch(branch)
            raise

        self.platform.commit_changes(branch, commit_message(group), files, self.config.base_branch)
        created = self.platform.create_request(
            RequestOptions(
                title=group.title,
                body=group.body,
                head=branch,
                base=self.config.base_branch,
                labels=render_labels(group, self.config),
                reviewers=list(self.config.reviewers),
                assignees=list(self.config.assignees),
            )
        )
        logger.info("Opened #%s for %s", created.number, group.name)
        self._claimed.add(created.number)
        outcome.request_number = created.number
        outcome.request_url = created.url
        return outcome

    def _update(
        self, group: UpdateGroup, existing: ExistingChangeRequest, outcome: GroupOutcome
    ) -> GroupOutcome:
        if self.config.dry_run:
            logger.info("[dry-run] Would update #%s for %s", existing.number, group.name)
            outcome.status = OutcomeStatus.DRY_RUN
            return outcome

        files = self._generate(group)
        if self.repo is not None and not has_differences(files, existing.head_branch, self.repo):
            # Same payload; the branch is recreated anyway
            logger.info("Content of %s unchanged, refreshing branch", existing.head_branch)

        self.platform.commit_changes(
            existing.head_branch, commit_message(group), files, self.config.base_branch
        )
        self.platform.update_request(
            existing.number,
            RequestOptions(
                title=group.title,
                body=group.body,
                labels=render_labels(group, self.config),
            ),
        )
        logger.info("Updated #%s for %s", existing.number, group.name)
        return outcome

    def _generate(self, group: UpdateGroup) -> list[FileUpdate]:
        self._reset()
        files = generate_for(self.ecosystems, group.updates)
        if not files:
            raise GenerationEmptyError("no file changes generated")
        return files

    def _reset(self) -> None:
        if self.repo is None:
            return
        try:
            self.repo.reset_to_base(self.config.base_branch)
        except GitError as e:
            logger.warning("Could not reset working tree, generating anyway: %s", e)

    # --- Closing ---

    def _close(
        self, existing: ExistingChangeRequest, verdict: CloseVerdict, outcome: GroupOutcome
    ) -> GroupOutcome:
        if self.config.dry_run:
            logger.info("[dry-run] Would close #%s (%s)", existing.number, verdict.reason.value)
            outcome.status = OutcomeStatus.DRY_RUN
            return outcome

        self.platform.add_comment(existing.number, close_comment(verdict))
        self.platform.close_request(existing.number)
        # Only branches under the bot prefix are deleted
        if existing.head_branch.startswith(f"{self.config.branch_prefix}/"):
            self.platform.delete_branch(existing.head_branch)
        logger.info("Closed #%s (%s)", existing.number, verdict.reason.value)
        return outcome

    def _close_duplicates(
        self,
        group: UpdateGroup,
        kept: ExistingChangeRequest,
        requests: list[ExistingChangeRequest],
        exclude: set[int],
    ) -> list[GroupOutcome]:
        outcomes = []
        for duplicate in find_all_matches(group, requests, self.config, exclude | {kept.number}):
            request = duplicate.matched
            self._claimed.add(request.number)
            verdict = CloseVerdict(True, CloseReason.DUPLICATE, str(kept.number))
            outcome = GroupOutcome(
                group.name,
                request.head_branch,
                ReconciliationDecision.close_request(request, CloseReason.DUPLICATE),
                request_number=request.number,
                request_url=request.url,
            )
            outcomes.append(self._guarded_close(request, verdict, outcome))
        return outcomes

    def _guarded_close(
        self, request: ExistingChangeRequest, verdict: CloseVerdict, outcome: GroupOutcome
    ) -> GroupOutcome:
        try:
            return self._close(request, verdict, outcome)
        except Exception as e:
            logger.exception("Failed to close #%s", request.number)
            outcome.status = OutcomeStatus.FAILED
            outcome.error = str(e)
            return outcome

    def _sweep(self, candidates: list[CandidateUpdate]) -> list[GroupOutcome]:
        """Close bot requests that no group claimed and that have become obsolete."""
        try:
            requests = self.platform.list_open_requests()
        except PlatformError as e:
            logger.warning("Skipping obsolete sweep: %s", e)
            return []

        outcomes = []
        for request in candidate_requests(requests, self.config, exclude=self._claimed):
            verdict = should_close(
                request, candidates, self.config, self.project_root, self.manifests, self.failures
            )
            if not verdict.close:
                continue
            outcome = GroupOutcome(
                f"#{request.number} {request.title}",
                request.head_branch,
                ReconciliationDecision.close_request(request, verdict.reason),
                request_number=request.number,
                request_url=request.url,
            )
            outcomes.append(self._guarded_close(request, verdict, outcome))
        return outcomes


def reconcile(
    candidates: list[CandidateUpdate],
    config: ReconciliationConfig,
    platform: Platform,
    ecosystems: list[Ecosystem],
    project_root: Path,
    repo: GitRepo | None = None,
    failures: ScanFailures | None = None,
) -> ReconciliationReport:
    """Reconcile ``candidates`` against the platform's open pull requests."""
    reconciler = Reconciler(platform, ecosystems, config, project_root, repo, failures)
    return reconciler.reconcile(candidates)
