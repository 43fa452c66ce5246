"""Tests for the reconciliation pass."""

import logging
from unittest.mock import MagicMock

import pytest

from depbot.engine.body import encode_marker
from depbot.engine.orchestrator import Reconciler, reconcile
from depbot.errors import GitError, OpenRequestsUnavailableError, PlatformError
from depbot.models import CloseReason, DecisionKind, RecordedUpdate, ScanFailures
from depbot.platform.git import GitRepo
from depbot.report import OutcomeStatus
from helpers import FakePlatform, make_request, make_update, write_manifest

NON_MAJOR_BRANCH = "depbot/update-npm-non-major-updates"
MAJOR_BRANCH = "depbot/update-npm-major-updates"


@pytest.fixture
def non_major(tmp_path):
    """Two non-major npm updates with their manifest on disk."""
    updates = [make_update("lodash", "4.17.20", "4.17.21"), make_update("axios", "1.5.0", "1.6.0")]
    write_manifest(tmp_path, "package.json", updates)
    return updates


@pytest.fixture
def mixed(tmp_path):
    """One major and one non-major npm update."""
    updates = [make_update("react", "17.0.0", "18.2.0"), make_update("lodash", "4.17.20", "4.17.21")]
    write_manifest(tmp_path, "package.json", updates)
    return updates


def _marker(*entries):
    return encode_marker([RecordedUpdate(*e, "package.json", "npm") for e in entries])


def _git_repo(files=None):
    """GitRepo double serving branch files keyed by (ref, path)."""
    repo = MagicMock(spec=GitRepo)
    repo.remote = "origin"
    repo.read_file.side_effect = lambda ref, path: (files or {}).get((ref, path))
    return repo


class TestCreate:
    """Tests for opening new requests."""

    def test_creates_request_on_deterministic_branch(self, config, platform, npm, tmp_path, non_major):
        """Test a new group gets a branch, a commit and a request."""
        report = reconcile(non_major, config, platform, [npm], tmp_path)

        (outcome,) = report.outcomes
        assert outcome.decision.kind is DecisionKind.CREATE_NEW
        assert outcome.status is OutcomeStatus.APPLIED
        assert outcome.request_number == 100
        assert platform.called("create_branch") == [("create_branch", NON_MAJOR_BRANCH, "main")]

        (commit,) = platform.called("commit_changes")
        assert commit[1] == NON_MAJOR_BRANCH
        assert [f.content for f in commit[2]] == ["axios@1.6.0\nlodash@4.17.21\n"]

        (create,) = platform.called("create_request")
        options = create[1]
        assert options.title == "chore(deps): update 2 npm dependencies (minor)"
        assert options.head == NON_MAJOR_BRANCH
        assert options.labels == ["dependencies", "minor", "patch", "npm"]
        assert report.closed == []

    def test_second_run_is_idempotent(self, config, platform, npm, tmp_path, non_major):
        """Test a repeated pass with the same updates writes nothing."""
        reconcile(non_major, config, platform, [npm], tmp_path)
        platform.calls.clear()

        report = reconcile(non_major, config, platform, [npm], tmp_path)

        assert platform.writes == []
        assert [o.decision.kind for o in report.outcomes] == [DecisionKind.SKIP]
        assert report.outcomes[0].request_number == 100

    def test_orphan_branch_is_replaced(self, config, npm, tmp_path, non_major):
        """Test a leftover branch without a request is deleted first."""
        platform = FakePlatform(branches={NON_MAJOR_BRANCH})

        reconcile(non_major, config, platform, [npm], tmp_path)

        names = [c[0] for c in platform.writes]
        assert names[:2] == ["delete_branch", "create_branch"]
        assert platform.called("create_request")

    def test_empty_generation_removes_branch(self, config, platform, npm, tmp_path, non_major):
        """Test a group whose files already match disk opens nothing."""
        (tmp_path / "package.json").write_text("axios@1.6.0\nlodash@4.17.21\n")

        report = reconcile(non_major, config, platform, [npm], tmp_path)

        assert report.outcomes[0].status is OutcomeStatus.EMPTY
        assert platform.called("delete_branch") == [("delete_branch", NON_MAJOR_BRANCH)]
        assert not platform.called("commit_changes")
        assert not platform.called("create_request")

    def test_max_prs_per_run(self, config, platform, npm, tmp_path, mixed):
        """Test groups past the creation limit are deferred."""
        config = config.with_overrides(max_prs_per_run=1)

        report = reconcile(mixed, config, platform, [npm], tmp_path)

        assert [o.status for o in report.outcomes] == [
            OutcomeStatus.APPLIED,
            OutcomeStatus.DEFERRED,
        ]
        assert len(platform.called("create_request")) == 1

    def test_dry_run_writes_nothing(self, config, platform, npm, tmp_path, mixed):
        """Test dry-run decides but never calls a mutating operation."""
        report = reconcile(mixed, config.with_overrides(dry_run=True), platform, [npm], tmp_path)

        assert platform.writes == []
        assert [o.status for o in report.outcomes] == [OutcomeStatus.DRY_RUN] * 2
        assert npm.generated == []

    def test_commits_are_never_empty(self, config, platform, npm, tmp_path, mixed):
        """Test every commit carries at least one file."""
        reconcile(mixed, config, platform, [npm], tmp_path)

        commits = platform.called("commit_changes")
        assert len(commits) == 2
        assert all(commit[2] for commit in commits)


class TestUpdateInPlace:
    """Tests for refreshing matched requests."""

    def test_stale_request_is_updated(self, config, npm, tmp_path, non_major):
        """Test a request missing an update is rewritten on its own branch."""
        existing = make_request(
            7,
            title="chore(deps): update dependency lodash to v4.17.21",
            head=NON_MAJOR_BRANCH,
            body=_marker(("lodash", "4.17.20", "4.17.21")),
        )
        platform = FakePlatform(requests=[existing], branches={NON_MAJOR_BRANCH})

        report = reconcile(non_major, config, platform, [npm], tmp_path)

        (outcome,) = report.outcomes
        assert outcome.decision.kind is DecisionKind.UPDATE_IN_PLACE
        assert outcome.request_number == 7
        assert platform.called("commit_changes")[0][1] == NON_MAJOR_BRANCH
        assert not platform.called("create_request")
        assert existing.title == "chore(deps): update 2 npm dependencies (minor)"
        assert "axios" in existing.body

    def test_same_bump_in_new_manifest_is_updated(self, config, platform, npm, tmp_path, non_major):
        """Test a package already in the request but needed by another file is not skipped."""
        reconcile(non_major, config, platform, [npm], tmp_path)
        platform.calls.clear()
        web = make_update("lodash", "4.17.20", "4.17.21", source_file="apps/web/package.json")
        write_manifest(tmp_path, "apps/web/package.json", [web])

        report = reconcile(non_major + [web], config, platform, [npm], tmp_path)

        (outcome,) = report.outcomes
        assert outcome.decision.kind is DecisionKind.UPDATE_IN_PLACE
        assert outcome.request_number == 100
        (commit,) = platform.called("commit_changes")
        assert sorted(f.path for f in commit[2]) == ["apps/web/package.json", "package.json"]
        assert "apps/web/package.json" in platform.requests[0].body

    def test_legacy_branch_is_updated_in_place(self, config, npm, tmp_path, non_major):
        """Test a timestamped branch keeps its request instead of a new one."""
        legacy = NON_MAJOR_BRANCH + "-1700000000"
        existing = make_request(
            8, head=legacy, body=_marker(("lodash", "4.17.20", "4.17.21"))
        )
        platform = FakePlatform(requests=[existing], branches={legacy})

        report = reconcile(non_major, config, platform, [npm], tmp_path)

        assert report.outcomes[0].decision.kind is DecisionKind.UPDATE_IN_PLACE
        assert platform.called("commit_changes")[0][1] == legacy


class TestClose:
    """Tests for closing obsolete and duplicate requests."""

    def test_satisfied_request_is_closed(self, config, npm, tmp_path, non_major):
        """Test a matched request whose updates are done gets closed."""
        existing = make_request(
            9, head=NON_MAJOR_BRANCH, body=_marker(("left-pad", "1.0.0", "1.3.0"))
        )
        platform = FakePlatform(requests=[existing], branches={NON_MAJOR_BRANCH})

        report = reconcile(non_major, config, platform, [npm], tmp_path)

        (outcome,) = report.outcomes
        assert outcome.decision.kind is DecisionKind.CLOSE
        assert outcome.decision.reason is CloseReason.ALREADY_SATISFIED
        assert "already satisfied" in platform.comments[9][0]
        assert [c[0] for c in platform.writes] == ["add_comment", "close_request", "delete_branch"]
        assert existing.state == "closed"

    def test_foreign_branch_is_not_deleted(self, config, npm, tmp_path, non_major):
        """Test closing keeps branches outside the bot prefix."""
        existing = make_request(
            9,
            title="chore(deps): update 2 npm dependencies (minor)",
            head="chore/manual-deps",
            author="depbot[bot]",
            body=_marker(("left-pad", "1.0.0", "1.3.0")),
        )
        platform = FakePlatform(requests=[existing])

        reconcile(non_major, config, platform, [npm], tmp_path)

        assert platform.called("close_request") == [("close_request", 9)]
        assert not platform.called("delete_branch")

    def test_duplicates_are_closed(self, config, npm, tmp_path, non_major):
        """Test extra structural matches are closed as duplicates of the kept one."""
        body = _marker(("lodash", "4.17.20", "4.17.21"), ("axios", "1.5.0", "1.6.0"))
        kept = make_request(10, head=NON_MAJOR_BRANCH, body=body)
        duplicate = make_request(11, head=NON_MAJOR_BRANCH + "-1700000000", body=body)
        platform = FakePlatform(requests=[kept, duplicate])

        report = reconcile(non_major, config, platform, [npm], tmp_path)

        assert report.outcomes[0].decision.kind is DecisionKind.SKIP
        (closed,) = report.closed
        assert closed.request_number == 11
        assert closed.decision.reason is CloseReason.DUPLICATE
        assert platform.comments[11] == ["Closing this pull request as a duplicate of #10."]
        assert kept.state == "open"

    def test_sweep_closes_unclaimed_obsolete(self, config, npm, tmp_path, non_major):
        """Test bot requests no group claimed are closed when obsolete."""
        body = _marker(("lodash", "4.17.20", "4.17.21"), ("axios", "1.5.0", "1.6.0"))
        current = make_request(10, head=NON_MAJOR_BRANCH, body=body)
        stale = make_request(
            20, head="depbot/update-old-group", body=_marker(("moment", "2.0.0", "2.29.0"))
        )
        foreign = make_request(
            21,
            head="dependabot/npm_and_yarn/moment",
            author="dependabot[bot]",
            body=_marker(("moment", "2.0.0", "2.29.0")),
        )
        platform = FakePlatform(requests=[current, stale, foreign])

        report = reconcile(non_major, config, platform, [npm], tmp_path)

        assert [o.request_number for o in report.closed] == [20]
        assert report.closed[0].group_name == "#20 chore(deps): update something"
        assert foreign.state == "open"

    def test_sweep_disabled(self, config, npm, tmp_path, non_major):
        """Test close_obsolete = false leaves unclaimed requests alone."""
        stale = make_request(
            20, head="depbot/update-old-group", body=_marker(("moment", "2.0.0", "2.29.0"))
        )
        platform = FakePlatform(requests=[stale])
        config = config.with_overrides(close_obsolete=False)

        report = reconcile(non_major, config, platform, [npm], tmp_path)

        assert report.closed == []
        assert stale.state == "open"


class TestFailures:
    """Tests for error isolation."""

    def test_failure_is_confined_to_its_group(self, config, platform, npm, tmp_path, mixed):
        """Test one failing group does not stop the next."""
        platform.fail_branches.add(MAJOR_BRANCH)

        report = reconcile(mixed, config, platform, [npm], tmp_path)

        failed, created = report.outcomes
        assert failed.status is OutcomeStatus.FAILED
        assert "rejected" in failed.error
        assert created.status is OutcomeStatus.APPLIED
        assert created.request_number == 100
        assert report.ok is False

    def test_listing_failure_aborts(self, config, platform, npm, tmp_path, non_major):
        """Test the pass aborts when open requests cannot be listed."""
        platform.list_error = PlatformError("GitHub API returned 502")

        with pytest.raises(OpenRequestsUnavailableError):
            reconcile(non_major, config, platform, [npm], tmp_path)
        assert platform.writes == []

    def test_branch_taken_by_other_request(self, config, npm, tmp_path, non_major):
        """Test a foreign request on the group branch fails the group instead of clobbering it."""
        squatter = make_request(
            30, head=NON_MAJOR_BRANCH, author="renovate[bot]", title="Update stuff"
        )
        platform = FakePlatform(requests=[squatter])

        report = reconcile(non_major, config, platform, [npm], tmp_path)

        assert report.outcomes[0].status is OutcomeStatus.FAILED
        assert "#30" in report.outcomes[0].error
        assert not platform.called("create_branch")


class TestScanFailures:
    """Tests for passes whose scan was incomplete."""

    def test_sweep_keeps_requests_of_failed_ecosystem(self, config, npm, tmp_path, non_major):
        """Test a failed npm scan does not close npm requests as satisfied."""
        stale = make_request(
            20, head="depbot/update-old-group", body=_marker(("moment", "2.0.0", "2.29.0"))
        )
        platform = FakePlatform(requests=[stale])

        report = reconcile(
            [], config, platform, [npm], tmp_path, failures=ScanFailures(ecosystems={"npm"})
        )

        assert report.closed == []
        assert stale.state == "open"
        assert platform.writes == []

    def test_matched_request_with_failed_lookup_is_updated(self, config, npm, tmp_path, non_major):
        """Test a package missing only because its lookup failed keeps the request open."""
        existing = make_request(
            9, head=NON_MAJOR_BRANCH, body=_marker(("left-pad", "1.0.0", "1.3.0"))
        )
        platform = FakePlatform(requests=[existing], branches={NON_MAJOR_BRANCH})
        failures = ScanFailures(packages={("npm", "left-pad")})

        report = reconcile(non_major, config, platform, [npm], tmp_path, failures=failures)

        assert report.outcomes[0].decision.kind is DecisionKind.UPDATE_IN_PLACE
        assert not platform.called("close_request")


class TestWorkingTree:
    """Tests for the clean reset before each group's generation."""

    def test_reset_before_every_generation(self, config, platform, npm, tmp_path, mixed):
        """Test the working tree is reset once per group, ahead of its generation."""
        repo = _git_repo()
        resets = []
        repo.reset_to_base.side_effect = lambda base: resets.append((base, len(npm.generated)))

        report = reconcile(mixed, config, platform, [npm], tmp_path, repo)

        assert [o.status for o in report.outcomes] == [OutcomeStatus.APPLIED] * 2
        assert resets == [("main", 0), ("main", 1)]
        assert len(npm.generated) == 2

    def test_reset_failure_is_a_warning(self, config, platform, npm, tmp_path, non_major, caplog):
        """Test generation goes ahead when the reset fails."""
        repo = _git_repo()
        repo.reset_to_base.side_effect = GitError(["git", "reset"], 1, "index locked")

        with caplog.at_level(logging.WARNING, logger="depbot.engine.orchestrator"):
            report = reconcile(non_major, config, platform, [npm], tmp_path, repo)

        assert report.outcomes[0].status is OutcomeStatus.APPLIED
        assert platform.called("create_request")
        assert "Could not reset working tree" in caplog.text

    def test_unchanged_branch_is_still_refreshed(self, config, npm, tmp_path, non_major):
        """Test identical branch content recreates the branch with the same payload."""
        existing = make_request(
            7, head=NON_MAJOR_BRANCH, body=_marker(("lodash", "4.17.20", "4.17.21"))
        )
        platform = FakePlatform(requests=[existing], branches={NON_MAJOR_BRANCH})
        repo = _git_repo(
            {(NON_MAJOR_BRANCH, "package.json"): b"axios@1.6.0\nlodash@4.17.21\n"}
        )

        report = reconcile(non_major, config, platform, [npm], tmp_path, repo)

        assert report.outcomes[0].decision.kind is DecisionKind.UPDATE_IN_PLACE
        repo.reset_to_base.assert_called_once_with("main")
        (commit,) = platform.called("commit_changes")
        assert [f.content for f in commit[2]] == ["axios@1.6.0\nlodash@4.17.21\n"]
        assert repo.read_file.call_args.args == (NON_MAJOR_BRANCH, "package.json")


class TestReconciler:
    """Tests for Reconciler state."""

    def test_manifests_come_from_ecosystems(self, config, platform, npm, tmp_path):
        """Test authoritative manifests are collected per ecosystem."""
        reconciler = Reconciler(platform, [npm], config, tmp_path)
        assert reconciler.manifests == {"npm": "package.json"}

    def test_no_candidates(self, config, platform, npm, tmp_path):
        """Test an empty pass only lists requests."""
        report = Reconciler(platform, [npm], config, tmp_path).reconcile([])

        assert report.outcomes == []
        assert platform.writes == []
