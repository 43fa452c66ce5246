"""CLI entry point.

Commands:
    depbot scan              list available updates, grouped as they would be proposed
    depbot update            reconcile pull requests with the available updates
    depbot dashboard         refresh the dependency dashboard issue
    depbot init              write a starter depbot.toml
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import re
import sys
from pathlib import Path

from depbot.config import ReconciliationConfig, default_config_path, load_config, save_config
from depbot.errors import ConfigError, DepbotError, OpenRequestsUnavailableError

logger = logging.getLogger(__name__)

_REMOTE_RE = re.compile(r"github\.com[:/](?P<owner>[^/]+)/(?P<repo>[^/]+?)(?:\.git)?/?$")


def setup_logging(level: str) -> None:
    """Send log records through rich on stderr so stdout stays machine-readable."""
    from rich.console import Console
    from rich.logging import RichHandler

    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=numeric_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # Keep HTTP client chatter out of normal runs
    if numeric_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def parse_remote(url: str) -> tuple[str, str] | None:
    """Extract (owner, repo) from a GitHub remote URL."""
    match = _REMOTE_RE.search(url.strip())
    if not match:
        return None
    return match["owner"], match["repo"]


def detect_repository(project: Path) -> tuple[str, str] | None:
    from depbot.platform.git import run

    code, stdout, _ = run(["git", "remote", "get-url", "origin"], cwd=project, timeout=10)
    if code != 0:
        return None
    return parse_remote(stdout)


def resolve_config(args: argparse.Namespace) -> ReconciliationConfig:
    project = Path(args.project).resolve()
    config = load_config(Path(args.config) if args.config else default_config_path(project))
    if args.verbose:
        config = config.with_overrides(log_level="debug")
    if getattr(args, "dry_run", False):
        config = config.with_overrides(dry_run=True)
    if not config.owner or not config.repo_name:
        detected = detect_repository(project)
        if detected:
            config = config.with_overrides(owner=detected[0], repo_name=detected[1])
    return config


def _registry():
    from depbot.ecosystems import RegistryClient, RegistryConfig

    return RegistryClient(RegistryConfig(github_token=os.environ.get("GITHUB_TOKEN", "")))


def _scan(project: Path, config: ReconciliationConfig, registry):
    from depbot.ecosystems import default_ecosystems, scan_all
    from depbot.engine.filters import prepare_candidates

    ecosystems = default_ecosystems(project, registry)
    scanned = scan_all(ecosystems)
    if scanned.failures.ecosystems:
        failed = ", ".join(sorted(scanned.failures.ecosystems))
        logger.warning("Incomplete scan: %s failed", failed)
    return ecosystems, prepare_candidates(scanned.updates, config), scanned.failures


def cmd_scan(args: argparse.Namespace, config: ReconciliationConfig) -> int:
    """Show available updates grouped the way ``update`` would propose them."""
    from rich import box
    from rich.console import Console
    from rich.table import Table

    from depbot.engine.grouping import group_updates

    project = Path(args.project).resolve()
    with _registry() as registry:
        _, candidates, _ = _scan(project, config, registry)
    groups = group_updates(candidates, config)

    if args.json:
        data = [
            {
                "group": group.name,
                "update_type": group.update_type.value,
                "updates": [
                    {
                        "name": u.name,
                        "current": u.current_version,
                        "latest": u.new_version,
                        "type": u.update_type.value,
                        "ecosystem": u.ecosystem,
                        "file": u.source_file,
                    }
                    for u in group.updates
                ],
            }
            for group in groups
        ]
        print(json.dumps(data, indent=2))
        return 0

    console = Console()
    if not groups:
        console.print("[green]✓ All dependencies are up to date[/]")
        return 0

    type_colors = {"major": "red", "minor": "yellow", "patch": "green"}
    for group in groups:
        table = Table(title=group.name, box=box.ROUNDED)
        table.add_column("Package")
        table.add_column("Current")
        table.add_column("Latest")
        table.add_column("Type")
        table.add_column("File")
        for u in group.updates:
            color = type_colors.get(u.update_type.value, "")
            table.add_row(
                u.name,
                u.current_version,
                u.new_version,
                f"[{color}]{u.update_type.value}[/]",
                u.source_file,
            )
        console.print(table)

    console.print(f"\n[bold]{len(candidates)}[/] update(s) in [bold]{len(groups)}[/] group(s)")
    return 0


def _github_token(config: ReconciliationConfig) -> str | None:
    """The API token, or None after reporting why the command cannot run."""
    if not config.owner or not config.repo_name:
        print(
            "Repository unknown: set [repository] owner and name in depbot.toml",
            file=sys.stderr,
        )
        return None

    token = os.environ.get("GITHUB_TOKEN", "")
    if not token and not config.dry_run:
        print("GITHUB_TOKEN is not set", file=sys.stderr)
        return None
    return token


def _refresh_dashboard(platform, ecosystems, config: ReconciliationConfig, report=None) -> None:
    from depbot.dashboard import update_dashboard
    from depbot.errors import PlatformError

    try:
        update_dashboard(platform, ecosystems, config, report)
    except PlatformError as e:
        logger.warning("Could not update the dependency dashboard: %s", e)


def cmd_update(args: argparse.Namespace, config: ReconciliationConfig) -> int:
    """Reconcile open pull requests with the available updates."""
    from depbot.engine.orchestrator import reconcile
    from depbot.platform.git import GitRepo
    from depbot.platform.github import GitHubConfig, GitHubPlatform
    from depbot.report import format_report

    token = _github_token(config)
    if token is None:
        return 1

    project = Path(args.project).resolve()
    repo = GitRepo(project)
    gh_config = GitHubConfig(owner=config.owner, repo=config.repo_name, token=token)

    with _registry() as registry, GitHubPlatform(gh_config, repo) as platform:
        ecosystems, candidates, failures = _scan(project, config, registry)
        try:
            report = reconcile(
                candidates, config, platform, ecosystems, project, repo, failures
            )
        except OpenRequestsUnavailableError as e:
            print(f"Aborted: {e}", file=sys.stderr)
            return 1
        _refresh_dashboard(platform, ecosystems, config, report)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(format_report(report))
    return 0 if report.ok else 1


def cmd_dashboard(args: argparse.Namespace, config: ReconciliationConfig) -> int:
    """Refresh the dependency dashboard issue without touching pull requests."""
    from depbot.dashboard import update_dashboard
    from depbot.ecosystems import default_ecosystems
    from depbot.platform.git import GitRepo
    from depbot.platform.github import GitHubConfig, GitHubPlatform

    token = _github_token(config)
    if token is None:
        return 1
    if not config.dashboard:
        print("The dashboard is disabled ([dashboard] enabled = false)", file=sys.stderr)
        return 1

    project = Path(args.project).resolve()
    gh_config = GitHubConfig(owner=config.owner, repo=config.repo_name, token=token)
    with _registry() as registry, GitHubPlatform(gh_config, GitRepo(project)) as platform:
        issue = update_dashboard(platform, default_ecosystems(project, registry), config)

    if args.json:
        print(json.dumps({"number": issue.number, "url": issue.url} if issue else None))
    elif issue:
        print(f"Dependency dashboard: #{issue.number} {issue.url}")
    return 0


def cmd_init(args: argparse.Namespace) -> int:
    """Write a starter configuration file."""
    project = Path(args.project).resolve()
    path = Path(args.config) if args.config else default_config_path(project)
    if path.exists() and not args.force:
        print(f"{path} already exists (use --force to overwrite)", file=sys.stderr)
        return 1

    config = ReconciliationConfig()
    detected = detect_repository(project)
    if detected:
        config = config.with_overrides(owner=detected[0], repo_name=detected[1])
    written = save_config(config, path)
    print(f"Wrote {written}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    from depbot import __version__

    parser = argparse.ArgumentParser(
        prog="depbot",
        description="Keep dependency update pull requests in step with your manifests",
    )
    parser.add_argument("--config", help="Path to depbot.toml (default: <project>/depbot.toml)")
    parser.add_argument("--project", default=".", help="Project root (default: current dir)")
    parser.add_argument("--json", action="store_true", help="JSON output")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("scan", help="List available updates")

    update_parser = subparsers.add_parser("update", help="Create, update or close pull requests")
    update_parser.add_argument(
        "--dry-run", action="store_true", help="Decide everything, change nothing"
    )

    dashboard_parser = subparsers.add_parser(
        "dashboard", help="Create or refresh the dependency dashboard issue"
    )
    dashboard_parser.add_argument(
        "--dry-run", action="store_true", help="Render the dashboard, change nothing"
    )

    init_parser = subparsers.add_parser("init", help="Write a starter depbot.toml")
    init_parser.add_argument("--force", action="store_true", help="Overwrite an existing file")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the depbot CLI.

    Returns:
        Exit code (0 for success, non-zero when the pass aborts or a group failed).
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == "init":
        setup_logging("debug" if args.verbose else "info")
        return cmd_init(args)

    try:
        config = resolve_config(args)
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1
    setup_logging(config.log_level)

    try:
        if args.command == "scan":
            return cmd_scan(args, config)
        if args.command == "update":
            return cmd_update(args, config)
        if args.command == "dashboard":
            return cmd_dashboard(args, config)
    except DepbotError as e:
        logger.error("%s", e)
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
