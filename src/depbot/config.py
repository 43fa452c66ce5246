"""Reconciliation configuration.

Loaded from ``depbot.toml`` in the project root. The result is a frozen
:class:`ReconciliationConfig` that is passed explicitly into every engine
component; nothing reads configuration from global state.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# tomli-w for writing (tomllib is read-only)
import tomli_w

# tomllib is stdlib in 3.11+, use tomli as fallback for 3.10
try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[import-not-found,no-redef]

from depbot.errors import ConfigError
from depbot.models import UpdateType

DEFAULT_CONFIG_NAME = "depbot.toml"

STRATEGIES = ("all", "major", "minor", "patch")
LOG_LEVELS = ("debug", "info", "warning", "error")


@dataclass(frozen=True)
class GroupRule:
    """A user-defined group: name patterns plus an optional severity filter."""

    name: str
    patterns: tuple[str, ...]
    update_types: tuple[UpdateType, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "patterns": list(self.patterns)}
        if self.update_types:
            data["update_types"] = [t.value for t in self.update_types]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GroupRule:
        name = data.get("name")
        patterns = data.get("patterns")
        if not isinstance(name, str) or not name.strip():
            raise ConfigError("packages.groups entries need a non-empty 'name'")
        if isinstance(patterns, str):
            patterns = [patterns]
        if not patterns or not all(isinstance(p, str) for p in patterns):
            raise ConfigError(f"group '{name}' needs a list of string 'patterns'")
        return cls(
            name=name.strip(),
            patterns=tuple(patterns),
            update_types=tuple(_parse_update_type(t) for t in data.get("update_types", [])),
        )


@dataclass(frozen=True)
class ReconciliationConfig:
    """Immutable settings for one reconciliation pass."""

    # [general]
    log_level: str = "info"
    dry_run: bool = False

    # [repository]
    owner: str = ""
    repo_name: str = ""
    base_branch: str = "main"

    # [bot]
    branch_prefix: str = "depbot"
    bot_authors: tuple[str, ...] = ("github-actions[bot]", "depbot[bot]")
    foreign_markers: tuple[str, ...] = ("dependabot", "renovate")

    # [packages]
    strategy: str = "all"
    ignore: tuple[str, ...] = ()
    ignore_paths: tuple[str, ...] = ()
    respect_latest: bool = True
    exclude_major: bool = False
    groups: tuple[GroupRule, ...] = ()

    # [pull_request]
    labels: tuple[str, ...] = ("dependencies",)
    reviewers: tuple[str, ...] = ()
    assignees: tuple[str, ...] = ()
    max_prs_per_run: int = 10
    close_obsolete: bool = True

    # [dashboard]
    dashboard: bool = True
    dashboard_title: str = "Dependency Dashboard"
    dashboard_labels: tuple[str, ...] = ("dependencies",)

    # File path for this config (not persisted)
    path: Path | None = field(default=None, repr=False, compare=False)

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.repo_name}"

    def with_overrides(self, **kwargs: Any) -> ReconciliationConfig:
        """Return a copy with some values replaced (e.g. from CLI flags)."""
        return dataclasses.replace(self, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to nested dictionary for TOML serialization."""
        return {
            "general": {"log_level": self.log_level, "dry_run": self.dry_run},
            "repository": {
                "owner": self.owner,
                "name": self.repo_name,
                "base_branch": self.base_branch,
            },
            "bot": {
                "branch_prefix": self.branch_prefix,
                "authors": list(self.bot_authors),
                "foreign_markers": list(self.foreign_markers),
            },
            "packages": {
                "strategy": self.strategy,
                "ignore": list(self.ignore),
                "ignore_paths": list(self.ignore_paths),
                "respect_latest": self.respect_latest,
                "exclude_major": self.exclude_major,
                "groups": [rule.to_dict() for rule in self.groups],
            },
            "pull_request": {
                "labels": list(self.labels),
                "reviewers": list(self.reviewers),
                "assignees": list(self.assignees),
                "max_prs_per_run": self.max_prs_per_run,
                "close_obsolete": self.close_obsolete,
            },
            "dashboard": {
                "enabled": self.dashboard,
                "title": self.dashboard_title,
                "labels": list(self.dashboard_labels),
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], path: Path | None = None) -> ReconciliationConfig:
        """Create config from the nested TOML dictionary, validating values."""
        defaults = cls()
        general = _section(data, "general")
        repository = _section(data, "repository")
        bot = _section(data, "bot")
        packages = _section(data, "packages")
        pull_request = _section(data, "pull_request")
        dashboard = _section(data, "dashboard")

        log_level = str(general.get("log_level", defaults.log_level)).lower()
        if log_level not in LOG_LEVELS:
            raise ConfigError(f"general.log_level must be one of {', '.join(LOG_LEVELS)}")

        strategy = str(packages.get("strategy", defaults.strategy)).lower()
        if strategy not in STRATEGIES:
            raise ConfigError(f"packages.strategy must be one of {', '.join(STRATEGIES)}")

        max_prs = pull_request.get("max_prs_per_run", defaults.max_prs_per_run)
        if not isinstance(max_prs, int) or isinstance(max_prs, bool) or max_prs < 1:
            raise ConfigError("pull_request.max_prs_per_run must be a positive integer")

        dashboard_title = str(dashboard.get("title", defaults.dashboard_title)).strip()
        if not dashboard_title:
            raise ConfigError("dashboard.title must not be empty")

        prefix = str(bot.get("branch_prefix", defaults.branch_prefix)).strip().strip("/")
        if not prefix:
            raise ConfigError("bot.branch_prefix must not be empty")

        return cls(
            log_level=log_level,
            dry_run=_bool(general, "dry_run", defaults.dry_run),
            owner=str(repository.get("owner", defaults.owner)),
            repo_name=str(repository.get("name", defaults.repo_name)),
            base_branch=str(repository.get("base_branch", defaults.base_branch)),
            branch_prefix=prefix,
            bot_authors=_str_tuple(bot, "authors", defaults.bot_authors),
            foreign_markers=_str_tuple(bot, "foreign_markers", defaults.foreign_markers),
            strategy=strategy,
            ignore=_str_tuple(packages, "ignore", defaults.ignore),
            ignore_paths=_str_tuple(packages, "ignore_paths", defaults.ignore_paths),
            respect_latest=_bool(packages, "respect_latest", defaults.respect_latest),
            exclude_major=_bool(packages, "exclude_major", defaults.exclude_major),
            groups=_group_rules(packages),
            labels=_str_tuple(pull_request, "labels", defaults.labels),
            reviewers=_str_tuple(pull_request, "reviewers", defaults.reviewers),
            assignees=_str_tuple(pull_request, "assignees", defaults.assignees),
            max_prs_per_run=max_prs,
            close_obsolete=_bool(pull_request, "close_obsolete", defaults.close_obsolete),
            dashboard=_bool(dashboard, "enabled", defaults.dashboard),
            dashboard_title=dashboard_title,
            dashboard_labels=_str_tuple(dashboard, "labels", defaults.dashboard_labels),
            path=path,
        )


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise ConfigError(f"[{name}] must be a table")
    return value


def _bool(section: dict[str, Any], key: str, default: bool) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' must be true or false")
    return value


def _str_tuple(section: dict[str, Any], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = section.get(key, default)
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"'{key}' must be a list of strings")
    return tuple(value)


def _group_rules(packages: dict[str, Any]) -> tuple[GroupRule, ...]:
    raw = packages.get("groups", [])
    if not isinstance(raw, list) or not all(isinstance(g, dict) for g in raw):
        raise ConfigError("packages.groups must be an array of tables")
    rules = tuple(GroupRule.from_dict(g) for g in raw)
    seen: set[str] = set()
    for rule in rules:
        key = rule.name.lower()
        if key in seen:
            raise ConfigError(f"duplicate group name '{rule.name}'")
        seen.add(key)
    return rules


def _parse_update_type(value: Any) -> UpdateType:
    try:
        return UpdateType(str(value).lower())
    except ValueError:
        raise ConfigError(f"unknown update type '{value}' (use major, minor or patch)")


def default_config_path(project_root: Path | None = None) -> Path:
    return (project_root or Path.cwd()) / DEFAULT_CONFIG_NAME


def load_config(path: Path | None = None) -> ReconciliationConfig:
    """Load configuration from file.

    Args:
        path: Optional custom config path. Defaults to ./depbot.toml

    Returns:
        ReconciliationConfig with loaded or default settings.

    Raises:
        ConfigError: If the file cannot be parsed or holds invalid values.
    """
    config_path = path or default_config_path()

    if not config_path.exists():
        # Return defaults, don't create file until save_config()
        return ReconciliationConfig(path=config_path)

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as e:
        raise ConfigError(f"Could not load config from {config_path}: {e}") from e

    return ReconciliationConfig.from_dict(data, path=config_path)


def save_config(config: ReconciliationConfig, path: Path | None = None) -> Path:
    """Save configuration to file and return the path written."""
    target = path or config.path or default_config_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "wb") as f:
        tomli_w.dump(config.to_dict(), f)
    return target
