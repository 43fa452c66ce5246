"""Pull request title, body and label rendering."""

from __future__ import annotations

from urllib.parse import quote

from depbot.config import ReconciliationConfig
from depbot.engine.body import encode_marker
from depbot.engine.grouping import default_group_name, ecosystem_label
from depbot.models import CandidateUpdate, RecordedUpdate, UpdateGroup, UpdateType

# Group sizes above this get the bulk-update label
BULK_THRESHOLD = 5

SECURITY_PACKAGES = (
    "helmet",
    "express-rate-limit",
    "cors",
    "bcrypt",
    "jsonwebtoken",
    "cryptography",
    "pyjwt",
)

ECOSYSTEM_ICONS = {
    "npm": "📦",
    "pip": "🐍",
    "composer": "🎼",
    "github-actions": "🚀",
    "docker": "🐳",
}


def package_url(update: CandidateUpdate) -> str:
    name = update.name
    if update.ecosystem == "npm":
        return f"https://www.npmjs.com/package/{quote(name, safe='@/')}"
    if update.ecosystem == "pip":
        return f"https://pypi.org/project/{name}/"
    if update.ecosystem == "composer":
        return f"https://packagist.org/packages/{name}"
    if update.ecosystem == "github-actions":
        # owner/repo/path@ref -> owner/repo
        return "https://github.com/" + "/".join(name.split("/")[:2])
    if update.ecosystem == "docker":
        return f"https://hub.docker.com/r/{name}"
    return ""


def _distinct(updates: list[CandidateUpdate]) -> list[tuple[CandidateUpdate, list[str]]]:
    """Collapse the same change across several files into one row."""
    rows: dict[tuple[str, str, str], tuple[CandidateUpdate, list[str]]] = {}
    for update in updates:
        key = (update.name, update.current_version, update.new_version)
        if key not in rows:
            rows[key] = (update, [])
        if update.source_file not in rows[key][1]:
            rows[key][1].append(update.source_file)
    return list(rows.values())


def render_title(group: UpdateGroup) -> str:
    rows = _distinct(group.updates)
    kind = group.update_type.value

    if len(rows) == 1:
        update = rows[0][0]
        if update.ecosystem == "github-actions":
            return f"chore(deps): update action {update.name} to {update.new_version}"
        version = update.new_version.lstrip("vV")
        return f"chore(deps): update dependency {update.name} to v{version}"

    ecosystems = group.ecosystems
    default_names = {default_group_name(e, m) for e in ecosystems for m in (True, False)}
    if len(ecosystems) == 1 and group.name in default_names:
        if ecosystems[0] == "github-actions":
            return f"chore(deps): update {len(rows)} GitHub Actions ({kind})"
        label = ecosystem_label(ecosystems[0])
        return f"chore(deps): update {len(rows)} {label} dependencies ({kind})"

    return f"chore(deps): update {group.name} ({kind})"


def _change_cell(update: CandidateUpdate) -> str:
    return f"`{update.current_version}` → `{update.new_version}`"


def render_body(group: UpdateGroup, config: ReconciliationConfig | None = None) -> str:
    """Markdown body: summary, one table per ecosystem, then the hidden marker."""
    lines = ["This PR contains the following updates:", ""]

    by_ecosystem: dict[str, list[CandidateUpdate]] = {}
    for update in group.updates:
        by_ecosystem.setdefault(update.ecosystem, []).append(update)

    if len(by_ecosystem) > 1:
        lines += ["| Type | Count |", "|------|-------|"]
        for ecosystem, updates in by_ecosystem.items():
            icon = ECOSYSTEM_ICONS.get(ecosystem, "•")
            lines.append(f"| {icon} {ecosystem_label(ecosystem)} | {len(_distinct(updates))} |")
        lines += [f"| **Total** | **{len(_distinct(group.updates))}** |", ""]

    for ecosystem, updates in by_ecosystem.items():
        rows = _distinct(updates)
        icon = ECOSYSTEM_ICONS.get(ecosystem, "•")
        noun = "package" if len(rows) == 1 else "packages"
        lines += [
            f"## {icon} {ecosystem_label(ecosystem)}",
            "",
            f"*{len(rows)} {noun} will be updated*",
            "",
            "| Package | Change | Type | File |",
            "|---|---|---|---|",
        ]
        for update, files in rows:
            url = package_url(update)
            package = f"[{update.name}]({url})" if url else f"`{update.name}`"
            lines.append(
                f"| {package} | {_change_cell(update)} | {update.update_type.value} "
                f"| **{', '.join(files)}** |"
            )
        lines.append("")

    if config is not None and config.respect_latest:
        lines += [
            "Dependencies pinned to dynamic versions such as `latest` or `*` are left untouched.",
            "",
        ]

    lines += [
        "---",
        "",
        "This PR was generated by depbot. It will be updated or closed automatically "
        "as the dependencies it touches change.",
        "",
        encode_marker(recorded_from(group)),
    ]
    return "\n".join(lines)


def recorded_from(group: UpdateGroup) -> list[RecordedUpdate]:
    return [
        RecordedUpdate(
            name=u.name,
            current_version=u.current_version,
            new_version=u.new_version,
            source_file=u.source_file,
            ecosystem=u.ecosystem,
        )
        for u in group.updates
    ]


def render_labels(group: UpdateGroup, config: ReconciliationConfig | None = None) -> list[str]:
    labels = ["dependencies"]

    present = {u.update_type for u in group.updates}
    for update_type in (UpdateType.MAJOR, UpdateType.MINOR, UpdateType.PATCH):
        if update_type in present:
            labels.append(update_type.value)

    if len(group.updates) > BULK_THRESHOLD:
        labels.append("bulk-update")

    if any(pkg in u.name.lower() for u in group.updates for pkg in SECURITY_PACKAGES):
        labels.append("security")

    for ecosystem in group.ecosystems:
        if ecosystem not in labels:
            labels.append(ecosystem)

    if config is not None:
        for label in config.labels:
            if label not in labels:
                labels.append(label)
    return labels


def render_group(group: UpdateGroup, config: ReconciliationConfig | None = None) -> UpdateGroup:
    """Fill in the group's title and body."""
    group.title = render_title(group)
    group.body = render_body(group, config)
    return group


def commit_message(group: UpdateGroup) -> str:
    names = ", ".join(sorted({u.name for u in group.updates}))
    return f"{group.title or render_title(group)}\n\nUpdates: {names}"
