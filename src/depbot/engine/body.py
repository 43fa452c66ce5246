"""Branch naming and recovery of recorded updates from request bodies.

The renderer embeds a hidden ``<!-- depbot:updates [...] -->`` JSON block in
every body it writes. :func:`recorded_updates` reads that block back and
only falls back to scraping the markdown table (or ``name: a → b`` lines)
for requests written before the marker existed.
"""

from __future__ import annotations

import json
import logging
import re
from collections import Counter

from depbot.models import RecordedUpdate
from depbot.patterns import normalize_path

logger = logging.getLogger(__name__)

MARKER_PREFIX = "<!-- depbot:updates "
MARKER_SUFFIX = " -->"
_MARKER_RE = re.compile(r"<!-- depbot:updates (\[.*?\]) -->", re.DOTALL)

_ARROW = r"(?:→|->|=>)"
_CHANGE_RE = re.compile(rf"`?([^`|\s\[\]]+)`?\s*{_ARROW}\s*`?([^`|\s\[\]()]+)`?")
_LINE_RE = re.compile(rf"^\s*[-*]?\s*([\w@\-./]+):\s*`?(\S+?)`?\s*{_ARROW}\s*`?(\S+?)`?\s*$")
_LINK_NAME_RE = re.compile(r"\[([^\]]+)\]\(")
_BOLD_FILE_RE = re.compile(r"\*\*([^*]+)\*\*")
_CODE_FILE_RE = re.compile(r"`([^`]+\.(?:json|lock|txt|toml|ya?ml|cfg|in))`")
_FILE_EXT_RE = re.compile(r"\.(?:json|lock|txt|toml|ya?ml|cfg|in)$|(?:^|/)Dockerfile$")


# --- Branch names ---


def normalize_group_name(name: str) -> str:
    """Lowercase, non-alphanumerics to hyphens, collapse and trim hyphens."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def branch_name(group_name: str, prefix: str) -> str:
    """Deterministic branch for a group: the same name always maps here."""
    return f"{prefix}/update-{normalize_group_name(group_name)}"


def legacy_branch_prefix(group_name: str, prefix: str) -> str:
    slug = re.sub(r"\s+", "-", group_name.lower())
    return f"{prefix}/update-{slug}-"


def is_legacy_branch(head: str, group_name: str, prefix: str) -> bool:
    """Match the old ``<prefix>/update-<name>-<timestamp>`` convention."""
    start = legacy_branch_prefix(group_name, prefix)
    return head.startswith(start) and head[len(start) :].isdigit()


# --- Structured marker ---


def encode_marker(updates: list[RecordedUpdate]) -> str:
    payload = json.dumps(
        [
            {
                "name": u.name,
                "from": u.current_version,
                "to": u.new_version,
                "file": u.source_file,
                "ecosystem": u.ecosystem,
            }
            for u in updates
        ],
        separators=(",", ":"),
        sort_keys=True,
    )
    # Only string contents can hold "-->", and > decodes back to ">"
    payload = payload.replace("-->", "--\\u003e")
    return f"{MARKER_PREFIX}{payload}{MARKER_SUFFIX}"


def decode_marker(body: str) -> list[RecordedUpdate] | None:
    """Return the updates recorded in the marker, or None if there is none."""
    match = _MARKER_RE.search(body or "")
    if not match:
        return None
    try:
        entries = json.loads(match.group(1))
    except json.JSONDecodeError:
        logger.debug("Ignoring malformed depbot marker")
        return None

    updates = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("name"):
            continue
        updates.append(
            RecordedUpdate(
                name=str(entry["name"]),
                current_version=str(entry.get("from", "")),
                new_version=str(entry.get("to", "")),
                source_file=entry.get("file"),
                ecosystem=entry.get("ecosystem"),
            )
        )
    return updates


# --- Legacy scraping ---


def _split_row(line: str) -> list[str]:
    return [cell.strip() for cell in line.strip().strip("|").split("|")]


def _package_from_cell(cell: str) -> str:
    match = _LINK_NAME_RE.search(cell)
    name = match.group(1) if match else cell
    return name.strip().strip("`").strip()


def _file_from_cells(cells: list[str]) -> str | None:
    for cell in cells:
        bold = _BOLD_FILE_RE.search(cell)
        if bold and _FILE_EXT_RE.search(bold.group(1).strip()):
            return bold.group(1).strip()
        code = _CODE_FILE_RE.search(cell)
        if code:
            return code.group(1).strip()
    return None


def parse_legacy_body(body: str) -> list[RecordedUpdate]:
    """Scrape package/version entries from markdown tables and arrow lines."""
    updates: list[RecordedUpdate] = []
    seen: set[tuple[str, str, str | None]] = set()

    for line in (body or "").splitlines():
        stripped = line.strip()
        entry: RecordedUpdate | None = None

        if stripped.startswith("|"):
            cells = _split_row(stripped)
            if len(cells) < 2 or set(stripped) <= set("|-: "):
                continue
            change = None
            for cell in cells[1:]:
                change = _CHANGE_RE.search(cell)
                if change:
                    break
            if not change:
                continue
            name = _package_from_cell(cells[0])
            if not name or name.lower() in ("package", "action"):
                continue
            entry = RecordedUpdate(
                name=name,
                current_version=change.group(1),
                new_version=change.group(2),
                source_file=_file_from_cells(cells[1:]),
            )
        else:
            match = _LINE_RE.match(stripped)
            if match:
                entry = RecordedUpdate(
                    name=match.group(1),
                    current_version=match.group(2),
                    new_version=match.group(3),
                )

        if entry is not None:
            key = (entry.name, entry.new_version, entry.source_file)
            if key not in seen:
                seen.add(key)
                updates.append(entry)

    return updates


def recorded_updates(body: str) -> list[RecordedUpdate]:
    """Updates a request represents: the marker if present, else scraped."""
    marked = decode_marker(body)
    if marked is not None:
        return marked
    return parse_legacy_body(body)


def referenced_files(body: str) -> list[str]:
    """File paths a request body refers to, in first-seen order."""
    paths: list[str] = []
    for update in recorded_updates(body):
        if update.source_file:
            for part in update.source_file.split(","):
                part = part.strip()
                if part and part not in paths:
                    paths.append(part)

    if decode_marker(body) is None:
        for match in _BOLD_FILE_RE.finditer(body or ""):
            candidate = match.group(1).strip()
            if _FILE_EXT_RE.search(candidate) and candidate not in paths:
                paths.append(candidate)
    return paths


def update_signature(updates: list[RecordedUpdate]) -> Counter[tuple[str, str, str | None]]:
    """Multiset of (name, target, file) used to decide whether a request is unchanged.

    The current version is left out; the same package listed for two
    manifests counts twice.
    """
    return Counter(
        (u.name, u.new_version, normalize_path(u.source_file) if u.source_file else None)
        for u in updates
    )
