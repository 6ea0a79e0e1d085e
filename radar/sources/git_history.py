"""When was each zone entry first added and last changed?

Reads ``git log -p`` for the zone file in a local checkout.  A top-level
YAML key appearing on an added or removed diff line counts as a change to
that entry in that commit.  The lookup is optional: callers that cannot get
history carry on without it.
"""

from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Dict, Iterable, Optional, Set

from radar.errors import HistoryUnavailable

_KEY_RE = re.compile(r"^([\w-]+):")
_GIT_DATE_FORMAT = "%a %b %d %H:%M:%S %Y %z"


@dataclass
class GitInfo:
    """ISO 8601 timestamps for one zone entry."""

    first_added: Optional[str] = None
    last_modified: Optional[str] = None

    def to_dict(self) -> dict:
        return {"first_added": self.first_added, "last_modified": self.last_modified}


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _subdomain_from_yaml_line(line: str) -> Optional[str]:
    """Return the key of a top-level ``name: ...`` line, else ``None``."""
    match = _KEY_RE.match(line)
    return match.group(1) if match else None


def _to_iso8601(date_str: str) -> Optional[str]:
    """Convert a git ``Date:`` value to ISO 8601 (UTC offset preserved).

    Accepts git's default format (``Tue Feb 19 10:30:00 2024 +0000``),
    RFC 2822, and values that are already ISO 8601.
    """
    value = " ".join(date_str.split())
    if len(value) >= 10 and value[4:5] == "-":
        return value
    try:
        parsed = datetime.strptime(value, _GIT_DATE_FORMAT)
    except ValueError:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            return None
    return parsed.isoformat()


def parse_git_log(lines: Iterable[str]) -> Dict[str, GitInfo]:
    """Build ``{subdomain: GitInfo}`` from ``git log -p`` output.

    ``git log`` lists commits newest first, so the first date seen for an
    entry is its last modification and the last date seen is when it was
    added.
    """
    history: Dict[str, GitInfo] = {}
    timestamp: Optional[str] = None
    changed: Set[str] = set()

    def _flush() -> None:
        if timestamp is not None:
            for name in changed:
                info = history.setdefault(name, GitInfo())
                if info.last_modified is None:
                    info.last_modified = timestamp
                info.first_added = timestamp
        changed.clear()

    for line in lines:
        if line.startswith("Date:"):
            _flush()
            timestamp = _to_iso8601(line[len("Date:"):])
            continue
        if line.startswith(("+++", "---")):
            continue
        if line.startswith(("+", "-")):
            name = _subdomain_from_yaml_line(line[1:])
            if name:
                changed.add(name)

    _flush()
    return history


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def get_yaml_git_history(yaml_path: str, repo_path: str) -> Dict[str, GitInfo]:
    """Return per-entry history for *yaml_path* inside the git repo at *repo_path*.

    Raises:
        HistoryUnavailable: If git is missing or ``git log`` fails.
    """
    try:
        proc = subprocess.run(
            ["git", "-C", repo_path, "log", "-p", "--", yaml_path],
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except OSError as exc:
        raise HistoryUnavailable(f"could not run git: {exc}") from exc

    if proc.returncode != 0:
        raise HistoryUnavailable(
            f"git log failed for {yaml_path}: {proc.stderr.strip() or proc.returncode}"
        )
    return parse_git_log(proc.stdout.splitlines())
