"""JSON artifacts written during a scan.

* ``results.json``:   one entry per probed target (status, size, error).
* ``successes.json``: the pages handed to the extractor, with content.
* ``summary.json``:   every extracted event.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from radar.errors import ArtifactWriteError
from radar.scanner.models import ProbeOutcome, Record
from radar.sources.git_history import GitInfo

RESULTS_FILE = "results.json"
SUCCESSES_FILE = "successes.json"
SUMMARY_FILE = "summary.json"


def _host_of(url: str, base_domain: Optional[str]) -> str:
    host = url.split("://", 1)[-1]
    if base_domain and host.endswith("." + base_domain):
        host = host[: -len(base_domain) - 1]
    return host


def results_view(
    outcomes: Iterable[ProbeOutcome],
    history: Optional[Mapping[str, GitInfo]] = None,
    base_domain: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """Per-target summary rows; history columns are added when *history* is given."""
    rows: List[Dict[str, Any]] = []
    for outcome in outcomes:
        row: Dict[str, Any] = {
            "subdomain": outcome.target.url,
            "status": outcome.status,
            "bytes": outcome.content_length,
            "error": outcome.error,
        }
        if history is not None:
            info = history.get(_host_of(outcome.target.url, base_domain), GitInfo())
            row.update(info.to_dict())
        rows.append(row)
    return rows


def successes_view(outcomes: Iterable[ProbeOutcome]) -> List[Dict[str, str]]:
    return [
        {"url": outcome.target.url, "content": outcome.body}  # type: ignore[dict-item]
        for outcome in outcomes
        if outcome.is_success
    ]


def _write_json(path: Path, data: Any) -> Path:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    except OSError as exc:
        raise ArtifactWriteError(f"could not write {path}: {exc}") from exc
    return path


def ensure_writable(out_dir: Path) -> None:
    """Fail early if *out_dir* cannot hold artifacts.

    Raises:
        ArtifactWriteError: If the directory cannot be created or written to.
    """
    probe_file = out_dir / ".radar-write-check"
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        probe_file.write_text("", encoding="utf-8")
        probe_file.unlink()
    except OSError as exc:
        raise ArtifactWriteError(f"output directory {out_dir} is not writable: {exc}") from exc


def write_probe_artifacts(
    outcomes: List[ProbeOutcome],
    out_dir: Path,
    history: Optional[Mapping[str, GitInfo]] = None,
    base_domain: Optional[str] = None,
) -> Tuple[Path, Path]:
    """Write ``results.json`` and ``successes.json``; return their paths."""
    results = _write_json(out_dir / RESULTS_FILE, results_view(outcomes, history, base_domain))
    successes = _write_json(out_dir / SUCCESSES_FILE, successes_view(outcomes))
    return results, successes


def write_summary(records: Iterable[Record], out_dir: Path) -> Path:
    return _write_json(out_dir / SUMMARY_FILE, [record.to_dict() for record in records])
