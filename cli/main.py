"""Events Radar CLI.

Usage:
    python cli/main.py --help
    python cli/main.py scan -v

``scan`` runs the whole pipeline: load the DNS zone, probe every subdomain,
ask the analysis model about every live page, write the JSON artifacts and
print a summary.
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from radar.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio
import dataclasses
import logging
from typing import List, Mapping, Optional

import typer

from cli.rendering import render_summary
from radar.artifacts import SUMMARY_FILE, ensure_writable, write_probe_artifacts, write_summary
from radar.config import Settings, settings
from radar.errors import HistoryUnavailable, StartupError
from radar.scanner.models import ProbeOutcome, build_targets
from radar.scanner.pipeline import run_scan
from radar.scanner.progress import QuietProgress, VerboseProgress
from radar.sources.dns_records import host_names, load_zone
from radar.sources.git_history import GitInfo, get_yaml_git_history

app = typer.Typer(
    name="events-radar",
    help="Discover event pages behind a DNS zone's subdomains.",
    no_args_is_help=True,
)

_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=_LOG_FORMAT,
    )
    # httpx logs every request at INFO/DEBUG; keep the scan output readable.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _with_overrides(base: Settings, **overrides) -> Settings:
    """Return a copy of *base* with every non-``None`` override applied."""
    changes = {key: value for key, value in overrides.items() if value is not None}
    return dataclasses.replace(base, **changes) if changes else base


def _load_history(
    repo: Optional[Path], zone_file: str, verbose: bool
) -> Optional[Mapping[str, GitInfo]]:
    if repo is None:
        return None
    try:
        history = get_yaml_git_history(zone_file, str(repo))
    except HistoryUnavailable as exc:
        logging.getLogger(__name__).warning("git history unavailable: %s", exc)
        return None
    if verbose:
        typer.echo(f"History: {len(history)} entr(ies) from {repo}")
    return history


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@app.callback()
def main() -> None:
    """Discover event pages behind a DNS zone's subdomains."""


@app.command("targets")
def targets(
    source: Optional[str] = typer.Option(
        None, help="Zone YAML URL or local path (default: DNS_YAML_URL)."
    ),
    base_domain: Optional[str] = typer.Option(
        None, help="Domain appended to every record name."
    ),
) -> None:
    """List the addresses a scan would probe, without probing them."""
    cfg = _with_overrides(settings, dns_yaml_url=source, base_domain=base_domain)
    try:
        names = host_names(load_zone(cfg.dns_yaml_url, timeout=cfg.request_timeout))
    except StartupError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)
    found = build_targets(names, cfg.base_domain, cfg.target_scheme)
    for target in found:
        typer.echo(target.url)
    typer.echo(f"[targets] {len(found)} target(s).")


@app.command("scan")
def scan(
    source: Optional[str] = typer.Option(
        None, help="Zone YAML URL or local path (default: DNS_YAML_URL)."
    ),
    base_domain: Optional[str] = typer.Option(
        None, help="Domain appended to every record name."
    ),
    out_dir: Optional[Path] = typer.Option(
        None, "--out-dir", help="Directory for results/successes/summary JSON."
    ),
    history_repo: Optional[Path] = typer.Option(
        None, help="Local git checkout of the zone repo, for first-added/last-modified dates."
    ),
    history_file: Optional[str] = typer.Option(
        None, help="Zone file path inside --history-repo (default: source file name)."
    ),
    http_concurrency: Optional[int] = typer.Option(None, min=1, help="Parallel probes."),
    llm_concurrency: Optional[int] = typer.Option(None, min=1, help="Parallel analysis calls."),
    rate_limit: Optional[int] = typer.Option(
        None, min=1, help="Analysis requests per minute."
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="One line per item."),
) -> None:
    """Probe every subdomain in the zone and extract events from live pages."""
    _configure_logging(verbose)
    cfg = _with_overrides(
        settings,
        dns_yaml_url=source,
        base_domain=base_domain,
        output_dir=out_dir,
        http_concurrency=http_concurrency,
        llm_concurrency=llm_concurrency,
        llm_rate_limit_per_minute=rate_limit,
    )

    try:
        api_key = cfg.require_api_key()
        ensure_writable(cfg.output_dir)
        if verbose:
            typer.echo(f"Fetching zone from: {cfg.dns_yaml_url}")
        names = host_names(load_zone(cfg.dns_yaml_url, timeout=cfg.request_timeout))
    except StartupError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)

    zone_file = history_file or cfg.dns_yaml_url.rstrip("/").rsplit("/", 1)[-1]
    history = _load_history(history_repo, zone_file, verbose)
    sink = VerboseProgress() if verbose else QuietProgress()

    def _persist(outcomes: List[ProbeOutcome]) -> None:
        results, successes = write_probe_artifacts(
            outcomes, cfg.output_dir, history=history, base_domain=cfg.base_domain
        )
        if verbose:
            live = sum(1 for outcome in outcomes if outcome.is_success)
            typer.echo(
                f"Debug: {results.name} ({len(outcomes)} entries), "
                f"{successes.name} ({live} successes)"
            )

    try:
        result = asyncio.run(
            run_scan(names, api_key=api_key, config=cfg, sink=sink, on_probed=_persist)
        )
        write_summary(result.records, cfg.output_dir)
    except StartupError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)

    typer.echo("")
    typer.echo(render_summary(result.records, SUMMARY_FILE))


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
