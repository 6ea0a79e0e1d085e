"""Two-stage scan pipeline.

Stage 1 probes every target; stage 2 runs the extractor over the pages that
answered with a status below 400.  Each stage is a fixed-width worker pool:
a worker that finishes an item immediately pulls the next pending one, so at
most ``concurrency`` items are in flight and there is no round-based
batching.  Stage 2 does not start until every probe has completed.

Per-item failures never abort a stage.  Probe failures are part of the
:class:`ProbeOutcome`; analysis failures are recorded on the
:class:`ExtractionOutcome` and contribute no records.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, TypeVar

import httpx

from radar.config import Settings, settings
from radar.errors import AnalysisNetworkFailure
from radar.scanner.extractor import extract
from radar.scanner.models import (
    ExtractionJob,
    ExtractionOutcome,
    ProbeOutcome,
    ProgressEvent,
    ScanResult,
    Target,
    build_targets,
)
from radar.scanner.prober import make_client, probe
from radar.scanner.progress import NullProgress, ProgressCounter, ProgressSink
from radar.scanner.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


# ---------------------------------------------------------------------------
# Generic bounded stage
# ---------------------------------------------------------------------------

async def run_stage(
    items: Sequence[T],
    worker: Callable[[T], Awaitable[R]],
    *,
    stage: str,
    concurrency: int,
    sink: ProgressSink,
    key: Callable[[T], str] = str,
    summarize: Callable[[R], str] = str,
) -> List[R]:
    """Run *worker* over *items* with at most *concurrency* in flight.

    Results are returned in completion order.  The stage's progress counter
    is incremented exactly once per item, and *sink* sees one
    :class:`ProgressEvent` per completion.

    *worker* is expected to absorb its own failures and return a recorded
    outcome.  As a last resort, an exception that escapes anyway is logged
    and the item still counts as completed, but contributes no result.
    """
    if concurrency < 1:
        raise ValueError("concurrency must be at least 1")

    total = len(items)
    counter = ProgressCounter(stage, total)
    results: List[R] = []
    pending = iter(items)
    sink.start(stage, total)

    async def _worker() -> None:
        # ``pending`` is shared; next() never awaits so no two workers take the same item.
        for item in pending:
            summary: str
            try:
                result = await worker(item)
            except Exception as exc:  # noqa: BLE001
                logger.exception("%s worker failed on %s", stage, key(item))
                summary = f"✗ {exc!r}"
            else:
                results.append(result)
                summary = summarize(result)
            completed = counter.increment()
            sink.emit(ProgressEvent(stage, completed, total, key(item), summary))

    await asyncio.gather(*(_worker() for _ in range(min(concurrency, total))))
    sink.finish(stage)
    logger.debug("%s stage done: %d/%d", stage, counter.value, total)
    return results


# ---------------------------------------------------------------------------
# Stages
# ---------------------------------------------------------------------------

async def probe_stage(
    client: httpx.AsyncClient,
    targets: Sequence[Target],
    *,
    concurrency: int,
    sink: ProgressSink,
) -> List[ProbeOutcome]:
    """Probe every target; one outcome per target, in completion order."""

    async def _probe(target: Target) -> ProbeOutcome:
        return await probe(client, target)

    return await run_stage(
        targets,
        _probe,
        stage="probe",
        concurrency=concurrency,
        sink=sink,
        summarize=ProbeOutcome.summary,
    )


def select_jobs(outcomes: Iterable[ProbeOutcome]) -> List[ExtractionJob]:
    """Keep the outcomes with a status below 400 and a readable body."""
    return [outcome.to_job() for outcome in outcomes if outcome.is_success]


async def extract_stage(
    client: httpx.AsyncClient,
    api_key: str,
    jobs: Sequence[ExtractionJob],
    limiter: RateLimiter,
    *,
    concurrency: int,
    sink: ProgressSink,
    config: Optional[Settings] = None,
) -> List[ExtractionOutcome]:
    """Run the extractor over *jobs*, each call gated by a rate-limiter permit.

    The permit is awaited inside the worker, so a worker waiting on the
    limiter keeps its concurrency slot.
    """
    cfg = config or settings

    async def _extract(job: ExtractionJob) -> ExtractionOutcome:
        await limiter.acquire()
        try:
            records = await extract(client, api_key, job.target.url, job.body, config=cfg)
        except AnalysisNetworkFailure as exc:
            logger.info("analysis failed for %s: %s", job.target, exc.message)
            return ExtractionOutcome(job=job, error=exc.message)
        except Exception as exc:  # noqa: BLE001
            logger.exception("unexpected analysis failure for %s", job.target)
            return ExtractionOutcome(job=job, error=f"unexpected error: {exc!r}")
        return ExtractionOutcome(job=job, records=records)

    return await run_stage(
        jobs,
        _extract,
        stage="extract",
        concurrency=concurrency,
        sink=sink,
        key=lambda job: job.target.url,
        summarize=ExtractionOutcome.summary,
    )


# ---------------------------------------------------------------------------
# Whole scan
# ---------------------------------------------------------------------------

async def run_scan(
    host_names: Iterable[str],
    *,
    api_key: str,
    config: Optional[Settings] = None,
    sink: Optional[ProgressSink] = None,
    client: Optional[httpx.AsyncClient] = None,
    limiter: Optional[RateLimiter] = None,
    on_probed: Optional[Callable[[List[ProbeOutcome]], None]] = None,
) -> ScanResult:
    """Probe every host, then extract events from the live pages.

    Args:
        host_names: DNS record names; each becomes
            ``{target_scheme}://{name}.{base_domain}``.  Empty names are dropped.
        api_key: Bearer credential for the analysis endpoint.
        config: Settings to use instead of the module-level singleton.
        sink: Progress display; defaults to :class:`NullProgress`.
        client: Shared HTTP client.  Created (and closed) here when omitted.
        limiter: Rate limiter for stage 2.  Created from *config* when omitted.
        on_probed: Called once with every probe outcome, after stage 1 and
            before stage 2 (artifact persistence).
    """
    cfg = config or settings
    sink = sink or NullProgress()
    targets = build_targets(host_names, cfg.base_domain, cfg.target_scheme)

    owns_client = client is None
    http = client if client is not None else make_client(cfg.request_timeout)
    try:
        outcomes = await probe_stage(
            http, targets, concurrency=cfg.http_concurrency, sink=sink
        )
        if on_probed is not None:
            on_probed(outcomes)

        jobs = select_jobs(outcomes)
        if limiter is None:
            limiter = RateLimiter(cfg.llm_rate_limit_per_minute, cfg.max_outstanding)
        extractions = await extract_stage(
            http,
            api_key,
            jobs,
            limiter,
            concurrency=cfg.llm_concurrency,
            sink=sink,
            config=cfg,
        )
    finally:
        if owns_client:
            await http.aclose()

    records = [record for outcome in extractions for record in outcome.records]
    return ScanResult(outcomes=outcomes, jobs=jobs, extractions=extractions, records=records)
