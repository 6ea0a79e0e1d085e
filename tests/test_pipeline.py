"""Tests for the two-stage scan pipeline.

Workers are replaced with small coroutines (or the HTTP layer is mocked with
``respx``) so stage ordering, progress accounting and the fan-out bound can
be observed directly.
"""

from __future__ import annotations

import asyncio
import json
from typing import List

import httpx
import pytest
import respx

from radar.artifacts import successes_view
from radar.config import Settings
from radar.errors import AnalysisNetworkFailure
from radar.scanner.models import (
    ExtractionJob,
    ProbeOutcome,
    ProgressEvent,
    Record,
    Target,
)
from radar.scanner.pipeline import extract_stage, run_scan, run_stage, select_jobs
from radar.scanner.progress import ProgressSink
from radar.scanner.rate_limiter import RateLimiter

_API_URL = "https://llm.test/v1/chat/completions"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class RecordingSink(ProgressSink):
    def __init__(self) -> None:
        self.started: List[tuple] = []
        self.events: List[ProgressEvent] = []
        self.finished: List[str] = []

    def start(self, stage: str, total: int) -> None:
        self.started.append((stage, total))

    def emit(self, event: ProgressEvent) -> None:
        self.events.append(event)

    def finish(self, stage: str) -> None:
        self.finished.append(stage)


def _config(**overrides) -> Settings:
    values = dict(
        nvidia_api_key="test-key",
        llm_api_url=_API_URL,
        base_domain="example.com",
        target_scheme="http",
        http_concurrency=20,
        llm_concurrency=4,
    )
    values.update(overrides)
    return Settings(**values)


def _target(name: str) -> Target:
    return Target.from_host(name, "example.com")


# ---------------------------------------------------------------------------
# run_stage
# ---------------------------------------------------------------------------

class TestRunStage:
    async def test_empty_input(self) -> None:
        sink = RecordingSink()

        async def worker(item: int) -> int:
            return item

        results = await run_stage([], worker, stage="probe", concurrency=4, sink=sink)

        assert results == []
        assert sink.started == [("probe", 0)]
        assert sink.events == []
        assert sink.finished == ["probe"]

    @pytest.mark.parametrize("n", [1, 7, 50])
    async def test_counter_reaches_total_exactly_once_per_item(self, n: int) -> None:
        sink = RecordingSink()

        async def worker(item: int) -> int:
            await asyncio.sleep(0.001 * (item % 3))
            return item

        results = await run_stage(list(range(n)), worker, stage="probe", concurrency=5, sink=sink)

        assert sorted(results) == list(range(n))
        assert [e.completed for e in sink.events] == list(range(1, n + 1))
        assert all(e.total == n for e in sink.events)
        assert sorted(e.item for e in sink.events) == sorted(str(i) for i in range(n))

    async def test_in_flight_never_exceeds_width(self) -> None:
        in_flight = 0
        peak = 0

        async def worker(item: int) -> int:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.002 * (item % 4 + 1))
            in_flight -= 1
            return item

        await run_stage(list(range(40)), worker, stage="probe", concurrency=6, sink=RecordingSink())

        assert peak == 6

    async def test_slots_refill_continuously(self) -> None:
        """A slow item does not hold back the items queued behind it."""

        async def worker(item: int) -> int:
            await asyncio.sleep(0.2 if item == 0 else 0.01)
            return item

        results = await run_stage(list(range(6)), worker, stage="probe", concurrency=2, sink=RecordingSink())

        assert results[-1] == 0
        assert sorted(results[:-1]) == [1, 2, 3, 4, 5]

    async def test_unexpected_worker_error_does_not_abort_stage(self) -> None:
        sink = RecordingSink()

        async def worker(item: int) -> int:
            if item == 2:
                raise RuntimeError("boom")
            return item

        results = await run_stage(list(range(5)), worker, stage="probe", concurrency=2, sink=sink)

        assert sorted(results) == [0, 1, 3, 4]
        assert len(sink.events) == 5
        assert any("boom" in e.summary for e in sink.events)

    async def test_zero_width_rejected(self) -> None:
        async def worker(item: int) -> int:
            return item

        with pytest.raises(ValueError):
            await run_stage([1], worker, stage="probe", concurrency=0, sink=RecordingSink())


# ---------------------------------------------------------------------------
# select_jobs
# ---------------------------------------------------------------------------

class TestSelectJobs:
    def test_status_boundaries(self) -> None:
        outcomes = [
            ProbeOutcome.ok(_target("ok"), 200, "<html>ok</html>"),
            ProbeOutcome.ok(_target("redirect"), 399, "<html>399</html>"),
            ProbeOutcome.ok(_target("client-error"), 400, "<html>400</html>"),
            ProbeOutcome.ok(_target("server-error"), 503, "down"),
            ProbeOutcome.read_failed(_target("unreadable"), 200, "reset"),
            ProbeOutcome.transport_failed(_target("dead"), "refused"),
        ]

        jobs = select_jobs(outcomes)

        assert [j.target.url for j in jobs] == [
            "http://ok.example.com",
            "http://redirect.example.com",
        ]
        assert jobs[0].body == "<html>ok</html>"


# ---------------------------------------------------------------------------
# extract_stage
# ---------------------------------------------------------------------------

class TestExtractStage:
    async def test_each_call_takes_a_permit_and_failures_are_recorded(self, monkeypatch) -> None:
        async def fake_extract(client, api_key, url, body, *, config=None):
            if "bad" in url:
                raise AnalysisNetworkFailure(url, "HTTP 401")
            return [Record(name=url, url=url, dates="Unknown", summary="s")]

        monkeypatch.setattr("radar.scanner.pipeline.extract", fake_extract)
        jobs = [ExtractionJob(_target(n), "<html/>") for n in ("one", "bad", "two")]
        limiter = RateLimiter(60000, max_outstanding=10)
        sink = RecordingSink()

        try:
            async with httpx.AsyncClient() as client:
                results = await extract_stage(
                    client, "k", jobs, limiter, concurrency=2, sink=sink, config=_config()
                )
        finally:
            limiter.close()

        assert limiter.issued == 3
        by_url = {r.job.target.url: r for r in results}
        assert by_url["http://bad.example.com"].error == "HTTP 401"
        assert by_url["http://bad.example.com"].records == []
        assert len(by_url["http://one.example.com"].records) == 1
        assert [e.completed for e in sink.events] == [1, 2, 3]
        assert {e.stage for e in sink.events} == {"extract"}

    async def test_unexpected_extractor_error_is_recorded_not_dropped(self, monkeypatch) -> None:
        async def fake_extract(client, api_key, url, body, *, config=None):
            if "bad" in url:
                raise RuntimeError("boom")
            return []

        monkeypatch.setattr("radar.scanner.pipeline.extract", fake_extract)
        jobs = [ExtractionJob(_target(n), "<html/>") for n in ("one", "bad", "two")]
        limiter = RateLimiter(60000, max_outstanding=10)

        try:
            async with httpx.AsyncClient() as client:
                results = await extract_stage(
                    client, "k", jobs, limiter, concurrency=2, sink=RecordingSink(),
                    config=_config(),
                )
        finally:
            limiter.close()

        assert len(results) == len(jobs)
        by_url = {r.job.target.url: r for r in results}
        assert "boom" in by_url["http://bad.example.com"].error
        assert by_url["http://bad.example.com"].records == []

    async def test_waiting_for_a_permit_holds_the_slot(self, monkeypatch) -> None:
        """With one permit and no ticks, only one extraction can run."""
        calls: List[str] = []

        async def fake_extract(client, api_key, url, body, *, config=None):
            calls.append(url)
            return []

        monkeypatch.setattr("radar.scanner.pipeline.extract", fake_extract)
        jobs = [ExtractionJob(_target(n), "<html/>") for n in ("one", "two")]
        limiter = RateLimiter(1)  # one tick per minute

        try:
            async with httpx.AsyncClient() as client:
                with pytest.raises(asyncio.TimeoutError):
                    await asyncio.wait_for(
                        extract_stage(
                            client, "k", jobs, limiter,
                            concurrency=2, sink=RecordingSink(), config=_config(),
                        ),
                        timeout=0.1,
                    )
        finally:
            limiter.close()

        assert len(calls) == 1


# ---------------------------------------------------------------------------
# run_scan — end to end with mocked HTTP
# ---------------------------------------------------------------------------

class TestRunScan:
    async def test_two_hosts_one_live(self) -> None:
        record = {
            "name": "Foo",
            "url": "http://a.example.com",
            "dates": "Unknown",
            "summary": "...",
        }
        probed: List[List[ProbeOutcome]] = []
        sink = RecordingSink()
        limiter = RateLimiter(60000)

        with respx.mock:
            respx.get(host="a.example.com").mock(
                return_value=httpx.Response(200, text="<html>hi</html>")
            )
            respx.get(host="b.example.com").mock(side_effect=httpx.ConnectError("no such host"))
            llm = respx.post(_API_URL).mock(
                return_value=httpx.Response(
                    200, json={"choices": [{"message": {"content": json.dumps([record])}}]}
                )
            )
            try:
                result = await run_scan(
                    ["a", "b"],
                    api_key="test-key",
                    config=_config(),
                    sink=sink,
                    limiter=limiter,
                    on_probed=probed.append,
                )
            finally:
                limiter.close()

        assert len(probed) == 1
        assert [row["url"] for row in successes_view(probed[0])] == ["http://a.example.com"]
        assert result.jobs == [ExtractionJob(Target("http://a.example.com"), "<html>hi</html>")]
        assert llm.call_count == 1
        assert "http://a.example.com" in json.loads(llm.calls.last.request.content)[
            "messages"
        ][0]["content"]
        assert result.records == [Record(**record)]
        assert result.extraction_errors == []
        assert sink.started == [("probe", 2), ("extract", 1)]

    async def test_stage_two_waits_for_stage_one(self, monkeypatch) -> None:
        timeline: List[str] = []

        async def fake_probe(client, target):
            await asyncio.sleep(0.05 if "slow" in target.url else 0)
            timeline.append(f"probe:{target.url}")
            return ProbeOutcome.ok(target, 200, "<html/>")

        async def fake_extract(client, api_key, url, body, *, config=None):
            timeline.append(f"extract:{url}")
            return []

        monkeypatch.setattr("radar.scanner.pipeline.probe", fake_probe)
        monkeypatch.setattr("radar.scanner.pipeline.extract", fake_extract)
        limiter = RateLimiter(60000, max_outstanding=10)

        try:
            async with httpx.AsyncClient() as client:
                result = await run_scan(
                    ["fast", "slow"], api_key="k", config=_config(), client=client, limiter=limiter
                )
        finally:
            limiter.close()

        assert [step.split(":", 1)[0] for step in timeline] == [
            "probe", "probe", "extract", "extract",
        ]
        assert len(result.outcomes) == 2

    async def test_empty_host_set(self) -> None:
        limiter = RateLimiter(60)
        async with httpx.AsyncClient() as client:
            result = await run_scan([], api_key="k", config=_config(), client=client, limiter=limiter)
        limiter.close()

        assert result.outcomes == []
        assert result.records == []
        assert limiter.running is False
