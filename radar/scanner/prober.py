"""HTTP prober: one GET per target, every failure folded into the outcome."""

from __future__ import annotations

import logging

import httpx

from radar.scanner.models import ProbeOutcome, Target

logger = logging.getLogger(__name__)

_DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (compatible; EventsRadar/1.0; +https://github.com/events-radar)"
    )
}


def make_client(timeout: float) -> httpx.AsyncClient:
    """Return the shared async client used by both pipeline stages.

    The timeout is applied per request; redirects are followed so that a
    subdomain pointing at another host still resolves to a page.
    """
    return httpx.AsyncClient(
        headers=_DEFAULT_HEADERS,
        timeout=timeout,
        follow_redirects=True,
    )


def _describe(exc: Exception) -> str:
    message = str(exc).strip()
    return message or exc.__class__.__name__


async def probe(client: httpx.AsyncClient, target: Target) -> ProbeOutcome:
    """Fetch *target* once and describe what happened.

    Never raises.  The body is streamed so that a failure while reading it
    still reports the status line the server sent.
    """
    try:
        async with client.stream("GET", target.url) as response:
            status = response.status_code
            try:
                await response.aread()
                body = response.text
            except Exception as exc:  # noqa: BLE001
                logger.debug("body read failed for %s: %r", target, exc)
                return ProbeOutcome.read_failed(target, status, _describe(exc))
    except httpx.TimeoutException as exc:
        return ProbeOutcome.transport_failed(
            target, f"timed out ({exc.__class__.__name__})"
        )
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        return ProbeOutcome.transport_failed(target, _describe(exc))
    except Exception as exc:  # noqa: BLE001
        logger.warning("unexpected probe failure for %s: %r", target, exc)
        return ProbeOutcome.transport_failed(target, _describe(exc))

    return ProbeOutcome.ok(target, status, body)
