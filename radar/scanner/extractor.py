"""Event extraction: asks a chat-completions model to read one page.

The endpoint is any OpenAI-compatible ``/chat/completions`` URL (NVIDIA NIM
by default).  One page → one request → zero or more :class:`Record` objects.

Failure policy
--------------
* Transport problems, rejected credentials and non-JSON envelopes raise
  :class:`~radar.errors.AnalysisNetworkFailure`.
* A reply that cannot be read as a JSON array of events is treated exactly
  like an empty array.  The two cases are logged differently.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, List, Optional

import httpx

from radar.config import Settings, settings
from radar.errors import AnalysisNetworkFailure
from radar.scanner.models import Record

logger = logging.getLogger(__name__)

_FENCE = "```"
# Opening fence plus an optional language tag ("```json", "```JSON", "```").
_OPENING_FENCE = re.compile(r"^```[A-Za-z0-9_+-]*")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def truncate(body: str, limit: int) -> str:
    """Return at most *limit* characters of *body* (characters, not tokens)."""
    return body[:limit]


def build_prompt(url: str, html: str) -> str:
    """Return the instruction sent for the page at *url*."""
    return (
        f'You are a hackathon finder. Given HTML from the page "{url}", '
        "extract any hackathons mentioned.\n\n"
        "For each hackathon found, respond with a JSON array. "
        "Each object must have exactly these fields:\n"
        '- "name": hackathon name\n'
        f'- "url": most specific URL for the hackathon (use "{url}" if no better link found)\n'
        '- "dates": date or date range as a string (e.g. "March 15-17, 2025"), '
        'or "Unknown" if not found\n'
        '- "summary": one sentence describing the hackathon\n\n'
        "If there are no hackathons on this page, respond with an empty array: []\n"
        "Respond with ONLY the JSON array, no other text.\n\n"
        f"HTML:\n{html}"
    )


def strip_code_fence(text: str) -> str:
    """Remove a surrounding Markdown code fence, e.g. ```` ```json ... ``` ````.

    The opening fence may carry a language tag; text without a fence is
    returned stripped but otherwise unchanged.
    """
    clean = _OPENING_FENCE.sub("", text.strip(), count=1)
    if clean.endswith(_FENCE):
        clean = clean[: -len(_FENCE)]
    return clean.strip()


def parse_records(text: str) -> Optional[List[Record]]:
    """Parse a cleaned reply into records.

    Returns ``None`` when the reply is not a JSON array of well-formed
    events; a single malformed element invalidates the whole reply.
    Replies nested too deeply to decode count as malformed.
    """
    try:
        data = json.loads(text)
    except (ValueError, RecursionError):
        return None
    if not isinstance(data, list):
        return None
    try:
        return [Record.from_dict(item) for item in data]
    except ValueError:
        return None


def _message_content(envelope: Any) -> str:
    """Dig ``choices[0].message.content`` out of a completion envelope.

    A missing or non-string content (the model declined) reads as ``"[]"``.
    """
    try:
        content = envelope["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return "[]"
    return content if isinstance(content, str) else "[]"


def _describe(exc: Exception) -> str:
    message = str(exc).strip()
    return message or exc.__class__.__name__


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def extract(
    client: httpx.AsyncClient,
    api_key: str,
    url: str,
    body: str,
    *,
    config: Optional[Settings] = None,
) -> List[Record]:
    """Return the events the model finds in the page *body* fetched from *url*.

    Args:
        client: Shared HTTP client (read-only use).
        api_key: Bearer credential for the analysis endpoint.
        url: The page address, embedded in the prompt as context and as the
            fallback event URL.
        body: Raw page content; truncated to ``html_truncate_chars``.
        config: Settings to use instead of the module-level singleton.

    Raises:
        AnalysisNetworkFailure: If the request could not be completed or the
            endpoint rejected it.
    """
    cfg = config or settings
    prompt = build_prompt(url, truncate(body, cfg.html_truncate_chars))
    payload = {
        "model": cfg.llm_model,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": cfg.llm_temperature,
        "max_tokens": cfg.llm_max_tokens,
    }

    try:
        response = await client.post(
            cfg.llm_api_url,
            headers={"Authorization": f"Bearer {api_key}"},
            json=payload,
        )
        response.raise_for_status()
        envelope = response.json()
    except httpx.HTTPStatusError as exc:
        raise AnalysisNetworkFailure(url, f"HTTP {exc.response.status_code}") from exc
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise AnalysisNetworkFailure(url, _describe(exc)) from exc
    except ValueError as exc:
        raise AnalysisNetworkFailure(url, "response was not JSON") from exc

    text = strip_code_fence(_message_content(envelope))
    records = parse_records(text)
    if records is None:
        logger.warning("unparseable analysis output for %s: %.120r", url, text)
        return []
    if not records:
        logger.debug("no events reported for %s", url)
    return records
