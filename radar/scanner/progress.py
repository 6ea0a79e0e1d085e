"""Progress accounting and display for pipeline stages."""

from __future__ import annotations

from typing import Dict

import typer

from radar.scanner.models import ProgressEvent

STAGE_LABELS: Dict[str, str] = {
    "probe": "Probing subdomains",
    "extract": "Querying LLM",
}


def _label(stage: str) -> str:
    return STAGE_LABELS.get(stage, stage)


class ProgressCounter:
    """Completed-item count for one stage.  Only ever goes up.

    All stage workers run on one event loop and :meth:`increment` never
    awaits, so each call is atomic with respect to the others.
    """

    def __init__(self, stage: str, total: int) -> None:
        self.stage = stage
        self.total = total
        self._value = 0

    @property
    def value(self) -> int:
        return self._value

    def increment(self) -> int:
        self._value += 1
        return self._value


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------

class ProgressSink:
    """Receives stage lifecycle and per-item completion observations."""

    def start(self, stage: str, total: int) -> None:
        pass

    def emit(self, event: ProgressEvent) -> None:
        pass

    def finish(self, stage: str) -> None:
        pass


class NullProgress(ProgressSink):
    """Discards everything."""


class QuietProgress(ProgressSink):
    """One counter line per stage, rewritten in place."""

    def start(self, stage: str, total: int) -> None:
        typer.echo(f"{_label(stage):<20}0/{total}", nl=False)

    def emit(self, event: ProgressEvent) -> None:
        typer.echo(f"\r{_label(event.stage):<20}{event.completed}/{event.total}", nl=False)

    def finish(self, stage: str) -> None:
        typer.echo("")


class VerboseProgress(ProgressSink):
    """One line per completed item."""

    def start(self, stage: str, total: int) -> None:
        typer.echo(f"\n{_label(stage)}: {total} item(s) …\n")

    def emit(self, event: ProgressEvent) -> None:
        typer.echo(f"[{event.completed}/{event.total}] {event.item} → {event.summary}")

    def finish(self, stage: str) -> None:
        typer.echo("")
