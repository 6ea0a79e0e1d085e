"""Console rendering for scan results."""

from __future__ import annotations

from typing import List, Sequence

from radar.scanner.models import Record

_BANNER_WIDTH = 62


def render_banner(title: str) -> str:
    """Return *title* centred in a double-line box."""
    return "\n".join(
        [
            "╔" + "═" * _BANNER_WIDTH + "╗",
            "║" + title.center(_BANNER_WIDTH) + "║",
            "╚" + "═" * _BANNER_WIDTH + "╝",
        ]
    )


def render_record(record: Record) -> str:
    return "\n".join(
        [
            f"▸ {record.name}",
            f"  Dates:   {record.dates}",
            f"  URL:     {record.url}",
            f"  Summary: {record.summary}",
        ]
    )


def render_summary(records: Sequence[Record], summary_file: str = "summary.json") -> str:
    """Render the end-of-scan report: banner, one block per event, total."""
    lines: List[str] = [render_banner("EVENT SUMMARY"), ""]
    if not records:
        lines.append("No events found.")
        lines.append("")
    for record in records:
        lines.append(render_record(record))
        lines.append("")
    lines.append(
        f"Found {len(records)} event(s) total. Full details in {summary_file}."
    )
    return "\n".join(lines)
