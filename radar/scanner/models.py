"""Data models for the scan pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional

# Probe statuses strictly below this value are treated as a live page.
SUCCESS_STATUS_CEILING = 400


@dataclass(frozen=True)
class Target:
    """One address to probe, derived from a DNS record name."""

    url: str

    @classmethod
    def from_host(cls, name: str, base_domain: str, scheme: str = "http") -> "Target":
        return cls(url=f"{scheme}://{name}.{base_domain}")

    def __str__(self) -> str:
        return self.url


@dataclass(frozen=True)
class ProbeOutcome:
    """The result of fetching a single :class:`Target`.

    Exactly one of three shapes is populated:

    * ``status`` + ``body``:  the page was fetched;
    * ``status`` + ``error``: the server answered but the body was unreadable;
    * ``error`` alone:        the request never completed (DNS, connect, timeout).

    Use the :meth:`ok`, :meth:`read_failed` and :meth:`transport_failed`
    constructors; the initialiser rejects any other combination.
    """

    target: Target
    status: Optional[int] = None
    body: Optional[str] = None
    error: Optional[str] = None

    def __post_init__(self) -> None:
        shape = (self.status is not None, self.body is not None, self.error is not None)
        if shape not in {(True, True, False), (True, False, True), (False, False, True)}:
            raise ValueError(
                f"invalid probe outcome for {self.target}: "
                f"status={self.status!r} body={'set' if self.body is not None else None} "
                f"error={self.error!r}"
            )

    @classmethod
    def ok(cls, target: Target, status: int, body: str) -> "ProbeOutcome":
        return cls(target=target, status=status, body=body)

    @classmethod
    def read_failed(cls, target: Target, status: int, error: str) -> "ProbeOutcome":
        return cls(target=target, status=status, error=error)

    @classmethod
    def transport_failed(cls, target: Target, error: str) -> "ProbeOutcome":
        return cls(target=target, error=error)

    @property
    def kind(self) -> str:
        if self.body is not None:
            return "ok"
        if self.status is not None:
            return "body_read_failure"
        return "transport_failure"

    @property
    def is_success(self) -> bool:
        """``True`` when the outcome qualifies for the extraction stage."""
        return (
            self.status is not None
            and self.status < SUCCESS_STATUS_CEILING
            and self.body is not None
        )

    @property
    def content_length(self) -> Optional[int]:
        return len(self.body) if self.body is not None else None

    def summary(self) -> str:
        """Short human-readable description used by progress sinks."""
        if self.body is not None:
            return f"{self.status} {len(self.body)}b"
        return f"✗ {self.error}"

    def to_job(self) -> "ExtractionJob":
        if not self.is_success:
            raise ValueError(f"{self.target} did not produce an extractable page")
        return ExtractionJob(target=self.target, body=self.body)  # type: ignore[arg-type]


@dataclass(frozen=True)
class ExtractionJob:
    """A live page handed to the extractor."""

    target: Target
    body: str


@dataclass(frozen=True)
class Record:
    """One event extracted from a page."""

    name: str
    url: str
    dates: str
    summary: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Record":
        """Build a record from a decoded JSON object.

        Raises:
            ValueError: If *data* is not an object or a field is missing or
                not a string.
        """
        if not isinstance(data, Mapping):
            raise ValueError(f"expected an object, got {type(data).__name__}")
        values = {}
        for key in ("name", "url", "dates", "summary"):
            value = data.get(key)
            if not isinstance(value, str):
                raise ValueError(f"field {key!r} missing or not a string")
            values[key] = value
        return cls(**values)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "url": self.url,
            "dates": self.dates,
            "summary": self.summary,
        }


@dataclass(frozen=True)
class ExtractionOutcome:
    """Per-page result of the extraction stage."""

    job: ExtractionJob
    records: List[Record] = field(default_factory=list)
    error: Optional[str] = None

    def summary(self) -> str:
        if self.error is not None:
            return f"✗ LLM error: {self.error}"
        return f"{len(self.records)} event(s) found"


@dataclass(frozen=True)
class ProgressEvent:
    """One completion observation emitted by a pipeline stage."""

    stage: str
    completed: int
    total: int
    item: str
    summary: str


@dataclass
class ScanResult:
    """Everything a finished scan produced."""

    outcomes: List[ProbeOutcome]
    jobs: List[ExtractionJob]
    extractions: List[ExtractionOutcome]
    records: List[Record]

    @property
    def extraction_errors(self) -> List[ExtractionOutcome]:
        return [e for e in self.extractions if e.error is not None]


def build_targets(names: Iterable[str], base_domain: str, scheme: str = "http") -> List[Target]:
    """Map each distinct, non-empty host name to ``scheme://name.base_domain``."""
    targets: List[Target] = []
    seen: set[str] = set()
    for name in names:
        name = name.strip()
        if not name or name in seen:
            continue
        seen.add(name)
        targets.append(Target.from_host(name, base_domain, scheme))
    return targets
