"""DNS zone source: turns a zone YAML file into host names and targets.

The zone file is a YAML mapping whose top-level keys are record names
(``"www": [...]``, ``"hcb": {...}``).  Only the keys matter here.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, List, Mapping

import httpx
import yaml

from radar.errors import SourceUnavailable


def _is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def fetch_zone_text(source: str, timeout: float = 15.0) -> str:
    """Return the raw YAML text of *source* (a URL or a local path).

    Raises:
        SourceUnavailable: If the file cannot be downloaded or read.
    """
    if _is_url(source):
        try:
            with httpx.Client(timeout=timeout, follow_redirects=True) as client:
                response = client.get(source)
                response.raise_for_status()
                return response.text
        except httpx.HTTPError as exc:
            raise SourceUnavailable(f"could not fetch {source}: {exc}") from exc

    try:
        return Path(source).read_text(encoding="utf-8")
    except OSError as exc:
        raise SourceUnavailable(f"could not read {source}: {exc}") from exc


def parse_zone(text: str) -> Mapping[Any, Any]:
    """Parse zone YAML; the document root must be a mapping.

    Raises:
        SourceUnavailable: On invalid YAML or a non-mapping root.
    """
    try:
        parsed = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise SourceUnavailable(f"invalid zone YAML: {exc}") from exc
    if not isinstance(parsed, Mapping):
        raise SourceUnavailable("expected a YAML mapping at root")
    return parsed


def load_zone(source: str, timeout: float = 15.0) -> Mapping[Any, Any]:
    return parse_zone(fetch_zone_text(source, timeout=timeout))


def host_names(zone: Mapping[Any, Any]) -> List[str]:
    """Distinct, non-empty string keys of *zone*, in file order."""
    names: List[str] = []
    seen: set[str] = set()
    for key in zone:
        if isinstance(key, str) and key and key not in seen:
            seen.add(key)
            names.append(key)
    return names
