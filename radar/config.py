"""Centralised settings for Events Radar.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).  The scan treats every
value as fixed for the lifetime of the process.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from radar.errors import MissingCredential

# Load .env from the project root (one level up from this package)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)


def _optional_int(name: str) -> Optional[int]:
    raw = os.environ.get(name, "").strip()
    return int(raw) if raw else None


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Credentials / analysis endpoint
    # ------------------------------------------------------------------
    nvidia_api_key: str = field(
        default_factory=lambda: os.environ.get("NVIDIA_API_KEY", "")
    )
    llm_api_url: str = field(
        default_factory=lambda: os.environ.get(
            "LLM_API_URL", "https://integrate.api.nvidia.com/v1/chat/completions"
        )
    )
    llm_model: str = field(
        default_factory=lambda: os.environ.get("LLM_MODEL", "openai/gpt-oss-120b")
    )
    llm_temperature: float = field(
        default_factory=lambda: float(os.environ.get("LLM_TEMPERATURE", "0.1"))
    )
    llm_max_tokens: int = field(
        default_factory=lambda: int(os.environ.get("LLM_MAX_TOKENS", "1024"))
    )
    html_truncate_chars: int = field(
        default_factory=lambda: int(os.environ.get("HTML_TRUNCATE_CHARS", "12000"))
    )

    # ------------------------------------------------------------------
    # Throughput
    # ------------------------------------------------------------------
    llm_rate_limit_per_minute: int = field(
        default_factory=lambda: int(os.environ.get("LLM_RATE_LIMIT_PER_MINUTE", "40"))
    )
    # None means "same as the per-minute budget".
    llm_max_outstanding: Optional[int] = field(
        default_factory=lambda: _optional_int("LLM_MAX_OUTSTANDING")
    )
    http_concurrency: int = field(
        default_factory=lambda: int(os.environ.get("HTTP_CONCURRENCY", "20"))
    )
    llm_concurrency: int = field(
        default_factory=lambda: int(os.environ.get("LLM_CONCURRENCY", "4"))
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "15.0"))
    )

    # ------------------------------------------------------------------
    # DNS source / targets
    # ------------------------------------------------------------------
    dns_yaml_url: str = field(
        default_factory=lambda: os.environ.get(
            "DNS_YAML_URL",
            "https://raw.githubusercontent.com/hackclub/dns/refs/heads/main/hackclub.com.yaml",
        )
    )
    base_domain: str = field(
        default_factory=lambda: os.environ.get("BASE_DOMAIN", "hackclub.com")
    )
    target_scheme: str = field(
        default_factory=lambda: os.environ.get("TARGET_SCHEME", "http")
    )

    # ------------------------------------------------------------------
    # Artifacts
    # ------------------------------------------------------------------
    output_dir: Path = field(
        default_factory=lambda: Path(os.environ.get("RADAR_OUTPUT_DIR", "."))
    )

    @property
    def max_outstanding(self) -> int:
        """Permit cap for the rate limiter."""
        if self.llm_max_outstanding is None:
            return self.llm_rate_limit_per_minute
        return self.llm_max_outstanding

    def require_api_key(self) -> str:
        """Return the bearer credential or raise :class:`MissingCredential`."""
        if not self.nvidia_api_key:
            raise MissingCredential(
                "NVIDIA_API_KEY environment variable is not set. "
                "Set it in your shell or in a .env file."
            )
        return self.nvidia_api_key


# Module-level singleton, import this everywhere:
#   from radar.config import settings
settings = Settings()
