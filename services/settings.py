"""
Engine configuration.

Settings are read from the environment (a `.env` file in the project root is
loaded first), the same way the Supabase credentials are. All variables use
the LEAD_DISTRIBUTION_ prefix:

- LEAD_DISTRIBUTION_PROMOTE_ON_CONFLICT: promote the next-ranked candidate when
  a selected batch loses its last slot at commit time (default: true)
- LEAD_DISTRIBUTION_REGIONS_ACCEPT_UNRESOLVED: accept `regions` batches when the
  lead's region cannot be resolved (default: true)
- LEAD_DISTRIBUTION_GEOCODER_URL: PDOK Locatieserver free-search endpoint
- LEAD_DISTRIBUTION_GEOCODER_TIMEOUT_SECONDS (default: 5)
- LEAD_DISTRIBUTION_COMMIT_MAX_ATTEMPTS (default: 3)
- LEAD_DISTRIBUTION_COMMIT_BACKOFF_MIN_SECONDS (default: 0.5)
- LEAD_DISTRIBUTION_COMMIT_BACKOFF_MAX_SECONDS (default: 5)
- LEAD_DISTRIBUTION_LOG_LEVEL (default: INFO)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

ENV_PREFIX = "LEAD_DISTRIBUTION_"
PDOK_FREE_SEARCH_URL = "https://api.pdok.nl/bzk/locatieserver/search/v3_1/free"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True, slots=True)
class DistributionSettings:
    promote_on_conflict: bool = True
    regions_accept_unresolved: bool = True
    geocoder_url: str = PDOK_FREE_SEARCH_URL
    geocoder_timeout_seconds: float = 5.0
    commit_max_attempts: int = 3
    commit_backoff_min_seconds: float = 0.5
    commit_backoff_max_seconds: float = 5.0
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.geocoder_timeout_seconds <= 0:
            raise ValueError("geocoder_timeout_seconds must be positive")
        if self.commit_max_attempts < 1:
            raise ValueError("commit_max_attempts must be >= 1")
        if self.commit_backoff_min_seconds < 0 or self.commit_backoff_max_seconds < self.commit_backoff_min_seconds:
            raise ValueError("commit backoff must satisfy 0 <= min <= max")


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> DistributionSettings:
    """
    Build settings from `environ` (defaults to os.environ after loading .env).

    Raises:
        ValueError: a variable is present but malformed.
    """

    if environ is None:
        load_dotenv(dotenv_path=Path(__file__).parent.parent / ".env")
        environ = os.environ

    def get(key: str) -> Optional[str]:
        value = environ.get(ENV_PREFIX + key)
        return value if value not in (None, "") else None

    defaults = DistributionSettings()
    kwargs: dict[str, object] = {}

    for key, attr in (
        ("PROMOTE_ON_CONFLICT", "promote_on_conflict"),
        ("REGIONS_ACCEPT_UNRESOLVED", "regions_accept_unresolved"),
    ):
        raw = get(key)
        if raw is not None:
            kwargs[attr] = _parse_bool(ENV_PREFIX + key, raw)

    for key, attr, cast in (
        ("GEOCODER_TIMEOUT_SECONDS", "geocoder_timeout_seconds", float),
        ("COMMIT_MAX_ATTEMPTS", "commit_max_attempts", int),
        ("COMMIT_BACKOFF_MIN_SECONDS", "commit_backoff_min_seconds", float),
        ("COMMIT_BACKOFF_MAX_SECONDS", "commit_backoff_max_seconds", float),
    ):
        raw = get(key)
        if raw is not None:
            try:
                kwargs[attr] = cast(raw)
            except ValueError:
                raise ValueError(f"{ENV_PREFIX}{key} must be a number, got {raw!r}") from None

    kwargs["geocoder_url"] = get("GEOCODER_URL") or defaults.geocoder_url
    kwargs["log_level"] = (get("LOG_LEVEL") or defaults.log_level).upper()

    return DistributionSettings(**kwargs)  # type: ignore[arg-type]


__all__ = ["DistributionSettings", "PDOK_FREE_SEARCH_URL", "load_settings"]
