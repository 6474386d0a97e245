"""
Runtime configuration for the marketplace core.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

load_dotenv()
load_dotenv('../.env')  # Also try parent directory


@dataclass(frozen=True)
class MarketplaceConfig:
    """Tunable business settings."""
    min_hourly_rate: float = 10.0
    default_session_location: str = "Online"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "MarketplaceConfig":
        """
        Build config from environment variables.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)

        Raises:
            ValueError: If MIN_HOURLY_RATE is not a non-negative number
        """
        env = os.environ if environ is None else environ
        raw_rate = env.get("MIN_HOURLY_RATE", "10")
        try:
            min_hourly_rate = float(raw_rate)
        except ValueError:
            raise ValueError(f"MIN_HOURLY_RATE must be a number, got {raw_rate!r}") from None
        if min_hourly_rate < 0:
            raise ValueError("MIN_HOURLY_RATE must not be negative")

        return cls(
            min_hourly_rate=min_hourly_rate,
            default_session_location=env.get("DEFAULT_SESSION_LOCATION", "Online") or "Online",
        )
