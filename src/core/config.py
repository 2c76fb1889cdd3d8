"""Core configuration dataclasses and policy constants.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

# Participant-count thresholds used by the filter modes. Each mode has its own.
SMART_CHANNEL_MAX_PARTICIPANTS = 1000
SMART_GROUP_MAX_PARTICIPANTS = 500
SUPER_STRICT_GROUP_MAX_PARTICIPANTS = 50
LARGE_GROUP_MENTION_THRESHOLD = 100

# Message-level spam heuristics.
SPAM_EMOJI_LIMIT = 5
SPAM_CAPS_RATIO = 0.5
SPAM_CAPS_MIN_LENGTH = 20

DEFAULT_WINDOW_DAYS = 7
DEFAULT_DEDUP_HIGH_WATER_MARK = 10_000


@dataclass(frozen=True)
class RetryConfig:
    """Retry settings applied to every platform lookup."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    backoff_factor: float = 1.5


@dataclass(frozen=True)
class CacheConfig:
    """In-memory cache bounds for one ingestion run."""

    dedup_high_water_mark: int = DEFAULT_DEDUP_HIGH_WATER_MARK
    lookup_ttl_seconds: Optional[float] = None


@dataclass(frozen=True)
class DigestConfig:
    """Digest generation settings consumed by the aggregator and fetcher."""

    days: int = DEFAULT_WINDOW_DAYS
    include_archived: bool = False
    fetch_delay_seconds: float = 0.1
    fetch_limit_per_chat: int = 200
