from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt ceiling plus wait computation for one target.

    Rate-limit and unclassified failures share the same ceiling: a target is
    attempted at most ``attempts`` times in total.
    """
    attempts: int = 4
    base_delay: float = 1.0
    max_delay: float = 30.0
    prefer_server_hint: bool = True

    def delay_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        """Wait before retry number ``attempt + 1`` (``attempt`` is 1-based)."""
        if self.prefer_server_hint and retry_after is not None and retry_after > 0:
            return float(retry_after)
        return min(self.max_delay, self.base_delay * (2 ** max(0, attempt - 1)))


@dataclass(frozen=True)
class JitterPolicy:
    """Uniform pause between consecutive actions of one worker."""
    min_seconds: float = 0.35
    max_seconds: float = 0.9

    def draw(self, rng: random.Random) -> float:
        low, high = sorted((max(0.0, self.min_seconds), max(0.0, self.max_seconds)))
        return rng.uniform(low, high)


@dataclass(frozen=True)
class ProgressPolicy:
    """Emit when either threshold is crossed since the last emitted update."""
    interval_seconds: float = 5.0
    batch_size: int = 25
