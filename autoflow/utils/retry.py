from __future__ import annotations

import random


def compute_backoff(
    attempt: int, base_delay: float = 1.0, jitter: float = 0.0
) -> float:
    """Exponential backoff: ``base_delay * 2 ** (attempt - 1)`` plus jitter."""
    delay = base_delay * 2 ** max(attempt - 1, 0)
    return delay + (random.uniform(0, jitter) if jitter else 0.0)
