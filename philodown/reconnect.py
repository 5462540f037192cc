"""Delay schedule for reconnecting to the feed."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Callable


@dataclass
class ReconnectPolicy:
    """Map consecutive failed connections to a reconnect delay in seconds.

    The first reconnect after a session in which the server sent a frame is
    immediate. Each further consecutive failure doubles the delay from
    ``base_delay`` up to ``max_delay``, scaled down by up to ``jitter``.
    """

    base_delay: float = 1.0
    max_delay: float = 60.0
    jitter: float = 0.5
    rand: Callable[[], float] = field(default=random.random, repr=False)

    def delay(self, failures: int) -> float:
        if failures <= 0:
            return 0.0
        capped = min(self.max_delay, self.base_delay * 2 ** min(failures - 1, 32))
        return capped * (1 - self.jitter * self.rand())
