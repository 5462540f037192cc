"""Decide whether a record is recent enough to act on."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional


def reference_time(grace_period_mins: float, now: Optional[datetime] = None) -> datetime:
    """Process-start reference: ``now`` minus the grace period, in UTC."""
    now = now or datetime.now(timezone.utc)
    return now - timedelta(minutes=grace_period_mins)


@dataclass(frozen=True)
class RecencyFilter:
    """Pass every record, or with ``only_new`` only those after ``reference``."""

    reference: datetime
    only_new: bool

    def passes(self, timestamp: Optional[datetime]) -> bool:
        if not self.only_new:
            return True
        if timestamp is None:
            return False
        return timestamp > self.reference
