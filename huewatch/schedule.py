# huewatch/schedule.py
"""
Busy intervals for one day and the two pure operations on them:

    merged = consolidate(intervals)      # disjoint, sorted by start
    upcoming = select_upcoming(merged, now)

All timestamps are timezone-aware datetimes parsed once at ingestion
(see google_calendar.build_intervals). An endpoint that failed to parse
is None; such an interval is invalid and never matches any predicate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Interval:
    summary: str
    description: str
    start: Optional[datetime]
    end: Optional[datetime]
    is_recurring: bool = False

    def __repr__(self):
        start = self.start.isoformat() if self.start else "?"
        end = self.end.isoformat() if self.end else "?"
        return f"<Interval {self.summary!r} {start} → {end}>"

    @property
    def is_valid(self) -> bool:
        return self.start is not None and self.end is not None and self.start <= self.end

    # ---------- overlap (last merged interval vs. next candidate) ----------

    def partially_overlaps(self, other: Interval) -> bool:
        """
        True if self ends inside [other.start, other.end).
        Touching intervals (self.end == other.start) count as overlapping.
        """
        if not (self.is_valid and other.is_valid):
            return False
        return other.start <= self.end < other.end

    def completely_overlaps(self, other: Interval) -> bool:
        """True if self already reaches (or passes) other's end."""
        if not (self.is_valid and other.is_valid):
            return False
        return self.end >= other.end

    # ---------- position relative to now ----------

    def in_progress(self, now: datetime) -> bool:
        return self.is_valid and self.start <= now <= self.end

    def is_yet_to_start(self, now: datetime) -> bool:
        return self.is_valid and now <= self.start

    def has_ended(self, now: datetime) -> bool:
        return self.is_valid and now > self.end

    def on_day(self, day) -> Interval:
        """Copy with start moved to `day`, keeping time of day and tz. End is untouched."""
        return replace(self, start=datetime.combine(day, self.start.timetz()))


def consolidate(intervals: Iterable[Interval]) -> List[Interval]:
    """
    Merge overlapping/adjacent intervals into a disjoint list sorted by start.

    One pass over the start-sorted input. The last merged interval either
    absorbs the candidate's tail (partial overlap), swallows the candidate
    whole (complete overlap), or is followed by it (disjoint). Merged
    intervals join the source summaries/descriptions with ':'.
    """
    valid = []
    for interval in intervals:
        if interval.is_valid:
            valid.append(interval)
        else:
            logger.warning(f"[Schedule] Skipping invalid interval {interval!r}")

    merged: List[Interval] = []
    for current in sorted(valid, key=lambda i: i.start):
        if not merged:
            merged.append(current)
            continue

        last = merged[-1]
        if last.partially_overlaps(current):
            merged[-1] = Interval(
                summary=f"{last.summary}:{current.summary}",
                description=f"{last.description}:{current.description}",
                start=last.start,
                end=current.end,
            )
        elif last.completely_overlaps(current):
            # engulfed, contributes nothing
            continue
        else:
            merged.append(current)

    return merged


def select_upcoming(intervals: Sequence[Interval], now: datetime) -> Optional[Interval]:
    """First interval (in time order) that has not ended yet, or None."""
    for interval in intervals:
        if interval.is_valid and now < interval.end:
            return interval
    return None
