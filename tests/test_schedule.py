"""Tests for interval predicates, consolidation and upcoming selection."""

from datetime import timedelta

import pytest

from conftest import at, make_interval
from huewatch.schedule import Interval, consolidate, select_upcoming


def covered_minutes(intervals):
    """Set of minute offsets (from 00:00) covered by [start, end)."""
    minutes = set()
    midnight = at(0)
    for i in intervals:
        first = int((i.start - midnight).total_seconds() // 60)
        last = int((i.end - midnight).total_seconds() // 60)
        minutes.update(range(first, last))
    return minutes


class TestIntervalPredicates:
    def test_partial_overlap_when_end_falls_inside_other(self):
        a = make_interval("A", at(9), at(10))
        b = make_interval("B", at(9, 45), at(10, 30))
        assert a.partially_overlaps(b)
        assert not b.partially_overlaps(a)

    def test_touching_intervals_partially_overlap(self):
        a = make_interval("A", at(9), at(10))
        b = make_interval("B", at(10), at(11))
        assert a.partially_overlaps(b)

    def test_no_partial_overlap_when_end_reaches_other_end(self):
        a = make_interval("A", at(9), at(10))
        b = make_interval("B", at(9, 30), at(10))
        assert not a.partially_overlaps(b)
        assert a.completely_overlaps(b)

    def test_no_overlap_for_disjoint(self):
        a = make_interval("A", at(9), at(10))
        b = make_interval("B", at(11), at(12))
        assert not a.partially_overlaps(b)
        assert not a.completely_overlaps(b)

    def test_in_progress_is_endpoint_inclusive(self):
        i = make_interval("A", at(9), at(10))
        assert i.in_progress(at(9))
        assert i.in_progress(at(9, 30))
        assert i.in_progress(at(10))
        assert not i.in_progress(at(8, 59, 59))
        assert not i.in_progress(at(10, 0, 1))

    def test_has_ended_is_strictly_after_end(self):
        i = make_interval("A", at(9), at(10))
        assert not i.has_ended(at(10))
        assert i.has_ended(at(10, 0, 1))

    def test_is_yet_to_start(self):
        i = make_interval("A", at(9), at(10))
        assert i.is_yet_to_start(at(8))
        assert i.is_yet_to_start(at(9))
        assert not i.is_yet_to_start(at(9, 0, 1))

    def test_zero_length_interval_in_progress_only_at_start(self):
        i = make_interval("Ping", at(9), at(9))
        assert i.in_progress(at(9))
        assert not i.in_progress(at(9, 0, 1))
        assert not i.in_progress(at(8, 59, 59))

    @pytest.mark.parametrize(
        "start,end",
        [(None, at(10)), (at(9), None), (at(10), at(9))],
    )
    def test_invalid_interval_never_matches(self, start, end):
        bad = Interval("Bad", "", start, end)
        good = make_interval("Good", at(9), at(10))
        assert not bad.is_valid
        assert not bad.in_progress(at(9, 30))
        assert not bad.has_ended(at(23))
        assert not bad.is_yet_to_start(at(0))
        assert not bad.partially_overlaps(good)
        assert not good.completely_overlaps(bad)

    def test_on_day_moves_start_only(self):
        i = Interval("Standup", "", at(9, day=5), at(9, 15, day=5), is_recurring=True)
        moved = i.on_day(at(0).date())
        assert moved.start == at(9)
        assert moved.end == at(9, 15, day=5)
        assert moved.is_recurring


class TestConsolidate:
    def test_complete_overlap_is_dropped(self):
        """A short interval inside a longer one disappears."""
        merged = consolidate([
            make_interval("Long", at(9), at(10)),
            make_interval("Short", at(9, 30), at(9, 45)),
        ])
        assert len(merged) == 1
        assert merged[0].start == at(9)
        assert merged[0].end == at(10)
        assert merged[0].summary == "Long"

    def test_partial_overlap_is_merged_with_joined_fields(self):
        """Overlapping tails extend the merged interval."""
        merged = consolidate([
            make_interval("Design", at(9), at(10)),
            make_interval("Review", at(9, 45), at(10, 30)),
        ])
        assert len(merged) == 1
        assert merged[0].start == at(9)
        assert merged[0].end == at(10, 30)
        assert merged[0].summary == "Design:Review"
        assert merged[0].description == "design:review"

    def test_disjoint_intervals_unchanged(self):
        """Disjoint intervals pass through as they are."""
        a = make_interval("A", at(9), at(10))
        b = make_interval("B", at(11), at(12))
        assert consolidate([a, b]) == [a, b]

    def test_unsorted_input_is_sorted_by_start(self):
        a = make_interval("A", at(9), at(10))
        b = make_interval("B", at(11), at(12))
        c = make_interval("C", at(7), at(8))
        assert consolidate([b, a, c]) == [c, a, b]

    def test_adjacent_intervals_merge(self):
        merged = consolidate([
            make_interval("A", at(9), at(10)),
            make_interval("B", at(10), at(11)),
        ])
        assert [(m.start, m.end) for m in merged] == [(at(9), at(11))]

    def test_chain_of_overlaps_extends_tail(self):
        merged = consolidate([
            make_interval("A", at(9), at(10)),
            make_interval("B", at(9, 30), at(11)),
            make_interval("C", at(10, 30), at(12)),
            make_interval("D", at(11), at(11, 30)),
        ])
        assert len(merged) == 1
        assert merged[0].end == at(12)
        assert merged[0].summary == "A:B:C"

    def test_containment_does_not_move_bounds(self):
        outer = make_interval("Outer", at(9), at(12))
        merged = consolidate([
            outer,
            make_interval("In1", at(9), at(10)),
            make_interval("In2", at(10), at(12)),
            make_interval("In3", at(11), at(11, 30)),
        ])
        assert merged == [outer]

    def test_idempotent(self):
        once = consolidate([
            make_interval("A", at(9), at(10)),
            make_interval("B", at(9, 45), at(10, 30)),
            make_interval("C", at(13), at(14)),
            make_interval("D", at(13, 15), at(13, 30)),
        ])
        assert consolidate(once) == once

    def test_invalid_intervals_are_skipped(self):
        good = make_interval("Good", at(9), at(10))
        merged = consolidate([Interval("Bad", "", None, at(10)), good])
        assert merged == [good]

    def test_empty(self):
        assert consolidate([]) == []

    def test_input_list_not_mutated(self):
        raw = [make_interval("B", at(11), at(12)), make_interval("A", at(9), at(11, 30))]
        before = list(raw)
        consolidate(raw)
        assert raw == before

    def test_output_sorted_disjoint_and_covers_input(self):
        raw = [
            make_interval("a", at(14), at(15)),
            make_interval("b", at(9), at(9, 30)),
            make_interval("c", at(9, 15), at(10)),
            make_interval("d", at(9, 20), at(9, 25)),
            make_interval("e", at(10, 45), at(11)),
            make_interval("f", at(11), at(11, 15)),
            make_interval("g", at(14, 30), at(14, 40)),
            make_interval("h", at(16), at(16)),
            make_interval("i", at(8), at(9, 5)),
        ]
        merged = consolidate(raw)

        starts = [m.start for m in merged]
        assert starts == sorted(starts)
        for prev, nxt in zip(merged, merged[1:]):
            assert prev.end < nxt.start
        assert covered_minutes(merged) == covered_minutes(raw)


class TestSelectUpcoming:
    def test_skips_past_intervals(self):
        """Intervals that are already over are skipped."""
        past = make_interval("Past", at(9), at(10))
        future = make_interval("Future", at(11), at(12))
        assert select_upcoming([past, future], at(10, 30)) is future

    def test_in_progress_interval_wins(self):
        current = make_interval("Now", at(10), at(11))
        later = make_interval("Later", at(12), at(13))
        assert select_upcoming([current, later], at(10, 30)) is current

    def test_none_when_everything_is_over(self):
        intervals = [make_interval("A", at(9), at(10)), make_interval("B", at(11), at(12))]
        assert select_upcoming(intervals, at(12, 1)) is None

    def test_interval_ending_exactly_now_is_skipped(self):
        a = make_interval("A", at(9), at(10))
        b = make_interval("B", at(11), at(12))
        assert select_upcoming([a, b], at(10)) is b

    def test_empty(self):
        assert select_upcoming([], at(10)) is None

    def test_first_with_end_after_now(self):
        intervals = consolidate([
            make_interval("A", at(8), at(9)),
            make_interval("B", at(9, 30), at(10)),
            make_interval("C", at(13), at(14)),
        ])
        now = at(9) + timedelta(seconds=1)
        assert select_upcoming(intervals, now).summary == "B"
