"""
Tests — fractional order keys.

Covers:
    - insertion key rules (empty, start, end, between, narrow gap)
    - position validation
    - effective key fallbacks and stable sorting
    - renormalization
    - random insertion sequences keep order without touching siblings
"""

import random
from datetime import datetime, timedelta, timezone

import pytest

from tracker.core.exceptions import ValidationError
from tracker.services.order_index import (
    LEGACY_ORDER_SENTINEL,
    ORDER_SEED,
    compute_insertion_key,
    effective_order_key,
    has_room,
    needs_renormalization,
    renormalize,
    resolve_position,
    sort_jobs,
)
from tracker.services.records import JobRecord


# ═════════════════════════════════════════════════════════════════════════════
# INSERTION KEYS
# ═════════════════════════════════════════════════════════════════════════════

class TestComputeInsertionKey:
    def test_empty_list_gets_seed(self):
        assert compute_insertion_key([]) == ORDER_SEED
        assert compute_insertion_key([], "start") == ORDER_SEED

    def test_start_goes_below_first(self):
        assert compute_insertion_key([100, 200, 300], "start") == 90

    def test_end_goes_above_last(self):
        assert compute_insertion_key([100, 200, 300], "end") == 310
        assert compute_insertion_key([100, 200, 300], None) == 310

    def test_index_past_end_appends(self):
        assert compute_insertion_key([100, 200], 99) == 210

    def test_between_takes_midpoint(self):
        assert compute_insertion_key([100, 200, 300], 1) == 150
        assert compute_insertion_key([100, 200, 300], 2) == 250

    def test_unsorted_input_is_sorted_first(self):
        assert compute_insertion_key([300, 100, 200], 1) == 150

    def test_narrow_gap_uses_small_step(self):
        key = compute_insertion_key([10, 10.5], 1)
        assert key == pytest.approx(10.1)
        assert 10 < key < 10.5

    def test_very_narrow_gap_falls_back_to_midpoint(self):
        key = compute_insertion_key([10, 10.05], 1)
        assert key == pytest.approx(10.025)

    def test_no_room_returns_lower_neighbour(self):
        lo = 1.0
        hi = 1.0 + 2.220446049250313e-16
        assert compute_insertion_key([lo, hi], 1) == lo


class TestResolvePosition:
    def test_named_positions(self):
        assert resolve_position("start", 5) == 0
        assert resolve_position("end", 5) == 5
        assert resolve_position(None, 5) == 5

    def test_index_is_clamped(self):
        assert resolve_position(2, 5) == 2
        assert resolve_position(9, 5) == 5

    @pytest.mark.parametrize("bad", [-1, "middle", 1.5, True])
    def test_invalid_positions_rejected(self, bad):
        with pytest.raises(ValidationError):
            resolve_position(bad, 3)


class TestRoom:
    def test_has_room_on_ends(self):
        assert has_room([1.0, 1.0], "start")
        assert has_room([1.0, 1.0], "end")

    def test_no_room_between_equal_keys(self):
        assert not has_room([5.0, 5.0], 1)

    def test_needs_renormalization(self):
        assert needs_renormalization([10, 10.0000001, 20])
        assert not needs_renormalization([10, 20, 30])


# ═════════════════════════════════════════════════════════════════════════════
# EFFECTIVE KEYS & SORTING
# ═════════════════════════════════════════════════════════════════════════════

class TestEffectiveOrder:
    def test_order_index_wins(self):
        assert effective_order_key(JobRecord(order_index=42, step_number=1)) == 42

    def test_step_number_fallback(self):
        assert effective_order_key(JobRecord(step_number=3)) == 30

    def test_sentinel_when_nothing_known(self):
        assert effective_order_key(JobRecord()) == LEGACY_ORDER_SENTINEL

    def test_sort_is_stable_on_ties(self):
        t0 = datetime(2025, 1, 1, tzinfo=timezone.utc)
        jobs = [
            JobRecord(id=1, order_index=20, step_number=2),
            JobRecord(id=2, order_index=10, created_at=t0 + timedelta(minutes=5)),
            JobRecord(id=3, order_index=10, created_at=t0),
            JobRecord(id=4),
            JobRecord(id=5, order_index=20, step_number=1),
        ]
        assert [j.id for j in sort_jobs(jobs)] == [3, 2, 5, 1, 4]


class TestRenormalize:
    def test_spreads_keys_at_stride(self):
        jobs = [
            JobRecord(id=1, order_index=10.1),
            JobRecord(id=2, order_index=10.15),
            JobRecord(id=3, order_index=10.2),
        ]
        assert renormalize(jobs) == {1: 10, 2: 20, 3: 30}

    def test_only_changed_keys_reported(self):
        jobs = [JobRecord(id=1, order_index=10), JobRecord(id=2, order_index=25)]
        assert renormalize(jobs) == {2: 20}

    def test_preserves_relative_order(self):
        jobs = [JobRecord(id=i, order_index=k) for i, k in ((1, 5.5), (2, 1.25), (3, 3))]
        changes = renormalize(jobs)
        assert changes[2] < changes[3] < changes[1]


# ═════════════════════════════════════════════════════════════════════════════
# RANDOM INSERTION SEQUENCES
# ═════════════════════════════════════════════════════════════════════════════

@pytest.mark.parametrize("seed", [1, 7, 42, 2024])
def test_random_insertions_keep_order(seed):
    rng = random.Random(seed)
    ordered = []          # intended display order of labels
    keys = {}             # label -> key, never rewritten once assigned
    for label in range(30):
        position = rng.choice(["start", "end", rng.randint(0, len(ordered))])
        current = [keys[x] for x in ordered]
        assert has_room(current, position)
        key = compute_insertion_key(current, position)
        slot = resolve_position(position, len(ordered))
        ordered.insert(slot, label)
        keys[label] = key

        by_key = sorted(ordered, key=lambda x: keys[x])
        assert by_key == ordered
        assert len(set(keys.values())) == len(keys)
