"""
Fractional order keys for an element's job list.

A new job gets a float key that sits between its neighbours, so inserting
never renumbers the siblings. Dense insertion shrinks the gaps; when no
float fits between two neighbours anymore, ``renormalize`` spreads the
keys back out at a fixed stride.

Rules:
  - empty list            → ORDER_SEED
  - start                 → first key - ORDER_GAP
  - end / None / past end → last key + ORDER_GAP
  - between i-1 and i     → midpoint, or key[i-1] + 0.1 when the gap is < 1
  - missing order_index   → step_number * 10, else LEGACY_ORDER_SENTINEL
"""

from __future__ import annotations

import logging
import math
from typing import Iterable, Sequence

from tracker.core.exceptions import ValidationError
from tracker.services.records import JobRecord

logger = logging.getLogger(__name__)

ORDER_SEED = 100.0
ORDER_GAP = 10.0
NARROW_GAP = 1.0
NARROW_STEP = 0.1
RENORMALIZE_STRIDE = 10.0
LEGACY_ORDER_SENTINEL = 1_000_000.0
DEFAULT_EPSILON = 1e-6

POSITION_START = "start"
POSITION_END = "end"


def resolve_position(position, length: int) -> int:
    """Turn "start" / "end" / None / an index into a slot in [0, length]."""
    if position is None or position == POSITION_END:
        return length
    if position == POSITION_START:
        return 0
    if isinstance(position, bool) or not isinstance(position, int):
        raise ValidationError(
            f"Invalid insertion position: {position!r}",
            details={"position": "must be 'start', 'end' or a non-negative index"},
        )
    if position < 0:
        raise ValidationError(
            f"Invalid insertion position: {position}",
            details={"position": "index must not be negative"},
        )
    return min(position, length)


def _between(lo: float, hi: float) -> float:
    key = (lo + hi) / 2
    if hi - lo < NARROW_GAP:
        logger.warning(
            "Narrow order-key gap %.6g between %r and %r; renormalization advised",
            hi - lo, lo, hi,
        )
        if lo + NARROW_STEP < hi:
            key = lo + NARROW_STEP
    if not lo < key < hi:
        logger.warning("Degenerate ordering: no key fits between %r and %r", lo, hi)
        return lo
    return key


def compute_insertion_key(existing_keys: Iterable[float], position="end") -> float:
    """Return the order key for a job inserted at *position*.

    *existing_keys* are the current keys of the element's jobs. None of
    them changes; the caller persists only the returned value.
    """
    keys = sorted(float(k) for k in existing_keys)
    if not keys:
        return ORDER_SEED

    slot = resolve_position(position, len(keys))
    if slot == 0:
        return keys[0] - ORDER_GAP
    if slot >= len(keys):
        return keys[-1] + ORDER_GAP
    return _between(keys[slot - 1], keys[slot])


def has_room(existing_keys: Iterable[float], position="end") -> bool:
    """False when the neighbours at *position* leave no float strictly between them."""
    keys = sorted(float(k) for k in existing_keys)
    slot = resolve_position(position, len(keys))
    if slot == 0 or slot >= len(keys):
        return True
    lo, hi = keys[slot - 1], keys[slot]
    return lo < (lo + hi) / 2 < hi


def needs_renormalization(existing_keys: Iterable[float], epsilon: float = DEFAULT_EPSILON) -> bool:
    keys = sorted(float(k) for k in existing_keys)
    return any(b - a < epsilon for a, b in zip(keys, keys[1:]))


def effective_order_key(job: JobRecord) -> float:
    if job.order_index is not None and not math.isnan(job.order_index):
        return job.order_index
    if job.step_number is not None:
        return job.step_number * 10.0
    return LEGACY_ORDER_SENTINEL


def _created_sort_key(job: JobRecord):
    created = job.created_at
    if created is None:
        return (1, "")
    return (0, created.isoformat() if hasattr(created, "isoformat") else str(created))


def sort_jobs(jobs: Iterable[JobRecord]) -> list[JobRecord]:
    """Stable sort by order key, then step number, then creation time."""
    return sorted(
        jobs,
        key=lambda j: (
            effective_order_key(j),
            j.step_number if j.step_number is not None else math.inf,
            _created_sort_key(j),
        ),
    )


def renormalize(jobs: Sequence[JobRecord], stride: float = RENORMALIZE_STRIDE) -> dict:
    """Reassign keys stride, 2*stride, ... in current order.

    Returns ``{job_id: new_key}`` for the jobs whose key actually changes.
    """
    changes = {}
    for position, job in enumerate(sort_jobs(jobs), start=1):
        new_key = stride * position
        if job.order_index != new_key:
            changes[job.id] = new_key
    return changes
