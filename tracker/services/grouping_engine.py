"""
Grouping engine — multi-level group trees with per-bucket metrics.

Rows are bucketed along a key chain (e.g. grid → workflow → job title →
status). Every bucket carries element count, job count, surface area and
quantity; area and quantity are summed over distinct elements only, so
an element with five jobs in a bucket contributes its area once.

Materialization is two-phase: ``summarize_groups`` returns only metrics
per group key, ``materialize_group`` returns the rows of one bucket.
``GroupMaterializer`` caches phase-two results per group path.

Display order of sibling buckets: pending work descending, then key
ascending.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Mapping, Sequence

from tracker.services.filter_engine import stringify, to_number
from tracker.services.order_index import effective_order_key
from tracker.services.records import JobRecord, JobStatus, as_row

logger = logging.getLogger(__name__)

OTHER_GROUP = "Other"

DEFAULT_WORKLIST_CHAIN = ("grid_no", "fire_proofing_workflow", "job_title", "status")

AVAILABLE_GROUP_FIELDS = [
    {"value": "status", "label": "Status"},
    {"value": "level", "label": "Level"},
    {"value": "member_type", "label": "Member Type"},
    {"value": "grid_no", "label": "Grid No"},
    {"value": "drawing_no", "label": "Drawing No"},
    {"value": "structure_number", "label": "Structure Number"},
    {"value": "section_sizes", "label": "Section Sizes"},
    {"value": "fire_proofing_workflow", "label": "Fire Proofing Workflow"},
    {"value": "part_mark_no", "label": "Part Mark No"},
    {"value": "section_depth_mm", "label": "Section Depth (mm)"},
    {"value": "flange_width_mm", "label": "Flange Width (mm)"},
    {"value": "web_thickness_mm", "label": "Web Thickness (mm)"},
    {"value": "flange_thickness_mm", "label": "Flange Thickness (mm)"},
    {"value": "fireproofing_thickness", "label": "Fireproofing Thickness"},
    {"value": "job_title", "label": "Job"},
    {"value": "fire_proofing_type", "label": "Fire Proofing Type"},
]


# ═════════════════════════════════════════════════════════════════════════════
# Profiles: how a row is measured
# ═════════════════════════════════════════════════════════════════════════════

def _job_row_pending(row: Mapping) -> float:
    return 1.0 if JobStatus.coerce(row.get("status")) is JobStatus.PENDING else 0.0


def _element_row_pending(row: Mapping) -> float:
    total = to_number(row.get("total_jobs")) or 0.0
    done = to_number(row.get("jobs_completed")) or 0.0
    return max(total - done, 0.0)


def _job_row_order(row: Mapping):
    job = JobRecord(order_index=row.get("order_index"), step_number=row.get("step_number"))
    step = job.step_number if job.step_number is not None else float("inf")
    return (effective_order_key(job), step)


@dataclass(frozen=True)
class GroupingProfile:
    name: str
    element_id_field: str
    pending_work: Callable[[Mapping], float]
    job_count_field: str | None = None
    surface_area_field: str = "surface_area_sqm"
    quantity_field: str = "qty"
    leaf_sort: Callable[[Mapping], Any] | None = None


JOB_ROWS = GroupingProfile(
    name="jobs",
    element_id_field="element_id",
    pending_work=_job_row_pending,
    leaf_sort=_job_row_order,
)

ELEMENT_ROWS = GroupingProfile(
    name="elements",
    element_id_field="id",
    pending_work=_element_row_pending,
    job_count_field="total_jobs",
)


# ═════════════════════════════════════════════════════════════════════════════
# Tree types
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class GroupMetrics:
    element_count: int = 0
    job_count: int = 0
    sqm: float = 0.0
    qty: float = 0.0
    pending_work: float = 0.0

    def to_dict(self) -> dict:
        return {
            "element_count": self.element_count,
            "job_count": self.job_count,
            "sqm": round(self.sqm, 2),
            "qty": round(self.qty, 2),
            "pending_work": self.pending_work,
        }


@dataclass
class GroupNode:
    key: str
    path: tuple
    metrics: GroupMetrics
    children: dict = field(default_factory=dict)
    records: list | None = None

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def to_dict(self, include_records: bool = True) -> dict:
        data = {
            "key": self.key,
            "path": list(self.path),
            "metrics": self.metrics.to_dict(),
        }
        if self.children:
            data["children"] = [c.to_dict(include_records) for c in self.children.values()]
        elif include_records and self.records is not None:
            data["records"] = self.records
        return data


# ═════════════════════════════════════════════════════════════════════════════
# Metrics & bucketing
# ═════════════════════════════════════════════════════════════════════════════

def group_key_of(row: Mapping, key_field: str) -> str:
    text = stringify(row.get(key_field)).strip()
    return text or OTHER_GROUP


def compute_metrics(rows: Iterable[Mapping], profile: GroupingProfile = JOB_ROWS) -> GroupMetrics:
    seen: dict = {}
    job_count = 0
    pending = 0.0
    for index, row in enumerate(rows):
        if profile.job_count_field:
            job_count += int(to_number(row.get(profile.job_count_field)) or 0)
        else:
            job_count += 1
        pending += profile.pending_work(row)
        element_id = row.get(profile.element_id_field)
        identity = ("row", index) if element_id is None else ("id", str(element_id))
        if identity not in seen:
            seen[identity] = row
    sqm = sum(to_number(r.get(profile.surface_area_field)) or 0.0 for r in seen.values())
    qty = sum(to_number(r.get(profile.quantity_field)) or 0.0 for r in seen.values())
    return GroupMetrics(
        element_count=len(seen),
        job_count=job_count,
        sqm=sqm,
        qty=qty,
        pending_work=pending,
    )


def _bucket(rows: Iterable[Mapping], key_field: str) -> dict:
    buckets: dict = {}
    for row in rows:
        buckets.setdefault(group_key_of(row, key_field), []).append(row)
    return buckets


def sort_group_keys(metrics_by_key: Mapping) -> list:
    """Keys ordered by pending work descending, then key ascending."""
    return sorted(metrics_by_key, key=lambda k: (-metrics_by_key[k].pending_work, k))


def _sort_leaf(rows: list, profile: GroupingProfile) -> list:
    if profile.leaf_sort is None:
        return rows
    return sorted(rows, key=profile.leaf_sort)


def _is_expanded(path: tuple, expanded) -> bool:
    return any(path[:n] in expanded for n in range(1, len(path) + 1))


def _build(rows: list, chain: Sequence[str], path: tuple, profile, materialize, expanded) -> GroupNode:
    node = GroupNode(
        key=path[-1] if path else "",
        path=path,
        metrics=compute_metrics(rows, profile),
    )
    if not chain:
        if materialize or _is_expanded(path, expanded):
            node.records = _sort_leaf(rows, profile)
        return node

    built = {
        key: _build(bucket, chain[1:], path + (key,), profile, materialize, expanded)
        for key, bucket in _bucket(rows, chain[0]).items()
    }
    ordered = sort_group_keys({k: n.metrics for k, n in built.items()})
    node.children = {k: built[k] for k in ordered}
    return node


def build_group_tree(
    records: Iterable[Any],
    key_chain: Sequence[str],
    profile: GroupingProfile = JOB_ROWS,
    materialize: bool = True,
    expanded: Iterable = (),
) -> GroupNode:
    """Bucket *records* along *key_chain* and return the root node.

    With ``materialize=False`` only leaves under an *expanded* path keep
    their rows; every node still carries full metrics.
    """
    rows = [as_row(r) for r in records]
    expanded_paths = {tuple(p) for p in expanded}
    return _build(rows, tuple(key_chain), (), profile, materialize, expanded_paths)


def flatten_leaves(node: GroupNode) -> list[GroupNode]:
    if node.is_leaf:
        return [node]
    leaves = []
    for child in node.children.values():
        leaves.extend(flatten_leaves(child))
    return leaves


def ordered_children(node: GroupNode) -> list[GroupNode]:
    ordered = sort_group_keys({k: c.metrics for k, c in node.children.items()})
    return [node.children[k] for k in ordered]


def _rows_under(rows: Iterable[Mapping], key_chain: Sequence[str], group_path: Sequence[str]) -> list:
    if len(group_path) > len(key_chain):
        raise ValueError("group path is longer than the key chain")
    return [
        row for row in rows
        if all(group_key_of(row, f) == k for f, k in zip(key_chain, group_path))
    ]


def summarize_groups(
    records: Iterable[Any],
    key_chain: Sequence[str],
    profile: GroupingProfile = JOB_ROWS,
    parent_path: Sequence[str] = (),
) -> dict:
    """Phase one: ``{group_key: GroupMetrics}`` for the level below *parent_path*."""
    if len(parent_path) >= len(key_chain):
        return {}
    rows = _rows_under((as_row(r) for r in records), key_chain, parent_path)
    buckets = _bucket(rows, key_chain[len(parent_path)])
    metrics = {k: compute_metrics(v, profile) for k, v in buckets.items()}
    return {k: metrics[k] for k in sort_group_keys(metrics)}


def materialize_group(
    records: Iterable[Any],
    key_chain: Sequence[str],
    group_path: Sequence[str],
    profile: GroupingProfile = JOB_ROWS,
) -> list:
    """Phase two: the rows belonging to one bucket, in leaf order."""
    rows = _rows_under((as_row(r) for r in records), key_chain, tuple(group_path))
    return _sort_leaf(rows, profile)


class GroupMaterializer:
    """Per-group-path cache over a loader for phase-two detail.

    Concurrent expansions of different groups load independently; a load
    only ever fills the entry of the path it was asked for.
    """

    def __init__(self, loader: Callable[[tuple], list]):
        self._loader = loader
        self._cache: dict = {}
        self._lock = threading.Lock()

    def get(self, group_path: Sequence[str]) -> list:
        path = tuple(group_path)
        with self._lock:
            if path in self._cache:
                return self._cache[path]
        rows = self._loader(path)
        with self._lock:
            return self._cache.setdefault(path, rows)

    def is_cached(self, group_path: Sequence[str]) -> bool:
        with self._lock:
            return tuple(group_path) in self._cache

    def invalidate(self, group_path: Sequence[str] | None = None) -> None:
        with self._lock:
            if group_path is None:
                self._cache.clear()
            else:
                self._cache.pop(tuple(group_path), None)
