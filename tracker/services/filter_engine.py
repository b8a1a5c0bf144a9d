"""
Column and free-text filtering over element or job rows.

Rules:
  - text filter: case-insensitive substring against any scalar field (OR)
  - value-set filter: stringified field value must be in the set (OR within)
  - range filter: numeric value within [min, max]; unset bounds are open
  - every column filter must pass (AND across columns)

``ViewState`` carries one consumer section's search / filter / group /
expansion state as a plain serializable value.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Iterable, Mapping

from tracker.core.exceptions import ValidationError
from tracker.services.order_index import sort_jobs
from tracker.services.records import JobRecord, JobStatus, as_row

logger = logging.getLogger(__name__)

ALL_JOBS_COMPLETE = "All jobs complete"
NO_JOBS_LABEL = "No jobs"

# not_applicable still blocks the element, so it counts as the job to chase.
PENDING_LIKE = frozenset({JobStatus.PENDING, JobStatus.NOT_APPLICABLE})


def current_pending_job(jobs: Iterable[JobRecord]) -> str:
    """Title of the first outstanding job by order key, or a sentinel."""
    ordered = sort_jobs(jobs)
    if not ordered:
        return NO_JOBS_LABEL
    for job in ordered:
        if job.status in PENDING_LIKE:
            return job.title
    return ALL_JOBS_COMPLETE


def stringify(value: Any) -> str:
    """Render a field value the way filters and group keys compare it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        return value.value
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value)


def to_number(value: Any) -> float | None:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


# ═════════════════════════════════════════════════════════════════════════════
# Column filters
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ValueSetFilter:
    values: frozenset = frozenset()

    @property
    def is_active(self) -> bool:
        return bool(self.values)

    def matches(self, value: Any) -> bool:
        if not self.values:
            return True
        return stringify(value) in self.values

    def to_dict(self):
        return sorted(self.values)


@dataclass(frozen=True)
class RangeFilter:
    min: float | None = None
    max: float | None = None

    @property
    def is_active(self) -> bool:
        return self.min is not None or self.max is not None

    def matches(self, value: Any) -> bool:
        if not self.is_active:
            return True
        number = to_number(value)
        if number is None:
            return False
        if self.min is not None and number < self.min:
            return False
        if self.max is not None and number > self.max:
            return False
        return True

    def to_dict(self) -> dict:
        return {"min": self.min, "max": self.max}


def _bound(column: str, name: str, value: Any) -> float | None:
    if value is None or value == "":
        return None
    number = to_number(value)
    if number is None:
        raise ValidationError(
            f"Invalid {name} bound for column {column!r}",
            details={column: f"{name} must be numeric"},
        )
    return number


def parse_column_filters(raw: Mapping | None) -> dict:
    """Build filter objects from their JSON shape.

    A list means a value set; ``{"min": .., "max": ..}`` means a range;
    ``{"values": [...]}`` is accepted as a value set too.
    """
    parsed = {}
    for column, wanted in (raw or {}).items():
        if isinstance(wanted, (ValueSetFilter, RangeFilter)):
            parsed[column] = wanted
        elif isinstance(wanted, (list, tuple, set, frozenset)):
            parsed[column] = ValueSetFilter(frozenset(stringify(v) for v in wanted))
        elif isinstance(wanted, Mapping) and "values" in wanted:
            parsed[column] = ValueSetFilter(frozenset(stringify(v) for v in wanted["values"] or []))
        elif isinstance(wanted, Mapping) and set(wanted) <= {"min", "max"}:
            lo = _bound(column, "min", wanted.get("min"))
            hi = _bound(column, "max", wanted.get("max"))
            if lo is not None and hi is not None and lo > hi:
                raise ValidationError(
                    f"Empty range for column {column!r}",
                    details={column: "min must not exceed max"},
                )
            parsed[column] = RangeFilter(lo, hi)
        else:
            raise ValidationError(
                f"Unsupported filter for column {column!r}",
                details={column: "expected a list of values or a {min, max} range"},
            )
    return parsed


def _matches_text(row: Mapping, needle: str) -> bool:
    for value in row.values():
        if isinstance(value, (list, dict, tuple, set)):
            continue
        if needle in stringify(value).lower():
            return True
    return False


def apply_filters(records: Iterable[Any], text_filter: str = "", column_filters: Mapping | None = None) -> list:
    """Return the records passing the text filter and every column filter.

    Records are returned as given (dicts, dataclasses...); matching reads
    their flat row view.
    """
    filters = parse_column_filters(column_filters)
    active = {col: f for col, f in filters.items() if f.is_active}
    needle = (text_filter or "").strip().lower()

    result = []
    for record in records:
        row = as_row(record)
        if needle and not _matches_text(row, needle):
            continue
        if all(f.matches(row.get(col)) for col, f in active.items()):
            result.append(record)
    return result


def distinct_values(records: Iterable[Any], column: str) -> list[str]:
    """Sorted distinct stringified values of *column* (multi-select options)."""
    return sorted({stringify(as_row(r).get(column)) for r in records})


# ═════════════════════════════════════════════════════════════════════════════
# View state
# ═════════════════════════════════════════════════════════════════════════════

def _path(value) -> tuple:
    if isinstance(value, str):
        return (value,)
    return tuple(stringify(v) for v in value)


@dataclass(frozen=True)
class ViewState:
    """Search, filter, grouping and expansion state of one consumer section."""
    search_term: str = ""
    column_filters: dict = field(default_factory=dict)
    group_by: tuple = ()
    expanded_groups: frozenset = frozenset()
    tab: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping | None) -> "ViewState":
        data = data or {}
        group_by = data.get("group_by") or ()
        if isinstance(group_by, str):
            group_by = (group_by,)
        return cls(
            search_term=str(data.get("search_term") or ""),
            column_filters=parse_column_filters(data.get("column_filters")),
            group_by=tuple(group_by),
            expanded_groups=frozenset(_path(p) for p in data.get("expanded_groups") or ()),
            tab=data.get("tab"),
        )

    def to_dict(self) -> dict:
        return {
            "search_term": self.search_term,
            "column_filters": {k: f.to_dict() for k, f in parse_column_filters(self.column_filters).items()},
            "group_by": list(self.group_by),
            "expanded_groups": sorted(list(p) for p in self.expanded_groups),
            "tab": self.tab,
        }

    def toggle_group(self, path) -> "ViewState":
        path = _path(path)
        expanded = set(self.expanded_groups)
        if path in expanded:
            expanded.discard(path)
        else:
            expanded.add(path)
        return replace(self, expanded_groups=frozenset(expanded))

    def apply(self, records: Iterable[Any]) -> list:
        return apply_filters(records, self.search_term, self.column_filters)
