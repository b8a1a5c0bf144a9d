"""
Consumer views — the admin element table and the engineer job worklist.

Both views run the same pipeline: fetch → derive status → filter →
group. Each section or tab takes its own ViewState, so search, filters,
grouping and expansion in one never leak into another.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Sequence

from tracker.core.exceptions import ValidationError
from tracker.services.element_status import annotate_elements
from tracker.services.filter_engine import ViewState
from tracker.services.grouping_engine import (
    DEFAULT_WORKLIST_CHAIN,
    ELEMENT_ROWS,
    JOB_ROWS,
    build_group_tree,
    compute_metrics,
)
from tracker.services.records import AnnotatedElement, ElementStatus, JobStatus, job_row

logger = logging.getLogger(__name__)

ADMIN_SECTIONS = (
    ElementStatus.NON_CLEARANCE,
    ElementStatus.NO_JOBS,
    ElementStatus.ACTIVE,
    ElementStatus.COMPLETE,
)

WORKLIST_TABS = tuple(s.value for s in JobStatus)


def load_annotated(store, project_id) -> list[AnnotatedElement]:
    """Two bulk reads (elements, jobs) joined in memory."""
    return annotate_elements(store.list_elements(project_id), store.list_jobs(project_id))


def worklist_rows(annotated: Iterable[AnnotatedElement]) -> list[dict]:
    return [job_row(job, item.element) for item in annotated for job in item.jobs]


def admin_sections(annotated: Sequence[AnnotatedElement], states: Mapping | None = None) -> list[dict]:
    """One block per element status, each filtered and grouped by its own state."""
    states = states or {}
    sections = []
    for status in ADMIN_SECTIONS:
        state = states.get(status.value) or ViewState()
        members = [a for a in annotated if a.status is status]
        rows = [a.to_dict() for a in state.apply(members)]
        section = {
            "status": status.value,
            "total": len(members),
            "count": len(rows),
            "metrics": compute_metrics(rows, ELEMENT_ROWS).to_dict(),
            "state": state.to_dict(),
        }
        if state.group_by:
            tree = build_group_tree(rows, state.group_by, ELEMENT_ROWS,
                                    materialize=False, expanded=state.expanded_groups)
            section["groups"] = [child.to_dict() for child in tree.children.values()]
        else:
            section["elements"] = rows
        sections.append(section)
    return sections


def _tab_of(row: Mapping) -> str:
    return JobStatus.coerce(row.get("status")).value


def engineer_worklist(rows: Sequence[Mapping], state: ViewState | None = None) -> dict:
    """Job rows for one tab, grouped grid → workflow → job → status by default."""
    state = state or ViewState()
    tab = state.tab or JobStatus.PENDING.value
    if tab not in WORKLIST_TABS:
        raise ValidationError(
            f"Unknown worklist tab: {tab}",
            details={"tab": "must be one of " + ", ".join(WORKLIST_TABS)},
        )

    by_tab = {t: [] for t in WORKLIST_TABS}
    for row in rows:
        by_tab[_tab_of(row)].append(row)

    chain = state.group_by or DEFAULT_WORKLIST_CHAIN
    filtered = state.apply(by_tab[tab])
    tree = build_group_tree(filtered, chain, JOB_ROWS,
                            materialize=False, expanded=state.expanded_groups)
    return {
        "tab": tab,
        "tabs": {t: compute_metrics(r, JOB_ROWS).to_dict() for t, r in by_tab.items()},
        "key_chain": list(chain),
        "metrics": tree.metrics.to_dict(),
        "groups": [child.to_dict() for child in tree.children.values()],
        "state": state.to_dict(),
    }
