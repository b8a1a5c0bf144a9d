"""
Tests — element status derivation and project status correction.

Covers:
    - status precedence (no jobs, non clearance, complete, active)
    - completion / progress rounding
    - status coercion of legacy values
    - annotation, counting and surface-area weighted progress
    - project status correction through the data-access collaborator
    - totality and idempotence over random job lists
"""

import random
from dataclasses import replace

import pytest

from tracker.core.exceptions import ExternalIOError, ValidationError
from tracker.services.element_status import (
    annotate_elements,
    compute_project_progress,
    corrected_project_status,
    count_by_status,
    derive_status,
    needs_status_correction,
    reconcile_project_status,
    round_half_up,
    summarize_job_statuses,
)
from tracker.services.data_access import InMemoryDataAccess
from tracker.services.records import (
    ElementRecord,
    ElementStatus,
    JobRecord,
    JobStatus,
    ProjectRecord,
    ProjectStatus,
)


def _jobs(*statuses, progress=None):
    progress = progress or [0] * len(statuses)
    return [
        JobRecord(id=i, element_id=1, title=f"Step {i}", status=s,
                  progress_percentage=p, order_index=(i + 1) * 10)
        for i, (s, p) in enumerate(zip(statuses, progress))
    ]


# ═════════════════════════════════════════════════════════════════════════════
# DERIVE STATUS
# ═════════════════════════════════════════════════════════════════════════════

class TestDeriveStatus:
    def test_no_jobs(self):
        derived = derive_status([])
        assert derived.status is ElementStatus.NO_JOBS
        assert derived.total_count == 0
        assert derived.completion_percentage == 0

    def test_all_pending_without_progress_is_no_jobs(self):
        assert derive_status(_jobs("pending", "pending")).status is ElementStatus.NO_JOBS

    def test_any_not_applicable_wins(self):
        derived = derive_status(_jobs("completed", "completed", "not_applicable"))
        assert derived.status is ElementStatus.NON_CLEARANCE
        assert derived.completed_count == 2

    def test_all_completed_is_complete(self):
        derived = derive_status(_jobs("completed", "completed"))
        assert derived.status is ElementStatus.COMPLETE
        assert derived.completion_percentage == 100

    def test_partial_completion_is_active(self):
        derived = derive_status(_jobs("completed", "pending", "pending"))
        assert derived.status is ElementStatus.ACTIVE
        assert derived.completion_percentage == 33

    def test_progress_alone_makes_active(self):
        derived = derive_status(_jobs("pending", "pending", progress=[0, 40]))
        assert derived.status is ElementStatus.ACTIVE
        assert derived.avg_progress == 20

    def test_mixed_jobs(self):
        derived = derive_status(_jobs("completed", "pending", progress=[100, 40]))
        assert derived.completion_percentage == 50
        assert derived.avg_progress == 70
        assert derived.status is ElementStatus.ACTIVE

    def test_rounding_half_up(self):
        # 1 of 8 = 12.5 %
        jobs = _jobs("completed", *["pending"] * 7)
        assert derive_status(jobs).completion_percentage == 13
        assert round_half_up(2.5) == 3
        assert round_half_up(0.49) == 0

    def test_nearly_complete_is_not_complete(self):
        jobs = _jobs(*["completed"] * 199, "pending")
        derived = derive_status(jobs)
        assert derived.completion_percentage == 100
        assert derived.status is ElementStatus.ACTIVE

    def test_legacy_in_progress_counts_as_pending(self):
        job = JobRecord(id=1, title="x", status="in_progress")
        assert job.status is JobStatus.PENDING
        assert derive_status([job]).status is ElementStatus.NO_JOBS

    def test_unknown_status_rejected(self):
        with pytest.raises(ValidationError):
            JobRecord(id=1, title="x", status="done-ish")

    def test_to_dict_shape(self):
        data = derive_status(_jobs("completed", "pending")).to_dict()
        assert data == {
            "status": "active",
            "jobs_completed": 1,
            "total_jobs": 2,
            "completion_percentage": 50,
            "avg_progress": 0,
        }


# ═════════════════════════════════════════════════════════════════════════════
# ANNOTATION & PROGRESS
# ═════════════════════════════════════════════════════════════════════════════

class TestAnnotation:
    def _elements(self):
        return [
            ElementRecord(id=1, project_id=1, surface_area_sqm=30, status="complete"),
            ElementRecord(id=2, project_id=1, surface_area_sqm=10),
            ElementRecord(id=3, project_id=1, surface_area_sqm=60),
        ]

    def _all_jobs(self):
        return [
            JobRecord(id=10, element_id=1, title="Primer", status="completed", order_index=20),
            JobRecord(id=11, element_id=1, title="Top coat", status="completed", order_index=10),
            JobRecord(id=12, element_id=2, title="Primer", status="completed", order_index=10),
            JobRecord(id=13, element_id=2, title="Top coat", status="pending", order_index=20),
            JobRecord(id=14, element_id=99, title="Orphan", status="pending"),
        ]

    def test_jobs_joined_and_ordered(self):
        annotated = annotate_elements(self._elements(), self._all_jobs())
        assert [j.id for j in annotated[0].jobs] == [11, 10]
        assert annotated[1].current_pending_job == "Top coat"
        assert annotated[2].jobs == []

    def test_stored_status_is_ignored(self):
        elements = [ElementRecord(id=1, project_id=1, status="complete")]
        annotated = annotate_elements(elements, [])
        assert annotated[0].status is ElementStatus.NO_JOBS
        assert annotated[0].to_dict()["status"] == "no jobs"

    def test_count_by_status(self):
        counts = count_by_status(annotate_elements(self._elements(), self._all_jobs()))
        assert counts == {"no jobs": 1, "non clearance": 0, "active": 1, "complete": 1}

    def test_progress_weighted_by_area(self):
        progress = compute_project_progress(annotate_elements(self._elements(), self._all_jobs()))
        assert progress.total_surface_area == 100
        assert progress.completed_surface_area == 30
        assert progress.progress_percentage == 30
        assert progress.completed_elements == 1

    def test_progress_without_area(self):
        progress = compute_project_progress([])
        assert progress.progress_percentage == 0
        assert progress.total_elements == 0

    def test_summarize_job_statuses(self):
        stats = summarize_job_statuses(self._all_jobs())
        assert stats == {
            "total": 5,
            "pending": 2,
            "completed": 3,
            "not_applicable": 0,
            "completion_rate": 60,
        }


# ═════════════════════════════════════════════════════════════════════════════
# PROJECT STATUS
# ═════════════════════════════════════════════════════════════════════════════

class TestProjectStatus:
    def test_corrected_status(self):
        assert corrected_project_status([]) is ProjectStatus.PENDING
        assert corrected_project_status([ElementStatus.COMPLETE] * 3) is ProjectStatus.COMPLETE
        assert corrected_project_status(
            [ElementStatus.COMPLETE, ElementStatus.ACTIVE]) is ProjectStatus.IN_PROGRESS
        assert corrected_project_status([ElementStatus.ACTIVE]) is ProjectStatus.PENDING

    def test_only_stale_completed_needs_correction(self):
        done = ProjectRecord(id=1, status="completed")
        pending = ProjectRecord(id=1, status="pending")
        assert needs_status_correction(done, [ElementStatus.ACTIVE])
        assert not needs_status_correction(done, [ElementStatus.COMPLETE])
        assert not needs_status_correction(pending, [ElementStatus.ACTIVE])

    def test_reconcile_rewrites_to_in_progress(self):
        store = InMemoryDataAccess()
        project = store.add_project(ProjectRecord(title="P", status="completed"))
        updated = reconcile_project_status(store, project, [ElementStatus.COMPLETE, ElementStatus.NO_JOBS])
        assert updated.status == "in_progress"
        assert store.projects[project.id].status == "in_progress"
        assert store.calls == ["update_project"]

    def test_reconcile_leaves_consistent_project(self):
        store = InMemoryDataAccess()
        project = store.add_project(ProjectRecord(title="P", status="completed"))
        assert reconcile_project_status(store, project, [ElementStatus.COMPLETE]) is project
        assert store.calls == []

    def test_reconcile_propagates_store_failure(self):
        store = InMemoryDataAccess(fail_on=lambda op, _: op == "update_project")
        project = store.add_project(ProjectRecord(title="P", status="completed"))
        with pytest.raises(ExternalIOError):
            reconcile_project_status(store, project, [ElementStatus.ACTIVE])


# ═════════════════════════════════════════════════════════════════════════════
# RANDOM JOB LISTS
# ═════════════════════════════════════════════════════════════════════════════

def _random_jobs(rng):
    statuses = [s.value for s in JobStatus]
    return [
        JobRecord(id=i, element_id=1, title=f"Step {i}",
                  status=rng.choice(statuses),
                  progress_percentage=rng.choice([0, 0, 25, 40, 100]),
                  order_index=rng.choice([None, rng.uniform(0, 500)]))
        for i in range(rng.randint(0, 12))
    ]


@pytest.mark.parametrize("seed", [3, 11, 58, 907])
def test_derive_status_is_total_and_idempotent(seed):
    rng = random.Random(seed)
    for _ in range(50):
        jobs = _random_jobs(rng)
        snapshot = [replace(j) for j in jobs]

        first = derive_status(jobs)
        second = derive_status(jobs)

        assert first == second
        assert jobs == snapshot
        assert first.status in set(ElementStatus)
        assert first.total_count == len(jobs)
        assert 0 <= first.completion_percentage <= 100
        assert derive_status(reversed(jobs)) == first
