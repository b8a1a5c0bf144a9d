"""
Tests — admin element sections and the engineer worklist.
"""

import pytest

from tracker.core.exceptions import ValidationError
from tracker.services.filter_engine import ViewState
from tracker.services.grouping_engine import DEFAULT_WORKLIST_CHAIN
from tracker.services.records import ElementRecord
from tracker.services.views import (
    admin_sections,
    engineer_worklist,
    load_annotated,
    worklist_rows,
)
from tracker.services.workflow_service import WorkflowService
from tracker.services.workflow_templates import builtin_templates


@pytest.fixture()
def project(seeded):
    """A active, B without jobs, C complete, D blocked by a not-applicable job."""
    service = WorkflowService(seeded)
    project_id = next(iter(seeded.projects))
    by_mark = {e.part_mark_no: e for e in seeded.elements.values()}

    jobs = service.instantiate_predefined_workflow(by_mark["A"].id, "cement_fire_proofing")
    service.update_job(jobs[0].id, {"status": "completed"})
    service.insert_custom_job(by_mark["C"].id, "Final inspection", initial_status="completed")
    d = seeded.add_element(ElementRecord(project_id=project_id, part_mark_no="D", grid_no="G2",
                                         level="L2", member_type="Column", qty=2,
                                         surface_area_sqm=4))
    service.insert_custom_job(d.id, "Clearance check", initial_status="not_applicable")
    return project_id


def _section(sections, status):
    return next(s for s in sections if s["status"] == status)


class TestAdminSections:
    def test_one_section_per_status(self, seeded, project):
        sections = admin_sections(load_annotated(seeded, project))
        assert [s["status"] for s in sections] == ["non clearance", "no jobs", "active", "complete"]
        assert [s["total"] for s in sections] == [1, 1, 1, 1]

    def test_active_section_contents(self, seeded, project):
        active = _section(admin_sections(load_annotated(seeded, project)), "active")
        row = active["elements"][0]
        assert row["part_mark_no"] == "A"
        assert row["jobs_completed"] == 1
        assert row["current_pending_job"] == builtin_templates()["cement_fire_proofing"][1]
        assert active["metrics"]["job_count"] == 7
        assert active["metrics"]["pending_work"] == 6
        assert active["metrics"]["sqm"] == 10

    def test_states_are_independent(self, seeded, project):
        sections = admin_sections(load_annotated(seeded, project), {
            "active": ViewState.from_dict({"search_term": "zzz"}),
        })
        active = _section(sections, "active")
        assert active["count"] == 0 and active["total"] == 1
        assert _section(sections, "complete")["count"] == 1
        assert _section(sections, "complete")["state"]["search_term"] == ""

    def test_grouped_section_is_lazy(self, seeded, project):
        sections = admin_sections(load_annotated(seeded, project), {
            "complete": ViewState.from_dict({"group_by": "grid_no"}),
            "non clearance": ViewState.from_dict({"group_by": "grid_no", "expanded_groups": [["G2"]]}),
        })
        complete = _section(sections, "complete")
        assert "elements" not in complete
        assert complete["groups"][0]["key"] == "G2"
        assert "records" not in complete["groups"][0]

        blocked = _section(sections, "non clearance")
        assert [r["part_mark_no"] for r in blocked["groups"][0]["records"]] == ["D"]


class TestEngineerWorklist:
    def test_defaults_to_pending_tab(self, seeded, project):
        result = engineer_worklist(worklist_rows(load_annotated(seeded, project)))
        assert result["tab"] == "pending"
        assert result["key_chain"] == list(DEFAULT_WORKLIST_CHAIN)
        assert result["metrics"]["job_count"] == 6
        assert [g["key"] for g in result["groups"]] == ["G1"]
        assert result["groups"][0]["children"][0]["key"] == "cement_fire_proofing"

    def test_tab_counts(self, seeded, project):
        tabs = engineer_worklist(worklist_rows(load_annotated(seeded, project)))["tabs"]
        assert tabs["pending"]["job_count"] == 6
        assert tabs["completed"]["job_count"] == 2
        assert tabs["not_applicable"]["job_count"] == 1

    def test_completed_tab_groups_sorted_by_key_on_ties(self, seeded, project):
        result = engineer_worklist(worklist_rows(load_annotated(seeded, project)),
                                   ViewState(tab="completed", group_by=("grid_no",)))
        assert [g["key"] for g in result["groups"]] == ["G1", "G2"]

    def test_search_applies_within_tab(self, seeded, project):
        first_step = builtin_templates()["cement_fire_proofing"][0]
        rows = worklist_rows(load_annotated(seeded, project))
        done = engineer_worklist(rows, ViewState(search_term=first_step, tab="completed"))
        assert done["metrics"]["job_count"] == 1
        assert done["tabs"]["completed"]["job_count"] == 2

    def test_unknown_tab_rejected(self, seeded, project):
        with pytest.raises(ValidationError):
            engineer_worklist([], ViewState(tab="archived"))
