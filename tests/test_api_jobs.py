"""
Tests — Job API.

Covers:
    - custom job insertion by position and by explicit order key
    - atomic batch creation
    - predefined workflow assignment and bulk assignment with failures
    - reorder / move / renormalize
    - edits, progress, deletion and element status refresh
    - templates listing
    - swapping the data store through DATA_ACCESS_FACTORY
"""

from unittest.mock import MagicMock

import pytest
import requests

from tracker.services.data_access import InMemoryDataAccess
from tracker.services.workflow_templates import builtin_templates


@pytest.fixture()
def project_id(client):
    return client.post("/api/v1/projects", json={"title": "Tank Farm"}).get_json()["id"]


def _element(client, project_id, mark="A", **fields):
    res = client.post(f"/api/v1/projects/{project_id}/elements", json={"part_mark_no": mark, **fields})
    assert res.status_code == 201, res.get_json()
    return res.get_json()["id"]


def _titles(client, element_id):
    return [j["title"] for j in client.get(f"/api/v1/elements/{element_id}/jobs").get_json()["items"]]


# ═════════════════════════════════════════════════════════════════════════════
# CREATION
# ═════════════════════════════════════════════════════════════════════════════

class TestCreateJob:
    def test_positions(self, client, project_id):
        eid = _element(client, project_id)
        url = f"/api/v1/elements/{eid}/jobs"
        client.post(url, json={"title": "Middle"})
        client.post(url, json={"title": "First", "position": "start"})
        client.post(url, json={"title": "Last", "position": "end"})
        res = client.post(url, json={"title": "Second", "position": 1})
        assert res.status_code == 201
        assert res.get_json()["order_index"] == 95
        assert _titles(client, eid) == ["First", "Second", "Middle", "Last"]

    def test_explicit_order_index(self, client, project_id):
        eid = _element(client, project_id)
        url = f"/api/v1/elements/{eid}/jobs"
        client.post(url, json={"title": "Late", "order_index": 500})
        client.post(url, json={"title": "Early", "order_index": "5"})
        assert _titles(client, eid) == ["Early", "Late"]
        assert client.post(url, json={"title": "Bad", "order_index": "soon"}).status_code == 400

    def test_completed_job_sets_progress(self, client, project_id):
        eid = _element(client, project_id)
        job = client.post(f"/api/v1/elements/{eid}/jobs",
                          json={"title": "Primer", "status": "completed"}).get_json()
        assert job["progress_percentage"] == 100
        assert job["completed_date"] is not None

    @pytest.mark.parametrize("body", [{"title": ""}, {"title": "x", "position": -1},
                                      {"title": "x", "status": "done"}])
    def test_invalid_input(self, client, project_id, body):
        eid = _element(client, project_id)
        assert client.post(f"/api/v1/elements/{eid}/jobs", json=body).status_code == 422
        assert _titles(client, eid) == []

    def test_unknown_element(self, client):
        assert client.post("/api/v1/elements/999/jobs", json={"title": "x"}).status_code == 404


class TestBatch:
    def test_batch_appends_in_order(self, client, project_id):
        eid = _element(client, project_id)
        res = client.post(f"/api/v1/elements/{eid}/jobs/batch",
                          json={"jobs": [{"title": "Prime"}, {"title": "Paint"}]})
        assert res.status_code == 201
        assert res.get_json()["total"] == 2
        assert _titles(client, eid) == ["Prime", "Paint"]

    def test_batch_is_all_or_nothing(self, client, project_id):
        eid = _element(client, project_id)
        res = client.post(f"/api/v1/elements/{eid}/jobs/batch",
                          json={"jobs": [{"title": "Prime"}, {"title": ""}]})
        assert res.status_code == 422
        assert _titles(client, eid) == []

    def test_batch_requires_list(self, client, project_id):
        eid = _element(client, project_id)
        assert client.post(f"/api/v1/elements/{eid}/jobs/batch", json={"jobs": []}).status_code == 400


# ═════════════════════════════════════════════════════════════════════════════
# WORKFLOWS
# ═════════════════════════════════════════════════════════════════════════════

class TestWorkflows:
    def test_assign(self, client, project_id):
        eid = _element(client, project_id)
        res = client.post(f"/api/v1/elements/{eid}/workflow", json={"workflow_key": "refinery_fire_proofing"})
        assert res.status_code == 201
        data = res.get_json()
        assert data["total"] == 12
        assert [j["step_number"] for j in data["items"]] == list(range(1, 13))
        assert {j["status"] for j in data["items"]} == {"pending"}

    def test_assign_unknown(self, client, project_id):
        eid = _element(client, project_id)
        res = client.post(f"/api/v1/elements/{eid}/workflow", json={"workflow_key": "granite"})
        assert res.status_code == 422

    def test_bulk_assign_reports_failures(self, client, project_id):
        a = _element(client, project_id, "A")
        c = _element(client, project_id, "C")
        res = client.post("/api/v1/jobs/bulk-assign",
                          json={"element_ids": [a, 9999, c], "workflow_key": "cement_fire_proofing"})
        assert res.status_code == 200
        data = res.get_json()
        assert data["succeeded"] == [a, c]
        assert [f["element_id"] for f in data["failed"]] == [9999]
        assert data["total_jobs_created"] == 14
        assert len(_titles(client, a)) == 7

    def test_bulk_assign_limits(self, client, project_id):
        too_many = list(range(1, 52))
        res = client.post("/api/v1/jobs/bulk-assign",
                          json={"element_ids": too_many, "workflow_key": "cement_fire_proofing"})
        assert res.status_code == 422
        res = client.post("/api/v1/jobs/bulk-assign",
                          json={"element_ids": "1,2", "workflow_key": "cement_fire_proofing"})
        assert res.status_code == 400

    def test_templates_listing(self, client):
        templates = client.get("/api/v1/workflow-templates").get_json()["templates"]
        assert set(templates) == set(builtin_templates())
        assert templates["gypsum_fire_proofing"]["fire_proofing_type"] == "Gypsum"
        assert templates["gypsum_fire_proofing"]["display_name"] == "Gypsum Fire Proofing"


# ═════════════════════════════════════════════════════════════════════════════
# ORDERING
# ═════════════════════════════════════════════════════════════════════════════

class TestOrdering:
    @pytest.fixture()
    def element(self, client, project_id):
        eid = _element(client, project_id)
        items = client.post(f"/api/v1/elements/{eid}/workflow",
                            json={"workflow_key": "cement_fire_proofing"}).get_json()["items"]
        return eid, [j["id"] for j in items]

    def test_reorder(self, client, element):
        eid, ids = element
        res = client.put(f"/api/v1/elements/{eid}/jobs/order", json={"job_ids": ids[::-1]})
        assert res.status_code == 200
        assert [j["id"] for j in res.get_json()["items"]] == ids[::-1]
        assert _titles(client, eid)[0] == "WIR"

    def test_reorder_partial_rejected(self, client, element):
        eid, ids = element
        res = client.put(f"/api/v1/elements/{eid}/jobs/order", json={"job_ids": ids[1:]})
        assert res.status_code == 422
        assert res.get_json()["details"]["missing"] == [str(ids[0])]

    def test_move(self, client, element):
        eid, ids = element
        res = client.post(f"/api/v1/jobs/{ids[1]}/move", json={"direction": "up"})
        assert [j["id"] for j in res.get_json()["items"]][:2] == [ids[1], ids[0]]
        assert client.post(f"/api/v1/jobs/{ids[1]}/move", json={"direction": "up"}).status_code == 422

    def test_renormalize(self, client, element):
        eid, ids = element
        data = client.post(f"/api/v1/elements/{eid}/jobs/renormalize").get_json()
        assert [j["order_index"] for j in data["items"]] == [10.0 * i for i in range(1, 8)]
        assert [j["id"] for j in data["items"]] == ids


# ═════════════════════════════════════════════════════════════════════════════
# SINGLE JOB
# ═════════════════════════════════════════════════════════════════════════════

class TestSingleJob:
    @pytest.fixture()
    def job(self, client, project_id):
        eid = _element(client, project_id)
        return client.post(f"/api/v1/elements/{eid}/jobs", json={"title": "Primer"}).get_json()

    def test_get(self, client, job):
        assert client.get(f"/api/v1/jobs/{job['id']}").get_json()["title"] == "Primer"
        assert client.get("/api/v1/jobs/999").status_code == 404

    def test_complete_updates_element(self, client, job):
        res = client.put(f"/api/v1/jobs/{job['id']}", json={"status": "completed"})
        assert res.get_json()["progress_percentage"] == 100
        element = client.get(f"/api/v1/elements/{job['element_id']}").get_json()
        assert element["status"] == "complete"

    def test_unknown_field_rejected(self, client, job):
        assert client.put(f"/api/v1/jobs/{job['id']}", json={"colour": "red"}).status_code == 422

    def test_progress(self, client, job):
        url = f"/api/v1/jobs/{job['id']}/progress"
        assert client.patch(url, json={"progress_percentage": 40}).get_json()["status"] == "pending"
        assert client.patch(url, json={"progress_percentage": 100}).get_json()["status"] == "completed"
        assert client.patch(url, json={"progress_percentage": 150}).status_code == 422

    def test_delete(self, client, job):
        assert client.delete(f"/api/v1/jobs/{job['id']}").status_code == 200
        assert client.get(f"/api/v1/jobs/{job['id']}").status_code == 404
        assert client.delete(f"/api/v1/jobs/{job['id']}").status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# STORE SWAP
# ═════════════════════════════════════════════════════════════════════════════

class TestDataAccessFactory:
    def test_store_failure_is_generic_502(self, app, client, monkeypatch):
        broken = InMemoryDataAccess(fail_on=lambda op, _: True)
        monkeypatch.setitem(app.config, "DATA_ACCESS_FACTORY", lambda: broken)
        res = client.get("/api/v1/elements/1/jobs")
        assert res.status_code == 502
        body = res.get_json()
        assert body["code"] == "ERR_EXTERNAL_IO"
        assert "injected" not in body["error"]

    def test_remote_tracker_url_uses_rest_store(self, app, client, monkeypatch):
        seen = []

        def fake_request(self, method, url, **kwargs):
            seen.append((method, url))
            resp = MagicMock(status_code=200, content=b"{}")
            resp.json.return_value = {"templates": {"quick": {"steps": ["Prime", "Paint"]}}}
            return resp

        monkeypatch.setitem(app.config, "REMOTE_TRACKER_URL", "http://upstream.local")
        monkeypatch.setattr(requests.Session, "request", fake_request)
        templates = client.get("/api/v1/workflow-templates").get_json()["templates"]
        assert seen == [("GET", "http://upstream.local/api/v1/workflow-templates")]
        assert templates["quick"]["steps"] == ["Prime", "Paint"]
        assert templates["quick"]["fire_proofing_type"] == "Other"

    def test_in_memory_store_serves_requests(self, app, client, monkeypatch, seeded):
        monkeypatch.setitem(app.config, "DATA_ACCESS_FACTORY", lambda: seeded)
        element_id = next(iter(seeded.elements))
        res = client.post(f"/api/v1/elements/{element_id}/workflow",
                          json={"workflow_key": "gypsum_fire_proofing"})
        assert res.status_code == 201
        assert len(seeded.list_element_jobs(element_id)) == 7
