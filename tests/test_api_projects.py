"""
Tests — Project API, derived project status and app-level endpoints.

Covers:
    - project CRUD and input validation
    - derived status / stale "completed" correction
    - surface-area progress and job statistics
    - health endpoints, JSON 404 and the Content-Type guard
"""

import pytest


def _create_project(client, **overrides):
    payload = {"title": "Refinery Unit 3", "priority": "high", "location": "Jetty 2"}
    payload.update(overrides)
    res = client.post("/api/v1/projects", json=payload)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _create_element(client, project_id, **fields):
    res = client.post(f"/api/v1/projects/{project_id}/elements", json=fields)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _add_job(client, element_id, title, status="pending"):
    res = client.post(f"/api/v1/elements/{element_id}/jobs", json={"title": title, "status": status})
    assert res.status_code == 201, res.get_json()
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════

class TestProjectCrud:
    def test_create_defaults(self, client):
        project = _create_project(client, priority=None)
        assert project["id"] > 0
        assert project["status"] == "pending"
        assert project["priority"] == "medium"

    def test_title_required(self, client):
        res = client.post("/api/v1/projects", json={"title": "  "})
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_REQUIRED"

    @pytest.mark.parametrize("field,value", [("priority", "urgent"), ("status", "archived")])
    def test_enum_fields_validated(self, client, field, value):
        res = client.post("/api/v1/projects", json={"title": "P", field: value})
        assert res.status_code == 400

    def test_list_and_get(self, client):
        first = _create_project(client, title="First")
        _create_project(client, title="Second")
        listing = client.get("/api/v1/projects").get_json()
        assert listing["total"] == 2
        assert client.get(f"/api/v1/projects/{first['id']}").get_json()["title"] == "First"

    def test_update(self, client):
        project = _create_project(client)
        res = client.put(f"/api/v1/projects/{project['id']}", json={"title": " Renamed ", "status": "in_progress"})
        assert res.status_code == 200
        assert res.get_json()["title"] == "Renamed"
        assert res.get_json()["status"] == "in_progress"

    def test_delete_cascades(self, client):
        project = _create_project(client)
        element = _create_element(client, project["id"], part_mark_no="A")
        _add_job(client, element["id"], "Primer")
        res = client.delete(f"/api/v1/projects/{project['id']}")
        assert res.status_code == 200
        assert client.get(f"/api/v1/projects/{project['id']}").status_code == 404
        assert client.get(f"/api/v1/elements/{element['id']}").status_code == 404

    def test_missing_project_is_json_404(self, client):
        res = client.get("/api/v1/projects/999")
        assert res.status_code == 404
        assert res.get_json()["code"] == "ERR_NOT_FOUND"


# ═════════════════════════════════════════════════════════════════════════════
# DERIVED STATUS & PROGRESS
# ═════════════════════════════════════════════════════════════════════════════

class TestProjectStatus:
    @pytest.fixture()
    def stale_project(self, client):
        project = _create_project(client, status="completed")
        done = _create_element(client, project["id"], part_mark_no="A", surface_area_sqm=10)
        open_ = _create_element(client, project["id"], part_mark_no="B", surface_area_sqm=5)
        _add_job(client, done["id"], "Primer", status="completed")
        _add_job(client, open_["id"], "Primer")
        return project

    def test_status_reports_stale_completed(self, client, stale_project):
        data = client.get(f"/api/v1/projects/{stale_project['id']}/status").get_json()
        assert data["stored_status"] == "completed"
        assert data["derived_status"] == "in_progress"
        assert data["needs_correction"] is True
        assert data["element_counts"]["complete"] == 1
        assert data["element_counts"]["no jobs"] == 1

    def test_correct_rewrites_status_once(self, client, stale_project):
        url = f"/api/v1/projects/{stale_project['id']}/status/correct"
        first = client.post(url).get_json()
        assert first["corrected"] is True
        assert first["project"]["status"] == "in_progress"
        second = client.post(url).get_json()
        assert second["corrected"] is False

    def test_progress_weighted_by_area(self, client, stale_project):
        data = client.get(f"/api/v1/projects/{stale_project['id']}/progress").get_json()
        assert data["total_surface_area"] == 15
        assert data["completed_surface_area"] == 10
        assert data["completed_elements"] == 1
        assert data["total_elements"] == 2

    def test_job_stats(self, client, stale_project):
        data = client.get(f"/api/v1/projects/{stale_project['id']}/job-stats").get_json()
        assert data["total"] == 2
        assert data["completed"] == 1
        assert data["completion_rate"] == 50

    def test_status_of_missing_project(self, client):
        assert client.get("/api/v1/projects/404/status").status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# APP-LEVEL
# ═════════════════════════════════════════════════════════════════════════════

class TestAppEndpoints:
    def test_health(self, client):
        assert client.get("/api/v1/health").get_json()["status"] == "ok"
        assert client.get("/api/v1/health/ready").status_code == 200

    def test_live_checks_dependencies(self, client):
        res = client.get("/api/v1/health/live")
        assert res.status_code == 200
        checks = res.get_json()["checks"]
        assert checks["database"]["status"] == "ok"
        assert checks["cache"]["status"] == "ok"

    def test_unknown_route_is_json(self, client):
        res = client.get("/api/v1/nowhere")
        assert res.status_code == 404
        assert res.get_json()["path"] == "/api/v1/nowhere"

    def test_non_json_body_rejected(self, client):
        res = client.post("/api/v1/projects", data="title=x", content_type="text/plain")
        assert res.status_code == 415
