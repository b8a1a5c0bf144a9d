"""REST data-access adapter — a remote tracker as the job/element store.

Speaks the tracker's own ``/api/v1`` surface, so one deployment can run
the engines against another deployment's data.

Constants:
  timeout  = 30 s
  retries  = none (the engines treat any failure as ExternalIOError)

Error mapping:
  transport error / non-JSON body / other non-2xx  → ExternalIOError
  404                                              → NotFoundError
  422                                              → ValidationError
"""

from __future__ import annotations

import logging
import time
from typing import Any

import requests

from tracker.core.exceptions import ExternalIOError, NotFoundError, ValidationError
from tracker.services.data_access import DataAccess
from tracker.services.records import ElementRecord, JobRecord, ProjectRecord

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 30  # seconds


class RestDataAccess(DataAccess):
    """DataAccess over HTTP.

    *session* may be injected (tests pass a MagicMock); otherwise a
    ``requests.Session`` is created with JSON headers.
    """

    def __init__(
        self,
        base_url: str,
        session: requests.Session | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
        headers: dict | None = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url is required")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._headers = {"Accept": "application/json", "Content-Type": "application/json"}
        self._headers.update(headers or {})

    # ── transport ───────────────────────────────────────────────────────

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/v1{path}"

    def _request(
        self,
        method: str,
        path: str,
        operation: str,
        resource: tuple[str, Any] | None = None,
        **kwargs,
    ) -> Any:
        url = self._url(path)
        t0 = time.perf_counter()
        try:
            resp = self._session.request(method, url, headers=self._headers,
                                         timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            logger.warning("Tracker store %s %s failed: %s", method, path, exc)
            raise ExternalIOError(operation, f"{type(exc).__name__}: {exc}") from exc

        duration_ms = int((time.perf_counter() - t0) * 1000)
        logger.debug("Tracker store %s %s -> %s (%dms)", method, path, resp.status_code, duration_ms)

        if resp.status_code == 404 and resource is not None:
            raise NotFoundError(*resource)
        if resp.status_code == 422:
            body = _json_or_empty(resp)
            raise ValidationError(body.get("error", "Validation failed"), details=body.get("details"))
        if not 200 <= resp.status_code < 300:
            raise ExternalIOError(operation, f"HTTP {resp.status_code}")
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise ExternalIOError(operation, "response body is not JSON") from exc

    # ── projects ────────────────────────────────────────────────────────

    def get_project(self, project_id):
        data = self._request("GET", f"/projects/{project_id}", "get_project",
                             resource=("Project", project_id))
        return ProjectRecord.from_dict(data)

    def update_project(self, project_id, fields):
        data = self._request("PUT", f"/projects/{project_id}", "update_project",
                             resource=("Project", project_id), json=fields)
        return ProjectRecord.from_dict(data)

    # ── elements ────────────────────────────────────────────────────────

    def list_elements(self, project_id):
        data = self._request("GET", f"/projects/{project_id}/elements", "list_elements",
                             resource=("Project", project_id))
        return [ElementRecord.from_dict(item) for item in (data or {}).get("items", [])]

    def get_element(self, element_id):
        data = self._request("GET", f"/elements/{element_id}", "get_element",
                             resource=("Element", element_id))
        return ElementRecord.from_dict(data)

    def update_element(self, element_id, fields):
        data = self._request("PUT", f"/elements/{element_id}", "update_element",
                             resource=("Element", element_id), json=fields)
        return ElementRecord.from_dict(data)

    # ── jobs ────────────────────────────────────────────────────────────

    def list_jobs(self, project_id):
        data = self._request("GET", f"/projects/{project_id}/jobs", "list_jobs",
                             resource=("Project", project_id))
        return [JobRecord.from_dict(item) for item in (data or {}).get("items", [])]

    def list_element_jobs(self, element_id):
        data = self._request("GET", f"/elements/{element_id}/jobs", "list_element_jobs",
                             resource=("Element", element_id))
        return [JobRecord.from_dict(item) for item in (data or {}).get("items", [])]

    def get_job(self, job_id):
        data = self._request("GET", f"/jobs/{job_id}", "get_job", resource=("Job", job_id))
        return JobRecord.from_dict(data)

    def create_job(self, job):
        payload = _job_payload(job)
        data = self._request("POST", f"/elements/{job.element_id}/jobs", "create_job",
                             resource=("Element", job.element_id), json=payload)
        return JobRecord.from_dict(data)

    def create_jobs(self, jobs):
        if not jobs:
            return []
        by_element: dict = {}
        for job in jobs:
            by_element.setdefault(job.element_id, []).append(_job_payload(job))
        created = []
        for element_id, payloads in by_element.items():
            data = self._request("POST", f"/elements/{element_id}/jobs/batch", "create_jobs",
                                 resource=("Element", element_id), json={"jobs": payloads})
            created.extend(JobRecord.from_dict(item) for item in (data or {}).get("items", []))
        return created

    def update_job(self, job_id, fields):
        data = self._request("PUT", f"/jobs/{job_id}", "update_job",
                             resource=("Job", job_id), json=_jsonable(fields))
        return JobRecord.from_dict(data)

    def delete_job(self, job_id):
        self._request("DELETE", f"/jobs/{job_id}", "delete_job", resource=("Job", job_id))

    def list_workflow_templates(self):
        data = self._request("GET", "/workflow-templates", "list_workflow_templates")
        templates = (data or {}).get("templates", {})
        return {key: list(t.get("steps", [])) for key, t in templates.items()}


def _jsonable(fields: dict) -> dict:
    return {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in fields.items()}


def _job_payload(job: JobRecord) -> dict:
    payload = job.to_dict()
    for key in ("id", "created_at"):
        payload.pop(key, None)
    return payload


def _json_or_empty(resp) -> dict:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}
