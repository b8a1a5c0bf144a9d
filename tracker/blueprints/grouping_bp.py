"""Grouping blueprint — engineer worklist and two-phase group expansion.

Endpoints:
    GET  /api/v1/grouping/available-fields
    POST /api/v1/projects/<project_id>/worklist        full worklist tree for one tab
    POST /api/v1/projects/<project_id>/groups          phase one: metrics per group key
    POST /api/v1/projects/<project_id>/groups/detail   phase two: rows of expanded groups

Phase one reads only the columns it needs to count; phase two fetches
the rows of the requested group paths and caches them per project until
the next job or element mutation.
"""

import logging

from flask import Blueprint, current_app, jsonify

from tracker.blueprints import get_store, json_body, register_error_handlers
from tracker.core.exceptions import ValidationError
from tracker.services import cache_service
from tracker.services.filter_engine import ViewState
from tracker.services.grouping_engine import (
    AVAILABLE_GROUP_FIELDS,
    DEFAULT_WORKLIST_CHAIN,
    JOB_ROWS,
    GroupMaterializer,
    compute_metrics,
    materialize_group,
    summarize_groups,
)
from tracker.services.records import JobStatus
from tracker.services.views import engineer_worklist

logger = logging.getLogger(__name__)

grouping_bp = Blueprint("grouping", __name__, url_prefix="/api/v1")
register_error_handlers(grouping_bp)

GROUPABLE = {f["value"] for f in AVAILABLE_GROUP_FIELDS}
# Columns phase one needs besides the key chain itself.
METRIC_COLUMNS = ("element_id", "status", "surface_area_sqm", "qty")


def _key_chain(data):
    chain = data.get("key_chain") or list(DEFAULT_WORKLIST_CHAIN)
    if isinstance(chain, str):
        chain = [chain]
    if not isinstance(chain, list) or not all(isinstance(f, str) for f in chain):
        raise ValidationError("key_chain must be a list of field names",
                              details={"key_chain": "expected a list of strings"})
    unknown = [f for f in chain if f not in GROUPABLE]
    if unknown:
        raise ValidationError(
            "Unknown grouping field(s): " + ", ".join(unknown),
            details={f: "not a groupable field" for f in unknown},
        )
    return tuple(chain)


def _group_path(value, chain, name="group_path"):
    if not isinstance(value, list):
        raise ValidationError(f"{name} must be a list", details={name: "expected a list of keys"})
    if len(value) > len(chain):
        raise ValidationError(f"{name} is deeper than key_chain",
                              details={name: f"at most {len(chain)} keys"})
    return tuple(str(k) for k in value)


def _in_tab(rows, state):
    if not state.tab:
        return rows
    tab = JobStatus.coerce(state.tab)
    return [r for r in rows if JobStatus.coerce(r.get("status")) is tab]


def _load_rows(store, project_id, chain, state, where=None):
    """Job rows narrowed by tab and filters; only metric columns when none apply."""
    if state.search_term or state.column_filters:
        rows = store.list_job_rows(project_id, where=where)
        return state.apply(_in_tab(rows, state))
    columns = list(dict.fromkeys(METRIC_COLUMNS + chain))
    return _in_tab(store.list_job_rows(project_id, where=where, columns=columns), state)


@grouping_bp.route("/grouping/available-fields", methods=["GET"])
def available_fields():
    return jsonify({
        "fields": AVAILABLE_GROUP_FIELDS,
        "default_key_chain": list(DEFAULT_WORKLIST_CHAIN),
    }), 200


@grouping_bp.route("/projects/<int:project_id>/worklist", methods=["POST"])
def worklist(project_id):
    """Body: a view state {tab, search_term, column_filters, group_by, expanded_groups}."""
    store = get_store()
    store.get_project(project_id)
    state = ViewState.from_dict(json_body())
    if state.group_by:
        _key_chain({"key_chain": list(state.group_by)})
    return jsonify(engineer_worklist(store.list_job_rows(project_id), state)), 200


@grouping_bp.route("/projects/<int:project_id>/groups", methods=["POST"])
def group_summary(project_id):
    """Body: {key_chain?, parent_path?, state?}

    Returns the buckets one level below ``parent_path`` with their
    metrics, highest pending work first.
    """
    data = json_body()
    chain = _key_chain(data)
    parent = _group_path(data.get("parent_path") or [], chain, "parent_path")
    if len(parent) == len(chain):
        raise ValidationError("parent_path already names a leaf group",
                              details={"parent_path": f"at most {len(chain) - 1} keys"})
    state = ViewState.from_dict(data.get("state"))

    store = get_store()
    store.get_project(project_id)
    rows = _load_rows(store, project_id, chain, state)
    summary = summarize_groups(rows, chain, JOB_ROWS, parent)
    return jsonify({
        "key_chain": list(chain),
        "parent_path": list(parent),
        "level_field": chain[len(parent)],
        "metrics": compute_metrics(rows, JOB_ROWS).to_dict(),
        "groups": [
            {"key": key, "path": list(parent) + [key], "metrics": metrics.to_dict()}
            for key, metrics in summary.items()
        ],
    }), 200


@grouping_bp.route("/projects/<int:project_id>/groups/detail", methods=["POST"])
def group_detail(project_id):
    """Body: {key_chain?, group_path | group_paths, state?}

    Each path resolves to the job rows of that bucket in leaf order.
    """
    data = json_body()
    chain = _key_chain(data)
    raw_paths = data.get("group_paths")
    if raw_paths is None:
        raw_paths = [data.get("group_path")]
    if not isinstance(raw_paths, list) or not raw_paths:
        raise ValidationError("group_paths must be a non-empty list",
                              details={"group_paths": "expected a list of group paths"})
    paths = [_group_path(p, chain) for p in raw_paths]
    state = ViewState.from_dict(data.get("state"))

    store = get_store()
    store.get_project(project_id)
    ttl = current_app.config.get("GROUP_CACHE_TTL", cache_service.GROUP_TTL)

    def load(path):
        def fetch():
            where = dict(zip(chain, path))
            rows = store.list_job_rows(project_id, where=where)
            rows = state.apply(_in_tab(rows, state))
            return materialize_group(rows, chain, path, JOB_ROWS)

        key = cache_service.group_detail_key(project_id, {
            "key_chain": list(chain),
            "group_path": list(path),
            "state": state.to_dict(),
        })
        return cache_service.get_cached(key, ttl=ttl, loader=fetch)

    materializer = GroupMaterializer(load)
    groups = []
    for path in paths:
        rows = materializer.get(path)
        groups.append({
            "path": list(path),
            "metrics": compute_metrics(rows, JOB_ROWS).to_dict(),
            "records": rows,
        })
    logger.debug("Materialized %d group(s) for project %s", len(groups), project_id,
                 extra={"project_id": project_id})
    return jsonify({"key_chain": list(chain), "groups": groups}), 200
