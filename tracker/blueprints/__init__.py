"""
Fire-Proofing Tracker
Blueprint registry and shared request helpers.
"""

import logging

from flask import current_app, request
from werkzeug.exceptions import HTTPException

from tracker.core.exceptions import ExternalIOError, NotFoundError, ValidationError
from tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def get_store():
    """DataAccess for the current request.

    Order: ``DATA_ACCESS_FACTORY`` if set, then a RestDataAccess when
    ``REMOTE_TRACKER_URL`` names another deployment, else the app's own
    database.
    """
    factory = current_app.config.get("DATA_ACCESS_FACTORY")
    if factory is not None:
        return factory()
    remote = current_app.config.get("REMOTE_TRACKER_URL")
    if remote:
        from tracker.integrations.rest_data_access import RestDataAccess
        return RestDataAccess(remote, timeout=current_app.config.get("REMOTE_TRACKER_TIMEOUT", 30))
    from tracker.services.data_access import SqlAlchemyDataAccess
    return SqlAlchemyDataAccess()


def get_workflow_service():
    from tracker.services.workflow_service import WorkflowService
    return WorkflowService(get_store(), current_app.config.get("MAX_BULK_ELEMENTS", 5000))


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def paginate_items(items, default_limit=200, max_limit=1000):
    """Apply limit/offset pagination to an in-memory list.

    Query params:
        limit  — max items (default 200, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (items_page, total_count)
    """
    total = len(items)
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return items[offset:offset + limit], total


def register_error_handlers(bp):
    """Map the tracker exception hierarchy to JSON responses on *bp*."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(ExternalIOError)
    def _handle_external_io(error: ExternalIOError):
        logger.error("Data store failure in %s: %s", request.endpoint, error)
        return api_error(E.EXTERNAL_IO, "The data store is unavailable; please retry.")

    @bp.errorhandler(Exception)
    def _handle_unexpected(error: Exception):
        if isinstance(error, HTTPException):
            return {"error": error.description}, error.code
        logger.exception("Unexpected error in %s endpoint=%s", bp.name, request.endpoint)
        return api_error(E.INTERNAL, "Internal server error")
