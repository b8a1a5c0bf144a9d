"""Small helpers for blueprints that work on ORM rows directly.

Each returns ``(value, None)`` or ``(None, error_response)`` so a view can

    project, err = get_or_404(Project, project_id)
    if err:
        return err
"""
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from tracker.models import db
from tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def get_or_404(model, pk, label=None):
    obj = db.session.get(model, pk)
    if obj is None:
        return None, api_error(E.NOT_FOUND, f"{label or model.__name__} not found")
    return obj, None


def parse_int_list(values, field="ids"):
    """Element or job ids from a JSON body; bools and floats with a fraction are rejected."""
    if not isinstance(values, list):
        return None, api_error(E.VALIDATION_INVALID, f"{field} must be a list")
    ids = []
    for value in values:
        if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
            return None, api_error(E.VALIDATION_INVALID, f"{field} must contain integers only")
        try:
            ids.append(int(value))
        except (TypeError, ValueError):
            return None, api_error(E.VALIDATION_INVALID, f"{field} must contain integers only")
    return ids, None


def db_commit_or_error():
    """Commit the session; on failure roll back and return an error response.

    IntegrityError → 409, any other SQLAlchemyError → 500.
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        logger.warning("Constraint violation on commit: %s", exc.orig)
        return api_error(E.CONFLICT, "Duplicate or constraint violation")
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Database error on commit")
        return api_error(E.DATABASE, "Database error")
    return None
