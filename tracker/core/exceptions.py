"""
Tracker error taxonomy.

    TrackerError
    ├── ValidationError   input breaks a rule; raised before any store call   → 422
    ├── NotFoundError     project / element / job id does not exist           → 404
    └── ExternalIOError   the data-access collaborator failed                  → 502

The engines raise these and never catch them; blueprints map them to
responses once, in ``tracker.blueprints.register_error_handlers``.
Degenerate ordering and partial bulk failures are not errors: the first
is logged, the second is reported in the bulk result.
"""


class TrackerError(Exception):
    """Base class for errors the API maps to a client-facing response."""


class ValidationError(TrackerError):
    """Input violates a tracker rule.

    Args:
        message: What failed, in words a client can show.
        details: Field name → problem, for forms.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class NotFoundError(TrackerError):
    def __init__(self, resource: str, resource_id=None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        where = f" id={resource_id}" if resource_id is not None else ""
        super().__init__(f"{resource}{where} not found")


class ExternalIOError(TrackerError):
    """The data store (database or remote tracker) failed.

    No retry happens anywhere in the core. ``message`` carries driver or
    transport detail for logs only; the API answers with a generic text.

    Args:
        operation: The collaborator call that failed, e.g. "create_job".
        message: Internal description.
    """

    def __init__(self, operation: str, message: str = "") -> None:
        self.operation = operation
        self.message = message
        text = f"Data access failed during {operation}"
        if message:
            text += f": {message}"
        super().__init__(text)
