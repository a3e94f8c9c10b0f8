"""Typed errors raised by the connector.

Each error carries a machine-readable ``code`` and an HTTP status hint used
when the error crosses the REST boundary.
"""

from typing import Any


class ConnectorError(Exception):
    """Base class for connector errors."""

    code = "connector_error"
    status_code = 500
    default_message = "Connector error"

    def __init__(self, message: str | None = None, **data: Any):
        self.message = message or self.default_message
        self.data = data
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Error envelope returned to REST clients."""
        return {
            "code": self.code,
            "message": self.message,
            "data": {"status": self.status_code, **self.data},
        }


class MissingPostId(ConnectorError):
    code = "missing_post_id"
    status_code = 400
    default_message = "Missing required field: post_id"


class InvalidSchemaVersion(ConnectorError):
    code = "invalid_schema_version"
    status_code = 400
    default_message = "Unsupported schema_version, expected 2"


class InvalidChangesShape(ConnectorError):
    code = "invalid_changes"
    status_code = 400
    default_message = "changes must be an object"


class NotConfigured(ConnectorError):
    code = "no_auth"
    status_code = 400
    default_message = "No authentication configured"


class InsufficientPermissions(ConnectorError):
    code = "insufficient_permissions"
    status_code = 403
    default_message = "Insufficient permissions"


class PostTypeDisabled(ConnectorError):
    code = "post_type_disabled"
    status_code = 403
    default_message = "This post type is not enabled"


class PostNotFound(ConnectorError):
    code = "post_not_found"
    status_code = 404
    default_message = "Post not found"


class DocumentValidationError(ConnectorError):
    """Merged document violates a post-level invariant."""

    code = "validation_failed"
    status_code = 422
    default_message = "Document validation failed"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Document validation failed: {reason}", reason=reason)


class DocumentBuildFailed(ConnectorError):
    code = "document_build_failed"
    status_code = 500
    default_message = "Could not build the canonical document"


class PersistenceFailed(ConnectorError):
    """Core post update failed; nothing after it was written."""

    code = "persistence_failed"
    status_code = 500
    default_message = "Could not save the post"

    def __init__(self, underlying: Exception | str):
        self.underlying = underlying
        super().__init__(f"Could not save the post: {underlying}")


class KaigenAPIError(ConnectorError):
    """Kaigen service answered with an error or could not be reached."""

    code = "api_error"
    status_code = 502
    default_message = "API request failed"

    def __init__(self, message: str | None = None, status: int | None = None):
        super().__init__(message)
        if status is not None:
            self.status_code = status


class MissingProjectId(ConnectorError):
    code = "no_project"
    status_code = 400
    default_message = "No project ID available"
