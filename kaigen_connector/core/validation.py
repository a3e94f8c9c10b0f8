"""Post-level invariants checked on a merged document before it is written."""

from typing import Any

from .errors import DocumentValidationError
from .models import UPDATABLE_STATUSES


def validate_document(document: dict[str, Any]) -> None:
    """Check that a merged document may be persisted.

    Raises:
        DocumentValidationError: If ``post`` is missing or not an object,
            ``post.title`` or ``post.content`` is missing or not a string,
            or ``post.status`` is outside the updatable statuses.
    """
    post = document.get("post") if isinstance(document, dict) else None
    if not isinstance(post, dict):
        raise DocumentValidationError("post must be an object")

    for field in ("title", "content"):
        if not isinstance(post.get(field), str):
            raise DocumentValidationError(f"post.{field} must be a string")

    if "status" in post and post["status"] not in UPDATABLE_STATUSES:
        raise DocumentValidationError(
            f"post.status must be one of {', '.join(sorted(UPDATABLE_STATUSES))}"
        )
