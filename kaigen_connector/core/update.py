"""Inbound update handler: build, merge, validate, persist, rebuild."""

from typing import Any

from .activity_log import ActivityLog
from .config import EDIT_CAPABILITY, Settings
from .document import SCHEMA_VERSION, DocumentBuilder
from .errors import (
    DocumentBuildFailed,
    InsufficientPermissions,
    InvalidChangesShape,
    InvalidSchemaVersion,
    MissingPostId,
    PostNotFound,
    PostTypeDisabled,
)
from .hooks import HookManager
from .logging import update_logger as logger
from .merge import merge_document
from .models import Post, User
from .persist import DocumentPersister
from .site import SiteStore
from .validation import validate_document

UPDATE_LOG_OPTION = "kaigen_update_logs"


def _parse_post_id(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        return int(value) or None
    return None


class UpdateService:
    """Applies Kaigen update requests to posts."""

    def __init__(
        self,
        site: SiteStore,
        settings: Settings,
        builder: DocumentBuilder,
        persister: DocumentPersister,
        hooks: HookManager,
        update_log: ActivityLog | None = None,
    ):
        self.site = site
        self.settings = settings
        self.builder = builder
        self.persister = persister
        self.hooks = hooks
        self.update_log = update_log or ActivityLog(site, UPDATE_LOG_OPTION)

    def validate_capabilities(self, user: User | None, post: Post) -> bool:
        """Check the user may edit this post through Kaigen."""
        if not self.site.user_can(user, EDIT_CAPABILITY):
            return False
        post_type = self.site.get_post_type(post.post_type)
        capability = post_type.edit_capability if post_type else "edit_posts"
        return self.site.user_can(user, capability)

    def handle_update_request(self, data: Any, user: User | None) -> dict[str, Any]:
        """Apply an update request.

        Request shape is checked before any storage access; lookup and
        permission checks happen before the merge; validation happens before
        any write.

        Args:
            data: Request body with ``post_id``, ``schema_version``,
                ``changes`` and optional ``project_id``, ``platform_id``,
                ``site_url``.
            user: Authenticated user making the request.

        Returns:
            ``success``, ``post_id``, ``url``, the rebuilt ``document`` and
            ``warnings`` from best-effort persist steps.

        Raises:
            ConnectorError: A subclass describing why the update was refused.
        """
        if not isinstance(data, dict):
            raise InvalidChangesShape("Request body must be an object")

        post_id = _parse_post_id(data.get("post_id"))
        if post_id is None:
            raise MissingPostId()
        if data.get("schema_version") != SCHEMA_VERSION or isinstance(data.get("schema_version"), bool):
            raise InvalidSchemaVersion()
        changes = data.get("changes")
        if not isinstance(changes, dict):
            raise InvalidChangesShape()

        post = self.site.get_post(post_id)
        if post is None:
            raise PostNotFound(post_id=post_id)
        if not self.validate_capabilities(user, post):
            raise InsufficientPermissions("You do not have permission to edit this post")
        if post.post_type not in self.settings.enabled_post_types:
            raise PostTypeDisabled(post_type=post.post_type)

        build_args = {
            "project_id": data.get("project_id") or "",
            "platform_id": data.get("platform_id"),
            "site_url": data.get("site_url") or "",
        }
        current = self.builder.build(post_id, **build_args)
        if current is None:
            raise DocumentBuildFailed()

        merged = merge_document(current, changes)
        validate_document(merged)
        report = self.persister.persist(post_id, merged, baseline=current)

        document = self.builder.build(post_id, **build_args)
        if document is None:
            raise DocumentBuildFailed()

        self.update_log.log(
            "update",
            "success" if report.ok else "partial",
            user_id=user.id if user else None,
            post_id=post_id,
            post_title=document["post"]["title"],
            changes=sorted(changes),
            details={"failed_steps": report.failed_steps} if not report.ok else {},
        )
        logger.info(f"Post {post_id} updated by Kaigen ({', '.join(sorted(changes)) or 'no changes'})")

        self.hooks.emit("after_update", document, post_id, report)

        return {
            "success": True,
            "post_id": post_id,
            "url": document["post"]["url"],
            "document": document,
            "warnings": report.warnings,
        }

    def get_update_logs(self, limit: int = 50) -> list[dict]:
        return self.update_log.read_recent(limit)
