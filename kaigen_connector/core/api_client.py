"""Outbound client for the Kaigen API."""

from typing import Any

import httpx

from .activity_log import ActivityLog
from .auth import KaigenAuth
from .content import ContentService
from .errors import KaigenAPIError, MissingProjectId, NotConfigured
from .hooks import HookManager
from .logging import api_logger as logger

SYNC_LOG_OPTION = "kaigen_sync_logs"

# Statuses included in the content library sent to Kaigen
LIBRARY_STATUSES = ("publish", "draft")


class KaigenClient:
    """Talks to Kaigen on behalf of the site.

    Requests are synchronous, use a fixed timeout and are never retried.
    """

    def __init__(
        self,
        auth: KaigenAuth,
        content: ContentService,
        hooks: HookManager,
        plugin_version: str,
        sync_log: ActivityLog | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.auth = auth
        self.content = content
        self.hooks = hooks
        self.plugin_version = plugin_version
        self.sync_log = sync_log or ActivityLog(auth.site, SYNC_LOG_OPTION)
        self.timeout = timeout
        self.transport = transport

    @property
    def site_url(self) -> str:
        return self.auth.site.site_url

    def _url(self, endpoint: str) -> str:
        return f"{self.auth.get_api_url().rstrip('/')}/{endpoint.lstrip('/')}"

    def request(self, endpoint: str, method: str = "GET", data: dict | None = None) -> dict[str, Any]:
        """Make an authenticated request to Kaigen.

        Args:
            endpoint: Path relative to the API URL.
            method: HTTP method.
            data: JSON body for POST, PUT and PATCH requests.

        Returns:
            Decoded JSON response body.

        Raises:
            NotConfigured: If no credentials are stored.
            KaigenAPIError: If the request fails or Kaigen answers >= 400.
        """
        headers = self.auth.get_headers()
        if not headers:
            raise NotConfigured()

        method = method.upper()
        body = data if data is not None and method in ("POST", "PUT", "PATCH") else None

        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.request(method, self._url(endpoint), headers=headers, json=body)
        except httpx.HTTPError as e:
            logger.error(f"{method} {endpoint} failed: {e}")
            raise KaigenAPIError(str(e))

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            message = payload.get("error") if isinstance(payload, dict) else None
            logger.warning(f"{method} {endpoint} returned {response.status_code}")
            raise KaigenAPIError(message or "API request failed", status=response.status_code)

        return payload if isinstance(payload, dict) else {}

    def test_connection(self) -> dict[str, Any]:
        """Validate the stored key and return the connected project.

        Raises:
            KaigenAPIError: If Kaigen rejects the key.
        """
        validation = self.auth.validate_with_kaigen()
        if not validation.get("valid"):
            raise KaigenAPIError(validation.get("error") or "Connection failed", status=400)
        return {
            "success": True,
            "project_id": validation.get("project_id"),
            "user_id": validation.get("user_id"),
            "capabilities": validation.get("capabilities", []),
        }

    def get_project_info(self, project_id: str) -> dict[str, Any]:
        return self.request(f"api/wordpress/{project_id}/test-connection", "POST", {"wpUrl": self.site_url})

    def send_site_structure(self, project_id: str) -> dict[str, Any]:
        """Send the site structure without content."""
        return self.request(
            f"api/wordpress/{project_id}/ingest-content",
            "POST",
            {
                "wpUrl": self.site_url,
                "structure": self.content.get_structure(self.plugin_version),
                "content": [],
            },
        )

    def send_content_library(self, project_id: str, post_types: list[str] | None = None) -> dict[str, Any]:
        """Send published and draft posts of the given (or enabled) post types."""
        post_types = post_types or self.content.settings.enabled_post_types
        posts: list[dict[str, Any]] = []
        for post_type in post_types:
            posts.extend(self.content.get_existing_posts(post_type, LIBRARY_STATUSES, limit=None))

        return self.request(
            f"api/wordpress/{project_id}/ingest-content",
            "POST",
            {
                "wpUrl": self.site_url,
                "structure": {
                    "postTypes": self.content.get_custom_post_types(),
                    "editorType": self.content.get_editor_type(),
                },
                "content": posts,
            },
        )

    def get_editor_url(self, project_id: str, post_id: int) -> str:
        """Editor URL for a post as issued by Kaigen."""
        result = self.request(f"api/wordpress/{project_id}/editor-url")
        editor_url = result.get("editorUrl")
        if not editor_url:
            raise KaigenAPIError("Kaigen did not return an editor URL")
        return self._with_post_params(editor_url, post_id)

    def build_editor_link(self, post_id: int, project_id: str | None = None) -> str:
        """Editor button link built locally, without asking Kaigen for the URL.

        The project id comes from key validation when not given. Hooks on
        ``editor_url`` may rewrite the result.
        """
        if not project_id:
            project_id = self.auth.validate_with_kaigen().get("project_id") or "default"
        editor_url = f"{self.auth.get_api_url().rstrip('/')}/en/projects/{project_id}/editor"
        return self.hooks.emit("editor_url", self._with_post_params(editor_url, post_id), post_id)

    def _with_post_params(self, url: str, post_id: int) -> str:
        return str(httpx.URL(url).copy_merge_params({"wp_post_id": str(post_id), "wp_site": self.site_url}))

    def sync_content(self, project_id: str | None = None, user_id: int | None = None) -> dict[str, Any]:
        """Send the structure, then the content library, and log the sync.

        Args:
            project_id: Target project; resolved through key validation
                when omitted.
            user_id: User that started the sync, for the log.

        Returns:
            Kaigen's response to the content upload.

        Raises:
            MissingProjectId: If no project id can be resolved.
            KaigenAPIError: If either upload fails.
        """
        if not project_id:
            validation = self.auth.validate_with_kaigen()
            project_id = validation.get("project_id") if validation.get("valid") else None
            if not project_id:
                raise MissingProjectId()

        try:
            self.send_site_structure(project_id)
            result = self.send_content_library(project_id)
        except KaigenAPIError as e:
            self.sync_log.log(
                "full_sync", "error", user_id=user_id, details={"project_id": project_id, "error": e.message}
            )
            raise

        posts_synced = result.get("postsIngested", 0)
        self.sync_log.log(
            "full_sync",
            "success",
            user_id=user_id,
            details={"project_id": project_id, "posts_synced": posts_synced},
        )
        logger.info(f"Synced {posts_synced} posts to project {project_id}")
        self.hooks.emit("after_sync", result, project_id)
        return result

    def get_sync_logs(self, limit: int = 50) -> list[dict]:
        return self.sync_log.read_recent(limit)
