"""Canonical document builder (schema version 2).

A canonical document is a normalized snapshot of one post, assembled from
its core fields, meta, taxonomy assignments, featured media and SEO meta.
It is never stored; it is rebuilt from live storage whenever needed.
"""

from typing import Any

from .content import ContentService
from .hooks import HookManager
from .sanitize import Sanitizer
from .seo import SEO_FIELDS, get_seo_backend, is_seo_meta_key
from .site import SiteStore

SCHEMA_VERSION = 2

# Top-level sections of a canonical document
SECTIONS = ("post", "seo", "taxonomies", "custom_fields", "media", "extensions")


class DocumentBuilder:
    """Builds canonical documents from the site store. Read-only."""

    def __init__(
        self,
        site: SiteStore,
        content: ContentService,
        hooks: HookManager,
        sanitizer: Sanitizer,
    ):
        self.site = site
        self.content = content
        self.hooks = hooks
        self.sanitizer = sanitizer

    def build(
        self,
        post_id: int,
        project_id: str | None = "",
        platform_id: str | int | None = None,
        site_url: str | None = "",
    ) -> dict[str, Any] | None:
        """Build the canonical document of a post.

        Args:
            post_id: Post to describe.
            project_id: Kaigen project id echoed into ``post.project_id``.
            platform_id: Kaigen platform id, null when not given.
            site_url: Overrides the site URL reported in the document.

        Returns:
            The document, or None if the post does not exist.
        """
        post = self.site.get_post(post_id)
        if post is None:
            return None

        custom_fields = self.content.get_post_custom_fields(post.id)
        featured_media_id = self.site.get_thumbnail_id(post.id)
        author = self.site.get_user(post.author)

        document = {
            "schema_version": SCHEMA_VERSION,
            "post": {
                "id": post.id,
                "project_id": str(project_id or ""),
                "platform_id": str(platform_id) if platform_id else None,
                "site_url": self.sanitizer.esc_url_raw(site_url) if site_url else self.site.site_url,
                "post_type": post.post_type,
                "status": post.status,
                "title": post.title,
                "content": post.content,
                "excerpt": post.excerpt,
                "slug": post.slug,
                "date": post.date_gmt.isoformat(),
                "url": self.site.permalink(post),
                "author": {
                    "id": post.author,
                    "name": author.display_name if author else "",
                },
            },
            "seo": self.get_seo_data(post.id),
            "taxonomies": self.get_taxonomies(post.id, post.post_type),
            "custom_fields": {
                "acf": dict(custom_fields.get("acf", {})),
                "meta": dict(custom_fields.get("meta", {})),
            },
            "media": {
                "featured_media_id": featured_media_id,
                "featured_media_url": self.site.attachment_url(featured_media_id) if featured_media_id else None,
            },
            "extensions": {
                "editor_type": self.content.get_editor_type(post.post_type),
            },
        }
        return self.hooks.emit("document_built", document, post.id)

    def get_seo_data(self, post_id: int) -> dict[str, Any]:
        """Normalized SEO section read through the active plugin's keys.

        ``raw_meta`` carries every SEO-plugin meta entry regardless of which
        plugin is active.
        """
        plugin = self.content.detect_seo_plugin()
        backend = get_seo_backend(plugin)
        meta = self.site.get_post_meta(post_id)

        seo: dict[str, Any] = {"plugin": plugin}
        for field in SEO_FIELDS:
            value = meta.get(backend.key_for(field), "")
            seo[field] = str(value) if value not in ("", None) else None
        seo["raw_meta"] = {key: value for key, value in meta.items() if is_seo_meta_key(key)}
        return seo

    def get_taxonomies(self, post_id: int, post_type: str) -> dict[str, dict[str, list]]:
        """Assigned term ids and names for every taxonomy of the post type."""
        taxonomies = {}
        for taxonomy in self.site.get_object_taxonomies(post_type):
            terms = self.site.get_object_terms(post_id, taxonomy.name)
            taxonomies[taxonomy.name] = {
                "ids": [term.id for term in terms],
                "names": [term.name for term in terms],
            }
        return taxonomies
