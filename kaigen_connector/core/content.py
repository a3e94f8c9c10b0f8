"""Content discovery: post types, custom fields, editor and SEO detection."""

from typing import Any

from .config import Settings
from .custom_fields import CustomFieldsIntegration
from .hooks import HookManager
from .models import EditorType, Post
from .sanitize import Sanitizer
from .seo import detect_seo_plugin, is_seo_meta_key
from .site import SiteStore

# Post types never exposed to Kaigen
INTERNAL_POST_TYPES = {
    "attachment",
    "revision",
    "nav_menu_item",
    "custom_css",
    "customize_changeset",
    "oembed_cache",
    "user_request",
    "wp_block",
}

EXCERPT_WORDS = 55


class ContentService:
    """Describes the site's content structure to Kaigen."""

    def __init__(
        self,
        site: SiteStore,
        settings: Settings,
        hooks: HookManager,
        sanitizer: Sanitizer,
        custom_fields: CustomFieldsIntegration | None = None,
    ):
        self.site = site
        self.settings = settings
        self.hooks = hooks
        self.sanitizer = sanitizer
        self.custom_fields = custom_fields

    def get_custom_post_types(self) -> list[dict[str, Any]]:
        """List post types with their support flags and publish counts."""
        enabled = set(self.settings.enabled_post_types)
        result = []
        for post_type in self.site.get_post_types():
            if post_type.name in INTERNAL_POST_TYPES:
                continue
            result.append(
                {
                    "slug": post_type.name,
                    "label": post_type.label,
                    "description": post_type.description,
                    "public": post_type.public,
                    "hierarchical": post_type.hierarchical,
                    "supports": post_type.supports,
                    "taxonomies": [t.name for t in self.site.get_object_taxonomies(post_type.name)],
                    "count": self.site.count_posts(post_type.name),
                    "enabled": post_type.name in enabled,
                }
            )
        return self.hooks.emit("post_types", result)

    def get_custom_fields(self, post_type: str) -> list[dict[str, Any]]:
        """Custom field definitions attached to a post type."""
        fields = []
        for group in self.site.get_field_groups(post_type):
            for field in group.fields:
                fields.append(
                    {
                        "key": field.name,
                        "label": field.label or field.name,
                        "type": field.type,
                        "source": group.source,
                        "group": group.title,
                    }
                )
        return self.hooks.emit("custom_fields", fields, post_type)

    def get_all_custom_fields(self) -> dict[str, list[dict[str, Any]]]:
        return {pt: self.get_custom_fields(pt) for pt in self.settings.enabled_post_types}

    def get_editor_type(self, post_type: str = "post") -> str:
        """Editor used for a post type.

        A site-wide ``editor_type`` setting wins; post types listed in
        ``classic_post_types`` use the classic editor; everything else uses
        the block editor.
        """
        override = self.settings.get("editor_type")
        if override in {e.value for e in EditorType}:
            return override
        if post_type in (self.settings.get("classic_post_types") or []):
            return EditorType.CLASSIC.value
        return EditorType.GUTENBERG.value

    def detect_seo_plugin(self) -> str:
        return detect_seo_plugin(
            self.site.get_option("active_plugins", []) or [],
            self.settings.get("seo_plugin"),
        )

    def get_smart_excerpt(self, post: Post) -> str:
        """Use the excerpt if set, otherwise the first words of the content."""
        if post.excerpt:
            return post.excerpt
        text = self.sanitizer.strip_all_tags(post.content)
        return self.sanitizer.trim_words(text, EXCERPT_WORDS, "...")

    def get_term_names(self, post_id: int, taxonomy: str) -> list[str]:
        return [term.name for term in self.site.get_object_terms(post_id, taxonomy)]

    def reserved_meta_keys(self, post_id: int) -> set[str]:
        """Meta keys owned by the custom-field integration."""
        if self.custom_fields is None:
            return set()
        return self.custom_fields.meta_keys(post_id)

    @staticmethod
    def is_plain_meta_key(key: str, reserved: set[str]) -> bool:
        """False for internal, SEO-plugin and custom-field keys."""
        return bool(key) and not key.startswith("_") and not is_seo_meta_key(key) and key not in reserved

    def get_post_custom_fields(self, post_id: int) -> dict[str, Any]:
        """Custom field values of a post.

        ``acf`` holds values from the custom-field integration; ``meta``
        holds the remaining meta entries that are not internal (see
        ``is_plain_meta_key``). Empty sections are omitted.
        """
        fields: dict[str, Any] = {}

        if self.custom_fields is not None:
            acf = self.custom_fields.get_fields(post_id)
            if acf:
                fields["acf"] = acf

        reserved = self.reserved_meta_keys(post_id)
        meta = {
            key: value
            for key, value in self.site.get_post_meta(post_id).items()
            if self.is_plain_meta_key(key, reserved)
        }
        if meta:
            fields["meta"] = meta

        return fields

    def post_summary(self, post: Post, with_custom_fields: bool = False) -> dict[str, Any]:
        """Flat post representation used by listings."""
        author = self.site.get_user(post.author)
        summary = {
            "id": post.id,
            "title": post.title,
            "content": post.content,
            "excerpt": self.get_smart_excerpt(post),
            "url": self.site.permalink(post),
            "postType": post.post_type,
            "status": post.status,
            "author": author.display_name if author else "",
            "publishedDate": post.date_gmt.isoformat(),
            "modifiedDate": post.modified_gmt.isoformat(),
            "categories": self.get_term_names(post.id, "category"),
            "tags": self.get_term_names(post.id, "post_tag"),
        }
        if with_custom_fields:
            summary["customFields"] = self.get_post_custom_fields(post.id)
        return summary

    def get_existing_posts(
        self,
        post_type: str,
        statuses: tuple[str, ...] = ("publish",),
        limit: int | None = 100,
    ) -> list[dict[str, Any]]:
        """Most recently modified posts of a type."""
        posts, _ = self.site.query_posts([post_type], statuses, limit=limit)
        return [self.post_summary(post, with_custom_fields=True) for post in posts]

    def get_internal_links_candidates(self, post_type: str | None = None, limit: int = 100) -> list[dict[str, Any]]:
        """Newest published posts usable as internal link targets."""
        types = [post_type] if post_type else self.settings.enabled_post_types
        posts, _ = self.site.query_posts(types, orderby="date_gmt", limit=limit)
        return [
            {
                "id": post.id,
                "title": post.title,
                "url": self.site.permalink(post),
                "excerpt": self.get_smart_excerpt(post),
                "postType": post.post_type,
            }
            for post in posts
        ]

    def get_structure(self, plugin_version: str) -> dict[str, Any]:
        """Site structure payload shared by the REST API and content sync."""
        structure = {
            "postTypes": self.get_custom_post_types(),
            "customFields": self.get_all_custom_fields(),
            "editorType": self.get_editor_type(),
            "seoPlugin": self.detect_seo_plugin(),
            "wpVersion": self.site.get_option("version", ""),
            "siteUrl": self.site.site_url,
            "siteName": self.site.site_name,
            "pluginVersion": plugin_version,
        }
        return self.hooks.emit("structure", structure)
