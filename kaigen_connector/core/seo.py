"""SEO plugin backends.

Each supported SEO plugin stores the title, description and focus keyword of
a post under its own meta keys. Backends are kept in a registry keyed by
plugin id so new plugins can be added without touching the builder or the
persister.
"""

from dataclasses import dataclass
from typing import Iterable


@dataclass(frozen=True)
class SeoBackend:
    """Meta key mapping of one SEO plugin."""

    plugin: str
    title_key: str
    description_key: str
    focus_keyword_key: str
    meta_prefix: str

    def key_for(self, field: str) -> str:
        """Meta key for a normalized field (title, description, focus_keyword)."""
        return {
            "title": self.title_key,
            "description": self.description_key,
            "focus_keyword": self.focus_keyword_key,
        }[field]


SEO_FIELDS = ("title", "description", "focus_keyword")

YOAST = SeoBackend(
    plugin="yoast",
    title_key="_yoast_wpseo_title",
    description_key="_yoast_wpseo_metadesc",
    focus_keyword_key="_yoast_wpseo_focuskw",
    meta_prefix="_yoast_wpseo_",
)

RANKMATH = SeoBackend(
    plugin="rankmath",
    title_key="rank_math_title",
    description_key="rank_math_description",
    focus_keyword_key="rank_math_focus_keyword",
    meta_prefix="rank_math_",
)

SEOPRESS = SeoBackend(
    plugin="seopress",
    title_key="_seopress_titles_title",
    description_key="_seopress_titles_desc",
    focus_keyword_key="_seopress_analysis_target_kw",
    meta_prefix="_seopress_",
)

# Registry in detection order
SEO_BACKENDS: dict[str, SeoBackend] = {
    YOAST.plugin: YOAST,
    RANKMATH.plugin: RANKMATH,
    SEOPRESS.plugin: SEOPRESS,
}

# Plugin slugs as they appear in the active_plugins option
PLUGIN_SLUGS = {
    "wordpress-seo": "yoast",
    "seo-by-rank-math": "rankmath",
    "wp-seopress": "seopress",
}

NO_PLUGIN = "none"


def register_seo_backend(backend: SeoBackend, plugin_slug: str | None = None) -> None:
    """Add or replace an SEO backend.

    Args:
        backend: Backend to register.
        plugin_slug: Slug in the ``active_plugins`` option that activates it.
    """
    SEO_BACKENDS[backend.plugin] = backend
    if plugin_slug:
        PLUGIN_SLUGS[plugin_slug] = backend.plugin


def detect_seo_plugin(active_plugins: Iterable[str], override: str | None = None) -> str:
    """Identify the active SEO plugin.

    Args:
        active_plugins: Active plugin slugs of the site.
        override: Explicit plugin id from settings, used when registered.

    Returns:
        A registered plugin id, or ``"none"``.
    """
    if override and override in SEO_BACKENDS:
        return override
    # Entries may be plugin directories or "dir/main-file.php" paths
    slugs = {entry.split("/", 1)[0] for entry in active_plugins}
    active = {PLUGIN_SLUGS[slug] for slug in slugs if slug in PLUGIN_SLUGS}
    for plugin in SEO_BACKENDS:
        if plugin in active:
            return plugin
    return NO_PLUGIN


def get_seo_backend(plugin: str) -> SeoBackend:
    """Backend for a plugin id.

    Unknown ids, including ``"none"``, fall back to the first registered
    backend's keys.
    """
    backend = SEO_BACKENDS.get(plugin)
    if backend is not None:
        return backend
    return next(iter(SEO_BACKENDS.values()))


def is_seo_meta_key(key: str) -> bool:
    """True for meta keys owned by any registered SEO plugin."""
    return any(key.startswith(b.meta_prefix) for b in SEO_BACKENDS.values())
