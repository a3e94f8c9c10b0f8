"""Custom-field integration (ACF-style field storage).

The document builder reads ``custom_fields.acf`` and the persister writes it
through an integration object. When no integration is configured, values
fall back to plain post meta.
"""

from typing import Any, Protocol

from .site import SiteStore


class CustomFieldsIntegration(Protocol):
    """Read/write hook of a custom-field plugin."""

    def get_fields(self, post_id: int) -> dict[str, Any]:
        """Return all field values of a post keyed by field name."""
        ...

    def update_field(self, key: str, value: Any, post_id: int) -> None:
        """Store one field value. ``None`` deletes the value."""
        ...

    def meta_keys(self, post_id: int) -> set[str]:
        """Meta keys the integration stores its values under."""
        ...


class StoredFieldGroups:
    """Custom fields declared by field groups and stored as post meta.

    Values live under the field name, and a companion ``_<name>`` key holds
    the field reference, the same layout ACF uses.
    """

    source = "acf"

    def __init__(self, site: SiteStore):
        self.site = site

    def _field_names(self, post_id: int) -> list[str]:
        post = self.site.get_post(post_id)
        if post is None:
            return []
        names: list[str] = []
        for group in self.site.get_field_groups(post.post_type):
            if group.source != self.source:
                continue
            names.extend(f.name for f in group.fields if f.name not in names)
        return names

    def meta_keys(self, post_id: int) -> set[str]:
        names = self._field_names(post_id)
        return {*names, *(f"_{name}" for name in names)}

    def get_fields(self, post_id: int) -> dict[str, Any]:
        meta = self.site.get_post_meta(post_id)
        return {name: meta[name] for name in self._field_names(post_id) if name in meta}

    def update_field(self, key: str, value: Any, post_id: int) -> None:
        if value is None:
            self.site.delete_meta(post_id, key)
            self.site.delete_meta(post_id, f"_{key}")
            return
        self.site.update_meta(post_id, key, value)
        self.site.update_meta(post_id, f"_{key}", f"field_{key}")
