"""Partial patch merging for canonical documents.

A patch mirrors the document shape. For every leaf:

- key absent: keep the current value,
- key present with ``DELETE``: remove the key,
- any other value: set it.

On the wire ``DELETE`` is spelled as JSON ``null``; ``normalize_patch``
converts it at the boundary so the merge rules below never have to guess
what a ``None`` means.
"""

import copy
from typing import Any, Callable

from .errors import InvalidChangesShape

# Post fields a patch can never remove
PROTECTED_POST_FIELDS = frozenset({"title", "content"})


class _Delete:
    """Patch leaf meaning "remove this key"."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "DELETE"

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


DELETE = _Delete()


def normalize_patch(value: Any) -> Any:
    """Convert JSON nulls in a patch object to ``DELETE``.

    Only mapping values are converted; list items are data, not patch leaves.
    """
    if value is None:
        return DELETE
    if isinstance(value, dict):
        return {key: normalize_patch(item) for key, item in value.items()}
    return value


def _plain(value: Any) -> Any:
    """Turn a patch value that is being set wholesale back into plain data."""
    if value is DELETE:
        return None
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def _require_mapping(section: str, value: Any) -> dict:
    if not isinstance(value, dict):
        raise InvalidChangesShape(f"changes.{section} must be an object")
    return value


def _merge_keys(target: dict, patch: dict, protected: frozenset = frozenset()) -> None:
    """Apply per-key delete/overwrite onto ``target`` in place."""
    for key, value in patch.items():
        if value is DELETE:
            if key not in protected:
                target.pop(key, None)
        else:
            target[key] = _plain(value)


def _merge_post(document: dict, patch: Any) -> None:
    if patch is DELETE:
        return
    post = document.setdefault("post", {})
    if not isinstance(post, dict):
        post = document["post"] = {}
    _merge_keys(post, _require_mapping("post", patch), PROTECTED_POST_FIELDS)


def _merge_seo(document: dict, patch: Any) -> None:
    if patch is DELETE:
        document.pop("seo", None)
        return
    seo = document.setdefault("seo", {})
    for key, value in _require_mapping("seo", patch).items():
        if key == "raw_meta":
            if value is DELETE:
                seo["raw_meta"] = {}
                continue
            raw_meta = seo.get("raw_meta")
            if not isinstance(raw_meta, dict):
                raw_meta = seo["raw_meta"] = {}
            _merge_keys(raw_meta, _require_mapping("seo.raw_meta", value))
        elif value is DELETE:
            seo.pop(key, None)
        else:
            seo[key] = _plain(value)


def _merge_taxonomies(document: dict, patch: Any) -> None:
    if patch is DELETE:
        document.pop("taxonomies", None)
        return
    taxonomies = document.setdefault("taxonomies", {})
    for name, value in _require_mapping("taxonomies", patch).items():
        if value is DELETE:
            taxonomies.pop(name, None)
        else:
            taxonomies[name] = _plain(_require_mapping(f"taxonomies.{name}", value))


def _merge_custom_fields(document: dict, patch: Any) -> None:
    if patch is DELETE:
        document["custom_fields"] = {"acf": {}, "meta": {}}
        return
    custom_fields = document.setdefault("custom_fields", {})
    for group, value in _require_mapping("custom_fields", patch).items():
        if value is DELETE:
            custom_fields[group] = {}
            continue
        current = custom_fields.get(group)
        if not isinstance(current, dict):
            current = custom_fields[group] = {}
        _merge_keys(current, _require_mapping(f"custom_fields.{group}", value))


def _merge_media(document: dict, patch: Any) -> None:
    if patch is DELETE:
        document.pop("media", None)
        return
    _merge_keys(document.setdefault("media", {}), _require_mapping("media", patch))


def _merge_extensions(document: dict, patch: Any) -> None:
    if patch is DELETE:
        document.pop("extensions", None)
        return
    _merge_keys(document.setdefault("extensions", {}), _require_mapping("extensions", patch))


SECTION_MERGERS: dict[str, Callable[[dict, Any], None]] = {
    "post": _merge_post,
    "seo": _merge_seo,
    "taxonomies": _merge_taxonomies,
    "custom_fields": _merge_custom_fields,
    "media": _merge_media,
    "extensions": _merge_extensions,
}


def merge_document(document: dict[str, Any], patch: dict[str, Any]) -> dict[str, Any]:
    """Apply a partial patch to a canonical document.

    Neither argument is modified. Sections and keys missing from the patch
    are left untouched; unknown top-level patch keys are ignored.

    Args:
        document: Canonical document.
        patch: Patch object; JSON nulls are accepted and mean delete.

    Returns:
        The merged document.

    Raises:
        InvalidChangesShape: If a patch section has the wrong shape.
    """
    patch = normalize_patch(_require_mapping("changes", patch))
    merged = copy.deepcopy(document)
    for section, merger in SECTION_MERGERS.items():
        if section in patch:
            merger(merged, patch[section])
    return merged
