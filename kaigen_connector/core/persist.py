"""Writes a merged canonical document back to the site store.

Steps run in a fixed order:

1. core post fields, one atomic update; failure aborts everything,
2. regular meta,
3. custom fields (ACF-style integration, or plain meta),
4. SEO fields and raw SEO meta,
5. taxonomy assignments,
6. featured media.

Steps 2 to 6 are best-effort: a failure is recorded in the returned
``PersistReport`` and the remaining steps still run. Nothing is rolled back.

When the document the patch was applied to is passed as ``baseline``, only
keys that differ from it are written, and keys missing from the merged
document are deleted from storage.
"""

from dataclasses import dataclass, field
from typing import Any, Callable

from .content import ContentService
from .custom_fields import CustomFieldsIntegration
from .errors import PersistenceFailed
from .logging import update_logger as logger
from .models import UPDATABLE_STATUSES
from .sanitize import SanitizationError, Sanitizer
from .seo import SEO_FIELDS, get_seo_backend, is_seo_meta_key
from .site import SiteStore, parse_datetime
from .storage import StorageError

_MISSING = object()

# Errors a best-effort step records instead of raising
STEP_ERRORS = (StorageError, SanitizationError, ValueError, TypeError)


@dataclass
class StepResult:
    """Outcome of one persist step."""

    name: str
    ok: bool = True
    errors: list[str] = field(default_factory=list)
    written: list[str] = field(default_factory=list)


@dataclass
class PersistReport:
    """Per-step outcome of a persist run."""

    post_id: int
    steps: list[StepResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(step.ok for step in self.steps)

    @property
    def failed_steps(self) -> list[str]:
        return [step.name for step in self.steps if not step.ok]

    def step(self, name: str) -> StepResult | None:
        return next((s for s in self.steps if s.name == name), None)

    @property
    def warnings(self) -> list[str]:
        return [f"{step.name}: {error}" for step in self.steps for error in step.errors]


def _diff(current: Any, baseline: Any | None) -> tuple[dict[str, Any], list[str]]:
    """Keys to write and keys to delete for one mapping section."""
    current = current if isinstance(current, dict) else {}
    if baseline is None:
        return dict(current), []
    baseline = baseline if isinstance(baseline, dict) else {}
    changed = {k: v for k, v in current.items() if baseline.get(k, _MISSING) != v}
    removed = [k for k in baseline if k not in current]
    return changed, removed


def _section(document: dict | None, *path: str) -> Any:
    value: Any = document
    for key in path:
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


class DocumentPersister:
    """Decomposes a canonical document into individual storage writes."""

    def __init__(
        self,
        site: SiteStore,
        content: ContentService,
        sanitizer: Sanitizer,
        custom_fields: CustomFieldsIntegration | None = None,
    ):
        self.site = site
        self.content = content
        self.sanitizer = sanitizer
        self.custom_fields = custom_fields

    def persist(
        self,
        post_id: int,
        document: dict[str, Any],
        baseline: dict[str, Any] | None = None,
    ) -> PersistReport:
        """Write a validated document.

        Args:
            post_id: Post being updated.
            document: Merged, validated document.
            baseline: Document the patch was merged into.

        Returns:
            Report of every step.

        Raises:
            PersistenceFailed: If the core post update fails.
        """
        report = PersistReport(post_id=post_id)
        report.steps.append(self._persist_post(post_id, document, baseline))

        best_effort: list[tuple[str, Callable[[StepResult, int, dict, dict | None], None]]] = [
            ("meta", self._persist_meta),
            ("acf", self._persist_acf),
            ("seo", self._persist_seo),
            ("taxonomies", self._persist_taxonomies),
            ("media", self._persist_media),
        ]
        for name, run in best_effort:
            result = StepResult(name=name)
            try:
                run(result, post_id, document, baseline)
            except STEP_ERRORS as e:
                result.errors.append(str(e))
            result.ok = not result.errors
            if not result.ok:
                logger.warning(f"Post {post_id}: {name} step failed: {'; '.join(result.errors)}")
            report.steps.append(result)

        return report

    # ------------------------------------------------------------------
    # Step 1: core fields
    # ------------------------------------------------------------------

    def _persist_post(self, post_id: int, document: dict, baseline: dict | None) -> StepResult:
        result = StepResult(name="post")
        changed, removed = _diff(document.get("post"), _section(baseline, "post"))
        fields: dict[str, Any] = {}

        if "title" in changed:
            fields["title"] = self.sanitizer.sanitize_text_field(changed["title"])
        if "content" in changed:
            fields["content"] = self.sanitizer.sanitize_post_html(changed["content"])
        if "excerpt" in changed or "excerpt" in removed:
            fields["excerpt"] = self.sanitizer.sanitize_textarea_field(changed.get("excerpt"))
        if changed.get("status") in UPDATABLE_STATUSES:
            fields["status"] = changed["status"]
        if changed.get("slug"):
            fields["slug"] = self.sanitizer.slugify(str(changed["slug"]))
        if changed.get("date"):
            try:
                fields["date_gmt"] = parse_datetime(str(changed["date"]))
            except ValueError:
                logger.warning(f"Post {post_id}: ignoring invalid date {changed['date']!r}")
        if "author" in changed:
            author = changed["author"]
            author_id = author.get("id") if isinstance(author, dict) else author
            try:
                user = self.site.get_user(int(author_id)) if author_id is not None else None
            except (TypeError, ValueError):
                user = None
            if user is not None:
                fields["author"] = user.id
            else:
                logger.warning(f"Post {post_id}: ignoring unknown author {author_id!r}")

        try:
            self.site.update_post(post_id, fields)
        except (StorageError, SanitizationError) as e:
            logger.error(f"Post {post_id}: core update failed: {e}")
            raise PersistenceFailed(e)

        result.written = sorted(fields)
        return result

    # ------------------------------------------------------------------
    # Step 2: meta
    # ------------------------------------------------------------------

    def _write_meta(self, result: StepResult, post_id: int, key: str, value: Any) -> None:
        try:
            if value is None:
                self.site.delete_meta(post_id, key)
            else:
                self.site.update_meta(post_id, key, self.sanitizer.sanitize_meta_value(value))
            result.written.append(key)
        except STEP_ERRORS as e:
            result.errors.append(f"{key}: {e}")

    def _persist_meta(self, result: StepResult, post_id: int, document: dict, baseline: dict | None) -> None:
        changed, removed = _diff(
            _section(document, "custom_fields", "meta"),
            _section(baseline, "custom_fields", "meta") if baseline is not None else None,
        )
        updates = {**changed, **{key: None for key in removed}}
        stored = self.site.get_post_meta(post_id)
        reserved = self.content.reserved_meta_keys(post_id)
        for raw_key, value in updates.items():
            # Existing keys are addressed as stored; new keys are sanitized
            key = str(raw_key) if str(raw_key) in stored else self.sanitizer.sanitize_key(raw_key)
            # Internal, SEO and custom-field keys belong to other steps
            if not self.content.is_plain_meta_key(key, reserved):
                continue
            self._write_meta(result, post_id, key, value)

    # ------------------------------------------------------------------
    # Step 3: custom fields
    # ------------------------------------------------------------------

    def _persist_acf(self, result: StepResult, post_id: int, document: dict, baseline: dict | None) -> None:
        changed, removed = _diff(
            _section(document, "custom_fields", "acf"),
            _section(baseline, "custom_fields", "acf") if baseline is not None else None,
        )
        updates = {**changed, **{key: None for key in removed}}
        for key, value in updates.items():
            if self.custom_fields is None:
                self._write_meta(result, post_id, key, value)
                continue
            try:
                self.custom_fields.update_field(key, value, post_id)
                result.written.append(key)
            except STEP_ERRORS as e:
                result.errors.append(f"{key}: {e}")

    # ------------------------------------------------------------------
    # Step 4: SEO
    # ------------------------------------------------------------------

    def _persist_seo(self, result: StepResult, post_id: int, document: dict, baseline: dict | None) -> None:
        backend = get_seo_backend(self.content.detect_seo_plugin())
        seo = _section(document, "seo") or {}
        base_seo = _section(baseline, "seo") if baseline is not None else None
        changed, removed = _diff(
            {k: seo.get(k) for k in SEO_FIELDS if k in seo},
            {k: base_seo.get(k) for k in SEO_FIELDS if k in base_seo} if isinstance(base_seo, dict) else base_seo,
        )

        for name in SEO_FIELDS:
            if name not in changed and name not in removed:
                continue
            value = changed.get(name)
            key = backend.key_for(name)
            try:
                if value in (None, ""):
                    self.site.delete_meta(post_id, key)
                elif name == "description":
                    self.site.update_meta(post_id, key, self.sanitizer.sanitize_textarea_field(value))
                else:
                    self.site.update_meta(post_id, key, self.sanitizer.sanitize_text_field(value))
                result.written.append(key)
            except STEP_ERRORS as e:
                result.errors.append(f"{key}: {e}")

        raw_changed, raw_removed = _diff(
            seo.get("raw_meta"),
            _section(base_seo, "raw_meta") if base_seo is not None else None,
        )
        updates = {**raw_changed, **{key: None for key in raw_removed}}
        # Keys just written from the normalized fields win over raw meta
        normalized = set(result.written)
        for raw_key, value in updates.items():
            key = str(raw_key)
            if key in normalized:
                continue
            if not is_seo_meta_key(key):
                result.errors.append(f"{key}: not an SEO meta key")
                continue
            self._write_meta(result, post_id, key, value)

    # ------------------------------------------------------------------
    # Step 5: taxonomies
    # ------------------------------------------------------------------

    def _persist_taxonomies(self, result: StepResult, post_id: int, document: dict, baseline: dict | None) -> None:
        changed, removed = _diff(
            _section(document, "taxonomies"),
            _section(baseline, "taxonomies") if baseline is not None else None,
        )
        updates = {**changed, **{name: {} for name in removed}}
        for taxonomy, entry in updates.items():
            entry = entry if isinstance(entry, dict) else {}
            ids, names = entry.get("ids"), entry.get("names")
            if isinstance(ids, list):
                if any(isinstance(term_id, bool) for term_id in ids):
                    result.errors.append(f"{taxonomy}: term ids must be integers")
                    continue
                terms = [int(term_id) for term_id in ids]
            elif isinstance(names, list):
                terms = [str(name) for name in names]
            else:
                terms = []
            try:
                self.site.set_object_terms(post_id, taxonomy, terms)
                result.written.append(taxonomy)
            except STEP_ERRORS as e:
                result.errors.append(f"{taxonomy}: {e}")

    # ------------------------------------------------------------------
    # Step 6: featured media
    # ------------------------------------------------------------------

    def _persist_media(self, result: StepResult, post_id: int, document: dict, baseline: dict | None) -> None:
        media = _section(document, "media") or {}
        changed, removed = _diff(
            media,
            _section(baseline, "media") if baseline is not None else None,
        )
        id_changed = "featured_media_id" in changed or "featured_media_id" in removed
        url_changed = "featured_media_url" in changed or "featured_media_url" in removed
        media_id = media.get("featured_media_id")
        media_url = media.get("featured_media_url")

        if id_changed and media_id is not None:
            self.site.set_thumbnail(post_id, int(media_id))
        elif url_changed and media_url:
            attachment_id = self.site.attachment_url_to_postid(str(media_url))
            if attachment_id is None:
                raise ValueError(f"No attachment found for {media_url}")
            self.site.set_thumbnail(post_id, attachment_id)
        elif id_changed or url_changed:
            self.site.delete_thumbnail(post_id)
        else:
            return
        result.written.append("featured_media")
