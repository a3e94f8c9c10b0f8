"""Site content store: posts, meta, taxonomies, media, users and options.

This is the storage collaborator used by the connector. Every write goes
through ``Storage.transaction()`` so a single call is applied completely or
not at all.
"""

from datetime import datetime, timezone
from typing import Any, Iterable

from .logging import storage_logger as logger
from .models import FieldGroup, Post, PostType, Taxonomy, Term, User, utc_now
from .storage import Storage, StorageError

# Meta key holding the featured media attachment id
THUMBNAIL_META_KEY = "_thumbnail_id"

# Fields of a post that update_post may change
POST_FIELDS = {"title", "content", "excerpt", "status", "slug", "date_gmt", "author"}


class SiteStore:
    """WordPress-style content API over the JSON database."""

    def __init__(self, storage: Storage, site_url: str | None = None):
        """Initialize the site store.

        Args:
            storage: Underlying JSON database.
            site_url: Overrides the ``siteurl`` option when given.
        """
        self.storage = storage
        self._site_url = site_url.rstrip("/") if site_url else None

    # ------------------------------------------------------------------
    # Options
    # ------------------------------------------------------------------

    @property
    def site_url(self) -> str:
        """Public site URL without trailing slash."""
        return self._site_url or str(self.get_option("siteurl", "http://localhost")).rstrip("/")

    @property
    def site_name(self) -> str:
        return self.get_option("blogname", "")

    def get_option(self, name: str, default: Any = None) -> Any:
        return self.storage.data.get("options", {}).get(name, default)

    def update_option(self, name: str, value: Any) -> None:
        with self.storage.transaction() as data:
            data.setdefault("options", {})[name] = value

    def delete_option(self, name: str) -> bool:
        with self.storage.transaction() as data:
            return data.setdefault("options", {}).pop(name, None) is not None

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    def get_post(self, post_id: int) -> Post | None:
        """Get a post by id, or None if it does not exist."""
        raw = self.storage.data.get("posts", {}).get(str(post_id))
        if raw is None:
            return None
        return Post.model_validate(raw)

    def create_post(self, **fields: Any) -> Post:
        """Insert a new post and return it."""
        with self.storage.transaction() as data:
            post_id = self._next_id(data, "post")
            post = Post(id=post_id, **fields)
            if post.post_type != "attachment":
                post.slug = self._unique_slug(data, post.slug, post.post_type, post_id)
            data.setdefault("posts", {})[str(post_id)] = post.model_dump(mode="json")
        logger.debug(f"Created {post.post_type} {post_id}")
        return post

    def update_post(self, post_id: int, fields: dict[str, Any]) -> Post:
        """Update core fields of a post in one atomic write.

        The slug is made unique within the post type.

        Raises:
            StorageError: If the post does not exist, a field is unknown or
                the write fails.
        """
        unknown = set(fields) - POST_FIELDS
        if unknown:
            raise StorageError(f"Unknown post fields: {sorted(unknown)}")

        with self.storage.transaction() as data:
            raw = data.get("posts", {}).get(str(post_id))
            if raw is None:
                raise StorageError(f"Post {post_id} does not exist")

            merged = {**raw, **fields, "modified_gmt": utc_now()}
            try:
                post = Post.model_validate(merged)
            except ValueError as e:
                raise StorageError(f"Invalid post data: {e}")

            if "slug" in fields:
                post.slug = self._unique_slug(data, post.slug, post.post_type, post_id)
            data["posts"][str(post_id)] = post.model_dump(mode="json")

        return post

    def query_posts(
        self,
        post_types: Iterable[str],
        statuses: Iterable[str] = ("publish",),
        orderby: str = "modified_gmt",
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[Post], int]:
        """List posts newest first.

        Args:
            post_types: Post types to include.
            statuses: Statuses to include.
            orderby: ``modified_gmt`` or ``date_gmt``.
            limit: Maximum number of posts, None for all.
            offset: Number of posts to skip.

        Returns:
            Tuple of (page of posts, total matching posts).
        """
        types = set(post_types)
        wanted = set(statuses)
        posts = [
            Post.model_validate(raw)
            for raw in self.storage.data.get("posts", {}).values()
            if raw.get("post_type") in types and raw.get("status") in wanted
        ]
        posts.sort(key=lambda p: (getattr(p, orderby), p.id), reverse=True)
        total = len(posts)
        end = None if limit is None or limit < 0 else offset + limit
        return posts[offset:end], total

    def count_posts(self, post_type: str, status: str = "publish") -> int:
        return sum(
            1
            for raw in self.storage.data.get("posts", {}).values()
            if raw.get("post_type") == post_type and raw.get("status") == status
        )

    def permalink(self, post: Post) -> str:
        """Public URL of a post."""
        if post.post_type == "attachment":
            return post.guid
        if not post.slug:
            return f"{self.site_url}/?p={post.id}"
        return f"{self.site_url}/{post.slug}/"

    # ------------------------------------------------------------------
    # Meta
    # ------------------------------------------------------------------

    def get_post_meta(self, post_id: int) -> dict[str, Any]:
        """All meta of a post (copy)."""
        return dict(self.storage.data.get("postmeta", {}).get(str(post_id), {}))

    def get_meta(self, post_id: int, key: str, default: Any = "") -> Any:
        return self.storage.data.get("postmeta", {}).get(str(post_id), {}).get(key, default)

    def update_meta(self, post_id: int, key: str, value: Any) -> None:
        with self.storage.transaction() as data:
            self._require_post(data, post_id)
            data.setdefault("postmeta", {}).setdefault(str(post_id), {})[key] = value

    def delete_meta(self, post_id: int, key: str) -> bool:
        with self.storage.transaction() as data:
            meta = data.setdefault("postmeta", {}).get(str(post_id), {})
            return meta.pop(key, None) is not None

    # ------------------------------------------------------------------
    # Post types and taxonomies
    # ------------------------------------------------------------------

    def get_post_types(self) -> list[PostType]:
        return [PostType.model_validate(raw) for raw in self.storage.data.get("post_types", {}).values()]

    def get_post_type(self, name: str) -> PostType | None:
        raw = self.storage.data.get("post_types", {}).get(name)
        return PostType.model_validate(raw) if raw else None

    def get_taxonomy(self, name: str) -> Taxonomy | None:
        raw = self.storage.data.get("taxonomies", {}).get(name)
        return Taxonomy.model_validate(raw) if raw else None

    def get_object_taxonomies(self, post_type: str) -> list[Taxonomy]:
        """Taxonomies registered for a post type."""
        return [
            Taxonomy.model_validate(raw)
            for raw in self.storage.data.get("taxonomies", {}).values()
            if post_type in raw.get("object_types", [])
        ]

    # ------------------------------------------------------------------
    # Terms
    # ------------------------------------------------------------------

    def get_term(self, term_id: int) -> Term | None:
        raw = self.storage.data.get("terms", {}).get(str(term_id))
        return Term.model_validate(raw) if raw else None

    def get_term_by_name(self, taxonomy: str, name: str) -> Term | None:
        for raw in self.storage.data.get("terms", {}).values():
            if raw["taxonomy"] == taxonomy and raw["name"].lower() == name.lower():
                return Term.model_validate(raw)
        return None

    def get_object_terms(self, post_id: int, taxonomy: str) -> list[Term]:
        """Terms of a taxonomy assigned to a post, in assignment order."""
        ids = self.storage.data.get("term_relationships", {}).get(str(post_id), {}).get(taxonomy, [])
        terms = []
        for term_id in ids:
            term = self.get_term(term_id)
            if term is not None:
                terms.append(term)
        return terms

    def set_object_terms(self, post_id: int, taxonomy: str, terms: list[int] | list[str]) -> list[int]:
        """Replace the terms of a taxonomy assigned to a post.

        Integer entries are term ids and must exist in the taxonomy; string
        entries are term names and are created when missing. An empty list
        clears the taxonomy.

        Returns:
            Assigned term ids.

        Raises:
            StorageError: Unknown taxonomy, post or term id.
        """
        if self.get_taxonomy(taxonomy) is None:
            raise StorageError(f"Unknown taxonomy: {taxonomy}")

        with self.storage.transaction() as data:
            self._require_post(data, post_id)
            term_table = data.setdefault("terms", {})
            assigned: list[int] = []
            for entry in terms:
                if isinstance(entry, bool):
                    raise StorageError(f"Invalid term reference: {entry!r}")
                if isinstance(entry, int) or (isinstance(entry, str) and entry.isdigit()):
                    raw = term_table.get(str(int(entry)))
                    if raw is None or raw["taxonomy"] != taxonomy:
                        raise StorageError(f"Term {entry} does not exist in {taxonomy}")
                    term_id = raw["id"]
                else:
                    name = str(entry).strip()
                    if not name:
                        continue
                    existing = next(
                        (
                            raw
                            for raw in term_table.values()
                            if raw["taxonomy"] == taxonomy and raw["name"].lower() == name.lower()
                        ),
                        None,
                    )
                    if existing is None:
                        term_id = self._next_id(data, "term")
                        term_table[str(term_id)] = {
                            "id": term_id,
                            "taxonomy": taxonomy,
                            "name": name,
                            "slug": name.lower().replace(" ", "-"),
                        }
                    else:
                        term_id = existing["id"]
                if term_id not in assigned:
                    assigned.append(term_id)

            relations = data.setdefault("term_relationships", {}).setdefault(str(post_id), {})
            relations[taxonomy] = assigned
        return assigned

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    def get_thumbnail_id(self, post_id: int) -> int | None:
        value = self.get_meta(post_id, THUMBNAIL_META_KEY, None)
        return int(value) if value else None

    def set_thumbnail(self, post_id: int, attachment_id: int) -> None:
        """Set the featured media of a post.

        Raises:
            StorageError: If the id is not an attachment.
        """
        attachment = self.get_post(attachment_id)
        if attachment is None or attachment.post_type != "attachment":
            raise StorageError(f"Attachment {attachment_id} does not exist")
        self.update_meta(post_id, THUMBNAIL_META_KEY, attachment_id)

    def delete_thumbnail(self, post_id: int) -> bool:
        return self.delete_meta(post_id, THUMBNAIL_META_KEY)

    def attachment_url(self, attachment_id: int) -> str | None:
        attachment = self.get_post(attachment_id)
        if attachment is None or attachment.post_type != "attachment":
            return None
        return attachment.guid or None

    def attachment_url_to_postid(self, url: str) -> int | None:
        """Find an attachment id by its file URL."""
        if not url:
            return None
        for raw in self.storage.data.get("posts", {}).values():
            if raw.get("post_type") == "attachment" and raw.get("guid") == url:
                return int(raw["id"])
        return None

    # ------------------------------------------------------------------
    # Users and capabilities
    # ------------------------------------------------------------------

    def get_user(self, user_id: int | None) -> User | None:
        if not user_id:
            return None
        raw = self.storage.data.get("users", {}).get(str(user_id))
        return User.model_validate(raw) if raw else None

    def get_user_by_username(self, username: str) -> User | None:
        username = (username or "").strip().lower()
        for raw in self.storage.data.get("users", {}).values():
            if raw.get("username") == username:
                return User.model_validate(raw)
        return None

    def role_names(self) -> list[str]:
        return list(self.storage.data.get("roles", {}).keys())

    def user_can(self, user: User | None, capability: str) -> bool:
        """Check a capability through the user's roles and own grants."""
        if user is None:
            return False
        if capability in user.capabilities:
            return True
        roles = self.storage.data.get("roles", {})
        return any(capability in roles.get(role, []) for role in user.roles)

    def add_role_cap(self, role: str, capability: str) -> None:
        with self.storage.transaction() as data:
            caps = data.setdefault("roles", {}).setdefault(role, [])
            if capability not in caps:
                caps.append(capability)

    def remove_role_cap(self, role: str, capability: str) -> None:
        with self.storage.transaction() as data:
            caps = data.setdefault("roles", {}).get(role, [])
            if capability in caps:
                caps.remove(capability)

    def add_app_password(self, user_id: int, password_hash: str) -> None:
        with self.storage.transaction() as data:
            raw = data.get("users", {}).get(str(user_id))
            if raw is None:
                raise StorageError(f"User {user_id} does not exist")
            raw.setdefault("app_passwords", []).append(password_hash)

    # ------------------------------------------------------------------
    # Custom field groups
    # ------------------------------------------------------------------

    def get_field_groups(self, post_type: str | None = None) -> list[FieldGroup]:
        groups = [FieldGroup.model_validate(raw) for raw in self.storage.data.get("field_groups", [])]
        if post_type is None:
            return groups
        return [g for g in groups if post_type in g.post_types]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _next_id(data: dict, sequence: str) -> int:
        sequences = data.setdefault("sequences", {})
        sequences[sequence] = int(sequences.get(sequence, 0)) + 1
        return sequences[sequence]

    @staticmethod
    def _require_post(data: dict, post_id: int) -> None:
        if str(post_id) not in data.get("posts", {}):
            raise StorageError(f"Post {post_id} does not exist")

    @staticmethod
    def _unique_slug(data: dict, slug: str, post_type: str, post_id: int) -> str:
        """Suffix ``-2``, ``-3``... until no other post of the type uses the slug."""
        if not slug:
            return slug
        taken = {
            raw.get("slug")
            for key, raw in data.get("posts", {}).items()
            if raw.get("post_type") == post_type and key != str(post_id)
        }
        candidate = slug
        suffix = 2
        while candidate in taken:
            candidate = f"{slug}-{suffix}"
            suffix += 1
        return candidate


def parse_datetime(value: str) -> datetime:
    """Parse an ISO-8601 date; naive values are taken as UTC.

    Raises:
        ValueError: If the value is not a valid date.
    """
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
