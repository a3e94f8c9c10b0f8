"""Pydantic models for records kept in the site store."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class PostStatus(str, Enum):
    """Post statuses known to the store."""

    PUBLISH = "publish"
    DRAFT = "draft"
    PENDING = "pending"
    PRIVATE = "private"
    FUTURE = "future"
    TRASH = "trash"
    INHERIT = "inherit"  # Attachments


# Statuses a remote update may set
UPDATABLE_STATUSES = frozenset({"publish", "draft", "pending", "private"})


class AuthMethod(str, Enum):
    """How the Kaigen service authenticates against this site."""

    API_KEY = "api_key"
    APP_PASSWORD = "app_password"


class EditorType(str, Enum):
    """Editor used for a post type."""

    CLASSIC = "classic"
    GUTENBERG = "gutenberg"
    ELEMENTOR = "elementor"
    BEAVER_BUILDER = "beaver_builder"
    DIVI = "divi"


class Post(BaseModel):
    """A content item (post, page, custom type or attachment)."""

    id: int
    post_type: str = "post"
    status: str = PostStatus.DRAFT.value
    title: str = ""
    content: str = ""
    excerpt: str = ""
    slug: str = ""
    author: int = 0
    date_gmt: datetime = Field(default_factory=utc_now)
    modified_gmt: datetime = Field(default_factory=utc_now)
    guid: str = ""  # Public file URL for attachments
    mime_type: str = ""


class PostType(BaseModel):
    """Registered post type."""

    name: str
    label: str = ""
    description: str = ""
    public: bool = True
    hierarchical: bool = False
    supports: list[str] = Field(default_factory=lambda: ["title", "editor"])
    edit_capability: str = "edit_posts"


class Taxonomy(BaseModel):
    """Registered taxonomy."""

    name: str
    label: str = ""
    object_types: list[str] = Field(default_factory=list)
    hierarchical: bool = False


class Term(BaseModel):
    """Taxonomy term."""

    id: int
    taxonomy: str
    name: str = Field(..., min_length=1, max_length=200)
    slug: str = ""


class User(BaseModel):
    """Site user with roles and application passwords."""

    id: int
    username: str = Field(..., min_length=1, max_length=60)
    display_name: str = ""
    email: str | None = None
    roles: list[str] = Field(default_factory=list)
    capabilities: list[str] = Field(default_factory=list)
    app_passwords: list[str] = Field(default_factory=list)  # bcrypt hashes

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        """Usernames are stored lowercase."""
        return v.strip().lower()


class FieldDefinition(BaseModel):
    """Custom field declared by a field group."""

    name: str
    label: str = ""
    type: str = "text"


class FieldGroup(BaseModel):
    """Group of custom fields attached to post types.

    ``source`` names the integration that owns the group (acf, metabox,
    pods, cmb2).
    """

    title: str
    source: str = "acf"
    post_types: list[str] = Field(default_factory=list)
    fields: list[FieldDefinition] = Field(default_factory=list)


class ActivityEntry(BaseModel):
    """Entry of an activity log kept in the options table."""

    timestamp: datetime = Field(default_factory=utc_now)
    action: str
    status: str = "success"
    user_id: int | None = None
    post_id: int | None = None
    post_title: str | None = None
    changes: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)
