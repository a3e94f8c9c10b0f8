"""REST endpoints Kaigen uses to read and write site content."""

import math
from typing import Any

from fastapi import APIRouter, Body, Depends, Query

from .. import __version__
from ..core.dependencies import AppState, get_app_state, require_kaigen_auth
from ..core.errors import InvalidChangesShape, PostNotFound, PostTypeDisabled
from ..core.models import User

router = APIRouter(prefix="/wp-json/kaigen/v1", tags=["kaigen"])


# ============================================================================
# Structure
# ============================================================================

@router.get("/structure")
def get_structure(
    state: AppState = Depends(get_app_state),
    user: User = Depends(require_kaigen_auth),
):
    """Post types, custom fields, editor and SEO plugin of the site."""
    return state.content.get_structure(__version__)


# ============================================================================
# Content
# ============================================================================

@router.get("/content")
def get_content(
    post_type: str | None = None,
    per_page: int = Query(100, ge=1),
    page: int = Query(1, ge=1),
    state: AppState = Depends(get_app_state),
    user: User = Depends(require_kaigen_auth),
):
    """Published posts of enabled types, most recently modified first."""
    enabled = state.settings.enabled_post_types
    post_types = [post_type] if post_type and post_type in enabled else enabled

    posts, total = state.site.query_posts(post_types, limit=per_page, offset=(page - 1) * per_page)
    return {
        "posts": [state.content.post_summary(post) for post in posts],
        "total": total,
        "total_pages": math.ceil(total / per_page),
        "page": page,
        "per_page": per_page,
    }


def _enabled_post(state: AppState, post_id: int):
    post = state.site.get_post(post_id)
    if post is None:
        raise PostNotFound(post_id=post_id)
    if post.post_type not in state.settings.enabled_post_types:
        raise PostTypeDisabled(post_type=post.post_type)
    return post


@router.get("/content/{post_id}")
def get_post(
    post_id: int,
    state: AppState = Depends(get_app_state),
    user: User = Depends(require_kaigen_auth),
):
    """One post with all of its meta."""
    post = _enabled_post(state, post_id)
    data = state.content.post_summary(post)
    data["excerpt"] = post.excerpt
    data["customFields"] = state.site.get_post_meta(post.id)
    data["editorType"] = state.content.get_editor_type(post.post_type)
    return data


@router.get("/content/{post_id}/document")
def get_document(
    post_id: int,
    project_id: str = "",
    platform_id: str | None = None,
    site_url: str = "",
    state: AppState = Depends(get_app_state),
    user: User = Depends(require_kaigen_auth),
):
    """Canonical document of a post."""
    _enabled_post(state, post_id)
    return state.builder.build(post_id, project_id, platform_id, site_url)


@router.post("/content/{post_id}")
def update_post(
    post_id: int,
    body: Any = Body(None),
    state: AppState = Depends(get_app_state),
    user: User = Depends(require_kaigen_auth),
):
    """Apply a partial update; the post id always comes from the path."""
    if not isinstance(body, dict):
        raise InvalidChangesShape("Request body must be an object")
    return state.updates.handle_update_request({**body, "post_id": post_id}, user)


# ============================================================================
# Links and logs
# ============================================================================

@router.get("/links")
def get_links(
    post_type: str | None = None,
    limit: int = Query(100, ge=1),
    state: AppState = Depends(get_app_state),
    user: User = Depends(require_kaigen_auth),
):
    """Internal linking candidates."""
    candidates = state.content.get_internal_links_candidates(post_type, limit)
    return {"links": candidates, "total": len(candidates)}


@router.get("/logs")
def get_logs(
    limit: int = Query(50, ge=1, le=100),
    state: AppState = Depends(get_app_state),
    user: User = Depends(require_kaigen_auth),
):
    """Recent update and sync activity, newest first."""
    return {
        "updates": state.updates.get_update_logs(limit),
        "syncs": state.client.get_sync_logs(limit),
    }
