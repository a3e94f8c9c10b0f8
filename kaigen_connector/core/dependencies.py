"""FastAPI dependency injection for the connector.

Every service is constructed once by the application factory and stored on
``app.state.kaigen``; route handlers receive them through the dependencies
below instead of reaching for module-level globals.
"""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request

from .activity_log import ActivityLog
from .api_client import KaigenClient
from .auth import KaigenAuth
from .config import AppConfig, Settings
from .content import ContentService
from .document import DocumentBuilder
from .hooks import HookManager
from .models import User
from .persist import DocumentPersister
from .sanitize import Sanitizer
from .site import SiteStore
from .storage import Storage
from .update import UpdateService


@dataclass
class AppState:
    """Application state container.

    This is stored in app.state and provides access to all
    initialized services.
    """

    config: AppConfig
    storage: Storage
    site: SiteStore
    settings: Settings
    sanitizer: Sanitizer
    hooks: HookManager
    auth: KaigenAuth
    content: ContentService
    builder: DocumentBuilder
    persister: DocumentPersister
    updates: UpdateService
    client: KaigenClient
    sync_log: ActivityLog


def get_app_state(request: Request) -> AppState:
    """Get application state from request.

    Raises:
        HTTPException: If app state not initialized.
    """
    state = getattr(request.app.state, "kaigen", None)
    if state is None:
        raise HTTPException(status_code=503, detail="Application not initialized")
    return state


def require_kaigen_auth(
    request: Request,
    state: AppState = Depends(get_app_state),
) -> User:
    """Require a request authenticated by Kaigen.

    Returns:
        The acting user.

    Raises:
        HTTPException: If the request is not authenticated.
    """
    user = state.auth.verify_incoming_request(request.headers.get("authorization"))
    if user is None:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user
