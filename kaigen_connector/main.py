"""FastAPI application for the Kaigen connector."""

from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import __version__
from .api.routes import router as api_router
from .core.activity_log import ActivityLog
from .core.api_client import SYNC_LOG_OPTION, KaigenClient
from .core.auth import KaigenAuth
from .core.config import AppConfig, Settings
from .core.content import ContentService
from .core.custom_fields import StoredFieldGroups
from .core.dependencies import AppState
from .core.document import DocumentBuilder
from .core.errors import ConnectorError, InvalidChangesShape
from .core.hooks import HookManager
from .core.logging import logger, setup_logging
from .core.persist import DocumentPersister
from .core.sanitize import Sanitizer
from .core.site import SiteStore
from .core.storage import Storage
from .core.update import UPDATE_LOG_OPTION, UpdateService


def build_state(
    app_config: AppConfig,
    hooks: HookManager | None = None,
    transport: httpx.BaseTransport | None = None,
) -> AppState:
    """Construct every connector service once.

    Creates the site database with default content when it does not exist.

    Args:
        app_config: Process configuration.
        hooks: Hook manager integrations registered on; a new one by default.
        transport: Optional httpx transport for outbound Kaigen requests.

    Returns:
        Application state holding the services.
    """
    app_config.ensure_directories()

    storage = Storage(app_config.db_path)
    if storage.exists:
        storage.load()
    else:
        storage.initialize(app_config.site_url, app_config.site_name)

    hooks = hooks or HookManager()
    sanitizer = Sanitizer()
    site = SiteStore(storage)
    settings = Settings(site, sanitizer)
    custom_fields = StoredFieldGroups(site)

    auth = KaigenAuth(
        site,
        settings,
        app_config.secret_key,
        validate_timeout=app_config.validate_timeout,
        transport=transport,
    )
    content = ContentService(site, settings, hooks, sanitizer, custom_fields)
    builder = DocumentBuilder(site, content, hooks, sanitizer)
    persister = DocumentPersister(site, content, sanitizer, custom_fields)
    updates = UpdateService(site, settings, builder, persister, hooks, ActivityLog(site, UPDATE_LOG_OPTION))
    sync_log = ActivityLog(site, SYNC_LOG_OPTION)
    client = KaigenClient(
        auth,
        content,
        hooks,
        __version__,
        sync_log=sync_log,
        timeout=app_config.request_timeout,
        transport=transport,
    )

    return AppState(
        config=app_config,
        storage=storage,
        site=site,
        settings=settings,
        sanitizer=sanitizer,
        hooks=hooks,
        auth=auth,
        content=content,
        builder=builder,
        persister=persister,
        updates=updates,
        client=client,
        sync_log=sync_log,
    )


async def connector_error_handler(request: Request, exc: ConnectorError) -> JSONResponse:
    """Render connector errors as ``{code, message, data: {status}}``."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report unreadable request bodies as ``invalid_changes``.

    Query and path errors keep FastAPI's 422 response.
    """
    body_errors = [e for e in exc.errors() if e.get("loc", ())[:1] == ("body",)]
    if not body_errors:
        return await request_validation_exception_handler(request, exc)
    error = InvalidChangesShape(f"Invalid request body: {body_errors[0].get('msg', 'malformed')}")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan."""
    state: AppState = app.state.kaigen
    logger.info(f"Kaigen connector {__version__} serving {state.site.site_url}")
    yield
    logger.info("Kaigen connector stopped")


def create_app(
    app_config: AppConfig | None = None,
    hooks: HookManager | None = None,
    transport: httpx.BaseTransport | None = None,
) -> FastAPI:
    """Create the FastAPI application.

    Args:
        app_config: Process configuration; read from the environment by default.
        hooks: Hook manager with integrations already registered.
        transport: Optional httpx transport for outbound Kaigen requests.
    """
    app_config = app_config or AppConfig.from_env()
    setup_logging(app_config.log_level, app_config.log_file)

    app = FastAPI(
        title="Kaigen Connector",
        description="Bridge between a site and the Kaigen content platform",
        version=__version__,
        debug=app_config.debug,
        lifespan=lifespan,
    )
    app.state.kaigen = build_state(app_config, hooks, transport)
    app.add_exception_handler(ConnectorError, connector_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(api_router)

    @app.get("/health")
    def health():
        return {"status": "ok", "version": __version__}

    return app
