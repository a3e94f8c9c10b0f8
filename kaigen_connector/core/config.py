"""Application configuration and connector settings."""

import os
import secrets
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, Field, field_validator

from .logging import LOG_LEVEL_ENV, parse_log_level
from .models import AuthMethod
from .sanitize import Sanitizer
from .site import SiteStore

DEFAULT_API_URL = "https://kaigen.app"

# Shown in forms instead of a stored secret; submitting it keeps the secret
SECRET_PLACEHOLDER = "••••••••••••••••"

# New API keys issued by Kaigen carry this prefix
API_KEY_PREFIX = "kaigen_"

# Capability granted to roles allowed to use Kaigen
EDIT_CAPABILITY = "kaigen_edit_posts"
MANAGE_CAPABILITY = "kaigen_manage_settings"


class AppConfig(BaseModel):
    """Process-wide configuration.

    These settings come from environment variables or defaults.
    Connector settings edited at runtime live in the site database.
    """

    # Paths
    base_dir: Path = Field(default_factory=lambda: Path.cwd())
    data_dir: Path = Field(default=None)

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    workers: int = 1

    # Site
    site_url: str = "http://127.0.0.1:8000"
    site_name: str = "My Site"

    # Security
    secret_key: str = Field(default_factory=lambda: secrets.token_hex(32))

    # Outbound requests to Kaigen (seconds)
    request_timeout: float = 30.0
    validate_timeout: float = 15.0

    # Logging
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        return parse_log_level(v)

    def __init__(self, **data):
        super().__init__(**data)
        if self.data_dir is None:
            self.data_dir = self.base_dir / "data"

    @property
    def db_path(self) -> Path:
        """Path to the JSON site database."""
        return self.data_dir / "site.json"

    @property
    def backups_dir(self) -> Path:
        return self.data_dir / "backups"

    @property
    def log_file(self) -> Path:
        return self.data_dir / "kaigen-connector.log"

    @property
    def secret_key_file(self) -> Path:
        return self.data_dir / "secret.key"

    def ensure_directories(self) -> None:
        """Create required directories if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.backups_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_env(cls, base_dir: Path | None = None) -> "AppConfig":
        """Create configuration from environment variables.

        Without ``KAIGEN_SECRET_KEY`` the secret is read from (or generated
        into) ``data/secret.key`` so stored credentials survive restarts.

        Raises:
            ValueError: If environment variable values are invalid.
        """
        if base_dir is None:
            base_dir = Path(os.getenv("KAIGEN_BASE_DIR", Path.cwd()))

        def get_int_env(name: str, default: int, min_val: int, max_val: int) -> int:
            """Parse and validate integer environment variable."""
            value_str = os.getenv(name, str(default))
            try:
                value = int(value_str)
            except ValueError:
                raise ValueError(f"{name} must be an integer, got: {value_str}")
            if value < min_val or value > max_val:
                raise ValueError(f"{name} must be between {min_val} and {max_val}, got: {value}")
            return value

        port = get_int_env("KAIGEN_PORT", 8000, 1, 65535)
        workers = get_int_env("KAIGEN_WORKERS", 1, 1, 32)
        request_timeout = get_int_env("KAIGEN_REQUEST_TIMEOUT", 30, 1, 300)

        config = cls(
            base_dir=base_dir,
            host=os.getenv("KAIGEN_HOST", "127.0.0.1"),
            port=port,
            debug=os.getenv("KAIGEN_DEBUG", "false").lower() == "true",
            workers=workers,
            site_url=os.getenv("KAIGEN_SITE_URL", f"http://127.0.0.1:{port}"),
            site_name=os.getenv("KAIGEN_SITE_NAME", "My Site"),
            request_timeout=float(request_timeout),
            log_level=os.getenv(LOG_LEVEL_ENV, "INFO"),
        )

        secret = os.getenv("KAIGEN_SECRET_KEY")
        if secret:
            config.secret_key = secret
        elif config.secret_key_file.exists():
            config.secret_key = config.secret_key_file.read_text(encoding="utf-8").strip()
        else:
            config.ensure_directories()
            config.secret_key_file.write_text(config.secret_key, encoding="utf-8")
            config.secret_key_file.chmod(0o600)

        return config


class Settings:
    """Connector settings stored in the ``kaigen_settings`` option."""

    OPTION_NAME = "kaigen_settings"

    DEFAULTS: dict[str, Any] = {
        "auth_method": AuthMethod.API_KEY.value,
        "api_url": DEFAULT_API_URL,
        "enabled_post_types": ["post", "page"],
        "role_permissions": ["administrator", "editor"],
        "service_user": 1,
        "seo_plugin": None,
        "editor_type": None,
        "classic_post_types": [],
    }

    def __init__(self, site: SiteStore, sanitizer: Sanitizer | None = None):
        self.site = site
        self.sanitizer = sanitizer or Sanitizer()

    def raw(self) -> dict[str, Any]:
        """Stored settings without defaults."""
        return dict(self.site.get_option(self.OPTION_NAME, {}) or {})

    def get(self, key: str, default: Any = None) -> Any:
        stored = self.raw()
        if key in stored:
            return stored[key]
        return self.DEFAULTS.get(key, default)

    def update(self, values: dict[str, Any]) -> None:
        """Merge values into the stored settings."""
        self.site.update_option(self.OPTION_NAME, {**self.raw(), **values})

    def remove(self, *keys: str) -> None:
        stored = self.raw()
        for key in keys:
            stored.pop(key, None)
        self.site.update_option(self.OPTION_NAME, stored)

    @property
    def auth_method(self) -> str:
        return self.get("auth_method")

    @property
    def api_url(self) -> str:
        return self.get("api_url") or DEFAULT_API_URL

    @property
    def enabled_post_types(self) -> list[str]:
        return list(self.get("enabled_post_types") or [])

    @property
    def role_permissions(self) -> list[str]:
        return list(self.get("role_permissions") or [])

    @property
    def service_user(self) -> int:
        return int(self.get("service_user") or 0)

    def normalize_api_url(self, url: str) -> str:
        """Add a scheme to a bare host and clean the URL.

        ``http`` is assumed for localhost, ``https`` for everything else.
        Returns an empty string for unusable URLs.
        """
        url = url.strip()
        if not url.startswith(("http://", "https://")):
            if "localhost" in url or "127.0.0.1" in url:
                url = "http://" + url
            else:
                url = "https://" + url
        return self.sanitizer.esc_url_raw(url)

    def sanitize_settings(
        self,
        values: dict[str, Any],
        tab: str,
        encrypt: Callable[[str], str],
    ) -> dict[str, Any]:
        """Sanitize a settings form submission for one tab.

        Values belonging to other tabs are preserved from the stored
        settings. Saving the permissions tab also updates role capabilities.

        Args:
            values: Submitted values.
            tab: ``authentication``, ``post-types`` or ``permissions``.
            encrypt: Encrypts secrets before they are stored.

        Returns:
            Full settings dict ready to store.

        Raises:
            ValueError: If the API URL is invalid or the tab unknown.
        """
        existing = self.raw()
        sanitized = dict(existing)

        if tab == "authentication":
            if "auth_method" in values:
                method = values["auth_method"]
                valid = {m.value for m in AuthMethod}
                sanitized["auth_method"] = method if method in valid else AuthMethod.API_KEY.value

            api_url = values.get("api_url")
            if api_url:
                clean_url = self.normalize_api_url(api_url)
                if not clean_url:
                    raise ValueError("Invalid API URL provided. Please enter a valid URL.")
                sanitized["api_url"] = clean_url
            elif not existing.get("api_url"):
                sanitized["api_url"] = DEFAULT_API_URL

            api_key = values.get("api_key")
            if api_key and api_key != SECRET_PLACEHOLDER and api_key.startswith(API_KEY_PREFIX):
                sanitized["api_key"] = encrypt(api_key)

            if "wp_username" in values:
                sanitized["wp_username"] = self.sanitizer.sanitize_text_field(values["wp_username"])

            password = values.get("wp_app_password")
            if password and password != SECRET_PLACEHOLDER:
                sanitized["wp_app_password"] = encrypt(password)

        elif tab == "post-types":
            types = values.get("enabled_post_types")
            sanitized["enabled_post_types"] = (
                [self.sanitizer.sanitize_text_field(t) for t in types] if isinstance(types, list) else []
            )

        elif tab == "permissions":
            roles = values.get("role_permissions")
            sanitized["role_permissions"] = (
                [self.sanitizer.sanitize_text_field(r) for r in roles] if isinstance(roles, list) else []
            )
            self.update_role_permissions(sanitized["role_permissions"])

        else:
            raise ValueError(f"Unknown settings tab: {tab}")

        return sanitized

    def save(self, values: dict[str, Any], tab: str, encrypt: Callable[[str], str]) -> dict[str, Any]:
        """Sanitize and store a settings form submission."""
        sanitized = self.sanitize_settings(values, tab, encrypt)
        self.site.update_option(self.OPTION_NAME, sanitized)
        return sanitized

    def update_role_permissions(self, allowed_roles: list[str]) -> None:
        """Grant the edit capability to allowed roles, revoke it from the rest."""
        for role in self.site.role_names():
            if role in allowed_roles:
                self.site.add_role_cap(role, EDIT_CAPABILITY)
            else:
                self.site.remove_role_cap(role, EDIT_CAPABILITY)
