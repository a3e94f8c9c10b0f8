"""Credential storage and request authentication.

Outbound requests to Kaigen carry the stored API key as a bearer token.
Inbound requests from Kaigen authenticate either with that same key or with
a user's application password, depending on the configured method.
"""

import base64
import binascii
import hashlib
import secrets
from typing import Any

import bcrypt as _bcrypt
import httpx
from cryptography.fernet import Fernet, InvalidToken

from .config import DEFAULT_API_URL, EDIT_CAPABILITY, Settings
from .logging import auth_logger as logger
from .models import AuthMethod, User
from .site import SiteStore


class KaigenAuth:
    """Manages Kaigen credentials and verifies incoming requests.

    Features:
    - Fernet encryption of stored secrets, keyed from the app secret
    - API key validation against Kaigen
    - Bearer/ApiKey and HTTP Basic (application password) verification
    - bcrypt hashing of application passwords
    """

    def __init__(
        self,
        site: SiteStore,
        settings: Settings,
        secret_key: str,
        bcrypt_rounds: int = 12,
        validate_timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize auth manager.

        Args:
            site: Site store holding users and options.
            settings: Connector settings.
            secret_key: Application secret the encryption key is derived from.
            bcrypt_rounds: Cost factor for bcrypt.
            validate_timeout: Timeout for key validation requests.
            transport: Optional httpx transport (used by tests).
        """
        self.site = site
        self.settings = settings
        self.bcrypt_rounds = bcrypt_rounds
        self.validate_timeout = validate_timeout
        self.transport = transport
        self._fernet = Fernet(self._derive_key(secret_key))

    @staticmethod
    def _derive_key(secret_key: str) -> bytes:
        scoped = f"kaigen-credentials:{secret_key}"
        digest = hashlib.sha256(scoped.encode("utf-8")).digest()
        return base64.urlsafe_b64encode(digest)

    # ------------------------------------------------------------------
    # Encryption
    # ------------------------------------------------------------------

    def encrypt_value(self, data: str | None) -> str:
        """Encrypt a secret for storage. Empty input gives an empty string."""
        if not data:
            return ""
        return self._fernet.encrypt(data.encode("utf-8")).decode("ascii")

    def decrypt_value(self, data: str | None) -> str:
        """Decrypt a stored secret. Undecryptable values give an empty string."""
        if not data:
            return ""
        try:
            return self._fernet.decrypt(data.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeError):
            logger.warning("Stored credential could not be decrypted; was the secret key changed?")
            return ""

    # ------------------------------------------------------------------
    # Stored credentials
    # ------------------------------------------------------------------

    def get_auth_method(self) -> str:
        return self.settings.auth_method

    def get_api_url(self) -> str:
        return self.settings.api_url or DEFAULT_API_URL

    def store_api_key(self, api_key: str, api_url: str) -> None:
        """Store an API key and switch to API key authentication."""
        self.settings.update(
            {
                "api_key": self.encrypt_value(api_key),
                "api_url": self.settings.normalize_api_url(api_url) or DEFAULT_API_URL,
                "auth_method": AuthMethod.API_KEY.value,
            }
        )
        logger.info("API key stored")

    def get_api_key(self) -> str | None:
        stored = self.settings.get("api_key")
        if not stored:
            return None
        return self.decrypt_value(stored) or None

    def store_app_password(self, username: str, password: str) -> None:
        """Store application password credentials and switch to that method."""
        self.settings.update(
            {
                "wp_username": self.settings.sanitizer.sanitize_text_field(username),
                "wp_app_password": self.encrypt_value(password),
                "auth_method": AuthMethod.APP_PASSWORD.value,
            }
        )
        logger.info(f"Application password stored for {username}")

    def get_app_password_credentials(self) -> dict[str, str] | None:
        username = self.settings.get("wp_username")
        password = self.settings.get("wp_app_password")
        if not username or not password:
            return None
        return {"username": username, "password": self.decrypt_value(password)}

    def clear_credentials(self) -> None:
        self.settings.remove("api_key", "wp_username", "wp_app_password")
        logger.info("Stored credentials cleared")

    def get_headers(self) -> dict[str, str] | None:
        """Headers for outbound Kaigen requests.

        Returns None when API key auth is configured but no key is stored.
        Application-password sites send no Authorization header, since that
        method only authenticates Kaigen towards this site.
        """
        if self.get_auth_method() == AuthMethod.API_KEY.value:
            api_key = self.get_api_key()
            if not api_key:
                return None
            return {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        return {"Content-Type": "application/json"}

    def validate_with_kaigen(self, api_key: str | None = None) -> dict[str, Any]:
        """Ask Kaigen whether an API key is valid for this site.

        Args:
            api_key: Key to check; defaults to the stored key.

        Returns:
            ``valid`` plus ``project_id``, ``user_id`` and ``capabilities``
            on success, or ``valid`` False and an ``error`` message.
        """
        api_key = api_key or self.get_api_key()
        if not api_key:
            return {"valid": False, "error": "No API key configured"}

        try:
            with httpx.Client(timeout=self.validate_timeout, transport=self.transport) as client:
                response = client.post(
                    f"{self.get_api_url().rstrip('/')}/api/wordpress/validate",
                    headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
                    json={"wpUrl": self.site.site_url},
                )
        except httpx.HTTPError as e:
            logger.warning(f"API key validation request failed: {e}")
            return {"valid": False, "error": str(e)}

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if response.status_code != 200:
            return {"valid": False, "error": body.get("error") or "Validation failed"}

        return {
            "valid": bool(body.get("valid", False)),
            "project_id": body.get("projectId"),
            "user_id": body.get("userId"),
            "capabilities": body.get("capabilities") or [],
        }

    # ------------------------------------------------------------------
    # Incoming requests
    # ------------------------------------------------------------------

    def verify_incoming_request(self, authorization: str | None) -> User | None:
        """Authenticate a request from Kaigen.

        Args:
            authorization: Value of the ``Authorization`` header.

        Returns:
            The acting user, or None if the request is not authenticated.
        """
        header = (authorization or "").strip()
        if not header:
            return None

        if self.get_auth_method() == AuthMethod.API_KEY.value:
            return self._verify_api_key(header)
        return self._verify_app_password(header)

    def _verify_api_key(self, header: str) -> User | None:
        for prefix in ("Bearer ", "ApiKey "):
            if header.startswith(prefix):
                provided = header[len(prefix):].strip()
                break
        else:
            return None

        stored = self.get_api_key()
        if not stored:
            return None
        if not secrets.compare_digest(stored.encode("utf-8"), provided.encode("utf-8")):
            logger.warning("Rejected request with an invalid API key")
            return None

        user = self.site.get_user(self.settings.service_user)
        if user is None:
            logger.error(f"Service user {self.settings.service_user} does not exist")
        return user

    def _verify_app_password(self, header: str) -> User | None:
        if not header.startswith("Basic "):
            return None
        try:
            decoded = base64.b64decode(header[6:].strip(), validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return None
        username, sep, password = decoded.partition(":")
        if not sep:
            return None

        user = self.site.get_user_by_username(username)
        if user is None:
            return None
        # Application passwords are displayed in groups of four characters
        password = password.replace(" ", "")
        if not any(self.verify_password(password, stored) for stored in user.app_passwords):
            logger.warning(f"Rejected application password for {user.username}")
            return None
        if not self.site.user_can(user, EDIT_CAPABILITY):
            return None
        return user

    # ------------------------------------------------------------------
    # Application passwords
    # ------------------------------------------------------------------

    def hash_password(self, password: str) -> str:
        """Hash a password using bcrypt.

        Args:
            password: Plain text password.

        Returns:
            Bcrypt hash string.
        """
        salt = _bcrypt.gensalt(rounds=self.bcrypt_rounds)
        return _bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify_password(self, password: str, hash_str: str) -> bool:
        """Verify a password against a bcrypt hash."""
        try:
            return _bcrypt.checkpw(password.encode("utf-8"), hash_str.encode("utf-8"))
        except ValueError:
            return False

    def generate_app_password(self) -> str:
        """Random 24-character application password in groups of four."""
        alphabet = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
        raw = "".join(secrets.choice(alphabet) for _ in range(24))
        return " ".join(raw[i:i + 4] for i in range(0, 24, 4))

    def create_app_password(self, user_id: int) -> str:
        """Issue a new application password for a user.

        Returns:
            The plain password; only its hash is stored.

        Raises:
            StorageError: If the user does not exist.
        """
        password = self.generate_app_password()
        self.site.add_app_password(user_id, self.hash_password(password.replace(" ", "")))
        logger.info(f"Application password created for user {user_id}")
        return password
