"""JSON flat-file storage with atomic writes and locking."""

import fcntl
import json
import shutil
import tempfile
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from .logging import storage_logger as logger


class StorageError(Exception):
    """Base exception for storage errors."""

    pass


# Top-level tables every database must contain
REQUIRED_TABLES = {"options", "post_types", "taxonomies", "posts", "postmeta", "terms"}


class Storage:
    """Thread-safe JSON database with atomic writes.

    Uses file locking to prevent corruption from concurrent processes and an
    in-process re-entrant lock around read-modify-write cycles.
    Writes are atomic: write to temp file, then rename.
    """

    def __init__(self, db_path: Path):
        """Initialize storage with database path.

        Args:
            db_path: Path to the JSON database file.
        """
        self.db_path = db_path
        self._data: dict | None = None
        self._lock = threading.RLock()

    @property
    def exists(self) -> bool:
        """Check if database file exists."""
        return self.db_path.exists()

    @property
    def data(self) -> dict:
        """Loaded database contents."""
        if self._data is None:
            self.load()
        return self._data

    def load(self) -> dict:
        """Load database from file.

        Returns:
            Database contents as dictionary.

        Raises:
            StorageError: If file cannot be read or parsed.
        """
        if not self.db_path.exists():
            raise StorageError(f"Database file not found: {self.db_path}")

        try:
            with open(self.db_path, "r", encoding="utf-8") as f:
                # Acquire shared lock for reading
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    self._data = json.load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)

            return self._data
        except json.JSONDecodeError as e:
            raise StorageError(f"Invalid JSON in database: {e}")
        except OSError as e:
            raise StorageError(f"Cannot read database: {e}")

    def save(self, data: dict | None = None) -> None:
        """Save database to file atomically.

        Args:
            data: Data to save. If None, saves cached data.

        Raises:
            StorageError: If save fails.
        """
        with self._lock:
            if data is not None:
                self._data = data
            elif self._data is None:
                raise StorageError("No data to save")

            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)

                # Write to temporary file first (atomic write pattern)
                fd, temp_path = tempfile.mkstemp(
                    dir=self.db_path.parent,
                    suffix=".tmp",
                )
                try:
                    with open(fd, "w", encoding="utf-8") as f:
                        fcntl.flock(f.fileno(), fcntl.LOCK_EX)
                        try:
                            json.dump(
                                self._data,
                                f,
                                indent=2,
                                ensure_ascii=False,
                                default=str,
                            )
                        finally:
                            fcntl.flock(f.fileno(), fcntl.LOCK_UN)

                    shutil.move(temp_path, self.db_path)
                except Exception:
                    Path(temp_path).unlink(missing_ok=True)
                    raise
            except OSError as e:
                raise StorageError(f"Cannot save database: {e}")

    @contextmanager
    def transaction(self) -> Iterator[dict]:
        """Mutate the database in place and save once on success.

        Nothing is written when the block raises; the cached copy is reloaded
        from disk instead.
        """
        with self._lock:
            data = self.data
            try:
                yield data
            except Exception:
                if self.exists:
                    self.load()
                raise
            self.save()

    def initialize(
        self,
        site_url: str,
        site_name: str,
        admin_password_hash: str | None = None,
    ) -> dict:
        """Initialize a new database with default site content.

        Args:
            site_url: Public URL of the site.
            site_name: Site title.
            admin_password_hash: Optional bcrypt hash of an application
                password for the admin user.

        Returns:
            The initialized database.
        """
        now = datetime.now(timezone.utc).isoformat()

        self._data = {
            "options": {
                "siteurl": site_url.rstrip("/"),
                "blogname": site_name,
                "version": "6.5",
                "active_plugins": [],
                "kaigen_settings": {
                    "auth_method": "api_key",
                    "api_url": "https://kaigen.app",
                    "enabled_post_types": ["post", "page"],
                    "role_permissions": ["administrator", "editor"],
                    "service_user": 1,
                },
            },
            "roles": {
                "administrator": [
                    "read",
                    "edit_posts",
                    "edit_pages",
                    "upload_files",
                    "manage_options",
                    "kaigen_edit_posts",
                    "kaigen_manage_settings",
                ],
                "editor": ["read", "edit_posts", "edit_pages", "upload_files", "kaigen_edit_posts"],
                "author": ["read", "edit_posts", "upload_files"],
                "subscriber": ["read"],
            },
            "users": {
                "1": {
                    "id": 1,
                    "username": "admin",
                    "display_name": "Administrator",
                    "email": None,
                    "roles": ["administrator"],
                    "capabilities": [],
                    "app_passwords": [admin_password_hash] if admin_password_hash else [],
                },
            },
            "post_types": {
                "post": {
                    "name": "post",
                    "label": "Posts",
                    "description": "",
                    "public": True,
                    "hierarchical": False,
                    "supports": ["title", "editor", "author", "thumbnail", "excerpt", "custom-fields"],
                    "edit_capability": "edit_posts",
                },
                "page": {
                    "name": "page",
                    "label": "Pages",
                    "description": "",
                    "public": True,
                    "hierarchical": True,
                    "supports": ["title", "editor", "author", "thumbnail", "page-attributes"],
                    "edit_capability": "edit_pages",
                },
                "attachment": {
                    "name": "attachment",
                    "label": "Media",
                    "description": "",
                    "public": True,
                    "hierarchical": False,
                    "supports": ["title"],
                    "edit_capability": "upload_files",
                },
            },
            "taxonomies": {
                "category": {
                    "name": "category",
                    "label": "Categories",
                    "object_types": ["post"],
                    "hierarchical": True,
                },
                "post_tag": {
                    "name": "post_tag",
                    "label": "Tags",
                    "object_types": ["post"],
                    "hierarchical": False,
                },
            },
            "posts": {
                "1": {
                    "id": 1,
                    "post_type": "post",
                    "status": "publish",
                    "title": "Hello world!",
                    "content": "<p>Welcome to your site. This is your first post.</p>",
                    "excerpt": "",
                    "slug": "hello-world",
                    "author": 1,
                    "date_gmt": now,
                    "modified_gmt": now,
                    "guid": "",
                    "mime_type": "",
                },
            },
            "postmeta": {},
            "terms": {
                "1": {"id": 1, "taxonomy": "category", "name": "Uncategorized", "slug": "uncategorized"},
            },
            "term_relationships": {"1": {"category": [1]}},
            "field_groups": [],
            "sequences": {"post": 1, "term": 1, "user": 1},
        }

        self.save()
        logger.info(f"Initialized site database at {self.db_path}")
        return self._data

    def backup(self, backup_dir: Path) -> Path:
        """Create a backup of the database.

        Args:
            backup_dir: Directory to store backup.

        Returns:
            Path to backup file.
        """
        backup_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        backup_path = backup_dir / f"site_backup_{timestamp}.json"

        with open(backup_path, "w", encoding="utf-8") as f:
            json.dump(self.data, f, indent=2, ensure_ascii=False, default=str)

        return backup_path

    def restore(self, backup_path: Path) -> None:
        """Restore database from backup.

        Args:
            backup_path: Path to backup file.

        Raises:
            StorageError: If backup file is invalid.
        """
        try:
            with open(backup_path, "r", encoding="utf-8") as f:
                data = json.load(f)

            if not REQUIRED_TABLES.issubset(data.keys()):
                raise StorageError("Invalid backup: missing required keys")

            self.save(data)
        except json.JSONDecodeError as e:
            raise StorageError(f"Invalid backup JSON: {e}")
        except OSError as e:
            raise StorageError(f"Cannot read backup: {e}")
