"""Core modules for the Kaigen connector."""

from .storage import Storage
from .config import AppConfig, Settings
from .auth import KaigenAuth
from .sanitize import Sanitizer
from .hooks import HookManager
from .activity_log import ActivityLog
from .document import DocumentBuilder
from .merge import DELETE, merge_document
from .validation import validate_document
from .persist import DocumentPersister, PersistReport

__all__ = [
    "Storage",
    "AppConfig",
    "Settings",
    "KaigenAuth",
    "Sanitizer",
    "HookManager",
    "ActivityLog",
    "DocumentBuilder",
    "DELETE",
    "merge_document",
    "validate_document",
    "DocumentPersister",
    "PersistReport",
]
