"""Activity logs kept in the options table."""

from typing import Any

from .models import ActivityEntry
from .site import SiteStore


class ActivityLog:
    """Capped activity log stored as a list option.

    Only the newest ``max_entries`` entries are kept.
    """

    def __init__(self, site: SiteStore, option_name: str, max_entries: int = 100):
        """Initialize activity log.

        Args:
            site: Site store holding the options.
            option_name: Option the entries are stored under.
            max_entries: Maximum entries to keep.
        """
        self.site = site
        self.option_name = option_name
        self.max_entries = max_entries

    def log(self, action: str, status: str = "success", **fields: Any) -> ActivityEntry:
        """Append an entry and drop the oldest beyond the cap.

        Args:
            action: Action type (e.g., "update", "full_sync").
            status: Outcome of the action.
            **fields: Other ``ActivityEntry`` fields (user_id, post_id,
                post_title, changes, details).

        Returns:
            The stored entry.
        """
        entry = ActivityEntry(action=action, status=status, **fields)
        entries = list(self.site.get_option(self.option_name, []) or [])
        entries.append(entry.model_dump(mode="json"))
        if len(entries) > self.max_entries:
            entries = entries[-self.max_entries:]
        self.site.update_option(self.option_name, entries)
        return entry

    def read_recent(self, limit: int = 50) -> list[dict]:
        """Read recent entries, newest first."""
        entries = self.site.get_option(self.option_name, []) or []
        return list(reversed(entries))[:limit]

    def clear(self) -> None:
        self.site.delete_option(self.option_name)
