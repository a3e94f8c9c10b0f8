"""Event hook system for site integrations."""

from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable

from .logging import hooks_logger as logger


@dataclass
class Hook:
    """Registered hook callback."""

    name: str
    callback: Callable
    priority: int = 50  # Lower = runs earlier
    owner: str | None = None


class HookManager:
    """Event-based hook system for extensibility.

    Integrations register callbacks for events and may modify the payload
    as it passes through the chain.

    Events:
    - post_types: Filter the post type listing sent to Kaigen
    - custom_fields: Filter custom field definitions of a post type
    - structure: Filter the site structure payload
    - document_built: Filter a freshly built canonical document
    - editor_url: Filter the "Open in Kaigen" editor URL
    - after_update: After a remote update was persisted
    - after_sync: After a content sync finished
    """

    KNOWN_EVENTS = {
        "post_types",
        "custom_fields",
        "structure",
        "document_built",
        "editor_url",
        "after_update",
        "after_sync",
    }

    def __init__(self):
        """Initialize hook manager."""
        self._hooks: dict[str, list[Hook]] = defaultdict(list)
        self._sorted: dict[str, bool] = {}

    def register(
        self,
        event: str,
        callback: Callable,
        priority: int = 50,
        owner: str | None = None,
    ) -> None:
        """Register a hook callback for an event.

        Args:
            event: Event name to listen for.
            callback: Function to call. Should accept and return payload.
            priority: Execution order (lower = earlier). Default 50.
            owner: Integration that registered this hook.
        """
        if event not in self.KNOWN_EVENTS:
            logger.warning(f"Registering hook for unknown event '{event}'")
        self._hooks[event].append(
            Hook(name=event, callback=callback, priority=priority, owner=owner)
        )
        self._sorted[event] = False

    def unregister(self, event: str, callback: Callable) -> bool:
        """Unregister a hook callback.

        Returns:
            True if callback was found and removed.
        """
        initial_count = len(self._hooks[event])
        self._hooks[event] = [h for h in self._hooks[event] if h.callback != callback]
        return len(self._hooks[event]) < initial_count

    def unregister_owner(self, owner: str) -> int:
        """Unregister all hooks registered by an integration.

        Returns:
            Number of hooks removed.
        """
        removed = 0
        for event in self._hooks:
            initial = len(self._hooks[event])
            self._hooks[event] = [h for h in self._hooks[event] if h.owner != owner]
            removed += initial - len(self._hooks[event])
        return removed

    def emit(self, event: str, payload: Any = None, *args: Any) -> Any:
        """Emit an event and pass payload through all hooks.

        Extra positional arguments are handed to every callback unchanged.

        Args:
            event: Event name.
            payload: Data to pass through hooks.

        Returns:
            Modified payload after all hooks processed.
        """
        if not self._hooks.get(event):
            return payload

        if not self._sorted.get(event, False):
            self._hooks[event].sort(key=lambda h: h.priority)
            self._sorted[event] = True

        for hook in self._hooks[event]:
            try:
                result = hook.callback(payload, *args)
                if result is not None:
                    payload = result
            except Exception as e:
                # Log but don't break the chain
                logger.error(f"Hook error in {hook.owner or 'unknown'}:{event}: {e}")

        return payload

    def has_hooks(self, event: str) -> bool:
        """Check if event has any registered hooks."""
        return bool(self._hooks.get(event))

    def clear(self, event: str | None = None) -> None:
        """Clear all hooks or hooks for specific event."""
        if event:
            self._hooks[event] = []
            self._sorted[event] = False
        else:
            self._hooks.clear()
            self._sorted.clear()
