"""Tests for the hook manager."""

from kaigen_connector.core.hooks import HookManager


class TestHookManager:
    """Tests for registering and emitting hooks."""

    def test_no_hooks_returns_payload(self):
        """Test emitting without hooks passes the payload through."""
        assert HookManager().emit("structure", {"a": 1}) == {"a": 1}

    def test_priority_order(self):
        """Test lower priorities run first."""
        hooks = HookManager()
        hooks.register("structure", lambda p: p + ["late"], priority=90)
        hooks.register("structure", lambda p: p + ["early"], priority=10)

        assert hooks.emit("structure", []) == ["early", "late"]

    def test_none_keeps_payload(self):
        """Test callbacks returning None leave the payload unchanged."""
        hooks = HookManager()
        hooks.register("after_sync", lambda result, project_id: None)

        assert hooks.emit("after_sync", {"ok": True}, "p1") == {"ok": True}

    def test_errors_do_not_break_chain(self):
        """Test a failing hook is skipped and later hooks still run."""
        def broken(payload):
            raise RuntimeError("boom")

        hooks = HookManager()
        hooks.register("structure", broken, priority=10, owner="broken")
        hooks.register("structure", lambda p: {**p, "seen": True}, priority=20)

        assert hooks.emit("structure", {}) == {"seen": True}

    def test_unregister(self):
        """Test a callback can be removed."""
        hooks = HookManager()
        callback = lambda p: "changed"  # noqa: E731
        hooks.register("editor_url", callback)

        assert hooks.unregister("editor_url", callback) is True
        assert hooks.unregister("editor_url", callback) is False
        assert hooks.emit("editor_url", "url") == "url"

    def test_unregister_owner(self):
        """Test every hook of an integration can be removed at once."""
        hooks = HookManager()
        hooks.register("structure", lambda p: p, owner="seo-addon")
        hooks.register("post_types", lambda p: p, owner="seo-addon")
        hooks.register("post_types", lambda p: p, owner="other")

        assert hooks.unregister_owner("seo-addon") == 2
        assert not hooks.has_hooks("structure")
        assert hooks.has_hooks("post_types")

    def test_clear(self):
        """Test hooks can be cleared per event or entirely."""
        hooks = HookManager()
        hooks.register("structure", lambda p: p)
        hooks.register("post_types", lambda p: p)

        hooks.clear("structure")
        assert not hooks.has_hooks("structure")
        assert hooks.has_hooks("post_types")

        hooks.clear()
        assert not hooks.has_hooks("post_types")
