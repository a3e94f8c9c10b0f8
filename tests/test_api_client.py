"""Tests for the outbound Kaigen client."""

import json

import httpx
import pytest

from kaigen_connector.core.api_client import KaigenClient
from kaigen_connector.core.auth import KaigenAuth
from kaigen_connector.core.errors import KaigenAPIError, MissingProjectId, NotConfigured


class FakeKaigen:
    """Records requests and answers them from a route table."""

    def __init__(self, routes=None):
        self.routes = routes or {}
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        key = (request.method, request.url.path)
        if key not in self.routes:
            return httpx.Response(404, json={"error": "Not found"})
        status, body = self.routes[key]
        return httpx.Response(status, json=body)

    def paths(self):
        return [(r.method, r.url.path) for r in self.requests]

    def body(self, index):
        return json.loads(self.requests[index].content)


VALIDATE = ("POST", "/api/wordpress/validate")
INGEST = ("POST", "/api/wordpress/p1/ingest-content")


@pytest.fixture
def kaigen():
    return FakeKaigen({VALIDATE: (200, {"valid": True, "projectId": "p1"})})


@pytest.fixture
def client(site, settings, content, hooks, kaigen):
    transport = httpx.MockTransport(kaigen)
    auth = KaigenAuth(site, settings, "test-secret", bcrypt_rounds=4, transport=transport)
    auth.store_api_key("kaigen_abc", "https://kaigen.app")
    return KaigenClient(auth, content, hooks, "1.0.0", transport=transport)


class TestRequest:
    """Tests for the authenticated request helper."""

    def test_sends_bearer_key(self, client, kaigen):
        """Test requests carry the stored key and JSON body."""
        kaigen.routes[("POST", "/api/echo")] = (200, {"ok": True})

        result = client.request("/api/echo", "post", {"a": 1})

        assert result == {"ok": True}
        sent = kaigen.requests[0]
        assert str(sent.url) == "https://kaigen.app/api/echo"
        assert sent.headers["Authorization"] == "Bearer kaigen_abc"
        assert kaigen.body(0) == {"a": 1}

    def test_get_sends_no_body(self, client, kaigen):
        """Test data is ignored for GET requests."""
        kaigen.routes[("GET", "/api/echo")] = (200, {"ok": True})

        client.request("api/echo", "GET", {"a": 1})

        assert kaigen.requests[0].content == b""

    def test_not_configured(self, client):
        """Test requests fail without stored credentials."""
        client.auth.clear_credentials()

        with pytest.raises(NotConfigured):
            client.request("api/echo")

    def test_error_status(self, client, kaigen):
        """Test error responses raise with Kaigen's message and status."""
        kaigen.routes[("GET", "/api/echo")] = (403, {"error": "Project locked"})

        with pytest.raises(KaigenAPIError) as exc:
            client.request("api/echo")

        assert exc.value.message == "Project locked"
        assert exc.value.status_code == 403

    def test_error_without_message(self, client, kaigen):
        """Test a generic message is used when Kaigen gives none."""
        kaigen.routes[("GET", "/api/echo")] = (500, ["oops"])

        with pytest.raises(KaigenAPIError) as exc:
            client.request("api/echo")

        assert exc.value.message == "API request failed"
        assert exc.value.status_code == 500

    def test_transport_error(self, site, settings, content, hooks):
        """Test network failures become API errors."""
        def handler(request):
            raise httpx.ConnectTimeout("timed out", request=request)

        transport = httpx.MockTransport(handler)
        auth = KaigenAuth(site, settings, "test-secret", bcrypt_rounds=4, transport=transport)
        auth.store_api_key("kaigen_abc", "https://kaigen.app")
        client = KaigenClient(auth, content, hooks, "1.0.0", transport=transport)

        with pytest.raises(KaigenAPIError) as exc:
            client.request("api/echo")

        assert "timed out" in exc.value.message
        assert exc.value.status_code == 502


class TestConnection:
    """Tests for connection checks."""

    def test_success(self, client):
        """Test a valid key reports the connected project."""
        result = client.test_connection()

        assert result["success"] is True
        assert result["project_id"] == "p1"

    def test_invalid_key(self, client, kaigen):
        """Test an invalid key raises with status 400."""
        kaigen.routes[VALIDATE] = (401, {"error": "Invalid API key"})

        with pytest.raises(KaigenAPIError) as exc:
            client.test_connection()

        assert exc.value.message == "Invalid API key"
        assert exc.value.status_code == 400


class TestSync:
    """Tests for content sync."""

    @pytest.fixture(autouse=True)
    def ingest(self, kaigen):
        kaigen.routes[INGEST] = (200, {"postsIngested": 2})

    def test_structure_then_library(self, client, kaigen, site, post):
        """Test the structure is sent before the content library."""
        site.create_post(title="Trashed", status="trash", slug="trashed")

        result = client.sync_content("p1", user_id=1)

        assert result == {"postsIngested": 2}
        assert kaigen.paths() == [INGEST, INGEST]

        structure = kaigen.body(0)
        assert structure["wpUrl"] == "https://example.com"
        assert structure["content"] == []
        assert structure["structure"]["pluginVersion"] == "1.0.0"

        library = kaigen.body(1)
        titles = sorted(item["title"] for item in library["content"])
        assert titles == ["Hello world!", "Original title"]

    def test_sync_logged(self, client):
        """Test a successful sync is logged."""
        client.sync_content("p1", user_id=1)

        entry = client.get_sync_logs()[0]
        assert entry["action"] == "full_sync"
        assert entry["status"] == "success"
        assert entry["user_id"] == 1
        assert entry["details"] == {"project_id": "p1", "posts_synced": 2}

    def test_project_resolved_from_key(self, client, kaigen):
        """Test the project id comes from key validation when omitted."""
        client.sync_content()

        assert kaigen.paths() == [VALIDATE, INGEST, INGEST]

    def test_missing_project(self, client, kaigen):
        """Test sync fails when no project id can be resolved."""
        kaigen.routes[VALIDATE] = (200, {"valid": True})

        with pytest.raises(MissingProjectId):
            client.sync_content()

    def test_failure_logged(self, client, kaigen):
        """Test a failed upload is logged and re-raised."""
        kaigen.routes[INGEST] = (500, {"error": "Ingest failed"})

        with pytest.raises(KaigenAPIError):
            client.sync_content("p1")

        entry = client.get_sync_logs()[0]
        assert entry["status"] == "error"
        assert entry["details"] == {"project_id": "p1", "error": "Ingest failed"}
        assert len(kaigen.requests) == 1

    def test_after_sync_hook(self, client, hooks):
        """Test integrations are told about finished syncs."""
        seen = []
        hooks.register("after_sync", lambda result, project_id: seen.append(project_id))

        client.sync_content("p1")

        assert seen == ["p1"]


class TestEditorUrls:
    """Tests for editor links."""

    def test_get_editor_url(self, client, kaigen):
        """Test Kaigen's editor URL gets the post parameters."""
        kaigen.routes[("GET", "/api/wordpress/p1/editor-url")] = (
            200,
            {"editorUrl": "https://kaigen.app/edit?mode=full"},
        )

        url = httpx.URL(client.get_editor_url("p1", 7))

        assert url.path == "/edit"
        assert url.params["mode"] == "full"
        assert url.params["wp_post_id"] == "7"
        assert url.params["wp_site"] == "https://example.com"

    def test_get_editor_url_missing(self, client, kaigen):
        """Test a response without a URL raises."""
        kaigen.routes[("GET", "/api/wordpress/p1/editor-url")] = (200, {})

        with pytest.raises(KaigenAPIError):
            client.get_editor_url("p1", 7)

    def test_build_editor_link(self, client, kaigen):
        """Test the local link uses the validated project."""
        url = httpx.URL(client.build_editor_link(7))

        assert url.path == "/en/projects/p1/editor"
        assert url.params["wp_post_id"] == "7"
        assert kaigen.paths() == [VALIDATE]

    def test_build_editor_link_default_project(self, client, kaigen):
        """Test an unresolved project falls back to the default one."""
        kaigen.routes[VALIDATE] = (401, {"error": "Invalid API key"})

        assert "/en/projects/default/editor" in client.build_editor_link(7)

    def test_editor_url_hook(self, client, hooks):
        """Test hooks may rewrite the editor link."""
        hooks.register("editor_url", lambda url, post_id: f"{url}&ref=admin")

        assert client.build_editor_link(7, "p2").endswith("&ref=admin")
