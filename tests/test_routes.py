"""Tests for the REST endpoints."""

import base64

import pytest
from fastapi.testclient import TestClient

from kaigen_connector.core.config import AppConfig
from kaigen_connector.main import create_app

API = "/wp-json/kaigen/v1"
AUTH = {"Authorization": "Bearer kaigen_test"}


@pytest.fixture
def app(tmp_path):
    config = AppConfig(base_dir=tmp_path, secret_key="test-secret", site_url="https://example.com")
    app = create_app(config)
    app.state.kaigen.auth.store_api_key("kaigen_test", "https://kaigen.app")
    return app


@pytest.fixture
def state(app):
    return app.state.kaigen


@pytest.fixture
def client(app):
    return TestClient(app)


@pytest.fixture
def draft(state):
    post = state.site.create_post(
        title="Draft post",
        content="<p>Body</p>",
        excerpt="Teaser",
        slug="draft-post",
        status="draft",
        author=1,
    )
    state.site.update_meta(post.id, "subtitle", "Sub")
    return post


class TestAuthentication:
    """Tests for request authentication."""

    @pytest.mark.parametrize("path", ["/structure", "/content", "/content/1", "/links", "/logs"])
    def test_requires_auth(self, client, path):
        """Test every endpoint refuses unauthenticated requests."""
        assert client.get(API + path).status_code == 401

    def test_wrong_key(self, client):
        """Test a wrong key is refused."""
        response = client.get(f"{API}/structure", headers={"Authorization": "Bearer kaigen_other"})

        assert response.status_code == 401

    def test_app_password(self, client, state):
        """Test application passwords authenticate once that method is chosen."""
        state.settings.update({"auth_method": "app_password"})
        password = state.auth.create_app_password(1)
        token = base64.b64encode(f"admin:{password}".encode()).decode()

        response = client.get(f"{API}/structure", headers={"Authorization": f"Basic {token}"})

        assert response.status_code == 200

    def test_health_is_public(self, client):
        """Test the health check needs no credentials."""
        assert client.get("/health").json()["status"] == "ok"


class TestReadEndpoints:
    """Tests for structure, content, links and logs."""

    def test_structure(self, client):
        """Test the site structure lists post types and plugins."""
        data = client.get(f"{API}/structure", headers=AUTH).json()

        assert {t["slug"] for t in data["postTypes"]} == {"post", "page"}
        assert data["seoPlugin"] == "none"
        assert data["siteUrl"] == "https://example.com"

    def test_content_pagination(self, client, state):
        """Test published posts are paginated."""
        for n in range(3):
            state.site.create_post(title=f"Post {n}", slug=f"post-{n}", status="publish")

        data = client.get(f"{API}/content", params={"per_page": 2, "page": 2}, headers=AUTH).json()

        assert data["total"] == 4
        assert data["total_pages"] == 2
        assert data["page"] == 2
        assert data["per_page"] == 2
        assert len(data["posts"]) == 2

    def test_content_excludes_drafts(self, client, draft):
        """Test drafts are left out of the listing."""
        data = client.get(f"{API}/content", headers=AUTH).json()

        assert draft.id not in [p["id"] for p in data["posts"]]

    def test_content_bad_page(self, client):
        """Test page numbers below one are rejected."""
        assert client.get(f"{API}/content", params={"page": 0}, headers=AUTH).status_code == 422

    def test_single_post(self, client, draft):
        """Test one post comes back with its raw excerpt and meta."""
        data = client.get(f"{API}/content/{draft.id}", headers=AUTH).json()

        assert data["title"] == "Draft post"
        assert data["excerpt"] == "Teaser"
        assert data["customFields"] == {"subtitle": "Sub"}
        assert data["editorType"] == "gutenberg"

    def test_post_not_found(self, client):
        """Test unknown posts give the error envelope with 404."""
        response = client.get(f"{API}/content/999", headers=AUTH)

        assert response.status_code == 404
        assert response.json() == {
            "code": "post_not_found",
            "message": "Post not found",
            "data": {"status": 404, "post_id": 999},
        }

    def test_disabled_post_type(self, client, state, draft):
        """Test posts of disabled types are refused with 403."""
        state.settings.update({"enabled_post_types": ["page"]})

        response = client.get(f"{API}/content/{draft.id}", headers=AUTH)

        assert response.status_code == 403
        assert response.json()["code"] == "post_type_disabled"

    def test_document(self, client, draft):
        """Test the canonical document echoes the request context."""
        data = client.get(
            f"{API}/content/{draft.id}/document",
            params={"project_id": "p1", "platform_id": "9"},
            headers=AUTH,
        ).json()

        assert data["schema_version"] == 2
        assert data["post"]["project_id"] == "p1"
        assert data["post"]["platform_id"] == "9"
        assert data["custom_fields"]["meta"] == {"subtitle": "Sub"}

    def test_links(self, client):
        """Test link candidates are listed with a total."""
        data = client.get(f"{API}/links", headers=AUTH).json()

        assert data["total"] == 1
        assert data["links"][0]["url"] == "https://example.com/hello-world/"

    def test_logs(self, client, draft):
        """Test update and sync logs are returned together."""
        client.post(f"{API}/content/{draft.id}", json={"schema_version": 2, "changes": {}}, headers=AUTH)

        data = client.get(f"{API}/logs", headers=AUTH).json()

        assert len(data["updates"]) == 1
        assert data["syncs"] == []


class TestUpdateEndpoint:
    """Tests for POST /content/{id}."""

    def test_update(self, client, state, draft):
        """Test a patch is applied and the new document returned."""
        response = client.post(
            f"{API}/content/{draft.id}",
            json={"schema_version": 2, "changes": {"post": {"status": "publish"}, "custom_fields": {"meta": {"subtitle": None}}}},
            headers=AUTH,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["document"]["post"]["status"] == "publish"
        assert data["document"]["custom_fields"]["meta"] == {}
        assert state.site.get_post(draft.id).status == "publish"

    def test_path_id_wins(self, client, state, draft):
        """Test the post id in the body is ignored."""
        response = client.post(
            f"{API}/content/{draft.id}",
            json={"post_id": 1, "schema_version": 2, "changes": {"post": {"status": "publish"}}},
            headers=AUTH,
        )

        assert response.json()["post_id"] == draft.id

    def test_wrong_schema_version(self, client, draft):
        """Test a wrong schema version gives a 400 envelope."""
        response = client.post(f"{API}/content/{draft.id}", json={"schema_version": 1, "changes": {}}, headers=AUTH)

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_schema_version"

    def test_non_object_body(self, client, draft):
        """Test a non-object body is rejected."""
        response = client.post(f"{API}/content/{draft.id}", json=[1, 2], headers=AUTH)

        assert response.status_code == 400
        assert response.json()["code"] == "invalid_changes"

    def test_malformed_json_body(self, client, draft):
        """Test an unparseable JSON body gives the 400 envelope."""
        response = client.post(
            f"{API}/content/{draft.id}",
            content=b'{"schema_version": 2, "changes": ',
            headers={**AUTH, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "invalid_changes"
        assert body["data"] == {"status": 400}

    def test_validation_failure(self, client, draft):
        """Test an invalid merged document gives 422 and the reason."""
        response = client.post(
            f"{API}/content/{draft.id}",
            json={"schema_version": 2, "changes": {"post": {"status": "archived"}}},
            headers=AUTH,
        )

        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "validation_failed"
        assert "status" in body["data"]["reason"]
