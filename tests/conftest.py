"""Shared fixtures: a freshly initialized site database in a temp dir."""

import pytest

from kaigen_connector.core.config import Settings
from kaigen_connector.core.content import ContentService
from kaigen_connector.core.custom_fields import StoredFieldGroups
from kaigen_connector.core.document import DocumentBuilder
from kaigen_connector.core.hooks import HookManager
from kaigen_connector.core.persist import DocumentPersister
from kaigen_connector.core.sanitize import Sanitizer
from kaigen_connector.core.site import SiteStore
from kaigen_connector.core.storage import Storage
from kaigen_connector.core.update import UpdateService

SITE_URL = "https://example.com"


@pytest.fixture
def storage(tmp_path):
    storage = Storage(tmp_path / "site.json")
    storage.initialize(SITE_URL, "Example")
    return storage


@pytest.fixture
def site(storage):
    return SiteStore(storage)


@pytest.fixture
def sanitizer():
    return Sanitizer()


@pytest.fixture
def settings(site, sanitizer):
    return Settings(site, sanitizer)


@pytest.fixture
def hooks():
    return HookManager()


@pytest.fixture
def custom_fields(site):
    return StoredFieldGroups(site)


@pytest.fixture
def content(site, settings, hooks, sanitizer, custom_fields):
    return ContentService(site, settings, hooks, sanitizer, custom_fields)


@pytest.fixture
def builder(site, content, hooks, sanitizer):
    return DocumentBuilder(site, content, hooks, sanitizer)


@pytest.fixture
def persister(site, content, sanitizer, custom_fields):
    return DocumentPersister(site, content, sanitizer, custom_fields)


@pytest.fixture
def updates(site, settings, builder, persister, hooks):
    return UpdateService(site, settings, builder, persister, hooks)


@pytest.fixture
def admin(site):
    return site.get_user(1)


@pytest.fixture
def attachment(site):
    return site.create_post(
        post_type="attachment",
        status="inherit",
        title="Hero",
        guid=f"{SITE_URL}/wp-content/uploads/hero.jpg",
        mime_type="image/jpeg",
    )


@pytest.fixture
def post(site):
    """Draft post with meta, SEO meta, a category and a tag."""
    post = site.create_post(
        post_type="post",
        status="draft",
        title="Original title",
        content="<p>Original body</p>",
        excerpt="Short",
        slug="original-title",
        author=1,
    )
    site.update_meta(post.id, "subtitle", "A subtitle")
    site.update_meta(post.id, "_edit_lock", "123:1")
    site.update_meta(post.id, "_yoast_wpseo_title", "SEO title")
    site.update_meta(post.id, "_yoast_wpseo_metadesc", "SEO description")
    site.set_object_terms(post.id, "category", ["News"])
    site.set_object_terms(post.id, "post_tag", ["python", "cms"])
    return post
