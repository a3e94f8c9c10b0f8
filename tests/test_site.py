"""Tests for the JSON storage and the site store."""

from datetime import datetime, timezone

import pytest

from kaigen_connector.core.site import parse_datetime
from kaigen_connector.core.storage import Storage, StorageError


class TestStorage:
    """Tests for the JSON database."""

    def test_initialize_writes_file(self, storage):
        """Test initialization creates the database with default content."""
        reloaded = Storage(storage.db_path)

        assert reloaded.data["options"]["siteurl"] == "https://example.com"
        assert reloaded.data["users"]["1"]["username"] == "admin"

    def test_transaction_saves(self, storage):
        """Test a successful transaction is written to disk."""
        with storage.transaction() as data:
            data["options"]["blogname"] = "Renamed"

        assert Storage(storage.db_path).load()["options"]["blogname"] == "Renamed"

    def test_transaction_rolls_back(self, storage):
        """Test a failing transaction leaves the database unchanged."""
        with pytest.raises(RuntimeError):
            with storage.transaction() as data:
                data["options"]["blogname"] = "Broken"
                raise RuntimeError("boom")

        assert storage.data["options"]["blogname"] == "Example"

    def test_missing_file(self, tmp_path):
        """Test loading a missing database raises."""
        with pytest.raises(StorageError):
            Storage(tmp_path / "missing.json").load()

    def test_backup_and_restore(self, storage, tmp_path):
        """Test a backup can be restored."""
        backup = storage.backup(tmp_path / "backups")
        with storage.transaction() as data:
            data["options"]["blogname"] = "Changed"

        storage.restore(backup)

        assert storage.data["options"]["blogname"] == "Example"

    def test_restore_rejects_incomplete_backup(self, storage, tmp_path):
        """Test a backup without the required tables is refused."""
        backup = tmp_path / "bad.json"
        backup.write_text('{"options": {}}', encoding="utf-8")

        with pytest.raises(StorageError):
            storage.restore(backup)


class TestPosts:
    """Tests for post storage."""

    def test_unique_slug(self, site):
        """Test slugs are made unique within a post type."""
        first = site.create_post(title="A", slug="same")
        second = site.create_post(title="B", slug="same")
        page = site.create_post(post_type="page", title="C", slug="same")

        assert first.slug == "same"
        assert second.slug == "same-2"
        assert page.slug == "same"

    def test_update_keeps_own_slug(self, site):
        """Test re-saving a post's own slug does not suffix it."""
        post = site.create_post(title="A", slug="mine")

        assert site.update_post(post.id, {"slug": "mine"}).slug == "mine"

    def test_update_unknown_field(self, site):
        """Test unknown core fields are refused."""
        with pytest.raises(StorageError):
            site.update_post(1, {"colour": "red"})

    def test_update_missing_post(self, site):
        """Test updating a missing post raises."""
        with pytest.raises(StorageError):
            site.update_post(999, {"title": "x"})

    def test_query_posts(self, site):
        """Test listing filters by type and status and pages results."""
        site.create_post(title="Draft", slug="draft", status="draft")
        site.create_post(title="Live", slug="live", status="publish")

        posts, total = site.query_posts(["post"], limit=1)

        assert total == 2
        assert len(posts) == 1

    def test_permalink(self, site):
        """Test permalinks use the slug, or the id without one."""
        post = site.create_post(title="A", slug="")

        assert site.permalink(site.get_post(1)) == "https://example.com/hello-world/"
        assert site.permalink(post) == f"https://example.com/?p={post.id}"


class TestMeta:
    """Tests for post meta."""

    def test_update_and_delete(self, site):
        """Test meta values can be written and removed."""
        site.update_meta(1, "subtitle", "Hi")
        assert site.get_meta(1, "subtitle") == "Hi"

        assert site.delete_meta(1, "subtitle") is True
        assert site.get_meta(1, "subtitle") == ""
        assert site.delete_meta(1, "subtitle") is False


class TestTerms:
    """Tests for taxonomy terms."""

    def test_names_create_terms(self, site):
        """Test unknown names create terms and known names reuse them."""
        ids = site.set_object_terms(1, "post_tag", ["Python", "python", "Web"])

        assert len(ids) == 2
        assert [t.name for t in site.get_object_terms(1, "post_tag")] == ["Python", "Web"]

    def test_ids_must_exist(self, site):
        """Test unknown term ids are refused."""
        with pytest.raises(StorageError):
            site.set_object_terms(1, "category", [999])

    def test_id_from_other_taxonomy(self, site):
        """Test an id from another taxonomy is refused."""
        tag_id = site.set_object_terms(1, "post_tag", ["Python"])[0]

        with pytest.raises(StorageError):
            site.set_object_terms(1, "category", [tag_id])

    def test_empty_list_clears(self, site):
        """Test an empty list removes all terms."""
        site.set_object_terms(1, "category", [])

        assert site.get_object_terms(1, "category") == []

    def test_unknown_taxonomy(self, site):
        """Test unknown taxonomies are refused."""
        with pytest.raises(StorageError):
            site.set_object_terms(1, "genre", ["Rock"])


class TestMediaAndUsers:
    """Tests for featured media and capabilities."""

    def test_thumbnail(self, site, attachment):
        """Test featured media can be set, resolved and removed."""
        site.set_thumbnail(1, attachment.id)

        assert site.get_thumbnail_id(1) == attachment.id
        assert site.attachment_url_to_postid(attachment.guid) == attachment.id

        site.delete_thumbnail(1)
        assert site.get_thumbnail_id(1) is None

    def test_thumbnail_requires_attachment(self, site):
        """Test only attachments can be featured."""
        with pytest.raises(StorageError):
            site.set_thumbnail(1, 1)

    def test_role_capabilities(self, site, admin):
        """Test capabilities come from roles and can be revoked."""
        assert site.user_can(admin, "kaigen_edit_posts")

        site.remove_role_cap("administrator", "kaigen_edit_posts")

        assert not site.user_can(admin, "kaigen_edit_posts")


class TestParseDatetime:
    """Tests for ISO date parsing."""

    def test_zulu(self):
        """Test a Z suffix is read as UTC."""
        assert parse_datetime("2024-05-01T10:00:00Z") == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)

    def test_naive_is_utc(self):
        """Test naive dates are taken as UTC."""
        assert parse_datetime("2024-05-01 10:00:00").tzinfo == timezone.utc

    def test_offset_converted(self):
        """Test offsets are converted to UTC."""
        assert parse_datetime("2024-05-01T12:00:00+02:00").hour == 10

    def test_invalid(self):
        """Test invalid dates raise ValueError."""
        with pytest.raises(ValueError):
            parse_datetime("yesterday")
