"""Tests for SEO plugin backends."""

import pytest

from kaigen_connector.core import seo
from kaigen_connector.core.seo import (
    NO_PLUGIN,
    SeoBackend,
    detect_seo_plugin,
    get_seo_backend,
    is_seo_meta_key,
    register_seo_backend,
)


@pytest.fixture
def restore_registry():
    backends = dict(seo.SEO_BACKENDS)
    slugs = dict(seo.PLUGIN_SLUGS)
    yield
    seo.SEO_BACKENDS.clear()
    seo.SEO_BACKENDS.update(backends)
    seo.PLUGIN_SLUGS.clear()
    seo.PLUGIN_SLUGS.update(slugs)


class TestDetection:
    """Tests for active plugin detection."""

    @pytest.mark.parametrize(
        "active, expected",
        [
            (["wordpress-seo/wp-seo.php"], "yoast"),
            (["seo-by-rank-math/rank-math.php"], "rankmath"),
            (["wp-seopress"], "seopress"),
            (["akismet/akismet.php"], NO_PLUGIN),
            ([], NO_PLUGIN),
        ],
    )
    def test_detect(self, active, expected):
        """Test each supported plugin is recognized from its slug."""
        assert detect_seo_plugin(active) == expected

    def test_registry_order_wins(self):
        """Test the first registered backend wins when several are active."""
        assert detect_seo_plugin(["wp-seopress", "wordpress-seo"]) == "yoast"

    def test_override(self):
        """Test a registered override beats detection."""
        assert detect_seo_plugin(["wordpress-seo"], override="rankmath") == "rankmath"

    def test_unknown_override_ignored(self):
        """Test an unregistered override falls back to detection."""
        assert detect_seo_plugin(["wp-seopress"], override="allinone") == "seopress"


class TestBackends:
    """Tests for meta key resolution."""

    @pytest.mark.parametrize(
        "plugin, keys",
        [
            ("yoast", ("_yoast_wpseo_title", "_yoast_wpseo_metadesc", "_yoast_wpseo_focuskw")),
            ("rankmath", ("rank_math_title", "rank_math_description", "rank_math_focus_keyword")),
            ("seopress", ("_seopress_titles_title", "_seopress_titles_desc", "_seopress_analysis_target_kw")),
        ],
    )
    def test_keys(self, plugin, keys):
        """Test each backend maps the normalized fields to its keys."""
        backend = get_seo_backend(plugin)

        assert (backend.key_for("title"), backend.key_for("description"), backend.key_for("focus_keyword")) == keys

    def test_none_falls_back_to_first_backend(self):
        """Test no plugin uses the first backend's keys."""
        assert get_seo_backend(NO_PLUGIN).key_for("title") == "_yoast_wpseo_title"

    def test_is_seo_meta_key(self):
        """Test SEO meta keys are recognized by prefix."""
        assert is_seo_meta_key("_yoast_wpseo_canonical")
        assert is_seo_meta_key("rank_math_robots")
        assert not is_seo_meta_key("subtitle")

    def test_register_backend(self, restore_registry):
        """Test a new backend can be registered and detected."""
        backend = SeoBackend(
            plugin="aioseo",
            title_key="_aioseo_title",
            description_key="_aioseo_description",
            focus_keyword_key="_aioseo_keyphrase",
            meta_prefix="_aioseo_",
        )
        register_seo_backend(backend, "all-in-one-seo-pack")

        assert detect_seo_plugin(["all-in-one-seo-pack/all_in_one_seo_pack.php"]) == "aioseo"
        assert get_seo_backend("aioseo").key_for("description") == "_aioseo_description"
        assert is_seo_meta_key("_aioseo_title")
