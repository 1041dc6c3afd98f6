"""
Unit tests for cache keys, manifests and scope normalization.
"""

import pytest
import pydantic

from service_offline.app.versioning import CacheKey, Manifest, cache_base_name, normalize_resource_id


SCOPE = "https://example.com/app/"
BASE = "offline-https://example.com/app/"


class TestCacheKey:
    """Test cases for CacheKey."""

    def test_base_name_includes_prefix_and_scope(self):
        assert cache_base_name("offline", SCOPE) == BASE

    def test_name_encodes_version(self):
        assert CacheKey(BASE, 5).name == "offline-https://example.com/app/-v5"

    def test_parse_round_trips_name(self):
        key = CacheKey(BASE, 12)
        assert CacheKey.parse(key.name, BASE) == key

    @pytest.mark.parametrize("name", [
        "offline-https://example.com/app/-v",
        "offline-https://example.com/app/-vabc",
        "offline-https://example.com/app/-v3x",
        "offline-https://example.com/app/-v03",
        "offline-https://example.com/app/-v 3",
    ])
    def test_parse_rejects_malformed_versions(self, name):
        assert CacheKey.parse(name, BASE) is None

    def test_parse_ignores_other_deployments(self):
        assert CacheKey.parse("offline-https://other.example/-v3", BASE) is None
        assert CacheKey.parse("unrelated-cache", BASE) is None

    def test_keys_sort_by_version(self):
        keys = [CacheKey(BASE, 1), CacheKey(BASE, 3), CacheKey(BASE, 2)]
        assert [k.version for k in sorted(keys)] == [1, 2, 3]
        assert max(keys).version == 3

    def test_version_ordering_is_numeric_not_lexical(self):
        assert CacheKey(BASE, 9) < CacheKey(BASE, 10)


class TestNormalizeResourceId:
    """Test cases for scope-relative resource ids."""

    def test_strips_scope(self):
        assert normalize_resource_id("https://example.com/app/index.html", SCOPE) == "index.html"

    def test_keeps_query_string(self):
        assert normalize_resource_id("https://example.com/app/data.json?x=1", SCOPE) == "data.json?x=1"

    def test_scope_root_stays_scope(self):
        assert normalize_resource_id(SCOPE, SCOPE) == SCOPE

    def test_out_of_scope_unchanged(self):
        assert normalize_resource_id("https://cdn.example.net/lib.js", SCOPE) == "https://cdn.example.net/lib.js"


class TestManifest:
    """Test cases for Manifest."""

    def test_parses_version_and_files(self):
        manifest = Manifest.model_validate({"version": 5, "files": ["a.js", "b.js"]})
        assert manifest.version == 5
        assert manifest.files == ["a.js", "b.js"]

    def test_rejects_missing_version(self):
        with pytest.raises(pydantic.ValidationError):
            Manifest.model_validate({"files": ["a.js"]})

    def test_with_main_resource_prepends(self):
        manifest = Manifest(version=1, files=["a.js"])
        updated = manifest.with_main_resource("index.html")

        assert updated.files == ["index.html", "a.js"]
        assert manifest.files == ["a.js"]

    def test_with_empty_main_resource_is_unchanged(self):
        manifest = Manifest(version=1, files=["a.js"])
        assert manifest.with_main_resource("").files == ["a.js"]
