"""Tests for URL validation, normalization, and hostname matching."""

import pytest

from snapshot_discovery.errors import InvalidURLError, MissingURLError
from snapshot_discovery.url_utils import (
    hostname_matches,
    normalize_resource_url,
    snapshot_name_from_url,
    snapshot_slug,
    validate_url,
)


class TestValidateUrl:
    """Tests for validate_url."""

    def test_normalizes_scheme_host_and_path(self):
        assert validate_url("HTTPS://Example.COM") == "https://example.com/"

    def test_keeps_port_query_and_fragment(self):
        assert validate_url("http://localhost:8080/a?b=1#c") == "http://localhost:8080/a?b=1#c"

    def test_resolves_against_base(self):
        assert validate_url("/about", "https://example.com/docs/") == "https://example.com/about"
        assert validate_url("intro", "https://example.com/docs/") == "https://example.com/docs/intro"

    @pytest.mark.parametrize("url", [None, ""])
    def test_missing(self, url):
        with pytest.raises(MissingURLError):
            validate_url(url)

    @pytest.mark.parametrize("url", ["example", "/relative/only", "http://"])
    def test_invalid(self, url):
        with pytest.raises(InvalidURLError, match="Invalid snapshot URL"):
            validate_url(url)

    def test_errors_are_value_errors(self):
        with pytest.raises(ValueError):
            validate_url("nope")


class TestHostnameMatches:
    """Tests for hostname pattern matching."""

    def test_exact_hostname(self):
        assert hostname_matches(["example.com"], "https://example.com/page")
        assert not hostname_matches(["example.com"], "https://other.com/page")

    def test_wildcard_subdomains(self):
        assert hostname_matches("*.example.com", "https://cdn.example.com/app.js")
        assert hostname_matches("*.example.com", "https://a.b.example.com/app.js")
        assert not hostname_matches("*.example.com", "https://example.org/")

    def test_star_matches_everything(self):
        assert hostname_matches(["*"], "https://anything.test/")

    def test_port_rules(self):
        assert hostname_matches("localhost:8080", "http://localhost:8080/")
        assert not hostname_matches("localhost:8080", "http://localhost:3000/")
        assert hostname_matches("localhost", "http://localhost:3000/")

    def test_comma_and_space_separated(self):
        assert hostname_matches("a.com, b.com", "https://b.com/")
        assert hostname_matches("a.com b.com", "https://b.com/")

    def test_bare_hostname_subject(self):
        assert hostname_matches("example.com", "example.com")

    def test_no_patterns(self):
        assert not hostname_matches(None, "https://example.com/")
        assert not hostname_matches([], "https://example.com/")


class TestUrlHelpers:
    """Tests for snapshot naming and resource URL helpers."""

    def test_snapshot_name_from_url(self):
        assert snapshot_name_from_url("https://example.com/p?q=1#h") == "/p?q=1#h"
        assert snapshot_name_from_url("https://example.com") == "/"

    def test_normalize_resource_url_drops_fragment(self):
        assert normalize_resource_url("https://example.com/a.css?v=2#x") == "https://example.com/a.css?v=2"

    def test_snapshot_slug_is_stable(self):
        assert snapshot_slug("Home") == snapshot_slug("Home")
        assert snapshot_slug("Home") != snapshot_slug("About")
        assert len(snapshot_slug("Home")) == 12
