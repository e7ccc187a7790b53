"""Tests for version and range helpers."""

import pytest

from liveplug.versions import (
    VersionRange,
    is_valid_range,
    is_valid_version,
    max_satisfying,
    parse_version,
    precedence_key,
    satisfies,
    semver_identity,
)


class TestIsValidVersion:
    """Tests for semantic version validation."""

    @pytest.mark.parametrize("version", ["1.0.0", "0.0.0", "v1.2.3", "1.0.0-beta.1", "2.1.0+build.5"])
    def test_valid(self, version):
        assert is_valid_version(version)

    @pytest.mark.parametrize("version", ["1.0", "latest", "", "01.0.0", "^1.0.0", None])
    def test_invalid(self, version):
        assert not is_valid_version(version)

    def test_parse_version_returns_none_for_tags(self):
        assert parse_version("latest") is None
        assert parse_version("1.2.3") is not None


class TestSatisfies:
    """Tests for range matching."""

    @pytest.mark.parametrize(
        "version,requirement",
        [
            ("1.4.0", "^1.2.0"),
            ("0.2.5", "^0.2.0"),
            ("1.2.9", "~1.2.0"),
            ("1.9.9", "1.x"),
            ("1.5.0", ">=1.0.0 <2.0.0"),
            ("3.1.0", "1.x || >=3"),
            ("1.5.0", "1.0.0 - 2.0.0"),
            ("1.2.5", "~=1.2"),
            ("5.0.0", "*"),
            ("1.0.0", "1.0.0"),
            ("1.0.0", "=1.0.0"),
        ],
    )
    def test_satisfied(self, version, requirement):
        assert satisfies(version, requirement)

    @pytest.mark.parametrize(
        "version,requirement",
        [
            ("2.0.0", "^1.2.0"),
            ("1.1.0", "^1.2.0"),
            ("0.3.0", "^0.2.0"),
            ("1.3.0", "~1.2.0"),
            ("2.0.0", "1.x"),
            ("2.0.0", ">=1.0.0 <2.0.0"),
            ("2.0.0", "1.x || >=3"),
            ("2.0.1", "1.0.0 - 2.0.0"),
            ("1.0.1", "1.0.0"),
        ],
    )
    def test_not_satisfied(self, version, requirement):
        assert not satisfies(version, requirement)

    def test_tags_never_satisfied(self):
        """Dist-tags and repository references are not ranges."""
        assert not satisfies("1.0.0", "latest")
        assert not satisfies("1.0.0", "acme/plugin#v1")

    def test_unparseable_version(self):
        assert not satisfies("latest", "^1.0.0")


class TestRanges:
    """Tests for range parsing and selection."""

    def test_is_valid_range(self):
        assert is_valid_range("^1.0.0")
        assert is_valid_range(">=1.0 <2")
        assert is_valid_range("1.0.0")
        assert not is_valid_range("latest")
        assert not is_valid_range("acme/plugin")

    def test_version_range_repr(self):
        version_range = VersionRange(" ^1.0.0 ")
        assert str(version_range) == "^1.0.0"
        assert "^1.0.0" in repr(version_range)

    def test_max_satisfying(self):
        versions = ["1.0.0", "1.2.0", "1.10.0", "2.0.0"]
        assert max_satisfying(versions, "^1.0.0") == "1.10.0"
        assert max_satisfying(versions, "~1.2.0") == "1.2.0"
        assert max_satisfying(versions, "^3.0.0") is None

    def test_max_satisfying_invalid_range(self):
        with pytest.raises(ValueError):
            max_satisfying(["1.0.0"], "latest")


class TestSemverPrereleases:
    """Tests for prerelease labels that have no PEP 440 form."""

    @pytest.mark.parametrize(
        "version,requirement",
        [
            ("1.0.0-foo", "1.0.0-foo"),
            ("2.0.0-next.3", "=2.0.0-next.3"),
            ("2.0.0-next.3", "v2.0.0-next.3"),
            ("1.0.0-foo+build.7", "1.0.0-foo"),
            ("2.0.0-next.3", "1.x || 2.0.0-next.3"),
        ],
    )
    def test_exact_match(self, version, requirement):
        assert satisfies(version, requirement)

    @pytest.mark.parametrize(
        "version,requirement",
        [
            ("2.0.0-next.3", "2.0.0-next.4"),
            ("1.0.0", "1.0.0-foo"),
            ("1.0.0-foo", "1.0.0"),
            ("2.0.0-next.3", "^2.0.0"),
        ],
    )
    def test_no_match(self, version, requirement):
        assert not satisfies(version, requirement)

    def test_pinned_range_is_valid(self):
        assert is_valid_range("2.0.0-next.3")
        assert is_valid_range("1.0.0-foo")

    def test_build_metadata_is_ignored(self):
        assert semver_identity("v1.0.0-foo+sha.1") == "1.0.0-foo"
        assert semver_identity("latest") is None

    def test_max_satisfying_pinned(self):
        versions = ["1.0.0", "2.0.0-next.2", "2.0.0-next.3"]
        assert max_satisfying(versions, "2.0.0-next.3") == "2.0.0-next.3"
        assert max_satisfying(versions, "^1.0.0") == "1.0.0"

    def test_precedence(self):
        ordered = ["1.0.0-alpha", "1.0.0-alpha.1", "1.0.0-alpha.beta", "1.0.0-beta.2", "1.0.0-beta.11", "1.0.0"]
        assert sorted(reversed(ordered), key=precedence_key) == ordered
        assert precedence_key("latest") is None
