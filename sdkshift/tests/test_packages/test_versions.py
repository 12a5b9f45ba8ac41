"""Unit tests for NuGet version parsing and ordering."""

import pytest

from sdkshift.core.migration.packages.versions import (
    highest,
    is_prerelease,
    lowest,
    normalize_assembly_version,
    parse_version,
    try_parse_version,
)


class TestParse:
    def test_short_versions_pad_with_zero(self):
        assert parse_version("1.2").release == (1, 2, 0, 0)
        assert parse_version("1.2.3.4").release == (1, 2, 3, 4)

    def test_prerelease_and_metadata(self):
        version = parse_version("2.0.0-beta.1+sha.abc")

        assert version.prerelease == ("beta", "1")
        assert version.is_prerelease
        assert str(version) == "2.0.0-beta.1+sha.abc"

    def test_range_uses_lower_bound(self):
        assert parse_version("[1.2.3, )").release == (1, 2, 3, 0)
        assert parse_version("[4.0.1]").release == (4, 0, 1, 0)

    def test_garbage(self):
        with pytest.raises(ValueError):
            parse_version("latest")
        assert try_parse_version("latest") is None
        assert not is_prerelease("latest")


class TestOrdering:
    def test_release_beats_prerelease(self):
        assert parse_version("1.0.0-rc.1") < parse_version("1.0.0")

    def test_prerelease_labels(self):
        ordered = ["1.0.0-2", "1.0.0-alpha", "1.0.0-alpha.1", "1.0.0-beta", "1.0.0"]

        assert sorted(ordered, key=lambda v: parse_version(v).sort_key()) == ordered

    def test_metadata_ignored(self):
        assert parse_version("1.0.0+a") == parse_version("1.0.0+b")

    def test_trailing_zero_equal(self):
        assert parse_version("1.0") == parse_version("1.0.0.0")

    def test_highest_and_lowest(self):
        versions = ["2.1.0", "10.0.0", "2.10.0"]

        assert highest(versions) == "10.0.0"
        assert lowest(versions) == "2.1.0"

    def test_equal_versions_written_differently(self):
        assert highest(["1.3", "1.3.0", "1.2.0"]) == highest(["1.3.0", "1.3", "1.2.0"]) == "1.3.0"
        assert lowest(["1.0.0+b", "1.0.0+a"]) == lowest(["1.0.0+a", "1.0.0+b"]) == "1.0.0+a"

    def test_highest_of_nothing(self):
        with pytest.raises(ValueError):
            highest([])


def test_normalize_assembly_version():
    assert normalize_assembly_version("12.0.3.0") == "12.0.3"
    assert normalize_assembly_version("1.2.3.4") == "1.2.3.4"
    assert normalize_assembly_version("4.5") == "4.5"
