"""Unit tests for cross-project version conflict resolution.

Tests cover:
- Conflict detection (transitive and floating requests ignored)
- Each built-in strategy
- Overrides, prefer-stable filtering and degraded fallback
- Per-occurrence update derivation
"""

import pytest

from sdkshift.core.migration.models import PackageRequest
from sdkshift.core.migration.packages.conflicts import (
    OVERRIDE,
    ConflictResolver,
    StrategyRegistry,
)


def _requests(package_id, *versions):
    return [
        PackageRequest(package_id, version, f"P{index}.csproj")
        for index, version in enumerate(versions)
    ]


class TestFindConflicts:
    def test_distinct_versions_conflict(self):
        conflicts = ConflictResolver.find_conflicts(_requests("PackageX", "2.0.0", "2.1.0"))

        assert [c.package_id for c in conflicts] == ["PackageX"]

    def test_case_insensitive_ids(self):
        requests = [PackageRequest("Serilog", "3.0.0", "A"), PackageRequest("serilog", "3.1.0", "B")]

        assert len(ConflictResolver.find_conflicts(requests)) == 1

    def test_transitive_and_floating_ignored(self):
        requests = _requests("PackageX", "2.0.0", "*", "2.1.0")
        requests[2].is_transitive = True

        assert ConflictResolver.find_conflicts(requests) == []


class TestStrategies:
    def test_builtins_registered(self):
        assert {"UseHighest", "UseLowest", "UseLatestStable", "UseMostCommon",
                "SemanticCompatible", "FrameworkCompatible"} <= set(StrategyRegistry.list_strategies())

    @pytest.mark.parametrize("strategy,versions,expected", [
        ("UseHighest", ("2.0.0", "2.1.0"), "2.1.0"),
        ("UseLowest", ("2.0.0", "2.1.0"), "2.0.0"),
        ("UseLatestStable", ("2.0.0", "2.1.0-beta"), "2.0.0"),
        ("UseMostCommon", ("1.0.0", "1.0.0", "2.0.0"), "1.0.0"),
        ("SemanticCompatible", ("1.2.3", "1.2.9", "1.1.0"), "1.2.9"),
        ("FrameworkCompatible", ("2.0.0", "2.1.0"), "2.1.0"),
    ])
    def test_strategy_picks(self, strategy, versions, expected):
        (resolution,) = ConflictResolver(strategy).resolve(_requests("PackageX", *versions))

        assert resolution.resolved_version == expected
        assert resolution.strategy == strategy

    def test_most_common_tie_takes_highest(self):
        (resolution,) = ConflictResolver("UseMostCommon").resolve(_requests("PackageX", "1.0.0", "2.0.0"))

        assert resolution.resolved_version == "2.0.0"
        assert "tie" in resolution.reason

    def test_latest_stable_with_only_prereleases(self):
        (resolution,) = ConflictResolver("UseLatestStable").resolve(
            _requests("PackageX", "1.0.0-alpha", "1.0.0-beta"),
        )

        assert resolution.resolved_version == "1.0.0-beta"
        assert resolution.warnings

    def test_unknown_strategy(self):
        with pytest.raises(ValueError):
            ConflictResolver("UseNewest")


class TestResolver:
    def test_deterministic(self):
        requests = _requests("PackageX", "2.0.0", "2.1.0", "1.9.0")
        resolver = ConflictResolver("UseHighest")

        first = [(r.package_id, r.resolved_version) for r in resolver.resolve(requests)]
        second = [(r.package_id, r.resolved_version) for r in resolver.resolve(list(reversed(requests)))]

        assert first == second == [("PackageX", "2.1.0")]

    @pytest.mark.parametrize("strategy", [
        "UseHighest", "UseLowest", "UseLatestStable", "UseMostCommon", "SemanticCompatible",
    ])
    def test_equal_versions_resolve_regardless_of_order(self, strategy):
        resolver = ConflictResolver(strategy)
        forward = resolver.resolve(_requests("PackageX", "1.3", "1.3.0"))
        backward = resolver.resolve(_requests("PackageX", "1.3.0", "1.3"))

        assert forward[0].resolved_version == backward[0].resolved_version

    def test_major_change_warned(self):
        (resolution,) = ConflictResolver("UseHighest").resolve(_requests("PackageX", "1.0.0", "2.0.0"))

        assert any("Major version change" in w for w in resolution.warnings)

    def test_wide_version_spread_warned(self):
        (resolution,) = ConflictResolver("UseHighest").resolve(_requests("PackageX", "1.0.0", "3.0.0"))

        assert resolution.resolved_version == "3.0.0"
        assert any("Wide version spread for PackageX: 1.0.0" in w for w in resolution.warnings)

    def test_close_versions_not_spread(self):
        (resolution,) = ConflictResolver("UseHighest").resolve(_requests("PackageX", "2.0.0", "2.1.0"))

        assert not any("Wide version spread" in w for w in resolution.warnings)

    def test_prefer_stable_filters_prereleases(self):
        (resolution,) = ConflictResolver("UseHighest", prefer_stable=True).resolve(
            _requests("PackageX", "2.0.0", "2.1.0-beta"),
        )

        assert resolution.resolved_version == "2.0.0"

    def test_override_applies_without_conflict(self):
        resolver = ConflictResolver(overrides={"serilog": "3.1.1"})

        (resolution,) = resolver.resolve(_requests("Serilog", "2.12.0"))

        assert resolution.strategy == OVERRIDE
        assert resolution.resolved_version == "3.1.1"

    def test_unparseable_version_degrades_to_first(self):
        (resolution,) = ConflictResolver("UseHighest").resolve(_requests("PackageX", "1.0.0", "banana"))

        assert resolution.degraded
        assert resolution.resolved_version == "1.0.0"
        assert resolution.warnings

    def test_one_failure_does_not_stop_the_batch(self):
        requests = _requests("PackageX", "1.0.0", "banana") + _requests("PackageY", "1.0.0", "1.5.0")

        resolutions = {r.package_id: r for r in ConflictResolver("UseHighest").resolve(requests)}

        assert resolutions["PackageX"].degraded
        assert resolutions["PackageY"].resolved_version == "1.5.0"


class TestDeriveUpdates:
    def test_updates_for_changed_occurrences_only(self):
        requests = _requests("PackageX", "2.0.0", "2.1.0")
        resolutions = ConflictResolver("UseHighest").resolve(requests)

        updates = ConflictResolver.derive_updates(requests, resolutions)

        assert [(u.project_path, u.old_version, u.new_version) for u in updates] == [
            ("P0.csproj", "2.0.0", "2.1.0"),
        ]
