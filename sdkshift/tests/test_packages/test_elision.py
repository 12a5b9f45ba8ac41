"""Unit tests for TransitiveElisionAnalyzer."""

from sdkshift.core.errors import RegistryLookupError
from sdkshift.core.migration.models import PackageRequest
from sdkshift.core.migration.packages.elision import TransitiveElisionAnalyzer
from sdkshift.core.migration.packages.registry import OfflineRegistryClient


def _analyzer(dependencies) -> TransitiveElisionAnalyzer:
    return TransitiveElisionAnalyzer(OfflineRegistryClient(versions={"A": "1.0.0"}, dependencies=dependencies))


def _requests(*ids):
    return [PackageRequest(package_id, "1.0.0", "App.csproj") for package_id in ids]


class BrokenRegistry(OfflineRegistryClient):
    def get_dependencies(self, package_id, version=None, framework=None):
        raise RegistryLookupError("feed unreachable")


class TestElide:
    def test_reachable_requests_elided(self):
        requests = _requests("A", "B", "C")

        result = _analyzer({"A": ("B",), "B": ("C",)}).elide(requests)

        assert [r.package_id for r in result.kept] == ["A"]
        assert sorted(result.elided) == ["B", "C"]
        assert result.supplied == {"a", "b", "c"}

    def test_same_objects_are_marked(self):
        requests = _requests("A", "B")

        result = _analyzer({"A": ("B",)}).elide(requests)

        assert result.requests is requests
        assert requests[1].is_transitive

    def test_cycle_keeps_first_in_input_order(self):
        dependencies = {"A": ("B",), "B": ("A",)}

        forward = _analyzer(dependencies).elide(_requests("A", "B"))
        backward = _analyzer(dependencies).elide(_requests("B", "A"))

        assert [r.package_id for r in forward.kept] == ["A"]
        assert [r.package_id for r in backward.kept] == ["B"]

    def test_request_reached_through_later_kept_cycle(self):
        requests = _requests("C", "A", "B")

        result = _analyzer({"A": ("B",), "B": ("A", "C")}).elide(requests)

        assert [r.package_id for r in result.kept] == ["A"]
        assert sorted(result.elided) == ["B", "C"]

    def test_cycle_reached_from_outside_is_elided(self):
        result = _analyzer({"X": ("B",), "B": ("C",), "C": ("B",)}).elide(_requests("B", "C", "X"))

        assert [r.package_id for r in result.kept] == ["X"]

    def test_essential_packages_never_elided(self):
        requests = _requests("Foo", "coverlet.collector", "StyleCop.Analyzers")

        result = _analyzer({"Foo": ("coverlet.collector", "StyleCop.Analyzers")}).elide(requests)

        assert result.elided == []

    def test_unrelated_requests_all_kept(self):
        result = _analyzer({"A": ("Z",)}).elide(_requests("A", "B"))

        assert result.elided == []
        assert [(e.from_package, e.to_package) for e in result.edges] == [("A", "z")]

    def test_registry_failure_elides_nothing(self):
        analyzer = TransitiveElisionAnalyzer(BrokenRegistry(versions={"A": "1.0.0"}))

        result = analyzer.elide(_requests("A", "B"))

        assert result.elided == []
        assert len(result.warnings) == 2

    def test_sibling_closures(self):
        result = _analyzer({"X": ("Y",)}).elide(
            _requests("Serilog", "Newtonsoft.Json"), sibling_closures=[{"Newtonsoft.Json"}],
        )

        assert result.elided == ["Newtonsoft.Json"]


class TestElideFromSiblings:
    def test_supplied_ids_marked(self):
        requests = _requests("Newtonsoft.Json", "Serilog")

        elided = _analyzer({"X": ()}).elide_from_siblings(requests, {"newtonsoft.json"})

        assert elided == ["Newtonsoft.Json"]
        assert requests[0].is_transitive
        assert not requests[1].is_transitive

    def test_essential_and_already_transitive_skipped(self):
        requests = _requests("Microsoft.NET.Test.Sdk", "Castle.Core")
        requests[1].is_transitive = True

        elided = _analyzer({"X": ()}).elide_from_siblings(
            requests, {"microsoft.net.test.sdk", "castle.core"},
        )

        assert elided == []
