"""Unit tests for registry clients.

Tests cover:
- NuGet v3 service index, flat container and registration lookups
- Framework-specific dependency groups and closure walking
- 404 handling and RegistryLookupError on server errors
- Offline client tables and assembly overrides
"""

import httpx
import pytest

from sdkshift.core.errors import RegistryLookupError
from sdkshift.core.migration.packages.registry import NuGetRegistryClient, OfflineRegistryClient

SOURCE = "https://feed.test/v3/index.json"


# ── Fixtures ─────────────────────────────────────────────────────────────


SERVICE_INDEX = {
    "version": "3.0.0",
    "resources": [
        {"@id": "https://feed.test/flat/", "@type": "PackageBaseAddress/3.0.0"},
        {"@id": "https://feed.test/reg", "@type": "RegistrationsBaseUrl/3.6.0"},
        {"@id": "https://feed.test/search", "@type": "SearchQueryService"},
    ],
}

FOO_LEAF = {
    "catalogEntry": {
        "dependencyGroups": [
            {"targetFramework": ".NETStandard2.0",
             "dependencies": [{"id": "Bar", "range": "[1.0.0, )"}]},
            {"targetFramework": ".NETFramework4.5",
             "dependencies": [{"id": "Baz", "range": "[2.0.0, )"}]},
        ],
    },
}

ROUTES = {
    "/v3/index.json": SERVICE_INDEX,
    "/flat/foo/index.json": {"versions": ["1.0.0", "1.1.0", "2.0.0-beta"]},
    "/flat/acme.widgets/index.json": {"versions": ["4.2.0"]},
    "/reg/foo/1.1.0.json": FOO_LEAF,
    "/search": {"data": [{"id": "Acme.Widgets", "version": "4.2.0"}]},
}


def _client(routes=None, status=None):
    calls = []
    table = ROUTES if routes is None else routes

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if status is not None and request.url.path != "/v3/index.json":
            return httpx.Response(status)
        body = table.get(request.url.path)
        if body is None:
            return httpx.Response(404)
        return httpx.Response(200, json=body)

    client = NuGetRegistryClient(source=SOURCE, transport=httpx.MockTransport(handler))
    return client, calls


# ── Tests: NuGet ─────────────────────────────────────────────────────────


class TestNuGetVersions:
    def test_latest_stable(self):
        client, _ = _client()

        assert client.get_latest_version("Foo") == "1.1.0"
        assert client.get_latest_version("Foo", include_prerelease=True) == "2.0.0-beta"

    def test_unknown_package(self):
        client, _ = _client()

        assert client.get_latest_version("Missing") is None

    def test_versions_are_cached(self):
        client, calls = _client()

        client.get_all_versions("Foo")
        client.get_all_versions("foo")

        assert calls.count("/flat/foo/index.json") == 1
        assert calls.count("/v3/index.json") == 1

    def test_server_error_raises(self):
        client, _ = _client(status=500)

        with pytest.raises(RegistryLookupError):
            client.get_latest_version("Foo")

    def test_missing_service_index(self):
        client, _ = _client(routes={})

        with pytest.raises(RegistryLookupError):
            client.get_latest_version("Foo")


class TestNuGetDependencies:
    def test_framework_group_selected(self):
        client, _ = _client()

        assert client.get_dependencies("Foo", "1.1.0", "netstandard2.0") == {"Bar": "1.0.0"}
        assert client.get_dependencies("Foo", "1.1.0", "net45") == {"Baz": "2.0.0"}

    def test_no_framework_unions_groups(self):
        client, _ = _client()

        assert set(client.get_dependencies("Foo", "1.1.0")) == {"Bar", "Baz"}

    def test_latest_used_when_version_missing(self):
        client, _ = _client()

        assert client.get_dependencies("Foo", framework="netstandard2.0") == {"Bar": "1.0.0"}

    def test_closure(self):
        client, _ = _client()

        assert client.get_dependency_closure("Foo", "1.1.0", "netstandard2.0") == {"bar"}


class TestNuGetAssemblyLookup:
    def test_static_table_first(self):
        client, calls = _client(routes={**ROUTES, "/flat/newtonsoft.json/index.json": {"versions": ["13.0.3"]}})

        resolution = client.resolve_assembly_to_package("Newtonsoft.Json")

        assert (resolution.package_id, resolution.version) == ("Newtonsoft.Json", "13.0.3")
        assert "/search" not in calls

    def test_search_fallback(self):
        client, _ = _client()

        resolution = client.resolve_assembly_to_package("Acme.Widgets")

        assert (resolution.package_id, resolution.version) == ("Acme.Widgets", "4.2.0")

    def test_not_found(self):
        client, _ = _client()

        assert client.resolve_assembly_to_package("Nothing.Here") is None


# ── Tests: Offline ───────────────────────────────────────────────────────


class TestOfflineRegistry:
    def test_default_tables(self):
        client = OfflineRegistryClient()

        assert client.get_latest_version("newtonsoft.json") == "13.0.3"
        assert client.get_dependency_closure("Moq") == {"castle.core"}

    def test_assembly_override(self):
        resolution = OfflineRegistryClient().resolve_assembly_to_package("System.Drawing")

        assert (resolution.package_id, resolution.version) == ("System.Drawing.Common", "8.0.0")

    def test_companion_packages(self):
        resolution = OfflineRegistryClient().resolve_assembly_to_package("nunit.framework")

        assert resolution.package_id == "NUnit"
        assert resolution.additional_packages == (("NUnit3TestAdapter", "4.5.0"),)

    def test_unknown_assembly(self):
        assert OfflineRegistryClient().resolve_assembly_to_package("Acme.Internal") is None
