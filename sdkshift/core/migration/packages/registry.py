"""Package registry clients.

``RegistryClient`` is the capability the migrator and elision analyzer
depend on.  ``NuGetRegistryClient`` talks to a NuGet v3 feed over httpx;
``OfflineRegistryClient`` answers from static tables with no network.

Registry failures surface as ``RegistryLookupError`` immediately; there
is no retry.
"""

import logging
import threading
from abc import ABC, abstractmethod
from collections import deque
from typing import Dict, List, Optional, Set, Tuple

import httpx

from ...errors import RegistryLookupError
from ..models import PackageResolution
from .assemblies import additional_packages, lookup_assembly
from .versions import is_prerelease, parse_version, try_parse_version

logger = logging.getLogger(__name__)

DEFAULT_NUGET_SOURCE = "https://api.nuget.org/v3/index.json"
DEFAULT_TIMEOUT = 15.0

Dependencies = Dict[str, Optional[str]]  # package id -> minimum version


class RegistryClient(ABC):
    """Capability interface over a package registry.

    Subclasses supply direct dependencies; the transitive closure walk,
    with its visited set and per-instance cache, lives here.
    """

    def __init__(self):
        self._closure_cache: Dict[Tuple[str, str, str], Set[str]] = {}
        self._cache_lock = threading.Lock()

    @abstractmethod
    def resolve_assembly_to_package(self, assembly_name: str) -> Optional[PackageResolution]:
        """Package providing *assembly_name*, or ``None`` when unknown."""

    @abstractmethod
    def get_dependencies(
        self, package_id: str, version: Optional[str] = None, framework: Optional[str] = None
    ) -> Dependencies:
        """Direct dependencies of one package version."""

    @abstractmethod
    def get_latest_version(self, package_id: str, include_prerelease: bool = False) -> Optional[str]:
        ...

    def get_dependency_closure(
        self, package_id: str, version: Optional[str] = None, framework: Optional[str] = None
    ) -> Set[str]:
        """Lower-cased ids reachable from *package_id*, excluding itself."""
        key = (package_id.lower(), version or "", framework or "")
        with self._cache_lock:
            cached = self._closure_cache.get(key)
        if cached is not None:
            return set(cached)

        root = package_id.lower()
        visited: Set[str] = {root}
        queue = deque([(package_id, version)])
        while queue:
            current_id, current_version = queue.popleft()
            for dep_id, dep_version in self.get_dependencies(current_id, current_version, framework).items():
                dep_key = dep_id.lower()
                if dep_key in visited:
                    continue
                visited.add(dep_key)
                queue.append((dep_id, dep_version))

        closure = visited - {root}
        with self._cache_lock:
            self._closure_cache[key] = closure
        return set(closure)


# ═══════════════════════════════════════════════════════════════════
# NuGet v3
# ═══════════════════════════════════════════════════════════════════


_FRAMEWORK_PREFIXES = (
    (".netframework", "net"),
    (".netstandard", "netstandard"),
    (".netcoreapp", "netcoreapp"),
)


def _short_framework(name: str) -> str:
    """``.NETFramework4.5`` -> ``net45``; ``.NETStandard2.0`` -> ``netstandard2.0``."""
    lowered = (name or "").strip().lower()
    for long_name, short_name in _FRAMEWORK_PREFIXES:
        if lowered.startswith(long_name):
            version = lowered[len(long_name):]
            if short_name == "net":
                return "net" + version.replace(".", "")
            return short_name + version
    return lowered


def _range_floor(version_range: Optional[str]) -> Optional[str]:
    """Lower bound of a NuGet version range, or ``None`` when open."""
    if not version_range:
        return None
    text = version_range.strip().lstrip("[(").split(",")[0].rstrip("])").strip()
    return text or None


class NuGetRegistryClient(RegistryClient):
    """Client for a NuGet v3 feed.

    Uses the service index to locate the flat container (versions) and
    the registration hive (dependency groups), and the search service for
    assembly-name lookups.
    """

    def __init__(
        self,
        source: str = DEFAULT_NUGET_SOURCE,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        super().__init__()
        self.source = source
        self.timeout = timeout
        self._transport = transport
        self._resources: Optional[Dict[str, str]] = None
        self._cache: Dict[Tuple, object] = {}
        self._lock = threading.Lock()

    def _client(self) -> httpx.Client:
        return httpx.Client(timeout=self.timeout, transport=self._transport, follow_redirects=True)

    def _get_json(self, url: str, params: Optional[Dict[str, str]] = None) -> Optional[dict]:
        """GET *url* as JSON; ``None`` on 404, ``RegistryLookupError`` otherwise."""
        try:
            with self._client() as client:
                resp = client.get(url, params=params)
                if resp.status_code == 404:
                    return None
                resp.raise_for_status()
                return resp.json()
        except httpx.HTTPError as e:
            raise RegistryLookupError(f"Registry request failed for {url}: {e}") from e
        except ValueError as e:
            raise RegistryLookupError(f"Registry returned invalid JSON for {url}") from e

    def _resource(self, type_prefix: str) -> str:
        with self._lock:
            resources = self._resources
        if resources is None:
            index = self._get_json(self.source)
            if index is None:
                raise RegistryLookupError(f"Service index not found at {self.source}")
            resources = {}
            for entry in index.get("resources", []):
                kind = entry.get("@type", "")
                resources.setdefault(kind, entry.get("@id", ""))
            with self._lock:
                self._resources = resources
        for kind, url in resources.items():
            if kind == type_prefix or kind.startswith(type_prefix + "/"):
                return url if url.endswith("/") or "?" in url else url + "/"
        raise RegistryLookupError(f"Service index at {self.source} has no {type_prefix} resource")

    def _cached(self, key: Tuple, loader):
        with self._lock:
            if key in self._cache:
                return self._cache[key]
        value = loader()
        with self._lock:
            self._cache[key] = value
        return value

    # ── Versions ─────────────────────────────────────────────────

    def get_all_versions(self, package_id: str) -> List[str]:
        def load() -> List[str]:
            base = self._resource("PackageBaseAddress")
            data = self._get_json(f"{base}{package_id.lower()}/index.json")
            return list(data.get("versions", [])) if data else []

        return self._cached(("versions", package_id.lower()), load)

    def get_latest_version(self, package_id: str, include_prerelease: bool = False) -> Optional[str]:
        candidates = [
            v for v in self.get_all_versions(package_id)
            if try_parse_version(v) is not None and (include_prerelease or not is_prerelease(v))
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda v: parse_version(v).sort_key())

    # ── Dependencies ─────────────────────────────────────────────

    def get_dependencies(
        self, package_id: str, version: Optional[str] = None, framework: Optional[str] = None
    ) -> Dependencies:
        if not version:
            version = self.get_latest_version(package_id)
            if version is None:
                logger.debug("No versions of %s on %s", package_id, self.source)
                return {}
        return self._cached(
            ("deps", package_id.lower(), version.lower(), framework or ""),
            lambda: self._load_dependencies(package_id, version, framework),
        )

    def _load_dependencies(self, package_id: str, version: str, framework: Optional[str]) -> Dependencies:
        base = self._resource("RegistrationsBaseUrl")
        leaf = self._get_json(f"{base}{package_id.lower()}/{version.lower()}.json")
        if leaf is None:
            return {}
        catalog = leaf.get("catalogEntry")
        if isinstance(catalog, str):
            catalog = self._get_json(catalog)
        if not catalog:
            return {}

        groups = catalog.get("dependencyGroups") or []
        chosen = groups
        if framework:
            wanted = framework.lower()
            exact = [g for g in groups if _short_framework(g.get("targetFramework", "")) == wanted]
            if exact:
                chosen = exact
            else:
                generic = [g for g in groups if not g.get("targetFramework")]
                chosen = generic or groups

        deps: Dependencies = {}
        for group in chosen:
            for dep in group.get("dependencies") or []:
                dep_id = dep.get("id")
                if dep_id:
                    deps.setdefault(dep_id, _range_floor(dep.get("range")))
        return deps

    # ── Assembly lookup ──────────────────────────────────────────

    def resolve_assembly_to_package(self, assembly_name: str) -> Optional[PackageResolution]:
        package_id = lookup_assembly(assembly_name)
        if package_id is None:
            package_id = self._search_exact(assembly_name)
        if package_id is None:
            return None
        return PackageResolution(
            package_id=package_id,
            version=self.get_latest_version(package_id),
            additional_packages=tuple(
                (extra, self.get_latest_version(extra)) for extra in additional_packages(package_id)
            ),
        )

    def _search_exact(self, name: str) -> Optional[str]:
        search = self._resource("SearchQueryService").rstrip("/")
        data = self._get_json(search, params={"q": f"packageid:{name}", "take": "1"})
        for hit in (data or {}).get("data", []):
            if hit.get("id", "").lower() == name.lower():
                return hit["id"]
        return None


# ═══════════════════════════════════════════════════════════════════
# Offline
# ═══════════════════════════════════════════════════════════════════


OFFLINE_VERSIONS: Dict[str, str] = {
    "MSTest.TestFramework": "3.1.1",
    "MSTest.TestAdapter": "3.1.1",
    "xunit": "2.6.6",
    "xunit.runner.visualstudio": "2.5.6",
    "NUnit": "3.13.3",
    "NUnit3TestAdapter": "4.5.0",
    "Microsoft.NET.Test.Sdk": "17.8.0",
    "Moq": "4.20.70",
    "Castle.Core": "5.1.1",
    "FluentAssertions": "6.12.0",
    "log4net": "2.0.15",
    "Serilog": "3.1.1",
    "NLog": "5.2.7",
    "Newtonsoft.Json": "13.0.3",
    "System.Text.Json": "8.0.0",
    "EntityFramework": "6.4.4",
    "Microsoft.EntityFrameworkCore": "8.0.0",
    "Dapper": "2.1.24",
    "Microsoft.Data.SqlClient": "5.1.2",
    "System.Data.SqlClient": "4.8.6",
    "Microsoft.AspNet.Mvc": "5.2.9",
    "Microsoft.AspNet.WebApi.Core": "5.2.9",
    "Microsoft.AspNet.WebApi.WebHost": "5.2.9",
    "Microsoft.AspNet.WebApi.Client": "5.2.9",
    "Unity": "5.11.10",
    "Ninject": "3.3.6",
    "SimpleInjector": "5.4.3",
    "CommonServiceLocator": "2.0.7",
    "AutoMapper": "12.0.1",
    "FluentValidation": "11.8.1",
    "Polly": "8.2.0",
    "MediatR": "12.2.0",
    "StackExchange.Redis": "2.7.10",
    "RabbitMQ.Client": "6.8.1",
    "System.Configuration.ConfigurationManager": "8.0.0",
    "System.Drawing.Common": "8.0.0",
}

OFFLINE_DEPENDENCIES: Dict[str, Tuple[str, ...]] = {
    "Microsoft.AspNetCore.App": (
        "Microsoft.Extensions.DependencyInjection", "Microsoft.Extensions.Logging",
        "Microsoft.Extensions.Configuration", "Newtonsoft.Json",
    ),
    "Microsoft.EntityFrameworkCore": (
        "Microsoft.EntityFrameworkCore.Abstractions", "Microsoft.EntityFrameworkCore.Analyzers",
        "Microsoft.Extensions.Caching.Memory", "Microsoft.Extensions.DependencyInjection",
        "Microsoft.Extensions.Logging",
    ),
    "Microsoft.EntityFrameworkCore.SqlServer": (
        "Microsoft.EntityFrameworkCore.Relational", "Microsoft.Data.SqlClient",
    ),
    "Microsoft.EntityFrameworkCore.Relational": ("Microsoft.EntityFrameworkCore",),
    "Microsoft.Extensions.Logging": (
        "Microsoft.Extensions.Logging.Abstractions", "Microsoft.Extensions.DependencyInjection.Abstractions",
        "Microsoft.Extensions.Options",
    ),
    "Microsoft.Extensions.DependencyInjection": ("Microsoft.Extensions.DependencyInjection.Abstractions",),
    "Microsoft.AspNet.Mvc": ("Microsoft.AspNet.Razor", "Microsoft.AspNet.WebPages"),
    "Microsoft.AspNet.WebPages": ("Microsoft.AspNet.Razor", "Microsoft.Web.Infrastructure"),
    "Microsoft.AspNet.WebApi.WebHost": ("Microsoft.AspNet.WebApi.Core",),
    "Microsoft.AspNet.WebApi.Core": ("Microsoft.AspNet.WebApi.Client",),
    "Microsoft.AspNet.WebApi.Client": ("Newtonsoft.Json",),
    "NUnit": ("NUnit.Framework",),
    "xunit": (
        "xunit.abstractions", "xunit.analyzers", "xunit.assert", "xunit.core",
        "xunit.extensibility.core", "xunit.extensibility.execution",
    ),
    "xunit.core": ("xunit.extensibility.core", "xunit.extensibility.execution"),
    "Moq": ("Castle.Core",),
    "Microsoft.NET.Test.Sdk": ("Microsoft.CodeCoverage", "Microsoft.TestPlatform.TestHost"),
}

_OFFLINE_ASSEMBLY_OVERRIDES: Dict[str, str] = {
    "system.drawing": "System.Drawing.Common",
    "system.windows.forms": "System.Windows.Forms",
}


class OfflineRegistryClient(RegistryClient):
    """Registry answers from built-in tables only."""

    def __init__(
        self,
        versions: Optional[Dict[str, str]] = None,
        dependencies: Optional[Dict[str, Tuple[str, ...]]] = None,
    ):
        super().__init__()
        self._versions = {k.lower(): v for k, v in (versions or OFFLINE_VERSIONS).items()}
        self._ids = {k.lower(): k for k in (versions or OFFLINE_VERSIONS)}
        self._dependencies = {
            k.lower(): tuple(v) for k, v in (dependencies or OFFLINE_DEPENDENCIES).items()
        }
        logger.info("Using offline registry with %d known package versions", len(self._versions))

    def get_latest_version(self, package_id: str, include_prerelease: bool = False) -> Optional[str]:
        version = self._versions.get(package_id.lower())
        if version is None:
            logger.debug("Package %s not in the offline table", package_id)
        return version

    def get_dependencies(
        self, package_id: str, version: Optional[str] = None, framework: Optional[str] = None
    ) -> Dependencies:
        return {dep: None for dep in self._dependencies.get(package_id.lower(), ())}

    def resolve_assembly_to_package(self, assembly_name: str) -> Optional[PackageResolution]:
        key = assembly_name.strip().lower()
        package_id = _OFFLINE_ASSEMBLY_OVERRIDES.get(key) or lookup_assembly(key) or self._ids.get(key)
        if package_id is None:
            logger.warning("Could not resolve assembly %s to a package in offline mode", assembly_name)
            return None
        return PackageResolution(
            package_id=package_id,
            version=self.get_latest_version(package_id),
            additional_packages=tuple(
                (extra, self.get_latest_version(extra)) for extra in additional_packages(package_id)
            ),
        )
