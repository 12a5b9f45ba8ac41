"""Central package management manifest (``Directory.Packages.props``).

One ``PackageVersion`` per package id across the successful projects,
classified by static name rules.  Analyzer and build-tool packages
become ``GlobalPackageReference`` entries that apply to every project.
Pins already present in an existing manifest are carried over; this
run's versions replace them only for the ids it migrates.
"""

import logging
import os
import xml.etree.ElementTree as ET
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set

from ...errors import ParseError, RegistryLookupError
from ..models import PackageRequest, VersionResolution
from ..target import SdkProject, TargetPackageReference
from .registry import RegistryClient

logger = logging.getLogger(__name__)

MANIFEST_FILE_NAME = "Directory.Packages.props"


class PackageType(str, Enum):
    RUNTIME = "Runtime"
    MICROSOFT_RUNTIME = "MicrosoftRuntime"
    THIRD_PARTY_RUNTIME = "ThirdPartyRuntime"
    ANALYZER = "Analyzer"
    BUILD_TOOL = "BuildTool"
    TESTING = "Testing"
    DEVELOPMENT_ONLY = "DevelopmentOnly"


# Emission order in the manifest; lower first.
PRIORITY: Dict[PackageType, int] = {
    PackageType.MICROSOFT_RUNTIME: 1,
    PackageType.RUNTIME: 2,
    PackageType.THIRD_PARTY_RUNTIME: 3,
    PackageType.TESTING: 4,
    PackageType.BUILD_TOOL: 5,
    PackageType.ANALYZER: 6,
    PackageType.DEVELOPMENT_ONLY: 7,
}

GROUP_LABELS: Dict[PackageType, str] = {
    PackageType.MICROSOFT_RUNTIME: "Microsoft and System packages",
    PackageType.RUNTIME: "Runtime packages",
    PackageType.THIRD_PARTY_RUNTIME: "Third-party runtime packages",
    PackageType.TESTING: "Testing packages",
    PackageType.BUILD_TOOL: "Build tools (applied to every project)",
    PackageType.ANALYZER: "Analyzers (applied to every project)",
    PackageType.DEVELOPMENT_ONLY: "Development-time packages",
}

GLOBAL_TYPES = frozenset({PackageType.ANALYZER, PackageType.BUILD_TOOL})


def _lower(names: Iterable[str]) -> frozenset:
    return frozenset(n.lower() for n in names)


ANALYZER_PACKAGES = _lower([
    "StyleCop.Analyzers", "SonarAnalyzer.CSharp", "Microsoft.CodeAnalysis.NetAnalyzers",
    "Microsoft.CodeAnalysis.FxCopAnalyzers", "Microsoft.CodeAnalysis.Analyzers",
    "Roslynator.Analyzers", "Microsoft.VisualStudio.Threading.Analyzers",
    "Microsoft.CodeAnalysis.BannedApiAnalyzers", "Microsoft.CodeAnalysis.PublicApiAnalyzers",
    "AsyncUsageAnalyzers", "Meziantou.Analyzer", "SecurityCodeScan.VS2019",
])

BUILD_TOOL_PACKAGES = _lower([
    "Microsoft.Build", "MSBuild.Sdk.Extras", "Nerdbank.GitVersioning", "GitVersion.MsBuild",
    "Microsoft.CodeCoverage", "ReportGenerator",
])

TESTING_PACKAGES = _lower([
    "Microsoft.NET.Test.Sdk", "xunit", "xunit.runner.visualstudio", "xunit.runner.console",
    "NUnit", "NUnit3TestAdapter", "MSTest.TestAdapter", "MSTest.TestFramework",
    "Microsoft.TestPlatform.TestHost", "coverlet.collector", "coverlet.msbuild", "Moq",
    "NSubstitute", "FluentAssertions", "Shouldly", "Microsoft.EntityFrameworkCore.InMemory",
])

THIRD_PARTY_RUNTIME_PREFIXES = tuple(p.lower() for p in (
    "Newtonsoft.Json", "Serilog", "AutoMapper", "FluentValidation", "MediatR", "Polly",
    "Dapper", "StackExchange.Redis", "MongoDB.Driver", "MySql.Data", "Npgsql",
    "Oracle.ManagedDataAccess",
))

DEVELOPMENT_ONLY_PACKAGES = _lower([
    "Microsoft.EntityFrameworkCore.Tools", "Microsoft.EntityFrameworkCore.Design",
    "Microsoft.VisualStudio.Web.CodeGeneration.Design", "Swashbuckle.AspNetCore",
    "Microsoft.AspNetCore.Mvc.Razor.RuntimeCompilation",
])

# (id prefix, note); first match wins.
SPECIAL_HANDLING_NOTES = (
    ("microsoft.entityframeworkcore",
     "Entity Framework Core packages may require different versions for .NET Framework "
     "and modern .NET targets"),
    ("microsoft.aspnetcore", "ASP.NET Core packages should use framework-specific versions"),
    ("microsoft.aspnet.", "ASP.NET (System.Web) packages only work on .NET Framework targets"),
    ("system.data.", "Data access packages differ between .NET Framework and modern .NET"),
    ("entityframework", "Entity Framework 6 and EF Core are not interchangeable; verify the data layer"),
    ("automapper", "AutoMapper has breaking changes between major versions - verify compatibility"),
    ("mediatr", "MediatR has significant API changes between major versions"),
    ("fluentvalidation", "FluentValidation has breaking changes between major versions"),
    ("serilog", "Serilog sinks must match the Serilog major version"),
)


@dataclass(frozen=True)
class PackageClassification:
    package_id: str
    package_type: PackageType
    is_global: bool
    priority: int
    special_handling: Optional[str] = None


def _package_type(package_id: str) -> PackageType:
    key = package_id.lower()
    if key in ANALYZER_PACKAGES or key.endswith((".analyzers", ".codeanalysis")):
        return PackageType.ANALYZER
    if (
        key in BUILD_TOOL_PACKAGES
        or key.startswith(("microsoft.build.", "microsoft.sourcelink."))
        or "msbuild" in key
    ):
        return PackageType.BUILD_TOOL
    if (
        key in TESTING_PACKAGES
        or any(marker in key for marker in ("test", "mock", "fake"))
        or key.endswith(".testing")
    ):
        return PackageType.TESTING
    if key.startswith(("microsoft.", "system.", "azure.")):
        return PackageType.MICROSOFT_RUNTIME
    if key.startswith(THIRD_PARTY_RUNTIME_PREFIXES):
        return PackageType.THIRD_PARTY_RUNTIME
    if key in DEVELOPMENT_ONLY_PACKAGES or key.endswith((".design", ".tools")):
        return PackageType.DEVELOPMENT_ONLY
    return PackageType.RUNTIME


def classify_package(package_id: str) -> PackageClassification:
    package_type = _package_type(package_id)
    key = package_id.lower()
    note = next((text for prefix, text in SPECIAL_HANDLING_NOTES if key.startswith(prefix)), None)
    return PackageClassification(
        package_id=package_id,
        package_type=package_type,
        is_global=package_type in GLOBAL_TYPES,
        priority=PRIORITY[package_type],
        special_handling=note,
    )


@dataclass(frozen=True)
class ExistingPackage:
    """A pin read from a manifest already on disk."""

    package_id: str
    version: str
    is_global: bool = False


def read_existing_manifest(path: str) -> List[ExistingPackage]:
    """``PackageVersion`` and ``GlobalPackageReference`` pins of *path*.

    A missing file (or a directory at that path) yields ``[]``.  Raises
    ``ParseError`` when the file exists but cannot be read, so it is never
    overwritten blindly.
    """
    if not os.path.isfile(path):
        return []
    try:
        root = ET.parse(path).getroot()
    except (ET.ParseError, OSError) as e:
        raise ParseError(path, f"Existing manifest could not be read: {e}") from e

    packages = []
    for element in root.iter():
        tag = element.tag.rsplit("}", 1)[-1] if isinstance(element.tag, str) else ""
        if tag not in ("PackageVersion", "GlobalPackageReference"):
            continue
        package_id = element.get("Include")
        version = element.get("Version")
        if package_id and version:
            packages.append(ExistingPackage(package_id, version, tag == "GlobalPackageReference"))
    logger.info("Existing manifest %s pins %d packages", path, len(packages))
    return packages


@dataclass
class ManifestEntry:
    package_id: str
    version: str
    classification: PackageClassification
    projects: List[str] = field(default_factory=list)


@dataclass
class ManifestResult:
    entries: List[ManifestEntry] = field(default_factory=list)
    special_handling: Dict[str, str] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)

    @property
    def covered_ids(self) -> Set[str]:
        return {e.package_id.lower() for e in self.entries}

    @property
    def global_ids(self) -> Set[str]:
        return {e.package_id.lower() for e in self.entries if e.classification.is_global}

    def version_of(self, package_id: str) -> Optional[str]:
        for entry in self.entries:
            if entry.package_id.lower() == package_id.lower():
                return entry.version
        return None


class CentralManifestGenerator:
    """Builds the manifest and strips versions from project declarations."""

    def __init__(self, registry: Optional[RegistryClient] = None):
        self.registry = registry

    def generate(
        self,
        resolutions: Iterable[VersionResolution],
        requests: Iterable[PackageRequest],
        existing: Iterable[ExistingPackage] = (),
    ) -> ManifestResult:
        """One entry per package id among *requests* (successful projects only).

        *existing* pins for ids no request names are kept unchanged; for the
        other ids this run's version wins and the element kind is kept.
        """
        resolved = {r.package_id.lower(): r.resolved_version for r in resolutions}
        previous: "OrderedDict[str, ExistingPackage]" = OrderedDict()
        for package in existing:
            previous.setdefault(package.package_id.lower(), package)
        result = ManifestResult()

        grouped: "OrderedDict[str, List[PackageRequest]]" = OrderedDict()
        for request in requests:
            if request.is_transitive:
                continue
            grouped.setdefault(request.key, []).append(request)

        for key, package in previous.items():
            if key in grouped:
                continue
            result.entries.append(ManifestEntry(
                package_id=package.package_id,
                version=package.version,
                classification=replace(classify_package(package.package_id), is_global=package.is_global),
            ))

        for key, group in grouped.items():
            package_id = group[0].package_id
            prior = previous.get(key)
            version = resolved.get(key)
            if version is None:
                pinned = [r.version for r in group if r.has_pinned_version]
                if pinned:
                    version = pinned[0]
                elif prior is not None:
                    version = prior.version
                else:
                    version = self._pin_floating(package_id, result)
            if prior is not None and prior.version != version:
                result.warnings.append(
                    f"Existing manifest pin {package_id} {prior.version} replaced by {version}"
                )

            classification = classify_package(package_id)
            if prior is not None:
                classification = replace(classification, is_global=prior.is_global)
            result.entries.append(ManifestEntry(
                package_id=package_id,
                version=version,
                classification=classification,
                projects=sorted({r.requesting_project for r in group}),
            ))
            if classification.special_handling:
                result.special_handling[package_id] = classification.special_handling

        result.entries.sort(key=lambda e: (e.classification.priority, e.package_id.lower()))
        logger.info(
            "Central manifest: %d packages (%d global, %d need special handling)",
            len(result.entries), len(result.global_ids), len(result.special_handling),
        )
        return result

    def _pin_floating(self, package_id: str, result: ManifestResult) -> str:
        version = None
        if self.registry is not None:
            try:
                version = self.registry.get_latest_version(package_id)
            except RegistryLookupError as e:
                logger.warning("Could not pin %s: %s", package_id, e)
        if version is None:
            result.warnings.append(
                f"No concrete version found for {package_id}; the manifest keeps a floating version"
            )
            return "*"
        return version

    @staticmethod
    def render(result: ManifestResult) -> str:
        root = ET.Element("Project")
        root.append(ET.Comment(
            " Central package versions. Projects reference packages without a Version attribute. "
        ))
        props = ET.SubElement(root, "PropertyGroup")
        ET.SubElement(props, "ManagePackageVersionsCentrally").text = "true"
        ET.SubElement(props, "CentralPackageTransitivePinningEnabled").text = "true"

        by_type: "OrderedDict[PackageType, List[ManifestEntry]]" = OrderedDict()
        for entry in result.entries:
            by_type.setdefault(entry.classification.package_type, []).append(entry)

        for package_type in sorted(by_type, key=lambda t: PRIORITY[t]):
            root.append(ET.Comment(f" {GROUP_LABELS[package_type]} "))
            group = ET.SubElement(root, "ItemGroup")
            for entry in by_type[package_type]:
                tag = "GlobalPackageReference" if entry.classification.is_global else "PackageVersion"
                ET.SubElement(group, tag, {"Include": entry.package_id, "Version": entry.version})

        ET.indent(root, space="  ")
        return ET.tostring(root, encoding="unicode") + "\n"

    @staticmethod
    def apply_to_project(project: SdkProject, result: ManifestResult) -> SdkProject:
        """Drop version attributes of covered ids; drop global ids entirely."""
        covered = result.covered_ids
        global_ids = result.global_ids
        packages = []
        for ref in project.package_references:
            key = ref.package_id.lower()
            if key in global_ids:
                continue
            if key in covered:
                packages.append(replace(ref, version=None))
            else:
                packages.append(ref)
        return project.with_packages(tuple(packages))
