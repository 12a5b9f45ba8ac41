"""Unit tests for the central package manifest."""

import xml.etree.ElementTree as ET

import pytest

from sdkshift.core.errors import ParseError

from sdkshift.core.migration.models import PackageRequest, VersionResolution
from sdkshift.core.migration.packages.manifest import (
    CentralManifestGenerator,
    ExistingPackage,
    PackageType,
    classify_package,
    read_existing_manifest,
)
from sdkshift.core.migration.packages.registry import OfflineRegistryClient
from sdkshift.core.migration.target import SdkProject, TargetPackageReference


def _requests():
    elided = PackageRequest("Castle.Core", "5.1.1", "A.csproj", is_transitive=True)
    return [
        PackageRequest("Newtonsoft.Json", "12.0.3", "A.csproj"),
        PackageRequest("Newtonsoft.Json", "13.0.3", "B.csproj"),
        PackageRequest("StyleCop.Analyzers", "1.1.118", "A.csproj", private_assets="all"),
        PackageRequest("xunit", "2.6.6", "B.csproj"),
        elided,
    ]


def _resolutions():
    return [VersionResolution("Newtonsoft.Json", "13.0.3", "UseHighest", "Highest requested version")]


class TestClassifyPackage:
    def test_types(self):
        assert classify_package("StyleCop.Analyzers").package_type == PackageType.ANALYZER
        assert classify_package("Nerdbank.GitVersioning").package_type == PackageType.BUILD_TOOL
        assert classify_package("xunit").package_type == PackageType.TESTING
        assert classify_package("Microsoft.Extensions.Logging").package_type == PackageType.MICROSOFT_RUNTIME
        assert classify_package("Newtonsoft.Json").package_type == PackageType.THIRD_PARTY_RUNTIME
        assert classify_package("Contoso.Design").package_type == PackageType.DEVELOPMENT_ONLY
        assert classify_package("Humanizer").package_type == PackageType.RUNTIME

    def test_global_and_special_handling(self):
        assert classify_package("StyleCop.Analyzers").is_global
        assert not classify_package("xunit").is_global
        assert "AutoMapper" in classify_package("AutoMapper").special_handling


class TestGenerate:
    def test_every_kept_request_has_one_entry(self):
        result = CentralManifestGenerator().generate(_resolutions(), _requests())

        ids = [e.package_id for e in result.entries]
        assert sorted(ids) == ["Newtonsoft.Json", "StyleCop.Analyzers", "xunit"]
        assert result.version_of("newtonsoft.json") == "13.0.3"
        assert result.global_ids == {"stylecop.analyzers"}

    def test_entries_ordered_by_priority(self):
        result = CentralManifestGenerator().generate(_resolutions(), _requests())

        assert [e.package_id for e in result.entries] == ["Newtonsoft.Json", "xunit", "StyleCop.Analyzers"]

    def test_floating_version_pinned_from_registry(self):
        requests = [PackageRequest("Serilog", "*", "A.csproj")]
        registry = OfflineRegistryClient(versions={"Serilog": "3.1.1"}, dependencies={"x": ()})

        result = CentralManifestGenerator(registry).generate([], requests)

        assert result.version_of("Serilog") == "3.1.1"

    def test_floating_version_without_registry(self):
        result = CentralManifestGenerator().generate([], [PackageRequest("Serilog", "*", "A.csproj")])

        assert result.version_of("Serilog") == "*"
        assert result.warnings


class TestRenderAndApply:
    def test_render(self):
        result = CentralManifestGenerator().generate(_resolutions(), _requests())

        root = ET.fromstring(CentralManifestGenerator.render(result))

        assert root.find("PropertyGroup/ManagePackageVersionsCentrally").text == "true"
        versions = {e.get("Include"): e.get("Version") for e in root.iter("PackageVersion")}
        assert versions == {"Newtonsoft.Json": "13.0.3", "xunit": "2.6.6"}
        (analyzer,) = root.iter("GlobalPackageReference")
        assert analyzer.get("Include") == "StyleCop.Analyzers"

    def test_apply_strips_versions_and_globals(self):
        result = CentralManifestGenerator().generate(_resolutions(), _requests())
        project = SdkProject(sdk="Microsoft.NET.Sdk", package_references=(
            TargetPackageReference("Newtonsoft.Json", "12.0.3"),
            TargetPackageReference("StyleCop.Analyzers", "1.1.118", (("PrivateAssets", "all"),)),
            TargetPackageReference("Local.Only", "1.0.0"),
        ))

        updated = CentralManifestGenerator.apply_to_project(project, result)

        assert [(r.package_id, r.version) for r in updated.package_references] == [
            ("Newtonsoft.Json", None),
            ("Local.Only", "1.0.0"),
        ]


class TestExistingManifest:
    def test_read_pins(self, tmp_path):
        path = tmp_path / "Directory.Packages.props"
        path.write_text(
            '<Project xmlns="http://schemas.microsoft.com/developer/msbuild/2003"><ItemGroup>'
            '<PackageVersion Include="Serilog" Version="3.1.1" />'
            '<PackageVersion Include="NoVersion" />'
            '<GlobalPackageReference Include="Nerdbank.GitVersioning" Version="3.6.133" />'
            "</ItemGroup></Project>"
        )

        assert read_existing_manifest(str(path)) == [
            ExistingPackage("Serilog", "3.1.1"),
            ExistingPackage("Nerdbank.GitVersioning", "3.6.133", is_global=True),
        ]

    def test_missing_file(self, tmp_path):
        assert read_existing_manifest(str(tmp_path / "Directory.Packages.props")) == []

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "Directory.Packages.props"
        path.write_text("<Project><ItemGroup>")

        with pytest.raises(ParseError):
            read_existing_manifest(str(path))

    def test_untouched_pins_carried_over(self):
        existing = [ExistingPackage("Serilog", "3.1.1"), ExistingPackage("Newtonsoft.Json", "11.0.2")]

        result = CentralManifestGenerator().generate(_resolutions(), _requests(), existing)

        assert result.version_of("Serilog") == "3.1.1"
        assert result.version_of("Newtonsoft.Json") == "13.0.3"
        assert any("Newtonsoft.Json 11.0.2 replaced by 13.0.3" in w for w in result.warnings)

    def test_existing_pin_used_for_floating_request(self):
        result = CentralManifestGenerator().generate(
            [], [PackageRequest("Serilog", "*", "A.csproj")], [ExistingPackage("Serilog", "3.1.1")],
        )

        assert result.version_of("Serilog") == "3.1.1"
        assert result.warnings == []

    def test_element_kind_preserved(self):
        existing = [ExistingPackage("StyleCop.Analyzers", "1.1.118"), ExistingPackage("Humanizer", "2.14.1", is_global=True)]

        result = CentralManifestGenerator().generate(_resolutions(), _requests(), existing)
        root = ET.fromstring(CentralManifestGenerator.render(result))

        assert {e.get("Include") for e in root.iter("GlobalPackageReference")} == {"Humanizer"}
        assert "StyleCop.Analyzers" in {e.get("Include") for e in root.iter("PackageVersion")}
