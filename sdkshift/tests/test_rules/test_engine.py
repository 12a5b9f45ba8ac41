"""Unit tests for RuleEngine.transform.

Tests cover:
- Idempotence on SDK-style input and the structural validation failure
- Property table: removal, SDK-default elision, preservation, signing
- Multi-targeting and conditional group rewriting
- Item elision, Update re-declaration, ProjectReference cleanup
- Imports, hook targets, custom targets and preserved references
- AssemblyInfo and nuspec metadata folded into properties and queued for cleanup
- Round trip through the writer and provider
"""

from sdkshift.core.errors import ErrorKind
from sdkshift.core.migration.models import FileCleanup
from sdkshift.core.migration.rules import RuleEngine
from sdkshift.core.migration.writer import render_project
from sdkshift.core.project_model import (
    ImportEntry,
    ProjectItem,
    ProjectModel,
    ProjectModelProvider,
    PropertyEntry,
    TargetDefinition,
    TaskInvocation,
)


# ── Fixtures ──────────────────────────────────────────────────────────────


def _model(tmp_path, name="Contoso.Core.csproj", properties=None, items=None, **kwargs) -> ProjectModel:
    if properties is None:
        properties = [
            PropertyEntry("OutputType", "Library"),
            PropertyEntry("TargetFrameworkVersion", "v4.7.2"),
            PropertyEntry("AssemblyName", "Contoso.Core"),
            PropertyEntry("RootNamespace", "Contoso.Core"),
            PropertyEntry("ProjectGuid", "{5D2B9B8E-0000-4000-8000-000000000001}"),
            PropertyEntry("LangVersion", "latest"),
        ]
    return ProjectModel(
        path=str(tmp_path / name),
        properties=properties,
        items=items or [],
        property_group_count=1,
        **kwargs,
    )


def _target(tmp_path, **kwargs):
    outcome = RuleEngine().transform(_model(tmp_path, **kwargs))
    assert outcome.ok, outcome.error
    return outcome.value


def _all_items(target):
    return [item for group in target.item_groups for item in group.items]


# ── Tests: Guards ────────────────────────────────────────────────────────


class TestGuards:
    def test_sdk_style_input_is_a_no_op(self, tmp_path):
        model = _model(tmp_path, sdk="Microsoft.NET.Sdk")

        outcome = RuleEngine().transform(model)

        assert outcome.ok
        assert outcome.value.already_migrated is True
        assert outcome.value.target is None
        assert "already in SDK-style format" in outcome.value.change_log.notes[0]

    def test_missing_property_group_fails(self, tmp_path):
        model = ProjectModel(path=str(tmp_path / "Empty.csproj"))

        outcome = RuleEngine().transform(model)

        assert not outcome.ok
        assert outcome.error.kind == ErrorKind.TRANSFORM


# ── Tests: Properties ────────────────────────────────────────────────────


class TestProperties:
    def test_target_framework_converted(self, tmp_path):
        target = _target(tmp_path).target

        assert target.property_value("TargetFramework") == "net472"
        assert target.property_value("TargetFrameworkVersion") is None

    def test_sdk_defaults_and_legacy_noise_removed(self, tmp_path):
        result = _target(tmp_path)

        assert result.target.property_value("OutputType") is None
        assert result.target.property_value("AssemblyName") is None
        assert result.target.property_value("RootNamespace") is None
        assert result.target.property_value("ProjectGuid") is None
        assert "Property: ProjectGuid" in result.change_log.removed_elements

    def test_preserved_and_unknown_properties_kept(self, tmp_path):
        properties = [
            PropertyEntry("TargetFrameworkVersion", "v4.8"),
            PropertyEntry("OutputType", "Exe"),
            PropertyEntry("LangVersion", "9.0"),
            PropertyEntry("CustomSetting", "on"),
        ]
        result = _target(tmp_path, properties=properties)

        assert result.target.property_value("OutputType") == "Exe"
        assert result.target.property_value("LangVersion") == "9.0"
        assert result.target.property_value("CustomSetting") == "on"
        assert "Preserved unrecognized property 'CustomSetting'" in result.change_log.notes

    def test_last_unconditional_value_wins(self, tmp_path):
        properties = [
            PropertyEntry("TargetFrameworkVersion", "v4.8"),
            PropertyEntry("LangVersion", "7.3"),
            PropertyEntry("LangVersion", "8.0"),
        ]

        assert _target(tmp_path, properties=properties).target.property_value("LangVersion") == "8.0"

    def test_signing_carried_when_enabled(self, tmp_path):
        properties = [
            PropertyEntry("TargetFrameworkVersion", "v4.8"),
            PropertyEntry("SignAssembly", "true"),
            PropertyEntry("AssemblyOriginatorKeyFile", "keys\\contoso.snk"),
        ]
        target = _target(tmp_path, properties=properties).target

        assert target.property_value("SignAssembly") == "true"
        assert target.property_value("AssemblyOriginatorKeyFile") == "keys/contoso.snk"

    def test_signing_dropped_when_disabled(self, tmp_path):
        properties = [
            PropertyEntry("TargetFrameworkVersion", "v4.8"),
            PropertyEntry("SignAssembly", "false"),
            PropertyEntry("AssemblyOriginatorKeyFile", "contoso.snk"),
        ]
        result = _target(tmp_path, properties=properties)

        assert result.target.property_value("AssemblyOriginatorKeyFile") is None
        assert "Property: AssemblyOriginatorKeyFile (signing disabled)" in result.change_log.removed_elements

    def test_assembly_info_disables_generation(self, tmp_path):
        items = [ProjectItem("Compile", "Properties\\AssemblyInfo.cs")]

        target = _target(tmp_path, items=items).target

        assert target.property_value("GenerateAssemblyInfo") == "false"

    def test_inherited_property_not_repeated(self, tmp_path):
        (tmp_path / "Directory.Build.props").write_text(
            "<Project><PropertyGroup><LangVersion>latest</LangVersion></PropertyGroup></Project>"
        )

        result = _target(tmp_path)

        assert result.target.property_value("LangVersion") is None
        assert "Property LangVersion inherited from Directory.Build.props" in result.change_log.notes


class TestMultiTargeting:
    def test_distinct_versions_become_target_frameworks(self, tmp_path):
        properties = [
            PropertyEntry("TargetFrameworkVersion", "v4.5", "'$(TargetFrameworkVersion)' == 'v4.5'"),
            PropertyEntry("TargetFrameworkVersion", "v4.8", "'$(TargetFrameworkVersion)' == 'v4.8'"),
            PropertyEntry("DefineConstants", "LEGACY", "'$(TargetFrameworkVersion)' == 'v4.5'"),
        ]
        target = _target(tmp_path, properties=properties).target

        assert target.property_value("TargetFrameworks") == "net45;net48;net8.0"
        conditional = [g for g in target.property_groups if g.condition]
        assert len(conditional) == 1
        assert conditional[0].condition == "'$(TargetFramework)' == 'net45'"
        assert conditional[0].properties[0].value == "LEGACY"

    def test_implicit_conditional_values_dropped(self, tmp_path):
        properties = [
            PropertyEntry("TargetFrameworkVersion", "v4.8"),
            PropertyEntry("DebugType", "full", "'$(Configuration)' == 'Debug'"),
            PropertyEntry("AllowUnsafeBlocks", "true", "'$(Configuration)' == 'Debug'"),
        ]
        target = _target(tmp_path, properties=properties).target

        conditional = [g for g in target.property_groups if g.condition]
        assert [p.name for p in conditional[0].properties] == ["AllowUnsafeBlocks"]

    def test_override_wins(self, tmp_path):
        engine = RuleEngine(target_framework_override="net6.0")

        outcome = engine.transform(_model(tmp_path))

        assert outcome.value.target.property_value("TargetFramework") == "net6.0"


# ── Tests: Items ─────────────────────────────────────────────────────────


class TestItems:
    def test_implicit_compile_items_elided(self, tmp_path):
        items = [ProjectItem("Compile", "Widget.cs"), ProjectItem("Compile", "Forms\\Main.Designer.cs")]

        result = _target(tmp_path, items=items)

        assert _all_items(result.target) == []
        assert "Compile: Widget.cs (implicitly included)" in result.change_log.removed_elements

    def test_behaviour_metadata_becomes_update(self, tmp_path):
        items = [ProjectItem("Compile", "Main.cs", {"DependentUpon": "Main.xaml", "SubType": "Code"})]

        (item,) = _all_items(_target(tmp_path, items=items).target)

        assert item.update is True
        assert dict(item.metadata) == {"DependentUpon": "Main.xaml"}

    def test_linked_file_stays_include(self, tmp_path):
        items = [ProjectItem("Compile", "..\\Shared\\Version.cs", {"Link": "Properties\\Version.cs"})]

        (item,) = _all_items(_target(tmp_path, items=items).target)

        assert item.update is False

    def test_fsharp_compile_order_kept(self, tmp_path):
        items = [ProjectItem("Compile", "B.fs"), ProjectItem("Compile", "A.fs")]

        target = _target(tmp_path, name="Lib.fsproj", items=items).target

        assert [i.include for i in _all_items(target)] == ["B.fs", "A.fs"]

    def test_legacy_item_types_removed(self, tmp_path):
        items = [ProjectItem("Folder", "Data\\"), ProjectItem("Service", "{82A7F48D-3B50-4B1E-B82E-3ADA8210C358}")]

        assert _all_items(_target(tmp_path, items=items).target) == []

    def test_project_reference_metadata_trimmed(self, tmp_path):
        items = [ProjectItem(
            "ProjectReference",
            "..\\Other\\Other.csproj",
            {"Project": "{0000}", "Name": "Other", "Private": "false"},
        )]
        result = _target(tmp_path, items=items)

        (item,) = _all_items(result.target)
        assert item.include == "../Other/Other.csproj"
        assert dict(item.metadata) == {"Private": "false"}

    def test_packages_config_content_dropped(self, tmp_path):
        items = [ProjectItem("None", "packages.config"), ProjectItem("Content", "readme.txt")]

        target = _target(tmp_path, items=items).target

        assert [i.include for i in _all_items(target)] == ["readme.txt"]

    def test_preserved_references_reemitted(self, tmp_path):
        reference = ProjectItem("Reference", "System.Web", condition=None)

        outcome = RuleEngine().transform(_model(tmp_path), preserved_references=[reference])

        refs = [i for i in _all_items(outcome.value.target) if i.item_type == "Reference"]
        assert [r.include for r in refs] == ["System.Web"]


# ── Tests: Imports and targets ───────────────────────────────────────────


class TestImportsAndTargets:
    def test_system_import_removed_custom_warned(self, tmp_path):
        imports = [
            ImportEntry("$(MSBuildToolsPath)\\Microsoft.CSharp.targets"),
            ImportEntry("..\\build\\signing.targets"),
        ]
        result = _target(tmp_path, imports=imports)

        assert "Import: $(MSBuildToolsPath)\\Microsoft.CSharp.targets" in result.change_log.removed_elements
        assert any("Directory.Build.targets" in w for w in result.change_log.warnings)

    def test_hook_target_suggests_replacement(self, tmp_path):
        targets = [TargetDefinition(
            name="AfterBuild",
            tasks=[TaskInvocation("Exec", {"Command": "echo done"})],
            raw_xml='<Target Name="AfterBuild"><Exec Command="echo done" /></Target>',
        )]
        result = _target(tmp_path, targets=targets)

        assert result.target.verbatim_fragments == ()
        assert any('<Target Name="CustomAfterBuild" AfterTargets="Build">' in w for w in result.change_log.warnings)

    def test_custom_target_preserved_verbatim(self, tmp_path):
        raw = '<Target Name="Stamp" AfterTargets="Build"><Message Text="hi" /></Target>'
        targets = [TargetDefinition(name="Stamp", raw_xml=raw)]

        result = _target(tmp_path, targets=targets)

        assert result.target.verbatim_fragments == (raw,)
        assert "Preserved custom target 'Stamp'. Manual review recommended." in result.change_log.warnings

    def test_sdk_owned_target_removed(self, tmp_path):
        targets = [TargetDefinition(name="EnsureNuGetPackageBuildImports", raw_xml="<Target/>")]

        result = _target(tmp_path, targets=targets)

        assert result.target.verbatim_fragments == ()


# ── Tests: Legacy metadata ───────────────────────────────────────────────


ASSEMBLY_INFO = """using System.Reflection;
using System.Runtime.CompilerServices;

[assembly: AssemblyTitle("Contoso Core")]
[assembly: AssemblyCompany("Contoso Ltd.")]
[assembly: AssemblyConfiguration("")]
[assembly: AssemblyVersion("1.2.0.0")]
[assembly: InternalsVisibleTo("Contoso.Core.Tests")]
"""


def _assembly_info(tmp_path, text=ASSEMBLY_INFO):
    (tmp_path / "Properties").mkdir(exist_ok=True)
    path = tmp_path / "Properties" / "AssemblyInfo.cs"
    path.write_text(text, encoding="utf-8")
    return path


ASSEMBLY_INFO_ITEMS = [
    ProjectItem("Compile", "Class1.cs"),
    ProjectItem("Compile", "Properties\\AssemblyInfo.cs"),
]


class TestLegacyMetadata:
    def test_assembly_info_becomes_properties(self, tmp_path):
        path = _assembly_info(tmp_path)

        result = _target(tmp_path, items=ASSEMBLY_INFO_ITEMS)

        target = result.target
        assert target.property_value("AssemblyTitle") == "Contoso Core"
        assert target.property_value("Company") == "Contoso Ltd."
        assert target.property_value("AssemblyVersion") == "1.2.0.0"
        assert target.property_value("GenerateAssemblyInfo") is None
        items = [(i.item_type, i.include) for i in _all_items(target)]
        assert items == [("InternalsVisibleTo", "Contoso.Core.Tests")]
        assert "Assembly attribute: AssemblyConfiguration (SDK default)" in result.change_log.removed_elements
        assert result.cleanup == [FileCleanup(
            path=str(path),
            reason="AssemblyInfo attributes migrated to project file",
            project_path=str(tmp_path / "Contoso.Core.csproj"),
        )]

    def test_project_property_wins_over_attribute(self, tmp_path):
        _assembly_info(tmp_path)
        properties = [PropertyEntry("TargetFrameworkVersion", "v4.8"), PropertyEntry("Company", "Fabrikam")]

        result = _target(tmp_path, properties=properties, items=ASSEMBLY_INFO_ITEMS)

        assert result.target.property_value("Company") == "Fabrikam"
        assert "AssemblyInfo.cs: Company already set to 'Fabrikam'; 'Contoso Ltd.' ignored" in result.change_log.notes

    def test_file_with_code_is_kept(self, tmp_path):
        _assembly_info(tmp_path, ASSEMBLY_INFO + "\nnamespace Contoso { internal static class Build { } }\n")

        result = _target(tmp_path, items=ASSEMBLY_INFO_ITEMS)

        assert result.target.property_value("GenerateAssemblyInfo") == "false"
        assert result.target.property_value("Company") is None
        assert any(w.startswith("Properties\\AssemblyInfo.cs not migrated") for w in result.change_log.warnings)
        assert result.cleanup == []

    def test_kept_file_excluded_from_compile(self, tmp_path):
        _assembly_info(tmp_path)
        engine = RuleEngine(legacy_files_removed=False)

        outcome = engine.transform(_model(tmp_path, items=ASSEMBLY_INFO_ITEMS))

        compile_items = [i for i in _all_items(outcome.value.target) if i.item_type == "Compile"]
        assert [(i.include, i.remove) for i in compile_items] == [("Properties\\AssemblyInfo.cs", True)]
        assert '<Compile Remove="Properties\\AssemblyInfo.cs" />' in render_project(outcome.value.target)

    def test_nuspec_becomes_pack_properties(self, tmp_path):
        nuspec = tmp_path / "Contoso.Core.nuspec"
        nuspec.write_text(
            "<package><metadata><id>Contoso.Core</id><version>$version$</version>"
            "<authors>Contoso</authors><description>Core types</description>"
            "<license type=\"expression\">MIT</license></metadata></package>"
        )

        result = _target(tmp_path)

        target = result.target
        assert target.property_value("PackageId") is None
        assert target.property_value("Authors") == "Contoso"
        assert target.property_value("Description") == "Core types"
        assert target.property_value("PackageLicenseExpression") == "MIT"
        assert target.property_value("Version") is None
        assert "Contoso.Core.nuspec: PackageId (matches AssemblyName)" in result.change_log.removed_elements
        assert [c.path for c in result.cleanup] == [str(nuspec)]

    def test_nuspec_with_files_section_not_cleaned(self, tmp_path):
        (tmp_path / "Contoso.Core.nuspec").write_text(
            "<package><metadata><id>Contoso</id></metadata>"
            "<files><file src=\"readme.txt\" target=\"\" /></files></package>"
        )

        result = _target(tmp_path)

        assert result.target.property_value("PackageId") == "Contoso"
        assert result.cleanup == []
        assert any("kept for review" in w for w in result.change_log.warnings)


# ── Tests: Round trip ────────────────────────────────────────────────────


class TestRoundTrip:
    def test_migrated_output_is_left_alone(self, tmp_path):
        """Migrating the rendered output again must be a no-op."""
        first = _target(tmp_path).target
        path = tmp_path / "Contoso.Core.csproj"
        path.write_text(render_project(first), encoding="utf-8")

        model = ProjectModelProvider().evaluate(str(path))
        second = RuleEngine().transform(model)

        assert model.is_sdk_style
        assert second.value.already_migrated is True
