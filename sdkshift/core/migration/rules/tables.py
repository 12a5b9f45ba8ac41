"""Static rule tables for legacy -> SDK-style project transformation.

Every decision the rule engine makes about a property, item, import or
target by *name* lives here, as plain data.  The engine never inspects
types at runtime to decide what to copy.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple


# ═══════════════════════════════════════════════════════════════════════
# Properties
# ═══════════════════════════════════════════════════════════════════════


class PropertyAction(str, Enum):
    REMOVE = "remove"
    """Dropped outright, recorded in the change log."""

    PRESERVE = "preserve"
    """Copied verbatim whenever set."""

    SYNTHESIZE = "synthesize"
    """Emitted only when the value differs from the SDK's implicit default."""

    FRAMEWORK = "framework"
    """Consumed by target-framework conversion."""

    BUILD_EVENT = "build_event"
    """Consumed by build-event migration."""

    SIGNING = "signing"
    """Strong-naming group; emitted together when SignAssembly is true."""


@dataclass(frozen=True)
class PropertyRule:
    name: str
    action: PropertyAction
    default: Optional[str] = None
    copy_if_different: bool = False


# Sentinel default: compare against the project file stem.
PROJECT_NAME_DEFAULT = "$(MSBuildProjectName)"

PROPERTY_RULES: Tuple[PropertyRule, ...] = (
    # ── Legacy-only noise ──
    PropertyRule("ProjectTypeGuids", PropertyAction.REMOVE),
    PropertyRule("FileAlignment", PropertyAction.REMOVE),
    PropertyRule("AppDesignerFolder", PropertyAction.REMOVE),
    PropertyRule("SchemaVersion", PropertyAction.REMOVE),
    PropertyRule("ProductVersion", PropertyAction.REMOVE),
    PropertyRule("FileVersion", PropertyAction.REMOVE),
    PropertyRule("OldToolsVersion", PropertyAction.REMOVE),
    PropertyRule("UpgradeBackupLocation", PropertyAction.REMOVE),
    PropertyRule("Configuration", PropertyAction.REMOVE),
    PropertyRule("Platform", PropertyAction.REMOVE),
    PropertyRule("ProjectGuid", PropertyAction.REMOVE),
    PropertyRule("OutputPath", PropertyAction.REMOVE),
    PropertyRule("ErrorReport", PropertyAction.REMOVE),
    PropertyRule("WarningLevel", PropertyAction.REMOVE),
    PropertyRule("Deterministic", PropertyAction.REMOVE),
    PropertyRule("AutoGenerateBindingRedirects", PropertyAction.REMOVE),
    PropertyRule("NuGetPackageImportStamp", PropertyAction.REMOVE),
    PropertyRule("RestorePackages", PropertyAction.REMOVE),
    PropertyRule("SolutionDir", PropertyAction.REMOVE),
    PropertyRule("TargetFrameworkIdentifier", PropertyAction.REMOVE),
    # ── ClickOnce deployment ──
    PropertyRule("PublishUrl", PropertyAction.REMOVE),
    PropertyRule("Install", PropertyAction.REMOVE),
    PropertyRule("InstallFrom", PropertyAction.REMOVE),
    PropertyRule("UpdateEnabled", PropertyAction.REMOVE),
    PropertyRule("UpdateMode", PropertyAction.REMOVE),
    PropertyRule("UpdateInterval", PropertyAction.REMOVE),
    PropertyRule("UpdateIntervalUnits", PropertyAction.REMOVE),
    PropertyRule("UpdatePeriodically", PropertyAction.REMOVE),
    PropertyRule("UpdateRequired", PropertyAction.REMOVE),
    PropertyRule("MapFileExtensions", PropertyAction.REMOVE),
    PropertyRule("ApplicationRevision", PropertyAction.REMOVE),
    PropertyRule("ApplicationVersion", PropertyAction.REMOVE),
    PropertyRule("UseApplicationTrust", PropertyAction.REMOVE),
    PropertyRule("BootstrapperEnabled", PropertyAction.REMOVE),
    PropertyRule("IsWebBootstrapper", PropertyAction.REMOVE),
    # ── Framework selection ──
    PropertyRule("TargetFrameworkVersion", PropertyAction.FRAMEWORK),
    PropertyRule("TargetFrameworkProfile", PropertyAction.FRAMEWORK),
    PropertyRule("TargetFramework", PropertyAction.FRAMEWORK),
    PropertyRule("TargetFrameworks", PropertyAction.FRAMEWORK),
    # ── Build events ──
    PropertyRule("PreBuildEvent", PropertyAction.BUILD_EVENT),
    PropertyRule("PostBuildEvent", PropertyAction.BUILD_EVENT),
    PropertyRule("RunPostBuildEvent", PropertyAction.BUILD_EVENT),
    # ── Strong naming ──
    PropertyRule("SignAssembly", PropertyAction.SIGNING),
    PropertyRule("AssemblyOriginatorKeyFile", PropertyAction.SIGNING),
    PropertyRule("DelaySign", PropertyAction.SIGNING),
    # ── Copied only when different from the SDK default ──
    PropertyRule("OutputType", PropertyAction.SYNTHESIZE, "Library", True),
    PropertyRule("AssemblyName", PropertyAction.SYNTHESIZE, PROJECT_NAME_DEFAULT, True),
    PropertyRule("RootNamespace", PropertyAction.SYNTHESIZE, PROJECT_NAME_DEFAULT, True),
    PropertyRule("GenerateDocumentationFile", PropertyAction.SYNTHESIZE, "false", True),
    PropertyRule("IsPackable", PropertyAction.SYNTHESIZE, "true", True),
    PropertyRule("GenerateAssemblyInfo", PropertyAction.SYNTHESIZE, "true", True),
    # ── Copied verbatim ──
    PropertyRule("LangVersion", PropertyAction.PRESERVE),
    PropertyRule("Nullable", PropertyAction.PRESERVE),
    PropertyRule("TreatWarningsAsErrors", PropertyAction.PRESERVE),
    PropertyRule("NoWarn", PropertyAction.PRESERVE),
    PropertyRule("ApplicationIcon", PropertyAction.PRESERVE),
    PropertyRule("StartupObject", PropertyAction.PRESERVE),
    PropertyRule("ApplicationManifest", PropertyAction.PRESERVE),
    PropertyRule("Authors", PropertyAction.PRESERVE),
    PropertyRule("Company", PropertyAction.PRESERVE),
    PropertyRule("Product", PropertyAction.PRESERVE),
    PropertyRule("Copyright", PropertyAction.PRESERVE),
    PropertyRule("Description", PropertyAction.PRESERVE),
    PropertyRule("Version", PropertyAction.PRESERVE),
    PropertyRule("AssemblyVersion", PropertyAction.PRESERVE),
    PropertyRule("PackageId", PropertyAction.PRESERVE),
    PropertyRule("UseWPF", PropertyAction.PRESERVE),
    PropertyRule("UseWindowsForms", PropertyAction.PRESERVE),
)

PROPERTY_RULES_BY_NAME: Dict[str, PropertyRule] = {
    rule.name.lower(): rule for rule in PROPERTY_RULES
}

# Properties that normally live in configuration-conditioned groups.
CONDITIONAL_PROPERTIES = frozenset({
    "DefineConstants", "PlatformTarget", "Prefer32Bit", "AllowUnsafeBlocks",
    "DebugType", "DebugSymbols", "Optimize", "TreatWarningsAsErrors",
    "NoWarn", "DocumentationFile", "LangVersion", "CodeAnalysisRuleSet",
})

# Conditional values the SDK already supplies.
IMPLICIT_CONDITIONAL_VALUES: Dict[str, frozenset] = {
    "DefineConstants": frozenset({"DEBUG;TRACE", "TRACE", "DEBUG"}),
    "DebugType": frozenset({"full", "pdbonly", "portable"}),
    "DebugSymbols": frozenset({"true"}),
    "Optimize": frozenset({"true", "false"}),
    "Prefer32Bit": frozenset({"false"}),
    "PlatformTarget": frozenset({"AnyCPU"}),
}


# ═══════════════════════════════════════════════════════════════════════
# Items
# ═══════════════════════════════════════════════════════════════════════

# Default SDK globs: item type -> extensions it picks up implicitly.
IMPLICIT_GLOBS: Dict[str, frozenset] = {
    "Compile": frozenset({".cs", ".vb"}),
    "EmbeddedResource": frozenset({".resx"}),
    "None": frozenset({".settings"}),
    "Content": frozenset({".cshtml", ".vbhtml", ".razor"}),
}

# Metadata values that only restate what the SDK infers on its own.
DEFAULT_METADATA_VALUES: Dict[str, frozenset] = {
    "SubType": frozenset({"Code", "Designer", "Component"}),
    "Generator": frozenset({"MSBuild:Compile"}),
}

BEHAVIOUR_METADATA = frozenset({
    "DependentUpon", "SubType", "Generator", "LastGenOutput", "DesignTime",
    "AutoGen", "CustomToolNamespace", "Link", "CopyToOutputDirectory",
    "CopyToPublishDirectory", "Visible", "DesignTimeSharedInput",
    "LogicalName", "Private",
})

REMOVED_ITEM_TYPES = frozenset({
    "BootstrapperPackage", "AppDesigner", "VisualStudio", "FlavorProperties",
    "Folder", "Service", "CodeAnalysisDictionary",
})

WPF_ITEM_TYPES = frozenset({
    "ApplicationDefinition", "Page", "Resource", "XamlAppdef", "DesignData",
    "DesignDataWithDesignTimeCreatableTypes", "SplashScreen",
})

PROJECT_REFERENCE_METADATA = frozenset({
    "Private", "IncludeAssets", "ExcludeAssets", "PrivateAssets",
    "ReferenceOutputAssembly", "OutputItemType", "SetTargetFramework",
})

# Files the SDK picks up (or that migration makes obsolete) by name.
AUTO_INCLUDED_FILE_NAMES = frozenset({
    "app.config", "packages.config", "web.config",
})
AUTO_INCLUDED_PREFIXES = ("wwwroot/", "wwwroot\\")
APPSETTINGS_PREFIX = "appsettings"

ASSEMBLY_INFO_FILE_NAMES = frozenset({
    "assemblyinfo.cs", "assemblyinfo.vb", "globalassemblyinfo.cs",
    "globalassemblyinfo.vb", "sharedassemblyinfo.cs", "sharedassemblyinfo.vb",
    "commonassemblyinfo.cs", "commonassemblyinfo.vb",
})


# ═══════════════════════════════════════════════════════════════════════
# Legacy metadata (AssemblyInfo attributes, .nuspec)
# ═══════════════════════════════════════════════════════════════════════

# Only per-project files are migrated; shared ones stay linked.
MIGRATABLE_ASSEMBLY_INFO_NAMES = frozenset({"assemblyinfo.cs", "assemblyinfo.vb"})

# Attribute -> SDK property generated back into the assembly.
ASSEMBLY_INFO_PROPERTIES: Dict[str, str] = {
    "AssemblyTitle": "AssemblyTitle",
    "AssemblyDescription": "Description",
    "AssemblyCompany": "Company",
    "AssemblyProduct": "Product",
    "AssemblyCopyright": "Copyright",
    "AssemblyVersion": "AssemblyVersion",
    "AssemblyFileVersion": "FileVersion",
    "AssemblyInformationalVersion": "InformationalVersion",
    "NeutralResourcesLanguage": "NeutralLanguage",
}

# Attributes with no SDK property, re-declared as AssemblyAttribute items.
ASSEMBLY_INFO_ATTRIBUTE_ITEMS: Dict[str, str] = {
    "AssemblyTrademark": "System.Reflection.AssemblyTrademarkAttribute",
    "Guid": "System.Runtime.InteropServices.GuidAttribute",
    "ComVisible": "System.Runtime.InteropServices.ComVisibleAttribute",
    "CLSCompliant": "System.CLSCompliantAttribute",
}

# Attribute -> argument value that restates the default (None: always dropped).
ASSEMBLY_INFO_DEFAULTS: Dict[str, Optional[str]] = {
    "AssemblyConfiguration": None,  # generated from $(Configuration)
    "AssemblyCulture": "",
    "ComVisible": "false",
}

ASSEMBLY_VERSION_PROPERTIES = frozenset({"AssemblyVersion", "FileVersion"})

# <metadata> child -> SDK pack property, in emission order.
NUSPEC_PROPERTIES: Tuple[Tuple[str, str], ...] = (
    ("id", "PackageId"),
    ("version", "Version"),
    ("title", "Title"),
    ("authors", "Authors"),
    ("description", "Description"),
    ("releaseNotes", "PackageReleaseNotes"),
    ("copyright", "Copyright"),
    ("language", "NeutralLanguage"),
    ("projectUrl", "PackageProjectUrl"),
    ("iconUrl", "PackageIconUrl"),
    ("licenseUrl", "PackageLicenseUrl"),
    ("requireLicenseAcceptance", "PackageRequireLicenseAcceptance"),
    ("tags", "PackageTags"),
    ("developmentDependency", "DevelopmentDependency"),
    ("serviceable", "Serviceable"),
)

# <metadata> children naming a file packed into the package.
NUSPEC_FILE_PROPERTIES: Dict[str, str] = {
    "icon": "PackageIcon",
    "readme": "PackageReadmeFile",
}

NUSPEC_REPOSITORY_ATTRIBUTES: Tuple[Tuple[str, str], ...] = (
    ("type", "RepositoryType"),
    ("url", "RepositoryUrl"),
    ("branch", "RepositoryBranch"),
    ("commit", "RepositoryCommit"),
)

# Read but not carried over: the SDK derives or no longer uses them.
NUSPEC_DROPPED_METADATA = frozenset({"owners", "summary", "dependencies"})

# Sections whose packing layout has no property equivalent.
NUSPEC_LAYOUT_SECTIONS = ("files", "contentFiles", "frameworkAssemblies", "references")


# ═══════════════════════════════════════════════════════════════════════
# Imports
# ═══════════════════════════════════════════════════════════════════════

KNOWN_SYSTEM_IMPORTS = frozenset({
    "Microsoft.Common.props",
    "Microsoft.CSharp.targets",
    "Microsoft.VisualBasic.targets",
    "Microsoft.FSharp.targets",
    "Microsoft.Common.targets",
    "Microsoft.WebApplication.targets",
    "Microsoft.NET.Sdk.props",
    "Microsoft.NET.Sdk.targets",
    "System.Data.Entity.Design.targets",
    "EntityFramework.targets",
    "Microsoft.Bcl.Build.targets",
    "Microsoft.TestPlatform.targets",
    "VSTest.targets",
    "Microsoft.TypeScript.targets",
    "Microsoft.TypeScript.Default.props",
    "NuGet.targets",
})

# Path segments that mark an import as shipped with the toolchain.
SYSTEM_IMPORT_SEGMENTS = (
    "$(MSBuildToolsPath)", "$(MSBuildExtensionsPath)", "$(MSBuildBinPath)",
    "$(VSToolsPath)", "$(MSBuildExtensionsPath32)", "\\packages\\", "/packages/",
)


# ═══════════════════════════════════════════════════════════════════════
# Targets
# ═══════════════════════════════════════════════════════════════════════

# Legacy hook target -> (hook attribute, SDK phase) for the suggestion.
COMMON_HOOK_TARGETS: Dict[str, Tuple[str, str]] = {
    "BeforeBuild": ("BeforeTargets", "Build"),
    "AfterBuild": ("AfterTargets", "Build"),
    "BeforeRebuild": ("BeforeTargets", "Rebuild"),
    "AfterRebuild": ("AfterTargets", "Rebuild"),
    "BeforeClean": ("BeforeTargets", "Clean"),
    "AfterClean": ("AfterTargets", "Clean"),
    "BeforePublish": ("BeforeTargets", "Publish"),
    "AfterPublish": ("AfterTargets", "Publish"),
    "BeforeCompile": ("BeforeTargets", "CoreCompile"),
    "AfterCompile": ("AfterTargets", "CoreCompile"),
    "BeforeResolveReferences": ("BeforeTargets", "ResolveReferences"),
    "AfterResolveReferences": ("AfterTargets", "ResolveReferences"),
}

SDK_OWNED_TARGETS = frozenset({
    "Build", "Rebuild", "Clean", "Compile", "Publish", "CoreCompile",
    "PrepareForBuild", "PrepareForRun", "PrepareResources",
    "AssignTargetPaths", "GetTargetPath", "GetCopyToOutputDirectoryItems",
    "EnsureNuGetPackageBuildImports",
})

ALREADY_MIGRATED_NOTE = "Project is already in SDK-style format - no migration needed"
