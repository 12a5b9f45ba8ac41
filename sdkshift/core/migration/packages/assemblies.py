"""Static assembly and package tables.

All lookups are case-insensitive; keys are stored lower-cased.
"""

from typing import Dict, FrozenSet, Iterable, Optional, Tuple

from ..rules.sdk_kind import SDK_SYSTEM_WEB, SDK_WINDOWS_DESKTOP, SdkClassification
from ..rules.frameworks import is_net_framework


def _lower_set(names: Iterable[str]) -> FrozenSet[str]:
    return frozenset(n.lower() for n in names)


# ═══════════════════════════════════════════════════════════════════
# Assembly name -> package
# ═══════════════════════════════════════════════════════════════════

# Well-known packages and the assemblies they ship.
_PACKAGE_ASSEMBLIES: Dict[str, Tuple[str, ...]] = {
    "Newtonsoft.Json": ("Newtonsoft.Json",),
    "EntityFramework": ("EntityFramework", "EntityFramework.SqlServer", "EntityFramework.SqlServerCompact"),
    "Microsoft.EntityFrameworkCore": (
        "Microsoft.EntityFrameworkCore", "Microsoft.EntityFrameworkCore.Abstractions",
        "Microsoft.EntityFrameworkCore.Relational",
    ),
    "Microsoft.EntityFrameworkCore.SqlServer": ("Microsoft.EntityFrameworkCore.SqlServer",),
    "NUnit": ("nunit.framework",),
    "xunit": ("xunit", "xunit.execution.desktop", "xunit.execution.dotnet"),
    "xunit.core": ("xunit.core", "xunit.abstractions"),
    "xunit.assert": ("xunit.assert",),
    "MSTest.TestFramework": (
        "Microsoft.VisualStudio.TestPlatform.TestFramework",
        "Microsoft.VisualStudio.TestPlatform.TestFramework.Extensions",
        "Microsoft.VisualStudio.QualityTools.UnitTestFramework",
    ),
    "MSTest.TestAdapter": (
        "Microsoft.VisualStudio.TestPlatform.MSTest.TestAdapter",
        "Microsoft.VisualStudio.TestPlatform.MSTestAdapter.PlatformServices",
    ),
    "Moq": ("Moq",),
    "Castle.Core": ("Castle.Core",),
    "AutoMapper": ("AutoMapper",),
    "log4net": ("log4net",),
    "NLog": ("NLog",),
    "Serilog": ("Serilog",),
    "Microsoft.AspNet.WebApi.Core": ("System.Web.Http",),
    "Microsoft.AspNet.WebApi.Client": ("System.Net.Http.Formatting",),
    "Microsoft.AspNet.WebApi.WebHost": ("System.Web.Http.WebHost",),
    "Microsoft.AspNet.Mvc": ("System.Web.Mvc",),
    "Microsoft.AspNet.Razor": ("System.Web.Razor",),
    "Microsoft.AspNet.WebPages": (
        "System.Web.WebPages", "System.Web.WebPages.Deployment", "System.Web.WebPages.Razor",
        "System.Web.Helpers",
    ),
    "System.Data.SqlClient": ("System.Data.SqlClient",),
    "Microsoft.Data.SqlClient": ("Microsoft.Data.SqlClient",),
    "System.Configuration.ConfigurationManager": ("System.Configuration.ConfigurationManager",),
    "AWSSDK.Core": ("AWSSDK.Core",),
    "AWSSDK.S3": ("AWSSDK.S3",),
    "RabbitMQ.Client": ("RabbitMQ.Client",),
    "StackExchange.Redis": ("StackExchange.Redis", "StackExchange.Redis.StrongName"),
    "protobuf-net": ("protobuf-net", "protobuf-net.Core"),
    "Grpc.Core": ("Grpc.Core", "Grpc.Core.Api"),
    "Azure.Storage.Blobs": ("Azure.Storage.Blobs",),
    "Azure.Core": ("Azure.Core",),
    "Dapper": ("Dapper",),
    "FluentValidation": ("FluentValidation",),
    "MediatR": ("MediatR", "MediatR.Contracts"),
    "Polly": ("Polly",),
    "Unity": ("Unity", "Unity.Abstractions", "Unity.Container"),
    "Ninject": ("Ninject",),
    "SimpleInjector": ("SimpleInjector",),
    "Autofac": ("Autofac",),
    "StructureMap": ("StructureMap",),
    "CommonServiceLocator": ("CommonServiceLocator", "Microsoft.Practices.ServiceLocation"),
    "Microsoft.Extensions.DependencyInjection": (
        "Microsoft.Extensions.DependencyInjection", "Microsoft.Extensions.DependencyInjection.Abstractions",
    ),
    "Microsoft.Extensions.Logging": ("Microsoft.Extensions.Logging", "Microsoft.Extensions.Logging.Abstractions"),
    "Microsoft.Extensions.Configuration": (
        "Microsoft.Extensions.Configuration", "Microsoft.Extensions.Configuration.Abstractions",
    ),
    "RestSharp": ("RestSharp",),
    "System.IdentityModel.Tokens.Jwt": ("System.IdentityModel.Tokens.Jwt",),
    "Microsoft.IdentityModel.Tokens": (
        "Microsoft.IdentityModel.Tokens", "Microsoft.IdentityModel.Logging",
        "Microsoft.IdentityModel.JsonWebTokens",
    ),
}

ASSEMBLY_TO_PACKAGE: Dict[str, str] = {
    assembly.lower(): package
    for package, assemblies in _PACKAGE_ASSEMBLIES.items()
    for assembly in assemblies
}

# Primary package -> companion packages it needs to be usable.
ADDITIONAL_PACKAGES: Dict[str, Tuple[str, ...]] = {
    "mstest.testframework": ("MSTest.TestAdapter",),
    "xunit": ("xunit.runner.visualstudio",),
    "nunit": ("NUnit3TestAdapter",),
}


def lookup_assembly(name: str) -> Optional[str]:
    """Package id providing assembly *name*, from the static table."""
    return ASSEMBLY_TO_PACKAGE.get(name.strip().lower())


def additional_packages(package_id: str) -> Tuple[str, ...]:
    return ADDITIONAL_PACKAGES.get(package_id.lower(), ())


# ═══════════════════════════════════════════════════════════════════
# Assembly versions -> package versions
# ═══════════════════════════════════════════════════════════════════

ASSEMBLY_VERSION_MAP: Dict[str, Dict[str, str]] = {
    "newtonsoft.json": {
        "11.0.0.0": "11.0.2",
        "12.0.0.0": "12.0.3",
        "13.0.0.0": "13.0.3",
    },
}


def package_version_for_assembly(package_id: str, assembly_version: str) -> Optional[str]:
    """Package version matching an assembly version, or ``None``.

    Known packages use the table; otherwise a trailing ``.0`` fourth part
    is trimmed and a three-part version is accepted.
    """
    if not assembly_version:
        return None
    mapped = ASSEMBLY_VERSION_MAP.get(package_id.lower(), {}).get(assembly_version)
    if mapped:
        return mapped
    parts = assembly_version.split(".")
    if len(parts) == 4 and parts[3] == "0":
        parts = parts[:3]
    if len(parts) == 3 and all(p.isdigit() for p in parts):
        return ".".join(parts)
    return None


# ═══════════════════════════════════════════════════════════════════
# Framework assemblies
# ═══════════════════════════════════════════════════════════════════

BUILT_IN_FRAMEWORK_ASSEMBLIES = _lower_set([
    "mscorlib", "System", "System.Core", "System.Data", "System.Data.DataSetExtensions",
    "System.Deployment", "System.Design", "System.DirectoryServices", "System.Drawing",
    "System.Drawing.Design", "System.EnterpriseServices", "System.Management", "System.Messaging",
    "System.Runtime.Remoting", "System.Runtime.Serialization",
    "System.Runtime.Serialization.Formatters.Soap", "System.Security", "System.ServiceModel",
    "System.ServiceModel.Web", "System.ServiceProcess", "System.Transactions", "System.Web",
    "System.Web.Extensions", "System.Web.Extensions.Design", "System.Web.Mobile",
    "System.Web.RegularExpressions", "System.Web.Services", "System.Windows.Forms", "System.Xml",
    "System.Xml.Linq", "System.ComponentModel.Composition", "System.ComponentModel.DataAnnotations",
    "System.Net", "System.Net.Http", "System.Numerics", "System.IO.Compression",
    "System.IO.Compression.FileSystem", "System.Runtime.Caching", "System.Speech",
    "System.Web.Abstractions", "System.Configuration", "System.Configuration.Install",
    "System.IdentityModel", "System.Activities", "System.Data.Entity", "System.Data.Linq",
    "System.Data.OracleClient", "System.Data.Services", "System.Data.Services.Client",
    "System.Data.SqlXml", "System.Device", "System.Net.Http.WebRequest",
    "System.Web.ApplicationServices", "System.Web.DataVisualization", "System.Web.DynamicData",
    "System.Web.Entity", "System.Web.Routing", "System.Windows", "System.Xaml",
    "Microsoft.Build", "Microsoft.Build.Engine", "Microsoft.Build.Framework",
    "Microsoft.Build.Tasks.Core", "Microsoft.Build.Utilities.Core", "Microsoft.CSharp",
    "Microsoft.JScript", "Microsoft.VisualBasic", "Microsoft.VisualC",
    "WindowsBase", "PresentationCore", "PresentationFramework", "PresentationFramework.Aero",
    "ReachFramework", "System.Printing", "UIAutomationClient", "UIAutomationProvider",
    "UIAutomationTypes", "WindowsFormsIntegration",
])

# What the SDK references on its own for .NET Framework targets.
_NETFX_IMPLICIT = _lower_set([
    "mscorlib", "System", "System.Core", "System.Data", "System.Drawing",
    "System.IO.Compression.FileSystem", "System.Numerics", "System.Runtime.Serialization",
    "System.Xml", "System.Xml.Linq", "Microsoft.CSharp", "System.Data.DataSetExtensions",
    "System.Net.Http",
])

_SYSTEM_WEB_IMPLICIT = _lower_set([
    "System.Web", "System.Web.Abstractions", "System.Web.ApplicationServices",
    "System.Web.DynamicData", "System.Web.Entity", "System.Web.Extensions", "System.Web.Routing",
    "System.Web.Services", "System.Configuration", "System.EnterpriseServices",
    "System.ComponentModel.DataAnnotations", "System.Web.Mvc", "System.Web.Helpers",
    "System.Web.Razor", "System.Web.WebPages", "System.Web.WebPages.Deployment",
    "System.Web.WebPages.Razor", "System.Web.Optimization", "Microsoft.Web.Infrastructure",
])

_WPF_IMPLICIT = _lower_set([
    "WindowsBase", "PresentationCore", "PresentationFramework", "System.Xaml",
    "UIAutomationClient", "UIAutomationProvider", "UIAutomationTypes", "ReachFramework",
    "System.Printing",
])

_WINFORMS_IMPLICIT = _lower_set([
    "System.Windows.Forms", "System.Drawing", "System.Drawing.Design", "WindowsFormsIntegration",
])


def implicit_references(sdk: SdkClassification, target_frameworks: Iterable[str]) -> FrozenSet[str]:
    """Assembly names (lower-cased) the chosen SDK and runtime supply.

    Modern runtimes supply every built-in framework assembly; .NET
    Framework targets only the SDK's implicit set.
    """
    frameworks = list(target_frameworks)
    if frameworks and all(is_net_framework(t) for t in frameworks):
        names = set(_NETFX_IMPLICIT)
    else:
        names = set(BUILT_IN_FRAMEWORK_ASSEMBLIES)
    if sdk.sdk == SDK_SYSTEM_WEB:
        names |= _SYSTEM_WEB_IMPLICIT
    if sdk.uses_wpf or sdk.sdk == SDK_WINDOWS_DESKTOP:
        names |= _WPF_IMPLICIT
    if sdk.uses_winforms or sdk.sdk == SDK_WINDOWS_DESKTOP:
        names |= _WINFORMS_IMPLICIT
    return frozenset(names)


def is_framework_assembly(name: str) -> bool:
    return name.strip().lower() in BUILT_IN_FRAMEWORK_ASSEMBLIES


# ═══════════════════════════════════════════════════════════════════
# Package families
# ═══════════════════════════════════════════════════════════════════

# Packages the SystemWeb SDK brings along by itself.
SYSTEM_WEB_IMPLICIT_PACKAGES = _lower_set([
    "Microsoft.AspNet.Mvc", "Microsoft.AspNet.WebApi", "Microsoft.AspNet.WebApi.Core",
    "Microsoft.AspNet.WebApi.WebHost", "Microsoft.AspNet.WebPages", "Microsoft.AspNet.Razor",
    "Microsoft.Web.Infrastructure", "System.Web.Helpers", "System.Web.Mvc",
    "System.Web.Optimization", "System.Web.Razor", "System.Web.WebPages",
    "System.Web.WebPages.Deployment", "System.Web.WebPages.Razor",
])

TEST_SDK_PACKAGE = "Microsoft.NET.Test.Sdk"

TEST_FRAMEWORK_PACKAGES = _lower_set([
    "MSTest.TestFramework", "xunit", "xunit.core", "NUnit",
])

ESSENTIAL_PACKAGES = _lower_set([
    "Microsoft.NET.Test.Sdk", "xunit.runner.visualstudio", "NUnit3TestAdapter",
    "MSTest.TestAdapter", "coverlet.collector", "coverlet.msbuild",
    "Microsoft.SourceLink.GitHub", "Microsoft.SourceLink.AzureRepos.Git",
    "Microsoft.SourceLink.GitLab", "Microsoft.SourceLink.Bitbucket.Git",
    "StyleCop.Analyzers", "SonarAnalyzer.CSharp", "Microsoft.CodeAnalysis.NetAnalyzers",
    "Microsoft.CodeAnalysis.FxCopAnalyzers", "Roslynator.Analyzers",
])


def is_essential(package_id: str, extra: Iterable[str] = ()) -> bool:
    key = package_id.lower()
    if key in ESSENTIAL_PACKAGES or key in {e.lower() for e in extra}:
        return True
    return key.startswith("microsoft.sourcelink.") or key.endswith(".analyzers")
