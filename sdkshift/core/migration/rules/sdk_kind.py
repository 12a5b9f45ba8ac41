"""SDK kind inference.

Ordered heuristic choosing the ``Sdk`` attribute of the migrated
project: explicit markers (extension, marker packages, project type
GUIDs) beat structural signals (UI and web item types), which beat the
default.  The first match wins.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from ...project_model import ProjectModel
from .frameworks import is_net_framework

logger = logging.getLogger(__name__)

SDK_DEFAULT = "Microsoft.NET.Sdk"
SDK_WEB = "Microsoft.NET.Sdk.Web"
SDK_WORKER = "Microsoft.NET.Sdk.Worker"
SDK_FUNCTIONS = "Microsoft.NET.Sdk.Functions"
SDK_MAUI = "Microsoft.NET.Sdk.Maui"
SDK_BLAZOR_WASM = "Microsoft.NET.Sdk.BlazorWebAssembly"
SDK_WINDOWS_DESKTOP = "Microsoft.NET.Sdk.WindowsDesktop"
SDK_SYSTEM_WEB = "MSBuild.SDK.SystemWeb/4.0.104"

_UNSUPPORTED_EXTENSIONS = frozenset({".sqlproj", ".dcproj", ".shproj"})

_FUNCTIONS_PACKAGES = ("Microsoft.NET.Sdk.Functions", "Microsoft.Azure.WebJobs", "Microsoft.Azure.Functions")
_WORKER_PACKAGES = ("Microsoft.Extensions.Hosting",)
_GRPC_PACKAGES = ("Grpc.AspNetCore", "Google.Protobuf", "Grpc.Tools")
_MAUI_PACKAGES = ("Microsoft.Maui", "Xamarin.Forms")
_WASM_MARKER = "Microsoft.AspNetCore.Components.WebAssembly"

GUID_UWP = "{A5A43C5B-DE2A-4C0C-9213-0A381AF9435A}"
GUID_VSTO = "{BAA0C2D2-18E2-41B9-852F-F413020CAA33}"
GUID_WEB_APPLICATION = "{349C5851-65DF-11DA-9384-00065B846F21}"
GUID_WEB_SITE = "{E24C65DC-7377-472B-9ABA-BC803B73C61A}"
GUID_BLAZOR = "{A9ACE9BB-CECE-4E62-9AA4-C7E7C5BD2124}"

_WEB_CONTENT_EXTENSIONS = (".cshtml", ".vbhtml", ".razor")
_WINFORMS_SUBTYPES = frozenset({"Form", "UserControl"})


@dataclass
class SdkClassification:
    """Outcome of SDK inference for one project."""

    sdk: str
    reason: str
    uses_wpf: bool = False
    uses_winforms: bool = False
    warnings: List[str] = field(default_factory=list)

    @property
    def is_system_web(self) -> bool:
        return self.sdk == SDK_SYSTEM_WEB

    @property
    def is_desktop(self) -> bool:
        return self.uses_wpf or self.uses_winforms


def _any_package(package_ids: Iterable[str], prefixes: Iterable[str]) -> Optional[str]:
    prefixes = tuple(p.lower() for p in prefixes)
    for package_id in package_ids:
        if package_id.lower().startswith(prefixes):
            return package_id
    return None


def _project_type_guids(model: ProjectModel) -> List[str]:
    raw = model.get_property("ProjectTypeGuids")
    return [g.strip().upper() for g in raw.split(";") if g.strip()]


def _referenced_package_ids(model: ProjectModel) -> List[str]:
    ids = [item.include for item in model.items_of("PackageReference")]
    for ref in model.items_of("Reference"):
        ids.append(ref.include.split(",")[0].strip())
    return ids


def classify_sdk(
    model: ProjectModel,
    target_frameworks: List[str],
    package_ids: Optional[List[str]] = None,
) -> SdkClassification:
    """Decide which SDK the migrated project should use."""
    packages = list(package_ids or []) + _referenced_package_ids(model)
    any_framework = any(is_net_framework(t) for t in target_frameworks)

    # ── 1. Explicit markers ──────────────────────────────────────

    extension = os.path.splitext(model.path)[1].lower()
    if extension in _UNSUPPORTED_EXTENSIONS:
        return SdkClassification(
            sdk=SDK_DEFAULT,
            reason=f"extension {extension}",
            warnings=[f"{extension} projects are not SDK-style convertible; review the output manually"],
        )

    hit = _any_package(packages, _FUNCTIONS_PACKAGES)
    if hit:
        return SdkClassification(SDK_FUNCTIONS, f"package {hit}")
    hit = _any_package(packages, _WORKER_PACKAGES)
    if hit:
        return SdkClassification(SDK_WORKER, f"package {hit}")
    hit = _any_package(packages, _GRPC_PACKAGES)
    if hit:
        return SdkClassification(SDK_WEB, f"package {hit}")
    hit = _any_package(packages, _MAUI_PACKAGES)
    if hit:
        return SdkClassification(SDK_MAUI, f"package {hit}")

    guids = _project_type_guids(model)
    if GUID_UWP in guids:
        return SdkClassification(SDK_DEFAULT, "UWP project type",
                                 warnings=["UWP projects need manual retargeting to WinUI"])
    if GUID_VSTO in guids:
        return SdkClassification(SDK_DEFAULT, "VSTO project type",
                                 warnings=["Office add-in projects need manual review"])
    if GUID_BLAZOR in guids:
        return SdkClassification(SDK_BLAZOR_WASM, "Blazor project type")
    if GUID_WEB_APPLICATION in guids or GUID_WEB_SITE in guids:
        if _any_package(packages, (_WASM_MARKER,)):
            return SdkClassification(SDK_BLAZOR_WASM, "web project referencing WebAssembly")
        if any_framework:
            return SdkClassification(SDK_SYSTEM_WEB, "ASP.NET project on .NET Framework")
        return SdkClassification(SDK_WEB, "web project type")

    # ── 2. Structural signals ────────────────────────────────────

    uses_wpf = bool(model.items_of("ApplicationDefinition") or model.items_of("Page"))
    uses_winforms = any(
        c.get("SubType") in _WINFORMS_SUBTYPES for c in model.items_of("Compile")
    )
    if any_framework:
        return SdkClassification(SDK_DEFAULT, ".NET Framework target",
                                 uses_wpf=uses_wpf, uses_winforms=uses_winforms)
    if uses_wpf or uses_winforms:
        if any(t.startswith("netcoreapp3") for t in target_frameworks):
            return SdkClassification(SDK_WINDOWS_DESKTOP, "desktop items on netcoreapp3",
                                     uses_wpf=uses_wpf, uses_winforms=uses_winforms)
        return SdkClassification(SDK_DEFAULT, "desktop items",
                                 uses_wpf=uses_wpf, uses_winforms=uses_winforms)

    has_web_content = any(
        item.include.lower().endswith(_WEB_CONTENT_EXTENSIONS)
        or item.include.lower().replace("\\", "/").startswith("wwwroot/")
        for item in model.items
    )
    if has_web_content:
        return SdkClassification(SDK_WEB, "web content items")

    # ── 3. Default ───────────────────────────────────────────────

    return SdkClassification(SDK_DEFAULT, "default")
