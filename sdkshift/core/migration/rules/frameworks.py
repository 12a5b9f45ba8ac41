"""Target framework conversion.

Maps legacy ``TargetFrameworkVersion`` / ``TargetFrameworkProfile``
values onto SDK-style target framework monikers (TFMs).
"""

import logging
import re
from typing import List, Optional

from ...project_model import ProjectModel

logger = logging.getLogger(__name__)

DEFAULT_TARGET_FRAMEWORK = "net8.0"

# Portable class library profile -> netstandard equivalent.
_PCL_PROFILES = {
    "Profile7": "netstandard1.1",
    "Profile31": "netstandard1.0",
    "Profile32": "netstandard1.2",
    "Profile44": "netstandard1.2",
    "Profile49": "netstandard1.0",
    "Profile78": "netstandard1.0",
    "Profile84": "netstandard1.0",
    "Profile111": "netstandard1.1",
    "Profile151": "netstandard1.2",
    "Profile157": "netstandard1.0",
    "Profile259": "netstandard1.0",
}
_PCL_FALLBACK = "netstandard2.0"

_LEGACY_FULL_FRAMEWORK = {"3.5": "net35", "3.0": "net30", "2.0": "net20"}

_TFV_CONDITION = re.compile(
    r"'\$\(TargetFrameworkVersion\)'\s*==\s*'v?(?P<version>[\d.]+)'"
)


def convert_framework_version(version: str, profile: str = "",
                              default: str = DEFAULT_TARGET_FRAMEWORK) -> str:
    """Convert one ``TargetFrameworkVersion`` value (``v4.7.2``) to a TFM."""
    if profile and profile.startswith("Profile"):
        return _PCL_PROFILES.get(profile, _PCL_FALLBACK)

    version = (version or "").strip().lstrip("vV")
    if not version:
        return default

    if version in _LEGACY_FULL_FRAMEWORK:
        return _LEGACY_FULL_FRAMEWORK[version]
    if version.startswith("4"):
        return "net" + version.replace(".", "")

    parts = version.split(".")
    try:
        major = int(parts[0])
    except ValueError:
        logger.warning("Unrecognized TargetFrameworkVersion %r, using %s", version, default)
        return default

    if major in (2, 3):
        return f"netcoreapp{'.'.join(parts[:2])}"
    if major >= 5:
        return f"net{'.'.join(parts[:2]) if len(parts) > 1 else version + '.0'}"
    return default


def is_net_framework(tfm: str) -> bool:
    """True for .NET Framework TFMs (``net45``, ``net472``, ``net35``)."""
    return bool(re.fullmatch(r"net[1-4]\d*", tfm))


def is_modern(tfm: str) -> bool:
    return tfm.startswith("net") and not is_net_framework(tfm) and not tfm.startswith("netstandard")


def detect_target_frameworks(
    model: ProjectModel,
    override: Optional[str] = None,
    default: str = DEFAULT_TARGET_FRAMEWORK,
) -> List[str]:
    """All TFMs the migrated project should target.

    A configured *override* wins.  An existing ``TargetFramework(s)``
    property is honoured.  Several distinct ``TargetFrameworkVersion``
    values turn into a multi-targeted, sorted list that always
    includes one modern TFM.
    """
    if override:
        return [t.strip() for t in override.split(";") if t.strip()]

    existing = model.get_property("TargetFrameworks") or model.get_property("TargetFramework")
    if existing:
        return [t.strip() for t in existing.split(";") if t.strip()]

    profile = model.get_property("TargetFrameworkProfile")
    frameworks: List[str] = []
    for entry in model.property_values("TargetFrameworkVersion"):
        tfm = convert_framework_version(entry.value, profile, default)
        if tfm not in frameworks:
            frameworks.append(tfm)

    if not frameworks:
        return [convert_framework_version("", profile, default)]
    if len(frameworks) > 1:
        if not any(is_modern(t) for t in frameworks):
            frameworks.append(default)
        frameworks.sort()
    return frameworks


def rewrite_framework_condition(condition: str) -> str:
    """``'$(TargetFrameworkVersion)' == 'v4.5'`` -> ``'$(TargetFramework)' == 'net45'``."""

    def _replace(match: "re.Match") -> str:
        return f"'$(TargetFramework)' == '{convert_framework_version(match.group('version'))}'"

    return _TFV_CONDITION.sub(_replace, condition)
