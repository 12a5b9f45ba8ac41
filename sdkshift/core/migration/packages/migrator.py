"""Convert legacy reference declarations into package requests."""

import logging
import os
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ...errors import RegistryLookupError
from ...project_model import ProjectItem, ProjectModel
from ..models import (
    WILDCARD_VERSION,
    ChangeLog,
    FileCleanup,
    PackageRequest,
    RequestSource,
)
from ..rules.frameworks import is_net_framework
from ..rules.sdk_kind import SdkClassification
from ..target import TargetPackageReference, as_metadata
from .assemblies import (
    SYSTEM_WEB_IMPLICIT_PACKAGES,
    TEST_FRAMEWORK_PACKAGES,
    TEST_SDK_PACKAGE,
    additional_packages,
    implicit_references,
    is_framework_assembly,
    lookup_assembly,
    package_version_for_assembly,
)
from .registry import RegistryClient

logger = logging.getLogger(__name__)

PACKAGES_CONFIG = "packages.config"

# packages\Newtonsoft.Json.12.0.3\lib\net45\Newtonsoft.Json.dll
_HINT_PACKAGE_DIR = re.compile(r"(?:^|[\\/])packages[\\/](?P<folder>[^\\/]+)[\\/]", re.IGNORECASE)
_FOLDER_ID_VERSION = re.compile(
    r"^(?P<id>.+?)\.(?P<version>\d+(?:\.\d+){1,3}(?:-[0-9A-Za-z.\-]+)?)$"
)

# Metadata carried from a PackageReference onto the migrated declaration.
_CARRIED_METADATA = ("IncludeAssets", "ExcludeAssets", "GeneratePathProperty", "Aliases", "NoWarn")


@dataclass
class PackageMigration:
    """What the migrator made of one project's references."""

    requests: List[PackageRequest] = field(default_factory=list)
    preserved_references: List[ProjectItem] = field(default_factory=list)
    change_log: ChangeLog = field(default_factory=ChangeLog)
    cleanup: List[FileCleanup] = field(default_factory=list)

    @property
    def package_ids(self) -> List[str]:
        return [r.package_id for r in self.requests]


def parse_assembly_identity(include: str) -> Tuple[str, Optional[str]]:
    """``"Foo, Version=1.2.0.0, Culture=neutral"`` -> ``("Foo", "1.2.0.0")``."""
    parts = [p.strip() for p in include.split(",")]
    version = None
    for part in parts[1:]:
        key, _, value = part.partition("=")
        if key.strip().lower() == "version":
            version = value.strip()
    return parts[0], version


def parse_hint_path(hint_path: str) -> Optional[Tuple[str, str]]:
    """(package id, version) from a ``packages\\<Id>.<Version>\\`` hint path."""
    match = _HINT_PACKAGE_DIR.search(hint_path or "")
    if not match:
        return None
    folder = _FOLDER_ID_VERSION.match(match.group("folder"))
    if not folder:
        return None
    return folder.group("id"), folder.group("version")


def read_packages_config(path: str) -> List[Dict[str, str]]:
    """Entries of a ``packages.config`` file; malformed files yield ``[]``."""
    try:
        root = ET.parse(path).getroot()
    except (ET.ParseError, OSError):
        logger.warning("Could not read %s", path, exc_info=True)
        return []
    entries = []
    for element in root.iter("package"):
        package_id = element.get("id")
        if not package_id:
            continue
        entries.append({
            "id": package_id,
            "version": element.get("version", ""),
            "targetFramework": element.get("targetFramework", ""),
            "developmentDependency": element.get("developmentDependency", ""),
        })
    return entries


class PackageReferenceMigrator:
    """Turns PackageReference, packages.config and Reference items into requests.

    Unresolvable references are handed back as ``preserved_references``
    for the rule engine to re-emit verbatim.
    """

    def __init__(self, registry: RegistryClient):
        self.registry = registry

    def migrate(
        self,
        model: ProjectModel,
        classification: SdkClassification,
        target_frameworks: Sequence[str],
    ) -> PackageMigration:
        result = PackageMigration()
        frameworks = list(target_frameworks)
        requests: Dict[str, PackageRequest] = {}

        def add(request: PackageRequest) -> None:
            existing = requests.get(request.key)
            if existing is None:
                requests[request.key] = request
            elif not existing.has_pinned_version and request.has_pinned_version:
                result.change_log.note(
                    f"Package {request.package_id} pinned to {request.version} "
                    f"(was {existing.version or 'unversioned'})"
                )
                existing.version = request.version
            elif existing.version != request.version and request.has_pinned_version:
                result.change_log.warn(
                    f"Package {request.package_id} declared twice ({existing.version}, "
                    f"{request.version}); keeping {existing.version}"
                )

        for item in model.items_of("PackageReference"):
            if item.update or not item.include:
                continue
            add(self._from_package_reference(model.path, item, frameworks))

        config_path = self.packages_config_path(model.path)
        if config_path:
            for entry in read_packages_config(config_path):
                add(PackageRequest(
                    package_id=entry["id"],
                    version=entry["version"] or WILDCARD_VERSION,
                    requesting_project=model.path,
                    target_frameworks=frameworks,
                    private_assets="all" if entry["developmentDependency"].lower() == "true" else None,
                    source=RequestSource.PACKAGES_CONFIG,
                ))
            result.change_log.removed(f"{os.path.basename(config_path)} (migrated to PackageReference)")
            result.cleanup.append(FileCleanup(
                path=config_path,
                reason="packages.config migrated to PackageReference",
                project_path=model.path,
            ))

        implicit = implicit_references(classification, frameworks)
        netfx_only = bool(frameworks) and all(is_net_framework(t) for t in frameworks)
        for item in model.items_of("Reference"):
            for request in self._from_reference(model.path, item, frameworks, implicit, netfx_only, result):
                add(request)

        if classification.is_system_web:
            for key in [k for k in requests if k in SYSTEM_WEB_IMPLICIT_PACKAGES]:
                dropped = requests.pop(key)
                result.change_log.removed(
                    f"PackageReference: {dropped.package_id} (provided by the SystemWeb SDK)"
                )

        if any(k in TEST_FRAMEWORK_PACKAGES for k in requests) and TEST_SDK_PACKAGE.lower() not in requests:
            requests[TEST_SDK_PACKAGE.lower()] = PackageRequest(
                package_id=TEST_SDK_PACKAGE,
                version=self._latest_or_wildcard(TEST_SDK_PACKAGE, result.change_log),
                requesting_project=model.path,
                target_frameworks=frameworks,
                source=RequestSource.IMPLIED,
            )
            result.change_log.note(f"Added {TEST_SDK_PACKAGE} for test project")

        result.requests = list(requests.values())
        logger.debug(
            "%s: %d package requests, %d references preserved",
            model.path, len(result.requests), len(result.preserved_references),
        )
        return result

    # ── Sources ──────────────────────────────────────────────────

    @staticmethod
    def _from_package_reference(project: str, item: ProjectItem, frameworks: List[str]) -> PackageRequest:
        version = item.get("Version") or item.get("VersionOverride") or WILDCARD_VERSION
        return PackageRequest(
            package_id=item.include,
            version=version,
            requesting_project=project,
            target_frameworks=frameworks,
            private_assets=item.get("PrivateAssets") or None,
            source=RequestSource.PACKAGE_REFERENCE,
            metadata={k: item.get(k) for k in _CARRIED_METADATA if item.get(k)},
        )

    @staticmethod
    def packages_config_path(project_path: str) -> Optional[str]:
        directory = os.path.dirname(os.path.abspath(project_path))
        stem = os.path.splitext(os.path.basename(project_path))[0]
        for name in (PACKAGES_CONFIG, f"packages.{stem}.config"):
            candidate = os.path.join(directory, name)
            if os.path.isfile(candidate):
                return candidate
        return None

    def _from_reference(
        self,
        project: str,
        item: ProjectItem,
        frameworks: List[str],
        implicit,
        netfx_only: bool,
        result: PackageMigration,
    ) -> List[PackageRequest]:
        name, assembly_version = parse_assembly_identity(item.include)
        hint_path = item.get("HintPath")
        log = result.change_log
        label = f"Reference: {name}"

        def request(package_id: str, version: str, source: RequestSource) -> PackageRequest:
            return PackageRequest(
                package_id=package_id,
                version=version,
                requesting_project=project,
                target_frameworks=frameworks,
                source=source,
            )

        from_hint = parse_hint_path(hint_path)
        if from_hint is not None:
            package_id, version = from_hint
            log.removed(f"{label} (now PackageReference {package_id} {version})")
            return [request(package_id, version, RequestSource.HINT_PATH)]

        if name.lower() in implicit:
            log.removed(f"{label} (provided by the SDK)")
            return []

        if not hint_path and is_framework_assembly(name):
            if netfx_only:
                result.preserved_references.append(item)
                return []
            log.removed(f"{label} (part of the runtime)")
            return []

        package_id = lookup_assembly(name)
        if package_id is not None:
            version = (
                package_version_for_assembly(package_id, assembly_version or "")
                or self._latest_or_wildcard(package_id, log)
            )
            requests = [request(package_id, version, RequestSource.ASSEMBLY_TABLE)]
            for extra in additional_packages(package_id):
                requests.append(request(extra, self._latest_or_wildcard(extra, log), RequestSource.ASSEMBLY_TABLE))
            log.removed(f"{label} (now PackageReference {package_id})")
            return requests

        try:
            resolution = self.registry.resolve_assembly_to_package(name)
        except RegistryLookupError as e:
            logger.warning("Registry lookup for %s failed: %s", name, e)
            log.warn(f"Could not look up reference '{name}' ({e}); kept as Reference")
            result.preserved_references.append(item)
            return []

        if resolution is None:
            log.warn(f"No package found for reference '{name}'; kept as Reference")
            result.preserved_references.append(item)
            return []

        version = (
            package_version_for_assembly(resolution.package_id, assembly_version or "")
            or resolution.version
            or WILDCARD_VERSION
        )
        if assembly_version and version != assembly_version:
            log.note(
                f"Assembly '{name}' version '{assembly_version}' converted to package "
                f"'{resolution.package_id}' version '{version}'"
            )
        requests = [request(resolution.package_id, version, RequestSource.REGISTRY)]
        for extra_id, extra_version in resolution.additional_packages:
            requests.append(request(extra_id, extra_version or WILDCARD_VERSION, RequestSource.REGISTRY))
        log.removed(f"{label} (now PackageReference {resolution.package_id})")
        return requests

    def _latest_or_wildcard(self, package_id: str, log: ChangeLog) -> str:
        try:
            return self.registry.get_latest_version(package_id) or WILDCARD_VERSION
        except RegistryLookupError as e:
            logger.warning("Latest version lookup for %s failed: %s", package_id, e)
            log.warn(f"Could not find a version for {package_id}; using floating version")
            return WILDCARD_VERSION


def declared_package_ids(model: ProjectModel) -> List[str]:
    """Ids from PackageReference items and packages.config, before any lookup."""
    ids = [item.include for item in model.items_of("PackageReference") if item.include]
    config_path = PackageReferenceMigrator.packages_config_path(model.path)
    if config_path:
        ids.extend(entry["id"] for entry in read_packages_config(config_path))
    return ids


def build_package_references(requests: Sequence[PackageRequest]) -> Tuple[TargetPackageReference, ...]:
    """Project-level declarations for the kept (non-transitive) requests."""
    references = []
    for request in requests:
        if request.is_transitive:
            continue
        metadata = dict(request.metadata)
        if request.private_assets:
            metadata["PrivateAssets"] = request.private_assets
        references.append(TargetPackageReference(
            package_id=request.package_id,
            version=request.version or WILDCARD_VERSION,
            metadata=as_metadata(metadata),
        ))
    return tuple(references)
