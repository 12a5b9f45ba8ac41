from .conflicts import ConflictResolver, ResolutionStrategy, StrategyRegistry
from .elision import ElisionResult, TransitiveElisionAnalyzer
from .manifest import (
    MANIFEST_FILE_NAME,
    CentralManifestGenerator,
    ExistingPackage,
    ManifestResult,
    PackageType,
    classify_package,
    read_existing_manifest,
)
from .migrator import PackageMigration, PackageReferenceMigrator, build_package_references
from .registry import NuGetRegistryClient, OfflineRegistryClient, RegistryClient

__all__ = [
    "MANIFEST_FILE_NAME",
    "CentralManifestGenerator",
    "ConflictResolver",
    "ElisionResult",
    "ExistingPackage",
    "ManifestResult",
    "NuGetRegistryClient",
    "OfflineRegistryClient",
    "PackageMigration",
    "PackageReferenceMigrator",
    "PackageType",
    "RegistryClient",
    "ResolutionStrategy",
    "StrategyRegistry",
    "TransitiveElisionAnalyzer",
    "build_package_references",
    "classify_package",
    "read_existing_manifest",
]
