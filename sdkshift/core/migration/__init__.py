"""Migration pipeline: rules, package handling, coordination and reporting.

The coordinator depends on ``sdkshift.core.config`` and is imported from
``sdkshift.core.migration.coordinator`` directly.
"""

from .models import MigrationResult, PackageRequest, ProjectState, VersionResolution
from .report import MigrationReport
from .writer import render_project

__all__ = [
    "MigrationReport",
    "MigrationResult",
    "PackageRequest",
    "ProjectState",
    "VersionResolution",
    "render_project",
]
