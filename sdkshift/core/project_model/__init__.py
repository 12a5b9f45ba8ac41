"""Project model input type and its XML provider."""

from .models import (
    ImportEntry,
    ProjectItem,
    ProjectModel,
    PropertyEntry,
    RawElement,
    TargetDefinition,
    TaskInvocation,
)
from .provider import ProjectModelProvider, read_inherited_properties

__all__ = [
    "ImportEntry",
    "ProjectItem",
    "ProjectModel",
    "ProjectModelProvider",
    "PropertyEntry",
    "RawElement",
    "TargetDefinition",
    "TaskInvocation",
    "read_inherited_properties",
]
