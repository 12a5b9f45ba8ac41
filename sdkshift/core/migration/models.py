"""Migration data models.

Package requests, conflict and resolution records, per-project results
and the per-project state machine.  Pure data plus the transition
table; no migration logic.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from ..errors import InvalidStateTransition


# ── Package Requests ─────────────────────────────────────────────────


class RequestSource(str, Enum):
    """Where a package request came from in the legacy project."""

    PACKAGE_REFERENCE = "package_reference"
    PACKAGES_CONFIG = "packages_config"
    HINT_PATH = "hint_path"
    ASSEMBLY_TABLE = "assembly_table"
    REGISTRY = "registry"
    IMPLIED = "implied"  # e.g. Microsoft.NET.Test.Sdk for test projects


WILDCARD_VERSION = "*"


@dataclass
class PackageRequest:
    """A project's declared need for a package at a version."""

    package_id: str
    version: str
    requesting_project: str
    target_frameworks: List[str] = field(default_factory=list)
    is_transitive: bool = False
    private_assets: Optional[str] = None
    source: RequestSource = RequestSource.PACKAGE_REFERENCE
    metadata: Dict[str, str] = field(default_factory=dict)  # IncludeAssets, ExcludeAssets, ...

    @property
    def key(self) -> str:
        return self.package_id.lower()

    @property
    def has_pinned_version(self) -> bool:
        return bool(self.version) and self.version != WILDCARD_VERSION


@dataclass(frozen=True)
class PackageResolution:
    """Registry answer for an assembly name -> package lookup."""

    package_id: str
    version: Optional[str] = None
    additional_packages: Tuple[Tuple[str, Optional[str]], ...] = ()


@dataclass(frozen=True)
class DependencyEdge:
    from_package: str
    to_package: str


# ── Conflicts ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class ConflictSet:
    """Distinct versions requested for one package id across the batch."""

    package_id: str
    requested_versions: Tuple[Tuple[str, str], ...]  # (project_path, version)

    @property
    def versions(self) -> List[str]:
        return [v for _, v in self.requested_versions]

    @property
    def distinct_versions(self) -> List[str]:
        seen: List[str] = []
        for v in self.versions:
            if v not in seen:
                seen.append(v)
        return seen


@dataclass
class VersionResolution:
    package_id: str
    resolved_version: str
    strategy: str
    reason: str
    warnings: List[str] = field(default_factory=list)
    degraded: bool = False


@dataclass(frozen=True)
class ProjectVersionUpdate:
    project_path: str
    package_id: str
    old_version: str
    new_version: str


# ── Project State Machine ───────────────────────────────────────────


class ProjectState(str, Enum):
    NOT_STARTED = "NotStarted"
    PARSING = "Parsing"
    PARSE_FAILED = "ParseFailed"
    PARSED = "Parsed"
    CLASSIFYING = "Classifying"
    TRANSFORMING = "Transforming"
    TRANSFORM_FAILED = "TransformFailed"
    TRANSFORMED = "Transformed"
    WRITING = "Writing"
    DONE_SUCCESS = "Done(Success)"
    DONE_FAILED = "Done(Failed)"


_TRANSITIONS: Dict[ProjectState, FrozenSet[ProjectState]] = {
    ProjectState.NOT_STARTED: frozenset({ProjectState.PARSING}),
    ProjectState.PARSING: frozenset({ProjectState.PARSED, ProjectState.PARSE_FAILED}),
    ProjectState.PARSE_FAILED: frozenset({ProjectState.DONE_FAILED}),
    # Already SDK-style projects short-circuit from Parsed straight to Done.
    ProjectState.PARSED: frozenset({ProjectState.CLASSIFYING, ProjectState.DONE_SUCCESS}),
    ProjectState.CLASSIFYING: frozenset({ProjectState.TRANSFORMING, ProjectState.TRANSFORM_FAILED}),
    ProjectState.TRANSFORMING: frozenset({ProjectState.TRANSFORMED, ProjectState.TRANSFORM_FAILED}),
    ProjectState.TRANSFORM_FAILED: frozenset({ProjectState.DONE_FAILED}),
    # Preview mode skips Writing.
    ProjectState.TRANSFORMED: frozenset({
        ProjectState.WRITING, ProjectState.DONE_SUCCESS, ProjectState.DONE_FAILED,
    }),
    ProjectState.WRITING: frozenset({ProjectState.DONE_SUCCESS, ProjectState.DONE_FAILED}),
    ProjectState.DONE_SUCCESS: frozenset(),
    ProjectState.DONE_FAILED: frozenset(),
}

_FAILED_STATES = frozenset({
    ProjectState.PARSE_FAILED, ProjectState.TRANSFORM_FAILED, ProjectState.DONE_FAILED,
})

# Shortest legal path from each live state towards Done(Failed).
_FAILURE_PATH: Dict[ProjectState, ProjectState] = {
    ProjectState.NOT_STARTED: ProjectState.PARSING,
    ProjectState.PARSING: ProjectState.PARSE_FAILED,
    ProjectState.PARSED: ProjectState.CLASSIFYING,
    ProjectState.CLASSIFYING: ProjectState.TRANSFORM_FAILED,
    ProjectState.TRANSFORMING: ProjectState.TRANSFORM_FAILED,
    ProjectState.PARSE_FAILED: ProjectState.DONE_FAILED,
    ProjectState.TRANSFORM_FAILED: ProjectState.DONE_FAILED,
    ProjectState.TRANSFORMED: ProjectState.DONE_FAILED,
    ProjectState.WRITING: ProjectState.DONE_FAILED,
}


# ── Results ─────────────────────────────────────────────────────────


@dataclass
class MigrationResult:
    """Per-project outcome, created when the project is picked up."""

    project_path: str
    output_path: Optional[str] = None
    success: bool = False
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    removed_elements: List[str] = field(default_factory=list)
    migrated_packages: List[PackageRequest] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    state: ProjectState = ProjectState.NOT_STARTED
    sdk: Optional[str] = None
    target_frameworks: List[str] = field(default_factory=list)
    loaded_degraded: bool = False
    already_migrated: bool = False
    history: List[ProjectState] = field(default_factory=list)

    def advance(self, new_state: ProjectState) -> None:
        """Move to *new_state*, enforcing the transition table."""
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidStateTransition(
                f"{self.project_path}: {self.state.value} -> {new_state.value}"
            )
        self.history.append(self.state)
        self.state = new_state
        if new_state == ProjectState.DONE_SUCCESS:
            self.success = True
        elif new_state in _FAILED_STATES:
            self.success = False

    def fail(self, message: str) -> None:
        """Record an error and drive the machine to Done(Failed)."""
        self.errors.append(message)
        while self.state != ProjectState.DONE_FAILED:
            next_state = _FAILURE_PATH.get(self.state)
            if next_state is None:
                raise InvalidStateTransition(
                    f"{self.project_path}: cannot fail from {self.state.value}"
                )
            self.advance(next_state)

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.state]

    @property
    def is_failed(self) -> bool:
        return self.state in _FAILED_STATES


@dataclass
class ChangeLog:
    """Accumulated notes while a target model is being built."""

    removed_elements: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)

    def removed(self, element: str) -> None:
        self.removed_elements.append(element)

    def warn(self, message: str) -> None:
        self.warnings.append(message)

    def note(self, message: str) -> None:
        self.notes.append(message)

    def extend(self, other: "ChangeLog") -> None:
        self.removed_elements.extend(other.removed_elements)
        self.warnings.extend(other.warnings)
        self.notes.extend(other.notes)


@dataclass
class FileCleanup:
    """A file scheduled for deletion after the barrier."""

    path: str
    reason: str
    project_path: str

