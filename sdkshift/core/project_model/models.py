"""Project model data structures.

Evaluated, read-only representation of one legacy project file.
These are pure data containers -- no parsing logic.  Condition
strings are carried verbatim; nothing here evaluates them.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass(frozen=True)
class PropertyEntry:
    """One ``<PropertyGroup>`` child, in document order."""

    name: str
    value: str
    condition: Optional[str] = None  # effective condition (own or group's)


@dataclass(frozen=True)
class ProjectItem:
    """One item from an ``<ItemGroup>``."""

    item_type: str  # "Compile" | "Reference" | "PackageReference" | ...
    include: str
    metadata: Dict[str, str] = field(default_factory=dict)
    condition: Optional[str] = None
    update: bool = False  # declared with Update= rather than Include=

    def get(self, name: str, default: str = "") -> str:
        """Case-insensitive metadata lookup."""
        for key, value in self.metadata.items():
            if key.lower() == name.lower():
                return value
        return default


@dataclass(frozen=True)
class ImportEntry:
    project: str
    condition: Optional[str] = None


@dataclass(frozen=True)
class TaskInvocation:
    """A task element inside a target, e.g. ``<Exec Command="..."/>``."""

    name: str
    attributes: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TargetDefinition:
    name: str
    tasks: List[TaskInvocation] = field(default_factory=list)
    before_targets: str = ""
    after_targets: str = ""
    depends_on_targets: str = ""
    condition: Optional[str] = None
    inputs: str = ""
    outputs: str = ""
    returns: str = ""
    raw_xml: str = ""  # original element, re-emitted verbatim when preserved


@dataclass(frozen=True)
class RawElement:
    """An element carried through untouched (``UsingTask``, ``Choose``)."""

    tag: str
    raw_xml: str


@dataclass
class ProjectModel:
    """Evaluated snapshot of one project file.

    Owned exclusively by the rule engine for the duration of a
    transformation pass.
    """

    path: str
    sdk: Optional[str] = None
    tools_version: Optional[str] = None
    properties: List[PropertyEntry] = field(default_factory=list)
    items: List[ProjectItem] = field(default_factory=list)
    imports: List[ImportEntry] = field(default_factory=list)
    targets: List[TargetDefinition] = field(default_factory=list)
    raw_elements: List[RawElement] = field(default_factory=list)
    property_group_count: int = 0
    stripped_constructs: List[str] = field(default_factory=list)

    @property
    def is_sdk_style(self) -> bool:
        return bool(self.sdk)

    @property
    def loaded_degraded(self) -> bool:
        return bool(self.stripped_constructs)

    def get_property(self, name: str, default: str = "") -> str:
        """Last unconditional value of a property, like MSBuild's last-wins."""
        value = default
        for prop in self.properties:
            if prop.name.lower() == name.lower() and not prop.condition:
                value = prop.value
        return value

    def property_values(self, name: str) -> List[PropertyEntry]:
        """All entries for a property name, conditioned ones included."""
        return [p for p in self.properties if p.name.lower() == name.lower()]

    def items_of(self, item_type: str) -> List[ProjectItem]:
        return [i for i in self.items if i.item_type == item_type]
