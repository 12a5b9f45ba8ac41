"""SDK-style target model.

Frozen dataclasses assembled bottom-up by the rule engine from a
:class:`ProjectModel`.  Later batch phases derive new instances with
``dataclasses.replace`` instead of editing a tree in place.
"""

from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple

Metadata = Tuple[Tuple[str, str], ...]


def as_metadata(values: Dict[str, str]) -> Metadata:
    return tuple(values.items())


@dataclass(frozen=True)
class TargetProperty:
    name: str
    value: str


@dataclass(frozen=True)
class TargetPropertyGroup:
    properties: Tuple[TargetProperty, ...]
    condition: Optional[str] = None


@dataclass(frozen=True)
class TargetItem:
    item_type: str
    include: str
    update: bool = False
    metadata: Metadata = ()
    condition: Optional[str] = None
    remove: bool = False  # declared with Remove=


@dataclass(frozen=True)
class TargetItemGroup:
    items: Tuple[TargetItem, ...]
    condition: Optional[str] = None
    label: Optional[str] = None  # rendered as a leading comment


@dataclass(frozen=True)
class TargetTask:
    name: str
    attributes: Metadata = ()


@dataclass(frozen=True)
class GeneratedTarget:
    """A target synthesized during migration (e.g. from a build event)."""

    name: str
    attributes: Metadata = ()
    tasks: Tuple[TargetTask, ...] = ()


@dataclass(frozen=True)
class TargetPackageReference:
    package_id: str
    version: Optional[str]
    metadata: Metadata = ()


@dataclass(frozen=True)
class SdkProject:
    """The complete SDK-style project, ready for the writer."""

    sdk: str
    property_groups: Tuple[TargetPropertyGroup, ...] = ()
    item_groups: Tuple[TargetItemGroup, ...] = ()
    package_references: Tuple[TargetPackageReference, ...] = ()
    generated_targets: Tuple[GeneratedTarget, ...] = ()
    verbatim_fragments: Tuple[str, ...] = ()  # preserved targets, UsingTask, Choose

    def with_packages(self, packages: Tuple[TargetPackageReference, ...]) -> "SdkProject":
        return replace(self, package_references=packages)

    def property_value(self, name: str) -> Optional[str]:
        """Value of an unconditional property, if emitted."""
        for group in self.property_groups:
            if group.condition:
                continue
            for prop in group.properties:
                if prop.name == name:
                    return prop.value
        return None
