"""Render SDK-style target models to project XML text."""

import xml.etree.ElementTree as ET
from typing import Optional

from .target import GeneratedTarget, SdkProject, TargetItem

_INDENT = "  "


def _sub(parent: ET.Element, tag: str, condition: Optional[str] = None) -> ET.Element:
    element = ET.SubElement(parent, tag)
    if condition:
        element.set("Condition", condition)
    return element


def _render_item(parent: ET.Element, item: TargetItem) -> None:
    element = ET.SubElement(parent, item.item_type)
    if item.remove:
        element.set("Remove", item.include)
    else:
        element.set("Update" if item.update else "Include", item.include)
    if item.condition:
        element.set("Condition", item.condition)
    for name, value in item.metadata:
        ET.SubElement(element, name).text = value


def _render_target(parent: ET.Element, target: GeneratedTarget) -> None:
    element = ET.SubElement(parent, "Target", {"Name": target.name})
    for name, value in target.attributes:
        element.set(name, value)
    for task in target.tasks:
        ET.SubElement(element, task.name, dict(task.attributes))


def render_project(project: SdkProject) -> str:
    """Serialize *project* as an indented ``<Project Sdk="...">`` document."""
    root = ET.Element("Project", {"Sdk": project.sdk})

    for group in project.property_groups:
        if not group.properties:
            continue
        element = _sub(root, "PropertyGroup", group.condition)
        for prop in group.properties:
            ET.SubElement(element, prop.name).text = prop.value

    for group in project.item_groups:
        if not group.items:
            continue
        if group.label:
            root.append(ET.Comment(f" {group.label} "))
        element = _sub(root, "ItemGroup", group.condition)
        for item in group.items:
            _render_item(element, item)

    if project.package_references:
        element = ET.SubElement(root, "ItemGroup")
        for ref in project.package_references:
            attributes = {"Include": ref.package_id}
            if ref.version:
                attributes["Version"] = ref.version
            attributes.update(dict(ref.metadata))
            ET.SubElement(element, "PackageReference", attributes)

    for target in project.generated_targets:
        _render_target(root, target)

    for fragment in project.verbatim_fragments:
        root.append(ET.fromstring(fragment))

    ET.indent(root, space=_INDENT)
    return ET.tostring(root, encoding="unicode") + "\n"
