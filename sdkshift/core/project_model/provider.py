"""Project model provider -- ElementTree-based.

Reads a legacy MSBuild project file into a :class:`ProjectModel`:
- PropertyGroup children, with group conditions pushed down onto entries
- ItemGroup items with attribute and child-element metadata
- Import, Target, UsingTask and Choose elements

This is not an evaluator: conditions are kept as strings, wildcards
are not expanded and SDKs are not resolved.  A degraded mode strips
imports that point at missing files so a model can still be produced.
"""

import copy
import logging
import os
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional

from ..errors import ParseError
from .models import (
    ImportEntry,
    ProjectItem,
    ProjectModel,
    PropertyEntry,
    RawElement,
    TargetDefinition,
    TaskInvocation,
)

logger = logging.getLogger(__name__)

_ITEM_ATTRIBUTES = frozenset({"Include", "Update", "Remove", "Exclude", "Condition"})
_TARGET_ATTRIBUTES = frozenset({
    "Name", "BeforeTargets", "AfterTargets", "DependsOnTargets",
    "Condition", "Inputs", "Outputs", "Returns",
})
_VERBATIM_ELEMENTS = frozenset({"UsingTask", "Choose"})
_BUILD_PROPS_FILE = "Directory.Build.props"
_BUILD_PROPS_SEARCH_DEPTH = 5


def _strip_namespace(tag: str) -> str:
    """Remove XML namespace prefix from a tag.

    '{http://schemas.microsoft.com/developer/msbuild/2003}Project' -> 'Project'
    """
    if tag.startswith("{"):
        return tag.split("}", 1)[1]
    return tag


def _local_findall(element: ET.Element, local_name: str) -> List[ET.Element]:
    """Find all child elements by local name, ignoring namespaces."""
    return [
        child for child in element
        if _strip_namespace(child.tag) == local_name
    ]


def _element_source(element: ET.Element) -> str:
    """Serialize an element without its MSBuild namespace."""
    clean = copy.deepcopy(element)
    for node in clean.iter():
        if isinstance(node.tag, str):
            node.tag = _strip_namespace(node.tag)
    return ET.tostring(clean, encoding="unicode", short_empty_elements=True).strip()


def _text(element: ET.Element) -> str:
    return (element.text or "").strip()


class ProjectModelProvider:
    """Parse project files into :class:`ProjectModel` snapshots."""

    def evaluate(self, path: str, degraded: bool = False) -> ProjectModel:
        """Read and model a project file.

        Raises:
            ParseError: Malformed XML, a non-``Project`` root, or (strict
                mode only) an import of a missing file.  The last case is
                flagged ``recoverable`` so callers may retry degraded.
        """
        try:
            with open(path, "r", encoding="utf-8-sig", errors="replace") as f:
                source_text = f.read()
        except OSError as e:
            raise ParseError(path, f"cannot read project file: {e}") from e
        return self.evaluate_source(source_text, path, degraded=degraded)

    def evaluate_source(
        self, source_text: str, path: str, degraded: bool = False
    ) -> ProjectModel:
        try:
            root = ET.fromstring(source_text)
        except ET.ParseError as e:
            logger.warning("Malformed XML in %s: %s", path, e)
            raise ParseError(path, f"XML parse error: {e}") from e

        if _strip_namespace(root.tag) != "Project":
            raise ParseError(path, f"root element is <{_strip_namespace(root.tag)}>, expected <Project>")

        model = ProjectModel(
            path=path,
            sdk=root.get("Sdk") or self._sdk_child(root),
            tools_version=root.get("ToolsVersion"),
        )

        for child in root:
            if not isinstance(child.tag, str):
                continue  # comments / processing instructions
            tag = _strip_namespace(child.tag)
            if tag == "PropertyGroup":
                model.property_group_count += 1
                self._read_properties(child, model)
            elif tag == "ItemGroup":
                self._read_items(child, model)
            elif tag == "Import":
                self._read_import(child, model, degraded)
            elif tag == "Target":
                model.targets.append(self._read_target(child))
            elif tag in _VERBATIM_ELEMENTS:
                model.raw_elements.append(RawElement(tag=tag, raw_xml=_element_source(child)))

        if model.stripped_constructs:
            logger.info(
                "Loaded %s in degraded mode, stripped %d construct(s)",
                path, len(model.stripped_constructs),
            )
        return model

    # ── Elements ─────────────────────────────────────────────────

    @staticmethod
    def _sdk_child(root: ET.Element) -> Optional[str]:
        for sdk in _local_findall(root, "Sdk"):
            if sdk.get("Name"):
                return sdk.get("Name")
        return None

    @staticmethod
    def _read_properties(group: ET.Element, model: ProjectModel) -> None:
        group_condition = group.get("Condition")
        for prop in group:
            if not isinstance(prop.tag, str):
                continue
            model.properties.append(PropertyEntry(
                name=_strip_namespace(prop.tag),
                value=_text(prop),
                condition=prop.get("Condition") or group_condition,
            ))

    @staticmethod
    def _read_items(group: ET.Element, model: ProjectModel) -> None:
        group_condition = group.get("Condition")
        for item in group:
            if not isinstance(item.tag, str):
                continue
            include = item.get("Include")
            update = False
            if include is None:
                include = item.get("Update")
                update = include is not None
            if include is None:
                continue  # Remove-only items have no counterpart to migrate

            metadata: Dict[str, str] = {
                k: v for k, v in item.attrib.items() if k not in _ITEM_ATTRIBUTES
            }
            for meta in item:
                if isinstance(meta.tag, str):
                    metadata[_strip_namespace(meta.tag)] = _text(meta)

            model.items.append(ProjectItem(
                item_type=_strip_namespace(item.tag),
                include=include,
                metadata=metadata,
                condition=item.get("Condition") or group_condition,
                update=update,
            ))

    @staticmethod
    def _read_import(element: ET.Element, model: ProjectModel, degraded: bool) -> None:
        project = element.get("Project", "")
        condition = element.get("Condition")

        if project and "$(" not in project and not condition:
            base = os.path.dirname(os.path.abspath(model.path))
            candidate = os.path.normpath(os.path.join(base, project.replace("\\", "/")))
            if not os.path.exists(candidate):
                if not degraded:
                    raise ParseError(
                        model.path,
                        f"imported project not found: {project}",
                        recoverable=True,
                    )
                model.stripped_constructs.append(f"Import: {project}")
                return

        model.imports.append(ImportEntry(project=project, condition=condition))

    @staticmethod
    def _read_target(element: ET.Element) -> TargetDefinition:
        tasks = [
            TaskInvocation(name=_strip_namespace(task.tag), attributes=dict(task.attrib))
            for task in element
            if isinstance(task.tag, str)
        ]
        return TargetDefinition(
            name=element.get("Name", ""),
            tasks=tasks,
            before_targets=element.get("BeforeTargets", ""),
            after_targets=element.get("AfterTargets", ""),
            depends_on_targets=element.get("DependsOnTargets", ""),
            condition=element.get("Condition"),
            inputs=element.get("Inputs", ""),
            outputs=element.get("Outputs", ""),
            returns=element.get("Returns", ""),
            raw_xml=_element_source(element),
        )


def read_inherited_properties(
    project_dir: str,
    cache: Optional[Dict[str, Dict[str, str]]] = None,
) -> Dict[str, str]:
    """Unconditional properties from the nearest ``Directory.Build.props``.

    Searches upward at most five directory levels.  *cache* is keyed by
    props-file path and is owned by the caller (one per run).
    """
    current = os.path.abspath(project_dir)
    for _ in range(_BUILD_PROPS_SEARCH_DEPTH):
        candidate = os.path.join(current, _BUILD_PROPS_FILE)
        if os.path.isfile(candidate):
            if cache is not None and candidate in cache:
                return cache[candidate]
            values: Dict[str, str] = {}
            try:
                tree = ET.parse(candidate)
                for group in _local_findall(tree.getroot(), "PropertyGroup"):
                    if group.get("Condition"):
                        continue
                    for prop in group:
                        if isinstance(prop.tag, str) and not prop.get("Condition"):
                            values[_strip_namespace(prop.tag)] = _text(prop)
            except (ET.ParseError, OSError):
                logger.warning("Could not read %s", candidate, exc_info=True)
            if cache is not None:
                cache[candidate] = values
            return values
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent
    return {}
