"""AssemblyInfo attribute migration.

A per-project ``AssemblyInfo.cs`` / ``AssemblyInfo.vb`` that holds
nothing but assembly-level attributes is folded into the project file:
attributes the SDK can generate become properties, the rest become
``AssemblyAttribute``, ``InternalsVisibleTo`` or ``AssemblyMetadata``
items.  A file with anything else in it (code, preprocessor directives,
multi-line or unknown attributes) is left alone and the SDK's own
generation stays disabled.
"""

import logging
import os
import re
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ...project_model import ProjectItem, ProjectModel
from ..target import TargetItem, as_metadata
from .tables import (
    ASSEMBLY_INFO_ATTRIBUTE_ITEMS,
    ASSEMBLY_INFO_DEFAULTS,
    ASSEMBLY_INFO_FILE_NAMES,
    ASSEMBLY_INFO_PROPERTIES,
    ASSEMBLY_VERSION_PROPERTIES,
    MIGRATABLE_ASSEMBLY_INFO_NAMES,
)

logger = logging.getLogger(__name__)

# [assembly: AssemblyTitle("App")]  /  <Assembly: AssemblyTitle("App")>
_ATTRIBUTE_LINE = re.compile(
    r"^[\[<]\s*assembly\s*:\s*(?P<name>[\w.]+)\s*\((?P<args>.*)\)\s*[\]>]\s*(?://.*|'.*)?$",
    re.IGNORECASE,
)
_USING_LINE = re.compile(r"^(?:using\s+[\w.]+\s*;|imports\s+[\w.]+)\s*(?://.*|'.*)?$", re.IGNORECASE)
_COMMENT_LINE = re.compile(r"^(?://|'|rem\b)", re.IGNORECASE)
_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)

_CS_ARGUMENT = re.compile(
    r'\s*(?:@"(?P<verbatim>(?:""|[^"])*)"|"(?P<string>(?:\\.|[^"\\])*)"|(?P<bool>true|false))\s*(?:,|$)'
)
_VB_ARGUMENT = re.compile(r'\s*(?:"(?P<verbatim>(?:""|[^"])*)"|(?P<bool>true|false))\s*(?:,|$)', re.IGNORECASE)
_CS_ESCAPE = re.compile(r"\\(.)")


@dataclass(frozen=True)
class AssemblyAttribute:
    name: str  # short name, without namespace or "Attribute" suffix
    arguments: Tuple[str, ...]
    is_literal: bool = False  # single boolean argument


@dataclass
class AssemblyInfoMigration:
    """What one AssemblyInfo file contributes to the migrated project."""

    path: str
    include: str
    properties: "OrderedDict[str, str]" = field(default_factory=OrderedDict)
    items: List[TargetItem] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)
    blockers: List[str] = field(default_factory=list)

    @property
    def migratable(self) -> bool:
        return not self.blockers


def _short_name(name: str) -> str:
    name = name.rsplit(".", 1)[-1]
    if name.endswith("Attribute") and name != "Attribute":
        name = name[: -len("Attribute")]
    return name


def parse_arguments(text: str, visual_basic: bool = False) -> Optional[Tuple[Tuple[str, ...], bool]]:
    """Positional literal arguments, or None when anything else is passed."""
    pattern = _VB_ARGUMENT if visual_basic else _CS_ARGUMENT
    values: List[str] = []
    literal = False
    position = 0
    text = text.strip()
    while position < len(text):
        match = pattern.match(text, position)
        if not match or match.end() == position:
            return None
        if match.group("bool") is not None:
            values.append(match.group("bool").lower())
            literal = True
        elif match.group("verbatim") is not None:
            values.append(match.group("verbatim").replace('""', '"'))
        else:
            values.append(_CS_ESCAPE.sub(r"\1", match.group("string")))
        position = match.end()
    return tuple(values), literal and len(values) == 1


def parse_assembly_info(text: str, visual_basic: bool = False) -> Tuple[List[AssemblyAttribute], List[str]]:
    """Assembly attributes in *text* plus the lines that are not attributes."""
    attributes: List[AssemblyAttribute] = []
    leftovers: List[str] = []
    for raw in _BLOCK_COMMENT.sub("", text).splitlines():
        line = raw.strip()
        if not line or _COMMENT_LINE.match(line) or _USING_LINE.match(line):
            continue
        match = _ATTRIBUTE_LINE.match(line)
        parsed = parse_arguments(match.group("args"), visual_basic) if match else None
        if parsed is None:
            leftovers.append(line)
            continue
        arguments, literal = parsed
        attributes.append(AssemblyAttribute(_short_name(match.group("name")), arguments, literal))
    return attributes, leftovers


def _attribute_item(attribute: AssemblyAttribute, type_name: str) -> TargetItem:
    metadata = {"_Parameter1": attribute.arguments[0]}
    if attribute.is_literal:
        metadata["_Parameter1_IsLiteral"] = "true"
    return TargetItem("AssemblyAttribute", type_name, metadata=as_metadata(metadata))


def _internals_visible_to(value: str) -> TargetItem:
    name, _, key = value.partition(",")
    key = key.strip()
    metadata = {}
    if key.lower().startswith("publickey="):
        metadata["Key"] = key.split("=", 1)[1].strip()
    return TargetItem("InternalsVisibleTo", name.strip(), metadata=as_metadata(metadata))


def migrate_attributes(migration: AssemblyInfoMigration, attributes: List[AssemblyAttribute]) -> None:
    """Sort *attributes* into properties, items, dropped defaults and blockers."""
    for attribute in attributes:
        name, arguments = attribute.name, attribute.arguments
        single = arguments[0] if len(arguments) == 1 else None

        if name in ASSEMBLY_INFO_DEFAULTS and (
            ASSEMBLY_INFO_DEFAULTS[name] is None or single == ASSEMBLY_INFO_DEFAULTS[name]
        ):
            migration.dropped.append(name)
        elif name in ASSEMBLY_INFO_PROPERTIES and single is not None and not attribute.is_literal:
            prop = ASSEMBLY_INFO_PROPERTIES[name]
            if not single:
                migration.dropped.append(name)
            elif prop in ASSEMBLY_VERSION_PROPERTIES and "*" in single:
                migration.blockers.append(f"{name}(\"{single}\") uses a wildcard version")
            else:
                migration.properties[prop] = single
        elif name in ASSEMBLY_INFO_ATTRIBUTE_ITEMS and single is not None:
            if single:
                migration.items.append(_attribute_item(attribute, ASSEMBLY_INFO_ATTRIBUTE_ITEMS[name]))
            else:
                migration.dropped.append(name)
        elif name == "InternalsVisibleTo" and single:
            migration.items.append(_internals_visible_to(single))
        elif name == "AssemblyMetadata" and len(arguments) == 2 and not attribute.is_literal:
            migration.items.append(TargetItem(
                "AssemblyMetadata", arguments[0], metadata=as_metadata({"Value": arguments[1]})
            ))
        else:
            migration.blockers.append(f"attribute {name} has no project-file equivalent")


def read_assembly_info(path: str, include: str) -> AssemblyInfoMigration:
    migration = AssemblyInfoMigration(path=path, include=include)
    try:
        with open(path, encoding="utf-8-sig") as handle:
            text = handle.read()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Could not read %s: %s", path, e)
        migration.blockers.append(f"file could not be read ({e})")
        return migration

    attributes, leftovers = parse_assembly_info(text, path.lower().endswith(".vb"))
    if leftovers:
        migration.blockers.append(f"contains code besides assembly attributes ({leftovers[0]})")
    migrate_attributes(migration, attributes)
    logger.debug(
        "%s: %d properties, %d items, %d blockers",
        path, len(migration.properties), len(migration.items), len(migration.blockers),
    )
    return migration


def assembly_info_items(model: ProjectModel) -> List[ProjectItem]:
    """Compile items naming any AssemblyInfo-family file."""
    return [
        item for item in model.items_of("Compile")
        if item.include.replace("\\", "/").rsplit("/", 1)[-1].lower() in ASSEMBLY_INFO_FILE_NAMES
    ]


def find_assembly_info(model: ProjectModel) -> Optional[Tuple[ProjectItem, str]]:
    """The project's own AssemblyInfo file when it is the only one compiled.

    Linked, conditional, shared or out-of-tree files are not candidates.
    """
    items = assembly_info_items(model)
    if len(items) != 1:
        return None
    (item,) = items
    normalized = item.include.replace("\\", "/")
    if item.condition or item.get("Link") or normalized.startswith("../") or os.path.isabs(normalized):
        return None
    if normalized.rsplit("/", 1)[-1].lower() not in MIGRATABLE_ASSEMBLY_INFO_NAMES:
        return None
    path = os.path.join(os.path.dirname(os.path.abspath(model.path)), normalized.replace("/", os.sep))
    if not os.path.isfile(path):
        return None
    return item, path
