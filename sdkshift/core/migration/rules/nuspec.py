""".nuspec metadata migration.

Package metadata from a project's ``.nuspec`` becomes SDK pack
properties; icon, readme and license files become packed ``None``
items.  Values still holding ``$token$`` placeholders are skipped since
the SDK derives them.  A nuspec whose packing layout (``<files>``,
``<contentFiles>`` ...) has no property equivalent is kept on disk.
"""

import logging
import os
import re
import xml.etree.ElementTree as ET
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import List, Optional

from ..target import TargetItem, as_metadata
from .tables import (
    NUSPEC_DROPPED_METADATA,
    NUSPEC_FILE_PROPERTIES,
    NUSPEC_LAYOUT_SECTIONS,
    NUSPEC_PROPERTIES,
    NUSPEC_REPOSITORY_ATTRIBUTES,
)

logger = logging.getLogger(__name__)

_TOKEN = re.compile(r"\$\w+\$")


@dataclass
class NuspecMigration:
    """What one nuspec contributes to the migrated project."""

    path: str
    properties: "OrderedDict[str, str]" = field(default_factory=OrderedDict)
    items: List[TargetItem] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    notes: List[str] = field(default_factory=list)
    keep_file: bool = False


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child(parent: ET.Element, name: str) -> Optional[ET.Element]:
    for element in parent:
        if _local(element.tag) == name:
            return element
    return None


def find_nuspec(project_path: str) -> Optional[str]:
    """Nuspec for *project_path*, searched beside it then in nearby nuget folders."""
    directory = os.path.dirname(os.path.abspath(project_path))
    stem = os.path.splitext(os.path.basename(project_path))[0]
    file_name = f"{stem}.nuspec"
    if not os.path.isdir(directory):
        return None

    candidate = os.path.join(directory, file_name)
    if os.path.isfile(candidate):
        return candidate
    local = sorted(n for n in os.listdir(directory) if n.lower().endswith(".nuspec"))
    if len(local) == 1:
        return os.path.join(directory, local[0])
    for relative in (os.path.join(os.pardir, file_name),
                     os.path.join(os.pardir, "nuget", file_name),
                     os.path.join("nuget", file_name)):
        candidate = os.path.normpath(os.path.join(directory, relative))
        if os.path.isfile(candidate):
            return candidate
    return None


class NuspecReader:
    """Maps one nuspec onto pack properties for the project in *project_dir*."""

    def __init__(self, path: str, project_dir: str):
        self.path = path
        self.project_dir = project_dir
        self.migration = NuspecMigration(path=path)

    def read(self) -> Optional[NuspecMigration]:
        """None when the file is unreadable; the caller keeps it."""
        try:
            root = ET.parse(self.path).getroot()
        except (ET.ParseError, OSError) as e:
            logger.warning("Could not read %s: %s", self.path, e)
            return None

        metadata = _child(root, "metadata")
        if metadata is None:
            logger.warning("%s has no <metadata> element", self.path)
            return None

        for element, prop in NUSPEC_PROPERTIES:
            node = _child(metadata, element)
            if node is not None:
                self._set(element, prop, (node.text or "").strip())
        self._read_license(_child(metadata, "license"))
        for element, prop in NUSPEC_FILE_PROPERTIES.items():
            node = _child(metadata, element)
            if node is not None and (node.text or "").strip():
                self._packed_file(element, prop, node.text.strip())
        self._read_repository(_child(metadata, "repository"))

        known = {e for e, _ in NUSPEC_PROPERTIES} | set(NUSPEC_FILE_PROPERTIES) | {"license", "repository"}
        for node in metadata:
            name = _local(node.tag)
            if name in known or name in NUSPEC_LAYOUT_SECTIONS:
                continue
            if name in NUSPEC_DROPPED_METADATA:
                self.migration.notes.append(f"nuspec <{name}> not carried over; the SDK derives it")
            else:
                self._keep(f"nuspec <{name}> has no project-file equivalent")

        for section in NUSPEC_LAYOUT_SECTIONS:
            if _child(root, section) is not None or _child(metadata, section) is not None:
                self._keep(f"nuspec <{section}> packing layout was not migrated")

        logger.debug("%s: %d pack properties", self.path, len(self.migration.properties))
        return self.migration

    def _set(self, element: str, prop: str, value: str) -> None:
        if not value:
            return
        if _TOKEN.search(value):
            self.migration.notes.append(f"nuspec <{element}> uses a replacement token; left to the SDK")
            return
        if prop == "PackageTags":
            value = ";".join(value.replace(",", " ").split())
        self.migration.properties[prop] = value

    def _packed_file(self, element: str, prop: str, package_path: str) -> None:
        if _TOKEN.search(package_path):
            self.migration.notes.append(f"nuspec <{element}> uses a replacement token; left to the SDK")
            return
        package_path = package_path.replace("\\", "/")
        source = os.path.normpath(os.path.join(os.path.dirname(self.path), package_path))
        if not os.path.isfile(source):
            self.migration.warnings.append(
                f"nuspec <{element}> file '{package_path}' not found; add it to the package manually"
            )
            return
        self.migration.properties[prop] = package_path
        relative = os.path.relpath(source, self.project_dir).replace(os.sep, "/")
        folder = package_path.rsplit("/", 1)[0] if "/" in package_path else "\\"
        self.migration.items.append(TargetItem(
            "None",
            relative,
            update=not relative.startswith("../"),
            metadata=as_metadata({"Pack": "true", "PackagePath": folder}),
        ))

    def _read_license(self, node: Optional[ET.Element]) -> None:
        if node is None or not (node.text or "").strip():
            return
        kind = node.get("type", "expression").lower()
        if kind == "file":
            self._packed_file("license", "PackageLicenseFile", node.text.strip())
        elif kind == "expression":
            self._set("license", "PackageLicenseExpression", node.text.strip())
        else:
            self._keep(f"nuspec license type '{kind}' has no project-file equivalent")

    def _read_repository(self, node: Optional[ET.Element]) -> None:
        if node is None:
            return
        for attribute, prop in NUSPEC_REPOSITORY_ATTRIBUTES:
            self._set(f"repository {attribute}", prop, (node.get(attribute) or "").strip())

    def _keep(self, reason: str) -> None:
        self.migration.keep_file = True
        self.migration.warnings.append(f"{reason}; {os.path.basename(self.path)} kept for review")


def read_nuspec(path: str, project_dir: str) -> Optional[NuspecMigration]:
    return NuspecReader(path, project_dir).read()
