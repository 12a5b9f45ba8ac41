"""Transformation rule engine.

Rewrites a legacy :class:`ProjectModel` into an :class:`SdkProject`
plus a change log.  The target is assembled bottom-up from the source
model -- property groups, item groups and targets are built as frozen
values and combined at the end; the source model is never modified.

Stages, in order:
  1. Idempotence check (``Sdk`` attribute present -> no-op)
  2. Structural validation
  3. SDK kind and target framework classification
  4. Legacy metadata (AssemblyInfo attributes, ``.nuspec`` package metadata)
  5. Properties (static rule table, conditional groups, signing)
  6. Items (implicit-glob elision, ``Update`` re-declaration)
  7. Imports (system vs custom)
  8. Targets (common hooks, SDK-owned, custom) and build events
"""

import logging
import os
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from ...errors import ErrorKind, StageResult
from ...project_model import ProjectItem, ProjectModel, PropertyEntry, read_inherited_properties
from ..models import ChangeLog, FileCleanup
from ..target import (
    SdkProject,
    TargetItem,
    TargetItemGroup,
    TargetProperty,
    TargetPropertyGroup,
    as_metadata,
)
from .assembly_info import AssemblyInfoMigration, find_assembly_info, read_assembly_info
from .build_events import migrate_build_events
from .frameworks import (
    DEFAULT_TARGET_FRAMEWORK,
    detect_target_frameworks,
    is_modern,
    rewrite_framework_condition,
)
from .nuspec import NuspecMigration, find_nuspec, read_nuspec
from .sdk_kind import SdkClassification, classify_sdk
from .tables import (
    ALREADY_MIGRATED_NOTE,
    APPSETTINGS_PREFIX,
    ASSEMBLY_INFO_FILE_NAMES,
    AUTO_INCLUDED_FILE_NAMES,
    AUTO_INCLUDED_PREFIXES,
    BEHAVIOUR_METADATA,
    COMMON_HOOK_TARGETS,
    CONDITIONAL_PROPERTIES,
    DEFAULT_METADATA_VALUES,
    IMPLICIT_CONDITIONAL_VALUES,
    IMPLICIT_GLOBS,
    KNOWN_SYSTEM_IMPORTS,
    PROJECT_NAME_DEFAULT,
    PROJECT_REFERENCE_METADATA,
    PROPERTY_RULES_BY_NAME,
    REMOVED_ITEM_TYPES,
    SDK_OWNED_TARGETS,
    SYSTEM_IMPORT_SEGMENTS,
    WPF_ITEM_TYPES,
    PropertyAction,
)

logger = logging.getLogger(__name__)


@dataclass
class Classification:
    """SDK kind plus target frameworks for one project."""

    sdk: SdkClassification
    target_frameworks: List[str]

    @property
    def multi_targeted(self) -> bool:
        return len(self.target_frameworks) > 1

    @property
    def any_modern(self) -> bool:
        return any(is_modern(t) for t in self.target_frameworks)


@dataclass
class TransformOutcome:
    target: Optional[SdkProject]
    change_log: ChangeLog
    classification: Optional[Classification] = None
    already_migrated: bool = False
    cleanup: List[FileCleanup] = field(default_factory=list)


@dataclass
class _PropertyPlan:
    """Properties chosen for the main group, in emission order."""

    values: "OrderedDict[str, str]" = field(default_factory=OrderedDict)

    def set(self, name: str, value: str) -> None:
        self.values[name] = value

    def freeze(self) -> Tuple[TargetProperty, ...]:
        return tuple(TargetProperty(n, v) for n, v in self.values.items())


@dataclass
class _LegacyMetadata:
    """AssemblyInfo and nuspec content folded into the project file."""

    assembly_info: Optional[AssemblyInfoMigration] = None
    nuspec: Optional[NuspecMigration] = None

    def property_sources(self) -> List[Tuple[str, "OrderedDict[str, str]"]]:
        sources = []
        if self.assembly_info is not None:
            sources.append((_file_name(self.assembly_info.include), self.assembly_info.properties))
        if self.nuspec is not None:
            sources.append((os.path.basename(self.nuspec.path), self.nuspec.properties))
        return sources

    def items(self, legacy_files_removed: bool) -> List[TargetItem]:
        items: List[TargetItem] = []
        if self.assembly_info is not None:
            items.extend(self.assembly_info.items)
            if not legacy_files_removed:
                items.append(TargetItem("Compile", self.assembly_info.include, remove=True))
        if self.nuspec is not None:
            items.extend(self.nuspec.items)
        return items

    def cleanup(self, project_path: str) -> List[FileCleanup]:
        cleanup: List[FileCleanup] = []
        if self.assembly_info is not None:
            cleanup.append(FileCleanup(
                path=self.assembly_info.path,
                reason="AssemblyInfo attributes migrated to project file",
                project_path=project_path,
            ))
        if self.nuspec is not None and not self.nuspec.keep_file:
            cleanup.append(FileCleanup(
                path=self.nuspec.path,
                reason="NuSpec metadata migrated to project file",
                project_path=project_path,
            ))
        return cleanup


def _project_stem(path: str) -> str:
    return os.path.splitext(os.path.basename(path))[0]


def _file_name(include: str) -> str:
    return include.replace("\\", "/").rsplit("/", 1)[-1]


def _extension(include: str) -> str:
    return os.path.splitext(_file_name(include))[1].lower()


def _is_system_import(project: str) -> bool:
    if _file_name(project) in KNOWN_SYSTEM_IMPORTS:
        return True
    return any(segment in project for segment in SYSTEM_IMPORT_SEGMENTS)


def _behaviour_metadata(item: ProjectItem) -> Dict[str, str]:
    """Metadata that changes build behaviour, minus values the SDK infers."""
    kept: Dict[str, str] = {}
    for name, value in item.metadata.items():
        if name not in BEHAVIOUR_METADATA:
            continue
        if value in DEFAULT_METADATA_VALUES.get(name, frozenset()):
            continue
        kept[name] = value
    return kept


def _unconditional_last_values(properties: Sequence[PropertyEntry]) -> "OrderedDict[str, str]":
    """Name -> last unconditional value, ordered by first appearance."""
    values: "OrderedDict[str, str]" = OrderedDict()
    for prop in properties:
        if prop.condition:
            continue
        values[prop.name] = prop.value
    return values


class RuleEngine:
    """Rewrite legacy project models into SDK-style target models.

    One engine serves a whole run; *inherited_cache* is the run's
    ``Directory.Build.props`` cache and is shared across worker threads
    (writes are idempotent per key).
    """

    def __init__(
        self,
        target_framework_override: Optional[str] = None,
        default_target_framework: str = DEFAULT_TARGET_FRAMEWORK,
        inherited_cache: Optional[Dict[str, Dict[str, str]]] = None,
        legacy_files_removed: bool = True,
    ):
        self.target_framework_override = target_framework_override
        self.default_target_framework = default_target_framework
        self._inherited_cache = inherited_cache if inherited_cache is not None else {}
        # False when migrated AssemblyInfo files stay on disk and must be excluded.
        self.legacy_files_removed = legacy_files_removed

    # ── Classification ───────────────────────────────────────────

    def classify(
        self, model: ProjectModel, package_ids: Optional[List[str]] = None
    ) -> Classification:
        frameworks = detect_target_frameworks(
            model, self.target_framework_override, self.default_target_framework
        )
        return Classification(
            sdk=classify_sdk(model, frameworks, package_ids),
            target_frameworks=frameworks,
        )

    # ── Transform ────────────────────────────────────────────────

    def transform(
        self,
        model: ProjectModel,
        classification: Optional[Classification] = None,
        preserved_references: Sequence[ProjectItem] = (),
    ) -> StageResult[TransformOutcome]:
        """Build the SDK-style target for *model*.

        *preserved_references* are legacy ``Reference`` items the package
        migrator could not convert; they are re-emitted verbatim.
        """
        log = ChangeLog()

        if model.is_sdk_style:
            log.note(ALREADY_MIGRATED_NOTE)
            return StageResult.success(
                TransformOutcome(target=None, change_log=log, already_migrated=True)
            )

        if model.property_group_count == 0:
            return StageResult.failure(
                ErrorKind.TRANSFORM,
                f"{model.path}: no <PropertyGroup> found; not a buildable project",
            )

        if classification is None:
            classification = self.classify(model)
        log.warnings.extend(classification.sdk.warnings)

        legacy = self._read_legacy_metadata(model, log)
        property_groups = self._build_property_groups(model, classification, legacy, log)
        item_groups = self._build_item_groups(model, classification, preserved_references, legacy, log)
        self._drop_imports(model, log)
        verbatim = self._handle_targets(model, log)
        generated = tuple(migrate_build_events(model, log))

        target = SdkProject(
            sdk=classification.sdk.sdk,
            property_groups=property_groups,
            item_groups=item_groups,
            generated_targets=generated,
            verbatim_fragments=verbatim,
        )
        logger.debug(
            "Transformed %s -> %s (%d removed, %d warnings)",
            model.path, target.sdk, len(log.removed_elements), len(log.warnings),
        )
        return StageResult.success(TransformOutcome(
            target=target,
            change_log=log,
            classification=classification,
            cleanup=legacy.cleanup(model.path),
        ))

    # ── Legacy metadata ──────────────────────────────────────────

    @staticmethod
    def _read_legacy_metadata(model: ProjectModel, log: ChangeLog) -> _LegacyMetadata:
        legacy = _LegacyMetadata()

        found = find_assembly_info(model)
        if found is not None and model.get_property("GenerateAssemblyInfo").lower() != "false":
            item, path = found
            migration = read_assembly_info(path, item.include)
            if migration.migratable:
                legacy.assembly_info = migration
                for name in migration.dropped:
                    log.removed(f"Assembly attribute: {name} (SDK default)")
                log.note(f"{item.include}: assembly attributes moved to the project file")
            else:
                log.warn(f"{item.include} not migrated: {migration.blockers[0]}")

        nuspec_path = find_nuspec(model.path)
        if nuspec_path is not None:
            name = os.path.basename(nuspec_path)
            nuspec = read_nuspec(nuspec_path, os.path.dirname(os.path.abspath(model.path)))
            if nuspec is None:
                log.warn(f"Could not read {name}; package metadata not migrated")
            else:
                legacy.nuspec = nuspec
                log.warnings.extend(nuspec.warnings)
                log.notes.extend(nuspec.notes)
                log.note(f"{name}: package metadata moved to the project file")
        return legacy

    # ── Properties ───────────────────────────────────────────────

    def _build_property_groups(
        self,
        model: ProjectModel,
        classification: Classification,
        legacy: _LegacyMetadata,
        log: ChangeLog,
    ) -> Tuple[TargetPropertyGroup, ...]:
        plan = _PropertyPlan()
        frameworks = classification.target_frameworks
        if classification.multi_targeted:
            plan.set("TargetFrameworks", ";".join(frameworks))
        else:
            plan.set("TargetFramework", frameworks[0])

        stem = _project_stem(model.path)
        inherited = read_inherited_properties(
            os.path.dirname(os.path.abspath(model.path)), self._inherited_cache
        )
        values = _unconditional_last_values(model.properties)
        assembly_name = values.get("AssemblyName", stem)

        for name, value in values.items():
            rule = PROPERTY_RULES_BY_NAME.get(name.lower())
            action = rule.action if rule else None

            if action == PropertyAction.REMOVE:
                log.removed(f"Property: {name}")
                continue
            if action == PropertyAction.FRAMEWORK:
                log.removed(f"Property: {name} (replaced by TargetFramework)")
                continue
            if action in (PropertyAction.BUILD_EVENT, PropertyAction.SIGNING):
                continue
            if not value:
                log.removed(f"Property: {name} (empty)")
                continue

            if action == PropertyAction.SYNTHESIZE:
                default = stem if rule.default == PROJECT_NAME_DEFAULT else rule.default
                redundant = value.lower() == (default or "").lower()
                if name == "RootNamespace" and value == assembly_name:
                    redundant = True
                if redundant:
                    log.removed(f"Property: {name} (matches SDK default)")
                    continue
            elif action is None:
                if value in IMPLICIT_CONDITIONAL_VALUES.get(name, frozenset()):
                    log.removed(f"Property: {name} (SDK default)")
                    continue
                log.note(f"Preserved unrecognized property '{name}'")

            if inherited.get(name) == value:
                log.note(f"Property {name} inherited from Directory.Build.props")
                continue
            plan.set(name, value)

        self._add_signing(model, plan, log)

        # Project file values win over AssemblyInfo, which wins over the nuspec.
        for source, extracted in legacy.property_sources():
            for name, value in extracted.items():
                current = plan.values.get(name)
                if current is not None:
                    if current != value:
                        log.note(f"{source}: {name} already set to '{current}'; '{value}' ignored")
                    continue
                if name == "PackageId" and value == assembly_name:
                    log.removed(f"{source}: {name} (matches AssemblyName)")
                    continue
                if inherited.get(name) == value:
                    log.note(f"Property {name} inherited from Directory.Build.props")
                    continue
                plan.set(name, value)

        self._add_platform_properties(model, classification, legacy, plan, log)

        groups: List[TargetPropertyGroup] = [TargetPropertyGroup(properties=plan.freeze())]
        groups.extend(self._conditional_groups(model, classification, log))
        return tuple(groups)

    @staticmethod
    def _add_signing(model: ProjectModel, plan: _PropertyPlan, log: ChangeLog) -> None:
        if model.get_property("SignAssembly").lower() != "true":
            for name in ("SignAssembly", "AssemblyOriginatorKeyFile", "DelaySign"):
                if model.get_property(name):
                    log.removed(f"Property: {name} (signing disabled)")
            return

        plan.set("SignAssembly", "true")
        key_file = model.get_property("AssemblyOriginatorKeyFile")
        if key_file:
            if os.path.isabs(key_file):
                key_file = os.path.relpath(key_file, os.path.dirname(os.path.abspath(model.path)))
            plan.set("AssemblyOriginatorKeyFile", key_file.replace("\\", "/"))
        if model.get_property("DelaySign").lower() == "true":
            plan.set("DelaySign", "true")

    @staticmethod
    def _add_platform_properties(
        model: ProjectModel,
        classification: Classification,
        legacy: _LegacyMetadata,
        plan: _PropertyPlan,
        log: ChangeLog,
    ) -> None:
        sdk = classification.sdk
        if classification.any_modern:
            if sdk.uses_wpf and "UseWPF" not in plan.values:
                plan.set("UseWPF", "true")
            if sdk.uses_winforms and "UseWindowsForms" not in plan.values:
                plan.set("UseWindowsForms", "true")

        if sdk.is_system_web:
            plan.set("DefaultItemExcludes", "$(DefaultItemExcludes);publish\\**")
            plan.set("GeneratedBindingRedirectsAction", "Overwrite")

        compiles_assembly_info = any(
            _file_name(c.include).lower() in ASSEMBLY_INFO_FILE_NAMES
            for c in model.items_of("Compile")
        )
        kept_file = compiles_assembly_info and legacy.assembly_info is None
        if kept_file and "GenerateAssemblyInfo" not in plan.values:
            plan.set("GenerateAssemblyInfo", "false")
            log.note("Legacy AssemblyInfo file kept; GenerateAssemblyInfo disabled")

    @staticmethod
    def _conditional_groups(
        model: ProjectModel, classification: Classification, log: ChangeLog
    ) -> List[TargetPropertyGroup]:
        grouped: "OrderedDict[str, OrderedDict[str, str]]" = OrderedDict()
        for prop in model.properties:
            if not prop.condition:
                continue
            rule = PROPERTY_RULES_BY_NAME.get(prop.name.lower())
            if rule and rule.action != PropertyAction.PRESERVE:
                log.removed(f"Property: {prop.name} (condition {prop.condition.strip()})")
                continue
            if prop.name in CONDITIONAL_PROPERTIES and (
                not prop.value
                or prop.value in IMPLICIT_CONDITIONAL_VALUES.get(prop.name, frozenset())
            ):
                log.removed(f"Property: {prop.name}={prop.value} (SDK default)")
                continue

            condition = prop.condition.strip()
            if classification.multi_targeted:
                condition = rewrite_framework_condition(condition)
            grouped.setdefault(condition, OrderedDict())[prop.name] = prop.value

        return [
            TargetPropertyGroup(
                properties=tuple(TargetProperty(n, v) for n, v in props.items()),
                condition=condition,
            )
            for condition, props in grouped.items()
        ]

    # ── Items ────────────────────────────────────────────────────

    def _build_item_groups(
        self,
        model: ProjectModel,
        classification: Classification,
        preserved_references: Sequence[ProjectItem],
        legacy: _LegacyMetadata,
        log: ChangeLog,
    ) -> Tuple[TargetItemGroup, ...]:
        buckets: "OrderedDict[Tuple[str, Optional[str]], List[TargetItem]]" = OrderedDict()
        explicit_compile_order = model.path.lower().endswith(".fsproj")
        wpf_implicit = classification.sdk.uses_wpf and classification.any_modern
        migrated = legacy.assembly_info

        for item in model.items:
            if migrated is not None and item.item_type == "Compile" and item.include == migrated.include:
                log.removed(f"Compile: {item.include} (attributes moved to the project file)")
                continue
            kept = self._migrate_item(item, explicit_compile_order, wpf_implicit, log)
            if kept is not None:
                buckets.setdefault((kept.item_type, kept.condition), []).append(kept)

        for ref in preserved_references:
            buckets.setdefault(("Reference", ref.condition), []).append(TargetItem(
                item_type="Reference",
                include=ref.include,
                metadata=as_metadata(ref.metadata),
                condition=ref.condition,
            ))

        for extra in legacy.items(self.legacy_files_removed):
            buckets.setdefault((extra.item_type, extra.condition), []).append(extra)

        return tuple(
            TargetItemGroup(items=tuple(items), condition=condition)
            for (_, condition), items in buckets.items()
        )

    @staticmethod
    def _migrate_item(
        item: ProjectItem,
        explicit_compile_order: bool,
        wpf_implicit: bool,
        log: ChangeLog,
    ) -> Optional[TargetItem]:
        item_type = item.item_type
        label = f"{item_type}: {item.include}"

        if item_type in ("Reference", "PackageReference"):
            return None  # consumed by the package migrator
        if item_type in REMOVED_ITEM_TYPES:
            log.removed(label)
            return None

        if item_type == "ProjectReference":
            metadata = {k: v for k, v in item.metadata.items() if k in PROJECT_REFERENCE_METADATA}
            dropped = sorted(set(item.metadata) - set(metadata))
            if dropped:
                log.removed(f"{label} metadata ({', '.join(dropped)})")
            return TargetItem(
                item_type=item_type,
                include=item.include.replace("\\", "/"),
                metadata=as_metadata(metadata),
                condition=item.condition,
            )

        if explicit_compile_order and item_type == "Compile":
            return TargetItem(item_type, item.include, metadata=as_metadata(item.metadata),
                              condition=item.condition)

        file_name = _file_name(item.include).lower()
        if item_type == "Compile" and file_name.endswith((".designer.cs", ".designer.vb")):
            log.removed(f"{label} (designer file, included by the SDK)")
            return None

        behaviour = _behaviour_metadata(item)
        implicit = _extension(item.include) in IMPLICIT_GLOBS.get(item_type, frozenset())
        if item_type in WPF_ITEM_TYPES and wpf_implicit:
            implicit = True

        if implicit:
            if not behaviour:
                log.removed(f"{label} (implicitly included)")
                return None
            if "Link" in behaviour:
                return TargetItem(item_type, item.include, metadata=as_metadata(behaviour),
                                  condition=item.condition)
            return TargetItem(item_type, item.include, update=True,
                              metadata=as_metadata(behaviour), condition=item.condition)

        if item_type in ("Content", "None"):
            normalized = item.include.replace("\\", "/").lower()
            if (
                file_name in AUTO_INCLUDED_FILE_NAMES
                or (file_name.startswith(APPSETTINGS_PREFIX) and file_name.endswith(".json"))
                or normalized.startswith(AUTO_INCLUDED_PREFIXES)
            ):
                if not behaviour or file_name == "packages.config":
                    log.removed(f"{label} (included by the SDK)")
                    return None
                return TargetItem(item_type, item.include, update=True,
                                  metadata=as_metadata(behaviour), condition=item.condition)
            return TargetItem(item_type, item.include, metadata=as_metadata(behaviour),
                              condition=item.condition)

        return TargetItem(item_type, item.include, metadata=as_metadata(item.metadata),
                          condition=item.condition)

    # ── Imports ──────────────────────────────────────────────────

    @staticmethod
    def _drop_imports(model: ProjectModel, log: ChangeLog) -> None:
        for entry in model.imports:
            if _is_system_import(entry.project):
                log.removed(f"Import: {entry.project}")
                continue
            destination = (
                "Directory.Build.props" if entry.project.lower().endswith(".props")
                else "Directory.Build.targets"
            )
            log.removed(f"Import: {entry.project} (custom)")
            log.warn(
                f"Custom import '{entry.project}' was removed; "
                f"consider moving it to {destination}"
            )

    # ── Targets ──────────────────────────────────────────────────

    @staticmethod
    def _handle_targets(model: ProjectModel, log: ChangeLog) -> Tuple[str, ...]:
        verbatim: List[str] = []
        for target in model.targets:
            name = target.name
            if name in COMMON_HOOK_TARGETS:
                log.removed(f"Target: {name}")
                if target.tasks:
                    attribute, phase = COMMON_HOOK_TARGETS[name]
                    log.warn(
                        f"Target '{name}' is not invoked by the SDK; re-create it as "
                        f"<Target Name=\"Custom{name}\" {attribute}=\"{phase}\">"
                    )
                continue
            if name in SDK_OWNED_TARGETS:
                log.removed(f"Target: {name} (provided by the SDK)")
                continue
            verbatim.append(target.raw_xml)
            log.warn(f"Preserved custom target '{name}'. Manual review recommended.")

        for element in model.raw_elements:
            verbatim.append(element.raw_xml)
            log.warn(f"Preserved <{element.tag}> element. Manual review recommended.")
        return tuple(verbatim)
