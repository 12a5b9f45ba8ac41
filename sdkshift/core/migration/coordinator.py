"""Migration coordinator.

Runs the whole batch:

1. Acquire the directory lock (real runs only) and open backup/audit.
2. Per project, bounded by ``max_parallelism``: parse, classify, migrate
   package references, elide transitive packages, transform.  Each
   pipeline runs start to finish on one worker thread.
3. Barrier: ``asyncio.gather`` over every project.
4. Batch phases, sequentially: sibling elision, conflict resolution,
   central manifest (merged with an existing one), project writes, legacy
   file cleanup.  A manifest that cannot be written leaves projects with
   versioned references.
5. Report.

Per-run state lives in a :class:`RunContext`; nothing is cached at
module level.
"""

import asyncio
import logging
import os
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Set

from ..config import MigrationOptions
from ..errors import BackupError, MigrationError, ParseError
from ..project_model import ProjectModel, ProjectModelProvider
from ..safety import AuditLog, BackupService, DirectoryLock, GuardedFileSystem
from ..safety.backup import BACKUP_DIRECTORY_PREFIX
from ..safety.files import hash_bytes, hash_file
from .models import (
    FileCleanup,
    MigrationResult,
    PackageRequest,
    ProjectState,
)
from .packages import (
    MANIFEST_FILE_NAME,
    CentralManifestGenerator,
    ConflictResolver,
    ManifestResult,
    NuGetRegistryClient,
    OfflineRegistryClient,
    PackageReferenceMigrator,
    RegistryClient,
    TransitiveElisionAnalyzer,
    build_package_references,
    read_existing_manifest,
)
from .packages.migrator import declared_package_ids
from .report import MigrationReport
from .rules import RuleEngine
from .rules.tables import ALREADY_MIGRATED_NOTE
from .target import SdkProject
from .writer import render_project

logger = logging.getLogger(__name__)

PROJECT_EXTENSIONS = (".csproj", ".vbproj", ".fsproj")

SKIP_DIRECTORIES = frozenset({
    "bin", "obj", ".git", ".vs", ".idea", "node_modules", "packages", "TestResults",
})


def should_skip_directory(name: str) -> bool:
    return name in SKIP_DIRECTORIES or name.startswith(BACKUP_DIRECTORY_PREFIX)


def find_projects(root_directory: str, exclude: Optional[str] = None) -> List[str]:
    """Project files under *root_directory*, sorted; *exclude* is pruned."""
    excluded = os.path.abspath(exclude) if exclude else None
    projects = []
    for dirpath, dirnames, filenames in os.walk(root_directory):
        dirnames[:] = sorted(
            d for d in dirnames
            if not should_skip_directory(d)
            and os.path.abspath(os.path.join(dirpath, d)) != excluded
        )
        for fname in filenames:
            if fname.lower().endswith(PROJECT_EXTENSIONS):
                projects.append(os.path.abspath(os.path.join(dirpath, fname)))
    return sorted(projects)


def _normalize(path: str) -> str:
    return os.path.normcase(os.path.abspath(path))


class _Cancelled(Exception):
    """Raised inside a pipeline when the run was cancelled between stages."""


# ── Run state ───────────────────────────────────────────────────────


@dataclass
class RunContext:
    """Everything one run shares across its worker threads."""

    options: MigrationOptions
    root_directory: str
    registry: RegistryClient
    provider: ProjectModelProvider
    engine: RuleEngine
    package_migrator: PackageReferenceMigrator
    elision: TransitiveElisionAnalyzer
    cancel_event: threading.Event
    inherited_cache: Dict[str, Dict[str, str]] = field(default_factory=dict)
    audit: Optional[AuditLog] = None
    backup: Optional[BackupService] = None
    files: Optional[GuardedFileSystem] = None

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def output_path_for(self, project_path: str) -> str:
        if not self.options.output_directory:
            return project_path
        relative = os.path.relpath(project_path, self.root_directory)
        return os.path.abspath(os.path.join(self.options.output_directory, relative))

    def close(self) -> None:
        self.inherited_cache.clear()


@dataclass
class ProjectOutcome:
    """Per-project product held from the pipeline until the batch phases."""

    result: MigrationResult
    target: Optional[SdkProject] = None
    requests: List[PackageRequest] = field(default_factory=list)
    cleanup: List[FileCleanup] = field(default_factory=list)
    project_references: List[str] = field(default_factory=list)
    supplied: Set[str] = field(default_factory=set)

    @property
    def transformed(self) -> bool:
        return self.result.state == ProjectState.TRANSFORMED


class BatchAggregator:
    """Thread-safe collection point for per-project outcomes."""

    def __init__(self, project_paths: List[str]):
        self._lock = threading.Lock()
        self._outcomes: "OrderedDict[str, Optional[ProjectOutcome]]" = OrderedDict(
            (p, None) for p in project_paths
        )
        self._not_processed: Dict[str, Optional[str]] = {}

    def add(self, path: str, outcome: ProjectOutcome) -> None:
        with self._lock:
            self._outcomes[path] = outcome

    def skip(self, path: str, note: Optional[str] = None) -> None:
        with self._lock:
            self._not_processed.setdefault(path, note)

    def skip_note(self, path: str) -> Optional[str]:
        with self._lock:
            return self._not_processed.get(path)

    @property
    def outcomes(self) -> List[ProjectOutcome]:
        with self._lock:
            return [o for o in self._outcomes.values() if o is not None]

    @property
    def not_processed(self) -> List[str]:
        with self._lock:
            return [p for p in self._outcomes if p in self._not_processed]

    def transformed(self) -> List[ProjectOutcome]:
        return [o for o in self.outcomes if o.transformed]

    def supplied_by(self, project_path: str) -> Optional[Set[str]]:
        """Packages a successfully transformed project supplies, if any."""
        key = _normalize(project_path)
        for outcome in self.outcomes:
            if outcome.transformed and _normalize(outcome.result.project_path) == key:
                return outcome.supplied
        return None

    def all_requests(self) -> List[PackageRequest]:
        requests: List[PackageRequest] = []
        for outcome in self.transformed():
            requests.extend(outcome.requests)
        return requests


# ═══════════════════════════════════════════════════════════════════
# Coordinator
# ═══════════════════════════════════════════════════════════════════


class MigrationCoordinator:
    """Migrates every project under ``options.directory`` in one run."""

    def __init__(
        self,
        options: MigrationOptions,
        registry: Optional[RegistryClient] = None,
        provider: Optional[ProjectModelProvider] = None,
    ):
        self.options = options
        self.root_directory = os.path.abspath(options.directory)
        self._registry = registry
        self._provider = provider or ProjectModelProvider()
        self._cancel_event = threading.Event()

    def cancel(self) -> None:
        """Stop picking up new projects; in-flight ones stop at their next stage."""
        logger.warning("Cancellation requested")
        self._cancel_event.set()

    def run_sync(self) -> MigrationReport:
        return asyncio.run(self.run())

    async def run(self) -> MigrationReport:
        """Run the batch.

        Raises:
            LockAcquisitionError: Another run holds the directory lock.
                Nothing has been written when this is raised.
        """
        if not os.path.isdir(self.root_directory):
            raise MigrationError(f"Directory not found: {self.root_directory}")

        lock = None if self.options.preview else DirectoryLock(self.root_directory)
        if lock is not None:
            lock.acquire()
        try:
            return await self._run_locked()
        finally:
            if lock is not None:
                lock.release()

    async def _run_locked(self) -> MigrationReport:
        context = self._create_context()
        report = MigrationReport(
            root_directory=self.root_directory,
            start_time=datetime.now(),
            preview=self.options.preview,
            audit_path=context.audit.path if context.audit else None,
        )
        try:
            if context.audit is not None:
                context.audit.log_migration_start(
                    self.root_directory, self.options.model_dump(mode="json")
                )
            if context.backup is not None:
                report.backup_session_id = context.backup.start_session().session_id

            projects = find_projects(self.root_directory, exclude=self.options.output_directory)
            logger.info("Found %d project(s) under %s", len(projects), self.root_directory)

            aggregator = BatchAggregator(projects)
            semaphore = asyncio.Semaphore(self.options.max_parallelism)
            await asyncio.gather(*(
                self._process_with_semaphore(context, aggregator, semaphore, path)
                for path in projects
            ))

            self._finish_batch(context, aggregator, report)
        except Exception as e:
            if context.audit is not None:
                context.audit.log_error("run", str(e))
            raise
        finally:
            report.end_time = datetime.now()
            if context.audit is not None:
                context.audit.log_migration_end(report.summary())
            context.close()

        logger.info(
            "Migration finished: %d migrated, %d failed, %d already SDK-style, %d not processed",
            len(report.migrated), len(report.failed),
            len(report.already_migrated), len(report.not_processed),
        )
        return report

    def _create_context(self) -> RunContext:
        options = self.options
        registry = self._registry
        if registry is None:
            if options.offline:
                registry = OfflineRegistryClient()
            else:
                registry = NuGetRegistryClient(source=options.nuget_source, timeout=options.registry_timeout)

        inherited_cache: Dict[str, Dict[str, str]] = {}
        context = RunContext(
            options=options,
            root_directory=self.root_directory,
            registry=registry,
            provider=self._provider,
            engine=RuleEngine(
                target_framework_override=options.target_framework,
                default_target_framework=options.default_target_framework,
                inherited_cache=inherited_cache,
                legacy_files_removed=options.clean_legacy_files and not options.output_directory,
            ),
            package_migrator=PackageReferenceMigrator(registry),
            elision=TransitiveElisionAnalyzer(registry, extra_essential=options.essential_packages),
            cancel_event=self._cancel_event,
            inherited_cache=inherited_cache,
        )
        if options.writes_files:
            audit_directory = options.output_directory or self.root_directory
            context.audit = AuditLog(audit_directory)
            if options.create_backup:
                context.backup = BackupService(self.root_directory)
            context.files = GuardedFileSystem(context.audit, context.backup)
        return context

    # ── Per-project pipeline ─────────────────────────────────────

    async def _process_with_semaphore(
        self,
        context: RunContext,
        aggregator: BatchAggregator,
        semaphore: asyncio.Semaphore,
        path: str,
    ) -> None:
        async with semaphore:
            if context.cancelled:
                logger.info("Skipping %s: run cancelled", path)
                aggregator.skip(path)
                return
            await asyncio.to_thread(self._process_project_sync, context, aggregator, path)

    def _process_project_sync(
        self, context: RunContext, aggregator: BatchAggregator, path: str
    ) -> None:
        result = MigrationResult(project_path=path, output_path=context.output_path_for(path))
        outcome = ProjectOutcome(result=result)
        try:
            self._run_pipeline(context, outcome)
        except _Cancelled:
            logger.info("Stopped %s after %s: run cancelled", path, result.state.value)
            note = f"Cancelled after {result.state.value}"
            result.notes.append(note)
            aggregator.skip(path, note)
        except Exception as e:
            logger.error("Migration of %s failed", path, exc_info=True)
            if not result.is_terminal:
                result.fail(f"Unexpected error: {e}")
            if context.audit is not None:
                context.audit.log_error(path, str(e))
        aggregator.add(path, outcome)

    def _run_pipeline(self, context: RunContext, outcome: ProjectOutcome) -> None:
        result = outcome.result
        path = result.project_path

        result.advance(ProjectState.PARSING)
        model = self._parse(context, result)
        if model is None:
            return
        result.advance(ProjectState.PARSED)

        if model.is_sdk_style:
            result.already_migrated = True
            result.sdk = model.sdk
            result.notes.append(ALREADY_MIGRATED_NOTE)
            result.advance(ProjectState.DONE_SUCCESS)
            logger.info("%s is already SDK-style", path)
            return

        self._check_cancelled(context)
        result.advance(ProjectState.CLASSIFYING)
        classification = context.engine.classify(model, declared_package_ids(model))
        packages = context.package_migrator.migrate(
            model, classification.sdk, classification.target_frameworks
        )
        elision = context.elision.elide(packages.requests, os.path.dirname(path))

        self._check_cancelled(context)
        result.advance(ProjectState.TRANSFORMING)
        transformed = context.engine.transform(model, classification, packages.preserved_references)
        if not transformed.ok:
            result.warnings.extend(packages.change_log.warnings)
            result.fail(transformed.error.message)
            return

        change_log = transformed.value.change_log
        change_log.extend(packages.change_log)
        result.sdk = classification.sdk.sdk
        result.target_frameworks = list(classification.target_frameworks)
        result.removed_elements.extend(change_log.removed_elements)
        result.warnings.extend(change_log.warnings)
        result.warnings.extend(elision.warnings)
        result.notes.extend(change_log.notes)
        if elision.elided:
            result.notes.append(f"Removed transitive packages: {', '.join(elision.elided)}")
        result.migrated_packages = elision.kept

        outcome.target = transformed.value.target
        outcome.requests = packages.requests
        outcome.cleanup = packages.cleanup + transformed.value.cleanup
        outcome.supplied = elision.supplied
        outcome.project_references = [
            _normalize(os.path.join(os.path.dirname(path), item.include.replace("\\", os.sep)))
            for item in model.items_of("ProjectReference")
            if item.include
        ]
        result.advance(ProjectState.TRANSFORMED)

    def _parse(self, context: RunContext, result: MigrationResult) -> Optional[ProjectModel]:
        path = result.project_path
        try:
            return context.provider.evaluate(path)
        except ParseError as e:
            if not e.recoverable:
                result.fail(str(e))
                return None
            logger.warning("Retrying %s in degraded mode: %s", path, e)

        try:
            model = context.provider.evaluate(path, degraded=True)
        except ParseError as e:
            result.fail(str(e))
            return None
        result.loaded_degraded = True
        result.warnings.append(
            "Loaded in degraded mode; stripped: " + ", ".join(model.stripped_constructs)
        )
        return model

    @staticmethod
    def _check_cancelled(context: RunContext) -> None:
        if context.cancelled:
            raise _Cancelled()

    # ── Batch phases ─────────────────────────────────────────────

    def _finish_batch(
        self, context: RunContext, aggregator: BatchAggregator, report: MigrationReport
    ) -> None:
        options = context.options
        report.results = [o.result for o in aggregator.outcomes]

        if context.cancelled:
            for outcome in aggregator.transformed():
                aggregator.skip(outcome.result.project_path)
            report.not_processed = aggregator.not_processed
            report.results = [r for r in report.results if r.project_path not in report.not_processed]
            report.warnings.extend(
                f"{path}: {aggregator.skip_note(path)}"
                for path in report.not_processed if aggregator.skip_note(path)
            )
            report.warnings.append("Run cancelled; no files were written")
            return
        report.not_processed = aggregator.not_processed

        self._elide_from_siblings(context, aggregator)

        all_requests = aggregator.all_requests()
        resolver = ConflictResolver(
            strategy=options.effective_strategy,
            overrides=options.package_version_overrides,
            prefer_stable=options.prefer_stable_versions,
        )
        report.resolutions = resolver.resolve(all_requests)
        report.updates = resolver.derive_updates(all_requests, report.resolutions)
        resolved = {r.package_id.lower(): r.resolved_version for r in report.resolutions}
        for request in all_requests:
            if not request.is_transitive and request.has_pinned_version and request.key in resolved:
                request.version = resolved[request.key]

        manifest = None
        if options.enable_central_package_management and aggregator.transformed():
            manifest = self._write_manifest(context, all_requests, report)

        for outcome in aggregator.transformed():
            target = outcome.target.with_packages(build_package_references(outcome.requests))
            if manifest is not None:
                target = CentralManifestGenerator.apply_to_project(target, manifest)
            self._write_project(context, outcome, render_project(target), report)

        self._clean_legacy_files(context, aggregator, report)

    def _write_manifest(
        self, context: RunContext, all_requests: List[PackageRequest], report: MigrationReport
    ) -> Optional[ManifestResult]:
        """Generate and write the central manifest before any project.

        Returns ``None`` when it could not be read or written; projects then
        keep versioned package references.
        """
        manifest_directory = context.options.output_directory or self.root_directory
        manifest_path = os.path.abspath(os.path.join(manifest_directory, MANIFEST_FILE_NAME))
        try:
            existing = read_existing_manifest(os.path.join(self.root_directory, MANIFEST_FILE_NAME))
        except ParseError as e:
            logger.warning("Central package management skipped: %s", e)
            report.warnings.append(
                f"{e}; central package management skipped, projects keep package versions"
            )
            return None

        manifest = CentralManifestGenerator(context.registry).generate(
            report.resolutions, all_requests, existing
        )
        try:
            self._write_file(
                context, manifest_path, CentralManifestGenerator.render(manifest),
                "Central package management manifest", report,
            )
        except (BackupError, OSError) as e:
            logger.error("Writing %s failed", manifest_path, exc_info=True)
            if manifest_path in report.planned_changes:
                report.planned_changes.remove(manifest_path)
            report.warnings.append(
                f"Could not write {MANIFEST_FILE_NAME}: {e}; projects keep package versions"
            )
            return None

        report.manifest = manifest
        report.manifest_path = manifest_path
        return manifest

    def _elide_from_siblings(self, context: RunContext, aggregator: BatchAggregator) -> None:
        """Elide packages supplied by directly referenced projects (one level)."""
        for outcome in aggregator.transformed():
            sibling_supplied: Set[str] = set()
            for reference in outcome.project_references:
                supplied = aggregator.supplied_by(reference)
                if supplied:
                    sibling_supplied |= supplied
            if not sibling_supplied:
                continue
            elided = context.elision.elide_from_siblings(outcome.requests, sibling_supplied)
            if elided:
                outcome.result.notes.append(
                    f"Removed packages supplied by referenced projects: {', '.join(elided)}"
                )
                outcome.result.migrated_packages = [r for r in outcome.requests if not r.is_transitive]

    def _write_project(
        self, context: RunContext, outcome: ProjectOutcome, text: str, report: MigrationReport
    ) -> None:
        result = outcome.result
        if context.files is None:
            self._write_file(context, result.output_path, text, "", report)
            result.advance(ProjectState.DONE_SUCCESS)
            return

        result.advance(ProjectState.WRITING)
        try:
            self._write_file(context, result.output_path, text, "Migrated to SDK-style project", report)
        except (BackupError, OSError) as e:
            logger.error("Writing %s failed", result.output_path, exc_info=True)
            result.fail(f"Write failed: {e}")
            return
        result.advance(ProjectState.DONE_SUCCESS)

    def _write_file(
        self, context: RunContext, path: str, text: str, reason: str, report: MigrationReport
    ) -> None:
        if not self._would_change(path, text):
            return
        report.planned_changes.append(path)
        if context.files is not None:
            context.files.write_text(path, text, reason=reason)

    @staticmethod
    def _would_change(path: str, text: str) -> bool:
        return hash_file(path) != hash_bytes(text.encode("utf-8"))

    def _clean_legacy_files(
        self, context: RunContext, aggregator: BatchAggregator, report: MigrationReport
    ) -> None:
        options = context.options
        # Output-directory runs leave the source tree untouched.
        if not options.clean_legacy_files or options.output_directory:
            return
        for outcome in aggregator.outcomes:
            if not outcome.result.success:
                continue
            for cleanup in outcome.cleanup:
                if not os.path.exists(cleanup.path):
                    continue
                report.planned_changes.append(cleanup.path)
                if context.files is None:
                    continue
                try:
                    context.files.delete(cleanup.path, reason=cleanup.reason)
                    report.files_cleaned.append(cleanup.path)
                except (BackupError, OSError) as e:
                    logger.warning("Could not delete %s: %s", cleanup.path, e)
                    outcome.result.warnings.append(f"Could not delete {cleanup.path}: {e}")
