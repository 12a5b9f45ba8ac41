"""Run summary: per-project results, batch counts and the exit code."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from .models import MigrationResult, ProjectVersionUpdate, VersionResolution
from .packages.manifest import ManifestResult

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_REVIEW = 2


@dataclass
class MigrationReport:
    root_directory: str
    start_time: datetime
    end_time: Optional[datetime] = None
    results: List[MigrationResult] = field(default_factory=list)
    resolutions: List[VersionResolution] = field(default_factory=list)
    updates: List[ProjectVersionUpdate] = field(default_factory=list)
    manifest: Optional[ManifestResult] = None
    manifest_path: Optional[str] = None
    files_cleaned: List[str] = field(default_factory=list)
    # Files whose bytes differ from disk; identical in preview and real runs.
    planned_changes: List[str] = field(default_factory=list)
    not_processed: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    preview: bool = False
    backup_session_id: Optional[str] = None
    audit_path: Optional[str] = None

    # ── Counts ───────────────────────────────────────────────────

    @property
    def migrated(self) -> List[MigrationResult]:
        return [r for r in self.results if r.success and not r.already_migrated]

    @property
    def failed(self) -> List[MigrationResult]:
        return [r for r in self.results if r.is_failed]

    @property
    def already_migrated(self) -> List[MigrationResult]:
        return [r for r in self.results if r.already_migrated]

    @property
    def conflicts_resolved(self) -> int:
        return len(self.resolutions)

    @property
    def has_warnings(self) -> bool:
        if self.warnings or any(r.warnings for r in self.results if not r.already_migrated):
            return True
        if any(r.warnings for r in self.resolutions):
            return True
        return bool(self.manifest and (self.manifest.warnings or self.manifest.special_handling))

    def exit_code(self) -> int:
        """0 clean, 1 any hard failure or unprocessed project, 2 preview needing review."""
        if self.failed or self.not_processed:
            return EXIT_FAILED
        if self.preview and self.has_warnings:
            return EXIT_REVIEW
        return EXIT_OK

    def summary(self) -> Dict[str, Any]:
        return {
            "projects": len(self.results),
            "migrated": len(self.migrated),
            "failed": len(self.failed),
            "alreadyMigrated": len(self.already_migrated),
            "conflictsResolved": self.conflicts_resolved,
            "filesCleaned": len(self.files_cleaned),
            "notProcessed": len(self.not_processed),
            "preview": self.preview,
        }

    # ── Rendering ────────────────────────────────────────────────

    def render_text(self) -> str:
        lines: List[str] = []
        title = "Migration preview" if self.preview else "Migration report"
        lines.append(f"{title}: {self.root_directory}")
        lines.append("=" * len(lines[0]))

        for result in self.results:
            if result.already_migrated:
                status = "SKIPPED"
            elif result.success:
                status = "OK"
            elif result.is_failed:
                status = "FAILED"
            else:
                status = result.state.value.upper()
            detail = f" [{result.sdk}; {';'.join(result.target_frameworks)}]" if result.sdk else ""
            lines.append(f"{status:8} {result.project_path}{detail}")
            if result.loaded_degraded:
                lines.append("         loaded in degraded mode")
            for error in result.errors:
                lines.append(f"         error: {error}")
            for warning in result.warnings:
                lines.append(f"         warning: {warning}")
            for note in result.notes:
                lines.append(f"         note: {note}")

        if self.resolutions:
            lines.append("")
            lines.append("Version conflicts:")
            for resolution in self.resolutions:
                flag = " (degraded)" if resolution.degraded else ""
                lines.append(
                    f"  {resolution.package_id} -> {resolution.resolved_version} "
                    f"[{resolution.strategy}] {resolution.reason}{flag}"
                )
                for warning in resolution.warnings:
                    lines.append(f"    warning: {warning}")

        if self.manifest is not None:
            lines.append("")
            lines.append(
                f"Central package manifest: {len(self.manifest.entries)} packages"
                + (f" -> {self.manifest_path}" if self.manifest_path else "")
            )
            for package_id, note in self.manifest.special_handling.items():
                lines.append(f"  review {package_id}: {note}")
            for warning in self.manifest.warnings:
                lines.append(f"  warning: {warning}")

        if self.planned_changes:
            lines.append("")
            lines.append("Files that would change:" if self.preview else "Files changed:")
            lines.extend(f"  {path}" for path in self.planned_changes)

        if self.not_processed:
            lines.append("")
            lines.append("Not processed:")
            lines.extend(f"  {path}" for path in self.not_processed)

        for warning in self.warnings:
            lines.append(f"warning: {warning}")

        lines.append("")
        lines.append(
            f"Migrated: {len(self.migrated)}  Failed: {len(self.failed)}  "
            f"Already SDK-style: {len(self.already_migrated)}  "
            f"Conflicts resolved: {self.conflicts_resolved}  "
            f"Files cleaned: {len(self.files_cleaned)}  "
            f"Not processed: {len(self.not_processed)}"
        )
        if self.backup_session_id:
            lines.append(f"Backup session: {self.backup_session_id}")
        if self.audit_path and not self.preview:
            lines.append(f"Audit log: {self.audit_path}")
        if self.end_time is not None:
            seconds = (self.end_time - self.start_time).total_seconds()
            lines.append(f"Elapsed: {seconds:.1f}s")
        return "\n".join(lines) + "\n"
