"""Unit tests for MigrationReport counts, exit codes and rendering."""

from datetime import datetime

from sdkshift.core.migration.models import MigrationResult, ProjectState, VersionResolution
from sdkshift.core.migration.report import EXIT_FAILED, EXIT_OK, EXIT_REVIEW, MigrationReport


def _succeeded(path="A.csproj", warnings=()):
    result = MigrationResult(project_path=path, sdk="Microsoft.NET.Sdk", target_frameworks=["net8.0"])
    for state in (
        ProjectState.PARSING, ProjectState.PARSED, ProjectState.CLASSIFYING,
        ProjectState.TRANSFORMING, ProjectState.TRANSFORMED, ProjectState.DONE_SUCCESS,
    ):
        result.advance(state)
    result.warnings.extend(warnings)
    return result


def _failed(path="B.csproj"):
    result = MigrationResult(project_path=path)
    result.fail("XML parse error")
    return result


def _already(path="C.csproj"):
    result = MigrationResult(project_path=path, already_migrated=True, sdk="Microsoft.NET.Sdk")
    for state in (ProjectState.PARSING, ProjectState.PARSED, ProjectState.DONE_SUCCESS):
        result.advance(state)
    result.warnings.append("ignored for already migrated projects")
    return result


def _report(*results, **kwargs):
    return MigrationReport(root_directory="/src", start_time=datetime(2024, 1, 1), results=list(results), **kwargs)


class TestExitCode:
    def test_clean_run(self):
        assert _report(_succeeded(), _already()).exit_code() == EXIT_OK

    def test_failure(self):
        assert _report(_succeeded(), _failed()).exit_code() == EXIT_FAILED

    def test_not_processed_counts_as_failure(self):
        assert _report(_succeeded(), not_processed=["D.csproj"]).exit_code() == EXIT_FAILED

    def test_preview_with_warnings_needs_review(self):
        report = _report(_succeeded(warnings=["Reference kept"]), preview=True)

        assert report.exit_code() == EXIT_REVIEW

    def test_warnings_do_not_matter_for_real_runs(self):
        assert _report(_succeeded(warnings=["Reference kept"])).exit_code() == EXIT_OK

    def test_already_migrated_warnings_ignored(self):
        assert _report(_already(), preview=True).exit_code() == EXIT_OK

    def test_resolution_warnings_need_review(self):
        resolution = VersionResolution("PackageX", "2.0.0", "UseHighest", "", warnings=["Major version change"])

        assert _report(_succeeded(), preview=True, resolutions=[resolution]).exit_code() == EXIT_REVIEW


class TestSummary:
    def test_counts(self):
        summary = _report(_succeeded(), _failed(), _already(), not_processed=["D.csproj"]).summary()

        assert summary["projects"] == 3
        assert summary["migrated"] == 1
        assert summary["failed"] == 1
        assert summary["alreadyMigrated"] == 1
        assert summary["notProcessed"] == 1


class TestRenderText:
    def test_statuses_and_totals(self):
        text = _report(
            _succeeded(), _failed(), _already(),
            planned_changes=["/src/A.csproj"], preview=True,
        ).render_text()

        assert text.startswith("Migration preview: /src")
        assert "OK       A.csproj [Microsoft.NET.Sdk; net8.0]" in text
        assert "FAILED   B.csproj" in text
        assert "error: XML parse error" in text
        assert "SKIPPED  C.csproj" in text
        assert "Files that would change:" in text
        assert "Migrated: 1  Failed: 1  Already SDK-style: 1" in text
