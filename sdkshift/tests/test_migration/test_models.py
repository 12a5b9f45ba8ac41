"""Unit tests for the per-project state machine and request helpers."""

import pytest

from sdkshift.core.errors import InvalidStateTransition
from sdkshift.core.migration.models import (
    ConflictSet,
    MigrationResult,
    PackageRequest,
    ProjectState,
)


class TestStateMachine:
    def test_happy_path(self):
        result = MigrationResult(project_path="A.csproj")
        for state in (
            ProjectState.PARSING, ProjectState.PARSED, ProjectState.CLASSIFYING,
            ProjectState.TRANSFORMING, ProjectState.TRANSFORMED, ProjectState.WRITING,
            ProjectState.DONE_SUCCESS,
        ):
            result.advance(state)

        assert result.success is True
        assert result.is_terminal
        assert result.history[0] == ProjectState.NOT_STARTED

    def test_preview_skips_writing(self):
        result = MigrationResult(project_path="A.csproj")
        for state in (
            ProjectState.PARSING, ProjectState.PARSED, ProjectState.CLASSIFYING,
            ProjectState.TRANSFORMING, ProjectState.TRANSFORMED, ProjectState.DONE_SUCCESS,
        ):
            result.advance(state)

        assert result.success is True

    def test_already_migrated_short_circuit(self):
        result = MigrationResult(project_path="A.csproj")
        result.advance(ProjectState.PARSING)
        result.advance(ProjectState.PARSED)
        result.advance(ProjectState.DONE_SUCCESS)

        assert result.success

    def test_illegal_transition_raises(self):
        result = MigrationResult(project_path="A.csproj")

        with pytest.raises(InvalidStateTransition):
            result.advance(ProjectState.TRANSFORMED)

    def test_terminal_state_is_final(self):
        result = MigrationResult(project_path="A.csproj")
        result.fail("boom")

        with pytest.raises(InvalidStateTransition):
            result.advance(ProjectState.PARSING)

    @pytest.mark.parametrize("reached,expected_path", [
        (ProjectState.PARSING, [ProjectState.PARSE_FAILED]),
        (ProjectState.TRANSFORMING, [ProjectState.TRANSFORM_FAILED]),
        (ProjectState.WRITING, []),
    ])
    def test_fail_walks_legal_path(self, reached, expected_path):
        order = [
            ProjectState.PARSING, ProjectState.PARSED, ProjectState.CLASSIFYING,
            ProjectState.TRANSFORMING, ProjectState.TRANSFORMED, ProjectState.WRITING,
        ]
        result = MigrationResult(project_path="A.csproj")
        for state in order[:order.index(reached) + 1]:
            result.advance(state)

        result.fail("boom")

        assert result.state == ProjectState.DONE_FAILED
        assert result.is_failed
        assert result.success is False
        assert result.errors == ["boom"]
        assert all(state in result.history for state in expected_path)


class TestRequests:
    def test_wildcard_is_not_pinned(self):
        assert not PackageRequest("Serilog", "*", "A.csproj").has_pinned_version
        assert PackageRequest("Serilog", "3.1.1", "A.csproj").has_pinned_version

    def test_key_is_case_insensitive(self):
        assert PackageRequest("Newtonsoft.Json", "1.0", "A").key == "newtonsoft.json"

    def test_conflict_set_distinct_versions_keep_order(self):
        conflict = ConflictSet("X", (("A", "2.0.0"), ("B", "1.0.0"), ("C", "2.0.0")))

        assert conflict.distinct_versions == ["2.0.0", "1.0.0"]
