"""Unit tests for run configuration loading."""

import pytest
from pydantic import ValidationError

from sdkshift.core.config import ENV_VARS, MigrationOptions, load_options


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for var in ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    return tmp_path


def _write_config(tmp_path, text, name="sdkshift.yaml"):
    path = tmp_path / name
    path.write_text(text)
    return str(path)


class TestDefaults:
    def test_no_config_file(self):
        options = load_options()

        assert options.preview is False
        assert options.create_backup is True
        assert options.max_parallelism == 1
        assert options.writes_files

    def test_default_strategy_depends_on_central_management(self):
        assert MigrationOptions().effective_strategy == "UseMostCommon"
        assert MigrationOptions(enable_central_package_management=True).effective_strategy == "UseHighest"
        assert MigrationOptions(conflict_strategy="UseLowest").effective_strategy == "UseLowest"


class TestLayers:
    def test_yaml_under_migration_key(self, tmp_path):
        path = _write_config(tmp_path, "migration:\n  max_parallelism: 3\n  prefer_stable_versions: true\n")

        options = load_options(path)

        assert options.max_parallelism == 3
        assert options.prefer_stable_versions is True

    def test_default_location(self, tmp_path):
        (tmp_path / "config").mkdir()
        _write_config(tmp_path / "config", "offline: true\n")

        assert load_options().offline is True

    def test_env_beats_yaml(self, tmp_path, monkeypatch):
        path = _write_config(tmp_path, "max_parallelism: 3\n")
        monkeypatch.setenv("SDKSHIFT_MAX_PARALLELISM", "6")
        monkeypatch.setenv("SDKSHIFT_OFFLINE", "yes")

        options = load_options(path)

        assert options.max_parallelism == 6
        assert options.offline is True

    def test_overrides_beat_env_and_none_is_ignored(self, monkeypatch):
        monkeypatch.setenv("SDKSHIFT_MAX_PARALLELISM", "6")

        options = load_options(max_parallelism=2, preview=None)

        assert options.max_parallelism == 2
        assert options.preview is False


class TestValidation:
    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_options(str(tmp_path / "missing.yaml"))

    def test_unknown_strategy(self):
        with pytest.raises(ValidationError):
            load_options(conflict_strategy="UseNewest")

    def test_parallelism_must_be_positive(self):
        with pytest.raises(ValidationError):
            MigrationOptions(max_parallelism=0)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = _write_config(tmp_path, "- one\n- two\n")

        with pytest.raises(ValueError):
            load_options(path)
