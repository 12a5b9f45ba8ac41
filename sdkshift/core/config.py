"""Run configuration.

``load_options`` layers, later winning: field defaults, a YAML file,
``SDKSHIFT_*`` environment variables (``.env`` honoured), then explicit
overrides from the command line.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .migration.packages.conflicts import StrategyRegistry
from .migration.packages.registry import DEFAULT_NUGET_SOURCE, DEFAULT_TIMEOUT
from .migration.rules.frameworks import DEFAULT_TARGET_FRAMEWORK

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config") / "sdkshift.yaml"

# env var -> option field
ENV_VARS: Dict[str, str] = {
    "SDKSHIFT_MAX_PARALLELISM": "max_parallelism",
    "SDKSHIFT_NUGET_SOURCE": "nuget_source",
    "SDKSHIFT_REGISTRY_TIMEOUT": "registry_timeout",
    "SDKSHIFT_OFFLINE": "offline",
}


class MigrationOptions(BaseModel):
    directory: str = Field(".", description="Root of the tree to migrate")
    output_directory: Optional[str] = Field(
        None, description="Write migrated projects here instead of in place"
    )
    preview: bool = Field(False, description="Compute everything, write nothing")
    create_backup: bool = Field(True, description="Back up files before changing them")
    max_parallelism: int = Field(1, ge=1, description="Projects processed concurrently")
    target_framework: Optional[str] = Field(None, description="Override every project's target framework")
    default_target_framework: str = Field(
        DEFAULT_TARGET_FRAMEWORK, description="Framework added when no modern target is found"
    )
    enable_central_package_management: bool = Field(
        False, description="Generate Directory.Packages.props"
    )
    conflict_strategy: Optional[str] = Field(
        None, description="Version conflict strategy; defaults depend on central package management"
    )
    prefer_stable_versions: bool = Field(False, description="Ignore prereleases when a stable version exists")
    package_version_overrides: Dict[str, str] = Field(
        default_factory=dict, description="Package id -> forced version"
    )
    offline: bool = Field(False, description="Use built-in package tables, no network")
    nuget_source: str = Field(DEFAULT_NUGET_SOURCE, description="NuGet v3 service index URL")
    registry_timeout: float = Field(DEFAULT_TIMEOUT, gt=0, description="Registry request timeout (seconds)")
    essential_packages: List[str] = Field(
        default_factory=list, description="Extra packages never elided as transitive"
    )
    clean_legacy_files: bool = Field(
        True, description="Delete packages.config, migrated AssemblyInfo and .nuspec files after migration"
    )

    @field_validator("conflict_strategy")
    @classmethod
    def _known_strategy(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and StrategyRegistry.get(value) is None:
            raise ValueError(
                f"unknown strategy {value!r}; expected one of "
                f"{', '.join(StrategyRegistry.list_strategies())}"
            )
        return value

    @property
    def effective_strategy(self) -> str:
        if self.conflict_strategy:
            return self.conflict_strategy
        return "UseHighest" if self.enable_central_package_management else "UseMostCommon"

    @property
    def writes_files(self) -> bool:
        return not self.preview


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.debug("No config file at %s, using defaults", path)
        return {}
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at top level")
    # allow the options to sit under a "migration:" key
    return dict(data.get("migration", data))


def _read_env() -> Dict[str, Any]:
    load_dotenv()
    values: Dict[str, Any] = {}
    for var, field_name in ENV_VARS.items():
        raw = os.getenv(var)
        if raw is None or raw == "":
            continue
        if field_name == "offline":
            values[field_name] = raw.strip().lower() in ("1", "true", "yes", "on")
        else:
            values[field_name] = raw
    return values


def load_options(config_path: Optional[str] = None, **overrides: Any) -> MigrationOptions:
    """Build validated options from file, environment and *overrides*.

    ``None`` overrides are ignored so unset CLI flags do not mask file
    or environment values.
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    if config_path and not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    merged: Dict[str, Any] = {}
    merged.update(_read_yaml(path))
    merged.update(_read_env())
    merged.update({k: v for k, v in overrides.items() if v is not None})
    options = MigrationOptions(**merged)
    logger.debug("Options: %s", options.model_dump())
    return options
