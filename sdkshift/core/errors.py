"""Error taxonomy for the migration engine.

Per-project failures (parse, transform, registry, backup/write IO) are
captured into that project's ``MigrationResult`` and never escape the
batch.  Only ``LockAcquisitionError`` and truly unexpected faults abort
a run.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorKind(str, Enum):
    """Failure kinds reported by pipeline stages."""

    PARSE = "parse"
    TRANSFORM = "transform"
    CONFLICT = "conflict"
    REGISTRY = "registry"
    IO = "io"
    LOCK = "lock"
    CANCELLED = "cancelled"


class MigrationError(Exception):
    """Base class for all engine errors."""

    kind: ErrorKind = ErrorKind.TRANSFORM


class ParseError(MigrationError):
    """A project file could not be evaluated into a model."""

    kind = ErrorKind.PARSE

    def __init__(self, path: str, message: str, recoverable: bool = False):
        super().__init__(f"{path}: {message}")
        self.path = path
        self.message = message
        self.recoverable = recoverable


class TransformError(MigrationError):
    """The rule engine could not produce a target model."""

    kind = ErrorKind.TRANSFORM


class ConflictResolutionError(MigrationError):
    """Resolving one package id's version conflict failed."""

    kind = ErrorKind.CONFLICT


class RegistryLookupError(MigrationError):
    """The package registry could not answer a query."""

    kind = ErrorKind.REGISTRY


class BackupError(MigrationError):
    """A backup copy or a guarded file write failed."""

    kind = ErrorKind.IO


class LockAcquisitionError(MigrationError):
    """Another run holds the directory lock."""

    kind = ErrorKind.LOCK


class InvalidStateTransition(RuntimeError):
    """A project state machine was driven through an illegal edge."""


@dataclass(frozen=True)
class StageError:
    """Expected failure returned (not raised) by a pipeline stage."""

    kind: ErrorKind
    message: str


@dataclass
class StageResult(Generic[T]):
    """Value-or-error return type used between pipeline stages."""

    value: Optional[T] = None
    error: Optional[StageError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "StageResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> "StageResult[T]":
        return cls(error=StageError(kind=kind, message=message))
