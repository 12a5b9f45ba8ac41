"""Transformation rule engine: legacy project model -> SDK-style target."""

from .engine import Classification, RuleEngine, TransformOutcome
from .sdk_kind import SdkClassification, classify_sdk

__all__ = [
    "Classification",
    "RuleEngine",
    "SdkClassification",
    "TransformOutcome",
    "classify_sdk",
]
