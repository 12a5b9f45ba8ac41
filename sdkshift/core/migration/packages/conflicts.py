"""Cross-project package version conflict resolution.

Runs once per batch after every project's requests are known.  A
package id whose non-transitive requests carry more than one distinct
pinned version is a conflict; the configured strategy picks a single
version.  A failure resolving one id degrades to its first requested
version and never aborts the batch.
"""

import logging
from abc import ABC, abstractmethod
from collections import Counter, OrderedDict
from typing import Dict, Iterable, List, Optional, Tuple

from ...errors import ConflictResolutionError
from ..models import ConflictSet, PackageRequest, ProjectVersionUpdate, VersionResolution
from .versions import highest, is_prerelease, lowest, parse_version

logger = logging.getLogger(__name__)

USE_HIGHEST = "UseHighest"
USE_LOWEST = "UseLowest"
USE_LATEST_STABLE = "UseLatestStable"
USE_MOST_COMMON = "UseMostCommon"
SEMANTIC_COMPATIBLE = "SemanticCompatible"
FRAMEWORK_COMPATIBLE = "FrameworkCompatible"
OVERRIDE = "Override"


# ═══════════════════════════════════════════════════════════════════
# Strategies
# ═══════════════════════════════════════════════════════════════════


class ResolutionStrategy(ABC):
    """Picks one version from the versions requested for a package.

    *versions* is the full multiset in input order; implementations may
    raise ``ValueError`` on unparseable versions.
    """

    strategy_id: str = ""

    @abstractmethod
    def choose(self, package_id: str, versions: List[str]) -> Tuple[str, str, List[str]]:
        """Return ``(version, reason, warnings)``."""


class UseHighest(ResolutionStrategy):
    strategy_id = USE_HIGHEST

    def choose(self, package_id, versions):
        return highest(versions), "Highest requested version", []


class UseLowest(ResolutionStrategy):
    strategy_id = USE_LOWEST

    def choose(self, package_id, versions):
        return lowest(versions), "Lowest requested version", []


class UseLatestStable(ResolutionStrategy):
    strategy_id = USE_LATEST_STABLE

    def choose(self, package_id, versions):
        stable = [v for v in versions if not is_prerelease(v)]
        if stable:
            return highest(stable), "Highest stable version", []
        return (
            highest(versions),
            "Highest version (no stable version requested)",
            [f"Only prerelease versions of {package_id} are requested"],
        )


class UseMostCommon(ResolutionStrategy):
    strategy_id = USE_MOST_COMMON

    def choose(self, package_id, versions):
        counts = Counter(versions)
        top = max(counts.values())
        modal = sorted(v for v, n in counts.items() if n == top)
        chosen = highest(modal)
        if len(modal) > 1:
            reason = f"Most common version (tie between {', '.join(modal)}, highest wins)"
        else:
            reason = f"Most common version ({top} of {len(versions)} requests)"
        return chosen, reason, []


class SemanticCompatible(ResolutionStrategy):
    strategy_id = SEMANTIC_COMPATIBLE

    def choose(self, package_id, versions):
        parsed = [(parse_version(v), v) for v in versions]
        top_group = max((p.major, p.minor) for p, _ in parsed)
        in_group = [v for p, v in parsed if (p.major, p.minor) == top_group]
        return (
            highest(in_group),
            f"Highest patch within {top_group[0]}.{top_group[1]}",
            [],
        )


class FrameworkCompatible(ResolutionStrategy):
    strategy_id = FRAMEWORK_COMPATIBLE

    # TODO: filter candidates by the target frameworks each version supports
    # (needs per-version dependency groups from the registry); until then this
    # behaves like UseHighest.
    def choose(self, package_id, versions):
        return (
            highest(versions),
            "Highest requested version",
            [f"Framework compatibility of {package_id} was not verified; using the highest version"],
        )


class StrategyRegistry:
    """Class-level store of resolution strategies, keyed by id."""

    _strategies: Dict[str, ResolutionStrategy] = {}

    @classmethod
    def register(cls, strategy: ResolutionStrategy) -> None:
        cls._strategies[strategy.strategy_id] = strategy
        logger.debug("Registered resolution strategy: %s", strategy.strategy_id)

    @classmethod
    def get(cls, strategy_id: str) -> Optional[ResolutionStrategy]:
        return cls._strategies.get(strategy_id)

    @classmethod
    def list_strategies(cls) -> List[str]:
        return list(cls._strategies)


for _strategy in (
    UseHighest(), UseLowest(), UseLatestStable(), UseMostCommon(),
    SemanticCompatible(), FrameworkCompatible(),
):
    StrategyRegistry.register(_strategy)


# ═══════════════════════════════════════════════════════════════════
# Resolver
# ═══════════════════════════════════════════════════════════════════


def _version_warnings(package_id: str, versions: Iterable[str], resolved: str) -> List[str]:
    """Major-regression and version-spread checks against the resolved version."""
    warnings: List[str] = []
    target = parse_version(resolved)
    regressed = []
    spread = []
    for version in OrderedDict.fromkeys(versions):
        parsed = parse_version(version)
        if parsed.major < target.major:
            regressed.append(version)
        if abs(parsed.major - target.major) > 1 or (
            parsed.major == target.major and abs(parsed.minor - target.minor) > 3
        ):
            spread.append(version)
    if regressed:
        warnings.append(
            f"Major version change for {package_id}: {', '.join(regressed)} -> {resolved} "
            f"may include breaking changes"
        )
    if spread:
        warnings.append(
            f"Wide version spread for {package_id}: {', '.join(spread)} differ(s) substantially "
            f"from {resolved}"
        )
    return warnings


class ConflictResolver:
    """Reconciles package versions across all projects of a batch."""

    def __init__(
        self,
        strategy: str = USE_HIGHEST,
        overrides: Optional[Dict[str, str]] = None,
        prefer_stable: bool = False,
    ):
        if StrategyRegistry.get(strategy) is None:
            raise ValueError(
                f"Unknown conflict strategy {strategy!r}; "
                f"expected one of {', '.join(StrategyRegistry.list_strategies())}"
            )
        self.strategy = strategy
        self.overrides = {k.lower(): v for k, v in (overrides or {}).items()}
        self.prefer_stable = prefer_stable

    @staticmethod
    def group_requests(requests: Iterable[PackageRequest]) -> "OrderedDict[str, ConflictSet]":
        """Non-transitive pinned requests grouped by id, in first-seen order."""
        groups: "OrderedDict[str, List[Tuple[str, str]]]" = OrderedDict()
        names: Dict[str, str] = {}
        for request in requests:
            if request.is_transitive or not request.has_pinned_version:
                continue
            names.setdefault(request.key, request.package_id)
            groups.setdefault(request.key, []).append((request.requesting_project, request.version))
        return OrderedDict(
            (key, ConflictSet(names[key], tuple(pairs))) for key, pairs in groups.items()
        )

    @classmethod
    def find_conflicts(cls, requests: Iterable[PackageRequest]) -> List[ConflictSet]:
        return [c for c in cls.group_requests(requests).values() if len(c.distinct_versions) > 1]

    def resolve(
        self, all_requests: Iterable[PackageRequest], strategy: Optional[str] = None
    ) -> List[VersionResolution]:
        """One resolution per conflicting (or overridden) package id."""
        strategy_id = strategy or self.strategy
        resolutions: List[VersionResolution] = []
        for key, conflict in self.group_requests(all_requests).items():
            override = self.overrides.get(key)
            if override is not None:
                resolutions.append(VersionResolution(
                    package_id=conflict.package_id,
                    resolved_version=override,
                    strategy=OVERRIDE,
                    reason="Configured version override",
                ))
                continue
            if len(conflict.distinct_versions) < 2:
                continue
            try:
                resolutions.append(self._resolve_one(conflict, strategy_id))
            except Exception:
                logger.warning(
                    "Version resolution for %s failed", conflict.package_id, exc_info=True
                )
                fallback = conflict.versions[0]
                resolutions.append(VersionResolution(
                    package_id=conflict.package_id,
                    resolved_version=fallback,
                    strategy=strategy_id,
                    reason="Fallback to first requested version",
                    warnings=[f"Version resolution failed, using {fallback}"],
                    degraded=True,
                ))
        logger.info(
            "Resolved %d package version conflicts with %s", len(resolutions), strategy_id
        )
        return resolutions

    def _resolve_one(self, conflict: ConflictSet, strategy_id: str) -> VersionResolution:
        impl = StrategyRegistry.get(strategy_id)
        if impl is None:
            raise ConflictResolutionError(f"Unknown conflict strategy {strategy_id!r}")

        versions = conflict.versions
        if self.prefer_stable:
            stable = [v for v in versions if not is_prerelease(v)]
            if stable:
                versions = stable
        chosen, reason, warnings = impl.choose(conflict.package_id, versions)
        warnings = warnings + _version_warnings(conflict.package_id, conflict.versions, chosen)
        for warning in warnings:
            logger.warning(warning)
        return VersionResolution(
            package_id=conflict.package_id,
            resolved_version=chosen,
            strategy=strategy_id,
            reason=reason,
            warnings=warnings,
        )

    @staticmethod
    def derive_updates(
        all_requests: Iterable[PackageRequest], resolutions: Iterable[VersionResolution]
    ) -> List[ProjectVersionUpdate]:
        """Per-occurrence version rewrites implied by *resolutions*."""
        resolved = {r.package_id.lower(): r.resolved_version for r in resolutions}
        updates = []
        for request in all_requests:
            if request.is_transitive or not request.has_pinned_version:
                continue
            new_version = resolved.get(request.key)
            if new_version is not None and new_version != request.version:
                updates.append(ProjectVersionUpdate(
                    project_path=request.requesting_project,
                    package_id=request.package_id,
                    old_version=request.version,
                    new_version=new_version,
                ))
        return updates
