"""Transitive elision of redundant package requests.

A request P is transitive when P is reachable from the dependency closure
of another *kept* request Q.  Requests nothing outside their own cycle
reaches are roots; the earliest request of each root cycle is kept and
covers the rest.  Essential packages are never elided.  Packages already
supplied by referenced sibling projects (one level, their closures
unioned) are elided as well.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from ...errors import RegistryLookupError
from ..models import DependencyEdge, PackageRequest
from .assemblies import is_essential
from .registry import RegistryClient

logger = logging.getLogger(__name__)


@dataclass
class ElisionResult:
    requests: List[PackageRequest]
    elided: List[str] = field(default_factory=list)
    supplied: Set[str] = field(default_factory=set)  # kept ids plus their closures, lower-cased
    edges: List[DependencyEdge] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def kept(self) -> List[PackageRequest]:
        return [r for r in self.requests if not r.is_transitive]


class TransitiveElisionAnalyzer:
    def __init__(self, registry: RegistryClient, extra_essential: Iterable[str] = ()):
        self.registry = registry
        self.extra_essential = tuple(extra_essential)

    def closure_of(self, request: PackageRequest, warnings: Optional[List[str]] = None) -> Set[str]:
        """Dependency closure of one request; empty when the registry fails."""
        framework = request.target_frameworks[0] if request.target_frameworks else None
        version = request.version if request.has_pinned_version else None
        try:
            return self.registry.get_dependency_closure(request.package_id, version, framework)
        except RegistryLookupError as e:
            logger.warning("Dependency closure for %s unavailable: %s", request.package_id, e)
            if warnings is not None:
                warnings.append(
                    f"Could not fetch dependencies of {request.package_id}; it was not used for elision"
                )
            return set()

    def elide(
        self,
        requests: List[PackageRequest],
        project_dir: Optional[str] = None,
        sibling_closures: Iterable[Set[str]] = (),
    ) -> ElisionResult:
        """Mark redundant requests ``is_transitive``; returns the same objects."""
        result = ElisionResult(requests=requests)
        sibling_supplied: Set[str] = set()
        for closure in sibling_closures:
            sibling_supplied |= {p.lower() for p in closure}

        closures: Dict[str, Set[str]] = {}
        for request in requests:
            if request.key not in closures:
                closures[request.key] = self.closure_of(request, result.warnings)
                result.edges.extend(
                    DependencyEdge(request.package_id, dep) for dep in sorted(closures[request.key])
                )

        def reaches(source: str, target: str) -> bool:
            return source != target and target in closures.get(source, set())

        kept: List[str] = []
        candidates: List[PackageRequest] = []
        for request in requests:
            if is_essential(request.package_id, self.extra_essential):
                kept.append(request.key)
            elif request.key in sibling_supplied:
                self._mark(request, "supplied by a referenced project", result)
            else:
                candidates.append(request)
        keys = kept + [r.key for r in candidates]

        # Root: everything reaching it is reached back (no way in from outside its cycle).
        for request in candidates:
            key = request.key
            is_root = all(reaches(key, other) for other in keys if reaches(other, key))
            if is_root and not any(reaches(k, key) for k in kept):
                kept.append(key)

        for request in candidates:
            if request.key not in kept:
                self._mark(request, "reachable from another kept package", result)

        supplied: Set[str] = set()
        for key in kept:
            supplied.add(key)
            supplied |= closures.get(key, set())
        result.supplied = supplied | sibling_supplied

        if result.elided:
            logger.info(
                "%s: elided %d transitive packages (%s)",
                project_dir or "project", len(result.elided), ", ".join(result.elided),
            )
        return result

    def elide_from_siblings(self, requests: List[PackageRequest], sibling_supplied: Set[str]) -> List[str]:
        """Mark requests already supplied by referenced projects; returns their ids.

        Runs after every project's own elision, so *sibling_supplied* holds
        the referenced projects' kept ids and closures.  One level only.
        """
        supplied = {p.lower() for p in sibling_supplied}
        result = ElisionResult(requests=requests)
        for request in requests:
            if request.is_transitive or request.key not in supplied:
                continue
            if is_essential(request.package_id, self.extra_essential):
                continue
            self._mark(request, "supplied by a referenced project", result)
        return result.elided

    @staticmethod
    def _mark(request: PackageRequest, why: str, result: ElisionResult) -> None:
        request.is_transitive = True
        result.elided.append(request.package_id)
        logger.debug("Marked %s transitive: %s", request.package_id, why)
