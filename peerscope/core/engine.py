"""Analysis pipeline for peerscope.

:class:`DependencyAdvisor` wires the registry client and the analyzers
together::

    manifest -> bulk fetch declared packages
             -> direct edges + peer/dependency edges
             -> fetch metadata for conflicting targets
             -> peer analysis + conflict resolution -> AnalysisResult

Per-package fetch failures never abort a run; they are reported in
:attr:`AnalysisResult.errors` next to the findings. Only an invalid input
(a malformed manifest or package name) raises, before any I/O.

A run can be cancelled through an :class:`asyncio.Event`. In-flight
requests are cancelled and the result comes back with an ``incomplete``
outcome and no findings, never as a truncated ``complete`` one.

Typical usage::

    advisor = DependencyAdvisor(load_config())
    result = await advisor.analyze(ProjectManifest.from_mapping(package_json))
    print(result.summary.health_score)

    # or, outside an event loop
    result = run_analysis(manifest)
"""

from __future__ import annotations

import asyncio
import contextlib
from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from peerscope.config import PeerScopeConfig
from peerscope.core.conflict_resolver import conflict_targets, resolve_conflicts
from peerscope.core.extractor import (
    declared_requirements,
    evaluated_packages,
    extract_requirements,
)
from peerscope.core.peer_analyzer import analyze_peers
from peerscope.core.registry import FetchResult, RegistryClient
from peerscope.exceptions import ValidationError
from peerscope.models.conflict import ConflictRecord, MissingPeerRecord, Severity
from peerscope.models.metadata import PackageMetadata
from peerscope.models.requirement import DependencyRequirement, ProjectManifest
from peerscope.utils.logger import get_logger
from peerscope.utils.validation import validate_package_batch, validate_package_name
from peerscope.constants import ERROR_PENALTY, WARNING_PENALTY

logger = get_logger("engine")

__all__ = [
    "AnalysisOutcome",
    "AnalysisResult",
    "AnalysisSummary",
    "DependencyAdvisor",
    "run_analysis",
]


class AnalysisOutcome(str, Enum):
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"


@dataclass(frozen=True)
class AnalysisSummary:
    """Headline numbers for a run.

    Attributes:
        total_packages: Packages with metadata available.
        critical: Error-severity findings.
        warnings: Warning-severity findings.
        health_score: ``100`` minus 15 per error and 5 per warning,
            clamped to ``0..100``.
    """

    total_packages: int = 0
    critical: int = 0
    warnings: int = 0
    health_score: int = 100

    @classmethod
    def from_findings(
        cls,
        missing_peers: Tuple[MissingPeerRecord, ...],
        conflicts: Tuple[ConflictRecord, ...],
        total_packages: int,
    ) -> "AnalysisSummary":
        severities = [record.severity for record in missing_peers]
        severities.extend(record.severity for record in conflicts)

        critical = sum(1 for s in severities if s is Severity.ERROR)
        warnings = len(severities) - critical
        score = 100 - critical * ERROR_PENALTY - warnings * WARNING_PENALTY

        return cls(
            total_packages=total_packages,
            critical=critical,
            warnings=warnings,
            health_score=max(0, min(100, score)),
        )

    def to_json(self) -> Dict[str, Any]:
        return {
            "total_packages": self.total_packages,
            "critical": self.critical,
            "warnings": self.warnings,
            "health_score": self.health_score,
        }


@dataclass(frozen=True)
class AnalysisResult:
    """Everything one analysis run produced.

    Attributes:
        outcome: ``complete`` or ``incomplete`` (cancelled).
        missing_peers: Missing or mismatched peers, sorted.
        conflicts: Conflict records, sorted by package.
        packages: Metadata for every package that resolved.
        errors: Package name to failure description.
        stale_packages: Packages served from an expired cache entry.
        requirements: The requirement edges the analyzers ran over.
    """

    outcome: AnalysisOutcome
    missing_peers: Tuple[MissingPeerRecord, ...] = ()
    conflicts: Tuple[ConflictRecord, ...] = ()
    packages: Dict[str, PackageMetadata] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)
    stale_packages: Tuple[str, ...] = ()
    requirements: Tuple[DependencyRequirement, ...] = ()

    @classmethod
    def incomplete(cls) -> "AnalysisResult":
        return cls(outcome=AnalysisOutcome.INCOMPLETE)

    @property
    def is_complete(self) -> bool:
        return self.outcome is AnalysisOutcome.COMPLETE

    @property
    def summary(self) -> AnalysisSummary:
        return AnalysisSummary.from_findings(
            self.missing_peers,
            self.conflicts,
            len(self.packages),
        )

    def to_json(self) -> Dict[str, Any]:
        """Plain structured data for reporting collaborators."""
        return {
            "outcome": self.outcome.value,
            "summary": self.summary.to_json(),
            "missing_peers": [record.to_json() for record in self.missing_peers],
            "conflicts": [record.to_json() for record in self.conflicts],
            "packages": {
                name: {"latest": meta.latest, "versions": len(meta.versions)}
                for name, meta in sorted(self.packages.items())
            },
            "errors": dict(sorted(self.errors.items())),
            "stale_packages": list(self.stale_packages),
            "requirements": [edge.to_json() for edge in self.requirements],
        }


ManifestInput = Union[ProjectManifest, Mapping[str, Any]]


def _coerce_manifest(manifest: ManifestInput) -> ProjectManifest:
    """Accept a manifest view or a ``package.json``-shaped mapping."""
    if isinstance(manifest, ProjectManifest):
        result = manifest
    elif isinstance(manifest, Mapping):
        result = ProjectManifest.from_mapping(manifest)
    else:
        raise ValidationError(
            "Manifest must be a ProjectManifest or a mapping",
            value=type(manifest).__name__,
            field="manifest",
        )

    sections = (
        ("dependencies", result.dependencies),
        ("devDependencies", result.dev_dependencies),
        ("installed", result.installed),
    )
    for section, entries in sections:
        for name, value in entries.items():
            if not isinstance(value, str):
                raise ValidationError(
                    f"{section} entry for {name!r} must be a string",
                    value=value,
                    field=section,
                )
    return result


class DependencyAdvisor:
    """Runs the full metadata-to-findings pipeline.

    Args:
        config: Runtime configuration; defaults are used when omitted.
        registry: Registry client to fetch through. When omitted one is
            built from *config* and its transport is closed after each run.
    """

    def __init__(
        self,
        config: Optional[PeerScopeConfig] = None,
        registry: Optional[RegistryClient] = None,
    ) -> None:
        self.config = config or PeerScopeConfig()
        self._owns_registry = registry is None
        self.registry = registry or RegistryClient(self.config)

    async def analyze(
        self,
        manifest: ManifestInput,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AnalysisResult:
        """Analyze *manifest* and return structured findings.

        Args:
            manifest: The project's declared and installed dependencies.
            cancel_event: Setting this event aborts the run; the result is
                then ``incomplete``.

        Raises:
            ValidationError: The manifest or a declared package name is
                invalid. Raised before any network request.
        """
        project = _coerce_manifest(manifest)
        names = evaluated_packages(project, self.config.analysis)
        validate_package_batch(names)

        if cancel_event is not None and cancel_event.is_set():
            logger.warning("Analysis cancelled before it started")
            return AnalysisResult.incomplete()

        persist = self.config.cache.persist_to_disk
        if persist:
            self.registry.load_cache()

        try:
            if cancel_event is None:
                return await self._run(project, names)
            return await self._run_cancellable(project, names, cancel_event)
        finally:
            if persist:
                self.registry.save_cache()
            if self._owns_registry:
                await self.registry.close()

    async def _run_cancellable(
        self,
        project: ProjectManifest,
        names: List[str],
        cancel_event: asyncio.Event,
    ) -> AnalysisResult:
        run_task = asyncio.ensure_future(self._run(project, names))
        cancel_task = asyncio.ensure_future(cancel_event.wait())

        try:
            done, _ = await asyncio.wait(
                {run_task, cancel_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            run_task.cancel()
            raise
        finally:
            cancel_task.cancel()

        if run_task in done:
            return run_task.result()

        run_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await run_task

        logger.warning("Analysis cancelled, returning incomplete result")
        return AnalysisResult.incomplete()

    async def _run(self, project: ProjectManifest, names: List[str]) -> AnalysisResult:
        analysis = self.config.analysis
        logger.info("Analyzing %d packages", len(names))

        bulk = await self.registry.get_bulk_package_info(names)
        results: Dict[str, FetchResult] = dict(bulk.results)
        packages: Dict[str, PackageMetadata] = dict(bulk.packages)
        errors: Dict[str, str] = {}

        requirements = sorted(
            declared_requirements(project, analysis)
            + extract_requirements(project, packages, analysis),
            key=lambda edge: edge.sort_key,
        )

        # The resolver needs metadata for every target with competing ranges
        pending: List[str] = []
        for target in conflict_targets(requirements, analysis):
            if target in results:
                continue
            try:
                pending.append(validate_package_name(target))
            except ValidationError as exc:
                errors[target] = str(exc)

        if pending:
            extra = await self.registry.get_bulk_package_info(pending)
            results.update(extra.results)
            packages.update(extra.packages)

        missing_peers = analyze_peers(requirements, project, analysis)
        conflicts = resolve_conflicts(requirements, packages, analysis)

        for name, result in results.items():
            if not result.ok:
                errors[name] = result.describe_error()

        stale = sorted(name for name, result in results.items() if result.is_stale)

        logger.info(
            "Found %d peer issues and %d conflicts (%d fetch errors)",
            len(missing_peers),
            len(conflicts),
            len(errors),
        )

        return AnalysisResult(
            outcome=AnalysisOutcome.COMPLETE,
            missing_peers=tuple(missing_peers),
            conflicts=tuple(conflicts),
            packages=packages,
            errors=errors,
            stale_packages=tuple(stale),
            requirements=tuple(requirements),
        )


def run_analysis(
    manifest: ManifestInput,
    config: Optional[PeerScopeConfig] = None,
    *,
    registry: Optional[RegistryClient] = None,
) -> AnalysisResult:
    """Synchronous wrapper around :meth:`DependencyAdvisor.analyze`."""
    return asyncio.run(DependencyAdvisor(config, registry).analyze(manifest))
