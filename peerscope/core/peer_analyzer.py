"""Peer dependency analysis for peerscope.

Checks every peer requirement edge against the project: a peer that is
neither installed nor declared is *missing*; a peer whose installed version
falls outside the requested range is a *version mismatch*. Required peers
produce ``error`` records, optional ones ``warning`` records.

Example::

    records = analyze_peers(requirements, manifest, config.analysis)
    for record in records:
        print(record.severity.value, record)
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Set

from peerscope.config import AnalysisConfig
from peerscope.models.conflict import MissingPeerRecord, PeerIssue, Severity
from peerscope.models.requirement import DependencyRequirement, ProjectManifest
from peerscope.utils.logger import get_logger
from peerscope.utils.version_utils import (
    is_valid_range,
    resolve_installed_version,
    satisfies,
)

logger = get_logger("peer_analyzer")


def check_peer(
    requirement: DependencyRequirement,
    manifest: ProjectManifest,
) -> Optional[MissingPeerRecord]:
    """Return a record if *requirement* is unmet by *manifest*, else ``None``.

    Requirements whose range cannot be parsed, or whose target version
    cannot be determined, are treated as unknown and yield ``None``.
    """
    severity = Severity.for_optional(requirement.optional)

    if not manifest.is_present(requirement.target):
        return MissingPeerRecord(
            package=requirement.target,
            required_by=requirement.required_by,
            required_version=requirement.range,
            optional=requirement.optional,
            severity=severity,
            issue=PeerIssue.MISSING,
        )

    installed = manifest.installed_version(requirement.target)
    version = resolve_installed_version(
        installed, manifest.declared_range(requirement.target)
    )
    if version is None:
        logger.debug(
            "Cannot determine version of %s, skipping peer check",
            requirement.target,
        )
        return None

    if not is_valid_range(requirement.range):
        logger.debug(
            "Unparsable range %r for %s required by %s, skipping",
            requirement.range,
            requirement.target,
            requirement.required_by,
        )
        return None

    if satisfies(str(version), requirement.range):
        return None

    return MissingPeerRecord(
        package=requirement.target,
        required_by=requirement.required_by,
        required_version=requirement.range,
        installed_version=installed or str(version),
        optional=requirement.optional,
        severity=severity,
        issue=PeerIssue.VERSION_MISMATCH,
    )


def analyze_peers(
    requirements: Iterable[DependencyRequirement],
    manifest: ProjectManifest,
    config: Optional[AnalysisConfig] = None,
) -> List[MissingPeerRecord]:
    """Find missing and mismatched peers.

    Only ``peer`` edges are considered. Edges whose requirer or target is
    excluded are never evaluated, and optional peers are dropped entirely
    when ``skip_optional_peer_deps`` is set.

    Returns:
        De-duplicated records sorted by package, requirer and range.
    """
    config = config or AnalysisConfig()
    records: Set[MissingPeerRecord] = set()

    for requirement in requirements:
        if not requirement.is_peer:
            continue
        if config.is_excluded(requirement.required_by) or config.is_excluded(
            requirement.target
        ):
            continue
        if requirement.optional and config.skip_optional_peer_deps:
            continue

        record = check_peer(requirement, manifest)
        if record is not None:
            records.add(record)

    return sorted(records, key=lambda record: record.sort_key)
