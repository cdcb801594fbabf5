"""Version conflict resolution for peerscope.

Requirement edges are grouped by target. A group in which two or more
distinct packages constrain the same target is a conflict candidate; the
resolver proposes the highest published version satisfying every range in
the group, preferring stable releases over pre-releases.

The heuristic is deliberately single-step: it never suggests upgrading the
requiring packages themselves.

Example::

    >>> records = resolve_conflicts(requirements, {"shared": shared_metadata})
    >>> records[0].status, records[0].resolution
    (<ConflictStatus.RESOLVED: 'resolved'>, '1.9.1')
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from peerscope.config import AnalysisConfig
from peerscope.models.conflict import ConflictEntry, ConflictRecord, ConflictStatus
from peerscope.models.metadata import PackageMetadata
from peerscope.models.requirement import DependencyRequirement
from peerscope.utils.logger import get_logger

logger = get_logger("conflict_resolver")


def considered_requirements(
    requirements: Iterable[DependencyRequirement],
    config: Optional[AnalysisConfig] = None,
) -> List[DependencyRequirement]:
    """Drop edges whose target or requirer is excluded by *config*."""
    if config is None:
        return list(requirements)
    return [
        requirement
        for requirement in requirements
        if not config.is_excluded(requirement.target)
        and not config.is_excluded(requirement.required_by)
    ]


def group_requirements(
    requirements: Iterable[DependencyRequirement],
) -> Dict[str, Dict[str, Set[str]]]:
    """Index edges as ``target -> range -> {required_by}``."""
    groups: Dict[str, Dict[str, Set[str]]] = defaultdict(lambda: defaultdict(set))
    for requirement in requirements:
        groups[requirement.target][requirement.range].add(requirement.required_by)
    return groups


def conflict_targets(
    requirements: Iterable[DependencyRequirement],
    config: Optional[AnalysisConfig] = None,
) -> List[str]:
    """Targets required by more than one distinct package, sorted.

    Excluded targets and requirers are ignored when *config* is given.
    """
    edges = considered_requirements(requirements, config)
    return sorted(
        target
        for target, by_range in group_requirements(edges).items()
        if len(set().union(*by_range.values())) > 1
    )


def resolve_group(
    target: str,
    entries: Tuple[ConflictEntry, ...],
    metadata: Optional[PackageMetadata],
) -> ConflictRecord:
    """Resolve one conflict group against the target's published versions."""
    if metadata is None:
        logger.debug("No metadata for %s, conflict left unresolved", target)
        return ConflictRecord(target, entries, status=ConflictStatus.UNKNOWN)

    ranges = [entry.range for entry in entries]
    try:
        best = metadata.max_satisfying(*ranges)
    except ValueError as exc:
        logger.debug("Cannot evaluate ranges for %s: %s", target, exc)
        return ConflictRecord(target, entries, status=ConflictStatus.UNKNOWN)

    if best is None:
        logger.info("No version of %s satisfies %s", target, " and ".join(ranges))
        return ConflictRecord(target, entries, status=ConflictStatus.UNRESOLVABLE)

    logger.debug("Resolved %s to %s", target, best)
    return ConflictRecord(
        target,
        entries,
        resolution=best,
        status=ConflictStatus.RESOLVED,
    )


def resolve_conflicts(
    requirements: Iterable[DependencyRequirement],
    metadata: Mapping[str, PackageMetadata],
    config: Optional[AnalysisConfig] = None,
) -> List[ConflictRecord]:
    """Detect and resolve version conflicts.

    Args:
        requirements: Requirement edges of any kind.
        metadata: Registry metadata keyed by package name; targets without
            an entry produce ``unknown`` records.
        config: Analysis settings; excluded targets and requirers are
            left out.

    Returns:
        One record per target constrained by two or more packages, sorted
        by target. The output does not depend on the order of
        *requirements*.
    """
    records: List[ConflictRecord] = []

    edges = considered_requirements(requirements, config)
    for target, by_range in sorted(group_requirements(edges).items()):
        requirers = set().union(*by_range.values())
        if len(requirers) < 2:
            continue

        entries = tuple(
            ConflictEntry(range=range_, required_by=tuple(sorted(by_range[range_])))
            for range_ in sorted(by_range)
        )
        records.append(resolve_group(target, entries, metadata.get(target)))

    return records
