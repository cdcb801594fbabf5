"""Requirement extraction for peerscope.

Turns a project manifest plus fetched registry metadata into a flat list of
:class:`~peerscope.models.requirement.DependencyRequirement` edges, one per
``peerDependencies`` entry of each evaluated package (and one per regular
``dependencies`` entry when transitive checking is enabled).

:func:`declared_requirements` adds the project's own ranges as ``direct``
edges, so a declared range that clashes with a peer range reaches the
conflict resolver.

This is a pure transform: no network, no cache, no logging above DEBUG.
"""

from __future__ import annotations

from typing import List, Mapping, Optional, Set

from peerscope.config import AnalysisConfig
from peerscope.models.metadata import PackageMetadata, VersionInfo
from peerscope.models.requirement import (
    DependencyRequirement,
    ProjectManifest,
    RequirementKind,
)
from peerscope.utils.logger import get_logger
from peerscope.utils.version_utils import resolve_installed_version

logger = get_logger("extractor")


def evaluated_packages(
    manifest: ProjectManifest,
    config: Optional[AnalysisConfig] = None,
) -> List[str]:
    """Declared package names the analysis looks at, sorted.

    Runtime dependencies always; dev dependencies when
    ``include_dev_dependencies`` is set; excluded names never.
    """
    config = config or AnalysisConfig()
    declared = manifest.declared(include_dev=config.include_dev_dependencies)
    return sorted(name for name in declared if not config.is_excluded(name))


def installed_version_info(
    manifest: ProjectManifest,
    name: str,
    metadata: PackageMetadata,
) -> Optional[VersionInfo]:
    """Manifest of the version of *name* the project actually uses.

    The exact installed version wins; otherwise the declared range is
    coerced to a version (``^2.1.0`` becomes ``2.1.0``). Returns ``None``
    when that version is not published in *metadata*.
    """
    installed = manifest.installed_version(name)
    if installed is not None and installed in metadata.versions:
        return metadata.versions[installed]

    version = resolve_installed_version(installed, manifest.declared_range(name))
    if version is None:
        return None
    return metadata.get_version(str(version))


def extract_requirements(
    manifest: ProjectManifest,
    metadata: Mapping[str, PackageMetadata],
    config: Optional[AnalysisConfig] = None,
) -> List[DependencyRequirement]:
    """Build requirement edges for every evaluated package with metadata.

    Args:
        manifest: The project's declared and installed dependencies.
        metadata: Fetched metadata keyed by package name. Packages without
            an entry are skipped.
        config: Analysis settings (exclusions, dev inclusion, transitive
            edges).

    Returns:
        De-duplicated edges sorted by target, requirer and range.
    """
    config = config or AnalysisConfig()
    edges: Set[DependencyRequirement] = set()

    for name in evaluated_packages(manifest, config):
        package = metadata.get(name)
        if package is None:
            logger.debug("No metadata for %s, skipping", name)
            continue

        info = installed_version_info(manifest, name, package)
        if info is None:
            logger.debug("Installed version of %s not found in registry metadata", name)
            continue

        for peer, range_ in info.peer_dependencies.items():
            edges.add(
                DependencyRequirement(
                    target=peer,
                    range=range_,
                    required_by=name,
                    optional=info.is_peer_optional(peer),
                    kind=RequirementKind.PEER,
                    required_by_version=info.version,
                )
            )

        if config.check_transitive:
            for dependency, range_ in info.dependencies.items():
                edges.add(
                    DependencyRequirement(
                        target=dependency,
                        range=range_,
                        required_by=name,
                        kind=RequirementKind.DEPENDENCY,
                        required_by_version=info.version,
                    )
                )

    return sorted(edges, key=lambda edge: edge.sort_key)


def declared_requirements(
    manifest: ProjectManifest,
    config: Optional[AnalysisConfig] = None,
) -> List[DependencyRequirement]:
    """One ``direct`` edge per evaluated package, required by the project."""
    config = config or AnalysisConfig()
    declared = manifest.declared(include_dev=config.include_dev_dependencies)
    return [
        DependencyRequirement(
            target=name,
            range=declared[name],
            required_by=manifest.name,
            kind=RequirementKind.DIRECT,
        )
        for name in evaluated_packages(manifest, config)
    ]
