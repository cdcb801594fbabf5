"""
Requirement data models for peerscope.

This module defines the "X requires Y at range R" edge produced by the
requirement extractor, and the read-only view of a project's manifest that
an external loader hands to the analysis pipeline.
"""

from __future__ import annotations

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple


class RequirementKind(str, Enum):
    """Where an edge came from.

    ``direct`` edges are the project's own declared ranges; the others come
    from the requiring package's published manifest.
    """

    PEER = "peer"
    DEPENDENCY = "dependency"
    DIRECT = "direct"


@dataclass(frozen=True)
class DependencyRequirement:
    """
    One requirement edge: *required_by* needs *target* within *range*.

    Instances are hashable and expose :attr:`sort_key` so that analyzers
    can de-duplicate and sort them without caring about input order.

    Attributes:
        target: Name of the required package.
        range: npm range expression, exactly as published.
        required_by: Name of the package declaring the requirement.
        optional: ``True`` when ``peerDependenciesMeta`` marks the peer
            optional. Always ``False`` for plain dependencies.
        kind: Peer, regular dependency or the project's own direct edge.
        required_by_version: Version of the requiring package whose
            manifest declared the edge, when known.
    """

    target: str
    range: str
    required_by: str
    optional: bool = False
    kind: RequirementKind = RequirementKind.PEER
    required_by_version: Optional[str] = None

    @property
    def is_peer(self) -> bool:
        return self.kind is RequirementKind.PEER

    @property
    def sort_key(self) -> Tuple[str, str, str, str, str, bool]:
        return (
            self.target,
            self.required_by,
            self.required_by_version or "",
            self.range,
            self.kind.value,
            self.optional,
        )

    def to_display_string(self) -> str:
        """Return ``required_by requires target@range``."""
        source = (
            f"{self.required_by}@{self.required_by_version}"
            if self.required_by_version
            else self.required_by
        )
        suffix = " (optional)" if self.optional else ""
        return f"{source} requires {self.target}@{self.range}{suffix}"

    def to_json(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "range": self.range,
            "required_by": self.required_by,
            "required_by_version": self.required_by_version,
            "optional": self.optional,
            "kind": self.kind.value,
        }

    def __str__(self) -> str:
        return self.to_display_string()


@dataclass(frozen=True)
class ProjectManifest:
    """
    Structured view of a project's declared and installed dependencies.

    Supplied by an external manifest loader; peerscope never reads or
    writes manifest files itself.

    Attributes:
        name: Project name, used as the requirer of declared ranges.
        dependencies: Runtime dependencies (name to declared range).
        dev_dependencies: Development dependencies (name to declared range).
        installed: Resolved installed versions (name to exact version).
    """

    name: str = "<project>"
    dependencies: Mapping[str, str] = field(default_factory=dict)
    dev_dependencies: Mapping[str, str] = field(default_factory=dict)
    installed: Mapping[str, str] = field(default_factory=dict)

    def declared(self, *, include_dev: bool = True) -> Dict[str, str]:
        """Declared ranges, runtime entries taking precedence over dev ones."""
        merged: Dict[str, str] = {}
        if include_dev:
            merged.update(self.dev_dependencies)
        merged.update(self.dependencies)
        return merged

    def is_present(self, name: str) -> bool:
        """True when *name* is installed or declared in any section."""
        return (
            name in self.installed
            or name in self.dependencies
            or name in self.dev_dependencies
        )

    def declared_range(self, name: str) -> Optional[str]:
        return self.dependencies.get(name) or self.dev_dependencies.get(name)

    def installed_version(self, name: str) -> Optional[str]:
        return self.installed.get(name)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ProjectManifest":
        """Build a manifest from a ``package.json``-shaped mapping.

        Accepts the ``dependencies`` / ``devDependencies`` keys of
        ``package.json`` plus an ``installed`` map.
        """
        return cls(
            name=str(data.get("name") or "<project>"),
            dependencies=dict(data.get("dependencies") or {}),
            dev_dependencies=dict(data.get("devDependencies") or {}),
            installed=dict(data.get("installed") or {}),
        )
