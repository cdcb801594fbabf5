"""
Registry metadata models for peerscope.

This module defines immutable snapshots of the registry document returned by
``GET {registry}/{name}``::

    {
      "name": "@angular/core",
      "dist-tags": {"latest": "17.3.0", "next": "18.0.0-rc.1"},
      "versions": {
        "17.3.0": {
          "peerDependencies": {"rxjs": "^6.5.3 || ^7.4.0", "zone.js": "~0.14.0"},
          "peerDependenciesMeta": {"zone.js": {"optional": true}},
          ...
        }
      },
      "time": {...}
    }

Snapshots are created once per fetch and shared by the cache and every
analyzer; nothing mutates them afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from peerscope.exceptions import ParseError
from peerscope.utils.version_utils import max_satisfying, sort_versions


def _string_map(raw: Any) -> Dict[str, str]:
    """Keep only ``str -> str`` pairs; registries occasionally publish junk."""
    if not isinstance(raw, Mapping):
        return {}
    return {str(k): v for k, v in raw.items() if isinstance(v, str)}


def _optional_flags(raw: Any) -> Dict[str, bool]:
    """Flatten ``peerDependenciesMeta`` into ``name -> optional``."""
    if not isinstance(raw, Mapping):
        return {}
    flags: Dict[str, bool] = {}
    for name, meta in raw.items():
        if isinstance(meta, Mapping):
            flags[str(name)] = bool(meta.get("optional", False))
    return flags


@dataclass(frozen=True)
class VersionInfo:
    """Manifest of one published version.

    Attributes:
        name: Package name.
        version: Exact version string.
        dependencies: Runtime dependencies (name to range).
        peer_dependencies: Peers the consumer must provide (name to range).
        peer_dependencies_meta: Peer name to ``optional`` flag.
        engines: Engine constraints such as ``{"node": ">=18"}``.
        deprecated: Deprecation notice, if the version is deprecated.
        dist: Raw distribution descriptor (tarball, integrity, ...).
    """

    name: str
    version: str
    dependencies: Dict[str, str] = field(default_factory=dict)
    peer_dependencies: Dict[str, str] = field(default_factory=dict)
    peer_dependencies_meta: Dict[str, bool] = field(default_factory=dict)
    engines: Dict[str, str] = field(default_factory=dict)
    deprecated: Optional[str] = None
    dist: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_json(cls, name: str, version: str, raw: Mapping[str, Any]) -> "VersionInfo":
        deprecated = raw.get("deprecated")
        dist = raw.get("dist")
        return cls(
            name=str(raw.get("name") or name),
            version=str(raw.get("version") or version),
            dependencies=_string_map(raw.get("dependencies")),
            peer_dependencies=_string_map(raw.get("peerDependencies")),
            peer_dependencies_meta=_optional_flags(raw.get("peerDependenciesMeta")),
            engines=_string_map(raw.get("engines")),
            deprecated=deprecated if isinstance(deprecated, str) and deprecated else None,
            dist=dict(dist) if isinstance(dist, Mapping) else {},
        )

    def is_peer_optional(self, peer: str) -> bool:
        return self.peer_dependencies_meta.get(peer, False)

    def to_json(self) -> Dict[str, Any]:
        """Return the registry-shaped representation."""
        data: Dict[str, Any] = {"name": self.name, "version": self.version}
        if self.dependencies:
            data["dependencies"] = dict(self.dependencies)
        if self.peer_dependencies:
            data["peerDependencies"] = dict(self.peer_dependencies)
        if self.peer_dependencies_meta:
            data["peerDependenciesMeta"] = {
                peer: {"optional": optional}
                for peer, optional in self.peer_dependencies_meta.items()
            }
        if self.engines:
            data["engines"] = dict(self.engines)
        if self.deprecated:
            data["deprecated"] = self.deprecated
        if self.dist:
            data["dist"] = dict(self.dist)
        return data


@dataclass(frozen=True)
class PackageMetadata:
    """Everything the registry knows about one package.

    Attributes:
        name: Package name as published.
        versions: Version string to :class:`VersionInfo`.
        dist_tags: Named tags (``latest``, ``next``, ...) to version strings.
        time: Publication timestamps keyed by version (plus ``created`` /
            ``modified``), kept verbatim.
    """

    name: str
    versions: Dict[str, VersionInfo] = field(default_factory=dict)
    dist_tags: Dict[str, str] = field(default_factory=dict)
    time: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_registry_json(
        cls,
        data: Any,
        *,
        expected_name: Optional[str] = None,
    ) -> "PackageMetadata":
        """Build a snapshot from a registry response body.

        Args:
            data: Decoded JSON body.
            expected_name: Name that was requested; used when the body
                omits ``name`` and for error messages.

        Raises:
            ParseError: The body is not an object, has no usable name, or
                ``versions`` is not an object.
        """
        if not isinstance(data, Mapping):
            raise ParseError(
                "Registry document is not a JSON object",
                package_name=expected_name,
            )

        name = data.get("name") or expected_name
        if not isinstance(name, str) or not name:
            raise ParseError(
                "Registry document has no package name",
                package_name=expected_name,
            )

        raw_versions = data.get("versions", {})
        if not isinstance(raw_versions, Mapping):
            raise ParseError(
                "Registry document 'versions' is not an object",
                package_name=name,
            )

        versions = {
            str(version): VersionInfo.from_json(name, str(version), info)
            for version, info in raw_versions.items()
            if isinstance(info, Mapping)
        }

        return cls(
            name=name,
            versions=versions,
            dist_tags=_string_map(data.get("dist-tags")),
            time=_string_map(data.get("time")),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def latest(self) -> Optional[str]:
        """The ``latest`` dist-tag, or ``None`` when absent."""
        return self.dist_tags.get("latest")

    def get_version(self, version: Optional[str]) -> Optional[VersionInfo]:
        if version is None:
            return None
        return self.versions.get(version)

    def sorted_versions(self, *, descending: bool = True) -> List[str]:
        """Valid semver versions ordered by precedence (newest first by default)."""
        return sort_versions(self.versions, reverse=descending)

    def max_satisfying(self, *ranges: str) -> Optional[str]:
        """Highest published version satisfying every range (stable preferred).

        Raises:
            ValueError: One of *ranges* is not a valid npm range.
        """
        return max_satisfying(self.versions, ranges)

    def to_json(self) -> Dict[str, Any]:
        """Return the registry-shaped representation used for persistence."""
        return {
            "name": self.name,
            "dist-tags": dict(self.dist_tags),
            "versions": {v: info.to_json() for v, info in self.versions.items()},
            "time": dict(self.time),
        }
