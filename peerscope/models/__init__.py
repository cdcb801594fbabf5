"""
Unified data model exports for peerscope.

Example:
    >>> from peerscope.models import PackageMetadata, DependencyRequirement
"""

from __future__ import annotations

from peerscope.models.metadata import PackageMetadata, VersionInfo
from peerscope.models.requirement import (
    DependencyRequirement,
    ProjectManifest,
    RequirementKind,
)
from peerscope.models.conflict import (
    ConflictEntry,
    ConflictRecord,
    ConflictStatus,
    MissingPeerRecord,
    PeerIssue,
    Severity,
)

__all__ = [
    "PackageMetadata",
    "VersionInfo",
    "DependencyRequirement",
    "ProjectManifest",
    "RequirementKind",
    "ConflictEntry",
    "ConflictRecord",
    "ConflictStatus",
    "MissingPeerRecord",
    "PeerIssue",
    "Severity",
]
