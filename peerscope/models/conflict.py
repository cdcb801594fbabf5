"""
Analysis record models for peerscope.

This module defines the structured findings handed to reporting
collaborators: missing or mismatched peers, and version conflicts between
packages that require the same target.
"""

from __future__ import annotations

from enum import Enum
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple


class Severity(str, Enum):
    """How urgently a finding needs attention."""

    ERROR = "error"
    WARNING = "warning"

    @classmethod
    def for_optional(cls, optional: bool) -> "Severity":
        """Optional peers only ever warn."""
        return cls.WARNING if optional else cls.ERROR


class PeerIssue(str, Enum):
    """Why a peer requirement is unmet."""

    MISSING = "missing"
    VERSION_MISMATCH = "version_mismatch"


class ConflictStatus(str, Enum):
    """Outcome of resolving one conflict group."""

    RESOLVED = "resolved"
    UNRESOLVABLE = "unresolvable"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class MissingPeerRecord:
    """A peer requirement that the project does not satisfy.

    Attributes:
        package: Name of the peer.
        required_by: Package declaring the peer.
        required_version: Range requested by *required_by*.
        installed_version: Version present in the project, or ``None``
            when the peer is absent.
        optional: Whether the peer is marked optional.
        severity: ``error`` for required peers, ``warning`` for optional ones.
        issue: Absence or version mismatch.
    """

    package: str
    required_by: str
    required_version: str
    installed_version: Optional[str] = None
    optional: bool = False
    severity: Severity = Severity.ERROR
    issue: PeerIssue = PeerIssue.MISSING

    @property
    def is_absent(self) -> bool:
        return self.installed_version is None

    @property
    def sort_key(self) -> Tuple[str, str, str, str]:
        return (
            self.package,
            self.required_by,
            self.required_version,
            self.installed_version or "",
        )

    def to_display_string(self) -> str:
        """Return a human-readable description of the finding."""
        found = self.installed_version or "absent"
        return (
            f"{self.required_by} requires peer {self.package}@{self.required_version} "
            f"(found: {found})"
        )

    def to_json(self) -> Dict[str, Any]:
        """Return a JSON-serializable representation."""
        return {
            "package": self.package,
            "required_by": self.required_by,
            "required_version": self.required_version,
            "installed_version": self.installed_version,
            "optional": self.optional,
            "severity": self.severity.value,
            "issue": self.issue.value,
        }

    def __str__(self) -> str:
        return self.to_display_string()


@dataclass(frozen=True)
class ConflictEntry:
    """One distinct range inside a conflict group and everyone requesting it."""

    range: str
    required_by: Tuple[str, ...]

    def to_json(self) -> Dict[str, Any]:
        return {"range": self.range, "required_by": list(self.required_by)}


@dataclass(frozen=True)
class ConflictRecord:
    """Two or more packages constraining the same target.

    Attributes:
        package: Target package name.
        entries: Distinct ranges sorted by range text, each with its sorted
            requirers.
        resolution: Highest version satisfying every range, when one exists.
        status: ``resolved``, ``unresolvable`` (no version satisfies all
            ranges) or ``unknown`` (metadata missing or a range unparsable).
    """

    package: str
    entries: Tuple[ConflictEntry, ...] = field(default_factory=tuple)
    resolution: Optional[str] = None
    status: ConflictStatus = ConflictStatus.UNKNOWN

    @property
    def is_unresolvable(self) -> bool:
        return self.status is ConflictStatus.UNRESOLVABLE

    @property
    def severity(self) -> Severity:
        return Severity.ERROR if self.is_unresolvable else Severity.WARNING

    @property
    def ranges(self) -> List[str]:
        return [entry.range for entry in self.entries]

    @property
    def required_by(self) -> List[str]:
        """Every distinct requirer across all entries, sorted."""
        return sorted({name for entry in self.entries for name in entry.required_by})

    def to_display_string(self) -> str:
        wanted = ", ".join(
            f"{'/'.join(entry.required_by)} needs {entry.range}" for entry in self.entries
        )
        if self.status is ConflictStatus.RESOLVED:
            outcome = f"use {self.resolution}"
        else:
            outcome = self.status.value
        return f"{self.package}: {wanted} -> {outcome}"

    def to_json(self) -> Dict[str, Any]:
        """Return a JSON-serializable representation."""
        return {
            "package": self.package,
            "entries": [entry.to_json() for entry in self.entries],
            "resolution": self.resolution,
            "status": self.status.value,
            "severity": self.severity.value,
        }

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[ConflictEntry]:
        return iter(self.entries)

    def __str__(self) -> str:
        return self.to_display_string()
