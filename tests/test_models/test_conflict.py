from __future__ import annotations

import pytest

from peerscope.models.conflict import (
    ConflictEntry,
    ConflictRecord,
    ConflictStatus,
    MissingPeerRecord,
    PeerIssue,
    Severity,
)


@pytest.mark.unit
class TestSeverity:
    """Tests for Severity."""

    def test_for_optional(self) -> None:
        assert Severity.for_optional(True) is Severity.WARNING
        assert Severity.for_optional(False) is Severity.ERROR

    def test_string_values(self) -> None:
        assert Severity.ERROR == "error"
        assert Severity.WARNING.value == "warning"


@pytest.mark.unit
class TestMissingPeerRecord:
    """Tests for MissingPeerRecord."""

    def test_absent_peer(self) -> None:
        record = MissingPeerRecord(package="B", required_by="A", required_version="^2.0.0")

        assert record.is_absent
        assert record.issue is PeerIssue.MISSING
        assert str(record) == "A requires peer B@^2.0.0 (found: absent)"

    def test_mismatch_display(self) -> None:
        record = MissingPeerRecord(
            package="react",
            required_by="react-dom",
            required_version="^18.0.0",
            installed_version="17.0.2",
            issue=PeerIssue.VERSION_MISMATCH,
        )

        assert not record.is_absent
        assert record.to_display_string().endswith("(found: 17.0.2)")

    def test_sort_key_orders_absent_first(self) -> None:
        absent = MissingPeerRecord("react", "react-dom", "^18")
        present = MissingPeerRecord("react", "react-dom", "^18", installed_version="17.0.2")

        ordered = sorted([present, absent], key=lambda record: record.sort_key)

        assert ordered == [absent, present]

    def test_hashable(self) -> None:
        first = MissingPeerRecord("B", "A", "^2.0.0")
        assert len({first, MissingPeerRecord("B", "A", "^2.0.0")}) == 1

    def test_to_json(self) -> None:
        record = MissingPeerRecord(
            "react-native", "styled-components", ">=0.60", optional=True,
            severity=Severity.WARNING,
        )

        assert record.to_json() == {
            "package": "react-native",
            "required_by": "styled-components",
            "required_version": ">=0.60",
            "installed_version": None,
            "optional": True,
            "severity": "warning",
            "issue": "missing",
        }


@pytest.mark.unit
class TestConflictRecord:
    """Tests for ConflictRecord and ConflictEntry."""

    @pytest.fixture
    def unresolvable(self) -> ConflictRecord:
        return ConflictRecord(
            package="shared",
            entries=(
                ConflictEntry("^1.0.0", ("A", "B")),
                ConflictEntry("^2.0.0", ("C",)),
            ),
            status=ConflictStatus.UNRESOLVABLE,
        )

    def test_unresolvable_is_error(self, unresolvable: ConflictRecord) -> None:
        assert unresolvable.is_unresolvable
        assert unresolvable.severity is Severity.ERROR

    @pytest.mark.parametrize("status", [ConflictStatus.RESOLVED, ConflictStatus.UNKNOWN])
    def test_other_statuses_warn(self, status: ConflictStatus) -> None:
        assert ConflictRecord("shared", status=status).severity is Severity.WARNING

    def test_ranges_and_requirers(self, unresolvable: ConflictRecord) -> None:
        assert unresolvable.ranges == ["^1.0.0", "^2.0.0"]
        assert unresolvable.required_by == ["A", "B", "C"]

    def test_len_and_iter(self, unresolvable: ConflictRecord) -> None:
        assert len(unresolvable) == 2
        assert [entry.range for entry in unresolvable] == ["^1.0.0", "^2.0.0"]

    def test_display_string(self, unresolvable: ConflictRecord) -> None:
        assert str(unresolvable) == (
            "shared: A/B needs ^1.0.0, C needs ^2.0.0 -> unresolvable"
        )

        resolved = ConflictRecord(
            "shared",
            (ConflictEntry("^1.2.0", ("A",)), ConflictEntry(">=1.2.5 <2.0.0", ("C",))),
            resolution="1.9.1",
            status=ConflictStatus.RESOLVED,
        )
        assert str(resolved).endswith("-> use 1.9.1")

    def test_to_json(self, unresolvable: ConflictRecord) -> None:
        assert unresolvable.to_json() == {
            "package": "shared",
            "entries": [
                {"range": "^1.0.0", "required_by": ["A", "B"]},
                {"range": "^2.0.0", "required_by": ["C"]},
            ],
            "resolution": None,
            "status": "unresolvable",
            "severity": "error",
        }
