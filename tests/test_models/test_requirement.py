"""Unit tests for peerscope.models.requirement module.

Test Coverage:
- DependencyRequirement construction, hashing and sort keys
- Display strings and JSON rendering
- ProjectManifest lookups across dependency sections
- ProjectManifest.from_mapping with package.json-shaped input
"""

from __future__ import annotations

import pytest

from peerscope.models.requirement import (
    DependencyRequirement,
    ProjectManifest,
    RequirementKind,
)


@pytest.mark.unit
class TestDependencyRequirement:
    """Tests for DependencyRequirement."""

    def test_defaults(self) -> None:
        edge = DependencyRequirement(target="react", range="^18.0.0", required_by="react-dom")

        assert edge.optional is False
        assert edge.kind is RequirementKind.PEER
        assert edge.is_peer
        assert edge.required_by_version is None

    def test_dependency_kind(self) -> None:
        edge = DependencyRequirement(
            target="tslib",
            range="^2.3.0",
            required_by="@angular/core",
            kind=RequirementKind.DEPENDENCY,
        )
        assert not edge.is_peer

    def test_hashable_and_equal(self) -> None:
        first = DependencyRequirement("react", "^18.0.0", "react-dom")
        second = DependencyRequirement("react", "^18.0.0", "react-dom")

        assert first == second
        assert len({first, second}) == 1

    def test_frozen(self) -> None:
        edge = DependencyRequirement("react", "^18.0.0", "react-dom")
        with pytest.raises(AttributeError):
            edge.range = "^17.0.0"  # type: ignore[misc]

    def test_sort_key_handles_missing_version(self) -> None:
        edges = [
            DependencyRequirement("react", "^18.0.0", "react-dom", required_by_version="18.2.0"),
            DependencyRequirement("react", "^18.0.0", "react-dom"),
            DependencyRequirement("axios", "^1.0.0", "zod"),
        ]

        ordered = sorted(edges, key=lambda edge: edge.sort_key)

        assert [(e.target, e.required_by_version) for e in ordered] == [
            ("axios", None),
            ("react", None),
            ("react", "18.2.0"),
        ]

    def test_display_string(self) -> None:
        edge = DependencyRequirement(
            "react-native", ">=0.60", "styled-components", optional=True,
            required_by_version="6.1.0",
        )

        assert str(edge) == (
            "styled-components@6.1.0 requires react-native@>=0.60 (optional)"
        )
        assert DependencyRequirement("b", "^2.0.0", "a").to_display_string() == (
            "a requires b@^2.0.0"
        )

    def test_to_json(self) -> None:
        edge = DependencyRequirement("react", "^18.0.0", "react-dom")
        assert edge.to_json() == {
            "target": "react",
            "range": "^18.0.0",
            "required_by": "react-dom",
            "required_by_version": None,
            "optional": False,
            "kind": "peer",
        }


@pytest.mark.unit
class TestProjectManifest:
    """Tests for ProjectManifest."""

    @pytest.fixture
    def manifest(self) -> ProjectManifest:
        return ProjectManifest(
            name="demo",
            dependencies={"react": "^18.2.0", "lodash": "^4.17.0"},
            dev_dependencies={"jest": "^29.0.0", "lodash": "^3.0.0"},
            installed={"react": "18.2.0", "left-pad": "1.3.0"},
        )

    def test_declared_merges_sections(self, manifest: ProjectManifest) -> None:
        declared = manifest.declared()

        assert set(declared) == {"react", "lodash", "jest"}
        assert declared["lodash"] == "^4.17.0"

    def test_declared_without_dev(self, manifest: ProjectManifest) -> None:
        assert set(manifest.declared(include_dev=False)) == {"react", "lodash"}

    @pytest.mark.parametrize(
        "name,expected",
        [("react", True), ("jest", True), ("left-pad", True), ("vue", False)],
    )
    def test_is_present(self, manifest: ProjectManifest, name: str, expected: bool) -> None:
        assert manifest.is_present(name) is expected

    def test_declared_range(self, manifest: ProjectManifest) -> None:
        assert manifest.declared_range("lodash") == "^4.17.0"
        assert manifest.declared_range("jest") == "^29.0.0"
        assert manifest.declared_range("left-pad") is None

    def test_installed_version(self, manifest: ProjectManifest) -> None:
        assert manifest.installed_version("react") == "18.2.0"
        assert manifest.installed_version("jest") is None

    def test_from_mapping(self) -> None:
        manifest = ProjectManifest.from_mapping(
            {
                "name": "web-app",
                "dependencies": {"react": "^18.2.0"},
                "devDependencies": {"vite": "^5.0.0"},
                "installed": {"react": "18.2.0"},
                "scripts": {"build": "vite build"},
            }
        )

        assert manifest.name == "web-app"
        assert dict(manifest.dependencies) == {"react": "^18.2.0"}
        assert dict(manifest.dev_dependencies) == {"vite": "^5.0.0"}
        assert dict(manifest.installed) == {"react": "18.2.0"}

    def test_from_mapping_tolerates_missing_sections(self) -> None:
        manifest = ProjectManifest.from_mapping({"dependencies": None})

        assert manifest.name == "<project>"
        assert manifest.declared() == {}
