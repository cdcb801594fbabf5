from __future__ import annotations

import json
from typing import Any, Dict

import pytest

from peerscope.exceptions import ParseError
from peerscope.models.metadata import PackageMetadata, VersionInfo


@pytest.fixture
def angular_document() -> Dict[str, Any]:
    return {
        "name": "@angular/core",
        "dist-tags": {"latest": "17.3.0", "next": "18.0.0-rc.1"},
        "versions": {
            "17.3.0": {
                "name": "@angular/core",
                "version": "17.3.0",
                "dependencies": {"tslib": "^2.3.0"},
                "peerDependencies": {"rxjs": "^6.5.3 || ^7.4.0", "zone.js": "~0.14.0"},
                "peerDependenciesMeta": {"zone.js": {"optional": True}},
                "engines": {"node": "^18.13.0 || >=20.9.0"},
                "dist": {"tarball": "https://registry.npmjs.org/core-17.3.0.tgz"},
            },
            "16.2.12": {
                "peerDependencies": {"rxjs": "^6.5.3 || ^7.4.0"},
                "deprecated": "Angular 16 is no longer supported",
            },
            "18.0.0-rc.1": {"peerDependencies": {"rxjs": "^7.4.0"}},
        },
        "time": {"created": "2016-05-03T00:00:00.000Z", "17.3.0": "2024-03-13T00:00:00.000Z"},
    }


@pytest.mark.unit
class TestVersionInfo:
    """Tests for VersionInfo parsing."""

    def test_from_json(self, angular_document) -> None:
        raw = angular_document["versions"]["17.3.0"]

        info = VersionInfo.from_json("@angular/core", "17.3.0", raw)

        assert info.dependencies == {"tslib": "^2.3.0"}
        assert info.peer_dependencies["zone.js"] == "~0.14.0"
        assert info.is_peer_optional("zone.js") is True
        assert info.is_peer_optional("rxjs") is False
        assert info.engines == {"node": "^18.13.0 || >=20.9.0"}
        assert info.deprecated is None
        assert "tarball" in info.dist

    def test_name_and_version_fall_back_to_keys(self) -> None:
        info = VersionInfo.from_json("pkg", "1.0.0", {})
        assert (info.name, info.version) == ("pkg", "1.0.0")

    def test_junk_values_dropped(self) -> None:
        info = VersionInfo.from_json(
            "pkg",
            "1.0.0",
            {
                "peerDependencies": {"good": "^1.0.0", "bad": 5, "worse": None},
                "peerDependenciesMeta": {"good": "yes", "other": {"optional": 1}},
                "dependencies": ["not", "a", "map"],
                "deprecated": "",
            },
        )

        assert info.peer_dependencies == {"good": "^1.0.0"}
        assert info.peer_dependencies_meta == {"other": True}
        assert info.dependencies == {}
        assert info.deprecated is None

    def test_to_json_omits_empty_sections(self) -> None:
        info = VersionInfo.from_json("pkg", "1.0.0", {"peerDependencies": {"a": "^1"}})
        assert info.to_json() == {
            "name": "pkg",
            "version": "1.0.0",
            "peerDependencies": {"a": "^1"},
        }


@pytest.mark.unit
class TestPackageMetadata:
    """Tests for PackageMetadata."""

    def test_from_registry_json(self, angular_document) -> None:
        metadata = PackageMetadata.from_registry_json(angular_document)

        assert metadata.name == "@angular/core"
        assert metadata.latest == "17.3.0"
        assert metadata.dist_tags["next"] == "18.0.0-rc.1"
        assert set(metadata.versions) == {"17.3.0", "16.2.12", "18.0.0-rc.1"}
        assert metadata.versions["16.2.12"].deprecated.startswith("Angular 16")
        assert metadata.time["created"].startswith("2016")

    def test_expected_name_used_when_missing(self) -> None:
        metadata = PackageMetadata.from_registry_json(
            {"versions": {}}, expected_name="left-pad"
        )
        assert metadata.name == "left-pad"
        assert metadata.latest is None

    def test_non_mapping_version_entries_skipped(self) -> None:
        metadata = PackageMetadata.from_registry_json(
            {"name": "x", "versions": {"1.0.0": {}, "2.0.0": "junk"}}
        )
        assert list(metadata.versions) == ["1.0.0"]

    @pytest.mark.parametrize(
        "document,message",
        [
            ([], "not a JSON object"),
            ({"versions": {}}, "no package name"),
            ({"name": "", "versions": {}}, "no package name"),
            ({"name": "x", "versions": []}, "'versions' is not an object"),
        ],
    )
    def test_malformed_documents(self, document, message: str) -> None:
        with pytest.raises(ParseError, match=message):
            PackageMetadata.from_registry_json(document)

    def test_get_version(self, angular_document) -> None:
        metadata = PackageMetadata.from_registry_json(angular_document)

        assert metadata.get_version("17.3.0").version == "17.3.0"
        assert metadata.get_version("1.0.0") is None
        assert metadata.get_version(None) is None

    def test_sorted_versions(self, angular_document) -> None:
        metadata = PackageMetadata.from_registry_json(angular_document)

        assert metadata.sorted_versions() == ["18.0.0-rc.1", "17.3.0", "16.2.12"]
        assert metadata.sorted_versions(descending=False)[0] == "16.2.12"

    def test_max_satisfying(self, angular_document) -> None:
        metadata = PackageMetadata.from_registry_json(angular_document)

        assert metadata.max_satisfying(">=16.0.0") == "17.3.0"
        assert metadata.max_satisfying("^16.0.0", "^17.0.0") is None
        with pytest.raises(ValueError):
            metadata.max_satisfying("github:angular/angular")

    def test_to_json_round_trips_through_parser(self, angular_document) -> None:
        metadata = PackageMetadata.from_registry_json(angular_document)

        encoded = json.loads(json.dumps(metadata.to_json()))

        assert PackageMetadata.from_registry_json(encoded) == metadata
