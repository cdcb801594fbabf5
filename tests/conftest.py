from __future__ import annotations

import logging
from typing import Any, Dict, Generator, Iterable, List, Mapping, Optional
from unittest.mock import MagicMock

import httpx
import pytest

from peerscope.models.metadata import PackageMetadata


def registry_document(
    name: str,
    versions: Iterable[str],
    *,
    peers: Optional[Mapping[str, Mapping[str, str]]] = None,
    optional_peers: Optional[Mapping[str, Iterable[str]]] = None,
    dependencies: Optional[Mapping[str, Mapping[str, str]]] = None,
    latest: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a registry-shaped JSON document.

    Args:
        name: Package name.
        versions: Published versions.
        peers: ``version -> {peer: range}``.
        optional_peers: ``version -> [peer, ...]`` marked optional.
        dependencies: ``version -> {dependency: range}``.
        latest: ``latest`` dist-tag; defaults to the last version given.
    """
    version_list: List[str] = list(versions)
    peers = peers or {}
    optional_peers = optional_peers or {}
    dependencies = dependencies or {}

    documents: Dict[str, Any] = {}
    for version in version_list:
        manifest: Dict[str, Any] = {"name": name, "version": version}
        if version in peers:
            manifest["peerDependencies"] = dict(peers[version])
        if version in optional_peers:
            manifest["peerDependenciesMeta"] = {
                peer: {"optional": True} for peer in optional_peers[version]
            }
        if version in dependencies:
            manifest["dependencies"] = dict(dependencies[version])
        documents[version] = manifest

    tags = {}
    if latest or version_list:
        tags["latest"] = latest or version_list[-1]

    return {"name": name, "dist-tags": tags, "versions": documents}


def make_metadata(name: str, versions: Iterable[str], **kwargs: Any) -> PackageMetadata:
    """Build :class:`PackageMetadata` through the registry parser."""
    return PackageMetadata.from_registry_json(registry_document(name, versions, **kwargs))


def json_response(
    data: Any = None,
    *,
    status_code: int = 200,
    headers: Optional[Dict[str, str]] = None,
) -> MagicMock:
    """Mocked ``httpx.Response`` with a JSON body."""
    response = MagicMock(spec=httpx.Response)
    response.status_code = status_code
    response.headers = headers or {}
    response.text = "" if data is None else str(data)
    response.json.return_value = data
    return response


class FakeClock:
    """Manually driven clock whose ``sleep`` advances time instantly."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(start=1_000_000.0)


@pytest.fixture
def clean_logger_state() -> Generator[None, None, None]:
    """Reset the ``peerscope`` logger before and after a test."""
    import peerscope.utils.logger as logger_module

    root_logger = logging.getLogger("peerscope")
    root_logger.handlers.clear()
    root_logger.setLevel(logging.NOTSET)
    root_logger.propagate = True
    logger_module._logging_configured = False

    yield

    root_logger.handlers.clear()
    root_logger.setLevel(logging.NOTSET)
    root_logger.propagate = True
    logger_module._logging_configured = False


@pytest.fixture
def metadata_factory():
    """Return :func:`make_metadata`."""
    return make_metadata


@pytest.fixture
def document_factory():
    """Return :func:`registry_document`."""
    return registry_document


@pytest.fixture
def response_factory():
    """Return :func:`json_response`."""
    return json_response
