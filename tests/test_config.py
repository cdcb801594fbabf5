"""Unit tests for peerscope.config.

Test Coverage:
- Config file discovery (explicit path, peerscope.toml, pyproject.toml)
- TOML loading and section extraction
- Option validation (types, ranges, unknown keys, nested tables)
- Proxy URL construction and bypass rules
- Package exclusion globs
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict
from unittest.mock import patch

import pytest

from peerscope.config import (
    AnalysisConfig,
    CacheConfig,
    PeerScopeConfig,
    ProxyConfig,
    discover_config_file,
    load_config,
    parse_config,
)
from peerscope.exceptions import ConfigError


def _write(path: Path, content: str) -> Path:
    path.write_text(content, encoding="utf-8")
    return path


@pytest.mark.unit
class TestDefaults:
    """Tests for default configuration values."""

    def test_top_level_defaults(self) -> None:
        config = PeerScopeConfig()

        assert config.registry == "https://registry.npmjs.org"
        assert config.timeout == 10.0
        assert config.retries == 3
        assert config.max_concurrent_requests == 10
        assert config.source_path is None

    def test_nested_defaults(self) -> None:
        config = PeerScopeConfig()

        assert config.cache == CacheConfig()
        assert config.cache.enabled is True
        assert config.cache.ttl == 300.0
        assert config.cache.max_size == 100
        assert config.proxy.url is None
        assert config.analysis.include_dev_dependencies is True
        assert config.analysis.offline_mode is False
        assert config.analysis.check_connection is True

    def test_registry_url_strips_slash(self) -> None:
        config = PeerScopeConfig(registry="https://npm.example.com/")
        assert config.registry_url == "https://npm.example.com"

    def test_to_log_dict(self) -> None:
        data = PeerScopeConfig().to_log_dict()

        assert set(data) == {
            "registry",
            "timeout",
            "retries",
            "max_concurrent_requests",
            "backoff_base",
            "backoff_cap",
            "cache",
            "proxy",
            "analysis",
        }
        assert data["cache"]["disk_path"] == ".peerscope-cache.json"


@pytest.mark.unit
class TestDiscoverConfigFile:
    """Tests for discover_config_file."""

    def test_explicit_path(self, tmp_path: Path) -> None:
        config = _write(tmp_path / "custom.toml", "[peerscope]\n")
        assert discover_config_file(config) == config.resolve()

    def test_explicit_path_missing(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found") as exc_info:
            discover_config_file(tmp_path / "missing.toml")

        assert exc_info.value.config_path.endswith("missing.toml")

    def test_peerscope_toml(self, tmp_path: Path) -> None:
        config = _write(tmp_path / "peerscope.toml", "[peerscope]\n")

        with patch("peerscope.config.Path.cwd", return_value=tmp_path):
            assert discover_config_file() == config

    def test_peerscope_toml_wins_over_pyproject(self, tmp_path: Path) -> None:
        config = _write(tmp_path / "peerscope.toml", "[peerscope]\n")
        _write(tmp_path / "pyproject.toml", "[tool.peerscope]\ntimeout = 5\n")

        with patch("peerscope.config.Path.cwd", return_value=tmp_path):
            assert discover_config_file() == config

    def test_pyproject_with_section(self, tmp_path: Path) -> None:
        config = _write(tmp_path / "pyproject.toml", "[tool.peerscope]\ntimeout = 5\n")

        with patch("peerscope.config.Path.cwd", return_value=tmp_path):
            assert discover_config_file() == config

    def test_pyproject_without_section(self, tmp_path: Path) -> None:
        _write(tmp_path / "pyproject.toml", "[tool.black]\nline-length = 88\n")

        with patch("peerscope.config.Path.cwd", return_value=tmp_path):
            assert discover_config_file() is None

    def test_invalid_pyproject_ignored(self, tmp_path: Path) -> None:
        _write(tmp_path / "pyproject.toml", "[tool.peerscope\n")

        with patch("peerscope.config.Path.cwd", return_value=tmp_path):
            assert discover_config_file() is None

    def test_nothing_found(self, tmp_path: Path) -> None:
        with patch("peerscope.config.Path.cwd", return_value=tmp_path):
            assert discover_config_file() is None


@pytest.mark.unit
class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults_when_nothing_found(self, tmp_path: Path) -> None:
        with patch("peerscope.config.Path.cwd", return_value=tmp_path):
            config = load_config()

        assert config == PeerScopeConfig()

    def test_full_peerscope_toml(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path / "peerscope.toml",
            """
[peerscope]
registry = "https://npm.example.com"
timeout = 5
retries = 2
max_concurrent_requests = 8

[peerscope.cache]
ttl = 600
max_size = 50
persist_to_disk = true
disk_path = "/tmp/peerscope.json"

[peerscope.proxy]
enabled = true
host = "proxy.internal"
port = 3128
bypass = ["*.internal"]

[peerscope.analysis]
skip_optional_peer_deps = true
check_connection = false
exclude_packages = ["@types/*", "typescript"]
""",
        )

        config = load_config(path)

        assert config.source_path == path.resolve()
        assert config.registry == "https://npm.example.com"
        assert config.timeout == 5.0
        assert isinstance(config.timeout, float)
        assert config.retries == 2
        assert config.max_concurrent_requests == 8
        assert config.cache.ttl == 600.0
        assert config.cache.max_size == 50
        assert config.cache.persist_to_disk is True
        assert config.cache.disk_path == Path("/tmp/peerscope.json")
        assert config.proxy.url == "http://proxy.internal:3128"
        assert config.analysis.skip_optional_peer_deps is True
        assert config.analysis.check_connection is False
        assert config.is_excluded("@types/react")

    def test_pyproject_section(self, tmp_path: Path) -> None:
        _write(
            tmp_path / "pyproject.toml",
            "[project]\nname = \"x\"\n\n[tool.peerscope.analysis]\ncheck_transitive = true\n",
        )

        with patch("peerscope.config.Path.cwd", return_value=tmp_path):
            config = load_config()

        assert config.analysis.check_transitive is True

    def test_empty_section_uses_defaults(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "peerscope.toml", "# nothing yet\n")

        config = load_config(path)

        assert config.source_path == path.resolve()
        assert config.timeout == 10.0

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "peerscope.toml", "[peerscope\ntimeout = \n")

        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_config(path)

    def test_invalid_value_reports_path(self, tmp_path: Path) -> None:
        path = _write(tmp_path / "peerscope.toml", "[peerscope]\nretries = 99\n")

        with pytest.raises(ConfigError) as exc_info:
            load_config(path)

        assert exc_info.value.option == "retries"
        assert exc_info.value.config_path == str(path.resolve())


@pytest.mark.unit
class TestParseConfig:
    """Tests for parse_config validation."""

    def test_empty_section(self) -> None:
        assert parse_config({}) == PeerScopeConfig()

    def test_unknown_top_level_key(self) -> None:
        with pytest.raises(ConfigError, match="Unknown configuration keys: colour"):
            parse_config({"colour": True})

    def test_unknown_nested_key(self) -> None:
        with pytest.raises(ConfigError, match="cache.size"):
            parse_config({"cache": {"size": 10}})

    @pytest.mark.parametrize(
        "section,option",
        [
            ({"timeout": "fast"}, "timeout"),
            ({"retries": 1.5}, "retries"),
            ({"retries": True}, "retries"),
            ({"registry": 42}, "registry"),
            ({"cache": {"enabled": "yes"}}, "cache.enabled"),
            ({"proxy": {"port": "3128"}}, "proxy.port"),
            ({"analysis": {"exclude_packages": "react"}}, "analysis.exclude_packages"),
            ({"analysis": {"check_connection": "no"}}, "analysis.check_connection"),
        ],
    )
    def test_type_errors(self, section: Dict[str, Any], option: str) -> None:
        with pytest.raises(ConfigError) as exc_info:
            parse_config(section)

        assert exc_info.value.option == option

    @pytest.mark.parametrize(
        "section,option",
        [
            ({"timeout": 0}, "timeout"),
            ({"timeout": 301}, "timeout"),
            ({"retries": -1}, "retries"),
            ({"retries": 11}, "retries"),
            ({"max_concurrent_requests": 0}, "max_concurrent_requests"),
            ({"max_concurrent_requests": 51}, "max_concurrent_requests"),
            ({"cache": {"ttl": 0}}, "cache.ttl"),
            ({"cache": {"max_size": 0}}, "cache.max_size"),
            ({"proxy": {"port": 70000}}, "proxy.port"),
        ],
    )
    def test_range_errors(self, section: Dict[str, Any], option: str) -> None:
        with pytest.raises(ConfigError) as exc_info:
            parse_config(section)

        assert exc_info.value.option == option

    def test_non_string_list_items(self) -> None:
        with pytest.raises(ConfigError, match="only strings"):
            parse_config({"analysis": {"exclude_packages": ["react", 1]}})

    def test_table_must_be_table(self) -> None:
        with pytest.raises(ConfigError, match="cache must be a table"):
            parse_config({"cache": True})

    def test_registry_scheme(self) -> None:
        with pytest.raises(ConfigError, match="http"):
            parse_config({"registry": "ftp://registry.example.com"})

    def test_proxy_protocol(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            parse_config({"proxy": {"protocol": "socks5"}})

        assert exc_info.value.option == "proxy.protocol"

    def test_enabled_proxy_needs_host(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            parse_config({"proxy": {"enabled": True, "port": 8080}})

        assert exc_info.value.option == "proxy.host"

    def test_backoff_cap_below_base(self) -> None:
        with pytest.raises(ConfigError, match="backoff_cap"):
            parse_config({"backoff_base": 5, "backoff_cap": 1})

    def test_config_path_in_errors(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            parse_config({"retries": -1}, config_path="/etc/peerscope.toml")

        assert exc_info.value.config_path == "/etc/peerscope.toml"


@pytest.mark.unit
class TestProxyConfig:
    """Tests for ProxyConfig URL handling."""

    def test_disabled(self) -> None:
        assert ProxyConfig(host="proxy", port=8080).url is None

    def test_without_port(self) -> None:
        proxy = ProxyConfig(enabled=True, host="proxy.internal", protocol="https")
        assert proxy.url == "https://proxy.internal"

    def test_bypass_globs(self) -> None:
        proxy = ProxyConfig(
            enabled=True,
            host="proxy.internal",
            port=3128,
            bypass=["*.corp.example.com", "localhost"],
        )

        assert proxy.url_for("https://registry.npmjs.org/react") == "http://proxy.internal:3128"
        assert proxy.url_for("https://npm.corp.example.com/react") is None
        assert proxy.url_for("http://localhost:4873/react") is None


@pytest.mark.unit
class TestAnalysisConfig:
    """Tests for package exclusion."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("typescript", True),
            ("@types/node", True),
            ("@typescript-eslint/parser", False),
            ("react", False),
        ],
    )
    def test_is_excluded(self, name: str, expected: bool) -> None:
        config = AnalysisConfig(exclude_packages=["typescript", "@types/*"])
        assert config.is_excluded(name) is expected
