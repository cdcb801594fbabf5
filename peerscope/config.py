"""Configuration file loader for peerscope.

Handles discovery, loading, parsing, and validation of configuration files.
Supports two formats:

- ``peerscope.toml``: settings under a ``[peerscope]`` table
- ``pyproject.toml``: settings under a ``[tool.peerscope]`` table

Discovery order:

1. Explicit path passed by the caller
2. ``peerscope.toml`` in current directory
3. ``pyproject.toml`` with ``[tool.peerscope]`` section

Environment variables are not consulted here; callers that want them merge
them into the returned :class:`PeerScopeConfig` themselves.

Typical usage::

    config = load_config()  # Auto-discover
    config = load_config(Path("custom.toml"))  # Explicit path

Example (``peerscope.toml``)::

    [peerscope]
    registry = "https://registry.npmjs.org"
    timeout = 10
    max_concurrent_requests = 8

    [peerscope.cache]
    ttl = 600
    persist_to_disk = true

    [peerscope.proxy]
    enabled = true
    host = "proxy.internal"
    port = 3128

    [peerscope.analysis]
    exclude_packages = ["@types/*", "typescript"]
"""

from __future__ import annotations

import fnmatch
import tomli as tomllib
from pathlib import Path
from urllib.parse import urlsplit
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Type, Union

from peerscope.exceptions import ConfigError
from peerscope.utils.logger import get_logger
from peerscope.constants import (
    DEFAULT_BACKOFF_BASE,
    DEFAULT_BACKOFF_CAP,
    DEFAULT_CACHE_FILE,
    DEFAULT_CACHE_MAX_SIZE,
    DEFAULT_CACHE_TTL,
    DEFAULT_MAX_CONCURRENT_REQUESTS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_REGISTRY,
    DEFAULT_TIMEOUT,
)

logger = get_logger("config")

Number = Union[int, float]


@dataclass
class CacheConfig:
    """Metadata cache settings.

    Attributes:
        enabled: Use the in-memory cache at all.
        ttl: Entry lifetime in seconds.
        max_size: Maximum number of cached packages.
        persist_to_disk: Load the snapshot before and save it after a run.
        disk_path: Snapshot location.
    """

    enabled: bool = True
    ttl: float = DEFAULT_CACHE_TTL
    max_size: int = DEFAULT_CACHE_MAX_SIZE
    persist_to_disk: bool = False
    disk_path: Path = field(default_factory=lambda: Path(DEFAULT_CACHE_FILE))


@dataclass
class ProxyConfig:
    """Outbound proxy settings.

    Attributes:
        enabled: Route registry traffic through the proxy.
        host: Proxy host name.
        port: Proxy port.
        protocol: Scheme used to talk to the proxy (``http`` or ``https``).
        bypass: Host names (or ``*`` globs) reached directly.
    """

    enabled: bool = False
    host: Optional[str] = None
    port: Optional[int] = None
    protocol: str = "http"
    bypass: List[str] = field(default_factory=list)

    @property
    def url(self) -> Optional[str]:
        """Proxy URL, or ``None`` when the proxy is disabled or incomplete."""
        if not self.enabled or not self.host:
            return None
        if self.port is None:
            return f"{self.protocol}://{self.host}"
        return f"{self.protocol}://{self.host}:{self.port}"

    def url_for(self, target: str) -> Optional[str]:
        """Proxy URL to use for *target*, honouring the bypass list."""
        host = urlsplit(target).hostname or ""
        for pattern in self.bypass:
            if fnmatch.fnmatchcase(host, pattern):
                return None
        return self.url


@dataclass
class AnalysisConfig:
    """Which packages and edges the analyzers look at.

    Attributes:
        offline_mode: Never hit the network; serve stale cache entries
            (flagged as stale) or report packages as unavailable.
        check_connection: Check registry reachability once before the
            first network fetch and switch to offline mode when it is unreachable.
        include_dev_dependencies: Evaluate ``devDependencies`` too.
        skip_optional_peer_deps: Ignore peers marked optional entirely.
        check_transitive: Also emit regular ``dependencies`` edges, which
            lets the conflict resolver see them.
        exclude_packages: Package names or ``*`` globs never evaluated.
    """

    offline_mode: bool = False
    check_connection: bool = True
    include_dev_dependencies: bool = True
    skip_optional_peer_deps: bool = False
    check_transitive: bool = False
    exclude_packages: List[str] = field(default_factory=list)

    def is_excluded(self, name: str) -> bool:
        return any(
            name == pattern or fnmatch.fnmatchcase(name, pattern)
            for pattern in self.exclude_packages
        )


@dataclass
class PeerScopeConfig:
    """Parsed and validated peerscope configuration.

    All fields have defaults, so empty config files are valid.

    Attributes:
        registry: Registry base URL.
        timeout: Per-request timeout in seconds.
        retries: Retries after the first attempt for transient failures.
        max_concurrent_requests: Ceiling on in-flight registry requests.
        backoff_base: First retry delay in seconds.
        backoff_cap: Upper bound on any retry delay in seconds.
        cache: Cache settings.
        proxy: Proxy settings.
        analysis: Analyzer settings.
        source_path: Path to loaded config file, or ``None`` if using defaults.
    """

    registry: str = DEFAULT_REGISTRY
    timeout: float = DEFAULT_TIMEOUT
    retries: int = DEFAULT_MAX_RETRIES
    max_concurrent_requests: int = DEFAULT_MAX_CONCURRENT_REQUESTS
    backoff_base: float = DEFAULT_BACKOFF_BASE
    backoff_cap: float = DEFAULT_BACKOFF_CAP
    cache: CacheConfig = field(default_factory=CacheConfig)
    proxy: ProxyConfig = field(default_factory=ProxyConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)

    # Metadata (not a user-facing option)
    source_path: Optional[Path] = field(default=None, repr=False)

    @property
    def registry_url(self) -> str:
        """Registry base URL without a trailing slash."""
        return self.registry.rstrip("/")

    def is_excluded(self, name: str) -> bool:
        return self.analysis.is_excluded(name)

    def to_log_dict(self) -> Dict[str, Any]:
        """Return configuration as dictionary for debug logging.

        Excludes ``source_path`` metadata.
        """
        return {
            "registry": self.registry,
            "timeout": self.timeout,
            "retries": self.retries,
            "max_concurrent_requests": self.max_concurrent_requests,
            "backoff_base": self.backoff_base,
            "backoff_cap": self.backoff_cap,
            "cache": {
                "enabled": self.cache.enabled,
                "ttl": self.cache.ttl,
                "max_size": self.cache.max_size,
                "persist_to_disk": self.cache.persist_to_disk,
                "disk_path": str(self.cache.disk_path),
            },
            "proxy": {
                "enabled": self.proxy.enabled,
                "url": self.proxy.url,
                "bypass": list(self.proxy.bypass),
            },
            "analysis": {
                "offline_mode": self.analysis.offline_mode,
                "check_connection": self.analysis.check_connection,
                "include_dev_dependencies": self.analysis.include_dev_dependencies,
                "skip_optional_peer_deps": self.analysis.skip_optional_peer_deps,
                "check_transitive": self.analysis.check_transitive,
                "exclude_packages": list(self.analysis.exclude_packages),
            },
        }


def discover_config_file(explicit_path: Optional[Path] = None) -> Optional[Path]:
    """Find the configuration file to load.

    Search order:

    1. ``explicit_path``
    2. ``peerscope.toml`` in current directory
    3. ``pyproject.toml`` with ``[tool.peerscope]`` section in current directory

    Args:
        explicit_path: Explicit config path. If provided, must exist.

    Returns:
        Resolved path to config file, or ``None`` if not found.

    Raises:
        ConfigError: Explicit path provided but does not exist.
    """
    if explicit_path is not None:
        resolved = Path(explicit_path).resolve()
        if not resolved.is_file():
            raise ConfigError(
                f"Configuration file not found: {explicit_path}",
                config_path=str(explicit_path),
            )
        logger.debug("Using explicit config: %s", resolved)
        return resolved

    cwd = Path.cwd()

    peerscope_toml = cwd / "peerscope.toml"
    if peerscope_toml.is_file():
        logger.debug("Found peerscope.toml: %s", peerscope_toml)
        return peerscope_toml

    pyproject_toml = cwd / "pyproject.toml"
    if pyproject_toml.is_file() and _pyproject_has_peerscope_section(pyproject_toml):
        logger.debug("Found [tool.peerscope] in pyproject.toml: %s", pyproject_toml)
        return pyproject_toml

    logger.debug("No configuration file found")
    return None


def _pyproject_has_peerscope_section(path: Path) -> bool:
    """Check if pyproject.toml contains a ``[tool.peerscope]`` section.

    An unreadable or invalid pyproject.toml simply does not count.
    """
    try:
        raw = _read_toml(path)
    except ConfigError as exc:
        logger.debug("Skipping %s: %s", path, exc)
        return False
    tool = raw.get("tool", {})
    return isinstance(tool, dict) and "peerscope" in tool


def load_config(config_path: Optional[Path] = None) -> PeerScopeConfig:
    """Load and validate peerscope configuration.

    Discovers config file (or uses provided path), parses and validates it.
    Returns config with defaults if no file found.

    Args:
        config_path: Explicit path to config file. If ``None``, uses
            auto-discovery (see :func:`discover_config_file`).

    Raises:
        ConfigError: File cannot be parsed, has unknown keys, or invalid values.
    """
    resolved = discover_config_file(config_path)

    if resolved is None:
        logger.debug("No config file found, using defaults")
        return PeerScopeConfig()

    logger.info("Loading configuration from %s", resolved)
    raw = _read_toml(resolved)

    if resolved.name == "pyproject.toml":
        section = raw.get("tool", {}).get("peerscope", {})
    else:
        section = raw.get("peerscope", {})

    if not section:
        logger.debug("Config file found but no peerscope section, using defaults")
        return PeerScopeConfig(source_path=resolved)

    config = parse_config(section, config_path=str(resolved))
    config.source_path = resolved

    logger.debug("Loaded configuration: %s", config.to_log_dict())
    return config


def _read_toml(path: Path) -> Dict[str, Any]:
    """Read and parse a TOML file.

    Raises:
        ConfigError: File cannot be read or is not valid TOML.
    """
    try:
        with open(path, "rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(
            f"Invalid TOML in {path.name}: {exc}",
            config_path=str(path),
        ) from exc
    except OSError as exc:
        raise ConfigError(
            f"Cannot read configuration file {path}: {exc}",
            config_path=str(path),
        ) from exc


# ---------------------------------------------------------------------------
# Section parsing
# ---------------------------------------------------------------------------

# option -> (expected types, minimum, maximum); bounds apply to numbers only
_OptionSpec = Tuple[Tuple[Type[Any], ...], Optional[Number], Optional[Number]]

_TOP_LEVEL: Dict[str, _OptionSpec] = {
    "registry": ((str,), None, None),
    "timeout": ((int, float), 0.1, 300),
    "retries": ((int,), 0, 10),
    "max_concurrent_requests": ((int,), 1, 50),
    "backoff_base": ((int, float), 0, 60),
    "backoff_cap": ((int, float), 0, 600),
}

_CACHE: Dict[str, _OptionSpec] = {
    "enabled": ((bool,), None, None),
    "ttl": ((int, float), 1, None),
    "max_size": ((int,), 1, None),
    "persist_to_disk": ((bool,), None, None),
    "disk_path": ((str,), None, None),
}

_PROXY: Dict[str, _OptionSpec] = {
    "enabled": ((bool,), None, None),
    "host": ((str,), None, None),
    "port": ((int,), 1, 65535),
    "protocol": ((str,), None, None),
    "bypass": ((list,), None, None),
}

_ANALYSIS: Dict[str, _OptionSpec] = {
    "offline_mode": ((bool,), None, None),
    "check_connection": ((bool,), None, None),
    "include_dev_dependencies": ((bool,), None, None),
    "skip_optional_peer_deps": ((bool,), None, None),
    "check_transitive": ((bool,), None, None),
    "exclude_packages": ((list,), None, None),
}

_TABLES = {"cache": _CACHE, "proxy": _PROXY, "analysis": _ANALYSIS}


def _type_label(types: Tuple[Type[Any], ...]) -> str:
    names = {bool: "a boolean", int: "an integer", str: "a string", list: "an array"}
    if types == (int, float):
        return "a number"
    return names.get(types[0], types[0].__name__)


def _check_option(
    name: str,
    value: Any,
    spec: _OptionSpec,
    *,
    config_path: str,
) -> Any:
    """Validate one option against its spec and return it."""
    types, minimum, maximum = spec

    # bool is an int subclass; only accept it where a boolean is expected
    if isinstance(value, bool) and bool not in types:
        ok = False
    else:
        ok = isinstance(value, types)
    if not ok:
        raise ConfigError(
            f"{name} must be {_type_label(types)}, got {type(value).__name__}",
            config_path=config_path,
            option=name,
        )

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if minimum is not None and value < minimum:
            raise ConfigError(
                f"{name} must be >= {minimum}, got {value}",
                config_path=config_path,
                option=name,
            )
        if maximum is not None and value > maximum:
            raise ConfigError(
                f"{name} must be <= {maximum}, got {value}",
                config_path=config_path,
                option=name,
            )

    if isinstance(value, list) and not all(isinstance(item, str) for item in value):
        raise ConfigError(
            f"{name} must contain only strings",
            config_path=config_path,
            option=name,
        )

    return value


def _check_table(
    table: Dict[str, Any],
    specs: Dict[str, _OptionSpec],
    *,
    prefix: str,
    config_path: str,
) -> Dict[str, Any]:
    """Reject unknown keys and validate every known one."""
    unknown = set(table) - set(specs)
    if unknown:
        qualified = sorted(f"{prefix}{key}" for key in unknown)
        raise ConfigError(
            f"Unknown configuration keys: {', '.join(qualified)}",
            config_path=config_path,
        )
    return {
        key: _check_option(f"{prefix}{key}", value, specs[key], config_path=config_path)
        for key, value in table.items()
    }


def parse_config(
    section: Dict[str, Any],
    *,
    config_path: str = "<memory>",
) -> PeerScopeConfig:
    """Parse and validate a ``[peerscope]`` table.

    Nested ``cache``, ``proxy`` and ``analysis`` tables map onto the
    matching dataclasses. Unknown keys, type mismatches and out-of-range
    numbers are rejected.

    Args:
        section: Raw config dictionary from a TOML file.
        config_path: Path string for error messages.

    Raises:
        ConfigError: The section is invalid.
    """
    top_level = {k: v for k, v in section.items() if k not in _TABLES}
    values = _check_table(top_level, _TOP_LEVEL, prefix="", config_path=config_path)

    tables: Dict[str, Dict[str, Any]] = {}
    for name, specs in _TABLES.items():
        raw = section.get(name, {})
        if not isinstance(raw, dict):
            raise ConfigError(
                f"{name} must be a table, got {type(raw).__name__}",
                config_path=config_path,
                option=name,
            )
        tables[name] = _check_table(
            raw, specs, prefix=f"{name}.", config_path=config_path
        )

    registry = values.get("registry", DEFAULT_REGISTRY)
    if urlsplit(registry).scheme not in ("http", "https"):
        raise ConfigError(
            f"registry must be an http(s) URL, got {registry!r}",
            config_path=config_path,
            option="registry",
        )

    proxy_protocol = tables["proxy"].get("protocol", "http")
    if proxy_protocol not in ("http", "https"):
        raise ConfigError(
            f"proxy.protocol must be 'http' or 'https', got {proxy_protocol!r}",
            config_path=config_path,
            option="proxy.protocol",
        )

    if tables["proxy"].get("enabled") and not tables["proxy"].get("host"):
        raise ConfigError(
            "proxy.host is required when the proxy is enabled",
            config_path=config_path,
            option="proxy.host",
        )

    cache_values = dict(tables["cache"])
    if "disk_path" in cache_values:
        cache_values["disk_path"] = Path(cache_values["disk_path"])
    if "ttl" in cache_values:
        cache_values["ttl"] = float(cache_values["ttl"])

    config = PeerScopeConfig(
        cache=CacheConfig(**cache_values),
        proxy=ProxyConfig(**tables["proxy"]),
        analysis=AnalysisConfig(**tables["analysis"]),
    )
    for key, value in values.items():
        if key in ("timeout", "backoff_base", "backoff_cap"):
            value = float(value)
        setattr(config, key, value)

    if config.backoff_cap < config.backoff_base:
        raise ConfigError(
            "backoff_cap must not be smaller than backoff_base",
            config_path=config_path,
            option="backoff_cap",
        )

    return config
