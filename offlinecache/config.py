"""Configuration loader with type-safe dataclasses."""

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .paths import normalize_path


class ConfigError(Exception):
    """Raised when configuration is invalid or cannot be loaded."""

    pass


# Minimum interval between manifest update checks in seconds.
# Each check is a cache-bypassing fetch against origin.
MIN_UPDATE_INTERVAL = 10

DEFAULT_PREFIX = "offlinecache"
DEFAULT_SEED_VERSION = "1.0.0"
DEFAULT_MANIFEST_PATH = "/assets/cache-manifest.json"
DEFAULT_OFFLINE_DOCUMENT = "/offline.html"
DEFAULT_HOME_DOCUMENT = "/index.html"

# Last line of defense when the manifest is unreachable.
DEFAULT_FALLBACK_FILES = (
    "/",
    "/index.html",
    "/offline.html",
    "/assets/styles.css",
    "/assets/logo.svg",
    "/manifest.json",
    "/sw.js",
)


def _normalized_or_error(value: str, label: str) -> str:
    """Normalize a configured path, raising ConfigError if it is unusable."""
    path = normalize_path(value)
    if path is None:
        raise ConfigError(f"{label} must be a non-empty path")
    return path


@dataclass(frozen=True)
class CacheConfig:
    """Configuration for cache naming, precache fallbacks and routing.

    - prefix: Shared prefix of every partition name owned by this cache.
    - seed_version: Version used until a manifest provides one.
    - manifest_path: Well-known path of the cache manifest on origin.
    - fallback_files: Paths always precached, whatever the manifest says.
    - offline_document / home_document: Navigation fallback documents.
    - external_resources: URL prefixes served stale-while-revalidate.
    """

    prefix: str = DEFAULT_PREFIX
    seed_version: str = DEFAULT_SEED_VERSION
    manifest_path: str = DEFAULT_MANIFEST_PATH
    fallback_files: tuple[str, ...] = DEFAULT_FALLBACK_FILES
    offline_document: str = DEFAULT_OFFLINE_DOCUMENT
    home_document: str = DEFAULT_HOME_DOCUMENT
    external_resources: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.prefix:
            raise ConfigError("Cache prefix cannot be empty")
        if "-static-" in self.prefix or "-dynamic-" in self.prefix:
            raise ConfigError(f"Cache prefix '{self.prefix}' must not contain a partition role marker")
        if not self.seed_version:
            raise ConfigError("Cache seed_version cannot be empty")

        object.__setattr__(self, "manifest_path", _normalized_or_error(self.manifest_path, "manifest_path"))
        object.__setattr__(self, "offline_document", _normalized_or_error(self.offline_document, "offline_document"))
        object.__setattr__(self, "home_document", _normalized_or_error(self.home_document, "home_document"))

        for resource in self.external_resources:
            if not resource.startswith(("http://", "https://")):
                raise ConfigError(f"External resource must start with http:// or https://, got '{resource}'")


@dataclass(frozen=True)
class NetworkConfig:
    """Configuration for origin fetches."""

    timeout: int = 10  # seconds before a fetch counts as a network failure
    user_agent: str = "OfflineCache/0.1"

    def __post_init__(self) -> None:
        if self.timeout < 1:
            raise ConfigError(f"Network timeout must be at least 1 second (got {self.timeout})")
        if not self.user_agent:
            raise ConfigError("Network user_agent cannot be empty")


def _get_default_store_path() -> str:
    """Get the default store path using XDG-compliant directory.

    Returns ~/.local/share/offlinecache/cache.db which is the standard
    location for user-specific data files on Linux/macOS.
    """
    home = Path.home()
    return str(home / ".local" / "share" / "offlinecache" / "cache.db")


# Default store path (XDG-compliant user data directory)
DEFAULT_STORE_PATH = _get_default_store_path()


@dataclass(frozen=True)
class StoreConfig:
    """Configuration for the SQLite partition store."""

    path: str = DEFAULT_STORE_PATH

    def __post_init__(self) -> None:
        if not self.path:
            raise ConfigError("Store path cannot be empty")


@dataclass(frozen=True)
class WorkerConfig:
    """Configuration for the cache worker's thread pool and update loop."""

    max_workers: int = 8
    update_interval: int = 0  # seconds between manifest checks, 0 disables

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ConfigError(f"Worker max_workers must be at least 1 (got {self.max_workers})")
        if self.update_interval != 0 and self.update_interval < MIN_UPDATE_INTERVAL:
            raise ConfigError(
                f"Worker update_interval must be 0 or at least {MIN_UPDATE_INTERVAL} seconds "
                f"(got {self.update_interval})"
            )


@dataclass(frozen=True)
class ProxyConfig:
    """Configuration for the HTTP proxy host."""

    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 8000

    def __post_init__(self) -> None:
        if self.port < 1 or self.port > 65535:
            raise ConfigError(f"Proxy port must be between 1 and 65535, got {self.port}")


@dataclass(frozen=True)
class Config:
    """Main configuration container."""

    origin: str
    cache: CacheConfig = field(default_factory=CacheConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    proxy: ProxyConfig = field(default_factory=ProxyConfig)

    def __post_init__(self) -> None:
        if not self.origin:
            raise ConfigError("Origin cannot be empty")
        if not self.origin.startswith(("http://", "https://")):
            raise ConfigError(f"Origin must start with http:// or https://, got '{self.origin}'")
        object.__setattr__(self, "origin", self.origin.rstrip("/"))


def _parse_string_list(data: object, label: str) -> tuple[str, ...]:
    """Parse a YAML list of strings into a tuple."""
    if not isinstance(data, list):
        raise ConfigError(f"'{label}' must be a list")
    for i, item in enumerate(data):
        if not isinstance(item, str):
            raise ConfigError(f"'{label}' entry {i} must be a string")
    return tuple(data)


def _parse_cache_config(data: dict | None) -> CacheConfig:
    """Parse cache configuration section."""
    if data is None:
        return CacheConfig()
    if not isinstance(data, dict):
        raise ConfigError("'cache' section must be a dictionary")

    fallback_files = DEFAULT_FALLBACK_FILES
    if data.get("fallback_files") is not None:
        fallback_files = _parse_string_list(data["fallback_files"], "cache.fallback_files")

    external_resources: tuple[str, ...] = ()
    if data.get("external_resources") is not None:
        external_resources = _parse_string_list(data["external_resources"], "cache.external_resources")

    return CacheConfig(
        prefix=str(data.get("prefix", DEFAULT_PREFIX)),
        seed_version=str(data.get("seed_version", DEFAULT_SEED_VERSION)),
        manifest_path=str(data.get("manifest_path", DEFAULT_MANIFEST_PATH)),
        fallback_files=fallback_files,
        offline_document=str(data.get("offline_document", DEFAULT_OFFLINE_DOCUMENT)),
        home_document=str(data.get("home_document", DEFAULT_HOME_DOCUMENT)),
        external_resources=external_resources,
    )


def _parse_network_config(data: dict | None) -> NetworkConfig:
    """Parse network configuration section."""
    if data is None:
        return NetworkConfig()
    if not isinstance(data, dict):
        raise ConfigError("'network' section must be a dictionary")

    return NetworkConfig(
        timeout=int(data.get("timeout", 10)),
        user_agent=str(data.get("user_agent", "OfflineCache/0.1")),
    )


def _parse_store_config(data: dict | None) -> StoreConfig:
    """Parse store configuration section."""
    if data is None:
        return StoreConfig()
    if not isinstance(data, dict):
        raise ConfigError("'store' section must be a dictionary")

    return StoreConfig(path=os.path.expanduser(str(data.get("path", DEFAULT_STORE_PATH))))


def _parse_worker_config(data: dict | None) -> WorkerConfig:
    """Parse worker configuration section."""
    if data is None:
        return WorkerConfig()
    if not isinstance(data, dict):
        raise ConfigError("'worker' section must be a dictionary")

    return WorkerConfig(
        max_workers=int(data.get("max_workers", 8)),
        update_interval=int(data.get("update_interval", 0)),
    )


def _parse_proxy_config(data: dict | None) -> ProxyConfig:
    """Parse proxy configuration section."""
    if data is None:
        return ProxyConfig()
    if not isinstance(data, dict):
        raise ConfigError("'proxy' section must be a dictionary")

    return ProxyConfig(
        enabled=bool(data.get("enabled", True)),
        host=str(data.get("host", "127.0.0.1")),
        port=int(data.get("port", 8000)),
    )


def _apply_env_overrides(config_data: dict) -> dict:
    """Apply environment variable overrides to configuration.

    Supported overrides:
    - OFFLINECACHE_ORIGIN: Override origin
    - OFFLINECACHE_STORE_PATH: Override store.path
    - OFFLINECACHE_PROXY_PORT: Override proxy.port
    - OFFLINECACHE_PROXY_ENABLED: Override proxy.enabled (true/false)
    - OFFLINECACHE_NETWORK_TIMEOUT: Override network.timeout
    """
    for section in ("store", "proxy", "network"):
        if config_data.get(section) is None:
            config_data[section] = {}

    origin = os.environ.get("OFFLINECACHE_ORIGIN")
    if origin is not None:
        config_data["origin"] = origin

    store_path = os.environ.get("OFFLINECACHE_STORE_PATH")
    if store_path is not None:
        config_data["store"]["path"] = store_path

    proxy_port = os.environ.get("OFFLINECACHE_PROXY_PORT")
    if proxy_port is not None:
        config_data["proxy"]["port"] = int(proxy_port)

    proxy_enabled = os.environ.get("OFFLINECACHE_PROXY_ENABLED")
    if proxy_enabled is not None:
        config_data["proxy"]["enabled"] = proxy_enabled.lower() in ("true", "1", "yes")

    network_timeout = os.environ.get("OFFLINECACHE_NETWORK_TIMEOUT")
    if network_timeout is not None:
        config_data["network"]["timeout"] = int(network_timeout)

    return config_data


def load_config(config_path: str) -> Config:
    """Load and validate configuration from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        Validated Config object.

    Raises:
        ConfigError: If the file cannot be read or configuration is invalid.
    """
    path = Path(config_path)

    if not path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse YAML configuration: {e}")
    except OSError as e:
        raise ConfigError(f"Failed to read configuration file: {e}")

    if data is None:
        raise ConfigError("Configuration file is empty")

    if not isinstance(data, dict):
        raise ConfigError("Configuration must be a YAML dictionary")

    try:
        data = _apply_env_overrides(data)
    except ValueError as e:
        raise ConfigError(f"Invalid environment override: {e}")

    origin = data.get("origin")
    if origin is None:
        raise ConfigError("Configuration must contain 'origin'")

    try:
        return Config(
            origin=str(origin),
            cache=_parse_cache_config(data.get("cache")),
            network=_parse_network_config(data.get("network")),
            store=_parse_store_config(data.get("store")),
            worker=_parse_worker_config(data.get("worker")),
            proxy=_parse_proxy_config(data.get("proxy")),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid configuration value: {e}")
