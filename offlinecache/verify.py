"""Operational verification of the current static partition.

Checks that the partition for the manifest's version exists, that the
documents navigation depends on are cached, and that it holds at least as
many entries as the manifest lists.
"""

import logging
from dataclasses import dataclass, field

from .config import Config
from .generations import GenerationManager
from .manifest import ManifestLoader
from .network import Fetcher
from .paths import cache_key, url_for_path
from .store import CacheStore, StoreError

logger = logging.getLogger(__name__)

# Paths every static partition must hold for offline navigation to work.
REQUIRED_PATHS = ("/", "/index.html")


@dataclass(frozen=True)
class VerifyResult:
    """Outcome of a verification run.

    Attributes:
        version: Version the manifest reported.
        partition: Static partition that was inspected.
        partition_exists: Whether that partition exists.
        entries: Number of entries in the partition.
        expected: Number of files the manifest lists.
        missing: Required paths absent from the partition.
    """

    version: str
    partition: str
    partition_exists: bool
    entries: int = 0
    expected: int = 0
    missing: tuple[str, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.partition_exists and not self.missing and self.entries >= self.expected


def verify(config: Config, store: CacheStore, fetcher: Fetcher | None = None) -> VerifyResult:
    """Verify the static partition of the manifest's current version.

    Args:
        config: Application configuration.
        store: Partition store to inspect.
        fetcher: Fetcher for the manifest (built from config if omitted).

    Returns:
        VerifyResult describing what was found.
    """
    fetcher = fetcher or Fetcher(timeout=config.network.timeout, user_agent=config.network.user_agent)
    generations = GenerationManager(config.cache.prefix, config.cache.seed_version, config.cache.fallback_files)
    manifest = ManifestLoader(fetcher, config.origin, config.cache.manifest_path).load(generations.resume(store))
    generation = generations.derive(manifest)
    name = generation.names.static

    try:
        if not store.has(name):
            logger.error("Static partition not found partition=%s", name)
            return VerifyResult(version=generation.version, partition=name, partition_exists=False)

        keys = set(store.entry_keys(name))
    except StoreError as e:
        logger.error("Failed to inspect partition=%s: %s", name, e)
        return VerifyResult(version=generation.version, partition=name, partition_exists=False)

    required = (*REQUIRED_PATHS, config.cache.offline_document)
    missing = tuple(
        path for path in dict.fromkeys(required) if cache_key(url_for_path(config.origin, path)) not in keys
    )
    if missing:
        logger.error("Missing required cached files: %s", ", ".join(missing))

    return VerifyResult(
        version=generation.version,
        partition=name,
        partition_exists=True,
        entries=len(keys),
        expected=len(manifest.static_files),
        missing=missing,
    )
