"""Cache generations: version-scoped partition naming and stale cleanup."""

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

from .models import CleanupReport, Manifest, PartitionNames
from .paths import PrecacheSet, build_precache_set
from .store import CacheStore, StoreError

logger = logging.getLogger(__name__)

# Partition deletions run in parallel; each is a single SQLite transaction.
MAX_DELETE_WORKERS = 4


def _delete_partition(store: CacheStore, name: str) -> bool:
    """Delete one partition from a pool thread, then drop that thread's connection."""
    try:
        return store.delete(name)
    finally:
        store.release_connection()


@dataclass(frozen=True)
class Generation:
    """Everything derived from one manifest: version, partitions, precache set."""

    version: str
    names: PartitionNames
    precache: PrecacheSet


class GenerationManager:
    """Maps version identifiers to partitions and collects stale ones.

    Holds the current version: the seed until a manifest with a non-empty
    version has been derived.
    """

    def __init__(self, prefix: str, seed_version: str, fallback_files: Iterable[str]) -> None:
        self.prefix = prefix
        self.seed_version = seed_version
        self.fallback_files = tuple(fallback_files)
        self._current_version = seed_version

    @property
    def current_version(self) -> str:
        return self._current_version

    def partition_names(self, version: str) -> PartitionNames:
        """Return the static and dynamic partition names for a version."""
        return PartitionNames(
            static=f"{self.prefix}-static-{version}",
            dynamic=f"{self.prefix}-dynamic-{version}",
        )

    def owns(self, name: str) -> bool:
        """Whether a partition name belongs to this cache."""
        return name.startswith((f"{self.prefix}-static-", f"{self.prefix}-dynamic-"))

    def collect_stale(self, all_names: Iterable[str], current: PartitionNames) -> list[str]:
        """Return owned partition names that are not part of the current generation."""
        return [name for name in all_names if self.owns(name) and name not in current]

    def resume(self, store: CacheStore) -> str:
        """Adopt the version of the newest static partition found in the store.

        A restarted process otherwise falls back to the seed version and,
        with the manifest unreachable, would treat the last good generation
        as stale.

        Returns:
            The current version after resuming.
        """
        marker = f"{self.prefix}-static-"
        try:
            names = store.partition_names()
        except StoreError as e:
            logger.warning("Cannot resume cache generation, keeping version=%s: %s", self._current_version, e)
            return self._current_version

        for name in reversed(names):
            if name.startswith(marker) and len(name) > len(marker):
                self._current_version = name[len(marker) :]
                logger.info("Resumed cache generation version=%s", self._current_version)
                break
        return self._current_version

    def derive(self, manifest: Manifest) -> Generation:
        """Derive the generation described by a manifest and make it current."""
        if manifest.version:
            self._current_version = manifest.version
        version = self._current_version
        return Generation(
            version=version,
            names=self.partition_names(version),
            precache=build_precache_set(self.fallback_files, manifest.static_files),
        )

    def delete_stale(self, store: CacheStore, current: PartitionNames) -> CleanupReport:
        """Delete every stale partition.

        Deletions are independent and run concurrently; a failed deletion is
        logged and recorded without stopping the others.

        Args:
            store: Partition store.
            current: Names of the current generation, never deleted.

        Returns:
            CleanupReport listing deleted and failed partitions.
        """
        try:
            stale = self.collect_stale(store.partition_names(), current)
        except StoreError as e:
            logger.error("Failed to list partitions for cleanup: %s", e)
            return CleanupReport(failed=(("*", str(e)),))

        if not stale:
            logger.debug("No stale partitions to delete")
            return CleanupReport()

        deleted: list[str] = []
        failed: list[tuple[str, str]] = []
        with ThreadPoolExecutor(max_workers=MAX_DELETE_WORKERS) as executor:
            futures = {executor.submit(_delete_partition, store, name): name for name in stale}

            for future in as_completed(futures):
                name = futures[future]
                try:
                    future.result()
                    deleted.append(name)
                    logger.debug("Stale partition removed partition=%s", name)
                except Exception as e:
                    failed.append((name, str(e)))
                    logger.error("Failed to delete stale partition partition=%s: %s", name, e)

        return CleanupReport(deleted=tuple(sorted(deleted)), failed=tuple(sorted(failed)))
