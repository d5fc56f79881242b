"""Periodic update check that rolls out a new cache generation.

Polls the manifest at a fixed interval. When its version differs from the
active generation, the worker installs and activates the new generation.
"""

import logging
import threading

from .worker import CacheWorker, LifecycleError

logger = logging.getLogger(__name__)


class Updater:
    """Background thread checking the manifest for a new version."""

    def __init__(self, worker: CacheWorker, interval_seconds: int) -> None:
        """Initialize the updater.

        Args:
            worker: Worker whose generation is kept current.
            interval_seconds: Seconds between checks.
        """
        self.worker = worker
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the update thread."""
        if self.interval_seconds <= 0:
            logger.info("Update checks disabled")
            return

        if self._thread and self._thread.is_alive():
            logger.warning("Updater already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="cache-updater", daemon=True)
        self._thread.start()
        logger.info("Updater started (interval: %ds)", self.interval_seconds)

    def stop(self) -> None:
        """Stop the update thread gracefully."""
        if not self._thread or not self._thread.is_alive():
            return

        logger.info("Stopping updater...")
        self._stop_event.set()
        self._thread.join(timeout=5)

        if self._thread.is_alive():
            logger.warning("Updater thread did not stop gracefully")
        else:
            logger.info("Updater stopped")

    def _run(self) -> None:
        """Main update loop - runs in background thread."""
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.check_once()
            except Exception as e:
                logger.error("Update check failed: %s", e)

    def check_once(self) -> bool:
        """Check the manifest and deploy a new generation if its version changed.

        Returns:
            True if a new generation was deployed.
        """
        current = self.worker.current_version
        manifest = self.worker.manifest_loader.load(current)
        if manifest.version == current:
            logger.debug("Cache is up to date version=%s", current)
            return False

        logger.info("New cache version available %s -> %s", current, manifest.version)
        try:
            self.worker.deploy()
        except LifecycleError as e:
            logger.warning("Update skipped, worker busy: %s", e)
            return False
        return True
