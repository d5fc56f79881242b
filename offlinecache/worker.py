"""Cache worker: lifecycle state machine and request handlers.

The worker moves through

    IDLE -> INSTALLING -> INSTALLED -> ACTIVATING -> ACTIVATED

and a new install from INSTALLED or ACTIVATED starts the next generation.
Install loads the manifest and populates the static partition; it never
deletes anything, since the previous generation may still be serving.
Activate reloads the manifest, deletes every stale partition and only
then claims clients.

Each handler returns a Future. The host must wait on it before it
considers the transition (or the request) done.

Example:
    worker = CacheWorker(config, store)
    worker.install().result()
    worker.activate().result()
    response = worker.handle_fetch(Request(url="https://example.com/")).result()
    worker.shutdown()
"""

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum

from .config import Config
from .generations import Generation, GenerationManager
from .manifest import ManifestLoader
from .models import CachedResponse, CleanupReport, Manifest, PrecacheReport, Request, Strategy
from .network import Fetcher
from .precache import populate
from .router import classify
from .strategies import STRATEGIES, FetchContext, InFlightKeys
from .store import CacheStore

logger = logging.getLogger(__name__)


class LifecycleError(Exception):
    """Raised when a lifecycle transition is requested from the wrong state."""

    pass


class WorkerState(Enum):
    """Lifecycle states of a cache worker."""

    IDLE = "idle"
    INSTALLING = "installing"
    INSTALLED = "installed"
    ACTIVATING = "activating"
    ACTIVATED = "activated"


_INSTALLABLE_FROM = (WorkerState.IDLE, WorkerState.INSTALLED, WorkerState.ACTIVATED)


class CacheWorker:
    """Offline cache worker for one origin."""

    def __init__(
        self,
        config: Config,
        store: CacheStore,
        fetcher: Fetcher | None = None,
        executor: ThreadPoolExecutor | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            config: Application configuration.
            store: Durable partition store.
            fetcher: Network fetcher (built from config.network if omitted).
            executor: Pool running handlers and background refreshes
                (built from config.worker if omitted).
        """
        self._config = config
        self._store = store
        self._fetcher = fetcher or Fetcher(
            timeout=config.network.timeout,
            user_agent=config.network.user_agent,
        )
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=config.worker.max_workers,
            thread_name_prefix="cache-worker",
        )
        self._generations = GenerationManager(
            prefix=config.cache.prefix,
            seed_version=config.cache.seed_version,
            fallback_files=config.cache.fallback_files,
        )
        self._manifest_loader = ManifestLoader(self._fetcher, config.origin, config.cache.manifest_path)
        self._generations.resume(store)
        self._refreshing = InFlightKeys()

        # Guards state and generation swaps, never request handling.
        self._lock = threading.Lock()
        self._state = WorkerState.IDLE
        self._generation = self._generations.derive(Manifest(version=self._generations.current_version))
        self._controlling = False
        self._claim_callbacks: list[Callable[[Generation], None]] = []
        self._sync_handlers: dict[str, Callable[[], None]] = {}

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def generation(self) -> Generation:
        """Generation currently used for fetch handling."""
        return self._generation

    @property
    def current_version(self) -> str:
        return self._generation.version

    @property
    def controlling(self) -> bool:
        """Whether the worker has claimed its clients."""
        return self._controlling

    @property
    def manifest_loader(self) -> ManifestLoader:
        return self._manifest_loader

    @property
    def generations(self) -> GenerationManager:
        return self._generations

    # =========================================================================
    # HOOK REGISTRATION
    # =========================================================================

    def on_claim(self, callback: Callable[[Generation], None]) -> None:
        """Register a callback invoked when activation claims clients."""
        self._claim_callbacks.append(callback)

    def register_sync(self, tag: str, handler: Callable[[], None]) -> None:
        """Register the handler run when a background-sync trigger fires."""
        self._sync_handlers[tag] = handler

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def _begin(self, allowed: tuple[WorkerState, ...], target: WorkerState) -> WorkerState:
        with self._lock:
            if self._state not in allowed:
                raise LifecycleError(f"Cannot enter {target.value} from {self._state.value}")
            previous = self._state
            self._state = target
            return previous

    def _restore(self, previous: WorkerState) -> None:
        with self._lock:
            self._state = previous

    def install(self) -> "Future[PrecacheReport]":
        """Start installing a generation.

        Returns:
            Future resolving to the PrecacheReport once the static partition
            has been populated.

        Raises:
            LifecycleError: If an install or activation is already running.
        """
        previous = self._begin(_INSTALLABLE_FROM, WorkerState.INSTALLING)
        logger.info("Installing cache worker (from %s)", previous.value)
        return self._submit_transition(self._install, previous)

    def _install(self) -> PrecacheReport:
        manifest = self._manifest_loader.load(self._generations.current_version)
        generation = self._generations.derive(manifest)
        partition = self._store.open(generation.names.static)

        report = populate(partition, generation.precache, self._fetcher, self._config.origin)

        with self._lock:
            self._state = WorkerState.INSTALLED
        logger.info(
            "Cache worker installed version=%s cached=%d failed=%d",
            generation.version,
            len(report.cached),
            len(report.failed),
        )
        return report

    def activate(self) -> "Future[CleanupReport]":
        """Start activating the installed generation.

        Returns:
            Future resolving to the CleanupReport once stale partitions have
            been deleted and clients claimed.

        Raises:
            LifecycleError: If the worker is not installed.
        """
        previous = self._begin((WorkerState.INSTALLED,), WorkerState.ACTIVATING)
        logger.info("Activating cache worker")
        return self._submit_transition(self._activate, previous)

    def _activate(self) -> CleanupReport:
        # The manifest may have changed since install; never trust leftovers.
        manifest = self._manifest_loader.load(self._generations.current_version)
        generation = self._generations.derive(manifest)

        for name in generation.names.as_tuple():
            self._store.open(name)

        report = self._generations.delete_stale(self._store, generation.names)

        with self._lock:
            self._generation = generation
            self._state = WorkerState.ACTIVATED
            self._controlling = True

        for callback in self._claim_callbacks:
            try:
                callback(generation)
            except Exception as e:
                logger.error("Claim callback failed: %s", e)

        logger.info(
            "Cache worker activated version=%s deleted=%d failed=%d",
            generation.version,
            len(report.deleted),
            len(report.failed),
        )
        return report

    def _submit_transition(self, work: Callable, previous: WorkerState) -> Future:
        def run():
            try:
                return work()
            except Exception:
                logger.exception("Lifecycle transition failed, returning to %s", previous.value)
                self._restore(previous)
                raise

        try:
            return self._executor.submit(run)
        except RuntimeError:
            self._restore(previous)
            raise

    def deploy(self) -> tuple[PrecacheReport, CleanupReport]:
        """Install then activate a generation, waiting for both to finish."""
        precache_report = self.install().result()
        cleanup_report = self.activate().result()
        return precache_report, cleanup_report

    # =========================================================================
    # FETCH AND SYNC
    # =========================================================================

    def context(self) -> FetchContext:
        """Build the fetch context for the current generation."""
        cache = self._config.cache
        return FetchContext(
            store=self._store,
            fetcher=self._fetcher,
            generation=self._generation,
            origin=self._config.origin,
            offline_document=cache.offline_document,
            home_document=cache.home_document,
            background=self._executor,
            refreshing=self._refreshing,
        )

    def handle_fetch(self, request: Request) -> "Future[CachedResponse] | None":
        """Intercept a request.

        Args:
            request: Incoming request descriptor.

        Returns:
            Future resolving to the response, or None if the request is not
            intercepted and must go to the network untouched.
        """
        ctx = self.context()
        strategy = classify(request, ctx.generation.precache, ctx.origin, self._config.cache.external_resources)
        if strategy is Strategy.PASS_THROUGH:
            return None

        logger.debug("Fetch %s strategy=%s", request.url, strategy.value)
        return self._executor.submit(STRATEGIES[strategy], ctx, request)

    def sync(self, tag: str) -> "Future[None]":
        """Fire a named background-sync trigger.

        Unknown tags resolve immediately. Handler failures are logged and
        resolve the future with the exception.
        """
        handler = self._sync_handlers.get(tag)
        if handler is None:
            logger.debug("No sync handler registered for tag=%s", tag)
            future: Future[None] = Future()
            future.set_result(None)
            return future

        def run() -> None:
            logger.info("Running sync tag=%s", tag)
            try:
                handler()
            except Exception as e:
                logger.error("Sync failed tag=%s: %s", tag, e)
                raise

        return self._executor.submit(run)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the worker's executor if the worker created it."""
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
