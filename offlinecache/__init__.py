"""OfflineCache - Offline-first resource cache for a single web origin."""

import argparse
import logging
import signal
import sys
from threading import Event
from typing import Optional

__version__ = "0.1.0"

# Global shutdown event for signal handlers
_shutdown_event: Optional[Event] = None

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def _handle_shutdown(signum: int, frame: object) -> None:
    """Signal handler for graceful shutdown."""
    sig_name = signal.Signals(signum).name
    logger.info("Received %s, initiating shutdown...", sig_name)
    if _shutdown_event is not None:
        _shutdown_event.set()


def _load_config_or_exit(path: str):
    from .config import ConfigError, load_config

    try:
        return load_config(path)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)


def _open_store_or_exit(path: str):
    from .store import CacheStore, StoreError

    try:
        return CacheStore(path)
    except StoreError as e:
        print(f"Error: {e}")
        sys.exit(1)


def _cmd_run(args: argparse.Namespace) -> None:
    """Execute the run command - deploy a generation and serve through the proxy."""
    global _shutdown_event

    _setup_logging(args.verbose)

    logger.info("OfflineCache %s starting...", __version__)

    # Import here to avoid circular imports and allow logging setup first
    from .config import ConfigError, load_config
    from .network import Fetcher
    from .proxy import ProxyError, ProxyServer
    from .store import CacheStore, StoreError
    from .updater import Updater
    from .worker import CacheWorker

    # 1. Load configuration
    try:
        config = load_config(args.config)
        logger.info("Configuration loaded from %s", args.config)
        logger.info("Caching %s with prefix '%s'", config.origin, config.cache.prefix)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)

    # 2. Open partition store
    try:
        store = CacheStore(config.store.path)
        logger.info("Partition store opened at %s", config.store.path)
    except StoreError as e:
        logger.error("Store error: %s", e)
        sys.exit(1)

    # 3. Setup shutdown handler
    _shutdown_event = Event()
    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    # 4. Install and activate the current generation
    fetcher = Fetcher(timeout=config.network.timeout, user_agent=config.network.user_agent)
    worker = CacheWorker(config, store, fetcher=fetcher)
    precache_report, cleanup_report = worker.deploy()
    logger.info(
        "Generation %s ready: %d cached, %d failed, %d stale partitions deleted",
        worker.current_version,
        len(precache_report.cached),
        len(precache_report.failed),
        len(cleanup_report.deleted),
    )

    # 5. Start components
    updater = Updater(worker, config.worker.update_interval)
    proxy_server: Optional[ProxyServer] = None

    try:
        updater.start()

        if config.proxy.enabled:
            try:
                proxy_server = ProxyServer(config.proxy, worker, fetcher, config.origin)
                proxy_server.start()
            except ProxyError as e:
                logger.error("Failed to start proxy server: %s", e)
                logger.warning("Continuing without proxy server")
                proxy_server = None

        logger.info("All components started, waiting for shutdown signal...")

        # 6. Wait for shutdown signal
        _shutdown_event.wait()

    except KeyboardInterrupt:
        # Backup handler if signal doesn't work
        logger.info("Keyboard interrupt received")
    finally:
        # 7. Cleanup - stop all components
        logger.info("Shutting down components...")

        updater.stop()

        if proxy_server is not None:
            proxy_server.stop()

        worker.shutdown()
        store.close()
        logger.info("Partition store closed")

        logger.info("Shutdown complete")


def _cmd_deploy(args: argparse.Namespace) -> None:
    """Execute the deploy command - install and activate one generation."""
    from .worker import CacheWorker

    _setup_logging(args.verbose)

    config = _load_config_or_exit(args.config)
    store = _open_store_or_exit(config.store.path)
    worker = CacheWorker(config, store)

    try:
        precache_report, cleanup_report = worker.deploy()
    finally:
        worker.shutdown()
        store.close()

    print(f"Version: {worker.current_version}")
    print(f"Precached {len(precache_report.cached)}/{precache_report.attempted} files into {precache_report.partition}")
    for path, reason in precache_report.failed:
        print(f"  ✗ {path}: {reason}")
    for name in cleanup_report.deleted:
        print(f"Deleted stale partition {name}")
    for name, reason in cleanup_report.failed:
        print(f"  ✗ Could not delete {name}: {reason}")

    if not precache_report.cached:
        sys.exit(1)


def _cmd_verify(args: argparse.Namespace) -> None:
    """Execute the verify command - check the static partition against the manifest."""
    from .verify import verify

    config = _load_config_or_exit(args.config)
    store = _open_store_or_exit(config.store.path)

    try:
        result = verify(config, store)
    finally:
        store.close()

    print(f"Manifest version: {result.version}")
    if not result.partition_exists:
        print(f"✗ Static partition not found: {result.partition}")
        sys.exit(1)

    print(f"Static partition: {result.partition} ({result.entries} entries)")
    if result.missing:
        print(f"✗ Missing required files: {', '.join(result.missing)}")
    else:
        print("✓ Required files cached")

    if result.entries >= result.expected:
        print(f"✓ Partition holds >= manifest count ({result.entries} >= {result.expected})")
    else:
        print(f"✗ Partition entries < manifest count ({result.entries} < {result.expected})")

    if not result.ok:
        sys.exit(1)


def _cmd_clean(args: argparse.Namespace) -> None:
    """Execute the clean command - delete stale (or all) cache partitions."""
    from .generations import GenerationManager
    from .manifest import ManifestLoader
    from .models import PartitionNames
    from .network import Fetcher
    from .store import StoreError

    config = _load_config_or_exit(args.config)
    store = _open_store_or_exit(config.store.path)
    generations = GenerationManager(config.cache.prefix, config.cache.seed_version, config.cache.fallback_files)

    try:
        if args.all:
            # No partition is current, so every owned partition is stale.
            current = PartitionNames(static="", dynamic="")
        else:
            fetcher = Fetcher(timeout=config.network.timeout, user_agent=config.network.user_agent)
            manifest = ManifestLoader(fetcher, config.origin, config.cache.manifest_path).load(
                generations.resume(store)
            )
            current = generations.derive(manifest).names
            print(f"Keeping {current.static} and {current.dynamic}")

        report = generations.delete_stale(store, current)
    except StoreError as e:
        print(f"Error: Store error - {e}")
        sys.exit(1)
    finally:
        store.close()

    print(f"Deleted {len(report.deleted)} partition(s).")
    for name, reason in report.failed:
        print(f"  ✗ Could not delete {name}: {reason}")

    if report.failed:
        sys.exit(1)


def main() -> None:
    """Main entry point for the offlinecache package."""
    parser = argparse.ArgumentParser(
        description="OfflineCache - Offline-first resource cache for a single web origin"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"offlinecache {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    # Run subcommand (default behavior)
    run_parser = subparsers.add_parser(
        "run",
        help="Deploy the current generation and start the caching proxy (default)",
    )
    run_parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    run_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    run_parser.set_defaults(func=_cmd_run)

    # Deploy subcommand
    deploy_parser = subparsers.add_parser(
        "deploy",
        help="Install and activate the manifest's generation, then exit",
    )
    deploy_parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    deploy_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    deploy_parser.set_defaults(func=_cmd_deploy)

    # Verify subcommand
    verify_parser = subparsers.add_parser(
        "verify",
        help="Check the static partition against the manifest",
    )
    verify_parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    verify_parser.set_defaults(func=_cmd_verify)

    # Clean subcommand
    clean_parser = subparsers.add_parser(
        "clean",
        help="Delete cache partitions of stale generations",
    )
    clean_parser.add_argument(
        "-c", "--config",
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)",
    )
    clean_parser.add_argument(
        "--all",
        action="store_true",
        help="Delete every partition owned by the cache prefix, including the current ones",
    )
    clean_parser.set_defaults(func=_cmd_clean)

    args = parser.parse_args()

    # Default to 'run' if no command specified
    if args.command is None:
        args.config = "config.yaml"
        args.verbose = False
        args.func = _cmd_run

    args.func(args)
