"""Main entry point module.

Handles CLI arguments, startup validation, the poller thread lifecycle,
signal handling, and clean shutdown.
"""

import argparse
import logging
import os
import signal
import sys
import threading
from typing import Any

import codec as codec_module
import config as config_module
import logs_client
import offset_store
import poller
import resolver
import sink as sink_module


logger = logging.getLogger(__name__)

RESTART_DELAY_SECONDS = 30
SHUTDOWN_TIMEOUT_SECONDS = 10


def setup_logging(level: int = logging.INFO) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level (default: INFO)
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def run_with_restart(
    target_func: Any, shutdown_event: threading.Event, thread_name: str, *args: Any
) -> None:
    """Run a function with automatic restart on exception.

    Catches any unhandled exception, logs it, waits RESTART_DELAY_SECONDS
    (checking shutdown_event during wait), then restarts the function.

    Args:
        target_func: The function to run
        shutdown_event: Event to signal shutdown
        thread_name: Name of the thread for logging
        *args: Arguments to pass to the function
    """
    while not shutdown_event.is_set():
        try:
            target_func(*args)
        except Exception:
            logger.exception(
                f"Unhandled exception in {thread_name}, waiting to restart..."
            )

            if shutdown_event.wait(timeout=RESTART_DELAY_SECONDS):
                break

            logger.info(f"Restarting {thread_name}...")


def build_poller(
    cfg: config_module.Config, client: Any, sink: Any, shutdown_event: threading.Event
) -> poller.Poller:
    """Wire a Poller from configuration and an upstream client.

    In stream mode the configured streams are validated against the log
    group first.

    Raises:
        ConfigError: If configured streams are unavailable and not ignored
    """
    input_config = cfg.input

    if input_config.stream_mode:
        units = resolver.validate_log_streams(
            client,
            input_config.log_group[0],
            input_config.log_streams,
            input_config.ignore_unavailable,
        )
        work_set = resolver.WorkSetResolver(units, client)
    else:
        work_set = resolver.WorkSetResolver(
            input_config.log_group, client, prefix=input_config.log_group_prefix
        )

    sincedb_path = input_config.sincedb_path or offset_store.default_sincedb_path(
        input_config.identifiers, input_config.data_dir
    )

    return poller.Poller(
        cfg,
        client,
        sink,
        codec_module.get_codec(input_config.codec),
        offset_store.OffsetStore(sincedb_path),
        shutdown_event,
        resolver=work_set,
    )


def main() -> int:
    """Main entry point.

    Returns:
        Exit code (0 for clean shutdown)
    """
    parser = argparse.ArgumentParser(description="CloudWatch Logs Poller")
    parser.add_argument(
        "--config", required=True, help="Path to configuration YAML file"
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    log_level = logging.DEBUG if args.debug else logging.INFO
    setup_logging(log_level)

    try:
        cfg = config_module.load_config(args.config)
        logger.info(f"Configuration loaded from {args.config}")
    except config_module.ConfigError as e:
        print(f"ERROR: Invalid configuration: {e}", file=sys.stderr)
        return 1

    # Validate sincedb directory exists
    if cfg.input.sincedb_path:
        sincedb_dir = os.path.dirname(os.path.abspath(cfg.input.sincedb_path)) or "."
        if not os.path.isdir(sincedb_dir):
            logger.error(
                f"Sincedb directory does not exist: {sincedb_dir!r} "
                f"(from input.sincedb_path: {cfg.input.sincedb_path!r})"
            )
            return 1

    shutdown_event = threading.Event()

    try:
        client = logs_client.build_logs_client(cfg)
        sink = sink_module.build_sink(cfg)
        poller_instance = build_poller(cfg, client, sink, shutdown_event)
    except config_module.ConfigError as e:
        print(f"ERROR: Invalid configuration: {e}", file=sys.stderr)
        return 1
    except logs_client.CLIENT_ERRORS as e:
        logger.error(f"Failed to initialize CloudWatch Logs client: {e}")
        return 1

    def handle_signal(signum: int, frame: Any) -> None:
        logger.info(f"Received signal {signum}, initiating shutdown...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    poller_thread = threading.Thread(
        target=run_with_restart,
        args=(poller_instance.run, shutdown_event, "poller"),
        name="poller",
        daemon=True,
    )
    poller_thread.start()
    logger.info(f"Started {poller_thread.name} thread")

    # Main thread heartbeat
    try:
        while not shutdown_event.wait(timeout=30):
            logger.debug(
                f"Heartbeat: poller={poller_instance.state.value}, "
                f"tracked_units={len(poller_instance.cursors)}"
            )
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received")
        shutdown_event.set()

    logger.info("Shutting down poller...")

    poller_thread.join(timeout=SHUTDOWN_TIMEOUT_SECONDS)
    if poller_thread.is_alive():
        logger.warning(f"Thread {poller_thread.name} did not stop within timeout")

    sink.close()
    logger.info("Shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
