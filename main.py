#!/usr/bin/env python3
"""
Factorio presence bot

Polls a Factorio server over RCON and posts "<player> logged in" /
"<player> logged off" messages to a webhook.
"""

import argparse
import asyncio
import logging
import signal
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional, Sequence

from config import Config
from connection import ConnectionManager
from errors import ConfigurationError
from notifier import WebhookNotifier
from scanner import RosterScanner

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description='Relay Factorio logins and logouts to a webhook'
    )
    parser.add_argument('--addr', help='the rcon address (host:port)')
    parser.add_argument('--pass', dest='password', help='the rcon password')
    parser.add_argument('--hook', help='the hook url')
    parser.add_argument('--debug', action='store_true', default=None,
                        help='add debug info')
    parser.add_argument('--interval', type=float,
                        help='seconds between roster polls (default: 5)')
    parser.add_argument('--log-file', dest='log_file',
                        help='also write logs to this rotating file')
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace, environ=None) -> Config:
    """Environment first, command line flags win"""
    return Config.from_env(environ).merge(
        address=args.addr,
        password=args.password,
        webhook_url=args.hook,
        debug=args.debug,
        poll_interval=args.interval,
        log_file_path=args.log_file,
    )


def setup_logging(config: Config):
    handlers = [logging.StreamHandler(sys.stdout)]
    if config.log_file_path:
        file_handler = RotatingFileHandler(
            config.log_file_path,
            maxBytes=config.log_max_bytes,
            backupCount=config.log_backup_count,
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG if config.debug else logging.INFO,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # aiohttp is chatty at DEBUG
    logging.getLogger('aiohttp').setLevel(logging.WARNING)


def _install_signal_handlers(terminate: asyncio.Event):
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, terminate.set)
        except NotImplementedError:
            # Windows event loops have no add_signal_handler
            signal.signal(sig, lambda *_: loop.call_soon_threadsafe(terminate.set))


async def serve(config: Config, terminate: Optional[asyncio.Event] = None) -> bool:
    """
    Run the scan loop until ``terminate`` is set (SIGINT/SIGTERM by default)

    Shutdown handshake: set ``stop``, wait for the loop to set ``done``,
    close the RCON session, then the webhook HTTP session. Returns False
    when the scan loop ended on its own instead of being asked to stop.
    """
    if terminate is None:
        terminate = asyncio.Event()
        _install_signal_handlers(terminate)

    connection = ConnectionManager(
        config.address, config.password, timeout=config.rcon_timeout
    )
    stop = asyncio.Event()
    done = asyncio.Event()
    clean = True

    async with WebhookNotifier(config.webhook_url, timeout=config.webhook_timeout) as notifier:
        scanner = RosterScanner(connection, notifier, interval=config.poll_interval)
        scan_task = asyncio.create_task(scanner.run(stop, done))
        logger.info(f"🚀 Watching {config.address} every {config.poll_interval}s")

        terminate_wait = asyncio.create_task(terminate.wait())
        await asyncio.wait({terminate_wait, scan_task}, return_when=asyncio.FIRST_COMPLETED)
        terminate_wait.cancel()

        if scan_task.done() and not terminate.is_set():
            clean = False
            logger.error("✗ Scan loop stopped unexpectedly, shutting down")
        else:
            logger.info("🛑 Shutdown requested, waiting for the scan loop to finish...")
        stop.set()
        await done.wait()

        try:
            await scan_task
        except Exception as e:
            clean = False
            logger.error(f"✗ Scan loop crashed: {e}", exc_info=True)

        try:
            await connection.disconnect()
        except Exception as e:
            logger.error(f"✗ Error closing RCON session to {config.address}: {e}")

    logger.info(
        f"👋 Stopped after {scanner.stats['cycles']} cycles "
        f"({scanner.stats['delivered']} notifications sent)"
    )
    return clean


def run_bot(config: Config) -> bool:
    """Blocking entry point; returns once shutdown has completed"""
    return asyncio.run(serve(config))


def main(argv: Optional[Sequence[str]] = None) -> int:
    config = build_config(parse_args(argv))
    setup_logging(config)

    try:
        config.ensure_valid()
    except ConfigurationError as e:
        for issue in e.issues:
            logger.error(f"❌ {issue}")
        return 2

    logger.info(config.display())
    return 0 if run_bot(config) else 1


if __name__ == '__main__':
    sys.exit(main())
