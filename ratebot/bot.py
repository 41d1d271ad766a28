"""Currency conversion bot entry point."""

from __future__ import annotations

import argparse
import logging
import os
import signal
import time
from dataclasses import replace
from pathlib import Path

from ratebot.config import BotConfig, ensure_directories, load_config, read_secret
from ratebot.conversion.worker import ConversionWorker
from ratebot.errors import ConfigError
from ratebot.health.server import HealthServer
from ratebot.logsetup import configure_logging
from ratebot.messaging.router import CommandRouter
from ratebot.rates.source import HttpRateSource
from ratebot.rates.store import RateStore
from ratebot.session.heartbeat import HeartbeatLoop
from ratebot.session.manager import SessionManager
from ratebot.transport.base import Transport
from ratebot.transport.roster import ContactRoster
from ratebot.transport.telegram import TelegramTransport

VERSION = "0.2.0"
TOKEN_FILENAME = "bot_token.txt"
DRAIN_TIMEOUT_SECONDS = 60

logger = logging.getLogger("ratebot.bot")


class RateBot:
    """Wire the components together and own their start/stop order."""

    def __init__(self, config: BotConfig, transport: Transport, credentials: str, store: RateStore) -> None:
        self.store = store
        self.worker = ConversionWorker(store, capacity=config.queue_capacity)
        self.router = CommandRouter(
            transport,
            self.worker,
            store.currencies(),
            amount_limit=config.amount_limit,
            relay_bridges=config.relay_bridges,
            relay_confirmation=config.relay_confirmation,
        )
        self.session = SessionManager(transport, credentials, self.router.handle)
        self.heartbeat = HeartbeatLoop(self.session, interval_seconds=config.heartbeat_seconds)

    def start(self) -> bool:
        started = self.session.start()
        if not started:
            logger.error("session did not come up; send SIGHUP to retry")
        self.heartbeat.start()
        return started

    def reload(self) -> None:
        self.session.restart("re-initialize requested")

    def shutdown(self) -> None:
        self.heartbeat.stop()
        logger.info("shutdown heartbeat")
        if not self.worker.shutdown(timeout=DRAIN_TIMEOUT_SECONDS):
            logger.warning("conversion queue still had %s jobs after %ss", self.worker.pending(), DRAIN_TIMEOUT_SECONDS)
        logger.info("shutdown currency converter")
        self.session.shutdown()
        logger.info("shutdown receiver")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the currency conversion chat bot")
    parser.add_argument("--config", required=True, help="Path to the bot YAML config")
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = load_config(Path(args.config))
    except ConfigError as exc:
        print(f"ratebot: {exc}")
        return 2
    if args.debug and not config.debug:
        config = replace(config, debug=True)
    ensure_directories(config)
    configure_logging(config)
    logger.info("ratebot version %s (PID:%s)", VERSION, os.getpid())

    token = read_secret(config.paths.secrets_dir, TOKEN_FILENAME)
    if token is None:
        logger.error("missing bot token: %s", config.paths.secrets_dir / TOKEN_FILENAME)
        return 1

    roster = ContactRoster(config.paths.contacts_path)
    store = RateStore(
        HttpRateSource(config.rates_url),
        config.currencies,
        staleness_seconds=config.staleness_seconds,
    )
    bot = RateBot(config, TelegramTransport(roster), token, store)

    health_server: HealthServer | None = None
    if config.health_port:
        health_server = HealthServer(
            host="127.0.0.1",
            port=config.health_port,
            bot_name=config.name,
            version=VERSION,
            session=bot.session,
            worker=bot.worker,
            store=store,
            contacts_provider=lambda: len(roster),
        )
        health_server.start()

    running = True

    def handle_shutdown(*_: object) -> None:
        nonlocal running
        running = False

    def handle_reload(*_: object) -> None:
        bot.reload()

    signal.signal(signal.SIGINT, handle_shutdown)
    signal.signal(signal.SIGTERM, handle_shutdown)
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, handle_reload)

    bot.start()
    try:
        while running:
            time.sleep(1)
    finally:
        bot.shutdown()
        if health_server is not None:
            health_server.stop()
        logger.info("shutdown ratebot (PID:%s)", os.getpid())

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
