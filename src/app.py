"""Application entry point for the tg-forward bridge."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Iterable, Optional

from art import tprint
from telethon import events

import settings
from adapters.json_rules_repository import JsonRulesRepository
from adapters.memory_rules_repository import MemoryRulesRepository
from adapters.mongo_rules_repository import MongoRulesRepository
from adapters.sqlite_rules_repository import SQLiteRulesRepository
from adapters.telegram_bot_forwarder import TelegramBotForwarder
from adapters.telegram_client_forwarder import TelegramClientForwarder
from adapters.telegram_mapper import build_event
from client import build_client
from core.config import RepositoryConfig
from core.ports import RuleRepository
from core.processor import MessageProcessor
from core.rules_service import RuleService
from get_session import authorize, print_session_string

NAME = "TG-FORWARD"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


# Environment variables whose values are always masked in log output.
SECRET_ENV_VARS = ("API_HASH", "API_TOKEN", "BOT_API", "MONGODB_URI", "SESSION_STRING", "2FA")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class _RedactingFormatter(logging.Formatter):
    """Masks secret values anywhere in a formatted record, tracebacks included."""

    def __init__(self, secrets: Iterable[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        # Longest first, so a secret that contains another is masked whole.
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _secret_values(redact_cfg: dict) -> list[str]:
    """Values of SECRET_ENV_VARS plus the variables listed in ``redact.extra``."""

    if not redact_cfg.get("enabled", True):
        return []
    names = set(SECRET_ENV_VARS) | set(redact_cfg.get("extra", []))
    return [os.environ[name] for name in sorted(names) if os.getenv(name)]


def _log_handlers(config: dict) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/tgforward.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                path,
                maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
                backupCount=int(file_cfg.get("backup_count", 5)),
                encoding="utf-8",
            )
        )
    return handlers


def _configure_logging(config: dict) -> None:
    """Route every subcommand's logs through the redacting handlers."""

    if not config.get("enabled", False):
        return

    level = getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)
    formatter = _RedactingFormatter(
        _secret_values(config.get("redact", {})), fmt=LOG_FORMAT, datefmt=LOG_DATEFMT
    )
    handlers = _log_handlers(config)
    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    if handlers:
        logging.basicConfig(level=level, handlers=handlers)


def _build_repository(config: RepositoryConfig) -> RuleRepository:
    if config.backend == "json":
        return JsonRulesRepository(config.path)
    if config.backend == "sqlite":
        repository = SQLiteRulesRepository(config.path)
        repository.init_db()
        return repository
    if config.backend == "mongo":
        if not config.uri:
            raise RuntimeError("rules.uri or MONGODB_URI is required when rules.backend=mongo")
        repository = MongoRulesRepository.connect(config.uri, config.database, config.collection)
        repository.init_db()
        return repository
    if config.backend == "memory":
        return MemoryRulesRepository()
    raise RuntimeError("rules.backend must be 'json', 'sqlite', 'mongo' or 'memory'")


def _run() -> None:
    _print_banner()
    logger = logging.getLogger(__name__)

    logger.info("Starting tg-forward")

    # Fail fast on configuration gaps before touching Telegram.
    try:
        target = settings.FORWARD.target
    except ValueError as exc:
        raise RuntimeError(f"forward: {exc}") from exc
    if settings.FORWARD.method == "bot" and not settings.BOT_TOKEN:
        raise RuntimeError("BOT_API is required when forward.method=bot")
    if settings.FORWARD.method not in {"bot", "client"}:
        raise RuntimeError("forward.method must be 'bot' or 'client'")
    if settings.API.enabled and not settings.API.token:
        raise RuntimeError("API_TOKEN is required when the rules API is enabled")

    repository = _build_repository(settings.REPOSITORY)
    service = RuleService(repository, settings.MATCHER)
    logger.info("%s rules are loaded from %s storage", len(service.get_current_matcher()), settings.REPOSITORY.backend)

    client = build_client(settings.SESSION_STRING)
    client.loop.run_until_complete(client.connect())
    logged_in_now = client.loop.run_until_complete(authorize(client))
    if logged_in_now and not settings.SESSION_STRING:
        print_session_string(client)

    ignored_sender_ids: set[int] = set()
    if settings.FORWARD.method == "bot":
        forwarder = TelegramBotForwarder(bot_token=settings.BOT_TOKEN, target=target)
        # The bot's own posts must never be matched and forwarded again.
        ignored_sender_ids.add(forwarder.get_bot_id())
    else:
        chat_target = settings.FORWARD.target_chat_id or target
        forwarder = TelegramClientForwarder(client, chat_target)
    logger.info("Selected forward method - %s (target %s)", settings.FORWARD.method, target)

    processor = MessageProcessor(service, forwarder, ignored_sender_ids=ignored_sender_ids)
    queue: asyncio.Queue = asyncio.Queue()

    # The handler only enqueues; matching happens in one consumer task so
    # messages are processed in arrival order.
    @client.on(events.NewMessage(incoming=True))
    async def handler(event) -> None:
        queue.put_nowait(build_event(event.message))

    consumer = client.loop.create_task(processor.run(queue))

    api_server = None
    if settings.API.enabled:
        from api.server import ApiServer, create_app

        api_server = ApiServer(
            create_app(service, settings.API.token),
            host=settings.API.host,
            port=settings.API.port,
        )
        api_server.start()

    logger.info("Client connected. Listening for incoming messages...")
    try:
        client.run_until_disconnected()
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")
    finally:
        if api_server is not None:
            api_server.stop()
        queue.put_nowait(None)
        if not client.loop.is_closed():
            client.loop.run_until_complete(consumer)
            client.loop.run_until_complete(client.disconnect())
        logger.info("Shutdown complete")


def _session() -> None:
    _print_banner()
    client = build_client()

    async def _run_session() -> None:
        await client.connect()
        await authorize(client)
        me = await client.get_me()
        logging.getLogger(__name__).info("Exporting session for %s (ID: %s)", me.first_name, me.id)
        print_session_string(client)
        await client.disconnect()

    client.loop.run_until_complete(_run_session())


def _match(text: str) -> None:
    repository = _build_repository(settings.REPOSITORY)
    matcher = RuleService(repository, settings.MATCHER).get_current_matcher()
    logging.getLogger(__name__).info(
        "Checking text against %s rules from %s storage", len(matcher), settings.REPOSITORY.backend
    )
    labels = matcher.find_matches(text)
    print(f"normalized: {matcher.normalize(text)!r}")
    if not labels:
        print("no rule matched")
        return
    for label in labels:
        print(f"matched: {label}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="tgforward")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the listener and the rules API")
    subparsers.add_parser("session", help="Log in and print a portable session string")
    match_parser = subparsers.add_parser("match", help="Check text against the stored rules")
    match_parser.add_argument("text")

    args = parser.parse_args(argv)
    _configure_logging(settings.LOGGING or {})
    if args.command == "session":
        _session()
        return
    if args.command == "match":
        _match(args.text)
        return
    _run()


if __name__ == "__main__":
    main()
