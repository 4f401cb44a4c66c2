"""Application entry point for chat-organizer."""

from __future__ import annotations

import argparse
import asyncio
import functools
import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Awaitable, Callable, Iterable, Mapping, Optional

from art import tprint
from rich.console import Console
from rich.table import Table

import settings
from adapters.cloud_channel import CloudChannel
from adapters.cloud_mapper import iter_webhook_messages
from adapters.session_channel import SessionChannel
from adapters.session_mapper import GroupSelector, build_message
from adapters.sqlite_storage import SQLiteDatabase, SQLiteFilterStore, SQLiteMessageStore
from adapters.webhook_channel import WebhookChannel
from core.commands import Intent, recognize
from core.config import ChannelConfig, EngineConfig
from core.dispatcher import ForwardingRoute
from core.engine import Engine, build_engine
from core.errors import DuplicateKeyError
from core.models import Filter, Message
from core.ports import ChannelPort, FilterStorePort
from core.serialization import build_filter

NAME = "CHAT ORGANIZER"
FONT = "small"

LOGGER = logging.getLogger(__name__)


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", False):
        return []
    values = [os.getenv(name) for name in redact_cfg.get("patterns", [])]
    return sorted({value for value in values if value}, key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    formatter = _RedactingFormatter(_collect_redaction_values(config), fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/chat_organizer.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=int(file_cfg.get("max_bytes", 5 * 1024 * 1024)),
            backupCount=int(file_cfg.get("backup_count", 5)),
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _timezone():
    if not settings.TIMEZONE:
        return None
    from zoneinfo import ZoneInfo

    return ZoneInfo(settings.TIMEZONE)


def _open_stores() -> tuple[SQLiteFilterStore, SQLiteMessageStore]:
    database = SQLiteDatabase(settings.DB_PATH)
    database.init_db()
    return SQLiteFilterStore(database), SQLiteMessageStore(database)


def seed_default_filters(store: FilterStorePort, definitions: Iterable[Mapping[str, Any]]) -> list[str]:
    """Create each definition whose name is not taken yet; return created names."""

    created: list[str] = []
    for definition in definitions:
        try:
            filter_: Filter = build_filter(definition)
        except (KeyError, ValueError) as exc:
            LOGGER.error("Skipping invalid default filter %r: %s", definition.get("name"), exc)
            continue
        if store.find_by_name(filter_.name) is not None:
            continue
        try:
            store.save(filter_)
        except DuplicateKeyError:
            continue
        created.append(filter_.name)
        LOGGER.info("Created default filter: %s", filter_.name)
    return created


def _build_routes(session_channel: Optional[SessionChannel]) -> list[ForwardingRoute]:
    tz = _timezone()
    routes = [
        ForwardingRoute(
            CloudChannel(
                access_token=settings.WHATSAPP_ACCESS_TOKEN,
                phone_number_id=settings.WHATSAPP_PHONE_NUMBER_ID,
                refresh_token=settings.WHATSAPP_REFRESH_TOKEN,
                app_id=settings.WHATSAPP_APP_ID,
                app_secret=settings.WHATSAPP_APP_SECRET,
                tz=tz,
            ),
            ChannelConfig("cloud", settings.FORWARD_ENABLE_CLOUD, settings.FORWARD_CLOUD_SEPARATE_CHAT),
        ),
        ForwardingRoute(
            WebhookChannel(settings.FORWARD_WEBHOOK_URL, tz=tz),
            # The webhook URL itself is the broadcast target; the payload carries it.
            ChannelConfig("webhook", settings.FORWARD_ENABLE_WEBHOOK, settings.FORWARD_WEBHOOK_URL),
        ),
    ]
    if session_channel is not None:
        routes.append(
            ForwardingRoute(
                session_channel,
                ChannelConfig("session", settings.FORWARD_ENABLE_SESSION, settings.FORWARD_SESSION_SEPARATE_CHAT),
            )
        )
    return routes


def _build_engine(session_channel: Optional[SessionChannel] = None) -> tuple[Engine, SQLiteFilterStore]:
    filter_store, message_store = _open_stores()
    created = seed_default_filters(filter_store, settings.DEFAULT_FILTERS)
    if created:
        LOGGER.info("%s default filters created", len(created))
    config = EngineConfig(admin_numbers=tuple(settings.ADMIN_NUMBERS), timezone=_timezone())
    engine = build_engine(filter_store, message_store, _build_routes(session_channel), config)
    return engine, filter_store


async def route_message(
    engine: Engine,
    message: Message,
    reply: Callable[[str], Awaitable[Any]],
) -> None:
    """Send operator commands from direct chats to the command path.

    Only senders on the admin list reach the interpreter; any other message,
    command-like or not, is matched like every inbound message. Update
    confirmations are delivered by the interpreter itself; every other command
    result is relayed through ``reply``.
    """

    intent = recognize(message.text)
    if message.metadata.group is None and intent != Intent.UNKNOWN and engine.is_admin(message):
        result = await engine.handle_admin_command(message)
        if intent != Intent.UPDATE or not result.success:
            try:
                await reply(result.message)
            except Exception:
                LOGGER.exception("Could not relay command result")
        return

    report = await engine.process(message)
    if not report.accepted:
        LOGGER.info("Message %s not processed: %s", report.message_id, report.reason)


def _run() -> None:
    _print_banner()
    _configure_logging()
    LOGGER.info("Starting chat-organizer")

    if not settings.SESSION_ENABLED:
        raise RuntimeError("SESSION_ENABLED is off; use 'ingest' for cloud payloads")

    from telethon import events

    from client import build_client
    from get_session import authorize

    client = build_client()
    session_channel = SessionChannel(client, tz=_timezone())
    engine, filter_store = _build_engine(session_channel)
    LOGGER.info("%s filters are stored", len(filter_store.find_all()))

    client.loop.run_until_complete(client.connect())
    session_channel.mark_authorized(client.loop.run_until_complete(authorize(client)))

    selector = GroupSelector(settings.SESSION_GROUPS_ALL, settings.SESSION_GROUPS_LIST)

    # Single handler keeps Telethon integration minimal and defers all filtering
    # to the core engine for consistency and testability.
    @client.on(events.NewMessage(incoming=True))
    async def handler(event) -> None:
        try:
            message = await build_message(event.message)
            group = message.metadata.group
            if group is not None and not selector.accepts(group.name):
                return
            await route_message(engine, message, event.reply)
        except Exception:
            LOGGER.exception("Error while processing message")

    LOGGER.info("Session connected. Listening for incoming messages...")
    client.run_until_disconnected()


def _read_payload(path: str) -> dict:
    if path == "-":
        return json.load(sys.stdin)
    with open(path, "r", encoding="utf-8") as handle:
        return json.load(handle)


async def _reply_via(channel: Optional[ChannelPort], destination: str, text: str) -> None:
    if channel is not None and channel.is_available():
        await channel.send(destination, text)


async def _ingest_payload(engine: Engine, body: dict) -> int:
    cloud = engine.channel("cloud")
    count = 0
    for message in iter_webhook_messages(body):
        count += 1
        reply = functools.partial(_reply_via, cloud, message.sender.phone_number)
        await route_message(engine, message, reply)
    return count


def _ingest(path: str) -> None:
    _configure_logging()
    engine, _ = _build_engine()
    count = asyncio.run(_ingest_payload(engine, _read_payload(path)))
    LOGGER.info("Ingested %s message(s) from %s", count, path)


def _seed() -> None:
    _configure_logging()
    filter_store, _ = _open_stores()
    created = seed_default_filters(filter_store, settings.DEFAULT_FILTERS)
    print(f"Created {len(created)} filter(s): {', '.join(created) or '-'}")


def _list_filters() -> None:
    filter_store, _ = _open_stores()
    table = Table(title="Filters")
    table.add_column("name")
    table.add_column("enabled")
    table.add_column("criteria")
    table.add_column("matches", justify="right")
    table.add_column("last match")
    for filter_ in filter_store.find_all():
        criteria = []
        if filter_.authors:
            criteria.append(f"authors:{len(filter_.authors)}")
        if filter_.keywords:
            criteria.append(f"keywords({filter_.keyword_match_mode.value}):{', '.join(filter_.keywords)}")
        if filter_.message_types:
            criteria.append("types:" + ",".join(kind.value for kind in filter_.message_types))
        if filter_.time_range:
            criteria.append(f"time:{filter_.time_range.start or '*'}-{filter_.time_range.end or '*'}")
        last_match = filter_.stats.last_match
        table.add_row(
            filter_.name,
            "yes" if filter_.enabled else "no",
            "; ".join(criteria) or "(catch-all)",
            str(filter_.stats.matches),
            last_match.strftime("%Y-%m-%d %H:%M") if last_match else "-",
        )
    Console().print(table)


def _login() -> None:
    _print_banner()
    _configure_logging()

    from client import build_client
    from get_session import authorize

    client = build_client()

    async def _run_login() -> None:
        await client.connect()
        authorized = await authorize(client)
        print("Session authorized." if authorized else "Session not authorized.")
        await client.disconnect()

    client.loop.run_until_complete(_run_login())


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="chat-organizer")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Listen on the local session and process messages")
    ingest = subparsers.add_parser("ingest", help="Process a cloud webhook JSON payload")
    ingest.add_argument("path", help="Payload file, or - for stdin")
    subparsers.add_parser("seed", help="Create the DEFAULT_FILTERS that do not exist yet")
    subparsers.add_parser("filters", help="List every filter with its stats")
    subparsers.add_parser("login", help="Authorize the local session and exit")

    args = parser.parse_args(argv)
    if args.command == "ingest":
        _ingest(args.path)
        return
    if args.command == "seed":
        _seed()
        return
    if args.command == "filters":
        _list_filters()
        return
    if args.command == "login":
        _login()
        return
    _run()


if __name__ == "__main__":
    main()
