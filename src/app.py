"""Application entry point for the triagedesk watcher."""

from __future__ import annotations

import argparse
import dataclasses
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Any, Optional

from art import tprint
from dotenv import load_dotenv
from rich.console import Console
from telethon import events

import settings
from adapters.json_settings_file import JsonFileSettingsBackend
from adapters.queue_formatting import render_snapshot
from adapters.telegram_mapper import build_message
from adapters.telegram_transport import TelegramTransport
from client import authorize, build_client
from core.config import TriageConfig
from core.filter_engine import Mode
from core.session import TriageSession
from core.settings_store import SettingsStore, SettingsValidationError, serialize_settings

NAME = "TRIAGEDESK"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


# Environment values masked in every log line when "redact" is on.
SECRET_ENV_VARS = ("API_HASH", "PHONE", "2FA")


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str) -> None:
        super().__init__(fmt=fmt, datefmt="%Y-%m-%d %H:%M:%S")
        # Longest first so a secret containing another is masked whole.
        self._secrets = sorted({secret for secret in secrets if secret}, key=len, reverse=True)

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _log_handlers(config: dict) -> list[logging.Handler]:
    handlers: list[logging.Handler] = []
    if config.get("console", True):
        handlers.append(logging.StreamHandler())

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = os.path.join(settings.PROJECT_ROOT, file_cfg.get("path", "logs/triagedesk.log"))
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


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    handlers = _log_handlers(config) if config.get("enabled", False) else []
    if not handlers:
        return

    load_dotenv()
    secrets = [os.getenv(name, "") for name in SECRET_ENV_VARS] if config.get("redact", True) else []
    formatter = _RedactingFormatter(secrets, fmt="%(asctime)s %(levelname)s %(name)s: %(message)s")
    for handler in handlers:
        handler.setFormatter(formatter)

    level = getattr(logging, str(config.get("level", "INFO")).upper(), logging.INFO)
    logging.basicConfig(level=level, handlers=handlers)
    # Telethon is chatty at INFO about reconnects and updates.
    logging.getLogger("telethon").setLevel(max(level, logging.WARNING))


def _settings_store() -> SettingsStore:
    return SettingsStore(JsonFileSettingsBackend(settings.FILTER_SETTINGS_PATH))


def _triage_config() -> TriageConfig:
    return TriageConfig(
        max_messages=settings.MAX_MESSAGES,
        reconcile_interval_seconds=settings.RECONCILE_INTERVAL_SECONDS,
        message_ttl_seconds=int(settings.MESSAGE_TTL_HOURS * 3600),
    )


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)
    console = Console()

    logger.info("Starting triagedesk")

    settings_store = _settings_store()
    if settings_store.load() is None:
        logger.info("No filter settings saved at %s; using defaults", settings.FILTER_SETTINGS_PATH)
    active = settings_store.current
    logger.info(
        "Monitoring %s channel(s), %s blocked sender(s), %s content rule(s), mode=%s",
        len(active.monitored_channel_ids),
        len(active.blocked_sender_ids),
        len(active.content_rules),
        active.mode.value,
    )

    client = build_client()
    client.loop.run_until_complete(client.connect())
    client.loop.run_until_complete(authorize(client))

    transport = TelegramTransport(client)
    session = TriageSession(
        settings_store=settings_store,
        read_state=transport,
        mark_read=transport,
        reply_sender=transport,
        config=_triage_config(),
    )

    def _render() -> None:
        console.print(render_snapshot(session.snapshot(), settings.CHANNEL_ALIASES, session.replies))

    # Handlers stay thin: mapping happens in the adapter and every decision
    # is made by the session, which keeps the Telegram wiring testable.
    @client.on(events.NewMessage(incoming=True))
    async def on_incoming(event) -> None:
        try:
            if session.handle_message(build_message(event.message)):
                _render()
        except Exception:
            logger.exception("Error while processing message")

    @client.on(events.NewMessage(outgoing=True))
    async def on_outgoing(event) -> None:
        try:
            session.observe_outgoing(build_message(event.message))
        except Exception:
            logger.exception("Error while processing outgoing message")

    # Reading a chat from any client may resolve a paused channel early.
    @client.on(events.MessageRead(inbox=True))
    async def on_read(event) -> None:
        session.request_reconcile()

    client.loop.run_until_complete(session.start())
    client.start()
    logger.info("Client connected. Listening for incoming messages...")
    try:
        client.run_until_disconnected()
    finally:
        client.loop.run_until_complete(session.close())


def _dialog_type(dialog: Any) -> str:
    if getattr(dialog, "is_channel", False):
        entity = getattr(dialog, "entity", None)
        if getattr(entity, "megagroup", False):
            return "group"
        return "channel"
    if getattr(dialog, "is_group", False):
        return "group"
    return "chat"


def _dialog_title(dialog: Any) -> str:
    entity = getattr(dialog, "entity", None)
    title = getattr(entity, "title", None) or getattr(dialog, "name", None)
    if title:
        return str(title)
    return str(getattr(entity, "id", None) or "unknown")


async def _list_group_dialogs(client) -> None:
    # Channel ids printed here are the same marked ids the watcher sees, so
    # they can be copied straight into monitoredChannelIds.
    dialogs = []
    async for dialog in client.iter_dialogs():
        if dialog.is_user:
            continue
        dialogs.append(dialog)

    if not dialogs:
        print("No group or channel dialogs found.")
        return

    aliases = settings.CHANNEL_ALIASES
    for index, dialog in enumerate(dialogs, start=1):
        channel_id = str(dialog.id)
        alias = f" | alias: {aliases[channel_id]}" if channel_id in aliases else ""
        print(f"{index}. {_dialog_type(dialog)} | {_dialog_title(dialog)} | {channel_id}{alias}")


def _discover() -> None:
    _print_banner()
    client = build_client()

    async def _run_discover() -> None:
        await client.connect()
        if not await client.is_user_authorized():
            print("Authorization required. Starting login...")
            await authorize(client)
        await _list_group_dialogs(client)
        await client.disconnect()

    client.loop.run_until_complete(_run_discover())


def _settings_show() -> None:
    store = _settings_store()
    loaded = store.load()
    print(serialize_settings(store.current), end="")
    if loaded is None:
        print(f"(built-in defaults; nothing saved at {settings.FILTER_SETTINGS_PATH})")


def _settings_mode(mode: str) -> None:
    store = _settings_store()
    store.load()
    try:
        saved = store.save(dataclasses.replace(store.current, mode=Mode(mode)))
    except SettingsValidationError as exc:
        raise SystemExit(f"Settings not saved: {exc}") from exc
    print(f"mode set to {saved.mode.value}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="triagedesk")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the triage watcher")
    subparsers.add_parser(
        "discover",
        help="List group and channel dialogs with the ids used for monitoring.",
    )
    settings_parser = subparsers.add_parser("settings", help="Inspect or change filter settings")
    settings_commands = settings_parser.add_subparsers(dest="settings_command")
    settings_commands.add_parser("show", help="Print the active filter settings")
    mode_parser = settings_commands.add_parser("mode", help="Switch between full and assist mode")
    mode_parser.add_argument("mode", choices=[mode.value for mode in Mode])

    args = parser.parse_args(argv)
    if args.command == "discover":
        _discover()
        return
    if args.command == "settings":
        _configure_logging()
        if args.settings_command == "mode":
            _settings_mode(args.mode)
        else:
            _settings_show()
        return
    _run()


if __name__ == "__main__":
    main()
