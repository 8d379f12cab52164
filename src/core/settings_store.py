"""Filter settings persistence and validation (core domain).

Settings are persisted as one JSON document through a ``SettingsBackend``.
Schema history:

- version 1 (no ``version`` key): ``monitoredChatIds``, ``filteredUserIds``,
  ``regexFilters: [{source, flags}]``, ``mode: "oncall" | "assist"``,
  ``autoRead``.
- version 2: ``monitoredChannelIds``, ``blockedSenderIds``,
  ``contentRules: [{pattern, flags}]``, ``mode: "full" | "assist"``,
  optional ``autoMarkRead``.

Older documents are upgraded one version at a time before parsing, so there
is exactly one path from any stored shape to ``FilterSettings``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Optional

from core.filter_engine import DEFAULT_SETTINGS, ContentRule, FilterSettings, Mode, compile_rule
from core.ports import SettingsBackend

LOGGER = logging.getLogger(__name__)

SCHEMA_VERSION = 2


class SettingsValidationError(ValueError):
    """Raised when settings cannot be saved because a rule is invalid."""

    def __init__(self, pattern: str, message: str) -> None:
        super().__init__(f"Invalid content rule {pattern!r}: {message}")
        self.pattern = pattern


class CorruptSettingsError(ValueError):
    """Raised while parsing a stored document that does not fit any schema."""


def _upgrade_v1(data: dict[str, Any]) -> dict[str, Any]:
    mode = data.get("mode", "oncall")
    upgraded: dict[str, Any] = {
        "version": 2,
        "monitoredChannelIds": data.get("monitoredChatIds", []),
        "blockedSenderIds": data.get("filteredUserIds", []),
        "contentRules": [
            {"pattern": rule.get("source", ""), "flags": rule.get("flags", "")}
            for rule in _require_list(data, "regexFilters")
            if isinstance(rule, dict)
        ],
        "mode": "full" if mode == "oncall" else mode,
    }
    if "autoRead" in data:
        upgraded["autoMarkRead"] = data["autoRead"]
    return upgraded


# version -> function producing the next version's document
_UPGRADES: dict[int, Callable[[dict[str, Any]], dict[str, Any]]] = {
    1: _upgrade_v1,
}


def _require_list(data: dict[str, Any], name: str) -> list:
    value = data.get(name, [])
    if not isinstance(value, list):
        raise CorruptSettingsError(f"{name} must be a list")
    return value


def _require_str_list(data: dict[str, Any], name: str) -> list[str]:
    values = _require_list(data, name)
    if not all(isinstance(value, (str, int)) and not isinstance(value, bool) for value in values):
        raise CorruptSettingsError(f"{name} must contain strings")
    return [str(value) for value in values]


def _load_rule(raw: Any) -> ContentRule:
    if not isinstance(raw, dict) or not isinstance(raw.get("pattern"), str):
        raise CorruptSettingsError("contentRules entries need a string pattern")
    pattern = raw["pattern"]
    flags = raw.get("flags", "")
    if not isinstance(flags, str):
        raise CorruptSettingsError("contentRules flags must be a string")
    try:
        return compile_rule(pattern, flags)
    except re.error as exc:
        # Keep the rule so a later save reports it, but never evaluate it.
        LOGGER.warning("Stored content rule %r is invalid (%s); ignoring it", pattern, exc)
        return ContentRule(pattern=pattern, flags=flags, compiled=None)


def parse_settings(text: str) -> FilterSettings:
    """Parse and upgrade a stored settings document."""

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise CorruptSettingsError(f"invalid JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise CorruptSettingsError("settings root must be an object")

    version = data.get("version", 1)
    if not isinstance(version, int) or isinstance(version, bool) or not 1 <= version <= SCHEMA_VERSION:
        raise CorruptSettingsError(f"unsupported settings version: {version!r}")
    while version < SCHEMA_VERSION:
        data = _UPGRADES[version](data)
        version = data["version"]

    try:
        mode = Mode(data.get("mode", Mode.FULL.value))
    except ValueError as exc:
        raise CorruptSettingsError(f"unknown mode: {data.get('mode')!r}") from exc

    auto_mark_read = data.get("autoMarkRead")
    if auto_mark_read is not None and not isinstance(auto_mark_read, bool):
        raise CorruptSettingsError("autoMarkRead must be a boolean")

    return FilterSettings(
        monitored_channel_ids=tuple(_require_str_list(data, "monitoredChannelIds")),
        blocked_sender_ids=tuple(_require_str_list(data, "blockedSenderIds")),
        content_rules=tuple(_load_rule(raw) for raw in _require_list(data, "contentRules")),
        mode=mode,
        auto_mark_read=auto_mark_read,
    )


def serialize_settings(settings: FilterSettings) -> str:
    """Render settings as the current schema version."""

    data: dict[str, Any] = {
        "version": SCHEMA_VERSION,
        "monitoredChannelIds": list(settings.monitored_channel_ids),
        "blockedSenderIds": list(settings.blocked_sender_ids),
        "contentRules": [{"pattern": rule.pattern, "flags": rule.flags} for rule in settings.content_rules],
        "mode": settings.mode.value,
    }
    if settings.auto_mark_read is not None:
        data["autoMarkRead"] = settings.auto_mark_read
    return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


def validate_settings(settings: FilterSettings) -> FilterSettings:
    """Compile every rule, returning settings whose rules are all usable."""

    rules = []
    for rule in settings.content_rules:
        try:
            rules.append(compile_rule(rule.pattern, rule.flags))
        except re.error as exc:
            raise SettingsValidationError(rule.pattern, str(exc)) from exc
    return FilterSettings(
        monitored_channel_ids=settings.monitored_channel_ids,
        blocked_sender_ids=settings.blocked_sender_ids,
        content_rules=tuple(rules),
        mode=settings.mode,
        auto_mark_read=settings.auto_mark_read,
    )


class SettingsStore:
    """Load-once, save-explicitly holder of the active ``FilterSettings``."""

    def __init__(self, backend: SettingsBackend) -> None:
        self._backend = backend
        self._current = DEFAULT_SETTINGS

    @property
    def current(self) -> FilterSettings:
        """Last successfully loaded or saved settings (defaults otherwise)."""

        return self._current

    def load(self) -> Optional[FilterSettings]:
        """Return stored settings, or None when nothing usable was ever saved."""

        try:
            text = self._backend.read()
        except (OSError, UnicodeDecodeError) as exc:
            LOGGER.warning("Failed to read filter settings (%s); using defaults", exc)
            return None
        if text is None:
            return None
        try:
            settings = parse_settings(text)
        except CorruptSettingsError as exc:
            LOGGER.warning("Stored filter settings are corrupt (%s); using defaults", exc)
            return None
        self._current = settings
        return settings

    def save(self, settings: FilterSettings) -> FilterSettings:
        """Validate and persist settings; nothing is written if any rule is invalid."""

        validated = validate_settings(settings)
        self._backend.write(serialize_settings(validated))
        self._current = validated
        LOGGER.info(
            "Filter settings saved (channels=%s, blocked=%s, rules=%s, mode=%s)",
            len(validated.monitored_channel_ids),
            len(validated.blocked_sender_ids),
            len(validated.content_rules),
            validated.mode.value,
        )
        return validated
