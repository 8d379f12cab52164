"""Admission filtering and content-rule compilation (core domain)."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
import logging
import re
from typing import Iterable, List, Optional, Tuple

from core.models import Message

LOGGER = logging.getLogger(__name__)

# Flag letters follow the JavaScript RegExp convention used by the stored
# settings. Letters mapped to 0 are accepted but change nothing here.
_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "g": 0,
    "u": 0,
    "y": 0,
}

# Suggestions offered when editing content rules.
PRESET_RULES: Tuple[Tuple[str, str], ...] = (
    (r"^/\w+", "bot commands"),
    (r"^@\w+", "messages starting with a mention"),
    (r"^\[系统\]", "system notices"),
    (r"bot$", "messages ending with 'bot'"),
)


class Mode(str, Enum):
    """Operating mode of a triage session."""

    FULL = "full"
    ASSIST = "assist"


@dataclass(frozen=True)
class ContentRule:
    """Compiled content rule; ``compiled`` is None when the pattern is unusable."""

    pattern: str
    flags: str
    compiled: Optional[re.Pattern]


@dataclass(frozen=True)
class FilterSettings:
    """Immutable filter configuration consulted for every inbound message."""

    monitored_channel_ids: Tuple[str, ...] = ()
    blocked_sender_ids: Tuple[str, ...] = ()
    content_rules: Tuple[ContentRule, ...] = ()
    mode: Mode = Mode.FULL
    auto_mark_read: Optional[bool] = None

    def __post_init__(self) -> None:
        # Ids behave as sets but keep their first-seen order so the persisted
        # form round-trips byte for byte.
        object.__setattr__(self, "monitored_channel_ids", _unique(self.monitored_channel_ids))
        object.__setattr__(self, "blocked_sender_ids", _unique(self.blocked_sender_ids))
        object.__setattr__(self, "content_rules", tuple(self.content_rules))
        object.__setattr__(self, "mode", Mode(self.mode))
        object.__setattr__(self, "_monitored", frozenset(self.monitored_channel_ids))
        object.__setattr__(self, "_blocked", frozenset(self.blocked_sender_ids))

    def is_monitored(self, channel_id: str) -> bool:
        return channel_id in self._monitored

    def is_blocked(self, sender_id: Optional[str]) -> bool:
        return sender_id is not None and sender_id in self._blocked


def _unique(values: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(str(value) for value in values))


DEFAULT_SETTINGS = FilterSettings()


def parse_flags(flags: str) -> int:
    """Translate a flag string into ``re`` flags, raising ``re.error`` on unknown letters."""

    value = 0
    for letter in flags:
        if letter not in _FLAG_MAP:
            raise re.error(f"unsupported flag {letter!r}")
        value |= _FLAG_MAP[letter]
    return value


def compile_rule(pattern: str, flags: str = "") -> ContentRule:
    """Compile one content rule, raising ``re.error`` when it is invalid."""

    compiled = re.compile(pattern, parse_flags(flags))
    return ContentRule(pattern=pattern, flags=flags, compiled=compiled)


def build_rules(rules_config: Iterable[dict]) -> List[ContentRule]:
    """Compile ``{"pattern", "flags"}`` records, failing on the first invalid one."""

    return [compile_rule(rule["pattern"], rule.get("flags", "")) for rule in rules_config]


def _rule_matches(rule: ContentRule, text: str) -> bool:
    if rule.compiled is None:
        return False
    try:
        return rule.compiled.search(text) is not None
    except Exception:
        LOGGER.debug("Content rule %r failed to evaluate", rule.pattern, exc_info=True)
        return False


def rejection_reason(message: Message, settings: FilterSettings) -> Optional[str]:
    """Return why a message is filtered out, or None when it is admitted.

    Checks run cheapest first:
    - the channel must be monitored
    - the sender must not be blocked
    - the text must not match any content rule (no text never matches)
    """

    if not settings.is_monitored(message.channel_id):
        return "channel not monitored"

    if settings.is_blocked(message.sender_id):
        return "sender blocked"

    if message.text is not None:
        for rule in settings.content_rules:
            if _rule_matches(rule, message.text):
                return f"content rule: {rule.pattern}"

    return None


def admit(message: Message, settings: FilterSettings) -> bool:
    """Decide whether a message needs human attention."""

    return rejection_reason(message, settings) is None
