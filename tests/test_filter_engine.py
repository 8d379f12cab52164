from __future__ import annotations

import re

import pytest

from core.filter_engine import (
    DEFAULT_SETTINGS,
    PRESET_RULES,
    ContentRule,
    FilterSettings,
    Mode,
    admit,
    build_rules,
    compile_rule,
    rejection_reason,
)
from core.models import Message


def _message(
    *,
    channel_id: str = "g1",
    message_id: int = 1,
    sender_id: "str | None" = "u9",
    text: "str | None" = "help",
) -> Message:
    return Message(channel_id=channel_id, id=message_id, timestamp=100, sender_id=sender_id, text=text)


def _settings(**overrides) -> FilterSettings:
    values = {"monitored_channel_ids": ("g1",)}
    values.update(overrides)
    return FilterSettings(**values)


def test_admits_message_from_monitored_channel() -> None:
    assert admit(_message(), _settings())


def test_rejects_unmonitored_channel() -> None:
    message = _message(channel_id="g2")
    assert not admit(message, _settings())
    assert rejection_reason(message, _settings()) == "channel not monitored"


def test_rejects_blocked_sender() -> None:
    settings = _settings(blocked_sender_ids=("u9",))
    assert not admit(_message(), settings)
    assert rejection_reason(_message(), settings) == "sender blocked"


def test_absent_sender_is_never_blocked() -> None:
    settings = _settings(blocked_sender_ids=("u9",))
    assert admit(_message(sender_id=None), settings)


def test_rejects_text_matching_any_rule() -> None:
    settings = _settings(content_rules=tuple(build_rules([{"pattern": "^/\\w+"}, {"pattern": "spam", "flags": "i"}])))
    assert not admit(_message(text="/start"), settings)
    assert not admit(_message(text="Buy SPAM now"), settings)
    assert rejection_reason(_message(text="/start"), settings) == "content rule: ^/\\w+"
    assert admit(_message(text="please help"), settings)


def test_missing_text_never_triggers_content_rule() -> None:
    settings = _settings(content_rules=(compile_rule(".*"),))
    assert admit(_message(text=None), settings)


def test_case_sensitivity_follows_flags() -> None:
    sensitive = _settings(content_rules=(compile_rule("spam"),))
    insensitive = _settings(content_rules=(compile_rule("spam", "i"),))
    assert admit(_message(text="SPAM"), sensitive)
    assert not admit(_message(text="SPAM"), insensitive)


def test_broken_rule_is_skipped_and_others_still_apply() -> None:
    settings = _settings(
        content_rules=(
            ContentRule(pattern="(", flags="", compiled=None),
            compile_rule("spam"),
        )
    )
    assert admit(_message(text="hello"), settings)
    assert not admit(_message(text="spam"), settings)


def test_rule_raising_at_runtime_is_treated_as_non_matching() -> None:
    class ExplodingPattern:
        pattern = "boom"

        def search(self, text: str):
            raise RuntimeError("engine failure")

    settings = _settings(content_rules=(ContentRule(pattern="boom", flags="", compiled=ExplodingPattern()),))
    assert admit(_message(text="boom"), settings)


def test_compile_rule_rejects_invalid_pattern_and_flags() -> None:
    with pytest.raises(re.error):
        compile_rule("(unclosed")
    with pytest.raises(re.error):
        compile_rule("ok", "q")


def test_compile_rule_accepts_javascript_only_flags() -> None:
    rule = compile_rule("a.b", "gus")
    assert rule.compiled is not None
    assert rule.compiled.search("a\nb")


def test_settings_deduplicate_ids_keeping_order() -> None:
    settings = FilterSettings(monitored_channel_ids=("b", "a", "b"), blocked_sender_ids=("x", "x"), mode="assist")
    assert settings.monitored_channel_ids == ("b", "a")
    assert settings.blocked_sender_ids == ("x",)
    assert settings.mode is Mode.ASSIST


def test_default_settings_monitor_nothing_in_full_mode() -> None:
    assert DEFAULT_SETTINGS == FilterSettings()
    assert DEFAULT_SETTINGS.mode is Mode.FULL
    assert rejection_reason(_message(), DEFAULT_SETTINGS) == "channel not monitored"


def test_preset_rules_compile() -> None:
    for pattern, _description in PRESET_RULES:
        assert compile_rule(pattern).compiled is not None
