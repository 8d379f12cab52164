"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TriageConfig:
    """Runtime limits for one triage session."""

    max_messages: int = 100
    reconcile_interval_seconds: float = 10.0
    # 0 disables expiry.
    message_ttl_seconds: int = 24 * 60 * 60
