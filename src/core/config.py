"""Core configuration dataclasses.

We keep config parsing outside the core (see settings.py), but these
dataclasses define the shape the core expects so adapters and the app layer
can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import tzinfo
from typing import Optional, Tuple


@dataclass(frozen=True)
class ChannelConfig:
    """Forwarding settings for one outbound channel."""

    name: str
    forward_enabled: bool
    broadcast_destination: Optional[str] = None


@dataclass(frozen=True)
class EngineConfig:
    """Settings consumed by the engine facade and its components."""

    admin_numbers: Tuple[str, ...] = ()
    # None means the host's local timezone.
    timezone: Optional[tzinfo] = None
