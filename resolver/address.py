"""
Routing Core — Address Deriver

Turns a logical (channel, port) pair from a dispatch fact into the concrete
loopback endpoint a service listens on. Three listeners share one scheme:

  event listener  10000 + n*1000 + port
  rule listener   20000 + n*1000 + port
  sync listener   30000 + n*100  + port % 100

where n is the channel number: the last dot-separated component of the
channel ("224.0.1.3" → 3), or N for the "ipN" channel id form, or 1 when
neither parses.

Usage:
    from resolver.address import derive_address

    endpoint = derive_address("224.0.1.3", "1025")   # Endpoint("127.0.0.1", 14025)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import NamedTuple

from resolver.errors import AddressError

logger = logging.getLogger("routing_core.address")

LOOPBACK = "127.0.0.1"
DEFAULT_CHANNEL_NUMBER = 1


class Endpoint(NamedTuple):
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class PortScheme:
    host: str = LOOPBACK
    base_port: int = 10000
    channel_multiplier: int = 1000
    rule_base_port: int = 20000
    sync_base_port: int = 30000
    sync_channel_multiplier: int = 100

    @classmethod
    def from_config(cls, config) -> PortScheme:
        """Build from the `address` section of a ConfigLoader."""
        section = config.get("address", {}) or {}
        known = {k: section[k] for k in cls.__dataclass_fields__ if k in section}
        for key, value in known.items():
            if key != "host":
                known[key] = int(value)
        return cls(**known)


DEFAULT_SCHEME = PortScheme()


def channel_number(channel: str | None) -> int:
    """Channel index used as the port multiplier."""
    if not channel:
        return DEFAULT_CHANNEL_NUMBER
    text = channel.strip()
    if text.startswith("ip") and text[2:].isdigit():
        return int(text[2:])
    last = text.rsplit(".", 1)[-1]
    try:
        return int(last)
    except ValueError:
        logger.debug("Channel %r has no numeric suffix, using %d", channel, DEFAULT_CHANNEL_NUMBER)
        return DEFAULT_CHANNEL_NUMBER


def _port(channel: str, port: str | int) -> int:
    try:
        return int(str(port).strip())
    except ValueError:
        raise AddressError(channel, str(port)) from None


def derive_address(channel: str, port: str | int, scheme: PortScheme = DEFAULT_SCHEME) -> Endpoint:
    """Event listener endpoint for a dispatch fact's (address, port)."""
    n = channel_number(channel)
    return Endpoint(scheme.host, scheme.base_port + n * scheme.channel_multiplier + _port(channel, port))


def derive_rule_address(channel: str, port: str | int, scheme: PortScheme = DEFAULT_SCHEME) -> Endpoint:
    """Rule deployment listener endpoint."""
    n = channel_number(channel)
    return Endpoint(scheme.host, scheme.rule_base_port + n * scheme.channel_multiplier + _port(channel, port))


def derive_sync_address(channel: str, port: str | int, scheme: PortScheme = DEFAULT_SCHEME) -> Endpoint:
    """Deployment synchronization listener endpoint."""
    n = channel_number(channel)
    return Endpoint(
        scheme.host,
        scheme.sync_base_port + n * scheme.sync_channel_multiplier + _port(channel, port) % 100,
    )
