"""Device configuration.

Accepts either a ``devices`` list or the older single-device form with
``ip`` / ``port`` / ``name`` at the top level.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import voluptuous as vol

from .const import (
    CONF_COMMAND_DELAY,
    CONF_COMMAND_TIMEOUT,
    CONF_COOLDOWN,
    CONF_DEVICES,
    CONF_DROP_DELAY,
    CONF_IP,
    CONF_LOCK_TIMEOUT,
    CONF_MAX_ATTEMPTS,
    CONF_MAX_RECONNECT_DELAY,
    CONF_NAME,
    CONF_PORT,
    CONF_RECONNECT_DELAY,
    CONF_STALE_TIMEOUT,
    DEFAULT_COMMAND_DELAY,
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_COOLDOWN,
    DEFAULT_DROP_DELAY,
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_RECONNECT_DELAY,
    DEFAULT_NAME,
    DEFAULT_PORT,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_STALE_TIMEOUT,
)

_LOGGER = logging.getLogger(__name__)

_SECONDS = vol.All(vol.Coerce(float), vol.Range(min=0))
_POSITIVE_SECONDS = vol.All(vol.Coerce(float), vol.Range(min=0, min_included=False))

DEVICE_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_IP): vol.All(str, vol.Length(min=1)),
        vol.Optional(CONF_PORT, default=DEFAULT_PORT): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=65535)
        ),
        vol.Optional(CONF_NAME, default=DEFAULT_NAME): str,
        vol.Optional(CONF_COMMAND_DELAY, default=DEFAULT_COMMAND_DELAY): _SECONDS,
        vol.Optional(CONF_COMMAND_TIMEOUT, default=DEFAULT_COMMAND_TIMEOUT): _POSITIVE_SECONDS,
        vol.Optional(CONF_LOCK_TIMEOUT, default=DEFAULT_LOCK_TIMEOUT): _POSITIVE_SECONDS,
        vol.Optional(CONF_RECONNECT_DELAY, default=DEFAULT_RECONNECT_DELAY): _SECONDS,
        vol.Optional(CONF_MAX_RECONNECT_DELAY, default=DEFAULT_MAX_RECONNECT_DELAY): _SECONDS,
        vol.Optional(CONF_MAX_ATTEMPTS, default=DEFAULT_MAX_ATTEMPTS): vol.All(
            vol.Coerce(int), vol.Range(min=1)
        ),
        vol.Optional(CONF_COOLDOWN, default=DEFAULT_COOLDOWN): _SECONDS,
        vol.Optional(CONF_DROP_DELAY, default=DEFAULT_DROP_DELAY): _SECONDS,
        # 0 disables the silent-stream watchdog
        vol.Optional(CONF_STALE_TIMEOUT, default=DEFAULT_STALE_TIMEOUT): _SECONDS,
    },
    extra=vol.REMOVE_EXTRA,
)

PLATFORM_SCHEMA = vol.Schema(
    {vol.Optional(CONF_DEVICES): [DEVICE_SCHEMA]},
    extra=vol.ALLOW_EXTRA,
)


@dataclass(frozen=True)
class DeviceConfig:
    """Validated settings for one purifier."""

    host: str
    port: int = DEFAULT_PORT
    name: str = DEFAULT_NAME
    command_delay: float = DEFAULT_COMMAND_DELAY
    command_timeout: float = DEFAULT_COMMAND_TIMEOUT
    lock_timeout: float = DEFAULT_LOCK_TIMEOUT
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY
    max_reconnect_delay: float = DEFAULT_MAX_RECONNECT_DELAY
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    cooldown: float = DEFAULT_COOLDOWN
    drop_delay: float = DEFAULT_DROP_DELAY
    stale_timeout: float = DEFAULT_STALE_TIMEOUT

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> DeviceConfig:
        """Validate *data* against :data:`DEVICE_SCHEMA` and build a config."""
        valid = DEVICE_SCHEMA(dict(data))
        return cls(
            host=valid[CONF_IP],
            port=valid[CONF_PORT],
            name=valid[CONF_NAME],
            command_delay=valid[CONF_COMMAND_DELAY],
            command_timeout=valid[CONF_COMMAND_TIMEOUT],
            lock_timeout=valid[CONF_LOCK_TIMEOUT],
            reconnect_delay=valid[CONF_RECONNECT_DELAY],
            max_reconnect_delay=valid[CONF_MAX_RECONNECT_DELAY],
            max_attempts=valid[CONF_MAX_ATTEMPTS],
            cooldown=valid[CONF_COOLDOWN],
            drop_delay=valid[CONF_DROP_DELAY],
            stale_timeout=valid[CONF_STALE_TIMEOUT],
        )


def load_devices(config: Mapping[str, Any]) -> list[DeviceConfig]:
    """Return every configured device.  Raises ``vol.Invalid`` on bad input."""
    valid = PLATFORM_SCHEMA(dict(config))

    if valid.get(CONF_DEVICES):
        return [DeviceConfig.from_dict(device) for device in valid[CONF_DEVICES]]

    if valid.get(CONF_IP) and valid.get(CONF_PORT):
        return [DeviceConfig.from_dict(valid)]

    _LOGGER.warning("No devices specified in the configuration")
    return []
