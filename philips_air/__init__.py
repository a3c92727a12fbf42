"""Philips air purifier control over encrypted CoAP."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from .capabilities import AirQuality, DeviceIdentity, FanModel, ModelConfig
from .client import PhilipsAirClient
from .config import DeviceConfig, load_devices
from .const import DOMAIN
from .coordinator import ConnectionState, PhilipsAirCoordinator
from .exceptions import (
    CapabilityError,
    CommandTimeoutError,
    DeviceTimeoutError,
    DigestMismatchError,
    LockTimeoutError,
    ObservationTimeoutError,
    PhilipsAirError,
    ProtocolError,
    SyncTimeoutError,
    TransportError,
)
from .protocol.commands import CommandResult, Outcome
from .protocol.status import Mode, PowerStatus, State

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "DOMAIN",
    "AirQuality",
    "CapabilityError",
    "CommandResult",
    "CommandTimeoutError",
    "ConnectionState",
    "DeviceConfig",
    "DeviceIdentity",
    "DeviceTimeoutError",
    "DigestMismatchError",
    "FanModel",
    "LockTimeoutError",
    "Mode",
    "ModelConfig",
    "ObservationTimeoutError",
    "Outcome",
    "PhilipsAirClient",
    "PhilipsAirCoordinator",
    "PhilipsAirError",
    "PowerStatus",
    "ProtocolError",
    "State",
    "SyncTimeoutError",
    "TransportError",
    "async_setup",
]


async def async_setup(config: Mapping[str, Any]) -> list[PhilipsAirCoordinator]:
    """Create a coordinator per configured purifier and start observing.

    Connecting happens in the background, so this returns before any
    device has answered.
    """
    coordinators = []
    for device in load_devices(config):
        coordinator = PhilipsAirCoordinator(device)
        _LOGGER.info("Setting up %s at %s", device.name, coordinator.address)
        coordinator.observe()
        coordinators.append(coordinator)
    return coordinators
