"""Exceptions raised by the Philips air purifier client."""

from __future__ import annotations


class PhilipsAirError(Exception):
    """Base class for all client errors."""


class TransportError(PhilipsAirError):
    """The CoAP exchange failed at the network level."""


class ProtocolError(PhilipsAirError):
    """A response arrived but could not be decrypted or parsed."""


class DigestMismatchError(ProtocolError):
    """The SHA-256 trailer of an encrypted payload did not match."""


class CapabilityError(PhilipsAirError):
    """A command parameter is not supported by the device."""


class DeviceTimeoutError(PhilipsAirError):
    """No answer within the configured window."""


class SyncTimeoutError(DeviceTimeoutError):
    """The counter request did not complete in time."""


class CommandTimeoutError(DeviceTimeoutError):
    """The control request did not complete in time."""


class LockTimeoutError(DeviceTimeoutError):
    """Another command held the device lock for too long."""


class ObservationTimeoutError(DeviceTimeoutError):
    """The status observation went silent."""
