"""CoAP client for Philips air purifiers.

Every state-changing command is a two-step exchange:
  1. POST a random nonce to ``/sys/dev/sync`` → single-use counter
  2. derive the client key from the counter, encrypt the desired-state
     envelope with it and POST it to ``/sys/dev/control``

The counter is shared state on the device, so the whole exchange runs
under a per-device lock; two interleaved exchanges would invalidate each
other's keys.  Status arrives as a CoAP observation of ``/sys/dev/status``.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import weakref
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

from aiocoap import GET, POST, Context, Message
from aiocoap.error import Error as CoapError

from .const import (
    CONTROL_PATH,
    DEFAULT_COMMAND_DELAY,
    DEFAULT_COMMAND_TIMEOUT,
    DEFAULT_LOCK_TIMEOUT,
    DEFAULT_PORT,
    DEFAULT_STALE_TIMEOUT,
    STATUS_PATH,
    SYNC_NONCE_BYTES,
    SYNC_PATH,
)
from .exceptions import (
    CommandTimeoutError,
    LockTimeoutError,
    ObservationTimeoutError,
    ProtocolError,
    SyncTimeoutError,
    TransportError,
)
from .protocol.commands import (
    CommandResult,
    ParamSet,
    parse_command_result,
    serialize_envelope,
)
from .protocol.encryption import EncryptionContext
from .protocol.status import RawReport, extract_report

if TYPE_CHECKING:
    from .config import DeviceConfig

_LOGGER = logging.getLogger(__name__)

_COUNTER = re.compile(r"^[0-9A-Fa-f]{8}$")


class _DeviceChannel:
    """Command state shared by every client talking to one device."""

    __slots__ = ("lock", "last_command_time", "__weakref__")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.last_command_time: float | None = None  # loop.time()


# Keyed by "host:port"; every client in the process targeting the same
# device shares one channel, different devices never contend.
_DEVICES: weakref.WeakValueDictionary[str, _DeviceChannel] = weakref.WeakValueDictionary()


def _device_channel(address: str) -> _DeviceChannel:
    channel = _DEVICES.get(address)
    if channel is None:
        channel = _DeviceChannel()
        _DEVICES[address] = channel
    return channel


def device_lock(address: str) -> asyncio.Lock:
    """Return the command lock for *address*, creating it on first use."""
    return _device_channel(address).lock


class PhilipsAirClient:
    """Talk to one purifier over CoAP."""

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        *,
        context: Any | None = None,
        cipher: Any | None = None,
        command_delay: float = DEFAULT_COMMAND_DELAY,
        command_timeout: float = DEFAULT_COMMAND_TIMEOUT,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        stale_timeout: float = DEFAULT_STALE_TIMEOUT,
    ) -> None:
        self.host = host
        self.port = port
        self._context = context
        self._owns_context = context is None
        self._context_lock = asyncio.Lock()
        self._cipher = cipher or EncryptionContext()
        self._command_delay = command_delay
        self._command_timeout = command_timeout
        self._lock_timeout = lock_timeout
        self._stale_timeout = stale_timeout
        self._device = _device_channel(self.address)
        _LOGGER.debug("Client created for %s", self.address)

    @classmethod
    def from_config(cls, config: DeviceConfig, **kwargs: Any) -> PhilipsAirClient:
        return cls(
            config.host,
            config.port,
            command_delay=config.command_delay,
            command_timeout=config.command_timeout,
            lock_timeout=config.lock_timeout,
            stale_timeout=config.stale_timeout,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def last_command_time(self) -> float | None:
        """Event-loop time of the last successful command, if any."""
        return self._device.last_command_time

    def _uri(self, path: str) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"coap://{host}:{self.port}{path}"

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _get_context(self) -> Any:
        async with self._context_lock:
            if self._context is None:
                try:
                    self._context = await Context.create_client_context()
                except OSError as exc:
                    raise TransportError(f"Cannot open CoAP context: {exc}") from exc
            return self._context

    async def async_close(self) -> None:
        """Shut down the CoAP context if this client created it."""
        if self._context is not None and self._owns_context:
            await self._context.shutdown()
            self._context = None

    async def _request(self, message: Message) -> Message:
        context = await self._get_context()
        try:
            response = await context.request(message).response
        except (CoapError, OSError) as exc:
            raise TransportError(f"{self.address}: {exc}") from exc
        if not response.code.is_successful():
            raise ProtocolError(f"{self.address} answered {response.code}")
        return response

    # ------------------------------------------------------------------
    # Command channel
    # ------------------------------------------------------------------

    async def async_execute(self, params: ParamSet) -> CommandResult:
        """Run one sync + control exchange for *params*.

        Raises :class:`LockTimeoutError` when the device lock stays busy,
        :class:`SyncTimeoutError` / :class:`CommandTimeoutError` when the
        exchange overruns ``command_timeout``, :class:`TransportError` and
        :class:`ProtocolError` otherwise.
        """
        _LOGGER.debug("Executing command on %s: %s", self.address, dict(params))
        try:
            await asyncio.wait_for(self._device.lock.acquire(), self._lock_timeout)
        except asyncio.TimeoutError as exc:
            raise LockTimeoutError(
                f"{self.address}: command lock busy for {self._lock_timeout}s"
            ) from exc

        try:
            await self._pace()
            result = await self._exchange(params)
            self._device.last_command_time = asyncio.get_running_loop().time()
            return result
        finally:
            self._device.lock.release()

    async def _pace(self) -> None:
        """Keep ``command_delay`` between completed commands on this device."""
        last = self._device.last_command_time
        if last is None or self._command_delay <= 0:
            return
        elapsed = asyncio.get_running_loop().time() - last
        if elapsed < self._command_delay:
            wait = self._command_delay - elapsed
            _LOGGER.debug("Waiting %.2fs before next command to %s", wait, self.address)
            await asyncio.sleep(wait)

    async def _exchange(self, params: ParamSet) -> CommandResult:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._command_timeout

        try:
            counter = await asyncio.wait_for(self.async_sync(), self._command_timeout)
        except asyncio.TimeoutError as exc:
            raise SyncTimeoutError(
                f"{self.address}: no counter within {self._command_timeout}s"
            ) from exc

        client_key = self._cipher.derive_key(counter)
        payload = self._cipher.encrypt(client_key, serialize_envelope(params))
        message = Message(
            code=POST,
            uri=self._uri(CONTROL_PATH),
            payload=payload.encode("ascii"),
        )

        try:
            response = await asyncio.wait_for(
                self._request(message), max(0.0, deadline - loop.time())
            )
        except asyncio.TimeoutError as exc:
            raise CommandTimeoutError(
                f"{self.address}: no control response within {self._command_timeout}s"
            ) from exc

        result = parse_command_result(response.payload, self._cipher)
        _LOGGER.debug("Command result from %s: %s", self.address, result.outcome.value)
        return result

    async def async_sync(self) -> str:
        """Fetch a fresh counter.  Only call with the device lock held."""
        nonce = os.urandom(SYNC_NONCE_BYTES).hex().upper()
        message = Message(code=POST, uri=self._uri(SYNC_PATH), payload=nonce.encode("ascii"))
        response = await self._request(message)

        counter = response.payload.decode("ascii", errors="replace").strip()
        if not _COUNTER.match(counter):
            raise ProtocolError(f"{self.address}: unexpected sync counter {counter!r}")
        _LOGGER.debug("Counter received from %s: %s", self.address, counter)
        return counter

    # ------------------------------------------------------------------
    # Status observation
    # ------------------------------------------------------------------

    async def async_observe_status(self) -> AsyncIterator[RawReport]:
        """Yield status reports until the device ends the observation.

        Malformed notifications are logged and skipped.  A silent stream
        raises :class:`ObservationTimeoutError` after ``stale_timeout``
        seconds (0 disables the watchdog).
        """
        context = await self._get_context()
        message = Message(code=GET, uri=self._uri(STATUS_PATH), observe=0)
        requester = context.request(message)
        _LOGGER.debug("Observing %s%s", self.address, STATUS_PATH)

        try:
            try:
                first = await asyncio.wait_for(requester.response, self._command_timeout)
            except asyncio.TimeoutError as exc:
                raise ObservationTimeoutError(
                    f"{self.address}: no status within {self._command_timeout}s"
                ) from exc
            except (CoapError, OSError) as exc:
                raise TransportError(f"{self.address}: {exc}") from exc
            if not first.code.is_successful():
                raise ProtocolError(f"{self.address} answered {first.code}")

            report = self._decode_report(first.payload)
            if report is not None:
                yield report

            notifications = requester.observation.__aiter__()
            while True:
                try:
                    if self._stale_timeout:
                        response = await asyncio.wait_for(
                            notifications.__anext__(), self._stale_timeout
                        )
                    else:
                        response = await notifications.__anext__()
                except StopAsyncIteration:
                    _LOGGER.info("Observation of %s ended by the device", self.address)
                    return
                except asyncio.TimeoutError as exc:
                    raise ObservationTimeoutError(
                        f"{self.address}: no status for {self._stale_timeout}s"
                    ) from exc
                except (CoapError, OSError) as exc:
                    raise TransportError(f"{self.address}: {exc}") from exc

                report = self._decode_report(response.payload)
                if report is not None:
                    yield report
        finally:
            requester.observation.cancel()

    def _decode_report(self, payload: bytes) -> RawReport | None:
        try:
            report = extract_report(self._cipher.decrypt(payload))
        except (ProtocolError, ValueError) as exc:
            _LOGGER.warning("Skipping malformed status from %s: %s", self.address, exc)
            return None
        _LOGGER.debug("Status received from %s: %s", self.address, dict(report))
        return report
