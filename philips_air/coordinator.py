"""Coordinator for one Philips air purifier.

Manages the connection lifecycle:
  1. Send the status trigger command (sync → encrypted control)
  2. Open the status observation
  3. Normalise each report and fan it out to state callbacks
  4. On any failure, retry with backoff; never give up

Backoff: failure N of a cycle waits ``min(N * reconnect_delay,
max_reconnect_delay)``; reaching ``max_attempts`` resets the counter and
waits ``cooldown``.  A stream that drops after connecting resets the
counter and retries after ``drop_delay``.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from .capabilities import DeviceIdentity, ModelConfig, resolve_identity
from .client import PhilipsAirClient
from .config import DeviceConfig
from .exceptions import PhilipsAirError
from .observer import StatusObserver
from .protocol.commands import CommandBuilder, CommandResult, clamp_speed
from .protocol.status import Mode, PowerStatus, RawReport, State, normalize

_LOGGER = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED_OBSERVING = "connected_observing"


class PhilipsAirCoordinator:
    """Own the connection, the current state and its subscribers."""

    def __init__(
        self,
        config: DeviceConfig,
        *,
        client: PhilipsAirClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        self.config = config
        self.client = client or PhilipsAirClient.from_config(config)
        self._sleep = sleep or asyncio.sleep
        self._observer = StatusObserver(
            self.client, self._handle_report, self._handle_observation_failure
        )

        self._running = False
        self._connection_state = ConnectionState.DISCONNECTED
        self._attempt = 0
        self._retry_delay: float | None = None
        self._last_connected: float | None = None  # wall clock
        self._connect_task: asyncio.Task | None = None

        # ── Device state ──────────────────────────────────────────────
        self._state = State()
        self._initial_status: RawReport | None = None
        self._identity: DeviceIdentity | None = None
        self._last_report_time: float = 0.0  # monotonic

        self._state_callbacks: list[Callable[[State], None]] = []
        self._connection_callbacks: list[Callable[[ConnectionState], None]] = []

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------

    @property
    def address(self) -> str:
        return self.client.address

    @property
    def connection_state(self) -> ConnectionState:
        return self._connection_state

    @property
    def is_connected(self) -> bool:
        return self._connection_state is ConnectionState.CONNECTED_OBSERVING

    @property
    def attempt(self) -> int:
        """Failed attempts in the current cycle."""
        return self._attempt

    @property
    def retry_delay(self) -> float | None:
        """Delay scheduled before the pending connection attempt."""
        return self._retry_delay

    @property
    def last_connected(self) -> float | None:
        return self._last_connected

    @property
    def last_report_age(self) -> float | None:
        """Seconds since the last report, or None if none arrived yet."""
        if self._last_report_time == 0.0:
            return None
        return time.monotonic() - self._last_report_time

    @property
    def state(self) -> State:
        return self._state

    @property
    def initial_status(self) -> RawReport | None:
        """First report seen by this coordinator; never replaced."""
        return self._initial_status

    @property
    def device_identity(self) -> DeviceIdentity:
        """Identity from the initial report, with address-based fallbacks."""
        if self._identity is None:
            return resolve_identity(None, self.client.host, self.client.port)
        return self._identity

    @property
    def model_config(self) -> ModelConfig:
        return self.device_identity.config

    def register_state_callback(
        self, cb: Callable[[State], None]
    ) -> Callable[[], None]:
        """Register a callback for new states. Returns unsubscribe callable."""
        self._state_callbacks.append(cb)

        def _unsub() -> None:
            if cb in self._state_callbacks:
                self._state_callbacks.remove(cb)

        return _unsub

    def register_connection_callback(
        self, cb: Callable[[ConnectionState], None]
    ) -> Callable[[], None]:
        """Register a callback for connection changes. Returns unsubscribe callable."""
        self._connection_callbacks.append(cb)

        def _unsub() -> None:
            if cb in self._connection_callbacks:
                self._connection_callbacks.remove(cb)

        return _unsub

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def async_set_power(self, power: PowerStatus) -> CommandResult | None:
        """Switch the purifier on or off.

        Returns None without touching the network when the device already
        reports *power*.  Command errors propagate to the caller.
        """
        if self._state.power is power:
            _LOGGER.debug("%s already %s, command skipped", self.address, power.value)
            return None
        return await self.client.async_execute(CommandBuilder.build_power(power))

    async def async_set_mode(
        self, mode: Mode, speed: int | None = None
    ) -> CommandResult | None:
        """Change the fan mode; *speed* (1-100) only applies to MANUAL."""
        current = self._state
        if current.mode is mode and (
            mode is not Mode.MANUAL
            or speed is None
            or clamp_speed(speed) == current.manual_speed
        ):
            _LOGGER.debug("%s already in %s, command skipped", self.address, mode.value)
            return None
        return await self.client.async_execute(CommandBuilder.build_mode(mode, speed))

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def observe(self) -> None:
        """Start connecting; keeps retrying until :meth:`async_stop`."""
        if self._running:
            return
        self._running = True
        _LOGGER.debug("Starting observation of %s", self.address)
        self._schedule_connect(0.0)

    async def async_stop(self) -> None:
        """Cancel pending retries and the observation."""
        self._running = False
        task, self._connect_task = self._connect_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        await self._observer.async_stop()
        self._attempt = 0
        self._retry_delay = None
        self._set_connection_state(ConnectionState.DISCONNECTED)

    async def async_close(self) -> None:
        await self.async_stop()
        await self.client.async_close()

    def _schedule_connect(self, delay: float) -> None:
        if self._connect_task and not self._connect_task.done():
            return  # Already scheduled
        self._connect_task = asyncio.get_running_loop().create_task(
            self._connect_loop(delay), name=f"philips_air_connect_{self.address}"
        )

    async def _connect_loop(self, delay: float) -> None:
        """Trigger status pushes, retrying until the device answers."""
        while self._running:
            if delay > 0:
                _LOGGER.info(
                    "Connecting to %s in %.0fs (attempt %d)",
                    self.address, delay, self._attempt + 1,
                )
                await self._sleep(delay)
                if not self._running:
                    return

            self._set_connection_state(ConnectionState.CONNECTING)
            try:
                result = await self.client.async_execute(CommandBuilder.build_trigger())
            except PhilipsAirError as exc:
                delay = self._next_retry_delay()
                _LOGGER.warning("Status trigger for %s failed: %s", self.address, exc)
                continue
            except Exception:  # noqa: BLE001
                delay = self._next_retry_delay()
                _LOGGER.exception("Unexpected error triggering %s", self.address)
                continue

            if not result.success:
                _LOGGER.debug("%s acknowledged the status trigger with a failure", self.address)

            self._attempt = 0
            self._retry_delay = None
            self._last_connected = time.time()
            self._set_connection_state(ConnectionState.CONNECTED_OBSERVING)
            _LOGGER.info("Connected to %s, observing status", self.address)
            self._observer.start()
            return

    def _next_retry_delay(self) -> float:
        """Count a failed attempt and return the wait before the next one."""
        self._attempt += 1
        if self._attempt >= self.config.max_attempts:
            _LOGGER.warning(
                "%s unreachable after %d attempts, retrying in %.0fs",
                self.address, self._attempt, self.config.cooldown,
            )
            self._attempt = 0
            delay = self.config.cooldown
        else:
            delay = min(
                self._attempt * self.config.reconnect_delay,
                self.config.max_reconnect_delay,
            )
        self._retry_delay = delay
        return delay

    def _handle_observation_failure(self, exc: Exception) -> None:
        """Stream gone after a successful connect; start over."""
        if not self._running:
            return
        _LOGGER.warning("Lost status stream from %s: %s", self.address, exc)
        self._set_connection_state(ConnectionState.DISCONNECTED)
        self._attempt = 0
        self._retry_delay = self.config.drop_delay
        self._schedule_connect(self.config.drop_delay)

    def _set_connection_state(self, state: ConnectionState) -> None:
        if state is self._connection_state:
            return
        _LOGGER.debug(
            "%s: %s → %s", self.address, self._connection_state.value, state.value
        )
        self._connection_state = state
        for cb in list(self._connection_callbacks):
            try:
                cb(state)
            except Exception:  # noqa: BLE001
                _LOGGER.exception("Error in connection callback")

    # ------------------------------------------------------------------
    # Status reports
    # ------------------------------------------------------------------

    def _handle_report(self, report: RawReport) -> None:
        if self._initial_status is None:
            self._initial_status = report
            self._identity = resolve_identity(report, self.client.host, self.client.port)
            _LOGGER.info(
                "%s identified as %s (serial %s, firmware %s)",
                self.address, self._identity.model.value,
                self._identity.serial_number, self._identity.firmware_version,
            )

        self._last_report_time = time.monotonic()
        state = normalize(report)
        self._state = state

        if self.model_config.debug_logging:
            _LOGGER.debug(
                "State updated for %s: power=%s mode=%s pm2_5=%s speed=%s",
                self.address, state.power.value, state.mode.value,
                state.particulate_level, state.manual_speed,
            )

        for cb in list(self._state_callbacks):
            try:
                cb(state)
            except Exception:  # noqa: BLE001
                _LOGGER.exception("Error in state callback")
