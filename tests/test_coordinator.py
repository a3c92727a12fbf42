"""Tests for the connection manager, backoff and state fan-out."""

import asyncio

import pytest

from philips_air.client import PhilipsAirClient
from philips_air.config import DeviceConfig
from philips_air.coordinator import ConnectionState, PhilipsAirCoordinator
from philips_air.protocol.status import Mode, PowerStatus, State

SYNC = "/sys/dev/sync"
CONTROL = "/sys/dev/control"
STATUS = "/sys/dev/status"


class RecordingSleep:
    """Records requested delays; hangs once ``block_after`` calls are made."""

    def __init__(self, block_after):
        self.delays = []
        self.block_after = block_after
        self.reached = asyncio.Event()

    async def __call__(self, delay):
        self.delays.append(delay)
        if len(self.delays) >= self.block_after:
            self.reached.set()
            await asyncio.Event().wait()
        await asyncio.sleep(0)


def make_coordinator(host, context, sleep=None, **overrides):
    settings = {"host": host, "command_delay": 0}
    settings.update(overrides)
    config = DeviceConfig(**settings)
    client = PhilipsAirClient.from_config(config, context=context)
    return PhilipsAirCoordinator(config, client=client, sleep=sleep)


async def wait_until(predicate, timeout=1.0):
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


class TestConnect:
    @pytest.mark.asyncio
    async def test_trigger_then_observe(self, host, context):
        coordinator = make_coordinator(host, context)
        states = []
        coordinator.register_state_callback(states.append)

        coordinator.observe()
        await wait_until(lambda: states)

        assert context.paths[:3] == [SYNC, CONTROL, STATUS]
        assert context.commands[0][1]["D03-03"] is True
        assert coordinator.is_connected
        assert coordinator.connection_state is ConnectionState.CONNECTED_OBSERVING
        assert coordinator.attempt == 0
        assert coordinator.last_connected is not None
        assert states[0].power is PowerStatus.ON
        await coordinator.async_stop()

    @pytest.mark.asyncio
    async def test_connection_transitions(self, host, context):
        coordinator = make_coordinator(host, context)
        seen = []
        coordinator.register_connection_callback(seen.append)

        coordinator.observe()
        await wait_until(lambda: coordinator.is_connected)
        await coordinator.async_stop()

        assert seen == [
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED_OBSERVING,
            ConnectionState.DISCONNECTED,
        ]

    @pytest.mark.asyncio
    async def test_trigger_failure_outcome_still_connects(self, host, context):
        context.control_status = "failed"
        coordinator = make_coordinator(host, context)
        coordinator.observe()
        await wait_until(lambda: coordinator.is_connected)
        await coordinator.async_stop()

    @pytest.mark.asyncio
    async def test_observe_is_idempotent(self, host, context):
        coordinator = make_coordinator(host, context)
        coordinator.observe()
        coordinator.observe()
        await wait_until(lambda: coordinator.state != State())

        assert context.paths.count(SYNC) == 1
        assert context.paths.count(STATUS) == 1
        await coordinator.async_stop()


class TestBackoff:
    @pytest.mark.asyncio
    async def test_linear_backoff_capped_then_cooldown(self, host, context):
        context.errors[SYNC] = OSError("unreachable")
        sleep = RecordingSleep(block_after=6)
        coordinator = make_coordinator(
            host, context, sleep,
            reconnect_delay=10, max_reconnect_delay=25, max_attempts=5, cooldown=60,
        )

        coordinator.observe()
        await asyncio.wait_for(sleep.reached.wait(), 1)

        assert sleep.delays == [10, 20, 25, 25, 60, 10]
        assert coordinator.attempt == 1
        assert coordinator.retry_delay == 10
        assert coordinator.connection_state is ConnectionState.CONNECTING
        assert not coordinator.is_connected
        await coordinator.async_stop()

    @pytest.mark.asyncio
    async def test_default_schedule(self, host, context):
        context.errors[SYNC] = OSError("unreachable")
        sleep = RecordingSleep(block_after=5)
        coordinator = make_coordinator(host, context, sleep)

        coordinator.observe()
        await asyncio.wait_for(sleep.reached.wait(), 1)

        assert sleep.delays == [5, 10, 15, 20, 60]
        assert coordinator.attempt == 0
        await coordinator.async_stop()

    @pytest.mark.asyncio
    async def test_recovers_after_failures(self, host, context):
        context.errors[SYNC] = OSError("unreachable")
        sleep = RecordingSleep(block_after=100)
        coordinator = make_coordinator(host, context, sleep)

        coordinator.observe()
        await wait_until(lambda: len(sleep.delays) >= 2)
        del context.errors[SYNC]
        await wait_until(lambda: coordinator.is_connected)

        assert coordinator.attempt == 0
        assert coordinator.retry_delay is None
        await coordinator.async_stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_pending_retry(self, host, context):
        context.errors[SYNC] = OSError("unreachable")
        sleep = RecordingSleep(block_after=1)
        coordinator = make_coordinator(host, context, sleep)

        coordinator.observe()
        await asyncio.wait_for(sleep.reached.wait(), 1)
        await coordinator.async_stop()
        requests = len(context.requests)
        await asyncio.sleep(0.01)

        assert len(context.requests) == requests
        assert coordinator.connection_state is ConnectionState.DISCONNECTED
        assert coordinator.attempt == 0


class TestStreamDrop:
    @pytest.mark.asyncio
    async def test_drop_resets_and_uses_drop_delay(self, host, context):
        sleep = RecordingSleep(block_after=1)
        coordinator = make_coordinator(host, context, sleep, drop_delay=7)
        seen = []
        coordinator.register_connection_callback(seen.append)

        coordinator.observe()
        await wait_until(lambda: coordinator.is_connected)
        context.observation.end()
        await asyncio.wait_for(sleep.reached.wait(), 1)

        assert sleep.delays == [7]
        assert coordinator.attempt == 0
        assert coordinator.retry_delay == 7
        assert not coordinator.is_connected
        assert seen[-1] is ConnectionState.DISCONNECTED
        await coordinator.async_stop()

    @pytest.mark.asyncio
    async def test_stale_stream_counts_as_drop(self, host, context):
        sleep = RecordingSleep(block_after=1)
        coordinator = make_coordinator(host, context, sleep, stale_timeout=0.05)

        coordinator.observe()
        await asyncio.wait_for(sleep.reached.wait(), 1)

        assert sleep.delays == [5]
        assert coordinator.connection_state is ConnectionState.DISCONNECTED
        await coordinator.async_stop()


class TestReports:
    @pytest.mark.asyncio
    async def test_initial_status_is_write_once(self, host, context):
        context.first_status = {"DeviceId": "first", "D01S05": "AC0850/11", "D03102": 1}
        coordinator = make_coordinator(host, context)
        states = []
        coordinator.register_state_callback(states.append)

        coordinator.observe()
        context.observation.push_report({"DeviceId": "second", "D03102": 0})
        await wait_until(lambda: len(states) == 2)

        assert coordinator.initial_status["DeviceId"] == "first"
        assert coordinator.state.power is PowerStatus.OFF
        identity = coordinator.device_identity
        assert identity.serial_number == "first"
        assert identity.model.value == "AC0850/11"
        await coordinator.async_stop()

    @pytest.mark.asyncio
    async def test_identity_fallback_before_reports(self, host, context):
        coordinator = make_coordinator(host, context)
        identity = coordinator.device_identity
        assert identity.serial_number == f"{host}-5683"
        assert identity.firmware_version == "0.0.0"

    @pytest.mark.asyncio
    async def test_last_report_age(self, host, context):
        coordinator = make_coordinator(host, context)
        assert coordinator.last_report_age is None
        coordinator._handle_report({"D03102": 1})
        assert coordinator.last_report_age >= 0


class TestEventBus:
    def test_delivery_order(self):
        coordinator = make_coordinator("192.0.2.250", None)
        calls = []
        coordinator.register_state_callback(lambda s: calls.append("a"))
        coordinator.register_state_callback(lambda s: calls.append("b"))
        coordinator._handle_report({"D03102": 1})
        assert calls == ["a", "b"]

    def test_unsubscribe(self):
        coordinator = make_coordinator("192.0.2.251", None)
        calls = []
        unsub = coordinator.register_state_callback(calls.append)
        coordinator._handle_report({"D03102": 1})
        unsub()
        unsub()
        coordinator._handle_report({"D03102": 0})
        assert len(calls) == 1

    def test_failing_callback_does_not_stop_delivery(self):
        coordinator = make_coordinator("192.0.2.252", None)
        received = []

        def broken(state):
            raise RuntimeError("subscriber bug")

        coordinator.register_state_callback(broken)
        coordinator.register_state_callback(received.append)
        coordinator._handle_report({"D0310C": 3})
        assert received == [State(mode=Mode.TURBO)]


class TestCommands:
    @pytest.mark.asyncio
    async def test_power_already_set_is_skipped(self, host, context):
        coordinator = make_coordinator(host, context)
        assert await coordinator.async_set_power(PowerStatus.OFF) is None
        assert context.requests == []

    @pytest.mark.asyncio
    async def test_power_change_sends_command(self, host, context):
        coordinator = make_coordinator(host, context)
        result = await coordinator.async_set_power(PowerStatus.ON)

        assert result.success
        assert context.paths == [SYNC, CONTROL]
        assert context.commands[0][1]["D03-02"] == "ON"
        # state only follows reports
        assert coordinator.state.power is PowerStatus.OFF

    @pytest.mark.asyncio
    async def test_mode_already_set_is_skipped(self, host, context):
        coordinator = make_coordinator(host, context)
        assert await coordinator.async_set_mode(Mode.AUTO) is None
        assert context.requests == []

    @pytest.mark.asyncio
    async def test_manual_same_speed_is_skipped(self, host, context):
        coordinator = make_coordinator(host, context)
        coordinator._handle_report({"D0310C": "M", "D03-13": 40})

        assert await coordinator.async_set_mode(Mode.MANUAL, 40) is None
        assert await coordinator.async_set_mode(Mode.MANUAL) is None
        assert context.requests == []

    @pytest.mark.asyncio
    async def test_manual_new_speed_is_sent(self, host, context):
        coordinator = make_coordinator(host, context)
        coordinator._handle_report({"D0310C": "M", "D03-13": 40})

        result = await coordinator.async_set_mode(Mode.MANUAL, 150)
        assert result.success
        assert context.commands[0][1]["D03-13"] == 100

    @pytest.mark.asyncio
    async def test_command_error_propagates(self, host, context):
        from philips_air.exceptions import TransportError

        context.errors[SYNC] = OSError("unreachable")
        coordinator = make_coordinator(host, context)
        with pytest.raises(TransportError):
            await coordinator.async_set_mode(Mode.TURBO)
