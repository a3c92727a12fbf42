"""Shared test fixtures.

``FakeCoapContext`` stands in for an aiocoap client context: it answers
sync / control / status requests the way a purifier does, with real
``aiocoap.Message`` responses and real payload encryption.
"""

import asyncio
import inspect
import itertools
import json
import sys
from pathlib import Path

import pytest
from aiocoap import CHANGED, CONTENT, Message

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from philips_air.protocol.encryption import EncryptionContext  # noqa: E402

_CIPHER = EncryptionContext()
_HOSTS = itertools.count(1)


def encrypted_report(reported, client_key="00000001"):
    """Status notification payload as the device would push it."""
    document = json.dumps({"state": {"reported": reported}})
    return _CIPHER.encrypt(client_key, document).encode("ascii")


def status_message(reported):
    return Message(code=CONTENT, payload=encrypted_report(reported))


# ── Fake observation ─────────────────────────────────────────────────────

_END = object()


class FakeObservation:
    """Async iterator of notifications, fed by the test."""

    def __init__(self):
        self._queue = asyncio.Queue()
        self.cancelled = False

    def push(self, message):
        self._queue.put_nowait(message)

    def push_report(self, reported):
        self.push(status_message(reported))

    def end(self):
        self._queue.put_nowait(_END)

    def fail(self, exc):
        self._queue.put_nowait(exc)

    def cancel(self):
        self.cancelled = True

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._queue.get()
        if item is _END:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item


class FakeRequest:
    def __init__(self, response, observation):
        self.response = response
        self.observation = observation


# ── Fake context ─────────────────────────────────────────────────────────


class FakeCoapContext:
    """Scripted purifier behind an aiocoap-shaped ``request()``.

    ``handlers`` maps a path to ``handler(message) -> Message`` (sync or
    async); ``errors`` maps a path to an exception raised instead.
    Every request is logged as ``(path, payload, loop time)``.
    """

    def __init__(self, counter="0000000A"):
        self.counter = counter
        self.requests = []
        self.commands = []
        self.errors = {}
        self.observation = FakeObservation()
        self.first_status = {"D03102": 1, "D0310C": 0, "D03224": 500}
        self.control_status = "success"
        self.shutdown_called = False
        self.handlers = {
            "/sys/dev/sync": self._handle_sync,
            "/sys/dev/control": self._handle_control,
            "/sys/dev/status": self._handle_status,
        }

    @property
    def paths(self):
        return [path for path, _, _ in self.requests]

    def request(self, message):
        path = "/" + "/".join(message.opt.uri_path)
        loop = asyncio.get_running_loop()
        self.requests.append((path, bytes(message.payload), loop.time()))
        response = asyncio.ensure_future(self._respond(path, message))
        return FakeRequest(response, self.observation)

    async def _respond(self, path, message):
        await asyncio.sleep(0)
        if path in self.errors:
            raise self.errors[path]
        result = self.handlers[path](message)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def shutdown(self):
        self.shutdown_called = True

    def _handle_sync(self, message):
        return Message(code=CONTENT, payload=self.counter.encode("ascii"))

    def _handle_control(self, message):
        payload = bytes(message.payload)
        desired = _CIPHER.decrypt(payload)["state"]["desired"]
        self.commands.append((payload[:8].decode("ascii"), desired))
        body = json.dumps({"status": self.control_status}).encode()
        return Message(code=CHANGED, payload=body)

    def _handle_status(self, message):
        return status_message(self.first_status)


@pytest.fixture
def context():
    return FakeCoapContext()


@pytest.fixture
def host():
    """A fresh device address per test, so per-device locks never leak."""
    return f"192.0.2.{next(_HOSTS)}"
