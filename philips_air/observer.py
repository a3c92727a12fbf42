"""Long-lived status observation for one purifier."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from typing import Any

from .exceptions import PhilipsAirError, TransportError
from .protocol.status import RawReport

_LOGGER = logging.getLogger(__name__)


class StatusObserver:
    """Run the status stream in a background task.

    Every report goes to *on_report*.  However the stream stops (device
    ends it, transport error, watchdog timeout) *on_failure* is called
    exactly once; only :meth:`async_stop` ends it silently.
    """

    def __init__(
        self,
        client: Any,
        on_report: Callable[[RawReport], None],
        on_failure: Callable[[Exception], None],
    ) -> None:
        self._client = client
        self._on_report = on_report
        self._on_failure = on_failure
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Open the observation; returns immediately."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"philips_air_observe_{self._client.address}"
        )

    async def async_stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _run(self) -> None:
        reason: Exception
        try:
            async for report in self._client.async_observe_status():
                self._on_report(report)
        except asyncio.CancelledError:
            raise
        except PhilipsAirError as exc:
            reason = exc
        except Exception as exc:  # noqa: BLE001
            _LOGGER.exception("Unexpected error observing %s", self._client.address)
            reason = exc
        else:
            reason = TransportError(f"Observation of {self._client.address} ended")

        self._on_failure(reason)
