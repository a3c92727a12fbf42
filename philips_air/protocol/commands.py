"""Desired-state commands for the Philips CoAP protocol.

Every command is a parameter set merged into a fixed envelope before
encryption:

  {"state": {"desired": {"CommandType": "app", "DeviceId": "",
                         "EnduserId": "", ...params}}}

The device answers with ``{"status": "success"}`` or ``{"status": "failed"}``.
"""

from __future__ import annotations

import enum
import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from ..const import (
    COMMAND_TYPE,
    MANUAL_SPEED_MAX,
    MANUAL_SPEED_MIN,
    PARAM_MANUAL_SPEED,
    PARAM_MODE,
    PARAM_POWER,
    PARAM_TRIGGER,
    RESULT_SUCCESS,
)
from ..exceptions import ProtocolError
from .status import Mode, PowerStatus

ParamSet = Mapping[str, Any]


class Outcome(enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class CommandResult:
    """Parsed acknowledgement of a control command."""

    outcome: Outcome

    @property
    def success(self) -> bool:
        return self.outcome is Outcome.SUCCESS


# Mnemonics the devices accept on the desired-state mode field
MODE_COMMANDS: dict[Mode, str] = {
    Mode.AUTO: "Auto General",
    Mode.AUTO_PLUS: "Auto+",
    Mode.SLEEP: "Sleep",
    Mode.MEDIUM: "Medium",
    Mode.TURBO: "Turbo",
    Mode.MANUAL: "Manual",
}


class CommandBuilder:
    """Construct parameter sets and envelopes for ``/sys/dev/control``."""

    @staticmethod
    def build_envelope(params: ParamSet) -> dict[str, Any]:
        desired: dict[str, Any] = {
            "CommandType": COMMAND_TYPE,
            "DeviceId": "",
            "EnduserId": "",
        }
        desired.update(params)
        return {"state": {"desired": desired}}

    @staticmethod
    def build_trigger() -> dict[str, Any]:
        """Parameter set that makes the device start pushing status."""
        return {PARAM_TRIGGER: True}

    @staticmethod
    def build_power(power: PowerStatus) -> dict[str, Any]:
        return {PARAM_POWER: "ON" if power is PowerStatus.ON else "OFF"}

    @staticmethod
    def build_mode(mode: Mode, speed: int | None = None) -> dict[str, Any]:
        """Build a mode change.

        ``speed`` only applies to MANUAL and is clamped to 1-100.  Unknown
        modes fall back to AUTO rather than raising.
        """
        params: dict[str, Any] = {}
        if mode is Mode.MANUAL and speed is not None:
            params[PARAM_MANUAL_SPEED] = clamp_speed(speed)
        params[PARAM_MODE] = MODE_COMMANDS.get(mode, MODE_COMMANDS[Mode.AUTO])
        return params


def clamp_speed(speed: int) -> int:
    return min(MANUAL_SPEED_MAX, max(MANUAL_SPEED_MIN, int(speed)))


def serialize_envelope(params: ParamSet) -> str:
    return json.dumps(CommandBuilder.build_envelope(params), separators=(",", ":"))


def parse_command_result(payload: bytes, cipher: Any | None = None) -> CommandResult:
    """Parse a control response body.

    Devices answer in plain JSON; an encrypted body is accepted when a
    *cipher* is supplied.  Anything else raises :class:`ProtocolError`.
    """
    document: Any
    try:
        document = json.loads(payload.decode("utf-8"))
    except ValueError as plain_exc:
        if cipher is None:
            raise ProtocolError(f"Control response is not JSON: {payload[:32]!r}") from plain_exc
        document = cipher.decrypt(payload)

    if not isinstance(document, Mapping):
        raise ProtocolError(
            f"Control response is {type(document).__name__}, expected an object"
        )
    status = document.get("status")
    return CommandResult(Outcome.SUCCESS if status == RESULT_SUCCESS else Outcome.FAILURE)
