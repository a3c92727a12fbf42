"""Status reports pushed by the purifier and their normalised form.

A decrypted report looks like ``{"state": {"reported": {...}}}``; the inner
object is the :data:`RawReport`.  Firmware variants disagree on value types
(``2`` vs ``"2"`` vs ``"Medium"``), so :func:`normalize` accepts all of them
and never raises.
"""

from __future__ import annotations

import enum
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from ..const import FIELD_MANUAL_SPEED, FIELD_MODE, FIELD_PM25, FIELD_POWER
from ..exceptions import ProtocolError

RawReport = Mapping[str, Any]


class Mode(enum.Enum):
    """Fan mode."""

    AUTO = "AUTO"
    AUTO_PLUS = "AUTO_PLUS"
    SLEEP = "SLEEP"
    MEDIUM = "MEDIUM"
    TURBO = "TURBO"
    MANUAL = "MANUAL"


class PowerStatus(enum.Enum):
    ON = "ON"
    OFF = "OFF"


@dataclass(frozen=True)
class State:
    """Normalised device state, replaced wholesale on every report."""

    particulate_level: float = 0
    mode: Mode = Mode.AUTO
    power: PowerStatus = PowerStatus.OFF
    manual_speed: int | None = None


# ── Lookup tables ─────────────────────────────────────────────────────────

# Tokens are matched exactly; anything else falls back to the default.
_NUMERIC_MODES: dict[int, Mode] = {
    0: Mode.AUTO,
    1: Mode.SLEEP,
    2: Mode.MEDIUM,
    3: Mode.TURBO,
}

_TOKEN_MODES: dict[str, Mode] = {
    "0": Mode.AUTO,
    "Auto": Mode.AUTO,
    "Auto General": Mode.AUTO,
    "P": Mode.AUTO_PLUS,
    "AI": Mode.AUTO_PLUS,
    "Auto+": Mode.AUTO_PLUS,
    "1": Mode.SLEEP,
    "Sleep": Mode.SLEEP,
    "2": Mode.MEDIUM,
    "Medium": Mode.MEDIUM,
    "3": Mode.TURBO,
    "Turbo": Mode.TURBO,
    "M": Mode.MANUAL,
    "Manual": Mode.MANUAL,
}

_POWER_ON_TOKENS = frozenset({"1", "ON"})

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


# ── Field decoders ────────────────────────────────────────────────────────


def _as_code(value: Any) -> int | None:
    """Numeric code carried as a JSON number.  Bools are not numbers here."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def parse_mode(value: Any) -> Mode:
    """Decode a mode code or mnemonic; anything unrecognised is AUTO."""
    if isinstance(value, str):
        return _TOKEN_MODES.get(value, Mode.AUTO)
    code = _as_code(value)
    if code is not None:
        return _NUMERIC_MODES.get(code, Mode.AUTO)
    return Mode.AUTO


def parse_power(value: Any) -> PowerStatus:
    """Decode a power code; only 1 / "1" / "ON" mean on."""
    if isinstance(value, str):
        return PowerStatus.ON if value in _POWER_ON_TOKENS else PowerStatus.OFF
    return PowerStatus.ON if _as_code(value) == 1 else PowerStatus.OFF


def parse_manual_speed(value: Any) -> int | None:
    """Integer speed from ``57`` or ``"57"``; None when absent or garbage."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        match = _LEADING_INT.match(value)
        if match:
            return int(match.group(1))
    return None


def parse_particulate(value: Any) -> float:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0
        return int(number) if number.is_integer() else number
    return 0


def normalize(raw: RawReport) -> State:
    """Map a raw report onto a :class:`State`.  Total: never raises."""
    if not isinstance(raw, Mapping):
        return State()
    return State(
        particulate_level=parse_particulate(raw.get(FIELD_PM25)),
        mode=parse_mode(raw.get(FIELD_MODE)),
        power=parse_power(raw.get(FIELD_POWER)),
        manual_speed=parse_manual_speed(raw.get(FIELD_MANUAL_SPEED)),
    )


def extract_report(document: Any) -> RawReport:
    """Pull ``state.reported`` out of a decrypted status document.

    The result is a read-only view so a report cannot change once parsed.
    """
    try:
        reported = document["state"]["reported"]
    except (KeyError, TypeError) as exc:
        raise ProtocolError("Status payload has no state.reported object") from exc
    if not isinstance(reported, Mapping):
        raise ProtocolError(
            f"state.reported is {type(reported).__name__}, expected an object"
        )
    return MappingProxyType(dict(reported))
