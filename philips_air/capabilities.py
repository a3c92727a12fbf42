"""Model capability table and device identity.

Models are recognised from the identifiers in the first status report.
The table is read-only; the client itself never needs it.
"""

from __future__ import annotations

import enum
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .const import (
    FIELD_DEVICE_ID,
    FIELD_DEVICE_ID_ALT,
    FIELD_FIRMWARE,
    FIELD_MODEL_ID,
    FIELD_MODEL_ID_ALT,
    FIELD_NAME,
    FIELD_PRODUCT_ID,
    FIELD_TYPE,
    FIELD_WIFI_VERSION,
)
from .protocol.status import PowerStatus, State

_LOGGER = logging.getLogger(__name__)


class FanModel(enum.Enum):
    AC0850_11 = "AC0850/11"
    AC0850_20 = "AC0850/20"
    AC1214 = "AC1214"
    AC1715 = "AC1715"
    AC2729 = "AC2729"
    AC2889 = "AC2889"
    AC3033 = "AC3033"
    AC3059 = "AC3059"
    AC3829 = "AC3829"
    AC4220 = "AC4220"
    UNKNOWN = "Unknown"


class AirQuality(enum.Enum):
    UNKNOWN = "unknown"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    INFERIOR = "inferior"


@dataclass(frozen=True)
class AirQualityThresholds:
    """Upper PM2.5 bounds (µg/m³) for each quality band."""

    good: float = 12
    fair: float = 35
    poor: float = 55


@dataclass(frozen=True)
class ModelConfig:
    modes: tuple[str, ...]
    speeds: tuple[int, ...]
    filter_status: bool = False
    debug_logging: bool = False
    pm25_divisor: float = 100
    thresholds: AirQualityThresholds = field(default_factory=AirQualityThresholds)

    def convert_pm25(self, raw: float) -> float:
        """Raw particulate reading → µg/m³."""
        return raw / (self.pm25_divisor or 100)

    def air_quality(self, state: State) -> AirQuality:
        if state.power is not PowerStatus.ON:
            return AirQuality.UNKNOWN
        pm25 = self.convert_pm25(state.particulate_level)
        if pm25 <= self.thresholds.good:
            return AirQuality.GOOD
        if pm25 <= self.thresholds.fair:
            return AirQuality.FAIR
        if pm25 <= self.thresholds.poor:
            return AirQuality.POOR
        return AirQuality.INFERIOR


_STANDARD = ("auto", "sleep", "turbo")

MODEL_CONFIGS: Mapping[FanModel, ModelConfig] = MappingProxyType({
    FanModel.AC0850_11: ModelConfig(_STANDARD, (1, 2, 3), filter_status=True, debug_logging=True),
    FanModel.AC0850_20: ModelConfig(_STANDARD, (1, 2, 3), filter_status=True),
    FanModel.AC1214: ModelConfig(("auto", "allergen", "night", "turbo"), (1, 2, 3), filter_status=True),
    FanModel.AC1715: ModelConfig(_STANDARD, (1, 2, 3), filter_status=True),
    FanModel.AC2729: ModelConfig(_STANDARD, (1, 2, 3), filter_status=True),
    FanModel.AC2889: ModelConfig(_STANDARD, (1, 2, 3), filter_status=True),
    FanModel.AC3033: ModelConfig(_STANDARD, (1, 2, 3), filter_status=True),
    FanModel.AC3059: ModelConfig(_STANDARD, (1, 2, 3), filter_status=True),
    FanModel.AC3829: ModelConfig(_STANDARD, (1, 2, 3), filter_status=True),
    FanModel.AC4220: ModelConfig(_STANDARD, (1, 2, 3), filter_status=True, debug_logging=True),
    # unknown models log everything to help identify them
    FanModel.UNKNOWN: ModelConfig(("auto",), (1,), debug_logging=True),
})

# Substring → model.  AC0850/10 is close enough to AC0850/11.
MODEL_PATTERNS: dict[str, FanModel] = {
    "AC0850/11": FanModel.AC0850_11,
    "AC0850/10": FanModel.AC0850_11,
    "AC0850/20": FanModel.AC0850_20,
    "AC1214": FanModel.AC1214,
    "AC1715": FanModel.AC1715,
    "AC2729": FanModel.AC2729,
    "AC2889": FanModel.AC2889,
    "AC3033": FanModel.AC3033,
    "AC3059": FanModel.AC3059,
    "AC3829": FanModel.AC3829,
    "AC4220": FanModel.AC4220,
}

_MODEL_NUMBER = re.compile(r"AC[0-9]{4}", re.IGNORECASE)


def _identifiers(status: Mapping[str, Any]) -> list[str]:
    candidates = (
        status.get(FIELD_MODEL_ID),
        status.get(FIELD_MODEL_ID_ALT),
        status.get(FIELD_PRODUCT_ID),
        status.get(FIELD_NAME),
        status.get(FIELD_TYPE),
    )
    return [str(value) for value in candidates if value]


def detect_model(status: Mapping[str, Any] | None) -> FanModel:
    """Best-effort model detection from a raw status report."""
    if not status:
        _LOGGER.warning("No device status provided for model detection")
        return FanModel.UNKNOWN

    identifiers = _identifiers(status)
    wifi_version = str(status.get(FIELD_WIFI_VERSION) or "unknown")
    _LOGGER.debug(
        "Detecting model from identifiers [%s], WifiVersion: %s",
        ", ".join(identifiers), wifi_version,
    )

    for identifier in identifiers:
        for pattern, model in MODEL_PATTERNS.items():
            if pattern in identifier:
                _LOGGER.debug("Detected model %s from %s", model.value, identifier)
                return model

    if "AWS_Philips_AIR" in wifi_version:
        for identifier in identifiers:
            if "AC0850" in identifier:
                return FanModel.AC0850_11

    for identifier in identifiers:
        match = _MODEL_NUMBER.search(identifier)
        if not match:
            continue
        extracted = match.group(0).upper()
        for model in FanModel:
            if extracted in model.value:
                _LOGGER.debug("Using closest model match %s for %s", model.value, identifier)
                return model

    _LOGGER.warning(
        "Unable to detect model from identifiers [%s], WifiVersion: %s",
        ", ".join(identifiers), wifi_version,
    )
    return FanModel.UNKNOWN


@dataclass(frozen=True)
class DeviceIdentity:
    model: FanModel
    serial_number: str
    firmware_version: str

    @property
    def config(self) -> ModelConfig:
        return MODEL_CONFIGS[self.model]


def resolve_identity(
    status: Mapping[str, Any] | None, host: str, port: int
) -> DeviceIdentity:
    """Model, serial and firmware from the initial report.

    Falls back to ``host-port`` for the serial and ``0.0.0`` for the
    firmware when the report is missing or incomplete.
    """
    status = status or {}
    serial = status.get(FIELD_DEVICE_ID) or status.get(FIELD_DEVICE_ID_ALT) or f"{host}-{port}"
    return DeviceIdentity(
        model=detect_model(status),
        serial_number=str(serial),
        firmware_version=str(status.get(FIELD_FIRMWARE) or "0.0.0"),
    )
