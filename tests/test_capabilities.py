"""Tests for model detection, identity and air quality bands."""

import pytest

from philips_air.capabilities import (
    MODEL_CONFIGS,
    AirQuality,
    FanModel,
    detect_model,
    resolve_identity,
)
from philips_air.protocol.status import Mode, PowerStatus, State


class TestDetectModel:
    @pytest.mark.parametrize(
        "status, expected",
        [
            ({"D01S05": "AC0850/11"}, FanModel.AC0850_11),
            ({"D01S05": "AC0850/10"}, FanModel.AC0850_11),
            ({"D01S05": "AC0850/20"}, FanModel.AC0850_20),
            ({"modelid": "AC2889/10"}, FanModel.AC2889),
            ({"ProductId": "x", "name": "Living AC4220/12"}, FanModel.AC4220),
        ],
    )
    def test_known_patterns(self, status, expected):
        assert detect_model(status) is expected

    def test_aws_firmware_variant(self):
        status = {"name": "AC0850/99", "WifiVersion": "AWS_Philips_AIR@62.1"}
        assert detect_model(status) is FanModel.AC0850_11

    def test_model_number_fallback(self):
        assert detect_model({"type": "ac3059 purifier"}) is FanModel.AC3059

    @pytest.mark.parametrize("status", [None, {}, {"name": "AC9999"}, {"name": "kitchen"}])
    def test_unknown(self, status):
        assert detect_model(status) is FanModel.UNKNOWN

    def test_every_model_configured(self):
        assert set(MODEL_CONFIGS) == set(FanModel)

    def test_table_is_read_only(self):
        with pytest.raises(TypeError):
            MODEL_CONFIGS[FanModel.UNKNOWN] = MODEL_CONFIGS[FanModel.AC1214]


class TestResolveIdentity:
    def test_from_report(self):
        identity = resolve_identity(
            {"DeviceId": "abc123", "D01S12": "1.2.3", "D01S05": "AC1715"},
            "192.0.2.9",
            5683,
        )
        assert identity.serial_number == "abc123"
        assert identity.firmware_version == "1.2.3"
        assert identity.model is FanModel.AC1715
        assert identity.config is MODEL_CONFIGS[FanModel.AC1715]

    def test_alternate_serial_field(self):
        identity = resolve_identity({"D01S0D": "xyz"}, "192.0.2.9", 5683)
        assert identity.serial_number == "xyz"

    def test_fallbacks(self):
        identity = resolve_identity(None, "192.0.2.9", 5683)
        assert identity.serial_number == "192.0.2.9-5683"
        assert identity.firmware_version == "0.0.0"
        assert identity.model is FanModel.UNKNOWN


class TestAirQuality:
    config = MODEL_CONFIGS[FanModel.AC0850_11]

    def test_convert_pm25(self):
        assert self.config.convert_pm25(1250) == 12.5

    @pytest.mark.parametrize(
        "raw, expected",
        [
            (0, AirQuality.GOOD),
            (1200, AirQuality.GOOD),
            (1201, AirQuality.FAIR),
            (3500, AirQuality.FAIR),
            (5500, AirQuality.POOR),
            (5501, AirQuality.INFERIOR),
        ],
    )
    def test_bands(self, raw, expected):
        state = State(particulate_level=raw, power=PowerStatus.ON, mode=Mode.AUTO)
        assert self.config.air_quality(state) is expected

    def test_unknown_when_off(self):
        state = State(particulate_level=100, power=PowerStatus.OFF)
        assert self.config.air_quality(state) is AirQuality.UNKNOWN
