"""
Tests for the variant addressing feature flag.
"""
import pytest

from shopadmin.core.feature_flags import (
    AddressingMode,
    FeatureFlagGate,
    parse_flag_value,
)

ENV_VAR = "SHOPADMIN_TEST_VARIANT_FLAG"


@pytest.fixture
def gate(monkeypatch) -> FeatureFlagGate:
    monkeypatch.delenv(ENV_VAR, raising=False)
    return FeatureFlagGate(env_var=ENV_VAR, default=False)


class TestFlagParsing:

    @pytest.mark.parametrize("raw", ["1", "true", "TRUE", " yes ", "on"])
    def test_truthy(self, raw):
        assert parse_flag_value(raw) is True

    @pytest.mark.parametrize("raw", ["0", "false", "no", "off", ""])
    def test_falsy(self, raw):
        assert parse_flag_value(raw) is False

    def test_unrecognised(self):
        assert parse_flag_value("maybe") is None
        assert parse_flag_value(None) is None


class TestFeatureFlagGate:

    def test_defaults_to_legacy(self, gate):
        assert gate.is_label_mode_enabled() is False
        assert gate.addressing_mode() is AddressingMode.LEGACY
        assert gate.source() == "settings"

    def test_reads_environment_on_every_call(self, gate, monkeypatch):
        monkeypatch.setenv(ENV_VAR, "true")
        assert gate.is_label_mode_enabled() is True

        monkeypatch.setenv(ENV_VAR, "false")
        assert gate.is_label_mode_enabled() is False

        monkeypatch.setenv(ENV_VAR, "1")
        assert gate.addressing_mode() is AddressingMode.LABEL
        assert gate.source() == "environment"

    def test_unparsable_value_means_legacy(self, gate, monkeypatch):
        monkeypatch.setenv(ENV_VAR, "sometimes")
        assert gate.is_label_mode_enabled() is False

    def test_override_beats_environment(self, gate, monkeypatch):
        monkeypatch.setenv(ENV_VAR, "false")
        gate.set_override(True)

        assert gate.is_label_mode_enabled() is True
        assert gate.source() == "override"

        gate.clear_override()
        assert gate.is_label_mode_enabled() is False
        assert gate.override is None

    def test_settings_default_used_when_env_unset(self, monkeypatch):
        monkeypatch.delenv(ENV_VAR, raising=False)
        gate = FeatureFlagGate(env_var=ENV_VAR, default=True)
        assert gate.is_label_mode_enabled() is True

    def test_mode_from_flag(self):
        assert AddressingMode.from_flag(True) is AddressingMode.LABEL
        assert AddressingMode.from_flag(False) is AddressingMode.LEGACY
