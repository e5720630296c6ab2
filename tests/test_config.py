"""Tests for settings validation, presets and derived values."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from attestor.config import PRESETS, Settings, get_settings


class TestDefaults:
    def test_default_schedule(self) -> None:
        s = Settings()
        assert s.tick_secs == 30
        assert s.window_secs == 600
        assert s.window_samples == 20
        assert s.buffer_capacity == 20
        assert s.grace_period_secs < s.max_staleness_secs
        assert s.threshold_fraction == 0.95
        assert s.partial_batches is False
        assert s.poster_mode == "mock"
        assert s.max_clock_skew_secs == 30
        assert s.prover_verify_key_hex == ""

    def test_explicit_capacity(self) -> None:
        s = Settings(ring_capacity=288)
        assert s.buffer_capacity == 288

    def test_salt_and_namespace_bytes(self) -> None:
        s = Settings(bitmap_salt="ABCD", namespace="0102")
        assert s.salt_bytes == b"\xab\xcd"
        assert s.namespace_bytes == b"\x01\x02"


class TestPresets:
    @pytest.mark.parametrize("name", sorted(PRESETS))
    def test_preset_applies(self, name: str) -> None:
        s = Settings(preset=name)
        assert s.tick_secs == PRESETS[name]["tick_secs"]
        assert s.window_secs == PRESETS[name]["window_secs"]

    def test_explicit_value_overrides_preset(self) -> None:
        s = Settings(preset="hourly", window_secs=1800)
        assert s.tick_secs == 60
        assert s.window_secs == 1800

    def test_unknown_preset(self) -> None:
        with pytest.raises(ValidationError, match="unknown preset"):
            Settings(preset="weekly")

    def test_preset_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ATTESTOR_PRESET", "fast")
        s = Settings()
        assert s.window_samples == 2


class TestValidation:
    def test_window_must_be_multiple_of_tick(self) -> None:
        with pytest.raises(ValidationError, match="multiple of tick_secs"):
            Settings(tick_secs=30, window_secs=100)

    def test_grace_must_be_below_staleness(self) -> None:
        with pytest.raises(ValidationError, match="grace_period_secs"):
            Settings(grace_period_secs=120, max_staleness_secs=120)

    def test_capacity_must_hold_a_window(self) -> None:
        with pytest.raises(ValidationError, match="ring_capacity"):
            Settings(ring_capacity=5)

    def test_threshold_fraction_range(self) -> None:
        with pytest.raises(ValidationError):
            Settings(threshold_fraction=0)
        with pytest.raises(ValidationError):
            Settings(threshold_fraction=1.5)

    def test_bad_modes(self) -> None:
        with pytest.raises(ValidationError):
            Settings(poster_mode="celestia")
        with pytest.raises(ValidationError):
            Settings(proof_mode="groth16")

    def test_namespace_must_be_short_hex(self) -> None:
        with pytest.raises(ValidationError):
            Settings(namespace="zz")
        with pytest.raises(ValidationError):
            Settings(namespace="00" * 11)

    def test_zero_tick_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(tick_secs=0)


class TestGetSettings:
    @pytest.fixture(autouse=True)
    def _fresh_cache(self):
        get_settings.cache_clear()
        yield
        get_settings.cache_clear()

    def test_invalid_environment_fails_on_first_use(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ATTESTOR_WINDOW_SECS", "100")
        with pytest.raises(ValidationError, match="multiple of tick_secs"):
            get_settings()

    def test_cached(self) -> None:
        assert get_settings() is get_settings()
