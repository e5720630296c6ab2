from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Named tick/window pairs. Explicitly set values win over a preset.
PRESETS: dict[str, dict[str, int]] = {
    "standard": {"tick_secs": 30, "window_secs": 600},
    "hourly": {"tick_secs": 60, "window_secs": 3600},
    "fast": {"tick_secs": 30, "window_secs": 60},
}

POSTER_MODES = ("mock", "real")
PROOF_MODES = ("mock", "signed")

MAX_NAMESPACE_BYTES = 10


class Settings(BaseSettings):
    """Central configuration loaded from environment / .env file."""

    model_config = SettingsConfigDict(
        env_prefix="ATTESTOR_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    preset: str = ""

    # Sampling
    tick_secs: int = 30
    max_staleness_secs: int = 120
    grace_period_secs: int = 45  # inclusive: age <= grace passes
    min_increment: int = 1
    require_sampled_count_advance: bool = True
    max_clock_skew_secs: int = 30  # observations dated further ahead are rejected

    # Batching
    window_secs: int = 600
    threshold_fraction: float = 0.95
    ring_capacity: int = 0  # 0 = one window (window_secs // tick_secs)
    partial_batches: bool = False
    bitmap_salt: str = ""  # hex

    # Ledger
    namespace: str = "757074696d65"  # hex, "uptime"
    poster_mode: str = "mock"
    post_every_sample: bool = True
    ledger_url: str = "http://localhost:26658"
    ledger_auth_token: str = ""
    ledger_timeout_secs: float = 30.0
    post_retry_attempts: int = 4
    post_backoff_secs: float = 1.0
    post_backoff_max_secs: float = 30.0

    # Proofs / signing (hex-encoded 32-byte ed25519 seeds; empty = ephemeral)
    proofs_enabled: bool = True
    proof_mode: str = "mock"
    signing_key_hex: str = ""
    prover_key_hex: str = ""
    prover_verify_key_hex: str = ""  # public key for checking stored signed proofs

    # Runtime
    data_dir: str = "data"
    shutdown_grace_secs: float = 10.0
    alert_webhook_url: str = ""

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 4318

    # Logging
    log_level: str = "INFO"

    @model_validator(mode="before")
    @classmethod
    def _apply_preset(cls, data: object) -> object:
        if not isinstance(data, dict):
            return data
        name = data.get("preset") or ""
        if not name:
            return data
        if name not in PRESETS:
            raise ValueError(f"unknown preset {name!r} (expected one of {sorted(PRESETS)})")
        merged = dict(PRESETS[name])
        merged.update({k: v for k, v in data.items() if v is not None})
        return merged

    @field_validator("tick_secs", "window_secs", "max_staleness_secs", "min_increment")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("grace_period_secs", "post_retry_attempts", "max_clock_skew_secs")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @field_validator("threshold_fraction")
    @classmethod
    def _fraction_range(cls, v: float) -> float:
        if not 0 < v <= 1:
            raise ValueError("threshold_fraction must be in (0, 1]")
        return v

    @field_validator("poster_mode")
    @classmethod
    def _poster_mode(cls, v: str) -> str:
        if v not in POSTER_MODES:
            raise ValueError(f"poster_mode must be one of {POSTER_MODES}")
        return v

    @field_validator("proof_mode")
    @classmethod
    def _proof_mode(cls, v: str) -> str:
        if v not in PROOF_MODES:
            raise ValueError(f"proof_mode must be one of {PROOF_MODES}")
        return v

    @field_validator("namespace")
    @classmethod
    def _namespace_hex(cls, v: str) -> str:
        raw = _decode_hex(v, "namespace")
        if not 0 < len(raw) <= MAX_NAMESPACE_BYTES:
            raise ValueError(f"namespace must be 1..{MAX_NAMESPACE_BYTES} bytes")
        return v.lower()

    @field_validator("bitmap_salt", "signing_key_hex", "prover_key_hex", "prover_verify_key_hex")
    @classmethod
    def _optional_hex(cls, v: str) -> str:
        _decode_hex(v, "value")
        return v.lower()

    @model_validator(mode="after")
    def _check_schedule(self) -> "Settings":
        if self.window_secs % self.tick_secs != 0:
            raise ValueError(
                f"window_secs ({self.window_secs}) must be a multiple of tick_secs ({self.tick_secs})"
            )
        if self.grace_period_secs >= self.max_staleness_secs:
            raise ValueError("grace_period_secs must be < max_staleness_secs")
        if self.ring_capacity and self.ring_capacity < self.window_samples:
            raise ValueError(
                f"ring_capacity ({self.ring_capacity}) must hold one window ({self.window_samples} samples)"
            )
        return self

    # ── Derived values ───────────────────────────────────────────────────

    @property
    def window_samples(self) -> int:
        """Samples per window (k = window_secs / tick_secs)."""
        return self.window_secs // self.tick_secs

    @property
    def buffer_capacity(self) -> int:
        return self.ring_capacity or self.window_samples

    @property
    def salt_bytes(self) -> bytes:
        return bytes.fromhex(self.bitmap_salt)

    @property
    def namespace_bytes(self) -> bytes:
        return bytes.fromhex(self.namespace)


def _decode_hex(value: str, what: str) -> bytes:
    try:
        return bytes.fromhex(value)
    except ValueError as e:
        raise ValueError(f"{what} must be hex-encoded: {e}") from e


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, built on first use so import never validates."""
    return Settings()
