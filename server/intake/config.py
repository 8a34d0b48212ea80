"""Configuration helpers for the voice intake service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    return int(raw)


@dataclass
class Settings:
    """Centralized environment-driven configuration.

    Sample rates are fixed per direction and never negotiated with the remote
    service: microphone audio goes out at ``input_sample_rate`` and synthesized
    speech comes back at ``output_sample_rate``.
    """

    gemini_api_key: Optional[str] = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
    gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash-native-audio-preview-09-2025")
    gemini_voice: str = os.getenv("GEMINI_VOICE", "Kore")
    input_sample_rate: int = int(os.getenv("INPUT_SAMPLE_RATE", "16000"))
    output_sample_rate: int = int(os.getenv("OUTPUT_SAMPLE_RATE", "24000"))
    output_channels: int = int(os.getenv("OUTPUT_CHANNELS", "1"))
    capture_block_size: int = int(os.getenv("CAPTURE_BLOCK_SIZE", "4096"))
    volume_refresh_hz: float = float(os.getenv("VOLUME_REFRESH_HZ", "60"))
    # PortAudio device indexes; None picks the system default.
    input_device: Optional[int] = _optional_int("INPUT_DEVICE")
    output_device: Optional[int] = _optional_int("OUTPUT_DEVICE")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    host: str = os.getenv("HOST", "127.0.0.1")
    port: int = int(os.getenv("PORT", "8000"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached settings instance to avoid repeated environment reads."""

    return Settings()


settings = get_settings()
