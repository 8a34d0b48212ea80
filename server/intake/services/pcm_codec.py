"""PCM16 conversion helpers for realtime audio transport.

Samples travel as float32 in ``[-1, 1]`` inside the process and as 16-bit
signed little-endian PCM on the wire, wrapped in base64 so they fit in
text-framed messages.
"""
from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Union

import numpy as np
from numpy.typing import ArrayLike

from ..errors import DecodeError
from ..models.schemas import MediaChunk

_PCM16 = np.dtype("<i2")
_SCALE = 32768.0
# Live SDK dumps bytes with the URL-safe alphabet.
_URLSAFE = str.maketrans("-_", "+/")


@dataclass(frozen=True)
class AudioBuffer:
    """Decoded float32 samples shaped ``(frames, channels)``."""

    samples: np.ndarray
    sample_rate: int

    @property
    def frames(self) -> int:
        return int(self.samples.shape[0])

    @property
    def channels(self) -> int:
        return int(self.samples.shape[1])

    @property
    def duration(self) -> float:
        """Length in seconds."""
        return self.frames / self.sample_rate


def encode_pcm16(samples: ArrayLike) -> bytes:
    """Convert float samples to PCM16 little-endian bytes.

    Values are clamped to ``[-1, 1]`` and truncated toward zero after scaling.
    """

    data = np.asarray(samples, dtype=np.float64).reshape(-1)
    scaled = np.clip(np.clip(data, -1.0, 1.0) * _SCALE, -32768, 32767)
    return scaled.astype(_PCM16).tobytes()


def encode_base64(pcm: bytes) -> str:
    return base64.b64encode(pcm).decode("ascii")


def decode_base64(data: Union[str, bytes]) -> bytes:
    """Strictly decode standard or URL-safe base64, raising ``DecodeError`` on malformed input."""

    if isinstance(data, bytes):
        data = data.decode("ascii", errors="replace")
    try:
        data = data.translate(_URLSAFE)
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise DecodeError(f"Malformed base64 audio payload: {exc}") from exc


def create_media_chunk(samples: ArrayLike, sample_rate: int) -> MediaChunk:
    """Encode a captured chunk into the realtime media payload."""

    return MediaChunk(
        data=encode_base64(encode_pcm16(samples)),
        mime_type=f"audio/pcm;rate={sample_rate}",
    )


def decode_audio(payload: Union[str, bytes], sample_rate: int, channels: int = 1) -> AudioBuffer:
    """Decode PCM16 (raw bytes or base64 text) into float32 samples.

    Interleaved multi-channel data is split into columns. Raises
    ``DecodeError`` if the payload is not valid base64 or does not contain a
    whole number of frames.
    """

    if channels < 1:
        raise ValueError("channels must be >= 1")

    pcm = decode_base64(payload) if isinstance(payload, str) else bytes(payload)
    frame_bytes = _PCM16.itemsize * channels
    if len(pcm) % frame_bytes:
        raise DecodeError(
            f"PCM16 payload of {len(pcm)} bytes is not a whole number of {channels}-channel frames"
        )

    ints = np.frombuffer(pcm, dtype=_PCM16)
    samples = (ints.astype(np.float32) / np.float32(_SCALE)).reshape(-1, channels)
    return AudioBuffer(samples=samples, sample_rate=sample_rate)
