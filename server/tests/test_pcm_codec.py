from __future__ import annotations

import base64

import numpy as np
import pytest

from intake.errors import DecodeError
from intake.services.pcm_codec import (
    AudioBuffer,
    create_media_chunk,
    decode_audio,
    encode_pcm16,
)


def test_encode_clamps_and_scales_to_int16():
    pcm = encode_pcm16([0.0, 0.5, -0.5, 1.0, -1.0, 2.0, -3.0])
    values = np.frombuffer(pcm, dtype="<i2").tolist()
    assert values == [0, 16384, -16384, 32767, -32768, 32767, -32768]
    assert len(pcm) == 7 * 2


def test_encode_truncates_toward_zero():
    # 0.00004 * 32768 = 1.31 -> 1
    values = np.frombuffer(encode_pcm16([0.00004, -0.00004]), dtype="<i2").tolist()
    assert values == [1, -1]


def test_round_trip_stays_within_one_quantization_step():
    rng = np.random.default_rng(7)
    samples = rng.uniform(-0.999, 0.999, size=4096).astype(np.float32)

    buffer = decode_audio(encode_pcm16(samples), sample_rate=16_000)

    assert buffer.samples.dtype == np.float32
    assert buffer.samples.shape == (4096, 1)
    assert np.max(np.abs(buffer.samples[:, 0] - samples)) <= 1 / 32768


def test_decode_accepts_base64_text_and_raw_bytes():
    pcm = np.array([0, 8192, -8192, 32767], dtype="<i2").tobytes()

    from_text = decode_audio(base64.b64encode(pcm).decode("ascii"), sample_rate=24_000)
    from_bytes = decode_audio(pcm, sample_rate=24_000)

    np.testing.assert_array_equal(from_text.samples, from_bytes.samples)
    assert from_text.samples[:, 0].tolist() == pytest.approx([0.0, 0.25, -0.25, 32767 / 32768])


def test_decode_splits_interleaved_channels():
    pcm = np.array([100, -100, 200, -200, 300, -300], dtype="<i2").tobytes()

    buffer = decode_audio(pcm, sample_rate=24_000, channels=2)

    assert buffer.frames == 3
    assert buffer.channels == 2
    assert np.all(buffer.samples[:, 0] > 0)
    assert np.all(buffer.samples[:, 1] < 0)


def test_decode_rejects_malformed_base64():
    with pytest.raises(DecodeError):
        decode_audio("not*base64!", sample_rate=24_000)


def test_decode_rejects_partial_frames():
    with pytest.raises(DecodeError):
        decode_audio(b"\x00\x00\x01", sample_rate=24_000)
    with pytest.raises(DecodeError):
        decode_audio(b"\x00\x00\x01\x00\x02\x00", sample_rate=24_000, channels=2)


def test_decode_error_is_a_value_error():
    with pytest.raises(ValueError):
        decode_audio(b"\x00", sample_rate=24_000)


def test_media_chunk_carries_rate_in_mime_type():
    samples = np.array([0.0, 0.25, -0.25], dtype=np.float32)

    chunk = create_media_chunk(samples, 16_000)

    assert chunk.mime_type == "audio/pcm;rate=16000"
    assert base64.b64decode(chunk.data) == encode_pcm16(samples)
    assert chunk.model_dump(by_alias=True) == {"data": chunk.data, "mimeType": "audio/pcm;rate=16000"}


def test_buffer_duration_follows_sample_rate():
    buffer = AudioBuffer(np.zeros((12_000, 1), dtype=np.float32), 24_000)
    assert buffer.duration == pytest.approx(0.5)


def test_decode_accepts_url_safe_alphabet():
    pcm = bytes([0xFB, 0xFF, 0xFF, 0xFF])
    standard = base64.b64encode(pcm).decode("ascii")
    url_safe = base64.urlsafe_b64encode(pcm).decode("ascii")
    assert standard != url_safe

    np.testing.assert_array_equal(
        decode_audio(url_safe, sample_rate=24_000).samples,
        decode_audio(standard, sample_rate=24_000).samples,
    )
