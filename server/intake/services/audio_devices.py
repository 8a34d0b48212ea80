"""Local microphone capture and speaker output on top of PortAudio.

``sounddevice`` is imported lazily so the rest of the package (and its tests)
work on machines without PortAudio. PortAudio callbacks run on the audio
thread; they only hand data back to the event loop through
``loop.call_soon_threadsafe``.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional

import numpy as np

from ..errors import AcquisitionError
from .pcm_codec import AudioBuffer

logger = logging.getLogger(__name__)

# Matches the analyser the volume meter imitates (Web Audio AnalyserNode defaults).
FFT_SIZE = 256
MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0


def _import_sounddevice() -> Any:
    """Import sounddevice, raising a clear error if missing."""
    try:
        import sounddevice as _sd

        return _sd
    except (ImportError, OSError) as exc:
        raise AcquisitionError(
            "sounddevice (and the PortAudio library) is required for local audio I/O"
        ) from exc


def frequency_level(samples: np.ndarray, fft_size: int = FFT_SIZE) -> float:
    """Average byte-scaled spectrum magnitude of the latest samples (0-255).

    Mirrors ``AnalyserNode.getByteFrequencyData`` followed by a mean over the
    bins, which is what the UI visualizer expects.
    """

    window = np.zeros(fft_size, dtype=np.float64)
    tail = np.asarray(samples, dtype=np.float64).reshape(-1)[-fft_size:]
    window[fft_size - tail.size:] = tail

    spectrum = np.fft.rfft(window * np.blackman(fft_size))[: fft_size // 2]
    magnitude = np.abs(spectrum) / fft_size
    decibels = 20.0 * np.log10(np.maximum(magnitude, 1e-12))
    scaled = 255.0 * (decibels - MIN_DECIBELS) / (MAX_DECIBELS - MIN_DECIBELS)
    return float(np.clip(np.floor(scaled), 0, 255).mean())


class MicrophoneInput:
    """Captures fixed-size mono float32 chunks into an asyncio queue."""

    def __init__(self, *, sample_rate: int, block_size: int, device: Optional[int] = None) -> None:
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.device = device
        self._queue: asyncio.Queue[np.ndarray] = asyncio.Queue()
        self._stream: Any = None

    def start(self) -> None:
        sd = _import_sounddevice()
        loop = asyncio.get_running_loop()
        queue = self._queue

        def _audio_callback(indata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
            if status:
                logger.warning("Mic status: %s", status)
            chunk = indata[:, 0].copy()
            if not loop.is_closed():
                loop.call_soon_threadsafe(queue.put_nowait, chunk)

        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                blocksize=self.block_size,
                channels=1,
                dtype="float32",
                device=self.device,
                callback=_audio_callback,
            )
            stream.start()
        except Exception as exc:
            raise AcquisitionError(f"Microphone unavailable: {exc}") from exc

        self._stream = stream
        logger.info("Mic capture started: rate=%d, block=%d", self.sample_rate, self.block_size)

    async def chunks(self) -> AsyncIterator[np.ndarray]:
        """Yield captured chunks in capture order."""
        while True:
            yield await self._queue.get()

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        except Exception:
            logger.warning("Error stopping mic stream", exc_info=True)
        finally:
            stream.close()
        logger.info("Mic capture stopped")


class _Voice:
    """One buffer scheduled on the speaker timeline."""

    __slots__ = ("samples", "start_frame", "end_frame", "on_ended", "stopped")

    def __init__(self, samples: np.ndarray, start_frame: int, on_ended: Callable[[], None]) -> None:
        self.samples = samples
        self.start_frame = start_frame
        self.end_frame = start_frame + samples.shape[0]
        self.on_ended = on_ended
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True


def _fit_channels(samples: np.ndarray, channels: int) -> np.ndarray:
    if samples.shape[1] == channels:
        return samples
    if samples.shape[1] == 1:
        return np.repeat(samples, channels, axis=1)
    mono = samples.mean(axis=1, keepdims=True)
    return mono if channels == 1 else np.repeat(mono, channels, axis=1)


class SpeakerOutput:
    """Mixes scheduled buffers onto the output device.

    The clock is the number of frames rendered so far, so ``current_time``
    advances exactly as fast as the device consumes audio. ``render`` is the
    PortAudio callback body and can be driven directly without a device.
    """

    def __init__(
        self,
        *,
        sample_rate: int,
        channels: int = 1,
        device: Optional[int] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device
        self._loop = loop or asyncio.get_running_loop()
        self._lock = threading.Lock()
        self._voices: list[_Voice] = []
        self._frames_rendered = 0
        self._recent = np.zeros(FFT_SIZE, dtype=np.float32)
        self._stream: Any = None

    @property
    def current_time(self) -> float:
        return self._frames_rendered / self.sample_rate

    def play(self, buffer: AudioBuffer, start_at: float, on_ended: Callable[[], None]) -> _Voice:
        voice = _Voice(
            _fit_channels(buffer.samples, self.channels),
            int(round(start_at * self.sample_rate)),
            on_ended,
        )
        with self._lock:
            # A start time already rendered past plays from now, head intact.
            if voice.start_frame < self._frames_rendered:
                voice.start_frame = self._frames_rendered
                voice.end_frame = voice.start_frame + voice.samples.shape[0]
            self._voices.append(voice)
        return voice

    def level(self) -> float:
        return frequency_level(self._recent)

    def render(self, frames: int) -> np.ndarray:
        """Produce the next ``frames`` of mixed output and advance the clock."""

        out = np.zeros((frames, self.channels), dtype=np.float32)
        finished: list[_Voice] = []
        with self._lock:
            block_start = self._frames_rendered
            block_end = block_start + frames
            remaining: list[_Voice] = []
            for voice in self._voices:
                if voice.stopped:
                    finished.append(voice)
                    continue
                lo = max(voice.start_frame, block_start)
                hi = min(voice.end_frame, block_end)
                if lo < hi:
                    out[lo - block_start:hi - block_start] += voice.samples[
                        lo - voice.start_frame:hi - voice.start_frame
                    ]
                if voice.end_frame <= block_end:
                    finished.append(voice)
                else:
                    remaining.append(voice)
            self._voices = remaining
            self._frames_rendered = block_end

        np.clip(out, -1.0, 1.0, out=out)
        self._recent = np.concatenate((self._recent, out[:, 0]))[-FFT_SIZE:]

        if finished and not self._loop.is_closed():
            for voice in finished:
                self._loop.call_soon_threadsafe(voice.on_ended)
        return out

    def start(self) -> None:
        sd = _import_sounddevice()

        def _output_callback(outdata: np.ndarray, frames: int, time_info: Any, status: Any) -> None:
            if status:
                logger.debug("Speaker status: %s", status)
            outdata[:] = self.render(frames)

        try:
            stream = sd.OutputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="float32",
                device=self.device,
                callback=_output_callback,
            )
            stream.start()
        except Exception as exc:
            raise AcquisitionError(f"Audio output unavailable: {exc}") from exc

        self._stream = stream
        logger.info("Speaker output started: rate=%d, channels=%d", self.sample_rate, self.channels)

    def close(self) -> None:
        with self._lock:
            for voice in self._voices:
                voice.stopped = True
            self._voices = []
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.abort()
        except Exception:
            logger.warning("Error aborting speaker stream", exc_info=True)
        finally:
            stream.close()
        logger.info("Speaker output stopped")


@asynccontextmanager
async def open_microphone(
    *, sample_rate: int, block_size: int, device: Optional[int] = None
) -> AsyncIterator[MicrophoneInput]:
    microphone = MicrophoneInput(sample_rate=sample_rate, block_size=block_size, device=device)
    microphone.start()
    try:
        yield microphone
    finally:
        microphone.close()


@asynccontextmanager
async def open_speaker(
    *, sample_rate: int, channels: int = 1, device: Optional[int] = None
) -> AsyncIterator[SpeakerOutput]:
    speaker = SpeakerOutput(sample_rate=sample_rate, channels=channels, device=device)
    speaker.start()
    try:
        yield speaker
    finally:
        speaker.close()
