from __future__ import annotations

import asyncio
import base64
from contextlib import asynccontextmanager
from typing import Any, Callable, Optional

import numpy as np
import pytest

from intake.config import Settings
from intake.services.pcm_codec import AudioBuffer
from intake.services.realtime_voice import SessionCallbacks, VoiceSession

_CLOSE = object()

TICKET_CALL = {
    "toolCall": {
        "functionCalls": [
            {
                "id": "call-1",
                "name": "submitTicket",
                "args": {
                    "name": "Ana",
                    "email": "ana@maipu.cl",
                    "municipality": "Maipú",
                    "system": "Permisos de Circulación",
                    "issueDescription": "No puede ingresar",
                },
            }
        ]
    }
}


class FakeHandle:
    def __init__(self, buffer: AudioBuffer, start_at: float, on_ended: Callable[[], None]) -> None:
        self.buffer = buffer
        self.start_at = start_at
        self.end_at = start_at + buffer.duration
        self.on_ended = on_ended
        self.stopped = False

    def stop(self) -> None:
        self.stopped = True

    def finish(self) -> None:
        self.on_ended()


class FakeSink:
    """Output device whose clock only moves when a test sets ``now``."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now
        self.handles: list[FakeHandle] = []

    @property
    def current_time(self) -> float:
        return self.now

    def play(self, buffer: AudioBuffer, start_at: float, on_ended: Callable[[], None]) -> FakeHandle:
        handle = FakeHandle(buffer, start_at, on_ended)
        self.handles.append(handle)
        return handle

    def level(self) -> float:
        return 0.0


class FakeMicrophone:
    def __init__(self) -> None:
        self._queue: asyncio.Queue[np.ndarray] = asyncio.Queue()

    def push(self, samples: Any) -> None:
        self._queue.put_nowait(np.asarray(samples, dtype=np.float32))

    async def chunks(self):
        while True:
            yield await self._queue.get()


class FakeChannel:
    """Scripted live channel; stays open until closed or broken by the test."""

    def __init__(self) -> None:
        self.sent: list[Any] = []
        self.send_error: Optional[Exception] = None
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()

    async def send(self, message: Any) -> None:
        if self.send_error is not None:
            raise self.send_error
        self.sent.append(message)

    def push(self, payload: dict[str, Any]) -> None:
        self._inbox.put_nowait(payload)

    def close_remote(self) -> None:
        self._inbox.put_nowait(_CLOSE)

    def break_with(self, error: Exception) -> None:
        self._inbox.put_nowait(error)

    async def receive(self):
        while True:
            item = await self._inbox.get()
            if item is _CLOSE:
                return
            if isinstance(item, Exception):
                raise item
            yield item


class FakeDevices:
    """Factories for a ``VoiceSession`` that record open/close order."""

    def __init__(self) -> None:
        self.sink = FakeSink()
        self.microphone = FakeMicrophone()
        self.channel = FakeChannel()
        self.opened: list[str] = []
        self.closed: list[str] = []
        self.errors: dict[str, Exception] = {}
        self.gates: dict[str, asyncio.Event] = {}

    def factory(self, name: str, resource: Any) -> Callable[[], Any]:
        @asynccontextmanager
        async def _open():
            gate = self.gates.get(name)
            if gate is not None:
                await gate.wait()
            error = self.errors.get(name)
            if error is not None:
                raise error
            self.opened.append(name)
            try:
                yield resource
            finally:
                self.closed.append(name)

        return _open

    def session(self, callbacks: Optional[SessionCallbacks] = None, **kwargs: Any) -> VoiceSession:
        return VoiceSession(
            callbacks,
            settings=Settings(),
            speaker_factory=self.factory("speaker", self.sink),
            microphone_factory=self.factory("microphone", self.microphone),
            channel_factory=self.factory("channel", self.channel),
            **kwargs,
        )


class Recorder:
    """Collects session callbacks (volume levels kept separately)."""

    def __init__(self) -> None:
        self.events: list[tuple[Any, ...]] = []
        self.volumes: list[float] = []

    def callbacks(self) -> SessionCallbacks:
        return SessionCallbacks(
            on_connect=lambda: self.events.append(("connect",)),
            on_disconnect=lambda: self.events.append(("disconnect",)),
            on_error=lambda error: self.events.append(("error", error)),
            on_volume_change=self.volumes.append,
            on_transcription=lambda text, is_user, is_final: self.events.append(
                ("transcription", text, is_user, is_final)
            ),
            on_ticket_submitted=lambda ticket: self.events.append(("ticket", ticket)),
        )

    def names(self) -> list[str]:
        return [event[0] for event in self.events]


async def settle(rounds: int = 25) -> None:
    """Let session tasks process whatever is queued."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def audio_payload(frames: int, value: float = 0.25) -> dict[str, Any]:
    pcm = np.full(frames, int(value * 32768), dtype="<i2").tobytes()
    return {
        "serverContent": {
            "modelTurn": {
                "parts": [
                    {"inlineData": {"data": base64.b64encode(pcm).decode("ascii"), "mimeType": "audio/pcm;rate=24000"}}
                ]
            }
        }
    }


def make_buffer(seconds: float, sample_rate: int = 24_000) -> AudioBuffer:
    frames = int(round(seconds * sample_rate))
    return AudioBuffer(np.zeros((frames, 1), dtype=np.float32), sample_rate)


@pytest.fixture
def devices() -> FakeDevices:
    return FakeDevices()


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()
