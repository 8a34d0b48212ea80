"""Gapless playback scheduling for streamed assistant audio."""
from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from .pcm_codec import AudioBuffer

logger = logging.getLogger(__name__)


class PlaybackHandle(Protocol):
    def stop(self) -> None: ...


class AudioSink(Protocol):
    """Output device with its own sample clock."""

    @property
    def current_time(self) -> float: ...

    def play(
        self,
        buffer: AudioBuffer,
        start_at: float,
        on_ended: Callable[[], None],
    ) -> PlaybackHandle: ...


class PlaybackScheduler:
    """Queue decoded buffers back-to-back on the sink's clock.

    Each buffer starts at ``max(cursor, now)`` and pushes the cursor to its own
    end, so buffers never overlap and play without gaps while delivery keeps
    pace. When delivery stalls the cursor falls behind the clock and the next
    buffer simply starts "now".
    """

    def __init__(self, sink: AudioSink) -> None:
        self._sink = sink
        self._cursor = sink.current_time
        self._live: set[PlaybackHandle] = set()

    @property
    def cursor(self) -> float:
        return self._cursor

    @property
    def live_count(self) -> int:
        return len(self._live)

    def schedule(self, buffer: AudioBuffer) -> Optional[float]:
        """Schedule ``buffer`` and return its start time (None if empty)."""

        if buffer.frames == 0:
            return None

        start_at = max(self._cursor, self._sink.current_time)

        def _ended() -> None:
            self._live.discard(handle)

        handle = self._sink.play(buffer, start_at, _ended)
        self._live.add(handle)
        self._cursor = start_at + buffer.duration
        return start_at

    def interrupt(self) -> int:
        """Stop everything queued or playing and rewind the cursor to now."""

        stopped = self.stop_all()
        self._cursor = self._sink.current_time
        return stopped

    def stop_all(self) -> int:
        handles = list(self._live)
        self._live.clear()
        for handle in handles:
            try:
                handle.stop()
            except Exception:
                logger.exception("Failed to stop playback buffer")
        return len(handles)
