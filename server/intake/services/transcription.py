"""Streaming transcript aggregation."""
from __future__ import annotations

from typing import Sequence

from ..models.schemas import Speaker, TranscriptTurn


def merge(turns: Sequence[TranscriptTurn], text: str, speaker: Speaker) -> tuple[TranscriptTurn, ...]:
    """Fold a partial transcript fragment into the turn list.

    Same speaker as the last turn: that turn is replaced by a copy with the
    fragment appended. Different speaker (or no turns yet): a new turn is
    started. Empty text leaves the turns untouched.
    """

    current = tuple(turns)
    if not text:
        return current

    if current and current[-1].speaker == speaker:
        last = current[-1]
        return current[:-1] + (last.model_copy(update={"text": last.text + text}),)

    return current + (TranscriptTurn(speaker=speaker, text=text),)


class TranscriptAccumulator:
    """Holds the turns of one conversation."""

    def __init__(self) -> None:
        self._turns: tuple[TranscriptTurn, ...] = ()

    @property
    def turns(self) -> tuple[TranscriptTurn, ...]:
        return self._turns

    def add(self, text: str, speaker: Speaker) -> tuple[TranscriptTurn, ...]:
        self._turns = merge(self._turns, text, speaker)
        return self._turns

    def clear(self) -> None:
        self._turns = ()
