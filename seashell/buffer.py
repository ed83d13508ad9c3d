"""
Running transcript assembly

Appends recognized segments to the session transcript and renders the
live status line.
"""

import logging
import re
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


def normalize_phrase(text: str) -> str:
    """Normalize text for comparison: lowercase, alphanumeric only"""
    return re.sub(r'[^a-z0-9]', '', text.lower().strip())


@dataclass
class Segment:
    """A single transcribed chunk with the time it was appended"""
    chunk_id: int
    text: str
    timestamp: datetime

    @classmethod
    def from_text(cls, chunk_id: int, text: str) -> "Segment":
        return cls(chunk_id=chunk_id, text=text, timestamp=datetime.now(timezone.utc).astimezone())


class TranscriptAssembler:
    """
    Append-only transcript built from job completions

    Ordering modes:
    - completion: segments are appended as jobs finish (jobs may finish
      out of capture order)
    - sequence: a segment waits until every earlier dispatched chunk has
      resolved, so the transcript follows capture order

    Only the coordinator thread mutates the assembler.
    """

    def __init__(self, ordering: str = "completion", discard_phrases: Optional[List[str]] = None):
        """
        Initialize assembler

        Args:
            ordering: "completion" or "sequence"
            discard_phrases: Phrases to drop (normalized matching)
        """
        if ordering not in ("completion", "sequence"):
            raise ValueError(f"unknown ordering: {ordering}")
        self.ordering = ordering
        self._segments: List[Segment] = []
        self._expected: Deque[int] = deque()
        self._resolved: Dict[int, Optional[str]] = {}

        self._discard_phrases: set = set()
        if discard_phrases:
            for phrase in discard_phrases:
                self._discard_phrases.add(normalize_phrase(phrase))

    @property
    def text(self) -> str:
        return " ".join(segment.text for segment in self._segments)

    @property
    def held(self) -> int:
        """Completions waiting on an earlier chunk (sequence mode)"""
        return len(self._resolved)

    def expect(self, chunk_id: int) -> None:
        """Register a dispatched chunk so sequence ordering can wait for it"""
        if self.ordering == "sequence":
            self._expected.append(chunk_id)

    def resolve(self, chunk_id: int, text: Optional[str]) -> List[Segment]:
        """
        Record the outcome of a chunk's transcription

        Args:
            chunk_id: Chunk the job transcribed
            text: Recognized text, or None if the job produced nothing or failed

        Returns:
            Segments appended to the transcript by this call
        """
        if text is not None and self._should_discard(text):
            logger.debug(f"Discarded phrase: {text!r}")
            text = None

        if self.ordering == "completion":
            return [self._append(chunk_id, text)] if text else []

        if chunk_id not in self._expected:
            logger.warning(f"Result for unexpected chunk {chunk_id}, appending")
            return [self._append(chunk_id, text)] if text else []

        self._resolved[chunk_id] = text
        appended = []
        while self._expected and self._expected[0] in self._resolved:
            next_id = self._expected.popleft()
            next_text = self._resolved.pop(next_id)
            if next_text:
                appended.append(self._append(next_id, next_text))
        return appended

    def clear(self) -> None:
        """Empty the transcript; chunks still in flight keep their place"""
        self._segments.clear()

    def _append(self, chunk_id: int, text: str) -> Segment:
        segment = Segment.from_text(chunk_id, text)
        self._segments.append(segment)
        logger.debug(f"Appended chunk {chunk_id}: {len(text)} chars")
        return segment

    def _should_discard(self, text: str) -> bool:
        if not self._discard_phrases:
            return False
        return normalize_phrase(text) in self._discard_phrases


def format_status(mode: str, phase: str, transcribing: int) -> str:
    """
    Render the status line from session state alone

    Args:
        mode: "active", "paused" or "exiting"
        phase: "listening" or "recording"
        transcribing: Number of running transcription jobs

    Returns:
        e.g. "● Recording + ◐ Transcribing (2)"
    """
    if mode == "paused":
        return "⏸ Paused"
    if mode == "exiting":
        return "Exiting"

    status = "● Recording" if phase == "recording" else "◉ Listening"
    if transcribing > 0:
        status += " + ◐ Transcribing"
        if transcribing > 1:
            status += f" ({transcribing})"
    return status
