"""
Chunk transcription using whisper.cpp

Each closed chunk gets its own recognition process. Jobs never wait on
each other or on capture; they report back to the coordinator when the
process exits.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from seashell.chunks import AudioChunk
from seashell.config import Config, TranscriptionConfig
from seashell.errors import RecognitionRuntimeError, RecognitionSpawnError
from seashell.events import JobExited
from seashell.process import spawn_process

logger = logging.getLogger(__name__)

_ANNOTATION = re.compile(r"\[.*?\]")
_WHITESPACE = re.compile(r"\s+")


class JobStatus(Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


def build_recognition_command(config: Config, audio_path: Path) -> List[str]:
    """
    Build the whisper-cli command line for one chunk

    Args:
        config: Full config (paths are resolved against the config directory)
        audio_path: Chunk file to transcribe

    Returns:
        argv list
    """
    tc = config.transcription
    argv = [
        str(config.resolve(tc.whisper_cli)),
        "-m", str(config.resolve(tc.model)),
    ]
    if tc.vad:
        argv += ["-vm", str(config.resolve(tc.vad_model)), "--vad"]
    argv += [
        "-f", str(audio_path),
        "-l", tc.language,
        "-t", str(tc.threads),
        "-nt",  # no timestamps
        "-np",  # no progress output
    ]
    return argv


def clean_transcript(output: str) -> str:
    """Strip bracketed annotations like [BLANK_AUDIO] and collapse whitespace"""
    text = _ANNOTATION.sub("", output)
    return _WHITESPACE.sub(" ", text).strip()


def classify_diagnostics(stderr: str, config: TranscriptionConfig) -> List[str]:
    """
    Pick the error-like lines out of whisper-cli's log output

    Lines mentioning model/VAD initialization are routine chatter and
    are suppressed even when they contain the word "error".

    Returns:
        Advisory messages, each trimmed to the configured length
    """
    advisories = []
    for line in stderr.splitlines():
        if "error" not in line.lower():
            continue
        if any(benign in line for benign in config.benign_diagnostics):
            continue
        advisories.append(line.strip()[: config.advisory_max_chars])
    return advisories


@dataclass
class JobResult:
    """Outcome of a finished transcription job"""
    chunk_id: int
    status: JobStatus
    text: Optional[str] = None
    error: Optional[Exception] = None
    advisories: List[str] = field(default_factory=list)


class TranscriptionJob:
    """
    One in-flight recognition task

    Owns the chunk's audio file from start() on and deletes it whatever
    the outcome.
    """

    def __init__(
        self,
        chunk: AudioChunk,
        config: Config,
        post: Callable[[object], None],
        delete_audio: Callable[[AudioChunk], None],
        spawn=spawn_process,
        clock: Callable[[], float] = time.time,
    ):
        self.chunk = chunk
        self.config = config
        self.status = JobStatus.RUNNING
        self.started_at: Optional[float] = None
        self._post = post
        self._delete_audio = delete_audio
        self._spawn = spawn
        self._clock = clock
        self._handle = None

    @property
    def chunk_id(self) -> int:
        return self.chunk.id

    def start(self) -> None:
        """
        Launch recognition for the chunk

        Raises:
            RecognitionSpawnError: If whisper-cli cannot be started; the
                chunk's audio has already been deleted
        """
        self.started_at = self._clock()
        argv = build_recognition_command(self.config, self.chunk.path)
        try:
            self._handle = self._spawn(argv, self._on_exit, name="whisper")
        except OSError as e:
            self.status = JobStatus.FAILED
            self._delete_audio(self.chunk)
            raise RecognitionSpawnError(f"Transcription failed: {e}") from e
        logger.debug(f"Transcribing chunk {self.chunk.id} ({self.chunk.size_bytes} bytes)")

    def finish(self, returncode: int, stdout: str, stderr: str) -> JobResult:
        """
        Turn the process output into a result and release the audio

        Returns:
            JobResult; text is None when nothing usable was recognized
        """
        self._delete_audio(self.chunk)
        advisories = classify_diagnostics(stderr, self.config.transcription)

        if returncode != 0:
            self.status = JobStatus.FAILED
            detail = advisories[0] if advisories else f"exit status {returncode}"
            error = RecognitionRuntimeError(f"Transcription failed: {detail}")
            return JobResult(self.chunk.id, self.status, error=error, advisories=advisories)

        self.status = JobStatus.SUCCEEDED
        text = clean_transcript(stdout)
        if len(text) <= 1:
            text = None

        if self.started_at is not None:
            elapsed = self._clock() - self.started_at
            logger.debug(f"Chunk {self.chunk.id} transcribed in {elapsed:.2f}s")

        return JobResult(self.chunk.id, self.status, text=text, advisories=advisories)

    def _on_exit(self, returncode: int, stdout: str, stderr: str) -> None:
        self._post(JobExited(job=self, returncode=returncode, stdout=stdout, stderr=stderr))
