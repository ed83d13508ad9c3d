"""
Chunk recorder

Supervises one voice-gated capture process writing one chunk file.
Phase detection is a poll of the file size: sox writes nothing until
its silence effect opens the gate, so the first time the file passes
the minimum size the chunk is considered to be recording.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from seashell.chunks import AudioChunk
from seashell.config import AudioConfig, ChunkingConfig
from seashell.errors import CaptureRuntimeError, CaptureSpawnError
from seashell.events import RecorderExited
from seashell.process import spawn_process
from seashell.timers import Scheduler, Timer

logger = logging.getLogger(__name__)


class ListenerPhase(Enum):
    WAITING_FOR_VOICE = "listening"
    RECORDING = "recording"


def build_capture_command(audio: AudioConfig, path: Path, immediate: bool = False) -> List[str]:
    """
    Build the sox command line for one chunk

    Args:
        audio: Capture settings
        path: Chunk file to write
        immediate: Accept audio at once instead of waiting for voice

    Returns:
        argv list
    """
    argv = [audio.recorder]
    if audio.device:
        if audio.driver:
            argv += ["-t", audio.driver]
        argv.append(audio.device)
    else:
        argv.append("-d")

    argv += [
        "-r", str(audio.sample_rate),
        "-c", str(audio.channels),
        "-b", str(audio.bits),
        str(path),
    ]

    # silence <above-periods> <duration> <threshold> <below-periods> <duration> <threshold>
    if immediate:
        # 0% start threshold lets everything through
        argv += ["silence", "1", "0", "0%"]
    else:
        argv += ["silence", "1", str(audio.start_duration), audio.start_threshold]
    argv += ["1", str(audio.stop_duration), audio.stop_threshold]
    return argv


@dataclass
class ChunkOutcome:
    """What a closed recorder hands back to the controller"""
    chunk: AudioChunk
    has_audio: bool
    immediate_next: bool
    error: Optional[CaptureRuntimeError] = None


class ChunkRecorder:
    """
    One capture-process lifecycle

    All methods except the process exit callback run on the coordinator
    thread. The exit callback only posts RecorderExited; the controller
    then calls close() to collect the outcome.
    """

    def __init__(
        self,
        chunk: AudioChunk,
        audio_config: AudioConfig,
        chunking_config: ChunkingConfig,
        scheduler: Scheduler,
        post: Callable[[object], None],
        spawn=spawn_process,
        on_recording: Optional[Callable[["ChunkRecorder"], None]] = None,
    ):
        self.chunk = chunk
        self.audio_config = audio_config
        self.chunking_config = chunking_config
        self.scheduler = scheduler
        self.on_recording = on_recording
        self._post = post
        self._spawn = spawn

        self.phase = ListenerPhase.WAITING_FOR_VOICE
        self.immediate = False
        self.split_requested = False
        self.stopping = False
        self.closed = False

        self._handle = None
        self._poll_timer: Optional[Timer] = None
        self._max_timer: Optional[Timer] = None
        self._max_armed = False

    @property
    def alive(self) -> bool:
        return self._handle is not None and not self.closed

    @property
    def handle(self):
        return self._handle

    def start(self, immediate: bool = False) -> None:
        """
        Launch the capture process for this recorder's chunk

        Raises:
            CaptureSpawnError: If the recorder binary cannot be started
        """
        self.immediate = immediate
        argv = build_capture_command(self.audio_config, self.chunk.path, immediate)
        try:
            self._handle = self._spawn(argv, self._on_exit, name="recorder")
        except OSError as e:
            self.closed = True
            raise CaptureSpawnError(f"Recording failed: {e}") from e

        self.phase = ListenerPhase.RECORDING if immediate else ListenerPhase.WAITING_FOR_VOICE
        self._poll_timer = self.scheduler.call_every(
            self.chunking_config.poll_interval, self._poll
        )
        logger.debug(
            f"Chunk {self.chunk.id} capture started"
            f" ({'immediate' if immediate else 'voice-triggered'})"
        )

    def stop(self) -> None:
        """Signal the capture process to finish; close handling still runs"""
        if self.closed or self._handle is None:
            return
        self.stopping = True
        self.cancel_timers()
        self._handle.terminate()

    def cancel_timers(self) -> None:
        if self._poll_timer is not None:
            self._poll_timer.cancel()
            self._poll_timer = None
        if self._max_timer is not None:
            self._max_timer.cancel()
            self._max_timer = None

    def close(self, returncode: int, stderr: str = "") -> ChunkOutcome:
        """
        Collect the final state of the chunk after the process exited

        Args:
            returncode: Exit status of the capture process
            stderr: Diagnostic output of the capture process

        Returns:
            ChunkOutcome describing the closed chunk
        """
        self.cancel_timers()
        self.closed = True
        self.chunk.closed = True
        self.chunk.refresh_size()

        error = None
        signalled = self.stopping or (self._handle is not None and self._handle.signalled)
        if returncode != 0 and not signalled:
            detail = stderr.strip().splitlines()[-1] if stderr.strip() else f"exit status {returncode}"
            error = CaptureRuntimeError(f"Recording failed: {detail}")

        has_audio = self.chunk.has_content(self.chunking_config.min_chunk_bytes)
        logger.debug(
            f"Chunk {self.chunk.id} closed after {self.chunk.age():.1f}s:"
            f" {self.chunk.size_bytes} bytes,"
            f" returncode={returncode}, split={self.split_requested}"
        )
        return ChunkOutcome(
            chunk=self.chunk,
            has_audio=has_audio,
            immediate_next=self.split_requested,
            error=error,
        )

    def _on_exit(self, returncode: int, stdout: str, stderr: str) -> None:
        self._post(RecorderExited(recorder=self, returncode=returncode, stderr=stderr))

    def _poll(self) -> None:
        if self.closed:
            return
        if self.chunk.refresh_size() <= self.chunking_config.min_chunk_bytes:
            return

        if self.phase is ListenerPhase.WAITING_FOR_VOICE:
            self.phase = ListenerPhase.RECORDING
            logger.debug(f"Chunk {self.chunk.id} recording")
            if self.on_recording:
                self.on_recording(self)

        # Armed once per chunk, counted from the first audio seen
        if not self._max_armed:
            self._max_armed = True
            self._max_timer = self.scheduler.call_later(
                self.chunking_config.max_chunk_duration, self._on_max_duration
            )

    def _on_max_duration(self) -> None:
        self._max_timer = None
        if self.closed or self.stopping:
            return
        logger.debug(f"Chunk {self.chunk.id} reached max duration, splitting")
        self.split_requested = True
        self.stop()
