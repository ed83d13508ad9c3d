"""
Session coordinator

A single thread owns all session state. Capture and recognition run in
external processes; their exits, and user commands from other threads,
arrive as messages on one queue. Timers (chunk polling, max duration,
restart backoff, advisory expiry) fire from the same loop, so nothing
here needs a lock.

The one rule everything else serves: a finished chunk is handed to a
transcription job and the next capture starts right away, without
waiting for that job.
"""

import logging
import queue
from concurrent.futures import Future
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from seashell.buffer import Segment, TranscriptAssembler, format_status
from seashell.chunks import AudioChunk, ChunkStore
from seashell.config import Config
from seashell.errors import CaptureError, CaptureSpawnError, RecognitionSpawnError
from seashell.events import Advisory, Command, JobExited, RecorderExited
from seashell.process import spawn_process
from seashell.recorder import ChunkRecorder, ListenerPhase
from seashell.timers import Scheduler, Timer
from seashell.transcriber import TranscriptionJob

logger = logging.getLogger(__name__)

COMMANDS = ("toggle", "pause", "resume", "copy", "clear", "quit", "status", "transcript")
READ_ONLY_COMMANDS = ("status", "transcript")


class Mode(Enum):
    ACTIVE = "active"
    PAUSED = "paused"
    EXITING = "exiting"


@dataclass
class SessionState:
    """Process-wide session state, mutated only by SessionController"""
    mode: Mode = Mode.ACTIVE
    listener_phase: ListenerPhase = ListenerPhase.WAITING_FOR_VOICE
    transcribing_count: int = 0
    last_error: Optional[str] = None

    def status_line(self) -> str:
        return format_status(self.mode.value, self.listener_phase.value, self.transcribing_count)


class SessionController:
    """
    Capture/transcription state machine

    States: active (waiting for voice or recording), paused, exiting.
    Thread-safe entry points are post() and submit(); everything else
    must run on the coordinator thread (run() or process_pending()).
    """

    def __init__(
        self,
        config: Config,
        spawn=spawn_process,
        scheduler: Optional[Scheduler] = None,
        store: Optional[ChunkStore] = None,
        on_status: Optional[Callable[[Dict[str, Any]], None]] = None,
        on_segment: Optional[Callable[[Segment], None]] = None,
    ):
        """
        Initialize controller

        Args:
            config: Full configuration
            spawn: Process launcher, spawn_process(argv, on_exit, name)
            scheduler: Timer scheduler (defaults to a monotonic-clock one)
            store: Chunk file allocator
            on_status: Called with a snapshot whenever the status line changes
            on_segment: Called for every segment appended to the transcript
        """
        self.config = config
        self.scheduler = scheduler or Scheduler()
        self.store = store or ChunkStore(config.chunking.temp_dir, config.chunking.file_prefix)
        self.assembler = TranscriptAssembler(
            ordering=config.transcript.ordering,
            discard_phrases=config.transcript.discard_phrases,
        )
        self.state = SessionState()
        self.on_status = on_status
        self.on_segment = on_segment

        self._spawn = spawn
        self._events: "queue.Queue[object]" = queue.Queue()
        self._recorder: Optional[ChunkRecorder] = None
        self._draining: List[ChunkRecorder] = []
        self._jobs: Dict[int, TranscriptionJob] = {}
        self._restart_timer: Optional[Timer] = None
        self._advisory_timer: Optional[Timer] = None
        self._error_source: Optional[str] = None
        self._capture_failures = 0
        self._captured_once = False
        self._last_status: Optional[str] = None

    # ------------------------------------------------------------------
    # Thread-safe entry points
    # ------------------------------------------------------------------
    def post(self, event: object) -> None:
        """Queue a message for the coordinator"""
        self._events.put(event)

    def submit(self, name: str) -> Future:
        """Queue a user command; the future resolves to a status snapshot"""
        future: Future = Future()
        self.post(Command(name=name, future=future))
        return future

    # ------------------------------------------------------------------
    # Coordinator loop
    # ------------------------------------------------------------------
    def run(self) -> None:
        """Run the session until quit (blocking)"""
        self.start()
        while self.state.mode is not Mode.EXITING:
            try:
                event = self._events.get(timeout=self.scheduler.next_timeout())
            except queue.Empty:
                event = None
            if event is not None:
                self.handle(event)
            self.scheduler.run_due()
        self.close()

    def process_pending(self) -> int:
        """Handle every queued message, then fire due timers"""
        handled = 0
        while True:
            try:
                event = self._events.get_nowait()
            except queue.Empty:
                break
            self.handle(event)
            handled += 1
        self.scheduler.run_due()
        return handled

    def start(self) -> None:
        """Enter the active state and open the first chunk"""
        logger.info("Session started")
        self.state.mode = Mode.ACTIVE
        self._start_recorder(immediate=False)
        self._publish_status()

    def close(self, timeout: float = 1.0) -> None:
        """Release capture resources after quit"""
        for recorder in self._draining:
            if recorder.handle is not None:
                recorder.handle.wait(timeout)
            self.store.delete(recorder.chunk)
        self._draining.clear()
        if self._jobs:
            logger.info(f"{len(self._jobs)} transcription(s) still running, not waiting")

    def handle(self, event: object) -> None:
        if isinstance(event, RecorderExited):
            self._on_recorder_exited(event)
        elif isinstance(event, JobExited):
            self._on_job_exited(event)
        elif isinstance(event, Command):
            self._on_command(event)
        elif isinstance(event, Advisory):
            if self.state.mode is not Mode.EXITING:
                self._advise(event.message, source=event.source)
        else:
            logger.warning(f"Ignoring unknown event: {event!r}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    @property
    def transcript(self) -> str:
        return self.assembler.text

    @property
    def recorder(self) -> Optional[ChunkRecorder]:
        return self._recorder

    @property
    def jobs(self) -> Dict[int, TranscriptionJob]:
        return dict(self._jobs)

    def snapshot(self) -> Dict[str, Any]:
        text = self.assembler.text
        return {
            "mode": self.state.mode.value,
            "phase": self.state.listener_phase.value,
            "transcribing": self.state.transcribing_count,
            "status": self.state.status_line(),
            "error": self.state.last_error,
            "transcript": text,
            "chars": len(text),
        }

    # ------------------------------------------------------------------
    # User commands
    # ------------------------------------------------------------------
    def execute(self, name: str) -> Dict[str, Any]:
        """
        Apply one user command

        Returns:
            Status snapshot after the command

        Raises:
            ValueError: For an unknown command name
        """
        if name not in COMMANDS:
            raise ValueError(f"unknown command: {name}")

        if name not in READ_ONLY_COMMANDS:
            self._clear_advisory()

        if name == "toggle":
            if self.state.mode is Mode.PAUSED:
                self.resume()
            else:
                self.pause()
        elif name == "pause":
            self.pause()
        elif name == "resume":
            self.resume()
        elif name == "clear":
            self.assembler.clear()
            logger.info("Transcript cleared")
        elif name == "quit":
            self.quit()

        self._publish_status()
        return self.snapshot()

    def pause(self) -> None:
        """Stop capturing; audio already captured is still transcribed"""
        if self.state.mode is not Mode.ACTIVE:
            return
        self.state.mode = Mode.PAUSED
        self._cancel_restart()
        self._release_recorder()
        self.state.listener_phase = ListenerPhase.WAITING_FOR_VOICE

    def resume(self) -> None:
        if self.state.mode is not Mode.PAUSED:
            return
        self.state.mode = Mode.ACTIVE
        self.state.listener_phase = ListenerPhase.WAITING_FOR_VOICE
        self._start_recorder(immediate=False)

    def quit(self) -> None:
        """Stop capturing for good; running transcriptions are not awaited"""
        if self.state.mode is Mode.EXITING:
            return
        self.state.mode = Mode.EXITING
        self._release_recorder()
        self.scheduler.cancel_all()
        self._restart_timer = None
        self._advisory_timer = None
        logger.info("Session exiting")

    def _on_command(self, command: Command) -> None:
        try:
            snapshot = self.execute(command.name)
        except Exception as e:
            logger.error(f"Command '{command.name}' failed: {e}")
            if command.future is not None:
                command.future.set_exception(e)
            return
        if command.future is not None:
            command.future.set_result(snapshot)

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------
    def _start_recorder(self, immediate: bool) -> None:
        self._restart_timer = None
        if self.state.mode is not Mode.ACTIVE:
            return

        # Never two capture processes at once
        if self._recorder is not None:
            self._release_recorder()

        chunk = self.store.new_chunk()
        recorder = ChunkRecorder(
            chunk,
            self.config.audio,
            self.config.chunking,
            self.scheduler,
            post=self.post,
            spawn=self._spawn,
            on_recording=self._on_recording,
        )
        try:
            recorder.start(immediate=immediate)
        except CaptureSpawnError as e:
            self.store.delete(chunk)
            self._capture_failed(e)
            return

        self._recorder = recorder
        self.state.listener_phase = recorder.phase
        self._publish_status()

    def _release_recorder(self) -> None:
        """Signal the current recorder; its exit is still handled"""
        if self._recorder is None:
            return
        recorder = self._recorder
        self._recorder = None
        recorder.stop()
        if not recorder.closed:
            self._draining.append(recorder)

    def _on_recording(self, recorder: ChunkRecorder) -> None:
        if recorder is self._recorder and self.state.mode is Mode.ACTIVE:
            self._captured_once = True
            self.state.listener_phase = ListenerPhase.RECORDING
            self._publish_status()

    def _on_recorder_exited(self, event: RecorderExited) -> None:
        recorder = event.recorder
        current = recorder is self._recorder
        if current:
            self._recorder = None
        elif recorder in self._draining:
            self._draining.remove(recorder)
        else:
            logger.warning(f"Exit from unknown recorder for chunk {recorder.chunk.id}")

        outcome = recorder.close(event.returncode, event.stderr)

        if self.state.mode is Mode.EXITING:
            self.store.delete(outcome.chunk)
            return

        if outcome.has_audio:
            self._dispatch(outcome.chunk)
        else:
            logger.debug(f"Chunk {outcome.chunk.id} empty ({outcome.chunk.size_bytes} bytes), discarded")
            self.store.delete(outcome.chunk)

        if current and self.state.mode is Mode.ACTIVE:
            if outcome.error is not None:
                self._capture_failed(outcome.error)
            else:
                self._capture_succeeded()
                if outcome.immediate_next or outcome.has_audio:
                    self._start_recorder(immediate=outcome.immediate_next)
                else:
                    # Mic misfire: brief pause avoids a tight respawn loop
                    self.state.listener_phase = ListenerPhase.WAITING_FOR_VOICE
                    self._schedule_restart(self.config.chunking.empty_restart_delay)

        self._publish_status()

    def _capture_failed(self, error: CaptureError) -> None:
        # No capture process is alive until the next start
        self.state.listener_phase = ListenerPhase.WAITING_FOR_VOICE
        if not self._captured_once:
            self._advise(str(error), source="capture", expire=False)
            logger.error("Could not start capturing; session paused, resume to retry")
            self.state.mode = Mode.PAUSED
            self._publish_status()
            return

        self._capture_failures += 1
        chunking = self.config.chunking
        delay = min(
            chunking.retry_delay * (2 ** (self._capture_failures - 1)),
            chunking.retry_max_delay,
        )
        self._advise(str(error), source="capture")
        if self._capture_failures > 1:
            logger.warning(
                f"Capture failed {self._capture_failures} times in a row, retrying in {delay:.1f}s"
            )
        self._schedule_restart(delay)
        self._publish_status()

    def _capture_succeeded(self) -> None:
        self._captured_once = True
        self._capture_failures = 0
        if self._error_source == "capture":
            self._clear_advisory()

    def _schedule_restart(self, delay: float) -> None:
        self._cancel_restart()
        self._restart_timer = self.scheduler.call_later(
            delay, lambda: self._start_recorder(immediate=False)
        )

    def _cancel_restart(self) -> None:
        if self._restart_timer is not None:
            self._restart_timer.cancel()
            self._restart_timer = None

    # ------------------------------------------------------------------
    # Transcription
    # ------------------------------------------------------------------
    def _dispatch(self, chunk: AudioChunk) -> None:
        job = TranscriptionJob(
            chunk,
            self.config,
            post=self.post,
            delete_audio=self.store.delete,
            spawn=self._spawn,
        )
        try:
            job.start()
        except RecognitionSpawnError as e:
            self._advise(str(e), source="recognition")
            return

        self._jobs[chunk.id] = job
        self.assembler.expect(chunk.id)
        self.state.transcribing_count = len(self._jobs)

    def _on_job_exited(self, event: JobExited) -> None:
        job = event.job
        if self._jobs.pop(job.chunk_id, None) is None:
            logger.warning(f"Exit from unknown transcription of chunk {job.chunk_id}")

        result = job.finish(event.returncode, event.stdout, event.stderr)
        self.state.transcribing_count = len(self._jobs)

        if result.error is not None:
            self._advise(str(result.error), source="recognition")
        else:
            for advisory in result.advisories:
                self._advise(advisory, source="recognition")

        for segment in self.assembler.resolve(job.chunk_id, result.text):
            if self.on_segment:
                self.on_segment(segment)

        self._publish_status()

    # ------------------------------------------------------------------
    # Advisories and status
    # ------------------------------------------------------------------
    def _advise(self, message: str, source: str, expire: bool = True) -> None:
        """Show a non-fatal error until it expires or the user acts"""
        logger.warning(message)
        self.state.last_error = message
        self._error_source = source
        if self._advisory_timer is not None:
            self._advisory_timer.cancel()
            self._advisory_timer = None
        timeout = self.config.transcript.advisory_timeout
        if expire and timeout > 0 and self.state.mode is not Mode.EXITING:
            self._advisory_timer = self.scheduler.call_later(timeout, self._clear_advisory)

    def _clear_advisory(self) -> None:
        self.state.last_error = None
        self._error_source = None
        if self._advisory_timer is not None:
            self._advisory_timer.cancel()
            self._advisory_timer = None

    def _publish_status(self) -> None:
        status = self.state.status_line()
        if status == self._last_status:
            return
        self._last_status = status
        if self.on_status:
            self.on_status(self.snapshot())
