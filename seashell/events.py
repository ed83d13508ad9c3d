"""
Messages consumed by the session coordinator

Process watcher threads and IPC handler threads never touch session
state directly; they post one of these onto the coordinator's queue.
"""

from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass(frozen=True)
class RecorderExited:
    """A capture process ended (silence stop, signal or failure)"""
    recorder: Any
    returncode: int
    stderr: str = ""


@dataclass(frozen=True)
class JobExited:
    """A recognition process ended"""
    job: Any
    returncode: int
    stdout: str = ""
    stderr: str = ""


@dataclass(frozen=True)
class Command:
    """A user action; the future receives a status snapshot"""
    name: str
    future: Optional[Future] = field(default=None, compare=False)


@dataclass(frozen=True)
class Advisory:
    """A non-fatal error raised outside the coordinator"""
    message: str
    source: str = "user"
