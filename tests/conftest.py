"""Pytest configuration and shared fakes."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_repo_on_path() -> None:
    """Allow tests to import seashell without installing it."""
    repo_root = Path(__file__).resolve().parents[1]
    path_str = str(repo_root)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)


_ensure_repo_on_path()

from seashell.config import ChunkingConfig, Config  # noqa: E402
from seashell.session import SessionController  # noqa: E402
from seashell.timers import Scheduler  # noqa: E402


class ManualClock:
    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeHandle:
    """Stands in for ProcessHandle; the test decides when the process exits."""

    def __init__(self, argv, on_exit, name):
        self.argv = argv
        self.name = name
        self.terminate_calls = 0
        self.exited = False
        self._on_exit = on_exit

    @property
    def signalled(self) -> bool:
        return self.terminate_calls > 0

    @property
    def pid(self) -> int:
        return 4242

    def terminate(self) -> None:
        self.terminate_calls += 1

    def wait(self, timeout=None) -> bool:
        return self.exited

    def finish(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self.exited = True
        self._on_exit(returncode, stdout, stderr)


class FakeSpawner:
    """Records launches; names listed in `failing` raise like a missing binary."""

    def __init__(self) -> None:
        self.handles: list[FakeHandle] = []
        self.failing: set[str] = set()

    def __call__(self, argv, on_exit, name="process"):
        if name in self.failing:
            raise FileNotFoundError(2, "No such file or directory", argv[0])
        handle = FakeHandle(argv, on_exit, name)
        self.handles.append(handle)
        return handle

    def named(self, name: str) -> list[FakeHandle]:
        return [h for h in self.handles if h.name == name]

    @property
    def recorders(self) -> list[FakeHandle]:
        return self.named("recorder")

    @property
    def whispers(self) -> list[FakeHandle]:
        return self.named("whisper")


def speak(chunk, size: int = 40_000) -> None:
    """Simulate sox having written audio to a chunk file."""
    chunk.path.write_bytes(b"\x00" * size)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def spawner() -> FakeSpawner:
    return FakeSpawner()


@pytest.fixture
def config(tmp_path) -> Config:
    return Config(
        chunking=ChunkingConfig(temp_dir=str(tmp_path)),
        config_path=tmp_path,
    )


@pytest.fixture
def scheduler(clock) -> Scheduler:
    return Scheduler(clock=clock)


@pytest.fixture
def make_controller(config, spawner, scheduler):
    def factory(**kwargs) -> SessionController:
        return SessionController(config, spawn=spawner, scheduler=scheduler, **kwargs)

    return factory
