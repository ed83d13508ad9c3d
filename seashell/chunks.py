"""
Ephemeral chunk files

One file per chunk, named with a monotonically increasing counter under
the temp directory. Every file is deleted after it is transcribed or
discarded; anything left over is removed at interpreter exit.
"""

import atexit
import itertools
import logging
import tempfile
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Set

logger = logging.getLogger(__name__)

# Registry of chunk files not yet deleted, shared by all stores
_live_files: Set[Path] = set()
_live_lock = threading.Lock()


def _cleanup_live_files() -> None:
    with _live_lock:
        for path in list(_live_files):
            try:
                path.unlink(missing_ok=True)
                logger.debug(f"Cleaned up chunk file on exit: {path}")
            except OSError as e:
                logger.warning(f"Failed to clean up chunk file {path}: {e}")
        _live_files.clear()


atexit.register(_cleanup_live_files)


@dataclass
class AudioChunk:
    """One captured audio segment"""
    id: int
    path: Path
    size_bytes: int = 0
    created_at: float = field(default_factory=time.time)
    closed: bool = False

    def refresh_size(self) -> int:
        """Update size_bytes from the file; a missing file counts as empty"""
        try:
            self.size_bytes = self.path.stat().st_size
        except OSError:
            self.size_bytes = 0
        return self.size_bytes

    def age(self) -> float:
        """Seconds since the chunk file was allocated"""
        return time.time() - self.created_at

    def has_content(self, min_bytes: int) -> bool:
        return self.size_bytes > min_bytes


class ChunkStore:
    """Allocates chunk paths and deletes chunk files"""

    def __init__(self, temp_dir: Optional[str] = None, prefix: str = "whisper-recording-"):
        self.directory = Path(temp_dir) if temp_dir else Path(tempfile.gettempdir())
        self.prefix = prefix
        self._counter = itertools.count(1)

    def new_chunk(self) -> AudioChunk:
        chunk_id = next(self._counter)
        path = self.directory / f"{self.prefix}{chunk_id}.wav"
        with _live_lock:
            _live_files.add(path)
        return AudioChunk(id=chunk_id, path=path)

    def delete(self, chunk: AudioChunk) -> None:
        """Remove the chunk's file; safe to call more than once"""
        try:
            chunk.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not delete {chunk.path}: {e}")
        with _live_lock:
            _live_files.discard(chunk.path)
