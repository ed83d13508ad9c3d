"""
Asynchronous subprocess supervision

Each spawned process gets a daemon thread that collects its output and
reports the exit through a callback. The callback runs on that thread,
so callers only use it to post a message to the coordinator.
"""

import logging
import signal
import subprocess
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

ExitCallback = Callable[[int, str, str], None]


class ProcessHandle:
    """
    One running external process

    terminate() may be called any number of times; only the first call
    while the process is alive sends the signal.
    """

    def __init__(self, proc: subprocess.Popen, name: str, on_exit: ExitCallback):
        self.proc = proc
        self.name = name
        self._on_exit = on_exit
        self._lock = threading.Lock()
        self._signalled = False
        self._exited = threading.Event()
        self._thread = threading.Thread(
            target=self._watch,
            name=f"{name}-{proc.pid}",
            daemon=True,
        )
        self._thread.start()

    @property
    def pid(self) -> int:
        return self.proc.pid

    @property
    def signalled(self) -> bool:
        return self._signalled

    def terminate(self, sig: int = signal.SIGTERM) -> None:
        """Signal the process to stop; its exit is still reported normally"""
        with self._lock:
            if self._signalled or self._exited.is_set():
                return
            self._signalled = True
        try:
            self.proc.send_signal(sig)
            logger.debug(f"Sent signal {sig} to {self.name} (pid {self.pid})")
        except ProcessLookupError:
            pass

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the exit has been reported; True if it was"""
        return self._exited.wait(timeout)

    def _watch(self) -> None:
        try:
            stdout, stderr = self.proc.communicate()
        except Exception as e:
            logger.error(f"Lost track of {self.name} (pid {self.pid}): {e}")
            stdout, stderr = "", str(e)
        returncode = self.proc.returncode if self.proc.returncode is not None else -1
        self._exited.set()
        logger.debug(f"{self.name} (pid {self.pid}) exited with {returncode}")
        try:
            self._on_exit(returncode, stdout or "", stderr or "")
        except Exception:
            logger.exception(f"Exit callback for {self.name} failed")


def spawn_process(argv: List[str], on_exit: ExitCallback, name: str = "process") -> ProcessHandle:
    """
    Start an external process without waiting for it

    Args:
        argv: Command line
        on_exit: Called with (returncode, stdout, stderr) once the process ends
        name: Label used in logs and the watcher thread name

    Returns:
        Handle for signalling the process

    Raises:
        OSError: If the executable cannot be started
    """
    proc = subprocess.Popen(
        argv,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
        errors="replace",
    )
    logger.debug(f"Started {name} (pid {proc.pid}): {' '.join(argv)}")
    return ProcessHandle(proc, name, on_exit)
