import sys
import threading

import pytest

from seashell.process import spawn_process


def _collect():
    done = threading.Event()
    result = {}

    def on_exit(returncode, stdout, stderr):
        result.update(returncode=returncode, stdout=stdout, stderr=stderr)
        done.set()

    return done, result, on_exit


def test_exit_reported_with_output():
    done, result, on_exit = _collect()
    handle = spawn_process(
        [sys.executable, "-c", "import sys; print('hello'); print('oops', file=sys.stderr)"],
        on_exit,
        name="echo",
    )

    assert done.wait(10)
    assert handle.wait(1)
    assert result["returncode"] == 0
    assert result["stdout"].strip() == "hello"
    assert result["stderr"].strip() == "oops"


def test_terminate_signals_once_and_exit_still_reported():
    done, result, on_exit = _collect()
    handle = spawn_process([sys.executable, "-c", "import time; time.sleep(30)"], on_exit, name="sleeper")

    handle.terminate()
    handle.terminate()

    assert done.wait(10)
    assert handle.signalled
    assert result["returncode"] != 0


def test_missing_binary_raises_oserror(tmp_path):
    with pytest.raises(OSError):
        spawn_process([str(tmp_path / "no-such-binary")], lambda *a: None)
