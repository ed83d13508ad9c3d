import threading

import pytest

from seashell import server as server_mod
from seashell.errors import ClipboardError
from seashell.server import Server
from seashell.session import SessionController


@pytest.fixture
def live_server(config, spawner):
    """Server whose coordinator runs for real on a thread, with fake processes."""
    controller = SessionController(config, spawn=spawner)
    server = Server(config, controller=controller)
    server._coordinator = threading.Thread(target=controller.run, daemon=True)
    server._coordinator.start()
    yield server
    if server.running:
        controller.submit("quit").result(timeout=2)
    server._coordinator.join(timeout=2)


def test_status_request_returns_snapshot(live_server):
    response = live_server.process_request({"command": "status"})

    assert response["status"] == "ok"
    assert response["session"]["mode"] == "active"
    assert response["session"]["status"] == "◉ Listening"


def test_pause_request_signals_capture(live_server, spawner):
    response = live_server.process_request({"command": "pause"})

    assert response["session"]["status"] == "⏸ Paused"
    assert spawner.recorders[0].terminate_calls == 1


def test_quit_request_stops_coordinator(live_server):
    response = live_server.process_request({"command": "quit"})
    live_server._coordinator.join(timeout=2)

    assert response["session"]["mode"] == "exiting"
    assert not live_server.running
    assert live_server.process_request({"command": "status"})["status"] == "error"


def test_bad_requests_rejected(live_server):
    assert live_server.process_request({})["message"] == "missing 'command' field"
    assert live_server.process_request({"command": "dance"})["message"] == "unknown command: dance"


def test_copy_uses_clipboard_command(live_server, monkeypatch):
    calls = []
    monkeypatch.setattr(server_mod, "copy_to_clipboard", lambda text, command: calls.append((text, command)) or bool(text))

    response = live_server.process_request({"command": "copy"})

    assert response["status"] == "ok"
    assert calls == [("", ["pbcopy"])]


def test_copy_failure_reported(live_server, monkeypatch):
    def fail(text, command):
        raise ClipboardError("Copy failed: pbcopy not found")

    monkeypatch.setattr(server_mod, "copy_to_clipboard", fail)

    assert live_server.process_request({"command": "copy"}) == {"status": "error", "message": "Copy failed"}


def test_copy_failure_shows_in_status(live_server, monkeypatch):
    def fail(text, command):
        raise ClipboardError("Copy failed: pbcopy not found")

    monkeypatch.setattr(server_mod, "copy_to_clipboard", fail)
    live_server.process_request({"command": "copy"})

    session = live_server.process_request({"command": "status"})["session"]
    assert session["error"] == "Copy failed: pbcopy not found"
    assert session["status"] == "◉ Listening"
