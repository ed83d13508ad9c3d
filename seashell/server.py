"""
seashell server

Main daemon that:
- Runs the session coordinator (capture + concurrent transcription)
- Logs status changes and transcript segments as they happen
- Handles user commands from `seashell client` via Unix socket
"""

import logging
import signal
import socket
import threading
from typing import Any, Dict, Optional

from seashell.buffer import Segment
from seashell.clipboard import copy_to_clipboard
from seashell.config import Config
from seashell.devices import find_device
from seashell.errors import AudioDeviceError, ClipboardError
from seashell.events import Advisory
from seashell.ipc import (
    create_server_socket,
    make_error_response,
    make_ok_response,
    recv_message,
    send_message,
)
from seashell.session import COMMANDS, SessionController

logger = logging.getLogger(__name__)

COMMAND_TIMEOUT = 5.0


class Server:
    """
    seashell server daemon

    The coordinator runs on its own thread; the main thread accepts
    client connections and turns signals into the quit command.
    """

    def __init__(self, config: Config, verbose: bool = False, controller: Optional[SessionController] = None):
        """
        Initialize server

        Args:
            config: Server configuration
            verbose: Enable verbose logging
            controller: Session to serve (built from config if omitted)
        """
        self.config = config
        self.verbose = verbose
        self.controller = controller or SessionController(
            config,
            on_status=self._on_status,
            on_segment=self._on_segment,
        )
        self._server_socket: Optional[socket.socket] = None
        self._coordinator: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._coordinator is not None and self._coordinator.is_alive()

    def run(self) -> None:
        """Run the server (blocking)"""
        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

        socket_path = self.config.get_socket_path()
        self._server_socket = create_server_socket(socket_path)
        self._server_socket.listen(5)
        self._server_socket.settimeout(0.5)  # Allow periodic shutdown check
        logger.info(f"Server listening on {socket_path}")
        self._log_capture_device()

        self._coordinator = threading.Thread(
            target=self.controller.run,
            name="coordinator",
            daemon=True,
        )
        self._coordinator.start()

        self._accept_connections()
        self._cleanup()

    def _log_capture_device(self) -> None:
        device = self.config.audio.device
        if not device:
            logger.info("Capturing from the system default input")
            return
        try:
            found = find_device(device)
        except AudioDeviceError as e:
            logger.debug(f"Skipping device check: {e}")
            return
        if found is None:
            logger.warning(f"Input device '{device}' not found; sox may fail to open it")
        else:
            logger.info(f"Capturing from {found}")

    def _signal_handler(self, signum: int, frame) -> None:
        """Handle termination signals"""
        logger.info(f"Received signal {signum}, shutting down...")
        self.controller.submit("quit")

    def _on_status(self, snapshot: Dict[str, Any]) -> None:
        line = snapshot["status"]
        if snapshot["error"]:
            line += f"  ({snapshot['error']})"
        logger.info(line)

    def _on_segment(self, segment: Segment) -> None:
        logger.info(f"» {segment.text}")
        if self.verbose:
            logger.info(
                f"Chunk {segment.chunk_id} appended at {segment.timestamp:%H:%M:%S},"
                f" transcript now {len(self.controller.transcript)} chars"
            )

    def _accept_connections(self) -> None:
        """Accept and handle client connections until the session exits"""
        while self.running:
            try:
                client_sock, _ = self._server_socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self.running:
                    logger.error(f"Accept error: {e}")
                break
            threading.Thread(
                target=self._handle_client,
                args=(client_sock,),
                daemon=True,
            ).start()

    def _handle_client(self, client_sock: socket.socket) -> None:
        """Handle a single client connection"""
        try:
            request = recv_message(client_sock)
            if not request:
                return
            send_message(client_sock, self.process_request(request))
        except Exception as e:
            logger.error(f"Client handler error: {e}")
            try:
                send_message(client_sock, make_error_response(str(e)))
            except OSError:
                pass
        finally:
            client_sock.close()

    def process_request(self, request: dict) -> dict:
        """Run one client command against the session and build the response"""
        command = request.get("command")
        if not command:
            return make_error_response("missing 'command' field")
        if command not in COMMANDS:
            return make_error_response(f"unknown command: {command}")

        if not self.running:
            return make_error_response("session is not running")

        snapshot = self.controller.submit(command).result(timeout=COMMAND_TIMEOUT)

        if command == "copy":
            try:
                copied = copy_to_clipboard(
                    snapshot["transcript"], self.config.transcript.clipboard_command
                )
            except ClipboardError as e:
                self.controller.post(Advisory(message=str(e), source="clipboard"))
                return make_error_response("Copy failed")
            if copied:
                logger.info(f"Copied {snapshot['chars']} chars")

        if self.verbose:
            logger.info(f"Command '{command}' -> {snapshot['status']}")
        return make_ok_response(session=snapshot)

    def _cleanup(self) -> None:
        """Cleanup resources"""
        logger.info("Cleaning up...")

        if self._coordinator is not None:
            self._coordinator.join(timeout=2.0)

        if self._server_socket:
            self._server_socket.close()

        socket_path = self.config.get_socket_path()
        try:
            socket_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Could not remove socket {socket_path}: {e}")

        logger.info("Server stopped")


def run_server(config: Config, verbose: bool = False) -> None:
    """
    Run the seashell server

    Args:
        config: Server configuration
        verbose: Enable verbose logging
    """
    server = Server(config, verbose=verbose)
    server.run()
