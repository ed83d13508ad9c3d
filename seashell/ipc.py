"""
Unix domain socket command channel

Carries user commands from `seashell client` to the running server
as length-prefixed JSON.
"""

import json
import logging
import os
import socket
import struct
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Message framing: 4-byte length prefix (big-endian) + JSON payload
HEADER_SIZE = 4
MAX_MESSAGE_SIZE = 4 * 1024 * 1024  # transcripts can get long


def create_server_socket(socket_path: Path) -> socket.socket:
    """
    Bind the server's command socket, replacing a stale socket file

    Args:
        socket_path: Path to the socket file

    Returns:
        Bound socket ready for listening
    """
    socket_path.parent.mkdir(parents=True, exist_ok=True)
    if socket_path.exists():
        logger.debug(f"Removing stale socket {socket_path}")
        socket_path.unlink()

    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.bind(str(socket_path))

    # Commands control the microphone; owner only
    os.chmod(socket_path, 0o600)
    return sock


def create_client_socket(socket_path: Path, timeout: Optional[float] = 5.0) -> socket.socket:
    """
    Connect to a running server

    Raises:
        ConnectionError: If no server is listening on socket_path
    """
    if not socket_path.exists():
        raise ConnectionError(f"Server socket not found: {socket_path}")

    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.settimeout(timeout)
    try:
        sock.connect(str(socket_path))
    except OSError as e:
        sock.close()
        raise ConnectionError(f"Server not responding on {socket_path}: {e}") from e
    return sock


def encode_message(message: Dict[str, Any]) -> bytes:
    """Frame a message: length header followed by UTF-8 JSON"""
    payload = json.dumps(message).encode("utf-8")
    if len(payload) > MAX_MESSAGE_SIZE:
        raise ValueError(f"Message too large: {len(payload)} bytes")
    return struct.pack(">I", len(payload)) + payload


def send_message(sock: socket.socket, message: Dict[str, Any]) -> None:
    sock.sendall(encode_message(message))


def recv_message(sock: socket.socket) -> Optional[Dict[str, Any]]:
    """
    Read one framed message

    Returns:
        Parsed message, or None if the peer closed the connection
    """
    header = _recv_exact(sock, HEADER_SIZE)
    if header is None:
        return None

    (length,) = struct.unpack(">I", header)
    if length > MAX_MESSAGE_SIZE:
        raise ValueError(f"Message too large: {length} bytes")

    payload = _recv_exact(sock, length)
    if payload is None:
        return None
    return json.loads(payload.decode("utf-8"))


def _recv_exact(sock: socket.socket, size: int) -> Optional[bytes]:
    buf = bytearray()
    while len(buf) < size:
        part = sock.recv(size - len(buf))
        if not part:
            return None
        buf.extend(part)
    return bytes(buf)


# Request/Response helpers

def make_command_request(command: str) -> Dict[str, Any]:
    """Create a request for one user command"""
    return {"command": command}


def make_ok_response(session: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Create a success response carrying a session snapshot"""
    response: Dict[str, Any] = {"status": "ok"}
    if session is not None:
        response["session"] = session
    return response


def make_error_response(message: str) -> Dict[str, Any]:
    """Create an error response"""
    return {"status": "error", "message": message}
