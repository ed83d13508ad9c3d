"""
seashell client

Sends one user command to a running seashell server.
"""

import logging
import sys
from typing import Any, Dict, Optional

from seashell.config import Config
from seashell.ipc import (
    create_client_socket,
    make_command_request,
    recv_message,
    send_message,
)

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_USAGE = 2


def send_command(config: Config, command: str) -> Optional[Dict[str, Any]]:
    """
    Send a command and wait for the reply

    Returns:
        The server's response, or None if the server could not be reached
    """
    socket_path = config.get_socket_path()

    try:
        sock = create_client_socket(socket_path)
    except ConnectionError as e:
        logger.error(f"Cannot connect to server: {e}")
        return None

    try:
        send_message(sock, make_command_request(command))
        response = recv_message(sock)
        if not response:
            logger.error("No response from server")
        return response
    except (OSError, ValueError) as e:
        logger.error(f"Communication error: {e}")
        return None
    finally:
        sock.close()


def client_command(config: Config, command: str) -> int:
    """
    Run one client command and print its result

    `transcript` prints the transcript; every other command prints the
    status line (plus the current advisory, if any).

    Returns:
        Exit code
    """
    response = send_command(config, command)
    if not response:
        return EXIT_ERROR

    if response.get("status") != "ok":
        logger.error(f"Server error: {response.get('message', 'unknown')}")
        return EXIT_ERROR

    session = response.get("session") or {}
    if command == "transcript":
        text = session.get("transcript", "")
        if text:
            print(text)
        return EXIT_SUCCESS

    print(session.get("status", ""))
    if session.get("error"):
        print(session["error"], file=sys.stderr)
    if command == "copy" and session.get("chars"):
        print(f"Copied {session['chars']} chars")
    return EXIT_SUCCESS
