"""Copy text to the desktop clipboard through an external command."""

import logging
import subprocess
from typing import List

from seashell.errors import ClipboardError

logger = logging.getLogger(__name__)


def copy_to_clipboard(text: str, command: List[str], timeout: float = 5.0) -> bool:
    """
    Pipe text into a clipboard tool such as pbcopy, wl-copy or xclip

    Returns:
        False if there was nothing to copy

    Raises:
        ClipboardError: If the command is missing or fails
    """
    if not text:
        return False
    if not command:
        raise ClipboardError("Copy failed: no clipboard command configured")

    try:
        subprocess.run(
            command,
            input=text.encode("utf-8"),
            check=True,
            timeout=timeout,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise ClipboardError(f"Copy failed: {e}") from e

    logger.debug(f"Copied {len(text)} chars with {command[0]}")
    return True
