"""
Audio input device listing

Helps pick a value for audio.device. Capture itself is done by sox, so
this is informational only.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from seashell.errors import AudioDeviceError

try:  # pragma: no cover - needs the PortAudio shared library
    import sounddevice as sd
except OSError:  # pragma: no cover
    sd = None  # type: ignore

logger = logging.getLogger(__name__)


@dataclass
class AudioDevice:
    """An input-capable audio device"""
    index: int
    name: str
    channels: int
    default_sample_rate: float
    is_default: bool = False

    def __str__(self) -> str:
        marker = " (default)" if self.is_default else ""
        return f"[{self.index}] {self.name}{marker}"


def _default_input_index() -> Optional[int]:
    try:
        default = sd.default.device[0]
    except (AttributeError, IndexError, TypeError):
        return None
    if default is None or default < 0:
        return None
    return int(default)


def list_input_devices() -> List[AudioDevice]:
    """
    Query PortAudio for devices that can record

    Raises:
        AudioDeviceError: If PortAudio is unavailable or the query fails
    """
    if sd is None:
        raise AudioDeviceError("PortAudio library not found; cannot list devices")

    try:
        devices = sd.query_devices()
    except Exception as e:
        raise AudioDeviceError(f"Could not query audio devices: {e}") from e

    default_index = _default_input_index()
    result = []
    for idx, device in enumerate(devices):
        if device.get("max_input_channels", 0) <= 0:
            continue
        result.append(
            AudioDevice(
                index=idx,
                name=device.get("name", f"Device {idx}"),
                channels=device["max_input_channels"],
                default_sample_rate=device.get("default_samplerate", 44100.0),
                is_default=(idx == default_index),
            )
        )
    logger.debug(f"Found {len(result)} input devices")
    return result


def find_device(name: str) -> Optional[AudioDevice]:
    """Look up an input device by exact or partial name (case-insensitive)"""
    wanted = name.lower()
    devices = list_input_devices()
    for device in devices:
        if device.name.lower() == wanted:
            return device
    for device in devices:
        if wanted in device.name.lower():
            return device
    return None
