"""
Exceptions raised by seashell components

Capture and recognition failures are never fatal to a session: the
controller turns them into advisories and keeps listening.
"""


class SeashellError(Exception):
    """Base exception for all seashell errors"""


class ConfigurationError(SeashellError):
    """Raised when the configuration file has invalid contents"""


# Capture

class CaptureError(SeashellError):
    """Base exception for capture-process failures"""


class CaptureSpawnError(CaptureError):
    """Raised when the recorder process could not be started"""


class CaptureRuntimeError(CaptureError):
    """Recorder process exited abnormally mid-session"""


# Recognition

class RecognitionError(SeashellError):
    """Base exception for recognition-process failures"""


class RecognitionSpawnError(RecognitionError):
    """Raised when the recognition process could not be started"""


class RecognitionRuntimeError(RecognitionError):
    """Recognition process exited with a failure status"""


# Presentation helpers

class AudioDeviceError(SeashellError):
    """Raised when input devices cannot be queried"""


class ClipboardError(SeashellError):
    """Raised when copying the transcript fails"""
