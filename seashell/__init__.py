"""
seashell: always-listening local speech-to-text

Captures speech chunk by chunk with sox and transcribes finished chunks
concurrently with whisper.cpp, so speech is never lost while an earlier
chunk is still being recognized.
"""

__version__ = "0.1.0"
