"""
Configuration management for seashell
"""

import logging
import sys
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from seashell.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class ServerConfig:
    """Server configuration"""
    socket_path: str = "seashell.sock"


@dataclass
class AudioConfig:
    """Capture process configuration"""
    recorder: str = "sox"
    device: Optional[str] = None
    driver: Optional[str] = None
    sample_rate: int = 16000
    channels: int = 1
    bits: int = 16
    start_threshold: str = "1.5%"
    start_duration: float = 0.05
    stop_threshold: str = "1.5%"
    stop_duration: float = 2.0


@dataclass
class ChunkingConfig:
    """Chunk boundary and retry timing (seconds)"""
    poll_interval: float = 0.1
    max_chunk_duration: float = 30.0
    min_chunk_bytes: int = 1000
    empty_restart_delay: float = 0.1
    retry_delay: float = 1.0
    retry_max_delay: float = 30.0
    temp_dir: Optional[str] = None
    file_prefix: str = "whisper-recording-"

    def __post_init__(self) -> None:
        for name in ("poll_interval", "max_chunk_duration"):
            if getattr(self, name) <= 0:
                raise ConfigurationError(f"chunking.{name} must be positive, got {getattr(self, name)!r}")


@dataclass
class TranscriptionConfig:
    """Recognition process configuration"""
    whisper_cli: str = "whisper.cpp/build/bin/whisper-cli"
    model: str = "models/ggml-large-v3-turbo-q5_0.bin"
    vad_model: str = "whisper.cpp/models/ggml-silero-v6.2.0.bin"
    vad: bool = True
    language: str = "en"
    threads: int = 6
    benign_diagnostics: List[str] = field(
        default_factory=lambda: ["whisper_init", "silero", "vad"]
    )
    advisory_max_chars: int = 80


@dataclass
class TranscriptConfig:
    """Transcript assembly and user-facing behavior"""
    ordering: str = "completion"
    discard_phrases: List[str] = field(default_factory=list)
    advisory_timeout: float = 5.0
    clipboard_command: List[str] = field(default_factory=lambda: ["pbcopy"])

    def __post_init__(self) -> None:
        if self.ordering not in ("completion", "sequence"):
            raise ConfigurationError(
                f"transcript.ordering must be 'completion' or 'sequence', got {self.ordering!r}"
            )


@dataclass
class Config:
    """Main configuration container"""
    server: ServerConfig = field(default_factory=ServerConfig)
    audio: AudioConfig = field(default_factory=AudioConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    transcript: TranscriptConfig = field(default_factory=TranscriptConfig)
    config_path: Path = field(default_factory=Path.cwd)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """
        Load configuration from YAML file

        Args:
            config_path: Path to config file. If None, uses config.yml in the
                        project root (relative to package location) when present,
                        otherwise built-in defaults.

        Returns:
            Config object

        Raises:
            SystemExit: If an explicit config file is missing or invalid
        """
        if config_path is not None:
            resolved_path = config_path
            if not resolved_path.exists():
                logger.error(f"Config file not found: {resolved_path}")
                logger.error("Please copy config.example.yml to config.yml and customize it.")
                sys.exit(1)
        else:
            package_dir = Path(__file__).parent
            project_root = package_dir.parent
            resolved_path = project_root / "config.yml"
            if not resolved_path.exists():
                logger.info(f"No config.yml in {project_root}, using defaults")
                return cls(config_path=project_root)

        config_data = _load_yaml(resolved_path)
        try:
            config = cls.from_dict(config_data, resolved_path.parent)
        except ConfigurationError as e:
            logger.error(f"Invalid config file {resolved_path}: {e}")
            sys.exit(1)

        logger.info(f"Loaded config from {resolved_path}")
        return config

    @classmethod
    def from_dict(cls, data: Dict[str, Any], base_dir: Path) -> "Config":
        """Build a Config from parsed YAML, one dataclass per section"""
        return cls(
            server=_section(ServerConfig, data, "server"),
            audio=_section(AudioConfig, data, "audio"),
            chunking=_section(ChunkingConfig, data, "chunking"),
            transcription=_section(TranscriptionConfig, data, "transcription"),
            transcript=_section(TranscriptConfig, data, "transcript"),
            config_path=base_dir,
        )

    def resolve(self, path: str) -> Path:
        """Resolve a possibly-relative path against the config directory"""
        candidate = Path(path).expanduser()
        if candidate.is_absolute():
            return candidate
        return self.config_path / candidate

    def get_socket_path(self) -> Path:
        """Get the absolute path to the socket file"""
        return self.resolve(self.server.socket_path)


def _section(section_cls, data: Dict[str, Any], name: str):
    """Instantiate one config section, rejecting unknown keys"""
    values = data.get(name) or {}
    if not isinstance(values, dict):
        raise ConfigurationError(f"section '{name}' must be a mapping")

    known = {f.name for f in fields(section_cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ConfigurationError(f"unknown keys in '{name}': {', '.join(unknown)}")

    return section_cls(**values)


def _load_yaml(path: Path) -> Dict[str, Any]:
    """Load YAML file and return as dict"""
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
            return data if data else {}
    except Exception as e:
        logger.error(f"Error loading config file {path}: {e}")
        sys.exit(1)
