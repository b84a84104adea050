"""Configuration data model."""

from pathlib import Path
from dataclasses import dataclass, field, asdict
from typing import Optional, Dict, Any
import os
import tempfile

import yaml

from ..exceptions import ConfigError

TRANSCRIPTION_URL_ENV = "SUBTITLE_BATCH_TRANSCRIPTION_URL"
TRANSLATION_URL_ENV = "SUBTITLE_BATCH_TRANSLATION_URL"
ASSEMBLYAI_KEY_ENV = "ASSEMBLYAI_API_KEY"


def default_scratch_dir() -> Path:
    """Working storage for intermediate artifacts."""
    return Path(tempfile.gettempdir()) / "subtitle-batch"


def default_log_dir() -> Path:
    """Per-task logs live outside the temp dir so they survive restarts."""
    return Path.home() / ".local" / "share" / "subtitle-batch" / "logs"


@dataclass
class RetryPolicy:
    """Bounded exponential backoff for network calls."""

    max_attempts: int = 3
    initial_delay: float = 1.0  # seconds
    backoff_multiplier: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ConfigError("retry.max_attempts must be at least 1")
        if self.initial_delay < 0:
            raise ConfigError("retry.initial_delay must not be negative")
        if self.backoff_multiplier < 1:
            raise ConfigError("retry.backoff_multiplier must be at least 1")

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds after failed attempt number ``attempt`` (1-based)."""
        return self.initial_delay * self.backoff_multiplier ** (attempt - 1)


@dataclass
class ExtractionConfig:
    """ffmpeg audio extraction configuration."""

    ffmpeg_binary: str = "ffmpeg"
    ffprobe_binary: str = "ffprobe"
    sample_rate: int = 16000  # Hz, what speech backends expect
    channels: int = 1
    codec: str = "pcm_s16le"
    report_progress: bool = True
    stderr_tail_lines: int = 20


@dataclass
class TranscriptionConfig:
    """Transcription backend configuration."""

    backend: str = "relay"  # "relay" or "assemblyai"
    base_url: Optional[str] = None  # Backend default when unset
    api_key: Optional[str] = None  # Required for the assemblyai backend
    poll_interval: float = 3.0  # seconds
    max_poll_attempts: int = 600  # 30 minutes at the default interval
    upload_timeout: float = 300.0
    poll_timeout: float = 30.0
    download_timeout: float = 60.0
    language_detection: bool = True
    speaker_labels: bool = True

    def __post_init__(self):
        if self.backend not in ("relay", "assemblyai"):
            raise ConfigError(f"Unknown transcription backend: {self.backend}")
        if self.max_poll_attempts < 1:
            raise ConfigError("transcription.max_poll_attempts must be at least 1")


@dataclass
class TranslationConfig:
    """Translation service configuration."""

    base_url: str = "http://localhost:8000"
    source_language: Optional[str] = None
    model: Optional[str] = None
    timeout: float = 120.0


@dataclass
class OutputConfig:
    """Output configuration."""

    encoding: str = "utf-8"


@dataclass
class BatchConfig:
    """Configuration shared by every task of one batch."""

    output_dir: Path
    concurrency_limit: int = 4
    scratch_dir: Path = field(default_factory=default_scratch_dir)
    log_dir: Path = field(default_factory=default_log_dir)
    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    translation: TranslationConfig = field(default_factory=TranslationConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    output: OutputConfig = field(default_factory=OutputConfig)

    def __post_init__(self):
        self.output_dir = Path(self.output_dir)
        self.scratch_dir = Path(self.scratch_dir)
        self.log_dir = Path(self.log_dir)
        if self.concurrency_limit < 1:
            raise ConfigError("concurrency_limit must be at least 1")


@dataclass
class AppConfig:
    """Application configuration."""

    transcription: TranscriptionConfig = field(default_factory=TranscriptionConfig)
    translation: TranslationConfig = field(default_factory=TranslationConfig)
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    output: OutputConfig = field(default_factory=OutputConfig)
    concurrency_limit: int = 4
    log_level: str = "INFO"
    log_file: Optional[str] = None
    log_dir: Optional[str] = None
    scratch_dir: Optional[str] = None

    @classmethod
    def get_config_path(cls) -> Path:
        """Get user config file path."""
        return Path.home() / ".config" / "subtitle-batch" / "config.yaml"

    @classmethod
    def load(cls, path: Optional[Path] = None, with_env: bool = True) -> "AppConfig":
        """
        Load configuration from YAML file, then apply environment overrides.

        Pass ``with_env=False`` to get exactly what the file holds, e.g. before
        saving it back.
        """
        if path is None:
            path = cls.get_config_path()

        data: Dict[str, Any] = {}
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as f:
                    data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid config file {path}: {e}")

        try:
            config = cls(
                transcription=TranscriptionConfig(**data.get("transcription", {})),
                translation=TranslationConfig(**data.get("translation", {})),
                extraction=ExtractionConfig(**data.get("extraction", {})),
                retry=RetryPolicy(**data.get("retry", {})),
                output=OutputConfig(**data.get("output", {})),
                concurrency_limit=data.get("concurrency_limit", 4),
                log_level=data.get("log_level", "INFO"),
                log_file=data.get("log_file"),
                log_dir=data.get("log_dir"),
                scratch_dir=data.get("scratch_dir"),
            )
        except TypeError as e:
            raise ConfigError(f"Invalid config file {path}: {e}")

        if with_env:
            config.apply_env()
        return config

    def apply_env(self, environ: Optional[Dict[str, str]] = None) -> None:
        """Override service endpoints and credentials from the environment."""
        env = os.environ if environ is None else environ

        if env.get(TRANSCRIPTION_URL_ENV):
            self.transcription.base_url = env[TRANSCRIPTION_URL_ENV]
        if env.get(TRANSLATION_URL_ENV):
            self.translation.base_url = env[TRANSLATION_URL_ENV]
        if env.get(ASSEMBLYAI_KEY_ENV) and not self.transcription.api_key:
            self.transcription.api_key = env[ASSEMBLYAI_KEY_ENV]

    def save(self, path: Optional[Path] = None) -> None:
        """Save configuration to YAML file."""
        if path is None:
            path = self.get_config_path()

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False, allow_unicode=True)

    def to_dict(self) -> dict:
        """Convert config to dictionary."""
        transcription = {k: v for k, v in asdict(self.transcription).items() if v is not None}
        # Never write credentials back to disk
        transcription.pop("api_key", None)

        data = {
            "transcription": transcription,
            "translation": {k: v for k, v in asdict(self.translation).items() if v is not None},
            "extraction": asdict(self.extraction),
            "retry": asdict(self.retry),
            "output": asdict(self.output),
            "concurrency_limit": self.concurrency_limit,
            "log_level": self.log_level,
        }
        for key in ("log_file", "log_dir", "scratch_dir"):
            value = getattr(self, key)
            if value:
                data[key] = value

        return data

    def get_log_dir(self) -> Path:
        return Path(self.log_dir).expanduser() if self.log_dir else default_log_dir()

    def to_batch_config(
        self,
        output_dir: Path,
        concurrency_limit: Optional[int] = None,
    ) -> BatchConfig:
        """Build the per-batch configuration."""
        kwargs: Dict[str, Any] = {}
        if self.scratch_dir:
            kwargs["scratch_dir"] = Path(self.scratch_dir).expanduser()
        if self.log_dir:
            kwargs["log_dir"] = Path(self.log_dir).expanduser()

        return BatchConfig(
            output_dir=output_dir,
            concurrency_limit=concurrency_limit or self.concurrency_limit,
            transcription=self.transcription,
            translation=self.translation,
            extraction=self.extraction,
            retry=self.retry,
            output=self.output,
            **kwargs,
        )
