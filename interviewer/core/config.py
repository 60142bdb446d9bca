import json
from pathlib import Path
from typing import Optional

from loguru import logger
from pydantic import BaseModel, Field

LANGUAGES = ("en", "ar", "ar-sa")
EXPERIENCE_LEVELS = ("junior", "mid", "senior", "executive")
VOICES = ("nova", "alloy", "echo", "onyx", "shimmer")


class APIKeysConfig(BaseModel):
    openai: str = ""
    gemini: str = ""
    claude: str = ""


class InterviewConfig(BaseModel):
    language: str = "en"  # "en", "ar" (formal) or "ar-sa" (Saudi dialect)
    experience_level: str = "mid"
    question_count: int = Field(default=5, ge=1, le=20)
    target_role: str = ""
    candidate_name: str = ""


class VoiceConfig(BaseModel):
    remote_enabled: bool = True
    voice_id: str = "nova"
    remote_model: str = "tts-1-hd"
    speed: float = 0.95
    local_voices: dict[str, str] = Field(default_factory=lambda: {
        "en": "en_US-lessac-medium",
        "ar": "ar_JO-kareem-medium",
        "ar-sa": "ar_JO-kareem-medium",
    })
    muted: bool = False
    require_unlock: bool = True  # Output device needs a user gesture before playing
    listen_when_muted: bool = False  # Muted output normally pauses auto-listening too


class TimingConfig(BaseModel):
    """Turn-taking tuning constants. Values are device/room dependent."""

    silence_timeout: float = Field(default=2.5, gt=0)
    echo_resume_delay: float = Field(default=0.5, gt=0)
    capture_restart_delay: float = Field(default=0.1, gt=0)
    duplicate_window: float = Field(default=3.0, gt=0)
    echo_min_chars: int = Field(default=8, gt=0)
    unlock_wait: float = Field(default=15.0, gt=0)


class CreditsConfig(BaseModel):
    enabled: bool = False
    balance: float = 10.0
    costs: dict[str, float] = Field(default_factory=lambda: {
        "generate-questions": 1.0,
        "evaluate-answer": 0.5,
        "generate-transition": 0.2,
        "generate-summary": 0.5,
        "synthesize-speech": 0.2,
    })


class HardwareConfig(BaseModel):
    mic_enabled: bool = True
    energy_threshold: float = 500.0  # RMS above this counts as speech
    segment_silence: float = 0.8     # Quiet seconds that close one recognized segment
    no_speech_timeout: float = 8.0


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8080
    access_token: str = ""


class AppConfig(BaseModel):
    provider: str = "openai"  # "openai", "claude" or "gemini"
    api_keys: APIKeysConfig = Field(default_factory=APIKeysConfig)
    interview: InterviewConfig = Field(default_factory=InterviewConfig)
    voice: VoiceConfig = Field(default_factory=VoiceConfig)
    timing: TimingConfig = Field(default_factory=TimingConfig)
    credits: CreditsConfig = Field(default_factory=CreditsConfig)
    hardware: HardwareConfig = Field(default_factory=HardwareConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


class ConfigManager:
    """Loads and persists the application configuration as JSON."""

    def __init__(self, data_dir: Path):
        self.data_dir = data_dir
        self.config_path = data_dir / "config.json"
        self._config: Optional[AppConfig] = None

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            self._config = self._load()
        return self._config

    def _load(self) -> AppConfig:
        """Load config from disk. Returns defaults if no config exists."""
        if self.config_path.exists():
            try:
                data = json.loads(self.config_path.read_text())
                logger.info("Configuration loaded from {}", self.config_path)
                return AppConfig(**data)
            except Exception as e:
                logger.error("Failed to load config: {}. Using defaults.", e)
        logger.info("No existing config found. Using defaults.")
        return AppConfig()

    def save(self) -> None:
        """Persist current config to disk."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(self.config.model_dump_json(indent=2))
        logger.debug("Configuration saved to {}", self.config_path)

    def update_nested(self, section: str, **kwargs) -> AppConfig:
        """Update fields within a nested config section."""
        current = self.config.model_dump()
        if section in current and isinstance(current[section], dict):
            current[section].update(kwargs)
        self._config = AppConfig(**current)
        self.save()
        return self._config

    @property
    def api_key(self) -> str:
        """Key of the currently selected content provider."""
        return getattr(self.config.api_keys, self.config.provider, "")
