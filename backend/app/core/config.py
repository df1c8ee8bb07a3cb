from typing import List
from functools import lru_cache
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    openai_api_key: str = ""
    assistant_model: str = "gpt-4o-mini"
    assistant_max_tokens: int = 1024
    assistant_timeout_sec: float = 30.0

    realtime_model: str = "gpt-4o-realtime-preview-2024-12-17"
    transcription_model: str = "whisper-1"
    sampling_rate_in: int = 48_000
    sampling_rate_out: int = 24_000

    # Voice loop
    listen_timeout_sec: float = 30.0
    speak_timeout_sec: float = 60.0
    command_debounce_sec: float = 2.0
    goodbye_message: str = "Okay, I'll stop now. See you next time! Happy cooking!"

    # Default speech synthesis settings, overridable per session
    voice_name: str = ""
    voice_locale: str = "en-US"
    speech_rate: float = 0.5
    speech_pitch: float = 1.0
    speech_volume: float = 1.0

    timer_tick_sec: float = 1.0

    cors_origins: List[str] = ["*"]

    model_config = {
        "env_file": ".env",
        "env_prefix": "",
        "extra": "ignore",
    }

@lru_cache()
def get_settings() -> Settings:
    """Return cached Settings instance."""
    return Settings()
