import os
from dataclasses import dataclass, fields

from birdrelay.errors import ConfigurationError

# Credential fields and the environment variables they come from.
CREDENTIAL_ENV = {
    "openai_api_key": "OPENAI_API_KEY",
    "ai_gateway_api_key": "AI_GATEWAY_API_KEY",
}


@dataclass(frozen=True)
class Settings:
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    transcription_model: str = "whisper-1"
    ai_gateway_api_key: str = ""
    ai_gateway_url: str = "https://ai.gateway.reggie.dev/v1/chat/completions"
    ai_gateway_model: str = "google/gemini-2.5-flash"
    request_timeout: float = 60.0
    max_image_size: int = 0
    audio_trim_seconds: int = 0
    db_path: str = "./data/identifications.sqlite"
    log_level: str = "INFO"

    def require(self, *names: str):
        missing = [CREDENTIAL_ENV.get(n, n.upper()) for n in names if not getattr(self, n)]
        if missing:
            raise ConfigurationError(f"API keys not configured: {', '.join(missing)}")


def load_settings() -> Settings:
    """Build Settings from environment variables, falling back to the dataclass defaults."""
    defaults = {f.name: f.default for f in fields(Settings)}
    return Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
        openai_base_url=os.getenv("OPENAI_BASE_URL", defaults["openai_base_url"]),
        transcription_model=os.getenv("OPENAI_AUDIO_MODEL", defaults["transcription_model"]),
        ai_gateway_api_key=os.getenv("AI_GATEWAY_API_KEY", "").strip(),
        ai_gateway_url=os.getenv("AI_GATEWAY_URL", defaults["ai_gateway_url"]),
        ai_gateway_model=os.getenv("AI_GATEWAY_MODEL", defaults["ai_gateway_model"]),
        request_timeout=float(os.getenv("REQUEST_TIMEOUT", defaults["request_timeout"])),
        max_image_size=int(os.getenv("MAX_IMAGE_SIZE", defaults["max_image_size"])),
        audio_trim_seconds=int(os.getenv("AUDIO_TRIM_SECONDS", defaults["audio_trim_seconds"])),
        db_path=os.getenv("DB_PATH", defaults["db_path"]),
        log_level=os.getenv("LOG_LEVEL", defaults["log_level"]).upper(),
    )
