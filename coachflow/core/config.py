import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings(BaseModel):
    """Pipeline settings: LLM credential and model, transcription backend credential and poll bounds, upload limits, storage paths, and prompt version.
    Passed explicitly into each component; an empty credential means that component runs in mock mode."""
    openai_api_key: str = os.getenv("OPENAI_API_KEY", "")
    chat_model: str = os.getenv("CHAT_MODEL", "gpt-4o-mini")
    llm_max_tokens: int = int(os.getenv("LLM_MAX_TOKENS", "2000"))
    llm_temperature: float = float(os.getenv("LLM_TEMPERATURE", "0.3"))

    assemblyai_api_key: str = os.getenv("ASSEMBLYAI_API_KEY", "")
    assemblyai_base_url: str = os.getenv("ASSEMBLYAI_BASE_URL", "https://api.assemblyai.com/v2")
    use_real_transcription: bool = _env_bool("USE_REAL_TRANSCRIPTION", "true")
    transcription_fallback_to_mock: bool = _env_bool("TRANSCRIPTION_FALLBACK_TO_MOCK", "true")
    transcription_poll_attempts: int = int(os.getenv("TRANSCRIPTION_POLL_ATTEMPTS", "60"))  # 10 minutes at the default interval
    transcription_poll_interval_seconds: float = float(os.getenv("TRANSCRIPTION_POLL_INTERVAL_SECONDS", "10"))

    max_upload_mb: int = int(os.getenv("MAX_UPLOAD_MB", "200"))
    upload_dir: str = os.getenv("UPLOAD_DIR", os.path.join(os.getcwd(), "data", "uploads"))
    data_root: Optional[str] = os.getenv("DATA_ROOT") or None
    prompt_version: str = os.getenv("PROMPT_VERSION", "v1")

    @field_validator("llm_max_tokens", "transcription_poll_attempts", "max_upload_mb")
    @classmethod
    def must_be_positive(cls, v):
        """Reject zero or negative limits coming from the environment."""
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("llm_temperature")
    @classmethod
    def temperature_in_range(cls, v):
        if not 0.0 <= v <= 2.0:
            raise ValueError("must be between 0 and 2")
        return v

    @field_validator("transcription_poll_interval_seconds")
    @classmethod
    def interval_not_negative(cls, v):
        if v < 0:
            raise ValueError("must be >= 0")
        return v

    @staticmethod
    def _usable_key(key: str) -> bool:
        key = (key or "").strip()
        return bool(key) and not key.startswith("your-")

    @property
    def llm_enabled(self) -> bool:
        """True when an LLM credential is configured (placeholder values such as 'your-openai-api-key' do not count)."""
        return self._usable_key(self.openai_api_key)

    @property
    def real_transcription_enabled(self) -> bool:
        return self.use_real_transcription and self._usable_key(self.assemblyai_api_key)


settings = Settings()
