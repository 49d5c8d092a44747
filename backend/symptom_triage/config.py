from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

_BACKEND_ROOT = Path(__file__).resolve().parents[1]
load_dotenv(_BACKEND_ROOT / ".env", override=False)


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Reasoning backend
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    openai_model: str = "gpt-4o"
    openai_temperature: float = 0.7
    structured_output: bool = True

    # Conversation
    context_max_turns: Optional[int] = None  # None keeps the whole history
    session_ttl_hours: float = 24
    session_cleanup_interval_minutes: float = 60

    # Persistence
    database_url: str = "sqlite:///./symptom_triage.db"
    upload_dir: str = "./uploads"
    media_base_url: str = "/media"

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False
    cors_origins: list[str] = ["http://localhost:3000"]

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False


settings = Settings()
