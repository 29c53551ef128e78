"""Application configuration using Pydantic Settings"""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # App Configuration
    APP_NAME: str = "CodeWatch Flow Analyzer"
    APP_VERSION: str = "0.2.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Database Configuration
    DATABASE_URL: str = "sqlite+aiosqlite:///./codewatch.db"

    # Model Configuration
    DEFAULT_MODEL: str = "gpt-5.1-2025-11-13"
    DISCOVERY_MODEL: Optional[str] = None
    CHECKLIST_MODEL: Optional[str] = None
    INSPECTION_MODEL: Optional[str] = None

    # Provider credentials; every backend is reached through an OpenAI-compatible API
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: Optional[str] = None
    ANTHROPIC_API_KEY: Optional[str] = None
    ANTHROPIC_BASE_URL: str = "https://api.anthropic.com/v1/"
    GOOGLE_API_KEY: Optional[str] = None
    GOOGLE_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    LOCAL_LLM_BASE_URL: str = "http://localhost:11434"

    LLM_TIMEOUT: float = 300.0
    LLM_TEMPERATURE: Optional[float] = None
    LLM_MAX_TOKENS: Optional[int] = None

    # Agent budgets
    DISCOVERY_MAX_DEPTH: int = 10
    DISCOVERY_MAX_RETRIES: int = 3
    DISCOVERY_MAX_CONSECUTIVE_FAILURES: int = 3
    CHECKLIST_MAX_RETRIES: int = 3
    INSPECTION_MAX_RETRIES: int = 3
    PROJECT_TREE_DEPTH: int = 10
    MAX_SIMILAR_FILES: int = 5
    MAX_CONTROLS_PER_CHECKLIST: int = 10
    ENFORCE_CONTROL_LIMIT: bool = False

    # Debug transcripts
    SAVE_DEBUG_OUTPUT: bool = True
    DEBUG_OUTPUT_DIR: str = "output"

    # Job lifecycle
    JOB_TTL_SECONDS: int = 30 * 60
    JOB_CLEANUP_INTERVAL_SECONDS: int = 5 * 60
    STREAM_HEARTBEAT_SECONDS: float = 15.0

    # Upload limits
    MAX_FILE_BYTES: int = 1024 * 1024
    MAX_UPLOAD_BYTES: int = 50 * 1024 * 1024

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True

    def model_for(self, agent: str) -> str:
        """Return the configured model for an agent, falling back to DEFAULT_MODEL."""
        override = getattr(self, f"{agent.upper()}_MODEL", None)
        return override or self.DEFAULT_MODEL


# Global settings instance
settings = Settings()
