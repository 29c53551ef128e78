from enum import Enum
from typing import Optional
from pydantic import BaseModel


class LLMProvider(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    LOCAL = "local"


# Model ids for a local OpenAI-compatible server are written "local/<model-name>"
LOCAL_MODEL_PREFIX = "local/"


def detect_provider(model: str) -> LLMProvider:
    """Pick the backend from the model identifier's naming convention."""
    if model.startswith("claude-"):
        return LLMProvider.ANTHROPIC
    if model.startswith("gemini-") or model.startswith("models/gemini-"):
        return LLMProvider.GOOGLE
    if model.startswith(LOCAL_MODEL_PREFIX):
        return LLMProvider.LOCAL
    # gpt-*, o-series and anything unrecognised go to OpenAI
    return LLMProvider.OPENAI


def backend_model_name(model: str) -> str:
    """Model name as the backend expects it (drops the local/ routing prefix)."""
    if model.startswith(LOCAL_MODEL_PREFIX):
        return model[len(LOCAL_MODEL_PREFIX):]
    return model


class BackendConfig(BaseModel):
    provider: LLMProvider
    base_url: Optional[str] = None
    api_key: Optional[str] = None
