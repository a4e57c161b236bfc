# settings.py
# Runtime configuration, read from the environment (and .env when present).

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from plan_loop.client import OPENROUTER_BASE_URL

load_dotenv()

DEFAULT_MODEL = "anthropic/claude-sonnet-4.5"


class Settings(BaseModel):
    api_key: str | None = None
    model: str = DEFAULT_MODEL
    base_url: str = OPENROUTER_BASE_URL
    action_url: str = "http://localhost:8765"
    max_recovery_attempts: int = Field(default=7, ge=0)
    max_total_steps: int = Field(default=100, ge=1)
    max_tokens: int = Field(default=8192, ge=1)
    max_retries: int = Field(default=3, ge=0)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from PLAN_LOOP_* variables. Unset variables keep their defaults."""
        env = {
            "api_key": os.getenv("OPENROUTER_API_KEY"),
            "model": os.getenv("PLAN_LOOP_MODEL"),
            "base_url": os.getenv("PLAN_LOOP_BASE_URL"),
            "action_url": os.getenv("PLAN_LOOP_ACTION_URL"),
            "max_recovery_attempts": os.getenv("PLAN_LOOP_MAX_RECOVERY_ATTEMPTS"),
            "max_total_steps": os.getenv("PLAN_LOOP_MAX_TOTAL_STEPS"),
            "max_tokens": os.getenv("PLAN_LOOP_MAX_TOKENS"),
            "max_retries": os.getenv("PLAN_LOOP_MAX_RETRIES"),
        }
        return cls.model_validate({k: v for k, v in env.items() if v is not None})
