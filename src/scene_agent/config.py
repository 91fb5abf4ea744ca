# config.py
# Runtime settings, read from the environment (and a local .env file).

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    """Where the agent service lives and how the client talks to it."""

    host: str = "127.0.0.1"
    port: int = Field(default=4317, ge=1, le=65535)
    provider: str = "openai"
    model: str = ""
    timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    log_level: str = "WARNING"

    @property
    def base_url(self) -> str:
        return f"http://{self.host}:{self.port}"

    @classmethod
    def from_env(cls) -> "Settings":
        values = {
            "host": os.getenv("SCENE_AGENT_HOST"),
            "port": os.getenv("SCENE_AGENT_PORT"),
            "provider": os.getenv("SCENE_AGENT_PROVIDER"),
            "model": os.getenv("SCENE_AGENT_MODEL"),
            "timeout": os.getenv("SCENE_AGENT_TIMEOUT"),
            "max_retries": os.getenv("SCENE_AGENT_MAX_RETRIES"),
            "log_level": os.getenv("SCENE_AGENT_LOG_LEVEL"),
        }
        return cls.model_validate({key: value for key, value in values.items() if value})
