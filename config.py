import os
import logging
from pydantic import BaseModel, Field
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


class Settings(BaseModel):
    data_dir: str = "data"
    log_level: str = "INFO"
    remote_timeout: float = Field(5.0, gt=0)  # seconds
    progress_ttl: int = Field(3600, gt=0)  # seconds
    remote_grading: bool = True


def _as_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def get_settings() -> Settings:
    """Build settings from environment variables (and .env, if present)"""
    values = {}
    env_map = {
        "SPLIT_GUIDE_DATA_DIR": "data_dir",
        "SPLIT_GUIDE_LOG_LEVEL": "log_level",
        "SPLIT_GUIDE_REMOTE_TIMEOUT": "remote_timeout",
        "SPLIT_GUIDE_PROGRESS_TTL": "progress_ttl",
    }
    for env_name, field in env_map.items():
        value = os.getenv(env_name)
        if value:
            values[field] = value

    remote = os.getenv("SPLIT_GUIDE_REMOTE_GRADING")
    if remote:
        values["remote_grading"] = _as_bool(remote)

    settings = Settings(**values)
    logger.debug(f"Loaded settings: {settings}")
    return settings
