from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    db_path: Path = Path("./repcoach.db")
    host: str = "127.0.0.1"
    port: int = 8000
    trainer_mode: bool = False  # speak rep numbers out loud
    camera_index: int = 0
    log_level: str = "INFO"


def get_settings() -> Settings:
    return Settings(
        db_path=Path(os.getenv("REPCOACH_DB_PATH", "./repcoach.db")),
        host=os.getenv("REPCOACH_HOST", "127.0.0.1"),
        port=int(os.getenv("REPCOACH_PORT", "8000")),
        trainer_mode=_env_bool("REPCOACH_TRAINER_MODE", False),
        camera_index=int(os.getenv("REPCOACH_CAMERA_INDEX", "0")),
        log_level=os.getenv("REPCOACH_LOG_LEVEL", "INFO").upper(),
    )
