# Runtime configuration - read from the environment (.env supported)
from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()  # Local .env so DEMO_MODE / CLINIC_STORAGE work without exports

DEFAULT_STORAGE_KEY = "clinic-state-v1"


def _env_flag(name: str) -> bool:
    """True only when the env var is explicitly 'true' (case-insensitive)."""
    return os.environ.get(name, "").lower() == "true"


class Settings:
    """Centralized configuration for the clinic backend."""

    def __init__(self) -> None:
        repo_root = Path(__file__).resolve().parent.parent
        self.storage_backend: str = os.environ.get("CLINIC_STORAGE", "file").lower()
        self.data_dir: Path = Path(
            os.environ.get("CLINIC_DATA_DIR") or repo_root / "data"
        ).expanduser()
        self.storage_key: str = os.environ.get("CLINIC_STORAGE_KEY", DEFAULT_STORAGE_KEY)
        self.demo_mode: bool = _env_flag("DEMO_MODE")
        self.frontend_url: str = os.environ.get("FRONTEND_URL", "")
        self.log_level: str = os.environ.get("LOG_LEVEL", "INFO").upper()
        self.log_json: bool = _env_flag("LOG_JSON")

    @property
    def allowed_origins(self) -> list[str]:
        origins = [
            "http://localhost:3000",
            "http://localhost:5173",
        ]
        if self.frontend_url:
            origins.append(self.frontend_url)
        return origins


def get_settings() -> Settings:
    """Settings snapshot built from the current environment (no caching, tests monkeypatch env)."""
    return Settings()
