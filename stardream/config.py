"""Runtime settings, read from the environment (and a .env file at the repo root)."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel

ROOT = Path(__file__).parent.parent


class Settings(BaseModel):
    llm_url: str = "http://localhost:5001"
    llm_api_key: str = ""
    llm_model: str = ""
    llm_timeout: float = 120.0
    data_dir: Path = ROOT / "data"
    save_key: str = "xingmeng-save-v1"
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 13013

    def public(self) -> dict:
        """Settings safe to show in the UI: the API key is masked."""
        data = self.model_dump(mode="json")
        if self.llm_api_key:
            data["llm_api_key"] = "***" + self.llm_api_key[-4:] if len(self.llm_api_key) > 8 else "***"
        return data


def load_settings(env_file: Path | None = None) -> Settings:
    load_dotenv(env_file or ROOT / ".env")
    defaults = Settings()
    return Settings(
        llm_url=os.getenv("LLM_URL", defaults.llm_url),
        llm_api_key=os.getenv("LLM_API_KEY", defaults.llm_api_key),
        llm_model=os.getenv("LLM_MODEL", defaults.llm_model),
        llm_timeout=os.getenv("LLM_TIMEOUT", defaults.llm_timeout),
        data_dir=os.getenv("DATA_DIR", defaults.data_dir),
        save_key=os.getenv("SAVE_KEY", defaults.save_key),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
        host=os.getenv("HOST", defaults.host),
        port=os.getenv("PORT", defaults.port),
    )
