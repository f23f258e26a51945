"""cidvault configuration — Pydantic BaseSettings loaded from .env."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

STORAGE_BACKENDS = ("none", "cli", "http")


class Settings(BaseSettings):
    """Application settings."""

    app_name: str = "cidvault"
    debug: bool = True
    log_level: str = "INFO"

    # Network
    host: str = "127.0.0.1"
    port: int = 8000
    api_prefix: str = "/api"
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:8000",
    ]

    # Storage paths (relative resolved from backend/ at runtime)
    data_dir: str = "./data"
    ledger_path: str = "./data/metadata.json"
    cid_dir: str = "./data/cids"
    scratch_dir: str = "./data/scratch"

    # Content-addressed store: none | cli | http
    storage_backend: str = "none"
    ipfs_binary: str = "ipfs"
    ipfs_api_url: str = "http://127.0.0.1:5001"
    ipfs_gateway_url: str = "http://127.0.0.1:5000"
    storage_timeout_seconds: float = 30.0

    # Delete/Restore accept any known id unless this is set
    enforce_owner_on_mutation: bool = False

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        env_prefix="CIDVAULT_",
        extra="ignore",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, value: list[str] | str) -> list[str]:
        if isinstance(value, str) and not value.startswith("["):
            return [o.strip() for o in value.split(",") if o.strip()]
        if isinstance(value, list):
            return value
        return ["http://localhost:5173"]

    @field_validator("storage_backend")
    @classmethod
    def check_storage_backend(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in STORAGE_BACKENDS:
            raise ValueError(f"storage_backend must be one of {', '.join(STORAGE_BACKENDS)}")
        return value

    @model_validator(mode="after")
    def _resolve_paths(self) -> "Settings":
        """Ensure data paths are absolute."""
        base = Path(__file__).resolve().parent.parent  # backend/
        for field in ("data_dir", "ledger_path", "cid_dir", "scratch_dir"):
            val = getattr(self, field)
            if not Path(val).is_absolute():
                setattr(self, field, str(base / val))
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
