from __future__ import annotations

import os
from dataclasses import dataclass, field


def _env_bool(value: str | None, default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _env_int(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    return int(value)


def _parse_origins(value: str | None) -> list[str]:
    if not value:
        return [
            "http://localhost:8000",
            "http://127.0.0.1:8000",
        ]
    return [origin.strip() for origin in value.split(",") if origin.strip()]


@dataclass(frozen=True)
class Settings:
    """Runtime settings loaded from environment variables."""

    store: str = os.getenv("COINGRID_STORE", "memory").strip().lower()
    db_path: str = os.getenv("COINGRID_DB_PATH", "coingrid.db")
    reset_on_start: bool = _env_bool(os.getenv("COINGRID_RESET_ON_START", "1"))
    random_seed: int | None = _env_int(os.getenv("COINGRID_RANDOM_SEED"))
    broadcast_seconds: float = float(os.getenv("COINGRID_BROADCAST_SECONDS", "0.1"))
    enable_broadcast_loop: bool = _env_bool(os.getenv("COINGRID_ENABLE_BROADCAST_LOOP", "1"))
    cors_origins: list[str] = field(
        default_factory=lambda: _parse_origins(os.getenv("COINGRID_CORS_ORIGINS"))
    )


settings = Settings()
