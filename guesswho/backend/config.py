"""Configuration helpers for backend runtime."""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class BackendSettings:
    host: str
    port: int
    session_idle_timeout_minutes: int
    cleanup_interval_seconds: float
    post_round_timeout_seconds: float
    log_level: str


def load_settings() -> BackendSettings:
    return BackendSettings(
        host=os.getenv("GUESSWHO_HOST", "127.0.0.1"),
        port=int(os.getenv("GUESSWHO_PORT", "8000")),
        session_idle_timeout_minutes=int(os.getenv("GUESSWHO_SESSION_IDLE_TIMEOUT_MINUTES", "120")),
        cleanup_interval_seconds=float(os.getenv("GUESSWHO_CLEANUP_INTERVAL_SECONDS", "600")),
        post_round_timeout_seconds=float(os.getenv("GUESSWHO_POST_ROUND_TIMEOUT_SECONDS", "60")),
        log_level=os.getenv("GUESSWHO_LOG_LEVEL", "INFO").upper(),
    )
