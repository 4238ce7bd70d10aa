from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_path(name: str, fallback: str) -> Path:
    env_root = os.getenv(name)
    if env_root:
        return Path(env_root).expanduser().resolve()
    return Path(__file__).resolve().parents[2] / fallback


@dataclass(frozen=True, slots=True)
class Settings:
    """Runtime configuration assembled from environment variables."""

    workspaces_root: Path
    uploads_root: Path
    python_executable: str = sys.executable
    execution_timeout: float = 30.0
    introspection_timeout: float = 10.0
    generation_timeout: float = 60.0
    summary_timeout: float = 30.0
    max_output_bytes: int = 10 * 1024 * 1024
    memory_limit_mb: int = 0
    openai_api_key: str | None = None
    openai_base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-5-nano"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            workspaces_root=_env_path("WORKSPACES_ROOT", "workspaces"),
            uploads_root=_env_path("UPLOADS_ROOT", "uploads"),
            python_executable=os.getenv("ANALYSIS_PYTHON") or sys.executable,
            execution_timeout=_env_float("ANALYSIS_TIMEOUT_S", 30.0),
            introspection_timeout=_env_float("INTROSPECTION_TIMEOUT_S", 10.0),
            generation_timeout=_env_float("GENERATION_TIMEOUT_S", 60.0),
            summary_timeout=_env_float("SUMMARY_TIMEOUT_S", 30.0),
            max_output_bytes=_env_int("ANALYSIS_MAX_OUTPUT_BYTES", 10 * 1024 * 1024),
            memory_limit_mb=_env_int("ANALYSIS_MEM_MB", 0),
            openai_api_key=os.getenv("OPENAI_API_KEY") or None,
            openai_base_url=os.getenv("OPENAI_BASE_URL") or "https://api.openai.com/v1",
            model=os.getenv("DATACHAT_MODEL") or "gpt-5-nano",
        )


def get_settings() -> Settings:
    """Read the current settings; environment changes are picked up on every call."""

    return Settings.from_env()
