"""Configuration loaded from environment variables."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _optional_float(name: str) -> float | None:
    val = os.getenv(name, "").strip()
    return float(val) if val else None


# Paths
DATA_DIR: Path = Path(os.getenv("DATA_DIR", "./data"))

# Upstream hosts
ANTHROPIC_BASE_URL: str = os.getenv("ANTHROPIC_BASE_URL", "https://api.anthropic.com")
OPENAI_BASE_URL: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com")
GITHUB_API_URL: str = os.getenv("GITHUB_API_URL", "https://api.github.com")

# Relay
RELAY_STREAMING: bool = _flag("RELAY_STREAMING", "true")
# Seconds; unset waits indefinitely
UPSTREAM_TIMEOUT: float | None = _optional_float("UPSTREAM_TIMEOUT")

# Sync
SURFACE_SETTLE_SECONDS: float = float(os.getenv("SURFACE_SETTLE_SECONDS", "0.05"))

# Server
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "8000"))
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS: list[str] = [
    o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
]

# Derived paths
SETTINGS_PATH: Path = Path(os.getenv("SETTINGS_PATH", str(DATA_DIR / "drawsync.db")))


def get_upstream_url(provider: str) -> str:
    """Return the upstream base URL for a relay route name."""
    if provider == "anthropic":
        return ANTHROPIC_BASE_URL
    if provider == "openai":
        return OPENAI_BASE_URL
    raise ValueError(f"Unknown upstream {provider!r}")
