"""SQLite storage for process-wide settings: provider config and GitHub token."""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from drawsync.agent.provider import ProviderConfig

_PROVIDER_KEY = "provider"
_API_KEY_KEY = "api_key"
_MODEL_KEY = "model"
_GITHUB_TOKEN_KEY = "github_token"


def mask(value: str) -> str:
    """Mask a secret for display, keeping a short prefix and suffix.

    Secrets of ten characters or fewer are masked completely.
    """
    if not value:
        return ""
    if len(value) <= 10:
        return "•" * len(value)
    return value[:3] + "•" * max(4, len(value) - 7) + value[-4:]


class SettingsStore:
    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")

    def init_db(self) -> None:
        """Create the settings table."""
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT,
                updated_at TEXT NOT NULL
            );
            """
        )
        self._conn.commit()

    # ── Key/value ──

    def set_value(self, key: str, value: str) -> None:
        """Set a settings key-value pair (INSERT OR REPLACE)."""
        now = datetime.now(timezone.utc).isoformat()
        self._conn.execute(
            "INSERT OR REPLACE INTO settings (key, value, updated_at) VALUES (?, ?, ?)",
            (key, value, now),
        )
        self._conn.commit()

    def get_value(self, key: str) -> str | None:
        """Get a settings value by key, or None if not found."""
        cur = self._conn.execute("SELECT value FROM settings WHERE key = ?", (key,))
        row = cur.fetchone()
        return row[0] if row else None

    # ── Provider config ──

    def load_provider_config(self) -> ProviderConfig:
        """Return the saved provider config, or defaults when nothing is saved."""
        provider = self.get_value(_PROVIDER_KEY)
        return ProviderConfig(
            provider=provider if provider in ("openai", "anthropic") else "openai",
            api_key=self.get_value(_API_KEY_KEY) or "",
            model=self.get_value(_MODEL_KEY) or "",
        )

    def save_provider_config(self, cfg: ProviderConfig) -> None:
        with self._conn:
            now = datetime.now(timezone.utc).isoformat()
            self._conn.executemany(
                "INSERT OR REPLACE INTO settings (key, value, updated_at) VALUES (?, ?, ?)",
                [
                    (_PROVIDER_KEY, cfg.provider, now),
                    (_API_KEY_KEY, cfg.api_key, now),
                    (_MODEL_KEY, cfg.model, now),
                ],
            )

    # ── GitHub ──

    def get_github_token(self) -> str:
        return self.get_value(_GITHUB_TOKEN_KEY) or ""

    def set_github_token(self, token: str) -> None:
        self.set_value(_GITHUB_TOKEN_KEY, token)

    def close(self) -> None:
        self._conn.close()
