"""Summary: Application configuration for ClanBridge.

Importance: Centralizes environment, .env, and config defaults for consistent behavior.
Alternatives: Use a dedicated settings library like Pydantic Settings.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from dataclasses import dataclass


@dataclass(frozen=True)
class AppConfig:
    """Summary: Holds configuration values for the remote store bridge and API.

    Importance: Ensures all services derive settings from a single source of truth.
    Alternatives: Store settings in a shared config file and parse at startup.

    The Discord guild id and bot token are passed through for the external platform client;
    nothing in this package reads them.
    """

    database_url: str
    client_email: str | None
    private_key: str | None
    project_id: str | None
    token_url: str
    token_scope: str
    cache_ttl_seconds: float
    cache_max_entries: int | None
    http_timeout: float
    api_key: str
    discord_guild_id: str | None
    discord_bot_token: str | None

    @staticmethod
    def from_env() -> "AppConfig":
        """Summary: Build configuration from defaults, .env, and environment.

        Importance: Keeps all variables defined in config defaults while allowing overrides.
        Alternatives: Parse only environment variables without a defaults file.
        """

        defaults = load_defaults(Path("config") / "defaults.json")
        load_dotenv(Path(".env"))
        max_entries = os.getenv("CLANBRIDGE_CACHE_MAX_ENTRIES") or defaults["cache_max_entries"]
        return AppConfig(
            database_url=os.getenv("FIREBASE_DATABASE_URL", defaults["database_url"]).rstrip("/"),
            client_email=os.getenv("FIREBASE_CLIENT_EMAIL") or defaults["client_email"] or None,
            private_key=normalize_private_key(
                os.getenv("FIREBASE_PRIVATE_KEY") or defaults["private_key"] or None
            ),
            project_id=os.getenv("FIREBASE_PROJECT_ID") or defaults["project_id"] or None,
            token_url=os.getenv("CLANBRIDGE_TOKEN_URL", defaults["token_url"]),
            token_scope=os.getenv("CLANBRIDGE_TOKEN_SCOPE", defaults["token_scope"]),
            cache_ttl_seconds=float(
                os.getenv("CLANBRIDGE_CACHE_TTL_SECONDS", defaults["cache_ttl_seconds"])
            ),
            cache_max_entries=int(max_entries) if max_entries else None,
            http_timeout=float(os.getenv("CLANBRIDGE_HTTP_TIMEOUT", defaults["http_timeout"])),
            api_key=os.getenv("CLANBRIDGE_API_KEY", defaults["api_key"]),
            discord_guild_id=os.getenv("DISCORD_GUILD_ID") or defaults["discord_guild_id"] or None,
            discord_bot_token=os.getenv("DISCORD_BOT_TOKEN")
            or defaults["discord_bot_token"]
            or None,
        )


def normalize_private_key(value: str | None) -> str | None:
    """Summary: Restore newlines in a PEM key passed through a single-line variable.

    Importance: Service account keys are commonly stored with escaped newlines.
    Alternatives: Require the key to be loaded from a JSON key file.
    """

    if not value:
        return None
    return value.replace("\\n", "\n")


def load_defaults(path: Path) -> dict[str, str]:
    """Summary: Load configuration defaults from JSON.

    Importance: Ensures all variables exist in a single config file.
    Alternatives: Inline defaults in the AppConfig initializer.
    """

    if not path.exists():
        raise FileNotFoundError(f"Defaults file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def load_dotenv(path: Path) -> None:
    """Summary: Load key-value pairs from a .env file into the environment.

    Importance: Keeps secrets out of code while supporting local workflows.
    Alternatives: Use python-dotenv or OS-specific secret stores.
    """

    if not path.exists():
        return
    for raw_line in path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip().strip('"'))
