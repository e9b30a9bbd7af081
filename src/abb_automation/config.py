"""Settings loaded from the environment and the project ``.env`` file."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path

from abb_automation.errors import ConfigError

logger = logging.getLogger(__name__)

# ──────────────────────────────────────────────────
# Paths
# ──────────────────────────────────────────────────
PROJECT_ROOT = Path(__file__).resolve().parents[2]
DOTENV_PATH = Path(os.environ.get("ABB_ENV_FILE", PROJECT_ROOT / ".env"))

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


# ──────────────────────────────────────────────────
# .env loader (no external dependency)
# ──────────────────────────────────────────────────
def load_dotenv(dotenv_path: Path = DOTENV_PATH) -> bool:
    """Load a .env file into os.environ (simple key=value parser).

    Existing environment variables win over values from the file.
    Returns False when the file does not exist.
    """
    if not dotenv_path.exists():
        logger.debug(".env not found at %s, relying on system env vars", dotenv_path)
        return False
    with open(dotenv_path, encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key not in os.environ:
                os.environ[key] = value
    return True


def upsert_dotenv(values: dict[str, str], dotenv_path: Path = DOTENV_PATH) -> None:
    """Replace or append ``KEY=value`` lines in the .env file."""
    lines: list[str] = []
    if dotenv_path.exists():
        lines = [
            line for line in dotenv_path.read_text(encoding="utf-8").splitlines()
            if line.partition("=")[0].strip() not in values
        ]
    lines.extend(f"{key}={value}" for key, value in values.items())
    dotenv_path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def configure_logging(level: str | None = None) -> None:
    """Console logging for CLI entry points."""
    name = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=getattr(logging, name, logging.INFO), format=LOG_FORMAT)


# ──────────────────────────────────────────────────
# Settings
# ──────────────────────────────────────────────────
# field name -> environment variable
_ENV_NAMES = {
    "n8n_base_url": "N8N_BASE_URL",
    "n8n_api_key": "N8N_API_KEY",
    "clickup_api_key": "CLICKUP_API_KEY",
    "clickup_team_id": "CLICKUP_TEAM_ID",
    "clickup_space_id": "CLICKUP_SPACE_ID",
    "canva_client_id": "CANVA_CLIENT_ID",
    "canva_client_secret": "CANVA_CLIENT_SECRET",
    "canva_redirect_uri": "CANVA_REDIRECT_URI",
    "canva_api_base": "CANVA_API_BASE_URL",
    "canva_tokens_file": "CANVA_TOKENS_FILE",
    "google_client_id": "GOOGLE_CLIENT_ID",
    "google_client_secret": "GOOGLE_CLIENT_SECRET",
    "google_refresh_token": "GOOGLE_REFRESH_TOKEN",
    "google_redirect_uri": "GOOGLE_REDIRECT_URI",
    "anthropic_model": "ANTHROPIC_MODEL",
    "http_timeout": "HTTP_TIMEOUT_S",
}


@dataclass(frozen=True)
class Settings:
    n8n_base_url: str = "http://localhost:5678"
    n8n_api_key: str = ""
    clickup_api_key: str = ""
    clickup_team_id: str = "1293152"
    clickup_space_id: str = "90090599325"
    canva_client_id: str = ""
    canva_client_secret: str = ""
    canva_redirect_uri: str = ""
    canva_api_base: str = "https://api.canva.com/rest/v1"
    canva_tokens_file: str = str(PROJECT_ROOT / ".canva-tokens.json")
    google_client_id: str = ""
    google_client_secret: str = ""
    google_refresh_token: str = ""
    google_redirect_uri: str = "http://localhost:3000/oauth/callback"
    anthropic_model: str = "claude-opus-4-6"
    http_timeout: float = 30.0

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None, *, dotenv: bool = True) -> "Settings":
        """Build settings from ``env`` (default: os.environ after loading .env)."""
        if env is None:
            if dotenv:
                load_dotenv()
            env = dict(os.environ)
        values: dict[str, object] = {}
        for f in fields(cls):
            raw = env.get(_ENV_NAMES[f.name])
            if f.name == "n8n_base_url" and not raw:
                # deploy-era .env files use N8N_API_URL
                raw = env.get("N8N_API_URL")
            if not raw:
                continue
            if f.name == "http_timeout":
                try:
                    values[f.name] = float(raw)
                except ValueError as exc:
                    raise ConfigError(f"HTTP_TIMEOUT_S must be a number, got {raw!r}") from exc
            else:
                values[f.name] = raw.rstrip("/") if f.name.endswith(("_url", "_base")) else raw
        return cls(**values)

    def require(self, name: str) -> str:
        """Return a non-empty setting or raise ConfigError naming its env var."""
        value = getattr(self, name)
        if not value:
            raise ConfigError(f"{_ENV_NAMES[name]} not set. Export it or add to .env.")
        return value
