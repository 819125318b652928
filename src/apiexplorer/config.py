"""Runtime configuration assembled from the environment and ``.env`` files."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

GROQ_BASE_URL = "https://api.groq.com/openai/v1"
OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
DEFAULT_PRIMARY_MODEL = "llama-3.3-70b-versatile"
DEFAULT_FALLBACK_MODEL = "qwen/qwen-2.5-coder-32b-instruct"
DEFAULT_ORIGINS = ["http://localhost:3000", "http://10.0.0.104:3000"]
DEFAULT_SYSTEM_PROMPT = (
    "You are an AI assistant that helps users combine public APIs into "
    "practical application ideas. Cite catalogue entries as [[API Name]]."
)


def load_dotenv(start_dir: Path) -> Path | None:
    """Load a .env file from *start_dir* (or parents) into os.environ.

    Only sets vars that are not already present in the environment.
    Returns the file that was loaded, if any.
    """
    search = start_dir.resolve()
    for d in [search, *search.parents]:
        candidate = d / ".env"
        if not candidate.is_file():
            continue
        try:
            lines = candidate.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            logger.warning("Could not read %s: %s", candidate, exc)
            return None
        for line in lines:
            line = line.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("\"'")
            if key and key not in os.environ:
                os.environ[key] = value
        return candidate  # stop after the first .env found
    return None


class ExplorerConfig(BaseModel):
    """All tunables for the proxy server and the conversation client."""

    host: str = "127.0.0.1"
    port: int = 3001
    public_url: str | None = None
    allowed_origins: list[str] = Field(default_factory=lambda: list(DEFAULT_ORIGINS))

    primary_api_key: str = ""
    primary_model: str = DEFAULT_PRIMARY_MODEL
    primary_base_url: str = GROQ_BASE_URL
    fallback_api_key: str = ""
    fallback_model: str = DEFAULT_FALLBACK_MODEL
    fallback_base_url: str = OPENROUTER_BASE_URL
    app_url: str = "http://localhost:3000"

    default_system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_tokens: int = 1000
    mockup_max_tokens: int = 4000
    timeout_budget: float = 60.0

    state_dir: Path = Field(default_factory=lambda: Path.home() / ".apiexplorer")
    catalogue_path: Path | None = None
    huggingface_token: str = ""

    @property
    def base_url(self) -> str:
        """Public base URL used to build links to generated mockups."""
        return (self.public_url or f"http://{self.host}:{self.port}").rstrip("/")

    @classmethod
    def from_env(cls, start_dir: Path | None = None) -> "ExplorerConfig":
        """Build a config from os.environ after loading the nearest .env."""
        load_dotenv(start_dir or Path.cwd())
        env = os.environ

        origins = list(DEFAULT_ORIGINS)
        extra_origin = env.get("ALLOWED_ORIGIN", "").strip()
        if extra_origin:
            origins.append(extra_origin)

        values: dict = {
            "allowed_origins": origins,
            "primary_api_key": env.get("GROQ_API_KEY", "").strip(),
            "primary_model": env.get("GROQ_MODEL") or DEFAULT_PRIMARY_MODEL,
            "fallback_api_key": env.get("OPENROUTER_API_KEY", "").strip(),
            "fallback_model": env.get("OPENROUTER_MODEL") or DEFAULT_FALLBACK_MODEL,
            "huggingface_token": env.get("HUGGING_FACE_TOKEN", "").strip(),
        }
        if env.get("PORT"):
            values["port"] = int(env["PORT"])
        if env.get("APP_URL"):
            values["app_url"] = env["APP_URL"]
        if env.get("PUBLIC_URL"):
            values["public_url"] = env["PUBLIC_URL"]
        if env.get("SYSTEM_PROMPT_MOCKUP"):
            values["default_system_prompt"] = env["SYSTEM_PROMPT_MOCKUP"]
        if env.get("APIEXPLORER_TIMEOUT"):
            values["timeout_budget"] = float(env["APIEXPLORER_TIMEOUT"])
        if env.get("APIEXPLORER_STATE_DIR"):
            values["state_dir"] = Path(env["APIEXPLORER_STATE_DIR"]).expanduser()
        if env.get("APIEXPLORER_CATALOGUE"):
            values["catalogue_path"] = Path(env["APIEXPLORER_CATALOGUE"]).expanduser()
        return cls(**values)
