"""Load fire_enrich settings from TOML and the environment.

The config file is looked up in order (first existing wins):
  1. Path in the FIRE_ENRICH_CONFIG env var (if set)
  2. fire_enrich.toml in the current working directory

Recognised tables:

    [client]
    base_url = "http://localhost:3000"
    connect_timeout = 10.0
    read_timeout = 300.0
    use_agents = true

    [reveal]
    tick_interval = 0.1

Environment overrides applied last: FIRE_ENRICH_BASE_URL, FIRECRAWL_API_KEY,
OPENAI_API_KEY. If no file is found, built-in defaults are used.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, Field, ValidationError

from fire_enrich.errors import ConfigError

DEFAULT_BASE_URL = "http://localhost:3000"


class Credentials(BaseModel, frozen=True):
    """Optional keys for the producer's two third-party capabilities."""

    firecrawl_api_key: str | None = None
    openai_api_key: str | None = None

    def headers(self) -> dict[str, str]:
        headers: dict[str, str] = {}
        if self.firecrawl_api_key:
            headers["X-Firecrawl-API-Key"] = self.firecrawl_api_key
        if self.openai_api_key:
            headers["X-OpenAI-API-Key"] = self.openai_api_key
        return headers


class Settings(BaseModel, frozen=True):
    base_url: str = DEFAULT_BASE_URL
    enrich_path: str = "/api/enrich"
    chat_path: str = "/api/chat"
    connect_timeout: float = Field(10.0, gt=0)
    read_timeout: float = Field(300.0, gt=0, description="Longest idle gap allowed between stream chunks.")
    use_agents: bool = True
    reveal_tick_interval: float = Field(0.1, gt=0)
    credentials: Credentials = Field(default_factory=Credentials)

    def url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}{path}"


def _default_config_paths() -> list[Path]:
    paths: list[Path] = []
    if os.environ.get("FIRE_ENRICH_CONFIG"):
        paths.append(Path(os.environ["FIRE_ENRICH_CONFIG"]))
    paths.append(Path.cwd() / "fire_enrich.toml")
    return paths


def _from_toml(data: Mapping[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    client = data.get("client")
    if isinstance(client, dict):
        for key in ("base_url", "enrich_path", "chat_path", "connect_timeout", "read_timeout", "use_agents"):
            if key in client:
                out[key] = client[key]
    reveal = data.get("reveal")
    if isinstance(reveal, dict) and "tick_interval" in reveal:
        out["reveal_tick_interval"] = reveal["tick_interval"]
    return out


def load_settings(path: Path | None = None, environ: Mapping[str, str] | None = None) -> Settings:
    """Build settings from the first config file found plus environment overrides.

    Args:
        path: Explicit config file; skips the lookup when given.
        environ: Environment mapping, defaults to ``os.environ``.

    Raises:
        ConfigError: If a config file exists but cannot be parsed or holds
            invalid values.
    """
    env = os.environ if environ is None else environ
    values: dict[str, Any] = {}
    for candidate in [path] if path is not None else _default_config_paths():
        if candidate.is_file():
            try:
                with open(candidate, "rb") as f:
                    values.update(_from_toml(tomllib.load(f)))
            except (OSError, tomllib.TOMLDecodeError) as exc:
                raise ConfigError(f"Cannot read config file {candidate}: {exc}") from exc
            break

    if env.get("FIRE_ENRICH_BASE_URL"):
        values["base_url"] = env["FIRE_ENRICH_BASE_URL"]
    values["credentials"] = Credentials(
        firecrawl_api_key=env.get("FIRECRAWL_API_KEY") or None,
        openai_api_key=env.get("OPENAI_API_KEY") or None,
    )
    try:
        return Settings(**values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings: {exc}") from exc
