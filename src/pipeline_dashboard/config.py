from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from pipeline_dashboard.refresh import RefreshConfig, refresh_config_from_query


class PathsConfig(BaseModel):
    logs_dir: Path = Field(default=Path("logs"))


class Settings(BaseModel):
    """Application settings.

    API:
    - api_base_url is the root of the read-only pipeline API
      (GET {api_base_url}/pipelines, GET {api_base_url}/pipeline/{name}).
    - request_timeout_s bounds each single read; there is no retry.

    Refresh:
    - query is the page query string (e.g. "?refresh=30" or "?static").
      It is parsed once into a RefreshConfig and never changes afterwards.
    """

    api_base_url: str = Field(default="http://localhost:8080")
    request_timeout_s: float = Field(default=20.0, gt=0)

    # Leerer Query-String -> Standardintervall (60s)
    query: str = Field(default="")

    paths: PathsConfig = Field(default_factory=PathsConfig)

    def refresh_config(self, query: Optional[str] = None) -> RefreshConfig:
        return refresh_config_from_query(self.query if query is None else query)


def load_settings(config_path: Optional[Path]) -> Settings:
    """Load settings from .env + optional YAML.

    Precedence:
      1) defaults
      2) .env (PIPELINE_API_URL / PIPELINE_QUERY / REQUEST_TIMEOUT_S)
      3) YAML file (if provided)

    Only the project's local `.env` is loaded, never one from a parent
    directory, so runs stay reproducible.
    """

    load_dotenv(dotenv_path=Path(".env"), override=False)

    merged: Dict[str, Any] = Settings().model_dump(mode="python")

    env_api_url = _getenv("PIPELINE_API_URL")
    env_query = _getenv("PIPELINE_QUERY")
    env_timeout = _getenv("REQUEST_TIMEOUT_S")

    if env_api_url is not None:
        merged["api_base_url"] = env_api_url
    if env_query is not None:
        merged["query"] = env_query
    if env_timeout is not None:
        merged["request_timeout_s"] = env_timeout

    if config_path is not None:
        cfg = _load_yaml(config_path)
        merged = _deep_merge(merged, cfg)

    try:
        return Settings.model_validate(merged)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


def _getenv(key: str) -> Optional[str]:
    import os

    value = os.getenv(key)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(str(path))
    raw = path.read_text(encoding="utf-8")
    parsed = yaml.safe_load(raw) or {}
    if not isinstance(parsed, dict):
        raise ValueError("YAML config must be a mapping/object at the top level")
    return parsed


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out
