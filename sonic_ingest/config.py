"""
Configuration loading.

Settings come from config/config.yaml, then environment variables
(SONIC_HOST, SONIC_PORT, SONIC_PASSWORD, optionally from a .env file)
override the file.  Missing keys fall back to Sonic's defaults.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = "config/config.yaml"


class SonicSettings(BaseModel):
    """Connection parameters for one Sonic server."""

    host: str = "127.0.0.1"
    port: int = Field(default=1491, ge=1, le=65535)
    password: str = "SecretPassword"
    timeout: Optional[float] = Field(default=None, gt=0)   # None blocks forever


def load_config(path: str | Path = DEFAULT_CONFIG_PATH) -> dict:
    """Read the YAML config; a missing or empty file yields {}."""
    p = Path(path)
    if not p.exists():
        return {}
    with open(p, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def sonic_settings(config: dict) -> SonicSettings:
    """Build SonicSettings from the `sonic` section plus environment overrides."""
    load_dotenv()
    section = dict(config.get("sonic", {}) or {})

    env_map = {"host": "SONIC_HOST", "port": "SONIC_PORT", "password": "SONIC_PASSWORD"}
    for key, env_var in env_map.items():
        value = os.getenv(env_var)
        if value:
            section[key] = value

    return SonicSettings(**section)


def ingest_parallelism(config: dict, default: int = 4) -> int:
    return int(config.get("ingest", {}).get("parallelism", default))
