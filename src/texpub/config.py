"""Application configuration: settings schema and config.yaml loader"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field


CONFIG_FILE = "config.yaml"


class Settings(BaseModel):
    app_name:      str = "texpub"
    input_dir:     str = Field(default="content/exercises", description="Root of the .tex source tree")
    cache_dir:     str = Field(default="cache/exercises",   description="Mirrored tree of compiled JSON records")
    artifacts_dir: str = Field(default="static/artifacts",  description="Directory for <id>.json artifact bundles")
    static_dir:    str = Field(default="static",            description="Web root used to resolve diagram URLs")
    assets_public_path: str = Field(default="/artifacts/tikz", description="Public URL prefix for rendered SVGs")
    db_url:        str = "sqlite:///data/exercises.sqlite"
    converter:     str = Field(default="auto", pattern="^(auto|pandoc|fallback)$", description="LaTeX to HTML converter")
    workers:       int = Field(default=4,  ge=1, description="Source files compiled concurrently")
    render_jobs:   int = Field(default=0,  ge=0, description="Concurrent diagram renders; 0 = cpu count")
    convert_timeout: float = Field(default=30.0, gt=0, description="Seconds before a converter process is killed")
    render_timeout:  float = Field(default=60.0, gt=0, description="Seconds before a TeX/SVG process is killed")
    log_level:     str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR)$")


def load_config(overrides: dict[str, Any] = None) -> Settings:
    """Load Settings from config.yaml, then TEXPUB_<FIELD> env vars, then non-None CLI overrides."""
    data: dict[str, Any] = {}
    if Path(CONFIG_FILE).exists():
        try:
            data = yaml.safe_load(Path(CONFIG_FILE).read_text()) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid {CONFIG_FILE}: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Invalid {CONFIG_FILE}: expected a mapping, got {type(data).__name__}")

    for name in Settings.model_fields:
        if val := os.getenv(f"TEXPUB_{name.upper()}"):
            data[name] = val

    if overrides:
        data.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**data)
