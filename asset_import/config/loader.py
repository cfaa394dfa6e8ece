from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import jsonschema
import yaml
from jsonschema.exceptions import ValidationError

from ..models.config_models import DEFAULT_DUPLICATE_RATE_THRESHOLD, ApiConfig, ImportConfig

"""Config loader.

Responsibilities:
- Load YAML config (default config/import.yml)
- Validate against config_schema.json shipped next to this module
- Apply defaults and environment overrides for the API section
"""

__all__ = [
    "ConfigError",
    "SCHEMA_PATH",
    "DEFAULT_CONFIG_PATH",
    "load_config",
]

SCHEMA_PATH = Path(__file__).parent / "config_schema.json"
DEFAULT_CONFIG_PATH = Path("config/import.yml")

ENV_BASE_URL = "ASSET_API_BASE_URL"
ENV_TOKEN = "ASSET_API_TOKEN"


class ConfigError(Exception):
    pass


def _validate_config_schema(data: dict[str, Any]) -> None:
    """Validate config data against the JSON schema.

    Raises:
        ConfigError: If the schema file is missing or not valid JSON, or if
            the config data fails schema validation (missing required keys,
            wrong types, unknown keys).
    """
    if not SCHEMA_PATH.exists():
        raise ConfigError(f"config schema not found: {SCHEMA_PATH}")

    try:
        schema = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
        jsonschema.validate(data, schema)
    except json.JSONDecodeError as e:
        raise ConfigError(f"invalid schema file: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"config validation failed: {e.message}") from e


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> ImportConfig:
    if not path.exists():
        raise ConfigError(f"config file not found: {path}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid yaml: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"config validation failed: top level must be a mapping, got {type(data).__name__}")

    _validate_config_schema(data)

    api_raw = data["api"]
    # 環境変数 (.env 読み込み済) を優先
    api = ApiConfig(
        base_url=os.getenv(ENV_BASE_URL) or api_raw["base_url"],
        timeout=float(api_raw.get("timeout", 60)),
        token=os.getenv(ENV_TOKEN) or api_raw.get("token"),
    )
    grouping = data.get("grouping", {})
    preview = data.get("preview", {})
    import_section = data.get("import", {})
    return ImportConfig(
        api=api,
        duplicate_rate_threshold=float(
            grouping.get("duplicate_rate_threshold", DEFAULT_DUPLICATE_RATE_THRESHOLD)
        ),
        preview_rows=int(preview.get("max_rows", 10)),
        max_preview_errors=int(preview.get("max_errors", 10)),
        default_strategy=import_section.get("strategy", "valid-only"),
        error_log_dir=data.get("error_log_dir", "./logs"),
    )
