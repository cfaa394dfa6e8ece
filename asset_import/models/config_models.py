from __future__ import annotations

from dataclasses import dataclass

"""Config dataclasses for the asset spreadsheet importer.

Built by asset_import/config/loader.py from
config/import.yml. Environment variables (ASSET_API_BASE_URL,
ASSET_API_TOKEN) take precedence over the API section.
"""

__all__ = [
    "ApiConfig",
    "ImportConfig",
    "DEFAULT_DUPLICATE_RATE_THRESHOLD",
]

DEFAULT_DUPLICATE_RATE_THRESHOLD = 0.05


@dataclass(frozen=True)
class ApiConfig:
    """Connection settings for the asset backend."""
    base_url: str
    timeout: float = 60.0
    token: str | None = None


@dataclass(frozen=True)
class ImportConfig:
    """Root configuration object for an import run."""
    api: ApiConfig
    # 重複率がこの値を超えるとグルーピング確認へ
    duplicate_rate_threshold: float = DEFAULT_DUPLICATE_RATE_THRESHOLD
    preview_rows: int = 10  # rows shown in the preview render only
    max_preview_errors: int = 10
    default_strategy: str = "valid-only"
    error_log_dir: str = "./logs"
