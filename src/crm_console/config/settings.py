"""
Centralized settings and path configuration for the CRM console service.
"""
import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional


def get_project_root() -> Path:
    """Get the project root directory (where pyproject.toml lives)."""
    current = Path(__file__).resolve()
    for parent in current.parents:
        if (parent / 'pyproject.toml').exists():
            return parent
    # Fallback to 3 levels up from this file
    return Path(__file__).resolve().parent.parent.parent.parent


@dataclass
class Settings:
    """Application settings with sensible defaults."""

    # Project paths
    project_root: Path
    data_dir: Path

    log_level: str = "INFO"

    # Listing caps
    list_limit: int = 500
    invoice_list_limit: int = 200

    # First invoice number handed out is invoice_number_start + 1
    invoice_number_start: int = 700000

    default_currency: str = "USD"

    # Public origin used to build terms review links
    review_base_url: str = "http://localhost:5173"

    @classmethod
    def load(cls, project_root: Optional[Path] = None) -> 'Settings':
        """Load settings from the project structure and environment."""
        root = project_root or get_project_root()

        data_dir = os.environ.get('CRM_CONSOLE_DATA_DIR')

        return cls(
            project_root=root,
            data_dir=Path(data_dir) if data_dir else root / 'data',
            log_level=os.environ.get('CRM_CONSOLE_LOG_LEVEL', 'INFO').upper(),
            review_base_url=os.environ.get(
                'CRM_CONSOLE_REVIEW_BASE_URL', 'http://localhost:5173'
            ).split(',')[0].strip().rstrip('/'),
        )


# Default settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings


def reset_settings():
    """Drop the cached instance so the next call re-reads the environment."""
    global _settings
    _settings = None
