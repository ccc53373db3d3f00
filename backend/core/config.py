"""
Application configuration.

Settings are read from environment variables (and an optional `.env` file).
The menu field layouts live here as well, so deployments can override which
menu item fields are editable without touching code.
"""

from functools import lru_cache
from typing import Any, Dict, List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_MENU_LAYOUTS: Dict[str, Dict[str, List[Dict[str, Any]]]] = {
    "menuItem": {
        "link": [
            {"input": {"label": "Title", "name": "title", "type": "text"}},
            {"input": {"label": "URL", "name": "url", "type": "text"}},
            {
                "input": {
                    "label": "Target",
                    "name": "target",
                    "type": "select",
                    "options": ["_blank", "_parent", "_self", "_top"],
                }
            },
        ],
        "settings": [
            {"input": {"label": "Image", "name": "image", "type": "media"}},
            {
                "input": {
                    "label": "Page",
                    "name": "page",
                    "type": "relation",
                    "target": "page",
                }
            },
        ],
    },
}


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Database Configuration
    database_url: str = "sqlite+aiosqlite:///./menus.db"
    db_pool_size: int = 10
    db_max_overflow: int = 20
    log_sql_queries: bool = False

    # Environment Settings
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Menu Configuration
    menu_layouts: Dict[str, Dict[str, List[Dict[str, Any]]]] = DEFAULT_MENU_LAYOUTS
    relation_main_fields: Dict[str, str] = {"page": "title"}
    population_cache_enabled: bool = True
    default_page_size: int = 25
    max_page_size: int = 100

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept lower-case log levels from the environment."""
        return v.upper()

    @field_validator("max_page_size")
    @classmethod
    def validate_max_page_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("MAX_PAGE_SIZE must be a positive integer")
        return v

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Returns:
        Settings instance with environment variables loaded
    """
    return Settings()


settings = get_settings()
