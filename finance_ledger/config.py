"""
Service configuration loaded from environment variables.
"""

from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # API
    PROJECT_NAME: str = "Event Finance Ledger API"
    PROJECT_VERSION: str = "1.0.0"
    DESCRIPTION: str = "Dues, commissions and withdrawals ledger for event creators and participants"
    ENVIRONMENT: str = "development"
    API_ROOT_PATH: str = "/api"

    # Logging
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    # Ledger
    DEFAULT_CURRENCY: str = "INR"
    HISTORY_PAGE_LIMIT: int = 50

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True)


settings = Settings()
