"""Application configuration module."""

from pydantic import BaseSettings, validator


class Settings(BaseSettings):
    """Application settings."""

    # Database settings
    DATABASE_URL: str = "sqlite:///./assessflow.db"
    SQL_ECHO: bool = False
    DB_POOL_SIZE: int = 5
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30

    # Logging settings
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False
    LOG_FILE: str = ""

    # API settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Assessflow Assessments"

    # Assessment pipeline settings
    PROMOTED_LIVE_STATUS: str = "active"
    STATISTICS_PASSING_PERCENT: float = 75.0
    DEFAULT_PASSING_SCORE: float = 70.0
    DEFAULT_DURATION_MINUTES: int = 30
    ATTEMPT_TIMEOUT_RETRY_SECONDS: float = 5.0

    @validator('LOG_LEVEL')
    def validate_log_level(cls, v):
        """Validate log level"""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v.upper()

    @validator('PROMOTED_LIVE_STATUS')
    def validate_promoted_status(cls, v):
        """Promoted assessments may only start as draft or active"""
        if v not in ('draft', 'active'):
            raise ValueError(f"PROMOTED_LIVE_STATUS must be 'draft' or 'active', got {v}")
        return v

    @validator('STATISTICS_PASSING_PERCENT', 'DEFAULT_PASSING_SCORE')
    def validate_percent(cls, v):
        """Validate percentages are between 0 and 100"""
        if not 0 <= v <= 100:
            raise ValueError(f"Percentage must be between 0 and 100, got {v}")
        return v

    class Config:
        """Pydantic settings config."""
        env_file = ".env"
        case_sensitive = True


# Create global settings instance
settings = Settings()
