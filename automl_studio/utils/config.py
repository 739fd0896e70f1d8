"""
Configuration utilities for the AutoML studio backend.

Uses environment variables (and an optional .env file) with defaults.
"""

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "AutoML Studio"
    VERSION: str = "1.0.0"

    # Database
    DATABASE_URL: str = Field("sqlite:///./automl_studio.db")

    # Logging
    LOG_LEVEL: str = Field("INFO")

    # ----------------------------
    # H2O AutoML engine
    # ----------------------------
    H2O_BASE_URL: str = Field("http://localhost:54321", description="Base URL of the H2O cluster REST API")
    H2O_PROBE_TIMEOUT: float = Field(5.0, gt=0, description="Seconds allowed for the cluster-status probe")
    H2O_REQUEST_TIMEOUT: float = Field(120.0, gt=0, description="Seconds allowed for any other engine call")
    AUTOML_MAX_MODELS: int = Field(20, ge=1)
    AUTOML_NFOLDS: int = Field(5, ge=0)

    # Poll loop
    POLL_INTERVAL_SECONDS: float = Field(10.0, ge=0)
    PROGRESS_WRITE_DELTA: int = Field(5, ge=1, le=100, description="Minimum progress advance (points) before a write")
    MAX_POLL_FAILURES: int = Field(5, ge=1, description="Consecutive failed polls tolerated before the job fails")

    # ----------------------------
    # Fallback simulator
    # ----------------------------
    SIMULATOR_ITERATIONS: int = Field(15, ge=1)
    SIMULATOR_WRITE_EVERY: int = Field(3, ge=1)
    SIMULATOR_MIN_DELAY: float = Field(1.0, ge=0)
    SIMULATOR_MAX_DELAY: float = Field(3.0, ge=0)
    SIMULATOR_SEED: Optional[int] = None

    # ----------------------------
    # Storage & exports
    # ----------------------------
    STORAGE_DIR: str = Field("./storage", description="Root directory for dataset and export blobs")
    EXPORT_URL_TTL: int = Field(3600, ge=1, description="Lifetime of signed export URLs in seconds")
    SIGNING_SECRET: str = Field("change-me")
    PUBLIC_BASE_URL: str = Field("http://localhost:8000")

    # ----------------------------
    # Redis (optional cross-process job claims)
    # ----------------------------
    REDIS_URL: Optional[str] = None
    JOB_CLAIM_PREFIX: str = "automl:jobs:claim:"
    JOB_CLAIM_TTL: int = Field(6 * 3600, ge=1)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        v = (v or "").strip().upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("LOG_LEVEL must be a standard logging level name")
        return v

    @field_validator("H2O_BASE_URL", "PUBLIC_BASE_URL")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


settings = Settings()
