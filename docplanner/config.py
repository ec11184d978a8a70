# docplanner/config.py
"""
Configuration management using Pydantic Settings.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from typing import List, Optional

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"
    SLACK_WEBHOOK_URL: Optional[str] = None
    # Document Engine connection
    DOCUMENT_ENGINE_BASE_URL: str = "http://localhost:5000"
    DOCUMENT_ENGINE_API_AUTH_TOKEN: str = "secret"  # do NOT hardcode real tokens in code
    # Seconds; applied per request by the engine transport
    CONNECTION_TIMEOUT: float = 30.0
    # Operations the target engine version only serves for base content.
    # Layer requests for these are dispatched to base and the layer is echoed back.
    ENGINE_BASE_ONLY_OPERATIONS: List[str] = Field(default_factory=lambda: ["search"])
    # Title suffix used for split_document parts; `{index}` is 1-based
    SPLIT_NAMING_PATTERN: str = "part_{index}"

settings = Settings()
