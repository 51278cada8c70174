"""
Configuration settings for the identity workflow engine.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings with environment variable support."""
    
    # Application
    APP_NAME: str = "idflow"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True
    
    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    
    # Workflow
    WORKFLOW_NAME: str = "IDMScan Workflow"
    STORAGE_KEY: str = "idmscan-workflow"
    STORAGE_BACKEND: str = "memory"  # memory | file
    STORAGE_DIR: str = ".idflow"
    
    # Execution backend
    EXECUTION_BACKEND: str = "simulated"  # simulated | http
    API_BASE_URL: Optional[str] = None
    REQUEST_TIMEOUT: float = 30.0  # Seconds
    SIMULATED_LATENCY_MIN_MS: int = 1500
    SIMULATED_LATENCY_MAX_MS: int = 2500
    
    # Logging
    LOG_LEVEL: str = "INFO"
    
    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
