# config.py - Service configuration
# This file contains configuration settings for the agent_service.

from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # Redis Configuration
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_password: Optional[str] = None
    storage_backend: str = "memory"  # "memory" or "redis"

    # Service Configuration
    service_name: str = "agent-service"
    service_port: int = 8001
    log_level: str = "INFO"

    # Completion Client Configuration
    openai_api_key: Optional[str] = None
    openai_base_url: Optional[str] = None
    azure_openai_endpoint: Optional[str] = None
    azure_openai_api_key: Optional[str] = None
    azure_openai_api_version: str = "2024-02-15-preview"
    default_model: str = "gpt-4o-mini"
    default_temperature: float = 0.7
    default_max_tokens: Optional[int] = None
    completion_timeout: float = 60.0  # seconds

    # Runner Configuration
    default_max_turns: int = 10
    default_workflow_name: str = "Agent workflow"

    # Tracing Configuration
    tracing_disabled: bool = False
    trace_include_sensitive_data: bool = True

    class Config:
        env_prefix = "AGENT_SERVICE_"
        env_file = ".env"

settings = Settings()
