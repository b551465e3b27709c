# config.py - Service configuration for workflow_service
# This file contains configuration settings for the workflow_service.

from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    # Redis Configuration
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 1  # Different DB from agent service
    redis_password: Optional[str] = None
    storage_backend: str = "memory"  # "memory" or "redis"

    # Service Configuration
    service_name: str = "workflow-service"
    service_port: int = 8002
    log_level: str = "INFO"

    # Event Publishing
    communication_url: Optional[str] = None  # events are not published when unset
    event_timeout: float = 5.0  # seconds

    # Workflow Configuration
    max_turns_per_node: Optional[int] = None  # falls back to the agent service default
    instruction_prefix: str = "Additional instruction:"

    class Config:
        env_prefix = "WORKFLOW_SERVICE_"
        env_file = ".env"

settings = Settings()
