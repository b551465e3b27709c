# factory.py - Store selection
# This file builds the persistence store named by a service's settings.

import logging

from .base import PersistenceStore
from .memory import InMemoryStore
from .redis_store import RedisStore

logger = logging.getLogger(__name__)

def create_store(service_settings) -> PersistenceStore:
    """Build the store selected by service_settings.storage_backend."""
    backend = service_settings.storage_backend.lower()
    if backend == "redis":
        logger.info(
            f"Using Redis store at {service_settings.redis_host}:{service_settings.redis_port}"
            f"/{service_settings.redis_db}"
        )
        return RedisStore(
            host=service_settings.redis_host,
            port=service_settings.redis_port,
            db=service_settings.redis_db,
            password=service_settings.redis_password,
        )
    if backend == "memory":
        logger.info("Using in-memory store")
        return InMemoryStore()
    raise ValueError(f"Unknown storage backend: {service_settings.storage_backend}")
