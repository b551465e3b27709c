# main.py - FastAPI app entry point for the agent_service
# This file initializes and runs the FastAPI application for direct agent chat and trace queries.

import logging
import sys
import os
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, project_root)

from delegation_engine.agent_service.config import settings
from delegation_engine.agent_service.routes import agents, chat, health, traces
from delegation_engine.agent_service.agent_registry import AgentRegistry
from delegation_engine.agent_service.runner import TurnRunner
from delegation_engine.agent_service.runtime import build_agent_registry, build_runner
from delegation_engine.storage.factory import create_store

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

def create_app(store=None, runner: Optional[TurnRunner] = None,
               agent_registry: Optional[AgentRegistry] = None) -> FastAPI:
    """Build the agent service app; collaborators not given are created at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle startup and shutdown events."""
        logger.info(f"Starting {settings.service_name} on port {settings.service_port}")

        app.state.store = store or create_store(settings)
        if not app.state.store.ping():
            logger.warning("Persistence store is not reachable, traces will not be stored")

        app.state.agent_registry = agent_registry or build_agent_registry()
        app.state.runner = runner or build_runner(app.state.store)
        logger.info(f"Agent types available: {', '.join(app.state.agent_registry.list_agent_types())}")

        yield

        # Shutdown
        logger.info("Shutting down agent service...")
        if runner is None:
            await app.state.runner.client.close()
        logger.info("Agent service shutdown complete")

    app = FastAPI(
        title="Agent Delegation Service",
        description="Runs conversations through chains of agents connected by handoffs",
        version="1.0.0",
        lifespan=lifespan
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure properly for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(chat.router)
    app.include_router(traces.router)
    app.include_router(agents.router)
    app.include_router(health.router)

    @app.get("/")
    async def root():
        """Root endpoint with service info."""
        return {
            "service": settings.service_name,
            "version": "1.0.0",
            "status": "running",
            "docs": "/docs",
            "health": "/health"
        }

    return app

app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.service_port,
        reload=False,
        log_level=settings.log_level.lower()
    )
