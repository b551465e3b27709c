# main.py - FastAPI app entry point for the workflow_service
# This file initializes and runs the FastAPI application for workflow graphs and their tasks.

import asyncio
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

from delegation_engine.workflow_service.config import settings
from delegation_engine.workflow_service.routes import workflows, tasks
from delegation_engine.workflow_service.event_publisher import WorkflowEventPublisher
from delegation_engine.workflow_service.workflow_engine import WorkflowExecutor
from delegation_engine.agent_service.routes import traces
from delegation_engine.agent_service.runtime import build_agent_registry, build_runner
from delegation_engine.storage.factory import create_store

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

async def periodic_cleanup(executor: WorkflowExecutor):
    """Background task to cleanup finished task executions."""
    while True:
        try:
            await asyncio.sleep(60)  # Run every minute
            await executor.cleanup_completed_executions()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Periodic cleanup failed: {str(e)}")

def create_app(store=None, executor: Optional[WorkflowExecutor] = None) -> FastAPI:
    """Build the workflow service app; collaborators not given are created at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Handle startup and shutdown events."""
        logger.info(f"Starting {settings.service_name} on port {settings.service_port}")

        app.state.store = store or create_store(settings)
        if app.state.store.ping():
            logger.info("Persistence store connection established")
        else:
            logger.warning("Persistence store is not reachable")

        app.state.executor = executor or WorkflowExecutor(
            runner=build_runner(app.state.store),
            agent_registry=build_agent_registry(),
            store=app.state.store,
            event_publisher=WorkflowEventPublisher(),
        )

        cleanup_task = asyncio.create_task(periodic_cleanup(app.state.executor))
        logger.info("Started periodic cleanup task")

        yield

        # Shutdown
        logger.info("Shutting down workflow service...")
        cleanup_task.cancel()
        try:
            await cleanup_task
        except asyncio.CancelledError:
            pass

        await app.state.executor.shutdown()
        if executor is None:
            await app.state.executor.runner.client.close()
            await app.state.executor.event_publisher.close()

        logger.info("Workflow service shutdown complete")

    app = FastAPI(
        title="Workflow Graph Service",
        description="Executes graphs of agent nodes with pause, cancel and instruction control",
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
    app.include_router(workflows.router)
    app.include_router(tasks.router)
    app.include_router(traces.router)

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

    @app.get("/health")
    async def health_check():
        """Basic health check endpoint."""
        store_status = "healthy" if app.state.store.ping() else "unhealthy"

        return {
            "status": "healthy" if store_status == "healthy" else "degraded",
            "service": settings.service_name,
            "components": {
                "store": store_status,
            },
            "running_executions": len(app.state.executor.get_running_executions())
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
