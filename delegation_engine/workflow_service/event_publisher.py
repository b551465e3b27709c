# event_publisher.py - Workflow event publishing
# This file posts workflow and step lifecycle events to the communication service.

import httpx
import logging
from typing import Dict, Any, Optional
from datetime import datetime

from .config import settings

logger = logging.getLogger(__name__)

class WorkflowEventPublisher:
    """Publishes task lifecycle events. Does nothing when no URL is configured."""

    def __init__(self, communication_url: Optional[str] = None,
                 http_client: Optional[httpx.AsyncClient] = None):
        self.communication_url = communication_url if communication_url is not None else settings.communication_url
        self.http_client = http_client or httpx.AsyncClient(timeout=settings.event_timeout)

    @property
    def enabled(self) -> bool:
        return bool(self.communication_url)

    async def publish_workflow_started(self, task_id: str, workflow_id: Optional[str], node_count: int):
        await self._publish("workflow.started", task_id, "medium", {
            "workflow_id": workflow_id,
            "node_count": node_count,
        })

    async def publish_workflow_completed(self, task_id: str, workflow_id: Optional[str],
                                         steps_completed: int):
        await self._publish("workflow.completed", task_id, "medium", {
            "workflow_id": workflow_id,
            "steps_completed": steps_completed,
        })

    async def publish_workflow_failed(self, task_id: str, workflow_id: Optional[str],
                                      error_message: str, failed_node: str = None):
        await self._publish("workflow.failed", task_id, "high", {
            "workflow_id": workflow_id,
            "error_message": error_message,
            "failed_node": failed_node,
        })

    async def publish_workflow_stopped(self, task_id: str, workflow_id: Optional[str], status: str):
        """Publish workflow.cancelled or workflow.paused."""
        await self._publish(f"workflow.{status}", task_id, "medium", {"workflow_id": workflow_id})

    async def publish_step_started(self, task_id: str, node_id: str, node_type: str):
        await self._publish("step.started", f"{task_id}:{node_id}", "low", {
            "task_id": task_id,
            "node_id": node_id,
            "node_type": node_type,
        })

    async def publish_step_completed(self, task_id: str, node_id: str, execution_time: float):
        await self._publish("step.completed", f"{task_id}:{node_id}", "low", {
            "task_id": task_id,
            "node_id": node_id,
            "execution_time": execution_time,
        })

    async def _publish(self, event_type: str, source_id: str, priority: str, payload: Dict[str, Any]):
        if not self.enabled:
            return

        event_data = {
            "event_type": event_type,
            "source_service": settings.service_name,
            "source_id": source_id,
            "priority": priority,
            "payload": payload,
            "metadata": {"timestamp": datetime.utcnow().isoformat()},
        }
        try:
            response = await self.http_client.post(
                f"{self.communication_url}/events/publish",
                json=event_data
            )
            response.raise_for_status()

        except Exception as e:
            logger.warning(f"Failed to send event {event_type} to communication service: {str(e)}")

    async def close(self):
        """Close HTTP client."""
        await self.http_client.aclose()
