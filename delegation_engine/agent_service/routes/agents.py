# agents.py - Agent listing endpoints
# This file exposes the registered agent types and their tools and handoffs.

from fastapi import APIRouter, HTTPException, Depends, Request
from typing import Any, Dict, List
import logging

from ..agent_registry import AgentRegistry
from ..agent_types.agent import Agent, AgentConfigurationError

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/agents", tags=["agents"])

# Dependencies
def get_agent_registry(request: Request) -> AgentRegistry:
    return request.app.state.agent_registry

def _describe(agent_type: str, agent: Agent) -> Dict[str, Any]:
    return {
        "agent_type": agent_type,
        "name": agent.name,
        "model": agent.model,
        "tools": [tool.name for tool in agent.tools],
        "handoffs": [
            {"tool_name": h.tool_name, "target": h.agent_name, "description": h.tool_description}
            for h in agent.handoffs
        ],
    }

@router.get("")
async def list_agents(registry: AgentRegistry = Depends(get_agent_registry)) -> List[Dict[str, Any]]:
    """List registered agent types."""
    try:
        return [_describe(agent_type, registry.get(agent_type)) for agent_type in registry.list_agent_types()]

    except Exception as e:
        logger.error(f"Failed to list agents: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/{agent_type}")
async def get_agent(agent_type: str, registry: AgentRegistry = Depends(get_agent_registry)) -> Dict[str, Any]:
    try:
        return _describe(agent_type, registry.get(agent_type))
    except AgentConfigurationError as e:
        raise HTTPException(status_code=404, detail=str(e))
