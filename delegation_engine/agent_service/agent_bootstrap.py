# agent_bootstrap.py - Default agents
# This file registers the built-in triage, research, report and delegation agents.

import json
import logging
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .agent_registry import AgentRegistry
from .agent_types.agent import Agent, AgentBuilder, FunctionTool
from .agent_types.handoffs import prompt_with_handoff_instructions
from .config import settings
from .models import ModelSettings

logger = logging.getLogger(__name__)

class TaskType(str, Enum):
    RESEARCH = "research"
    REPORT = "report"
    COMBINED = "combined"
    UNKNOWN = "unknown"

class TriageClassification(BaseModel):
    task_type: TaskType
    confidence: float = Field(ge=0, le=1)
    reasoning: str
    modified_query: Optional[str] = None

class ResearchRequest(BaseModel):
    topic: str = Field(description="The topic to research")
    depth: Optional[str] = Field(default=None, description="How deep the research should go")

RESEARCH_INSTRUCTIONS = (
    "You are an AI research assistant. Find current and relevant information and return a "
    "summary with citations. Include the source for all information."
)

REPORT_INSTRUCTIONS = (
    "You are a professional report-writing assistant. Produce a structured, clear report in "
    "Markdown format, incorporating citations for all referenced information. Use proper "
    "headings, bullet points, and formatting to enhance readability."
)

TRIAGE_INSTRUCTIONS = """You are a task classification AI whose job is to analyze user queries and determine which specialized agent should handle them. Classify the query into one of these task types:

- RESEARCH: the query needs current or specific factual information. Hand off to ResearchAgent.
- REPORT: the query asks to analyze, summarize or format existing information. Hand off to ReportAgent.
- COMBINED: the query needs research and a report. Hand off to ResearchAgent first.
- UNKNOWN: the query fits none of the above. Answer as best you can or suggest a better query.

Record your decision with classify_query, then hand off as soon as the query is classified. Do not answer research or report queries yourself."""

DELEGATION_INSTRUCTIONS = (
    "You are an agent that delegates tasks to specialized agents. Hand off to TriageAgent when "
    "the request needs classification, to ResearchAgent for factual questions and to "
    "ReportAgent for formatting information into a report. Answer simple conversational "
    "messages yourself."
)

def _classify_query(arguments: Dict[str, Any]) -> str:
    classification = TriageClassification.model_validate(arguments)
    logger.info(f"Query classified as {classification.task_type.value} ({classification.confidence:.2f})")
    return json.dumps(classification.model_dump(mode="json"))

def _log_research_handoff(context: Dict[str, Any], data: Dict[str, Any]):
    logger.info(f"Research requested on topic: {data.get('topic')}")

def build_research_agent(registry: AgentRegistry) -> Agent:
    return AgentBuilder(
        name="ResearchAgent",
        instructions=RESEARCH_INSTRUCTIONS,
        model=settings.default_model,
        model_settings=ModelSettings(temperature=0.5),
        handoff_description="Finds current information and answers factual questions",
    ).build()

def build_report_agent(registry: AgentRegistry) -> Agent:
    return AgentBuilder(
        name="ReportAgent",
        instructions=REPORT_INSTRUCTIONS,
        model=settings.default_model,
        model_settings=ModelSettings(temperature=0.7),
        handoff_description="Formats information into a structured Markdown report",
    ).build()

def build_triage_agent(registry: AgentRegistry) -> Agent:
    return (
        AgentBuilder(
            name="TriageAgent",
            instructions=prompt_with_handoff_instructions(TRIAGE_INSTRUCTIONS),
            model=settings.default_model,
            model_settings=ModelSettings(temperature=0.3),
            handoff_description="Classifies a query and routes it to the right specialist",
        )
        .add_tool(FunctionTool(
            name="classify_query",
            description="Classify the user query into the appropriate task type",
            parameters=TriageClassification.model_json_schema(),
            handler=_classify_query,
        ))
        .add_handoff(registry.get("research"), input_model=ResearchRequest,
                     on_handoff=_log_research_handoff)
        .add_handoff(registry.get("report"))
        .build()
    )

def build_delegation_agent(registry: AgentRegistry) -> Agent:
    return (
        AgentBuilder(
            name="DelegationAgent",
            instructions=prompt_with_handoff_instructions(DELEGATION_INSTRUCTIONS),
            model=settings.default_model,
            model_settings=ModelSettings(temperature=settings.default_temperature),
        )
        .add_handoff(registry.get("triage"))
        .add_handoff(registry.get("research"))
        .add_handoff(registry.get("report"), tool_name="format_as_report",
                     tool_description="Hand off to ReportAgent to format information as a report")
        .build()
    )

DEFAULT_AGENT_FACTORIES = {
    "research": build_research_agent,
    "report": build_report_agent,
    "triage": build_triage_agent,
    "delegation": build_delegation_agent,
}

def register_default_agents(registry: AgentRegistry) -> AgentRegistry:
    """Register factories for the built-in agent types."""
    for agent_type, factory in DEFAULT_AGENT_FACTORIES.items():
        registry.register_factory(agent_type, factory)
    logger.info(f"Registered {len(DEFAULT_AGENT_FACTORIES)} default agent types")
    return registry
