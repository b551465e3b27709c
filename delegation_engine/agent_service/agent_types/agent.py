# agent.py - Immutable agent definitions and their builder
# This file defines Agent, FunctionTool and AgentBuilder.

import inspect
import json
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..models import ModelSettings, Structured, Unparsed
from .handoffs import Handoff, handoff, parse_json_object

logger = logging.getLogger(__name__)

Instructions = Union[str, Callable[[Dict[str, Any]], Any]]

class AgentConfigurationError(ValueError):
    """Raised when an agent or the agent registry is misconfigured."""

class FunctionTool(BaseModel):
    """A callable the model may invoke by name."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    description: str = ""
    parameters: Dict[str, Any] = Field(default_factory=lambda: {"type": "object", "properties": {}})
    handler: Callable[..., Any]

    def tool_schema(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    async def invoke(self, raw_arguments: Optional[str]) -> str:
        """Run the handler with parsed arguments and return its output as text."""
        parsed = parse_json_object(raw_arguments)
        if isinstance(parsed, Unparsed):
            return f"Error: invalid arguments for tool {self.name}: {parsed.error}"

        try:
            result = self.handler(parsed.data)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.error(f"Tool {self.name} failed: {str(e)}")
            return f"Error: {str(e)}"

        if isinstance(result, str):
            return result
        return json.dumps(result, default=str)

def _duplicate_names(names: List[str]) -> List[str]:
    seen, duplicates = set(), []
    for name in names:
        if name in seen and name not in duplicates:
            duplicates.append(name)
        seen.add(name)
    return duplicates

class Agent(BaseModel):
    """Immutable agent definition. Build instances with AgentBuilder."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    instructions: Instructions = ""
    handoff_description: Optional[str] = None
    model: Optional[str] = None
    model_settings: ModelSettings = Field(default_factory=ModelSettings)
    tools: Tuple[FunctionTool, ...] = ()
    handoffs: Tuple[Handoff, ...] = ()
    output_model: Optional[Type[BaseModel]] = None

    @model_validator(mode="after")
    def validate_tool_names(self):
        duplicates = _duplicate_names(self.tool_names())
        if duplicates:
            raise ValueError(f"Agent {self.name} has duplicate tool names: {', '.join(duplicates)}")
        return self

    def tool_names(self) -> List[str]:
        return [tool.name for tool in self.tools] + [h.tool_name for h in self.handoffs]

    def tool_schemas(self) -> List[Dict[str, Any]]:
        """Function tool schemas followed by handoff tool schemas."""
        return [tool.tool_schema() for tool in self.tools] + [h.tool_schema() for h in self.handoffs]

    def find_handoff(self, tool_name: str) -> Optional[Handoff]:
        return next((h for h in self.handoffs if h.tool_name == tool_name), None)

    def find_tool(self, tool_name: str) -> Optional[FunctionTool]:
        return next((t for t in self.tools if t.name == tool_name), None)

    async def get_system_prompt(self, context: Dict[str, Any]) -> str:
        if callable(self.instructions):
            prompt = self.instructions(context)
            if inspect.isawaitable(prompt):
                prompt = await prompt
            return str(prompt)
        return self.instructions

    def parse_output(self, text: str) -> Optional[Union[Structured, Unparsed]]:
        if self.output_model is None:
            return None
        return parse_json_object(text, self.output_model)

    def clone(self, **updates) -> "Agent":
        """Return a new agent with some fields replaced."""
        data = {field: getattr(self, field) for field in type(self).model_fields}
        data.update(updates)
        return Agent(**data)

    def as_tool(self, runner, tool_name: Optional[str] = None,
                tool_description: Optional[str] = None) -> FunctionTool:
        """Expose this agent as a function tool run through runner."""
        async def _run_agent(arguments: Dict[str, Any]) -> str:
            result = await runner.run(self, str(arguments.get("input", "")))
            return result.final_output

        return FunctionTool(
            name=tool_name or self.name.lower().replace(" ", "_"),
            description=tool_description or self.handoff_description or f"Run the {self.name} agent",
            parameters={
                "type": "object",
                "properties": {"input": {"type": "string"}},
                "required": ["input"],
            },
            handler=_run_agent,
        )

class AgentBuilder:
    """Collects tools and handoffs, then finalizes an immutable Agent."""

    def __init__(self, name: str, instructions: Instructions = "",
                 model: Optional[str] = None,
                 model_settings: Optional[ModelSettings] = None,
                 handoff_description: Optional[str] = None,
                 output_model: Optional[Type[BaseModel]] = None):
        self.name = name
        self.instructions = instructions
        self.model = model
        self.model_settings = model_settings or ModelSettings()
        self.handoff_description = handoff_description
        self.output_model = output_model
        self._tools: List[FunctionTool] = []
        self._handoffs: List[Handoff] = []

    def add_tool(self, tool: FunctionTool) -> "AgentBuilder":
        self._tools.append(tool)
        return self

    def add_handoff(self, target: Union[Agent, Handoff], **options) -> "AgentBuilder":
        if isinstance(target, Handoff):
            self._handoffs.append(target)
        else:
            self._handoffs.append(handoff(target, **options))
        return self

    def build(self) -> Agent:
        names = [tool.name for tool in self._tools] + [h.tool_name for h in self._handoffs]
        duplicates = _duplicate_names(names)
        if duplicates:
            raise AgentConfigurationError(
                f"Agent {self.name} has duplicate tool names: {', '.join(duplicates)}"
            )

        return Agent(
            name=self.name,
            instructions=self.instructions,
            handoff_description=self.handoff_description,
            model=self.model,
            model_settings=self.model_settings,
            tools=tuple(self._tools),
            handoffs=tuple(self._handoffs),
            output_model=self.output_model,
        )
