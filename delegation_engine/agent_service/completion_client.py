# completion_client.py - LLM completion clients
# This file defines the completion client interface, the OpenAI/Azure OpenAI client and a scripted client.

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Union

from openai import AsyncAzureOpenAI, AsyncOpenAI

from .config import settings
from .models import (
    CompletionChunk, CompletionResult, HistoryEntry, MessageRole,
    ModelSettings, ToolCall, ToolCallDelta
)

logger = logging.getLogger(__name__)

class CompletionClient(ABC):
    """Sends a message list plus tool schemas to a model."""

    @abstractmethod
    async def complete(self, model: str, messages: List[HistoryEntry],
                       tools: List[Dict[str, Any]],
                       model_settings: ModelSettings) -> CompletionResult:
        """Return the full response: text, a single tool call, or both."""
        pass

    @abstractmethod
    def stream(self, model: str, messages: List[HistoryEntry],
               tools: List[Dict[str, Any]],
               model_settings: ModelSettings) -> AsyncIterator[CompletionChunk]:
        """Yield the response incrementally."""
        pass

    async def close(self):
        pass

def to_openai_messages(messages: List[HistoryEntry]) -> List[Dict[str, Any]]:
    """Convert history entries to chat completion message dicts."""
    converted = []
    for entry in messages:
        if entry.role == MessageRole.TOOL:
            converted.append({
                "role": "tool",
                "tool_call_id": entry.tool_call_id,
                "content": entry.content or "",
            })
        elif entry.tool_call is not None:
            converted.append({
                "role": "assistant",
                "content": entry.content or None,
                "tool_calls": [{
                    "id": entry.tool_call.id,
                    "type": "function",
                    "function": {
                        "name": entry.tool_call.name,
                        "arguments": entry.tool_call.arguments or "{}",
                    },
                }],
            })
        else:
            converted.append({"role": entry.role.value, "content": entry.content or ""})
    return converted

class OpenAICompletionClient(CompletionClient):
    """Chat completions against OpenAI or an Azure OpenAI deployment."""

    def __init__(self, client: Optional[Union[AsyncOpenAI, AsyncAzureOpenAI]] = None):
        self.client = client or self._create_client()

    def _create_client(self):
        if settings.azure_openai_endpoint:
            logger.info(f"Using Azure OpenAI endpoint {settings.azure_openai_endpoint}")
            return AsyncAzureOpenAI(
                azure_endpoint=settings.azure_openai_endpoint,
                api_key=settings.azure_openai_api_key,
                api_version=settings.azure_openai_api_version,
                timeout=settings.completion_timeout,
            )

        return AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.completion_timeout,
        )

    def _request_kwargs(self, model: str, messages: List[HistoryEntry],
                        tools: List[Dict[str, Any]],
                        model_settings: ModelSettings) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": model,
            "messages": to_openai_messages(messages),
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["parallel_tool_calls"] = False

        temperature = model_settings.temperature
        if temperature is None:
            temperature = settings.default_temperature
        kwargs["temperature"] = temperature

        if model_settings.top_p is not None:
            kwargs["top_p"] = model_settings.top_p
        max_tokens = model_settings.max_tokens or settings.default_max_tokens
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        return kwargs

    async def complete(self, model, messages, tools, model_settings) -> CompletionResult:
        response = await self.client.chat.completions.create(
            **self._request_kwargs(model, messages, tools, model_settings)
        )
        choice = response.choices[0]
        message = choice.message

        tool_call = None
        if message.tool_calls:
            if len(message.tool_calls) > 1:
                logger.warning(f"Model returned {len(message.tool_calls)} tool calls, using the first")
            first = message.tool_calls[0]
            tool_call = ToolCall(id=first.id, name=first.function.name,
                                 arguments=first.function.arguments or "")

        return CompletionResult(
            text=message.content or "",
            tool_call=tool_call,
            finish_reason=choice.finish_reason,
        )

    async def stream(self, model, messages, tools, model_settings) -> AsyncIterator[CompletionChunk]:
        response = await self.client.chat.completions.create(
            stream=True,
            **self._request_kwargs(model, messages, tools, model_settings)
        )
        async for chunk in response:
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            delta = choice.delta

            tool_call_delta = None
            if delta.tool_calls:
                call = delta.tool_calls[0]
                tool_call_delta = ToolCallDelta(
                    index=call.index or 0,
                    id=call.id,
                    name=call.function.name if call.function else None,
                    arguments=(call.function.arguments or "") if call.function else "",
                )

            yield CompletionChunk(
                text=delta.content or "",
                tool_call_delta=tool_call_delta,
                finish_reason=choice.finish_reason,
            )

    async def close(self):
        await self.client.close()

Responder = Callable[[List[HistoryEntry], List[Dict[str, Any]]], Union[CompletionResult, Exception]]

class ScriptedCompletionClient(CompletionClient):
    """Deterministic client that replays prepared responses.

    Responses are consumed in order; an Exception in the script is raised
    instead of returned. A responder callable may be given instead of a
    script to compute responses from the request.
    """

    def __init__(self, responses: Optional[List[Union[CompletionResult, Exception]]] = None,
                 responder: Optional[Responder] = None):
        self.responses = list(responses or [])
        self.responder = responder
        self.calls: List[Dict[str, Any]] = []

    def _next(self, model, messages, tools) -> CompletionResult:
        self.calls.append({"model": model, "messages": list(messages), "tools": list(tools)})
        if self.responder is not None:
            response = self.responder(messages, tools)
        elif self.responses:
            response = self.responses.pop(0)
        else:
            raise RuntimeError("Scripted completion client has no responses left")

        if isinstance(response, Exception):
            raise response
        return response

    async def complete(self, model, messages, tools, model_settings) -> CompletionResult:
        return self._next(model, messages, tools)

    async def stream(self, model, messages, tools, model_settings) -> AsyncIterator[CompletionChunk]:
        response = self._next(model, messages, tools)

        for piece in re.findall(r"\S+\s*|\s+", response.text):
            yield CompletionChunk(text=piece)

        if response.tool_call is not None:
            arguments = response.tool_call.arguments
            middle = len(arguments) // 2
            yield CompletionChunk(tool_call_delta=ToolCallDelta(
                id=response.tool_call.id, name=response.tool_call.name, arguments=arguments[:middle]
            ))
            yield CompletionChunk(tool_call_delta=ToolCallDelta(arguments=arguments[middle:]))

        yield CompletionChunk(finish_reason=response.finish_reason or "stop")
