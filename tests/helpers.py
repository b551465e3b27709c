from delegation_engine.agent_service.models import CompletionResult, ToolCall

def reply(text):
    return CompletionResult(text=text)

def call(tool_name, arguments, text=""):
    return CompletionResult(text=text, tool_call=ToolCall(name=tool_name, arguments=arguments))
