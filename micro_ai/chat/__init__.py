"""
Chat Module

Conversation store, tool execution and the streaming and non-streaming
invokers, coordinated by ChatOrchestrator.
"""

from .chat_orchestrator import ChatOptions, ChatOrchestrator
from .conversation import ConversationHistory
from .models import ChatHooks, ChatResponse, StreamEvent, ToolCallRecord

__all__ = [
    "ChatHooks",
    "ChatOptions",
    "ChatOrchestrator",
    "ChatResponse",
    "ConversationHistory",
    "StreamEvent",
    "ToolCallRecord",
]
