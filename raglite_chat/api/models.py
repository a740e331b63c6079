"""
Request and response models for the RAGLite backend API.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from ..chat.message_state import Message, MessageRole, PerformanceMetrics
from ..constants import DEFAULT_TOP_K
from ..utils import generate_message_id


@dataclass
class StreamRequest:
    """Body of a streaming chat request."""
    query: str
    index_name: Optional[str] = None
    top_k: int = DEFAULT_TOP_K
    messages: list[dict] = field(default_factory=list)
    conversation_id: Optional[str] = None
    include_thinking: bool = False

    def __post_init__(self) -> None:
        if not self.messages:
            self.messages = [{"role": MessageRole.USER.value, "content": self.query}]

    def to_payload(self) -> dict:
        return {
            "query": self.query,
            "index_name": self.index_name,
            "top_k": self.top_k,
            "messages": self.messages,
            "conversation_id": self.conversation_id,
            "include_thinking": self.include_thinking,
        }


@dataclass
class RAGRequest:
    """Body of a non-streaming RAG request."""
    query: str
    context: Optional[str] = None
    max_tokens: Optional[int] = None

    def to_payload(self) -> dict:
        payload: dict[str, Any] = {"query": self.query}
        if self.context is not None:
            payload["context"] = self.context
        if self.max_tokens is not None:
            payload["max_tokens"] = self.max_tokens
        return payload


@dataclass
class RAGResponse:
    """A complete, non-streamed RAG answer."""
    response: str
    sources: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "RAGResponse":
        return cls(
            response=str(data.get("response", "")),
            sources=list(data.get("sources") or []),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass
class Conversation:
    """A stored conversation as returned by the backend."""
    conversation_id: str
    meta: dict = field(default_factory=dict)
    messages: list[Message] = field(default_factory=list)

    @classmethod
    def from_dict(cls, conversation_id: str, data: dict) -> "Conversation":
        """
        Build a conversation from the backend payload.

        System messages are skipped; messages without an id get a fresh one.
        """
        messages = []
        for item in data.get("messages") or []:
            role = item.get("role")
            if role not in (MessageRole.USER.value, MessageRole.ASSISTANT.value):
                continue
            messages.append(Message(
                id=str(item.get("id") or generate_message_id("hist")),
                role=MessageRole(role),
                content=str(item.get("content") or ""),
                performance_metrics=PerformanceMetrics.from_dict(item.get("performanceMetrics")),
                timestamp=_parse_timestamp(item.get("timestamp")),
            ))
        return cls(
            conversation_id=conversation_id,
            meta=dict(data.get("meta") or {}),
            messages=messages,
        )


def _parse_timestamp(value: Any) -> float:
    """Backend timestamps are Unix seconds, milliseconds or ISO strings; 0 means now."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        # Millisecond stamps are far beyond any plausible seconds value
        return value / 1000 if value > 1e11 else float(value)
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
        except ValueError:
            return 0
    return 0
