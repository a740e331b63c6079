"""Message state models for the chat store.

This module defines the chat message record, its performance metrics, the
StreamPhase enum describing where the active stream is in its lifecycle, and
the Dataset record returned by the backend.
"""

import time
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Optional


class MessageRole(Enum):
    """Author of a chat message."""
    USER = "user"
    ASSISTANT = "assistant"


class StreamPhase(Enum):
    """Tracks the lifecycle of the active stream session.

    State transitions:
        IDLE → THINKING (start_session)
        THINKING → THINKING (thinking token accepted)
        THINKING → RESPONDING (first response token accepted)
        THINKING/RESPONDING → IDLE (finalize_session)
    """
    IDLE = "idle"               # No active session
    THINKING = "thinking"       # Thinking message exists, no response yet
    RESPONDING = "responding"   # Response message has been materialized


@dataclass
class PerformanceMetrics:
    """Telemetry attached to assistant messages.

    Every field is optional; None means "not yet measured", never zero.
    Times are in milliseconds.
    """
    time_to_first_token: Optional[float] = None
    total_response_time: Optional[float] = None
    token_count: Optional[int] = None
    sources: Optional[int] = None
    model: Optional[str] = None
    dataset: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["PerformanceMetrics"]:
        """Build metrics from backend data, accepting camelCase keys."""
        if not data:
            return None
        aliases = {
            "timeToFirstToken": "time_to_first_token",
            "totalResponseTime": "total_response_time",
            "tokenCount": "token_count",
        }
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            name = aliases.get(key, key)
            if name in known:
                values[name] = value
        return cls(**values)


@dataclass
class Message:
    """One visible chat entry.

    Attributes:
        id: Opaque identifier, unique for the process lifetime
        role: Message author
        content: Text; append-only while streaming
        is_thinking: Active thinking message still receiving tokens
        thinking_completed: Finished thinking message kept for display
        performance_metrics: Assistant-only telemetry
        timestamp: Creation time (Unix seconds)
    """
    id: str
    role: MessageRole
    content: str = ""
    is_thinking: bool = False
    thinking_completed: bool = False
    performance_metrics: Optional[PerformanceMetrics] = None
    timestamp: float = 0

    def __post_init__(self) -> None:
        if self.timestamp == 0:
            self.timestamp = time.time()
        if self.is_thinking and self.thinking_completed:
            raise ValueError("A message cannot be both active and completed thinking")

    @property
    def is_thinking_any(self) -> bool:
        """True for active and completed thinking messages."""
        return self.is_thinking or self.thinking_completed

    def metrics(self) -> PerformanceMetrics:
        """Return the metrics record, creating an empty one on first use."""
        if self.performance_metrics is None:
            self.performance_metrics = PerformanceMetrics()
        return self.performance_metrics


@dataclass
class Dataset:
    """A searchable index exposed by the backend."""
    index_name: str
    document_count: int = 0
    embedding_field: str = ""
    dimensions: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Dataset":
        return cls(
            index_name=str(data["index_name"]),
            document_count=int(data.get("document_count") or 0),
            embedding_field=str(data.get("embedding_field") or ""),
            dimensions=int(data.get("dimensions") or 0),
        )
