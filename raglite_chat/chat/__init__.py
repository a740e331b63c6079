"""Chat messages and stream session state for raglite_chat."""
from .message_state import Dataset, Message, MessageRole, PerformanceMetrics, StreamPhase
from .store import ChatStore, StreamSession

__all__ = [
    'Dataset', 'Message', 'MessageRole', 'PerformanceMetrics', 'StreamPhase',
    'ChatStore', 'StreamSession',
]
