"""RAGLite backend API client for raglite_chat."""
from .client import RAGApiClient
from .models import Conversation, RAGRequest, RAGResponse, StreamRequest

__all__ = [
    'RAGApiClient',
    'Conversation', 'RAGRequest', 'RAGResponse', 'StreamRequest',
]
