"""
Constants and configuration defaults for raglite_chat.
"""
from pathlib import Path
from typing import Final

APP_NAME: Final[str] = "raglite_chat"
APP_VERSION: Final[str] = "0.1.1"
APP_DESCRIPTION: Final[str] = "Terminal chat client for a RAGLite retrieval-augmented generation backend"

CONFIG_DIR: Final[Path] = Path.home() / ".raglite_chat"
CONFIG_FILE: Final[Path] = CONFIG_DIR / "config.json"

DEFAULT_API_URL: Final[str] = "http://localhost:8000"
DEFAULT_TIMEOUT: Final[float] = 30.0
DEFAULT_STREAM_TIMEOUT: Final[float] = 300.0
DEFAULT_TOP_K: Final[int] = 3
DEFAULT_DATASET_LABEL: Final[str] = "default"
DEFAULT_CONVERSATION_HISTORY: Final[int] = 50

# Backend routes
HEALTH_PATH: Final[str] = "/health"
RAG_PATH: Final[str] = "/api/rag"
STREAM_PATH: Final[str] = "/api/chat/stream"
DATASETS_PATH: Final[str] = "/api/datasets"
CONVERSATIONS_PATH: Final[str] = "/api/conversations"

# Environment overrides
ENV_API_URL: Final[str] = "RAGLITE_API_URL"
ENV_DATASET: Final[str] = "RAGLITE_DATASET"
ENV_TIMEOUT: Final[str] = "RAGLITE_TIMEOUT"

# Event stream wire format
FRAME_DELIMITER: Final[str] = "\n\n"
EVENT_FIELD: Final[str] = "event:"
DATA_FIELD: Final[str] = "data:"
THINKING_LABEL: Final[str] = "thinking"
RESPONSE_LABEL: Final[str] = "response"

# Sequence watermark before any token has been accepted
INITIAL_WATERMARK: Final[int] = -1

# Rough characters-per-token ratio used for the token estimate
CHARS_PER_TOKEN: Final[int] = 4

MAX_DEBUG_EVENTS: Final[int] = 50

NO_DATASET_NOTICE: Final[str] = (
    "No dataset selected. Pick a dataset with /use <name> before asking a question."
)
BACKEND_HINT: Final[str] = "Please make sure the RAGLite backend is running."

SLASH_PREFIX: Final[str] = "/"

HELP_TEXT: Final[str] = """
Available Commands:
  /help              - Show this help message
  /datasets          - List datasets available on the backend
  /use <name>        - Select the dataset to search
  /load <id> [n]     - Load the last n messages of a conversation
  /new               - Start a new conversation
  /thinking          - Toggle display of the model's thinking
  /health            - Check that the backend is reachable
  /debug             - Show recent stream debug events
  /quit              - Exit the application

Anything that does not start with / is sent as a question.
"""
