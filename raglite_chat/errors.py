"""
Error types and transport error analysis for raglite_chat.

Parsing problems inside the event stream are never raised: a malformed
frame or object is skipped and reconstruction continues. Only failures of
the transport itself reach the user, as a notice appended to the response
message. This module classifies those failures into a short message plus
remediation steps.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import httpx

from .constants import BACKEND_HINT


class RAGChatError(Exception):
    """Base class for raglite_chat errors."""


class RAGClientError(RAGChatError):
    """A request to the RAG backend failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class StreamBusyError(RAGChatError):
    """A send was attempted while another response is still streaming."""


class ConfigError(RAGChatError):
    """Configuration could not be loaded or holds an invalid value."""


class ErrorType(Enum):
    """Kinds of transport failure surfaced to the user."""
    CONNECTION = "connection"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    PROTOCOL = "protocol"
    CLIENT = "client"
    UNKNOWN = "unknown"


@dataclass
class ErrorResult:
    """
    Result of transport error analysis.

    Attributes:
        error_type: The type of error detected
        message: Human-readable error message
        remediation_steps: Suggested remediation steps
        raw_error: The original exception text
        recoverable: Whether retrying the send may succeed
    """
    error_type: ErrorType
    message: str
    remediation_steps: List[str] = field(default_factory=list)
    raw_error: str = ""
    recoverable: bool = True


class TransportErrorHandler:
    """Classifies exceptions raised while talking to the backend."""

    REMEDIATION = {
        ErrorType.CONNECTION: [
            BACKEND_HINT,
            "Check the API URL (--url or RAGLITE_API_URL)",
        ],
        ErrorType.TIMEOUT: [
            "The backend took too long to answer; try again",
            "Raise api.stream_timeout in the config file for long answers",
        ],
        ErrorType.HTTP_STATUS: [
            "Check the backend logs for the failing request",
            "Verify that the selected dataset still exists",
        ],
        ErrorType.PROTOCOL: [
            "The connection was interrupted mid-stream; try again",
        ],
        ErrorType.CLIENT: [
            BACKEND_HINT,
        ],
        ErrorType.UNKNOWN: [],
    }

    @classmethod
    def analyze(cls, error: BaseException) -> ErrorResult:
        """
        Analyze an exception raised by the stream source or a plain request.

        Args:
            error: The exception to classify

        Returns:
            ErrorResult with a user-facing message and remediation steps
        """
        raw = str(error)

        if isinstance(error, httpx.TimeoutException):
            error_type = ErrorType.TIMEOUT
            message = "Request to the backend timed out"
        elif isinstance(error, httpx.ConnectError):
            error_type = ErrorType.CONNECTION
            message = "Could not connect to the backend"
        elif isinstance(error, httpx.HTTPStatusError):
            error_type = ErrorType.HTTP_STATUS
            message = f"Backend returned HTTP {error.response.status_code}"
        elif isinstance(error, (httpx.RemoteProtocolError, httpx.ReadError)):
            error_type = ErrorType.PROTOCOL
            message = "Connection to the backend was interrupted"
        elif isinstance(error, httpx.HTTPError):
            error_type = ErrorType.CONNECTION
            message = raw or "Network error"
        elif isinstance(error, RAGClientError):
            error_type = ErrorType.CLIENT
            message = error.message
        else:
            error_type = ErrorType.UNKNOWN
            message = raw or "Unknown"

        return ErrorResult(
            error_type=error_type,
            message=message,
            remediation_steps=list(cls.REMEDIATION[error_type]),
            raw_error=raw,
            recoverable=error_type != ErrorType.UNKNOWN,
        )

    @staticmethod
    def format_notice(result: ErrorResult) -> str:
        """
        Format the notice appended to the response message.

        Args:
            result: The analyzed error

        Returns:
            One-line notice starting with "Error:"
        """
        notice = f"Error: {result.message.rstrip('.')}."
        if result.error_type in (ErrorType.CONNECTION, ErrorType.CLIENT):
            notice = f"{notice} {BACKEND_HINT}"
        return notice

    @staticmethod
    def format_error_with_remediation(result: ErrorResult) -> str:
        """Format an error result with remediation steps for display."""
        lines = [f"Error: {result.message}"]
        if result.remediation_steps:
            lines.extend(["", "Suggested remediation steps:"])
            for i, step in enumerate(result.remediation_steps, 1):
                lines.append(f"  {i}. {step}")
        return "\n".join(lines)


def format_error_notice(error: BaseException) -> str:
    """Convenience function: classify an exception and format its notice."""
    return TransportErrorHandler.format_notice(TransportErrorHandler.analyze(error))
