"""Chat store: the single owner of messages and stream session state.

Every mutation of the message list or of the active stream session goes
through a ChatStore method. Read-check-write sequences (watermark checks,
lazy response creation, first-token timing) are single method calls, so
callers never act on a stale read.

Session lifecycle:
    start_session()     creates the thinking message, phase THINKING
    accept_token()      appends to the thinking message, or materializes the
                        response message on the first accepted response token
    apply_control()     records source count / conversation id
    finalize_session()  trims and stamps the response, completes the thinking
                        message and clears the session

Methods that take a session id ignore calls for any session other than the
active one, so a late chunk from a finalized or superseded stream is a no-op.
"""

import copy
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional

from raglite_chat.chat.message_state import (
    Dataset,
    Message,
    MessageRole,
    PerformanceMetrics,
    StreamPhase,
)
from raglite_chat.constants import (
    DEFAULT_DATASET_LABEL,
    INITIAL_WATERMARK,
    MAX_DEBUG_EVENTS,
)
from raglite_chat.streaming.records import Channel, SequencePolicy
from raglite_chat.utils import count_tokens, generate_message_id, truncate_string


logger = logging.getLogger(__name__)


Listener = Callable[[], None]


def _initial_watermarks() -> Dict[Channel, int]:
    return {channel: INITIAL_WATERMARK for channel in Channel}


@dataclass
class StreamSession:
    """Ephemeral state for one in-flight exchange.

    Attributes:
        session_id: Identifier handed to the stream processor
        thinking_message_id: Thinking message created at session start
        stream_start_time: Clock reading when the send was initiated
        dataset: Dataset the question was sent against
        response_message_id: Set when the response message is materialized
        has_received_first_token: First response token has been accepted
        last_accepted_seq: Per-channel watermark
        pending_sources: Source count received before the response existed
    """
    session_id: int
    thinking_message_id: str
    stream_start_time: float
    dataset: Optional[str] = None
    response_message_id: Optional[str] = None
    has_received_first_token: bool = False
    last_accepted_seq: Dict[Channel, int] = field(default_factory=_initial_watermarks)
    pending_sources: Optional[int] = None


class ChatStore:
    """Owns the chat message list and the active stream session.

    Readers get copies; nothing outside the store holds a live Message.
    Listeners registered with add_listener() are called after every change.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.perf_counter,
        max_debug_events: int = MAX_DEBUG_EVENTS,
    ) -> None:
        """Initialize an empty store.

        Args:
            clock: Monotonic clock in seconds used for stream timings
            max_debug_events: Number of debug events retained
        """
        self._clock = clock
        self._messages: List[Message] = []
        self._session: Optional[StreamSession] = None
        self._session_counter = 0
        self._datasets: List[Dataset] = []
        self._selected_dataset: Optional[str] = None
        self._conversation_id: Optional[str] = None
        self._is_loading = False
        self._debug_events: Deque[str] = deque(maxlen=max_debug_events)
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    @property
    def messages(self) -> List[Message]:
        """Snapshot of the message list in display order."""
        return copy.deepcopy(self._messages)

    def get_message(self, message_id: str) -> Optional[Message]:
        """Snapshot of one message, or None if it does not exist."""
        message = self._find(message_id)
        return copy.deepcopy(message) if message is not None else None

    @property
    def session(self) -> Optional[StreamSession]:
        """Snapshot of the active session, or None when idle."""
        return copy.deepcopy(self._session)

    @property
    def phase(self) -> StreamPhase:
        if self._session is None:
            return StreamPhase.IDLE
        if self._session.response_message_id is None:
            return StreamPhase.THINKING
        return StreamPhase.RESPONDING

    @property
    def is_streaming(self) -> bool:
        return self._session is not None

    @property
    def is_loading(self) -> bool:
        return self._is_loading

    @property
    def datasets(self) -> List[Dataset]:
        return list(self._datasets)

    @property
    def selected_dataset(self) -> Optional[str]:
        return self._selected_dataset

    @property
    def conversation_id(self) -> Optional[str]:
        return self._conversation_id

    @property
    def debug_events(self) -> List[str]:
        return list(self._debug_events)

    # ------------------------------------------------------------------
    # Listeners and debug events
    # ------------------------------------------------------------------

    def add_listener(self, listener: Listener) -> None:
        """Register a callback invoked after every state change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener()

    def add_debug_event(self, event: str) -> None:
        """Record a short stream diagnostic (the newest events are kept)."""
        self._debug_events.append(event)
        logger.debug(event)

    # ------------------------------------------------------------------
    # Plain message and session-level state
    # ------------------------------------------------------------------

    def add_message(
        self,
        role: MessageRole,
        content: str,
        message_id: Optional[str] = None,
        is_thinking: bool = False,
        performance_metrics: Optional[PerformanceMetrics] = None,
    ) -> str:
        """Append a message and return its id."""
        if message_id is None:
            prefix = "user" if role is MessageRole.USER else "msg"
            message_id = generate_message_id(prefix)
        elif self._find(message_id) is not None:
            raise ValueError(f"Message id {message_id!r} is already in use")
        self._messages.append(Message(
            id=message_id,
            role=role,
            content=content,
            is_thinking=is_thinking,
            performance_metrics=performance_metrics,
        ))
        self.add_debug_event(f"[add-message] id={message_id} role={role.value} thinking={is_thinking}")
        self._notify()
        return message_id

    def remove_message(self, message_id: str) -> bool:
        """Remove a message (e.g. a dismissed thinking bubble)."""
        message = self._find(message_id)
        if message is None:
            return False
        self._messages.remove(message)
        self._notify()
        return True

    def clear_messages(self) -> None:
        self._messages.clear()
        self._notify()

    def replace_messages(self, messages: List[Message]) -> None:
        """Replace the whole message list, e.g. with a loaded conversation."""
        self._messages = copy.deepcopy(list(messages))
        self._notify()

    def set_loading(self, loading: bool) -> None:
        self._is_loading = loading
        self._notify()

    def set_datasets(self, datasets: List[Dataset]) -> None:
        self._datasets = list(datasets)
        self._notify()

    def select_dataset(self, dataset: Optional[str]) -> None:
        self._selected_dataset = dataset
        self._notify()

    def set_conversation_id(self, conversation_id: Optional[str]) -> None:
        self._conversation_id = conversation_id
        self._notify()

    # ------------------------------------------------------------------
    # Stream session
    # ------------------------------------------------------------------

    def start_session(self, dataset: Optional[str] = None) -> int:
        """Open a stream session and create its (empty) thinking message.

        A session that is still open is finalized first; its processor's
        remaining calls then no longer match the active session.

        Returns:
            The new session id
        """
        if self._session is not None:
            logger.warning(
                f"Starting a stream while session {self._session.session_id} is still open; finalizing it"
            )
            self.finalize_session(self._session.session_id)

        self._session_counter += 1
        thinking_id = generate_message_id("think")
        self._session = StreamSession(
            session_id=self._session_counter,
            thinking_message_id=thinking_id,
            stream_start_time=self._clock(),
            dataset=dataset,
        )
        self.add_debug_event(
            f"[stream-start] session={self._session_counter} thinking={thinking_id} "
            f"dataset={dataset or DEFAULT_DATASET_LABEL}"
        )
        self.add_message(MessageRole.ASSISTANT, "", message_id=thinking_id, is_thinking=True)
        return self._session_counter

    def accept_token(
        self,
        session_id: int,
        channel: Channel,
        text: str,
        seq: Optional[int],
        policy: SequencePolicy = SequencePolicy.NON_STRICT,
    ) -> bool:
        """Apply the watermark policy to one token and append it if accepted.

        Args:
            session_id: Session the token belongs to
            channel: Target channel
            text: Token text
            seq: Sequence number, or None for unsequenced plain text
            policy: Accept/drop rule against the channel watermark

        Returns:
            True if the text was appended
        """
        session = self._active(session_id)
        if session is None or not text:
            return False

        watermark = session.last_accepted_seq[channel]
        if not policy.accepts(seq, watermark):
            self.add_debug_event(f"[drop] {channel.value} seq={seq} watermark={watermark}")
            return False

        if channel is Channel.THINKING:
            target = self._find(session.thinking_message_id)
            if target is None:
                # Thinking bubble was dismissed while streaming
                return False
        else:
            target = self._ensure_response(session)

        if seq is not None:
            session.last_accepted_seq[channel] = seq
        target.content += text

        if channel is Channel.RESPONSE:
            metrics = target.metrics()
            metrics.token_count = count_tokens(target.content)
            if not session.has_received_first_token:
                session.has_received_first_token = True
                metrics.time_to_first_token = (self._clock() - session.stream_start_time) * 1000
                self.add_debug_event(
                    f"[ttft] id={target.id} ttft={metrics.time_to_first_token:.0f}ms"
                )

        self.add_debug_event(
            f"[token->{channel.value}] seq={seq} token={truncate_string(text, 40)!r}"
        )
        self._notify()
        return True

    def apply_control(
        self,
        session_id: int,
        sources: Optional[int] = None,
        conversation_id: Optional[str] = None,
    ) -> bool:
        """Attach stream metadata without touching any message text.

        A source count that arrives before the response message exists is
        held and applied when the response message is materialized.
        """
        session = self._active(session_id)
        if session is None:
            return False

        if sources is not None:
            response = self._find(session.response_message_id) if session.response_message_id else None
            if response is not None:
                response.metrics().sources = sources
            else:
                session.pending_sources = sources
            self.add_debug_event(f"[search-complete] sources={sources}")

        if conversation_id:
            self._conversation_id = conversation_id
            self.add_debug_event(f"[conversation] id={conversation_id}")

        self._notify()
        return True

    def finalize_session(self, session_id: int, error: Optional[str] = None) -> bool:
        """Close the session and stamp its messages.

        Args:
            session_id: Session to finalize
            error: Notice to append to the response message (the response
                   message is created for it if no token ever arrived)

        Returns:
            False if the session is not the active one (already finalized
            or superseded), True otherwise
        """
        session = self._active(session_id)
        if session is None:
            return False

        if error:
            response = self._ensure_response(session)
            separator = "\n\n" if response.content.strip() else ""
            response.content += f"{separator}{error}"

        if session.response_message_id is not None:
            response = self._find(session.response_message_id)
            if response is not None:
                response.content = response.content.strip()
                metrics = response.metrics()
                metrics.total_response_time = (self._clock() - session.stream_start_time) * 1000
                metrics.dataset = self._selected_dataset or session.dataset or DEFAULT_DATASET_LABEL
                metrics.token_count = count_tokens(response.content)

        thinking = self._find(session.thinking_message_id)
        if thinking is not None:
            thinking.is_thinking = False
            thinking.thinking_completed = True

        self._session = None
        self.add_debug_event(
            f"[stream-end] session={session_id} response={session.response_message_id} error={bool(error)}"
        )
        self._notify()
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _find(self, message_id: str) -> Optional[Message]:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def _active(self, session_id: int) -> Optional[StreamSession]:
        if self._session is None or self._session.session_id != session_id:
            return None
        return self._session

    def _ensure_response(self, session: StreamSession) -> Message:
        """Return the session's response message, creating it on first use."""
        if session.response_message_id is not None:
            existing = self._find(session.response_message_id)
            if existing is not None:
                return existing

        # A removed response message is recreated under a new id
        response_id = generate_message_id("msg")
        metrics = PerformanceMetrics(sources=session.pending_sources)
        message = Message(id=response_id, role=MessageRole.ASSISTANT, performance_metrics=metrics)
        self._messages.append(message)
        session.response_message_id = response_id
        session.pending_sources = None
        self.add_debug_event(f"[create-response] id={response_id}")
        return message
