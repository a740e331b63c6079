"""Chat service: orchestrates a send from user input to a finalized answer.

The service is the caller the stream engine relies on: it refuses a second
send while a response is still streaming, rejects sends without a dataset
before any request is made, and is the single place where transport
failures are caught and turned into an error notice.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, List, Optional

from raglite_chat.api.client import RAGApiClient
from raglite_chat.api.models import StreamRequest
from raglite_chat.chat.message_state import Dataset, MessageRole
from raglite_chat.chat.store import ChatStore
from raglite_chat.config import AppConfig
from raglite_chat.constants import DEFAULT_CONVERSATION_HISTORY, NO_DATASET_NOTICE
from raglite_chat.errors import (
    RAGClientError,
    StreamBusyError,
    TransportErrorHandler,
)
from raglite_chat.streaming.processor import StreamProcessor
from raglite_chat.streaming.records import SequencePolicy


logger = logging.getLogger(__name__)


StreamSource = Callable[[StreamRequest], AsyncIterator[bytes]]


class ChatService:
    """Coordinates the chat store, the API client and the stream processor.

    Usage:
        service = ChatService(ChatStore(), RAGApiClient(url), config)
        await service.refresh_datasets()
        await service.send("What is in the handbook?")
    """

    def __init__(
        self,
        store: ChatStore,
        client: RAGApiClient,
        config: Optional[AppConfig] = None,
        stream_source: Optional[StreamSource] = None,
    ) -> None:
        """Initialize the service.

        Args:
            store: Chat store to mutate
            client: Backend client
            config: Application configuration (defaults if omitted)
            stream_source: Override for the byte source; defaults to
                           client.stream_message
        """
        self._store = store
        self._client = client
        self._config = config or AppConfig()
        self._stream_source = stream_source or client.stream_message
        self._active_processor: Optional[StreamProcessor] = None

        if self._config.chat.default_dataset and store.selected_dataset is None:
            store.select_dataset(self._config.chat.default_dataset)

    @property
    def store(self) -> ChatStore:
        return self._store

    @property
    def policy(self) -> SequencePolicy:
        if self._config.chat.strict_sequencing:
            return SequencePolicy.STRICT
        return SequencePolicy.NON_STRICT

    async def refresh_datasets(self) -> List[Dataset]:
        """Fetch datasets and select the first one if none is selected.

        Returns:
            The datasets, or an empty list if the backend could not be reached
        """
        try:
            datasets = await self._client.list_datasets()
        except RAGClientError as e:
            logger.warning(f"Failed to fetch datasets: {e}")
            return []

        self._store.set_datasets(datasets)
        if datasets and not self._store.selected_dataset:
            self._store.select_dataset(datasets[0].index_name)
        return datasets

    def select_dataset(self, name: Optional[str]) -> bool:
        """Select a dataset by index name.

        Names are checked against the last fetched listing when one exists.
        """
        known = [d.index_name for d in self._store.datasets]
        if name is not None and known and name not in known:
            return False
        self._store.select_dataset(name)
        return True

    async def send(self, query: str) -> Optional[int]:
        """Send a question and stream the answer into the store.

        Args:
            query: The user's question

        Returns:
            The session id used for the answer, or None when no stream was
            started (empty query or no dataset selected)

        Raises:
            StreamBusyError: If a previous answer is still streaming
        """
        query = query.strip()
        if not query:
            return None
        if self._store.is_loading or self._store.is_streaming:
            raise StreamBusyError("A response is still streaming; wait for it to finish or cancel it")

        self._store.add_message(MessageRole.USER, query)

        dataset = self._store.selected_dataset
        if not dataset:
            self._store.add_message(MessageRole.ASSISTANT, NO_DATASET_NOTICE)
            return None

        self._store.set_loading(True)
        try:
            return await self._stream_answer(query, dataset)
        finally:
            self._store.set_loading(False)

    async def _stream_answer(self, query: str, dataset: str) -> int:
        request = StreamRequest(
            query=query,
            index_name=dataset,
            top_k=self._config.api.top_k,
            conversation_id=self._store.conversation_id,
            include_thinking=self._config.api.include_thinking,
        )
        session_id = self._store.start_session(dataset)
        processor = StreamProcessor(self._store, session_id, self.policy)
        self._active_processor = processor

        try:
            await processor.consume(self._stream_source(request))
        except asyncio.CancelledError:
            processor.abort()
            self._store.finalize_session(session_id)
            logger.info(f"Session {session_id} cancelled")
            raise
        except Exception as e:
            result = TransportErrorHandler.analyze(e)
            logger.warning(f"Streaming error ({result.error_type.value}): {result.raw_error or result.message}")
            self._store.finalize_session(session_id, error=TransportErrorHandler.format_notice(result))
        else:
            self._store.finalize_session(session_id)
            stats = processor.reconcile_stats
            logger.debug(
                f"Session {session_id} finished: {processor.stats.frames} frames, "
                f"{stats.accepted} tokens accepted, {stats.dropped} dropped"
            )
        finally:
            self._active_processor = None
        return session_id

    def cancel(self) -> bool:
        """Finalize the active stream session without an error notice.

        Text buffered after the last complete frame is discarded.

        Abandoning a stream does not finalize it on its own; this is the
        explicit path for user cancellation.
        """
        session = self._store.session
        if session is None:
            return False
        if self._active_processor is not None:
            self._active_processor.abort()
        return self._store.finalize_session(session.session_id)

    async def load_conversation(
        self,
        conversation_id: str,
        last_n: int = DEFAULT_CONVERSATION_HISTORY,
    ) -> bool:
        """Replace the message list with a stored conversation.

        Returns:
            True if the conversation was loaded
        """
        try:
            conversation = await self._client.get_conversation(conversation_id, last_n)
        except RAGClientError as e:
            self._store.add_debug_event(f"[load-conversation:error] {e}")
            logger.warning(f"Failed to load conversation {conversation_id}: {e}")
            return False

        if conversation.messages:
            self._store.replace_messages(conversation.messages)
        self._store.set_conversation_id(conversation_id)
        self._store.add_debug_event(
            f"[load-conversation] id={conversation_id} loaded={len(conversation.messages)}"
        )
        return True

    def new_conversation(self) -> None:
        """Forget the conversation id and clear the message list."""
        if self._store.is_streaming:
            self.cancel()
        self._store.clear_messages()
        self._store.set_conversation_id(None)

    async def health_check(self) -> bool:
        return await self._client.health_check()
