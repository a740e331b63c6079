"""Stream processor: the read loop of the reconciliation engine.

Raw byte chunks from the stream source are decoded with an incremental UTF-8
decoder (a multi-byte character may be split across chunks), split into
frames, decoded, turned into records and reconciled into the chat store.
All work for one chunk finishes before the next chunk is awaited.
An `event:` label stays in effect for later frames of the same stream until
another label replaces it.
"""

import codecs
import logging
from dataclasses import dataclass
from typing import AsyncIterable, List, Optional, Union

from raglite_chat.chat.store import ChatStore
from raglite_chat.streaming.event_decoder import decode_event
from raglite_chat.streaming.frame_splitter import FrameSplitter
from raglite_chat.streaming.reconciler import ChannelReconciler, ReconcileStats
from raglite_chat.streaming.records import SequencePolicy
from raglite_chat.streaming.token_extractor import extract_object_records, extract_records
from raglite_chat.utils import truncate_string


logger = logging.getLogger(__name__)


@dataclass
class ProcessorStats:
    """Transport-level counters for one stream."""
    chunks: int = 0
    bytes: int = 0
    frames: int = 0
    empty_frames: int = 0


class StreamProcessor:
    """Feeds one stream's chunks through the reconciliation pipeline.

    The processor is bound to a single session id. Once that session is
    finalized in the store, further chunks are still parsed but change
    nothing.
    """

    def __init__(
        self,
        store: ChatStore,
        session_id: int,
        policy: SequencePolicy = SequencePolicy.NON_STRICT,
    ) -> None:
        self._store = store
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._splitter = FrameSplitter()
        self._reconciler = ChannelReconciler(store, session_id, policy)
        self._stats = ProcessorStats()
        self._event_type: Optional[str] = None
        self._closed = False

    @property
    def session_id(self) -> int:
        return self._reconciler.session_id

    @property
    def stats(self) -> ProcessorStats:
        return self._stats

    @property
    def reconcile_stats(self) -> ReconcileStats:
        return self._reconciler.stats

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def event_type(self) -> Optional[str]:
        """Last event type label declared in this stream."""
        return self._event_type

    def feed(self, chunk: Union[bytes, str]) -> int:
        """Process one chunk; returns the number of complete frames handled."""
        if self._closed:
            logger.debug(f"Ignoring chunk after close for session {self.session_id}")
            return 0

        if isinstance(chunk, str):
            text = chunk
            self._stats.bytes += len(chunk.encode("utf-8"))
        else:
            text = self._decoder.decode(chunk)
            self._stats.bytes += len(chunk)
        self._stats.chunks += 1

        if self._stats.chunks <= 10:
            self._store.add_debug_event(
                f"[raw-chunk-{self._stats.chunks}] len={len(text)} snippet={truncate_string(text, 120)!r}"
            )
        return self._process(self._splitter.feed(text))

    def close(self) -> int:
        """Handle the completion signal.

        Flushes bytes held by the decoder and processes the frames they
        complete. Text after the last delimiter only contributes the
        complete JSON objects it contains.
        """
        if self._closed:
            return 0
        self._closed = True
        tail = self._decoder.decode(b"", final=True)
        handled = self._process(self._splitter.feed(tail))
        self._process_leftover(self._splitter.flush())
        return handled

    def abort(self) -> None:
        """Stop without a completion signal; buffered text is discarded."""
        if self._closed:
            return
        self._closed = True
        if self._splitter.remainder:
            logger.debug(
                f"Discarding {len(self._splitter.remainder)} buffered chars for session {self.session_id}"
            )
        self._splitter.reset()
        self._decoder.reset()

    async def consume(self, source: AsyncIterable[bytes]) -> ProcessorStats:
        """Read the source to completion, then close.

        Exceptions raised by the source propagate unchanged; the caller
        decides how the session ends.
        """
        async for chunk in source:
            self.feed(chunk)
        self.close()
        return self._stats

    def _process(self, frames: List[str]) -> int:
        for frame in frames:
            self._stats.frames += 1
            event = decode_event(frame)
            # Unlabelled frames inherit the last declared label
            if event.event_type:
                self._event_type = event.event_type
            if event.is_empty:
                self._stats.empty_frames += 1
                continue
            records = extract_records(event.payload, self._event_type)
            self._reconciler.apply_all(records)
        return len(frames)

    def _process_leftover(self, text: str) -> None:
        if not text:
            return
        event = decode_event(text)
        if event.event_type:
            self._event_type = event.event_type
        records = extract_object_records(event.payload, self._event_type)
        if not records:
            logger.debug(f"Dropping incomplete trailing text: {truncate_string(text, 80)!r}")
        self._reconciler.apply_all(records)
