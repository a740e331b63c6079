"""Channel reconciliation.

The reconciler routes extracted records into the chat store for one stream
session. Token records are checked against the per-channel watermark with
the configured SequencePolicy; control records are attached as metadata.

With the default NON_STRICT policy a token is accepted when
``seq >= watermark``. The watermark starts at -1 so sequence 0 is accepted,
and a backend that repeats a sequence number still delivers its text. The
price is that an exact replay of a token is appended again; dropped text
cannot be recovered, a duplicate is only a rendering artifact. STRICT
(``seq > watermark``) is available for backends known to increment strictly.
"""

import logging
from dataclasses import dataclass
from typing import Iterable

from raglite_chat.chat.store import ChatStore
from raglite_chat.streaming.records import (
    ControlRecord,
    Record,
    SequencePolicy,
    TokenRecord,
)


logger = logging.getLogger(__name__)


@dataclass
class ReconcileStats:
    """Counters for one session."""
    accepted: int = 0
    dropped: int = 0
    control: int = 0


class ChannelReconciler:
    """Routes records of one stream session into a ChatStore.

    Usage:
        reconciler = ChannelReconciler(store, session_id)
        for record in extract_records(payload, event_type):
            reconciler.apply(record)
    """

    def __init__(
        self,
        store: ChatStore,
        session_id: int,
        policy: SequencePolicy = SequencePolicy.NON_STRICT,
    ) -> None:
        self._store = store
        self._session_id = session_id
        self._policy = policy
        self._stats = ReconcileStats()

    @property
    def session_id(self) -> int:
        return self._session_id

    @property
    def policy(self) -> SequencePolicy:
        return self._policy

    @property
    def stats(self) -> ReconcileStats:
        return self._stats

    def apply(self, record: Record) -> bool:
        """Apply one record; returns True if it changed the store."""
        if isinstance(record, TokenRecord):
            return self._apply_token(record)
        if isinstance(record, ControlRecord):
            return self._apply_control(record)
        raise TypeError(f"Unsupported record type: {type(record).__name__}")

    def apply_all(self, records: Iterable[Record]) -> int:
        """Apply records in order; returns how many changed the store."""
        return sum(1 for record in records if self.apply(record))

    def _apply_token(self, record: TokenRecord) -> bool:
        accepted = self._store.accept_token(
            self._session_id,
            record.channel,
            record.text,
            record.seq,
            self._policy,
        )
        if accepted:
            self._stats.accepted += 1
        else:
            self._stats.dropped += 1
            logger.debug(
                f"Dropped {record.channel.value} token seq={record.seq} for session {self._session_id}"
            )
        return accepted

    def _apply_control(self, record: ControlRecord) -> bool:
        applied = self._store.apply_control(
            self._session_id,
            sources=record.sources,
            conversation_id=record.conversation_id,
        )
        if applied:
            self._stats.control += 1
        return applied
