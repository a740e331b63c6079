"""Record types produced by the token extractor.

A decoded payload yields zero or more records. A ``TokenRecord`` carries text
for one of the two channels; a ``ControlRecord`` carries out-of-band stream
metadata (retrieved source count, conversation identifier). Both are
immutable so they can be handed around freely.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from raglite_chat.constants import RESPONSE_LABEL, THINKING_LABEL


class Channel(Enum):
    """Logical token stream multiplexed over the transport."""
    THINKING = THINKING_LABEL   # intermediate reasoning
    RESPONSE = RESPONSE_LABEL   # final answer

    @classmethod
    def from_label(cls, label: Optional[str]) -> "Channel":
        """Map a wire label to a channel.

        Only the thinking label selects the thinking channel; every other
        label, or no label at all, is the response channel.
        """
        if label is not None and label.strip().lower() == THINKING_LABEL:
            return cls.THINKING
        return cls.RESPONSE


class SequencePolicy(Enum):
    """Accept/drop rule applied against a channel's watermark."""
    NON_STRICT = "non_strict"  # seq >= watermark
    STRICT = "strict"          # seq > watermark

    def accepts(self, seq: Optional[int], watermark: int) -> bool:
        """Return True if a token with ``seq`` passes the watermark.

        ``seq=None`` marks an unsequenced plain-text token, which is always
        accepted.
        """
        if seq is None:
            return True
        if self is SequencePolicy.STRICT:
            return seq > watermark
        return seq >= watermark


@dataclass(frozen=True)
class TokenRecord:
    """A piece of channel text.

    Attributes:
        channel: Target channel
        text: Token text, never empty
        seq: Sequence number, or None for unsequenced plain text
    """
    channel: Channel
    text: str
    seq: Optional[int] = 0

    @property
    def is_sequenced(self) -> bool:
        return self.seq is not None


@dataclass(frozen=True)
class ControlRecord:
    """Out-of-band stream metadata; never routed to a channel.

    Attributes:
        sources: Number of retrieved sources, None if the payload had none
        conversation_id: Conversation identifier assigned by the backend
    """
    sources: Optional[int] = None
    conversation_id: Optional[str] = None


Record = Union[TokenRecord, ControlRecord]
