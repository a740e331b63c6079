"""Token extraction from decoded payloads.

A payload is either one or more self-contained JSON objects (possibly
whitespace separated on one line) or arbitrary plain text. Every
object-shaped substring is parsed on its own, so a single malformed object
costs only itself. Parsed objects go through a closed case analysis:

    {"token": "...", "source": "thinking", "seq": 3}  -> TokenRecord
    {"sources": 4, "conversation_id": "c-1"}          -> ControlRecord
    anything else                                     -> ignored

Payloads with no object-shaped substring at all become a single unsequenced
plain-text TokenRecord.
"""

import json
import logging
import math
from typing import Any, Iterator, List, Optional

from raglite_chat.streaming.records import (
    Channel,
    ControlRecord,
    Record,
    TokenRecord,
)


logger = logging.getLogger(__name__)


def iter_object_spans(payload: str) -> Iterator[str]:
    """Yield every balanced ``{...}`` substring of ``payload``.

    Braces inside JSON string literals (including escaped quotes) do not
    count towards nesting. An opening brace that is never closed is skipped
    and the scan resumes at the next one.
    """
    start = payload.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = -1
        for i in range(start, len(payload)):
            ch = payload[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    end = i
                    break
        if end == -1:
            start = payload.find("{", start + 1)
            continue
        yield payload[start:end + 1]
        start = payload.find("{", end + 1)


def _coerce_seq(value: Any) -> int:
    # bool is an int subclass but never a sequence number
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0
        return int(number) if math.isfinite(number) else 0
    return 0


def _coerce_sources(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def classify_object(obj: dict, event_type: Optional[str]) -> Optional[Record]:
    """Decode one parsed JSON object into a record.

    Args:
        obj: Parsed object
        event_type: Event type label of the enclosing frame

    Returns:
        TokenRecord, ControlRecord, or None for objects of neither shape
    """
    token = obj.get("token")
    if isinstance(token, str) and token:
        label = obj.get("source") or event_type
        return TokenRecord(
            channel=Channel.from_label(label if isinstance(label, str) else None),
            text=token,
            seq=_coerce_seq(obj.get("seq")),
        )

    if "sources" in obj or "conversation_id" in obj:
        conversation_id = obj.get("conversation_id")
        return ControlRecord(
            sources=_coerce_sources(obj.get("sources")),
            conversation_id=str(conversation_id) if conversation_id else None,
        )

    return None


def extract_records(payload: str, event_type: Optional[str] = None) -> List[Record]:
    """Extract token and control records from a decoded payload.

    Args:
        payload: Joined data lines of one frame
        event_type: Event type label of the frame, if any

    Returns:
        Records in payload order; empty if the payload carries nothing usable
    """
    if not payload:
        return []

    spans = list(iter_object_spans(payload))
    if not spans:
        return [TokenRecord(channel=Channel.from_label(event_type), text=payload, seq=None)]
    return _records_from_spans(spans, event_type)


def extract_object_records(text: str, event_type: Optional[str] = None) -> List[Record]:
    """Extract records from the complete JSON objects in ``text`` only.

    Used for text that never received its frame delimiter: partial objects
    and anything outside an object are discarded, there is no plain-text
    fallback.
    """
    if not text:
        return []
    return _records_from_spans(list(iter_object_spans(text)), event_type)


def _records_from_spans(spans: List[str], event_type: Optional[str]) -> List[Record]:
    records: List[Record] = []
    for span in spans:
        try:
            obj = json.loads(span)
        except json.JSONDecodeError as e:
            logger.debug(f"Skipping malformed object {span[:80]!r}: {e}")
            continue
        record = classify_object(obj, event_type)
        if record is None:
            logger.debug(f"Ignoring object without token or control fields: {span[:80]!r}")
            continue
        records.append(record)
    return records
