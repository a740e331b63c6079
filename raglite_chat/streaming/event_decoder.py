"""Decoding of a single event frame.

A frame is a group of lines. Recognised layouts:

    event: thinking
    data: {"token": "Let", "seq": 0}

    thinking:data:{"token": "Let", "seq": 0}

    event: thinking data: {"token": "Let", "seq": 0}

Any other line (``id:``, ``retry:``, ``:`` comments, stray text) is ignored
rather than failing the frame.
"""

from dataclasses import dataclass
from typing import List, Optional

from raglite_chat.constants import DATA_FIELD, EVENT_FIELD


@dataclass(frozen=True)
class DecodedEvent:
    """Event type label (if any) and the joined data payload of one frame."""
    event_type: Optional[str]
    payload: str

    @property
    def is_empty(self) -> bool:
        """True when the frame carried no data; such frames are skipped."""
        return not self.payload


def _field_value(value: str) -> str:
    # A single space after the colon is part of the syntax, not the value
    if value.startswith(" "):
        return value[1:]
    return value


def _combined_event_type(prefix: str) -> Optional[str]:
    label = prefix.replace(EVENT_FIELD, "").strip()
    if label.endswith(":"):
        label = label[:-1].strip()
    return label or None


def decode_event(frame: str) -> DecodedEvent:
    """Decode one complete frame.

    Args:
        frame: Frame text without its terminating blank line

    Returns:
        DecodedEvent with the last declared event type and all data lines
        joined by newlines in order
    """
    event_type: Optional[str] = None
    data_lines: List[str] = []

    for raw_line in frame.split("\n"):
        line = raw_line.rstrip("\r").lstrip()
        if not line:
            continue

        if line.startswith(EVENT_FIELD):
            rest = line[len(EVENT_FIELD):]
            if DATA_FIELD in rest:
                # event: <label> data: <payload> on one line
                idx = rest.index(DATA_FIELD)
                event_type = _combined_event_type(rest[:idx]) or event_type
                data_lines.append(_field_value(rest[idx + len(DATA_FIELD):]))
            else:
                event_type = rest.strip() or None
        elif line.startswith(DATA_FIELD):
            data_lines.append(_field_value(line[len(DATA_FIELD):]))
        elif DATA_FIELD in line:
            # <label>:data:<payload>
            idx = line.index(DATA_FIELD)
            event_type = _combined_event_type(line[:idx]) or event_type
            data_lines.append(_field_value(line[idx + len(DATA_FIELD):]))

    return DecodedEvent(event_type=event_type, payload="\n".join(data_lines))
