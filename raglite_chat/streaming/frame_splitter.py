"""Frame splitting for the event stream.

Turns an append-only text buffer into complete, blank-line delimited event
frames. Whatever follows the last delimiter is kept as the remainder and
prefixed to the next chunk, so a frame is emitted exactly once and never
before its delimiter has arrived.
"""

from typing import List, Tuple

from raglite_chat.constants import FRAME_DELIMITER


def split_frames(buffer: str, chunk: str) -> Tuple[List[str], str]:
    """Split buffered text plus a new chunk into complete frames.

    Args:
        buffer: Remainder left over from the previous call
        chunk: Newly decoded text

    Returns:
        (frames, remainder): complete frames in arrival order and the
        incomplete trailing text (possibly empty)
    """
    text = (buffer + chunk).replace("\r\n", "\n")
    parts = text.split(FRAME_DELIMITER)
    return parts[:-1], parts[-1]


class FrameSplitter:
    """Stateful wrapper around ``split_frames`` for one stream.

    Usage:
        splitter = FrameSplitter()
        for text in decoded_chunks:
            for frame in splitter.feed(text):
                handle(frame)
        leftover = splitter.flush()
    """

    def __init__(self) -> None:
        self._remainder = ""
        self._frames_emitted = 0

    @property
    def remainder(self) -> str:
        """Text received after the last complete frame."""
        return self._remainder

    @property
    def frames_emitted(self) -> int:
        return self._frames_emitted

    def feed(self, chunk: str) -> List[str]:
        """Add decoded text and return the frames it completes."""
        if not chunk:
            return []
        frames, self._remainder = split_frames(self._remainder, chunk)
        self._frames_emitted += len(frames)
        return frames

    def flush(self) -> str:
        """Return and clear the undelimited remainder at end of stream.

        The remainder is never a frame and is not counted as one. A blank
        remainder comes back as an empty string.
        """
        remainder, self._remainder = self._remainder, ""
        return remainder if remainder.strip() else ""

    def reset(self) -> None:
        """Drop any buffered text."""
        self._remainder = ""
        self._frames_emitted = 0
