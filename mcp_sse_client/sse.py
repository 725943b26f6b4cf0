"""
Server-sent events decoding.

Turns the raw body of a ``text/event-stream`` response into discrete events.
The decoder is fed arbitrary chunks (as read from the socket) so that long
``data:`` lines never depend on the HTTP library's line buffering.
"""

import codecs
from dataclasses import dataclass
from typing import List, Optional

ENDPOINT_EVENT = "endpoint"
MESSAGE_EVENT = "message"


@dataclass
class SSEEvent:
    """A single dispatched event"""
    event: str
    data: str
    id: Optional[str] = None
    retry: Optional[int] = None


class SSEDecoder:
    """Incremental decoder for the event-stream format"""

    def __init__(self):
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._event_type = ""
        self._data: List[str] = []
        self._retry: Optional[int] = None
        self.last_event_id: Optional[str] = None

    def feed(self, chunk: bytes) -> List[SSEEvent]:
        """
        Feed a chunk of the response body.

        Args:
            chunk: Raw bytes in any split, including partial UTF-8 sequences

        Returns:
            Events completed by this chunk, in stream order
        """
        self._buffer += self._utf8.decode(chunk)
        events = []

        while True:
            line = self._next_line()
            if line is None:
                break
            event = self._process_line(line)
            if event is not None:
                events.append(event)

        return events

    def _next_line(self) -> Optional[str]:
        lf = self._buffer.find("\n")
        cr = self._buffer.find("\r")

        if lf != -1 and (cr == -1 or lf < cr):
            line, self._buffer = self._buffer[:lf], self._buffer[lf + 1:]
            return line

        if cr == -1:
            return None

        # A trailing "\r" may be the first half of "\r\n"
        if cr + 1 == len(self._buffer):
            return None

        skip = 2 if self._buffer[cr + 1] == "\n" else 1
        line, self._buffer = self._buffer[:cr], self._buffer[cr + skip:]
        return line

    def _process_line(self, line: str) -> Optional[SSEEvent]:
        if not line:
            return self._dispatch()

        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "event":
            self._event_type = value
        elif field == "data":
            self._data.append(value)
        elif field == "id":
            if "\0" not in value:
                self.last_event_id = value
        elif field == "retry":
            if value.isdigit():
                self._retry = int(value)

        return None

    def _dispatch(self) -> Optional[SSEEvent]:
        if not self._data:
            self._event_type = ""
            return None

        event = SSEEvent(
            event=self._event_type or MESSAGE_EVENT,
            data="\n".join(self._data),
            id=self.last_event_id,
            retry=self._retry,
        )
        self._event_type = ""
        self._data = []
        self._retry = None
        return event
