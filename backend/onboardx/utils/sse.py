"""
Incremental parser for OpenAI-style ``text/event-stream`` completions.

Network reads can split a record anywhere, including inside a multi-byte
character or inside the JSON payload. ``SSEDecoder.feed`` only consumes
complete lines. A ``data:`` line whose JSON does not parse is held back
and retried together with the following line(s); it is dropped only once
a new record or an event boundary shows it can no longer be completed.
"""
import codecs
import json
from typing import List, Optional

DATA_PREFIX = "data: "
DONE_SENTINEL = "[DONE]"


def extract_delta(event: dict) -> Optional[str]:
    """Return ``choices[0].delta.content`` or None."""
    choices = event.get("choices") or []
    if not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta") or {}
    content = delta.get("content")
    return content if isinstance(content, str) and content else None


class SSEDecoder:
    """Feed raw chunks in, get text deltas out."""

    def __init__(self):
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self._partial: Optional[str] = None
        self.done = False

    @property
    def needs_more_data(self) -> bool:
        """True while an unterminated line or an unparsed record is held."""
        return not self.done and (bool(self._buffer) or self._partial is not None)

    def feed(self, chunk: bytes | str) -> List[str]:
        if self.done:
            return []
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._buffer += chunk
        return self._drain()

    def flush(self) -> List[str]:
        """End of stream: parse the unterminated tail, then drop leftovers."""
        if self.done:
            return []
        self._buffer += self._decoder.decode(b"", final=True)
        if self._buffer and not self._buffer.endswith("\n"):
            self._buffer += "\n"
        deltas = self._drain()
        self._buffer = ""
        self._partial = None
        return deltas

    def _drain(self) -> List[str]:
        deltas: List[str] = []
        while not self.done:
            newline = self._buffer.find("\n")
            if newline == -1:
                break
            line = self._buffer[:newline]
            self._buffer = self._buffer[newline + 1:]
            if line.endswith("\r"):
                line = line[:-1]

            if self._partial is not None:
                if line.strip() and not line.startswith(DATA_PREFIX):
                    self._parse(self._partial + line, deltas)
                    continue
                self._partial = None

            if line.startswith(":") or not line.strip() or not line.startswith(DATA_PREFIX):
                continue

            payload = line[len(DATA_PREFIX):].strip()
            if payload == DONE_SENTINEL:
                self.done = True
                self._buffer = ""
                break
            self._parse(payload, deltas)
        return deltas

    def _parse(self, payload: str, deltas: List[str]) -> None:
        try:
            event = json.loads(payload)
        except json.JSONDecodeError:
            self._partial = payload
            return
        self._partial = None
        if isinstance(event, dict):
            delta = extract_delta(event)
            if delta:
                deltas.append(delta)
