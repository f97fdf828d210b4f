"""Incremental extraction of top-level ``{...}`` spans from a chunked text stream."""

from __future__ import annotations

from typing import AsyncIterable, AsyncIterator


class StreamReassembler:
    """Buffers stream fragments and emits brace-balanced candidate spans.

    Brace matching is structural: braces inside JSON string values are counted
    too unless ``string_aware`` is set. The producer is instructed never to put
    quotes or braces inside values, so the structural mode is the default.

    One instance belongs to exactly one stream.
    """

    def __init__(self, *, string_aware: bool = False):
        self.string_aware = string_aware
        self._buffer = ""
        # Start of the unconsumed region: the open object's "{" or just past the last span.
        self._cursor = 0
        # Where the next "{" search begins; text before it holds no "{".
        self._search = 0
        # Resume offset inside an open object and its depth so far.
        self._scan = 0
        self._depth = 0
        self._in_string = False
        self._escaped = False

    @property
    def pending(self) -> str:
        """Unconsumed text still waiting for more input."""
        return self._buffer[self._cursor :]

    @property
    def in_object(self) -> bool:
        return self._depth > 0

    def feed(self, fragment: str) -> list[str]:
        """Append a fragment and return every span it completed, in order."""
        if not fragment:
            return []
        self._buffer += fragment
        spans: list[str] = []

        while True:
            if self._depth == 0:
                start = self._buffer.find("{", self._search)
                if start < 0:
                    self._search = len(self._buffer)
                    break
                self._cursor = start
                self._scan = start

            end = self._scan_to_close()
            if end < 0:
                break
            spans.append(self._buffer[self._cursor : end + 1])
            self._cursor = end + 1
            self._search = end + 1

        self._compact()
        return spans

    async def iter_spans(self, fragments: AsyncIterable[str]) -> AsyncIterator[str]:
        async for fragment in fragments:
            for span in self.feed(fragment):
                yield span

    def _scan_to_close(self) -> int:
        """Advance through the open object; return the closing index or -1."""
        buffer = self._buffer
        depth = self._depth
        for index in range(self._scan, len(buffer)):
            char = buffer[index]
            if self._in_string:
                if self._escaped:
                    self._escaped = False
                elif char == "\\":
                    self._escaped = True
                elif char == '"':
                    self._in_string = False
                continue
            if char == "{":
                depth += 1
            elif char == "}":
                if depth > 0:
                    depth -= 1
                    if depth == 0:
                        self._depth = 0
                        return index
            elif char == '"' and self.string_aware and depth > 0:
                self._in_string = True

        self._depth = depth
        self._scan = len(buffer)
        return -1

    def _compact(self) -> None:
        if self._cursor == 0:
            return
        shift = self._cursor
        self._buffer = self._buffer[shift:]
        self._cursor = 0
        self._search = max(self._search - shift, 0)
        self._scan = max(self._scan - shift, 0)
