"""Decode runQuery result streams.

runQuery answers with a JSON array of frames, delivered incrementally.
Each frame holds either a matching document or only a skipped-results
count (offset bookkeeping). The result iterators here decode documents
lazily, one frame at a time, and own the underlying source: they release
it on exhaustion, on the first decode error, or when closed early.
"""

import codecs
import json
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable, Iterable, Iterator
from datetime import datetime
from typing import Any

from firestore_rest.domain.documents import QueryResultFrame
from firestore_rest.domain.exceptions import ProtocolException
from firestore_rest.infrastructure.firebase._rest_encoding import parse_timestamp
from firestore_rest.infrastructure.firebase.envelope import envelope_from_wire, from_envelope
from firestore_rest.shared.telemetry.logging import get_logger

logger = get_logger(__name__)

_SEPARATORS = frozenset(" \t\r\n[],")
_CLOSERS = {"{": "}", "[": "]"}


class FrameSplitter:
    """Incrementally split a byte/text stream into JSON object frames.

    Accepts a JSON array of objects or newline-delimited objects. Feed
    chunks as they arrive; call ``finish()`` once the stream ends.

    Each frame is parsed once, as soon as its closing brace arrives, so a
    malformed frame raises immediately instead of stalling the stream.
    """

    def __init__(self) -> None:
        self._utf8 = codecs.getincrementaldecoder("utf-8")()
        self._buf = ""
        # scan state of the frame at the head of the buffer
        self._scanned = 0
        self._closers: list[str] = []
        self._in_string = False
        self._escaped = False

    def _scan(self) -> int | None:
        """Return the end index of the head frame, or None until it is complete.

        Raises:
            ProtocolException: Mismatched closing bracket.
        """
        buf = self._buf
        for i in range(self._scanned, len(buf)):
            ch = buf[i]
            if self._in_string:
                if self._escaped:
                    self._escaped = False
                elif ch == "\\":
                    self._escaped = True
                elif ch == '"':
                    self._in_string = False
            elif ch == '"':
                self._in_string = True
            elif ch in _CLOSERS:
                self._closers.append(_CLOSERS[ch])
            elif ch in "}]":
                if not self._closers or self._closers.pop() != ch:
                    raise ProtocolException(f"Mismatched {ch!r} in result frame")
                if not self._closers:
                    self._scanned = 0
                    return i + 1
        self._scanned = len(buf)
        return None

    def feed(self, chunk: bytes | str) -> list[dict]:
        if isinstance(chunk, (bytes, bytearray)):
            chunk = self._utf8.decode(bytes(chunk))
        self._buf += chunk
        frames: list[dict] = []
        while True:
            if not self._scanned:
                pos = 0
                while pos < len(self._buf) and self._buf[pos] in _SEPARATORS:
                    pos += 1
                self._buf = self._buf[pos:]
                if not self._buf:
                    break
                if self._buf[0] != "{":
                    raise ProtocolException(
                        f"Unexpected character {self._buf[0]!r} in result stream"
                    )
            end = self._scan()
            if end is None:
                break
            text, self._buf = self._buf[:end], self._buf[end:]
            try:
                frames.append(json.loads(text))
            except json.JSONDecodeError as e:
                raise ProtocolException(f"Malformed result frame: {e.msg} at {e.pos}") from e
        return frames

    def finish(self) -> list[dict]:
        frames = self.feed(self._utf8.decode(b"", final=True))
        if self._buf.strip(" \t\r\n[],"):
            raise ProtocolException("Result stream ended inside a frame")
        return frames


def iter_frames(chunks: Iterable[bytes | str]) -> Iterator[dict]:
    """Yield frame dicts from an iterable of raw chunks."""
    splitter = FrameSplitter()
    for chunk in chunks:
        yield from splitter.feed(chunk)
    yield from splitter.finish()


async def aiter_frames(chunks: AsyncIterable[bytes | str]) -> AsyncIterator[dict]:
    """Async counterpart of iter_frames."""
    splitter = FrameSplitter()
    async for chunk in chunks:
        for frame in splitter.feed(chunk):
            yield frame
    for frame in splitter.finish():
        yield frame


def frame_from_wire(obj: Any) -> QueryResultFrame:
    """Parse one runQuery response object.

    Raises:
        ProtocolException: Not an object, or skippedResults is not an integer.
    """
    if not isinstance(obj, dict):
        raise ProtocolException(f"Result frame must be an object, got {type(obj).__name__}")
    doc = obj.get("document")
    read_time = obj.get("readTime")
    skipped = obj.get("skippedResults", 0)
    try:
        skipped = int(skipped)
    except (TypeError, ValueError) as e:
        raise ProtocolException(f"Invalid skippedResults: {skipped!r}") from e
    return QueryResultFrame(
        document=envelope_from_wire(doc) if doc is not None else None,
        read_time=parse_timestamp(read_time) if read_time else None,
        skipped_results=skipped,
    )


class _ResultCursor:
    """Per-frame bookkeeping shared by the sync and async result iterators."""

    _NOTHING = object()

    def __init__(self, target: Any) -> None:
        self.target = target
        self.skipped_results = 0
        self.frames_seen = 0
        self.read_time: datetime | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _consume(self, raw: dict | QueryResultFrame) -> Any:
        frame = raw if isinstance(raw, QueryResultFrame) else frame_from_wire(raw)
        self.frames_seen += 1
        if frame.read_time is not None:
            self.read_time = frame.read_time
        self.skipped_results += frame.skipped_results
        if frame.document is None:
            return self._NOTHING
        return from_envelope(frame.document, self.target)


class QueryResults(_ResultCursor):
    """Forward-only, single-pass iterator of decoded records.

    Frames with only a skipped count are not yielded; their counts add up in
    ``skipped_results``. The first frame that fails to decode raises and
    closes the iterator. ``on_close`` runs exactly once.
    """

    def __init__(
        self,
        frames: Iterable[dict | QueryResultFrame],
        target: Any = dict,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        super().__init__(target)
        self._frames = iter(frames)
        self._on_close = on_close

    def __iter__(self) -> "QueryResults":
        if self._closed:
            raise RuntimeError("Query results are single-pass and already consumed")
        return self

    def __next__(self) -> Any:
        while not self._closed:
            try:
                raw = next(self._frames)
            except StopIteration:
                self.close()
                break
            except Exception:
                self.close()
                raise
            try:
                record = self._consume(raw)
            except Exception:
                self.close()
                raise
            if record is not self._NOTHING:
                return record
        raise StopIteration

    def close(self) -> None:
        """Release the underlying source. Idempotent."""
        if self._closed:
            return
        self._closed = True
        try:
            close = getattr(self._frames, "close", None)
            if close is not None:
                close()
        finally:
            if self._on_close is not None:
                self._on_close()
        logger.debug(
            "Query results closed: frames=%d skipped=%d",
            self.frames_seen,
            self.skipped_results,
        )

    def __enter__(self) -> "QueryResults":
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object) -> None:
        self.close()


class AsyncQueryResults(_ResultCursor):
    """Async variant of QueryResults over an async frame source (e.g. an HTTP stream)."""

    def __init__(
        self,
        frames: AsyncIterable[dict | QueryResultFrame],
        target: Any = dict,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        super().__init__(target)
        self._frames = frames.__aiter__()
        self._on_close = on_close

    def __aiter__(self) -> "AsyncQueryResults":
        if self._closed:
            raise RuntimeError("Query results are single-pass and already consumed")
        return self

    async def __anext__(self) -> Any:
        while not self._closed:
            try:
                raw = await self._frames.__anext__()
            except StopAsyncIteration:
                await self.aclose()
                break
            except Exception:
                await self.aclose()
                raise
            try:
                record = self._consume(raw)
            except Exception:
                await self.aclose()
                raise
            if record is not self._NOTHING:
                return record
        raise StopAsyncIteration

    async def aclose(self) -> None:
        """Release the underlying stream. Idempotent."""
        if self._closed:
            return
        self._closed = True
        try:
            aclose = getattr(self._frames, "aclose", None)
            if aclose is not None:
                await aclose()
        finally:
            if self._on_close is not None:
                await self._on_close()
        logger.debug(
            "Query stream closed: frames=%d skipped=%d",
            self.frames_seen,
            self.skipped_results,
        )

    async def to_list(self) -> list[Any]:
        """Drain the stream into a list."""
        return [record async for record in self]

    async def __aenter__(self) -> "AsyncQueryResults":
        return self

    async def __aexit__(
        self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object
    ) -> None:
        await self.aclose()
