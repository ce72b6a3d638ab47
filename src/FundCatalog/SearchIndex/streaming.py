"""
Bounded-memory streaming reader for large JSON catalog arrays.

The upstream catalog is a single JSON array with tens of thousands of flat
objects. Instead of decoding the whole document, :class:`CatalogStream` reads
fixed-size chunks and hands them to :class:`JsonObjectScanner`, a byte-level
state machine that tracks brace depth and string/escape state and reports the
span of every complete top-level object. Each object is decoded in isolation,
so a malformed entry is logged and skipped without aborting the stream.

Scanning happens on raw bytes: every JSON structural character is ASCII and
UTF-8 continuation bytes are always >= 0x80, so multi-byte characters can never
be mistaken for braces or quotes and the reported offsets are exact byte
positions in the source. Readers use ``end_offset`` to resume from an object
boundary.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, BinaryIO, Iterator, List, Optional

__all__ = (
    "CatalogStream",
    "IngestError",
    "JsonObjectScanner",
    "ScannedObject",
    "StreamReadError",
    "StreamedObject",
    "iter_catalog_objects",
)

logger = logging.getLogger("FundCatalog.SearchIndex")

_OPEN = ord("{")
_CLOSE = ord("}")
_BACKSLASH = ord("\\")
_STRUCTURAL = re.compile(rb'[{}"]')
_STRING_SPECIAL = re.compile(rb'["\\]')


class IngestError(RuntimeError):
    """Raised when catalog ingestion cannot continue."""


class StreamReadError(IngestError):
    """Raised when the source catalog stream cannot be read."""


@dataclass(frozen=True, slots=True)
class ScannedObject:
    """Raw bytes of one complete top-level object and its absolute span."""

    data: bytes
    start_offset: int
    end_offset: int


@dataclass(frozen=True, slots=True)
class StreamedObject:
    """Decoded catalog object together with its byte span in the source."""

    payload: Any
    start_offset: int
    end_offset: int


class JsonObjectScanner:
    """Incremental boundary detector for top-level JSON objects.

    Bytes outside objects (the enclosing ``[``, separators, whitespace) are
    ignored. Strings are tracked at every depth so braces inside them never
    count.

    Examples:
        >>> scanner = JsonObjectScanner()
        >>> [obj.data for obj in scanner.feed(b'[{"a": "}"}, {"b"')]
        [b'{"a": "}"}']
        >>> [obj.data for obj in scanner.feed(b': 1}]')]
        [b'{"b": 1}']
    """

    def __init__(self, base_offset: int = 0) -> None:
        self._buffer = bytearray()
        self._base = base_offset
        self._pos = 0
        self._depth = 0
        self._in_string = False
        self._object_start: Optional[int] = None

    @property
    def buffered_bytes(self) -> int:
        return len(self._buffer)

    @property
    def in_object(self) -> bool:
        """``True`` while an object has started but not yet closed."""

        return self._depth > 0

    def feed(self, data: bytes) -> List[ScannedObject]:
        """Append ``data`` and return the objects completed by it, in order."""

        buffer = self._buffer
        buffer.extend(data)
        found: List[ScannedObject] = []
        size = len(buffer)
        pos = self._pos
        while pos < size:
            if self._in_string:
                match = _STRING_SPECIAL.search(buffer, pos)
                if match is None:
                    pos = size
                    break
                pos = match.start()
                if buffer[pos] == _BACKSLASH:
                    # Skip the escaped byte, which may not have arrived yet.
                    pos += 2
                    continue
                self._in_string = False
                pos += 1
                continue
            match = _STRUCTURAL.search(buffer, pos)
            if match is None:
                pos = size
                break
            pos = match.start()
            byte = buffer[pos]
            if byte == _OPEN:
                if self._depth == 0:
                    self._object_start = pos
                self._depth += 1
            elif byte == _CLOSE:
                if self._depth > 0:
                    self._depth -= 1
                    if self._depth == 0 and self._object_start is not None:
                        start = self._object_start
                        found.append(
                            ScannedObject(
                                data=bytes(buffer[start : pos + 1]),
                                start_offset=self._base + start,
                                end_offset=self._base + pos + 1,
                            )
                        )
                        self._object_start = None
            else:
                self._in_string = True
            pos += 1
        self._pos = pos
        self._compact()
        return found

    def _compact(self) -> None:
        if self._depth > 0 and self._object_start is not None:
            drop = self._object_start
            self._object_start = 0
        else:
            drop = min(self._pos, len(self._buffer))
        if drop:
            del self._buffer[:drop]
            self._base += drop
            self._pos -= drop


class CatalogStream:
    """Lazy, single-use sequence of objects from a JSON catalog array.

    Args:
        handle: Binary file-like object positioned at ``start_offset``.
        chunk_size: Bytes requested per read.
        start_offset: Absolute byte position of ``handle`` when iteration starts.
        source: Name used in log events.

    Raises:
        StreamReadError: If reading fails or the stream is iterated twice.

    Examples:
        >>> import io
        >>> stream = CatalogStream(io.BytesIO(b'[{"schemeCode": 1}, {"schemeCode": 2}]'))
        >>> [item.payload["schemeCode"] for item in stream]
        [1, 2]
    """

    def __init__(
        self,
        handle: BinaryIO,
        *,
        chunk_size: int = 64 * 1024,
        start_offset: int = 0,
        source: Optional[str] = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._handle = handle
        self._chunk_size = chunk_size
        self._start_offset = start_offset
        self._source = source or getattr(handle, "name", "<stream>")
        self._bytes_read = start_offset
        self._skipped = 0
        self._started = False
        self._exhausted = False

    @property
    def bytes_read(self) -> int:
        """Absolute position in the source reached by reads so far."""

        return self._bytes_read

    @property
    def skipped(self) -> int:
        """Number of malformed objects skipped so far."""

        return self._skipped

    @property
    def exhausted(self) -> bool:
        """``True`` once the end of the source has been reached."""

        return self._exhausted

    def __iter__(self) -> Iterator[StreamedObject]:
        if self._started:
            raise StreamReadError(f"Catalog stream {self._source} has already been consumed")
        self._started = True
        return self._generate()

    def _generate(self) -> Iterator[StreamedObject]:
        scanner = JsonObjectScanner(base_offset=self._start_offset)
        while True:
            chunk = self._read_chunk()
            if not chunk:
                break
            self._bytes_read += len(chunk)
            for scanned in scanner.feed(chunk):
                payload = self._decode(scanned)
                if payload is not None:
                    yield StreamedObject(
                        payload=payload,
                        start_offset=scanned.start_offset,
                        end_offset=scanned.end_offset,
                    )
        self._exhausted = True
        if scanner.in_object:
            self._skipped += 1
            logger.warning(
                "catalog-object-truncated",
                extra={"event": {"source": str(self._source), "bytes_read": self._bytes_read}},
            )

    def _read_chunk(self) -> bytes:
        try:
            chunk = self._handle.read(self._chunk_size)
        except OSError as exc:
            raise StreamReadError(
                f"Failed to read catalog stream {self._source} at byte {self._bytes_read}: {exc}"
            ) from exc
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        return chunk

    def _decode(self, scanned: ScannedObject) -> Any:
        try:
            return json.loads(scanned.data)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            self._skipped += 1
            logger.warning(
                "catalog-object-skipped",
                extra={
                    "event": {
                        "source": str(self._source),
                        "start_offset": scanned.start_offset,
                        "end_offset": scanned.end_offset,
                        "error": str(exc),
                    }
                },
            )
            return None


def iter_catalog_objects(handle: BinaryIO, *, chunk_size: int = 64 * 1024) -> Iterator[Any]:
    """Yield decoded catalog objects from ``handle`` in source order."""

    for item in CatalogStream(handle, chunk_size=chunk_size):
        yield item.payload
