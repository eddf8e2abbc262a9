from __future__ import annotations

import json
from dataclasses import dataclass
from typing import BinaryIO, Tuple

from .constants import (
    DELIM,
    FORMAT_VERSION,
    MAX_HEADER_SIZE,
    MAX_LENGTH_DIGITS,
    TERMINATOR_PATH,
)
from .errors import (
    CorruptStreamError,
    MalformedChunkError,
    MalformedHeaderError,
    UnexpectedEndOfStream,
)


# Record layout
#  header record: compact JSON || "\n" || 0x00
#  chunk:         ascii decimal length || 0x00 || <length> raw bytes
# A zero-length chunk terminates an entry body; a file header whose path is
# the single byte 0x00 terminates the stream.


@dataclass
class StreamHeader:
    version: int = FORMAT_VERSION
    compression: str = ""

    def pack(self) -> bytes:
        obj = {"version": self.version}
        if self.compression:
            obj["compression"] = self.compression
        return _pack_json(obj)

    @classmethod
    def unpack(cls, raw: bytes) -> "StreamHeader":
        obj = _unpack_json(raw, "stream header")
        version = obj.get("version", 0)
        compression = obj.get("compression", "")
        if isinstance(version, bool) or not isinstance(version, int):
            raise MalformedHeaderError("stream header version must be an integer")
        if compression is None:
            compression = ""
        if not isinstance(compression, str):
            raise MalformedHeaderError("stream header compression must be a string")
        return cls(version=version, compression=compression)


@dataclass
class FileHeader:
    path: str
    mode: int = 0
    user: str = ""
    group: str = ""

    @property
    def is_terminator(self) -> bool:
        return self.path == TERMINATOR_PATH

    def pack(self) -> bytes:
        obj = {"path": self.path}
        if self.user:
            obj["user"] = self.user
        if self.group:
            obj["group"] = self.group
        if self.mode:
            obj["mode"] = self.mode
        return _pack_json(obj)

    @classmethod
    def unpack(cls, raw: bytes) -> "FileHeader":
        obj = _unpack_json(raw, "file header")
        path = obj.get("path")
        if not isinstance(path, str):
            raise MalformedHeaderError("file header path must be a string")
        mode = obj.get("mode", 0)
        if isinstance(mode, bool) or not isinstance(mode, int) or mode < 0 or mode >= 1 << 32:
            raise MalformedHeaderError("file header mode must be a 32-bit unsigned integer")
        user = obj.get("user") or ""
        group = obj.get("group") or ""
        if not isinstance(user, str) or not isinstance(group, str):
            raise MalformedHeaderError("file header owner fields must be strings")
        return cls(path=path, mode=mode, user=user, group=group)


TERMINATOR = FileHeader(path=TERMINATOR_PATH)


def _pack_json(obj) -> bytes:
    text = json.dumps(obj, separators=(",", ":"), ensure_ascii=False)
    return text.encode("utf-8") + b"\n" + DELIM


def _unpack_json(raw: bytes, what: str) -> dict:
    try:
        obj = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedHeaderError(f"invalid {what}: {exc}") from exc
    if not isinstance(obj, dict):
        raise MalformedHeaderError(f"invalid {what}: expected a JSON object")
    return obj


def chunk_prefix(length: int) -> bytes:
    return str(length).encode("ascii") + DELIM


def parse_length(token: bytes) -> int:
    if not token or not token.isdigit():
        raise MalformedChunkError(f"invalid chunk length token: {token[:32]!r}")
    return int(token)


class ByteSource:
    """Unbuffered record reader over a binary stream.

    Delimited tokens are read one byte at a time so that nothing past the
    current record is consumed; this lets the plaintext stream header be read
    off the raw source before a decompressor takes it over.
    """

    def __init__(self, f: BinaryIO, data_errors: Tuple[type, ...] = ()):
        self.f = f
        self.data_errors = data_errors

    def _read(self, n: int) -> bytes:
        try:
            b = self.f.read(n)
        except EOFError as exc:
            raise UnexpectedEndOfStream(f"unexpected end of stream: {exc}") from exc
        except self.data_errors as exc:
            raise CorruptStreamError(f"corrupt compressed stream: {exc}") from exc
        return b or b""

    def read_token(self, limit: int, what: str = "record") -> bytes:
        """Read up to and excluding the next delimiter."""
        buf = bytearray()
        while True:
            b = self._read(1)
            if not b:
                raise UnexpectedEndOfStream(f"unexpected end of stream while reading {what}")
            if b == DELIM:
                return bytes(buf)
            buf += b
            if len(buf) > limit:
                return bytes(buf)

    def read_header(self) -> bytes:
        raw = self.read_token(MAX_HEADER_SIZE, "header")
        if len(raw) > MAX_HEADER_SIZE:
            raise MalformedHeaderError(f"header record exceeds {MAX_HEADER_SIZE} bytes")
        return raw

    def read_length(self) -> int:
        raw = self.read_token(MAX_LENGTH_DIGITS, "chunk length")
        if len(raw) > MAX_LENGTH_DIGITS:
            raise MalformedChunkError("chunk length token too long")
        return parse_length(raw)

    def read_some(self, n: int) -> bytes:
        """Read between 1 and ``n`` bytes; running dry is a truncation."""
        b = self._read(n)
        if not b:
            raise UnexpectedEndOfStream("unexpected end of stream inside chunk")
        return b

    def at_eof(self) -> bool:
        return not self._read(1)


def read_stream_header(f: BinaryIO) -> StreamHeader:
    return StreamHeader.unpack(ByteSource(f).read_header())
