from __future__ import annotations

import gzip
import io
import zlib
from typing import BinaryIO, Optional, Tuple

import lz4.frame
import zstandard

from .constants import (
    COMPRESSION_GZIP,
    COMPRESSION_LZ4,
    COMPRESSION_NONE,
    COMPRESSION_ZSTD,
    DEFAULT_GZIP_LEVEL,
    DEFAULT_ZSTD_LEVEL,
    SUPPORTED_COMPRESSION,
)
from .errors import InvalidCompressionLevel, UnexpectedEndOfStream, UnsupportedAlgorithm


GZIP_MAGIC = b"\x1f\x8b"


class Codec:
    """Compression wrapper factory for one algorithm and level.

    The name and level are validated on construction so a bad configuration
    fails before any byte reaches the sink. A level of 0 selects the
    algorithm's default; any other value is passed through to the library.
    """

    def __init__(self, name: Optional[str], level: int = 0):
        name = name or COMPRESSION_NONE
        if name != COMPRESSION_NONE and name not in SUPPORTED_COMPRESSION:
            raise UnsupportedAlgorithm(f"unsupported compression algorithm: {name!r}")
        level = int(level or 0)
        if name == COMPRESSION_GZIP and level and not 1 <= level <= 9:
            raise InvalidCompressionLevel(f"gzip level must be within 1..9, got {level}")
        self._zstd: Optional[zstandard.ZstdCompressor] = None
        if name == COMPRESSION_ZSTD:
            if level > zstandard.MAX_COMPRESSION_LEVEL:
                raise InvalidCompressionLevel(
                    f"zstd level must be at most {zstandard.MAX_COMPRESSION_LEVEL}, got {level}"
                )
            try:
                self._zstd = zstandard.ZstdCompressor(level=level or DEFAULT_ZSTD_LEVEL)
            except (ValueError, zstandard.ZstdError) as exc:
                raise InvalidCompressionLevel(f"invalid zstd level {level}: {exc}") from exc
        self.name = name
        self.level = level

    @property
    def passthrough(self) -> bool:
        return self.name == COMPRESSION_NONE

    @property
    def data_errors(self) -> Tuple[type, ...]:
        """Library exceptions raised for corrupt compressed input."""
        if self.name == COMPRESSION_GZIP:
            return (gzip.BadGzipFile, zlib.error)
        if self.name == COMPRESSION_ZSTD:
            return (zstandard.ZstdError,)
        if self.name == COMPRESSION_LZ4:
            # lz4.frame has no exception type of its own: a failing
            # LZ4F_decompress call surfaces as a bare RuntimeError
            # ("LZ4F_decompress failed with code: ERROR_..."). Only reads on
            # the decompressor are guarded with this tuple.
            return (RuntimeError,)
        return ()

    def wrap_writer(self, dst: BinaryIO) -> BinaryIO:
        """Return a compressing writer over ``dst``; closing it never closes ``dst``."""
        if self.name == COMPRESSION_NONE:
            return dst
        if self.name == COMPRESSION_GZIP:
            # mtime pinned so identical input yields identical output
            return gzip.GzipFile(
                fileobj=dst,
                mode="wb",
                compresslevel=self.level or DEFAULT_GZIP_LEVEL,
                mtime=0,
            )
        if self.name == COMPRESSION_ZSTD:
            return self._zstd.stream_writer(dst, closefd=False)
        if self.name == COMPRESSION_LZ4:
            return lz4.frame.LZ4FrameFile(dst, mode="wb", compression_level=self.level)
        raise UnsupportedAlgorithm(f"unsupported compression algorithm: {self.name!r}")

    def wrap_reader(self, src: BinaryIO) -> BinaryIO:
        """Return a decompressing reader over ``src``; closing it never closes ``src``.

        A compressed body that ends before its end-of-frame marker surfaces
        as EOFError from the returned reader, whatever the algorithm.
        """
        if self.name == COMPRESSION_NONE:
            return src
        if self.name == COMPRESSION_GZIP:
            return gzip.GzipFile(fileobj=_gzip_source(src), mode="rb")
        if self.name == COMPRESSION_ZSTD:
            return ZstdFrameReader(src)
        if self.name == COMPRESSION_LZ4:
            return lz4.frame.LZ4FrameFile(src, mode="rb")
        raise UnsupportedAlgorithm(f"unsupported compression algorithm: {self.name!r}")

    def __repr__(self) -> str:
        return f"Codec(name={self.name!r}, level={self.level})"


class _Prefixed:
    """Serve already-consumed bytes ahead of the rest of ``src``."""

    def __init__(self, prefix: bytes, src: BinaryIO):
        self.prefix = prefix
        self.src = src

    def read(self, size: int = -1) -> bytes:
        if not self.prefix:
            return self.src.read(size)
        if size is None or size < 0:
            data, self.prefix = self.prefix + self.src.read(), b""
            return data
        data, self.prefix = self.prefix[:size], self.prefix[size:]
        return data


def _gzip_source(src: BinaryIO):
    # GzipFile reports a body cut inside its two magic bytes as a bad file
    magic = b""
    while len(magic) < len(GZIP_MAGIC):
        more = src.read(len(GZIP_MAGIC) - len(magic))
        if not more:
            break
        magic += more
    if len(magic) == 1:
        raise UnexpectedEndOfStream("unexpected end of stream inside gzip header")
    return _Prefixed(magic, src)


class ZstdFrameReader(io.RawIOBase):
    """Decompressing reader for a single zstd frame.

    Running out of input before the decoder reports the end of the frame
    raises EOFError, like the stdlib decompressing readers do.
    """

    def __init__(self, src: BinaryIO, read_size: int = zstandard.DECOMPRESSION_RECOMMENDED_INPUT_SIZE):
        super().__init__()
        self.src = src
        self.read_size = read_size
        self._dobj = zstandard.ZstdDecompressor().decompressobj()
        self._buf = b""
        self._pos = 0
        # read1 returns whatever a pipe has ready
        self._read_raw = getattr(src, "read1", src.read)

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        while self._pos >= len(self._buf):
            if self._dobj.eof:
                return 0
            raw = self._read_raw(self.read_size)
            if not raw:
                raise EOFError("compressed file ended before the end-of-frame marker was reached")
            self._buf = self._dobj.decompress(raw)
            self._pos = 0
        n = min(len(b), len(self._buf) - self._pos)
        b[:n] = self._buf[self._pos : self._pos + n]
        self._pos += n
        return n
