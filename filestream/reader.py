from __future__ import annotations

import io
import logging
from typing import BinaryIO, Iterator, Optional

from .codec import Codec
from .constants import FORMAT_VERSION, MODE_DIR, MODE_TYPE
from .errors import (
    ExcessDataError,
    FilestreamError,
    NonEmptyDirectoryBodyError,
    SequencingError,
    UnexpectedEndOfStream,
    UnsupportedVersionError,
)
from .records import ByteSource, FileHeader, StreamHeader, read_stream_header
from .writer import FileOptions


logger = logging.getLogger(__name__)


class StreamReader:
    """Streaming decoder for a filestream.

    Usage follows an advance/accessor discipline::

        with StreamReader(src) as r:
            while r.advance():
                entry = r.current_entry()
                data = entry.read()
            if r.err() is not None:
                raise r.err()

    Iterating the reader does the same and raises the stored error at the end.
    Each file entry must be drained to its terminator before ``advance`` is
    called again. Any error is sticky: once ``advance`` fails it keeps
    returning False with the same error.
    """

    def __init__(self, src: BinaryIO):
        self.src = src
        self.header: Optional[StreamHeader] = None
        self.codec: Optional[Codec] = None
        self._stream: Optional[BinaryIO] = None
        self._source: Optional[ByteSource] = None
        self._entry: Optional[EntryReader] = None
        self._err: Optional[BaseException] = None
        self._ready = False
        self._finished = False
        self._entries = 0

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __iter__(self) -> Iterator["EntryReader"]:
        while self.advance():
            yield self._entry
        if self._err is not None:
            raise self._err

    def open(self):
        """Read the plaintext stream header and attach the decompressor.

        A failure here is sticky like any other: ``err()`` reports it and
        ``advance`` returns False from then on.
        """
        if self.header is not None:
            return
        if self._err is not None:
            raise self._err
        try:
            hdr = read_stream_header(self.src)
            if hdr.version > FORMAT_VERSION:
                raise UnsupportedVersionError(
                    f"filestream v{hdr.version} format not supported (max supported: v{FORMAT_VERSION})"
                )
            codec = Codec(hdr.compression)
            stream = codec.wrap_reader(self.src)
        except (FilestreamError, OSError) as exc:
            self._fail(exc)
            raise
        self.codec = codec
        self.header = hdr
        self._stream = stream
        self._source = ByteSource(self._stream, self.codec.data_errors)
        self._ready = True
        logger.debug("stream header read (version=%d, compression=%r)", hdr.version, hdr.compression or None)

    def close(self):
        self._finished = True
        self._release()

    def advance(self) -> bool:
        """Move to the next entry.

        Returns True when an entry is available through :meth:`current_entry`.
        Returns False at the clean end of the stream (``err()`` is None) or on
        failure (``err()`` holds the error). The stream header is read here if
        :meth:`open` was not called first.
        """
        self._entry = None
        if self._err is not None or self._finished:
            return False
        try:
            if self.header is None:
                self.open()
            if not self._ready:
                raise SequencingError("requested next entry before finishing the previous one")
            self._ready = False
            return self._advance()
        except (FilestreamError, OSError) as exc:
            self._entry = None
            self._fail(exc)
            return False

    def current_entry(self) -> Optional["EntryReader"]:
        return self._entry

    def err(self) -> Optional[BaseException]:
        return self._err

    @property
    def finished(self) -> bool:
        return self._finished and self._err is None

    # internals
    def _advance(self) -> bool:
        hdr = FileHeader.unpack(self._source.read_header())
        if hdr.is_terminator:
            self._finished = True
            if not self._source.at_eof():
                raise ExcessDataError("excess data after stream terminator")
            self._release()
            logger.debug("stream terminator reached after %d entries", self._entries)
            return False
        self._entries += 1
        entry = EntryReader(self, hdr)
        if entry.is_dir():
            # directory bodies must be a lone terminator chunk
            if self._source.read_length() != 0:
                raise NonEmptyDirectoryBodyError(f"expected empty body for directory {hdr.path!r}")
            entry._finish()
        self._entry = entry
        return True

    def _fail(self, exc: BaseException):
        self._err = exc
        logger.debug("stream reader failed: %s", exc)

    def _release(self):
        stream, self._stream = self._stream, None
        if stream is None or self.codec is None or self.codec.passthrough:
            return
        try:
            stream.close()
        except EOFError as exc:
            raise UnexpectedEndOfStream(f"unexpected end of stream: {exc}") from exc


class EntryReader(io.RawIOBase):
    """Read endpoint for the body of the current entry.

    Reads never cross a chunk boundary. The zero-length terminator chunk is
    reported as end of file (``b""``), which re-arms the parent reader for
    ``advance``.
    """

    def __init__(self, reader: StreamReader, header: FileHeader):
        super().__init__()
        self.reader = reader
        self.header = header
        self._remaining = 0
        self._done = False

    @property
    def path(self) -> str:
        return self.header.path

    @property
    def mode(self) -> int:
        return self.header.mode

    @property
    def done(self) -> bool:
        return self._done

    def is_dir(self) -> bool:
        return bool(self.header.mode & MODE_DIR)

    def is_regular(self) -> bool:
        return not self.header.mode & MODE_TYPE

    def options(self) -> FileOptions:
        return FileOptions(permissions=self.header.mode, user=self.header.user, group=self.header.group)

    def readable(self) -> bool:
        return True

    def readinto(self, b) -> int:
        if self._done:
            return 0
        if self.reader._err is not None:
            raise self.reader._err
        if len(b) == 0:
            return 0
        source = self.reader._source
        try:
            if self._remaining == 0:
                n = source.read_length()
                if n == 0:
                    self._finish()
                    return 0
                self._remaining = n
            data = source.read_some(min(len(b), self._remaining))
        except (FilestreamError, OSError) as exc:
            self.reader._fail(exc)
            raise
        n = len(data)
        b[:n] = data
        self._remaining -= n
        return n

    def _finish(self):
        self._done = True
        self.reader._ready = True

    def __repr__(self) -> str:
        return f"EntryReader(path={self.path!r}, mode={self.header.mode:#o})"
