from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import BinaryIO, Optional

from .codec import Codec
from .constants import DELIM, FORMAT_VERSION, MODE_DIR
from .errors import (
    HeaderWriteError,
    IllegalPathError,
    SequencingError,
    StreamClosedError,
    WriteInterrupted,
)
from .records import TERMINATOR, FileHeader, StreamHeader, chunk_prefix


logger = logging.getLogger(__name__)


@dataclass
class StreamOptions:
    # "gzip", "zstd" or "lz4"; empty for no compression
    compression: Optional[str] = None
    # 0 selects the algorithm default
    compression_level: int = 0


@dataclass
class FileOptions:
    # Mode word: permission bits plus type bits (MODE_DIR etc.)
    permissions: int = 0
    user: str = ""
    group: str = ""


class StreamWriter:
    """Streaming encoder for a filestream.

    Entries are written one at a time: ``open_file`` hands out an
    :class:`EntryWriter` which must be closed before the next entry is
    opened. Each non-empty ``write`` on an entry becomes exactly one chunk on
    the wire, so callers control chunk granularity. ``close`` terminates the
    stream and finalizes the compression wrapper.
    """

    def __init__(self, dst: BinaryIO, options: Optional[StreamOptions] = None):
        self.dst = dst
        self.options = options or StreamOptions()
        self.codec = Codec(self.options.compression, self.options.compression_level)
        self._out: Optional[BinaryIO] = None
        self._closer: Optional[BinaryIO] = None
        self._active: Optional[EntryWriter] = None
        self._entry_no = 0
        self._closed = False
        self._corrupted = False

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self.abort()
        elif not self._closed:
            self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def corrupted(self) -> bool:
        return self._corrupted

    def open(self):
        """Write the plaintext stream header and attach the compression wrapper."""
        if self._out is not None:
            return
        if self._closed:
            raise StreamClosedError("filestream closed")
        hdr = StreamHeader(version=FORMAT_VERSION, compression=self.codec.name)
        try:
            self.dst.write(hdr.pack())
            if not self.codec.passthrough:
                # the header must reach the sink ahead of any compressed byte
                self.dst.flush()
        except OSError as exc:
            self._closed = True
            self._corrupted = True
            raise HeaderWriteError(f"failed to write stream header: {exc}") from exc
        try:
            self._out = self.codec.wrap_writer(self.dst)
        except OSError as exc:
            self._closed = True
            self._corrupted = True
            raise HeaderWriteError(f"failed to start {self.codec.name} compression: {exc}") from exc
        if not self.codec.passthrough:
            self._closer = self._out
        logger.debug("stream header written (compression=%r)", self.codec.name or None)

    def open_file(self, path: str, options: Optional[FileOptions] = None) -> "EntryWriter":
        """Start a new file entry. The header is emitted on first write or close."""
        self._check_open()
        if self._active is not None:
            raise SequencingError("attempted to open an entry before finishing the previous one")
        if DELIM.decode("ascii") in path:
            raise IllegalPathError(f"illegal null character in entry path: {path!r}")
        opts = options or FileOptions()
        self._entry_no += 1
        entry = EntryWriter(
            self,
            FileHeader(path=path, mode=opts.permissions, user=opts.user, group=opts.group),
            self._entry_no,
        )
        self._active = entry
        logger.debug("entry %d opened: %s", self._entry_no, path)
        return entry

    def open_directory(self, path: str, options: Optional[FileOptions] = None) -> None:
        """Write a directory entry; directories always have an empty body."""
        opts = options or FileOptions()
        opts = FileOptions(permissions=opts.permissions | MODE_DIR, user=opts.user, group=opts.group)
        self.open_file(path, opts).close()

    def close(self):
        """Terminate the stream.

        Raises:
            WriteInterrupted: an entry was still open; the output is left
                truncated and must be treated as corrupt.
        """
        if self._closed:
            raise StreamClosedError("filestream already closed")
        if self._out is None:
            self.open()
        self._closed = True
        if self._active is not None:
            self._corrupted = True
            logger.warning("stream closed with entry %r still open; output is truncated", self._active.path)
            raise WriteInterrupted(f"write interrupted: entry {self._active.path!r} was not closed")
        try:
            self._out.write(TERMINATOR.pack())
            self._out.flush()
            if self._closer is not None:
                self._closer.close()
                self._closer = None
                self.dst.flush()
        except OSError:
            self._corrupted = True
            raise
        logger.debug("stream terminated after %d entries", self._entry_no)

    def abort(self):
        """Mark the stream closed without writing the terminator."""
        if self._closed:
            return
        self._closed = True
        self._corrupted = True
        logger.debug("stream aborted after %d entries", self._entry_no)

    # internals
    def _check_open(self):
        if self._closed:
            raise StreamClosedError("filestream closed")
        if self._out is None:
            self.open()

    def _check_entry(self, entry: "EntryWriter"):
        self._check_open()
        if self._active is not entry:
            raise SequencingError("writing to an entry that has already been closed")

    def _emit(self, *parts: bytes):
        try:
            for p in parts:
                self._out.write(p)
        except OSError:
            self._closed = True
            self._corrupted = True
            raise

    def _start_entry(self, entry: "EntryWriter"):
        self._check_entry(entry)
        self._emit(entry.header.pack())

    def _write_chunk(self, entry: "EntryWriter", data: bytes) -> int:
        self._check_entry(entry)
        if data:
            self._emit(chunk_prefix(len(data)), data)
        else:
            self._emit(chunk_prefix(0))
        return len(data)

    def _finish_entry(self, entry: "EntryWriter"):
        self._active = None
        logger.debug("entry %d closed: %s", entry.entry_no, entry.path)


class EntryWriter:
    """Write endpoint for the body of a single entry."""

    def __init__(self, stream: StreamWriter, header: FileHeader, entry_no: int):
        self.stream = stream
        self.header = header
        self.entry_no = entry_no
        self._started = False
        self._closed = False

    @property
    def path(self) -> str:
        return self.header.path

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        # leave a failed entry open so closing the stream reports the interruption
        if exc_type is None:
            self.close()

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        data = bytes(data)
        if self._closed:
            self.stream._check_open()
            raise SequencingError("writing to an entry that has already been closed")
        if not self._started:
            self.stream._start_entry(self)
            self._started = True
        if not data:
            return 0
        return self.stream._write_chunk(self, data)

    def flush(self):
        pass

    def close(self):
        if self._closed:
            self.stream._check_open()
            raise SequencingError("entry already closed")
        if not self._started:
            self.write(b"")
        self.stream._write_chunk(self, b"")
        self._closed = True
        self.stream._finish_entry(self)
