"""
filestream: stream bundles of files over a single byte stream.

Features:

- Chunked encoding: file bodies are written as length-prefixed chunks, so data
  can be streamed without knowing its total size in advance.
- Self-describing: a plaintext stream header carries the format version and
  the compression algorithm; everything after it may be compressed with gzip,
  zstd or lz4.
- Strict sequencing: one entry at a time on both ends, and a reserved
  terminator record so a truncated stream is never mistaken for a clean end.
- Filesystem helpers to encode a directory tree and decode a stream back onto
  disk, with optional permission and ownership preservation.

The programmatic API lives in filestream.writer (StreamWriter) and
filestream.reader (StreamReader); the CLI functions in filestream.cli
(cmd_encode/cmd_decode/cmd_list) take normal parameters.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "codec",
    "records",
    "writer",
    "reader",
    "fsutil",
    "ownership",
    "pathutil",
    "cli",
    "errors",
]
