from __future__ import annotations

import io
import unittest

import zstandard

from filestream.codec import Codec, ZstdFrameReader
from filestream.constants import MODE_DIR
from filestream.errors import (
    ConstructionError,
    CorruptStreamError,
    InvalidCompressionLevel,
    MalformedChunkError,
    MalformedHeaderError,
    UnexpectedEndOfStream,
    UnsupportedAlgorithm,
)
from filestream.records import (
    TERMINATOR,
    ByteSource,
    FileHeader,
    StreamHeader,
    chunk_prefix,
    parse_length,
    read_stream_header,
)


class HeaderRecordTests(unittest.TestCase):
    def test_stream_header_layout(self):
        self.assertEqual(StreamHeader().pack(), b'{"version":0}\n\x00')
        self.assertEqual(StreamHeader(compression="zstd").pack(), b'{"version":0,"compression":"zstd"}\n\x00')

    def test_file_header_omits_empty_fields(self):
        self.assertEqual(FileHeader(path="a").pack(), b'{"path":"a"}\n\x00')
        full = FileHeader(path="d", mode=MODE_DIR | 0o755, user="usr", group="grp")
        raw = full.pack()
        self.assertEqual(raw, b'{"path":"d","user":"usr","group":"grp","mode":2147484141}\n\x00')
        self.assertEqual(FileHeader.unpack(raw[:-1]), full)

    def test_terminator(self):
        self.assertEqual(TERMINATOR.pack(), b'{"path":"\\u0000"}\n\x00')
        hdr = FileHeader.unpack(b'{"path":"\\u0000"}\n')
        self.assertTrue(hdr.is_terminator)
        self.assertFalse(FileHeader(path="/").is_terminator)

    def test_unknown_fields_ignored(self):
        hdr = FileHeader.unpack(b'{"path":"x","mtime":12,"mode":420}')
        self.assertEqual(hdr, FileHeader(path="x", mode=0o644))

    def test_rejects_bad_fields(self):
        bad = [
            b'{"mode":1}',
            b'{"path":7}',
            b'{"path":"x","mode":"644"}',
            b'{"path":"x","mode":-1}',
            b'{"path":"x","mode":4294967296}',
            b'{"path":"x","user":3}',
            b"[]",
            b"\xff\xfe",
        ]
        for raw in bad:
            with self.subTest(raw=raw):
                with self.assertRaises(MalformedHeaderError):
                    FileHeader.unpack(raw)

    def test_read_stream_header_stops_at_delimiter(self):
        src = io.BytesIO(b'{"version":0,"compression":"gzip"}\n\x00\x1f\x8b')
        hdr = read_stream_header(src)
        self.assertEqual(hdr, StreamHeader(version=0, compression="gzip"))
        self.assertEqual(src.read(), b"\x1f\x8b")


class ChunkRecordTests(unittest.TestCase):
    def test_prefix(self):
        self.assertEqual(chunk_prefix(0), b"0\x00")
        self.assertEqual(chunk_prefix(65536), b"65536\x00")

    def test_parse_length(self):
        self.assertEqual(parse_length(b"0"), 0)
        self.assertEqual(parse_length(b"00012"), 12)
        for token in (b"", b"-1", b"+5", b"1a", b" 1", b"0x10"):
            with self.subTest(token=token):
                with self.assertRaises(MalformedChunkError):
                    parse_length(token)

    def test_oversized_length_token(self):
        src = ByteSource(io.BytesIO(b"1" * 64 + b"\x00"))
        with self.assertRaises(MalformedChunkError):
            src.read_length()

    def test_source_reports_truncation(self):
        src = ByteSource(io.BytesIO(b"5\x00ab"))
        self.assertEqual(src.read_length(), 5)
        self.assertEqual(src.read_some(5), b"ab")
        with self.assertRaises(UnexpectedEndOfStream):
            src.read_some(3)
        with self.assertRaises(UnexpectedEndOfStream):
            src.read_length()
        self.assertTrue(src.at_eof())

    def test_source_maps_codec_errors(self):
        class _Broken(io.RawIOBase):
            def readable(self):
                return True

            def readinto(self, b):
                raise ValueError("bad block")

        src = ByteSource(_Broken(), (ValueError,))
        with self.assertRaises(CorruptStreamError):
            src.read_header()


class CodecTests(unittest.TestCase):
    def test_unsupported_algorithm(self):
        with self.assertRaises(UnsupportedAlgorithm):
            Codec("brotli")
        with self.assertRaises(ConstructionError):
            Codec("xz", 3)

    def test_gzip_level_range(self):
        for level in (-1, 10, 12):
            with self.subTest(level=level):
                with self.assertRaises(InvalidCompressionLevel):
                    Codec("gzip", level)
        self.assertEqual(Codec("gzip", 9).level, 9)
        self.assertEqual(Codec("gzip").level, 0)

    def test_zstd_level_range(self):
        with self.assertRaises(InvalidCompressionLevel):
            Codec("zstd", zstandard.MAX_COMPRESSION_LEVEL + 1)
        with self.assertRaises(InvalidCompressionLevel):
            Codec("zstd", 100)
        self.assertEqual(Codec("zstd", zstandard.MAX_COMPRESSION_LEVEL).level, zstandard.MAX_COMPRESSION_LEVEL)

    def test_zstd_reader_requires_end_of_frame(self):
        payload = b"frame body " * 200
        frame = zstandard.ZstdCompressor().compress(payload)
        self.assertEqual(ZstdFrameReader(io.BytesIO(frame)).read(), payload)
        for cut in (1, len(frame) // 2, len(frame) - 1):
            with self.subTest(cut=cut):
                with self.assertRaises(EOFError):
                    ZstdFrameReader(io.BytesIO(frame[:cut])).read()

    def test_gzip_reader_cut_inside_magic(self):
        with self.assertRaises(UnexpectedEndOfStream):
            Codec("gzip").wrap_reader(io.BytesIO(b"\x1f"))
        # an empty body is left for the record reader to report
        self.assertEqual(Codec("gzip").wrap_reader(io.BytesIO(b"")).read(), b"")

    def test_passthrough(self):
        buf = io.BytesIO()
        for name in (None, ""):
            c = Codec(name)
            self.assertTrue(c.passthrough)
            self.assertIs(c.wrap_writer(buf), buf)
            self.assertIs(c.wrap_reader(buf), buf)
            self.assertEqual(c.data_errors, ())

    def test_wrappers_leave_sink_open(self):
        payload = b"filestream " * 500
        for name in ("gzip", "zstd", "lz4"):
            with self.subTest(name=name):
                c = Codec(name)
                buf = io.BytesIO()
                w = c.wrap_writer(buf)
                w.write(payload)
                w.close()
                self.assertFalse(buf.closed)
                self.assertLess(len(buf.getvalue()), len(payload))

                buf.seek(0)
                r = c.wrap_reader(buf)
                self.assertEqual(r.read(), payload)
                r.close()
                self.assertFalse(buf.closed)

    def test_gzip_output_is_deterministic(self):
        outs = []
        for _ in range(2):
            buf = io.BytesIO()
            w = Codec("gzip").wrap_writer(buf)
            w.write(b"same input")
            w.close()
            outs.append(buf.getvalue())
        self.assertEqual(outs[0], outs[1])


if __name__ == "__main__":
    unittest.main()
