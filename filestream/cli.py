from __future__ import annotations

import argparse
import contextlib
import logging
import os
import sys
import time
from typing import BinaryIO, List, Optional
from urllib.parse import urlparse

import requests

from filestream.constants import COPY_BUFFER_SIZE, SUPPORTED_COMPRESSION
from filestream.errors import FilestreamError
from filestream.fsutil import DecodeOptions, EncodeOptions, decode_stream, encode_files
from filestream.reader import StreamReader
from filestream.writer import StreamOptions, StreamWriter


HTTP_TIMEOUT = 60


def open_source(stack: contextlib.ExitStack, spec: str) -> BinaryIO:
    """Open a stream source: "-" (stdin), a local path, file:// or http(s):// URL.

    Args:
        stack: Owns whatever gets opened here.
        spec: Source specification from the command line.
    """
    if spec == "-":
        return sys.stdin.buffer
    u = urlparse(spec)
    if u.scheme in ("http", "https"):
        resp = stack.enter_context(requests.get(spec, stream=True, timeout=HTTP_TIMEOUT))
        if resp.status_code != 200:
            raise RuntimeError(f"failed to download: {resp.status_code} {resp.reason}")
        resp.raw.decode_content = True
        return resp.raw
    if u.scheme == "file":
        return stack.enter_context(open(u.path, "rb"))
    if u.scheme and len(u.scheme) > 1:
        raise ValueError(f"unsupported url scheme: {u.scheme}")
    return stack.enter_context(open(spec, "rb"))


def open_sink(stack: contextlib.ExitStack, spec: str) -> BinaryIO:
    """Open a stream sink: "-" (stdout), a local path or a file:// URL."""
    if spec == "-":
        return sys.stdout.buffer
    u = urlparse(spec)
    path = spec
    if u.scheme == "file":
        path = u.path
    elif u.scheme and len(u.scheme) > 1:
        raise ValueError(f"unsupported url scheme: {u.scheme}")
    fd = os.open(path, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, 0o640)
    return stack.enter_context(os.fdopen(fd, "wb"))


def cmd_encode(
    inputs: List[str],
    *,
    stream: str = "-",
    compression: Optional[str] = None,
    level: int = 0,
    base: str = ".",
    perms: bool = False,
    users: bool = False,
    groups: bool = False,
    quiet: bool = False,
) -> bool:
    """Encode files and directories into a stream.

    Args:
        inputs: Paths to encode, in order.
        stream: Destination ("-" for stdout).
        compression: Compression algorithm, or None.
        level: Compression level (0 = algorithm default).
        base: Stream paths are relative to this directory.
        perms: Include permission bits.
        users: Include owning user names.
        groups: Include owning group names.
    """
    t0 = time.time()
    count = 0
    with contextlib.ExitStack() as stack:
        sink = open_sink(stack, stream)
        with StreamWriter(sink, StreamOptions(compression=compression, compression_level=level)) as w:
            for p in inputs:
                n = encode_files(
                    w,
                    p,
                    EncodeOptions(
                        base=base,
                        include_permissions=perms,
                        include_user=users,
                        include_group=groups,
                    ),
                )
                count += n
                if not quiet:
                    # stdout may be the stream itself
                    print(f"  encoded: {p} ({n} entries)", file=sys.stderr)
        sink.flush()
    if not quiet:
        dt = max(0.000001, time.time() - t0)
        print(f"Done: {count} entries in {dt:.1f}s", file=sys.stderr)
    return True


def cmd_decode(
    *,
    stream: str = "-",
    base: str = ".",
    perms: bool = False,
    users: bool = False,
    groups: bool = False,
    quiet: bool = False,
) -> bool:
    """Decode a stream onto the filesystem below ``base``."""
    t0 = time.time()
    with contextlib.ExitStack() as stack:
        src = open_source(stack, stream)
        with StreamReader(src) as r:
            count = decode_stream(
                r,
                DecodeOptions(
                    base=base,
                    preserve_permissions=perms,
                    preserve_user=users,
                    preserve_group=groups,
                ),
            )
    if not quiet:
        dt = max(0.000001, time.time() - t0)
        print(f"Done: decoded {count} entries in {dt:.1f}s")
    return True


def cmd_list(*, stream: str = "-") -> bool:
    """List stream entries with body sizes, draining each body."""
    with contextlib.ExitStack() as stack:
        src = open_source(stack, stream)
        with StreamReader(src) as r:
            for entry in r:
                n = sum(len(b) for b in iter(lambda: entry.read(COPY_BUFFER_SIZE), b""))
                if entry.is_regular():
                    print(f"{entry.path} ({n} bytes)")
                elif entry.is_dir():
                    print(f"{entry.path} (dir)")
                else:
                    print(f"{entry.path} (special)")
    return True


def _add_owner_flags(ap: argparse.ArgumentParser, verb: str):
    ap.add_argument("--perms", action="store_true", help=f"{verb} permission bits")
    ap.add_argument("--perm-user", dest="perm_user", action="store_true", help=f"{verb} owning user")
    ap.add_argument("--perm-group", dest="perm_group", action="store_true", help=f"{verb} owning group")


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="filestream",
        description="Stream bundles of files over a single byte stream",
    )
    ap.add_argument("--verbose", "-v", action="store_true", help="enable debug logging")
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_encode = sub.add_parser("encode", help="Encode files into a stream")
    ap_encode.add_argument("inputs", nargs="+", help="Input files/directories")
    ap_encode.add_argument("-s", "--stream", default="-", help="Stream destination (default: stdout)")
    ap_encode.add_argument("-z", "--compression", choices=list(SUPPORTED_COMPRESSION), help="Compression algorithm")
    ap_encode.add_argument("-l", "--level", type=int, default=0, help="Compression level (0 = default)")
    ap_encode.add_argument("-C", "--base", default=".", help="Base directory for stream paths")
    ap_encode.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")
    _add_owner_flags(ap_encode, "include")

    ap_decode = sub.add_parser("decode", help="Decode a stream onto the filesystem")
    ap_decode.add_argument("-s", "--stream", default="-", help="Stream source: -, path, file:// or http(s):// URL")
    ap_decode.add_argument("-C", "--base", default=".", help="Base directory to decode into")
    ap_decode.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")
    _add_owner_flags(ap_decode, "preserve")

    ap_list = sub.add_parser("list", help="List stream entries and body sizes")
    ap_list.add_argument("-s", "--stream", default="-", help="Stream source: -, path, file:// or http(s):// URL")

    args = ap.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr)
    try:
        if args.cmd == "encode":
            cmd_encode(
                args.inputs,
                stream=args.stream,
                compression=args.compression,
                level=args.level,
                base=args.base,
                perms=args.perms,
                users=args.perm_user,
                groups=args.perm_group,
                quiet=args.quiet,
            )
        elif args.cmd == "decode":
            cmd_decode(
                stream=args.stream,
                base=args.base,
                perms=args.perms,
                users=args.perm_user,
                groups=args.perm_group,
                quiet=args.quiet,
            )
        elif args.cmd == "list":
            cmd_list(stream=args.stream)
        else:
            raise RuntimeError("Unknown command")
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except requests.RequestException as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (FilestreamError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
