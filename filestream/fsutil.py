"""
Filesystem helpers around the stream core.

encode_files walks a tree into a StreamWriter; decode_stream materializes a
StreamReader onto disk. Both are thin: everything about the wire format lives
in writer.py/reader.py.
"""
from __future__ import annotations

import logging
import os
import shutil
import stat
from dataclasses import dataclass, field
from typing import Iterator, Optional, Tuple

from .constants import (
    COPY_BUFFER_SIZE,
    DEFAULT_PERMISSIONS,
    DIR_EXTRA_PERMISSIONS,
    MODE_CHAR_DEVICE,
    MODE_DEVICE,
    MODE_DIR,
    MODE_NAMED_PIPE,
    MODE_PERM,
    MODE_SETGID,
    MODE_SETUID,
    MODE_SOCKET,
    MODE_STICKY,
    MODE_SYMLINK,
)
from .errors import UnsupportedFileTypeError
from .ownership import Identity, OwnershipLookup
from .pathutil import join_under, stream_path
from .reader import EntryReader, StreamReader
from .writer import FileOptions, StreamWriter


logger = logging.getLogger(__name__)

_SPECIAL_BITS = MODE_SETUID | MODE_SETGID | MODE_STICKY


def mode_from_stat(st_mode: int) -> int:
    """Convert a POSIX st_mode into a stream mode word."""
    mode = st_mode & MODE_PERM
    if st_mode & stat.S_ISUID:
        mode |= MODE_SETUID
    if st_mode & stat.S_ISGID:
        mode |= MODE_SETGID
    if st_mode & stat.S_ISVTX:
        mode |= MODE_STICKY
    if stat.S_ISDIR(st_mode):
        mode |= MODE_DIR
    elif stat.S_ISLNK(st_mode):
        mode |= MODE_SYMLINK
    elif stat.S_ISFIFO(st_mode):
        mode |= MODE_NAMED_PIPE
    elif stat.S_ISSOCK(st_mode):
        mode |= MODE_SOCKET
    elif stat.S_ISBLK(st_mode):
        mode |= MODE_DEVICE
    elif stat.S_ISCHR(st_mode):
        mode |= MODE_DEVICE | MODE_CHAR_DEVICE
    return mode


def perm_from_mode(mode: int) -> int:
    """Convert a stream mode word into POSIX permission bits for chmod/open."""
    perm = mode & MODE_PERM
    if mode & MODE_SETUID:
        perm |= stat.S_ISUID
    if mode & MODE_SETGID:
        perm |= stat.S_ISGID
    if mode & MODE_STICKY:
        perm |= stat.S_ISVTX
    return perm


@dataclass
class EncodeOptions:
    # Paths in the stream are relative to base; defaults to the encoded path.
    # A base of "/" keeps absolute paths.
    base: str = ""
    include_permissions: bool = False
    # Owner lookups fail hard when requested and unavailable
    include_user: bool = False
    include_group: bool = False
    lookup: Optional[OwnershipLookup] = None


def _walk(path: str) -> Iterator[Tuple[str, os.stat_result]]:
    # lexical pre-order, symlinks are not followed
    st = os.lstat(path)
    yield path, st
    if stat.S_ISDIR(st.st_mode):
        for name in sorted(os.listdir(path)):
            yield from _walk(os.path.join(path, name))


def encode_files(dst: StreamWriter, path: str, options: Optional[EncodeOptions] = None) -> int:
    """Encode the tree at ``path`` into ``dst``. Returns the number of entries written."""
    opts = options or EncodeOptions()
    path = os.path.abspath(path)
    base = os.path.abspath(opts.base) if opts.base else path
    lookup = opts.lookup or OwnershipLookup()
    count = 0
    for fs_path, st in _walk(path):
        name = stream_path(base, fs_path)
        fo = FileOptions()
        if opts.include_permissions:
            fo.permissions = mode_from_stat(st.st_mode)
        if opts.include_user:
            fo.user = lookup.user_name(st)
        if opts.include_group:
            fo.group = lookup.group_name(st)

        if stat.S_ISDIR(st.st_mode):
            dst.open_directory(name, fo)
        elif stat.S_ISREG(st.st_mode):
            fw = dst.open_file(name, fo)
            with open(fs_path, "rb") as f:
                shutil.copyfileobj(f, fw, COPY_BUFFER_SIZE)
            fw.close()
        else:
            raise UnsupportedFileTypeError(f"unsupported special file: {fs_path}")
        count += 1
        logger.debug("encoded %s as %s", fs_path, name)
    return count


@dataclass
class DecodeOptions:
    # Base directory stream paths resolve under; defaults to the working directory
    base: str = ""
    preserve_permissions: bool = False
    preserve_user: bool = False
    preserve_group: bool = False
    # Fields not preserved take these defaults; preserved fields fall back to
    # them where the stream carries nothing. Permissions default to 0o640.
    default_options: FileOptions = field(default_factory=FileOptions)
    identity: Optional[Identity] = None
    lookup: Optional[OwnershipLookup] = None


def _resolve_owner(entry: EntryReader, opts: DecodeOptions, identity: Identity, lookup: OwnershipLookup) -> Tuple[int, int]:
    fo = entry.options()
    user = (fo.user if opts.preserve_user else "") or opts.default_options.user
    group = (fo.group if opts.preserve_group else "") or opts.default_options.group
    uid = lookup.uid(user) if user else -1
    gid = lookup.gid(group) if group else -1
    # ids matching the extracting process are left unchanged
    if uid == identity.uid:
        uid = -1
    if gid == identity.gid:
        gid = -1
    return uid, gid


def decode_stream(src: StreamReader, options: Optional[DecodeOptions] = None) -> int:
    """Write every entry of ``src`` below ``options.base``. Returns the entry count.

    Raises the reader's error if the stream did not end cleanly.
    """
    opts = options or DecodeOptions()
    base = opts.base or os.getcwd()
    default_perm = opts.default_options.permissions & MODE_PERM or DEFAULT_PERMISSIONS
    identity = opts.identity or Identity.current()
    lookup = opts.lookup or OwnershipLookup()
    if opts.preserve_user or opts.preserve_group:
        lookup.require()

    count = 0
    while src.advance():
        entry = src.current_entry()
        dst = join_under(base, entry.path)

        mode = entry.mode
        if not opts.preserve_permissions:
            mode &= ~(MODE_PERM | _SPECIAL_BITS)
        if mode & MODE_PERM == 0:
            mode |= default_perm
            if mode & MODE_DIR:
                mode |= DIR_EXTRA_PERMISSIONS

        if entry.is_dir():
            os.makedirs(dst, mode=perm_from_mode(mode), exist_ok=True)
        elif entry.is_regular():
            os.makedirs(os.path.dirname(dst) or ".", exist_ok=True)
            fd = os.open(dst, os.O_CREAT | os.O_WRONLY | os.O_TRUNC, perm_from_mode(mode))
            with os.fdopen(fd, "wb") as f:
                shutil.copyfileobj(entry, f, COPY_BUFFER_SIZE)
        else:
            raise UnsupportedFileTypeError(f"cannot decode special file: {entry.path}")

        uid, gid = _resolve_owner(entry, opts, identity, lookup)
        if uid != -1 or gid != -1:
            lookup.chown(dst, uid, gid)
        count += 1
        logger.debug("decoded %s to %s", entry.path, dst)

    err = src.err()
    if err is not None:
        raise err
    return count
