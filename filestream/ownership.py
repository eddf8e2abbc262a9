from __future__ import annotations

import os
from dataclasses import dataclass

from .errors import OwnershipLookupError, OwnershipUnsupportedError

try:  # pragma: no cover - availability depends on platform
    import grp
    import pwd
except ImportError:  # pragma: no cover - non-POSIX hosts have no ownership capability
    grp = None  # type: ignore
    pwd = None  # type: ignore


@dataclass(frozen=True)
class Identity:
    """The uid/gid of the extracting process, captured once."""

    uid: int
    gid: int

    @classmethod
    def current(cls) -> "Identity":
        getuid = getattr(os, "getuid", None)
        getgid = getattr(os, "getgid", None)
        if getuid is None or getgid is None:
            return cls(uid=-1, gid=-1)
        return cls(uid=getuid(), gid=getgid())


class OwnershipLookup:
    """User/group name resolution and chown, where the host supports them."""

    def available(self) -> bool:
        return pwd is not None and grp is not None and hasattr(os, "chown")

    def require(self):
        if not self.available():
            raise OwnershipUnsupportedError("file ownership is not supported on this platform")

    def user_name(self, st: os.stat_result) -> str:
        self.require()
        try:
            return pwd.getpwuid(st.st_uid).pw_name
        except KeyError as exc:
            raise OwnershipLookupError(f"no user name for uid {st.st_uid}") from exc

    def group_name(self, st: os.stat_result) -> str:
        self.require()
        try:
            return grp.getgrgid(st.st_gid).gr_name
        except KeyError as exc:
            raise OwnershipLookupError(f"no group name for gid {st.st_gid}") from exc

    def uid(self, user: str) -> int:
        self.require()
        try:
            return pwd.getpwnam(user).pw_uid
        except KeyError as exc:
            raise OwnershipLookupError(f"unknown user: {user!r}") from exc

    def gid(self, group: str) -> int:
        self.require()
        try:
            return grp.getgrnam(group).gr_gid
        except KeyError as exc:
            raise OwnershipLookupError(f"unknown group: {group!r}") from exc

    def chown(self, path: str, uid: int, gid: int):
        """Apply ownership; -1 leaves the corresponding id unchanged."""
        self.require()
        os.chown(path, uid, gid, follow_symlinks=False)
