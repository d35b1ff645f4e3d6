"""Atomic, idempotent commit of computed artifacts to the filesystem.

Every replacement goes through a sibling temp file that is created with its
final ownership and mode, filled, flushed and then renamed over the target, so
readers only ever observe the old or the new content. The temp name is
deterministic (``<name>.new``); an orphan left by a crash between write and
rename is simply overwritten by the next pass.
"""

from __future__ import annotations

import errno
import os
import shutil
import stat
from dataclasses import dataclass
from enum import StrEnum
from logging import getLogger
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Collection, MutableSet

log = getLogger(__name__)

TEMP_SUFFIX = ".new"


class CommitResult(StrEnum):
    CHANGED = "changed"
    UNCHANGED = "unchanged"

    @property
    def changed(self) -> bool:
        return self is CommitResult.CHANGED


@dataclass(frozen=True, slots=True, kw_only=True)
class ManagedArtifact:
    """One file under reconciler control; ``content=None`` means it must not exist."""

    path: Path
    content: bytes | None
    uid: int
    gid: int
    mode: int
    backup: Path | None = None

    @property
    def absent(self) -> bool:
        return self.content is None


def temp_path_for(path: Path) -> Path:
    return path.with_name(path.name + TEMP_SUFFIX)


def _lstat(path: Path) -> os.stat_result | None:
    try:
        return os.lstat(path)
    except FileNotFoundError:
        return None


def _metadata_matches(current: os.stat_result, *, uid: int, gid: int, mode: int) -> bool:
    return (
        current.st_uid == uid
        and current.st_gid == gid
        and stat.S_IMODE(current.st_mode) == mode
    )


def _content_equals(path: Path, content: bytes, current: os.stat_result) -> bool:
    if current.st_size != len(content):
        return False
    return path.read_bytes() == content


def _fsync_directory(directory: Path) -> None:
    fd = os.open(directory, os.O_RDONLY | os.O_DIRECTORY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def _write_secure(path: Path, content: bytes, *, uid: int, gid: int, mode: int) -> None:
    """Create ``path`` with final ownership and mode before any content lands in it."""

    path.unlink(missing_ok=True)
    fd = os.open(
        path,
        os.O_WRONLY | os.O_CREAT | os.O_EXCL | os.O_NOFOLLOW | os.O_CLOEXEC,
        0o600,
    )
    try:
        created = os.fstat(fd)
        if created.st_uid != uid or created.st_gid != gid:
            os.fchown(fd, uid, gid)
        # chown clears set-id bits, so the mode goes on afterwards
        os.fchmod(fd, mode)
        view = memoryview(content)
        while view:
            written = os.write(fd, view)
            view = view[written:]
        os.fsync(fd)
    except BaseException:
        path.unlink(missing_ok=True)
        raise
    finally:
        os.close(fd)


def _write_backup(
    path: Path,
    backup: Path,
    current: os.stat_result,
    *,
    uid: int,
    gid: int,
    mode: int,
) -> None:
    previous = path.read_bytes()
    if len(previous) != current.st_size:
        raise OSError(
            errno.EIO,
            f"File size changed while copying: {current.st_size} != {len(previous)}",
            str(path),
        )
    backup_temp = temp_path_for(backup)
    _write_secure(backup_temp, previous, uid=uid, gid=gid, mode=mode)
    os.utime(backup_temp, ns=(current.st_atime_ns, current.st_mtime_ns))
    log.debug("mv %s %s", backup_temp, backup)
    os.replace(backup_temp, backup)


def _remove(path: Path, current: os.stat_result | None) -> CommitResult:
    if current is None:
        return CommitResult.UNCHANGED
    if stat.S_ISDIR(current.st_mode):
        raise IsADirectoryError(errno.EISDIR, "Refusing to remove directory artifact", str(path))
    path.unlink()
    log.info("Removed %s", path)
    return CommitResult.CHANGED


def commit_file(
    path: Path,
    content: bytes | None,
    *,
    uid: int,
    gid: int,
    mode: int,
    backup: Path | None = None,
    relabel: MutableSet[Path] | None = None,
) -> CommitResult:
    """Make ``path`` hold exactly ``content`` with the given ownership and mode.

    Returns ``UNCHANGED`` without writing anything when the file already matches.
    When ``backup`` is given and the content differs, the previous content is
    copied there (through its own temp file) before the target is replaced; a
    non-regular file in the way is renamed to ``backup`` instead of failing.
    Paths that were replaced are added to ``relabel`` for a later context restore.
    I/O errors propagate to the caller.
    """

    path = Path(path)
    current = _lstat(path)
    if content is None:
        return _remove(path, current)

    if current is not None and not stat.S_ISREG(current.st_mode):
        if backup is None:
            raise FileExistsError(errno.EEXIST, "Exists and is not a regular file", str(path))
        log.info("Moving %s out of the way to %s", path, backup)
        os.replace(path, backup)
        current = None

    same_content = current is not None and _content_equals(path, content, current)
    if (
        current is not None
        and same_content
        and _metadata_matches(current, uid=uid, gid=gid, mode=mode)
    ):
        log.debug("Unchanged: %s", path)
        return CommitResult.UNCHANGED

    if backup is not None and current is not None and not same_content:
        _write_backup(path, backup, current, uid=uid, gid=gid, mode=mode)
        if relabel is not None:
            relabel.add(backup)

    temp = temp_path_for(path)
    _write_secure(temp, content, uid=uid, gid=gid, mode=mode)
    log.debug("mv %s %s", temp, path)
    os.replace(temp, path)
    _fsync_directory(path.parent)
    if relabel is not None:
        relabel.add(path)
    log.info("Committed %s (%d bytes, %s:%s %o)", path, len(content), uid, gid, mode)
    return CommitResult.CHANGED


def commit_artifact(
    artifact: ManagedArtifact,
    *,
    relabel: MutableSet[Path] | None = None,
) -> CommitResult:
    return commit_file(
        artifact.path,
        artifact.content,
        uid=artifact.uid,
        gid=artifact.gid,
        mode=artifact.mode,
        backup=artifact.backup,
        relabel=relabel,
    )


def trim_directory(
    directory: Path,
    keep: Collection[str],
    *,
    owned: bool,
    allow: Collection[str] = (),
    managed: Collection[str] = (),
) -> list[str]:
    """Delete entries of ``directory`` that are neither desired nor allow-listed.

    Callers must state ownership. With ``owned=True`` every other entry is removed.
    With ``owned=False`` only names in ``managed`` (entries this reconciler created
    earlier) are candidates for removal and everything else is left alone.
    """

    try:
        names = sorted(os.listdir(directory))
    except FileNotFoundError:
        return []

    removed: list[str] = []
    for name in names:
        if name in keep or name in allow:
            continue
        if not owned and name not in managed:
            continue
        entry = directory / name
        current = _lstat(entry)
        if current is None:
            continue
        if stat.S_ISDIR(current.st_mode):
            shutil.rmtree(entry)
        else:
            entry.unlink()
        log.info("Removed %s", entry)
        removed.append(name)
    return removed


def ensure_directory(
    path: Path,
    *,
    uid: int,
    gid: int,
    mode: int,
    backup: Path | None = None,
) -> bool:
    """Create or fix a directory; return whether anything was modified."""

    modified = False
    current = _lstat(path)
    if current is not None and not stat.S_ISDIR(current.st_mode):
        if backup is None:
            raise NotADirectoryError(errno.ENOTDIR, "Exists and is not a directory", str(path))
        os.replace(path, backup)
        current = None
    if current is None:
        os.mkdir(path, 0o700)
        current = os.lstat(path)
        modified = True
    if current.st_uid != uid or current.st_gid != gid:
        os.chown(path, uid, gid)
        modified = True
    if stat.S_IMODE(current.st_mode) != mode:
        os.chmod(path, mode)
        modified = True
    if modified:
        log.info("Updated directory %s (%s:%s %o)", path, uid, gid, mode)
    return modified


def ensure_symlink(
    path: Path,
    target: str,
    *,
    uid: int,
    gid: int,
    backup: Path | None = None,
) -> bool:
    """Point ``path`` at ``target``; return whether anything was modified."""

    modified = False
    current = _lstat(path)
    if current is not None and not stat.S_ISLNK(current.st_mode):
        if backup is None:
            raise FileExistsError(errno.EEXIST, "Exists and is not a symbolic link", str(path))
        os.replace(path, backup)
        current = None
    if current is None or os.readlink(path) != target:
        temp = temp_path_for(path)
        temp.unlink(missing_ok=True)
        os.symlink(target, temp)
        os.replace(temp, path)
        current = os.lstat(path)
        modified = True
        log.info("Linked %s -> %s", path, target)
    if current.st_uid != uid or current.st_gid != gid:
        os.lchown(path, uid, gid)
        modified = True
    return modified


def find_unused_backup(prefix: str, separator: str = "-", extension: str = ".bak") -> Path:
    """Return ``prefix + extension``, or ``prefix-2.bak``, ``prefix-3.bak`` ... if taken."""

    attempt = 1
    while True:
        name = prefix + extension if attempt == 1 else f"{prefix}{separator}{attempt}{extension}"
        candidate = Path(name)
        if _lstat(candidate) is None:
            return candidate
        attempt += 1
