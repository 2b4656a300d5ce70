import os
import stat
import tempfile
from pathlib import Path
from typing import Optional


def assert_regular_or_missing(path: Path) -> None:
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        return
    if not stat.S_ISREG(st.st_mode):
        raise OSError(f"{path} is not a regular file")


def assert_directory(path: Path) -> None:
    st = os.lstat(path)
    if not stat.S_ISDIR(st.st_mode):
        raise OSError(f"{path} is not a directory")


def read_text(path: Path) -> str:
    """Read `path`, treating a missing file as empty. Symlinks are refused."""
    assert_regular_or_missing(path)
    try:
        with open(path, "rt", encoding="utf-8", newline="") as f:
            return f.read()
    except FileNotFoundError:
        return ""


def set_owner_and_mode(
    path: Path, mode: int, uid: Optional[int] = None, gid: Optional[int] = None
) -> None:
    if uid is not None and gid is not None:
        os.chown(path, uid, gid, follow_symlinks=False)
    os.chmod(path, mode)


def atomic_write(
    path: Path,
    content: str,
    mode: int,
    uid: Optional[int] = None,
    gid: Optional[int] = None,
) -> None:
    """Replace `path` with `content` via a temp file in the same directory.

    Readers see either the old or the new file. The temp file is removed on
    every exit path where the rename did not happen.
    """
    path = Path(path)
    assert_regular_or_missing(path)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wt", encoding="utf-8", newline="") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        set_owner_and_mode(Path(tmp), mode, uid, gid)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except FileNotFoundError:
            pass
        raise

    try:
        dir_fd = os.open(path.parent, os.O_RDONLY)
        try:
            os.fsync(dir_fd)
        finally:
            os.close(dir_fd)
    except OSError:
        pass
