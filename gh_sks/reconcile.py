"""Managed-block reconciliation of authorized_keys files.

A credential file is read as three parts: the preamble (everything before the
first begin marker line), the managed region (begin marker through the first
end marker after it) and whatever follows. The preamble is kept byte for
byte, the managed region is rebuilt from the fetched keys and always becomes
the tail of the file.
"""
import dataclasses
import enum
from pathlib import Path
from typing import List

from gh_sks.accounts import Account, authorized_keys_path, ssh_dir
from gh_sks.aggregate import ManagedKeyBlock
from gh_sks.config import AUTHORIZED_KEYS_MODE, MARKER_BEGIN, MARKER_END, SSH_DIR_MODE
from gh_sks.errors import ReconcileError
from gh_sks.fsutil import assert_directory, atomic_write, read_text, set_owner_and_mode
from gh_sks.log import get_logger

log = get_logger("reconcile")

HEADER_NOTICE = "# Auto-generated by gh-sks - do not edit this section manually."
TIMESTAMP_PREFIX = "# Last updated: "


class Region(enum.Enum):
    ABSENT = "absent"
    COMPLETE = "complete"
    # begin marker with no end marker after it: the region runs to EOF
    UNTERMINATED = "unterminated"


@dataclasses.dataclass
class ParsedCredentials:
    preamble: List[str]
    region: List[str]
    trailer: List[str]
    state: Region


def split_lines(content: str) -> List[str]:
    if not content:
        return []
    lines = content.split("\n")
    if content.endswith("\n"):
        lines.pop()
    return lines


def _is_marker(line: str, marker: str) -> bool:
    return line.strip() == marker


def parse(content: str, begin_marker: str = MARKER_BEGIN, end_marker: str = MARKER_END) -> ParsedCredentials:
    """Split `content` around the first begin marker and the first end marker after it.

    An end marker with no begin marker before it is ordinary content.
    """
    lines = split_lines(content)
    begin = next((i for i, line in enumerate(lines) if _is_marker(line, begin_marker)), None)
    if begin is None:
        return ParsedCredentials(lines, [], [], Region.ABSENT)

    end = next(
        (i for i in range(begin + 1, len(lines)) if _is_marker(lines[i], end_marker)),
        None,
    )
    if end is None:
        return ParsedCredentials(lines[:begin], lines[begin:], [], Region.UNTERMINATED)
    return ParsedCredentials(lines[:begin], lines[begin:end + 1], lines[end + 1:], Region.COMPLETE)


def trim_trailing_blank(lines: List[str]) -> List[str]:
    end = len(lines)
    while end and not lines[end - 1].strip():
        end -= 1
    return lines[:end]


def render_region(block: ManagedKeyBlock, begin_marker: str = MARKER_BEGIN, end_marker: str = MARKER_END) -> List[str]:
    timestamp = block.generated_at.strftime("%Y-%m-%dT%H:%M:%SZ")
    return [
        begin_marker,
        HEADER_NOTICE,
        f"{TIMESTAMP_PREFIX}{timestamp}",
        "#",
        *block.lines(),
        end_marker,
    ]


def _same_apart_from_timestamp(current: List[str], fresh: List[str]) -> bool:
    if len(current) != len(fresh):
        return False
    for old, new in zip(current, fresh):
        if old == new:
            continue
        if not (old.startswith(TIMESTAMP_PREFIX) and new.startswith(TIMESTAMP_PREFIX)):
            return False
    return True


def compose(preamble: List[str], region: List[str]) -> str:
    lines = trim_trailing_blank(preamble)
    if lines and region:
        lines.append("")
    lines.extend(region)
    return "\n".join(lines) + "\n" if lines else ""


def reconcile(
    existing: str,
    block: ManagedKeyBlock,
    begin_marker: str = MARKER_BEGIN,
    end_marker: str = MARKER_END,
    keep_unchanged: bool = False,
) -> str:
    """Return the new file content for `existing` with `block` as managed region.

    With `keep_unchanged`, `existing` is returned as is when its region
    differs from a freshly rendered one only in the timestamp line and
    nothing else would change, so a run where only the clock moved does not
    rewrite the file. Any other edit inside the region is replaced.
    """
    parsed = parse(existing, begin_marker, end_marker)
    if any(line.strip() for line in parsed.trailer):
        log.warning(
            f"Discarding {len(parsed.trailer)} line(s) found after the managed block end marker"
        )
    if parsed.state is Region.UNTERMINATED:
        log.warning("Managed block has no end marker; replacing everything after the begin marker")

    fresh = render_region(block, begin_marker, end_marker)
    if keep_unchanged and _same_apart_from_timestamp(parsed.region, fresh):
        if compose(parsed.preamble, parsed.region) == existing:
            return existing
    return compose(parsed.preamble, fresh)


def strip_managed(existing: str, begin_marker: str = MARKER_BEGIN, end_marker: str = MARKER_END) -> str:
    """Return `existing` without its managed region (and anything after it)."""
    parsed = parse(existing, begin_marker, end_marker)
    if parsed.state is Region.ABSENT:
        return existing
    return compose(parsed.preamble, [])


def ensure_ssh_dir(account: Account) -> Path:
    directory = ssh_dir(account)
    if not directory.exists() and not directory.is_symlink():
        directory.mkdir(mode=SSH_DIR_MODE)
    assert_directory(directory)
    set_owner_and_mode(directory, SSH_DIR_MODE, account.uid, account.gid)
    return directory


@dataclasses.dataclass
class FileUpdate:
    path: Path
    count: int
    changed: bool


def reconcile_account(
    account: Account,
    block: ManagedKeyBlock,
    begin_marker: str = MARKER_BEGIN,
    end_marker: str = MARKER_END,
    dry_run: bool = False,
) -> FileUpdate:
    """Rewrite `account`'s authorized_keys so its managed region holds `block`.

    Raises ReconcileError on any I/O failure; the file is then unchanged.
    """
    path = authorized_keys_path(account)
    try:
        if dry_run:
            existing = read_text(path) if path.parent.is_dir() else ""
        else:
            ensure_ssh_dir(account)
            existing = read_text(path)
        new = reconcile(existing, block, begin_marker, end_marker, keep_unchanged=True)
        changed = new != existing
        if dry_run:
            log.info(f"[DRY RUN] Would {'write' if changed else 'keep'} {len(block)} managed key(s) in {path}")
            return FileUpdate(path, len(block), changed)

        if changed:
            atomic_write(path, new, AUTHORIZED_KEYS_MODE, account.uid, account.gid)
        set_owner_and_mode(path, AUTHORIZED_KEYS_MODE, account.uid, account.gid)
    except (OSError, UnicodeDecodeError) as e:
        raise ReconcileError(f"{path}: {e}") from e

    if changed:
        log.info(f"Wrote {len(block)} managed key(s) to {path}")
    else:
        log.info(f"{path} already up to date ({len(block)} managed key(s))")
    return FileUpdate(path, len(block), changed)


def strip_account(
    account: Account,
    begin_marker: str = MARKER_BEGIN,
    end_marker: str = MARKER_END,
    dry_run: bool = False,
) -> bool:
    """Remove the managed region from `account`'s authorized_keys, if it has one."""
    path = authorized_keys_path(account)
    try:
        if not path.is_file() or path.is_symlink():
            return False
        existing = read_text(path)
        new = strip_managed(existing, begin_marker, end_marker)
        if new == existing:
            return False
        if dry_run:
            log.info(f"[DRY RUN] Would remove managed keys from {path}")
            return True
        atomic_write(path, new, AUTHORIZED_KEYS_MODE, account.uid, account.gid)
    except (OSError, UnicodeDecodeError) as e:
        raise ReconcileError(f"{path}: {e}") from e
    log.info(f"Removed managed keys from {path}")
    return True
