"""Mapping store: the ordered list of (local account, GitHub user) pairs.

The backing file holds one ``<local_account> <external_identity>`` pair per
line. Blank lines and ``#`` comments are ignored, as are malformed lines
(anything that does not split into exactly two tokens), which are logged.
"""
from collections import namedtuple
from pathlib import Path
from typing import Callable, List, Tuple

from gh_sks.accounts import is_privileged
from gh_sks.config import CONFIG_FILE_MODE, CONFIG_TEMPLATE
from gh_sks.errors import ConfigError, InvalidArgument, NotFound, PermissionDenied
from gh_sks.fsutil import atomic_write
from gh_sks.log import get_logger

log = get_logger("mappings")

Mapping = namedtuple("Mapping", field_names=["local_account", "external_identity"])


def _is_ignored(line: str) -> bool:
    stripped = line.strip()
    return stripped == "" or stripped.startswith("#")


def parse_line(line: str):
    """Return the Mapping on `line`, or None if it is not exactly two tokens."""
    tokens = line.split()
    if len(tokens) != 2:
        return None
    return Mapping(*tokens)


def parse_mappings(text: str) -> Tuple[List[Mapping], List[Tuple[int, str]]]:
    """Split config text into mappings and malformed ``(lineno, line)`` pairs."""
    mappings = []
    malformed = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        if _is_ignored(line):
            continue
        mapping = parse_line(line)
        if mapping is None:
            malformed.append((lineno, line))
        else:
            mappings.append(mapping)
    return mappings, malformed


def normalize_pair(local_account: str, external_identity: str) -> Mapping:
    local_account = (local_account or "").strip()
    external_identity = (external_identity or "").strip()
    if not local_account or not external_identity:
        raise InvalidArgument("both <linux_user> and <github_user> are required")
    for value in (local_account, external_identity):
        if len(value.split()) != 1:
            raise InvalidArgument(f"{value!r} must not contain whitespace")
    if local_account.startswith("#"):
        raise InvalidArgument(f"{local_account!r} must not start with '#'")
    return Mapping(local_account, external_identity)


class MappingStore:
    def __init__(self, path, privileged: Callable[[], bool] = is_privileged):
        self.path = Path(path)
        self.privileged = privileged

    def _require_privilege(self, operation: str) -> None:
        if not self.privileged():
            raise PermissionDenied(f"{operation} must be run as root (use sudo)")

    def _read(self) -> str:
        try:
            with open(self.path, "rt", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            raise ConfigError(f"Config file not found: {self.path}") from None
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigError(f"Cannot read config file {self.path}: {e}") from e

    def load(self) -> List[Mapping]:
        mappings, malformed = parse_mappings(self._read())
        for lineno, line in malformed:
            log.warning(f"Skipping malformed line {lineno} in {self.path}: {line.strip()!r}")
        return mappings

    def list(self) -> List[Mapping]:
        return self.load()

    def init(self) -> bool:
        """Create the config directory and a commented template. False if present."""
        if self.path.exists():
            return False
        self._require_privilege("init")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write(self.path, CONFIG_TEMPLATE.format(path=self.path), CONFIG_FILE_MODE)
        log.info(f"Created {self.path}")
        return True

    def add(self, local_account: str, external_identity: str) -> bool:
        """Append a mapping. Returns False (and warns) if it already exists."""
        self._require_privilege("--add")
        mapping = normalize_pair(local_account, external_identity)
        self.init()
        text = self._read()
        existing, _ = parse_mappings(text)
        if mapping in existing:
            log.warning(f"Mapping already exists: {mapping.local_account} {mapping.external_identity}")
            return False

        if text and not text.endswith("\n"):
            text += "\n"
        text += f"{mapping.local_account} {mapping.external_identity}\n"
        atomic_write(self.path, text, CONFIG_FILE_MODE)
        log.info(f"Added mapping: {mapping.local_account} <- github:{mapping.external_identity}")
        return True

    def remove(self, local_account: str, external_identity: str) -> None:
        self._require_privilege("--remove")
        mapping = normalize_pair(local_account, external_identity)
        lines = self._read().splitlines(keepends=True)
        kept = [
            line
            for line in lines
            if _is_ignored(line) or parse_line(line) != mapping
        ]
        if len(kept) == len(lines):
            raise NotFound(f"Mapping not found: {mapping.local_account} {mapping.external_identity}")

        atomic_write(self.path, "".join(kept), CONFIG_FILE_MODE)
        log.info(f"Removed mapping: {mapping.local_account} <- github:{mapping.external_identity}")
