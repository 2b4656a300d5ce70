import os
import pwd
from collections import namedtuple
from pathlib import Path
from typing import Iterator, Optional

Account = namedtuple("Account", field_names=["name", "uid", "gid", "home"])


def ssh_dir(account: Account) -> Path:
    return Path(account.home) / ".ssh"


def authorized_keys_path(account: Account) -> Path:
    return ssh_dir(account) / "authorized_keys"


class SystemAccounts:
    """Resolves local accounts through the passwd database."""

    def lookup(self, name: str) -> Optional[Account]:
        try:
            entry = pwd.getpwnam(name)
        except KeyError:
            return None
        return Account(entry.pw_name, entry.pw_uid, entry.pw_gid, entry.pw_dir)

    def __iter__(self) -> Iterator[Account]:
        seen = set()
        for entry in pwd.getpwall():
            if entry.pw_name in seen:
                continue
            seen.add(entry.pw_name)
            yield Account(entry.pw_name, entry.pw_uid, entry.pw_gid, entry.pw_dir)


def is_privileged() -> bool:
    return os.geteuid() == 0
