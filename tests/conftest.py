"""Shared test fixtures."""

import datetime
import os
import threading

import pytest

from gh_sks.accounts import Account
from gh_sks.errors import FetchError
from gh_sks.mappings import MappingStore

NOW = datetime.datetime(2026, 1, 2, 3, 4, 5, tzinfo=datetime.timezone.utc)

KEY_A = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIBTZSt5IZWZaGEJt8l5CI4DijXPr78L7HHEfB3SJlzFZ"
KEY_B = "ssh-rsa AAAAB3NzaC1yc2EAAAABIwAAAIEA6vRl3UcgQmEoPJB4MHWYaf"
KEY_C = "ecdsa-sha2-nistp256 AAAAE2VjZHNhLXNoYTItbmlzdHAyNTYAAAAIbmlzdHAyNTY"


class FakeAccounts:
    """Account resolver backed by home directories under a temp dir."""

    def __init__(self, root):
        self.root = root
        self.accounts = {}

    def create(self, name, make_home=True):
        home = self.root / "home" / name
        if make_home:
            home.mkdir(parents=True)
        account = Account(name, os.getuid(), os.getgid(), str(home))
        self.accounts[name] = account
        return account

    def lookup(self, name):
        return self.accounts.get(name)

    def __iter__(self):
        return iter(list(self.accounts.values()))


class FakeFetcher:
    """Serves canned key lists; an Exception value is raised instead."""

    def __init__(self, keys=None):
        self.keys = dict(keys or {})
        self.calls = []
        self.lock = threading.Lock()

    def __call__(self, identity):
        with self.lock:
            self.calls.append(identity)
        result = self.keys.get(identity, FetchError(identity, "no such GitHub user"))
        if isinstance(result, Exception):
            raise result
        return list(result)


@pytest.fixture
def accounts(tmp_path):
    return FakeAccounts(tmp_path)


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "etc" / "gh-sks" / "github_authorized_users"
    path.parent.mkdir(parents=True)
    return path


@pytest.fixture
def store(config_path):
    return MappingStore(config_path, privileged=lambda: True)
