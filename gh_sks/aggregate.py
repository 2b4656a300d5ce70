"""Group fetched keys into one ordered block per local account."""
import dataclasses
import datetime
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterable, List, Optional

from gh_sks.config import DEFAULT_MAX_WORKERS
from gh_sks.errors import FetchError
from gh_sks.keys import ExternalKey
from gh_sks.log import get_logger
from gh_sks.mappings import Mapping

log = get_logger("aggregate")

Fetch = Callable[[str], List[str]]


@dataclasses.dataclass
class ManagedKeyBlock:
    account: str
    keys: List[ExternalKey]
    generated_at: datetime.datetime

    def __len__(self) -> int:
        return len(self.keys)

    def lines(self) -> List[str]:
        return [key.line() for key in self.keys]


class FetchCache:
    """Per-run memo of fetch results, keyed by external identity.

    `populate` fetches every identity once, up to `max_workers` at a time,
    and finishes before any lookup, so lookups need no locking. A failed or
    empty fetch is cached as an empty list.
    """

    def __init__(self, fetch: Fetch, max_workers: int = DEFAULT_MAX_WORKERS):
        self.fetch = fetch
        self.max_workers = max(1, max_workers)
        self.results: Dict[str, List[str]] = {}

    def _fetch_one(self, identity: str) -> List[str]:
        try:
            keys = list(self.fetch(identity))
        except FetchError as e:
            log.warning(f"Failed to fetch keys for github:{identity}: {e.reason} - skipping.")
            return []
        except Exception:
            log.exception(f"Unexpected error fetching keys for github:{identity} - skipping.")
            return []
        if not keys:
            log.warning(f"No keys returned for github user '{identity}' - skipping.")
        else:
            log.info(f"  -> Retrieved {len(keys)} key(s) for github:{identity}")
        return keys

    def populate(self, identities: Iterable[str]) -> None:
        pending = [i for i in dict.fromkeys(identities) if i not in self.results]
        if not pending:
            return
        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(pending))) as pool:
            for identity, keys in zip(pending, pool.map(self._fetch_one, pending)):
                self.results[identity] = keys

    def __getitem__(self, identity: str) -> List[str]:
        return self.results[identity]


def group_by_account(mappings: Iterable[Mapping]) -> Dict[str, List[str]]:
    """Distinct identities per account, accounts in first-seen order."""
    grouped: Dict[str, List[str]] = {}
    for mapping in mappings:
        identities = grouped.setdefault(mapping.local_account, [])
        if mapping.external_identity not in identities:
            identities.append(mapping.external_identity)
    return grouped


def aggregate(
    mappings: Iterable[Mapping],
    fetch: Fetch,
    account_exists: Optional[Callable[[str], bool]] = None,
    max_workers: int = DEFAULT_MAX_WORKERS,
    now: Optional[datetime.datetime] = None,
    cache: Optional[FetchCache] = None,
) -> Dict[str, ManagedKeyBlock]:
    """Build a ManagedKeyBlock for every account that ends up with keys.

    Identities of accounts that do not exist are skipped without fetching.
    Accounts whose block would be empty are left out of the result, so their
    credential files keep whatever keys they had.
    """
    grouped = group_by_account(mappings)
    if now is None:
        now = datetime.datetime.now(datetime.timezone.utc)
    if cache is None:
        cache = FetchCache(fetch, max_workers)

    wanted = {}
    for account, identities in grouped.items():
        if account_exists is not None and not account_exists(account):
            for identity in identities:
                log.warning(
                    f"Linux user '{account}' does not exist - skipping github:{identity}."
                )
            continue
        wanted[account] = identities

    cache.populate(i for identities in wanted.values() for i in identities)

    blocks = {}
    for account, identities in wanted.items():
        keys = []
        for identity in identities:
            for raw in cache[identity]:
                if not raw.strip():
                    continue
                try:
                    key = ExternalKey(raw, identity)
                except ValueError as e:
                    log.warning(f"Ignoring key from github:{identity}: {e}")
                    continue
                if key not in keys:
                    keys.append(key)
        if keys:
            blocks[account] = ManagedKeyBlock(account, keys, now)
        else:
            log.warning(f"No keys fetched for '{account}' - leaving its authorized_keys unchanged.")
    return blocks
