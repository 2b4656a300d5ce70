"""One reconciliation run: mappings -> fetched keys -> authorized_keys files."""
import dataclasses
import datetime
import enum
import threading
from typing import Callable, Iterable, List, Optional

from gh_sks.accounts import SystemAccounts, is_privileged
from gh_sks.aggregate import Fetch, aggregate, group_by_account
from gh_sks.config import Settings
from gh_sks.errors import PermissionDenied, ReconcileError
from gh_sks.log import get_logger
from gh_sks.mappings import MappingStore
from gh_sks.reconcile import reconcile_account, strip_account

log = get_logger("driver")


class Outcome(enum.Enum):
    SYNCED = "synced"
    SKIPPED_NO_MAPPINGS = "skipped: no mappings"
    SKIPPED_ACCOUNT_MISSING = "skipped: account missing"
    SKIPPED_NO_KEYS_FETCHED = "skipped: no keys fetched"
    FAILED = "failed"
    REMOVED = "managed keys removed"


class RunState(enum.Enum):
    INIT = "init"
    MAPPINGS_LOADED = "mappings loaded"
    NO_MAPPINGS = "no mappings"
    AGGREGATING = "aggregating"
    NO_KEYS_ANY_ACCOUNT = "no keys for any account"
    PER_ACCOUNT_RECONCILE = "reconciling"
    DONE = "done"


@dataclasses.dataclass
class AccountResult:
    account: str
    outcome: Outcome
    count: int = 0
    reason: str = ""
    changed: bool = False

    def describe(self) -> str:
        if self.outcome is Outcome.SYNCED:
            state = "updated" if self.changed else "unchanged"
            return f"{self.account}: synced {self.count} key(s) ({state})"
        if self.outcome is Outcome.FAILED:
            return f"{self.account}: failed: {self.reason}"
        return f"{self.account}: {self.outcome.value}"


@dataclasses.dataclass
class RunReport:
    state: RunState = RunState.INIT
    results: List[AccountResult] = dataclasses.field(default_factory=list)

    @property
    def failed(self) -> List[AccountResult]:
        return [r for r in self.results if r.outcome is Outcome.FAILED]

    @property
    def synced(self) -> List[AccountResult]:
        return [r for r in self.results if r.outcome is Outcome.SYNCED]


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class Driver:
    """Runs reconciliation once.

    Account lookup, the privilege check, fetching and the clock are all
    injected so a run can be exercised without real system accounts. Only
    precondition failures (privilege, unreadable mapping store) raise; every
    per-identity and per-account problem ends up in the RunReport.
    """

    def __init__(
        self,
        store: MappingStore,
        fetch: Fetch,
        accounts=None,
        privileged: Callable[[], bool] = is_privileged,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime.datetime] = utcnow,
        dry_run: bool = False,
        stop: Optional[threading.Event] = None,
    ):
        self.store = store
        self.fetch = fetch
        self.accounts = accounts if accounts is not None else SystemAccounts()
        self.privileged = privileged
        self.settings = settings or Settings()
        self.clock = clock
        self.dry_run = dry_run
        self.stop = stop or threading.Event()

    def run(self, only: Optional[Iterable[str]] = None) -> RunReport:
        report = RunReport()
        if not self.privileged():
            raise PermissionDenied("gh-sks must be run as root.")

        mappings = self.store.load()
        report.state = RunState.MAPPINGS_LOADED

        if only is not None:
            only = list(dict.fromkeys(only))
            mappings = [m for m in mappings if m.local_account in only]
            mapped = {m.local_account for m in mappings}
            for name in only:
                if name not in mapped:
                    log.warning(f"No mappings for '{name}' in {self.store.path} - skipping.")
                    report.results.append(AccountResult(name, Outcome.SKIPPED_NO_MAPPINGS))

        if not mappings:
            log.warning(f"No entries found in {self.store.path}. Nothing to sync.")
            report.state = RunState.NO_MAPPINGS
            return report
        log.info(f"Found {len(mappings)} mapping(s) to sync.")

        names = list(group_by_account(mappings))
        resolved = {name: self.accounts.lookup(name) for name in names}

        report.state = RunState.AGGREGATING
        blocks = aggregate(
            mappings,
            self.fetch,
            account_exists=lambda name: resolved[name] is not None,
            max_workers=self.settings.max_workers,
            now=self.clock(),
        )

        if not blocks:
            log.warning("No keys were retrieved from GitHub. No authorized_keys files will be modified.")
            for name in names:
                outcome = (
                    Outcome.SKIPPED_ACCOUNT_MISSING
                    if resolved[name] is None
                    else Outcome.SKIPPED_NO_KEYS_FETCHED
                )
                report.results.append(AccountResult(name, outcome))
            report.state = RunState.NO_KEYS_ANY_ACCOUNT
            self._summarize(report)
            return report

        report.state = RunState.PER_ACCOUNT_RECONCILE
        for name in names:
            report.results.append(self._reconcile_one(name, resolved[name], blocks.get(name)))

        report.state = RunState.DONE
        self._summarize(report)
        return report

    def _reconcile_one(self, name, account, block) -> AccountResult:
        if account is None:
            return AccountResult(name, Outcome.SKIPPED_ACCOUNT_MISSING)
        if block is None:
            return AccountResult(name, Outcome.SKIPPED_NO_KEYS_FETCHED)
        if self.stop.is_set():
            log.warning(f"Run interrupted - '{name}' was not reconciled.")
            return AccountResult(name, Outcome.FAILED, reason="run interrupted")

        try:
            update = reconcile_account(
                account,
                block,
                self.settings.begin_marker,
                self.settings.end_marker,
                dry_run=self.dry_run,
            )
        except ReconcileError as e:
            log.error(f"Failed to update authorized_keys for '{name}': {e}")
            return AccountResult(name, Outcome.FAILED, reason=str(e))
        return AccountResult(name, Outcome.SYNCED, count=update.count, changed=update.changed)

    def _summarize(self, report: RunReport) -> None:
        for result in report.results:
            if result.outcome is Outcome.FAILED:
                log.error(result.describe())
            elif result.outcome is Outcome.SYNCED:
                log.info(result.describe())
            else:
                log.warning(result.describe())
        log.info(
            f"Sync complete: {len(report.synced)} synced, {len(report.failed)} failed, "
            f"{len(report.results) - len(report.synced) - len(report.failed)} skipped."
        )


def uninstall(
    store: MappingStore,
    accounts=None,
    privileged: Callable[[], bool] = is_privileged,
    settings: Optional[Settings] = None,
    dry_run: bool = False,
) -> List[AccountResult]:
    """Strip managed keys from every account, then remove the mapping file.

    The config directory is removed only if nothing else is left in it.
    Returns one result per account whose file held (or failed to lose) a
    managed block.
    """
    if not privileged():
        raise PermissionDenied("--uninstall must be run as root (use sudo).")
    accounts = accounts if accounts is not None else SystemAccounts()
    settings = settings or Settings()

    log.info("Uninstalling gh-sks...")
    results = []
    for account in accounts:
        try:
            stripped = strip_account(account, settings.begin_marker, settings.end_marker, dry_run=dry_run)
        except ReconcileError as e:
            log.error(f"Failed to remove managed keys for '{account.name}': {e}")
            results.append(AccountResult(account.name, Outcome.FAILED, reason=str(e)))
            continue
        if stripped:
            results.append(AccountResult(account.name, Outcome.REMOVED, changed=True))

    if dry_run:
        log.info(f"[DRY RUN] Would remove {store.path}")
        return results

    if store.path.exists():
        store.path.unlink()
        log.info(f"Removed {store.path}")
    try:
        store.path.parent.rmdir()
        log.info(f"Removed {store.path.parent}/")
    except FileNotFoundError:
        pass
    except OSError as e:
        log.warning(f"Leaving {store.path.parent}/ in place: {e.strerror}")
    log.info("Uninstall complete.")
    return results
