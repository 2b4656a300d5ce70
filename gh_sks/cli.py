import argparse
import signal
import sys
import threading
from pathlib import Path

from gh_sks import __version__
from gh_sks.config import Settings
from gh_sks.driver import Driver, Outcome, uninstall
from gh_sks.errors import GhSksError
from gh_sks.fetcher import GitHubKeyFetcher
from gh_sks.log import setup_logging
from gh_sks.mappings import MappingStore

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_FAILURES = 2


def build_parser(defaults: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gh-sks",
        description="Sync GitHub users' public SSH keys into Linux authorized_keys files. "
        "With no action, syncs keys according to the config file.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    actions = parser.add_mutually_exclusive_group()
    actions.add_argument(
        "--add",
        nargs=2,
        metavar=("LINUX_USER", "GITHUB_USER"),
        help="add a mapping to the config file",
    )
    actions.add_argument(
        "--remove",
        nargs=2,
        metavar=("LINUX_USER", "GITHUB_USER"),
        help="remove a mapping from the config file",
    )
    actions.add_argument("--list", action="store_true", help="print the current mappings")
    actions.add_argument("--init", action="store_true", help="create the config file if missing")
    actions.add_argument(
        "--uninstall",
        action="store_true",
        help="remove managed keys from all authorized_keys files and delete the config file",
    )
    actions.add_argument("--version", action="version", version=f"gh-sks {__version__}")

    parser.add_argument(
        "-c",
        "--config",
        help="mapping file (env GH_SKS_CONFIG)",
        type=Path,
        default=defaults.config_path,
    )
    parser.add_argument(
        "-u",
        "--user",
        help="only sync this Linux user, can be specified multiple times",
        action="append",
        dest="users",
    )
    parser.add_argument(
        "--keys-url",
        help="base URL serving <user>.keys (env GH_SKS_KEYS_URL)",
        default=defaults.keys_url,
    )
    parser.add_argument(
        "--timeout",
        help="per-request timeout in seconds (env GH_SKS_TIMEOUT)",
        type=float,
        default=defaults.timeout,
    )
    parser.add_argument(
        "-j",
        "--jobs",
        help="concurrent key fetches (env GH_SKS_JOBS)",
        type=int,
        default=defaults.max_workers,
    )
    parser.add_argument(
        "--log-file",
        help="also log to this file (env GH_SKS_LOG_FILE)",
        default=defaults.log_file,
    )
    parser.add_argument("--dry-run", action="store_true", help="show what would change without writing")
    parser.add_argument(
        "--strict",
        action="store_true",
        help=f"exit {EXIT_FAILURES} if any account failed to sync",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="enable debug output")
    return parser


def settings_from_args(args, defaults: Settings) -> Settings:
    return Settings(
        config_path=args.config,
        keys_url=args.keys_url,
        timeout=args.timeout,
        max_workers=args.jobs,
        log_file=args.log_file,
        begin_marker=defaults.begin_marker,
        end_marker=defaults.end_marker,
    )


def run_sync(settings: Settings, args) -> int:
    stop = threading.Event()

    def request_stop(signum, frame):
        stop.set()

    previous = signal.signal(signal.SIGTERM, request_stop)
    try:
        driver = Driver(
            MappingStore(settings.config_path),
            GitHubKeyFetcher(settings.keys_url, settings.timeout),
            settings=settings,
            dry_run=args.dry_run,
            stop=stop,
        )
        report = driver.run(only=args.users)
    finally:
        signal.signal(signal.SIGTERM, previous)

    if args.strict and report.failed:
        return EXIT_FAILURES
    return EXIT_OK


def main(argv=None) -> int:
    try:
        defaults = Settings.from_env()
    except GhSksError as e:
        print(f"gh-sks: error: {e}", file=sys.stderr)
        return EXIT_ERROR
    parser = build_parser(defaults)
    args = parser.parse_args(argv)
    settings = settings_from_args(args, defaults)
    logger = setup_logging(args.verbose, settings.log_file)

    store = MappingStore(settings.config_path)
    try:
        if args.add:
            store.add(*args.add)
        elif args.remove:
            store.remove(*args.remove)
            logger.info("Run 'sudo gh-sks' to apply changes immediately.")
        elif args.list:
            for mapping in store.list():
                print(f"{mapping.local_account} {mapping.external_identity}")
        elif args.init:
            if not store.init():
                logger.info(f"{store.path} already exists - skipping.")
        elif args.uninstall:
            results = uninstall(store, settings=settings, dry_run=args.dry_run)
            if args.strict and any(r.outcome is Outcome.FAILED for r in results):
                return EXIT_FAILURES
        else:
            return run_sync(settings, args)
    except GhSksError as e:
        logger.error(str(e))
        return EXIT_ERROR
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
