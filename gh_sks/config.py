import dataclasses
import os
from pathlib import Path

from gh_sks.errors import ConfigError

DEFAULT_CONFIG_PATH = "/etc/gh-sks/github_authorized_users"
DEFAULT_KEYS_URL = "https://github.com"
DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_WORKERS = 4

MARKER_BEGIN = "# --- BEGIN gh-sks managed keys ---"
MARKER_END = "# --- END gh-sks managed keys ---"

SSH_DIR_MODE = 0o700
AUTHORIZED_KEYS_MODE = 0o600
CONFIG_FILE_MODE = 0o644

CONFIG_TEMPLATE = """\
# {path}
#
# Maps Linux users to GitHub usernames whose public SSH keys should
# be synced into that user's ~/.ssh/authorized_keys.
#
# Format: <linux_user> <github_username>
# One mapping per line. Blank lines and comments (lines starting
# with #) are ignored. A GitHub user can be mapped to multiple
# Linux users and vice versa.
#
# Examples:
# azureuser octocat
# deploy torvalds
"""


def _number(env, name, kind, default):
    value = env.get(name)
    if value is None:
        return default
    try:
        return kind(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None


@dataclasses.dataclass
class Settings:
    config_path: Path = Path(DEFAULT_CONFIG_PATH)
    keys_url: str = DEFAULT_KEYS_URL
    timeout: float = DEFAULT_TIMEOUT
    max_workers: int = DEFAULT_MAX_WORKERS
    log_file: str = ""
    begin_marker: str = MARKER_BEGIN
    end_marker: str = MARKER_END

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            config_path=Path(env.get("GH_SKS_CONFIG", DEFAULT_CONFIG_PATH)),
            keys_url=env.get("GH_SKS_KEYS_URL", DEFAULT_KEYS_URL),
            timeout=_number(env, "GH_SKS_TIMEOUT", float, DEFAULT_TIMEOUT),
            max_workers=_number(env, "GH_SKS_JOBS", int, DEFAULT_MAX_WORKERS),
            log_file=env.get("GH_SKS_LOG_FILE", ""),
        )
