from typing import List, Optional
from urllib.parse import quote

import requests

from gh_sks import __version__
from gh_sks.config import DEFAULT_KEYS_URL, DEFAULT_TIMEOUT
from gh_sks.errors import FetchError
from gh_sks.keys import MalformedKey, parse_key
from gh_sks.log import get_logger

log = get_logger("fetcher")


class GitHubKeyFetcher:
    """Fetches the public keys GitHub publishes at ``<url>/<user>.keys``.

    One GET per call, no retries. Any failure, including a timeout, raises
    FetchError so callers can skip the identity and carry on.
    """

    def __init__(
        self,
        keys_url: str = DEFAULT_KEYS_URL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.keys_url = keys_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = f"gh-sks/{__version__}"

    def url_for(self, identity: str) -> str:
        return f"{self.keys_url}/{quote(identity, safe='')}.keys"

    def __call__(self, identity: str) -> List[str]:
        url = self.url_for(identity)
        log.info(f"Fetching keys for github:{identity} from {url}")
        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.HTTPError as e:
            status = e.response.status_code if e.response is not None else "?"
            if status == 404:
                raise FetchError(identity, "no such GitHub user") from e
            raise FetchError(identity, f"HTTP {status}") from e
        except requests.Timeout as e:
            raise FetchError(identity, f"timed out after {self.timeout}s") from e
        except requests.RequestException as e:
            raise FetchError(identity, str(e)) from e

        keys = []
        for line in resp.text.splitlines():
            if not line.strip():
                continue
            try:
                parse_key(line)
            except MalformedKey as e:
                log.warning(f"Ignoring key from github:{identity}: {e}")
                continue
            keys.append(line.strip())
        log.debug(f"Retrieved {len(keys)} key(s) for github:{identity}")
        return keys
