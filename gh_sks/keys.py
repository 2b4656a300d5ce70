import re
from collections import namedtuple

SOURCE_TAG_PREFIX = "github:"

ssh_key_types = {
    "sk-ecdsa-sha2-nistp256@openssh.com",
    "ecdsa-sha2-nistp256",
    "ecdsa-sha2-nistp384",
    "ecdsa-sha2-nistp521",
    "sk-ssh-ed25519@openssh.com",
    "ssh-ed25519",
    "ssh-dss",
    "ssh-rsa",
}
key_type_regex = "|".join(f"(?:{re.escape(k)})" for k in sorted(ssh_key_types))
authorized_key_regex = rf"^(?:(?P<options>.*)\s+)?(?P<keytype>{key_type_regex})\s+(?P<key>[A-Za-z0-9+/=]+)(?:\s+(?P<comment>.*))?$"


AuthorizedKey = namedtuple(
    "AuthorizedKey", field_names=["options", "keytype", "key", "comment"]
)


class MalformedKey(ValueError):
    pass


def parse_key(line: str) -> AuthorizedKey:
    match = re.match(authorized_key_regex, line.strip())
    if match:
        return AuthorizedKey(
            options=match["options"],
            keytype=match["keytype"],
            key=match["key"],
            comment=match["comment"],
        )
    raise MalformedKey(f"not an OpenSSH public key line: {line!r}")


class ExternalKey(namedtuple("ExternalKey", field_names=["raw", "source"])):
    """One fetched key line, annotated with the identity it came from."""

    __slots__ = ()

    def __new__(cls, raw: str, source: str):
        raw = raw.strip()
        if not raw:
            raise ValueError("key material must not be empty")
        if "\n" in raw or "\r" in raw:
            raise ValueError("key material must be a single line")
        return super().__new__(cls, raw, source)

    def line(self) -> str:
        return f"{self.raw} {SOURCE_TAG_PREFIX}{self.source}"
