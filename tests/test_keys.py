import pytest

from gh_sks.keys import ExternalKey, MalformedKey, parse_key
from tests.conftest import KEY_A


class TestParseKey:
    def test_plain_key(self):
        key = parse_key(KEY_A)
        assert key.keytype == "ssh-ed25519"
        assert key.options is None
        assert key.comment is None

    def test_options_and_comment(self):
        key = parse_key(f'from="10.0.0.1" {KEY_A} alice@laptop')
        assert key.options == 'from="10.0.0.1"'
        assert key.comment == "alice@laptop"

    @pytest.mark.parametrize(
        "line",
        ["", "justoneword", "ssh-foo AAAA", "ssh-ed25519", "<html><body>Not Found</body></html>"],
    )
    def test_rejects_non_keys(self, line):
        with pytest.raises(MalformedKey):
            parse_key(line)


class TestExternalKey:
    def test_line_is_tagged_with_source(self):
        assert ExternalKey("ssh-ed25519 AAA1", "octo").line() == "ssh-ed25519 AAA1 github:octo"

    def test_surrounding_whitespace_is_dropped(self):
        assert ExternalKey("  ssh-ed25519 AAA1\n", "octo").raw == "ssh-ed25519 AAA1"

    @pytest.mark.parametrize("raw", ["", "   ", "ssh-ed25519 AAA1\nssh-ed25519 AAA2"])
    def test_rejects_empty_or_multiline(self, raw):
        with pytest.raises(ValueError):
            ExternalKey(raw, "octo")
