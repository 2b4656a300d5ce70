import logging

import pytest

from gh_sks.errors import ConfigError, InvalidArgument, NotFound, PermissionDenied
from gh_sks.mappings import Mapping, MappingStore, parse_mappings


class TestParseMappings:
    def test_skips_comments_and_blank_lines(self):
        text = "# header\n\nalice octo\n   # indented comment\nbob  defunkt  \n"
        mappings, malformed = parse_mappings(text)

        assert mappings == [Mapping("alice", "octo"), Mapping("bob", "defunkt")]
        assert malformed == []

    def test_reports_malformed_lines(self):
        mappings, malformed = parse_mappings("alice octo\njustoneword\nx y z\n")

        assert mappings == [Mapping("alice", "octo")]
        assert malformed == [(2, "justoneword"), (3, "x y z")]

    def test_keeps_config_order_and_repeats_accounts(self):
        mappings, _ = parse_mappings("deploy b\nalice a\ndeploy a\n")
        assert [m.local_account for m in mappings] == ["deploy", "alice", "deploy"]


class TestLoad:
    def test_malformed_line_warns_and_continues(self, store, config_path, caplog):
        config_path.write_text("alice octo\njustoneword\n")

        with caplog.at_level(logging.WARNING, logger="gh-sks"):
            mappings = store.load()

        assert mappings == [Mapping("alice", "octo")]
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert "justoneword" in warnings[0].getMessage()

    def test_missing_file_is_a_config_error(self, tmp_path):
        store = MappingStore(tmp_path / "nope")
        with pytest.raises(ConfigError):
            store.load()

    def test_list_needs_no_privilege(self, config_path):
        config_path.write_text("alice octo\n")
        store = MappingStore(config_path, privileged=lambda: False)
        assert store.list() == [Mapping("alice", "octo")]


class TestAdd:
    def test_appends_one_line(self, store, config_path):
        config_path.write_text("# comment\nalice octo\n")

        assert store.add("bob", "defunkt") is True
        assert config_path.read_text() == "# comment\nalice octo\nbob defunkt\n"

    def test_appends_after_missing_final_newline(self, store, config_path):
        config_path.write_text("alice octo")
        store.add("bob", "defunkt")
        assert config_path.read_text() == "alice octo\nbob defunkt\n"

    def test_duplicate_is_a_warning_noop(self, store, config_path, caplog):
        store.add("alice", "octo")
        before = config_path.read_text()

        with caplog.at_level(logging.WARNING, logger="gh-sks"):
            assert store.add(" alice ", "octo\t") is False

        assert config_path.read_text() == before
        assert before.count("alice octo") == 1
        assert "already exists" in caplog.text

    def test_duplicate_is_case_sensitive(self, store, config_path):
        store.add("alice", "octo")
        assert store.add("alice", "Octo") is True
        assert store.list() == [Mapping("alice", "octo"), Mapping("alice", "Octo")]

    def test_creates_missing_file_from_template(self, tmp_path):
        path = tmp_path / "etc" / "gh-sks" / "github_authorized_users"
        store = MappingStore(path, privileged=lambda: True)

        store.add("alice", "octo")

        text = path.read_text()
        assert text.startswith(f"# {path}\n")
        assert store.list() == [Mapping("alice", "octo")]

    def test_requires_privilege(self, config_path):
        config_path.write_text("")
        store = MappingStore(config_path, privileged=lambda: False)

        with pytest.raises(PermissionDenied):
            store.add("alice", "octo")
        assert config_path.read_text() == ""

    @pytest.mark.parametrize(
        "local, identity",
        [("", "octo"), ("alice", ""), ("  ", "octo"), ("al ice", "octo"), ("#alice", "octo")],
    )
    def test_rejects_bad_fields(self, store, local, identity):
        with pytest.raises(InvalidArgument):
            store.add(local, identity)


class TestRemove:
    def test_removes_matching_line_only(self, store, config_path):
        config_path.write_text("# keep me\nalice octo\n\nbob octo\n")

        store.remove("alice", "octo")

        assert config_path.read_text() == "# keep me\n\nbob octo\n"

    def test_matches_despite_extra_whitespace(self, store, config_path):
        config_path.write_text("  alice\t octo  \nbob octo\n")
        store.remove("alice", "octo")
        assert config_path.read_text() == "bob octo\n"

    def test_missing_pair_leaves_store_untouched(self, store, config_path):
        config_path.write_text("alice octo\n# bob defunkt\n")

        with pytest.raises(NotFound):
            store.remove("bob", "defunkt")
        assert config_path.read_text() == "alice octo\n# bob defunkt\n"

    def test_requires_privilege(self, config_path):
        config_path.write_text("alice octo\n")
        store = MappingStore(config_path, privileged=lambda: False)

        with pytest.raises(PermissionDenied):
            store.remove("alice", "octo")
        assert config_path.read_text() == "alice octo\n"

    def test_missing_file_is_a_config_error(self, tmp_path):
        store = MappingStore(tmp_path / "nope", privileged=lambda: True)
        with pytest.raises(ConfigError):
            store.remove("alice", "octo")


def test_init_is_idempotent(tmp_path):
    path = tmp_path / "gh-sks" / "github_authorized_users"
    store = MappingStore(path, privileged=lambda: True)

    assert store.init() is True
    first = path.read_text()
    assert store.init() is False
    assert path.read_text() == first
    assert store.list() == []
