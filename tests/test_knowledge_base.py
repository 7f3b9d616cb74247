"""
Test suite for the hostaudit knowledge base
"""

import pytest

from hostaudit.core.knowledge_base import (
    BinaryTechnique,
    KnowledgeBase,
    VersionRange,
    compare_versions,
    is_whitelisted,
    load_binary_techniques,
    load_kernel_exploits,
    match_binary,
    match_kernel_version,
    parse_version,
)
from hostaudit.core.model import Severity


class TestVersions:
    """Numeric version handling."""

    def test_parse_version_uses_leading_numeric_prefix(self):
        assert parse_version("5.10.0-21-amd64") == (5, 10, 0)
        assert parse_version("6.1") == (6, 1)

    def test_parse_version_rejects_non_numeric(self):
        with pytest.raises(ValueError):
            parse_version("unknown")

    def test_compare_is_numeric_not_lexicographic(self):
        assert compare_versions("5.10.0", "5.9.0") == 1
        assert compare_versions("4.8", "4.8.0") == 0
        assert compare_versions("2.6.22", "2.6.3") == 1

    def test_range_upper_bound_exclusive(self):
        affected = VersionRange.parse("[5.8.0,5.10.1)")
        assert affected.contains("5.10.0")
        assert affected.contains("5.8.0")
        assert not affected.contains("5.10.1")
        assert not affected.contains("5.7.99")

    def test_range_upper_bound_inclusive(self):
        affected = VersionRange.parse("[3.13.0,5.11.0]")
        assert affected.contains("5.11.0")
        assert not affected.contains("5.11.1")

    def test_range_open_lower_bound(self):
        affected = VersionRange.parse("(1.0,2.0)")
        assert not affected.contains("1.0")
        assert affected.contains("1.5")

    @pytest.mark.parametrize("text", ["5.8.0-5.10.1", "[5.8.0;5.10.1)", ""])
    def test_malformed_range(self, text):
        with pytest.raises(ValueError):
            VersionRange.parse(text)


class TestTables:
    """Table loading and lookups."""

    @pytest.fixture
    def kernel_table(self, tmp_path):
        path = tmp_path / "kernel_exploits.db"
        path.write_text(
            "# comment\n"
            "\n"
            "KERNEL|CVE-2022-0847|DirtyPipe|pipe flags|CRITICAL|[5.8.0,5.10.1)\n"
            "KERNEL|CVE-0000-0000|Broken|bad range|HIGH|nonsense\n"
            "KERNEL|too|few\n",
            encoding="utf-8",
        )
        return load_kernel_exploits(path)

    def test_malformed_rows_are_skipped(self, kernel_table):
        assert [row.identifier for row in kernel_table] == ["CVE-2022-0847"]
        assert kernel_table[0].severity is Severity.CRITICAL

    def test_kernel_match(self, kernel_table):
        assert [r.name for r in match_kernel_version("5.10.0-21-amd64", kernel_table)] == ["DirtyPipe"]
        assert match_kernel_version("5.10.1", kernel_table) == []
        assert match_kernel_version("garbage", kernel_table) == []

    def test_missing_file_gives_empty_table(self, tmp_path):
        assert load_kernel_exploits(tmp_path / "absent.db") == ()

    def test_binary_match_by_basename_and_context(self, tmp_path):
        path = tmp_path / "gtfobins.db"
        path.write_text(
            "SUID|find|shell|find . -exec /bin/sh -p \\; -quit|CRITICAL\n"
            "SUDO|tar|shell|sudo tar ...|CRITICAL\n"
            "ALL|python3|shell|python3 -c ...|LOW\n",
            encoding="utf-8",
        )
        table = load_binary_techniques(path)

        assert len(match_binary("/usr/bin/find", table, context="suid")) == 1
        assert match_binary("/usr/bin/find", table, context="sudo") == []
        assert len(match_binary("find", table)) == 1
        # unrestricted rows match any context
        assert len(match_binary("/usr/bin/python3", table, context="suid")) == 1
        assert match_binary("/usr/bin/finder", table) == []

    def test_whitelist_is_exact_basename(self):
        whitelist = frozenset({"ping"})
        assert is_whitelisted("/usr/bin/ping", whitelist)
        assert not is_whitelisted("/usr/bin/ping_custom", whitelist)
        assert not is_whitelisted("", whitelist)


class TestBundledKnowledgeBase:
    """The tables shipped with the package."""

    @pytest.fixture(scope="class")
    def kb(self):
        return KnowledgeBase.load()

    def test_tables_are_populated(self, kb):
        stats = kb.stats()
        assert all(count > 0 for count in stats.values())

    def test_dirtypipe_matches(self, kb):
        names = [row.name for row in kb.match_kernel_version("5.10.0")]
        assert "DirtyPipe" in names

    def test_suid_bash(self, kb):
        rows = kb.match_binary("/bin/bash", context="suid")
        assert rows and rows[0].command_hint == "bash -p"

    def test_capability_lookup_is_case_insensitive(self, kb):
        assert kb.match_capability("CAP_SETUID")[0].severity is Severity.CRITICAL

    def test_ping_whitelisted(self, kb):
        assert kb.is_whitelisted("/usr/bin/ping")
        assert not kb.is_whitelisted("/usr/bin/ping_custom")

    def test_tables_are_read_only(self, kb):
        assert isinstance(kb.kernel_exploits, tuple)
        assert isinstance(kb.suid_whitelist, frozenset)


def test_binary_technique_rows_are_hashable():
    row = BinaryTechnique("suid", "bash", "shell", "bash -p", Severity.CRITICAL)
    assert {row: 1}[row] == 1
