"""Tests for the KEY=VALUE entry model."""

import pytest

from milou_ops.configuration.entries import (
    BlankLine,
    CommentLine,
    ConfigurationFile,
    KeyValueEntry,
    OpaqueLine,
    parse_line,
)


@pytest.mark.unit
class TestParseLine:
    """Tests for line classification."""

    def test_comment(self):
        """Test '#' and ';' comments."""
        assert isinstance(parse_line("# comment"), CommentLine)
        assert isinstance(parse_line("  ; other"), CommentLine)

    def test_blank(self):
        """Test empty and whitespace-only lines."""
        assert isinstance(parse_line(""), BlankLine)
        assert isinstance(parse_line("   "), BlankLine)

    def test_opaque(self):
        """Test a line without '='."""
        assert isinstance(parse_line("export"), OpaqueLine)

    def test_key_value_splits_on_first_equals(self):
        """Test that only the first '=' separates key and value."""
        entry = parse_line("DATABASE_URI=postgresql://u:p@h/db?a=b")
        assert isinstance(entry, KeyValueEntry)
        assert entry.key == "DATABASE_URI"
        assert entry.value == "postgresql://u:p@h/db?a=b"

    def test_key_value_trimming(self):
        """Test that the key is trimmed and value leading whitespace dropped."""
        entry = parse_line("  KEY  =  value ")
        assert entry.key == "KEY"
        assert entry.value == "value "

    def test_empty_value(self):
        """Test a key with an empty value."""
        entry = parse_line("GHCR_TOKEN=")
        assert entry.key == "GHCR_TOKEN"
        assert entry.value == ""


@pytest.mark.unit
class TestConfigurationFile:
    """Tests for ConfigurationFile."""

    TEXT = (
        "# header\n"
        "\n"
        "A=1\n"
        "  B = two\n"
        "garbage line\n"
        "; note\n"
        "A=3\n"
    )

    def test_round_trip_is_exact(self):
        """Test that parse then serialize reproduces the input."""
        assert ConfigurationFile.parse(self.TEXT).serialize() == self.TEXT

    def test_get_returns_first_occurrence(self):
        """Test lookup of duplicated keys."""
        cfg = ConfigurationFile.parse(self.TEXT)
        assert cfg.get("A") == "1"
        assert cfg.get("B") == "two"
        assert cfg.get("C") is None
        assert "A" in cfg
        assert "C" not in cfg

    def test_keys_and_duplicates(self):
        """Test key listing."""
        cfg = ConfigurationFile.parse(self.TEXT)
        assert cfg.keys() == ["A", "B"]
        assert cfg.duplicates() == ["A"]

    def test_collapse_duplicates(self):
        """Test that later duplicates are dropped and other lines kept."""
        cfg = ConfigurationFile.parse(self.TEXT)
        assert cfg.collapse_duplicates() == ["A"]
        assert cfg.serialize() == (
            "# header\n"
            "\n"
            "A=1\n"
            "  B = two\n"
            "garbage line\n"
            "; note\n"
        )

    def test_apply_rewrites_in_place_and_appends(self):
        """Test batch updates."""
        cfg = ConfigurationFile.parse("X=1\nY=2\n")
        appended = cfg.apply({"Y": "20", "Z": "3", "W": "4"})

        assert appended == ["Z", "W"]
        assert cfg.serialize() == "X=1\nY=20\nZ=3\nW=4\n"

    def test_apply_untouched_lines_keep_formatting(self):
        """Test that only rewritten lines are normalized."""
        cfg = ConfigurationFile.parse("  X = 1\nY=2\n")
        cfg.apply({"Y": "3"})
        assert cfg.serialize() == "  X = 1\nY=3\n"

    def test_insert_after_anchor(self):
        """Test inserting a block after an anchor key."""
        cfg = ConfigurationFile.parse("A=1\nB=2\n")
        found = cfg.insert_after("A", [CommentLine("# new"), KeyValueEntry("N", "v")])

        assert found is True
        assert cfg.serialize() == "A=1\n# new\nN=v\nB=2\n"

    def test_insert_after_missing_anchor_appends(self):
        """Test that a missing anchor appends at the end."""
        cfg = ConfigurationFile.parse("A=1\n")
        assert cfg.insert_after("MISSING", [KeyValueEntry("N", "v")]) is False
        assert cfg.serialize() == "A=1\nN=v\n"

    def test_missing_final_newline_is_added(self):
        """Test that serialized output is always LF-terminated."""
        assert ConfigurationFile.parse("A=1").serialize() == "A=1\n"

    def test_empty(self):
        """Test an empty file."""
        cfg = ConfigurationFile.parse("")
        assert cfg.entries == []
        assert cfg.serialize() == ""
