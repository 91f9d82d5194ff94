"""
Typed line model for KEY=VALUE configuration files.

A file is parsed once into an ordered list of entries, edited structurally,
and serialized once. Lines that are not key/value pairs are carried through
verbatim, and untouched key/value lines serialize back to their original
text, so parse followed by serialize reproduces the input exactly.
"""

from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Union


@dataclass
class CommentLine:
    """A line whose first non-whitespace character is '#' or ';'."""
    text: str

    def render(self) -> str:
        return self.text


@dataclass
class BlankLine:
    """An empty or whitespace-only line."""
    text: str = ""

    def render(self) -> str:
        return self.text


@dataclass
class OpaqueLine:
    """A non-comment line without '='. Kept as-is, never addressed by key."""
    text: str

    def render(self) -> str:
        return self.text


@dataclass
class KeyValueEntry:
    """A KEY=VALUE line.

    Attributes:
        key: Text before the first '=', whitespace-trimmed
        value: Text after the first '=', leading whitespace trimmed
        raw: Original line, or None once the entry has been rewritten
    """
    key: str
    value: str
    raw: Optional[str] = None

    def render(self) -> str:
        if self.raw is not None:
            return self.raw
        return f"{self.key}={self.value}"


Entry = Union[CommentLine, BlankLine, OpaqueLine, KeyValueEntry]


def parse_line(line: str) -> Entry:
    """Classify a single line (without its line terminator)."""
    trimmed = line.lstrip()
    if not trimmed.strip():
        return BlankLine(line)
    if trimmed.startswith(("#", ";")):
        return CommentLine(line)
    if "=" not in trimmed:
        return OpaqueLine(line)

    key, _, value = trimmed.partition("=")
    return KeyValueEntry(key=key.rstrip(), value=value.lstrip(), raw=line)


class ConfigurationFile:
    """An ordered, editable sequence of configuration entries."""

    def __init__(self, entries: Optional[Iterable[Entry]] = None):
        self.entries: list[Entry] = list(entries or [])

    @classmethod
    def parse(cls, text: str) -> "ConfigurationFile":
        """Parse LF-separated text into entries."""
        lines = text.split("\n")
        if lines and lines[-1] == "":
            lines.pop()
        return cls(parse_line(line) for line in lines)

    def serialize(self) -> str:
        """Render the entries as LF-terminated text."""
        if not self.entries:
            return ""
        return "\n".join(entry.render() for entry in self.entries) + "\n"

    def key_values(self) -> list[KeyValueEntry]:
        return [e for e in self.entries if isinstance(e, KeyValueEntry)]

    def keys(self) -> list[str]:
        """Distinct keys in file order."""
        seen: dict[str, None] = {}
        for entry in self.key_values():
            seen.setdefault(entry.key, None)
        return list(seen)

    def find(self, key: str) -> Optional[KeyValueEntry]:
        """Return the first entry for a key, if any."""
        for entry in self.key_values():
            if entry.key == key:
                return entry
        return None

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        entry = self.find(key)
        return entry.value if entry is not None else default

    def __contains__(self, key: str) -> bool:
        return self.find(key) is not None

    def duplicates(self) -> list[str]:
        """Keys that appear on more than one line."""
        counts: dict[str, int] = {}
        for entry in self.key_values():
            counts[entry.key] = counts.get(entry.key, 0) + 1
        return [key for key, count in counts.items() if count > 1]

    def collapse_duplicates(self) -> list[str]:
        """Drop every repeated key after its first occurrence.

        Returns:
            The keys that had duplicates removed
        """
        seen: set[str] = set()
        dropped: list[str] = []
        kept: list[Entry] = []
        for entry in self.entries:
            if isinstance(entry, KeyValueEntry):
                if entry.key in seen:
                    if entry.key not in dropped:
                        dropped.append(entry.key)
                    continue
                seen.add(entry.key)
            kept.append(entry)
        self.entries = kept
        return dropped

    def apply(self, updates: Mapping[str, str]) -> list[str]:
        """Set values for a batch of keys in a single pass.

        The first entry of each key is rewritten in place; keys that do not
        occur are appended in the mapping's order.

        Returns:
            The keys that were appended
        """
        pending = dict(updates)
        for entry in self.key_values():
            if entry.key in pending:
                entry.value = pending.pop(entry.key)
                entry.raw = None

        appended = list(pending)
        for key, value in pending.items():
            self.entries.append(KeyValueEntry(key=key, value=value))
        return appended

    def insert_after(self, anchor_key: str, new_entries: Iterable[Entry]) -> bool:
        """Insert entries right after the first line of anchor_key.

        Appends at the end when the anchor key is absent.

        Returns:
            True if the anchor was found
        """
        new_entries = list(new_entries)
        for index, entry in enumerate(self.entries):
            if isinstance(entry, KeyValueEntry) and entry.key == anchor_key:
                self.entries[index + 1:index + 1] = new_entries
                return True
        self.entries.extend(new_entries)
        return False
