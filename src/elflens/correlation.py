"""Source-location index over a disassembly listing.

``CorrelationIndex`` holds the records of a ``DisassemblyResult`` re-sorted
by ``(path/filename, line)`` so a source position can be mapped to the
listing line of the first instruction generated for it.  The records keep
their original ``sequence_index``; only the order of the index changes.

Lookups never fail.  A file or line without an exact match resolves to the
nearest sensible record, and an empty index answers ``0``.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field

from elflens.records import DisassemblyResult, InstructionRecord, normalize_source_key


@dataclass(frozen=True)
class LineQuery:
    """A source position to locate in the listing.

    ``column`` is part of the request shape but is not used for matching.
    """

    path: str
    filename: str
    line: int
    column: int = 0

    @classmethod
    def from_file(cls, file_path: str, line: int, column: int = 0) -> LineQuery:
        """Split a full source path into directory and file name."""
        normalized = file_path.replace("\\", "/")
        head, sep, tail = normalized.rpartition("/")
        if not sep:
            return cls(path="", filename=normalized, line=line, column=column)
        return cls(path=head, filename=tail, line=line, column=column)

    @property
    def key(self) -> str:
        return normalize_source_key(self.path, self.filename)


@dataclass(frozen=True)
class CorrelationIndex:
    """Records of one listing sorted by source file, then line."""

    entries: tuple[InstructionRecord, ...] = ()
    _keys: tuple[str, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_keys", tuple(e.location.sort_key for e in self.entries))

    @classmethod
    def build(cls, result: DisassemblyResult) -> CorrelationIndex:
        """Return a sorted copy of *result*'s records.

        The sort is stable, so records for the same file and line keep their
        listing order.  *result* is left untouched.
        """
        return cls(entries=tuple(sorted(result.records, key=_entry_key)))

    def __len__(self) -> int:
        return len(self.entries)

    def locate(self, query: LineQuery) -> int:
        """Return the ``sequence_index`` of the best record for *query*.

        - first record of the file with ``line >= query.line``
        - first record of the file when every line is smaller
        - first record of the next file when the file is not indexed
        - ``0`` when the query sorts after every file or the index is empty
        """
        keys = self._keys
        wanted = query.key
        start = bisect_left(keys, wanted)
        if start == len(keys):
            return 0
        if keys[start] != wanted:
            return self.entries[start].sequence_index

        end = bisect_right(keys, wanted, lo=start)
        group = self.entries[start:end]
        pos = bisect_left(group, query.line, key=lambda e: e.location.line)
        if pos < len(group):
            return group[pos].sequence_index
        return group[0].sequence_index


def _entry_key(record: InstructionRecord) -> tuple[str, int]:
    return (record.location.sort_key, record.location.line)
