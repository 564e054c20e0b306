"""
Validated kernel source files, in the order they were given.
"""

import os
import stat
from typing import NamedTuple


class SourceError(Exception):
    """A source file could not be used"""


class SourceEntry(NamedTuple):
    """
    A source file that existed and was not a directory when it was checked.
    """

    path: str
    size: int
    is_directory: bool = False

    @classmethod
    def from_path(cls, path):
        try:
            st = os.stat(path)
        except OSError as e:
            raise SourceError(f"Could not open file {path}") from e

        if stat.S_ISDIR(st.st_mode):
            raise SourceError("Cannot handle directories")

        return cls(path=path, size=st.st_size, is_directory=False)


class SourceRegistry:
    """
    Append-only sequence of source entries. Duplicates are kept.
    """

    def __init__(self, entries=()):
        self._entries = []
        for entry in entries:
            self.append(entry)

    @classmethod
    def from_paths(cls, paths):
        return cls(SourceEntry.from_path(path) for path in paths)

    def append(self, entry: SourceEntry):
        self._entries.append(entry)

    def __iter__(self):
        return iter(self._entries)

    def __len__(self):
        return len(self._entries)

    def __repr__(self):
        return f"SourceRegistry({[e.path for e in self._entries]})"
