"""
SchemeFS Stream: Open handle records.

Handles are owned by the dispatcher's handle table and addressed by an
opaque integer id. Each record remembers the identifier it was opened with.
"""

import os
from dataclasses import dataclass, field
from typing import BinaryIO, List, Optional


@dataclass
class FileHandle:
    """An open file stream."""

    uri: str  # Identifier used to open the file
    real_path: str  # Resolved concrete path
    mode: str  # Mode string passed to open()
    file: BinaryIO  # Native binary file object
    at_eof: bool = False  # A read hit end of file
    read_timeout: Optional[float] = None  # Seconds, applied before each read
    write_through: bool = True  # Flush after every write

    def fileno(self) -> int:
        return self.file.fileno()


@dataclass
class DirectoryHandle:
    """An open directory stream.

    The entry list is read once at open time; ``.`` and ``..`` come first,
    as with a native directory stream.
    """

    uri: str
    real_path: str
    entries: List[str] = field(default_factory=list)
    position: int = 0

    @classmethod
    def open(cls, uri: str, real_path: str) -> "DirectoryHandle":
        """Snapshot a directory's entries.

        Raises:
            OSError: If the directory cannot be listed
        """
        with os.scandir(real_path) as scanner:
            names = [entry.name for entry in scanner]
        return cls(uri=uri, real_path=real_path, entries=[".", ".."] + names)

    def next_entry(self) -> Optional[str]:
        if self.position >= len(self.entries):
            return None
        name = self.entries[self.position]
        self.position += 1
        return name

    def rewind(self) -> None:
        self.position = 0
