"""Session history of landed sweep and close transactions."""
from typing import Iterator, List

from models.schemas import TransactionLogEntry


class TransactionLog:
    """Append-only list of landed signatures, kept in memory only."""

    def __init__(self):
        self._entries: List[TransactionLogEntry] = []

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[TransactionLogEntry]:
        return iter(list(self._entries))

    @property
    def entries(self) -> List[TransactionLogEntry]:
        return list(self._entries)

    def append(self, signature: str, tokens: List[str]) -> TransactionLogEntry:
        entry = TransactionLogEntry(signature=signature, tokens=list(tokens))
        self._entries.append(entry)
        return entry

    def extend(self, entries: List[TransactionLogEntry]) -> None:
        self._entries.extend(entries)

    def clear(self) -> None:
        self._entries.clear()
