"""Drill cards and word lists with a stable content fingerprint."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

# Separators that cannot appear in normal card text, so that
# ("ab", "c") and ("a", "bc") never hash the same.
_FIELD_SEP = "\x1f"
_ITEM_SEP = "\x1e"


@dataclass(frozen=True)
class WordItem:
    front: str
    back: str
    media_ref: Optional[str] = None


class WordList:
    """Immutable ordered sequence of drill cards."""

    def __init__(self, items: Iterable[WordItem]):
        self._items: tuple[WordItem, ...] = tuple(items)
        self._fingerprint: str | None = None

    @classmethod
    def from_pairs(cls, pairs: Iterable[tuple[str, str]]) -> "WordList":
        return cls(WordItem(front=front, back=back) for front, back in pairs)

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[WordItem]:
        return iter(self._items)

    def __getitem__(self, index: int) -> WordItem:
        return self._items[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, WordList):
            return NotImplemented
        return self._items == other._items

    def __hash__(self) -> int:
        return hash(self._items)

    def __repr__(self) -> str:
        return f"WordList({len(self._items)} items, fingerprint={self.fingerprint[:12]})"

    @property
    def items(self) -> tuple[WordItem, ...]:
        return self._items

    @property
    def fingerprint(self) -> str:
        """SHA-256 over the ordered front/back text of every card.

        Media references are not part of the identity: swapping an image
        does not invalidate a learner's progress.
        """
        if self._fingerprint is None:
            joined = _ITEM_SEP.join(
                f"{item.front}{_FIELD_SEP}{item.back}" for item in self._items
            )
            payload = f"{len(self._items)}{_ITEM_SEP}{joined}"
            self._fingerprint = hashlib.sha256(payload.encode("utf-8")).hexdigest()
        return self._fingerprint

    def subset(self, indices: Iterable[int]) -> "WordList":
        """Return the cards at ``indices`` in their original relative order."""
        wanted = set(indices)
        return WordList(item for i, item in enumerate(self._items) if i in wanted)
