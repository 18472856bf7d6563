"""
Undo journal for the in-memory tables.

While a checkpoint is open, a record is copied the first time a call reads
or writes it through its storage. Reverting puts those copies back and
drops records that did not exist at the checkpoint, so the cost of a call
depends on what it touches, not on the size of the tables.

API mirrors a state journal: ``checkpoint()``, ``revert(cp)``, ``commit(cp)``.
"""

import copy
from typing import Any, Dict, Hashable, Optional, Tuple

_MISSING = object()


class CheckpointError(RuntimeError):
    """A checkpoint was reverted or committed while not open."""

    pass


class Journal:
    """Prior values of every (table, key) touched since the open checkpoint."""

    def __init__(self):
        self._entries: Optional[Dict[Tuple[int, Hashable], Tuple[dict, Hashable, Any]]] = None
        self._last = 0

    @property
    def active(self) -> bool:
        return self._entries is not None

    def checkpoint(self) -> int:
        """Start recording. Returns the checkpoint to pass to revert/commit."""
        self._entries = {}
        self._last += 1
        return self._last

    def touch(self, table: dict, key: Hashable) -> None:
        """Remember ``table[key]`` as it is now, once per checkpoint."""
        if self._entries is None:
            return
        slot = (id(table), key)
        if slot in self._entries:
            return
        old = copy.deepcopy(table[key]) if key in table else _MISSING
        self._entries[slot] = (table, key, old)

    def revert(self, cp: int) -> None:
        """Put every touched record back and close the checkpoint."""
        self._require_open(cp)
        for table, key, old in list(self._entries.values()):
            if old is _MISSING:
                table.pop(key, None)
            else:
                table[key] = old
        self._entries = None

    def commit(self, cp: int) -> None:
        """Keep the changes and close the checkpoint."""
        self._require_open(cp)
        self._entries = None

    def _require_open(self, cp: int) -> None:
        if self._entries is None or cp != self._last:
            raise CheckpointError(f"Checkpoint {cp} is not open")
