"""Command history with terminal-style previous/next navigation."""

from __future__ import annotations

import logging
from typing import List, Optional

from typeguard import typechecked

from . import HISTORY_MAX_SIZE

logger = logging.getLogger("serial_talker.history")


@typechecked
class CommandHistory:
    """Bounded list of previously sent commands plus a navigation cursor.

    ``get_previous`` walks backward and stops at the oldest entry;
    ``get_next`` walks forward and leaves the history (returning ``""``)
    after the newest one, like pressing up/down in a shell.
    """

    def __init__(self, max_size: int = HISTORY_MAX_SIZE) -> None:
        if max_size <= 0:
            raise ValueError(f"History size must be positive, got {max_size}")
        self.max_size = max_size
        self._entries: List[str] = []
        self._cursor: Optional[int] = None  # None means "no position"

    def add(self, command: str) -> None:
        """Append a command, skipping blanks and immediate repeats."""
        if not command.strip():
            return
        if self._entries and self._entries[-1] == command:
            return

        self._entries.append(command)
        if len(self._entries) > self.max_size:
            evicted = self._entries.pop(0)
            logger.debug("[HISTORY] Evicted oldest entry %r", evicted)
        self._cursor = None

    def get_previous(self) -> str:
        if not self._entries:
            return ""
        if self._cursor is None:
            self._cursor = len(self._entries) - 1
        elif self._cursor > 0:
            self._cursor -= 1
        return self._entries[self._cursor]

    def get_next(self) -> str:
        if not self._entries or self._cursor is None:
            return ""
        if self._cursor >= len(self._entries) - 1:
            self._cursor = None
            return ""
        self._cursor += 1
        return self._entries[self._cursor]

    def reset(self) -> None:
        """Drop the navigation position; entries are kept."""
        self._cursor = None

    def size(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
        self._cursor = None

    def entries(self) -> List[str]:
        """Return a copy of the stored commands, oldest first."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
