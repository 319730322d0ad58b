"""
Command history test suite.

Run with full visibility:
    pytest tests/test_history.py -v -s
"""

from __future__ import annotations

import pytest

from serial_talker import HISTORY_MAX_SIZE
from serial_talker.history import CommandHistory

try:
    from typeguard import TypeCheckError
    _TYPEGUARD_ERRORS = (TypeError, TypeCheckError)
except ImportError:
    _TYPEGUARD_ERRORS = (TypeError,)


def _report(label, detail=""):
    # type: (str, str) -> None
    if detail:
        print("  [{}] {}".format(label, detail))
    else:
        print("  [{}]".format(label))


@pytest.fixture()
def xyz():
    """History holding x, y, z (z newest)."""
    history = CommandHistory()
    for command in ("x", "y", "z"):
        history.add(command)
    return history


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS — Adding Commands
# ═══════════════════════════════════════════════════════════════════════════

class TestAdd:
    """Blank suppression, duplicate suppression and eviction."""

    def test_immediate_duplicate_ignored(self):
        # type: () -> None
        history = CommandHistory()
        history.add("a")
        history.add("a")
        assert history.size() == 1

    def test_non_adjacent_duplicate_kept(self):
        # type: () -> None
        history = CommandHistory()
        for command in ("a", "b", "a"):
            history.add(command)
        assert history.entries() == ["a", "b", "a"]

    @pytest.mark.parametrize("blank", ["", " ", "\t\r\n"])
    def test_blank_ignored(self, blank):
        # type: (str) -> None
        history = CommandHistory()
        history.add(blank)
        assert history.size() == 0

    def test_surrounding_whitespace_is_stored_verbatim(self):
        # type: () -> None
        history = CommandHistory()
        history.add(" AT ")
        assert history.entries() == [" AT "]

    def test_oldest_evicted_beyond_capacity(self):
        # type: () -> None
        _report("TEST", "Adding 51 distinct commands keeps the newest 50")
        history = CommandHistory()
        for i in range(51):
            history.add("cmd{}".format(i))
        assert HISTORY_MAX_SIZE == 50
        assert history.size() == 50
        assert history.entries()[0] == "cmd1"
        assert history.entries()[-1] == "cmd50"
        _report("PASS", "cmd0 evicted")

    def test_custom_capacity(self):
        # type: () -> None
        history = CommandHistory(max_size=2)
        for command in ("a", "b", "c"):
            history.add(command)
        assert history.entries() == ["b", "c"]
        assert len(history) == 2

    def test_invalid_capacity(self):
        # type: () -> None
        with pytest.raises(ValueError):
            CommandHistory(max_size=0)

    def test_add_resets_cursor(self, xyz):
        # type: (CommandHistory) -> None
        assert xyz.get_previous() == "z"
        assert xyz.get_previous() == "y"
        xyz.add("w")
        assert xyz.get_previous() == "w"

    def test_rejects_non_string(self):
        # type: () -> None
        with pytest.raises(_TYPEGUARD_ERRORS):
            CommandHistory().add(42)  # type: ignore[arg-type]


# ═══════════════════════════════════════════════════════════════════════════
#  TESTS — Navigation
# ═══════════════════════════════════════════════════════════════════════════

class TestNavigation:
    """Previous/next browsing like a shell's up/down keys."""

    def test_empty_history(self):
        # type: () -> None
        history = CommandHistory()
        assert history.get_previous() == ""
        assert history.get_next() == ""

    def test_previous_walks_back_and_stops_at_oldest(self, xyz):
        # type: (CommandHistory) -> None
        assert xyz.get_previous() == "z"
        assert xyz.get_previous() == "y"
        assert xyz.get_previous() == "x"
        assert xyz.get_previous() == "x"
        assert xyz.get_next() == "y"
        _report("PASS", "z, y, x, x then next -> y")

    def test_next_without_position_is_empty(self, xyz):
        # type: (CommandHistory) -> None
        assert xyz.get_next() == ""
        assert xyz.get_previous() == "z"

    def test_next_past_newest_leaves_history(self, xyz):
        # type: (CommandHistory) -> None
        xyz.get_previous()
        xyz.get_previous()
        assert xyz.get_next() == "z"
        assert xyz.get_next() == ""
        assert xyz.get_next() == ""
        assert xyz.get_previous() == "z"

    def test_reset_keeps_entries(self, xyz):
        # type: (CommandHistory) -> None
        xyz.get_previous()
        xyz.get_previous()
        xyz.reset()
        assert xyz.size() == 3
        assert xyz.get_previous() == "z"

    def test_clear(self, xyz):
        # type: (CommandHistory) -> None
        xyz.get_previous()
        xyz.clear()
        assert xyz.size() == 0
        assert xyz.get_previous() == ""
        xyz.add("n")
        assert xyz.get_previous() == "n"
