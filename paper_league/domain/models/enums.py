"""Domain enumerations for the paper-trading league.

All string-valued enums use str mixin so they serialize cleanly to JSON
documents and remain comparable to plain strings read back from the store.
"""

from enum import Enum


class WeekStatus(str, Enum):
    UPCOMING = "upcoming"
    OPEN = "open"
    CLOSED = "closed"
    SETTLED = "settled"

    @property
    def rank(self) -> int:
        """Position in the forward lifecycle; status may only move to a higher rank."""
        return {
            WeekStatus.UPCOMING: 0,
            WeekStatus.OPEN: 1,
            WeekStatus.CLOSED: 2,
            WeekStatus.SETTLED: 3,
        }[self]


class InstrumentSource(str, Enum):
    YAHOO = "yahoo"
    TEFAS = "tefas"


class BalanceSource(str, Enum):
    """Which level of the predecessor lookup produced a starting balance."""

    WEEKLY_BALANCE = "weekly_balance"
    ALLOCATION = "allocation"
    REPLAY = "replay"
    FALLBACK = "fallback"
