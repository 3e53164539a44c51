"""Week domain model.

A Week is identified by its ISO week id ("2025-W30").  Its status follows the
forward lifecycle upcoming -> open -> closed -> settled; moving backwards is
only allowed through a reasoned administrative correction (see WeekService).
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import WeekStatus

WEEK_ID_PATTERN = r"^\d{4}-W\d{2}$"


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the store."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Week(BaseModel):
    """One weekly trading round.

    instrument_set is the ordered set of instrument codes tradable that week.
    start_date/end_date bound the market period; open_at/close_at bound the
    allocation window.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(pattern=WEEK_ID_PATTERN)
    status: WeekStatus = WeekStatus.UPCOMING
    start_date: datetime | None = None
    end_date: datetime | None = None
    open_at: datetime | None = None
    close_at: datetime | None = None
    settled_at: datetime | None = None
    instrument_set: list[str] = Field(default_factory=list)

    @field_validator("start_date", "end_date", "open_at", "close_at", "settled_at")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value)

    @field_validator("instrument_set")
    @classmethod
    def _unique_instruments(cls, value: list[str]) -> list[str]:
        if len(set(value)) != len(value):
            raise ValueError(f"instrument_set contains duplicate codes: {value}")
        return value

    @property
    def is_settled(self) -> bool:
        return self.status == WeekStatus.SETTLED
