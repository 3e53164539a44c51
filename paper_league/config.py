"""League rule settings.

Values are read from the environment (prefix LEDGER_) or a local .env file,
following the same pydantic-settings pattern as the database Settings.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LedgerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="LEDGER_", env_file=".env", extra="ignore")

    default_balance: float = Field(default=100_000.0, gt=0.0)
    # Headroom below the store's hard limit of 500 ops per atomic batch.
    batch_op_limit: int = Field(default=450, gt=0, le=500)
    carry_forward_chunk_size: int = Field(default=10, gt=0)
    settlement_chunk_size: int = Field(default=50, gt=0)
    # Weeks end Friday 21:00 UTC.
    week_end_weekday: int = Field(default=4, ge=0, le=6)
    week_end_hour: int = Field(default=21, ge=0, le=23)


@lru_cache
def get_settings() -> LedgerSettings:
    return LedgerSettings()
