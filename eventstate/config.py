"""Runtime settings, read from EVENTSTATE_* environment variables."""

import os
from pathlib import Path
from typing import Self

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field

from eventstate.events.registry import DuplicatePolicy

ENV_PREFIX = "EVENTSTATE_"


class Settings(BaseModel):
    events_db: str = "events.db"
    state_db: str = "state.db"

    # State cache
    cache_enabled: bool = True
    cache_row_id: str = "state"
    cache_max_attempts: int = Field(default=5, ge=1)
    cache_retry_backoff: float = Field(default=0.05, ge=0)

    # Change feed
    feed_poll_interval: float = Field(default=1.0, gt=0)
    feed_max_restarts: int = Field(default=5, ge=0)
    feed_retry_backoff: float = Field(default=0.5, ge=0)

    duplicate_reducers: DuplicatePolicy = DuplicatePolicy.OVERRIDE
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: str | Path | None = None) -> Self:
        """Load a .env file (if any) into the environment, then read settings.

        Each field maps to ``EVENTSTATE_<FIELD>``, e.g. EVENTSTATE_CACHE_ENABLED.
        Variables already set in the environment win over the .env file.
        """
        load_dotenv(env_file or find_dotenv(usecwd=True))
        values = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                values[name] = raw
        return cls.model_validate(values)
