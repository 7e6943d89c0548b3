"""
Runtime configuration read from the environment (and a ``.env`` file).
"""

import os
from pathlib import Path
from typing import Final, Optional

from dotenv import load_dotenv

from studyspend.period import DEFAULT_IDLE_TIMEOUT_MINUTES

load_dotenv()


def _seed_path() -> Optional[Path]:
    raw = os.getenv("STUDYSPEND_SEED_PATH", "")
    return Path(raw) if raw else None


class Config:
    LOG_LEVEL: Final[str] = os.getenv("STUDYSPEND_LOG_LEVEL", "INFO")
    IDLE_TIMEOUT_MINUTES: Final[int] = int(
        os.getenv("STUDYSPEND_IDLE_TIMEOUT_MINUTES", str(DEFAULT_IDLE_TIMEOUT_MINUTES))
    )
    SEED_PATH: Final[Optional[Path]] = _seed_path()
    CURRENCY_SYMBOL: Final[str] = os.getenv("STUDYSPEND_CURRENCY_SYMBOL", "₹")

    @classmethod
    def validate(cls) -> None:
        if cls.IDLE_TIMEOUT_MINUTES <= 0:
            raise ValueError("STUDYSPEND_IDLE_TIMEOUT_MINUTES must be a positive number of minutes")
        if cls.SEED_PATH is not None and not cls.SEED_PATH.exists():
            raise ValueError(f"Seed file {cls.SEED_PATH} does not exist")
