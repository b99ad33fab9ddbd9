# Overview: Human-readable document number generation (sale, patient and prescription numbers).

"""
Collision-probe number generation.

Numbers look like ``<PREFIX><YEAR><NNNN>`` (e.g. ``SALE20261234``). A random
4-digit suffix is drawn and the target column is probed for an existing row;
on collision a fresh suffix is drawn, up to ``MAX_ATTEMPTS`` times.

The probe only discovers collisions; it does not reserve the number. The
target columns carry a UNIQUE constraint, so two requests that draw the same
free number concurrently fail at commit (IntegrityError) and roll back.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime

from sqlalchemy import exists, select

from ..time_utils import utcnow

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 10
SUFFIX_MIN = 1000
SUFFIX_MAX = 9999  # exclusive

SALE_NUMBER_PREFIX = "SALE"
PATIENT_NUMBER_PREFIX = "PAT"
PRESCRIPTION_NUMBER_PREFIX = "RX"


class NumberGenerationError(Exception):
    """Raised when every candidate number collided. Not retryable."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def format_number(prefix: str, year: int, suffix: int) -> str:
    return f"{prefix}{year}{suffix}"


def generate_unique_number(
    session,
    column,
    prefix: str,
    *,
    rng: random.Random | None = None,
    attempts: int = MAX_ATTEMPTS,
    now: datetime | None = None,
) -> str:
    """
    Return a number for ``column`` that no existing row uses.

    Args:
        session: Session handle used for the existence probe
        column: Mapped unique string column (e.g. ``Sale.sale_number``)
        prefix: Fixed leading text ("SALE", "PAT", "RX")
        rng: Random source; defaults to the module-level generator
        attempts: Probe budget before giving up
        now: Clock override for the year component

    Raises:
        NumberGenerationError if all ``attempts`` candidates already exist
    """
    rng = rng or random
    year = (now or utcnow()).year

    for attempt in range(1, attempts + 1):
        candidate = format_number(prefix, year, rng.randrange(SUFFIX_MIN, SUFFIX_MAX))
        taken = session.execute(select(exists().where(column == candidate))).scalar()
        if not taken:
            return candidate
        logger.debug("Number %s already taken (attempt %d/%d)", candidate, attempt, attempts)

    logger.error("Unable to generate unique %s number after %d attempts", prefix, attempts)
    raise NumberGenerationError(
        f"Unable to generate unique {prefix.lower()} number",
        details={"prefix": prefix, "attempts": attempts},
    )
