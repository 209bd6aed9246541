"""
Date classifier.

Maps a birth date to a 60-cycle index (animal character) and a 10-cycle
day stem (element, guardian) by day-count modulo against fixed epochs.
"""

from datetime import date
from typing import Optional

from shirokuma.agents.schemas import UNKNOWN, ClassificationResult
from shirokuma.services.assets import Assets

STEMS = ["甲", "乙", "丙", "丁", "戊", "己", "庚", "辛", "壬", "癸"]

# 1900-02-20 is a 甲子 day (cycle index 1); 1900-01-01 is a 甲戌 day (stem 甲)
DEFAULT_CYCLE_EPOCH = date(1900, 2, 20)
DEFAULT_STEM_EPOCH = date(1900, 1, 1)


class ClassificationError(Exception):
    """Raised when a date resolves to no known calendrical attributes."""


def days_between(target: date, epoch: date) -> int:
    # date arithmetic is calendar-day based, so no timezone can shift the result
    return (target - epoch).days


def cycle_index(target: date, epoch: date = DEFAULT_CYCLE_EPOCH) -> int:
    """1-60 position of target in the 60-day cycle."""
    return ((days_between(target, epoch) % 60) + 60) % 60 + 1


def stem_index(target: date, epoch: date = DEFAULT_STEM_EPOCH) -> int:
    """0-9 position of target in the 10-day stem cycle."""
    return ((days_between(target, epoch) % 10) + 10) % 10


def classify(
    target: date,
    assets: Assets,
    cycle_epoch: Optional[date] = None,
    stem_epoch: Optional[date] = None,
) -> ClassificationResult:
    """
    Classify a date. Lookup misses resolve to UNKNOWN instead of raising.

    Args:
        target: Birth date
        assets: Loaded lookup tables
        cycle_epoch: Override for the 60-cycle epoch
        stem_epoch: Override for the stem epoch

    Returns:
        ClassificationResult (check is_resolved before using it)
    """
    index = cycle_index(target, cycle_epoch or DEFAULT_CYCLE_EPOCH)
    s_index = stem_index(target, stem_epoch or DEFAULT_STEM_EPOCH)
    symbol = STEMS[s_index]
    stem_attrs = assets.stems.get(symbol, {})

    return ClassificationResult(
        cycle_index=index,
        stem_index=s_index,
        stem_symbol=symbol,
        animal=assets.animals.get(index, UNKNOWN),
        element=stem_attrs.get("element", UNKNOWN),
        guardian=stem_attrs.get("guardian", UNKNOWN),
    )
