"""Derived itinerary values."""

from collections.abc import Sequence
from datetime import date
from typing import Protocol


class DatedStop(Protocol):
    start_date: date
    end_date: date


def trip_length_days(stops: Sequence[DatedStop]) -> int:
    """
    Inclusive day span from the first stop's start to the last stop's end.

    ``stops`` must already be in itinerary order; first and last are taken by
    position, not by date. An empty itinerary, or one whose last stop ends
    before its first stop starts, has length 0.
    """
    if not stops:
        return 0
    span = (stops[-1].end_date - stops[0].start_date).days + 1
    return max(span, 0)
