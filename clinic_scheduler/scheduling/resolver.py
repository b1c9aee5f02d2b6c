"""Turns weekly availability windows and schedule blocks into slot candidates.

Everything here is pure: callers hand in the windows and blocks they loaded and
get back a generator, so the same inputs always produce the same candidates and
a new call starts over from the beginning.
"""

from datetime import date, datetime, time, timedelta
from typing import Iterable, Iterator, NamedTuple


class SlotCandidate(NamedTuple):
    date: date
    start_time: time
    end_time: time


def iso_day_of_week(day: date) -> int:
    """Day index with 0 for Sunday through 6 for Saturday."""
    return (day.weekday() + 1) % 7


def iterate_dates(date_from: date, date_to: date) -> Iterator[date]:
    current = date_from
    while current <= date_to:
        yield current
        current += timedelta(days=1)


def subtract_intervals(
    start: datetime,
    end: datetime,
    removed: Iterable[tuple[datetime, datetime]],
) -> list[tuple[datetime, datetime]]:
    """Return the parts of [start, end) not covered by any removed interval."""
    fragments = [(start, end)]

    for removed_start, removed_end in sorted(removed):
        next_fragments = []
        for fragment_start, fragment_end in fragments:
            if removed_end <= fragment_start or removed_start >= fragment_end:
                next_fragments.append((fragment_start, fragment_end))
                continue
            if removed_start > fragment_start:
                next_fragments.append((fragment_start, removed_start))
            if removed_end < fragment_end:
                next_fragments.append((removed_end, fragment_end))
        fragments = next_fragments

    return fragments


def split_into_granules(
    start: datetime,
    end: datetime,
    granularity: timedelta,
) -> Iterator[tuple[datetime, datetime]]:
    # A trailing remainder shorter than one granule is dropped.
    current = start
    while current + granularity <= end:
        yield current, current + granularity
        current += granularity


def resolve_candidates(
    windows: Iterable,
    blocks: Iterable,
    date_from: date,
    date_to: date,
    granularity_minutes: int,
    not_before: datetime | None = None,
) -> Iterator[SlotCandidate]:
    """Yield bookable candidates for every date in [date_from, date_to], in order.

    ``windows`` are objects with ``day_of_week``, ``start_time`` and ``end_time``;
    ``blocks`` are objects with ``start_datetime`` and ``end_datetime``. Blocks
    take precedence over windows. Overlapping windows produce duplicate
    candidates, which are left for the ledger's uniqueness key to collapse.
    Candidates starting before ``not_before`` are skipped when it is given.
    """
    if granularity_minutes <= 0:
        raise ValueError('granularity_minutes must be positive')

    granularity = timedelta(minutes=granularity_minutes)

    windows_by_day: dict[int, list[tuple[time, time]]] = {}
    for window in windows:
        if window.start_time >= window.end_time:
            continue
        windows_by_day.setdefault(window.day_of_week, []).append((window.start_time, window.end_time))

    block_intervals = sorted(
        (block.start_datetime, block.end_datetime)
        for block in blocks
        if block.start_datetime < block.end_datetime
    )

    for current_day in iterate_dates(date_from, date_to):
        day_windows = windows_by_day.get(iso_day_of_week(current_day))
        if not day_windows:
            continue

        day_start = datetime.combine(current_day, time.min)
        day_end = day_start + timedelta(days=1)
        day_blocks = [
            (block_start, block_end)
            for block_start, block_end in block_intervals
            if block_start < day_end and block_end > day_start
        ]

        day_candidates = []
        for window_start, window_end in day_windows:
            open_fragments = subtract_intervals(
                datetime.combine(current_day, window_start),
                datetime.combine(current_day, window_end),
                day_blocks,
            )
            for fragment_start, fragment_end in open_fragments:
                for slot_start, slot_end in split_into_granules(fragment_start, fragment_end, granularity):
                    if not_before is not None and slot_start < not_before:
                        continue
                    day_candidates.append(SlotCandidate(current_day, slot_start.time(), slot_end.time()))

        day_candidates.sort()
        yield from day_candidates
