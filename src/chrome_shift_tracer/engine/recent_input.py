"""
Correction pass for `had_recent_input` on early layout shifts.

Chrome flags shifts as following user input when the viewport emulation
changes after navigation starts, so the first shifts of a load would never
count toward CLS. Flagged shifts close to the first viewport change get a copy
with the flag cleared; the first shift that is not flagged ends the leniency.
"""

import logging
from typing import Optional, Sequence, Tuple, Union

from ..trace_event import TraceEvent

logger = logging.getLogger(__name__)

VIEWPORT_EVENT = "viewport"
NAVIGATION_START_EVENT = "navigationStart"


def find_viewport_change_ts(events: Sequence[TraceEvent]) -> Optional[Union[int, float]]:
    """Timestamp of the first viewport change, falling back to the first navigation start."""
    navigation_ts = None
    for event in events:
        if event.name == VIEWPORT_EVENT:
            return event.ts
        if navigation_ts is None and event.name == NAVIGATION_START_EVENT:
            navigation_ts = event.ts
    return navigation_ts


def correct_recent_input(events: Sequence[TraceEvent], window_us: Union[int, float]) -> Tuple[TraceEvent, ...]:
    """
    Returns a new event tuple where qualifying shifts have `had_recent_input`
    cleared. `events` itself is left untouched.
    """
    viewport_ts = find_viewport_change_ts(events)
    if viewport_ts is None:
        return tuple(events)

    corrected = list(events)
    corrected_count = 0
    for index, event in enumerate(events):
        if not event.is_layout_shift:
            continue
        if not event.data.get("had_recent_input"):
            break
        if event.ts - viewport_ts <= window_us:
            corrected[index] = event.with_data(had_recent_input=False)
            corrected_count += 1

    if corrected_count:
        logger.debug("Cleared had_recent_input on %d early layout shifts", corrected_count)
    return tuple(corrected)
