"""
Local Estimation Rules

Deterministic heuristics used when no predictor is configured or when
every predictor tier failed. Also shared by the mock predictor so that
development estimates look like production ones.
"""

import math
from typing import Sequence

from smartqueue.entities import HistoryRecord

# Inclusive local-hour windows considered rush hours
PEAK_WINDOWS = ((11, 14), (17, 19))
PEAK_MULTIPLIER = 1.4

# Minutes each queued token adds on top of the item's prep time
QUEUE_MINUTES_PER_TOKEN = 2.5

QUEUE_LENGTH_REASONING = "Estimated based on queue length."
COMPLETION_THRESHOLD_REASONING = "Order time threshold reached."
STANDARD_COMPLETION_REASONING = "Standard completion time reached."


def is_peak_hour(hour: int) -> bool:
    return any(start <= hour <= end for start, end in PEAK_WINDOWS)


def queue_length_minutes(queue_length: int) -> int:
    """Baseline estimate from queue length alone."""
    return max(5, queue_length * 3)


def average_prep_minutes(history: Sequence[HistoryRecord], default: int) -> int:
    """Rounded mean prep time of ``history``, or ``default`` when empty."""
    if not history:
        return default
    mean = sum(h.prep_time_minutes for h in history) / len(history)
    # Half-up, matching how the dashboard rounds minutes
    return math.floor(mean + 0.5)


def history_minutes(average_prep: int, queue_length: int, hour: int) -> int:
    """Prep time plus queue time, with the rush-hour surcharge."""
    minutes = average_prep + queue_length * QUEUE_MINUTES_PER_TOKEN
    if is_peak_hour(hour):
        minutes *= PEAK_MULTIPLIER
    return math.floor(minutes + 0.5)


def history_reasoning(average_prep: int, hour: int) -> str:
    surge = " + peak hour surge" if is_peak_hour(hour) else ""
    return f"{average_prep}min prep{surge}"
