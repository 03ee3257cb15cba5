"""Timeframe string parsing ('1Min', '5Min', '15Min', '1Hour', '1Day')."""

from __future__ import annotations


def parse_timeframe(tf: str) -> tuple[int, str]:
    """Split a timeframe into (multiplier, timespan), e.g. '15Min' -> (15, 'minute')."""
    tf = tf.strip()
    lowered = tf.lower()
    for suffix, span in (("min", "minute"), ("hour", "hour"), ("day", "day")):
        if lowered.endswith(suffix):
            number = lowered[: -len(suffix)] or "1"
            if not number.isdigit() or int(number) <= 0:
                break
            return int(number), span
    raise ValueError(f"Unsupported timeframe: {tf}")
