"""Unit tests for utils.timeframes."""

import pytest
from quant_research.utils.timeframes import parse_timeframe


def test_parse_timeframe():
    assert parse_timeframe("15Min") == (15, "minute")
    assert parse_timeframe("1Hour") == (1, "hour")
    assert parse_timeframe(" 1Day ") == (1, "day")
    assert parse_timeframe("Day") == (1, "day")


def test_timeframe_invalid():
    with pytest.raises(ValueError):
        parse_timeframe("1x")
    with pytest.raises(ValueError):
        parse_timeframe("0Min")
    with pytest.raises(ValueError):
        parse_timeframe("1.5Hour")
