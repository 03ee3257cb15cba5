"""Load OHLCV bars from CSV files (one file per symbol)."""

from __future__ import annotations
from datetime import datetime
from pathlib import Path
from typing import Union

import pandas as pd

from quant_research.core.errors import MarketDataFetchError
from quant_research.core.types import BAR_COLUMNS
from quant_research.data.provider import MarketDataProvider


def load_bars_csv(path: Union[str, Path]) -> pd.DataFrame:
    """Read a CSV with timestamp, open, high, low, close[, volume] columns, sorted by time."""
    df = pd.read_csv(path)
    df.columns = [c.strip().lower() for c in df.columns]
    if "time" in df.columns and "timestamp" not in df.columns:
        df = df.rename(columns={"time": "timestamp"})
    missing = [c for c in ("timestamp", "open", "high", "low", "close") if c not in df.columns]
    if missing:
        raise ValueError(f"{path}: missing columns {missing}")
    if "volume" not in df.columns:
        df["volume"] = 0.0
    df["timestamp"] = pd.to_datetime(df["timestamp"])
    for col in ("open", "high", "low", "close", "volume"):
        df[col] = df[col].astype(float)
    return df[BAR_COLUMNS].sort_values("timestamp").reset_index(drop=True)


class CsvMarketData(MarketDataProvider):
    """Provider reading `<directory>/<SYMBOL>.csv`."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)

    def get_bars(
        self,
        symbol: str,
        start: datetime,
        end: datetime,
        timeframe: str = "1Day",
    ) -> pd.DataFrame:
        path = self.directory / f"{symbol.upper()}.csv"
        if not path.exists():
            raise MarketDataFetchError(symbol, f"no CSV at {path}")
        try:
            df = load_bars_csv(path)
        except (ValueError, pd.errors.ParserError) as e:
            raise MarketDataFetchError(symbol, str(e))
        mask = (df["timestamp"] >= pd.Timestamp(start)) & (df["timestamp"] <= pd.Timestamp(end))
        df = df.loc[mask].reset_index(drop=True)
        if df.empty:
            raise MarketDataFetchError(symbol, f"no bars between {start.date()} and {end.date()}")
        return df
