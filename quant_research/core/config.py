"""
Load configuration from config.yaml and .env. API keys only from env.
"""

from __future__ import annotations
import os
from pathlib import Path
from typing import Any, List, Optional

import yaml
from dotenv import load_dotenv

from quant_research.core.errors import ConfigurationError
from quant_research.core.types import RiskLimits, StrategyWeights
from quant_research.strategies.settings import (
    BreakoutSettings,
    MeanReversionSettings,
    MomentumSettings,
    settings_from_dict,
)
from quant_research.utils.timeframes import parse_timeframe


def _env_path(project_root: Optional[Path] = None) -> Path:
    root = project_root or Path(__file__).resolve().parents[2]
    return root / ".env"


def load_dotenv_if_exists(project_root: Optional[Path] = None) -> None:
    """Load .env from project root if present."""
    path = _env_path(project_root)
    if path.exists():
        load_dotenv(path)


def load_config(config_path: Optional[Path] = None, project_root: Optional[Path] = None) -> "Config":
    """Load config.yaml and overlay with env. Returns Config. Invalid values raise ConfigurationError."""
    load_dotenv_if_exists(project_root)
    root = project_root or Path(__file__).resolve().parents[2]
    path = config_path or root / "config.yaml"
    data: dict[str, Any] = {}
    if path.exists():
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"{path}: invalid YAML: {e}")
    elif config_path is not None:
        raise ConfigurationError(f"Config file not found: {path}")
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: top level must be a mapping")

    # Env overrides (for secrets and overrides)
    def env(key: str, default: str = "") -> str:
        return os.getenv(key, default).strip()

    def env_int(key: str, default: int) -> int:
        raw = os.getenv(key)
        if raw is None or not raw.strip():
            return int(default)
        try:
            return int(raw)
        except ValueError:
            raise ConfigurationError(f"{key} must be an integer, got {raw!r}")

    def env_float(key: str, default: float) -> float:
        raw = os.getenv(key)
        if raw is None or not raw.strip():
            return float(default)
        try:
            return float(raw)
        except ValueError:
            raise ConfigurationError(f"{key} must be a number, got {raw!r}")

    strategies = data.get("strategies", {}) or {}
    market = data.get("market_data", {}) or {}
    backtest = data.get("backtest", {}) or {}
    logging_cfg = data.get("logging", {}) or {}

    symbols_env = env("SYMBOLS")
    if symbols_env:
        symbols = [s.strip().upper() for s in symbols_env.split(",") if s.strip()]
    else:
        symbols = [str(s).upper() for s in data.get("symbols", [])]

    return Config(
        # API (env only; never put keys in config.yaml)
        polygon_api_key=env("POLYGON_API_KEY"),
        symbols=symbols,
        timeframe=env("TIMEFRAME", str(market.get("timeframe", "1Day"))),
        data_dir=Path(env("DATA_DIR", market.get("data_dir", "data"))),
        cache_ttl_seconds=env_float("CACHE_TTL_SECONDS", market.get("cache_ttl_seconds", 86400)),
        request_timeout=float(market.get("request_timeout", 10.0)),
        # Strategies
        momentum=settings_from_dict(MomentumSettings, strategies.get("momentum", {}) or {}),
        mean_reversion=settings_from_dict(MeanReversionSettings, strategies.get("mean_reversion", {}) or {}),
        breakout=settings_from_dict(BreakoutSettings, strategies.get("breakout", {}) or {}),
        weights=settings_from_dict(StrategyWeights, data.get("weights", {}) or {}),
        min_confidence=float(data.get("min_confidence", 0.5)),
        # Risk
        risk_limits=settings_from_dict(RiskLimits, data.get("risk", {}) or {}),
        # Backtest
        backtest_start=backtest.get("start_date"),
        backtest_end=backtest.get("end_date"),
        backtest_initial_capital=env_float("INITIAL_CAPITAL", backtest.get("initial_capital", 100000.0)),
        commission=env_float("COMMISSION", backtest.get("commission", 1.0)),
        slippage=env_float("SLIPPAGE", backtest.get("slippage", 0.001)),
        warmup_days=env_int("WARMUP_DAYS", backtest.get("warmup_days", 120)),
        # Logging
        log_level=env("LOG_LEVEL", logging_cfg.get("level", "INFO")),
        log_dir=Path(logging_cfg.get("log_dir", "logs")),
        log_file=logging_cfg.get("log_file", "quant_research.log"),
        log_event_level=logging_cfg.get("event_level"),
    )


class Config:
    """Unified configuration. Immutable after load."""

    __slots__ = (
        "polygon_api_key", "symbols", "timeframe", "data_dir", "cache_ttl_seconds", "request_timeout",
        "momentum", "mean_reversion", "breakout", "weights", "min_confidence",
        "risk_limits",
        "backtest_start", "backtest_end", "backtest_initial_capital", "commission", "slippage", "warmup_days",
        "log_level", "log_dir", "log_file", "log_event_level",
    )

    def __init__(
        self,
        polygon_api_key: str = "",
        symbols: Optional[List[str]] = None,
        timeframe: str = "1Day",
        data_dir: Path = None,
        cache_ttl_seconds: float = 86400.0,
        request_timeout: float = 10.0,
        momentum: Optional[MomentumSettings] = None,
        mean_reversion: Optional[MeanReversionSettings] = None,
        breakout: Optional[BreakoutSettings] = None,
        weights: Optional[StrategyWeights] = None,
        min_confidence: float = 0.5,
        risk_limits: Optional[RiskLimits] = None,
        backtest_start: Optional[str] = None,
        backtest_end: Optional[str] = None,
        backtest_initial_capital: float = 100000.0,
        commission: float = 1.0,
        slippage: float = 0.001,
        warmup_days: int = 120,
        log_level: str = "INFO",
        log_dir: Path = None,
        log_file: str = "quant_research.log",
        log_event_level: Optional[str] = None,
    ):
        if not 0.0 <= min_confidence <= 1.0:
            raise ConfigurationError(f"min_confidence must be in [0, 1], got {min_confidence}")
        if cache_ttl_seconds <= 0:
            raise ConfigurationError("cache_ttl_seconds must be positive")
        try:
            parse_timeframe(timeframe)
        except ValueError as e:
            raise ConfigurationError(f"timeframe: {e}")
        self.polygon_api_key = polygon_api_key
        self.symbols = list(symbols or [])
        self.timeframe = timeframe
        self.data_dir = Path(data_dir) if data_dir else Path("data")
        self.cache_ttl_seconds = cache_ttl_seconds
        self.request_timeout = request_timeout
        self.momentum = momentum or MomentumSettings()
        self.mean_reversion = mean_reversion or MeanReversionSettings()
        self.breakout = breakout or BreakoutSettings()
        self.weights = weights or StrategyWeights()
        self.min_confidence = min_confidence
        self.risk_limits = risk_limits or RiskLimits()
        self.backtest_start = backtest_start
        self.backtest_end = backtest_end
        self.backtest_initial_capital = backtest_initial_capital
        self.commission = commission
        self.slippage = slippage
        self.warmup_days = warmup_days
        self.log_level = log_level
        self.log_dir = Path(log_dir) if log_dir else Path("logs")
        self.log_file = log_file
        self.log_event_level = log_event_level

    def require_market_data_key(self) -> str:
        """Return the Polygon key or fail fast."""
        if not self.polygon_api_key:
            raise ConfigurationError("POLYGON_API_KEY is not set (add it to .env or the environment)")
        return self.polygon_api_key
