"""Configuration loading for loadscope."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, Literal

from loadscope._internal.errors import ConfigError

if TYPE_CHECKING:
    from loadscope._internal.types import ThinkTime

PercentileMode = Literal["hdr", "exact"]

_MIN_TICK_INTERVAL = 0.1
_MAX_TICK_INTERVAL = 1.0


@dataclass(frozen=True)
class LoadScopeConfig:
    """Global loadscope configuration.

    Attributes:
        base_url: Base URL of the service under test.
        request_timeout: Default per-step request timeout in seconds.
        tick_interval: Seconds between desired-concurrency recomputations.
        grace_period: Seconds to wait for virtual users to retire at the
            end of a run before they are forcibly cancelled.
        think_time: Pause range (min, max) in seconds between iterations.
        percentile_mode: ``"hdr"`` keeps an HDR histogram per endpoint
            (constant memory, 3 significant digits). ``"exact"`` retains raw
            samples up to ``max_samples`` per endpoint and computes exact
            percentiles; beyond the cap a uniform reservoir is kept, so
            percentiles become estimates over that reservoir.
        max_samples: Raw sample cap per endpoint in ``"exact"`` mode.
        health_path: Path requested by the reachability check.
        seed: Optional seed for reproducible scenario selection and pacing.
    """

    base_url: str = "http://127.0.0.1:3000"
    request_timeout: float = 30.0
    tick_interval: float = 0.5
    grace_period: float = 5.0
    think_time: ThinkTime = (0.5, 2.5)
    percentile_mode: PercentileMode = "hdr"
    max_samples: int = 100_000
    health_path: str = "/"
    seed: int | None = None


def _parse_float(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw)
    except ValueError:
        msg = f"{name} must be a number, got: {raw!r}"
        raise ConfigError(msg) from None


def _parse_int(name: str, default: str) -> int:
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except ValueError:
        msg = f"{name} must be an integer, got: {raw!r}"
        raise ConfigError(msg) from None


def parse_think_time(raw: str) -> ThinkTime:
    """Parse a ``"min,max"`` think time range in seconds.

    Args:
        raw: Text such as ``"0.5,2.5"``. A single number means a fixed pause.

    Returns:
        The validated (min, max) tuple.

    Raises:
        ConfigError: If the text is malformed, negative, or min > max.
    """
    parts = [p.strip() for p in raw.split(",")]
    try:
        values = [float(p) for p in parts]
    except ValueError:
        msg = f"think time must be 'min,max' seconds, got: {raw!r}"
        raise ConfigError(msg) from None

    if len(values) == 1:
        values = values * 2
    if len(values) != 2:
        msg = f"think time must be 'min,max' seconds, got: {raw!r}"
        raise ConfigError(msg)

    low, high = values
    if low < 0 or high < low:
        msg = f"think time must satisfy 0 <= min <= max, got: {raw!r}"
        raise ConfigError(msg)
    return (low, high)


def validate_config(config: LoadScopeConfig) -> LoadScopeConfig:
    """Check cross-field constraints of a configuration.

    Args:
        config: Configuration to validate.

    Returns:
        The same configuration, for chaining.

    Raises:
        ConfigError: If any value is out of range.
    """
    if config.request_timeout <= 0:
        msg = f"request timeout must be positive, got: {config.request_timeout}"
        raise ConfigError(msg)
    if not _MIN_TICK_INTERVAL <= config.tick_interval <= _MAX_TICK_INTERVAL:
        msg = (
            f"tick interval must be between {_MIN_TICK_INTERVAL}s and "
            f"{_MAX_TICK_INTERVAL}s, got: {config.tick_interval}"
        )
        raise ConfigError(msg)
    if config.grace_period < 0:
        msg = f"grace period must be non-negative, got: {config.grace_period}"
        raise ConfigError(msg)
    low, high = config.think_time
    if low < 0 or high < low:
        msg = f"think time must satisfy 0 <= min <= max, got: {config.think_time}"
        raise ConfigError(msg)
    if config.percentile_mode not in ("hdr", "exact"):
        msg = f"percentile mode must be 'hdr' or 'exact', got: {config.percentile_mode!r}"
        raise ConfigError(msg)
    if config.max_samples < 1:
        msg = f"max samples must be >= 1, got: {config.max_samples}"
        raise ConfigError(msg)
    if not config.health_path.startswith("/"):
        msg = f"health path must start with '/', got: {config.health_path!r}"
        raise ConfigError(msg)
    return config


def load_config() -> LoadScopeConfig:
    """Load configuration from environment variables with defaults.

    Environment variables:
        LOADSCOPE_BASE_URL: Base URL of the target (default: http://127.0.0.1:3000).
        LOADSCOPE_TIMEOUT: Request timeout in seconds (default: 30.0).
        LOADSCOPE_TICK_INTERVAL: Scheduler tick in seconds (default: 0.5).
        LOADSCOPE_GRACE_PERIOD: Shutdown grace period in seconds (default: 5.0).
        LOADSCOPE_THINK_TIME: Think time range "min,max" (default: "0.5,2.5").
        LOADSCOPE_PERCENTILES: "hdr" or "exact" (default: "hdr").
        LOADSCOPE_MAX_SAMPLES: Raw sample cap per endpoint (default: 100000).
        LOADSCOPE_HEALTH_PATH: Reachability check path (default: "/").
        LOADSCOPE_SEED: Optional integer random seed.

    Returns:
        Populated LoadScopeConfig instance.

    Raises:
        ConfigError: If an environment variable has an invalid value.
    """
    seed_raw = os.environ.get("LOADSCOPE_SEED")
    seed: int | None = None
    if seed_raw:
        seed = _parse_int("LOADSCOPE_SEED", seed_raw)

    mode = os.environ.get("LOADSCOPE_PERCENTILES", "hdr").strip().lower()
    if mode not in ("hdr", "exact"):
        msg = f"LOADSCOPE_PERCENTILES must be 'hdr' or 'exact', got: {mode!r}"
        raise ConfigError(msg)

    config = LoadScopeConfig(
        base_url=os.environ.get("LOADSCOPE_BASE_URL", LoadScopeConfig.base_url),
        request_timeout=_parse_float("LOADSCOPE_TIMEOUT", "30.0"),
        tick_interval=_parse_float("LOADSCOPE_TICK_INTERVAL", "0.5"),
        grace_period=_parse_float("LOADSCOPE_GRACE_PERIOD", "5.0"),
        think_time=parse_think_time(os.environ.get("LOADSCOPE_THINK_TIME", "0.5,2.5")),
        percentile_mode=mode,  # type: ignore[arg-type]
        max_samples=_parse_int("LOADSCOPE_MAX_SAMPLES", "100000"),
        health_path=os.environ.get("LOADSCOPE_HEALTH_PATH", "/"),
        seed=seed,
    )
    return validate_config(config)
