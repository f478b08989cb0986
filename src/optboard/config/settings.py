"""
Monitor Configuration Loader

Loads and validates monitor configuration from YAML file.

Config location: config/monitor.yaml

Schema:
- feed: Market data source settings
- analysis: Snapshot interval and chain selection settings
- charts: Chart output settings
- logging: Log sink settings

Environment variables prefixed with OPTBOARD_ override file values.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from loguru import logger

from optboard.core.models import METRICS

VALID_SOURCES = ("deribit", "replay")
VALID_LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


@dataclass
class FeedConfig:
    """Market data feed configuration."""
    source: str = "deribit"
    url: str = "wss://www.deribit.com/ws/api/v2"
    currency: str = "BTC"
    ticker_interval: str = "100ms"
    subscribe_batch_size: int = 100
    max_retries: int = 5
    retry_delay: float = 2.0
    replay_path: Optional[str] = None
    replay_pace_secs: float = 0.0


@dataclass
class AnalysisConfig:
    """Analysis task configuration."""
    interval_secs: float = 10.0
    initial_delay_secs: float = 10.0
    maturity_index: int = 2       # third-nearest expiry
    otm_only: bool = True
    metrics: List[str] = field(default_factory=lambda: ["iv", "gamma", "color"])
    risk_free_rate: float = 0.0
    dividend_yield: float = 0.0
    evict_expired: bool = False


@dataclass
class ChartConfig:
    """Chart output configuration."""
    enabled: bool = True
    output_dir: str = "charts"
    width: int = 640
    height: int = 480


@dataclass
class LoggingConfig:
    """Loguru sink configuration."""
    level: str = "INFO"
    file: Optional[str] = None
    rotation: str = "100 MB"
    retention: str = "10 days"
    compression: str = "zip"


@dataclass
class MonitorConfig:
    """Complete monitor configuration."""

    feed: FeedConfig = field(default_factory=FeedConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)
    charts: ChartConfig = field(default_factory=ChartConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict) -> "MonitorConfig":
        """Create config from dictionary with nested dataclass instantiation."""
        feed = data.get("feed") or {}
        analysis = data.get("analysis") or {}
        charts = data.get("charts") or {}
        log = data.get("logging") or {}

        defaults = cls()
        return cls(
            feed=FeedConfig(
                source=feed.get("source", defaults.feed.source),
                url=feed.get("url", defaults.feed.url),
                currency=feed.get("currency", defaults.feed.currency),
                ticker_interval=feed.get("ticker_interval", defaults.feed.ticker_interval),
                subscribe_batch_size=int(feed.get("subscribe_batch_size", defaults.feed.subscribe_batch_size)),
                max_retries=int(feed.get("max_retries", defaults.feed.max_retries)),
                retry_delay=float(feed.get("retry_delay", defaults.feed.retry_delay)),
                replay_path=feed.get("replay_path", defaults.feed.replay_path),
                replay_pace_secs=float(feed.get("replay_pace_secs", defaults.feed.replay_pace_secs)),
            ),
            analysis=AnalysisConfig(
                interval_secs=float(analysis.get("interval_secs", defaults.analysis.interval_secs)),
                initial_delay_secs=float(analysis.get("initial_delay_secs", defaults.analysis.initial_delay_secs)),
                maturity_index=int(analysis.get("maturity_index", defaults.analysis.maturity_index)),
                otm_only=bool(analysis.get("otm_only", defaults.analysis.otm_only)),
                metrics=list(analysis.get("metrics", defaults.analysis.metrics)),
                risk_free_rate=float(analysis.get("risk_free_rate", defaults.analysis.risk_free_rate)),
                dividend_yield=float(analysis.get("dividend_yield", defaults.analysis.dividend_yield)),
                evict_expired=bool(analysis.get("evict_expired", defaults.analysis.evict_expired)),
            ),
            charts=ChartConfig(
                enabled=bool(charts.get("enabled", defaults.charts.enabled)),
                output_dir=charts.get("output_dir", defaults.charts.output_dir),
                width=int(charts.get("width", defaults.charts.width)),
                height=int(charts.get("height", defaults.charts.height)),
            ),
            logging=LoggingConfig(
                level=str(log.get("level", defaults.logging.level)).upper(),
                file=log.get("file", defaults.logging.file),
                rotation=log.get("rotation", defaults.logging.rotation),
                retention=log.get("retention", defaults.logging.retention),
                compression=log.get("compression", defaults.logging.compression),
            ),
        )

    def validate(self) -> List[str]:
        """
        Validate configuration.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        # Feed
        if self.feed.source not in VALID_SOURCES:
            errors.append(f"Invalid feed source: {self.feed.source} (expected one of {VALID_SOURCES})")
        if self.feed.source == "replay" and not self.feed.replay_path:
            errors.append("replay_path is required when feed source is 'replay'")
        if self.feed.subscribe_batch_size < 1:
            errors.append(f"subscribe_batch_size must be >= 1: {self.feed.subscribe_batch_size}")
        if self.feed.max_retries < 0:
            errors.append(f"Invalid max_retries: {self.feed.max_retries}")
        if self.feed.retry_delay < 0:
            errors.append(f"Invalid retry_delay: {self.feed.retry_delay}")
        if self.feed.replay_pace_secs < 0:
            errors.append(f"Invalid replay_pace_secs: {self.feed.replay_pace_secs}")

        # Analysis
        if self.analysis.interval_secs <= 0:
            errors.append(f"interval_secs must be > 0: {self.analysis.interval_secs}")
        if self.analysis.initial_delay_secs < 0:
            errors.append(f"initial_delay_secs must be >= 0: {self.analysis.initial_delay_secs}")
        if self.analysis.maturity_index < 0:
            errors.append(f"maturity_index must be >= 0: {self.analysis.maturity_index}")
        unknown = [m for m in self.analysis.metrics if m not in METRICS]
        if unknown:
            errors.append(f"Unknown metrics: {unknown} (expected any of {sorted(METRICS)})")

        # Charts
        if self.charts.width < 1 or self.charts.height < 1:
            errors.append(f"Invalid chart size: {self.charts.width}x{self.charts.height}")

        # Logging
        if self.logging.level not in VALID_LOG_LEVELS:
            errors.append(f"Invalid log level: {self.logging.level}")

        return errors


# Environment variable -> (section, field, converter)
ENV_OVERRIDES = {
    "OPTBOARD_FEED_SOURCE": ("feed", "source", str),
    "OPTBOARD_FEED_URL": ("feed", "url", str),
    "OPTBOARD_FEED_CURRENCY": ("feed", "currency", str),
    "OPTBOARD_REPLAY_PATH": ("feed", "replay_path", str),
    "OPTBOARD_ANALYSIS_INTERVAL": ("analysis", "interval_secs", float),
    "OPTBOARD_MATURITY_INDEX": ("analysis", "maturity_index", int),
    "OPTBOARD_CHART_DIR": ("charts", "output_dir", str),
    "OPTBOARD_LOG_LEVEL": ("logging", "level", str),
    "OPTBOARD_LOG_FILE": ("logging", "file", str),
}


def merge_config_with_env(config_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge configuration with environment variables.

    Environment variables override config file settings.

    Examples:
        OPTBOARD_FEED_URL=wss://test.deribit.com/ws/api/v2
        OPTBOARD_ANALYSIS_INTERVAL=5
        OPTBOARD_LOG_LEVEL=DEBUG

    Args:
        config_data: Configuration data from file

    Returns:
        Merged configuration with env vars applied

    Raises:
        ValueError: If an override cannot be converted
    """
    merged = {section: dict(values or {}) for section, values in config_data.items()}

    for env_var, (section, key, convert) in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value is None:
            continue
        try:
            merged.setdefault(section, {})[key] = convert(value)
        except ValueError:
            raise ValueError(f"Invalid value for {env_var}: {value!r}")
        logger.debug(f"Config override from {env_var}: {section}.{key}")

    return merged


def load_monitor_config(config_path: Optional[str] = None) -> MonitorConfig:
    """
    Load monitor configuration from YAML file.

    Args:
        config_path: Path to config file (default: config/monitor.yaml)

    Returns:
        MonitorConfig object

    Raises:
        ValueError: If configuration is invalid
    """
    if config_path is None:
        config_path = Path("config") / "monitor.yaml"

    config_file = Path(config_path)
    data: Dict[str, Any] = {}

    if not config_file.exists():
        logger.warning(f"Monitor config file not found: {config_file}, using defaults")
    else:
        try:
            with open(config_file, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Error parsing YAML config: {e}")

        if not data:
            logger.warning(f"Empty config file: {config_file}, using defaults")
        elif not isinstance(data, dict):
            raise ValueError(f"Config root must be a mapping: {config_file}")

    config = MonitorConfig.from_dict(merge_config_with_env(data))

    errors = config.validate()
    if errors:
        error_msg = "Configuration validation errors:\n" + "\n".join(f"  - {e}" for e in errors)
        raise ValueError(error_msg)

    logger.info(f"✓ Loaded monitor config from {config_file}")
    logger.debug(f"  Feed: {config.feed.source} {config.feed.currency}")
    logger.debug(f"  Analysis interval: {config.analysis.interval_secs}s")
    logger.debug(f"  Maturity index: {config.analysis.maturity_index}")

    return config
