"""
Configuration management and loading.

Handles the plan, data path, refresh and ingestion settings.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from claude_radar.core.plans import TokenPlan
from claude_radar.core.sessions import SessionPolicy
from claude_radar.storage.discovery import MAX_FILE_SIZE, MAX_TOTAL_MEMORY

DEFAULT_CONFIG_PATH = Path("~/.config/claude-radar/config.yaml")
DEFAULT_REFRESH_INTERVAL = 3.0


@dataclass(frozen=True)
class IngestionLimits:
    """Resource limits applied while reading log files."""
    max_file_size: int = MAX_FILE_SIZE
    memory_budget: int = MAX_TOTAL_MEMORY

    def __post_init__(self):
        """Validate limits are positive."""
        if self.max_file_size <= 0:
            raise ValueError("max_file_size must be > 0")
        if self.memory_budget <= 0:
            raise ValueError("memory_budget must be > 0")


@dataclass(frozen=True)
class RadarConfig:
    """Complete application configuration."""
    plan: TokenPlan = TokenPlan.PRO
    data_path: Optional[str] = None
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    session_policy: SessionPolicy = SessionPolicy.ROLLING
    limits: IngestionLimits = field(default_factory=IngestionLimits)

    def __post_init__(self):
        """Validate refresh interval."""
        if self.refresh_interval <= 0:
            raise ValueError("refresh_interval must be > 0")


def load_radar_config(path: str) -> RadarConfig:
    """Load and validate configuration from a YAML file.

    Every key is optional. Unknown keys and mistyped values are rejected
    rather than silently ignored.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated RadarConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return RadarConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a mapping")

    allowed_top_keys = {'plan', 'data_path', 'refresh_interval', 'session_policy', 'limits'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    kwargs: Dict[str, Any] = {}

    if 'plan' in raw_config:
        kwargs['plan'] = _parse_enum(TokenPlan, raw_config['plan'], 'plan')

    if 'session_policy' in raw_config:
        kwargs['session_policy'] = _parse_enum(
            SessionPolicy, raw_config['session_policy'], 'session_policy'
        )

    if 'data_path' in raw_config:
        data_path = raw_config['data_path']
        if data_path is not None and (not isinstance(data_path, str) or not data_path.strip()):
            raise ValueError("'data_path' must be a non-empty string")
        kwargs['data_path'] = data_path

    if 'refresh_interval' in raw_config:
        interval = raw_config['refresh_interval']
        if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval <= 0:
            raise ValueError("'refresh_interval' must be > 0")
        kwargs['refresh_interval'] = float(interval)

    if 'limits' in raw_config:
        kwargs['limits'] = _parse_limits(raw_config['limits'])

    return RadarConfig(**kwargs)


def resolve_config(path: Optional[str] = None) -> RadarConfig:
    """Load the explicit config, else the default config file, else defaults."""
    if path:
        return load_radar_config(path)
    default_path = DEFAULT_CONFIG_PATH.expanduser()
    if default_path.exists():
        return load_radar_config(str(default_path))
    return RadarConfig()


def _parse_enum(enum_type, value: Any, key: str):
    """Parse an enum value from its string form."""
    if not isinstance(value, str):
        raise ValueError(f"'{key}' must be a string")
    try:
        return enum_type(value.lower())
    except ValueError:
        valid_values = [member.value for member in enum_type]
        raise ValueError(f"'{key}' must be one of: {valid_values}")


def _parse_limits(data: Any) -> IngestionLimits:
    """Parse and validate the ingestion limits section.

    Args:
        data: Limits configuration data

    Returns:
        Validated IngestionLimits

    Raises:
        ValueError: If configuration is invalid
    """
    if not isinstance(data, dict):
        raise ValueError("'limits' must be a dictionary")

    allowed_keys = {'max_file_size', 'memory_budget'}
    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in limits: {unknown_keys}")

    kwargs = {}
    for key in allowed_keys & set(data.keys()):
        value = data[key]
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValueError(f"'{key}' in limits must be a positive integer")
        kwargs[key] = value

    return IngestionLimits(**kwargs)
