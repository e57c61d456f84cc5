"""
Utility functions for docker-manager
"""
import os
import re
import yaml
from typing import Any, Dict, Optional, Set

_CSV_SPLIT_RE = re.compile(r"[,\n\r]")


def load_config(config_path: str = "config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file with environment variable substitution

    Supports ${VAR_NAME} syntax for environment variables
    """
    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config_str = f.read()

    # Replace environment variables
    def replace_env(match):
        var_name = match.group(1)
        value = os.getenv(var_name)
        if value is None:
            raise ValueError(f"Environment variable {var_name} is not set")
        return value

    config_str = re.sub(r'\$\{([A-Za-z_][A-Za-z0-9_]*)\}', replace_env, config_str)

    config = yaml.safe_load(config_str)
    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ValueError(f"Configuration root must be a mapping: {config_path}")
    return config


def normalize_value(value: Any) -> str:
    """``None`` becomes ``""``; everything else is stringified and stripped."""
    if value is None:
        return ""
    return str(value).strip()


def parse_csv_set(value: Any) -> Set[str]:
    """Split a comma/newline separated list into a set of non-empty names."""
    raw = normalize_value(value)
    if not raw:
        return set()
    return {item.strip() for item in _CSV_SPLIT_RE.split(raw) if item.strip()}


def parse_positive_int(
    value: Any,
    fallback: int,
    *,
    min_value: int = 1,
    max_value: Optional[int] = None,
) -> int:
    """Parse an int and clamp it into ``[min_value, max_value]``.

    Unparseable input returns ``fallback`` unchanged.
    """
    text = normalize_value(value)
    match = re.match(r"^[+-]?\d+", text)
    if not match:
        return fallback
    parsed = int(match.group(0))
    if parsed < min_value:
        return min_value
    if max_value is not None and parsed > max_value:
        return max_value
    return parsed


def first_line(text: str) -> str:
    for line in str(text or "").splitlines():
        stripped = line.strip()
        if stripped:
            return stripped
    return ""
