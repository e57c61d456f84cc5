"""Runtime settings from environment variables and an optional YAML file."""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from utils.helpers import normalize_value

_TRUE_VALUES = {"1", "true", "yes", "on", "y"}
_FALSE_VALUES = {"0", "false", "no", "off", "n"}

ENV_PREFIX = "DOCKER_MANAGER_"


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 18080
    docker_bin: str = "docker"
    max_body_bytes: int = 65536
    command_timeout_ms: int = 120000
    max_log_lines: int = 2000
    default_log_tail: int = 200
    log_dir: str = "/opt/docker-manager/runtime"
    log_file: str = "docker-manager.log"
    log_level: str = "INFO"
    sync_enabled: bool = True
    sync_interval_sec: int = 30
    tailscale_container: str = "tailscale"
    nginx_container: str = "nginx"
    shadow_dir: str = "/opt/nginx/shadow-servers"
    shadow_port: int = 3000
    enable_safe_commands: bool = True
    enable_dangerous_commands: bool = True
    allowed_safe_commands: str = "*"
    allowed_dangerous_commands: str = "*"
    blocked_commands: str = ""
    exec_shell: str = "sh"

    @property
    def log_path(self) -> str:
        return str(Path(self.log_dir) / self.log_file)

    @property
    def command_timeout_seconds(self) -> float:
        return self.command_timeout_ms / 1000.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# field -> (min, max); out-of-range values fall back to the default
_INT_RANGES = {
    "port": (1, 65535),
    "max_body_bytes": (1024, 1048576),
    "command_timeout_ms": (500, 900000),
    "max_log_lines": (10, 20000),
    "default_log_tail": (1, 20000),
    "sync_interval_sec": (5, 86400),
    "shadow_port": (1, 65535),
}

_ENV_NAMES = {
    "host": "HOST",
    "port": "PORT",
    "docker_bin": "DOCKER_BIN",
    "max_body_bytes": "MAX_BODY_BYTES",
    "command_timeout_ms": "COMMAND_TIMEOUT_MS",
    "max_log_lines": "MAX_LOG_LINES",
    "default_log_tail": "DEFAULT_LOG_TAIL",
    "log_dir": "LOG_DIR",
    "log_file": "LOG_FILE",
    "log_level": "LOG_LEVEL",
    "sync_enabled": "TAILSCALE_SYNC_ENABLED",
    "sync_interval_sec": "TAILSCALE_SYNC_INTERVAL_SEC",
    "tailscale_container": "TAILSCALE_CONTAINER",
    "nginx_container": "NGINX_CONTAINER",
    "shadow_dir": "SHADOW_DIR",
    "shadow_port": "SHADOW_PORT",
    "enable_safe_commands": "ENABLE_SAFE_COMMANDS",
    "enable_dangerous_commands": "ENABLE_DANGEROUS_COMMANDS",
    "allowed_safe_commands": "ALLOWED_SAFE_COMMANDS",
    "allowed_dangerous_commands": "ALLOWED_DANGEROUS_COMMANDS",
    "blocked_commands": "BLOCKED_COMMANDS",
    "exec_shell": "EXEC_SHELL",
}


def env_name(field_name: str) -> str:
    return ENV_PREFIX + _ENV_NAMES[field_name]


def parse_bool(value: Any, fallback: bool) -> bool:
    text = normalize_value(value).lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    return fallback


def parse_bounded_int(value: Any, fallback: int, min_value: int, max_value: int) -> int:
    """Out-of-range or unparseable values fall back instead of clamping."""
    text = normalize_value(value)
    try:
        parsed = int(text)
    except ValueError:
        return fallback
    if parsed < min_value or parsed > max_value:
        return fallback
    return parsed


def _file_value(value: Any) -> str:
    # YAML lists are accepted for the command lists
    if isinstance(value, (list, tuple, set)):
        return ",".join(normalize_value(v) for v in value if normalize_value(v))
    return normalize_value(value)


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    file_config: Optional[Mapping[str, Any]] = None,
) -> Settings:
    """Resolve settings: environment variable, then YAML value, then default."""
    env = os.environ if environ is None else environ
    file_cfg = dict(file_config or {})
    defaults = Settings()
    values: Dict[str, Any] = {}

    for field_name in _ENV_NAMES:
        default = getattr(defaults, field_name)
        raw = normalize_value(env.get(env_name(field_name)))
        if not raw and file_cfg.get(field_name) is not None:
            raw = _file_value(file_cfg[field_name])
        if not raw:
            values[field_name] = default
            continue

        if isinstance(default, bool):
            values[field_name] = parse_bool(raw, default)
        elif isinstance(default, int):
            lo, hi = _INT_RANGES[field_name]
            values[field_name] = parse_bounded_int(raw, default, lo, hi)
        else:
            values[field_name] = raw

    values["log_level"] = str(values["log_level"]).upper()
    return Settings(**values)
