"""Tests for utils/config.py: env/YAML/default resolution."""

from __future__ import annotations

from utils.config import Settings, env_name, load_settings, parse_bool, parse_bounded_int


def test_defaults_without_env_or_file():
    settings = load_settings(environ={}, file_config={})
    assert settings == Settings()
    assert settings.port == 18080
    assert settings.max_body_bytes == 65536
    assert settings.command_timeout_seconds == 120.0
    assert settings.log_path.endswith("docker-manager.log")


def test_env_values_are_parsed():
    settings = load_settings(
        environ={
            "DOCKER_MANAGER_PORT": "9000",
            "DOCKER_MANAGER_TAILSCALE_SYNC_ENABLED": "no",
            "DOCKER_MANAGER_NGINX_CONTAINER": " edge-nginx ",
            "DOCKER_MANAGER_LOG_LEVEL": "debug",
        },
        file_config={},
    )
    assert settings.port == 9000
    assert settings.sync_enabled is False
    assert settings.nginx_container == "edge-nginx"
    assert settings.log_level == "DEBUG"


def test_out_of_range_ints_fall_back_to_default():
    settings = load_settings(
        environ={
            "DOCKER_MANAGER_PORT": "70000",
            "DOCKER_MANAGER_MAX_BODY_BYTES": "12",
            "DOCKER_MANAGER_TAILSCALE_SYNC_INTERVAL_SEC": "abc",
        },
        file_config={},
    )
    assert settings.port == 18080
    assert settings.max_body_bytes == 65536
    assert settings.sync_interval_sec == 30


def test_env_beats_file_and_file_beats_default():
    settings = load_settings(
        environ={"DOCKER_MANAGER_SHADOW_PORT": "4000"},
        file_config={"shadow_port": 5000, "tailscale_container": "ts", "allowed_dangerous_commands": ["proxy.reload", "container.exec"]},
    )
    assert settings.shadow_port == 4000
    assert settings.tailscale_container == "ts"
    assert settings.allowed_dangerous_commands == "proxy.reload,container.exec"


def test_star_is_kept_as_allow_all_marker():
    settings = load_settings(environ={"DOCKER_MANAGER_ALLOWED_SAFE_COMMANDS": "*"}, file_config={})
    assert settings.allowed_safe_commands == "*"


def test_parse_bool():
    assert parse_bool("on", False) is True
    assert parse_bool("0", True) is False
    assert parse_bool("maybe", True) is True
    assert parse_bool(None, False) is False


def test_parse_bounded_int():
    assert parse_bounded_int("15", 30, 5, 60) == 15
    assert parse_bounded_int("4", 30, 5, 60) == 30
    assert parse_bounded_int("", 30, 5, 60) == 30


def test_env_name():
    assert env_name("sync_enabled") == "DOCKER_MANAGER_TAILSCALE_SYNC_ENABLED"
    assert env_name("exec_shell") == "DOCKER_MANAGER_EXEC_SHELL"
