"""Global fixtures for the docker-manager test suite."""

from __future__ import annotations

import dataclasses
from typing import Callable, Dict, List, Optional, Tuple, Union

import pytest

from core.docker_client import DockerClient
from core.process_runner import CommandResult, build_command_text
from utils.config import Settings

Outcome = Union[Tuple[int, str, str], BaseException]


# ── FakeRunner ──


class FakeRunner:
    """Stands in for ``run_command``; records every argv and answers from a responder."""

    def __init__(self, responder: Optional[Callable[[List[str]], Outcome]] = None):
        self.calls: List[List[str]] = []
        self.kwargs: List[Dict[str, object]] = []
        self.responder = responder or (lambda argv: (0, "", ""))

    async def __call__(self, program, args=None, **kwargs) -> CommandResult:
        argv = [str(a) for a in (args or [])]
        self.calls.append(argv)
        self.kwargs.append(kwargs)
        outcome = self.responder(argv)
        if isinstance(outcome, BaseException):
            raise outcome
        code, stdout, stderr = outcome
        return CommandResult(
            command=build_command_text(program, argv),
            stdout=stdout,
            stderr=stderr,
            exit_code=code,
        )

    def calls_starting_with(self, *prefix: str) -> List[List[str]]:
        return [argv for argv in self.calls if argv[: len(prefix)] == list(prefix)]


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ── FakeShadowClient ──


class FakeShadowClient:
    """The slice of ``DockerClient`` the shadow reconciler uses."""

    def __init__(self, status_json: str = "{}"):
        self.status_json = status_json
        self.calls: List[str] = []
        self.fail_test_times = 0
        self.fail_reload_times = 0

    async def network_status(self, as_json: bool = False) -> CommandResult:
        self.calls.append("status")
        return CommandResult("docker exec tailscale tailscale status --json", self.status_json, "", 0)

    async def proxy_test(self) -> CommandResult:
        self.calls.append("test")
        if self.fail_test_times > 0:
            self.fail_test_times -= 1
            raise RuntimeError("nginx: configuration file test failed")
        return CommandResult("docker exec nginx nginx -t", "", "syntax is ok", 0)

    async def proxy_signal_reload(self) -> CommandResult:
        self.calls.append("reload")
        if self.fail_reload_times > 0:
            self.fail_reload_times -= 1
            raise RuntimeError("nginx: reload failed")
        return CommandResult("docker exec nginx nginx -s reload", "", "", 0)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        log_dir=str(tmp_path / "logs"),
        shadow_dir=str(tmp_path / "shadow"),
        sync_enabled=False,
    )


def make_settings(base: Settings, **overrides) -> Settings:
    return dataclasses.replace(base, **overrides)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def docker_client(settings, fake_runner, fake_clock) -> DockerClient:
    return DockerClient(settings, runner=fake_runner, clock=fake_clock)
