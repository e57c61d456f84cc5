"""Docker CLI client: container, system, tailscale and nginx operations."""

from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from core.errors import (
    CommandFailureError,
    InvalidInputError,
    InvalidNameError,
    NotFoundError,
)
from core.process_runner import CommandResult, run_command
from utils.constants import (
    ALLOWED_EXEC_SHELLS,
    COMPOSE_SERVICE_LABEL,
    CONTAINER_NAME_RE,
    FALLBACK_EXEC_SHELL,
    PING_DEFAULT_COUNT,
    PING_MAX_COUNT,
    PROXY_LOG_FILES,
    PRUNE_SCOPES,
    RESOLVE_CACHE_TTL_SECONDS,
    RESOLVE_TIMEOUT_SECONDS,
)
from utils.helpers import first_line, normalize_value, parse_positive_int

logger = logging.getLogger(__name__)

Runner = Callable[..., Awaitable[CommandResult]]

SYSTEM_COMMANDS = {
    "ps": ["ps", "-a"],
    "images": ["images"],
    "networks": ["network", "ls"],
    "volumes": ["volume", "ls"],
    "info": ["info"],
    "version": ["version"],
}

CONTAINER_MUTATIONS = {
    "start": ["start"],
    "stop": ["stop"],
    "restart": ["restart"],
    "pause": ["pause"],
    "unpause": ["unpause"],
    "kill": ["kill"],
    "rm": ["rm", "-f"],
}


def is_container_name_valid(name: object) -> bool:
    return bool(CONTAINER_NAME_RE.fullmatch(normalize_value(name)))


class DockerClient:
    """Typed docker operations on top of the process runner.

    Container-scoped calls accept either a container name or a compose
    service name; the latter is resolved through ``resolve_container`` and
    cached for a short TTL.
    """

    def __init__(
        self,
        settings,
        runner: Runner = run_command,
        clock: Callable[[], float] = time.monotonic,
        cache_ttl_seconds: float = RESOLVE_CACHE_TTL_SECONDS,
    ):
        self.settings = settings
        self._runner = runner
        self._clock = clock
        self.cache_ttl_seconds = float(cache_ttl_seconds)
        self._resolve_cache: Dict[str, Tuple[str, float]] = {}

    # ── Process plumbing ──────────────────────────────────────

    async def run_docker(
        self,
        args: Sequence[str],
        *,
        allow_failure: bool = False,
        timeout_seconds: Optional[float] = None,
        input_text: str = "",
    ) -> CommandResult:
        timeout = self.settings.command_timeout_seconds if timeout_seconds is None else timeout_seconds
        result = await self._runner(
            self.settings.docker_bin,
            list(args),
            timeout_seconds=timeout,
            input_text=input_text,
        )
        if not allow_failure and result.exit_code != 0:
            detail = normalize_value(result.stderr) or normalize_value(result.stdout) or f"exit {result.exit_code}"
            raise CommandFailureError(f"docker command failed: {detail}", result=result)
        return result

    # ── Name resolution ───────────────────────────────────────

    @staticmethod
    def assert_container_name(name: object) -> str:
        value = normalize_value(name)
        if not is_container_name_valid(value):
            raise InvalidNameError(f"invalid container name: {value}")
        return value

    def _read_cache(self, name: str) -> str:
        cached = self._resolve_cache.get(name)
        if cached is None:
            return ""
        value, expires_at = cached
        if expires_at <= self._clock():
            self._resolve_cache.pop(name, None)
            return ""
        return value

    def _write_cache(self, name: str, resolved: str) -> None:
        if not name or not resolved:
            return
        self._resolve_cache[name] = (resolved, self._clock() + self.cache_ttl_seconds)

    async def _find_by_compose_service(self, service: str) -> str:
        filters = ["--filter", f"label={COMPOSE_SERVICE_LABEL}={service}", "--format", "{{.Names}}"]
        running = await self.run_docker(["ps", *filters], allow_failure=True, timeout_seconds=RESOLVE_TIMEOUT_SECONDS)
        name = first_line(running.stdout)
        if name:
            return name
        any_state = await self.run_docker(
            ["ps", "-a", *filters],
            allow_failure=True,
            timeout_seconds=RESOLVE_TIMEOUT_SECONDS,
        )
        return first_line(any_state.stdout)

    async def resolve_container(self, name: object) -> str:
        """Map a container or compose service name to a concrete container name."""
        direct = self.assert_container_name(name)

        cached = self._read_cache(direct)
        if cached:
            return cached

        inspect = await self.run_docker(
            ["container", "inspect", direct],
            allow_failure=True,
            timeout_seconds=RESOLVE_TIMEOUT_SECONDS,
        )
        if inspect.exit_code == 0:
            self._write_cache(direct, direct)
            return direct

        resolved = await self._find_by_compose_service(direct)
        if resolved:
            self._write_cache(direct, resolved)
            self._write_cache(resolved, resolved)
            logger.info("Resolved compose service '%s' to container '%s'", direct, resolved)
            return resolved

        raise NotFoundError(
            f"container not found: {direct}. Hint: set DOCKER_MANAGER_TAILSCALE_CONTAINER/"
            "DOCKER_MANAGER_NGINX_CONTAINER to the actual container name if needed"
        )

    async def exec_in_container(
        self,
        name: str,
        argv: Sequence[str],
        *,
        allow_failure: bool = False,
    ) -> CommandResult:
        resolved = await self.resolve_container(name)
        return await self.run_docker(["exec", resolved, *argv], allow_failure=allow_failure)

    def _clamp_tail(self, tail: object) -> int:
        return parse_positive_int(
            tail,
            self.settings.default_log_tail,
            min_value=1,
            max_value=self.settings.max_log_lines,
        )

    # ── Tailscale (network agent) ─────────────────────────────

    async def network_status(self, as_json: bool = False) -> CommandResult:
        argv = ["tailscale", "status"]
        if as_json:
            argv.append("--json")
        return await self.exec_in_container(self.settings.tailscale_container, argv)

    async def network_ping(self, target: object, count: object = None) -> CommandResult:
        normalized = normalize_value(target)
        if not normalized:
            raise InvalidInputError("tailscale ping requires target")
        if normalized.startswith("-"):
            raise InvalidInputError(f"invalid ping target: {normalized}")
        ping_count = parse_positive_int(count, PING_DEFAULT_COUNT, min_value=1, max_value=PING_MAX_COUNT)
        return await self.exec_in_container(
            self.settings.tailscale_container,
            ["tailscale", "ping", "-c", str(ping_count), normalized],
        )

    async def network_address(self) -> CommandResult:
        return await self.exec_in_container(self.settings.tailscale_container, ["tailscale", "ip", "-4"])

    # ── Nginx (proxy) ─────────────────────────────────────────

    async def proxy_test(self) -> CommandResult:
        return await self.exec_in_container(self.settings.nginx_container, ["nginx", "-t"])

    async def proxy_signal_reload(self) -> CommandResult:
        """Send the reload signal without validating first."""
        return await self.exec_in_container(self.settings.nginx_container, ["nginx", "-s", "reload"])

    async def proxy_reload(self) -> CommandResult:
        # proxy_test raises on an invalid config, so reload never runs against one
        await self.proxy_test()
        return await self.proxy_signal_reload()

    async def proxy_version(self) -> CommandResult:
        return await self.exec_in_container(self.settings.nginx_container, ["nginx", "-v"])

    async def proxy_logs(self, log_type: object, tail: object = None) -> CommandResult:
        normalized = normalize_value(log_type).lower()
        log_file = PROXY_LOG_FILES.get(normalized)
        if not log_file:
            raise NotFoundError(f"unsupported nginx log type: {log_type}")
        return await self.exec_in_container(
            self.settings.nginx_container,
            ["tail", "-n", str(self._clamp_tail(tail)), log_file],
            allow_failure=True,
        )

    # ── Runtime-scoped ────────────────────────────────────────

    async def system_command(self, name: str) -> CommandResult:
        argv = SYSTEM_COMMANDS.get(normalize_value(name).lower())
        if argv is None:
            raise NotFoundError(f"unsupported system command: {name}")
        return await self.run_docker(argv)

    async def system_prune(self, scope: object = None) -> CommandResult:
        normalized = normalize_value(scope).lower() or "all"
        argv = PRUNE_SCOPES.get(normalized)
        if argv is None:
            raise NotFoundError(f"unsupported prune scope: {scope}")
        return await self.run_docker(argv)

    async def system_raw(self, args: Sequence[str]) -> CommandResult:
        if not args:
            raise InvalidInputError("system raw command requires non-empty args")
        return await self.run_docker(list(args))

    # ── Container-scoped ──────────────────────────────────────

    async def container_status(self, name: str) -> CommandResult:
        resolved = await self.resolve_container(name)
        return await self.run_docker(["ps", "-a", "--filter", f"name=^/{resolved}$"])

    async def container_logs(
        self,
        name: str,
        tail: object = None,
        since: object = None,
        timestamps: object = None,
    ) -> CommandResult:
        resolved = await self.resolve_container(name)
        args: List[str] = ["logs", "--tail", str(self._clamp_tail(tail))]
        since_value = normalize_value(since)
        if since_value:
            args.extend(["--since", since_value])
        if normalize_value(timestamps) == "1":
            args.append("--timestamps")
        args.append(resolved)
        return await self.run_docker(args, allow_failure=True)

    async def container_inspect(self, name: str) -> CommandResult:
        resolved = await self.resolve_container(name)
        return await self.run_docker(["inspect", resolved])

    async def container_top(self, name: str) -> CommandResult:
        resolved = await self.resolve_container(name)
        return await self.run_docker(["top", resolved], allow_failure=True)

    async def container_stats(self, name: str) -> CommandResult:
        resolved = await self.resolve_container(name)
        return await self.run_docker(["stats", "--no-stream", resolved], allow_failure=True)

    async def container_mutate(self, name: str, command: str) -> CommandResult:
        argv = CONTAINER_MUTATIONS.get(normalize_value(command).lower())
        if argv is None:
            raise NotFoundError(f"unsupported container command: {command}")
        resolved = await self.resolve_container(name)
        return await self.run_docker([*argv, resolved], allow_failure=True)

    async def container_rename(self, name: str, to_name: object) -> CommandResult:
        target = self.assert_container_name(to_name)
        resolved = await self.resolve_container(name)
        return await self.run_docker(["rename", resolved, target], allow_failure=True)

    async def container_update(self, name: str, update_args: Sequence[str]) -> CommandResult:
        if not update_args:
            raise InvalidInputError("container update requires args")
        resolved = await self.resolve_container(name)
        return await self.run_docker(["update", *update_args, resolved], allow_failure=True)

    def pick_shell(self, shell: object) -> str:
        requested = normalize_value(shell)
        if requested in ALLOWED_EXEC_SHELLS:
            return requested
        default = normalize_value(self.settings.exec_shell)
        return default if default in ALLOWED_EXEC_SHELLS else FALLBACK_EXEC_SHELL

    async def container_exec(self, name: str, shell: object, command_text: object) -> CommandResult:
        command = normalize_value(command_text)
        if not command:
            raise InvalidInputError("container exec requires command")
        resolved = await self.resolve_container(name)
        return await self.run_docker(["exec", resolved, self.pick_shell(shell), "-lc", command], allow_failure=True)

    async def container_raw(self, name: str, args: Sequence[str]) -> CommandResult:
        if not args:
            raise InvalidInputError("container raw command requires args")
        resolved = await self.resolve_container(name)
        return await self.run_docker([*args, resolved], allow_failure=True)
