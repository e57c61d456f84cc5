"""
Plain-text rendering of command results, help and health output
"""
import logging
from typing import List, Optional

from core.policy import DANGEROUS, SAFE, CommandCatalog
from core.process_runner import CommandResult
from utils.config import env_name
from utils.constants import API_PREFIX

logger = logging.getLogger(__name__)

SAMPLE_ENDPOINTS = [
    ("GET ", "/healthz"),
    ("GET ", "/help"),
    ("GET ", "/network/status"),
    ("GET ", "/network/status?format=json"),
    ("POST", "/network/ping?target=100.x.x.x&count=3"),
    ("GET ", "/network/address"),
    ("GET ", "/proxy/test"),
    ("POST", "/proxy/reload"),
    ("GET ", "/proxy/version"),
    ("GET ", "/proxy/logs/access?tail=200"),
    ("GET ", "/system/ps"),
    ("POST", "/system/prune?scope=all"),
    ("GET ", "/{container}/status"),
    ("GET ", "/{container}/logs?tail=200"),
    ("POST", "/{container}/restart"),
    ("POST", "/{container}/exec?cmd=ls%20-la"),
]


def format_command_result(result: Optional[CommandResult]) -> str:
    """
    Render a result as ``$ cmd`` / ``exit=N`` / stdout / stderr sections.

    Empty streams are omitted.
    """
    if result is None:
        return "no command result"
    lines: List[str] = []
    if result.command:
        lines.append(f"$ {result.command}")
    lines.append(f"exit={result.exit_code}")
    if result.signal:
        lines.append(f"signal={result.signal}")
    stdout = (result.stdout or "").rstrip()
    stderr = (result.stderr or "").rstrip()
    if stdout:
        lines.append("--- stdout ---")
        lines.append(stdout)
    if stderr:
        lines.append("--- stderr ---")
        lines.append(stderr)
    return "\n".join(lines)


def _flag(value: bool) -> str:
    return "1" if value else "0"


def build_help_text(catalog: CommandCatalog) -> str:
    policy = catalog.policy

    def rows(category: str) -> List[str]:
        return [f"{'[x]' if catalog.is_allowed(name) else '[ ]'} {name}" for name in catalog.names(category)]

    lines = [
        "docker-manager command groups",
        "",
        "safe commands:",
        *rows(SAFE),
        "",
        "dangerous commands:",
        *rows(DANGEROUS),
        "",
        "policy env:",
        f"{env_name('enable_safe_commands')}={_flag(policy.enabled.get(SAFE, False))}",
        f"{env_name('enable_dangerous_commands')}={_flag(policy.enabled.get(DANGEROUS, False))}",
        f"{env_name('allowed_safe_commands')}={policy.allowed[SAFE].describe()}",
        f"{env_name('allowed_dangerous_commands')}={policy.allowed[DANGEROUS].describe()}",
        f"{env_name('blocked_commands')}={','.join(sorted(policy.blocked))}",
        "",
        "sample endpoints:",
    ]
    lines.extend(f"{method} {API_PREFIX}{path}" for method, path in SAMPLE_ENDPOINTS)
    return "\n".join(lines)


def build_health_text(started_at: str, request_count: int, sync_state) -> str:
    return "\n".join(
        [
            "status=ok",
            f"started_at={started_at}",
            f"request_count={request_count}",
            f"sync_enabled={_flag(sync_state.enabled)}",
            f"sync_in_progress={_flag(sync_state.in_progress)}",
            f"sync_last_run_at={sync_state.last_run_at or ''}",
            f"sync_last_success_at={sync_state.last_success_at or ''}",
            f"sync_total_runs={sync_state.total_runs}",
            f"sync_total_failures={sync_state.total_failures}",
            # one record per line
            f"sync_last_error={' '.join((sync_state.last_error or '').split())}",
        ]
    )
