"""Static command catalog and allow/deny policy."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from utils.helpers import normalize_value, parse_csv_set

logger = logging.getLogger(__name__)

SAFE = "safe"
DANGEROUS = "dangerous"
CATEGORIES = (SAFE, DANGEROUS)

GET = ("GET",)
POST = ("POST",)


@dataclass(frozen=True)
class Operation:
    name: str
    category: str
    methods: Tuple[str, ...]


def _ops(category: str, specs: Iterable[Tuple[str, Tuple[str, ...]]]) -> List[Operation]:
    return [Operation(name=name, category=category, methods=methods) for name, methods in specs]


SAFE_OPERATIONS = _ops(
    SAFE,
    [
        ("healthz", GET),
        ("help", GET),
        ("network.status", GET),
        ("network.ping", POST),
        ("network.address", GET),
        ("proxy.test", GET),
        ("proxy.version", GET),
        ("proxy.logs.access", GET),
        ("proxy.logs.error", GET),
        ("proxy.logs.shadow", GET),
        ("system.ps", GET),
        ("system.images", GET),
        ("system.networks", GET),
        ("system.volumes", GET),
        ("system.info", GET),
        ("system.version", GET),
        ("container.status", GET),
        ("container.logs", GET),
        ("container.inspect", GET),
        ("container.top", GET),
        ("container.stats", GET),
        ("container.start", POST),
        ("container.stop", POST),
        ("container.restart", POST),
        ("container.pause", POST),
        ("container.unpause", POST),
    ],
)

DANGEROUS_OPERATIONS = _ops(
    DANGEROUS,
    [
        ("proxy.reload", POST),
        ("system.prune", POST),
        ("system.raw", POST),
        ("container.kill", POST),
        ("container.rm", POST),
        ("container.exec", POST),
        ("container.rename", POST),
        ("container.update", POST),
        ("container.raw", POST),
    ],
)


@dataclass(frozen=True)
class CommandPolicy:
    """Allow-set for one category: either everything or an explicit name set."""

    allow_all: bool = True
    names: FrozenSet[str] = frozenset()

    @classmethod
    def parse(cls, value: object) -> "CommandPolicy":
        text = normalize_value(value)
        if not text or text == "*":
            return cls(allow_all=True)
        return cls(allow_all=False, names=frozenset(parse_csv_set(text)))

    def permits(self, name: str) -> bool:
        return self.allow_all or name in self.names

    def describe(self) -> str:
        if self.allow_all:
            return "*"
        return ",".join(sorted(self.names))


@dataclass(frozen=True)
class PolicyConfig:
    enabled: Dict[str, bool] = field(default_factory=lambda: {SAFE: True, DANGEROUS: True})
    allowed: Dict[str, CommandPolicy] = field(
        default_factory=lambda: {SAFE: CommandPolicy(), DANGEROUS: CommandPolicy()}
    )
    blocked: FrozenSet[str] = frozenset()

    @classmethod
    def from_settings(cls, settings) -> "PolicyConfig":
        return cls(
            enabled={
                SAFE: bool(settings.enable_safe_commands),
                DANGEROUS: bool(settings.enable_dangerous_commands),
            },
            allowed={
                SAFE: CommandPolicy.parse(settings.allowed_safe_commands),
                DANGEROUS: CommandPolicy.parse(settings.allowed_dangerous_commands),
            },
            blocked=frozenset(parse_csv_set(settings.blocked_commands)),
        )


class CommandCatalog:
    """Lookup of the fixed operation catalog plus the policy decision."""

    def __init__(
        self,
        policy: Optional[PolicyConfig] = None,
        operations: Optional[Iterable[Operation]] = None,
    ) -> None:
        self.policy = policy or PolicyConfig()
        ops = list(operations) if operations is not None else SAFE_OPERATIONS + DANGEROUS_OPERATIONS
        self._operations: Dict[str, Operation] = {op.name: op for op in ops}
        unknown_blocked = sorted(n for n in self.policy.blocked if n not in self._operations)
        if unknown_blocked:
            logger.warning("Blocked command list names unknown commands: %s", ", ".join(unknown_blocked))

    def get(self, name: str) -> Optional[Operation]:
        return self._operations.get(name)

    def names(self, category: Optional[str] = None) -> List[str]:
        return [op.name for op in self._operations.values() if category is None or op.category == category]

    def is_allowed(self, name: str) -> bool:
        op = self._operations.get(name)
        if op is None:
            return False
        if not self.policy.enabled.get(op.category, False):
            return False
        allow = self.policy.allowed.get(op.category)
        if allow is None or not allow.permits(name):
            return False
        return name not in self.policy.blocked
