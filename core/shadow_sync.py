"""Tailscale peers → nginx shadow backend files.

One cycle reads ``tailscale status --json`` from the tailscale container,
derives the active peer IPv4 set, diffs it against ``{ip}.conf`` files in the
shadow directory, and on change rewrites the directory and reloads nginx.
A failed test/reload restores the previous directory snapshot.

Only IPv4 peers are synced.
"""

from __future__ import annotations

import json
import logging
import os
import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Tuple

from core.errors import ShadowSyncError
from utils.constants import SHADOW_FILE_SUFFIX, SHADOW_STANZA_TEMPLATE
from utils.helpers import normalize_value

logger = logging.getLogger(__name__)

SCOPE = "tailscale-sync"

_IPV4_SHAPE_RE = re.compile(r"^\d{1,3}(\.\d{1,3}){3}$")
_NATURAL_CHUNK_RE = re.compile(r"(\d+)")

# Field names probed on each node, in order. Producers disagree on casing.
ONLINE_FIELDS = ("Online", "online", "Active", "active")
CUR_ADDR_FIELDS = ("CurAddr", "curAddr")
ID_FIELDS = ("ID", "id")
IP_LIST_FIELDS = ("TailscaleIPs", "tailscaleIPs", "tailscaleIps", "Addresses", "addresses", "ips")


@dataclass
class SyncResult:
    changed: bool
    previous_ips: List[str] = field(default_factory=list)
    next_ips: List[str] = field(default_factory=list)
    added: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def is_ipv4(value: object) -> bool:
    text = normalize_value(value)
    if not _IPV4_SHAPE_RE.fullmatch(text):
        return False
    return all(0 <= int(octet) <= 255 for octet in text.split("."))


def natural_key(value: str) -> Tuple:
    """Sort key comparing digit runs numerically: 10.0.0.2 < 10.0.0.10."""
    parts = _NATURAL_CHUNK_RE.split(str(value))
    return tuple((0, int(p), "") if p.isdigit() else (1, 0, p.lower()) for p in parts if p)


def natural_sorted(values: Iterable[str]) -> List[str]:
    return sorted(values, key=natural_key)


def render_shadow_content(ip: str, port: int) -> str:
    return SHADOW_STANZA_TEMPLATE.format(ip=ip, port=port)


def _ip_from_filename(name: str) -> str:
    if not name.endswith(SHADOW_FILE_SUFFIX):
        return ""
    stem = name[: -len(SHADOW_FILE_SUFFIX)]
    return stem if is_ipv4(stem) else ""


def _list_shadow_files(shadow_dir: Path) -> Dict[str, Path]:
    files: Dict[str, Path] = {}
    for entry in shadow_dir.iterdir():
        if not entry.is_file():
            continue
        ip = _ip_from_filename(entry.name)
        if ip:
            files[ip] = entry
    return files


def read_shadow_files(shadow_dir) -> Dict[str, bytes]:
    """Current backend set as raw bytes. Files whose stem is not IPv4 are ignored."""
    directory = Path(shadow_dir)
    directory.mkdir(parents=True, exist_ok=True)
    return {ip: path.read_bytes() for ip, path in _list_shadow_files(directory).items()}


def write_shadow_state(shadow_dir, desired: Dict[str, bytes]) -> None:
    """Make the directory hold exactly ``desired``. Each file is replaced atomically."""
    directory = Path(shadow_dir)
    directory.mkdir(parents=True, exist_ok=True)
    stale = _list_shadow_files(directory)

    for ip, content in desired.items():
        target = directory / f"{ip}{SHADOW_FILE_SUFFIX}"
        tmp = directory / f"{ip}{SHADOW_FILE_SUFFIX}.tmp"
        tmp.write_bytes(content)
        os.replace(tmp, target)
        stale.pop(ip, None)

    for path in stale.values():
        try:
            path.unlink()
        except FileNotFoundError:
            pass


def _first(node: dict, fields: Iterable[str]) -> object:
    for name in fields:
        value = node.get(name)
        if value:
            return value
    return None


def is_peer_active(peer: dict) -> bool:
    flags = [peer.get(name) for name in ONLINE_FIELDS if isinstance(peer.get(name), bool)]
    if flags:
        return any(flags)
    return bool(normalize_value(_first(peer, CUR_ADDR_FIELDS)))


def collect_node_ips(node: object) -> List[str]:
    if not isinstance(node, dict):
        return []
    ips: List[str] = []
    for name in IP_LIST_FIELDS:
        values = node.get(name)
        if not isinstance(values, list):
            continue
        for item in values:
            ip = normalize_value(item)
            if is_ipv4(ip) and ip not in ips:
                ips.append(ip)
    return ips


def extract_active_peer_ips(payload: object) -> List[str]:
    """Active peer IPv4 addresses, minus the local node's own, naturally sorted."""
    if not isinstance(payload, dict):
        return []
    peer_map = payload.get("Peer")
    peers = list(peer_map.values()) if isinstance(peer_map, dict) else []
    self_node = payload.get("Self") if isinstance(payload.get("Self"), dict) else {}
    self_ips = set(collect_node_ips(self_node))
    self_id = normalize_value(_first(self_node, ID_FIELDS))

    selected: List[str] = []
    for peer in peers:
        if not isinstance(peer, dict):
            continue
        if peer.get("Self") is True:
            continue
        peer_id = normalize_value(_first(peer, ID_FIELDS))
        if self_id and peer_id and self_id == peer_id:
            continue
        if not is_peer_active(peer):
            continue
        for ip in collect_node_ips(peer):
            if ip not in self_ips and ip not in selected:
                selected.append(ip)
    return natural_sorted(selected)


def diff_ip_sets(previous: Iterable[str], desired: Iterable[str]) -> Tuple[List[str], List[str], bool]:
    prev = set(previous)
    nxt = set(desired)
    added = natural_sorted(nxt - prev)
    removed = natural_sorted(prev - nxt)
    return added, removed, bool(added or removed)


async def _test_and_reload(client) -> None:
    await client.proxy_test()
    await client.proxy_signal_reload()


async def apply_state_with_rollback(client, shadow_dir, previous: Dict[str, bytes], desired: Dict[str, bytes]) -> None:
    """Write ``desired``, then test and reload nginx; restore ``previous`` on failure.

    The first test/reload error is always re-raised. A failure while
    reloading the restored snapshot is logged only.
    """
    write_shadow_state(shadow_dir, desired)
    try:
        await _test_and_reload(client)
    except Exception as error:
        logger.error(
            "nginx test/reload failed, rollback started: %s",
            error,
            extra={"scope": SCOPE},
        )
        write_shadow_state(shadow_dir, previous)
        try:
            await _test_and_reload(client)
        except Exception as rollback_error:
            logger.error("rollback reload failed: %s", rollback_error, extra={"scope": SCOPE})
        raise


def parse_status_payload(stdout: str) -> dict:
    try:
        payload = json.loads(str(stdout or "").strip() or "{}")
    except ValueError as e:
        raise ShadowSyncError(f"invalid tailscale status json: {e}") from e
    if not isinstance(payload, dict):
        raise ShadowSyncError("invalid tailscale status json: root is not an object")
    return payload


async def run_shadow_sync(client, settings) -> SyncResult:
    """Run one reconciliation cycle and report what changed."""
    status = await client.network_status(as_json=True)
    next_ips = extract_active_peer_ips(parse_status_payload(status.stdout))

    previous_state = read_shadow_files(settings.shadow_dir)
    previous_ips = natural_sorted(previous_state)
    added, removed, changed = diff_ip_sets(previous_ips, next_ips)
    result = SyncResult(
        changed=changed,
        previous_ips=previous_ips,
        next_ips=next_ips,
        added=added,
        removed=removed,
    )
    logger.info("tailscale scan result", extra={"scope": SCOPE, "meta": result.to_dict()})

    if not changed:
        return result

    desired_state = {ip: render_shadow_content(ip, settings.shadow_port).encode("utf-8") for ip in next_ips}
    await apply_state_with_rollback(client, settings.shadow_dir, previous_state, desired_state)
    logger.info(
        "shadow files synced and nginx reloaded",
        extra={"scope": SCOPE, "meta": {"added": added, "removed": removed}},
    )
    return result
