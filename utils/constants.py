"""
Centralized constants for docker-manager.

Collects magic strings, limits, and compiled patterns shared by the docker
client, the HTTP router and the shadow sync.
"""
import re

# ── HTTP surface ──
API_PREFIX = "/dockerapi"

# ── Container naming ──
CONTAINER_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
COMPOSE_SERVICE_LABEL = "com.docker.compose.service"

# ── Name resolution ──
RESOLVE_CACHE_TTL_SECONDS = 10.0
RESOLVE_TIMEOUT_SECONDS = 5.0

# ── Exec ──
ALLOWED_EXEC_SHELLS = frozenset({"sh", "bash", "zsh", "ash"})
FALLBACK_EXEC_SHELL = "sh"

# ── Network agent ──
PING_DEFAULT_COUNT = 3
PING_MAX_COUNT = 10

# ── Proxy logs (inside the nginx container) ──
PROXY_LOG_FILES = {
    "access": "/var/log/nginx/app.access.log",
    "error": "/var/log/nginx/app.error.log",
    "shadow": "/var/log/nginx/shadow.mirror.log",
}

# ── Prune scopes → docker argv ──
PRUNE_SCOPES = {
    "all": ["system", "prune", "-f"],
    "containers": ["container", "prune", "-f"],
    "images": ["image", "prune", "-af"],
    "networks": ["network", "prune", "-f"],
    "volumes": ["volume", "prune", "-f"],
    "builder": ["builder", "prune", "-af"],
}

# ── Shadow backends ──
SHADOW_FILE_SUFFIX = ".conf"
SHADOW_STANZA_TEMPLATE = "server {ip}:{port} max_fails=2 fail_timeout=10s;\n"
SYNC_STARTUP_DELAY_SECONDS = 2.0
