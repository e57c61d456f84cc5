"""HTTP router: maps method + path onto catalog operations and the docker client."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Mapping, Optional

from aiohttp import web

from core.docker_client import DockerClient
from core.errors import MethodNotAllowedError, NotFoundError, PermissionDeniedError
from core.formatter import build_health_text, build_help_text, format_command_result
from core.middlewares.error_mw import error_middleware
from core.middlewares.logging_mw import STATS_KEY, RequestStats, logging_middleware
from core.policy import CommandCatalog
from core.request_args import (
    EMPTY_BODY,
    RequestBody,
    collect_args,
    collect_command_text,
    collect_text,
    read_body,
)
from core.responses import json_response, result_response, text_response
from core.sync_scheduler import ShadowSyncScheduler, SyncRunState
from utils.constants import API_PREFIX, PROXY_LOG_FILES
from utils.helpers import normalize_value

logger = logging.getLogger(__name__)

_SYSTEM_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_UNIT_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_.-]+$")
_LOG_TYPE_RE = re.compile(r"^[A-Za-z0-9_-]+$")


@dataclass
class RouteContext:
    """Per-request data handed to a route handler."""

    request: web.Request
    body: RequestBody
    unit: str = ""
    name: str = ""

    @property
    def query(self) -> Mapping[str, str]:
        return self.request.query


Handler = Callable[[RouteContext], Awaitable[web.StreamResponse]]


@dataclass(frozen=True)
class Route:
    operation: str
    handler: Handler


def _wants_json(query: Mapping[str, str]) -> bool:
    return normalize_value(query.get("format")).lower() == "json"


def _json_or_text(result) -> web.Response:
    text = normalize_value(result.stdout) or "{}"
    try:
        payload = json.loads(text)
    except ValueError:
        return text_response(format_command_result(result), 500)
    return json_response(payload)


class RequestRouter:
    """Dispatch requests under ``API_PREFIX``.

    Every matched route goes through the same steps: method check against the
    operation's methods, policy check, body read (POST only), then the
    handler. Route tables are built once here and never change.
    """

    def __init__(
        self,
        settings,
        client: DockerClient,
        catalog: CommandCatalog,
        scheduler: Optional[ShadowSyncScheduler] = None,
        stats: Optional[RequestStats] = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.catalog = catalog
        self.scheduler = scheduler
        self.stats = stats or RequestStats.now()

        fixed: Dict[str, Route] = {
            "": Route("help", self._help),
            "help": Route("help", self._help),
            "healthz": Route("healthz", self._healthz),
            "network/status": Route("network.status", self._network_status),
            "network/ping": Route("network.ping", self._network_ping),
            "network/address": Route("network.address", self._network_address),
            "proxy/test": Route("proxy.test", self._proxy_test),
            "proxy/reload": Route("proxy.reload", self._proxy_reload),
            "proxy/version": Route("proxy.version", self._proxy_version),
        }
        legacy = {
            "tailscale/status": "network/status",
            "tailscale/ping": "network/ping",
            "tailscale/ip": "network/address",
            "nginx/test": "proxy/test",
            "nginx/reload": "proxy/reload",
            "nginx/version": "proxy/version",
        }
        for alias, target in legacy.items():
            fixed[alias] = fixed[target]
        self.fixed_routes = fixed

        self.system_routes: Dict[str, Route] = {
            "ps": Route("system.ps", self._system_command),
            "containers": Route("system.ps", self._system_command),
            "images": Route("system.images", self._system_command),
            "networks": Route("system.networks", self._system_command),
            "volumes": Route("system.volumes", self._system_command),
            "info": Route("system.info", self._system_command),
            "version": Route("system.version", self._system_command),
            "prune": Route("system.prune", self._system_prune),
            "raw": Route("system.raw", self._system_raw),
        }

        self.container_routes: Dict[str, Route] = {
            "status": Route("container.status", self._container_status),
            "logs": Route("container.logs", self._container_logs),
            "inspect": Route("container.inspect", self._container_inspect),
            "top": Route("container.top", self._container_top),
            "stats": Route("container.stats", self._container_stats),
            "exec": Route("container.exec", self._container_exec),
            "rename": Route("container.rename", self._container_rename),
            "update": Route("container.update", self._container_update),
            "raw": Route("container.raw", self._container_raw),
        }
        for action in ("start", "stop", "restart", "pause", "unpause", "kill", "rm"):
            self.container_routes[action] = Route(f"container.{action}", self._container_mutate)

    # ── aiohttp wiring ─────────────────────────────────────────

    def create_app(self) -> web.Application:
        app = web.Application(middlewares=[logging_middleware, error_middleware])
        app[STATS_KEY] = self.stats
        app.router.add_route("*", "/{tail:.*}", self.handle)
        return app

    # ── Dispatch ───────────────────────────────────────────────

    def _resolve(self, path: str):
        if path != API_PREFIX and not path.startswith(API_PREFIX + "/"):
            raise NotFoundError("not found")
        rel = path[len(API_PREFIX):].strip("/")

        route = self.fixed_routes.get(rel)
        if route is not None:
            return route, "", ""

        segments = rel.split("/")
        if len(segments) == 3 and segments[0] in ("proxy", "nginx") and segments[1] == "logs":
            log_type = segments[2].lower()
            if _LOG_TYPE_RE.fullmatch(log_type):
                if log_type not in PROXY_LOG_FILES:
                    raise NotFoundError(f"unsupported nginx log type: {log_type}")
                return Route(f"proxy.logs.{log_type}", self._proxy_logs), "", log_type

        if len(segments) == 2 and segments[0] == "system" and _SYSTEM_NAME_RE.fullmatch(segments[1]):
            name = segments[1].lower()
            route = self.system_routes.get(name)
            if route is None:
                raise NotFoundError(f"unsupported system command: {name}")
            return route, "", name

        if len(segments) == 2 and all(_UNIT_SEGMENT_RE.fullmatch(s) for s in segments):
            unit, action = segments[0], segments[1].lower()
            route = self.container_routes.get(action)
            if route is None:
                raise NotFoundError(f"unsupported container action: {action}")
            return route, unit, action

        raise NotFoundError("dockerapi route not found")

    async def handle(self, request: web.Request) -> web.StreamResponse:
        route, unit, name = self._resolve(request.path)

        operation = self.catalog.get(route.operation)
        if operation is None:
            raise NotFoundError("dockerapi route not found")
        if request.method not in operation.methods:
            raise MethodNotAllowedError(request.method, operation.methods)
        if not self.catalog.is_allowed(operation.name):
            raise PermissionDeniedError(operation.name)

        body = EMPTY_BODY
        if request.method == "POST":
            body = await read_body(request, self.settings.max_body_bytes)

        ctx = RouteContext(request=request, body=body, unit=unit, name=name)
        return await route.handler(ctx)

    # ── Fixed routes ───────────────────────────────────────────

    async def _help(self, ctx: RouteContext) -> web.StreamResponse:
        return text_response(build_help_text(self.catalog))

    async def _healthz(self, ctx: RouteContext) -> web.StreamResponse:
        state = self.scheduler.state if self.scheduler is not None else SyncRunState(enabled=False)
        return text_response(build_health_text(self.stats.started_at, self.stats.request_count, state))

    async def _network_status(self, ctx: RouteContext) -> web.StreamResponse:
        as_json = _wants_json(ctx.query)
        result = await self.client.network_status(as_json=as_json)
        if as_json:
            return _json_or_text(result)
        return result_response(result)

    async def _network_ping(self, ctx: RouteContext) -> web.StreamResponse:
        target = collect_text(ctx.query, ctx.body, "target")
        count = normalize_value(ctx.query.get("count")) or normalize_value(ctx.body.json_field("count"))
        return result_response(await self.client.network_ping(target, count))

    async def _network_address(self, ctx: RouteContext) -> web.StreamResponse:
        return result_response(await self.client.network_address())

    async def _proxy_test(self, ctx: RouteContext) -> web.StreamResponse:
        return result_response(await self.client.proxy_test())

    async def _proxy_reload(self, ctx: RouteContext) -> web.StreamResponse:
        return result_response(await self.client.proxy_reload())

    async def _proxy_version(self, ctx: RouteContext) -> web.StreamResponse:
        return result_response(await self.client.proxy_version())

    async def _proxy_logs(self, ctx: RouteContext) -> web.StreamResponse:
        return result_response(await self.client.proxy_logs(ctx.name, ctx.query.get("tail")))

    # ── System routes ──────────────────────────────────────────

    async def _system_command(self, ctx: RouteContext) -> web.StreamResponse:
        name = "ps" if ctx.name == "containers" else ctx.name
        return result_response(await self.client.system_command(name))

    async def _system_prune(self, ctx: RouteContext) -> web.StreamResponse:
        return result_response(await self.client.system_prune(ctx.query.get("scope")))

    async def _system_raw(self, ctx: RouteContext) -> web.StreamResponse:
        return result_response(await self.client.system_raw(collect_args(ctx.query, ctx.body)))

    # ── Container routes ───────────────────────────────────────

    async def _container_status(self, ctx: RouteContext) -> web.StreamResponse:
        return result_response(await self.client.container_status(ctx.unit))

    async def _container_logs(self, ctx: RouteContext) -> web.StreamResponse:
        query = ctx.query
        result = await self.client.container_logs(
            ctx.unit,
            tail=query.get("tail"),
            since=query.get("since"),
            timestamps=query.get("timestamps"),
        )
        return result_response(result)

    async def _container_inspect(self, ctx: RouteContext) -> web.StreamResponse:
        result = await self.client.container_inspect(ctx.unit)
        if _wants_json(ctx.query):
            return _json_or_text(result)
        return result_response(result)

    async def _container_top(self, ctx: RouteContext) -> web.StreamResponse:
        return result_response(await self.client.container_top(ctx.unit))

    async def _container_stats(self, ctx: RouteContext) -> web.StreamResponse:
        return result_response(await self.client.container_stats(ctx.unit))

    async def _container_mutate(self, ctx: RouteContext) -> web.StreamResponse:
        return result_response(await self.client.container_mutate(ctx.unit, ctx.name))

    async def _container_exec(self, ctx: RouteContext) -> web.StreamResponse:
        command_text = collect_command_text(ctx.query, ctx.body)
        shell = normalize_value(ctx.query.get("shell"))
        return result_response(await self.client.container_exec(ctx.unit, shell, command_text))

    async def _container_rename(self, ctx: RouteContext) -> web.StreamResponse:
        to_name = normalize_value(ctx.query.get("to")) or normalize_value(ctx.body.json_field("to"))
        return result_response(await self.client.container_rename(ctx.unit, to_name))

    async def _container_update(self, ctx: RouteContext) -> web.StreamResponse:
        return result_response(await self.client.container_update(ctx.unit, collect_args(ctx.query, ctx.body)))

    async def _container_raw(self, ctx: RouteContext) -> web.StreamResponse:
        return result_response(await self.client.container_raw(ctx.unit, collect_args(ctx.query, ctx.body)))
