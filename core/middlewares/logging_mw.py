"""Logging middleware: counts requests, tags each with an id and logs it."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone

from aiohttp import web

logger = logging.getLogger(__name__)


@dataclass
class RequestStats:
    started_at: str = ""
    request_count: int = 0

    @classmethod
    def now(cls) -> "RequestStats":
        started = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        return cls(started_at=started)


STATS_KEY = web.AppKey("request_stats", RequestStats)


@web.middleware
async def logging_middleware(request: web.Request, handler) -> web.StreamResponse:
    stats = request.app[STATS_KEY]
    stats.request_count += 1
    scope = f"http:{int(time.time() * 1000)}-{stats.request_count}"
    request["scope"] = scope

    logger.info(
        "request",
        extra={
            "scope": scope,
            "meta": {
                "method": request.method,
                "path": request.path,
                "query": request.query_string,
                "remote": request.remote or "",
            },
        },
    )
    start = time.time()
    response = await handler(request)
    logger.debug(
        "Processed %s %s in %.2fs status=%d",
        request.method,
        request.path,
        time.time() - start,
        response.status,
        extra={"scope": scope},
    )
    return response
