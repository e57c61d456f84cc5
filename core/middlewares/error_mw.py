"""Error middleware: maps raised errors to HTTP responses."""

from __future__ import annotations

import logging

from aiohttp import web

from core.errors import CommandFailureError, DockerManagerError, MethodNotAllowedError
from core.responses import result_response, text_response

logger = logging.getLogger(__name__)


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    scope = request.get("scope") or "http"
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except CommandFailureError as e:
        if e.result is None:
            logger.error("command failed: %s", e.message, extra={"scope": scope})
            return text_response(f"error: {e.message}", e.status)
        logger.error(
            "command failed",
            extra={"scope": scope, "meta": {"command": e.result.command, "code": e.result.exit_code}},
        )
        return result_response(e.result)
    except MethodNotAllowedError as e:
        return text_response(e.message, e.status, headers={"Allow": ", ".join(e.allowed)})
    except DockerManagerError as e:
        if e.status >= 500:
            logger.error("handler error: %s", e.message, extra={"scope": scope})
            return text_response(f"error: {e.message}", e.status)
        logger.info("rejected with %d: %s", e.status, e.message, extra={"scope": scope})
        return text_response(e.message, e.status)
    except Exception as e:
        logger.error("unexpected handler error", exc_info=True, extra={"scope": scope})
        return text_response(f"error: {e}", 500)
