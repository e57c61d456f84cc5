"""aiohttp response helpers. Every response is marked ``Cache-Control: no-store``."""

from __future__ import annotations

import json
from typing import Any, Mapping, Optional

from aiohttp import web

from core.formatter import format_command_result
from core.process_runner import CommandResult

NO_STORE = {"Cache-Control": "no-store"}


def text_response(text: str, status: int = 200, headers: Optional[Mapping[str, str]] = None) -> web.Response:
    body = str(text or "")
    if not body.endswith("\n"):
        body += "\n"
    return web.Response(
        text=body,
        status=status,
        content_type="text/plain",
        charset="utf-8",
        headers={**NO_STORE, **(headers or {})},
    )


def json_response(payload: Any, status: int = 200) -> web.Response:
    return web.Response(
        text=json.dumps(payload, indent=2, ensure_ascii=False) + "\n",
        status=status,
        content_type="application/json",
        charset="utf-8",
        headers=dict(NO_STORE),
    )


def result_response(result: Optional[CommandResult]) -> web.Response:
    """200 for a zero exit code, 500 otherwise; same text layout either way."""
    status = 500 if result is not None and result.exit_code != 0 else 200
    return text_response(format_command_result(result), status)
