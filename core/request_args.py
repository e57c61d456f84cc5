"""Request body reading and argument collection for command routes."""

from __future__ import annotations

import json
import shlex
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

from aiohttp import web

from core.errors import InvalidInputError, PayloadTooLargeError
from utils.helpers import normalize_value


@dataclass(frozen=True)
class RequestBody:
    text: str = ""
    json: Any = None

    def json_field(self, key: str) -> Any:
        if isinstance(self.json, dict):
            return self.json.get(key)
        return None

    @property
    def free_text(self) -> str:
        """Raw text, unless the body was a JSON object or array.

        A JSON string body yields the decoded string.
        """
        if isinstance(self.json, (dict, list)):
            return ""
        if isinstance(self.json, str):
            return normalize_value(self.json)
        return normalize_value(self.text)


EMPTY_BODY = RequestBody()


async def read_body(request: web.Request, limit_bytes: int) -> RequestBody:
    """Read the body, aborting as soon as it grows past ``limit_bytes``."""
    declared = request.content_length
    if declared is not None and declared > limit_bytes:
        raise PayloadTooLargeError(f"request body too large (>{limit_bytes} bytes)")

    chunks: List[bytes] = []
    total = 0
    async for chunk in request.content.iter_any():
        total += len(chunk)
        if total > limit_bytes:
            raise PayloadTooLargeError(f"request body too large (>{limit_bytes} bytes)")
        chunks.append(chunk)

    text = b"".join(chunks).decode("utf-8", errors="replace")
    parsed = None
    if text.strip():
        try:
            parsed = json.loads(text)
        except ValueError:
            parsed = None
    return RequestBody(text=text, json=parsed)


def split_shell_words(text: object) -> List[str]:
    source = normalize_value(text)
    if not source:
        return []
    try:
        return shlex.split(source)
    except ValueError as e:
        raise InvalidInputError(f"cannot parse arguments: {e}") from e


def _clean(values) -> List[str]:
    return [v for v in (normalize_value(item) for item in values) if v]


def collect_args(query: Mapping[str, str], body: Optional[RequestBody] = None) -> List[str]:
    """Argument list from the first non-empty source.

    Order: repeated ``arg`` query params, the ``args`` query param (CSV when
    it contains a comma, shell words otherwise), a JSON body ``args`` array,
    then the raw body split into shell words.
    """
    body = body or EMPTY_BODY

    getall = getattr(query, "getall", None)
    repeated = getall("arg", []) if callable(getall) else [query.get("arg", "")]
    args = _clean(repeated)
    if args:
        return args

    args_param = normalize_value(query.get("args"))
    if args_param:
        args = _clean(args_param.split(",")) if "," in args_param else split_shell_words(args_param)
        if args:
            return args

    json_args = body.json_field("args")
    if isinstance(json_args, list):
        args = _clean(json_args)
        if args:
            return args

    return split_shell_words(body.free_text)


def collect_text(query: Mapping[str, str], body: Optional[RequestBody], *keys: str) -> str:
    """First non-empty value among query params, JSON string fields, raw body."""
    body = body or EMPTY_BODY
    for key in keys:
        value = normalize_value(query.get(key))
        if value:
            return value
    for key in keys:
        value = body.json_field(key)
        if isinstance(value, (str, int, float)) and not isinstance(value, bool):
            text = normalize_value(value)
            if text:
                return text
    return body.free_text


def collect_command_text(query: Mapping[str, str], body: Optional[RequestBody] = None) -> str:
    return collect_text(query, body, "cmd", "command")
