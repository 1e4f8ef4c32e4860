"""
Request body decoding.
"""

import json
from typing import Any
from urllib.parse import parse_qsl

from starlette.requests import Request

from .exceptions import BodyParseError


def _media_type(request: Request) -> str:
    value = request.headers.get("content-type") or ""
    return value.split(";", 1)[0].strip().lower()


def is_json_media_type(media_type: str) -> bool:
    return media_type == "application/json" or media_type.endswith("+json")


async def parse_body(request: Request) -> Any:
    """
    Decode the request body by content type.

    JSON -> decoded value, urlencoded form -> dict, text/* -> str, anything
    else -> raw bytes. An empty body is None.
    """
    raw = await request.body()
    if not raw:
        return None

    media_type = _media_type(request)
    if is_json_media_type(media_type):
        try:
            return json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise BodyParseError(media_type, e) from e

    if media_type == "application/x-www-form-urlencoded":
        try:
            return dict(parse_qsl(raw.decode("utf-8"), keep_blank_values=True))
        except UnicodeDecodeError as e:
            raise BodyParseError(media_type, e) from e

    if media_type.startswith("text/"):
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise BodyParseError(media_type, e) from e

    return raw
