"""
Response Decoding Module

The gateway answers in one of three encodings and the declared content type
is the only discriminator:

- JSON objects (pricing data)
- a two-token "STATUS VALUE" text body served as text/html (sends, reports, balance)
- CSV tables (pricing data)

Every body is read through a size guard and decoded into one of the
response variants below. Unrecognised content types are rejected.
"""

import csv
import io
import json
from dataclasses import dataclass
from typing import Any, List, Union

import requests

from .exceptions import (
    InvalidResponseError,
    ResponseTooLargeError,
    UnsupportedResponseTypeError,
)

MAX_RESPONSE_BYTES = 1024 * 1024
CHUNK_SIZE = 8192


@dataclass(frozen=True)
class JsonResponse:
    data: Any


@dataclass(frozen=True)
class StatusValueResponse:
    status: str
    value: str

    @property
    def ok(self) -> bool:
        return self.status == "OK"


@dataclass(frozen=True)
class CsvResponse:
    rows: List[List[str]]


DecodedResponse = Union[JsonResponse, StatusValueResponse, CsvResponse]


def read_body(response: requests.Response, limit: int = MAX_RESPONSE_BYTES) -> bytes:
    """Read a streamed response body, aborting once it grows past `limit` bytes"""
    buffer = bytearray()
    try:
        for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
            if not chunk:
                continue
            buffer.extend(chunk)
            if len(buffer) > limit:
                raise ResponseTooLargeError(limit)
    finally:
        response.close()
    return bytes(buffer)


def _text(body: bytes, encoding) -> str:
    return body.decode(encoding or "utf-8", errors="replace")


def parse_status_value(text: str) -> StatusValueResponse:
    tokens = text.split()
    if len(tokens) < 2:
        raise InvalidResponseError(f"Expected 'STATUS VALUE' response, got {text.strip()!r}")
    return StatusValueResponse(status=tokens[0], value=tokens[1])


def parse_csv(text: str) -> CsvResponse:
    reader = csv.reader(io.StringIO(text))
    return CsvResponse(rows=[row for row in reader if row])


def parse_json(text: str) -> JsonResponse:
    try:
        return JsonResponse(data=json.loads(text))
    except ValueError as e:
        raise InvalidResponseError(f"Invalid JSON response: {e}") from e


def decode_response(content_type: str, body: bytes, encoding=None) -> DecodedResponse:
    """Decode a raw body according to its declared content type"""
    content_type = (content_type or "").lower()
    text = _text(body, encoding)

    # A body may look like JSON without being labelled as such
    if "json" in content_type or text.lstrip().startswith("{"):
        return parse_json(text)
    if "html" in content_type:
        return parse_status_value(text)
    if "csv" in content_type:
        return parse_csv(text)
    raise UnsupportedResponseTypeError(content_type)


def decode_http_response(response: requests.Response, limit: int = MAX_RESPONSE_BYTES) -> DecodedResponse:
    body = read_body(response, limit)
    return decode_response(response.headers.get("Content-Type", ""), body, response.encoding)
