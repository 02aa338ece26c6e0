"""큐 메시지 바이트를 본문 문자열로 풀어내는 코덱이에요.

프로듀서마다 포맷이 달라서 아래 순서로 시도하고, 어떤 입력에도 예외를 던지지 않아요.

1. 길이 접두 바이너리 봉투 (``\\x89BIN\\r\\n\\x1a\\n`` + 버전 + 오프셋)
2. ``{"data": "...", "headers": {...}}`` 형태의 JSON 봉투
3. 원본 바이트를 UTF-8 텍스트로 그대로 사용

바이너리 봉투의 레이아웃은 빅엔디언이에요::

    magic(8) | version(u16) | headers_start(u32) | data_start(u32) | header_count(u16) | headers... | body

첫 magic 바이트가 깨져서 오는 프로듀서가 있어서 7바이트 마커로만 봉투를 찾아요.
"""

from __future__ import annotations

import json
import struct
import uuid
from dataclasses import dataclass
from typing import Any

from libs.common.logging import get_logger

logger = get_logger("wc_bridge.wire_codec")

BINARY_MAGIC = b"\x89BIN\r\n\x1a\n"
BINARY_MARKER = BINARY_MAGIC[1:]
BINARY_VERSION = 1

_VERSION_OFFSET = len(BINARY_MARKER)
_HEADERS_START_OFFSET = _VERSION_OFFSET + 2
_DATA_START_OFFSET = _HEADERS_START_OFFSET + 4
_MIN_TAIL = _DATA_START_OFFSET + 4

JSON_CONTENT_TYPE = "application/json"
UTF8_ENCODING = "utf-8"


@dataclass(slots=True)
class DecodedMessage:
    body: str
    headers: dict[str, Any] | None = None


def decode(raw: bytes | str) -> DecodedMessage:
    data = raw.encode("utf-8") if isinstance(raw, str) else bytes(raw)

    decoded = _decode_binary(data)
    if decoded is not None:
        return decoded

    decoded = _decode_json_envelope(data)
    if decoded is not None:
        return decoded

    return DecodedMessage(body=_text(data))


def _decode_binary(data: bytes) -> DecodedMessage | None:
    marker_index = data.find(BINARY_MARKER)
    if marker_index < 0 or len(data) < marker_index + _MIN_TAIL:
        return None

    message_start = max(0, marker_index - 1)
    (version,) = struct.unpack_from(">H", data, marker_index + _VERSION_OFFSET)
    (data_start,) = struct.unpack_from(">I", data, marker_index + _DATA_START_OFFSET)
    absolute_data_start = message_start + data_start
    logger.debug(
        "binary_envelope_detected",
        marker_index=marker_index,
        message_start=message_start,
        version=version,
        data_start=data_start,
        absolute_data_start=absolute_data_start,
        size=len(data),
    )
    if version != BINARY_VERSION or not 0 < absolute_data_start <= len(data):
        return None
    return DecodedMessage(body=_text(data[absolute_data_start:]))


def _decode_json_envelope(data: bytes) -> DecodedMessage | None:
    try:
        envelope = json.loads(_text(data))
    except ValueError:
        return None
    if not isinstance(envelope, dict):
        return None

    body = envelope.get("data")
    if not isinstance(body, str):
        return None
    headers = envelope.get("headers")
    return DecodedMessage(body=body, headers=headers if isinstance(headers, dict) else None)


def _text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def encode_json_envelope(body: dict[str, Any], headers: dict[str, str] | None = None) -> bytes:
    """본문을 JSON 봉투로 감싸요. `correlation_id` 헤더가 없으면 새로 만들어요."""
    envelope_headers: dict[str, str] = {"correlation_id": str(uuid.uuid4())}
    if headers:
        envelope_headers.update(headers)
    envelope_headers.setdefault("content_type", JSON_CONTENT_TYPE)
    envelope_headers.setdefault("content_encoding", UTF8_ENCODING)
    envelope = {"data": json.dumps(body), "headers": envelope_headers}
    return json.dumps(envelope).encode("utf-8")


def encode_binary_envelope(body: bytes, headers: dict[str, str] | None = None) -> bytes:
    header_items = list((headers or {}).items())
    header_block = bytearray(struct.pack(">H", len(header_items)))
    for key, value in header_items:
        for part in (key.encode("utf-8"), value.encode("utf-8")):
            header_block += struct.pack(">H", len(part))
            header_block += part

    headers_start = len(BINARY_MAGIC) + 2 + 4 + 4
    data_start = headers_start + len(header_block)
    prefix = BINARY_MAGIC + struct.pack(">HII", BINARY_VERSION, headers_start, data_start)
    return prefix + bytes(header_block) + body
