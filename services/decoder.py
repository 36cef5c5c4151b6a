"""Turn raw transport messages into validated readings."""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Union

from pydantic import ValidationError

from app.schemas import ReadingPayload
from models.errors import DecodeError
from models.records import Reading, Stream


@dataclass(frozen=True, slots=True)
class DecodedMessage:
    stream: Stream
    reading: Reading


def route_topic(topic: str) -> Stream:
    """Pick the destination stream for an origin label.

    Precedence is servo, then status, then sensors; the first substring
    match wins, so ``.../servo/status`` lands in the servo stream.
    """

    if "servo" in topic:
        return Stream.servo
    if "status" in topic:
        return Stream.status
    return Stream.sensors


def decode_message(
    topic: str, payload: Union[bytes, str], received_at: datetime
) -> DecodedMessage:
    if isinstance(payload, bytes):
        try:
            text = payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError("Payload is not valid UTF-8.") from exc
    else:
        text = payload

    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"Payload is not valid JSON: {exc.msg}") from exc

    if not isinstance(document, dict):
        raise DecodeError("Payload must be a JSON object.")

    try:
        parsed = ReadingPayload.model_validate(document)
    except ValidationError as exc:
        fields = ", ".join(
            ".".join(str(part) for part in error["loc"]) for error in exc.errors()
        )
        raise DecodeError(f"Payload failed validation: {fields}") from exc

    return DecodedMessage(
        stream=route_topic(topic),
        reading=parsed.to_reading(received_at=received_at, topic=topic),
    )
