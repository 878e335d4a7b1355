"""
Decode an OpenAI-style chat request body into normalized messages.

Clients send message ``content`` in two shapes: a plain string, or a list of
typed parts (``{"type": "text", ...}`` / ``{"type": "image_url", ...}``).
Both end up as a non-empty ``list[ContentPart]``.
"""
import json
from typing import Annotated, Any

from pydantic import Field, TypeAdapter, ValidationError

from ..models.chat import ChatRequest, ContentPart, Message, TextPart


class MalformedJSON(Exception):
    pass


class MalformedContent(Exception):
    pass


_PARTS = TypeAdapter(Annotated[list[ContentPart], Field(min_length=1)])


def normalize_content(raw: Any) -> list[ContentPart]:
    # Structured list first; a string is only considered once that has failed.
    try:
        return _PARTS.validate_python(raw)
    except ValidationError as exc:
        structured_error = exc

    if isinstance(raw, str):
        return [TextPart(text=raw)]

    raise MalformedContent(
        "message content must be a string or a non-empty list of typed parts "
        f"({structured_error.error_count()} validation error(s))"
    )


def normalize_message(raw: Any) -> Message:
    if not isinstance(raw, dict):
        raise MalformedContent("each message must be a JSON object")

    role = raw.get("role") or ""
    if not isinstance(role, str):
        raise MalformedContent("message role must be a string")

    return Message(role=role, content=normalize_content(raw.get("content")))


def parse_chat_request(body: bytes) -> ChatRequest:
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedJSON(f"request body is not valid JSON: {exc}") from exc

    if not isinstance(payload, dict):
        raise MalformedJSON("request body must be a JSON object")

    model = payload.get("model") or ""
    if not isinstance(model, str):
        raise MalformedJSON("'model' must be a string")

    raw_messages = payload.get("messages")
    if not isinstance(raw_messages, list):
        raise MalformedJSON("'messages' must be a list")

    return ChatRequest(
        model=model,
        messages=[normalize_message(m) for m in raw_messages],
    )
