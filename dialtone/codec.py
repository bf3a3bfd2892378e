"""
Request/response codec for the responses endpoint.

Outbound: a JSON body {model, instructions, input, stream, temperature}.
Inbound:
  - non-streaming: {"output": [{"type": "message", "content": [
        {"type": "output_text", "text": "..."}]}]}
  - streaming: SSE lines, `data: {json event}` ... `data: [DONE]`
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import AsyncIterator, Sequence

from dialtone.config import ClientConfig
from dialtone.errors import BadResponse, EmptyResponse, InvalidResponse
from dialtone.models import Message, ResponsesRequest

DATA_PREFIX = "data: "
DONE_MARKER = "[DONE]"
TEXT_DELTA_EVENT = "response.output_text.delta"


@dataclass(frozen=True)
class StreamChunk:
    """One decoded stream line that matters: a text delta, or the end marker."""
    delta: str = ""
    done: bool = False


STREAM_DONE = StreamChunk(done=True)


def merge_instructions(system_prompt: str, extra: str | None) -> str | None:
    base = (system_prompt or "").strip()
    more = (extra or "").strip()
    if base and more:
        return f"{base}\n\n{more}"
    return base or more or None


def encode_request(
    messages: Sequence[Message],
    config: ClientConfig,
    *,
    stream: bool,
    extra_instructions: str | None = None,
) -> dict:
    return ResponsesRequest(
        model=config.model,
        instructions=merge_instructions(config.system_prompt, extra_instructions),
        input=list(messages),
        stream=stream,
        temperature=config.temperature,
    ).to_dict()


def _load_json(body: bytes | str):
    if isinstance(body, bytes):
        body = body.decode("utf-8")
    return json.loads(body)


def decode_response_text(body: bytes | str) -> str:
    """Concatenate every output_text entry of every message item."""
    try:
        data = _load_json(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidResponse("body is not JSON") from None

    output = data.get("output") if isinstance(data, dict) else None
    if not isinstance(output, list):
        raise InvalidResponse("missing output list")

    parts: list[str] = []
    for item in output:
        if not isinstance(item, dict) or item.get("type") not in (None, "message"):
            continue
        content = item.get("content")
        if content is None:
            continue
        if not isinstance(content, list):
            raise InvalidResponse("malformed content")
        for entry in content:
            if not isinstance(entry, dict) or entry.get("type") not in (None, "output_text"):
                continue
            text = entry.get("text")
            if isinstance(text, str):
                parts.append(text)

    text = "".join(parts)
    if not text:
        raise EmptyResponse()
    return text


def _error_envelope_message(data) -> str | None:
    """Message of a top-level {"error": {"message": ...}} envelope, if that's what data is."""
    if not isinstance(data, dict):
        return None
    error = data.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    return None


def decode_error_message(body: bytes | str) -> str:
    """Best-effort server message: error envelope, else raw text, else ''."""
    try:
        message = _error_envelope_message(_load_json(body))
    except (json.JSONDecodeError, UnicodeDecodeError):
        message = None
    if message is not None:
        return message
    if isinstance(body, bytes):
        return body.decode("utf-8", errors="replace")
    return body or ""


def parse_stream_line(line: str) -> StreamChunk | None:
    """
    Decode one SSE line. Returns None for lines that carry nothing visible,
    STREAM_DONE for the terminator, and a delta chunk for output text.
    Error events raise BadResponse.
    """
    if not line.startswith(DATA_PREFIX):
        return None
    payload = line[len(DATA_PREFIX):].strip()
    if not payload:
        return None
    if payload == DONE_MARKER:
        return STREAM_DONE

    try:
        event = json.loads(payload)
    except json.JSONDecodeError:
        raise InvalidResponse(f"undecodable stream event: {payload[:200]}") from None

    message = _error_envelope_message(event)
    if message is not None:
        raise BadResponse(status_code=500, message=message)

    event_type = event.get("type") if isinstance(event, dict) else None
    if not isinstance(event_type, str):
        raise InvalidResponse(f"stream event without type: {payload[:200]}")

    if "error" in event_type:
        error = event.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            raise BadResponse(status_code=500, message=error["message"])

    if event_type != TEXT_DELTA_EVENT:
        return None
    delta = event.get("delta")
    if not isinstance(delta, str) or not delta:
        return None
    return StreamChunk(delta=delta)


async def collect_error_payload(lines: AsyncIterator[str]) -> str:
    """
    Drain an error stream into one payload: the `data:` payloads joined by
    newlines, or the raw lines when the body wasn't SSE at all.
    """
    payloads: list[str] = []
    raw: list[str] = []
    async for line in lines:
        if line.strip():
            raw.append(line)
        if not line.startswith(DATA_PREFIX):
            continue
        payload = line[len(DATA_PREFIX):].strip()
        if payload and payload != DONE_MARKER:
            payloads.append(payload)

    if payloads:
        return "\n".join(payloads)
    if any(line.startswith(DATA_PREFIX) for line in raw):
        return ""
    return "\n".join(raw)
