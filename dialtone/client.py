"""
ResponsesClient: conversational access to the responses endpoint.

Per call:
  1. check the API key
  2. build the context from resident history (trimmed to budget)
  3. encode and POST it, retrying transient failures
  4. decode the reply and commit the user/assistant turn

Nothing is committed to history unless the call completes. A streamed
reply is committed once, after the terminator or end of body; breaking
out of the iteration, cancelling, or a mid-stream error commits nothing.

Each client owns its history and configuration. Both are only touched
under locks, and no lock is ever held across an await.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import AsyncIterator, Awaitable, Callable

import httpx

from dialtone.codec import (
    collect_error_payload,
    decode_error_message,
    decode_response_text,
    encode_request,
    parse_stream_line,
)
from dialtone.config import ClientConfig
from dialtone.errors import BadResponse, InvalidResponse, MissingAPIKey
from dialtone.history import ConversationHistory
from dialtone.models import Message
from dialtone.retry import with_retry

logger = logging.getLogger(__name__)

ACCEPT_JSON_AND_SSE = "application/json, text/event-stream"


def _check_status(status_code) -> None:
    if not isinstance(status_code, int) or not 100 <= status_code <= 599:
        raise InvalidResponse(f"unclassifiable status {status_code!r}")


def _is_success(status_code: int) -> bool:
    return 200 <= status_code <= 299


class ResponsesClient:
    def __init__(
        self,
        config: ClientConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ):
        self._config = config
        self._config_lock = threading.Lock()
        self._history = ConversationHistory(
            max_context_characters=config.max_context_characters,
            max_history_items=config.max_history_items,
        )
        self._transport = transport
        self._sleep = sleep

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def configuration(self) -> ClientConfig:
        with self._config_lock:
            return self._config

    def update_configuration(self, config: ClientConfig) -> None:
        """Swap the configuration and re-apply the history bound at once."""
        with self._config_lock:
            self._config = config
            self._history.reconfigure(config.max_context_characters, config.max_history_items)
        logger.debug(
            "Configuration updated (model=%s, max_history_items=%d)",
            config.model, config.max_history_items,
        )

    def clear_history(self) -> None:
        self._history.clear()

    def conversation_history(self) -> list[Message]:
        return self._history.snapshot()

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    async def send(self, text: str, extra_instructions: str | None = None) -> str:
        """Send one user turn and return the whole assistant reply."""
        config = self.configuration
        headers = self._headers(self._validated_api_key(config))
        context = self._history.build_context(text)
        body = encode_request(context, config, stream=False, extra_instructions=extra_instructions)
        logger.debug(
            "POST %s model=%s input=%d stream=false",
            config.endpoint, config.model, len(context),
        )

        async with self._http_client(config) as client:
            async def attempt() -> bytes:
                resp = await client.post(config.endpoint, json=body, headers=headers)
                _check_status(resp.status_code)
                if not _is_success(resp.status_code):
                    raise BadResponse(resp.status_code, decode_error_message(resp.content))
                return resp.content

            data = await with_retry(
                attempt, config.retry_policy, sleep=self._sleep, label=f"POST {config.endpoint}",
            )

        reply = decode_response_text(data)
        self._history.commit_turn(text, reply)
        logger.info("Turn completed (%d chars in, %d chars out)", len(text), len(reply))
        return reply

    async def stream(self, text: str, extra_instructions: str | None = None) -> AsyncIterator[str]:
        """
        Send one user turn and yield the reply as text deltas.

        Single pass: iterate it once. Retries only cover opening the
        stream; once a 2xx response is flowing, errors end the iteration.
        """
        config = self.configuration
        headers = self._headers(self._validated_api_key(config))
        context = self._history.build_context(text)
        body = encode_request(context, config, stream=True, extra_instructions=extra_instructions)
        logger.debug(
            "POST %s model=%s input=%d stream=true",
            config.endpoint, config.model, len(context),
        )

        async with self._http_client(config) as client:
            async def open_stream() -> httpx.Response:
                request = client.build_request("POST", config.endpoint, json=body, headers=headers)
                resp = await client.send(request, stream=True)
                try:
                    _check_status(resp.status_code)
                    if not _is_success(resp.status_code):
                        payload = await collect_error_payload(resp.aiter_lines())
                        raise BadResponse(resp.status_code, decode_error_message(payload))
                except BaseException:
                    await resp.aclose()
                    raise
                return resp

            resp = await with_retry(
                open_stream, config.retry_policy, sleep=self._sleep, label=f"POST {config.endpoint} (stream)",
            )

            buffer: list[str] = []
            try:
                async for line in resp.aiter_lines():
                    chunk = parse_stream_line(line)
                    if chunk is None:
                        continue
                    if chunk.done:
                        break
                    buffer.append(chunk.delta)
                    yield chunk.delta
            except (BadResponse, InvalidResponse, httpx.HTTPError) as e:
                logger.warning("Stream from %s failed: %s", config.endpoint, e)
                raise
            finally:
                await resp.aclose()

            reply = "".join(buffer)
            self._history.commit_turn(text, reply)
            logger.info("Streamed turn completed (%d chars in, %d chars out)", len(text), len(reply))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _validated_api_key(config: ClientConfig) -> str:
        api_key = config.api_key.strip()
        if not api_key:
            raise MissingAPIKey()
        return api_key

    @staticmethod
    def _headers(api_key: str) -> dict:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
            "Accept": ACCEPT_JSON_AND_SSE,
        }

    def _http_client(self, config: ClientConfig) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=config.request_timeout, transport=self._transport)
