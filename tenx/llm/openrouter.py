"""OpenRouter transport - direct HTTP calls with SSE streaming."""

import asyncio
import json
import random
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any, AsyncIterator

import httpx

from tenx.config import TransportConfig
from tenx.exceptions import AbortedError, TransportError
from tenx.llm import ChatRequest, ChatResponse, ChatTransport, StreamChunk
from tenx.logging import get_logger

log = get_logger(__name__)

MAX_BACKOFF_MS = 30000

_RETRYABLE_MARKERS = (
    "overloaded",
    "too_many_requests",
    "rate_limit",
    "temporarily unavailable",
    "service unavailable",
    "no_kv_space",
)
_FATAL_MARKERS = (
    "invalid api key",
    "invalid_api_key",
    "insufficient_quota",
    "billing",
)


def backoff_delay_ms(attempt: int, base_delay_ms: float) -> float:
    """Exponential backoff with up to 30% jitter, capped at 30 seconds."""
    exponential = base_delay_ms * (2 ** attempt)
    jitter = random.random() * 0.3 * exponential
    return min(exponential + jitter, MAX_BACKOFF_MS)


def parse_retry_after_ms(headers: httpx.Headers) -> float | None:
    """Read `retry-after-ms`, then `Retry-After` (seconds or HTTP date)."""
    raw_ms = headers.get("retry-after-ms")
    if raw_ms:
        try:
            return float(raw_ms)
        except ValueError:
            pass

    raw = headers.get("retry-after")
    if not raw:
        return None
    try:
        return float(raw) * 1000
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(raw)
    except (TypeError, ValueError):
        return None
    delay = (when - datetime.now(UTC)).total_seconds() * 1000
    return delay if delay > 0 else None


def classify_error(status_code: int, body: Any, message: str) -> bool | None:
    """Provider-specific retryability; None defers to the status code rule."""
    error_obj = body.get("error") if isinstance(body, dict) else None
    error_obj = error_obj if isinstance(error_obj, dict) else {}
    top = body if isinstance(body, dict) else {}
    error_type = str(error_obj.get("type") or top.get("type") or "").lower()
    error_code = str(error_obj.get("code") or top.get("code") or "").lower()
    lowered = message.lower()

    if (
        any(marker in lowered for marker in _RETRYABLE_MARKERS)
        or error_type in {"too_many_requests", "server_error"}
        or any(marker in error_code for marker in ("rate_limit", "exhausted", "unavailable"))
    ):
        return True

    if (
        status_code in {401, 402, 403}
        or error_type in {"invalid_request_error", "authentication_error"}
        or any(marker in lowered for marker in _FATAL_MARKERS)
    ):
        return False

    return None


class OpenRouterTransport(ChatTransport):
    """Chat transport for the OpenRouter chat-completions API."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://openrouter.ai/api/v1",
        site_url: str = "https://10x.dev",
        site_name: str = "10x",
        max_retries: int = 3,
        retry_delay_ms: float = 1000,
        timeout: float = 120.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.site_url = site_url
        self.site_name = site_name
        self.max_retries = max(0, int(max_retries))
        self.retry_delay_ms = retry_delay_ms
        self.client = client or httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    @classmethod
    def from_config(cls, config: TransportConfig) -> "OpenRouterTransport":
        return cls(
            api_key=config.api_key,
            base_url=config.base_url,
            site_url=config.site_url,
            site_name=config.site_name,
            max_retries=config.max_retries,
            retry_delay_ms=config.retry_delay_ms,
            timeout=config.timeout,
        )

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self.site_url,
            "X-Title": self.site_name,
        }

    @staticmethod
    def _raise_if_aborted(abort_event: asyncio.Event | None) -> None:
        if abort_event is not None and abort_event.is_set():
            raise AbortedError()

    @staticmethod
    async def _sleep(delay_ms: float, abort_event: asyncio.Event | None) -> None:
        """Sleep for the backoff delay, waking early (and raising) on abort."""
        seconds = max(0.0, delay_ms / 1000)
        if abort_event is None:
            await asyncio.sleep(seconds)
            return
        try:
            await asyncio.wait_for(abort_event.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        raise AbortedError()

    @staticmethod
    async def _cancel_task(task: asyncio.Task[Any] | None) -> None:
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            log.debug("Cancelled read raised", error=str(e))

    @staticmethod
    async def _read_line(lines: AsyncIterator[str]) -> str | None:
        try:
            return await anext(lines)
        except StopAsyncIteration:
            return None

    async def _next_line(
        self,
        lines: AsyncIterator[str],
        abort_event: asyncio.Event | None,
    ) -> str | None:
        """Next line of the body, or None at the end.

        The read is raced against the abort event so a stalled upstream
        cannot hold an aborted turn open.
        """
        if abort_event is None:
            return await self._read_line(lines)
        self._raise_if_aborted(abort_event)

        read_task = asyncio.create_task(self._read_line(lines))
        abort_wait_task = asyncio.create_task(abort_event.wait())
        try:
            done, _ = await asyncio.wait(
                {read_task, abort_wait_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if read_task in done:
                return await read_task
            await self._cancel_task(read_task)
            raise AbortedError()
        except asyncio.CancelledError:
            await self._cancel_task(read_task)
            raise
        finally:
            await self._cancel_task(abort_wait_task)

    @staticmethod
    def _parse_error(response: httpx.Response, raw_body: bytes) -> TransportError:
        body: Any = None
        try:
            body = json.loads(raw_body.decode("utf-8", errors="replace"))
            error_obj = body.get("error") if isinstance(body, dict) else None
            message = ""
            if isinstance(error_obj, dict):
                message = str(error_obj.get("message") or "")
            message = message or f"HTTP {response.status_code}"
        except (json.JSONDecodeError, AttributeError):
            message = raw_body.decode("utf-8", errors="replace").strip() or f"HTTP {response.status_code}"

        if response.status_code == 429:
            message = f"Rate limited: {message}"

        error = TransportError(
            message,
            status_code=response.status_code,
            retry_after_ms=parse_retry_after_ms(response.headers),
        )
        verdict = classify_error(response.status_code, body, message)
        if verdict is not None:
            error.retryable = verdict
        return error

    async def _send(
        self,
        payload: dict[str, Any],
        abort_event: asyncio.Event | None,
        stream: bool,
    ) -> httpx.Response:
        """POST with retry on 429/5xx/network errors; returns an open response."""
        url = f"{self.base_url}/chat/completions"
        attempt = 0
        while True:
            self._raise_if_aborted(abort_event)
            request = self.client.build_request("POST", url, json=payload, headers=self._headers())
            try:
                response = await self.client.send(request, stream=stream)
            except httpx.HTTPError as e:
                if attempt < self.max_retries:
                    delay = backoff_delay_ms(attempt, self.retry_delay_ms)
                    log.warning("OpenRouter network error, retrying", attempt=attempt, error=str(e))
                    await self._sleep(delay, abort_event)
                    attempt += 1
                    continue
                raise TransportError(f"OpenRouter network error: {e}") from e

            if response.is_success:
                return response

            raw_body = await response.aread()
            await response.aclose()
            error = self._parse_error(response, raw_body)
            if error.retryable and attempt < self.max_retries:
                delay = error.retry_after_ms
                if delay is None:
                    delay = backoff_delay_ms(attempt, self.retry_delay_ms)
                log.warning(
                    "OpenRouter request failed, retrying",
                    status=error.status_code,
                    attempt=attempt,
                    delay_ms=delay,
                )
                await self._sleep(delay, abort_event)
                attempt += 1
                continue
            raise error

    async def chat(
        self,
        request: ChatRequest,
        abort_event: asyncio.Event | None = None,
    ) -> ChatResponse:
        """Send a non-streaming chat completion."""
        response = await self._send(request.to_payload(stream=False), abort_event, stream=False)
        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise TransportError(f"OpenRouter response decode error: {e}") from e
        return ChatResponse.from_wire(data)

    async def chat_stream(
        self,
        request: ChatRequest,
        abort_event: asyncio.Event | None = None,
    ) -> AsyncIterator[StreamChunk]:
        """Stream a chat completion; only the initial connection is retried."""
        log.debug("Opening stream", model=request.model, provider=request.provider)
        response = await self._send(request.to_payload(stream=True), abort_event, stream=True)
        try:
            lines = response.aiter_lines()
            while True:
                line = await self._next_line(lines, abort_event)
                if line is None:
                    break
                stripped = line.strip()
                if not stripped.startswith("data: "):
                    continue
                data = stripped[len("data: "):]
                if data == "[DONE]":
                    break
                try:
                    parsed = json.loads(data)
                except json.JSONDecodeError:
                    continue
                if isinstance(parsed, dict) and parsed.get("error"):
                    error_obj = parsed["error"]
                    message = error_obj.get("message") if isinstance(error_obj, dict) else str(error_obj)
                    raise TransportError(f"OpenRouter stream error: {message}")
                yield StreamChunk.from_wire(parsed)
        except httpx.HTTPError as e:
            raise TransportError(f"OpenRouter streaming error: {e}") from e
        finally:
            await response.aclose()

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()
