"""
LLM HTTP transport for OpenAI-compatible chat completion endpoints.

One httpx.AsyncClient per session. Buffered requests return the decoded JSON
body; streaming requests hand back the raw byte iterator so the stream decoder
owns framing. Failures are classified into LLMTimeoutError vs ApiError.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx

from micro_ai.errors import ApiError, LLMTimeoutError

logger = logging.getLogger(__name__)

COMPLETIONS_PATH = "/chat/completions"


def _error_from_response(status_code: int, body: bytes) -> ApiError:
    """Build an ApiError from a non-2xx response, keeping the parsed body."""
    details: Any = {}
    try:
        details = json.loads(body) if body else {}
    except (json.JSONDecodeError, UnicodeDecodeError):
        details = {"raw": body.decode("utf-8", errors="replace")[:1000]}

    message = f"HTTP error! status: {status_code}"
    if isinstance(details, dict):
        error_obj = details.get("error")
        if isinstance(error_obj, dict) and error_obj.get("message"):
            message = str(error_obj["message"])
        elif isinstance(error_obj, str) and error_obj:
            message = error_obj

    return ApiError(message, status=status_code, code="HTTP_ERROR", details=details)


class LLMClient:
    """
    Minimal async transport for /chat/completions.

    Owns an httpx.AsyncClient configured with the provider base URL and bearer
    token. A per-request timeout overrides the client default.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        headers: dict[str, str] | None = None,
        timeout: float | None = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not api_key:
            raise ValueError("API key is required")

        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.client: httpx.AsyncClient = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
                **(headers or {}),
            },
            timeout=timeout,
            transport=transport,
            trust_env=False,
        )
        logger.info("LLM client initialized for %s", self.base_url)

    def _log_http_request(
        self,
        method: str,
        url: str,
        status_code: int | None = None,
        duration_ms: float | None = None,
    ) -> None:
        """Log HTTP request details."""
        message_parts = [f"🔌 HTTP {method} {url}"]
        if status_code is not None:
            message_parts.append(f"Status: {status_code}")
        if duration_ms is not None:
            message_parts.append(f"Duration: {duration_ms:.2f}ms")

        logger.info(" | ".join(message_parts))

    def _request_timeout(self, timeout: float | None) -> float | None:
        return timeout if timeout is not None else self.timeout

    async def post_completion(
        self, payload: dict[str, Any], timeout: float | None = None
    ) -> dict[str, Any]:
        """Send a buffered completion request and return the JSON body."""
        start_time = time.monotonic()
        try:
            response = await self.client.post(
                COMPLETIONS_PATH,
                json=payload,
                timeout=self._request_timeout(timeout),
            )
        except httpx.TimeoutException as e:
            logger.error("Request timeout: %s", e)
            raise LLMTimeoutError() from e
        except httpx.HTTPError as e:
            logger.error("HTTP error: %s", e)
            raise ApiError(f"HTTP error: {e!s}", code=type(e).__name__) from e

        duration_ms = (time.monotonic() - start_time) * 1000
        self._log_http_request("POST", COMPLETIONS_PATH, response.status_code, duration_ms)

        if not response.is_success:
            raise _error_from_response(response.status_code, response.content)

        try:
            result = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error("Unexpected response format: %s", e)
            raise ApiError(
                f"Unexpected response format: {e!s}",
                status=response.status_code,
                code="PARSE_ERROR",
            ) from e

        if not isinstance(result, dict):
            raise ApiError(
                "Unexpected response format: expected a JSON object",
                status=response.status_code,
                code="PARSE_ERROR",
            )
        return result

    @asynccontextmanager
    async def stream_completion(
        self, payload: dict[str, Any], timeout: float | None = None
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        """
        Open a streaming completion request.

        Yields the raw byte iterator of the response body. Non-2xx statuses are
        read in full and raised as ApiError before anything is yielded.
        """
        start_time = time.monotonic()
        try:
            async with self.client.stream(
                "POST",
                COMPLETIONS_PATH,
                json=payload,
                headers={"Accept": "text/event-stream", "Accept-Encoding": "identity"},
                timeout=self._request_timeout(timeout),
            ) as response:
                duration_ms = (time.monotonic() - start_time) * 1000
                self._log_http_request(
                    "POST", COMPLETIONS_PATH, response.status_code, duration_ms
                )

                if not response.is_success:
                    error_body = await response.aread()
                    raise _error_from_response(response.status_code, error_body)

                content_type = response.headers.get("content-type", "")
                if content_type and "event-stream" not in content_type:
                    logger.warning(
                        "Unexpected content-type: %s, proceeding anyway", content_type
                    )

                yield response.aiter_bytes()
        except httpx.TimeoutException as e:
            logger.error("Timeout during streaming: %s", e)
            raise LLMTimeoutError() from e
        except httpx.HTTPError as e:
            logger.error("HTTP error during streaming: %s", e)
            raise ApiError(f"HTTP error: {e!s}", code=type(e).__name__) from e

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> LLMClient:
        """Async context manager entry."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object,
    ) -> None:
        """Async context manager exit."""
        await self.close()
