"""
LLM Client - the transport to the model.

The client posts the whole conversation plus the tool schemas to a
messages-style endpoint and returns the response content as segments.
The agent loop treats it as an opaque request/response boundary: any
failure, whether network, HTTP status or a malformed body, surfaces as
one LLMError.

Includes timeout and optional retry logic for resilience against API hangs.
"""

import asyncio
import logging
from typing import Any

import httpx

from nanocode.config import LLMConfig
from nanocode.types import InvocationSegment, Segment, TextSegment, Turn, Usage, segment_from_dict

logger = logging.getLogger(__name__)

# Default timeout configuration (in seconds)
DEFAULT_CONNECT_TIMEOUT = 10.0
DEFAULT_READ_TIMEOUT = 300.0  # long generations with tool calls can take a while
DEFAULT_WRITE_TIMEOUT = 10.0
DEFAULT_POOL_TIMEOUT = 10.0

RETRYABLE_STATUS_CODES = (429, 503)


class LLMError(Exception):
    """Error from the LLM client."""
    pass


class LLMClient:
    """
    Async client for a messages-style model API.

    One client is created per shell process and reused for every request.
    """

    def __init__(
        self,
        config: LLMConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client with configuration.

        Args:
            config: Endpoint, model, API key and retry settings
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.config = config or LLMConfig.from_env()
        self.max_retries = self.config.max_retries
        self.retry_delay = self.config.retry_delay

        timeout = httpx.Timeout(
            connect=DEFAULT_CONNECT_TIMEOUT,
            read=DEFAULT_READ_TIMEOUT,
            write=DEFAULT_WRITE_TIMEOUT,
            pool=DEFAULT_POOL_TIMEOUT,
        )

        self._client = httpx.AsyncClient(
            headers={
                "Content-Type": "application/json",
                "x-api-key": self.config.api_key,
                "anthropic-version": self.config.anthropic_version,
            },
            timeout=timeout,
            transport=transport,
        )

    def build_payload(
        self,
        turns: list[Turn],
        system: str,
        tools: list[dict[str, Any]] | None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "system": system,
            "messages": [t.to_dict() for t in turns],
        }
        if tools:
            payload["tools"] = tools
        return payload

    async def chat(
        self,
        turns: list[Turn],
        system: str = "",
        tools: list[dict[str, Any]] | None = None,
    ) -> "ChatResponse":
        """
        Send the conversation and return the model's response.

        Args:
            turns: The conversation history
            system: System instruction string
            tools: Tool schemas the model may invoke

        Returns:
            ChatResponse with the response segments and usage

        Raises:
            LLMError: On any transport failure once retries are exhausted
        """
        payload = self.build_payload(turns, system, tools)
        last_error: Exception | None = None

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                logger.info(f"Retry attempt {attempt}/{self.max_retries} after {self.retry_delay}s delay...")
                await asyncio.sleep(self.retry_delay)

            logger.debug(f"Sending request with {len(turns)} turns (attempt {attempt + 1})")

            try:
                response = await self._client.post(self.config.api_url, json=payload)
            except httpx.TimeoutException as e:
                logger.warning(f"Request timed out (attempt {attempt + 1}): {e}")
                last_error = e
                continue
            except httpx.RequestError as e:
                logger.warning(f"Request error (attempt {attempt + 1}): {e}")
                last_error = e
                continue

            if response.status_code in RETRYABLE_STATUS_CODES and attempt < self.max_retries:
                logger.warning(f"Retryable status {response.status_code} (attempt {attempt + 1})")
                last_error = LLMError(_status_message(response))
                continue

            if not response.is_success:
                message = _status_message(response)
                logger.error(message)
                raise LLMError(message)

            try:
                data = response.json()
            except ValueError as e:
                raise LLMError(f"Malformed API response: {e}") from e
            if not isinstance(data, dict):
                raise LLMError("Malformed API response: expected a JSON object")
            return ChatResponse.from_api_response(data)

        logger.error(f"All {self.max_retries + 1} attempts failed. Last error: {last_error}")
        raise LLMError(f"Request failed after {self.max_retries + 1} attempts: {last_error}") from last_error

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> "LLMClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()


def _status_message(response: httpx.Response) -> str:
    """`API error (<status>): <error.message or reason phrase>`."""
    detail = response.reason_phrase or "request failed"
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            detail = error["message"]
    return f"API error ({response.status_code}): {detail}"


class ChatResponse:
    """
    Response from a messages request.

    Holds the parsed content segments and usage, with convenient access
    to the text and any tool invocations.
    """

    def __init__(
        self,
        segments: list[Segment] | None = None,
        usage: Usage | None = None,
        stop_reason: str | None = None,
    ) -> None:
        self.segments = segments or []
        self.usage = usage or Usage()
        self.stop_reason = stop_reason

    @classmethod
    def from_api_response(cls, data: dict[str, Any]) -> "ChatResponse":
        """Parse an API response into a ChatResponse."""
        if data.get("error") and not data.get("content"):
            error = data["error"]
            message = error.get("message") if isinstance(error, dict) else str(error)
            raise LLMError(f"API error: {message}")

        blocks = data.get("content") or []
        if not isinstance(blocks, list):
            raise LLMError("Malformed API response: content is not a list")

        try:
            segments = [segment_from_dict(b) for b in blocks if isinstance(b, dict)]
            usage = Usage.from_dict(data.get("usage"))
        except (TypeError, ValueError, AttributeError) as e:
            raise LLMError(f"Malformed API response: {e}") from e

        return cls(segments=segments, usage=usage, stop_reason=data.get("stop_reason"))

    @property
    def text_segments(self) -> list[TextSegment]:
        return [s for s in self.segments if isinstance(s, TextSegment) and s.text]

    @property
    def invocations(self) -> list[InvocationSegment]:
        return [s for s in self.segments if isinstance(s, InvocationSegment)]

    @property
    def content(self) -> str:
        """All text segments joined."""
        return "\n".join(s.text for s in self.text_segments)
