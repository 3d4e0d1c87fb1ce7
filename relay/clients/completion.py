from __future__ import annotations

import json
import logging
import time
from typing import List, Optional, Sequence

import httpx
from pydantic import ValidationError

from relay.core.models import CompletionRequest, CompletionResponse, Message
from relay.core.prompt import MODEL_ID, OPENROUTER_API_URL, UPSTREAM_TIMEOUT
from relay.errors import (
    EmptyUpstreamResponse,
    UpstreamProtocolError,
    UpstreamTransportError,
)


logger = logging.getLogger(__name__)

# Upstream bodies are logged, never returned; keep log lines bounded.
_MAX_LOGGED_BODY = 500


def _clip(text: str) -> str:
    return " ".join(text.split())[:_MAX_LOGGED_BODY]


class CompletionClient:
    """Thin client for an OpenAI-style ``/chat/completions`` endpoint."""

    def __init__(
        self,
        api_key: str,
        url: str = OPENROUTER_API_URL,
        model: str = MODEL_ID,
        timeout: float = UPSTREAM_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.url = url
        self.model = model
        self.timeout = timeout
        self._transport = transport

    def _read_before(self, response: httpx.Response, deadline: float) -> bytes:
        """Read the whole body, failing once the overall deadline passes.

        httpx timeouts apply per network operation; this bounds the exchange.
        """
        chunks: List[bytes] = []
        for chunk in response.iter_bytes():
            chunks.append(chunk)
            if time.perf_counter() > deadline:
                break
        if time.perf_counter() > deadline:
            logger.error("Completion API exceeded the %.1fs deadline", self.timeout)
            raise UpstreamTransportError(
                f"Completion API did not finish within {self.timeout}s"
            )
        return b"".join(chunks)

    def complete(self, messages: Sequence[Message]) -> str:
        """Send ``messages`` upstream and return the first choice's content."""
        request = CompletionRequest(model=self.model, messages=list(messages))
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        deadline = time.perf_counter() + self.timeout
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                with client.stream(
                    "POST", self.url, headers=headers, json=request.model_dump()
                ) as response:
                    body = self._read_before(response, deadline)
        except httpx.TimeoutException as exc:
            logger.error("Completion API timed out after %.1fs: %s", self.timeout, exc)
            raise UpstreamTransportError(f"Completion API timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            logger.error("Error making request to completion API: %s", exc)
            raise UpstreamTransportError(f"Completion API call failed: {exc}") from exc

        logger.info("Completion API response status: %d", response.status_code)
        text = body.decode(response.encoding or "utf-8", errors="replace")

        if not response.is_success:
            logger.error(
                "Completion API error response: status=%d body=%s",
                response.status_code,
                _clip(text),
            )
            raise UpstreamProtocolError(
                f"Completion API returned status {response.status_code}",
                status_code=response.status_code,
                body=text,
            )

        try:
            parsed = CompletionResponse.model_validate(json.loads(body))
        except (ValueError, ValidationError) as exc:
            logger.error("Error parsing completion response: %s body=%s", exc, _clip(text))
            raise UpstreamProtocolError(
                f"Unparseable completion response: {exc}",
                status_code=response.status_code,
                body=text,
            ) from exc

        if not parsed.choices:
            logger.warning("No choices in completion response")
            raise EmptyUpstreamResponse("Completion API returned zero choices")

        return parsed.choices[0].message.content
