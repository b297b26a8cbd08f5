"""Oracle backed by the OpenAI Responses API."""

from __future__ import annotations

import json
from typing import Any

import httpx
from openai import APIConnectionError, APIError, AsyncOpenAI, InternalServerError, RateLimitError
from pydantic import BaseModel
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from tiangong_lca_upstream.core.config import Settings, get_settings
from tiangong_lca_upstream.core.exceptions import MisconfigurationError, OracleError
from tiangong_lca_upstream.core.logging import get_logger

from .base import OracleRequest

LOGGER = get_logger(__name__)

# APIConnectionError covers APITimeoutError; other 4xx responses fail on the first attempt
RETRYABLE_ERRORS = (APIConnectionError, RateLimitError, InternalServerError, httpx.TimeoutException, TimeoutError)

_SCHEMA_INSTRUCTIONS = (
    "Return strict JSON only, with no commentary. The JSON object must validate against this schema:\n{schema}"
)


class OpenAIOracle:
    """Send each request as a system task plus JSON user context and return the JSON text."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        client: AsyncOpenAI | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        if client is None:
            if not self._settings.openai_api_key:
                raise MisconfigurationError("OpenAI API key missing; set LCA_OPENAI_API_KEY or [openai].api_key")
            client_kwargs: dict[str, Any] = {
                "api_key": self._settings.openai_api_key,
                "timeout": self._settings.request_timeout,
                "max_retries": 0,
            }
            if self._settings.openai_base_url:
                client_kwargs["base_url"] = self._settings.openai_base_url
            client = AsyncOpenAI(**client_kwargs)
        self._client = client
        self._model = self._settings.openai_model
        self._max_attempts = max(1, self._settings.profile.retry_attempts)

    async def invoke(self, request: OracleRequest, output_schema: type[BaseModel]) -> str:
        instructions = f"{request.task}\n\n" + _SCHEMA_INSTRUCTIONS.format(
            schema=json.dumps(output_schema.model_json_schema(), ensure_ascii=False)
        )
        kwargs: dict[str, Any] = {
            "model": self._model,
            "input": [
                {"role": "system", "content": [{"type": "input_text", "text": instructions}]},
                {"role": "user", "content": [{"type": "input_text", "text": request.render_context()}]},
            ],
            "text": {"format": {"type": "json_object"}},
        }
        if request.temperature is not None:
            kwargs["temperature"] = request.temperature

        retryer = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=max(self._settings.retry_backoff, 0.0), max=8),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            reraise=True,
        )
        try:
            async for attempt in retryer:
                with attempt:
                    response = await self._client.responses.create(**kwargs)
        except RETRYABLE_ERRORS as exc:  # type: ignore[misc]
            attempts = retryer.statistics.get("attempt_number") or self._max_attempts
            LOGGER.error(
                "oracle.request_failed",
                request=request.name,
                attempts=int(attempts),
                model=self._model,
                error=str(exc),
            )
            raise OracleError(f"{request.name} failed after {attempts} attempt(s)") from exc
        except APIError as exc:
            LOGGER.error("oracle.request_rejected", request=request.name, model=self._model, error=str(exc))
            raise OracleError(f"{request.name} was rejected: {exc}") from exc

        output = self._extract_output(response)
        LOGGER.debug("oracle.response", request=request.name, characters=len(output))
        return output

    async def close(self) -> None:
        await self._client.close()

    @staticmethod
    def _extract_output(response: Any) -> str:
        if getattr(response, "output_text", None):
            return response.output_text
        parts: list[str] = []
        for item in getattr(response, "output", []) or []:
            if getattr(item, "type", None) != "message":
                continue
            for content in getattr(item, "content", []) or []:
                if getattr(content, "type", None) == "output_text":
                    parts.append(getattr(content, "text", "") or "")
        return "\n".join(parts)
