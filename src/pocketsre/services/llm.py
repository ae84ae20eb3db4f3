import asyncio
import json
import logging
from typing import Any, Dict, List, Protocol

from openai import APIError, AsyncOpenAI

from ..errors import GenerationError
from ..settings import Settings, get_settings

logger = logging.getLogger(__name__)

PromptMessages = List[Dict[str, str]]


class TextGenerator(Protocol):
    """generate(messages) -> text; raises GenerationError on timeout, transport fault or empty output."""

    async def generate(self, messages: PromptMessages) -> str: ...


def coerce_generated_text(payload: Any) -> str:
    """Turn a raw completion payload into text.

    Strings are stripped; structured payloads (dict / list) are serialized
    to JSON. Blank or missing payloads raise GenerationError.
    """
    if isinstance(payload, str):
        text = payload.strip()
        if not text:
            raise GenerationError("Empty generation output")
        return text
    if isinstance(payload, (dict, list)) and payload:
        return json.dumps(payload)
    raise GenerationError(f"Unexpected generation output shape: {type(payload).__name__}")


class OpenAIGenerator:
    """Chat-completions backed generator with a hard per-call timeout."""

    def __init__(self, settings: Settings | None = None, client: AsyncOpenAI | None = None) -> None:
        settings = settings or get_settings()
        self._model = settings.model
        self._temperature = settings.temperature
        self._timeout = settings.generation_timeout_seconds
        self._client = client or AsyncOpenAI(
            api_key=settings.openai_api_key,
            base_url=settings.openai_base_url,
            timeout=settings.generation_timeout_seconds,
        )

    async def generate(self, messages: PromptMessages) -> str:
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._model,
                    messages=messages,
                    temperature=self._temperature,
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error("Generation timed out after %.0fs (model=%s)", self._timeout, self._model)
            raise GenerationError(f"Generation timeout after {self._timeout:.0f}s") from e
        except APIError as e:
            logger.error("Generation request failed (model=%s): %s", self._model, e)
            raise GenerationError(f"Generation request failed: {e}") from e

        try:
            message = response.choices[0].message
        except (AttributeError, IndexError) as e:
            raise GenerationError("Generation response had no choices") from e
        payload = message.content if message.content else getattr(message, "parsed", None)
        return coerce_generated_text(payload)
