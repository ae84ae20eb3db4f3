"""Structured (JSON) output on top of a plain text generator.

Parsing is a separate validation step that returns a tagged result; the
single correction retry is layered on top of it in StructuredExtractor.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Union

from ..errors import GenerationError, SchemaError
from ..services.llm import PromptMessages, TextGenerator
from ..utils import clamp_text
from .prompts import JSON_CORRECTION_PROMPT

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")


@dataclass(frozen=True)
class ParsedJson:
    value: Dict[str, Any]


@dataclass(frozen=True)
class ParseFailure:
    reason: str


ParseResult = Union[ParsedJson, ParseFailure]


def strip_code_fence(text: str) -> str:
    unfenced = _FENCE_OPEN.sub("", text.strip())
    return _FENCE_CLOSE.sub("", unfenced).strip()


def parse_json_object(text: str) -> ParseResult:
    """Parse a JSON object out of generated text.

    Tries the whole (unfenced) string first, then the span between the first
    "{" and the last "}". Only a JSON object counts as a success.
    """
    unfenced = strip_code_fence(text)
    try:
        value = json.loads(unfenced)
        if isinstance(value, dict):
            return ParsedJson(value)
    except json.JSONDecodeError:
        pass

    start = unfenced.find("{")
    end = unfenced.rfind("}")
    if start == -1 or end <= start:
        return ParseFailure("No JSON object found")
    try:
        value = json.loads(unfenced[start : end + 1])
    except json.JSONDecodeError as e:
        return ParseFailure(f"Invalid JSON: {e}")
    if not isinstance(value, dict):
        return ParseFailure(f"Expected a JSON object, got {type(value).__name__}")
    return ParsedJson(value)


class StructuredExtractor:
    """Runs a generation call and returns its output as a JSON object.

    A malformed first answer gets exactly one correction retry. GenerationError
    from either call propagates unchanged; a malformed retry raises SchemaError.
    """

    def __init__(self, generator: TextGenerator, system_prompt: str) -> None:
        self._generator = generator
        self._system_prompt = system_prompt

    async def extract(self, messages: PromptMessages) -> Dict[str, Any]:
        first = await self._generate(messages)
        result = parse_json_object(first)
        if isinstance(result, ParsedJson):
            return result.value

        logger.warning(
            "JSON parse failed (%s), retrying once: %s",
            result.reason,
            clamp_text(first, 500),
        )
        retry = await self._generate(self._correction_messages(messages, first))
        result = parse_json_object(retry)
        if isinstance(result, ParsedJson):
            return result.value

        logger.error("JSON parse failed after retry (%s): %s", result.reason, clamp_text(retry, 500))
        raise SchemaError(result.reason)

    async def _generate(self, messages: PromptMessages) -> str:
        text = await self._generator.generate(messages)
        if not text or not text.strip():
            raise GenerationError("Empty generation output")
        return text

    def _correction_messages(self, messages: PromptMessages, previous: str) -> PromptMessages:
        if messages and messages[0].get("role") == "system":
            system = messages[0]
        else:
            system = {"role": "system", "content": self._system_prompt}
        return [system, {"role": "user", "content": JSON_CORRECTION_PROMPT + previous}]
