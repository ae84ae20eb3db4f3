import logging
from typing import Any

from ..errors import GenerationError, SchemaError
from ..models import ClarifyDecision, Decision, FinalDecision, IncidentParse, UserProfile
from ..utils import clamp_text, safe_string
from .extraction import StructuredExtractor
from .prompts import decision_prompt

logger = logging.getLogger(__name__)

MAX_CLARIFY = 2
QUESTION_MAX_CHARS = 600


def as_decision(raw: Any) -> Decision:
    """Read a decision object; a clarify without a usable question is rejected."""
    data = raw if isinstance(raw, dict) else {}
    if safe_string(data.get("action")).strip().lower() == "clarify":
        question = safe_string(data.get("question")).strip()
        if not question:
            raise SchemaError("Clarify decision missing question")
        return ClarifyDecision(question=clamp_text(question, QUESTION_MAX_CHARS))
    return FinalDecision()


def enforce_clarify_cap(decision: Decision, asked: int, max_clarify: int = MAX_CLARIFY) -> Decision:
    """Force a final answer once the clarifying-question budget is spent."""
    if asked >= max_clarify:
        return FinalDecision()
    return decision


class DecisionEngine:
    def __init__(
        self,
        extractor: StructuredExtractor,
        system_prompt: str,
        max_clarify: int = MAX_CLARIFY,
    ) -> None:
        self._extractor = extractor
        self._system_prompt = system_prompt
        self._max_clarify = max_clarify

    async def decide(
        self,
        user_message: str,
        incident: IncidentParse,
        profile: UserProfile,
        summary: str,
        clarifying_questions_asked: int,
    ) -> Decision:
        """Pick clarify or final. Never raises: any failure means final."""
        try:
            parsed = await self._extractor.extract(
                [
                    {"role": "system", "content": self._system_prompt},
                    {
                        "role": "user",
                        "content": decision_prompt(
                            user_message,
                            incident,
                            profile,
                            summary,
                            clarifying_questions_asked,
                            self._max_clarify,
                        ),
                    },
                ]
            )
            return as_decision(parsed)
        except (GenerationError, SchemaError) as e:
            logger.warning("Decision failed, defaulting to final: %s", e)
            return FinalDecision()
