import dataclasses
import logging

from ..errors import GenerationError
from ..models import SessionState
from ..services.llm import TextGenerator
from ..utils import clamp_text
from .prompts import summarize_prompt

logger = logging.getLogger(__name__)

MAX_BEFORE_SUMMARY = 12
KEEP_LAST = 6
SUMMARY_MAX_CHARS = 1400

FALLBACK_SUMMARY = (
    "Earlier conversation was dropped due to length (summarization unavailable)."
)


class ContextCompactor:
    """Folds older turns into the running summary once history grows past a threshold."""

    def __init__(
        self,
        generator: TextGenerator,
        system_prompt: str,
        max_before_summary: int = MAX_BEFORE_SUMMARY,
        keep_last: int = KEEP_LAST,
    ) -> None:
        self._generator = generator
        self._system_prompt = system_prompt
        self._max_before_summary = max_before_summary
        self._keep_last = keep_last

    async def compact(self, state: SessionState) -> SessionState:
        """Return state with old turns summarized; only summary and messages change.

        History is cut to the last keep_last turns even when summarization fails.
        """
        if len(state.messages) <= self._max_before_summary:
            return state

        split = len(state.messages) - self._keep_last
        to_summarize = state.messages[:split]
        keep = state.messages[split:]

        try:
            summary = await self._generator.generate(
                [
                    {"role": "system", "content": self._system_prompt},
                    {
                        "role": "user",
                        "content": summarize_prompt(
                            state.summary, [m.to_prompt() for m in to_summarize]
                        ),
                    },
                ]
            )
            if not summary or not summary.strip():
                raise GenerationError("Empty summary output")
        except GenerationError as e:
            logger.warning("Summarization failed, dropping %d turns: %s", len(to_summarize), e)
            summary = state.summary or FALLBACK_SUMMARY

        logger.info("Compacted %d turns into summary", len(to_summarize))
        return dataclasses.replace(
            state,
            summary=clamp_text(summary, SUMMARY_MAX_CHARS),
            messages=list(keep),
        )
