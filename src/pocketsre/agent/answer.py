import logging
from typing import List

from ..errors import GenerationError
from ..models import ChatMessage, IncidentParse, UserProfile
from ..services.llm import TextGenerator
from .compaction import KEEP_LAST
from .prompts import (
    SECTION_ROOT_CAUSES,
    SECTION_RUNBOOK,
    SECTION_STATUS,
    final_answer_prompt,
)

logger = logging.getLogger(__name__)

SECTION_LABELS = ("RUNBOOK", "LIKELY ROOT CAUSES", "STATUS UPDATE")

FALLBACK_FINAL_ANSWER = (
    f"{SECTION_RUNBOOK}\n"
    "- Identify the main symptom (5xx, latency, DNS, auth) and its scope (all users or a subset)\n"
    "- Review recent changes: deploys, config, DNS records, certificates\n"
    "- Check origin health: error logs, CPU/memory saturation, upstream timeouts\n"
    "- Check dependencies: database, cache, third-party APIs\n"
    f"{SECTION_ROOT_CAUSES}\n"
    "- Deploy or config regression (0.45)\n"
    "- Upstream dependency failure (0.30)\n"
    "- Traffic spike or resource exhaustion (0.25)\n"
    f"{SECTION_STATUS}\n"
    "A tailored response could not be generated right now, so this is a generic incident "
    "checklist. Share the error code, the affected endpoints and when it started to narrow it down.\n"
)


def missing_sections(text: str) -> List[str]:
    """Return section labels that are absent or appear out of order."""
    missing: List[str] = []
    position = 0
    for label in SECTION_LABELS:
        found = text.find(label, position)
        if found == -1:
            missing.append(label)
            continue
        position = found + len(label)
    return missing


class AnswerBuilder:
    """Writes the final runbook / root causes / status update document."""

    def __init__(self, generator: TextGenerator, system_prompt: str, keep_last: int = KEEP_LAST) -> None:
        self._generator = generator
        self._system_prompt = system_prompt
        self._keep_last = keep_last

    async def build_final(
        self,
        incident: IncidentParse,
        profile: UserProfile,
        summary: str,
        recent_messages: List[ChatMessage],
    ) -> str:
        """Generate the final answer; falls back to a generic document on generation failure."""
        recent = [m.to_prompt() for m in recent_messages[-self._keep_last :]]
        try:
            answer = await self._generator.generate(
                [
                    {"role": "system", "content": self._system_prompt},
                    {"role": "user", "content": final_answer_prompt(incident, profile, summary, recent)},
                ]
            )
        except GenerationError as e:
            logger.error("Final answer generation failed, using fallback: %s", e)
            return FALLBACK_FINAL_ANSWER

        missing = missing_sections(answer)
        if missing:
            logger.warning("Final answer is missing sections: %s", ", ".join(missing))
        return answer
