import logging
from dataclasses import dataclass
from typing import Any, Dict

from ..errors import SchemaError
from ..models import IncidentParse, UserProfile
from ..utils import clamp_text, safe_string, safe_string_list
from .extraction import StructuredExtractor
from .prompts import memory_update_prompt

logger = logging.getLogger(__name__)

TECH_STACK_MAX_ITEMS = 24
DOMAIN_MAX_CHARS = 256
NOTES_MAX_CHARS = 800
INCIDENT_SUMMARY_MAX_CHARS = 1200


@dataclass
class MemoryUpdate:
    profile: UserProfile
    last_incident_summary: str


def merge_profile(existing: UserProfile, generated: Dict[str, Any]) -> UserProfile:
    """Fold a generated profile into the existing one.

    techStack is a union (existing entries first, exact-match dedupe, capped);
    domain and notes are replaced by the generated values.
    """
    tech_stack = list(dict.fromkeys(existing.tech_stack + safe_string_list(generated.get("techStack"))))
    return UserProfile(
        tech_stack=tech_stack[:TECH_STACK_MAX_ITEMS],
        domain=safe_string(generated.get("domain"))[:DOMAIN_MAX_CHARS],
        notes=safe_string(generated.get("notes"))[:NOTES_MAX_CHARS],
    )


class MemoryMerger:
    def __init__(self, extractor: StructuredExtractor, system_prompt: str) -> None:
        self._extractor = extractor
        self._system_prompt = system_prompt

    async def update_memory(
        self,
        profile: UserProfile,
        incident: IncidentParse,
        final_answer: str,
        summary: str,
    ) -> MemoryUpdate:
        """Compute the next profile and incident summary after a final answer.

        Raises GenerationError / SchemaError; the caller keeps the old memory then.
        """
        parsed = await self._extractor.extract(
            [
                {"role": "system", "content": self._system_prompt},
                {
                    "role": "user",
                    "content": memory_update_prompt(profile, incident, final_answer, summary),
                },
            ]
        )
        generated = parsed.get("profile")
        if not isinstance(generated, dict):
            raise SchemaError("Memory update is missing a profile object")

        update = MemoryUpdate(
            profile=merge_profile(profile, generated),
            last_incident_summary=clamp_text(
                safe_string(parsed.get("lastIncidentSummary")), INCIDENT_SUMMARY_MAX_CHARS
            ),
        )
        logger.debug("Memory updated: %d tech stack items", len(update.profile.tech_stack))
        return update
