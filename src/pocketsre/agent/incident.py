import logging
from typing import Any

from ..models import SEVERITY_LEVELS, IncidentParse
from ..utils import safe_string, safe_string_list
from .extraction import StructuredExtractor
from .prompts import incident_parse_prompt

logger = logging.getLogger(__name__)


def normalize_incident(raw: Any) -> IncidentParse:
    """Coerce generator output into an IncidentParse; bad fields fall back to empty values."""
    data = raw if isinstance(raw, dict) else {}
    severity = safe_string(data.get("severity_guess"))
    return IncidentParse(
        type=safe_string(data.get("type")),
        severity_guess=severity if severity in SEVERITY_LEVELS else "unknown",
        timeframe=safe_string(data.get("timeframe")),
        symptoms=safe_string_list(data.get("symptoms")),
        stack_hints=safe_string_list(data.get("stack_hints")),
    )


class IncidentParser:
    def __init__(self, extractor: StructuredExtractor, system_prompt: str) -> None:
        self._extractor = extractor
        self._system_prompt = system_prompt

    async def parse_incident(self, user_message: str) -> IncidentParse:
        """Turn a raw user message into a normalized incident record.

        Raises GenerationError / SchemaError only when extraction itself fails.
        """
        parsed = await self._extractor.extract(
            [
                {"role": "system", "content": self._system_prompt},
                {"role": "user", "content": incident_parse_prompt(user_message)},
            ]
        )
        incident = normalize_incident(parsed)
        logger.debug("Parsed incident type=%s severity=%s", incident.type, incident.severity_guess)
        return incident
