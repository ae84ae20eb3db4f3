import json
from typing import Any, Dict, List

from ..models import IncidentParse, UserProfile

SECTION_RUNBOOK = "RUNBOOK (3-7 steps)"
SECTION_ROOT_CAUSES = "LIKELY ROOT CAUSES (3 items, each with confidence like 0.55)"
SECTION_STATUS = "STATUS UPDATE (1-2 paragraphs)"

JSON_CORRECTION_PROMPT = (
    "Your previous response was invalid. Return ONLY valid JSON matching the "
    "requested schema. No markdown, no commentary.\n\nPrevious response:\n"
)


def _or_empty(text: str) -> str:
    return text if text else "(empty)"


def _profile_json(profile: UserProfile) -> str:
    return json.dumps(profile.to_dict())


def incident_parse_prompt(user_message: str) -> str:
    return (
        "Extract a STRICT JSON object describing the incident.\n\n"
        "Return ONLY valid JSON (no markdown, no code fences).\n"
        "If the message is not an incident report, still return valid JSON with "
        'type "other" and severity_guess "unknown".\n'
        "Do not ask clarifying questions in this step.\n"
        "Schema:\n"
        "{\n"
        '  "type": string,            // e.g. "5xx_errors", "latency", "dns", "deploy_regression", "auth"\n'
        '  "severity_guess": "low"|"medium"|"high"|"critical"|"unknown",\n'
        '  "timeframe": string,       // empty string if unknown\n'
        '  "symptoms": string[],      // short bullets; empty if unknown\n'
        '  "stack_hints": string[]    // detected technologies; empty if none\n'
        "}\n\n"
        f"User message:\n{user_message}"
    )


def decision_prompt(
    user_message: str,
    incident: IncidentParse,
    profile: UserProfile,
    summary: str,
    clarifying_questions_asked: int,
    max_clarify: int,
) -> str:
    return (
        "Decide whether to ask ONE clarifying question or give the final answer now.\n\n"
        "Constraints:\n"
        "- Ask only if the answer would materially change the runbook.\n"
        f"- Never ask more than {max_clarify} clarifying questions in total.\n"
        f'- If clarifyingQuestionsAsked >= {max_clarify}, you MUST choose "final".\n\n'
        'Return ONLY valid JSON: { "action": "clarify", "question": string } '
        'OR { "action": "final" }\n\n'
        "Context:\n"
        f"- clarifyingQuestionsAsked: {clarifying_questions_asked}\n"
        f"- summary (older chat): {_or_empty(summary)}\n"
        f"- profile: {_profile_json(profile)}\n"
        f"- incident: {json.dumps(incident.to_dict())}\n\n"
        f"Latest user message:\n{user_message}"
    )


def final_answer_prompt(
    incident: IncidentParse,
    profile: UserProfile,
    summary: str,
    recent_messages: List[Dict[str, str]],
) -> str:
    return (
        "Produce a concise, actionable incident response.\n\n"
        "Return ONLY plain text (no JSON).\n\n"
        "It must contain exactly these sections, in this order:\n"
        f"{SECTION_RUNBOOK}\n{SECTION_ROOT_CAUSES}\n{SECTION_STATUS}\n\n"
        "Guidance:\n"
        "- Prefer checks that apply to most stacks: DNS, TLS, origin health, deploys, logs, DB.\n"
        "- Say what to look for and what good vs bad looks like.\n"
        "- Mention CDN-specific checks only when relevant (52x errors, WAF, cache).\n"
        "- Keep it short.\n\n"
        "Context:\n"
        f"summary (older chat): {_or_empty(summary)}\n"
        f"profile: {_profile_json(profile)}\n"
        f"incident: {json.dumps(incident.to_dict())}\n"
        f"recentMessages: {json.dumps(recent_messages)}"
    )


def summarize_prompt(previous_summary: str, messages: List[Dict[str, str]]) -> str:
    return (
        "Create or extend a running summary of this troubleshooting chat.\n\n"
        "Return ONLY plain text, at most about 1200 characters.\n"
        "Cover: what the site is, stack hints, symptoms and timeframe, "
        "what was tried and the results, decisions and next steps.\n\n"
        f"Previous summary:\n{_or_empty(previous_summary)}\n\n"
        f"Messages to summarize:\n{json.dumps(messages)}"
    )


def memory_update_prompt(
    profile: UserProfile,
    incident: IncidentParse,
    final_answer: str,
    summary: str,
) -> str:
    schema: Dict[str, Any] = {
        "profile": {"techStack": "string[]", "domain": "string", "notes": "string"},
        "lastIncidentSummary": "string",
    }
    return (
        "Update long-term memory for this user session.\n\n"
        f"Return ONLY valid JSON (no markdown) shaped like:\n{json.dumps(schema, indent=2)}\n\n"
        "Rules:\n"
        '- techStack: deduplicated short items (e.g. "Next.js", "Postgres", "Kubernetes").\n'
        "- domain: keep the known domain; empty string if unknown.\n"
        "- notes: 1-3 short sentences of stable facts; keep facts from the existing profile.\n"
        "- lastIncidentSummary: 1-3 sentences on the incident and next actions.\n\n"
        f"Existing profile:\n{_profile_json(profile)}\n\n"
        f"Running summary:\n{_or_empty(summary)}\n\n"
        f"Incident JSON:\n{json.dumps(incident.to_dict())}\n\n"
        f"Final answer that was given:\n{final_answer}"
    )
