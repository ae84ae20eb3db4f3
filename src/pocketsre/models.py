import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Union

from .utils import safe_string, safe_string_list

SEVERITY_LEVELS = ("low", "medium", "high", "critical", "unknown")

Role = Literal["user", "assistant"]


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class ChatMessage:
    """One stored turn half: who said it, what, and when (epoch ms)."""

    role: Role
    content: str
    ts: int = field(default_factory=now_ms)

    def to_prompt(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role, "content": self.content, "ts": self.ts}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        role = "assistant" if data.get("role") == "assistant" else "user"
        return cls(role=role, content=safe_string(data.get("content")), ts=int(data.get("ts", 0)))


@dataclass
class UserProfile:
    """Long-lived facts about the user's environment."""

    tech_stack: List[str] = field(default_factory=list)
    domain: str = ""
    notes: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "techStack": list(self.tech_stack),
            "domain": self.domain,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "UserProfile":
        if not isinstance(data, dict):
            return cls()
        return cls(
            tech_stack=safe_string_list(data.get("techStack")),
            domain=safe_string(data.get("domain")),
            notes=safe_string(data.get("notes")),
        )


@dataclass
class SessionState:
    """Per-session conversation state (turns, running summary, profile, clarify counter)."""

    messages: List[ChatMessage] = field(default_factory=list)
    summary: str = ""
    profile: UserProfile = field(default_factory=UserProfile)
    last_incident_summary: str = ""
    clarifying_questions_asked: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "messages": [m.to_dict() for m in self.messages],
            "summary": self.summary,
            "profile": self.profile.to_dict(),
            "last_incident_summary": self.last_incident_summary,
            "clarifying_questions_asked": self.clarifying_questions_asked,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionState":
        messages = data.get("messages") or []
        return cls(
            messages=[ChatMessage.from_dict(m) for m in messages if isinstance(m, dict)],
            summary=safe_string(data.get("summary")),
            profile=UserProfile.from_dict(data.get("profile")),
            last_incident_summary=safe_string(data.get("last_incident_summary")),
            clarifying_questions_asked=int(data.get("clarifying_questions_asked", 0)),
        )


@dataclass(frozen=True)
class IncidentParse:
    """Normalized view of the incident described in the latest user message."""

    type: str = ""
    severity_guess: str = "unknown"
    timeframe: str = ""
    symptoms: List[str] = field(default_factory=list)
    stack_hints: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "severity_guess": self.severity_guess,
            "timeframe": self.timeframe,
            "symptoms": list(self.symptoms),
            "stack_hints": list(self.stack_hints),
        }


@dataclass(frozen=True)
class ClarifyDecision:
    question: str


@dataclass(frozen=True)
class FinalDecision:
    pass


Decision = Union[ClarifyDecision, FinalDecision]


@dataclass
class TurnReply:
    """What a turn hands back to the caller."""

    reply: str
    profile: UserProfile

    def to_dict(self) -> Dict[str, Any]:
        return {"reply": self.reply, "profile": self.profile.to_dict()}
