import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

from ..errors import GenerationError, SchemaError, ValidationError
from ..models import (
    ChatMessage,
    ClarifyDecision,
    FinalDecision,
    SessionState,
    TurnReply,
)
from ..services.llm import TextGenerator
from ..services.session_store import SessionStore
from ..utils import clamp_text
from .answer import AnswerBuilder
from .compaction import ContextCompactor
from .decision import MAX_CLARIFY, DecisionEngine, enforce_clarify_cap
from .extraction import StructuredExtractor
from .incident import IncidentParser
from .memory import MemoryMerger
from .prompts import SECTION_ROOT_CAUSES, SECTION_RUNBOOK, SECTION_STATUS

logger = logging.getLogger(__name__)

MAX_MESSAGE_CHARS = 4000

FALLBACK_PARSE_REPLY = (
    f"{SECTION_RUNBOOK}\n"
    "- Confirm the exact error and its scope (URLs, regions, share of traffic)\n"
    "- Check deploys and config changes from the last 60 minutes\n"
    "- Check origin health (CPU/memory, error logs, upstream timeouts)\n"
    f"{SECTION_ROOT_CAUSES}\n"
    "- Unclassified incident, details could not be parsed (0.50)\n"
    "- Transient upstream outage (0.30)\n"
    "- Misconfiguration or deploy regression (0.20)\n"
    f"{SECTION_STATUS}\n"
    "An internal parsing error occurred, so this is a generic incident checklist. "
    "Share the error code (e.g. 502/520) and the timeframe to get a tailored runbook.\n"
)


class SessionLocks:
    """One asyncio.Lock per session id; entries are dropped once nobody holds or awaits them."""

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._waiters[session_id] = self._waiters.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[session_id] -= 1
            if self._waiters[session_id] == 0:
                del self._waiters[session_id]
                del self._locks[session_id]

    def __len__(self) -> int:
        return len(self._locks)


class SessionController:
    """Runs one conversational turn per call: load, compact, parse, decide, answer, remember, save.

    Turns for the same session id are serialized; different sessions run concurrently.
    """

    def __init__(
        self,
        generator: TextGenerator,
        store: SessionStore,
        system_prompt: str,
        debug: bool = False,
    ) -> None:
        extractor = StructuredExtractor(generator, system_prompt)
        self._store = store
        self._debug = debug
        self._locks = SessionLocks()
        self._compactor = ContextCompactor(generator, system_prompt)
        self._parser = IncidentParser(extractor, system_prompt)
        self._decider = DecisionEngine(extractor, system_prompt, max_clarify=MAX_CLARIFY)
        self._answers = AnswerBuilder(generator, system_prompt)
        self._memory = MemoryMerger(extractor, system_prompt)

    async def handle_turn(self, session_id: str, message: str) -> TurnReply:
        """Process one user message for session_id and return the reply plus profile.

        Raises:
            ValidationError: message is blank.
            StorageError: session state could not be loaded or saved.
        """
        text = message.strip() if isinstance(message, str) else ""
        if not text:
            raise ValidationError("Missing message")

        async with self._locks.hold(session_id):
            return await self._run_turn(session_id, text)

    async def _run_turn(self, session_id: str, message: str) -> TurnReply:
        logger.info("Turn start session_id=%s", session_id)
        state = await self._store.get(session_id) or SessionState()
        state.messages.append(ChatMessage(role="user", content=clamp_text(message, MAX_MESSAGE_CHARS)))
        state = await self._compactor.compact(state)

        try:
            incident = await self._parser.parse_incident(message)
        except (GenerationError, SchemaError) as e:
            logger.error("Incident parsing failed session_id=%s: %s", session_id, e)
            reply = FALLBACK_PARSE_REPLY
            if self._debug:
                reply += f"\n\n(debug) {e}"
            return await self._reply(session_id, state, reply)

        decision = await self._decider.decide(
            user_message=message,
            incident=incident,
            profile=state.profile,
            summary=state.summary,
            clarifying_questions_asked=state.clarifying_questions_asked,
        )
        decision = enforce_clarify_cap(decision, state.clarifying_questions_asked, MAX_CLARIFY)

        if isinstance(decision, ClarifyDecision):
            state.clarifying_questions_asked = min(MAX_CLARIFY, state.clarifying_questions_asked + 1)
            logger.info(
                "Clarifying question %d/%d session_id=%s",
                state.clarifying_questions_asked,
                MAX_CLARIFY,
                session_id,
            )
            return await self._reply(session_id, state, decision.question)

        if isinstance(decision, FinalDecision):
            final_answer = await self._answers.build_final(
                incident, state.profile, state.summary, state.messages
            )
            state.messages.append(ChatMessage(role="assistant", content=final_answer))
            try:
                update = await self._memory.update_memory(
                    state.profile, incident, final_answer, state.summary
                )
                state.profile = update.profile
                state.last_incident_summary = update.last_incident_summary
            except (GenerationError, SchemaError) as e:
                logger.warning("Memory update skipped session_id=%s: %s", session_id, e)
            state.clarifying_questions_asked = 0
            logger.info("Final answer session_id=%s incident_type=%s", session_id, incident.type)
            return await self._persist(session_id, state, final_answer)

        raise TypeError(f"Unhandled decision: {decision!r}")

    async def _reply(self, session_id: str, state: SessionState, reply: str) -> TurnReply:
        state.messages.append(ChatMessage(role="assistant", content=reply))
        return await self._persist(session_id, state, reply)

    async def _persist(self, session_id: str, state: SessionState, reply: str) -> TurnReply:
        await self._store.put(session_id, state)
        return TurnReply(reply=reply, profile=state.profile)
