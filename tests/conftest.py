import json
from typing import Any, Callable, Dict, List, Union

import pytest

from pocketsre.services.session_store import InMemorySessionStore

SYSTEM_PROMPT = "You are a test incident helper."

FINAL_ANSWER = (
    "RUNBOOK (3-7 steps)\n"
    "- Check the load balancer target health\n"
    "- Roll back the 09:55 deploy\n"
    "- Watch the 5xx rate for 10 minutes\n"
    "LIKELY ROOT CAUSES (3 items, each with confidence like 0.55)\n"
    "- Bad deploy (0.60)\n"
    "- Origin overload (0.25)\n"
    "- CDN misconfiguration (0.15)\n"
    "STATUS UPDATE (1-2 paragraphs)\n"
    "We are investigating elevated 502 errors since 10:00 and rolling back the latest deploy.\n"
)


class ScriptedGenerator:
    """Replays canned outputs in order; Exception instances are raised instead of returned."""

    def __init__(self, outputs: List[Union[str, Exception]]) -> None:
        self._outputs = list(outputs)
        self.calls: List[List[Dict[str, str]]] = []

    async def generate(self, messages: List[Dict[str, str]]) -> str:
        self.calls.append(messages)
        if not self._outputs:
            raise AssertionError(f"Unexpected generation call #{len(self.calls)}")
        out = self._outputs.pop(0)
        if isinstance(out, Exception):
            raise out
        return out

    @property
    def remaining(self) -> int:
        return len(self._outputs)


def as_json(value: Any) -> str:
    return json.dumps(value)


@pytest.fixture
def make_generator() -> Callable[..., ScriptedGenerator]:
    def _make(*outputs: Union[str, Exception]) -> ScriptedGenerator:
        return ScriptedGenerator(list(outputs))

    return _make


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()
