import pytest

from conftest import SYSTEM_PROMPT, as_json
from pocketsre.agent.extraction import StructuredExtractor
from pocketsre.agent.memory import (
    DOMAIN_MAX_CHARS,
    INCIDENT_SUMMARY_MAX_CHARS,
    NOTES_MAX_CHARS,
    TECH_STACK_MAX_ITEMS,
    MemoryMerger,
    merge_profile,
)
from pocketsre.errors import GenerationError, SchemaError
from pocketsre.models import IncidentParse, UserProfile


def test_merge_profile_union_keeps_order() -> None:
    existing = UserProfile(tech_stack=["Next.js", "Postgres"], domain="a.com", notes="old")
    merged = merge_profile(
        existing,
        {"techStack": ["Postgres", "Cloudflare", "postgres", ""], "domain": "b.com", "notes": "new"},
    )
    assert merged.tech_stack == ["Next.js", "Postgres", "Cloudflare", "postgres"]
    assert merged.domain == "b.com"
    assert merged.notes == "new"


def test_merge_profile_never_drops_existing_stack() -> None:
    existing = UserProfile(tech_stack=["Redis", "Kubernetes"])
    merged = merge_profile(existing, {"techStack": []})
    assert merged.tech_stack == ["Redis", "Kubernetes"]


def test_merge_profile_caps() -> None:
    existing = UserProfile(tech_stack=[f"t{i}" for i in range(20)])
    merged = merge_profile(
        existing,
        {
            "techStack": [f"n{i}" for i in range(10)],
            "domain": "d" * 1000,
            "notes": "n" * 5000,
        },
    )
    assert len(merged.tech_stack) == TECH_STACK_MAX_ITEMS
    assert merged.tech_stack[:20] == existing.tech_stack
    assert len(merged.domain) == DOMAIN_MAX_CHARS
    assert len(merged.notes) == NOTES_MAX_CHARS


def test_merge_profile_is_idempotent() -> None:
    existing = UserProfile(tech_stack=["Go"], domain="x.io", notes="n")
    generated = {"techStack": ["Go", "Nginx"], "domain": "x.io", "notes": "n"}
    once = merge_profile(existing, generated)
    assert merge_profile(once, generated) == once


@pytest.mark.asyncio
async def test_update_memory(make_generator) -> None:
    gen = make_generator(
        as_json(
            {
                "profile": {"techStack": ["Nginx"], "domain": "shop.example", "notes": "Runs on AWS."},
                "lastIncidentSummary": "s" * 2000,
            }
        )
    )
    merger = MemoryMerger(StructuredExtractor(gen, SYSTEM_PROMPT), SYSTEM_PROMPT)
    update = await merger.update_memory(
        UserProfile(tech_stack=["Django"]), IncidentParse(type="5xx_errors"), "answer", ""
    )
    assert update.profile.tech_stack == ["Django", "Nginx"]
    assert update.profile.domain == "shop.example"
    assert update.profile.notes == "Runs on AWS."
    assert len(update.last_incident_summary) == INCIDENT_SUMMARY_MAX_CHARS
    assert update.last_incident_summary.endswith("…")


@pytest.mark.asyncio
async def test_update_memory_requires_profile_object(make_generator) -> None:
    gen = make_generator(as_json({"lastIncidentSummary": "x"}))
    merger = MemoryMerger(StructuredExtractor(gen, SYSTEM_PROMPT), SYSTEM_PROMPT)
    with pytest.raises(SchemaError):
        await merger.update_memory(UserProfile(), IncidentParse(), "answer", "")


@pytest.mark.asyncio
async def test_update_memory_propagates_generation_error(make_generator) -> None:
    gen = make_generator(GenerationError("down"))
    merger = MemoryMerger(StructuredExtractor(gen, SYSTEM_PROMPT), SYSTEM_PROMPT)
    with pytest.raises(GenerationError):
        await merger.update_memory(UserProfile(), IncidentParse(), "answer", "")
