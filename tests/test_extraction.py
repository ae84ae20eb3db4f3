import pytest

from conftest import SYSTEM_PROMPT
from pocketsre.agent.extraction import (
    ParsedJson,
    ParseFailure,
    StructuredExtractor,
    parse_json_object,
)
from pocketsre.errors import GenerationError, SchemaError

MESSAGES = [
    {"role": "system", "content": "original system"},
    {"role": "user", "content": "give me json"},
]


def test_parse_plain_object() -> None:
    """A well-formed JSON object is returned unchanged."""
    result = parse_json_object('{"a": 1, "b": ["x"]}')
    assert result == ParsedJson({"a": 1, "b": ["x"]})


def test_parse_fenced_object() -> None:
    result = parse_json_object('```json\n{"action": "final"}\n```')
    assert result == ParsedJson({"action": "final"})


def test_parse_object_embedded_in_prose() -> None:
    result = parse_json_object('Sure! Here it is: {"type": "dns"} hope that helps')
    assert isinstance(result, ParsedJson)
    assert result.value == {"type": "dns"}


def test_parse_without_braces_fails() -> None:
    result = parse_json_object("no json here")
    assert isinstance(result, ParseFailure)


def test_parse_non_object_fails() -> None:
    """Arrays are valid JSON but not the required shape."""
    assert isinstance(parse_json_object("[1, 2, 3]"), ParseFailure)


def test_parse_broken_slice_fails() -> None:
    assert isinstance(parse_json_object("{oops: }"), ParseFailure)


@pytest.mark.asyncio
async def test_extract_valid_json_needs_no_retry(make_generator) -> None:
    gen = make_generator('{"action": "final"}')
    extractor = StructuredExtractor(gen, SYSTEM_PROMPT)
    assert await extractor.extract(MESSAGES) == {"action": "final"}
    assert len(gen.calls) == 1


@pytest.mark.asyncio
async def test_extract_retries_once_with_correction(make_generator) -> None:
    """A malformed first answer triggers exactly one correction call."""
    gen = make_generator("definitely not json", '{"type": "latency"}')
    extractor = StructuredExtractor(gen, SYSTEM_PROMPT)
    assert await extractor.extract(MESSAGES) == {"type": "latency"}
    assert len(gen.calls) == 2

    retry = gen.calls[1]
    assert len(retry) == 2
    assert retry[0] == MESSAGES[0]
    assert retry[1]["role"] == "user"
    assert "definitely not json" in retry[1]["content"]
    assert "ONLY valid JSON" in retry[1]["content"]


@pytest.mark.asyncio
async def test_extract_gives_up_after_one_retry(make_generator) -> None:
    gen = make_generator("bad", "still bad", '{"never": "used"}')
    extractor = StructuredExtractor(gen, SYSTEM_PROMPT)
    with pytest.raises(SchemaError):
        await extractor.extract(MESSAGES)
    assert len(gen.calls) == 2
    assert gen.remaining == 1


@pytest.mark.asyncio
async def test_extract_propagates_generation_error(make_generator) -> None:
    gen = make_generator(GenerationError("timeout"))
    extractor = StructuredExtractor(gen, SYSTEM_PROMPT)
    with pytest.raises(GenerationError):
        await extractor.extract(MESSAGES)
    assert len(gen.calls) == 1


@pytest.mark.asyncio
async def test_extract_retry_generation_error_propagates(make_generator) -> None:
    gen = make_generator("bad", GenerationError("down"))
    extractor = StructuredExtractor(gen, SYSTEM_PROMPT)
    with pytest.raises(GenerationError):
        await extractor.extract(MESSAGES)


@pytest.mark.asyncio
async def test_retry_uses_default_system_prompt_when_missing(make_generator) -> None:
    gen = make_generator("bad", "{}")
    extractor = StructuredExtractor(gen, SYSTEM_PROMPT)
    await extractor.extract([{"role": "user", "content": "json please"}])
    assert gen.calls[1][0] == {"role": "system", "content": SYSTEM_PROMPT}


@pytest.mark.asyncio
@pytest.mark.parametrize("blank", ["", "   \n"])
async def test_extract_blank_output_is_generation_error(make_generator, blank) -> None:
    """Blank output is a failed generation, not a malformed answer worth retrying."""
    gen = make_generator(blank, '{"never": "used"}')
    extractor = StructuredExtractor(gen, SYSTEM_PROMPT)
    with pytest.raises(GenerationError):
        await extractor.extract(MESSAGES)
    assert len(gen.calls) == 1


@pytest.mark.asyncio
async def test_extract_blank_retry_is_generation_error(make_generator) -> None:
    gen = make_generator("bad", " ")
    extractor = StructuredExtractor(gen, SYSTEM_PROMPT)
    with pytest.raises(GenerationError):
        await extractor.extract(MESSAGES)
