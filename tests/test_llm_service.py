import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tldev.services.llm import TIP_CATEGORIES, TipGenerator, build_prompt


@pytest.fixture
def generator():
    return TipGenerator(model="test-model", api_key="test-key")


def _mock_response(content: str):
    mock = AsyncMock()
    mock.return_value.choices = [MagicMock(message=MagicMock(content=content))]
    return mock


def _raw_tip(n, **overrides):
    tip = {
        "headline": f"Headline {n}",
        "summary": "Short summary",
        "detail": "Longer detail",
        "code_snippet": None,
        "category": "Python",
        "tags": ["python"],
        "topic_slug": f"topic-{n}",
        "technology": "pathlib",
    }
    tip.update(overrides)
    return tip


async def test_generate_parses_tips(generator):
    mock = _mock_response(json.dumps({"tips": [_raw_tip(1), _raw_tip(2)]}))
    with patch("tldev.services.llm.litellm.acompletion", mock):
        result = await generator.generate(2)

    assert result.error is None
    assert result.model == "test-model"
    assert [t.topic_slug for t in result.tips] == ["topic-1", "topic-2"]

    kwargs = mock.call_args.kwargs
    assert kwargs["model"] == "test-model"
    assert kwargs["api_key"] == "test-key"
    assert kwargs["response_format"] == {"type": "json_object"}


async def test_generate_drops_malformed_tips(generator):
    tips = [_raw_tip(1), _raw_tip(2, headline=""), {"headline": "no slug", "category": "Go"}]
    mock = _mock_response(json.dumps({"tips": tips}))
    with patch("tldev.services.llm.litellm.acompletion", mock):
        result = await generator.generate(3)

    assert [t.topic_slug for t in result.tips] == ["topic-1"]


async def test_generate_drops_unknown_category(generator):
    mock = _mock_response(json.dumps({"tips": [_raw_tip(1, category="Cooking")]}))
    with patch("tldev.services.llm.litellm.acompletion", mock):
        result = await generator.generate(1)

    assert result.tips == []


async def test_generate_reports_call_failure(generator):
    mock = AsyncMock(side_effect=Exception("API error"))
    with patch("tldev.services.llm.litellm.acompletion", mock):
        result = await generator.generate(2)

    assert result.tips == []
    assert result.error == "API error"


async def test_generate_reports_invalid_json(generator):
    mock = _mock_response("not json")
    with patch("tldev.services.llm.litellm.acompletion", mock):
        result = await generator.generate(2)

    assert result.error


def test_prompt_lists_exclusions():
    prompt = build_prompt(5, TIP_CATEGORIES[:2], ["docker-multistage-builds"])
    assert "Generate 5 tips" in prompt
    assert "- docker-multistage-builds" in prompt
    assert "JavaScript, Python" in prompt


def test_prompt_without_exclusions():
    prompt = build_prompt(5, TIP_CATEGORIES[:2], None)
    assert "already published" not in prompt
