from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field

import litellm
from pydantic import BaseModel, Field, ValidationError

from tldev.config import settings

logger = logging.getLogger(__name__)

TIP_CATEGORIES = [
    "JavaScript",
    "Python",
    "React",
    "TypeScript",
    "DevOps",
    "Cloud",
    "Docker",
    "Kubernetes",
    "Git",
    "Database",
    "Web",
    "AI",
    "Security",
    "Testing",
    "Node.js",
    "AWS",
    "Go",
    "Rust",
    "CSS",
    "Mobile",
]

GENERATION_PROMPT = """\
You write short, punchy tech tips for TL;Dev, a mobile app for developers.
Generate {count} tips. Every tip must cover a different topic AND a different \
primary technology, and no two headlines may share the same opening words.

Return JSON: {{"tips": [
  {{
    "headline": "scroll-stopping headline, max 60 chars",
    "summary": "1-2 sentence feed preview, 80-150 chars",
    "detail": "explanation for someone new to the topic, 500-1000 chars",
    "code_snippet": "practical example or null",
    "category": "one of: {categories}",
    "tags": ["2-4 lowercase tags"],
    "topic_slug": "unique-topic-slug e.g. docker-multistage-builds",
    "technology": "the main tool or language feature, e.g. Redis"
  }},
  ...
]}}
{exclusions}"""

EXCLUSION_BLOCK = """
Do NOT cover any of these already published topics:
{slugs}
"""


class GeneratedTip(BaseModel):
    headline: str = Field(min_length=1, max_length=100)
    summary: str = Field(default="", max_length=250)
    detail: str = Field(default="", max_length=2000)
    code_snippet: str | None = None
    category: str
    tags: list[str] = Field(default_factory=list, max_length=8)
    topic_slug: str = Field(min_length=1)
    technology: str | None = None


@dataclass
class GenerationResult:
    tips: list[GeneratedTip] = field(default_factory=list)
    model: str = ""
    error: str | None = None


def build_prompt(count: int, categories: list[str], exclusions: list[str] | None) -> str:
    exclusion_text = ""
    if exclusions:
        exclusion_text = EXCLUSION_BLOCK.format(slugs="\n".join(f"- {s}" for s in exclusions))
    return GENERATION_PROMPT.format(
        count=count,
        categories=", ".join(categories),
        exclusions=exclusion_text,
    )


class TipGenerator:
    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ):
        self.model = model or settings.llm_model
        self.api_key = api_key or settings.llm_api_key
        self.temperature = temperature if temperature is not None else settings.llm_temperature
        self.max_tokens = max_tokens or settings.llm_max_tokens

    async def _call(self, prompt: str) -> dict:
        response = await litellm.acompletion(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            response_format={"type": "json_object"},
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            api_key=self.api_key or None,
        )
        text = response.choices[0].message.content
        return json.loads(text)

    async def generate(
        self,
        count: int,
        categories: list[str] | None = None,
        exclusions: list[str] | None = None,
    ) -> GenerationResult:
        allowed = categories or TIP_CATEGORIES[: min(count, len(TIP_CATEGORIES))]
        prompt = build_prompt(count, allowed, exclusions)

        try:
            data = await self._call(prompt)
        except Exception as exc:
            logger.exception("Tip generation call failed")
            return GenerationResult(model=self.model, error=str(exc) or type(exc).__name__)

        tips = []
        for raw in data.get("tips", []):
            try:
                tip = GeneratedTip.model_validate(raw)
            except ValidationError as exc:
                logger.warning("Discarding malformed generated tip: %s", exc.errors()[:1])
                continue
            if tip.category not in allowed and tip.category not in TIP_CATEGORIES:
                logger.warning("Discarding tip with unknown category %r", tip.category)
                continue
            tips.append(tip)

        return GenerationResult(tips=tips, model=self.model)
