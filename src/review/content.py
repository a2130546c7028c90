"""
Content providers for review items.

A ContentProvider turns a LearningItem into a definition, example
sentences and exercises. GeminiContentProvider asks the Gemini
generateContent REST endpoint for JSON and validates it with pydantic.
ExerciseSource is what the engine talks to: it calls the provider and, on
any failure or timeout, returns locally generated exercises instead.
"""

from __future__ import annotations

import asyncio
import json
from typing import Literal, Protocol

import httpx
from loguru import logger
from pydantic import BaseModel, Field, ValidationError

from .errors import ContentUnavailable
from .exercises import (
    Exercise,
    ExerciseOption,
    FreeText,
    FreeTextMode,
    LocalExerciseFactory,
    MultipleChoice,
)
from .models import ItemContent, LearningItem

GEMINI_API_URL = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"


class ContentProvider(Protocol):
    """Source of generated content for a learning item."""

    async def fetch_exercises(self, item: LearningItem) -> ItemContent:
        """Return content for ``item`` or raise ContentUnavailable."""
        ...


# ========================================
# Response Models
# ========================================


class OptionPayload(BaseModel):
    text: str = Field(min_length=1)
    correct: bool = False


class ExercisePayload(BaseModel):
    """One exercise as returned by the model."""

    type: Literal["multiple_choice", "reverse_definition", "sentence_creation"]
    question: str = Field(min_length=1)
    sentence: str | None = None
    options: list[OptionPayload] = Field(default_factory=list)


class ContentPayload(BaseModel):
    """Top-level JSON document requested from the model."""

    definition: str = Field(min_length=1)
    examples: list[str] = Field(default_factory=list)
    exercises: list[ExercisePayload] = Field(min_length=1)


def _to_exercise(payload: ExercisePayload, item: LearningItem) -> Exercise:
    if payload.type == "multiple_choice":
        return MultipleChoice(
            prompt=payload.question,
            options=tuple(ExerciseOption(o.text, o.correct) for o in payload.options),
            context=payload.sentence,
        )
    return FreeText(prompt=payload.question, term=item.term, mode=FreeTextMode(payload.type))


def parse_content(raw: str, item: LearningItem) -> ItemContent:
    """
    Parse model output into ItemContent.

    Raises:
        ContentUnavailable: If the text is not valid JSON, does not match the
            expected shape, or a multiple-choice exercise does not have
            exactly one correct option
    """
    try:
        payload = ContentPayload.model_validate(json.loads(raw))
        exercises = tuple(_to_exercise(e, item) for e in payload.exercises)
    except (json.JSONDecodeError, ValidationError, ValueError) as e:
        raise ContentUnavailable(f"Malformed content for {item.term}: {e}") from e

    return ItemContent(
        item=item,
        definition=payload.definition,
        examples=tuple(payload.examples),
        exercises=exercises,
        source="provider",
    )


def build_prompt(item: LearningItem) -> str:
    return f"""
Generate review material for the word "{item.term}" (meaning: "{item.meaning}").

Output JSON only:
{{
  "definition": "A short learner-friendly definition",
  "examples": ["A sentence using {item.term}", "Another sentence using {item.term}"],
  "exercises": [
    {{
      "type": "multiple_choice",
      "question": "What does \\"{item.term}\\" mean in this sentence?",
      "sentence": "A sentence using {item.term}",
      "options": [
        {{"text": "Correct meaning", "correct": true}},
        {{"text": "Wrong meaning 1", "correct": false}},
        {{"text": "Wrong meaning 2", "correct": false}},
        {{"text": "Wrong meaning 3", "correct": false}}
      ]
    }},
    {{"type": "reverse_definition", "question": "Which word means: {item.meaning}?"}}
  ]
}}
Exactly one option per multiple_choice exercise is correct.
""".strip()


class GeminiContentProvider:
    """Content provider backed by the Gemini generateContent API."""

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_GEMINI_MODEL,
        timeout_seconds: float = 8.0,
        api_url: str = GEMINI_API_URL,
    ):
        """
        Initialize Gemini provider.

        Args:
            api_key: Gemini API key
            model: Model name
            timeout_seconds: HTTP timeout per request
            api_url: Base URL of the Generative Language API
        """
        self.api_key = api_key
        self.model = model
        self.api_url = api_url.rstrip("/")
        self.client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds))

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}/models/{self.model}:generateContent"

    async def fetch_exercises(self, item: LearningItem) -> ItemContent:
        body = {
            "contents": [{"parts": [{"text": build_prompt(item)}]}],
            "generationConfig": {"responseMimeType": "application/json"},
        }
        try:
            response = await self.client.post(
                self.endpoint,
                params={"key": self.api_key},
                json=body,
            )
            response.raise_for_status()
            data = response.json()
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except httpx.HTTPError as e:
            raise ContentUnavailable(f"Gemini request failed for {item.term}: {e}") from e
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ContentUnavailable(f"Unexpected Gemini response for {item.term}: {e}") from e

        content = parse_content(text, item)
        logger.debug(f"Gemini content for {item.id}: {len(content.exercises)} exercises")
        return content


class ExerciseSource:
    """
    Content with local fallback.

    Never raises for provider problems: a missing provider, a provider
    error or a timeout all produce fallback content.
    """

    def __init__(
        self,
        fallback: LocalExerciseFactory,
        provider: ContentProvider | None = None,
        timeout_seconds: float | None = None,
    ):
        self.fallback = fallback
        self.provider = provider
        self.timeout_seconds = timeout_seconds

    async def content_for(self, item: LearningItem) -> ItemContent:
        if self.provider is None:
            return self.fallback.content_for(item)

        try:
            return await asyncio.wait_for(
                self.provider.fetch_exercises(item),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Content provider timed out for {item.id}, using local exercises")
        except Exception as e:  # Any provider failure falls back locally
            logger.warning(f"Content provider failed for {item.id}: {e}; using local exercises")
        return self.fallback.content_for(item)
