"""Text collaborator: script ideas, reviews and gossip headlines.

The engine only ever talks to a :class:`TextGenerator`. The remote generator
speaks to an OpenAI-compatible endpoint and degrades to
:class:`LocalTextGenerator` templates whenever it is disabled, times out or
fails, so a month advance never depends on the network.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol

import openai
import yaml

from .models import Genre, Movie, Tone
from .rng import DeterministicRNG
from .telemetry import TelemetryCollector

logger = logging.getLogger(__name__)

_DATA_PATH = Path(__file__).parent / "data"

SCRIPT_IDEA_COUNT = 3


class TextGenerationError(RuntimeError):
    """Raised when the remote model returns something unusable."""


@dataclass
class ScriptIdea:
    title: str
    description: str
    tagline: str
    genre: Genre
    tone: Tone

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScriptIdea":
        try:
            return cls(
                title=str(data["title"]).strip(),
                description=str(data["description"]).strip(),
                tagline=str(data.get("tagline", "")).strip(),
                genre=Genre(data["genre"]),
                tone=Tone(data["tone"]),
            )
        except (KeyError, ValueError, TypeError) as exc:
            raise TextGenerationError(f"Malformed script idea: {data!r}") from exc


class TextGenerator(Protocol):
    async def generate_script_ideas(self, year: int, count: int = SCRIPT_IDEA_COUNT) -> List[ScriptIdea]:
        ...

    async def generate_review(self, movie: Movie) -> str:
        ...

    async def generate_headline(self, year: int) -> str:
        ...


@dataclass
class LLMConfig:
    """Configuration for the remote text generator."""
    api_base: str = "https://api.openai.com/v1"
    api_key: str = ""
    model_name: str = "gpt-4o-mini"
    temperature: float = 0.8
    max_tokens: int = 400
    timeout: float = 30
    retry_attempts: int = 2
    use_fallback_templates: bool = True
    mock_mode: bool = False
    retry_schedule: Optional[List[float]] = None

    @classmethod
    def from_env(cls) -> "LLMConfig":
        """Load configuration from environment variables."""
        schedule_env = os.getenv("LLM_RETRY_SCHEDULE")
        retry_schedule: Optional[List[float]] = None
        if schedule_env:
            try:
                retry_schedule = [float(item.strip()) for item in schedule_env.split(",") if item.strip()]
            except ValueError:
                logger.warning("Invalid LLM_RETRY_SCHEDULE value: %s", schedule_env)
                retry_schedule = None

        return cls(
            api_base=os.getenv("LLM_API_BASE", "https://api.openai.com/v1"),
            api_key=os.getenv("LLM_API_KEY", ""),
            model_name=os.getenv("LLM_MODEL_NAME", "gpt-4o-mini"),
            temperature=float(os.getenv("LLM_TEMPERATURE", "0.8")),
            max_tokens=int(os.getenv("LLM_MAX_TOKENS", "400")),
            timeout=float(os.getenv("LLM_TIMEOUT", "30")),
            retry_attempts=int(os.getenv("LLM_RETRY_ATTEMPTS", "2")),
            use_fallback_templates=os.getenv("LLM_USE_FALLBACK", "true").lower() == "true",
            mock_mode=os.getenv("LLM_MODE", "").lower() == "mock",
            retry_schedule=retry_schedule,
        )


class LocalTextGenerator:
    """Template text from ``data/text_fallbacks.yaml``. Never fails."""

    def __init__(
        self,
        rng: Optional[DeterministicRNG] = None,
        data_path: Path | None = None,
    ) -> None:
        self._rng = rng or DeterministicRNG.from_entropy()
        path = (data_path or _DATA_PATH) / "text_fallbacks.yaml"
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        self._tropes: Dict[Genre, List[str]] = {
            Genre(genre): list(values) for genre, values in data["tropes"].items()
        }
        self._nouns: List[str] = list(data["nouns"])
        self._adjectives: List[str] = list(data["adjectives"])
        self.headlines: List[str] = list(data["headlines"])
        self._reviews: Dict[str, str] = dict(data["reviews"])

    def script_ideas(self, count: int = SCRIPT_IDEA_COUNT) -> List[ScriptIdea]:
        ideas = []
        for _ in range(count):
            genre = self._rng.choice(list(Genre))
            trope = self._rng.choice(self._tropes[genre])
            noun = self._rng.choice(self._nouns)
            adjective = self._rng.choice(self._adjectives)
            title = f"{adjective} {noun}" if self._rng.random() > 0.5 else f"{trope} {noun}"
            ideas.append(
                ScriptIdea(
                    title=title,
                    description=(
                        f"A high-stakes {genre.value.lower()} film involving a "
                        f"{adjective.lower()} secret and a race against time."
                    ),
                    tagline=(
                        f"In a world of {adjective.lower()} choices, "
                        f"only one {noun.lower()} matters."
                    ),
                    genre=genre,
                    tone=Tone.SERIOUS if self._rng.random() > 0.5 else Tone.LIGHTHEARTED,
                )
            )
        return ideas

    def review(self, movie: Movie) -> str:
        if movie.quality > 80:
            return self._reviews["masterpiece"].format(genre=movie.genre.value.lower())
        if movie.quality > 50:
            return self._reviews["solid"]
        return self._reviews["mess"]

    def headline(self) -> str:
        return self._rng.choice(self.headlines)

    async def generate_script_ideas(self, year: int, count: int = SCRIPT_IDEA_COUNT) -> List[ScriptIdea]:
        return self.script_ideas(count)

    async def generate_review(self, movie: Movie) -> str:
        return self.review(movie)

    async def generate_headline(self, year: int) -> str:
        return self.headline()


class LLMTextGenerator:
    """OpenAI-compatible text generator with local fallbacks."""

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        *,
        fallback: Optional[LocalTextGenerator] = None,
        telemetry: Optional[TelemetryCollector] = None,
        rng: Optional[DeterministicRNG] = None,
        timeout: float = 8.0,
        remote_headline_ratio: float = 0.2,
    ) -> None:
        self.config = config or LLMConfig.from_env()
        self._rng = rng or DeterministicRNG.from_entropy()
        self.fallback = fallback or LocalTextGenerator(self._rng)
        self._telemetry = telemetry
        self._timeout = timeout
        self._remote_headline_ratio = remote_headline_ratio
        self._retry_schedule = self.config.retry_schedule or [1.0, 3.0]
        self._executor: Optional[ThreadPoolExecutor] = None
        self.client: Optional[openai.OpenAI] = None

        if self.config.mock_mode:
            logger.info("Text generator initialised in mock mode")
        elif not self.config.api_key:
            logger.info("No LLM_API_KEY configured; using local text templates")
        else:
            self._executor = ThreadPoolExecutor(max_workers=2)
            self.client = openai.OpenAI(
                api_key=self.config.api_key,
                base_url=self.config.api_base,
                timeout=self.config.timeout,
            )
            logger.info("Text generator initialised with base URL: %s", self.config.api_base)

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def generate_script_ideas(self, year: int, count: int = SCRIPT_IDEA_COUNT) -> List[ScriptIdea]:
        fallback = partial(self.fallback.script_ideas, count)
        if self.config.mock_mode or not self.enabled:
            return self._local("script_ideas", fallback)
        prompt = (
            f"Generate {count} movie script ideas for the year {year}. "
            "2000s style. Respond with a JSON array of objects with keys "
            '"title", "description", "tagline", '
            f'"genre" (one of {", ".join(g.value for g in Genre)}) and '
            f'"tone" (one of {", ".join(t.value for t in Tone)}). No prose.'
        )
        return await self._remote(
            "script_ideas", prompt, lambda content: self._parse_ideas(content, count), fallback
        )

    async def generate_review(self, movie: Movie) -> str:
        if self.config.mock_mode:
            return self._local("review", lambda: f"[MOCK] Review of {movie.title}", source="mock")
        if not self.enabled:
            return self._local("review", lambda: self.fallback.review(movie))
        prompt = (
            f'Short review for "{movie.title}" ({movie.genre.value}). '
            f"Score {round(movie.quality)}/100. Style: 2000s critic."
        )
        return await self._remote("review", prompt, self._parse_text, lambda: self.fallback.review(movie))

    async def generate_headline(self, year: int) -> str:
        if self.config.mock_mode:
            return self._local("headline", lambda: f"[MOCK] Hollywood headline for {year}", source="mock")
        # Most headlines come from the local pool to save tokens
        if not self.enabled or not self._rng.chance(self._remote_headline_ratio):
            return self._local("headline", self.fallback.headline)
        prompt = f"One short 2000s Hollywood gossip headline for {year}."
        return await self._remote("headline", prompt, self._parse_text, self.fallback.headline)

    def _local(self, kind: str, produce, source: str = "local"):
        start = time.perf_counter()
        result = produce()
        self._track(kind, source, True, start)
        return result

    async def _remote(self, kind: str, prompt: str, parse, fallback):
        start = time.perf_counter()
        messages = [
            {"role": "system", "content": "You write flavor text for a 2000s Hollywood studio management game."},
            {"role": "user", "content": prompt},
        ]
        try:
            response = await asyncio.wait_for(self._call_with_retry(messages), timeout=self._timeout)
            result = parse(response.choices[0].message.content or "")
        except asyncio.TimeoutError:
            logger.warning("Text generation for %s timed out after %.1fs", kind, self._timeout)
            return self._fail(kind, "timeout", start, fallback)
        except (openai.OpenAIError, TextGenerationError, IndexError, AttributeError) as exc:
            logger.error("Text generation for %s failed: %s", kind, exc)
            return self._fail(kind, str(exc), start, fallback)
        self._track(kind, "remote", True, start)
        return result

    def _fail(self, kind: str, error: str, start: float, fallback):
        self._track(kind, "remote", False, start, error=error)
        if self._telemetry is not None:
            self._telemetry.track_error("text_generation", operation=kind, error_details=error)
        if not self.config.use_fallback_templates:
            raise TextGenerationError(f"{kind} generation failed: {error}")
        return self._local(kind, fallback)

    async def _call_with_retry(self, messages: List[Dict[str, str]]) -> Any:
        """Make API call with retry logic."""
        attempts = max(1, self.config.retry_attempts)
        loop = asyncio.get_running_loop()
        for attempt in range(attempts):
            try:
                return await loop.run_in_executor(
                    self._executor,
                    lambda: self.client.chat.completions.create(
                        model=self.config.model_name,
                        messages=messages,
                        temperature=self.config.temperature,
                        max_tokens=self.config.max_tokens,
                    ),
                )
            except openai.OpenAIError as e:
                logger.warning("LLM API call attempt %d failed: %s", attempt + 1, e)
                if attempt == attempts - 1:
                    raise
                delay = self._retry_schedule[min(attempt, len(self._retry_schedule) - 1)]
                await asyncio.sleep(delay)
        raise TextGenerationError("LLM call exhausted retries")

    @staticmethod
    def _parse_text(content: str) -> str:
        text = content.strip().strip('"').strip()
        if not text:
            raise TextGenerationError("Empty completion")
        return text

    @staticmethod
    def _parse_ideas(content: str, count: int = SCRIPT_IDEA_COUNT) -> List[ScriptIdea]:
        text = content.strip()
        if text.startswith("```"):
            text = text.strip("`")
            text = text[text.find("["):]
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise TextGenerationError(f"Script ideas were not JSON: {exc}") from exc
        if not isinstance(payload, list) or not payload:
            raise TextGenerationError("Script ideas payload was not a non-empty list")
        return [ScriptIdea.from_dict(item) for item in payload[:count]]

    def _track(self, kind: str, source: str, success: bool, start: float, error: Optional[str] = None) -> None:
        if self._telemetry is None:
            return
        duration_ms = (time.perf_counter() - start) * 1000
        self._telemetry.track_text_generation(kind, source, success, duration_ms, error=error)

    def close(self) -> None:
        """Clean up resources."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)


def build_text_generator(
    *,
    timeout: float = 8.0,
    remote_headline_ratio: float = 0.2,
    telemetry: Optional[TelemetryCollector] = None,
    rng: Optional[DeterministicRNG] = None,
) -> LLMTextGenerator:
    """Text generator configured from ``LLM_*`` environment variables."""

    return LLMTextGenerator(
        LLMConfig.from_env(),
        telemetry=telemetry,
        rng=rng,
        timeout=timeout,
        remote_headline_ratio=remote_headline_ratio,
    )


__all__ = [
    "SCRIPT_IDEA_COUNT",
    "TextGenerationError",
    "ScriptIdea",
    "TextGenerator",
    "LLMConfig",
    "LocalTextGenerator",
    "LLMTextGenerator",
    "build_text_generator",
]
