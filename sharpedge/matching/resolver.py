"""
AI-assisted team-name resolution.

Last-resort matching tier: asks an OpenAI-compatible chat endpoint for the
two full team names behind a prediction-market title. Calls are capped per
run and bounded by a short timeout; every failure mode is "no answer".

One resolver is built per poll cycle, so its cache and call counter never
outlive the run.
"""

import asyncio
from typing import Optional

import httpx
import orjson
import structlog
from pydantic import BaseModel, Field, ValidationError

from config.settings import ResolverSettings

logger = structlog.get_logger()


class TeamResolution(BaseModel):
    """Strict response schema for the resolution call."""
    team_a: str = Field(min_length=1)
    team_b: str = Field(min_length=1)
    confidence: float = Field(ge=0.0, le=1.0)


RESPONSE_FORMAT = {
    "type": "json_schema",
    "json_schema": {
        "name": "team_resolution",
        "strict": True,
        "schema": {
            "type": "object",
            "properties": {
                "team_a": {"type": "string"},
                "team_b": {"type": "string"},
                "confidence": {"type": "number"},
            },
            "required": ["team_a", "team_b", "confidence"],
            "additionalProperties": False,
        },
    },
}

SYSTEM_PROMPT = (
    "You map sports prediction-market titles to the two official full team "
    "names used by sportsbooks. Answer with team_a (first team in the title), "
    "team_b (second team) and your confidence between 0 and 1. If the title "
    "is not a two-team game, answer with confidence 0."
)


class TeamResolver:
    """
    Per-run, budgeted client for the text-resolution service.

    Usage:
        resolver = TeamResolver(settings.resolver, client)
        resolution = await resolver.resolve("Cavs vs Celtics", "nba")
    """

    def __init__(
        self,
        config: ResolverSettings,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self._client = client
        self.logger = logger.bind(component="team_resolver")

        self._calls_made = 0
        self._cache: dict[tuple[str, str], Optional[TeamResolution]] = {}

    @property
    def calls_made(self) -> int:
        return self._calls_made

    @property
    def budget_remaining(self) -> int:
        return max(0, self.config.max_calls_per_run - self._calls_made)

    def _cache_key(self, title: str, sport: str) -> tuple[str, str]:
        return title.strip().lower(), sport.lower()

    def remember(self, title: str, sport: str, resolution: Optional[TeamResolution]) -> None:
        """Overwrite the cached answer (used when a caller rejects it)."""
        self._cache[self._cache_key(title, sport)] = resolution

    async def resolve(self, title: str, sport: str) -> Optional[TeamResolution]:
        """
        Resolve a title to two full team names.

        Returns:
            TeamResolution at or above the confidence floor, or None
        """
        key = self._cache_key(title, sport)
        if key in self._cache:
            return self._cache[key]

        if not self.config.enabled or self._client is None:
            return None

        if self._calls_made >= self.config.max_calls_per_run:
            self.logger.debug("AI budget exhausted", title=title, calls=self._calls_made)
            return None

        self._calls_made += 1
        resolution: Optional[TeamResolution] = None
        try:
            resolution = await asyncio.wait_for(
                self._request(title, sport),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            self.logger.warning("AI resolution timed out", title=title)
        except (httpx.HTTPError, ValidationError, ValueError, KeyError, IndexError, TypeError) as e:
            self.logger.warning("AI resolution failed", title=title, error=str(e))

        if resolution is not None and resolution.confidence < self.config.min_confidence:
            self.logger.debug(
                "AI resolution below confidence floor",
                title=title,
                confidence=resolution.confidence,
            )
            resolution = None

        self._cache[key] = resolution
        return resolution

    async def _request(self, title: str, sport: str) -> TeamResolution:
        response = await self._client.post(
            f"{self.config.api_url.rstrip('/')}/chat/completions",
            headers={"Authorization": f"Bearer {self.config.api_key}"},
            json={
                "model": self.config.model,
                "temperature": 0,
                "response_format": RESPONSE_FORMAT,
                "messages": [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": f"Sport: {sport}\nTitle: {title}"},
                ],
            },
        )
        response.raise_for_status()
        content = response.json()["choices"][0]["message"]["content"]
        return TeamResolution.model_validate(orjson.loads(content))
