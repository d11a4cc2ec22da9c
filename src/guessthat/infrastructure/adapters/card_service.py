import logging
from typing import Any

import httpx
from pydantic import BaseModel, ValidationError, field_validator

from guessthat.application.utils.text import normalize_target, unique_words
from guessthat.domain.constants import (
    DEFAULT_API_BASE,
    DOWNLOAD_PATH,
    DRAW_PATH,
    MAX_FORBIDDEN,
    REQUEST_TIMEOUT,
)
from guessthat.domain.errors import RemoteServiceError
from guessthat.domain.models import Bucket, Card, Difficulty
from guessthat.domain.ports import CardSource


class CardPayload(BaseModel):
    """One card as returned by the remote service."""

    id: str
    language: str
    category: str
    difficulty: Difficulty
    target: str
    forbidden: list[str] = []

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, v: Any) -> Any:
        # Some deployments hand out numeric ids
        return str(v) if isinstance(v, int) else v

    @field_validator("difficulty", mode="before")
    @classmethod
    def lower_difficulty(cls, v: Any) -> Any:
        return v.strip().lower() if isinstance(v, str) else v


class HttpCardSource(CardSource):
    """Adapter for the remote card-generation service (HTTP/JSON API)."""

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE,
        timeout: float = REQUEST_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize with the service base URL (e.g. http://localhost:8080)."""
        self.logger = logging.getLogger(__name__)
        self.timeout = timeout
        self._client = client

        self.base_url = base_url.rstrip("/")
        self.logger.debug(f"HttpCardSource initialized with base_url={self.base_url}")

    async def draw(self, bucket: Bucket, count: int, offset: int = 0) -> list[Card]:
        params = self._bucket_params(bucket, count)
        params["offset"] = max(0, offset)
        data = await self._get(DRAW_PATH, params)
        return self._parse_cards(data, bucket)

    async def download(self, bucket: Bucket, count: int) -> list[Card]:
        data = await self._get(DOWNLOAD_PATH, self._bucket_params(bucket, count))
        cards = self._parse_cards(data, bucket)
        self.logger.info(f"[download] {bucket} requested={count} received={len(cards)}")
        return cards

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _bucket_params(bucket: Bucket, count: int) -> dict[str, Any]:
        return {
            "lang": bucket.language,
            "category": bucket.category,
            "difficulty": bucket.difficulty,
            "count": count,
        }

    async def _get(self, path: str, params: dict[str, Any]) -> Any:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        url = f"{self.base_url}{path}"
        try:
            resp = await self._client.get(url, params=params)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            self.logger.error(f"Card service call failed: {path} -> {e.response.status_code}")
            raise RemoteServiceError(
                f"{path} failed with status {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            self.logger.error(f"Card service call failed: {path}: {e}")
            raise RemoteServiceError(f"{path} failed: {e}") from e
        except ValueError as e:
            self.logger.error(f"Card service returned invalid JSON for {path}: {e}")
            raise RemoteServiceError(f"{path} returned invalid JSON") from e

    def _parse_cards(self, data: Any, bucket: Bucket) -> list[Card]:
        """Validate the payload and drop cards that are unusable for this bucket."""
        if not isinstance(data, list):
            raise RemoteServiceError(
                f"Expected a list of cards, got {type(data).__name__}"
            )

        cards: list[Card] = []
        seen: set[str] = set()
        for raw in data:
            try:
                payload = CardPayload.model_validate(raw)
            except ValidationError as e:
                self.logger.debug(f"Skipping malformed card: {e.error_count()} error(s)")
                continue

            target = payload.target.strip()
            forbidden = unique_words(payload.forbidden, strip=True)
            key = normalize_target(target)

            if not target:
                self.logger.debug(f"Skipping card {payload.id}: blank target")
                continue
            if payload.language.lower() != bucket.language.lower():
                self.logger.debug(
                    f"Skipping card {payload.id}: language {payload.language} != {bucket.language}"
                )
                continue
            if not forbidden or len(forbidden) > MAX_FORBIDDEN:
                self.logger.debug(
                    f"Skipping card {payload.id}: {len(forbidden)} forbidden word(s)"
                )
                continue
            if key in seen:
                self.logger.debug(f"Skipping card {payload.id}: duplicate target '{target}'")
                continue

            seen.add(key)
            cards.append(
                Card(
                    id=payload.id,
                    language=bucket.language,
                    category=payload.category,
                    difficulty=payload.difficulty,
                    target=target,
                    forbidden=forbidden,
                )
            )
        return cards
