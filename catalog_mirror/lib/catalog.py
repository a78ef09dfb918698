"""Upstream catalog access.

``CatalogClient`` is the interface the sync engine reads through.
``BangumiClient`` implements it against the Bangumi v0 HTTP API with
httpx, retrying transient failures with tenacity. ``RateLimitedCatalog``
wraps any client so every call first passes the matching rate limiter:
listing and subject lookups share one budget, character endpoints have
their own stricter one.

Example:
    client = BangumiClient("https://api.bgm.tv", access_token="...")
    catalog = RateLimitedCatalog(
        client,
        listing_limiter=RateLimiter(10, name="listing"),
        character_limiter=RateLimiter(1, name="character"),
    )
    page = catalog.list_subjects({"type": 2}, limit=50, offset=0)
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional

import httpx
import requests_toolbelt
import tenacity
from requests_toolbelt.utils.user_agent import user_agent
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from catalog_mirror import __version__
from catalog_mirror.lib.errors import CatalogRequestError
from catalog_mirror.lib.rate_limiter import RateLimiter
from catalog_mirror.models import Page

logger = logging.getLogger(__name__)

__all__ = ["CatalogClient", "BangumiClient", "RateLimitedCatalog", "RETRYABLE_STATUS_CODES"]

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}

_USER_AGENT = user_agent(
    "catalog-mirror",
    __version__,
    extras=[
        ("httpx", getattr(httpx, "__version__", "unknown")),
        ("tenacity", getattr(tenacity, "__version__", "unknown")),
        ("requests-toolbelt", getattr(requests_toolbelt, "__version__", "unknown")),
    ],
)


class CatalogClient(ABC):
    """Read-only access to the upstream catalog."""

    @abstractmethod
    def list_subjects(self, filters: Dict[str, Any], limit: int, offset: int) -> Page:
        """One page of subjects matching ``filters``, plus the current total."""
        ...

    @abstractmethod
    def get_subject(self, subject_id: int) -> Dict[str, Any]:
        ...

    @abstractmethod
    def list_characters(self, subject_id: int) -> List[Dict[str, Any]]:
        """Characters related to a subject (id, name, relation)."""
        ...

    @abstractmethod
    def get_character(self, character_id: int) -> Dict[str, Any]:
        ...

    def close(self) -> None:
        pass


class BangumiClient(CatalogClient):
    """Bangumi v0 API client."""

    def __init__(
        self,
        base_url: str = "https://api.bgm.tv",
        *,
        access_token: Optional[str] = None,
        user_agent_string: Optional[str] = None,
        timeout: float = 15.0,
        max_retries: int = 3,
        backoff_factor: float = 1.0,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        headers = {
            "Accept": "application/json",
            "User-Agent": user_agent_string or _USER_AGENT,
        }
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def __enter__(self) -> "BangumiClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def list_subjects(self, filters: Dict[str, Any], limit: int, offset: int) -> Page:
        params = {k: v for k, v in filters.items() if v is not None}
        params.update({"limit": limit, "offset": offset})
        data = self._get("/v0/subjects", params)
        return Page(items=list(data.get("data") or []), total=int(data.get("total") or 0))

    def get_subject(self, subject_id: int) -> Dict[str, Any]:
        return self._get(f"/v0/subjects/{subject_id}")

    def list_characters(self, subject_id: int) -> List[Dict[str, Any]]:
        data = self._get(f"/v0/subjects/{subject_id}/characters")
        return list(data or [])

    def get_character(self, character_id: int) -> Dict[str, Any]:
        return self._get(f"/v0/characters/{character_id}")

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        try:
            response = self._get_with_retry(path, params)
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            raise CatalogRequestError(
                f"Bangumi API request failed: {status} {exc.response.reason_phrase}",
                path=path,
                status_code=status,
                cause=exc,
            ) from exc
        except httpx.RequestError as exc:
            raise CatalogRequestError(
                f"Bangumi API request failed: {exc}",
                path=path,
                cause=exc,
            ) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise CatalogRequestError(
                "Bangumi API returned invalid JSON",
                path=path,
                status_code=response.status_code,
                cause=exc,
            ) from exc

    def _get_with_retry(self, path: str, params: Optional[Dict[str, Any]]) -> httpx.Response:
        @retry(
            stop=stop_after_attempt(max(self.max_retries, 1)),
            wait=wait_exponential(multiplier=self.backoff_factor, min=0.5, max=30),
            retry=retry_if_exception(self._should_retry),
            reraise=True,
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        def do_request() -> httpx.Response:
            logger.debug("GET %s params=%s", path, params)
            response = self._client.get(path, params=params)
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code == 429:
                    self._respect_retry_after(exc.response)
                raise
            return response

        return do_request()

    @staticmethod
    def _should_retry(exc: BaseException) -> bool:
        if isinstance(exc, httpx.HTTPStatusError):
            return exc.response.status_code in RETRYABLE_STATUS_CODES
        return isinstance(exc, httpx.RequestError)

    def _respect_retry_after(self, response: httpx.Response) -> None:
        retry_after = response.headers.get("Retry-After")
        if not retry_after:
            return
        try:
            wait_seconds = float(retry_after)
        except (TypeError, ValueError):
            return
        if wait_seconds > 0:
            logger.warning(
                "Rate limited by API; sleeping %.1f seconds before retrying",
                wait_seconds,
            )
            self._sleep(wait_seconds)


class RateLimitedCatalog(CatalogClient):
    """Catalog wrapper that admits every call through a rate limiter."""

    def __init__(
        self,
        client: CatalogClient,
        *,
        listing_limiter: RateLimiter,
        character_limiter: RateLimiter,
    ) -> None:
        self.client = client
        self.listing_limiter = listing_limiter
        self.character_limiter = character_limiter

    @staticmethod
    def _admit(limiter: RateLimiter, what: str) -> None:
        if not limiter.limit():
            raise CatalogRequestError(
                f"{what} cancelled: {limiter.name} rate limiter queue was cleared",
                path=what,
            )

    def list_subjects(self, filters: Dict[str, Any], limit: int, offset: int) -> Page:
        self._admit(self.listing_limiter, "list_subjects")
        return self.client.list_subjects(filters, limit, offset)

    def get_subject(self, subject_id: int) -> Dict[str, Any]:
        self._admit(self.listing_limiter, "get_subject")
        return self.client.get_subject(subject_id)

    def list_characters(self, subject_id: int) -> List[Dict[str, Any]]:
        self._admit(self.character_limiter, "list_characters")
        return self.client.list_characters(subject_id)

    def get_character(self, character_id: int) -> Dict[str, Any]:
        self._admit(self.character_limiter, "get_character")
        return self.client.get_character(character_id)

    def close(self) -> None:
        self.client.close()
