"""Polite HTTP fetching with a per-domain concurrency ceiling."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional
from urllib.parse import urlsplit

import httpx

from crawler.connectors.base import HarvestError
from crawler.utils.logging import get_logger

logger = get_logger(__name__)


class DomainLimiter:
    """Caps concurrent requests per host with one bounded semaphore each."""

    def __init__(self, parallelism: int = 5) -> None:
        self._parallelism = parallelism
        self._lock = threading.Lock()
        self._semaphores: Dict[str, threading.BoundedSemaphore] = {}

    @property
    def parallelism(self) -> int:
        return self._parallelism

    def _semaphore(self, host: str) -> threading.BoundedSemaphore:
        with self._lock:
            sem = self._semaphores.get(host)
            if sem is None:
                sem = threading.BoundedSemaphore(self._parallelism)
                self._semaphores[host] = sem
            return sem

    @contextmanager
    def slot(self, url: str) -> Iterator[None]:
        host = (urlsplit(url).hostname or "").lower()
        sem = self._semaphore(host)
        with sem:
            yield


class PoliteFetcher:
    """Shared GET helper for harvesters.

    httpx.Client is thread-safe, so one instance serves the whole sweep.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        *,
        limiter: Optional[DomainLimiter] = None,
        timeout: float = 10.0,
        user_agent: str = "pressreview/1.0",
    ) -> None:
        self._client = client or httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": user_agent},
        )
        self._limiter = limiter or DomainLimiter()

    @property
    def client(self) -> httpx.Client:
        return self._client

    def get(self, url: str) -> bytes:
        with self._limiter.slot(url):
            logger.debug("http.visit", extra={"url": url})
            try:
                resp = self._client.get(url)
            except httpx.TimeoutException as exc:
                raise HarvestError(f"timeout fetching {url}") from exc
            except httpx.HTTPError as exc:
                raise HarvestError(f"request to {url} failed: {exc}") from exc
        if resp.status_code >= 400:
            raise HarvestError(f"{url} responded with {resp.status_code}")
        return resp.content

    def close(self) -> None:
        self._client.close()
