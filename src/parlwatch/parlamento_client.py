"""
Async HTTP client for the Parliament open-data files and HTML pages.

Hosts:
  app.parlamento.pt   bulk JSON datasets (doc.txt download links)
  www.parlamento.pt   static SharePoint pages (attendance, biographies)

Retry policy:
  - 5xx responses, transport errors and timeouts are retried with exponential
    backoff (base delay doubling per attempt, capped at max delay)
  - 4xx responses fail immediately without consuming the retry budget
  - each attempt is bounded by the configured timeout

Politeness: ``get_html`` sleeps a fixed delay after every successful page so
sequential scrapes never hammer www.parlamento.pt. The delay is independent
of retry backoff.

Usage example:
    async with ParlamentoClient.from_settings(settings) as client:
        html = await client.get_html(MEETING_LIST_URL)
        raw = await client.get_bytes(dataset_url)
"""

import asyncio

import httpx

from parlwatch.config import Settings
from parlwatch.errors import FetchError

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
ACCEPT_LANGUAGE = "pt-PT,pt;q=0.9,en;q=0.8"


class ParlamentoClient:
    """
    HTTP client with bounded retry for parlamento.pt.

    Parameters
    ----------
    timeout : float
        Seconds allowed for one attempt, connect to last byte (default 30 s).
    max_retries : int
        Total attempts per request (default 3).
    base_delay : float
        Backoff before the second attempt; doubles for each further attempt.
    max_delay : float
        Upper bound for a single backoff sleep.
    politeness_delay : float
        Seconds to sleep after each HTML page (default 0.5 s).
    transport : httpx.AsyncBaseTransport, optional
        Custom transport, e.g. ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        timeout: float = 30.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        politeness_delay: float = 0.5,
        user_agent: str = "parlwatch-bot",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._max_retries = max(1, max_retries)
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._politeness_delay = politeness_delay
        self._client = httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": user_agent, "Accept-Language": ACCEPT_LANGUAGE},
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, transport: httpx.AsyncBaseTransport | None = None
    ) -> "ParlamentoClient":
        return cls(
            timeout=settings.http_timeout,
            max_retries=settings.max_retries,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            politeness_delay=settings.scrape_delay,
            user_agent=settings.user_agent,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------

    def backoff_delay(self, attempt: int) -> float:
        """Sleep before attempt ``attempt + 1`` (attempts are 1-based)."""
        return min(self._base_delay * 2 ** (attempt - 1), self._max_delay)

    async def fetch_with_retry(
        self,
        url: str,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        GET ``url``, retrying transient failures.

        Returns
        -------
        httpx.Response
            The first 2xx/3xx response.

        Raises
        ------
        FetchError
            Immediately on a 4xx; after the last attempt for 5xx, transport
            errors and timeouts.
        """
        last_error: FetchError | None = None
        for attempt in range(1, self._max_retries + 1):
            try:
                resp = await asyncio.wait_for(
                    self._client.get(url, headers=headers), timeout=self._timeout
                )
            except (httpx.TransportError, asyncio.TimeoutError) as e:
                last_error = FetchError(url, str(e) or type(e).__name__, retryable=True)
            else:
                if resp.status_code < 400:
                    return resp
                if resp.status_code < 500:
                    raise FetchError(
                        url, f"HTTP {resp.status_code}", status_code=resp.status_code
                    )
                last_error = FetchError(
                    url,
                    f"Server error: {resp.status_code}",
                    status_code=resp.status_code,
                    retryable=True,
                )

            print(f"  [WARN] Attempt {attempt}/{self._max_retries} failed: {last_error}")
            if attempt < self._max_retries:
                await asyncio.sleep(self.backoff_delay(attempt))

        assert last_error is not None
        raise last_error

    async def get_bytes(self, url: str) -> bytes:
        """Download a dataset file."""
        resp = await self.fetch_with_retry(url)
        return resp.content

    async def get_html(self, url: str) -> str:
        """Fetch a page, then pause for the politeness delay."""
        resp = await self.fetch_with_retry(url, headers={"Accept": HTML_ACCEPT})
        text = resp.text
        if self._politeness_delay > 0:
            await asyncio.sleep(self._politeness_delay)
        return text

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *_):
        await self.aclose()
