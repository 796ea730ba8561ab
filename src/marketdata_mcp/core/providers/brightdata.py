"""Bright Data Web Unlocker fetcher.

Fetches pages as markdown through either the Web Unlocker REST API or the
unlocker HTTP proxy.

Resilience Configuration:
    - Timeout: ``FetchConfig.timeout`` per fetch, retries included
    - Retry: 502/503/504 retried up to ``max_retries`` times, linear backoff
    - Circuit Breaker: opens after 5 failures, 30s recovery timeout
    - Error Handling:
        - 401/403: Not retryable, does NOT trip circuit breaker
        - 429: Retryable, does NOT trip circuit breaker
        - 5xx, timeouts, network errors: Retryable, trip circuit breaker
        - Outcomes that do not trip the breaker (and cancellation) hand a
          half-open slot back so the next call can test recovery

Example usage:
    fetcher = BrightDataFetcher(FetchConfig(api_token="..."))
    sample = await fetcher.fetch("https://finance.yahoo.com/quote/AAPL/")
"""

import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from marketdata_mcp.config import FetchConfig
from marketdata_mcp.core.governor.models import ContentSample
from marketdata_mcp.core.providers.base import ContentFetcher, FetchError
from marketdata_mcp.core.resilience import (
    CircuitBreaker,
    TimeoutException,
    retry_delay,
    run_with_timeout,
)

logger = logging.getLogger(__name__)

REQUEST_ENDPOINT = "/request"
RETRYABLE_GATEWAY_CODES = frozenset({502, 503, 504})
MARKDOWN_HEADER = "x-unblock-data-format"


class BrightDataFetcher(ContentFetcher):
    """Web Unlocker content fetcher.

    Attributes:
        config: Fetch configuration (credentials, zone, method, timeouts)
        breaker: Circuit breaker shared by every fetch on this instance
    """

    name = "brightdata"

    def __init__(self, config: FetchConfig, *, breaker: Optional[CircuitBreaker] = None):
        self.config = config
        self.breaker = breaker or CircuitBreaker(
            name=self.name,
            failure_threshold=config.circuit_failure_threshold,
            recovery_timeout=config.circuit_recovery_timeout,
        )

    @property
    def uses_proxy(self) -> bool:
        return self.config.method == "proxy"

    def _check_credentials(self, locator: str) -> None:
        if self.uses_proxy:
            if not self.config.proxy_configured:
                raise FetchError(
                    "Proxy method selected but BRIGHTDATA_PROXY_HOST/PORT/USERNAME are not set",
                    locator=locator,
                )
        elif not self.config.api_token:
            raise FetchError(
                "BRIGHTDATA_API_TOKEN is not set",
                locator=locator,
            )

    async def fetch(self, locator: str) -> ContentSample:
        """Fetch ``locator`` as markdown.

        Raises:
            FetchError: missing credentials, open circuit, HTTP or network failure
            TimeoutException: the whole fetch, retries included, took too long
        """
        self._check_credentials(locator)

        if not self.breaker.can_execute():
            raise FetchError(
                f"Circuit open for {self.name}, retry in {self.breaker.retry_after():.0f}s",
                locator=locator,
                retryable=True,
            )

        recorded = False
        try:
            text = await run_with_timeout(
                self._fetch_with_retry(locator),
                self.config.timeout,
                operation=f"fetch {locator}",
            )
        except FetchError as e:
            if self._trips_breaker(e):
                self.breaker.record_failure()
                recorded = True
            raise
        except TimeoutException:
            self.breaker.record_failure()
            recorded = True
            raise
        else:
            self.breaker.record_success()
            recorded = True
        finally:
            # 4xx, non-retryable errors and cancellation say nothing about health
            if not recorded:
                self.breaker.release_half_open_slot()

        return ContentSample(source_label=self.name, raw_text=text)

    @staticmethod
    def _trips_breaker(error: FetchError) -> bool:
        if error.status_code is None:
            return error.retryable
        return error.status_code >= 500

    async def _fetch_with_retry(self, locator: str) -> str:
        attempt = 0
        while True:
            response = await self._send(locator)
            if (
                response.status_code in RETRYABLE_GATEWAY_CODES
                and attempt < self.config.max_retries
            ):
                attempt += 1
                delay = retry_delay(attempt)
                logger.info(
                    "Gateway %d for %s, retry %d/%d in %.0fs",
                    response.status_code,
                    locator,
                    attempt,
                    self.config.max_retries,
                    delay,
                )
                await asyncio.sleep(delay)
                continue
            return self._handle_response(response, locator)

    async def _send(self, locator: str) -> httpx.Response:
        try:
            if self.uses_proxy:
                async with httpx.AsyncClient(
                    proxy=self.config.proxy_url(),
                    verify=False,
                    timeout=self.config.timeout,
                ) as client:
                    return await client.get(locator, headers={MARKDOWN_HEADER: "markdown"})

            async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                return await client.post(
                    f"{self.config.base_url.rstrip('/')}{REQUEST_ENDPOINT}",
                    json=self._payload(locator),
                    headers={
                        "Authorization": f"Bearer {self.config.api_token}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.TimeoutException as e:
            raise FetchError(
                f"Request timed out: {e}",
                locator=locator,
                retryable=True,
                original_error=e,
            ) from e
        except httpx.RequestError as e:
            raise FetchError(
                f"Request failed: {e}",
                locator=locator,
                retryable=True,
                original_error=e,
            ) from e

    def _payload(self, locator: str) -> Dict[str, Any]:
        return {
            "url": locator,
            "zone": self.config.zone,
            "format": "raw",
            "data_format": "markdown",
        }

    def _handle_response(self, response: httpx.Response, locator: str) -> str:
        status = response.status_code
        if status in (401, 403):
            raise FetchError(
                f"Authentication rejected by provider (HTTP {status})",
                locator=locator,
                status_code=status,
            )
        if status == 429:
            raise FetchError(
                "Rate limited by provider (HTTP 429)",
                locator=locator,
                status_code=status,
                retryable=True,
            )
        if status >= 400:
            raise FetchError(
                f"Provider error HTTP {status}: {response.text[:200]}",
                locator=locator,
                status_code=status,
                retryable=status >= 500,
            )
        return response.text or ""
