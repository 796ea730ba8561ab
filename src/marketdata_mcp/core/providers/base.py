"""
Content fetcher contract.

The governor never performs network I/O itself. It is handed an async
``fetch(locator) -> ContentSample`` callable; fetchers implement that
contract and report every recoverable failure as ``FetchError`` so the
fallback runner can move on to the next source.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from marketdata_mcp.core.governor.models import ContentSample


class FetchError(Exception):
    """A single source could not be fetched.

    Attributes:
        locator: URL that was being fetched
        status_code: HTTP status code if the provider answered
        retryable: Whether the same locator may succeed later
        original_error: Underlying exception, if any
    """

    def __init__(
        self,
        message: str,
        *,
        locator: Optional[str] = None,
        status_code: Optional[int] = None,
        retryable: bool = False,
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.locator = locator
        self.status_code = status_code
        self.retryable = retryable
        self.original_error = original_error


class ContentFetcher(ABC):
    """Async source of raw page text."""

    #: Short provider identifier used in logs
    name: str = "fetcher"

    @abstractmethod
    async def fetch(self, locator: str) -> ContentSample:
        """Fetch ``locator`` and return its text.

        The returned sample's ``source_label`` is provisional; the fallback
        runner relabels it with the candidate's label.

        Raises:
            FetchError: the source could not be fetched
        """

    async def __call__(self, locator: str) -> ContentSample:
        return await self.fetch(locator)
