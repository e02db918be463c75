"""HTTP page fetching shared by the URL and YouTube extractors."""

import logging
from typing import Any, Optional

import httpx
from bs4 import BeautifulSoup

from docchat.core.config import Settings
from docchat.core.exceptions import ExtractionError

logger = logging.getLogger(__name__)


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")


class PageFetcher:
    """Fetches pages with a bounded timeout and a descriptive user agent."""

    def __init__(self, settings: Settings, client: Optional[httpx.AsyncClient] = None) -> None:
        """
        Initialize the fetcher.

        Args:
            settings: Application settings.
            client: Pre-built HTTP client; one is created when omitted.
        """
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.url_fetch_timeout_seconds),
            headers={
                "User-Agent": settings.user_agent,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
                "Accept-Language": "en-US,en;q=0.8",
            },
            follow_redirects=True,
        )

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """
        GET a URL and fail on non-2xx responses.

        Raises:
            ExtractionError: On timeouts, transport errors and HTTP error statuses.
        """
        try:
            response = await self.client.get(url, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise ExtractionError(f"Timeout fetching {url}") from e
        except httpx.HTTPStatusError as e:
            raise ExtractionError(f"HTTP {e.response.status_code} for {url}") from e
        except httpx.HTTPError as e:
            raise ExtractionError(f"Failed to fetch {url}: {str(e)}") from e
        return response

    async def get_text(self, url: str, **kwargs: Any) -> str:
        response = await self.get(url, **kwargs)
        return response.text

    async def close(self) -> None:
        """Close the HTTP client if this fetcher created it."""
        if self._owns_client:
            await self.client.aclose()
