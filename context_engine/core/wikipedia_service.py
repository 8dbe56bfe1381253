"""Wikipedia lookups: search for articles, then fetch their summaries."""

import re
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import httpx

from context_engine.core.logging import get_logger
from context_engine.core.rate_limiter import MinIntervalRateLimiter
from context_engine.core.retry import bounded_retry, exponential_backoff

logger = get_logger(__name__)

WIKIPEDIA_API_URL = "https://en.wikipedia.org/w/api.php"
WIKIPEDIA_SUMMARY_URL = "https://en.wikipedia.org/api/rest_v1/page/summary"
WIKIPEDIA_PAGE_URL = "https://en.wikipedia.org/wiki"
USER_AGENT = "context-engine/0.1 (event context builder)"

MAX_ATTEMPTS = 3
INITIAL_BACKOFF = 0.5  # seconds, doubled per retry
MIN_CONTENT_CHARS = 50

_TAG_PATTERN = re.compile(r"<[^>]*>")
_WHITESPACE_PATTERN = re.compile(r"\s+")


@dataclass
class WikipediaArticle:
    """Plain-text article summary with the signals used for quality scoring."""

    title: str
    content: str
    url: str
    page_id: int | None = None
    has_thumbnail: bool = False
    has_coordinates: bool = False


def strip_html(html: str) -> str:
    """Replace tags with spaces and collapse whitespace."""
    return _WHITESPACE_PATTERN.sub(" ", _TAG_PATTERN.sub(" ", html)).strip()


def _is_rate_limited(error: Exception) -> bool:
    return isinstance(error, httpx.HTTPStatusError) and error.response.status_code == 429


class WikipediaService:
    """
    Rate-limited Wikipedia client.

    Every request waits on the shared limiter; HTTP 429 responses are retried
    with exponential backoff, other failures are raised immediately.
    """

    def __init__(
        self,
        rate_limiter: MinIntervalRateLimiter | None = None,
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.rate_limiter = rate_limiter or MinIntervalRateLimiter(0.3)
        self.timeout = timeout
        self._transport = transport

    async def _get_json(self, url: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        async def _attempt(attempt: int) -> dict[str, Any]:
            await self.rate_limiter.acquire()
            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={"User-Agent": USER_AGENT},
            ) as client:
                response = await client.get(url, params=params)
                response.raise_for_status()
                return response.json()

        return await bounded_retry(
            _attempt,
            max_attempts=MAX_ATTEMPTS,
            backoff=exponential_backoff(INITIAL_BACKOFF),
            retry_if=_is_rate_limited,
            label=f"Wikipedia GET {url}",
        )

    async def search_titles(self, query: str, limit: int = 5) -> list[dict[str, Any]]:
        """Return search hits ({title, pageid, snippet}) for a query."""
        data = await self._get_json(
            WIKIPEDIA_API_URL,
            params={
                "action": "query",
                "list": "search",
                "srsearch": query,
                "srlimit": limit,
                "format": "json",
            },
        )
        return data.get("query", {}).get("search", []) or []

    async def get_summary(self, title: str, page_id: int | None = None) -> WikipediaArticle | None:
        """
        Fetch the REST summary for an article title.

        Returns None when the article has too little text.
        """
        page_title = quote(title.replace(" ", "_"), safe="")
        data = await self._get_json(f"{WIKIPEDIA_SUMMARY_URL}/{page_title}")

        content = data.get("extract") or ""
        if data.get("extract_html"):
            content = strip_html(data["extract_html"])

        if len(content) < MIN_CONTENT_CHARS:
            logger.warning(f"Wikipedia article '{title}' has insufficient content ({len(content)} chars)")
            return None

        url = (
            data.get("content_urls", {}).get("desktop", {}).get("page")
            or f"{WIKIPEDIA_PAGE_URL}/{page_title}"
        )
        return WikipediaArticle(
            title=data.get("title") or title,
            content=content,
            url=url,
            page_id=page_id,
            has_thumbnail=bool(data.get("thumbnail")),
            has_coordinates=bool(data.get("coordinates")),
        )

    async def lookup(self, query: str, limit: int = 5) -> list[WikipediaArticle]:
        """
        Search for a query and fetch every hit's summary.

        Failures on individual articles are logged and skipped.

        Raises:
            httpx.HTTPError: If the search request itself fails
        """
        hits = await self.search_titles(query, limit)
        if not hits:
            logger.warning(f"Wikipedia: no articles found for '{query}'")
            return []

        articles: list[WikipediaArticle] = []
        for hit in hits:
            title = hit.get("title")
            if not title:
                continue
            try:
                article = await self.get_summary(title, hit.get("pageid"))
            except httpx.HTTPError as e:
                logger.warning(f"Wikipedia: failed to fetch summary for '{title}': {e}")
                continue
            if article:
                articles.append(article)

        logger.info(f"Wikipedia: {len(articles)}/{len(hits)} articles usable for '{query}'")
        return articles
