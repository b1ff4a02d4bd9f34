# news.py
"""News search client: fetch, rank by feed position, and cache for five minutes."""
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from .cache import TTLCache
from .config import DEFAULT_NEWS_LIMIT, HTTP_TIMEOUT, NEWS_API_BASE, NEWS_CACHE_TTL
from .domains import mainstream_rank_for_url
from .errors import DomainError, TransportError
from .models import NewsArticle, NewsResponse, NewsSource

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAY = 1.0  # seconds, doubled per retry

# The search proxy orders by relevance/authority, so the first results are the most trustworthy
AUTHORITATIVE_RESULTS_LIMIT = 5
MIN_AUTHORITATIVE_FETCH = 20


def authority_score(position: int) -> int:
    """100 for the first result, decaying by 0.8 per position, never below 10."""
    if position == 1:
        return 100
    return max(round(100 * 0.8 ** (position - 1)), 10)


def source_name(source: Any) -> str:
    # XML-derived feeds nest the name as {"name": {"_": "..."}}
    if isinstance(source, str):
        return source or "Unknown"
    if not isinstance(source, dict):
        return "Unknown"
    name = source.get("name")
    if isinstance(name, dict):
        return str(name.get("_") or name.get("name") or "Unknown")
    return str(name) if name else "Unknown"


def parse_news_response(data: Any) -> List[NewsArticle]:
    if not isinstance(data, dict) or not isinstance(data.get("articles"), list):
        return []

    articles = []
    for raw in data["articles"]:
        if not isinstance(raw, dict):
            continue
        source = raw.get("source")
        source_url = source.get("url") if isinstance(source, dict) else None
        articles.append(NewsArticle(
            title=str(raw.get("title") or ""),
            description=str(raw["description"]) if raw.get("description") else None,
            url=str(raw.get("url") or ""),
            source=NewsSource(name=source_name(source), url=str(source_url) if source_url else None),
            publishedAt=str(raw.get("publishedAt") or time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())),
            content=str(raw["content"]) if raw.get("content") else None,
            image=str(raw["image"]) if raw.get("image") else None,
            author=str(raw["author"]) if raw.get("author") else None,
        ))
    return articles


def add_authority_ranking(articles: List[NewsArticle], limit: int,
                          only_authoritative: bool) -> List[NewsArticle]:
    ranked = [
        a.model_copy(update={
            "authorityScore": authority_score(i + 1),
            "isAuthoritative": i < AUTHORITATIVE_RESULTS_LIMIT,
            "rankPosition": i + 1,
        })
        for i, a in enumerate(articles)
    ]
    if only_authoritative:
        ranked = [a for i, a in enumerate(ranked) if a.isAuthoritative or i < limit]
    return ranked[:limit]


class NewsService:
    def __init__(self, base_url: str = NEWS_API_BASE, session: Optional[requests.Session] = None,
                 cache: Optional[TTLCache] = None, sleep: Callable[[float], None] = time.sleep,
                 timeout: float = HTTP_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.cache: TTLCache = cache if cache is not None else TTLCache(NEWS_CACHE_TTL)
        self.sleep = sleep
        self.timeout = timeout

    def fetch_news_by_location(self, location: str, limit: int = DEFAULT_NEWS_LIMIT,
                               only_authoritative: bool = True) -> NewsResponse:
        if not location or not location.strip():
            raise DomainError.news("Location cannot be empty")
        articles = self._search("location", location, limit, only_authoritative)
        return NewsResponse(articles=articles, totalArticles=len(articles),
                            topic=location, location=location)

    def fetch_news_by_keyword(self, keyword: str, limit: int = DEFAULT_NEWS_LIMIT,
                              only_authoritative: bool = True) -> NewsResponse:
        if not keyword or not keyword.strip():
            raise DomainError.news("Keyword cannot be empty")
        articles = self._search("keyword", keyword, limit, only_authoritative)
        return NewsResponse(articles=articles, totalArticles=len(articles), topic=keyword)

    def fetch_article_content(self, url: str) -> str:
        if not url or not url.strip():
            raise DomainError.news("Article URL cannot be empty")
        endpoint = f"{self.base_url.replace('/news', '')}/article/content"
        try:
            resp = self.session.get(endpoint, params={"url": url}, timeout=self.timeout)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise DomainError.news(f"Failed to fetch article content from: {url}", cause=e) from e
        return str(data.get("content") or "") if isinstance(data, dict) else ""

    def clear_cache(self) -> None:
        self.cache.clear()

    # ------------------ internals -----------------

    def _search(self, mode: str, query: str, limit: int, only_authoritative: bool) -> List[NewsArticle]:
        key = f"{mode}-{query}-limit-{limit}-auth-{str(only_authoritative).lower()}"
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("News cache hit: %s", key)
            return [a.model_copy(deep=True) for a in cached]

        fetch_limit = max(limit * 2, MIN_AUTHORITATIVE_FETCH) if only_authoritative else limit
        params = {"q": query, "max": str(fetch_limit), "scoring": "r"}
        try:
            raw = self._fetch_with_retry(f"{self.base_url}/search", params)
        except TransportError as e:
            raise DomainError.news(f"Failed to fetch news for {mode}: {query}", cause=e) from e

        articles = add_authority_ranking(parse_news_response(raw), limit, only_authoritative)
        if mode == "location":
            articles = [a.model_copy(update={"mainstreamRank": mainstream_rank_for_url(a.url, query)})
                        for a in articles]
        self.cache.set(key, articles)
        logger.info("Fetched %d articles for %s %r", len(articles), mode, query)
        # Callers get copies so mutating a result cannot alter the cache
        return [a.model_copy(deep=True) for a in articles]

    def _fetch_with_retry(self, url: str, params: Dict[str, str]) -> Any:
        retry = 0
        while True:
            try:
                resp = self.session.get(url, params=params, timeout=self.timeout,
                                        headers={"Content-Type": "application/json"})
                if 200 <= resp.status_code < 300:
                    return resp.json()
                error = TransportError(f"HTTP {resp.status_code}: {resp.reason}", resp.status_code)
            except (requests.RequestException, ValueError) as e:
                error = TransportError(f"News request failed: {e}")

            if retry >= MAX_RETRIES:
                raise error
            delay = RETRY_DELAY * (2 ** retry)
            logger.warning("%s; retrying in %.1fs (%d/%d)", error, delay, retry + 1, MAX_RETRIES)
            self.sleep(delay)
            retry += 1
