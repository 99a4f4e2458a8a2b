"""
Fetcher module for structured_scraper.

Provides shared Crawl4AI setup for turning URLs into rendered HTML. Extraction
itself never touches the network; this is the collaborator that feeds it.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from crawl4ai import AsyncWebCrawler, BrowserConfig, CacheMode, CrawlerRunConfig, RateLimiter
from crawl4ai.async_dispatcher import MemoryAdaptiveDispatcher

from .config import Defaults
from .errors import FetchError

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Outcome of fetching one URL."""
    url: str
    html: str = ""
    success: bool = False
    error: Optional[str] = None


class C4AFetcher:
    """
    Fetches pages with Crawl4AI.

    Manages the AsyncWebCrawler lifecycle; use as an async context manager.
    """

    def __init__(self, defaults: Defaults):
        """
        Initialize C4AFetcher with default configuration.

        Args:
            defaults: Default configuration values
        """
        self.defaults = defaults
        self.crawler: Optional[AsyncWebCrawler] = None
        self.browser_config = self._build_browser_config()
        self.rate_limiter = self._build_rate_limiter()

    def _build_browser_config(self) -> BrowserConfig:
        """Build browser configuration with performance optimizations."""
        return BrowserConfig(
            headless=True,
            verbose=False,
            extra_args=[
                "--disable-gpu",
                "--disable-dev-shm-usage",
                "--no-sandbox",
            ]
        )

    def _build_rate_limiter(self) -> RateLimiter:
        """Build rate limiter from configuration."""
        rate_config = self.defaults.rate_limiter
        return RateLimiter(
            base_delay=rate_config.base_delay,
            max_delay=rate_config.max_delay,
            max_retries=rate_config.max_retries,
            rate_limit_codes=rate_config.rate_limit_codes
        )

    def build_run_config(self) -> CrawlerRunConfig:
        """Run config for plain page fetches: no crawl4ai cache, no extraction strategy."""
        return CrawlerRunConfig(cache_mode=CacheMode.BYPASS)

    async def __aenter__(self):
        """Async context manager entry."""
        logger.info("Starting AsyncWebCrawler")
        self.crawler = AsyncWebCrawler(config=self.browser_config)
        await self.crawler.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        if self.crawler:
            logger.info("Closing AsyncWebCrawler")
            await self.crawler.close()
            self.crawler = None

    def _require_crawler(self) -> AsyncWebCrawler:
        if self.crawler is None:
            raise FetchError("C4AFetcher must be used as an async context manager")
        return self.crawler

    async def fetch(self, url: str) -> str:
        """
        Fetch a single page.

        Args:
            url: Page URL

        Returns:
            Rendered HTML

        Raises:
            FetchError: If the page could not be fetched
        """
        crawler = self._require_crawler()
        result = await crawler.arun(url=url, config=self.build_run_config())
        if not result.success:
            raise FetchError(f"Failed to fetch {url}: {result.error_message}", url=url)
        return result.html or ""

    async def fetch_many(self, urls: List[str]) -> List[FetchResult]:
        """
        Fetch many pages concurrently, honouring the thread and rate limits.

        Args:
            urls: Page URLs

        Returns:
            One FetchResult per URL, in input order
        """
        if not urls:
            return []

        crawler = self._require_crawler()
        dispatcher = MemoryAdaptiveDispatcher(
            max_session_permit=self.defaults.threads,
            rate_limiter=self.rate_limiter,
        )
        results = await crawler.arun_many(urls=urls, config=self.build_run_config(), dispatcher=dispatcher)

        by_url = {}
        for result in results:
            if result.success:
                by_url[result.url] = FetchResult(url=result.url, html=result.html or "", success=True)
            else:
                logger.error(f"Failed to fetch {result.url}: {result.error_message}")
                by_url[result.url] = FetchResult(url=result.url, error=result.error_message)

        return [by_url.get(url, FetchResult(url=url, error="no result returned")) for url in urls]
