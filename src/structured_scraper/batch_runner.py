"""
Batch runner module for structured_scraper.

Handles parallel extraction over a job's sources: URLs are fetched with
arun_many, local files are read from disk, and every document is run through
the job's strategy chain in a worker thread.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .config import Defaults, Job
from .coordinator import CoordinatorOutcome, StrategyCoordinator
from .document import Document
from .fetcher import C4AFetcher, FetchResult
from .persistence import PersistenceStrategy

logger = logging.getLogger(__name__)


@dataclass
class BatchStats:
    """Statistics for batch processing."""
    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0


class BatchRunner:
    """Handles batch extraction for one job."""

    def __init__(self, defaults: Defaults, persistence: PersistenceStrategy, fetcher: Optional[C4AFetcher] = None):
        """
        Initialize BatchRunner.

        Args:
            defaults: Default configuration
            persistence: Persistence strategy for saving records
            fetcher: Fetcher for URL sources; jobs with URLs fail without one
        """
        self.defaults = defaults
        self.persistence = persistence
        self.fetcher = fetcher
        self.stats = BatchStats()

    async def run(self, job: Job, coordinator: StrategyCoordinator) -> List[CoordinatorOutcome]:
        """
        Run the job's strategy chain over all of its sources.

        Args:
            job: Job configuration
            coordinator: Strategy chain built for the job

        Returns:
            Outcomes for the sources that could be loaded
        """
        sources = job.sources
        if not sources:
            logger.info(f"No sources to process for job '{job.name}'")
            return []

        logger.info(f"Starting job '{job.name}' over {len(sources)} sources")
        self.stats.total += len(sources)

        documents = self._read_files(job.files) + await self._fetch_urls(job.urls)

        semaphore = asyncio.Semaphore(self.defaults.threads)

        async def extract(document: Document) -> CoordinatorOutcome:
            async with semaphore:
                return await asyncio.to_thread(coordinator.run, document)

        outcomes = await asyncio.gather(*(extract(document) for document in documents))

        for document, outcome in zip(documents, outcomes):
            await self._process_outcome(job, document, outcome)

        logger.info(f"Job '{job.name}' completed: {self.stats.success} success, {self.stats.failed} failed, {self.stats.skipped} skipped")
        return list(outcomes)

    def _read_files(self, files: List[str]) -> List[Document]:
        documents = []
        for file_path in files:
            try:
                html = Path(file_path).read_text(encoding="utf-8")
            except OSError as e:
                logger.error(f"Failed to read {file_path}: {e}")
                self.stats.failed += 1
                continue
            documents.append(Document(html, url=file_path))
        return documents

    async def _fetch_urls(self, urls: List[str]) -> List[Document]:
        if not urls:
            return []
        if self.fetcher is None:
            logger.error(f"No fetcher available for {len(urls)} URLs")
            self.stats.failed += len(urls)
            return []

        results: List[FetchResult] = await self.fetcher.fetch_many(urls)
        documents = []
        for result in results:
            if not result.success:
                self.stats.failed += 1
                continue
            documents.append(Document(result.html, url=result.url))
        return documents

    async def _process_outcome(self, job: Job, document: Document, outcome: CoordinatorOutcome) -> None:
        """
        Save records for a successful outcome and update statistics.

        Args:
            job: Job configuration
            document: Source document
            outcome: Strategy chain outcome
        """
        if not outcome.succeeded:
            logger.warning(f"No strategy succeeded for {document.url}, skipping")
            self.stats.skipped += 1
            return

        path = await self.persistence.save(document.url, outcome.records, strategy=outcome.strategy_name, job=job.name)
        if not path:
            self.stats.failed += 1
            return

        self.stats.success += 1
        logger.debug(f"Saved {len(outcome.records)} records: {document.url} -> {path}")

    def get_stats(self) -> BatchStats:
        """Get processing statistics."""
        return self.stats
