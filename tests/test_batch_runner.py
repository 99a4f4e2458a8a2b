import json
from pathlib import Path

import pytest

from structured_scraper.batch_runner import BatchRunner
from structured_scraper.config import Defaults, Job
from structured_scraper.coordinator import PatternStrategy, SchemaStrategy, StrategyCoordinator
from structured_scraper.fetcher import FetchResult
from structured_scraper.models import SchemaDefinition
from structured_scraper.patterns import BuiltInPattern, PatternSet
from structured_scraper.persistence import create_persistence_strategy


class FakeFetcher:
    def __init__(self, pages):
        self.pages = pages
        self.requested = []

    async def fetch_many(self, urls):
        self.requested.extend(urls)
        return [
            FetchResult(url=url, html=self.pages[url], success=True) if url in self.pages
            else FetchResult(url=url, error="404")
            for url in urls
        ]


@pytest.fixture
def coordinator(product_schema_dict):
    return StrategyCoordinator([
        SchemaStrategy(SchemaDefinition.from_dict(product_schema_dict)),
        PatternStrategy(PatternSet(BuiltInPattern.IPV4)),
    ])


def _job(**sources):
    return Job.model_validate({"name": "books", "strategies": [{"type": "patterns", "builtins": ["Email"]}], **sources})


class TestBatchRunner:
    """Running a job's strategy chain over its sources."""

    @pytest.mark.asyncio
    async def test_local_files(self, tmp_path, product_html_file, coordinator, expected_records):
        empty_page = tmp_path / "empty.html"
        empty_page.write_text("<html><body><p>Nothing to see</p></body></html>", encoding="utf-8")
        missing = tmp_path / "missing.html"

        persistence = create_persistence_strategy("folder_per_domain", str(tmp_path / "out"))
        runner = BatchRunner(Defaults(threads=2), persistence)

        job = _job(files=[str(product_html_file), str(empty_page), str(missing)])
        outcomes = await runner.run(job, coordinator)
        await persistence.finalize()

        stats = runner.get_stats()
        assert (stats.total, stats.success, stats.skipped, stats.failed) == (3, 1, 1, 1)
        assert len(outcomes) == 2

        saved = persistence.get_saved_files()
        assert len(saved) == 1
        payload = json.loads(Path(saved[0].path).read_text(encoding="utf-8"))
        assert payload["strategy"] == "schema:products"
        assert payload["job"] == "books"
        assert payload["records"] == expected_records

    @pytest.mark.asyncio
    async def test_urls_without_fetcher_fail(self, tmp_path, coordinator):
        persistence = create_persistence_strategy("folder_per_domain", str(tmp_path))
        runner = BatchRunner(Defaults(), persistence)

        await runner.run(_job(urls=["https://shop.example.com/a", "https://shop.example.com/b"]), coordinator)

        assert runner.get_stats().failed == 2
        assert runner.get_stats().success == 0

    @pytest.mark.asyncio
    async def test_fetched_urls(self, tmp_path, coordinator, product_html):
        fetcher = FakeFetcher({"https://shop.example.com/books": product_html})
        persistence = create_persistence_strategy("file_per_domain", str(tmp_path))
        runner = BatchRunner(Defaults(), persistence, fetcher)

        job = _job(urls=["https://shop.example.com/books", "https://shop.example.com/gone"])
        await runner.run(job, coordinator)
        await persistence.finalize()

        stats = runner.get_stats()
        assert (stats.success, stats.failed) == (1, 1)
        assert fetcher.requested == job.urls
        assert (tmp_path / "shop.example.com.jsonl").exists()

    @pytest.mark.asyncio
    async def test_no_sources(self, tmp_path, coordinator):
        runner = BatchRunner(Defaults(), create_persistence_strategy("folder_per_domain", str(tmp_path)))
        assert await runner.run(_job(), coordinator) == []
        assert runner.get_stats().total == 0
