"""
CLI module for structured_scraper.

Provides command-line interface and orchestration logic.
"""

import argparse
import asyncio
import json
import logging
import sys
from contextlib import AsyncExitStack
from pathlib import Path
from typing import Any, Dict, List, Optional

from .batch_runner import BatchRunner
from .cache import create_schema_cache
from .config import Defaults, GenerationConfig, load_config
from .document import Document
from .errors import ConfigurationError, ExtractionError
from .extraction import SchemaExtractor
from .fetcher import C4AFetcher
from .generation import Crawl4AIPatternGenerator, Crawl4AISchemaGenerator, get_or_generate_schema
from .jobs import JobBuilder
from .models import load_schema_file
from .patterns import PatternExtractor, PatternSet
from .persistence import create_persistence_strategy
from .utils import is_url

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Set up logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
        stream=sys.stderr,
    )


def _needs_fetcher(config) -> bool:
    for job in config.jobs:
        if job.urls:
            return True
        for strategy in job.strategies:
            if strategy.generate and strategy.generate.sample_url:
                return True
    return False


async def run_jobs(
    config_path: str,
    output_dir: str,
    dry_run: bool = False,
    verbose: bool = False
) -> None:
    """
    Main extraction orchestration function.

    Args:
        config_path: Path to configuration file
        output_dir: Output directory for extracted records
        dry_run: If True, only print sources without extracting
        verbose: Enable verbose logging
    """
    setup_logging(verbose)

    try:
        config = load_config(config_path)

        Path(output_dir).mkdir(parents=True, exist_ok=True)

        if dry_run:
            for job in config.jobs:
                for source in job.sources:
                    logger.info(f"Would extract [{job.name}]: {source}")
            return

        persistence = create_persistence_strategy(config.persistence_strategy, output_dir)
        cache = create_schema_cache(config.cache_strategy, config.cache_dir)
        generation = config.defaults.generation

        async with AsyncExitStack() as stack:
            fetcher = None
            if _needs_fetcher(config):
                fetcher = await stack.enter_async_context(C4AFetcher(config.defaults))

            builder = JobBuilder(
                config.defaults,
                cache=cache,
                fetcher=fetcher,
                schema_generator=Crawl4AISchemaGenerator.from_config(generation),
                pattern_generator=Crawl4AIPatternGenerator.from_config(generation),
            )
            runner = BatchRunner(config.defaults, persistence, fetcher)

            for job in config.jobs:
                try:
                    coordinator = await builder.build(job)
                except ExtractionError as e:
                    logger.error(f"Skipping job '{job.name}': {e}")
                    runner.stats.failed += len(job.sources)
                    continue
                await runner.run(job, coordinator)

        await persistence.finalize()

        stats = runner.get_stats()
        logger.info(f"Extraction stats: {stats.success} success, {stats.failed} failed, {stats.skipped} skipped")
        logger.info("Extraction completed successfully")

    except Exception as e:
        logger.error(f"Extraction failed: {e}")
        sys.exit(1)


async def _load_source(source: str) -> Document:
    """Load a document from a URL or a local file."""
    if is_url(source):
        async with C4AFetcher(Defaults()) as fetcher:
            return Document(await fetcher.fetch(source), url=source)

    path = Path(source)
    if not path.exists():
        raise ConfigurationError(f"Source file not found: {source}")
    return Document(path.read_text(encoding="utf-8"), url=source)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


async def extract_command(schema_path: str, source: str) -> List[Dict[str, Any]]:
    schema = load_schema_file(schema_path)
    document = await _load_source(source)
    return SchemaExtractor().extract(document, schema)


async def patterns_command(source: str, builtins: List[str], custom: List[str], scan_html: bool, include_span: bool) -> List[Dict[str, Any]]:
    custom_patterns = {}
    for item in custom:
        label, sep, expression = item.partition("=")
        if not sep:
            raise ConfigurationError(f"Custom pattern must look like LABEL=REGEX, got {item!r}")
        custom_patterns[label] = expression

    pattern_set = PatternSet(builtins=builtins, custom=custom_patterns)
    document = await _load_source(source)
    text = document.html if scan_html else document.text
    return [match.to_dict(include_span) for match in PatternExtractor().extract(text, pattern_set)]


async def generate_command(sample: str, key: str, cache_dir: str, query: Optional[str], example_path: Optional[str]) -> Dict[str, Any]:
    target_json_example = None
    if example_path:
        target_json_example = Path(example_path).read_text(encoding="utf-8")

    document = await _load_source(sample)
    cache = create_schema_cache("file", cache_dir)
    generator = Crawl4AISchemaGenerator.from_config(GenerationConfig())
    schema = await get_or_generate_schema(
        cache, key, generator, document.html, query=query, target_json_example=target_json_example,
        tolerate_cache_errors=False,
    )
    return schema.to_dict()


async def cache_command(action: str, cache_dir: str, key: Optional[str]) -> Any:
    cache = create_schema_cache("file", cache_dir)
    if action == "list":
        return await cache.keys()
    if not key:
        raise ConfigurationError(f"cache {action} requires a key")
    if action == "show":
        entry = await cache.get(key)
        if entry is None:
            raise ConfigurationError(f"No cache entry for key: {key}")
        return entry.model_dump(mode="json")
    return {"key": key, "deleted": await cache.delete(key)}


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Structured data extraction from HTML with CSS/XPath schemas and regex patterns",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  structured-scraper run config.json output/
  structured-scraper extract schema.json page.html
  structured-scraper patterns page.html --builtin Email --builtin PhoneUS
  structured-scraper generate https://example.com/products products-v1 --query "product cards"
  structured-scraper cache list
        """
    )
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    run_parser = subparsers.add_parser('run', help='Run the jobs in a configuration file')
    run_parser.add_argument('config_file', help='Path to JSON configuration file')
    run_parser.add_argument('output_dir', help='Directory to store extracted records')
    run_parser.add_argument('--dry-run', action='store_true', help='Print sources only, don\'t extract')

    extract_parser = subparsers.add_parser('extract', help='Extract records with a schema file')
    extract_parser.add_argument('schema_file', help='Path to JSON schema')
    extract_parser.add_argument('source', help='HTML file or URL')

    patterns_parser = subparsers.add_parser('patterns', help='Extract regex pattern matches')
    patterns_parser.add_argument('source', help='HTML file or URL')
    patterns_parser.add_argument('--builtin', action='append', default=[], help='Built-in pattern label (repeatable)')
    patterns_parser.add_argument('--custom', action='append', default=[], help='Custom pattern as LABEL=REGEX (repeatable)')
    patterns_parser.add_argument('--html', action='store_true', help='Scan raw HTML instead of visible text')
    patterns_parser.add_argument('--span', action='store_true', help='Include match offsets')

    generate_parser = subparsers.add_parser('generate', help='Generate and cache a schema from a sample page')
    generate_parser.add_argument('sample', help='Sample HTML file or URL')
    generate_parser.add_argument('key', help='Cache key for the generated schema')
    generate_parser.add_argument('--query', help='What to extract, in plain language')
    generate_parser.add_argument('--example', help='Path to an example output record (JSON)')
    generate_parser.add_argument('--cache-dir', default='.schema_cache', help='Schema cache directory')

    cache_parser = subparsers.add_parser('cache', help='Inspect the schema cache')
    cache_parser.add_argument('action', choices=['list', 'show', 'delete'])
    cache_parser.add_argument('key', nargs='?')
    cache_parser.add_argument('--cache-dir', default='.schema_cache', help='Schema cache directory')

    args = parser.parse_args(argv)

    if args.command == 'run':
        asyncio.run(run_jobs(
            config_path=args.config_file,
            output_dir=args.output_dir,
            dry_run=args.dry_run,
            verbose=args.verbose
        ))
        return

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.verbose)
    try:
        if args.command == 'extract':
            result = asyncio.run(extract_command(args.schema_file, args.source))
        elif args.command == 'patterns':
            result = asyncio.run(patterns_command(args.source, args.builtin, args.custom, args.html, args.span))
        elif args.command == 'generate':
            result = asyncio.run(generate_command(args.sample, args.key, args.cache_dir, args.query, args.example))
        else:
            result = asyncio.run(cache_command(args.action, args.cache_dir, args.key))
    except ExtractionError as e:
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)

    _print_json(result)


if __name__ == '__main__':
    main()
