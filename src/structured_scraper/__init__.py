"""
structured_scraper - Structured data extraction from HTML

This package turns HTML pages into typed records with declarative,
non-semantic strategies:
- CSS/XPath schemas with nested and nested-list field groups
- Built-in and custom regex patterns
- A fallback chain that tries strategies until one yields data
- One-time LLM schema/pattern generation (via Crawl4AI) with a reusable cache
- Batch extraction over fetched pages with pluggable persistence
"""

__version__ = "1.0.0"

from .errors import (
    ExtractionError,
    ConfigurationError,
    GenerationError,
    CacheIOError,
    FetchError,
    AllStrategiesFailedError,
)
from .models import SchemaDefinition, LeafField, NestedField, NestedListField, load_schema_file
from .document import Document, parse_html
from .locator import compile_selector, locate
from .assembler import RecordAssembler
from .extraction import SchemaExtractor
from .patterns import BuiltInPattern, PatternSet, PatternExtractor, Match
from .cache import SchemaCache, FileSchemaCache, MemorySchemaCache, CacheEntry, create_schema_cache
from .coordinator import (
    ExtractionStrategy,
    SchemaStrategy,
    PatternStrategy,
    StrategyCoordinator,
    CoordinatorOutcome,
    StrategyAttempt,
)
from .generation import (
    SchemaGenerator,
    PatternGenerator,
    Crawl4AISchemaGenerator,
    Crawl4AIPatternGenerator,
    get_or_generate_schema,
    get_or_generate_patterns,
)
from .config import load_config, Config, Job, Defaults
from .fetcher import C4AFetcher
from .batch_runner import BatchRunner
from .persistence import PersistenceStrategy, FolderPerDomainStrategy, FilePerDomainStrategy, create_persistence_strategy
from .cli import main

__all__ = [
    "ExtractionError",
    "ConfigurationError",
    "GenerationError",
    "CacheIOError",
    "FetchError",
    "AllStrategiesFailedError",
    "SchemaDefinition",
    "LeafField",
    "NestedField",
    "NestedListField",
    "load_schema_file",
    "Document",
    "parse_html",
    "compile_selector",
    "locate",
    "RecordAssembler",
    "SchemaExtractor",
    "BuiltInPattern",
    "PatternSet",
    "PatternExtractor",
    "Match",
    "SchemaCache",
    "FileSchemaCache",
    "MemorySchemaCache",
    "CacheEntry",
    "create_schema_cache",
    "ExtractionStrategy",
    "SchemaStrategy",
    "PatternStrategy",
    "StrategyCoordinator",
    "CoordinatorOutcome",
    "StrategyAttempt",
    "SchemaGenerator",
    "PatternGenerator",
    "Crawl4AISchemaGenerator",
    "Crawl4AIPatternGenerator",
    "get_or_generate_schema",
    "get_or_generate_patterns",
    "load_config",
    "Config",
    "Job",
    "Defaults",
    "C4AFetcher",
    "BatchRunner",
    "PersistenceStrategy",
    "FolderPerDomainStrategy",
    "FilePerDomainStrategy",
    "create_persistence_strategy",
    "main",
]
