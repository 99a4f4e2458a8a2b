"""
Job assembly for structured_scraper.

Turns a job's strategy configs into a ready StrategyCoordinator: loads inline
and file schemas, reads cached definitions, and generates missing ones once.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from .cache import CacheEntry, SchemaCache
from .config import Defaults, GenerateSchemaConfig, GeneratePatternsConfig, Job, PatternStrategyConfig, SchemaStrategyConfig
from .coordinator import ExtractionStrategy, PatternStrategy, SchemaStrategy, StrategyCoordinator
from .errors import CacheIOError, ConfigurationError
from .fetcher import C4AFetcher
from .generation import PatternGenerator, SchemaGenerator, get_or_generate_patterns, get_or_generate_schema
from .models import SchemaDefinition, load_schema_file
from .patterns import PatternSet

logger = logging.getLogger(__name__)


class JobBuilder:
    """Builds coordinators for jobs, sharing one cache, fetcher and generators."""

    def __init__(
        self,
        defaults: Defaults,
        cache: Optional[SchemaCache] = None,
        fetcher: Optional[C4AFetcher] = None,
        schema_generator: Optional[SchemaGenerator] = None,
        pattern_generator: Optional[PatternGenerator] = None,
    ):
        self.defaults = defaults
        self.cache = cache
        self.fetcher = fetcher
        self.schema_generator = schema_generator
        self.pattern_generator = pattern_generator

    async def build(self, job: Job) -> StrategyCoordinator:
        """
        Build the strategy chain for a job.

        Raises:
            ConfigurationError: If a strategy cannot be resolved
            GenerationError: If a definition had to be generated and generation failed
        """
        strategies = []
        for index, strategy_config in enumerate(job.strategies):
            if isinstance(strategy_config, SchemaStrategyConfig):
                strategies.append(await self._build_schema_strategy(strategy_config))
            else:
                strategies.append(await self._build_pattern_strategy(strategy_config))
            logger.debug(f"Job '{job.name}' strategy {index}: {strategies[-1].name}")
        return StrategyCoordinator(strategies)

    async def _build_schema_strategy(self, config: SchemaStrategyConfig) -> ExtractionStrategy:
        if config.definition is not None:
            schema = SchemaDefinition.from_dict(config.definition)
        elif config.schema_path:
            schema = load_schema_file(config.schema_path)
        else:
            schema = await self._cached_schema(config.cache_key, config.generate)
        return SchemaStrategy(schema, name=config.name)

    async def _build_pattern_strategy(self, config: PatternStrategyConfig) -> ExtractionStrategy:
        if config.cache_key:
            pattern_set = await self._cached_patterns(config.cache_key, config.generate)
        else:
            pattern_set = PatternSet(builtins=config.builtins, custom=config.custom)
        return PatternStrategy(
            pattern_set,
            name=config.name,
            source=config.source,
            include_span=self.defaults.include_span,
        )

    async def _cached_schema(self, key: str, generate: Optional[GenerateSchemaConfig]) -> SchemaDefinition:
        entry = await self._cached_entry(key, strict=generate is None)
        if generate is None:
            if entry is None:
                raise ConfigurationError(f"Schema '{key}' is not cached and no generate section is configured")
            return entry.as_schema()
        # a hit skips loading the sample page
        if entry is not None and entry.kind == "schema":
            try:
                return entry.as_schema()
            except ConfigurationError as e:
                logger.warning(f"Cached schema '{key}' is no longer valid, regenerating: {e}")

        if self.schema_generator is None:
            raise ConfigurationError(f"Schema '{key}' needs generation but no schema generator is available")

        html = await self._load_sample(generate)
        return await get_or_generate_schema(
            self.cache,
            key,
            self.schema_generator,
            html,
            query=generate.query,
            target_json_example=generate.target_json_example,
        )

    async def _cached_patterns(self, key: str, generate: Optional[GeneratePatternsConfig]) -> PatternSet:
        entry = await self._cached_entry(key, strict=generate is None)
        if generate is None:
            if entry is None:
                raise ConfigurationError(f"Patterns '{key}' are not cached and no generate section is configured")
            return entry.as_pattern_set()
        if entry is not None and entry.kind == "patterns":
            try:
                return entry.as_pattern_set()
            except ConfigurationError as e:
                logger.warning(f"Cached patterns '{key}' are no longer valid, regenerating: {e}")

        if self.pattern_generator is None:
            raise ConfigurationError(f"Patterns '{key}' need generation but no pattern generator is available")

        html = await self._load_sample(generate)
        return await get_or_generate_patterns(
            self.cache,
            key,
            self.pattern_generator,
            html,
            generate.label,
            query=generate.query,
            examples=generate.examples,
        )

    async def _cached_entry(self, key: str, strict: bool) -> Optional[CacheEntry]:
        """
        Look up a cache key.

        With ``strict`` set a missing cache or a read failure is an error;
        otherwise it is treated as a miss and generation takes over.
        """
        if self.cache is None:
            if strict:
                raise ConfigurationError("A cacheKey strategy requires a schema cache")
            return None
        try:
            return await self.cache.get(key)
        except CacheIOError as e:
            if strict:
                raise
            logger.warning(f"Schema cache read failed for '{key}': {e}")
            return None

    async def _load_sample(self, generate: Union[GenerateSchemaConfig, GeneratePatternsConfig]) -> str:
        """Read the sample page that generation is based on."""
        if generate.sample_file:
            path = Path(generate.sample_file)
            if not path.exists():
                raise ConfigurationError(f"Sample file not found: {path}")
            return path.read_text(encoding="utf-8")

        if self.fetcher is None:
            raise ConfigurationError(f"Fetching sample {generate.sample_url} requires a fetcher")
        return await self.fetcher.fetch(generate.sample_url)
