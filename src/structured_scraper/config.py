"""
Configuration module for structured_scraper.

Uses Pydantic models for validation and parsing of configuration files.
A config lists extraction jobs; each job names its sources (URLs or local
HTML files) and an ordered chain of strategies to try on every source.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigurationError
from .models import format_validation_error
from .utils import deduplicate_urls

logger = logging.getLogger(__name__)


class RateLimiterConfig(BaseModel):
    """Configuration for rate limiting."""
    base_delay: Tuple[float, float] = Field((2.0, 4.0), alias="baseDelay")
    max_delay: float = Field(30.0, alias="maxDelay")
    max_retries: int = Field(5, alias="maxRetries")
    rate_limit_codes: List[int] = Field(default_factory=lambda: [429, 503], alias="rateLimitCodes")

    model_config = ConfigDict(populate_by_name=True)


class GenerationConfig(BaseModel):
    """Configuration for LLM-backed schema and pattern generation."""
    provider: str = "openai/gpt-4o-mini"
    api_token_env: Optional[str] = Field("OPENAI_API_KEY", alias="apiTokenEnv")
    base_url: Optional[str] = Field(None, alias="baseUrl")
    timeout: float = Field(120.0, gt=0)
    schema_type: Literal["CSS", "XPATH"] = Field("CSS", alias="schemaType")

    model_config = ConfigDict(populate_by_name=True)


class Defaults(BaseModel):
    """Default configuration values applied to all jobs."""
    threads: int = Field(20, ge=1)
    rate_limiter: RateLimiterConfig = Field(default_factory=RateLimiterConfig, alias="rateLimiter")
    generation: GenerationConfig = Field(default_factory=GenerationConfig)
    include_span: bool = Field(False, alias="includeSpan")

    model_config = ConfigDict(populate_by_name=True)


class _SampleSource(BaseModel):
    sample_url: Optional[str] = Field(None, alias="sampleUrl")
    sample_file: Optional[str] = Field(None, alias="sampleFile")

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def check_sample(self):
        if bool(self.sample_url) == bool(self.sample_file):
            raise ValueError("exactly one of sampleUrl or sampleFile is required")
        return self


class GenerateSchemaConfig(_SampleSource):
    """How to generate a schema when its cache key is missing."""
    query: Optional[str] = None
    target_json_example: Optional[Union[str, Dict[str, Any]]] = Field(None, alias="targetJsonExample")


class GeneratePatternsConfig(_SampleSource):
    """How to generate a pattern when its cache key is missing."""
    label: str
    query: Optional[str] = None
    examples: List[str] = Field(default_factory=list)


class SchemaStrategyConfig(BaseModel):
    """A schema strategy: inline schema, schema file, or cached/generated schema."""
    type: Literal["schema"]
    name: Optional[str] = None
    definition: Optional[Dict[str, Any]] = Field(None, alias="schema")
    schema_path: Optional[str] = Field(None, alias="schemaPath")
    cache_key: Optional[str] = Field(None, alias="cacheKey")
    generate: Optional[GenerateSchemaConfig] = None

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def check_source(self):
        sources = [s for s in (self.definition, self.schema_path, self.cache_key) if s]
        if len(sources) != 1:
            raise ValueError("exactly one of schema, schemaPath or cacheKey is required")
        if self.generate and not self.cache_key:
            raise ValueError("generate requires cacheKey")
        return self


class PatternStrategyConfig(BaseModel):
    """A pattern strategy: built-in and custom patterns, or cached/generated patterns."""
    type: Literal["patterns"]
    name: Optional[str] = None
    builtins: List[str] = Field(default_factory=list)
    custom: Dict[str, str] = Field(default_factory=dict)
    source: Literal["text", "html"] = "text"
    cache_key: Optional[str] = Field(None, alias="cacheKey")
    generate: Optional[GeneratePatternsConfig] = None

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def check_source(self):
        if not (self.builtins or self.custom or self.cache_key):
            raise ValueError("one of builtins, custom or cacheKey is required")
        if self.generate and not self.cache_key:
            raise ValueError("generate requires cacheKey")
        return self


StrategyConfig = Annotated[Union[SchemaStrategyConfig, PatternStrategyConfig], Field(discriminator="type")]


class Job(BaseModel):
    """Configuration for a single extraction job."""
    name: str
    urls: List[str] = Field(default_factory=list)
    files: List[str] = Field(default_factory=list)
    strategies: List[StrategyConfig] = Field(min_length=1)

    model_config = ConfigDict(populate_by_name=True)

    @property
    def sources(self) -> List[str]:
        return self.urls + self.files


class Config(BaseModel):
    """Main configuration class."""
    cache_strategy: str = Field("file", alias="cacheStrategy")
    cache_dir: str = Field(".schema_cache", alias="cacheDir")
    persistence_strategy: str = Field("folder_per_domain", alias="persistenceStrategy")
    defaults: Defaults = Field(default_factory=Defaults)
    jobs: List[Job] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


def _resolve(base_dir: Path, path: Optional[str]) -> Optional[str]:
    if not path:
        return path
    candidate = Path(path)
    if candidate.is_absolute():
        return str(candidate)
    return str(base_dir / candidate)


def _resolve_paths(config: Config, base_dir: Path) -> None:
    """Make file paths in the config relative to the config file's directory."""
    config.cache_dir = _resolve(base_dir, config.cache_dir)
    for job in config.jobs:
        job.files = [_resolve(base_dir, f) for f in job.files]
        for strategy in job.strategies:
            if isinstance(strategy, SchemaStrategyConfig):
                strategy.schema_path = _resolve(base_dir, strategy.schema_path)
            if strategy.generate:
                strategy.generate.sample_file = _resolve(base_dir, strategy.generate.sample_file)


def load_config(config_path: Union[str, Path]) -> Config:
    """
    Load and process configuration from JSON file.

    Args:
        config_path: Path to configuration file

    Returns:
        Processed configuration object

    Raises:
        ConfigurationError: If the file is missing, not JSON or fails validation
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise ConfigurationError(f"Configuration file not found: {config_path}")

    logger.info(f"Loading configuration from: {config_path}")

    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON: {e}", path=str(config_path)) from e

    try:
        config = Config.model_validate(data)
    except ValidationError as e:
        raise ConfigurationError(format_validation_error(e), path=str(config_path)) from e

    _resolve_paths(config, config_path.parent)

    logger.info("Normalizing and deduplicating job URLs")
    for job in config.jobs:
        job.urls = deduplicate_urls(job.urls)

    total = sum(len(job.sources) for job in config.jobs)
    logger.info(f"Loaded {len(config.jobs)} jobs with {total} sources")

    return config
