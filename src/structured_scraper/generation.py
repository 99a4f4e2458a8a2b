"""
Generation module for structured_scraper.

Generates extraction schemas and regex patterns from sample HTML through
crawl4ai's LLM helpers, and implements the get-or-generate caching contract
so each site structure is generated at most once.
"""

import asyncio
import inspect
import json
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Union

from crawl4ai import LLMConfig
from crawl4ai.extraction_strategy import JsonCssExtractionStrategy, JsonXPathExtractionStrategy, RegexExtractionStrategy

from .cache import SchemaCache
from .config import GenerationConfig
from .errors import CacheIOError, ConfigurationError, GenerationError
from .models import SchemaDefinition
from .patterns import PatternSet

logger = logging.getLogger(__name__)

# crawl4ai field tags that map onto ours
_TYPE_ALIASES = {"list": "nested_list"}


class SchemaGenerator(ABC):
    """Produces a SchemaDefinition from representative markup."""

    @abstractmethod
    async def generate_schema(
        self,
        html: str,
        query: Optional[str] = None,
        target_json_example: Optional[Union[str, Dict[str, Any]]] = None,
    ) -> SchemaDefinition:
        """
        Generate a schema.

        Args:
            html: Representative HTML for the target structure
            query: Natural-language description of what to extract
            target_json_example: Example of the desired output record

        Raises:
            GenerationError: If the call fails, times out or returns an unusable schema
        """
        pass


class PatternGenerator(ABC):
    """Produces a PatternSet with one custom pattern from representative markup."""

    @abstractmethod
    async def generate_patterns(
        self,
        html: str,
        label: str,
        query: Optional[str] = None,
        examples: Optional[List[str]] = None,
    ) -> PatternSet:
        """
        Generate a pattern set.

        Raises:
            GenerationError: If the call fails, times out or returns an unusable pattern
        """
        pass


def build_llm_config(config: GenerationConfig) -> LLMConfig:
    """Build crawl4ai's LLMConfig from the generation settings."""
    api_token = os.getenv(config.api_token_env) if config.api_token_env else None
    return LLMConfig(provider=config.provider, api_token=api_token, base_url=config.base_url)


async def _call_generator(func: Callable[..., Any], timeout: float, **kwargs: Any) -> Any:
    """Run a blocking (or async) generation call off the event loop with a timeout."""
    try:
        result = await asyncio.wait_for(asyncio.to_thread(func, **kwargs), timeout=timeout)
        if inspect.isawaitable(result):
            result = await asyncio.wait_for(result, timeout=timeout)
    except asyncio.TimeoutError as e:
        raise GenerationError(f"Generation timed out after {timeout:.0f}s") from e
    except Exception as e:
        raise GenerationError(f"Generation call failed: {e}") from e
    return result


def _parse_json_object(raw: Any, what: str) -> Dict[str, Any]:
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise GenerationError(f"Generated {what} is not valid JSON: {e}", raw_response=raw) from e
    if not isinstance(raw, dict):
        raise GenerationError(f"Generated {what} is not a JSON object", raw_response=raw)
    return raw


def _normalize_fields(fields: Any) -> Any:
    if not isinstance(fields, list):
        return fields
    normalized = []
    for field in fields:
        if isinstance(field, dict):
            field = dict(field)
            field["type"] = _TYPE_ALIASES.get(field.get("type", "text"), field.get("type", "text"))
            if "fields" in field:
                field["fields"] = _normalize_fields(field["fields"])
        normalized.append(field)
    return normalized


def schema_from_generated(raw: Any, selector_type: str = "css") -> SchemaDefinition:
    """
    Convert a generated schema (crawl4ai format) into a SchemaDefinition.

    Raises:
        GenerationError: If the output cannot be parsed or fails validation
    """
    data = _parse_json_object(raw, "schema")
    data = dict(data)
    data.setdefault("name", "generated")
    data["selectorType"] = selector_type
    for key in ("fields", "baseFields"):
        if key in data:
            data[key] = _normalize_fields(data[key])

    if not data.get("fields"):
        raise GenerationError("Generated schema has no fields", raw_response=raw)

    try:
        return SchemaDefinition.from_dict(data)
    except ConfigurationError as e:
        raise GenerationError(f"Generated schema is invalid: {e}", raw_response=raw) from e


def patterns_from_generated(raw: Any) -> PatternSet:
    """
    Convert generated label/regex pairs into a PatternSet.

    Raises:
        GenerationError: If the output cannot be parsed or a regex does not compile
    """
    data = _parse_json_object(raw, "pattern")
    if not data:
        raise GenerationError("Generated pattern set is empty", raw_response=raw)
    try:
        return PatternSet(custom=data)
    except ConfigurationError as e:
        raise GenerationError(f"Generated pattern is invalid: {e}", raw_response=raw) from e


class Crawl4AISchemaGenerator(SchemaGenerator):
    """Schema generation through crawl4ai's JsonCss/JsonXPath generate_schema."""

    def __init__(self, llm_config: LLMConfig, schema_type: str = "CSS", timeout: float = 120.0):
        self.llm_config = llm_config
        self.schema_type = schema_type.upper()
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: GenerationConfig) -> "Crawl4AISchemaGenerator":
        return cls(build_llm_config(config), schema_type=config.schema_type, timeout=config.timeout)

    async def generate_schema(
        self,
        html: str,
        query: Optional[str] = None,
        target_json_example: Optional[Union[str, Dict[str, Any]]] = None,
    ) -> SchemaDefinition:
        if isinstance(target_json_example, dict):
            target_json_example = json.dumps(target_json_example)

        strategy_cls = JsonXPathExtractionStrategy if self.schema_type == "XPATH" else JsonCssExtractionStrategy
        logger.info(f"Generating {self.schema_type} schema with {self.llm_config.provider}")

        raw = await _call_generator(
            strategy_cls.generate_schema,
            self.timeout,
            html=html,
            schema_type=self.schema_type,
            query=query,
            target_json_example=target_json_example,
            llm_config=self.llm_config,
        )
        return schema_from_generated(raw, "xpath" if self.schema_type == "XPATH" else "css")


class Crawl4AIPatternGenerator(PatternGenerator):
    """Pattern generation through crawl4ai's RegexExtractionStrategy.generate_pattern."""

    def __init__(self, llm_config: LLMConfig, timeout: float = 120.0):
        self.llm_config = llm_config
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: GenerationConfig) -> "Crawl4AIPatternGenerator":
        return cls(build_llm_config(config), timeout=config.timeout)

    async def generate_patterns(
        self,
        html: str,
        label: str,
        query: Optional[str] = None,
        examples: Optional[List[str]] = None,
    ) -> PatternSet:
        logger.info(f"Generating pattern '{label}' with {self.llm_config.provider}")

        raw = await _call_generator(
            RegexExtractionStrategy.generate_pattern,
            self.timeout,
            label=label,
            html=html,
            query=query,
            examples=examples or None,
            llm_config=self.llm_config,
        )
        return patterns_from_generated(raw)


async def _read_cache(cache: Optional[SchemaCache], key: str, tolerate_cache_errors: bool):
    if cache is None:
        return None
    try:
        return await cache.get(key)
    except CacheIOError as e:
        if not tolerate_cache_errors:
            raise
        logger.warning(f"Schema cache read failed for '{key}', regenerating: {e}")
        return None


async def _write_cache(cache: Optional[SchemaCache], key: str, payload: Any, tolerate_cache_errors: bool) -> None:
    if cache is None:
        return
    try:
        await cache.put(key, payload)
    except CacheIOError as e:
        if not tolerate_cache_errors:
            raise
        logger.warning(f"Schema cache write failed for '{key}', result will not be reused: {e}")


async def get_or_generate_schema(
    cache: Optional[SchemaCache],
    key: str,
    generator: SchemaGenerator,
    html: str,
    query: Optional[str] = None,
    target_json_example: Optional[Union[str, Dict[str, Any]]] = None,
    tolerate_cache_errors: bool = True,
) -> SchemaDefinition:
    """
    Return the cached schema for a key, generating and caching it on a miss.

    Args:
        cache: Schema cache, or None to always generate
        key: Cache key identifying the site/structure version
        generator: Schema generator used on a miss
        html: Representative HTML passed to the generator
        query: Natural-language extraction goal
        target_json_example: Example output record
        tolerate_cache_errors: Log cache I/O errors and keep going instead of raising

    Raises:
        GenerationError: If generation was needed and failed
        CacheIOError: On cache failures when tolerate_cache_errors is False
    """
    entry = await _read_cache(cache, key, tolerate_cache_errors)
    if entry is not None:
        try:
            schema = entry.as_schema()
            logger.info(f"Using cached schema: {key}")
            return schema
        except ConfigurationError as e:
            logger.warning(f"Cached entry '{key}' is not a usable schema, regenerating: {e}")

    schema = await generator.generate_schema(html, query=query, target_json_example=target_json_example)
    await _write_cache(cache, key, schema, tolerate_cache_errors)
    return schema


async def get_or_generate_patterns(
    cache: Optional[SchemaCache],
    key: str,
    generator: PatternGenerator,
    html: str,
    label: str,
    query: Optional[str] = None,
    examples: Optional[List[str]] = None,
    tolerate_cache_errors: bool = True,
) -> PatternSet:
    """Pattern-set counterpart of get_or_generate_schema()."""
    entry = await _read_cache(cache, key, tolerate_cache_errors)
    if entry is not None:
        try:
            pattern_set = entry.as_pattern_set()
            logger.info(f"Using cached patterns: {key}")
            return pattern_set
        except ConfigurationError as e:
            logger.warning(f"Cached entry '{key}' is not a usable pattern set, regenerating: {e}")

    pattern_set = await generator.generate_patterns(html, label, query=query, examples=examples)
    await _write_cache(cache, key, pattern_set, tolerate_cache_errors)
    return pattern_set
