"""
Strategy coordination for structured_scraper.

Runs an ordered fallback chain of extraction strategies over one document and
stops at the first strategy that produces usable output.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .document import Document, as_document
from .errors import AllStrategiesFailedError, ConfigurationError
from .extraction import SchemaExtractor
from .models import SchemaDefinition
from .patterns import PatternExtractor, PatternSet

logger = logging.getLogger(__name__)

Validator = Callable[[List[Any]], bool]


class ExtractionStrategy(ABC):
    """A definition bound to an extractor."""

    name: str

    @abstractmethod
    def extract(self, document: Document) -> List[Any]:
        """
        Extract output from a document.

        Returns:
            JSON-compatible records; an empty list means nothing was found
        """
        pass


class SchemaStrategy(ExtractionStrategy):
    """Extracts records with a SchemaDefinition."""

    def __init__(self, schema: SchemaDefinition, name: Optional[str] = None):
        self.schema = schema
        self.name = name or f"schema:{schema.name}"
        self._extractor = SchemaExtractor()

    def extract(self, document: Document) -> List[Dict[str, Any]]:
        return self._extractor.extract(document, self.schema)


class PatternStrategy(ExtractionStrategy):
    """Extracts labeled matches with a PatternSet, over visible text or raw HTML."""

    def __init__(
        self,
        pattern_set: PatternSet,
        name: Optional[str] = None,
        source: str = "text",
        include_span: bool = False,
    ):
        if source not in ("text", "html"):
            raise ConfigurationError(f"Unsupported pattern source: {source}")
        self.pattern_set = pattern_set
        self.name = name or f"patterns:{'+'.join(pattern_set.labels)}"
        self.source = source
        self.include_span = include_span
        self._extractor = PatternExtractor()

    def extract(self, document: Document) -> List[Dict[str, Any]]:
        text = document.text if self.source == "text" else document.html
        return [match.to_dict(self.include_span) for match in self._extractor.extract(text, self.pattern_set)]


@dataclass
class StrategyAttempt:
    """What happened when one strategy was tried."""
    index: int
    strategy_name: str
    status: str  # "success" | "empty" | "rejected" | "error"
    count: int = 0
    error: Optional[str] = None


@dataclass
class CoordinatorOutcome:
    """Result of running a strategy chain on one document."""
    succeeded: bool
    records: List[Any] = field(default_factory=list)
    strategy_index: Optional[int] = None
    strategy_name: Optional[str] = None
    attempts: List[StrategyAttempt] = field(default_factory=list)

    def raise_for_status(self) -> "CoordinatorOutcome":
        """Raise AllStrategiesFailedError if no strategy succeeded."""
        if not self.succeeded:
            raise AllStrategiesFailedError(self.attempts)
        return self

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class StrategyCoordinator:
    """Tries strategies in order until one yields non-empty, accepted output."""

    def __init__(self, strategies: Sequence[ExtractionStrategy], validator: Optional[Validator] = None):
        """
        Initialize StrategyCoordinator.

        Args:
            strategies: Strategies in the order they should be tried
            validator: Optional check applied to non-empty output; False means try the next strategy

        Raises:
            ConfigurationError: If no strategies are given
        """
        if not strategies:
            raise ConfigurationError("StrategyCoordinator needs at least one strategy")
        self.strategies = list(strategies)
        self.validator = validator

    def run(self, document: Union[str, Document]) -> CoordinatorOutcome:
        """
        Run the fallback chain on a document.

        Strategy errors are recorded and the chain moves on; they never abort
        the run. When every strategy fails the outcome has ``succeeded`` set
        to False.

        Args:
            document: HTML content or a Document (parsed once, shared by all strategies)

        Returns:
            The outcome, including every attempt made
        """
        doc = as_document(document)
        attempts: List[StrategyAttempt] = []

        for index, strategy in enumerate(self.strategies):
            try:
                records = strategy.extract(doc)
                accepted = bool(records) and (self.validator is None or self.validator(records))
            except Exception as e:
                logger.warning(f"Strategy '{strategy.name}' failed on {doc.url or 'document'}: {e}")
                attempts.append(StrategyAttempt(index, strategy.name, "error", error=f"{type(e).__name__}: {e}"))
                continue

            if not records:
                logger.debug(f"Strategy '{strategy.name}' produced no output")
                attempts.append(StrategyAttempt(index, strategy.name, "empty"))
                continue

            if not accepted:
                logger.debug(f"Strategy '{strategy.name}' output rejected by validator")
                attempts.append(StrategyAttempt(index, strategy.name, "rejected", count=len(records)))
                continue

            attempts.append(StrategyAttempt(index, strategy.name, "success", count=len(records)))
            logger.info(f"Strategy '{strategy.name}' succeeded with {len(records)} records")
            return CoordinatorOutcome(
                succeeded=True,
                records=records,
                strategy_index=index,
                strategy_name=strategy.name,
                attempts=attempts,
            )

        logger.info(f"No strategy succeeded for {doc.url or 'document'} ({len(attempts)} tried)")
        return CoordinatorOutcome(succeeded=False, attempts=attempts)
