"""
Pattern extraction module for structured_scraper.

Scans text for built-in and custom regular expressions and emits labeled
matches in left-to-right source order.
"""

import heapq
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import IntFlag
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union

from .errors import ConfigurationError

logger = logging.getLogger(__name__)


class BuiltInPattern(IntFlag):
    """Catalog of built-in patterns, combinable with ``|``."""
    NOTHING = 0
    EMAIL = 1 << 0
    PHONE_INTL = 1 << 1
    PHONE_US = 1 << 2
    URL = 1 << 3
    CURRENCY = 1 << 4
    PERCENTAGE = 1 << 5
    DATE_ISO = 1 << 6
    DATE_US = 1 << 7
    IPV4 = 1 << 8
    CREDIT_CARD = 1 << 9
    TWITTER_HANDLE = 1 << 10
    HASHTAG = 1 << 11
    ALL = (1 << 12) - 1


# (flag, label, regex) in catalog order
BUILTIN_CATALOG: Tuple[Tuple[BuiltInPattern, str, str], ...] = (
    (BuiltInPattern.EMAIL, "Email", r"[\w.+-]+@[\w-]+\.[\w.-]+"),
    (BuiltInPattern.PHONE_INTL, "PhoneIntl", r"\+\d{1,3}[\s.-]?(?:\(\d{1,4}\)[\s.-]?)?\d{1,4}(?:[\s.-]?\d{2,4}){2,4}"),
    (BuiltInPattern.PHONE_US, "PhoneUS", r"(?<!\d)\(?\d{3}\)?[\s.-]?\d{3}[\s.-]\d{4}(?!\d)"),
    (BuiltInPattern.URL, "Url", r"https?://[^\s\"'<>]+"),
    (BuiltInPattern.CURRENCY, "Currency", r"(?:USD|EUR|GBP|JPY|[$€£¥])\s?\d{1,3}(?:[,.\s]?\d{3})*(?:[.,]\d{2})?"),
    (BuiltInPattern.PERCENTAGE, "Percentage", r"-?\d+(?:[.,]\d+)?\s?%"),
    (BuiltInPattern.DATE_ISO, "DateIso", r"\b\d{4}-(?:0[1-9]|1[0-2])-(?:0[1-9]|[12]\d|3[01])\b"),
    (BuiltInPattern.DATE_US, "DateUS", r"\b(?:0?[1-9]|1[0-2])/(?:0?[1-9]|[12]\d|3[01])/(?:\d{4}|\d{2})\b"),
    (BuiltInPattern.IPV4, "IPv4", r"\b(?:(?:25[0-5]|2[0-4]\d|1?\d?\d)\.){3}(?:25[0-5]|2[0-4]\d|1?\d?\d)\b"),
    (BuiltInPattern.CREDIT_CARD, "CreditCard", r"\b(?:4\d{12}(?:\d{3})?|5[1-5]\d{14}|3[47]\d{13}|6(?:011|5\d{2})\d{12})\b"),
    (BuiltInPattern.TWITTER_HANDLE, "TwitterHandle", r"(?<![\w@])@[A-Za-z0-9_]{1,15}\b"),
    (BuiltInPattern.HASHTAG, "Hashtag", r"(?<![\w#])#[A-Za-z][\w-]*"),
)

BUILTIN_LABELS: Dict[str, BuiltInPattern] = {label: flag for flag, label, _ in BUILTIN_CATALOG}


def builtins_from_labels(labels: Iterable[str]) -> BuiltInPattern:
    """
    Combine built-in patterns by label.

    Raises:
        ConfigurationError: If a label is not in the catalog
    """
    flags = BuiltInPattern.NOTHING
    for label in labels:
        if label not in BUILTIN_LABELS:
            known = ", ".join(BUILTIN_LABELS)
            raise ConfigurationError(f"Unknown built-in pattern '{label}' (known: {known})")
        flags |= BUILTIN_LABELS[label]
    return flags


@dataclass(frozen=True)
class Match:
    """A labeled regex match with its offsets in the source text."""
    label: str
    value: str
    span: Tuple[int, int]

    def to_dict(self, include_span: bool = False) -> Dict[str, Any]:
        data: Dict[str, Any] = {"label": self.label, "value": self.value}
        if include_span:
            data["span"] = list(self.span)
        return data


class PatternSet(Mapping):
    """
    Immutable mapping of label to compiled pattern.

    Built-in patterns come first in catalog order, followed by custom
    patterns in the order given.
    """

    def __init__(
        self,
        builtins: Union[BuiltInPattern, Iterable[str]] = BuiltInPattern.NOTHING,
        custom: Optional[Dict[str, str]] = None,
        flags: int = 0,
    ):
        """
        Build a pattern set.

        Args:
            builtins: Built-in pattern flags or labels
            custom: Caller-supplied label to regex mapping
            flags: re flags applied to custom patterns

        Raises:
            ConfigurationError: On unknown built-ins, label collisions or invalid regex
        """
        if isinstance(builtins, str):
            builtins = [builtins]
        if not isinstance(builtins, BuiltInPattern):
            builtins = builtins_from_labels(builtins)

        self._builtins = builtins
        self._custom = dict(custom or {})
        self._flags = flags

        compiled: Dict[str, re.Pattern] = {}
        for flag, label, expression in BUILTIN_CATALOG:
            if flag & builtins:
                compiled[label] = re.compile(expression)

        for label, expression in self._custom.items():
            if not isinstance(label, str) or not label:
                raise ConfigurationError("Custom pattern labels must be non-empty strings")
            if label in BUILTIN_LABELS:
                raise ConfigurationError(f"Custom pattern '{label}' collides with a built-in label")
            if not isinstance(expression, str) or not expression:
                raise ConfigurationError(f"Custom pattern '{label}' must be a non-empty string")
            try:
                compiled[label] = re.compile(expression, flags)
            except re.error as e:
                raise ConfigurationError(f"Invalid regex for pattern '{label}': {e}") from e

        self._patterns = compiled

    def __getitem__(self, label: str) -> re.Pattern:
        return self._patterns[label]

    def __iter__(self) -> Iterator[str]:
        return iter(self._patterns)

    def __len__(self) -> int:
        return len(self._patterns)

    def __repr__(self) -> str:
        return f"PatternSet({list(self._patterns)})"

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, PatternSet):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash((int(self._builtins), tuple(self._custom.items()), self._flags))

    @property
    def labels(self) -> List[str]:
        return list(self._patterns)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON-compatible cache format."""
        return {
            "builtins": [label for flag, label, _ in BUILTIN_CATALOG if flag & self._builtins],
            "custom": dict(self._custom),
            "flags": int(self._flags),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PatternSet":
        if not isinstance(data, dict):
            raise ConfigurationError(f"PatternSet must be a JSON object, got {type(data).__name__}")
        custom = data.get("custom") or {}
        if not isinstance(custom, dict):
            raise ConfigurationError("PatternSet 'custom' must be an object of label to regex")
        return cls(
            builtins=data.get("builtins") or [],
            custom=custom,
            flags=int(data.get("flags", 0)),
        )


class PatternExtractor:
    """Runs a pattern set over text."""

    def extract(self, text: str, pattern_set: PatternSet) -> List[Match]:
        """
        Find every match of every pattern.

        Matches of one pattern never overlap each other; matches of different
        patterns may. The result is ordered by start offset, ties broken by
        the pattern's position in the set.

        Args:
            text: Text to scan
            pattern_set: Active patterns

        Returns:
            Matches in left-to-right source order
        """
        if not text:
            return []

        streams = [
            self._scan(order, label, pattern, text)
            for order, (label, pattern) in enumerate(pattern_set.items())
        ]
        matches = [match for _, _, match in heapq.merge(*streams, key=lambda item: (item[0], item[1]))]

        logger.debug(f"Pattern extraction found {len(matches)} matches across {len(pattern_set)} patterns")
        return matches

    @staticmethod
    def _scan(order: int, label: str, pattern: re.Pattern, text: str) -> Iterator[Tuple[int, int, Match]]:
        for found in pattern.finditer(text):
            # zero-width matches carry no value
            if found.end() == found.start():
                continue
            yield found.start(), order, Match(label=label, value=found.group(0), span=found.span())
