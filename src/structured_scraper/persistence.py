"""
Persistence module for structured_scraper.

Handles different persistence strategies for saving extracted records.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from .errors import ConfigurationError
from .utils import create_hash, extract_domain, is_url, sanitize_filename

logger = logging.getLogger(__name__)

LOCAL_DOMAIN = "local"


@dataclass
class SavedFileInfo:
    """Information about a saved file."""
    source: str
    path: str
    records: int


@dataclass
class SavedDomainFileInfo:
    """Information about a saved domain file (for FilePerDomainStrategy)."""
    domain: str
    path: str
    sources: List[str]
    records: int


def _domain_for(source: str) -> str:
    if is_url(source):
        return extract_domain(source) or "unknown"
    return LOCAL_DOMAIN


def _build_payload(source: str, records: List[Any], strategy: Optional[str], job: Optional[str]) -> Dict[str, Any]:
    return {
        "source": source,
        "job": job,
        "strategy": strategy,
        "records": records,
    }


class PersistenceStrategy(ABC):
    """Abstract base class for persistence strategies."""

    @abstractmethod
    async def save(self, source: str, records: List[Any], strategy: Optional[str] = None, job: Optional[str] = None) -> str:
        """
        Save extracted records for a source.

        Args:
            source: URL or file path the records came from
            records: Extracted records
            strategy: Name of the strategy that produced them
            job: Name of the job

        Returns:
            Path where the records were (or will be) saved
        """
        pass

    @abstractmethod
    async def finalize(self) -> None:
        """Finalize persistence operations (e.g., flush buffers)."""
        pass


class FolderPerDomainStrategy(PersistenceStrategy):
    """Persistence strategy that writes one JSON file per source in domain folders."""

    def __init__(self, output_dir: str):
        """
        Initialize FolderPerDomainStrategy.

        Args:
            output_dir: Base output directory
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._saved_files: List[SavedFileInfo] = []

    def _build_file_path(self, source: str, extension: str = ".json") -> Path:
        """
        Build file path for a source in the domain folder structure.

        Args:
            source: URL or local file path
            extension: File extension

        Returns:
            Full path to save file
        """
        domain_dir = self.output_dir / _domain_for(source)
        domain_dir.mkdir(parents=True, exist_ok=True)

        if is_url(source):
            url_path = urlparse(source).path
            filename = url_path.lstrip('/').replace('/', '_') if url_path and url_path != '/' else "index"
        else:
            filename = Path(source).stem

        # Hash suffix keeps sources that sanitize to the same name apart
        filename = f"{sanitize_filename(filename, max_length=100)}_{create_hash(source)[:8]}{extension}"
        return domain_dir / filename

    async def save(self, source: str, records: List[Any], strategy: Optional[str] = None, job: Optional[str] = None) -> str:
        file_path = self._build_file_path(source)

        try:
            with open(file_path, 'w', encoding='utf-8') as f:
                json.dump(_build_payload(source, records, strategy, job), f, indent=2, ensure_ascii=False)
        except OSError as e:
            logger.error(f"Failed to save records for {source}: {e}")
            return ""

        self._saved_files.append(SavedFileInfo(source=source, path=str(file_path), records=len(records)))
        logger.debug(f"Saved {len(records)} records to: {file_path}")
        return str(file_path)

    async def finalize(self) -> None:
        """No finalization needed for folder per domain."""
        logger.info(f"FolderPerDomainStrategy completed. Saved {len(self._saved_files)} files.")

    def get_saved_files(self) -> List[SavedFileInfo]:
        """Get list of saved files for manifest generation."""
        return self._saved_files.copy()


class FilePerDomainStrategy(PersistenceStrategy):
    """Persistence strategy that appends results per domain to one JSON Lines file."""

    def __init__(self, output_dir: str, buffer_size: int = 100):
        """
        Initialize FilePerDomainStrategy.

        Args:
            output_dir: Base output directory
            buffer_size: Number of sources to buffer per domain before flushing
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.buffer_size = buffer_size
        self.buffers: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
        self._saved: Dict[str, SavedDomainFileInfo] = {}

    def _domain_file(self, domain: str) -> Path:
        return self.output_dir / f"{sanitize_filename(domain)}.jsonl"

    async def _flush_domain(self, domain: str) -> str:
        """
        Append the buffer for a domain to its file.

        Args:
            domain: Domain to flush

        Returns:
            Path to the domain file
        """
        buffer = self.buffers[domain]
        if not buffer:
            return ""

        domain_file = self._domain_file(domain)
        try:
            with open(domain_file, 'a', encoding='utf-8') as f:
                for payload in buffer:
                    f.write(json.dumps(payload, ensure_ascii=False))
                    f.write("\n")
        except OSError as e:
            logger.error(f"Failed to flush domain {domain}: {e}")
            return ""

        info = self._saved.setdefault(domain, SavedDomainFileInfo(domain=domain, path=str(domain_file), sources=[], records=0))
        info.sources.extend(payload["source"] for payload in buffer)
        info.records += sum(len(payload["records"]) for payload in buffer)

        logger.info(f"Flushed {len(buffer)} sources for domain {domain} to {domain_file}")
        self.buffers[domain] = []
        return str(domain_file)

    async def save(self, source: str, records: List[Any], strategy: Optional[str] = None, job: Optional[str] = None) -> str:
        domain = _domain_for(source)
        self.buffers[domain].append(_build_payload(source, records, strategy, job))
        logger.debug(f"Buffered {len(records)} records for {domain}: {source}")

        if len(self.buffers[domain]) >= self.buffer_size:
            await self._flush_domain(domain)

        return str(self._domain_file(domain))

    async def finalize(self) -> None:
        """Flush all remaining buffers to domain files."""
        logger.info("Finalizing FilePerDomainStrategy - flushing all buffers")

        for domain in list(self.buffers.keys()):
            await self._flush_domain(domain)

        logger.info(f"FilePerDomainStrategy completed. Wrote {len(self._saved)} domain files.")

    def get_saved_files(self) -> List[SavedDomainFileInfo]:
        """Get list of saved files for manifest generation."""
        return list(self._saved.values())


def create_persistence_strategy(
    strategy: str,
    output_dir: str,
    **kwargs
) -> PersistenceStrategy:
    """
    Factory function to create persistence strategy.

    Args:
        strategy: Strategy name ("folder_per_domain" or "file_per_domain")
        output_dir: Output directory
        **kwargs: Additional strategy-specific parameters

    Returns:
        Configured persistence strategy

    Raises:
        ConfigurationError: If strategy is not supported
    """
    if strategy == "folder_per_domain":
        return FolderPerDomainStrategy(output_dir)
    elif strategy == "file_per_domain":
        return FilePerDomainStrategy(output_dir, kwargs.get("buffer_size", 100))
    else:
        raise ConfigurationError(f"Unsupported persistence strategy: {strategy}")
