"""
Utility functions for structured_scraper.

Provides URL normalization, deduplication, domain utilities, and hashing functions.
"""

import hashlib
import logging
import re
import urllib.parse
from typing import List
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

UTM_PARAMS = ('utm_source', 'utm_medium', 'utm_campaign', 'utm_term', 'utm_content')


def is_url(source: str) -> bool:
    """Check whether a source string is an http(s) URL rather than a local path."""
    return urlparse(source).scheme in ("http", "https")


def normalize_url(url: str, strip_utm: bool = True) -> str:
    """
    Normalize URL by removing fragments, trailing slashes, and optionally UTM parameters.

    Args:
        url: URL to normalize
        strip_utm: Whether to remove UTM tracking parameters

    Returns:
        Normalized URL
    """
    if not url:
        return url

    # Remove fragment
    url = url.split('#', 1)[0]

    if strip_utm:
        parsed = urllib.parse.urlparse(url)
        query_params = urllib.parse.parse_qs(parsed.query, keep_blank_values=True)
        for param in UTM_PARAMS:
            query_params.pop(param, None)

        new_query = urllib.parse.urlencode(query_params, doseq=True)
        url = urllib.parse.urlunparse(parsed._replace(query=new_query))

    # Remove trailing slash
    url = re.sub(r'/$', '', url)

    return url


def deduplicate_urls(urls: List[str]) -> List[str]:
    """
    Remove duplicate URLs from list while preserving order.

    Args:
        urls: List of URLs to deduplicate

    Returns:
        List of unique, normalized URLs
    """
    seen = set()
    unique_urls = []

    for url in urls:
        normalized = normalize_url(url)
        if normalized not in seen:
            seen.add(normalized)
            unique_urls.append(normalized)
        else:
            logger.debug(f"Skipping duplicate URL: {url}")

    return unique_urls


def extract_domain(url: str) -> str:
    """
    Extract domain from URL.

    Args:
        url: URL to extract domain from

    Returns:
        Domain name or empty string if invalid
    """
    try:
        domain = urlparse(url).hostname or ""
    except ValueError as e:
        logger.warning(f"Failed to extract domain from URL {url}: {e}")
        return ""
    if domain.startswith('www.'):
        domain = domain[4:]
    return domain


def sanitize_filename(filename: str, max_length: int = 120) -> str:
    """
    Sanitize filename by removing/replacing invalid characters.

    Args:
        filename: Filename to sanitize
        max_length: Maximum length of filename

    Returns:
        Sanitized filename
    """
    # Replace invalid characters with underscores
    sanitized = re.sub(r'[^a-zA-Z0-9\-_.]', '_', filename)

    # Replace multiple underscores with single underscore
    sanitized = re.sub(r'_+', '_', sanitized)

    # Remove leading/trailing underscores and dots
    sanitized = sanitized.strip('_.')

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized or "unnamed"


def create_hash(content: str) -> str:
    """
    Create an MD5 hash of content for unique identification.

    Used for filename suffixes, not for security.

    Args:
        content: Content to hash

    Returns:
        Hexadecimal hash string
    """
    return hashlib.md5(content.encode('utf-8')).hexdigest()
