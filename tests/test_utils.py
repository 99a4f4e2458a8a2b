from structured_scraper.utils import (
    create_hash,
    deduplicate_urls,
    extract_domain,
    is_url,
    normalize_url,
    sanitize_filename,
)


def test_normalize_url():
    assert normalize_url("https://example.com/docs/#intro") == "https://example.com/docs"
    assert normalize_url("https://example.com/a?utm_source=x&page=2") == "https://example.com/a?page=2"
    assert normalize_url("https://example.com/a?utm_source=x", strip_utm=False) == "https://example.com/a?utm_source=x"


def test_deduplicate_urls_keeps_order():
    urls = ["https://b.com/", "https://a.com", "https://b.com#x", "https://a.com/?utm_medium=mail"]
    assert deduplicate_urls(urls) == ["https://b.com", "https://a.com"]


def test_sources():
    assert is_url("https://example.com/page")
    assert not is_url("/tmp/page.html")
    assert not is_url("page.html")
    assert extract_domain("https://www.example.com/page") == "example.com"


def test_sanitize_filename():
    assert sanitize_filename("shop/books?page=1") == "shop_books_page_1"
    assert sanitize_filename("///") == "unnamed"
    assert len(sanitize_filename("x" * 500, max_length=80)) == 80


def test_create_hash():
    assert create_hash("abc") == "900150983cd24fb0d6963f7d28e17f72"
    assert create_hash("abc") != create_hash("abd")
