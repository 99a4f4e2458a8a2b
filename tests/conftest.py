import copy

import pytest


PRODUCT_HTML = """
<html>
  <head>
    <title>Catalog</title>
    <style>.price { color: red; }</style>
  </head>
  <body>
    <div id="catalog">
      <h1 class="category">Books</h1>
      <div class="product" data-sku="A1">
        <h2 class="title">  Dune  </h2>
        <span class="price">$9.99</span>
        <a class="link" href="/dune">more</a>
        <div class="desc"><b>Classic</b> sci-fi</div>
        <ul class="tags"><li>scifi</li><li>classic</li></ul>
        <div class="seller"><span class="name">Acme</span><span class="rating">4.5</span></div>
        <div class="review"><span class="author">Ann</span><p class="body">Great</p></div>
        <div class="review"><span class="author">Bob</span><p class="body">Long</p></div>
      </div>
      <div class="product" data-sku="B2">
        <h2 class="title">Emma</h2>
        <span class="price">$5.00</span>
        <a class="link">no link</a>
        <ul class="tags"></ul>
      </div>
    </div>
    <p class="contact">Contact sales@example.com or 555-123-4567</p>
    <script>var hidden = "script@example.com";</script>
  </body>
</html>
"""

PRODUCT_SCHEMA = {
    "name": "products",
    "baseSelector": "div.product",
    "baseFields": [
        {"name": "category", "selector": "h1.category", "type": "text"},
    ],
    "fields": [
        {"name": "sku", "selector": "div.product", "type": "attribute", "attribute": "data-sku"},
        {"name": "title", "selector": "h2.title", "type": "text"},
        {"name": "price", "selector": ".price"},
        {"name": "url", "selector": "a.link", "type": "attribute", "attribute": "href"},
        {"name": "description", "selector": ".desc", "type": "html"},
        {"name": "tags", "selector": "ul.tags li", "multiple": True},
        {
            "name": "seller",
            "selector": ".seller",
            "type": "nested",
            "fields": [
                {"name": "name", "selector": ".name"},
                {"name": "rating", "selector": ".rating"},
            ],
        },
        {
            "name": "reviews",
            "selector": ".review",
            "type": "nested_list",
            "fields": [
                {"name": "author", "selector": ".author"},
                {"name": "body", "selector": ".body"},
            ],
        },
    ],
}

EXPECTED_RECORDS = [
    {
        "category": "Books",
        "sku": "A1",
        "title": "Dune",
        "price": "$9.99",
        "url": "/dune",
        "description": "<b>Classic</b> sci-fi",
        "tags": ["scifi", "classic"],
        "seller": {"name": "Acme", "rating": "4.5"},
        "reviews": [
            {"author": "Ann", "body": "Great"},
            {"author": "Bob", "body": "Long"},
        ],
    },
    {
        "category": "Books",
        "sku": "B2",
        "title": "Emma",
        "price": "$5.00",
        "tags": [],
        "reviews": [],
    },
]


@pytest.fixture
def product_html():
    return PRODUCT_HTML


@pytest.fixture
def product_schema_dict():
    return copy.deepcopy(PRODUCT_SCHEMA)


@pytest.fixture
def expected_records():
    return copy.deepcopy(EXPECTED_RECORDS)


@pytest.fixture
def product_html_file(tmp_path):
    path = tmp_path / "products.html"
    path.write_text(PRODUCT_HTML, encoding="utf-8")
    return path
