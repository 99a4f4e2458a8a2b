import json

import pytest
from pydantic import ValidationError

from structured_scraper.errors import ConfigurationError
from structured_scraper.models import (
    MAX_NESTING_DEPTH,
    LeafField,
    NestedField,
    NestedListField,
    SchemaDefinition,
    load_schema_file,
)


def _schema(**overrides):
    data = {
        "name": "items",
        "baseSelector": "div.item",
        "fields": [{"name": "title", "selector": "h2"}],
    }
    data.update(overrides)
    return data


class TestSchemaValidation:
    """Schemas are validated when they are built."""

    def test_parses_field_kinds(self, product_schema_dict):
        schema = SchemaDefinition.from_dict(product_schema_dict)

        kinds = {field.name: type(field) for field in schema.fields}
        assert kinds["title"] is LeafField
        assert kinds["seller"] is NestedField
        assert kinds["reviews"] is NestedListField
        assert schema.selector_type == "css"
        assert schema.field_names()[0] == "category"

    def test_attribute_requires_name(self):
        with pytest.raises(ConfigurationError, match="attribute"):
            SchemaDefinition.from_dict(_schema(fields=[{"name": "url", "selector": "a", "type": "attribute"}]))

    def test_attribute_name_only_for_attribute_type(self):
        with pytest.raises(ConfigurationError):
            LeafField(name="url", selector="a", type="text", attribute="href")

    def test_unknown_field_type(self):
        with pytest.raises(ConfigurationError):
            SchemaDefinition.from_dict(_schema(fields=[{"name": "x", "selector": "a", "type": "regex"}]))

    def test_malformed_css(self):
        with pytest.raises(ConfigurationError, match="fields.title"):
            SchemaDefinition.from_dict(_schema(fields=[{"name": "title", "selector": "h2["}]))

    def test_malformed_base_selector(self):
        with pytest.raises(ConfigurationError, match="baseSelector"):
            SchemaDefinition.from_dict(_schema(baseSelector="//div[", selectorType="xpath"))

    def test_malformed_nested_selector(self):
        fields = [{
            "name": "seller",
            "selector": ".seller",
            "type": "nested",
            "fields": [{"name": "name", "selector": "span[["}],
        }]
        with pytest.raises(ConfigurationError, match="seller.name"):
            SchemaDefinition.from_dict(_schema(fields=fields))

    @pytest.mark.parametrize("selector", ["//q:span", "foo:bar(.)"])
    def test_xpath_that_fails_on_evaluation(self, selector):
        with pytest.raises(ConfigurationError, match="fields.a"):
            SchemaDefinition.from_dict(_schema(
                selectorType="xpath",
                baseSelector="//div",
                fields=[{"name": "a", "selector": selector}],
            ))

    def test_duplicate_names(self):
        fields = [{"name": "title", "selector": "h2"}, {"name": "title", "selector": "h3"}]
        with pytest.raises(ConfigurationError, match="duplicate"):
            SchemaDefinition.from_dict(_schema(fields=fields))

    def test_duplicate_names_in_nested_group(self):
        fields = [{
            "name": "reviews",
            "selector": ".review",
            "type": "nested_list",
            "fields": [{"name": "a", "selector": "b"}, {"name": "a", "selector": "i"}],
        }]
        with pytest.raises(ConfigurationError, match="duplicate"):
            SchemaDefinition.from_dict(_schema(fields=fields))

    def test_same_name_at_different_levels_is_allowed(self):
        fields = [
            {"name": "name", "selector": "h2"},
            {"name": "seller", "selector": ".seller", "type": "nested", "fields": [{"name": "name", "selector": "b"}]},
        ]
        schema = SchemaDefinition.from_dict(_schema(fields=fields))
        assert schema.field_names() == ["name", "seller"]

    def test_base_fields_collision(self):
        with pytest.raises(ConfigurationError, match="title"):
            SchemaDefinition.from_dict(_schema(baseFields=[{"name": "title", "selector": "h1"}]))

    def test_nesting_depth_limit(self):
        group = [{"name": "leaf", "selector": "span"}]
        for level in range(MAX_NESTING_DEPTH):
            group = [{"name": f"level{level}", "selector": "div", "type": "nested", "fields": group}]
        with pytest.raises(ConfigurationError, match="nesting"):
            SchemaDefinition.from_dict(_schema(fields=group))

    def test_empty_name(self):
        with pytest.raises(ConfigurationError):
            SchemaDefinition.from_dict(_schema(fields=[{"name": "", "selector": "h2"}]))

    def test_not_a_dict(self):
        with pytest.raises(ConfigurationError):
            SchemaDefinition.from_dict(["not", "a", "schema"])

    def test_schema_is_immutable(self, product_schema_dict):
        schema = SchemaDefinition.from_dict(product_schema_dict)
        with pytest.raises(ValidationError):
            schema.name = "changed"


class TestSchemaSerialization:
    """Dict and JSON forms of a schema."""

    def test_dict_round_trip(self, product_schema_dict):
        schema = SchemaDefinition.from_dict(product_schema_dict)
        assert SchemaDefinition.from_dict(schema.to_dict()) == schema

    def test_to_dict_uses_camel_case(self, product_schema_dict):
        data = SchemaDefinition.from_dict(product_schema_dict).to_dict()
        assert data["baseSelector"] == "div.product"
        assert data["selectorType"] == "css"
        assert data["baseFields"][0]["name"] == "category"

    def test_json_round_trip(self, product_schema_dict):
        schema = SchemaDefinition.from_dict(product_schema_dict)
        assert SchemaDefinition.from_json(schema.to_json()) == schema

    def test_from_json_rejects_invalid_json(self):
        with pytest.raises(ConfigurationError, match="JSON"):
            SchemaDefinition.from_json("{not json")

    def test_load_schema_file(self, tmp_path, product_schema_dict):
        path = tmp_path / "schema.json"
        path.write_text(json.dumps(product_schema_dict), encoding="utf-8")
        assert load_schema_file(path).name == "products"

    def test_load_schema_file_reports_path(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text(json.dumps(_schema(baseSelector="div[")), encoding="utf-8")
        with pytest.raises(ConfigurationError) as exc_info:
            load_schema_file(path)
        assert exc_info.value.path == str(path)

    def test_load_missing_schema_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_schema_file(tmp_path / "missing.json")
