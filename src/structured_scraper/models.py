"""
Schema models for structured_scraper.

Uses Pydantic models to describe extraction schemas: leaf fields, nested
groups and nested-list groups, plus the schema definition that ties them to
a base selector. The JSON form of these models is the schema cache format.
"""

import json
import logging
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, Tag, ValidationError, model_validator

from .errors import ConfigurationError
from .locator import compile_selector

logger = logging.getLogger(__name__)

MAX_NESTING_DEPTH = 16


def format_validation_error(error: ValidationError) -> str:
    """Flatten a pydantic ValidationError into a single readable line."""
    messages = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ()))
        message = item.get("msg", "invalid value")
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages)


class _SchemaModel(BaseModel):
    """Base for schema models: immutable, and invalid input raises ConfigurationError."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    def __init__(self, **data: Any):
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise ConfigurationError(format_validation_error(e)) from e

    @classmethod
    def from_dict(cls, data: Dict[str, Any]):
        """Build a model from its JSON-compatible dict form."""
        if not isinstance(data, dict):
            raise ConfigurationError(f"{cls.__name__} must be a JSON object, got {type(data).__name__}")
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(format_validation_error(e)) from e

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the JSON-compatible dict form."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class LeafField(_SchemaModel):
    """A single named value read from a selector match."""
    name: str = Field(min_length=1)
    selector: str
    type: Literal["text", "attribute", "html"] = "text"
    attribute: Optional[str] = None
    multiple: bool = False
    default: Optional[Any] = None

    @model_validator(mode="after")
    def check_attribute(self) -> "LeafField":
        if self.type == "attribute" and not self.attribute:
            raise ValueError(f"field '{self.name}' has type 'attribute' but no attribute name")
        if self.type != "attribute" and self.attribute is not None:
            raise ValueError(f"field '{self.name}' sets an attribute name but has type '{self.type}'")
        return self


class NestedField(_SchemaModel):
    """A single sub-record scoped to the first match of a sub-selector."""
    name: str = Field(min_length=1)
    selector: str
    type: Literal["nested"] = "nested"
    fields: Tuple["FieldEntry", ...]


class NestedListField(_SchemaModel):
    """One sub-record per match of a sub-selector."""
    name: str = Field(min_length=1)
    selector: str
    type: Literal["nested_list"] = "nested_list"
    fields: Tuple["FieldEntry", ...]


def _field_kind(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        kind = value.get("type", "text")
        if kind in ("nested", "nested_list"):
            return kind
        return "leaf"
    if isinstance(value, NestedField):
        return "nested"
    if isinstance(value, NestedListField):
        return "nested_list"
    if isinstance(value, LeafField):
        return "leaf"
    return None


FieldEntry = Annotated[
    Union[
        Annotated[LeafField, Tag("leaf")],
        Annotated[NestedField, Tag("nested")],
        Annotated[NestedListField, Tag("nested_list")],
    ],
    Discriminator(_field_kind),
]

NestedField.model_rebuild()
NestedListField.model_rebuild()


class SchemaDefinition(_SchemaModel):
    """
    Declarative extraction schema.

    ``base_selector`` enumerates container nodes, ``fields`` is applied to
    each container and ``base_fields`` is resolved once per document and
    merged into every record.
    """
    name: str
    base_selector: str = Field(alias="baseSelector")
    fields: Tuple[FieldEntry, ...]
    base_fields: Tuple[FieldEntry, ...] = Field(default=(), alias="baseFields")
    selector_type: Literal["css", "xpath"] = Field("css", alias="selectorType")

    @model_validator(mode="after")
    def check_structure(self) -> "SchemaDefinition":
        _compile(self.base_selector, self.selector_type, "baseSelector", relative=False)

        for group_name, group in (("baseFields", self.base_fields), ("fields", self.fields)):
            _check_group(group, group_name, self.selector_type, depth=1)

        collisions = {f.name for f in self.base_fields} & {f.name for f in self.fields}
        if collisions:
            raise ValueError(f"baseFields and fields both define: {', '.join(sorted(collisions))}")
        return self

    def field_names(self) -> List[str]:
        """Top-level field names in record order."""
        return [f.name for f in self.base_fields] + [f.name for f in self.fields]

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> "SchemaDefinition":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Schema is not valid JSON: {e}") from e
        return cls.from_dict(data)


def _compile(selector: str, selector_type: str, path: str, relative: bool = True) -> None:
    try:
        compile_selector(selector, selector_type, relative)
    except ConfigurationError as e:
        raise ValueError(f"{path}: {e}") from e


def _check_group(fields: Tuple[Any, ...], path: str, selector_type: str, depth: int) -> None:
    if depth > MAX_NESTING_DEPTH:
        raise ValueError(f"{path}: nesting deeper than {MAX_NESTING_DEPTH} levels")

    seen = set()
    for field in fields:
        if field.name in seen:
            raise ValueError(f"{path}: duplicate field name '{field.name}'")
        seen.add(field.name)

        field_path = f"{path}.{field.name}"
        _compile(field.selector, selector_type, field_path)
        if isinstance(field, (NestedField, NestedListField)):
            _check_group(field.fields, field_path, selector_type, depth + 1)


def load_schema_file(path: Union[str, Path]) -> SchemaDefinition:
    """
    Load a schema definition from a JSON file.

    Raises:
        ConfigurationError: If the file is missing or does not hold a valid schema
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Schema file not found: {path}")

    logger.debug(f"Loading schema from: {path}")
    try:
        return SchemaDefinition.from_json(path.read_text(encoding="utf-8"))
    except ConfigurationError as e:
        raise ConfigurationError(str(e), path=str(path)) from e
