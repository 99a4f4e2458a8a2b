"""
Record assembly for structured_scraper.

Applies a field group to a container node and builds one record. A leaf
whose value is missing is left out of the record, unless the field declares
a default. Nested groups that find no sub-container are left out as well;
nested lists that find none become an empty list.
"""

import logging
from typing import Any, Dict, Sequence

from lxml import etree

from .locator import locate, select_elements
from .models import LeafField, NestedField, NestedListField

logger = logging.getLogger(__name__)


class RecordAssembler:
    """Builds records from containers for one selector dialect."""

    def __init__(self, selector_type: str = "css"):
        self.selector_type = selector_type

    def assemble(self, container: etree._Element, fields: Sequence[Any]) -> Dict[str, Any]:
        """
        Build a record from a container.

        Args:
            container: Node the field selectors are evaluated against
            fields: Field group, in declaration order

        Returns:
            Record whose key order follows the field group
        """
        record: Dict[str, Any] = {}
        for field in fields:
            value = self._resolve(container, field)
            if value is not None:
                record[field.name] = value
        return record

    def _resolve(self, container: etree._Element, field: Any) -> Any:
        if isinstance(field, NestedListField):
            return [
                self.assemble(sub_container, field.fields)
                for sub_container in select_elements(container, field.selector, self.selector_type)
            ]

        if isinstance(field, NestedField):
            sub_containers = select_elements(container, field.selector, self.selector_type)
            if not sub_containers:
                logger.debug(f"No container for nested field '{field.name}'")
                return None
            return self.assemble(sub_containers[0], field.fields)

        if isinstance(field, LeafField):
            value = locate(container, field, self.selector_type)
            if value is None:
                return field.default
            return value

        raise TypeError(f"Unknown field kind: {type(field).__name__}")
