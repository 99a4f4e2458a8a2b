"""
Extraction module for structured_scraper.

Handles structured data extraction using CSS/XPath schemas.
"""

import copy
import logging
from typing import Any, Dict, List, Union

from .assembler import RecordAssembler
from .document import Document, as_document
from .locator import select_elements
from .models import SchemaDefinition

logger = logging.getLogger(__name__)


class SchemaExtractor:
    """Handles CSS/XPath schema extraction."""

    def extract(self, document: Union[str, Document], schema: SchemaDefinition) -> List[Dict[str, Any]]:
        """
        Extract structured records from a document using a schema.

        Args:
            document: HTML content or a parsed Document
            schema: Extraction schema

        Returns:
            One record per container matched by the base selector, in
            document order. An empty list means nothing matched.
        """
        doc = as_document(document)
        root = doc.tree
        assembler = RecordAssembler(schema.selector_type)

        base_values = assembler.assemble(root, schema.base_fields) if schema.base_fields else {}
        containers = select_elements(root, schema.base_selector, schema.selector_type, relative=False)

        records = []
        for container in containers:
            record = copy.deepcopy(base_values)
            record.update(assembler.assemble(container, schema.fields))
            records.append(record)

        logger.debug(f"Schema '{schema.name}' extracted {len(records)} records from {doc.url or 'document'}")
        return records
