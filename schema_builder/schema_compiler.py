"""
JSON Schema compiler for the schema builder.

Turns the field tree plus the reusable type registry into a JSON Schema
document (draft-07 conventions): nested object definitions, array wrapping,
per-kind constraints and ``$ref``/``definitions`` for reusable types.

Compilation is pure: the same input always yields the same document.
"""

import json
import logging
import re
from dataclasses import dataclass, field as dataclass_field
from typing import Dict, Any, List, Optional, Set

from schema_builder.field_model import (
    BaseField,
    ObjectField,
    ReferenceField,
    display_title,
)
from schema_builder.schema_exceptions import Diagnostic, DiagnosticType, report

logger = logging.getLogger(__name__)

DEFINITIONS_KEY = 'definitions'

DATE_PATTERN = r'^\d{4}-\d{2}-\d{2}$'
DATETIME_PATTERN = r'^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:Z|[+-]\d{2}:\d{2})$'
CURRENCY_AMOUNT_PATTERN = r'\s*\d+(?:\.\d{1,2})?$'

INVALID_REFERENCE_SCHEMA = {
    "type": "object",
    "description": "Invalid or undefined reference"
}

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CAD": "C$",
    "AUD": "A$",
    "CHF": "CHF",
    "CNY": "¥",
    "INR": "₹",
    "BRL": "R$",
}

# JSON Schema type and format for each primitive kind
_KIND_TYPES = {
    'string': ('string', None),
    'integer': ('number', None),
    'float': ('number', None),
    'currency': ('string', None),
    'date': ('string', 'date'),
    'datetime': ('string', 'date-time'),
    'dropdown': ('string', None),
    'object': ('object', None),
}


def get_currency_symbol(currency_code: Optional[str]) -> str:
    """Symbol for a currency code, falling back to the code itself."""
    if not currency_code:
        return ''
    return CURRENCY_SYMBOLS.get(currency_code, currency_code)


def currency_pattern(currency_code: Optional[str]) -> str:
    """
    Regex for a currency amount: optional symbol, optional whitespace, digits
    and an optional one or two digit decimal part.
    """
    symbol = get_currency_symbol(currency_code)
    prefix = f"(?:{re.escape(symbol)})?" if symbol else ''
    return f"^{prefix}{CURRENCY_AMOUNT_PATTERN}"


def definition_ref(name: str) -> str:
    # JSON Pointer escaping; definitions stay keyed by the raw name
    return f"#/{DEFINITIONS_KEY}/{name.replace('~', '~0').replace('/', '~1')}"


@dataclass
class CompileResult:
    """Compiled document plus any advisory diagnostics."""
    document: Dict[str, Any]
    diagnostics: List[Diagnostic] = dataclass_field(default_factory=list)


class _CompileContext:
    """State for one compilation: definitions built so far and in-progress types."""

    def __init__(self, reusable_types: List[BaseField], include_default_titles: bool = False):
        self.reusable_types = reusable_types
        self.types_by_id = {t.id: t for t in reusable_types}
        self.include_default_titles = include_default_titles
        self.definitions: Dict[str, Dict[str, Any]] = {}
        self.compiled_ids: Set[str] = set()
        self.in_progress: Set[str] = set()
        self.diagnostics: List[Diagnostic] = []

    def resolve(self, field: ReferenceField, path: str) -> Optional[str]:
        """Definition name for a reference, compiling the target on demand."""
        target = self.types_by_id.get(field.reference_id) if field.reference_id else None
        if target is None or not target.name:
            report(
                self.diagnostics, DiagnosticType.DANGLING_REFERENCE,
                f"Reference '{field.name}' points to an unknown reusable type",
                path, reference_id=field.reference_id
            )
            return None
        if target.id in self.compiled_ids:
            return target.name
        if target.id in self.in_progress:
            report(
                self.diagnostics, DiagnosticType.CIRCULAR_DEFINITION,
                f"Reusable type '{target.name}' is referenced while its own definition "
                f"is being built; the reference was replaced by a placeholder",
                path, reference_id=target.id
            )
            return None
        self.compile_definition(target)
        return target.name

    def compile_definition(self, reusable_type: BaseField) -> None:
        self.in_progress.add(reusable_type.id)
        try:
            schema: Dict[str, Any] = {"type": "object"}
            if reusable_type.title:
                schema["title"] = reusable_type.title
            if reusable_type.description:
                schema["description"] = reusable_type.description
            children = reusable_type.children if isinstance(reusable_type, ObjectField) else []
            schema.update(self.compile_properties(children, f"{DEFINITIONS_KEY}.{reusable_type.name}"))
        finally:
            self.in_progress.discard(reusable_type.id)
        self.definitions[reusable_type.name] = schema
        self.compiled_ids.add(reusable_type.id)

    def compile_properties(self, fields: List[BaseField], path: str = '') -> Dict[str, Any]:
        """``properties``/``required``/``additionalProperties`` for a list of fields."""
        properties: Dict[str, Any] = {}
        required: List[str] = []
        for field in fields:
            if not field.name:
                continue
            field_path = f"{path}.{field.name}" if path else field.name
            properties[field.name] = self.compile_field(field, field_path)
            if field.is_required and field.name not in required:
                required.append(field.name)
        return {
            "properties": properties,
            "required": required,
            "additionalProperties": False
        }

    def compile_field(self, field: BaseField, path: str = '') -> Dict[str, Any]:
        item_schema = self.compile_item(field, path)
        if not field.is_array:
            return item_schema

        array_schema: Dict[str, Any] = {"type": "array", "items": item_schema}
        if field.min_items is not None:
            array_schema["minItems"] = field.min_items
        if field.max_items is not None:
            array_schema["maxItems"] = field.max_items
        return array_schema

    def compile_item(self, field: BaseField, path: str = '') -> Dict[str, Any]:
        """Schema for a single value of the field, ignoring ``is_array``."""
        if isinstance(field, ReferenceField):
            name = self.resolve(field, path)
            if name is None:
                return dict(INVALID_REFERENCE_SCHEMA)
            return {"$ref": definition_ref(name)}

        base_type, schema_format = _KIND_TYPES[field.kind]
        schema: Dict[str, Any] = {
            "type": base_type if field.is_required else [base_type, "null"]
        }
        if schema_format:
            schema["format"] = schema_format

        title = field.title
        if title is None and self.include_default_titles:
            title = display_title(field) or None
        if title:
            schema["title"] = title
        if field.description:
            schema["description"] = field.description
        if field.example is not None:
            schema["example"] = field.example

        kind = field.kind
        if kind in ('integer', 'float'):
            if field.min_value is not None:
                schema["minimum"] = field.min_value
            if field.max_value is not None:
                schema["maximum"] = field.max_value
        elif kind == 'string':
            if field.pattern:
                schema["pattern"] = field.pattern
            if field.min_length is not None:
                schema["minLength"] = field.min_length
            if field.max_length is not None:
                schema["maxLength"] = field.max_length
        elif kind == 'currency':
            schema["pattern"] = currency_pattern(field.currency_code)
        elif kind == 'date':
            schema["pattern"] = DATE_PATTERN
        elif kind == 'datetime':
            schema["pattern"] = DATETIME_PATTERN
        elif kind == 'dropdown':
            if field.options:
                schema["enum"] = list(field.options)
        elif kind == 'object':
            schema.update(self.compile_properties(field.children, path))
        return schema


def compile_with_diagnostics(
    forest: List[BaseField],
    reusable_types: Optional[List[BaseField]] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
    include_default_titles: bool = False
) -> CompileResult:
    """
    Compile the forest and reusable types into a JSON Schema document.

    Definitions are built first (on demand, so a type referenced by another is
    compiled before it), then the main forest. A reusable type referenced again
    while its own definition is still being built gets the invalid-reference
    placeholder in that spot, which bounds recursion by the number of types.

    Args:
        forest: Root fields of the schema
        reusable_types: Registry of reusable object types
        title: Optional document title
        description: Optional document description
        include_default_titles: Emit title-cased names when a field has no title

    Returns:
        CompileResult with the document and diagnostics
    """
    reusable_types = reusable_types or []
    context = _CompileContext(reusable_types, include_default_titles)

    for reusable_type in reusable_types:
        if reusable_type.name and reusable_type.id not in context.compiled_ids:
            context.compile_definition(reusable_type)

    document: Dict[str, Any] = {"type": "object"}
    if title:
        document["title"] = title
    if description:
        document["description"] = description
    document.update(context.compile_properties(forest))

    if context.definitions:
        # Keep registry order regardless of on-demand compilation order
        document[DEFINITIONS_KEY] = {
            t.name: context.definitions[t.name]
            for t in reusable_types
            if t.name in context.definitions
        }

    logger.debug(
        f"Compiled schema with {len(document['properties'])} properties, "
        f"{len(context.definitions)} definitions, {len(context.diagnostics)} diagnostics"
    )
    return CompileResult(document, context.diagnostics)


def compile_schema(
    forest: List[BaseField],
    reusable_types: Optional[List[BaseField]] = None,
    title: Optional[str] = None,
    description: Optional[str] = None,
    include_default_titles: bool = False
) -> Dict[str, Any]:
    """Compile and return only the JSON Schema document."""
    return compile_with_diagnostics(
        forest, reusable_types, title, description, include_default_titles
    ).document


def compile_field(
    field: BaseField,
    reusable_types: Optional[List[BaseField]] = None,
    include_default_titles: bool = False
) -> Dict[str, Any]:
    """Compile a single field's schema (as it would appear under ``properties``)."""
    context = _CompileContext(reusable_types or [], include_default_titles)
    return context.compile_field(field, field.name)


def to_json(document: Dict[str, Any]) -> str:
    """Render a document for display or export."""
    return json.dumps(document, indent=2, ensure_ascii=False)
