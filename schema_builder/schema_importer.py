"""
JSON Schema importer for the schema builder.

Rebuilds an editable field tree from an arbitrary JSON Schema document. The
document is duck-typed on ``type``/``properties``/``items``/``format``/
``required``/``enum``/``$ref``; anything the field model cannot express falls
back to a string field and is reported as a diagnostic.

Every imported field gets a fresh id; ids are never taken from the document.
"""

import json
import logging
import re
from dataclasses import dataclass, field as dataclass_field
from typing import Dict, Any, List, Optional, Tuple

from pydantic import ValidationError

from schema_builder.field_model import (
    BaseField,
    ObjectField,
    create_field,
    new_field_id,
)
from schema_builder.schema_compiler import CURRENCY_AMOUNT_PATTERN, CURRENCY_SYMBOLS, currency_pattern
from schema_builder.schema_exceptions import (
    Diagnostic,
    DiagnosticType,
    SchemaParseError,
    report,
)

logger = logging.getLogger(__name__)

DEFAULT_REFINED_FIELD_NAME = 'refinedField'

_FORMAT_KINDS = {
    'date': 'date',
    'date-time': 'datetime',
}

_CURRENCY_PATTERN_SHAPE = re.compile(
    r'^\^(?:\(\?:(?P<symbol>.+)\)\?)?' + re.escape(CURRENCY_AMOUNT_PATTERN) + r'$'
)

# First code wins for shared symbols (JPY/CNY)
_SYMBOL_TO_CODE: Dict[str, str] = {}
for _code, _symbol in CURRENCY_SYMBOLS.items():
    _SYMBOL_TO_CODE.setdefault(_symbol, _code)


@dataclass
class ImportResult:
    """Fields and reusable types rebuilt from a document, plus diagnostics."""
    fields: List[BaseField] = dataclass_field(default_factory=list)
    reusable_types: List[BaseField] = dataclass_field(default_factory=list)
    diagnostics: List[Diagnostic] = dataclass_field(default_factory=list)
    title: Optional[str] = None
    description: Optional[str] = None


def parse_json_schema_text(text: str) -> Dict[str, Any]:
    """
    Parse raw JSON text into a document for the importer.

    Raises:
        SchemaParseError: If the text is not valid JSON or not a JSON object
    """
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        logger.error(f"JSON parsing error in imported schema: {e}")
        raise SchemaParseError(e.msg, e.lineno, e.colno) from e
    if not isinstance(document, dict):
        raise SchemaParseError(f"top level must be an object, got {type(document).__name__}")
    return document


def _split_type(schema_type: Any) -> Tuple[Optional[str], bool, bool]:
    """
    Split a JSON Schema ``type`` into (base type, nullable, ambiguous).

    ``["string", "null"]`` gives ``("string", True, False)``; a union of two
    non-null types keeps the first one and flags the ambiguity.
    """
    if isinstance(schema_type, list):
        non_null = [t for t in schema_type if t != 'null']
        nullable = len(non_null) != len(schema_type)
        base = non_null[0] if non_null else None
        return base, nullable, len(non_null) > 1
    if schema_type == 'null':
        return None, True, False
    return schema_type, False, False


def _example_to_string(example: Any) -> Optional[str]:
    if example is None:
        return None
    if isinstance(example, str):
        return example
    return json.dumps(example, ensure_ascii=False)


def _ref_name(ref: Any) -> Optional[str]:
    """Definition name from a local ``#/definitions/Name`` or ``#/$defs/Name`` ref."""
    if not isinstance(ref, str) or not ref.startswith('#/'):
        return None
    name = ref.rsplit('/', 1)[-1]
    return name.replace('~1', '/').replace('~0', '~') or None


def _currency_code_from_pattern(pattern: Any) -> Tuple[bool, Optional[str]]:
    """
    Recognize the pattern the compiler emits for currency fields.

    Recognition is by shape only: a plain string field whose own pattern is
    exactly ``currency_pattern(None)`` (or a symbol variant of it) imports as
    currency and its pattern is dropped. A ``currency`` keyword on the schema
    takes precedence and is unambiguous.
    """
    if not isinstance(pattern, str):
        return False, None
    match = _CURRENCY_PATTERN_SHAPE.match(pattern)
    if not match:
        return False, None
    escaped_symbol = match.group('symbol')
    if escaped_symbol is None:
        return True, None
    symbol = re.sub(r'\\(.)', r'\1', escaped_symbol)
    code = _SYMBOL_TO_CODE.get(symbol, symbol)
    if currency_pattern(code) != pattern:
        return False, None
    return True, code


class _SchemaImporter:
    """Walks one document; ``type_ids`` maps definition names to reusable type ids."""

    def __init__(self, type_ids: Optional[Dict[str, str]] = None):
        self.type_ids: Dict[str, str] = dict(type_ids or {})
        self.diagnostics: List[Diagnostic] = []

    def load_definitions(self, definitions: Any) -> List[BaseField]:
        """Rebuild reusable types from ``definitions``/``$defs``."""
        if not isinstance(definitions, dict):
            return []

        # First pass: allocate ids so definitions can reference each other
        object_definitions = {}
        for name, definition in definitions.items():
            if isinstance(definition, dict) and (
                definition.get('type') == 'object' or 'properties' in definition
            ):
                object_definitions[name] = definition
                self.type_ids[name] = new_field_id()
            else:
                report(
                    self.diagnostics, DiagnosticType.IMPORT_AMBIGUITY,
                    f"Definition '{name}' is not an object schema and was skipped",
                    f"definitions.{name}"
                )

        # Second pass: build children, resolving references
        reusable_types = []
        for name, definition in object_definitions.items():
            type_id = self.type_ids[name]
            children = self.convert_properties(
                definition.get('properties'), definition.get('required'),
                type_id, f"definitions.{name}"
            )
            reusable_types.append(ObjectField(
                id=type_id,
                name=name,
                is_required=False,
                title=definition.get('title') if isinstance(definition.get('title'), str) else None,
                description=definition.get('description') if isinstance(definition.get('description'), str) else None,
                children=children,
            ))
        return reusable_types

    def convert_properties(self, properties: Any, required: Any,
                           parent_id: Optional[str], path: str = '') -> List[BaseField]:
        if properties is None:
            return []
        if not isinstance(properties, dict):
            report(self.diagnostics, DiagnosticType.IMPORT_AMBIGUITY,
                   "'properties' is not an object and was ignored", path)
            return []

        required_names = {r for r in required if isinstance(r, str)} if isinstance(required, list) else set()
        fields = []
        for name, prop in properties.items():
            prop_path = f"{path}.{name}" if path else name
            if not name:
                report(self.diagnostics, DiagnosticType.IMPORT_AMBIGUITY,
                       "Property with an empty name was skipped", prop_path)
                continue
            fields.append(self.convert_property(name, prop, name in required_names, parent_id, prop_path))
        return fields

    def convert_property(self, name: str, prop: Any, is_required: bool,
                         parent_id: Optional[str], path: str) -> BaseField:
        field_id = new_field_id()
        if not isinstance(prop, dict):
            report(self.diagnostics, DiagnosticType.IMPORT_AMBIGUITY,
                   "Property schema is not an object; defaulting to string", path)
            prop = {}

        base_type, nullable, _ = _split_type(prop.get('type'))
        is_array = base_type == 'array' and '$ref' not in prop
        common: Dict[str, Any] = {
            'id': field_id,
            'name': name,
            'parent_id': parent_id,
            'is_array': is_array,
        }

        if is_array:
            items = prop.get('items')
            if not isinstance(items, dict):
                report(self.diagnostics, DiagnosticType.IMPORT_AMBIGUITY,
                       "Array has no 'items' schema; defaulting items to string", path)
                items = {'type': 'string'}
            kind, attrs, item_nullable = self.convert_element(items, field_id, path)
            for key, value in (('min_items', prop.get('minItems')), ('max_items', prop.get('maxItems'))):
                if isinstance(value, int) and not isinstance(value, bool):
                    common[key] = value
            metadata_source = [items, prop]
            nullable = nullable or item_nullable
        else:
            kind, attrs, _ = self.convert_element(prop, field_id, path)
            metadata_source = [prop]

        for key, schema_key in (('title', 'title'), ('description', 'description')):
            value = next((s[schema_key] for s in metadata_source if isinstance(s.get(schema_key), str)), None)
            if value is not None:
                common[key] = value
        example = next((s['example'] for s in metadata_source if s.get('example') is not None), None)
        if example is not None:
            common['example'] = _example_to_string(example)

        common['is_required'] = is_required and not nullable
        return self.build_field(kind, common, attrs, path)

    def convert_element(self, schema: Dict[str, Any], field_id: str,
                        path: str) -> Tuple[str, Dict[str, Any], bool]:
        """Kind, kind-specific attributes and nullability for one value schema."""
        ref = schema.get('$ref')
        if ref is not None:
            type_name = _ref_name(ref)
            type_id = self.type_ids.get(type_name) if type_name else None
            if type_id is None:
                report(self.diagnostics, DiagnosticType.IMPORT_AMBIGUITY,
                       f"Reference {ref} not found in definitions; defaulting to string", path)
                return 'string', {}, False
            return 'reference', {'reference_id': type_id}, False

        base_type, nullable, ambiguous = _split_type(schema.get('type'))
        if ambiguous:
            report(self.diagnostics, DiagnosticType.IMPORT_AMBIGUITY,
                   f"Type union {schema.get('type')} is not supported; using '{base_type}'", path)
        if base_type is None:
            if 'properties' in schema:
                base_type = 'object'
            elif 'enum' in schema:
                base_type = 'string'

        if base_type == 'object':
            children = self.convert_properties(schema.get('properties'), schema.get('required'), field_id, path)
            return 'object', {'children': children}, nullable

        if base_type in ('number', 'integer'):
            attrs = {}
            for key, schema_key in (('min_value', 'minimum'), ('max_value', 'maximum')):
                value = schema.get(schema_key)
                if isinstance(value, (int, float)) and not isinstance(value, bool):
                    attrs[key] = value
            return 'integer', attrs, nullable

        if base_type == 'string':
            enum = schema.get('enum')
            if isinstance(enum, list):
                options = []
                for option in enum:
                    if option is None:
                        continue
                    option = str(option)
                    if option not in options:
                        options.append(option)
                return 'dropdown', {'options': options}, nullable

            schema_format = schema.get('format')
            if isinstance(schema_format, str) and schema_format in _FORMAT_KINDS:
                return _FORMAT_KINDS[schema_format], {}, nullable
            if schema_format is not None:
                report(self.diagnostics, DiagnosticType.IMPORT_AMBIGUITY,
                       f"Unsupported string format {schema_format!r}; imported as plain string", path)

            # Explicit currency keyword wins over pattern recognition
            currency_keyword = schema.get('currency')
            if isinstance(currency_keyword, str):
                return 'currency', {'currency_code': currency_keyword or None}, nullable

            is_currency, currency_code = _currency_code_from_pattern(schema.get('pattern'))
            if is_currency:
                return 'currency', {'currency_code': currency_code}, nullable

            attrs = {}
            if isinstance(schema.get('pattern'), str):
                attrs['pattern'] = schema['pattern']
            for key, schema_key in (('min_length', 'minLength'), ('max_length', 'maxLength')):
                value = schema.get(schema_key)
                if isinstance(value, int) and not isinstance(value, bool):
                    attrs[key] = value
            return 'string', attrs, nullable

        report(self.diagnostics, DiagnosticType.IMPORT_AMBIGUITY,
               f"Unsupported JSON Schema type {base_type!r}; defaulting to string", path)
        return 'string', {}, nullable

    def build_field(self, kind: str, common: Dict[str, Any],
                    attrs: Dict[str, Any], path: str) -> BaseField:
        """Create the field, dropping constraints the model rejects."""
        try:
            return create_field(kind, **common, **attrs)
        except ValidationError as e:
            report(self.diagnostics, DiagnosticType.IMPORT_AMBIGUITY,
                   f"Invalid constraints were dropped: {e.errors()[0].get('msg')}", path)
        core = {k: common[k] for k in ('id', 'name', 'parent_id', 'is_array', 'is_required') if k in common}
        keep = {k: v for k, v in attrs.items() if k in ('children', 'reference_id', 'currency_code')}
        if kind == 'dropdown':
            keep['options'] = list(dict.fromkeys(attrs.get('options', [])))
        return create_field(kind, **core, **keep)


def import_json_schema(document: Any) -> ImportResult:
    """
    Rebuild fields and reusable types from a JSON Schema document.

    ``definitions`` (or ``$defs``) entries become reusable types and ``$ref``
    properties become reference fields. Required flags come from the enclosing
    ``required`` list; a ``"null"`` member in a type union marks the field
    optional as well.

    Args:
        document: Parsed JSON value claimed to be a JSON Schema

    Returns:
        ImportResult with fields, reusable types and diagnostics
    """
    importer = _SchemaImporter()
    if not isinstance(document, dict):
        report(importer.diagnostics, DiagnosticType.IMPORT_AMBIGUITY,
               f"Document is not a JSON object ({type(document).__name__}); nothing imported")
        return ImportResult(diagnostics=importer.diagnostics)

    definitions = document.get('definitions')
    if definitions is None:
        definitions = document.get('$defs')
    reusable_types = importer.load_definitions(definitions)
    fields = importer.convert_properties(document.get('properties'), document.get('required'), None)

    logger.info(
        f"Imported {len(fields)} root fields and {len(reusable_types)} reusable types "
        f"({len(importer.diagnostics)} diagnostics)"
    )
    return ImportResult(
        fields=fields,
        reusable_types=reusable_types,
        diagnostics=importer.diagnostics,
        title=document.get('title') if isinstance(document.get('title'), str) else None,
        description=document.get('description') if isinstance(document.get('description'), str) else None,
    )


def import_schema_fields(document: Any) -> List[BaseField]:
    """Rebuild only the root fields of a document."""
    return import_json_schema(document).fields


def import_field_schema(schema: Any, reusable_types: Optional[List[BaseField]] = None,
                        name: Optional[str] = None) -> Tuple[BaseField, List[Diagnostic]]:
    """
    Convert one property-level schema into a single field.

    ``$ref`` is resolved by name against the existing reusable types. The field
    is required unless its type union includes ``"null"``.

    Returns:
        Tuple of (field, diagnostics)
    """
    reusable_types = reusable_types or []
    importer = _SchemaImporter({t.name: t.id for t in reusable_types if t.name})
    if not isinstance(schema, dict):
        report(importer.diagnostics, DiagnosticType.IMPORT_AMBIGUITY,
               "Field schema is not an object; defaulting to string")
        schema = {}

    title = schema.get('title') if isinstance(schema.get('title'), str) else None
    field_name = name or title or DEFAULT_REFINED_FIELD_NAME
    field = importer.convert_property(field_name, schema, True, None, field_name)
    logger.debug(f"Imported single field '{field_name}' as kind '{field.kind}'")
    return field, importer.diagnostics
