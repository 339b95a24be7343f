"""
Field model for the schema builder.
Defines the recursive field tree as one pydantic model per field kind, plus the
helpers used to create, walk, look up and serialize it.
"""

import logging
import re
import uuid
from typing import Annotated, Any, Dict, Iterator, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator, model_validator
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

# Supported field kinds
FIELD_KINDS = (
    'string', 'integer', 'float', 'currency', 'date',
    'datetime', 'object', 'dropdown', 'reference'
)
NUMERIC_KINDS = {'integer', 'float', 'currency'}

Number = Union[int, float]


def new_field_id() -> str:
    """Generate a fresh, never reused field identifier."""
    return str(uuid.uuid4())


class BaseField(BaseModel):
    """
    Attributes shared by every field kind.

    The persisted form uses camelCase keys (``isArray``, ``parentId``, ...);
    Python code uses the snake_case attribute names.
    """

    model_config = ConfigDict(
        extra='forbid',
        alias_generator=to_camel,
        populate_by_name=True,
    )

    id: str = Field(default_factory=new_field_id)
    name: str = ''
    is_array: bool = False
    is_required: bool = True
    title: Optional[str] = None
    description: Optional[str] = None
    example: Optional[str] = None
    min_items: Optional[int] = Field(default=None, ge=0)
    max_items: Optional[int] = Field(default=None, ge=0)
    parent_id: Optional[str] = None

    @model_validator(mode='after')
    def _check_item_bounds(self):
        if not self.is_array and (self.min_items is not None or self.max_items is not None):
            raise ValueError('minItems/maxItems are only allowed on array fields')
        return self


class _NumericField(BaseField):
    min_value: Optional[Number] = None
    max_value: Optional[Number] = None


class StringField(BaseField):
    kind: Literal['string'] = 'string'
    pattern: Optional[str] = None
    min_length: Optional[int] = Field(default=None, ge=0)
    max_length: Optional[int] = Field(default=None, ge=0)


class IntegerField(_NumericField):
    kind: Literal['integer'] = 'integer'


class FloatField(_NumericField):
    kind: Literal['float'] = 'float'


class CurrencyField(_NumericField):
    kind: Literal['currency'] = 'currency'
    currency_code: Optional[str] = None


class DateField(BaseField):
    kind: Literal['date'] = 'date'


class DateTimeField(BaseField):
    kind: Literal['datetime'] = 'datetime'


class ObjectField(BaseField):
    kind: Literal['object'] = 'object'
    children: List['SchemaField'] = Field(default_factory=list)


class DropdownField(BaseField):
    kind: Literal['dropdown'] = 'dropdown'
    options: List[str] = Field(default_factory=list)

    @field_validator('options')
    @classmethod
    def _options_are_distinct(cls, v: List[str]) -> List[str]:
        if len(set(v)) != len(v):
            raise ValueError('Dropdown options must be distinct')
        return v


class ReferenceField(BaseField):
    kind: Literal['reference'] = 'reference'
    reference_id: Optional[str] = None


SchemaField = Annotated[
    Union[
        StringField, IntegerField, FloatField, CurrencyField, DateField,
        DateTimeField, ObjectField, DropdownField, ReferenceField,
    ],
    Field(discriminator='kind'),
]

ObjectField.model_rebuild()

FIELD_CLASSES = {
    'string': StringField,
    'integer': IntegerField,
    'float': FloatField,
    'currency': CurrencyField,
    'date': DateField,
    'datetime': DateTimeField,
    'object': ObjectField,
    'dropdown': DropdownField,
    'reference': ReferenceField,
}

_FIELD_ADAPTER = TypeAdapter(SchemaField)
_FOREST_ADAPTER = TypeAdapter(List[SchemaField])


def create_field(kind: str = 'string', **attrs: Any) -> BaseField:
    """
    Create a field of the given kind.

    Args:
        kind: One of FIELD_KINDS
        **attrs: Attributes (snake_case) for the field

    Returns:
        New field instance

    Raises:
        ValueError: If the kind is not supported
    """
    field_class = FIELD_CLASSES.get(kind)
    if field_class is None:
        raise ValueError(f"Unsupported field kind '{kind}'. Supported kinds: {FIELD_KINDS}")
    return field_class(**attrs)


def field_from_dict(data: Dict[str, Any]) -> BaseField:
    """Build a field (and its subtree) from its persisted dictionary form."""
    return _FIELD_ADAPTER.validate_python(data)


def field_to_dict(field: BaseField) -> Dict[str, Any]:
    """Serialize a field (and its subtree) to its persisted dictionary form."""
    return field.model_dump(by_alias=True, exclude_none=True)


def forest_from_list(data: List[Dict[str, Any]]) -> List[BaseField]:
    """Build a list of root fields from persisted dictionaries."""
    return _FOREST_ADAPTER.validate_python(data or [])


def forest_to_list(forest: List[BaseField]) -> List[Dict[str, Any]]:
    """Serialize a list of root fields."""
    return [field_to_dict(field) for field in forest]


def iter_fields(forest: List[BaseField]) -> Iterator[BaseField]:
    """Yield every field in the forest, depth first, parents before children."""
    for field in forest:
        yield field
        if isinstance(field, ObjectField):
            yield from iter_fields(field.children)


def find_field(forest: List[BaseField], field_id: str) -> Optional[BaseField]:
    """Return the field with the given id anywhere in the forest, or None."""
    for field in iter_fields(forest):
        if field.id == field_id:
            return field
    return None


def build_parent_index(forest: List[BaseField]) -> Dict[str, Optional[str]]:
    """
    Map every field id to the id of the object that owns it.

    The index is derived from the owning child lists, not from the
    ``parent_id`` back-references stored on the fields.
    """
    index: Dict[str, Optional[str]] = {}

    def visit(fields: List[BaseField], parent_id: Optional[str]) -> None:
        for field in fields:
            index[field.id] = parent_id
            if isinstance(field, ObjectField):
                visit(field.children, field.id)

    visit(forest, None)
    return index


def to_title_case(name: str) -> str:
    """Turn a property key such as ``invoice_date`` or ``zipCode`` into ``Invoice Date``/``Zip Code``."""
    if not name:
        return ''
    spaced = re.sub(r'([a-z0-9])([A-Z])', r'\1 \2', name)
    words = re.split(r'[\s_\-.]+', spaced)
    return ' '.join(word[:1].upper() + word[1:].lower() for word in words if word)


def display_title(field: BaseField) -> str:
    """Explicit title of the field, or the title-cased form of its name."""
    return field.title or to_title_case(field.name)
