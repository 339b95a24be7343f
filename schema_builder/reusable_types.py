"""
Reusable type registry.

Reusable types are named root object fields kept beside the main tree.
Reference fields point at them by id; deleting a type leaves those
references dangling.
"""

import logging
from typing import List, Optional

from schema_builder.field_model import (
    BaseField,
    ObjectField,
    ReferenceField,
    iter_fields,
)

logger = logging.getLogger(__name__)

DEFAULT_TYPE_NAME = 'UnnamedType'


def unique_type_name(base_name: str, reusable_types: List[BaseField],
                     exclude_id: Optional[str] = None) -> str:
    """
    Return ``base_name`` or the first free ``base_name1``, ``base_name2``, ...

    Args:
        base_name: Preferred name; empty names become DEFAULT_TYPE_NAME
        reusable_types: Current registry
        exclude_id: Type id to ignore (a type never collides with itself)
    """
    base_name = (base_name or '').strip() or DEFAULT_TYPE_NAME
    taken = {t.name for t in reusable_types if t.id != exclude_id}
    candidate = base_name
    counter = 1
    while candidate in taken:
        candidate = f"{base_name}{counter}"
        counter += 1
    return candidate


def add_reusable_type(reusable_types: List[BaseField],
                      name: Optional[str] = None) -> List[BaseField]:
    """Append an empty object type, named ``NewType<N>`` unless a name is given."""
    base_name = name or f"NewType{len(reusable_types) + 1}"
    new_type = ObjectField(
        name=unique_type_name(base_name, reusable_types),
        is_array=False,
        is_required=False,
        children=[],
    )
    logger.info(f"Added reusable type '{new_type.name}'")
    return [*reusable_types, new_type]


def rename_reusable_type(reusable_types: List[BaseField], type_id: str,
                         name: str) -> List[BaseField]:
    """Rename a type, suffixing the name when another type already uses it."""
    result = []
    found = False
    for reusable_type in reusable_types:
        if reusable_type.id == type_id:
            found = True
            new_name = unique_type_name(name, reusable_types, exclude_id=type_id)
            reusable_type = reusable_type.model_copy(update={'name': new_name})
        result.append(reusable_type)
    if not found:
        logger.debug(f"rename_reusable_type: type {type_id} not found")
        return reusable_types
    return result


def remove_reusable_type(reusable_types: List[BaseField], type_id: str) -> List[BaseField]:
    """Delete a type; references to it become dangling."""
    remaining = [t for t in reusable_types if t.id != type_id]
    if len(remaining) == len(reusable_types):
        logger.debug(f"remove_reusable_type: type {type_id} not found")
        return reusable_types
    return remaining


def find_reusable_type(reusable_types: List[BaseField], type_id: Optional[str]) -> Optional[BaseField]:
    if type_id is None:
        return None
    return next((t for t in reusable_types if t.id == type_id), None)


def find_reusable_type_by_name(reusable_types: List[BaseField], name: str) -> Optional[BaseField]:
    return next((t for t in reusable_types if t.name == name), None)


def references_to(forest: List[BaseField], type_id: str) -> List[ReferenceField]:
    """List the reference fields in the forest that point at ``type_id``."""
    return [
        field for field in iter_fields(forest)
        if isinstance(field, ReferenceField) and field.reference_id == type_id
    ]


def find_dangling_references(forest: List[BaseField],
                             reusable_types: List[BaseField]) -> List[ReferenceField]:
    """
    List reference fields whose target is missing from the registry.

    Both the main tree and the fields nested inside reusable types are checked.
    """
    known_ids = {t.id for t in reusable_types}
    return [
        field for field in iter_fields([*forest, *reusable_types])
        if isinstance(field, ReferenceField) and field.reference_id not in known_ids
    ]
