"""
Tree mutation engine for the schema builder.

Every function takes the current list of root fields and returns a new list;
the input is never modified. Subtrees that an operation does not touch are
shared between the old and the new tree. Operations addressed at an unknown id
return the input list itself (same object), so callers can detect a no-op with
an identity check.

The same functions work on the reusable type list, since reusable types are
root object fields.
"""

import logging
from typing import Callable, List, Optional, Tuple

from schema_builder.field_model import (
    BaseField,
    FIELD_CLASSES,
    NUMERIC_KINDS,
    ObjectField,
    ReferenceField,
    StringField,
    find_field,
    new_field_id,
)
from schema_builder.reusable_types import unique_type_name

logger = logging.getLogger(__name__)

MOVE_DIRECTIONS = ('up', 'down')

# Attributes every kind carries over on a kind change
_SHARED_ATTRIBUTES = (
    'id', 'name', 'is_array', 'is_required', 'title', 'description',
    'example', 'min_items', 'max_items', 'parent_id'
)


def _replace_children(
    fields: List[BaseField],
    parent_id: str,
    transform: Callable[[List[BaseField]], List[BaseField]]
) -> Tuple[List[BaseField], bool]:
    """Apply ``transform`` to the children of the object with id ``parent_id``."""
    for index, field in enumerate(fields):
        if field.id == parent_id:
            if not isinstance(field, ObjectField):
                return fields, False
            new_children = transform(field.children)
            if new_children is field.children:
                return fields, False
            updated = field.model_copy(update={'children': new_children})
            return [*fields[:index], updated, *fields[index + 1:]], True
        if isinstance(field, ObjectField):
            new_children, changed = _replace_children(field.children, parent_id, transform)
            if changed:
                updated = field.model_copy(update={'children': new_children})
                return [*fields[:index], updated, *fields[index + 1:]], True
    return fields, False


def _replace_field(
    fields: List[BaseField],
    field_id: str,
    replacement: Callable[[BaseField], Optional[BaseField]]
) -> Tuple[List[BaseField], bool]:
    """Replace (or delete, when ``replacement`` returns None) the field with ``field_id``."""
    for index, field in enumerate(fields):
        if field.id == field_id:
            new_field = replacement(field)
            if new_field is None:
                return [*fields[:index], *fields[index + 1:]], True
            return [*fields[:index], new_field, *fields[index + 1:]], True
        if isinstance(field, ObjectField):
            new_children, changed = _replace_field(field.children, field_id, replacement)
            if changed:
                updated = field.model_copy(update={'children': new_children})
                return [*fields[:index], updated, *fields[index + 1:]], True
    return fields, False


def _sibling_list_transform(
    tree: List[BaseField],
    parent_id: Optional[str],
    transform: Callable[[List[BaseField]], List[BaseField]]
) -> List[BaseField]:
    """Apply ``transform`` to the root list or to the children of ``parent_id``."""
    if parent_id is None:
        return transform(tree)
    new_tree, changed = _replace_children(tree, parent_id, transform)
    return new_tree if changed else tree


def add_field(tree: List[BaseField], parent_id: Optional[str] = None) -> List[BaseField]:
    """
    Append a blank string field to the children of ``parent_id`` or to the roots.

    Args:
        tree: Current root fields
        parent_id: Id of an object field, or None for the root list

    Returns:
        New tree; the input tree when ``parent_id`` is not an object in the tree
    """
    new_field = StringField(name='', is_array=False, is_required=True, parent_id=parent_id)
    if parent_id is None:
        return [*tree, new_field]

    new_tree, changed = _replace_children(tree, parent_id, lambda children: [*children, new_field])
    if not changed:
        logger.debug(f"add_field: parent {parent_id} is not an object field in the tree")
        return tree
    return new_tree


def update_field(tree: List[BaseField], updated_field: BaseField) -> List[BaseField]:
    """Replace the field whose id matches ``updated_field.id`` anywhere in the tree."""
    new_tree, changed = _replace_field(tree, updated_field.id, lambda _: updated_field)
    if not changed:
        logger.debug(f"update_field: field {updated_field.id} not found")
        return tree
    return new_tree


def remove_field(tree: List[BaseField], field_id: str) -> List[BaseField]:
    """Delete the field with ``field_id`` and its whole subtree."""
    new_tree, changed = _replace_field(tree, field_id, lambda _: None)
    if not changed:
        logger.debug(f"remove_field: field {field_id} not found")
        return tree
    return new_tree


def move_field(
    tree: List[BaseField],
    field_id: str,
    direction: str,
    parent_id: Optional[str] = None
) -> List[BaseField]:
    """
    Swap a field with its neighbour in the sibling list identified by ``parent_id``.

    Moving the first field up or the last field down leaves the tree unchanged.

    Raises:
        ValueError: If direction is not 'up' or 'down'
    """
    if direction not in MOVE_DIRECTIONS:
        raise ValueError(f"Invalid move direction '{direction}'. Expected one of {MOVE_DIRECTIONS}")

    def swap(siblings: List[BaseField]) -> List[BaseField]:
        index = next((i for i, f in enumerate(siblings) if f.id == field_id), -1)
        if index == -1:
            logger.debug(f"move_field: field {field_id} not in sibling list of {parent_id}")
            return siblings
        target = index - 1 if direction == 'up' else index + 1
        if target < 0 or target >= len(siblings):
            return siblings
        moved = list(siblings)
        moved[index], moved[target] = moved[target], moved[index]
        return moved

    return _sibling_list_transform(tree, parent_id, swap)


def _array_move(items: List[BaseField], old_index: int, new_index: int) -> List[BaseField]:
    moved = list(items)
    moved.insert(new_index, moved.pop(old_index))
    return moved


def reorder_field(tree: List[BaseField], active_id: str, over_id: str) -> List[BaseField]:
    """
    Move ``active_id`` to the position of ``over_id`` (drag and drop).

    Both ids must be in the same sibling list; otherwise the tree is returned
    unchanged.
    """
    if active_id == over_id:
        return tree

    def reorder(fields: List[BaseField]) -> Tuple[List[BaseField], bool]:
        ids = [f.id for f in fields]
        if active_id in ids and over_id in ids:
            return _array_move(fields, ids.index(active_id), ids.index(over_id)), True
        for index, field in enumerate(fields):
            if isinstance(field, ObjectField):
                new_children, changed = reorder(field.children)
                if changed:
                    updated = field.model_copy(update={'children': new_children})
                    return [*fields[:index], updated, *fields[index + 1:]], True
        return fields, False

    new_tree, changed = reorder(tree)
    if not changed:
        logger.debug(f"reorder_field: {active_id} and {over_id} are not siblings")
        return tree
    return new_tree


def copy_field_with_new_ids(field: BaseField, parent_id: Optional[str] = None) -> BaseField:
    """Deep copy a field, giving it and every descendant a fresh id."""
    new_id = new_field_id()
    update = {'id': new_id, 'parent_id': parent_id}
    if isinstance(field, ObjectField):
        update['children'] = [copy_field_with_new_ids(child, new_id) for child in field.children]
    return field.model_copy(update=update, deep=True)


def duplicate_field(tree: List[BaseField], field_id: str) -> List[BaseField]:
    """Insert a copy of the field (fresh ids, name suffixed ``_copy``) right after it."""
    original = find_field(tree, field_id)
    if original is None:
        logger.debug(f"duplicate_field: field {field_id} not found")
        return tree

    duplicate = copy_field_with_new_ids(original, original.parent_id)
    if original.name:
        duplicate = duplicate.model_copy(update={'name': f"{original.name}_copy"})

    def insert_after(siblings: List[BaseField]) -> List[BaseField]:
        index = next(i for i, f in enumerate(siblings) if f.id == field_id)
        return [*siblings[:index + 1], duplicate, *siblings[index + 1:]]

    if any(f.id == field_id for f in tree):
        return insert_after(tree)
    for parent in _iter_objects(tree):
        if any(child.id == field_id for child in parent.children):
            new_tree, _ = _replace_children(tree, parent.id, insert_after)
            return new_tree
    return tree


def _iter_objects(fields: List[BaseField]):
    for field in fields:
        if isinstance(field, ObjectField):
            yield field
            yield from _iter_objects(field.children)


def change_field_kind(field: BaseField, kind: str) -> BaseField:
    """
    Return the field converted to another kind.

    Shared attributes are kept; kind-specific attributes survive only when the
    new kind also has them (numeric bounds between integer/float/currency).
    Everything else is dropped.

    Raises:
        ValueError: If the kind is not supported
    """
    field_class = FIELD_CLASSES.get(kind)
    if field_class is None:
        raise ValueError(f"Unsupported field kind '{kind}'")
    if field.kind == kind:
        return field

    attrs = {name: getattr(field, name) for name in _SHARED_ATTRIBUTES}
    if kind in NUMERIC_KINDS and field.kind in NUMERIC_KINDS:
        attrs['min_value'] = field.min_value
        attrs['max_value'] = field.max_value
    return field_class(**attrs)


def set_field_array(field: BaseField, is_array: bool) -> BaseField:
    """Toggle the array flag, dropping item bounds when the field stops being an array."""
    update = {'is_array': is_array}
    if not is_array:
        update['min_items'] = None
        update['max_items'] = None
    return field.model_copy(update=update)


def promote_to_reusable_type(
    tree: List[BaseField],
    reusable_types: List[BaseField],
    field_id: str
) -> Tuple[List[BaseField], List[BaseField]]:
    """
    Turn a field's subtree into a reusable type and replace the field with a reference.

    The subtree is deep copied with fresh ids into a new object type whose name
    is unique in the registry. The original field keeps its id, name and
    parent id, becomes ``kind='reference'`` and loses attributes a reference
    cannot carry.

    Returns:
        Tuple of (new tree, new reusable type list); both inputs unchanged when
        the field is missing or already a reference
    """
    original = find_field(tree, field_id)
    if original is None:
        logger.debug(f"promote_to_reusable_type: field {field_id} not found")
        return tree, reusable_types
    if isinstance(original, ReferenceField):
        logger.debug(f"promote_to_reusable_type: field {field_id} is already a reference")
        return tree, reusable_types

    base_name = original.name or 'UnnamedType'
    type_name = unique_type_name(base_name, reusable_types)
    type_id = new_field_id()
    children = original.children if isinstance(original, ObjectField) else []
    new_type = ObjectField(
        id=type_id,
        name=type_name,
        is_array=False,
        is_required=False,
        title=original.title or f"Reusable {base_name}",
        description=original.description or f"Reusable definition for {base_name}",
        children=[copy_field_with_new_ids(child, type_id) for child in children],
    )

    reference = ReferenceField(
        id=original.id,
        name=original.name,
        parent_id=original.parent_id,
        is_array=original.is_array,
        is_required=original.is_required,
        title=original.title or original.name or None,
        reference_id=type_id,
    )

    new_tree = update_field(tree, reference)
    logger.info(f"Promoted field '{original.name}' to reusable type '{type_name}'")
    return new_tree, [*reusable_types, new_type]
