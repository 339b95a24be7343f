"""
Diff utilities for the schema builder.
Detects unsaved changes by comparing serialized snapshots of the field tree and
reusable types with DeepDiff, and summarizes the differences for display.
"""

from typing import Dict, Any, List, Optional
from deepdiff import DeepDiff
import re
import logging

from schema_builder.field_model import BaseField, forest_to_list

logger = logging.getLogger(__name__)

CHANGE_TYPES = (
    'values_changed',
    'dictionary_item_added',
    'dictionary_item_removed',
    'iterable_item_added',
    'iterable_item_removed',
    'type_changes'
)


def snapshot(forest: List[BaseField], reusable_types: Optional[List[BaseField]] = None) -> Dict[str, Any]:
    """
    Serialize the editable state into plain data for comparison.

    Args:
        forest: Root fields
        reusable_types: Reusable type registry

    Returns:
        Dictionary with ``fields`` and ``reusableTypes`` lists
    """
    return {
        'fields': forest_to_list(forest),
        'reusableTypes': forest_to_list(reusable_types or [])
    }


def calculate_forest_diff(saved: Dict[str, Any], current: Dict[str, Any]) -> Dict[str, Any]:
    """
    Calculate differences between a saved and the current snapshot.

    Order matters: reordering sibling fields changes the compiled schema, so
    lists are compared positionally.

    Args:
        saved: Snapshot taken when the schema was last saved or loaded
        current: Snapshot of the current editor state

    Returns:
        DeepDiff result as a plain dictionary (empty when identical)
    """
    diff = DeepDiff(saved or {}, current or {}, ignore_order=False, verbose_level=2)
    diff_dict = diff.to_dict() if hasattr(diff, 'to_dict') else dict(diff)
    return {change_type: diff_dict[change_type] for change_type in CHANGE_TYPES if diff_dict.get(change_type)}


def has_changes(diff: Dict[str, Any]) -> bool:
    """
    Check if there are any changes in the diff.

    Args:
        diff: Diff dictionary from calculate_forest_diff

    Returns:
        True if there are changes, False otherwise
    """
    if not diff:
        return False
    return any(change_type in diff and diff[change_type] for change_type in CHANGE_TYPES)


def has_unsaved_changes(saved: Optional[Dict[str, Any]], forest: List[BaseField],
                        reusable_types: Optional[List[BaseField]] = None) -> bool:
    """
    Check whether the current tree differs from the last saved snapshot.

    With no saved snapshot, any non-empty tree counts as unsaved.
    """
    current = snapshot(forest, reusable_types)
    if saved is None:
        return bool(current['fields'] or current['reusableTypes'])
    changed = has_changes(calculate_forest_diff(saved, current))
    logger.debug(f"Unsaved changes: {changed}")
    return changed


def clean_path(path: str) -> str:
    """
    Turn a DeepDiff path such as ``root['fields'][0]['children'][1]['name']``
    into ``fields[0].children[1].name``.
    """
    path_str = str(path)
    path_str = re.sub(r"\['([^']*)'\]", r".\1", path_str)
    path_str = path_str.replace("root", "", 1).lstrip(".").strip()
    return path_str


def get_change_summary(diff: Dict[str, Any]) -> Dict[str, int]:
    """
    Get a summary of changes by type.

    Args:
        diff: Diff dictionary from calculate_forest_diff

    Returns:
        Dictionary with change counts by type
    """
    summary = {
        'modified': len(diff.get('values_changed', {})),
        'added': len(diff.get('dictionary_item_added', {})) + len(diff.get('iterable_item_added', {})),
        'removed': len(diff.get('dictionary_item_removed', {})) + len(diff.get('iterable_item_removed', {})),
        'type_changed': len(diff.get('type_changes', {})),
        'total': 0
    }
    summary['total'] = summary['modified'] + summary['added'] + summary['removed'] + summary['type_changed']
    return summary


def format_changes(diff: Dict[str, Any]) -> List[str]:
    """
    Format a diff as one human readable line per change.

    Args:
        diff: Diff dictionary from calculate_forest_diff

    Returns:
        List of lines, empty when nothing changed
    """
    lines: List[str] = []
    for path, change in diff.get('values_changed', {}).items():
        lines.append(f"Changed {clean_path(path)}: {change.get('old_value')!r} -> {change.get('new_value')!r}")
    for path, change in diff.get('type_changes', {}).items():
        lines.append(f"Changed {clean_path(path)}: {change.get('old_value')!r} -> {change.get('new_value')!r}")
    for section in ('dictionary_item_added', 'iterable_item_added'):
        for path in diff.get(section, {}):
            lines.append(f"Added {clean_path(path)}")
    for section in ('dictionary_item_removed', 'iterable_item_removed'):
        for path in diff.get(section, {}):
            lines.append(f"Removed {clean_path(path)}")
    return lines
