"""
Persistence for the schema builder.

The field tree and the reusable types are stored through a small key-value
interface so the storage backend can be swapped (in-memory for tests, one
YAML file per key on disk for the app). ``SchemaLibrary`` adds named saves on
top of it: each saved schema is two keys plus a shared index of names.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple
from urllib.parse import quote, unquote

import yaml
from pydantic import ValidationError

from schema_builder.field_model import BaseField, forest_from_list, forest_to_list
from schema_builder.schema_exceptions import (
    DuplicateSchemaNameError,
    SchemaNotFoundError,
    SchemaStorageError,
)

logger = logging.getLogger(__name__)

SAVED_SCHEMAS_INDEX_KEY = 'saved_schemas_index'
AUTOSAVE_FIELDS_KEY = 'current_fields'
AUTOSAVE_TYPES_KEY = 'current_reusable_types'


def fields_key(name: str) -> str:
    return f"schema_{name}_fields"


def reusable_types_key(name: str) -> str:
    return f"schema_{name}_reusable_types"


class KeyValueStore(Protocol):
    """Minimal storage interface used by SchemaLibrary."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def keys(self) -> List[str]:
        ...


class InMemoryStore:
    """Dictionary-backed store; values are kept as given."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Optional[Any]:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return sorted(self._data)


class YamlFileStore:
    """
    Stores each key as ``<directory>/<quoted key>.yaml``.

    Writes go to a temporary file first and are then moved into place, so a
    failed write never leaves a truncated value behind.
    """

    SUFFIX = '.yaml'

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{quote(key, safe='')}{self.SUFFIX}"

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f)
        except (yaml.YAMLError, IOError, OSError) as e:
            logger.error(f"Failed to read stored value {path}: {e}")
            raise SchemaStorageError(key, e) from e

    def set(self, key: str, value: Any) -> None:
        path = self._path(key)
        temp_path = path.with_suffix(f"{path.suffix}.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(temp_path, 'w', encoding='utf-8') as f:
                yaml.safe_dump(
                    value,
                    f,
                    default_flow_style=False,
                    indent=2,
                    sort_keys=False,
                    allow_unicode=True
                )
            os.replace(temp_path, path)
            logger.debug(f"Stored {key} at {path}")
        except (yaml.YAMLError, IOError, OSError) as e:
            logger.error(f"Failed to write stored value {path}: {e}")
            raise SchemaStorageError(key, e) from e
        finally:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError as e:
                    logger.warning(f"Could not remove temp file {temp_path}: {e}")

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.error(f"Failed to delete stored value {path}: {e}")
            raise SchemaStorageError(key, e) from e

    def keys(self) -> List[str]:
        if not self.directory.exists():
            return []
        return sorted(
            unquote(path.name[:-len(self.SUFFIX)])
            for path in self.directory.glob(f"*{self.SUFFIX}")
        )


class SchemaLibrary:
    """Named saves of (fields, reusable types) plus an autosave slot."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    def list_names(self) -> List[str]:
        names = self.store.get(SAVED_SCHEMAS_INDEX_KEY)
        if not isinstance(names, list):
            return []
        return [str(name) for name in names]

    def save(self, name: str, forest: List[BaseField], reusable_types: List[BaseField],
             overwrite: bool = False) -> str:
        """
        Save the tree and types under ``name``.

        Args:
            name: Schema name; surrounding whitespace is stripped
            forest: Root fields
            reusable_types: Reusable type registry
            overwrite: Replace an existing save with the same name

        Returns:
            The stripped name used as the key

        Raises:
            ValueError: If the name is empty
            DuplicateSchemaNameError: If the name exists and overwrite is False
            SchemaStorageError: If the backend fails
        """
        name = (name or '').strip()
        if not name:
            raise ValueError("Please enter a name for your schema.")

        names = self.list_names()
        if name in names and not overwrite:
            raise DuplicateSchemaNameError(name)

        self.store.set(fields_key(name), forest_to_list(forest))
        self.store.set(reusable_types_key(name), forest_to_list(reusable_types))
        if name not in names:
            self.store.set(SAVED_SCHEMAS_INDEX_KEY, [*names, name])

        logger.info(f"Saved schema '{name}' ({len(forest)} fields, {len(reusable_types)} reusable types)")
        return name

    def load(self, name: str) -> Tuple[List[BaseField], List[BaseField]]:
        """
        Load a saved schema.

        A save with no stored fields or types loads as empty lists.

        Raises:
            SchemaNotFoundError: If no schema with that name was saved
            SchemaStorageError: If the stored data cannot be read back
        """
        if name not in self.list_names():
            raise SchemaNotFoundError(name, self.list_names())

        forest = self._read_forest(fields_key(name))
        reusable_types = self._read_forest(reusable_types_key(name))
        logger.info(f"Loaded schema '{name}'")
        return forest, reusable_types

    def delete(self, name: str) -> None:
        names = self.list_names()
        if name not in names:
            raise SchemaNotFoundError(name, names)

        self.store.delete(fields_key(name))
        self.store.delete(reusable_types_key(name))
        self.store.set(SAVED_SCHEMAS_INDEX_KEY, [n for n in names if n != name])
        logger.info(f"Deleted schema '{name}'")

    def autosave(self, forest: List[BaseField], reusable_types: List[BaseField]) -> None:
        """Persist the current working tree."""
        self.store.set(AUTOSAVE_FIELDS_KEY, forest_to_list(forest))
        self.store.set(AUTOSAVE_TYPES_KEY, forest_to_list(reusable_types))

    def load_autosave(self) -> Tuple[List[BaseField], List[BaseField]]:
        """Return the autosaved tree; empty lists when nothing was saved."""
        return self._read_forest(AUTOSAVE_FIELDS_KEY), self._read_forest(AUTOSAVE_TYPES_KEY)

    def _read_forest(self, key: str) -> List[BaseField]:
        data = self.store.get(key)
        if data is None:
            return []
        try:
            return forest_from_list(data)
        except ValidationError as e:
            logger.error(f"Stored value {key} is not a valid field list: {e}")
            raise SchemaStorageError(key, e, f"Stored schema data for '{key}' is corrupted") from e
