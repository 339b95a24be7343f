"""
Unit tests for schema persistence.
"""

import pytest
import yaml
from unittest.mock import patch

from schema_builder.field_model import ObjectField, ReferenceField, StringField
from schema_builder.schema_exceptions import (
    DuplicateSchemaNameError,
    SchemaNotFoundError,
    SchemaStorageError,
)
from schema_builder.schema_store import (
    SAVED_SCHEMAS_INDEX_KEY,
    InMemoryStore,
    SchemaLibrary,
    YamlFileStore,
    fields_key,
)


def make_schema():
    address = ObjectField(id='t', name='Address', is_required=False, children=[
        StringField(id='s', name='street', parent_id='t'),
    ])
    forest = [
        StringField(id='n', name='name', title='Name'),
        ReferenceField(id='h', name='home', reference_id='t'),
    ]
    return forest, [address]


class TestInMemoryStore:
    """Test cases for the in-memory store."""

    def test_get_set_delete(self):
        """Test basic key-value operations."""
        store = InMemoryStore()

        store.set('a', [1, 2])
        assert store.get('a') == [1, 2]
        assert store.keys() == ['a']

        store.delete('a')
        assert store.get('a') is None
        store.delete('a')


class TestYamlFileStore:
    """Test cases for the YAML file store."""

    def test_round_trip(self, tmp_path):
        """Test values are written as YAML and read back."""
        store = YamlFileStore(tmp_path / 'schemas')

        store.set('schema_Invoice v2_fields', [{'name': 'total', 'kind': 'currency'}])

        assert store.get('schema_Invoice v2_fields') == [{'name': 'total', 'kind': 'currency'}]
        assert store.keys() == ['schema_Invoice v2_fields']

    def test_key_with_path_separator(self, tmp_path):
        """Test keys never escape the storage directory."""
        store = YamlFileStore(tmp_path)

        store.set('../evil/key', 1)

        assert store.get('../evil/key') == 1
        assert list(tmp_path.iterdir())[0].parent == tmp_path

    def test_missing_key(self, tmp_path):
        """Test reading a missing key and listing a missing directory."""
        store = YamlFileStore(tmp_path / 'not_created')

        assert store.get('x') is None
        assert store.keys() == []
        store.delete('x')

    def test_no_temp_files_left(self, tmp_path):
        """Test the temporary file is moved into place."""
        store = YamlFileStore(tmp_path)

        store.set('k', {'a': 1})

        assert [p.name for p in tmp_path.iterdir()] == ['k.yaml']

    def test_unicode_values(self, tmp_path):
        """Test non-ASCII text survives."""
        store = YamlFileStore(tmp_path)
        store.set('k', '₹ and €')
        assert store.get('k') == '₹ and €'

    def test_corrupted_file(self, tmp_path):
        """Test unreadable YAML raises a storage error."""
        store = YamlFileStore(tmp_path)
        (tmp_path / 'k.yaml').write_text("a: [unclosed", encoding='utf-8')

        with pytest.raises(SchemaStorageError) as exc_info:
            store.get('k')

        assert exc_info.value.key == 'k'

    def test_write_failure(self, tmp_path):
        """Test write errors raise a storage error."""
        store = YamlFileStore(tmp_path)

        with patch('builtins.open', side_effect=IOError("Disk full")):
            with pytest.raises(SchemaStorageError, match="Disk full"):
                store.set('k', 1)


class TestSchemaLibrary:
    """Test cases for named schema saves."""

    def setup_method(self):
        """Set up a library over an in-memory store."""
        self.store = InMemoryStore()
        self.library = SchemaLibrary(self.store)

    def test_save_and_load(self):
        """Test a saved schema loads back equal."""
        forest, types = make_schema()

        name = self.library.save('  Invoice  ', forest, types)

        assert name == 'Invoice'
        assert self.library.list_names() == ['Invoice']
        loaded_forest, loaded_types = self.library.load('Invoice')
        assert loaded_forest == forest
        assert loaded_types == types

    def test_stored_form_is_camel_case(self):
        """Test the stored representation uses the persisted key names."""
        forest, types = make_schema()
        self.library.save('Invoice', forest, types)

        stored = self.store.get(fields_key('Invoice'))

        assert stored[1]['referenceId'] == 't'
        assert stored[1]['isRequired'] is True

    def test_empty_name(self):
        """Test saving without a name is rejected."""
        with pytest.raises(ValueError):
            self.library.save('   ', [], [])

    def test_duplicate_name(self):
        """Test saving twice under one name."""
        self.library.save('Invoice', [], [])

        with pytest.raises(DuplicateSchemaNameError) as exc_info:
            self.library.save('Invoice', [], [])

        assert 'already exists' in exc_info.value.message

    def test_overwrite(self):
        """Test overwriting keeps a single index entry."""
        forest, types = make_schema()
        self.library.save('Invoice', [], [])

        self.library.save('Invoice', forest, types, overwrite=True)

        assert self.library.list_names() == ['Invoice']
        assert self.library.load('Invoice')[0] == forest

    def test_load_missing(self):
        """Test loading a name that was never saved."""
        self.library.save('Invoice', [], [])

        with pytest.raises(SchemaNotFoundError) as exc_info:
            self.library.load('Receipt')

        assert exc_info.value.available == ['Invoice']

    def test_load_with_missing_values(self):
        """Test a name in the index without stored data loads empty."""
        self.store.set(SAVED_SCHEMAS_INDEX_KEY, ['Ghost'])
        assert self.library.load('Ghost') == ([], [])

    def test_load_corrupted_data(self):
        """Test stored data that is not a field list."""
        self.store.set(SAVED_SCHEMAS_INDEX_KEY, ['Bad'])
        self.store.set(fields_key('Bad'), [{'kind': 'boolean'}])

        with pytest.raises(SchemaStorageError, match="corrupted"):
            self.library.load('Bad')

    def test_delete(self):
        """Test deleting removes the data and the index entry."""
        forest, types = make_schema()
        self.library.save('Invoice', forest, types)
        self.library.save('Receipt', [], [])

        self.library.delete('Invoice')

        assert self.library.list_names() == ['Receipt']
        assert self.store.get(fields_key('Invoice')) is None
        with pytest.raises(SchemaNotFoundError):
            self.library.delete('Invoice')

    def test_autosave(self):
        """Test the autosave slot."""
        assert self.library.load_autosave() == ([], [])

        forest, types = make_schema()
        self.library.autosave(forest, types)

        assert self.library.load_autosave() == (forest, types)

    def test_library_on_yaml_store(self, tmp_path):
        """Test the library over the file store."""
        library = SchemaLibrary(YamlFileStore(tmp_path))
        forest, types = make_schema()

        library.save('Invoice', forest, types)

        assert SchemaLibrary(YamlFileStore(tmp_path)).load('Invoice') == (forest, types)
        assert yaml.safe_load((tmp_path / f"{SAVED_SCHEMAS_INDEX_KEY}.yaml").read_text()) == ['Invoice']
