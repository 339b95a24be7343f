"""
Unit tests for the tree mutation engine.
"""

import pytest

from schema_builder.field_model import (
    CurrencyField,
    DropdownField,
    FloatField,
    IntegerField,
    ObjectField,
    ReferenceField,
    StringField,
    build_parent_index,
    find_field,
    iter_fields,
)
from schema_builder.tree_ops import (
    add_field,
    change_field_kind,
    copy_field_with_new_ids,
    duplicate_field,
    move_field,
    promote_to_reusable_type,
    remove_field,
    reorder_field,
    set_field_array,
    update_field,
)


def make_tree():
    """Tree: name, address{street, city}, tags."""
    street = StringField(id='street', name='street', parent_id='address')
    city = StringField(id='city', name='city', parent_id='address')
    address = ObjectField(id='address', name='address', children=[street, city])
    return [
        StringField(id='name', name='name'),
        address,
        StringField(id='tags', name='tags', is_array=True),
    ]


def ids(fields):
    return [f.id for f in fields]


class TestAddField:
    """Test cases for add_field."""

    def test_add_root_field(self):
        """Test adding a blank field to the root list."""
        tree = make_tree()

        result = add_field(tree)

        assert len(result) == 4
        new = result[-1]
        assert isinstance(new, StringField)
        assert new.name == ''
        assert new.is_required is True
        assert new.is_array is False
        assert new.parent_id is None

    def test_add_nested_field(self):
        """Test adding a child to an object field."""
        tree = make_tree()

        result = add_field(tree, 'address')

        address = find_field(result, 'address')
        assert ids(address.children)[:2] == ['street', 'city']
        assert address.children[-1].parent_id == 'address'

    def test_input_not_mutated(self):
        """Test that the original tree is left unchanged."""
        tree = make_tree()

        add_field(tree, 'address')

        assert len(find_field(tree, 'address').children) == 2

    def test_untouched_subtrees_are_shared(self):
        """Test that unrelated fields are the same objects in the new tree."""
        tree = make_tree()

        result = add_field(tree, 'address')

        assert result[0] is tree[0]
        assert result[2] is tree[2]
        assert result[1] is not tree[1]

    def test_add_to_missing_parent_is_noop(self):
        """Test adding under an unknown id returns the same tree."""
        tree = make_tree()
        assert add_field(tree, 'missing') is tree

    def test_add_to_non_object_is_noop(self):
        """Test adding under a non-object field returns the same tree."""
        tree = make_tree()
        assert add_field(tree, 'name') is tree


class TestUpdateAndRemove:
    """Test cases for update_field and remove_field."""

    def test_update_nested_field(self):
        """Test replacing a nested field by id."""
        tree = make_tree()
        updated = find_field(tree, 'city').model_copy(update={'name': 'town'})

        result = update_field(tree, updated)

        assert find_field(result, 'city').name == 'town'
        assert find_field(tree, 'city').name == 'city'

    def test_update_missing_is_noop(self):
        """Test updating an unknown id leaves the tree unchanged."""
        tree = make_tree()
        assert update_field(tree, StringField(id='ghost', name='ghost')) is tree

    def test_remove_subtree(self):
        """Test removing an object removes its children."""
        tree = make_tree()

        result = remove_field(tree, 'address')

        assert ids(result) == ['name', 'tags']
        assert find_field(result, 'street') is None

    def test_remove_nested_field(self):
        """Test removing a nested field keeps its siblings."""
        result = remove_field(make_tree(), 'street')
        assert ids(find_field(result, 'address').children) == ['city']

    def test_remove_missing_is_noop(self):
        """Test removing an unknown id leaves the tree unchanged."""
        tree = make_tree()
        assert remove_field(tree, 'ghost') is tree


class TestMoveField:
    """Test cases for move_field."""

    def test_move_down_swaps_neighbours(self):
        """Test moving a root field down."""
        result = move_field(make_tree(), 'name', 'down')
        assert ids(result) == ['address', 'name', 'tags']

    def test_move_up_nested(self):
        """Test moving a nested field up within its parent."""
        result = move_field(make_tree(), 'city', 'up', 'address')
        assert ids(find_field(result, 'address').children) == ['city', 'street']

    def test_move_at_edges_is_noop(self):
        """Test that first-up and last-down do nothing."""
        tree = make_tree()
        assert ids(move_field(tree, 'name', 'up')) == ids(tree)
        assert ids(move_field(tree, 'tags', 'down')) == ids(tree)

    def test_move_with_wrong_parent_is_noop(self):
        """Test that a field is only found in the sibling list given."""
        tree = make_tree()
        assert ids(move_field(tree, 'street', 'down')) == ids(tree)
        assert move_field(tree, 'street', 'down', 'missing') is tree

    def test_invalid_direction(self):
        """Test that an unknown direction raises."""
        with pytest.raises(ValueError, match="Invalid move direction"):
            move_field(make_tree(), 'name', 'left')


class TestReorderField:
    """Test cases for reorder_field."""

    def test_reorder_to_later_position(self):
        """Test dragging the first root field onto the last."""
        result = reorder_field(make_tree(), 'name', 'tags')
        assert ids(result) == ['address', 'tags', 'name']

    def test_reorder_to_earlier_position(self):
        """Test dragging the last root field onto the first."""
        result = reorder_field(make_tree(), 'tags', 'name')
        assert ids(result) == ['tags', 'name', 'address']

    def test_reorder_nested(self):
        """Test reordering inside an object."""
        result = reorder_field(make_tree(), 'street', 'city')
        assert ids(find_field(result, 'address').children) == ['city', 'street']

    def test_reorder_across_parents_is_noop(self):
        """Test that ids in different sibling lists leave the tree unchanged."""
        tree = make_tree()
        assert reorder_field(tree, 'street', 'tags') is tree

    def test_reorder_onto_self_is_noop(self):
        """Test dropping a field onto itself."""
        tree = make_tree()
        assert reorder_field(tree, 'name', 'name') is tree

    def test_reorder_is_a_permutation(self):
        """Test that reordering never loses or duplicates fields."""
        tree = make_tree()
        result = reorder_field(tree, 'address', 'tags')
        assert sorted(f.id for f in iter_fields(result)) == sorted(f.id for f in iter_fields(tree))


class TestCopyAndDuplicate:
    """Test cases for copying subtrees."""

    def test_copy_assigns_fresh_ids_everywhere(self):
        """Test that a deep copy shares no ids with the original."""
        address = make_tree()[1]

        copy = copy_field_with_new_ids(address, 'owner')

        original_ids = {f.id for f in iter_fields([address])}
        copied_ids = {f.id for f in iter_fields([copy])}
        assert original_ids.isdisjoint(copied_ids)
        assert copy.parent_id == 'owner'
        assert all(child.parent_id == copy.id for child in copy.children)
        assert [c.name for c in copy.children] == ['street', 'city']

    def test_duplicate_inserts_after_original(self):
        """Test duplicating a nested field."""
        result = duplicate_field(make_tree(), 'street')

        children = find_field(result, 'address').children
        assert [c.name for c in children] == ['street', 'street_copy', 'city']
        assert children[1].id != 'street'
        assert children[1].parent_id == 'address'

    def test_duplicate_missing_is_noop(self):
        """Test duplicating an unknown id."""
        tree = make_tree()
        assert duplicate_field(tree, 'ghost') is tree


class TestChangeFieldKind:
    """Test cases for change_field_kind."""

    def test_shared_attributes_survive(self):
        """Test that name, flags and metadata carry over."""
        field = StringField(id='f', name='total', is_required=False, description='Amount', pattern='x')

        changed = change_field_kind(field, 'integer')

        assert isinstance(changed, IntegerField)
        assert changed.id == 'f'
        assert changed.name == 'total'
        assert changed.is_required is False
        assert changed.description == 'Amount'
        assert not hasattr(changed, 'pattern')

    def test_numeric_bounds_kept_between_numeric_kinds(self):
        """Test min/max survive integer to currency."""
        field = IntegerField(name='total', min_value=0, max_value=100)

        changed = change_field_kind(field, 'currency')

        assert isinstance(changed, CurrencyField)
        assert changed.min_value == 0
        assert changed.max_value == 100
        assert changed.currency_code is None

    def test_numeric_bounds_dropped_for_other_kinds(self):
        """Test numeric bounds disappear when leaving numeric kinds."""
        changed = change_field_kind(FloatField(name='x', min_value=1.5), 'dropdown')

        assert isinstance(changed, DropdownField)
        assert changed.options == []
        assert not hasattr(changed, 'min_value')

    def test_object_children_dropped(self):
        """Test changing an object to a string drops the children."""
        changed = change_field_kind(make_tree()[1], 'string')
        assert not hasattr(changed, 'children')

    def test_to_object_starts_empty(self):
        """Test changing to object gives an empty child list."""
        changed = change_field_kind(StringField(name='x'), 'object')
        assert changed.children == []

    def test_same_kind_returns_field(self):
        """Test that changing to the current kind is a no-op."""
        field = StringField(name='x')
        assert change_field_kind(field, 'string') is field

    def test_unknown_kind(self):
        """Test that an unsupported kind raises."""
        with pytest.raises(ValueError):
            change_field_kind(StringField(), 'boolean')


class TestSetFieldArray:
    """Test cases for set_field_array."""

    def test_clear_bounds_when_leaving_array(self):
        """Test that item bounds are dropped when the array flag is cleared."""
        field = StringField(name='tags', is_array=True, min_items=1, max_items=5)

        changed = set_field_array(field, False)

        assert changed.is_array is False
        assert changed.min_items is None
        assert changed.max_items is None

    def test_make_array(self):
        """Test turning a field into an array."""
        assert set_field_array(StringField(name='tags'), True).is_array is True


class TestPromoteToReusableType:
    """Test cases for promote_to_reusable_type."""

    def test_promote_object(self):
        """Test promoting an object subtree into a new reusable type."""
        tree = make_tree()

        new_tree, types = promote_to_reusable_type(tree, [], 'address')

        assert len(types) == 1
        new_type = types[0]
        assert isinstance(new_type, ObjectField)
        assert new_type.name == 'address'
        assert new_type.title == 'Reusable address'
        assert new_type.description == 'Reusable definition for address'
        assert new_type.is_required is False
        assert [c.name for c in new_type.children] == ['street', 'city']
        assert {c.id for c in new_type.children}.isdisjoint({'street', 'city'})
        assert all(c.parent_id == new_type.id for c in new_type.children)

        reference = find_field(new_tree, 'address')
        assert isinstance(reference, ReferenceField)
        assert reference.reference_id == new_type.id
        assert reference.name == 'address'
        assert reference.title == 'address'
        assert not hasattr(reference, 'children')

    def test_promote_keeps_position_and_flags(self):
        """Test the reference keeps the original position, array and required flags."""
        tree = make_tree()
        tree[1] = tree[1].model_copy(update={'is_array': True, 'is_required': False})

        new_tree, _ = promote_to_reusable_type(tree, [], 'address')

        assert ids(new_tree) == ['name', 'address', 'tags']
        assert new_tree[1].is_array is True
        assert new_tree[1].is_required is False

    def test_promote_nested_keeps_parent(self):
        """Test promoting a nested field keeps its parent id."""
        new_tree, _ = promote_to_reusable_type(make_tree(), [], 'street')

        reference = find_field(new_tree, 'street')
        assert isinstance(reference, ReferenceField)
        assert reference.parent_id == 'address'
        assert build_parent_index(new_tree)['street'] == 'address'

    def test_promote_twice_gets_unique_names(self):
        """Test name collisions are resolved with numeric suffixes."""
        tree = make_tree()
        tree, types = promote_to_reusable_type(tree, [], 'address')
        other = ObjectField(id='other', name='address')
        tree = [*tree, other]

        tree, types = promote_to_reusable_type(tree, types, 'other')

        assert [t.name for t in types] == ['address', 'address1']
        assert find_field(tree, 'other').reference_id == types[1].id

    def test_promote_unnamed_field(self):
        """Test an unnamed field becomes UnnamedType."""
        tree = [ObjectField(id='o')]

        _, types = promote_to_reusable_type(tree, [], 'o')

        assert types[0].name == 'UnnamedType'

    def test_promote_non_object_gives_empty_type(self):
        """Test promoting a primitive field creates an empty object type."""
        _, types = promote_to_reusable_type(make_tree(), [], 'name')

        assert types[0].kind == 'object'
        assert types[0].children == []

    def test_promote_reference_is_noop(self):
        """Test that promoting a reference changes nothing."""
        tree = [ReferenceField(id='r', name='r', reference_id='t')]
        types = []

        new_tree, new_types = promote_to_reusable_type(tree, types, 'r')

        assert new_tree is tree
        assert new_types is types

    def test_promote_missing_is_noop(self):
        """Test promoting an unknown id changes nothing."""
        tree = make_tree()
        new_tree, new_types = promote_to_reusable_type(tree, [], 'ghost')
        assert new_tree is tree
        assert new_types == []
