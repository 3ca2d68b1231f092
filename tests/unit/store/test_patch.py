"""
Unit tests for the Patch Engine.

Covers each operation kind, path handling, protected paths and
all-or-nothing batch semantics.
"""

import copy
import math

import pytest

from localcosmos.store.exceptions import InvalidPatchError
from localcosmos.store.models import PatchOperation
from localcosmos.store.patch import apply_patch


@pytest.fixture
def document():
    """A product-style document with nested values."""
    return {
        "id": "A",
        "myPartitionKey": "2024-01-01",
        "name": "John Smith",
        "number": 638400000000000000,
        "bool": True,
        "childObject": {"someProperty": "someValue"},
        "childArray": ["apple", "banana"],
    }


class TestAdd:
    """Tests for add operations."""

    def test_add_new_property(self, document):
        result = apply_patch(document, [PatchOperation.add("/color", "silver")])
        assert result["color"] == "silver"

    def test_add_overwrites(self, document):
        result = apply_patch(document, [PatchOperation.add("/name", "Alex Turner")])
        assert result["name"] == "Alex Turner"

    def test_add_creates_intermediate_objects(self, document):
        result = apply_patch(document, [PatchOperation.add("/a/b/c", 1)])
        assert result["a"] == {"b": {"c": 1}}

    def test_add_end_of_sequence_appends(self, document):
        result = apply_patch(document, [PatchOperation.add("/childArray/-", "strawberry")])
        assert result["childArray"] == ["apple", "banana", "strawberry"]

    def test_add_array_index_inserts(self, document):
        result = apply_patch(document, [PatchOperation.add("/childArray/0", "cherry")])
        assert result["childArray"] == ["cherry", "apple", "banana"]

    def test_add_array_index_out_of_range(self, document):
        with pytest.raises(InvalidPatchError):
            apply_patch(document, [PatchOperation.add("/childArray/5", "x")])

    def test_add_through_scalar_fails(self, document):
        with pytest.raises(InvalidPatchError, match="not an object or array"):
            apply_patch(document, [PatchOperation.add("/name/first", "John")])

    def test_add_invalid_value(self, document):
        with pytest.raises(InvalidPatchError, match="not valid JSON"):
            apply_patch(document, [PatchOperation.add("/x", {1, 2})])


class TestSetAndReplace:
    """Tests for set and replace operations."""

    def test_set_overwrites_array_element(self, document):
        result = apply_patch(document, [PatchOperation.set("/childArray/1", "kiwi")])
        assert result["childArray"] == ["apple", "kiwi"]

    def test_replace_existing(self, document):
        result = apply_patch(document, [PatchOperation.replace("/childObject/someProperty", 5)])
        assert result["childObject"]["someProperty"] == 5

    def test_replace_missing_fails(self, document):
        with pytest.raises(InvalidPatchError, match="does not exist"):
            apply_patch(document, [PatchOperation.replace("/missing", 5)])


class TestRemove:
    """Tests for remove operations."""

    def test_remove_property(self, document):
        result = apply_patch(document, [PatchOperation.remove("/bool")])
        assert "bool" not in result

    def test_remove_array_element(self, document):
        result = apply_patch(document, [PatchOperation.remove("/childArray/0")])
        assert result["childArray"] == ["banana"]

    def test_remove_missing_fails(self, document):
        del document["bool"]
        with pytest.raises(InvalidPatchError) as exc_info:
            apply_patch(document, [PatchOperation.remove("/bool")])

        assert exc_info.value.index == 0
        assert exc_info.value.operation == "remove"
        assert exc_info.value.path == "/bool"


class TestIncrement:
    """Tests for increment operations."""

    def test_increment_int_by_float_widens(self, document):
        result = apply_patch(document, [PatchOperation.increment("/number", 50.00)])
        assert isinstance(result["number"], float)
        assert result["number"] == document["number"] + 50.0

    def test_increment_int_by_int_stays_int(self, document):
        result = apply_patch(document, [PatchOperation.increment("/count", 1)] * 3)
        assert result["count"] == 3
        assert isinstance(result["count"], int)

    def test_increment_is_associative(self):
        """Test two increments equal one increment by the sum."""
        start = {"n": 10}
        twice = apply_patch(apply_patch(start, [PatchOperation.increment("/n", 3)]),
                            [PatchOperation.increment("/n", 4)])
        once = apply_patch(start, [PatchOperation.increment("/n", 7)])
        assert twice == once

    def test_increment_non_numeric_target(self, document):
        with pytest.raises(InvalidPatchError, match="not a number"):
            apply_patch(document, [PatchOperation.increment("/name", 1)])

    def test_increment_boolean_target(self, document):
        with pytest.raises(InvalidPatchError, match="not a number"):
            apply_patch(document, [PatchOperation.increment("/bool", 1)])

    def test_increment_non_numeric_amount(self, document):
        with pytest.raises(InvalidPatchError, match="must be a number"):
            apply_patch(document, [PatchOperation.increment("/number", "5")])

    def test_increment_overflow_to_infinity(self):
        document = {"id": "A", "big": 1.7e308}
        with pytest.raises(InvalidPatchError, match="non-finite"):
            apply_patch(document, [PatchOperation.increment("/big", 1.7e308)])
        assert document["big"] == 1.7e308

    def test_increment_huge_int_by_float(self):
        with pytest.raises(InvalidPatchError, match="overflows") as exc_info:
            apply_patch({"id": "A", "big": 10 ** 400}, [PatchOperation.increment("/big", 1.5)])
        assert exc_info.value.path == "/big"

    def test_increment_huge_ints_stay_exact(self):
        result = apply_patch({"id": "A", "big": 10 ** 400}, [PatchOperation.increment("/big", 1)])
        assert result["big"] == 10 ** 400 + 1

    @pytest.mark.parametrize("amount", [math.inf, -math.inf, math.nan])
    def test_increment_non_finite_amount(self, amount):
        with pytest.raises(InvalidPatchError, match="finite"):
            apply_patch({"id": "A"}, [PatchOperation.increment("/count", amount)])


class TestAppend:
    """Tests for append operations."""

    def test_append_to_array(self, document):
        result = apply_patch(document, [PatchOperation.append("/childArray", "cherry")])
        assert result["childArray"][-1] == "cherry"

    def test_append_with_end_marker(self, document):
        result = apply_patch(document, [PatchOperation.append("/childArray/-", ["nested"])])
        assert result["childArray"][-1] == ["nested"]

    def test_append_to_non_array(self, document):
        with pytest.raises(InvalidPatchError, match="not an array"):
            apply_patch(document, [PatchOperation.append("/childObject", "x")])

    def test_append_to_missing(self, document):
        with pytest.raises(InvalidPatchError, match="does not exist"):
            apply_patch(document, [PatchOperation.append("/nothing", "x")])


class TestBatchSemantics:
    """Tests for ordering, atomicity and validation of whole batches."""

    def test_mixed_batch(self, document):
        """Test an add, remove, increment and append batch."""
        operations = [
            PatchOperation.add("/color", "silver"),
            PatchOperation.remove("/bool"),
            PatchOperation.increment("/number", 50.00),
            PatchOperation.add("/childArray/-", "strawberry"),
        ]
        result = apply_patch(document, operations)

        assert result["color"] == "silver"
        assert "bool" not in result
        assert result["number"] == document["number"] + 50.0
        assert result["childArray"] == ["apple", "banana", "strawberry"]

    def test_operations_apply_in_order(self, document):
        result = apply_patch(document, [
            PatchOperation.add("/x", 1),
            PatchOperation.increment("/x", 1),
            PatchOperation.remove("/x"),
            PatchOperation.add("/x", "final"),
        ])
        assert result["x"] == "final"

    def test_failed_batch_leaves_input_untouched(self, document):
        """Test that a failure at operation k discards earlier operations."""
        before = copy.deepcopy(document)
        with pytest.raises(InvalidPatchError) as exc_info:
            apply_patch(document, [
                PatchOperation.add("/color", "silver"),
                PatchOperation.increment("/number", 1),
                PatchOperation.remove("/missing"),
            ])

        assert exc_info.value.index == 2
        assert document == before

    def test_input_never_mutated_on_success(self, document):
        before = copy.deepcopy(document)
        apply_patch(document, [PatchOperation.add("/childObject/new", 1)])
        assert document == before

    def test_dict_operations(self, document):
        result = apply_patch(document, [
            {"op": "add", "path": "/color", "value": "silver"},
            {"op": "incr", "path": "/count", "value": 2},
        ])
        assert result["color"] == "silver"
        assert result["count"] == 2

    def test_unknown_operation(self, document):
        with pytest.raises(InvalidPatchError) as exc_info:
            apply_patch(document, [{"op": "move", "path": "/a", "from": "/b"}])
        assert exc_info.value.index == 0

    def test_empty_batch(self, document):
        with pytest.raises(InvalidPatchError, match="empty"):
            apply_patch(document, [])

    def test_batch_size_limit(self, document):
        operations = [PatchOperation.add(f"/f{i}", i) for i in range(11)]
        with pytest.raises(InvalidPatchError, match="at most 10"):
            apply_patch(document, operations, max_operations=10)

    @pytest.mark.parametrize("path", ["", "/", "color", "/a//b"])
    def test_malformed_paths(self, document, path):
        with pytest.raises(InvalidPatchError):
            apply_patch(document, [PatchOperation.add(path, 1)])

    def test_unpaired_surrogate_in_value(self, document):
        with pytest.raises(InvalidPatchError, match="surrogate"):
            apply_patch(document, [PatchOperation.add("/name", "\udc00")])


class TestProtectedPaths:
    """Tests for paths the engine refuses to touch."""

    def test_system_property(self, document):
        with pytest.raises(InvalidPatchError, match="system property"):
            apply_patch(document, [PatchOperation.add("/_etag", "x")])

    def test_id_and_partition_key(self, document):
        protected = ["/id", "/myPartitionKey"]
        with pytest.raises(InvalidPatchError, match="cannot be patched"):
            apply_patch(document, [PatchOperation.set("/id", "B")], protected_paths=protected)
        with pytest.raises(InvalidPatchError, match="cannot be patched"):
            apply_patch(document, [PatchOperation.remove("/myPartitionKey")], protected_paths=protected)

    def test_parent_of_nested_partition_key(self):
        document = {"id": "1", "tenant": {"region": "eu"}}
        with pytest.raises(InvalidPatchError):
            apply_patch(document, [PatchOperation.remove("/tenant")], protected_paths=["/tenant/region"])

    def test_sibling_of_partition_key_allowed(self):
        document = {"id": "1", "tenant": {"region": "eu"}}
        result = apply_patch(
            document,
            [PatchOperation.add("/tenant/name", "x")],
            protected_paths=["/tenant/region"]
        )
        assert result["tenant"] == {"region": "eu", "name": "x"}
