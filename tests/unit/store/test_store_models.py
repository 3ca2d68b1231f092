"""
Unit tests for document store models and exceptions.
"""

import pytest
from pydantic import ValidationError

from localcosmos.store.exceptions import (
    DocumentNotFoundError,
    InvalidPatchError,
    InvalidQueryError,
    PreconditionFailedError,
)
from localcosmos.store.models import (
    AddOperation,
    ContainerProperties,
    IncrementOperation,
    PartitionKeyDefinition,
    PatchOperation,
    QueryParameter,
    RemoveOperation,
    normalize_parameters,
    parse_patch_operations,
)


class TestPartitionKeyDefinition:
    """Tests for PartitionKeyDefinition."""

    def test_single_path(self):
        definition = PartitionKeyDefinition(paths=["/myPartitionKey"])
        assert definition.path == "/myPartitionKey"
        assert definition.kind == "Hash"

    def test_string_path(self):
        assert PartitionKeyDefinition(paths="/pk").paths == ["/pk"]

    @pytest.mark.parametrize("paths", [[], ["pk"], ["/a", "/b"], ["/a/"]])
    def test_invalid_paths(self, paths):
        with pytest.raises(ValidationError):
            PartitionKeyDefinition(paths=paths)

    def test_invalid_kind(self):
        with pytest.raises(ValidationError):
            PartitionKeyDefinition(paths=["/pk"], kind="MultiHash")


class TestContainerProperties:
    """Tests for ContainerProperties."""

    def test_aliases(self):
        properties = ContainerProperties(
            id="items",
            partitionKey={"paths": ["/pk"]},
            _rid="abc",
            _self="dbs/x/colls/abc"
        )
        assert properties.partition_key.path == "/pk"
        assert properties.rid == "abc"
        assert properties.id_field == "id"

    @pytest.mark.parametrize("id_field", ["", "_id", "a/b"])
    def test_invalid_id_field(self, id_field):
        with pytest.raises(ValidationError):
            ContainerProperties(id="items", partitionKey={"paths": ["/pk"]}, idField=id_field)


class TestPatchOperations:
    """Tests for patch operation models."""

    def test_factories(self):
        assert isinstance(PatchOperation.add("/a", 1), AddOperation)
        assert PatchOperation.remove("/a").op == "remove"
        assert PatchOperation.increment("/n", 2).value == 2

    def test_operations_are_frozen(self):
        operation = PatchOperation.add("/a", 1)
        with pytest.raises(ValidationError):
            operation.path = "/b"

    def test_parse_dicts(self):
        parsed = parse_patch_operations([
            {"op": "Add", "path": "/a", "value": 1},
            {"op": "incr", "path": "/n", "value": 1},
            {"op": "remove", "path": "/b"},
        ])
        assert [type(p) for p in parsed] == [AddOperation, IncrementOperation, RemoveOperation]

    def test_missing_value(self):
        with pytest.raises(InvalidPatchError) as exc_info:
            parse_patch_operations([PatchOperation.remove("/a"), {"op": "add", "path": "/a"}])
        assert exc_info.value.index == 1

    def test_base_operation_rejected(self):
        with pytest.raises(InvalidPatchError, match="unknown operation"):
            parse_patch_operations([PatchOperation(op="move", path="/a")])

    def test_not_a_list(self):
        with pytest.raises(InvalidPatchError):
            parse_patch_operations({"op": "add", "path": "/a", "value": 1})


class TestQueryParameters:
    """Tests for query parameter normalization."""

    def test_name_prefix(self):
        assert QueryParameter(name="city", value="x").name == "@city"
        assert QueryParameter(name="@city", value="x").name == "@city"

    def test_normalize_forms(self):
        assert normalize_parameters({"a": 1, "@b": 2}) == {"@a": 1, "@b": 2}
        assert normalize_parameters([QueryParameter(name="a", value=None)]) == {"@a": None}
        assert normalize_parameters(None) == {}

    def test_empty_name(self):
        with pytest.raises(InvalidQueryError):
            normalize_parameters([{"name": "@", "value": 1}])


class TestExceptions:
    """Tests for error payloads."""

    def test_to_dict(self):
        error = DocumentNotFoundError("missing", document_id="A", partition_key="p")
        payload = error.to_dict()
        assert payload["error"]["code"] == "NotFound"
        assert payload["error"]["status"] == 404
        assert error.document_id == "A"

    def test_precondition_failed(self):
        error = PreconditionFailedError("stale", etag='"1"', current_etag='"2"')
        assert error.error_code == "PreconditionFailed"
        assert error.status_code == 412

    def test_invalid_patch_message(self):
        error = InvalidPatchError("'/a' does not exist", index=2, operation="remove", path="/a")
        assert error.error_code == "InvalidPatch"
        assert error.status_code == 400
        assert "#2" in str(error)
        assert error.reason == "'/a' does not exist"

    def test_invalid_query(self):
        error = InvalidQueryError("bad", query="SELECT", position=3)
        assert error.error_code == "InvalidQuery"
        assert error.position == 3
