"""
Document Store Models.

Pydantic models for databases, containers, patch operations and query
parameters.

Author: LocalCosmos Team
Date: 2026-10-19
"""

from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from .exceptions import InvalidPatchError, InvalidQueryError


class PartitionKeyDefinition(BaseModel):
    """Partition key definition for a container.

    Attributes:
        paths: Partition key path (e.g., ["/userId"]); exactly one
        kind: Partition key kind
        version: Partition key version
    """

    paths: List[str]
    kind: str = "Hash"
    version: int = Field(default=2, alias="Version")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("paths", mode="before")
    @classmethod
    def validate_paths(cls, v: Any) -> List[str]:
        """Validate partition key paths.

        Args:
            v: Partition key paths, or a single path string

        Returns:
            Validated paths

        Raises:
            ValueError: If paths are invalid
        """
        if isinstance(v, str):
            v = [v]
        if not v:
            raise ValueError("Partition key paths cannot be empty")
        if len(v) > 1:
            raise ValueError("Hierarchical partition keys are not supported")

        for path in v:
            if not isinstance(path, str) or not path.startswith("/") or path == "/":
                raise ValueError(f"Partition key path must start with '/': {path}")
            if "//" in path or path.endswith("/"):
                raise ValueError(f"Partition key path has an empty segment: {path}")

        return v

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        """Validate partition key kind."""
        if v not in ["Hash", "Range"]:
            raise ValueError(f"Partition key kind must be 'Hash' or 'Range': {v}")
        return v

    @property
    def path(self) -> str:
        """The single partition key path."""
        return self.paths[0]


class DatabaseProperties(BaseModel):
    """Database resource properties.

    Attributes:
        id: Database identifier
        _rid: Resource ID
        _ts: Timestamp
        _self: Self link
        _etag: ETag
    """

    id: str
    rid: str = Field(default="", alias="_rid")
    ts: int = Field(default=0, alias="_ts")
    self_link: str = Field(default="", alias="_self")
    etag: str = Field(default="", alias="_etag")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Validate database ID.

        Raises:
            ValueError: If ID is empty, too long, or has invalid characters
        """
        if not v:
            raise ValueError("Database ID cannot be empty")

        if len(v) > 255:
            raise ValueError("Database ID must be 255 characters or less")

        if not all(c.isalnum() or c in ['_', '-'] for c in v):
            raise ValueError("Database ID can only contain alphanumeric characters, underscores, and hyphens")

        return v


class ContainerProperties(BaseModel):
    """Container resource properties.

    Attributes:
        id: Container identifier
        partition_key: Partition key definition
        id_field: Name of the document identifier property
        _rid: Resource ID
        _ts: Timestamp
        _self: Self link
        _etag: ETag
    """

    id: str
    partition_key: PartitionKeyDefinition = Field(alias="partitionKey")
    id_field: str = Field(default="id", alias="idField")
    rid: str = Field(default="", alias="_rid")
    ts: int = Field(default=0, alias="_ts")
    self_link: str = Field(default="", alias="_self")
    etag: str = Field(default="", alias="_etag")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Validate container ID."""
        if not v:
            raise ValueError("Container ID cannot be empty")

        if len(v) > 255:
            raise ValueError("Container ID must be 255 characters or less")

        return v

    @field_validator("id_field")
    @classmethod
    def validate_id_field(cls, v: str) -> str:
        """Validate the identifier property name."""
        if not v or v.startswith("_") or "/" in v:
            raise ValueError(f"Invalid id field name: {v!r}")
        return v


# ========== Patch operations ==========

class PatchOperation(BaseModel):
    """Single structural edit within a patch batch.

    Build operations with the factory methods, e.g.
    ``PatchOperation.add("/color", "silver")``.

    Attributes:
        op: Operation kind
        path: Slash path of the target property
    """

    op: str
    path: str

    model_config = ConfigDict(frozen=True)

    @staticmethod
    def add(path: str, value: Any) -> "AddOperation":
        return AddOperation(path=path, value=value)

    @staticmethod
    def set(path: str, value: Any) -> "SetOperation":
        return SetOperation(path=path, value=value)

    @staticmethod
    def replace(path: str, value: Any) -> "ReplaceOperation":
        return ReplaceOperation(path=path, value=value)

    @staticmethod
    def remove(path: str) -> "RemoveOperation":
        return RemoveOperation(path=path)

    @staticmethod
    def increment(path: str, value: Union[int, float]) -> "IncrementOperation":
        return IncrementOperation(path=path, value=value)

    @staticmethod
    def append(path: str, value: Any) -> "AppendOperation":
        return AppendOperation(path=path, value=value)


class AddOperation(PatchOperation):
    """Set a property or insert into an array."""
    op: Literal["add"] = "add"
    value: Any


class SetOperation(PatchOperation):
    """Set a property or overwrite an array element."""
    op: Literal["set"] = "set"
    value: Any


class ReplaceOperation(PatchOperation):
    """Overwrite an existing property."""
    op: Literal["replace"] = "replace"
    value: Any


class RemoveOperation(PatchOperation):
    """Remove an existing property or array element."""
    op: Literal["remove"] = "remove"


class IncrementOperation(PatchOperation):
    """Add a number to a numeric property."""
    op: Literal["increment"] = "increment"
    value: Any


class AppendOperation(PatchOperation):
    """Append a value to the end of an array."""
    op: Literal["append"] = "append"
    value: Any


AnyPatchOperation = Annotated[
    Union[
        AddOperation,
        SetOperation,
        ReplaceOperation,
        RemoveOperation,
        IncrementOperation,
        AppendOperation,
    ],
    Field(discriminator="op"),
]

_patch_operation_adapter: TypeAdapter = TypeAdapter(AnyPatchOperation)

# Wire aliases accepted when parsing dicts
_OP_ALIASES = {"incr": "increment"}


def parse_patch_operations(
    operations: Sequence[Union[PatchOperation, Mapping[str, Any]]]
) -> List[PatchOperation]:
    """Normalize a batch of patch operations.

    Args:
        operations: PatchOperation models or dicts like
            ``{"op": "add", "path": "/x", "value": 1}``

    Returns:
        List of typed patch operations

    Raises:
        InvalidPatchError: If an entry cannot be parsed
    """
    if isinstance(operations, (str, bytes, Mapping)):
        raise InvalidPatchError("patch operations must be a list")

    parsed: List[PatchOperation] = []
    for index, operation in enumerate(operations):
        if isinstance(operation, PatchOperation):
            if type(operation) is PatchOperation:
                raise InvalidPatchError(
                    f"unknown operation '{operation.op}'",
                    index=index,
                    operation=operation.op,
                    path=operation.path
                )
            parsed.append(operation)
            continue

        if not isinstance(operation, Mapping):
            raise InvalidPatchError(
                f"expected an operation object, got {type(operation).__name__}",
                index=index
            )

        data = dict(operation)
        op_name = str(data.get("op", "")).lower()
        data["op"] = _OP_ALIASES.get(op_name, op_name)
        try:
            parsed.append(_patch_operation_adapter.validate_python(data))
        except ValidationError as e:
            first = e.errors()[0]
            raise InvalidPatchError(
                first.get("msg", "invalid operation"),
                index=index,
                operation=str(operation.get("op", "")),
                path=str(operation.get("path", ""))
            ) from e

    return parsed


# ========== Query parameters ==========

class QueryParameter(BaseModel):
    """Named query parameter.

    Attributes:
        name: Parameter name, with or without the leading '@'
        value: Bound value
    """

    name: str
    value: Any = None

    @field_validator("name")
    @classmethod
    def normalize_name(cls, v: str) -> str:
        """Ensure the parameter name carries its '@' prefix."""
        if not v or v == "@":
            raise ValueError("Parameter name cannot be empty")
        return v if v.startswith("@") else f"@{v}"


def normalize_parameters(
    parameters: Optional[Union[Mapping[str, Any], Sequence[Any]]]
) -> Dict[str, Any]:
    """Turn parameters into a ``{"@name": value}`` mapping.

    Accepts a mapping (``{"@n": 1}`` or ``{"n": 1}``), or a list of
    ``QueryParameter`` models or ``{"name": ..., "value": ...}`` dicts.
    """
    if not parameters:
        return {}

    try:
        if isinstance(parameters, Mapping):
            items = [QueryParameter(name=name, value=value) for name, value in parameters.items()]
        else:
            items = [
                p if isinstance(p, QueryParameter) else QueryParameter.model_validate(p)
                for p in parameters
            ]
    except ValidationError as e:
        raise InvalidQueryError(f"Invalid query parameters: {e.errors()[0].get('msg')}") from e
    return {item.name: item.value for item in items}
