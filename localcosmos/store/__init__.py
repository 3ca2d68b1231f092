"""
Embedded document store.

Partition-keyed containers of JSON documents with version tokens,
patch batches and parameterised queries.

Author: LocalCosmos Team
Date: 2026-10-19
"""

from .backend import StoreBackend
from .container import Container
from .models import (
    DatabaseProperties,
    ContainerProperties,
    PartitionKeyDefinition,
    PatchOperation,
    AddOperation,
    SetOperation,
    ReplaceOperation,
    RemoveOperation,
    IncrementOperation,
    AppendOperation,
    QueryParameter,
    parse_patch_operations,
)
from .patch import apply_patch
from .query import QueryIterator, compile_query, parse_query
from .versioning import VersionGuard
from .exceptions import (
    LocalCosmosError,
    NotFoundError,
    ConflictError,
    PreconditionFailedError,
    BadRequestError,
    DatabaseNotFoundError,
    DatabaseAlreadyExistsError,
    ContainerNotFoundError,
    ContainerAlreadyExistsError,
    InvalidPartitionKeyError,
    DocumentNotFoundError,
    DocumentAlreadyExistsError,
    InvalidPatchError,
    InvalidQueryError,
)

__all__ = [
    # Backend & container
    "StoreBackend",
    "Container",
    # Models
    "DatabaseProperties",
    "ContainerProperties",
    "PartitionKeyDefinition",
    "PatchOperation",
    "AddOperation",
    "SetOperation",
    "ReplaceOperation",
    "RemoveOperation",
    "IncrementOperation",
    "AppendOperation",
    "QueryParameter",
    "parse_patch_operations",
    # Engines
    "apply_patch",
    "QueryIterator",
    "compile_query",
    "parse_query",
    "VersionGuard",
    # Exceptions
    "LocalCosmosError",
    "NotFoundError",
    "ConflictError",
    "PreconditionFailedError",
    "BadRequestError",
    "DatabaseNotFoundError",
    "DatabaseAlreadyExistsError",
    "ContainerNotFoundError",
    "ContainerAlreadyExistsError",
    "InvalidPartitionKeyError",
    "DocumentNotFoundError",
    "DocumentAlreadyExistsError",
    "InvalidPatchError",
    "InvalidQueryError",
]
