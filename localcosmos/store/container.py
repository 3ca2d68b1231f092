"""
Document Store.

A container of partition-keyed JSON documents held in memory. Every
document lives in a (partition value, id) slot guarded by its own asyncio
lock, so version-token checks are atomic with the writes they protect and
operations on different slots never wait on each other.

Author: LocalCosmos Team
Date: 2026-10-19
"""

import asyncio
import copy
import hashlib
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Hashable, List, Mapping, Optional, Sequence, Tuple, Union

from localcosmos.core.config_manager import StoreConfig
from localcosmos.core.logging_config import log_with_context

from .documents import (
    find_invalid_value,
    format_path,
    get_value,
    is_missing,
    is_number,
    parse_path,
    partition_slot,
    strip_system_properties,
)
from .exceptions import (
    BadRequestError,
    DocumentAlreadyExistsError,
    DocumentNotFoundError,
    InvalidPartitionKeyError,
    PreconditionFailedError,
)
from .models import ContainerProperties, PatchOperation
from .patch import apply_patch
from .query import QueryIterator, compile_query
from .versioning import VersionGuard

logger = logging.getLogger(__name__)

_INVALID_ID_CHARACTERS = set("/\\?#")


@dataclass
class _SlotLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class Container:
    """In-memory document container.

    Documents are stored as ``{partition: {id: document}}``; both levels
    keep insertion order, which is the order queries return results in.

    Attributes:
        properties: Container resource properties
    """

    def __init__(
        self,
        properties: ContainerProperties,
        config: Optional[StoreConfig] = None,
        version_guard: Optional[VersionGuard] = None
    ) -> None:
        self.properties = properties
        self._config = config or StoreConfig()
        self._guard = version_guard or VersionGuard()
        self._id_field = properties.id_field
        self._pk_path = properties.partition_key.path
        self._pk_segments = parse_path(self._pk_path)
        self._partitions: Dict[Hashable, Dict[str, Dict[str, Any]]] = {}
        self._slot_locks: Dict[Tuple[Hashable, str], _SlotLock] = {}

    @property
    def id(self) -> str:
        return self.properties.id

    @property
    def partition_key_path(self) -> str:
        return self._pk_path

    def __repr__(self) -> str:
        return f"<Container {self.id!r} partition_key={self._pk_path!r}>"

    # ========== Helpers ==========

    @asynccontextmanager
    async def _slot(self, partition: Hashable, document_id: str) -> AsyncIterator[None]:
        """Hold the lock for one (partition, id) slot."""
        key = (partition, document_id)
        slot = self._slot_locks.get(key)
        if slot is None:
            slot = self._slot_locks[key] = _SlotLock()
        slot.users += 1
        try:
            async with slot.lock:
                yield
        finally:
            slot.users -= 1
            if slot.users == 0 and document_id not in self._partitions.get(partition, {}):
                self._slot_locks.pop(key, None)

    def _generate_resource_id(self, document_id: str) -> str:
        hash_input = f"doc:{self.id}:{document_id}:{uuid.uuid4()}"
        return hashlib.sha256(hash_input.encode()).hexdigest()[:12]

    def _generate_timestamp(self) -> int:
        return int(datetime.now(timezone.utc).timestamp())

    def _prepare_body(self, body: Mapping[str, Any]) -> Dict[str, Any]:
        """Validate a caller-supplied body and copy it without system properties.

        Raises:
            BadRequestError: If the body is not a JSON object
        """
        if not isinstance(body, Mapping):
            raise BadRequestError(f"Document must be a JSON object, got {type(body).__name__}")
        problem = find_invalid_value(dict(body))
        if problem:
            raise BadRequestError(f"Document is not valid JSON: {problem}")
        return copy.deepcopy(strip_system_properties(dict(body)))

    def _validate_id(self, document_id: Any) -> str:
        if not isinstance(document_id, str) or not document_id:
            raise BadRequestError(
                f"Document '{self._id_field}' must be a non-empty string, got {document_id!r}"
            )
        if len(document_id) > 255:
            raise BadRequestError(f"Document '{self._id_field}' must be 255 characters or less")
        if _INVALID_ID_CHARACTERS.intersection(document_id):
            raise BadRequestError(
                f"Document '{self._id_field}' cannot contain any of '/', '\\', '?', '#': {document_id!r}"
            )
        return document_id

    def _partition_slot(self, partition_key: Any) -> Hashable:
        """Map a partition key value to its storage slot.

        Raises:
            InvalidPartitionKeyError: If the value is not a string, number,
                boolean or null
        """
        if isinstance(partition_key, (list, tuple)) and len(partition_key) == 1:
            # single-element list form: ["value"]
            partition_key = partition_key[0]
        try:
            return partition_slot(partition_key)
        except (TypeError, ValueError) as e:
            raise InvalidPartitionKeyError(str(e), partition_key_path=self._pk_path) from e

    def _extract_partition_key(self, content: Dict[str, Any]) -> Tuple[Any, Hashable]:
        value = get_value(content, self._pk_segments)
        if is_missing(value):
            raise InvalidPartitionKeyError(
                f"Partition key '{self._pk_path}' not found in document",
                partition_key_path=self._pk_path
            )
        if not (value is None or isinstance(value, (str, bool)) or is_number(value)):
            raise InvalidPartitionKeyError(
                f"Partition key '{self._pk_path}' must be a string, number, boolean or null",
                partition_key_path=self._pk_path
            )
        return value, self._partition_slot(value)

    def _lookup(self, partition: Hashable, document_id: str, partition_key: Any) -> Dict[str, Any]:
        document = self._partitions.get(partition, {}).get(document_id)
        if document is None:
            raise DocumentNotFoundError(
                f"Document with id '{document_id}' and partition key '{partition_key}' not found",
                document_id=document_id,
                partition_key=partition_key
            )
        return document

    def _validate_if_match(self, if_match: Any) -> None:
        if if_match is not None and not isinstance(if_match, str):
            raise BadRequestError(
                f"if_match must be a version token string, got {type(if_match).__name__}"
            )

    def _check_precondition(self, document: Dict[str, Any], if_match: Optional[str]) -> None:
        if if_match is not None and not self._guard.check(if_match, document["_etag"]):
            raise PreconditionFailedError(
                f"ETag mismatch for document '{document[self._id_field]}'. "
                f"Expected '{if_match}', got '{document['_etag']}'",
                etag=if_match,
                current_etag=document["_etag"]
            )

    def _stamp(self, content: Dict[str, Any], existing: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Attach system properties to new content, issuing a fresh token."""
        if existing is not None:
            rid = existing["_rid"]
        else:
            rid = self._generate_resource_id(content[self._id_field])
        self_link = f"{self.properties.self_link}/docs/{rid}"
        return {
            **content,
            "_rid": rid,
            "_self": self_link,
            "_etag": self._guard.issue(content),
            "_attachments": "attachments/",
            "_ts": self._generate_timestamp(),
        }

    def _store(self, partition: Hashable, document: Dict[str, Any]) -> None:
        self._partitions.setdefault(partition, {})[document[self._id_field]] = document

    def _log_write(self, action: str, document: Dict[str, Any], partition_key: Any) -> None:
        log_with_context(
            logger,
            logging.DEBUG,
            f"{action} document '{document[self._id_field]}' in container '{self.id}'",
            container=self.id,
            document_id=document[self._id_field],
            partition_key=partition_key,
            etag=document["_etag"]
        )

    # ========== Point operations ==========

    async def create_item(self, body: Mapping[str, Any]) -> Dict[str, Any]:
        """Create a new document.

        An id is generated when the body has none (or an empty one).

        Args:
            body: Document content; must carry the partition key

        Returns:
            Stored document with system properties

        Raises:
            BadRequestError: If the body or its id is invalid
            InvalidPartitionKeyError: If the partition key is missing or invalid
            DocumentAlreadyExistsError: If (partition, id) is taken
        """
        content = self._prepare_body(body)
        if not content.get(self._id_field):
            content[self._id_field] = str(uuid.uuid4())
        document_id = self._validate_id(content[self._id_field])
        partition_key, partition = self._extract_partition_key(content)

        async with self._slot(partition, document_id):
            if document_id in self._partitions.get(partition, {}):
                raise DocumentAlreadyExistsError(
                    f"Document with id '{document_id}' already exists in partition '{partition_key}'",
                    document_id=document_id,
                    partition_key=partition_key
                )
            document = self._stamp(content)
            self._store(partition, document)

        self._log_write("Created", document, partition_key)
        return copy.deepcopy(document)

    async def read_item(self, item: str, partition_key: Any) -> Dict[str, Any]:
        """Read a document by id and partition key.

        Raises:
            DocumentNotFoundError: If no document occupies the slot
        """
        partition = self._partition_slot(partition_key)
        async with self._slot(partition, item):
            return copy.deepcopy(self._lookup(partition, item, partition_key))

    async def upsert_item(
        self,
        body: Mapping[str, Any],
        if_match: Optional[str] = None
    ) -> Dict[str, Any]:
        """Insert a document, or overwrite the one in its slot.

        Args:
            body: Document content
            if_match: Token the existing document must carry; ignored when
                the slot is empty

        Raises:
            PreconditionFailedError: If the existing document's token differs
        """
        self._validate_if_match(if_match)
        content = self._prepare_body(body)
        if not content.get(self._id_field):
            content[self._id_field] = str(uuid.uuid4())
        document_id = self._validate_id(content[self._id_field])
        partition_key, partition = self._extract_partition_key(content)

        async with self._slot(partition, document_id):
            existing = self._partitions.get(partition, {}).get(document_id)
            if existing is not None:
                self._check_precondition(existing, if_match)
            document = self._stamp(content, existing)
            self._store(partition, document)

        self._log_write("Upserted" if existing is None else "Updated", document, partition_key)
        return copy.deepcopy(document)

    async def replace_item(
        self,
        item: str,
        body: Mapping[str, Any],
        partition_key: Any = None,
        if_match: Optional[str] = None
    ) -> Dict[str, Any]:
        """Overwrite an existing document.

        Args:
            item: Document id; must match the body's id
            body: New document content
            partition_key: Expected partition key; defaults to the body's
            if_match: Token the existing document must carry

        Raises:
            BadRequestError: If the body id or partition key disagrees
            DocumentNotFoundError: If the document does not exist
            PreconditionFailedError: If the token differs
        """
        self._validate_if_match(if_match)
        content = self._prepare_body(body)
        body_id = content.setdefault(self._id_field, item)
        if body_id != item:
            raise BadRequestError(
                f"Document id '{body_id}' in body does not match requested id '{item}'"
            )
        self._validate_id(item)
        body_partition_key, partition = self._extract_partition_key(content)
        if partition_key is not None and self._partition_slot(partition_key) != partition:
            raise BadRequestError(
                f"Partition key '{body_partition_key}' in body does not match requested partition key '{partition_key}'"
            )

        async with self._slot(partition, item):
            existing = self._lookup(partition, item, body_partition_key)
            self._check_precondition(existing, if_match)
            document = self._stamp(content, existing)
            self._store(partition, document)

        self._log_write("Replaced", document, body_partition_key)
        return copy.deepcopy(document)

    async def patch_item(
        self,
        item: str,
        partition_key: Any,
        patch_operations: Sequence[Union[PatchOperation, Mapping[str, Any]]],
        if_match: Optional[str] = None
    ) -> Dict[str, Any]:
        """Apply a patch batch to a document atomically.

        Raises:
            DocumentNotFoundError: If the document does not exist
            PreconditionFailedError: If the token differs
            InvalidPatchError: If any operation cannot be applied; the
                document is left untouched
        """
        self._validate_if_match(if_match)
        partition = self._partition_slot(partition_key)
        async with self._slot(partition, item):
            existing = self._lookup(partition, item, partition_key)
            self._check_precondition(existing, if_match)
            patched = apply_patch(
                strip_system_properties(existing),
                patch_operations,
                protected_paths=[format_path([self._id_field]), self._pk_path],
                max_operations=self._config.max_patch_operations
            )
            document = self._stamp(patched, existing)
            self._store(partition, document)

        self._log_write("Patched", document, partition_key)
        return copy.deepcopy(document)

    async def delete_item(
        self,
        item: str,
        partition_key: Any,
        if_match: Optional[str] = None
    ) -> None:
        """Delete a document.

        Raises:
            DocumentNotFoundError: If the document does not exist
            PreconditionFailedError: If the token differs
        """
        self._validate_if_match(if_match)
        partition = self._partition_slot(partition_key)
        async with self._slot(partition, item):
            existing = self._lookup(partition, item, partition_key)
            self._check_precondition(existing, if_match)
            documents = self._partitions[partition]
            del documents[item]
            if not documents:
                del self._partitions[partition]

        self._log_write("Deleted", existing, partition_key)

    # ========== Queries ==========

    def query_items(
        self,
        query: str,
        parameters: Optional[Union[Mapping[str, Any], Sequence[Any]]] = None,
        partition_key: Any = None,
        enable_cross_partition_query: Optional[bool] = None,
        max_item_count: Optional[int] = None
    ) -> QueryIterator:
        """Query documents.

        The query is parsed and its parameters bound immediately; documents
        are read lazily as the returned iterator is consumed.

        Args:
            query: Query text (``SELECT * FROM c WHERE ...`` or a bare filter)
            parameters: Named parameters
            partition_key: Partition to scope the query to. When omitted, a
                filter pinning the partition key property scopes it instead;
                otherwise the query spans every partition
            enable_cross_partition_query: Allow spanning partitions;
                defaults to the store configuration
            max_item_count: Page size for ``by_page``

        Raises:
            InvalidQueryError: If the query is malformed or a parameter is unbound
            BadRequestError: If a cross-partition query is not enabled
        """
        compiled = compile_query(query, parameters)

        partitions: Optional[List[Hashable]]
        if partition_key is not None:
            partitions = [self._partition_slot(partition_key)]
        else:
            pinned = [
                value for path, value in compiled.bindings
                if list(path) == self._pk_segments
            ]
            if pinned:
                try:
                    partitions = [partition_slot(pinned[0])]
                except (TypeError, ValueError):
                    partitions = []
            else:
                allowed = enable_cross_partition_query
                if allowed is None:
                    allowed = self._config.enable_cross_partition_query
                if not allowed:
                    raise BadRequestError(
                        "Cross-partition queries must be enabled explicitly; "
                        "pass a partition key or enable_cross_partition_query=True"
                    )
                logger.warning(f"Running cross-partition query on container '{self.id}': {query}")
                partitions = None

        return QueryIterator(
            compiled,
            lambda: self._scan(partitions),
            max_item_count=max_item_count or self._config.max_item_count
        )

    def read_all_items(
        self,
        partition_key: Any = None,
        max_item_count: Optional[int] = None
    ) -> QueryIterator:
        """Iterate every document, optionally within one partition."""
        partitions = None if partition_key is None else [self._partition_slot(partition_key)]
        return QueryIterator(
            compile_query("SELECT * FROM c"),
            lambda: self._scan(partitions),
            max_item_count=max_item_count or self._config.max_item_count
        )

    async def _scan(self, partitions: Optional[List[Hashable]]) -> AsyncIterator[Dict[str, Any]]:
        """Yield a copy of each document, each taken under its slot lock."""
        if partitions is None:
            partitions = list(self._partitions.keys())

        for partition in partitions:
            for document_id in list(self._partitions.get(partition, {}).keys()):
                async with self._slot(partition, document_id):
                    document = self._partitions.get(partition, {}).get(document_id)
                    snapshot = copy.deepcopy(document) if document is not None else None
                if snapshot is not None:
                    yield snapshot

    def count(self, partition_key: Any = None) -> int:
        """Number of documents, optionally within one partition."""
        if partition_key is None:
            return sum(len(documents) for documents in self._partitions.values())
        return len(self._partitions.get(self._partition_slot(partition_key), {}))

    async def clear(self) -> None:
        """Remove every document.

        Used for testing purposes.
        """
        self._partitions.clear()
