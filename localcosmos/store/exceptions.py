"""
Document Store Exceptions.

Exception hierarchy for store operations. Each error carries an
error code and an HTTP-like status code so callers can map failures
the way a managed document database client would.

Author: LocalCosmos Team
Date: 2026-10-19
"""

from typing import Any, Dict, Optional


class LocalCosmosError(Exception):
    """Base exception for document store errors.

    Attributes:
        message: Error message
        error_code: Machine-readable error code
        status_code: HTTP-like status code
        details: Additional context
    """

    error_code: str = "InternalServerError"
    status_code: int = 500

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to an error envelope."""
        return {
            "error": {
                "code": self.error_code,
                "status": self.status_code,
                "message": self.message,
                "details": self.details
            }
        }


# ========== Status families ==========

class NotFoundError(LocalCosmosError):
    """Resource does not exist."""
    error_code = "NotFound"
    status_code = 404


class ConflictError(LocalCosmosError):
    """Resource already exists."""
    error_code = "Conflict"
    status_code = 409


class PreconditionFailedError(LocalCosmosError):
    """Version token (ETag) mismatch."""
    error_code = "PreconditionFailed"
    status_code = 412

    def __init__(self, message: str, etag: str = "", current_etag: str = ""):
        super().__init__(message, details={"etag": etag})
        self.etag = etag
        self.current_etag = current_etag


class BadRequestError(LocalCosmosError):
    """Malformed request."""
    error_code = "BadRequest"
    status_code = 400


# ========== Database & container errors ==========

class DatabaseNotFoundError(NotFoundError):
    """Database not found error."""

    def __init__(self, message: str, database_id: str = ""):
        super().__init__(message, details={"database_id": database_id})
        self.database_id = database_id


class DatabaseAlreadyExistsError(ConflictError):
    """Database already exists error."""

    def __init__(self, message: str, database_id: str = ""):
        super().__init__(message, details={"database_id": database_id})
        self.database_id = database_id


class ContainerNotFoundError(NotFoundError):
    """Container not found error."""

    def __init__(self, message: str, container_id: str = "", database_id: str = ""):
        super().__init__(
            message,
            details={"container_id": container_id, "database_id": database_id}
        )
        self.container_id = container_id
        self.database_id = database_id


class ContainerAlreadyExistsError(ConflictError):
    """Container already exists error."""

    def __init__(self, message: str, container_id: str = "", database_id: str = ""):
        super().__init__(
            message,
            details={"container_id": container_id, "database_id": database_id}
        )
        self.container_id = container_id
        self.database_id = database_id


class InvalidPartitionKeyError(BadRequestError):
    """Partition key definition or value is invalid."""

    def __init__(self, message: str, partition_key_path: str = ""):
        super().__init__(message, details={"partition_key_path": partition_key_path})
        self.partition_key_path = partition_key_path


# ========== Document errors ==========

class DocumentNotFoundError(NotFoundError):
    """No document at the given (partition, id)."""

    def __init__(self, message: str, document_id: str = "", partition_key: Any = None):
        super().__init__(
            message,
            details={"document_id": document_id, "partition_key": partition_key}
        )
        self.document_id = document_id
        self.partition_key = partition_key


class DocumentAlreadyExistsError(ConflictError):
    """A document already occupies the given (partition, id)."""

    def __init__(self, message: str, document_id: str = "", partition_key: Any = None):
        super().__init__(
            message,
            details={"document_id": document_id, "partition_key": partition_key}
        )
        self.document_id = document_id
        self.partition_key = partition_key


class InvalidPatchError(BadRequestError):
    """A patch operation is malformed or cannot be applied.

    Attributes:
        index: Position of the first failing operation in the batch
        operation: The failing operation's op name
        path: The failing operation's path
        reason: Why the operation failed
    """

    error_code = "InvalidPatch"

    def __init__(
        self,
        reason: str,
        index: Optional[int] = None,
        operation: str = "",
        path: str = ""
    ):
        if index is None:
            message = f"Invalid patch: {reason}"
        else:
            message = f"Invalid patch operation #{index} ({operation} '{path}'): {reason}"
        super().__init__(
            message,
            details={"index": index, "operation": operation, "path": path, "reason": reason}
        )
        self.index = index
        self.operation = operation
        self.path = path
        self.reason = reason


class InvalidQueryError(BadRequestError):
    """Query text is malformed or references an unbound parameter."""

    error_code = "InvalidQuery"

    def __init__(self, message: str, query: str = "", position: Optional[int] = None):
        super().__init__(message, details={"query": query, "position": position})
        self.query = query
        self.position = position
