"""
Document Store Backend.

Database and container management for the embedded store, using
in-memory storage with async locking.

Author: LocalCosmos Team
Date: 2026-10-19
"""

import asyncio
import hashlib
import logging
import time
from datetime import datetime, timezone
from typing import Dict, List, Optional

from pydantic import ValidationError

from localcosmos.core.config_manager import StoreConfig

from .container import Container
from .exceptions import (
    BadRequestError,
    ContainerAlreadyExistsError,
    ContainerNotFoundError,
    DatabaseAlreadyExistsError,
    DatabaseNotFoundError,
    InvalidPartitionKeyError,
)
from .models import ContainerProperties, DatabaseProperties, PartitionKeyDefinition
from .versioning import VersionGuard

logger = logging.getLogger(__name__)


class StoreBackend:
    """Owns databases and their containers.

    Resource-level operations are serialized by one lock; document
    operations are handled by each Container with per-document locks.
    All containers share one VersionGuard, so tokens stay unique even
    across a container being dropped and re-created.

    Attributes:
        config: Store configuration applied to every container
    """

    def __init__(self, config: Optional[StoreConfig] = None) -> None:
        self.config = config or StoreConfig()
        self._databases: Dict[str, DatabaseProperties] = {}
        self._containers: Dict[str, Dict[str, Container]] = {}
        self._guard = VersionGuard()
        self._lock = asyncio.Lock()

    def _generate_resource_id(self, resource_type: str, identifier: str) -> str:
        hash_input = f"{resource_type}:{identifier}:{time.time()}"
        return hashlib.sha256(hash_input.encode()).hexdigest()[:8]

    def _generate_timestamp(self) -> int:
        return int(datetime.now(timezone.utc).timestamp())

    def _get_database_unlocked(self, database_id: str) -> DatabaseProperties:
        if database_id not in self._databases:
            raise DatabaseNotFoundError(
                f"Database with id '{database_id}' not found",
                database_id=database_id
            )
        return self._databases[database_id]

    def _get_container_unlocked(self, database_id: str, container_id: str) -> Container:
        self._get_database_unlocked(database_id)
        if container_id not in self._containers[database_id]:
            raise ContainerNotFoundError(
                f"Container with id '{container_id}' not found in database '{database_id}'",
                container_id=container_id,
                database_id=database_id
            )
        return self._containers[database_id][container_id]

    # ========== Databases ==========

    async def create_database(self, database_id: str) -> DatabaseProperties:
        """Create a new database.

        Raises:
            BadRequestError: If the database ID is invalid
            DatabaseAlreadyExistsError: If database already exists
        """
        async with self._lock:
            if database_id in self._databases:
                raise DatabaseAlreadyExistsError(
                    f"Database with id '{database_id}' already exists",
                    database_id=database_id
                )
            return self._create_database_unlocked(database_id)

    async def create_database_if_not_exists(self, database_id: str) -> DatabaseProperties:
        """Return the database, creating it first if needed."""
        async with self._lock:
            if database_id in self._databases:
                return self._databases[database_id]
            return self._create_database_unlocked(database_id)

    def _create_database_unlocked(self, database_id: str) -> DatabaseProperties:
        rid = self._generate_resource_id("db", database_id)
        try:
            database = DatabaseProperties(
                id=database_id,
                _rid=rid,
                _ts=self._generate_timestamp(),
                _self=f"dbs/{rid}",
                _etag=f'"{rid}"'
            )
        except ValidationError as e:
            raise BadRequestError(f"Invalid database: {e.errors()[0].get('msg')}") from e

        self._databases[database_id] = database
        self._containers[database_id] = {}
        logger.info(f"Created database '{database_id}'")
        return database

    async def get_database(self, database_id: str) -> DatabaseProperties:
        """Get a database by ID.

        Raises:
            DatabaseNotFoundError: If database not found
        """
        async with self._lock:
            return self._get_database_unlocked(database_id)

    async def list_databases(self) -> List[DatabaseProperties]:
        """List all databases."""
        async with self._lock:
            return list(self._databases.values())

    async def delete_database(self, database_id: str) -> None:
        """Delete a database and all its containers.

        Raises:
            DatabaseNotFoundError: If database not found
        """
        async with self._lock:
            self._get_database_unlocked(database_id)
            del self._containers[database_id]
            del self._databases[database_id]
            logger.info(f"Deleted database '{database_id}'")

    # ========== Containers ==========

    async def create_container(
        self,
        database_id: str,
        container_id: str,
        partition_key_path: str,
        id_field: Optional[str] = None
    ) -> Container:
        """Create a new container in a database.

        Args:
            database_id: Database identifier
            container_id: Container identifier
            partition_key_path: Partition key path, e.g. "/myPartitionKey"
            id_field: Identifier property name; defaults to the store config

        Raises:
            DatabaseNotFoundError: If database not found
            ContainerAlreadyExistsError: If container already exists
            InvalidPartitionKeyError: If partition key path is invalid
        """
        async with self._lock:
            self._get_database_unlocked(database_id)
            if container_id in self._containers[database_id]:
                raise ContainerAlreadyExistsError(
                    f"Container with id '{container_id}' already exists in database '{database_id}'",
                    container_id=container_id,
                    database_id=database_id
                )
            return self._create_container_unlocked(database_id, container_id, partition_key_path, id_field)

    async def create_container_if_not_exists(
        self,
        database_id: str,
        container_id: str,
        partition_key_path: str,
        id_field: Optional[str] = None
    ) -> Container:
        """Return the container, creating it first if needed.

        Raises:
            DatabaseNotFoundError: If database not found
            InvalidPartitionKeyError: If the existing container uses a
                different partition key path
        """
        async with self._lock:
            self._get_database_unlocked(database_id)
            existing = self._containers[database_id].get(container_id)
            if existing is None:
                return self._create_container_unlocked(database_id, container_id, partition_key_path, id_field)

            if existing.partition_key_path != partition_key_path:
                raise InvalidPartitionKeyError(
                    f"Container '{container_id}' already exists with partition key "
                    f"'{existing.partition_key_path}', not '{partition_key_path}'",
                    partition_key_path=partition_key_path
                )
            return existing

    def _create_container_unlocked(
        self,
        database_id: str,
        container_id: str,
        partition_key_path: str,
        id_field: Optional[str]
    ) -> Container:
        try:
            partition_key = PartitionKeyDefinition(paths=[partition_key_path])
        except ValidationError as e:
            raise InvalidPartitionKeyError(
                f"Invalid partition key path '{partition_key_path}': {e.errors()[0].get('msg')}",
                partition_key_path=partition_key_path
            ) from e

        rid = self._generate_resource_id("coll", container_id)
        database = self._databases[database_id]
        try:
            properties = ContainerProperties(
                id=container_id,
                partitionKey=partition_key,
                idField=id_field or self.config.id_field,
                _rid=rid,
                _ts=self._generate_timestamp(),
                _self=f"{database.self_link}/colls/{rid}",
                _etag=f'"{rid}"'
            )
        except ValidationError as e:
            raise BadRequestError(f"Invalid container: {e.errors()[0].get('msg')}") from e

        container = Container(properties, config=self.config, version_guard=self._guard)
        self._containers[database_id][container_id] = container
        logger.info(
            f"Created container '{container_id}' in database '{database_id}' "
            f"(partition key {partition_key_path})"
        )
        return container

    async def get_container(self, database_id: str, container_id: str) -> Container:
        """Get a container by ID.

        Raises:
            DatabaseNotFoundError: If database not found
            ContainerNotFoundError: If container not found
        """
        async with self._lock:
            return self._get_container_unlocked(database_id, container_id)

    async def list_containers(self, database_id: str) -> List[ContainerProperties]:
        """List container properties in a database.

        Raises:
            DatabaseNotFoundError: If database not found
        """
        async with self._lock:
            self._get_database_unlocked(database_id)
            return [container.properties for container in self._containers[database_id].values()]

    async def delete_container(self, database_id: str, container_id: str) -> None:
        """Delete a container and its documents.

        Raises:
            DatabaseNotFoundError: If database not found
            ContainerNotFoundError: If container not found
        """
        async with self._lock:
            self._get_container_unlocked(database_id, container_id)
            del self._containers[database_id][container_id]
            logger.info(f"Deleted container '{container_id}' from database '{database_id}'")

    async def clear(self) -> None:
        """Clear all databases, containers, and documents.

        Used for testing purposes.
        """
        async with self._lock:
            self._databases.clear()
            self._containers.clear()
