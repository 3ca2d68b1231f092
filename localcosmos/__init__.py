"""
LocalCosmos: embedded document store

An in-process, partition-keyed JSON document store with optimistic
concurrency, atomic patch batches and a parameterised query language.
"""

__version__ = "0.1.0"
__author__ = "LocalCosmos Team"

from .store.backend import StoreBackend
from .store.container import Container

__all__ = ["StoreBackend", "Container", "__version__"]
