# bundle_engine/infrastructure/memory/repository.py

import copy
from threading import Lock
from typing import Dict, List, Tuple

from bundle_engine.core.repository import ResourceRepository, SecretStore
from bundle_engine.core.errors import (
    ResourceAlreadyExists,
    ResourceConflictError,
    ResourceNotFound,
)


class InMemoryResourceRepository(ResourceRepository):
    def __init__(self):
        self._store: Dict[Tuple[str, str, str], object] = {}
        self._lock = Lock()

    @staticmethod
    def _key(record_type, name: str, namespace: str) -> Tuple[str, str, str]:
        return (record_type.KIND, namespace, name)

    def find(self, record_type, name: str, namespace: str):
        with self._lock:
            record = self._store.get(self._key(record_type, name, namespace))
            return copy.deepcopy(record)

    def list(self, record_type, namespace: str) -> List:
        with self._lock:
            return [
                copy.deepcopy(record)
                for (kind, ns, _), record in sorted(self._store.items(), key=lambda item: item[0])
                if kind == record_type.KIND and ns == namespace
            ]

    def create(self, record):
        key = self._key(type(record), record.resource_name, record.namespace)
        with self._lock:
            if key in self._store:
                raise ResourceAlreadyExists(
                    f"{record.KIND} '{record.resource_name}' already exists"
                )
            stored = copy.deepcopy(record)
            stored.resource_version = 1
            self._store[key] = stored
            return copy.deepcopy(stored)

    def apply(self, record):
        key = self._key(type(record), record.resource_name, record.namespace)
        with self._lock:
            current = self._store.get(key)
            stored = copy.deepcopy(record)
            stored.resource_version = current.resource_version + 1 if current else 1
            self._store[key] = stored
            return copy.deepcopy(stored)

    def patch(self, updated, original):
        key = self._key(type(original), original.resource_name, original.namespace)
        with self._lock:
            current = self._store.get(key)
            if current is None:
                raise ResourceNotFound(f"{original.KIND} '{original.resource_name}' not found")
            if current.resource_version != original.resource_version:
                raise ResourceConflictError(
                    f"{original.KIND} '{original.resource_name}' was modified "
                    f"(expected version {original.resource_version}, found {current.resource_version})"
                )
            stored = copy.deepcopy(updated)
            stored.resource_version = current.resource_version + 1
            self._store[key] = stored
            return copy.deepcopy(stored)

    def delete(self, record_type, name: str, namespace: str) -> bool:
        with self._lock:
            return self._store.pop(self._key(record_type, name, namespace), None) is not None


class InMemorySecretStore(SecretStore):
    def __init__(self, max_retries: int = 5):
        super().__init__(max_retries=max_retries)
        self._data: Dict[str, str] = {}
        self._version = 0
        self._lock = Lock()

    def read(self) -> Tuple[Dict[str, str], int]:
        with self._lock:
            return dict(self._data), self._version

    def write(self, data: Dict[str, str], expected_version: int) -> int:
        with self._lock:
            if self._version != expected_version:
                raise ResourceConflictError(
                    f"secret record changed (expected version {expected_version}, found {self._version})"
                )
            self._data = dict(data)
            self._version += 1
            return self._version
