# bundle_engine/core/repository.py

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from bundle_engine.core.errors import (
    ResourceAlreadyExists,
    ResourceConflictError,
    ResourceNotFound,
)

logger = logging.getLogger(__name__)


class ResourceRepository(ABC):
    """
    Persistence contract for cluster records (applications, installs, flavors...).

    Records are addressed by (kind, namespace, name) and carry a
    resource_version that increases on every write.
    """

    @abstractmethod
    def find(self, record_type, name: str, namespace: str):
        """
        Fetch a record.
        Returns None if not found.
        """
        raise NotImplementedError

    @abstractmethod
    def list(self, record_type, namespace: str) -> List:
        raise NotImplementedError

    @abstractmethod
    def create(self, record):
        """
        Persist a new record.
        Must fail with ResourceAlreadyExists if the name is taken.
        """
        raise NotImplementedError

    @abstractmethod
    def apply(self, record):
        """Create or replace unconditionally."""
        raise NotImplementedError

    @abstractmethod
    def patch(self, updated, original):
        """
        Replace a record previously read as `original`.
        Must fail with ResourceConflictError if the stored copy changed since.
        """
        raise NotImplementedError

    @abstractmethod
    def delete(self, record_type, name: str, namespace: str) -> bool:
        """
        Remove a record. Deleting a missing record is not an error.
        Returns True if something was removed.
        """
        raise NotImplementedError

    def get(self, record_type, name: str, namespace: str):
        record = self.find(record_type, name, namespace)
        if record is None:
            raise ResourceNotFound(
                f"{record_type.KIND} '{name}' not found in namespace '{namespace}'"
            )
        return record

    def create_if_absent(self, record) -> Tuple[object, bool]:
        """Create a record, or return the stored one. Second item tells if it was created."""
        try:
            return self.create(record), True
        except ResourceAlreadyExists:
            existing = self.get(type(record), record.resource_name, record.namespace)
            return existing, False


class SecretStore(ABC):
    """
    The shared global secret record: one key/value map with a version.

    Writes are conditional on the version that was read, so concurrent
    writers never silently overwrite each other.
    """

    def __init__(self, max_retries: int = 5):
        self.max_retries = max_retries

    @abstractmethod
    def read(self) -> Tuple[Dict[str, str], int]:
        """Return (data, version). Version 0 means the record does not exist yet."""
        raise NotImplementedError

    @abstractmethod
    def write(self, data: Dict[str, str], expected_version: int) -> int:
        """
        Store the full map if the current version equals expected_version.
        Returns the new version, raises ResourceConflictError otherwise.
        """
        raise NotImplementedError

    def get(self, key: str) -> Optional[str]:
        data, _ = self.read()
        return data.get(key)

    def create_if_absent(self, key: str, value: str) -> str:
        """
        Store value under key unless a value is already present.
        Returns whichever value ends up stored.
        """
        for attempt in range(self.max_retries):
            data, version = self.read()
            if key in data:
                return data[key]

            updated = dict(data)
            updated[key] = value
            try:
                self.write(updated, version)
                return value
            except ResourceConflictError:
                logger.info(f"[secrets] conflict writing '{key}', retrying ({attempt + 1}/{self.max_retries})")

        raise ResourceConflictError(f"couldn't store secret '{key}' after {self.max_retries} attempts")

