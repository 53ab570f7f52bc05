"""SQL resource store using SQLAlchemy."""

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from bundle_engine.core.repository import ResourceRepository, SecretStore
from bundle_engine.core.errors import (
    PersistenceError,
    ResourceAlreadyExists,
    ResourceConflictError,
    ResourceNotFound,
)
from bundle_engine.domain.schemas import from_document, to_document
from bundle_engine.infrastructure.sql.database import get_session_factory
from bundle_engine.infrastructure.sql.models import ResourceORM, SecretORM

logger = logging.getLogger(__name__)


# ============================================
# Mapping Functions
# ============================================

def orm_to_domain(record_type, orm: ResourceORM):
    """Convert a stored row to its record."""
    record = from_document(record_type, orm.document)
    record.namespace = orm.namespace
    record.resource_version = orm.resource_version
    return record


def domain_to_orm(record, resource_version: int = 1) -> ResourceORM:
    """Convert a record to a new row."""
    return ResourceORM(
        kind=record.KIND,
        namespace=record.namespace,
        name=record.resource_name,
        resource_version=resource_version,
        document=to_document(record),
    )


# ============================================
# Resource Repository
# ============================================

class SqlResourceRepository(ResourceRepository):
    """SQL implementation with an injectable session factory."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory or get_session_factory()

    def _get_session(self) -> Session:
        return self._session_factory()

    # -------------------------
    # READ
    # -------------------------

    def find(self, record_type, name: str, namespace: str):
        session = self._get_session()
        try:
            orm = session.get(ResourceORM, (record_type.KIND, namespace, name))
            if orm is None:
                logger.debug(f"[sql] get {record_type.KIND}/{namespace}/{name} -> not found")
                return None
            return orm_to_domain(record_type, orm)
        finally:
            session.close()

    def list(self, record_type, namespace: str) -> List:
        session = self._get_session()
        try:
            rows = session.query(ResourceORM).filter(
                and_(
                    ResourceORM.kind == record_type.KIND,
                    ResourceORM.namespace == namespace,
                )
            ).order_by(ResourceORM.name.asc()).all()
            return [orm_to_domain(record_type, row) for row in rows]
        finally:
            session.close()

    # -------------------------
    # WRITE
    # -------------------------

    def create(self, record):
        session = self._get_session()
        try:
            orm = domain_to_orm(record)
            session.add(orm)
            session.commit()
            logger.debug(f"[sql] create {record.KIND}/{record.namespace}/{record.resource_name}")
            return orm_to_domain(type(record), orm)
        except IntegrityError as e:
            session.rollback()
            raise ResourceAlreadyExists(
                f"{record.KIND} '{record.resource_name}' already exists"
            ) from e
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"couldn't create {record.KIND} '{record.resource_name}': {e}") from e
        finally:
            session.close()

    def apply(self, record):
        session = self._get_session()
        try:
            orm = session.query(ResourceORM).filter(
                and_(
                    ResourceORM.kind == record.KIND,
                    ResourceORM.namespace == record.namespace,
                    ResourceORM.name == record.resource_name,
                )
            ).with_for_update().first()

            if orm is None:
                orm = domain_to_orm(record)
                session.add(orm)
            else:
                orm.document = to_document(record)
                orm.resource_version += 1

            session.commit()
            return orm_to_domain(type(record), orm)
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"couldn't apply {record.KIND} '{record.resource_name}': {e}") from e
        finally:
            session.close()

    def patch(self, updated, original):
        session = self._get_session()
        try:
            orm = session.get(ResourceORM, (original.KIND, original.namespace, original.resource_name))
            if orm is None:
                raise ResourceNotFound(f"{original.KIND} '{original.resource_name}' not found")

            count = session.query(ResourceORM).filter(
                and_(
                    ResourceORM.kind == original.KIND,
                    ResourceORM.namespace == original.namespace,
                    ResourceORM.name == original.resource_name,
                    ResourceORM.resource_version == original.resource_version,
                )
            ).update(
                {
                    ResourceORM.document: to_document(updated),
                    ResourceORM.resource_version: original.resource_version + 1,
                },
                synchronize_session=False,
            )

            if count == 0:
                raise ResourceConflictError(
                    f"{original.KIND} '{original.resource_name}' was modified "
                    f"(expected version {original.resource_version})"
                )

            session.commit()
            patched = from_document(type(updated), to_document(updated))
            patched.namespace = original.namespace
            patched.resource_version = original.resource_version + 1
            return patched
        except (ResourceNotFound, ResourceConflictError):
            session.rollback()
            raise
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"couldn't patch {original.KIND} '{original.resource_name}': {e}") from e
        finally:
            session.close()

    def delete(self, record_type, name: str, namespace: str) -> bool:
        session = self._get_session()
        try:
            count = session.query(ResourceORM).filter(
                and_(
                    ResourceORM.kind == record_type.KIND,
                    ResourceORM.namespace == namespace,
                    ResourceORM.name == name,
                )
            ).delete(synchronize_session=False)
            session.commit()
            return count > 0
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"couldn't delete {record_type.KIND} '{name}': {e}") from e
        finally:
            session.close()


# ============================================
# Secret Store
# ============================================

class SqlSecretStore(SecretStore):
    """Global secret record stored as one versioned row."""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        name: str = "global-secret",
        namespace: str = "default",
        max_retries: int = 5,
    ):
        super().__init__(max_retries=max_retries)
        self._session_factory = session_factory or get_session_factory()
        self.name = name
        self.namespace = namespace

    def read(self) -> Tuple[Dict[str, str], int]:
        session = self._session_factory()
        try:
            orm = session.get(SecretORM, (self.name, self.namespace))
            if orm is None:
                return {}, 0
            return dict(orm.data or {}), orm.version
        finally:
            session.close()

    def write(self, data: Dict[str, str], expected_version: int) -> int:
        session = self._session_factory()
        try:
            if expected_version == 0:
                session.add(SecretORM(name=self.name, namespace=self.namespace, version=1, data=dict(data)))
                session.commit()
                return 1

            count = session.query(SecretORM).filter(
                and_(
                    SecretORM.name == self.name,
                    SecretORM.namespace == self.namespace,
                    SecretORM.version == expected_version,
                )
            ).update(
                {SecretORM.data: dict(data), SecretORM.version: expected_version + 1},
                synchronize_session=False,
            )
            if count == 0:
                session.rollback()
                raise ResourceConflictError(
                    f"secret '{self.name}' changed (expected version {expected_version})"
                )

            session.commit()
            return expected_version + 1
        except IntegrityError as e:
            session.rollback()
            raise ResourceConflictError(f"secret '{self.name}' was created concurrently") from e
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"couldn't write secret '{self.name}': {e}") from e
        finally:
            session.close()
