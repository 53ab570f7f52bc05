"""SQLAlchemy ORM models for the resource store."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Integer, JSON, String

from bundle_engine.infrastructure.sql.database import Base


class ResourceORM(Base):
    """
    One row per stored record (application, install, flavor, ...).

    The record body lives in `document` as its camelCase JSON form.
    """

    __tablename__ = "resources"

    kind = Column(String(64), primary_key=True)
    namespace = Column(String(253), primary_key=True)
    name = Column(String(253), primary_key=True)

    resource_version = Column(Integer, nullable=False, default=1)
    document = Column(JSON, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_resources_kind_namespace", "kind", "namespace"),
    )


class SecretORM(Base):
    """The global secret record. `version` guards every write."""

    __tablename__ = "secrets"

    name = Column(String(253), primary_key=True)
    namespace = Column(String(253), primary_key=True)

    version = Column(Integer, nullable=False, default=1)
    data = Column(JSON, nullable=False, default=dict)

    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)
