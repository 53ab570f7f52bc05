# tests/conftest.py

"""Pytest configuration and fixtures."""

import io

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from bundle_engine.cluster.models import Node
from bundle_engine.container import build_container
from bundle_engine.core.events import RecordingEventEmitter
from bundle_engine.domain.flavor import FlavorManager
from bundle_engine.domain.secrets import SecretResolver
from bundle_engine.infrastructure.memory.cluster import InMemoryCluster
from bundle_engine.infrastructure.memory.repository import (
    InMemoryResourceRepository,
    InMemorySecretStore,
)
from bundle_engine.infrastructure.sql.database import drop_db, get_session_factory, init_db
from bundle_engine.settings import EngineSettings


# -------------------------
# SETTINGS
# -------------------------

@pytest.fixture
def fast_settings():
    """Settings with polling intervals short enough for tests."""
    return EngineSettings(
        job_poll_interval=0.01,
        rollout_poll_interval=0.01,
        job_grace_period=1,
        layer_workers=1,
    )


# -------------------------
# IN-MEMORY STORES
# -------------------------

@pytest.fixture
def repository():
    return InMemoryResourceRepository()


@pytest.fixture
def secret_store():
    return InMemorySecretStore()


@pytest.fixture
def resolver(secret_store):
    return SecretResolver(secret_store)


@pytest.fixture
def cluster():
    """A three node cluster with room for most manifests."""
    nodes = [
        Node(name=f"node-{i}", allocatable={"cpu": "8", "memory": "32Gi"})
        for i in range(3)
    ]
    return InMemoryCluster(nodes=nodes)


@pytest.fixture
def flavors(repository, fast_settings):
    manager = FlavorManager(repository, fast_settings)
    manager.seed_defaults()
    return manager


@pytest.fixture
def events():
    return RecordingEventEmitter()


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def container(cluster, repository, secret_store, fast_settings, events, output, flavors):
    """Every manager wired around the in-memory stores and cluster."""
    return build_container(
        cluster,
        repository=repository,
        secret_store=secret_store,
        settings=fast_settings,
        events=events,
        out=output,
    )


# -------------------------
# SQL
# -------------------------

@pytest.fixture
def sql_engine():
    """In-memory SQLite shared across sessions."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    drop_db(engine)
    engine.dispose()


@pytest.fixture
def sql_session_factory(sql_engine):
    return get_session_factory(sql_engine)


# -------------------------
# BUNDLES
# -------------------------

@pytest.fixture
def bundle_dir(tmp_path):
    return tmp_path / "bundles"
