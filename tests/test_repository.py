"""Test the SQL resource repository and secret store."""

import pytest

from bundle_engine.container import build_container
from bundle_engine.core.errors import (
    ResourceAlreadyExists,
    ResourceConflictError,
    ResourceNotFound,
)
from bundle_engine.domain.models import (
    Application,
    GenerateSecret,
    Install,
    ParameterDefinition,
    ParameterSpec,
    Requirement,
)
from bundle_engine.domain.secrets import SecretResolver
from bundle_engine.infrastructure.sql.database import get_db_session
from bundle_engine.infrastructure.sql.models import ResourceORM
from bundle_engine.infrastructure.sql.repository import SqlResourceRepository, SqlSecretStore


@pytest.fixture
def sql_repository(sql_session_factory):
    return SqlResourceRepository(sql_session_factory)


@pytest.fixture
def sql_secrets(sql_session_factory):
    return SqlSecretStore(sql_session_factory)


def sample_app():
    app = Application(
        name="pg",
        version="1.0.0",
        deploy_image="registry.example.com/pg-deploy:1.0.0",
        parameters=[
            ParameterDefinition("port", default="5432", required=True),
            ParameterDefinition("password", generate_secret=GenerateSecret(format="hex", bytes=16)),
        ],
        requires=[Requirement("vault", "", [ParameterSpec("mount", "pg")])],
    )
    app.apply_defaults()
    return app


class TestSqlResourceRepository:
    """Test SqlResourceRepository."""

    # -------------------------
    # CREATE / READ
    # -------------------------

    def test_create_and_get(self, sql_repository):
        """Test a record survives the document round trip through the database."""
        created = sql_repository.create(sample_app())

        stored = sql_repository.get(Application, "pg-1.0.0", "default")

        assert created.resource_version == 1
        assert stored == created
        assert stored.parameters[1].generate_secret.bytes == 16
        assert stored.requires[0].parameters[0].value == "pg"

    def test_create_duplicate_fails(self, sql_repository):
        """Test creating a record twice fails."""
        sql_repository.create(sample_app())

        with pytest.raises(ResourceAlreadyExists):
            sql_repository.create(sample_app())

    def test_create_if_absent(self, sql_repository):
        """Test create_if_absent returns the existing record the second time."""
        first, created = sql_repository.create_if_absent(sample_app())
        second, created_again = sql_repository.create_if_absent(sample_app())

        assert created and not created_again
        assert second.resource_version == first.resource_version

    def test_get_missing(self, sql_repository):
        """Test get fails and find returns None for missing records."""
        assert sql_repository.find(Install, "pg", "default") is None
        with pytest.raises(ResourceNotFound):
            sql_repository.get(Install, "pg", "default")

    def test_list_by_kind_and_namespace(self, sql_repository):
        """Test list filters by kind and namespace."""
        sql_repository.create(Install(name="b", application="x", version="1"))
        sql_repository.create(Install(name="a", application="x", version="1"))
        sql_repository.create(Install(name="c", application="x", version="1", namespace="other"))
        sql_repository.create(sample_app())

        assert [i.name for i in sql_repository.list(Install, "default")] == ["a", "b"]

    def test_document_stored_camel_case(self, sql_repository, sql_session_factory):
        """Test rows hold the camelCase document."""
        sql_repository.create(sample_app())

        with get_db_session(sql_session_factory) as session:
            row = session.get(ResourceORM, ("Application", "default", "pg-1.0.0"))
            assert row.document["deployImage"] == "registry.example.com/pg-deploy:1.0.0"

    # -------------------------
    # UPDATE / DELETE
    # -------------------------

    def test_patch_bumps_version(self, sql_repository):
        """Test a patch against the current version succeeds."""
        original = sql_repository.create(Install(name="pg", application="pg", version="1.0.0"))
        updated = sql_repository.get(Install, "pg", "default")
        updated.parameters = [ParameterSpec("port", "6543")]

        patched = sql_repository.patch(updated, original)

        assert patched.resource_version == 2
        assert sql_repository.get(Install, "pg", "default").parameters[0].value == "6543"

    def test_stale_patch_conflicts(self, sql_repository):
        """Test a patch against a stale version fails instead of overwriting."""
        original = sql_repository.create(Install(name="pg", application="pg", version="1.0.0"))
        sql_repository.patch(sql_repository.get(Install, "pg", "default"), original)

        with pytest.raises(ResourceConflictError):
            sql_repository.patch(sql_repository.get(Install, "pg", "default"), original)

    def test_apply_upserts(self, sql_repository):
        """Test apply creates and then replaces a record."""
        first = sql_repository.apply(Install(name="pg", application="pg", version="1.0.0"))
        second = sql_repository.apply(Install(name="pg", application="pg", version="2.0.0"))

        assert (first.resource_version, second.resource_version) == (1, 2)
        assert sql_repository.get(Install, "pg", "default").version == "2.0.0"

    def test_delete_is_idempotent(self, sql_repository):
        """Test deleting twice reports whether anything was removed."""
        sql_repository.create(Install(name="pg", application="pg", version="1.0.0"))

        assert sql_repository.delete(Install, "pg", "default") is True
        assert sql_repository.delete(Install, "pg", "default") is False


class TestSqlSecretStore:
    """Test SqlSecretStore."""

    def test_empty_record(self, sql_secrets):
        """Test an absent record reads as empty with version 0."""
        assert sql_secrets.read() == ({}, 0)

    def test_conditional_write(self, sql_secrets):
        """Test writes succeed only against the version that was read."""
        version = sql_secrets.write({"a": "1"}, 0)

        with pytest.raises(ResourceConflictError):
            sql_secrets.write({"a": "2"}, 0)

        sql_secrets.write({"a": "3"}, version)
        assert sql_secrets.get("a") == "3"

    def test_create_if_absent_keeps_first_value(self, sql_secrets):
        """Test a second create for the same key returns the stored value."""
        assert sql_secrets.create_if_absent("pg.password", "first") == "first"
        assert sql_secrets.create_if_absent("pg.password", "second") == "first"

    def test_create_if_absent_retries_conflicts(self, sql_session_factory):
        """Test a concurrent writer between read and write is retried."""
        store = SqlSecretStore(sql_session_factory)
        rival = SqlSecretStore(sql_session_factory)
        interfered = []
        original_read = store.read

        def racing_read():
            data, version = original_read()
            if not interfered:
                interfered.append(True)
                rival.create_if_absent("other.key", "x")
            return data, version

        store.read = racing_read

        assert store.create_if_absent("pg.password", "mine") == "mine"
        assert rival.get("other.key") == "x"
        assert rival.get("pg.password") == "mine"

    def test_create_if_absent_gives_up(self, sql_session_factory):
        """Test a writer that always loses raises after its retries."""
        store = SqlSecretStore(sql_session_factory, max_retries=2)
        store.read = lambda: ({}, 0)
        SqlSecretStore(sql_session_factory).write({"seed": "1"}, 0)

        with pytest.raises(ResourceConflictError):
            store.create_if_absent("pg.password", "mine")

    def test_resolver_uses_store(self, sql_secrets):
        """Test generated secrets persist in the SQL store."""
        resolver = SecretResolver(sql_secrets)

        value = resolver.resolve("pg", "password", GenerateSecret(format="hex", bytes=8))

        assert resolver.lookup("pg", "password") == value
        assert resolver.resolve("pg", "password", GenerateSecret(format="hex", bytes=8)) == value


class TestSqlContainer:
    """Test the managers wired around the SQL stores."""

    def test_install_through_sql_stores(self, sql_session_factory, fast_settings, cluster):
        """Test flavors, installs and generated secrets persist through SQL."""
        container = build_container(cluster, settings=fast_settings, session_factory=sql_session_factory)
        container.flavors.seed_defaults()
        container.repository.create(sample_app())

        container.installer.install("pg", "default", "1.0.0", parameters=[ParameterSpec("port", "6543")])
        password = container.config.get("pg", "default", "password")

        assert [f.name for f in container.flavors.list()] == ["default", "ha"]
        assert container.config.get("pg", "default", "port") == "6543"
        assert container.secret_store.get("pg.password") == password
