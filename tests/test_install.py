"""Test installs, flavors and install configuration."""

import pytest

from bundle_engine.cluster.models import Node
from bundle_engine.core.errors import (
    AdmissionError,
    ResourceConflictError,
    ResourceNotFound,
    UnknownConfigError,
)
from bundle_engine.domain.config import ConfigManager
from bundle_engine.domain.install import InstallManager
from bundle_engine.domain.models import (
    Application,
    GenerateSecret,
    Install,
    ParameterDefinition,
    ParameterSpec,
)
from bundle_engine.domain.secrets import secret_key


@pytest.fixture
def installer(repository, cluster, flavors):
    return InstallManager(repository, cluster, flavors)


@pytest.fixture
def pg_app(repository):
    app = Application(
        name="pg",
        version="1.0.0",
        deploy_image="registry.example.com/pg-deploy:1.0.0",
        parameters=[
            ParameterDefinition("port", default="5432", description="listen port"),
            ParameterDefinition("password", generate_secret=GenerateSecret(format="hex", bytes=16)),
        ],
    )
    app.apply_defaults()
    return repository.create(app)


class TestInstallManager:
    """Test InstallManager."""

    # -------------------------
    # INSTALL
    # -------------------------

    def test_install_creates_record(self, installer, pg_app, repository):
        """Test a new install carries the given overrides."""
        installer.install("pg", "default", "1.0.0", parameters=[ParameterSpec("port", "6543")])

        install = repository.get(Install, "pg", "default")
        assert install.application_name == "pg-1.0.0"
        assert install.flavor == "default"
        assert [(p.name, p.value) for p in install.parameters] == [("port", "6543")]

    def test_suffix_in_name(self, installer, pg_app):
        """Test a suffix is appended to the install name."""
        install = installer.install("pg", "default", "1.0.0", name="pg", suffix="primary")

        assert install.name == "pg-primary"
        assert install.suffix == "primary"

    def test_reinstall_preserves_overrides(self, installer, pg_app, repository):
        """Test a second install keeps the first call's overrides verbatim."""
        installer.install("pg", "default", "1.0.0", parameters=[ParameterSpec("port", "6543")])

        updated = installer.install(
            "pg", "default", "2.0.0", docker_registry="localhost:6000", parameters=[ParameterSpec("port", "1")]
        )

        assert [(p.name, p.value) for p in updated.parameters] == [("port", "6543")]
        assert updated.version == "2.0.0"
        assert updated.docker_registry == "localhost:6000"
        assert repository.get(Install, "pg", "default").resource_version == 2

    def test_unknown_flavor(self, installer, pg_app):
        """Test installing with a flavor that does not exist fails."""
        with pytest.raises(ResourceNotFound):
            installer.install("pg", "default", "1.0.0", flavor="gold")

    def test_insufficient_nodes(self, installer, pg_app, cluster):
        """Test the ha flavor needs three nodes unless forced."""
        cluster.nodes = [Node(name="solo")]

        with pytest.raises(AdmissionError):
            installer.install("pg", "default", "1.0.0", flavor="ha")

        install = installer.install("pg", "default", "1.0.0", flavor="ha", force=True)
        assert install.flavor == "ha"

    # -------------------------
    # DESCRIBE
    # -------------------------

    def test_describe(self, installer, pg_app, secret_store):
        """Test descriptions show overrides and defaults without generating secrets."""
        installer.install("pg", "default", "1.0.0", parameters=[ParameterSpec("port", "6543")])

        [description] = installer.describe("default", ["pg"])

        assert description.parameters["port"].value == "6543"
        assert description.parameters["port"].default == "5432"
        assert secret_store.get(secret_key("pg", "password")) is None


class TestConfigManager:
    """Test ConfigManager."""

    @pytest.fixture
    def config(self, repository, resolver, installer, pg_app):
        installer.install("pg", "default", "1.0.0")
        return ConfigManager(repository, resolver)

    def test_list_and_get(self, config):
        """Test the merged map is exposed per key."""
        assert config.get("pg", "default", "port") == "5432"
        assert set(config.list("pg", "default")) == {"port", "password"}

    def test_get_unknown_key(self, config):
        """Test unknown keys are rejected."""
        with pytest.raises(UnknownConfigError):
            config.get("pg", "default", "nope")

    def test_set(self, config):
        """Test set overrides a known key."""
        config.set("pg", "default", "port", "7000")
        config.set("pg", "default", "port", "7001")

        assert config.get("pg", "default", "port") == "7001"

    def test_set_unknown_key(self, config):
        """Test set refuses keys that are not parameters of the install."""
        with pytest.raises(UnknownConfigError):
            config.set("pg", "default", "nope", "1")

    def test_remove_restores_default(self, config, repository):
        """Test removing an override brings the default back."""
        config.set("pg", "default", "port", "7000")

        config.remove("pg", "default", "port")

        assert config.get("pg", "default", "port") == "5432"
        assert repository.get(Install, "pg", "default").parameters == []

    def test_remove_pins_generated_secret(self, config, repository):
        """Test removing a secret override keeps the stored secret value."""
        generated = config.get("pg", "default", "password")
        install = repository.get(Install, "pg", "default")
        install_copy = repository.get(Install, "pg", "default")
        install_copy.parameters = [ParameterSpec("password", generate_secret=GenerateSecret(format="hex", bytes=16))]
        repository.patch(install_copy, install)

        updated = config.remove("pg", "default", "password")

        assert [(p.name, p.value) for p in updated.parameters] == [("password", generated)]

    def test_stale_patch_conflicts(self, repository, installer, pg_app):
        """Test a patch against a stale original fails."""
        installer.install("pg", "default", "1.0.0")
        original = repository.get(Install, "pg", "default")
        first = repository.get(Install, "pg", "default")
        first.parameters = [ParameterSpec("port", "1")]
        repository.patch(first, original)

        second = repository.get(Install, "pg", "default")
        second.parameters = [ParameterSpec("port", "2")]
        with pytest.raises(ResourceConflictError):
            repository.patch(second, original)
