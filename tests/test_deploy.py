"""Test deploy execution."""

import json

import pytest

from bundle_engine.cluster.models import JOB_FAILED
from bundle_engine.core.errors import (
    ExecutionFailedError,
    ExecutionTimeoutError,
    MissingParameterError,
    ResourceNotFound,
)
from bundle_engine.core.models import DeployState
from bundle_engine.domain.models import (
    Application,
    Install,
    ParameterDefinition,
    ParameterSpec,
    Requirement,
    ResourceDefinition,
)
from bundle_engine.executor.deploy import (
    ACTION_APPLY,
    ACTION_APPLY_OUTPUTS,
    ACTION_DELETE,
    ACTION_SMOKETEST,
    rewrite_image,
)
from bundle_engine.infrastructure.memory.cluster import JobOutcome


def ready_deployment(name, namespace="default", ready=1):
    return {
        "metadata": {"name": name, "namespace": namespace, "generation": 1},
        "spec": {"replicas": 1},
        "status": {
            "observedGeneration": 1,
            "replicas": 1,
            "updatedReplicas": 1,
            "availableReplicas": ready,
            "readyReplicas": ready,
        },
    }


@pytest.fixture
def pg(repository):
    app = Application(
        name="pg",
        version="1.0.0",
        deploy_image="registry.example.com/bundles/pg-deploy:1.0.0",
        docker_registry="registry.example.com",
        parameters=[ParameterDefinition("port", default="5432")],
    )
    app.apply_defaults()
    repository.create(app)
    return repository.create(Install(name="pg", application="pg", version="1.0.0", flavor="default"))


@pytest.fixture
def deployer(container):
    return container.deployer


class TestDeploy:
    """Test DeployManager.deploy."""

    # -------------------------
    # SUCCESS
    # -------------------------

    def test_complete_job_rolls_out(self, deployer, pg, events, output):
        """Test a completed job ends rolled out and announces itself."""
        execution = deployer.deploy("pg", "default", ACTION_APPLY, timeout=5)

        assert execution.state == DeployState.ROLLED_OUT
        assert execution.is_terminal
        assert events.event_types == [
            "deploy.fetching",
            "deploy.configuring",
            "deploy.running",
            "deploy.polling",
            "deploy.rolled_out",
        ]
        assert "Waiting 5s for action 'apply' on pg..." in output.getvalue()

    def test_delete_action_skips_rollout(self, deployer, pg, repository, cluster):
        """Test the delete action completes without waiting on resources."""
        app = repository.get(Application, "pg-1.0.0", "default")
        updated = repository.get(Application, "pg-1.0.0", "default")
        updated.resources = [ResourceDefinition(name="pg", category="database", type="deployment")]
        repository.patch(updated, app)

        execution = deployer.deploy("pg", "default", ACTION_DELETE, timeout=5)

        assert execution.state == DeployState.COMPLETED

    def test_show_logs_streams_output(self, deployer, pg, cluster, output):
        """Test show_logs copies the job output."""
        cluster.script_job("pg", JobOutcome(logs="applied 3 objects\n"))

        deployer.deploy("pg", "default", ACTION_APPLY, timeout=5, show_logs=True)

        assert "applied 3 objects" in output.getvalue()

    def test_quiet_success_prints_no_logs(self, deployer, pg, cluster, output):
        """Test a successful job without show_logs prints nothing of its output."""
        cluster.script_job("pg", JobOutcome(logs="applied 3 objects\n"))

        deployer.deploy("pg", "default", ACTION_APPLY, timeout=5)

        assert "applied 3 objects" not in output.getvalue()

    def test_log_errors_do_not_fail_deploy(self, deployer, pg, cluster):
        """Test a broken log stream is logged, not raised."""
        cluster.script_job("pg", JobOutcome(log_error=ConnectionError("stream reset")))

        execution = deployer.deploy("pg", "default", ACTION_APPLY, timeout=5, show_logs=True)

        assert execution.state == DeployState.ROLLED_OUT

    # -------------------------
    # FAILURE / TIMEOUT
    # -------------------------

    def test_failed_job_prints_logs_once(self, deployer, pg, cluster, output, events):
        """Test a failed job raises and its logs are printed exactly once."""
        cluster.script_job("pg", JobOutcome(condition=JOB_FAILED, logs="error: bad manifest\n"))

        with pytest.raises(ExecutionFailedError) as exc_info:
            deployer.deploy("pg", "default", ACTION_APPLY, timeout=5, show_logs=False)

        assert "deploy failed" in str(exc_info.value)
        assert output.getvalue().count("error: bad manifest") == 1
        assert events.event_types[-1] == "deploy.failed"

    def test_failed_job_with_show_logs_prints_once(self, deployer, pg, cluster, output):
        """Test logs are not repeated when they were already streamed."""
        cluster.script_job("pg", JobOutcome(condition=JOB_FAILED, logs="error: bad manifest\n"))

        with pytest.raises(ExecutionFailedError):
            deployer.deploy("pg", "default", ACTION_APPLY, timeout=5, show_logs=True)

        assert output.getvalue().count("error: bad manifest") == 1

    def test_no_condition_times_out(self, deployer, pg, cluster, events, output):
        """Test a job that never finishes times out and leaves the job in place."""
        cluster.script_job("pg", JobOutcome(condition="", logs="still working\n"))

        with pytest.raises(ExecutionTimeoutError) as exc_info:
            deployer.deploy("pg", "default", ACTION_APPLY, timeout=0.05)

        assert "timeout expired" in str(exc_info.value)
        assert not isinstance(exc_info.value, ExecutionFailedError)
        assert events.event_types[-1] == "deploy.timed_out"
        assert cluster.get_job("pg", "default") is not None
        assert output.getvalue().count("still working") == 1

    def test_cluster_error_fails_execution(self, deployer, pg, cluster, events, monkeypatch):
        """Test an unexpected cluster error still ends the execution as failed."""
        def refuse(spec):
            raise OSError("connection refused")

        monkeypatch.setattr(cluster, "create_job", refuse)

        with pytest.raises(OSError):
            deployer.deploy("pg", "default", ACTION_APPLY, timeout=5)

        assert events.event_types == [
            "deploy.fetching",
            "deploy.configuring",
            "deploy.running",
            "deploy.failed",
        ]

    def test_missing_install(self, deployer, events):
        """Test deploying an unknown install fails while fetching."""
        with pytest.raises(ResourceNotFound) as exc_info:
            deployer.deploy("ghost", "default", ACTION_APPLY, timeout=5)

        assert "ghost" in str(exc_info.value)
        assert events.event_types == ["deploy.fetching", "deploy.failed"]

    def test_missing_required_parameter(self, deployer, repository, cluster):
        """Test a required parameter without a value stops before any job runs."""
        app = Application(
            name="web",
            version="1.0.0",
            deploy_image="registry.example.com/web-deploy:1.0.0",
            parameters=[ParameterDefinition("hostname", required=True)],
        )
        repository.create(app)
        repository.create(Install(name="web", application="web", version="1.0.0", flavor="default"))

        with pytest.raises(MissingParameterError):
            deployer.deploy("web", "default", ACTION_APPLY, timeout=5)

        assert cluster.created_jobs == []

    # -------------------------
    # JOB AND CONFIG
    # -------------------------

    def test_config_documents(self, deployer, pg, cluster, repository):
        """Test the four config documents are written to the install's config map."""
        install = repository.get(Install, "pg", "default")
        updated = repository.get(Install, "pg", "default")
        updated.parameters = [ParameterSpec("port", "6543")]
        repository.patch(updated, install)

        deployer.deploy("pg", "default", ACTION_APPLY, timeout=5)

        data = cluster.get_config_map("pg-config", "default").data
        assert json.loads(data["parameters.json"]) == {"port": "6543"}
        install_doc = json.loads(data["install.json"])
        assert install_doc["deployImage"] == "registry.example.com/bundles/pg-deploy:1.0.0"
        assert install_doc["dockerRegistry"] == "registry.example.com"
        assert json.loads(data["requires.json"]) == []
        assert json.loads(data["flavor.json"])["name"] == "default"

    def test_job_spec(self, deployer, pg, cluster, repository):
        """Test the job runs the action once with the config and inputs mounted."""
        app = repository.get(Application, "pg-1.0.0", "default")
        updated = repository.get(Application, "pg-1.0.0", "default")
        updated.requires = [Requirement(name="vault"), Requirement(name="redis", suffix="cache")]
        repository.patch(updated, app)

        deployer.deploy("pg", "default", ACTION_APPLY_OUTPUTS, timeout=30)

        spec = cluster.created_jobs[-1]
        assert spec.name == "pg"
        assert spec.args == ["apply", "outputs"]
        assert spec.backoff_limit == 0
        assert spec.restart_policy == "Never"
        assert spec.active_deadline_seconds == 32
        assert [(v.config_map, v.mount_path) for v in spec.volumes] == [
            ("pg-config", "/config"),
            ("vault-config", "/config/inputs/vault"),
            ("redis-cache-config", "/config/inputs/redis-cache"),
        ]

    def test_registry_rewrite(self, deployer, pg, cluster, repository):
        """Test an install registry replaces the image host."""
        install = repository.get(Install, "pg", "default")
        updated = repository.get(Install, "pg", "default")
        updated.docker_registry = "localhost:6000/registry-main"
        repository.patch(updated, install)

        deployer.deploy("pg", "default", ACTION_APPLY, timeout=5)

        assert cluster.created_jobs[-1].image == "localhost:6000/registry-main/bundles/pg-deploy:1.0.0"

    def test_rerun_replaces_job(self, deployer, pg, cluster):
        """Test a second run deletes the previous job first."""
        deployer.deploy("pg", "default", ACTION_APPLY, timeout=5)
        deployer.deploy("pg", "default", ACTION_APPLY, timeout=5)

        assert cluster.deleted_jobs == ["pg"]
        assert len(cluster.created_jobs) == 2

    def test_smoketest_uses_own_job(self, deployer, pg, cluster):
        """Test the smoketest action runs in a separate job."""
        deployer.deploy("pg", "default", ACTION_SMOKETEST, timeout=5)

        assert cluster.created_jobs[-1].name == "pg-smoketest"
        assert cluster.created_jobs[-1].args == ["smoketest"]


class TestRewriteImage:
    """Test registry rewriting of image references."""

    def test_keeps_repository_path(self):
        """Test the repository path and tag survive the rewrite."""
        assert rewrite_image("quay.io/team/tool:2.1", "localhost:6000") == "localhost:6000/team/tool:2.1"

    def test_host_with_port(self):
        """Test a source registry port is dropped with the host."""
        assert rewrite_image("registry:5000/tool:1", "mirror.local") == "mirror.local/tool:1"


class TestDeployHelpers:
    """Test delete, get_logs and the convenience actions."""

    def test_delete(self, deployer, pg, cluster, repository):
        """Test delete removes both jobs and the install."""
        deployer.deploy("pg", "default", ACTION_APPLY, timeout=5)
        deployer.deploy("pg", "default", ACTION_SMOKETEST, timeout=5)

        assert deployer.delete("pg", "default") is True

        assert cluster.get_job("pg", "default") is None
        assert cluster.get_job("pg-smoketest", "default") is None
        assert repository.find(Install, "pg", "default") is None

    def test_get_logs(self, deployer, pg, cluster):
        """Test get_logs opens the job's log stream."""
        cluster.script_job("pg", JobOutcome(logs="line one\nline two\n"))
        deployer.deploy("pg", "default", ACTION_APPLY, timeout=5)

        stream = deployer.get_logs("pg", "default", ACTION_APPLY, timeout=1)
        try:
            assert stream.read() == "line one\nline two\n"
        finally:
            stream.close()

    def test_get_logs_without_pods_times_out(self, deployer, pg):
        """Test waiting for pods that never appear is bounded."""
        with pytest.raises(ExecutionTimeoutError):
            deployer.get_logs("pg", "default", ACTION_APPLY, timeout=0.02)

    def test_wait_and_outputs_actions(self, deployer, pg, cluster):
        """Test the convenience actions pass their action to the job."""
        deployer.wait("pg", "default", timeout=5)
        deployer.outputs("pg", "default", timeout=5)

        assert [spec.args for spec in cluster.created_jobs] == [["wait"], ["outputs"]]
