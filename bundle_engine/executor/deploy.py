# bundle_engine/executor/deploy.py

import json
import logging
import posixpath
import sys
import time
from dataclasses import replace
from typing import Callable, List, Optional, TextIO
from urllib.parse import urlparse

from bundle_engine.cluster.client import ClusterClient
from bundle_engine.cluster.models import (
    ConfigMap,
    JOB_COMPLETE,
    JOB_FAILED,
    JOB_NAME_LABEL,
    JobSpec,
    POD_PENDING,
    VolumeMount,
)
from bundle_engine.core.errors import (
    BundleEngineError,
    ExecutionFailedError,
    ExecutionTimeoutError,
    ResourceNotFound,
)
from bundle_engine.core.events import EventEmitter, NullEventEmitter
from bundle_engine.core.events_model import DeployEvent
from bundle_engine.core.models import DeployExecution, DeployState
from bundle_engine.core.repository import ResourceRepository
from bundle_engine.core.state_machine import DeployStateMachine
from bundle_engine.domain.flavor import FlavorManager
from bundle_engine.domain.models import Application, Install
from bundle_engine.domain.parameters import ParameterManager
from bundle_engine.domain.schemas import dump_list, to_document
from bundle_engine.domain.secrets import SecretResolver
from bundle_engine.executor.rollout import RolloutStatusManager
from bundle_engine.settings import EngineSettings, settings as default_settings

logger = logging.getLogger(__name__)


ACTION_APPLY = "apply"
ACTION_APPLY_OUTPUTS = "apply outputs"
ACTION_DIFF = "diff"
ACTION_DELETE = "delete"
ACTION_WAIT = "wait"
ACTION_SMOKETEST = "smoketest"
ACTION_OUTPUTS = "outputs"

PARAMETERS_FILE = "parameters.json"
INSTALL_FILE = "install.json"
REQUIRES_FILE = "requires.json"
FLAVOR_FILE = "flavor.json"

MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"


def job_name(install_name: str, action: str) -> str:
    """Smoketests run in their own unit so they never collide with apply."""
    if action == ACTION_SMOKETEST:
        return f"{install_name}-smoketest"
    return install_name


def config_map_name(name: str) -> str:
    return f"{name}-config"


def rewrite_image(deploy_image: str, registry: str) -> str:
    """Point an image reference at another registry, keeping its repository path."""
    path = urlparse("https://" + deploy_image).path
    return posixpath.join(registry, path.lstrip("/"))


def _config_document(record) -> dict:
    document = to_document(record)
    document.pop("resourceVersion", None)
    document.pop("namespace", None)
    return document


class DeployManager:
    """
    Runs one action of an install's deploy image as a single-shot job.

    The job sees its merged parameters, install spec, requirements and
    flavor under the config mount, plus the config of every install it
    requires under `<mount>/inputs/<name>`.
    """

    def __init__(
        self,
        repository: ResourceRepository,
        cluster: ClusterClient,
        resolver: SecretResolver,
        flavors: FlavorManager,
        rollout: RolloutStatusManager,
        settings: EngineSettings = None,
        events: EventEmitter = None,
        out: TextIO = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.repository = repository
        self.cluster = cluster
        self.resolver = resolver
        self.flavors = flavors
        self.rollout = rollout
        self.settings = settings or default_settings
        self.events = events or NullEventEmitter()
        self.out = out if out is not None else sys.stdout
        self.sleep = sleep

    # -------------------------
    # ACTIONS
    # -------------------------

    def deploy(
        self,
        name: str,
        namespace: str,
        action: str = ACTION_APPLY,
        timeout: float = 600,
        show_logs: bool = False,
    ) -> DeployExecution:
        """
        Run `action` for the install and wait for it to finish.

        Every action except delete also waits for the application's
        resources to roll out. Raises ExecutionFailedError when the job
        fails and ExecutionTimeoutError when it does not finish in time.
        """
        execution = DeployExecution(
            install_name=name,
            namespace=namespace,
            action=action,
            timeout=timeout,
        )
        self._transition(execution, DeployState.FETCHING, DeployEvent.deploy_fetching)

        try:
            spec, config_map = self._prepare(execution)

            self._transition(execution, DeployState.CONFIGURING_INPUTS, DeployEvent.deploy_configuring)
            self.delete_job(name, namespace, action)
            self.cluster.apply_config_map(config_map)

            self._transition(execution, DeployState.RUNNING, DeployEvent.deploy_running)
            self.cluster.create_job(spec)
            logger.info(f"[deploy] created job {spec.name} in {namespace} (image={spec.image}, args={spec.args})")

            self._transition(execution, DeployState.POLLING, DeployEvent.deploy_polling)
            self.poll_job(execution, show_logs)

            if action == ACTION_DELETE:
                self._transition(execution, DeployState.COMPLETED, DeployEvent.deploy_completed)
            else:
                self.rollout.wait(name, namespace, timeout)
                self._transition(execution, DeployState.ROLLED_OUT, DeployEvent.deploy_rolled_out)

        except ExecutionTimeoutError as e:
            self._fail(execution, e, timed_out=True)
            raise
        except BundleEngineError as e:
            self._fail(execution, e)
            raise
        except Exception as e:
            logger.error(f"[deploy] {action} on {name} failed: {e}")
            self._fail(execution, e)
            raise

        return execution

    def wait(self, name: str, namespace: str, timeout: float = 600, show_logs: bool = False) -> DeployExecution:
        return self.deploy(name, namespace, ACTION_WAIT, timeout, show_logs)

    def outputs(self, name: str, namespace: str, timeout: float = 600, show_logs: bool = False) -> DeployExecution:
        return self.deploy(name, namespace, ACTION_OUTPUTS, timeout, show_logs)

    def delete(self, name: str, namespace: str) -> bool:
        """Remove both execution units of the install, then the install itself."""
        self.delete_job(name, namespace, ACTION_APPLY)
        self.delete_job(name, namespace, ACTION_SMOKETEST)
        deleted = self.repository.delete(Install, name, namespace)
        logger.info(f"[deploy] deleted install {name} in {namespace}")
        return deleted

    def delete_job(self, name: str, namespace: str, action: str) -> bool:
        return self.cluster.delete_job(job_name(name, action), namespace)

    # -------------------------
    # JOB CONSTRUCTION
    # -------------------------

    def _prepare(self, execution: DeployExecution):
        name, namespace = execution.install_name, execution.namespace

        try:
            install = self.repository.get(Install, name, namespace)
        except ResourceNotFound as e:
            raise ResourceNotFound(f"couldn't get install '{name}': {e}") from e
        flavor = self.flavors.get(install.flavor or "default")
        app = self.repository.get(Application, install.application_name, namespace)

        parameters = ParameterManager(self.resolver, name, app.parameters, install.parameters)
        parameters.validate()
        merged = parameters.get_merged_map()

        if install.docker_registry:
            image = rewrite_image(app.deploy_image, install.docker_registry)
            logger.debug(f"[deploy] rewrote deploy image {app.deploy_image} -> {image}")
        else:
            image = app.deploy_image
            install = replace(install, docker_registry=app.docker_registry)

        if not install.deploy_image:
            install = replace(install, deploy_image=image)

        execution.image = image
        execution.job_name = job_name(name, execution.action)

        config_map = ConfigMap(
            name=config_map_name(name),
            namespace=namespace,
            data={
                PARAMETERS_FILE: json.dumps(merged),
                INSTALL_FILE: json.dumps(_config_document(install)),
                REQUIRES_FILE: json.dumps(dump_list(app.requires)),
                FLAVOR_FILE: json.dumps(_config_document(flavor)),
            },
        )

        return self._job_spec(execution, app), config_map

    def _job_spec(self, execution: DeployExecution, app: Application) -> JobSpec:
        mount = self.settings.config_mount_path
        volumes: List[VolumeMount] = [
            VolumeMount(
                name=config_map_name(execution.job_name),
                config_map=config_map_name(execution.install_name),
                mount_path=mount,
            )
        ]
        for requirement in app.requires:
            input_name = requirement.resource_name
            volumes.append(
                VolumeMount(
                    name=config_map_name(input_name),
                    config_map=config_map_name(input_name),
                    mount_path=posixpath.join(mount, "inputs", input_name),
                )
            )

        grace = self.settings.job_grace_period
        return JobSpec(
            name=execution.job_name,
            namespace=execution.namespace,
            image=execution.image,
            args=execution.action.split(" "),
            volumes=volumes,
            labels={MANAGED_BY_LABEL: "bundle-engine", "install": execution.install_name},
            backoff_limit=0,
            restart_policy="Never",
            termination_grace_period_seconds=grace,
            active_deadline_seconds=int(execution.timeout) + 2 * grace,
        )

    # -------------------------
    # POLLING / LOGS
    # -------------------------

    def poll_job(self, execution: DeployExecution, show_logs: bool = False) -> None:
        """
        Follow the job's logs and poll its conditions until it finishes.

        Without show_logs the stream is drained silently and, if the job
        does not complete, printed once afterwards.
        """
        name, namespace = execution.install_name, execution.namespace
        unit = execution.job_name or job_name(name, execution.action)

        self.out.write(f"Waiting {execution.timeout}s for action '{execution.action}' on {name}...\n")
        deadline = time.monotonic() + execution.timeout

        try:
            self._copy_logs(unit, namespace, self.out if show_logs else None, deadline)
        except (BundleEngineError, OSError) as e:
            logger.error(f"[deploy] couldn't read logs for job {unit}: {e}")

        condition = None
        while True:
            job = self.cluster.get_job(unit, namespace)
            if job is None:
                raise ResourceNotFound(f"couldn't get job '{unit}'")
            if job.conditions:
                condition = job.conditions[-1].type
                break
            if time.monotonic() >= deadline:
                break
            self.sleep(self.settings.job_poll_interval)

        if condition == JOB_COMPLETE:
            logger.info(f"[deploy] action '{execution.action}' on {name} completed")
            return

        if not show_logs:
            try:
                self._copy_logs(unit, namespace, self.out, time.monotonic() + self.settings.job_grace_period)
            except (BundleEngineError, OSError) as e:
                logger.error(f"[deploy] couldn't read logs for job {unit}: {e}")

        if condition == JOB_FAILED:
            logger.error(f"[deploy] action '{execution.action}' on {name} failed")
            raise ExecutionFailedError(f"deploy failed: action '{execution.action}' on '{name}'")

        logger.error(f"[deploy] action '{execution.action}' on {name} timed out after {execution.timeout}s")
        raise ExecutionTimeoutError(f"timeout expired: action '{execution.action}' on '{name}'")

    def get_logs(
        self,
        name: str,
        namespace: str,
        action: str = ACTION_APPLY,
        timeout: float = 60,
    ) -> TextIO:
        """Open a followed log stream of the install's job; the caller closes it."""
        return self._open_logs(job_name(name, action), namespace, time.monotonic() + timeout)

    def _open_logs(self, unit: str, namespace: str, deadline: float) -> TextIO:
        selector = {JOB_NAME_LABEL: unit}
        while True:
            pods = self.cluster.list_pods(namespace, selector)
            if pods and pods[-1].phase != POD_PENDING:
                pod = pods[-1]
                break
            if time.monotonic() >= deadline:
                if pods:
                    raise ExecutionTimeoutError(f"timeout expired waiting for pod {pods[-1].name} to start")
                raise ExecutionTimeoutError(f"timeout expired waiting for pods of job {unit}")
            self.sleep(self.settings.job_poll_interval)

        container = pod.containers[0] if pod.containers else unit
        return self.cluster.stream_logs(pod.name, namespace, container, follow=True)

    def _copy_logs(self, unit: str, namespace: str, target: Optional[TextIO], deadline: float) -> None:
        stream = self._open_logs(unit, namespace, deadline)
        try:
            for line in stream:
                if target is not None:
                    target.write(line)
        finally:
            stream.close()

    # -------------------------
    # STATE
    # -------------------------

    def _transition(self, execution: DeployExecution, state: DeployState, event) -> None:
        DeployStateMachine.transition(execution, state)
        self.events.emit([event(execution)])

    def _fail(self, execution: DeployExecution, error: Exception, timed_out: bool = False) -> None:
        execution.error_message = str(error)
        if timed_out and execution.state == DeployState.POLLING:
            self._transition(execution, DeployState.TIMED_OUT, DeployEvent.deploy_timed_out)
        else:
            self._transition(execution, DeployState.FAILED, DeployEvent.deploy_failed)
