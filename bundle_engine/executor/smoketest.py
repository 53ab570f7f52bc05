"""Smoketest actions run after (or alongside) a deploy."""

import logging

from bundle_engine.core.errors import BundleEngineError, ExecutionFailedError
from bundle_engine.executor.deploy import ACTION_APPLY_OUTPUTS, ACTION_SMOKETEST, DeployManager

logger = logging.getLogger(__name__)


class SmoketestManager:
    def __init__(self, deployer: DeployManager):
        self.deployer = deployer

    def smoketest(self, name: str, namespace: str, timeout: float = 600, show_logs: bool = False) -> None:
        try:
            self.deployer.deploy(name, namespace, ACTION_SMOKETEST, timeout, show_logs)
        except BundleEngineError as e:
            logger.error(f"[smoketest] {name} failed: {e}")
            raise ExecutionFailedError(f"smoketest failed for '{name}': {e}") from e
        logger.info(f"[smoketest] {name} passed")


class DeploySmoketestManager:
    """Applies an install (publishing outputs) and then smoketests it."""

    def __init__(self, deployer: DeployManager, smoketester: SmoketestManager = None):
        self.deployer = deployer
        self.smoketester = smoketester or SmoketestManager(deployer)

    def deploy_smoketest(self, name: str, namespace: str, timeout: float = 600, show_logs: bool = False) -> None:
        self.deployer.deploy(name, namespace, ACTION_APPLY_OUTPUTS, timeout, show_logs)
        self.smoketester.smoketest(name, namespace, timeout, show_logs)
