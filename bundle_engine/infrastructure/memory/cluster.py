# bundle_engine/infrastructure/memory/cluster.py

import copy
import io
from dataclasses import dataclass, field
from threading import Lock
from typing import Dict, List, Optional, TextIO, Tuple

from bundle_engine.cluster.client import ClusterClient
from bundle_engine.cluster.models import (
    ConfigMap,
    Job,
    JobCondition,
    JobSpec,
    Node,
    Pod,
    JOB_COMPLETE,
    JOB_NAME_LABEL,
    POD_FAILED,
    POD_RUNNING,
    POD_SUCCEEDED,
)
from bundle_engine.core.errors import ResourceNotFound


@dataclass
class JobOutcome:
    """
    How a job created in the in-memory cluster plays out.

    `condition` is reported after `polls` calls to get_job; None means the
    job never finishes.
    """

    condition: Optional[str] = JOB_COMPLETE
    logs: str = ""
    polls: int = 0
    pod_phase: str = POD_RUNNING
    log_error: Optional[Exception] = None


@dataclass
class _JobState:
    job: Job
    outcome: JobOutcome
    polls: int = 0


def _matches(labels: Dict[str, str], selector: Dict[str, str]) -> bool:
    return all(labels.get(k) == v for k, v in selector.items())


def _merge(target: Dict, patch: Dict) -> Dict:
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(target.get(key), dict):
            _merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target


class InMemoryCluster(ClusterClient):
    """
    A cluster kept in process memory.

    Jobs run according to the JobOutcome registered for their name
    (see `script_job`); unscripted jobs complete on the first poll.
    """

    def __init__(self, nodes: Optional[List[Node]] = None):
        self.nodes: List[Node] = list(nodes or [])
        self.config_maps: Dict[Tuple[str, str], ConfigMap] = {}
        self.pods: Dict[Tuple[str, str], Pod] = {}
        self.workloads: Dict[Tuple[str, str, str], Dict] = {}
        self.created_jobs: List[JobSpec] = []
        self.deleted_jobs: List[str] = []
        self._jobs: Dict[Tuple[str, str], _JobState] = {}
        self._outcomes: Dict[str, JobOutcome] = {}
        self._logs: Dict[Tuple[str, str], str] = {}
        self._log_errors: Dict[Tuple[str, str], Exception] = {}
        self._lock = Lock()

    # -------------------------
    # TEST SETUP
    # -------------------------

    def script_job(self, name: str, outcome: JobOutcome) -> None:
        self._outcomes[name] = outcome

    def add_workload(self, kind: str, workload: Dict) -> None:
        metadata = workload.setdefault("metadata", {})
        key = (kind, metadata.get("namespace", "default"), metadata["name"])
        self.workloads[key] = copy.deepcopy(workload)

    # -------------------------
    # CONFIG MAPS
    # -------------------------

    def apply_config_map(self, config_map: ConfigMap) -> ConfigMap:
        with self._lock:
            self.config_maps[(config_map.namespace, config_map.name)] = copy.deepcopy(config_map)
            return copy.deepcopy(config_map)

    def get_config_map(self, name: str, namespace: str) -> Optional[ConfigMap]:
        return copy.deepcopy(self.config_maps.get((namespace, name)))

    # -------------------------
    # JOBS / PODS
    # -------------------------

    def create_job(self, spec: JobSpec) -> Job:
        with self._lock:
            key = (spec.namespace, spec.name)
            if key in self._jobs:
                raise ValueError(f"job '{spec.name}' already exists")

            outcome = self._outcomes.get(spec.name, JobOutcome())
            job = Job(spec=copy.deepcopy(spec))
            self._jobs[key] = _JobState(job=job, outcome=outcome)
            self.created_jobs.append(copy.deepcopy(spec))

            pod_name = f"{spec.name}-{len(self.created_jobs)}"
            labels = dict(spec.labels)
            labels[JOB_NAME_LABEL] = spec.name
            self.pods[(spec.namespace, pod_name)] = Pod(
                name=pod_name,
                namespace=spec.namespace,
                phase=outcome.pod_phase,
                containers=[spec.name],
                labels=labels,
            )
            self._logs[(spec.namespace, pod_name)] = outcome.logs
            if outcome.log_error is not None:
                self._log_errors[(spec.namespace, pod_name)] = outcome.log_error
            return copy.deepcopy(job)

    def get_job(self, name: str, namespace: str) -> Optional[Job]:
        with self._lock:
            state = self._jobs.get((namespace, name))
            if state is None:
                return None

            state.polls += 1
            outcome = state.outcome
            if outcome.condition and not state.job.conditions and state.polls > outcome.polls:
                state.job.conditions.append(JobCondition(type=outcome.condition))
                phase = POD_SUCCEEDED if outcome.condition == JOB_COMPLETE else POD_FAILED
                for pod in self.pods.values():
                    if pod.labels.get(JOB_NAME_LABEL) == name:
                        pod.phase = phase
            return copy.deepcopy(state.job)

    def delete_job(self, name: str, namespace: str) -> bool:
        with self._lock:
            state = self._jobs.pop((namespace, name), None)
            for key in [k for k, pod in self.pods.items() if k[0] == namespace and pod.labels.get(JOB_NAME_LABEL) == name]:
                del self.pods[key]
            if state is not None:
                self.deleted_jobs.append(name)
            return state is not None

    def list_pods(self, namespace: str, selector: Dict[str, str]) -> List[Pod]:
        pods = [
            copy.deepcopy(pod)
            for (ns, _), pod in self.pods.items()
            if ns == namespace and _matches(pod.labels, selector)
        ]
        return sorted(pods, key=lambda pod: pod.created_at)

    def stream_logs(self, name: str, namespace: str, container: str, follow: bool = True) -> TextIO:
        key = (namespace, name)
        if key in self._log_errors:
            raise self._log_errors[key]
        if key not in self._logs:
            raise ResourceNotFound(f"pod '{name}' not found")
        return io.StringIO(self._logs[key])

    def delete_pods(self, namespace: str, selector: Dict[str, str], force: bool = False) -> int:
        with self._lock:
            keys = [k for k, pod in self.pods.items() if k[0] == namespace and _matches(pod.labels, selector)]
            for key in keys:
                del self.pods[key]
            return len(keys)

    # -------------------------
    # NODES
    # -------------------------

    def list_nodes(self) -> List[Node]:
        return copy.deepcopy(self.nodes)

    # -------------------------
    # WORKLOADS
    # -------------------------

    def get_workload(self, kind: str, name: str, namespace: str) -> Optional[Dict]:
        return copy.deepcopy(self.workloads.get((kind, namespace, name)))

    def list_workloads(self, kind: str, namespace: str, selector: Dict[str, str]) -> List[Dict]:
        return [
            copy.deepcopy(workload)
            for (k, ns, _), workload in sorted(self.workloads.items(), key=lambda item: item[0])
            if k == kind and ns == namespace
            and _matches(workload.get("metadata", {}).get("labels", {}), selector)
        ]

    def patch_workload(self, kind: str, name: str, namespace: str, patch: Dict) -> Dict:
        with self._lock:
            workload = self.workloads.get((kind, namespace, name))
            if workload is None:
                raise ResourceNotFound(f"{kind} '{name}' not found")
            return copy.deepcopy(_merge(workload, patch))

    def delete_workload(self, kind: str, name: str, namespace: str) -> bool:
        with self._lock:
            return self.workloads.pop((kind, namespace, name), None) is not None
