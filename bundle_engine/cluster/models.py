"""Cluster objects the engine creates and observes."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


JOB_COMPLETE = "Complete"
JOB_FAILED = "Failed"

POD_PENDING = "Pending"
POD_RUNNING = "Running"
POD_SUCCEEDED = "Succeeded"
POD_FAILED = "Failed"

JOB_NAME_LABEL = "job-name"


@dataclass
class Node:
    name: str
    allocatable: Dict[str, str] = field(default_factory=dict)
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class ConfigMap:
    name: str
    namespace: str
    data: Dict[str, str] = field(default_factory=dict)


@dataclass
class VolumeMount:
    """A config map mounted into the execution unit."""

    name: str
    config_map: str
    mount_path: str


@dataclass
class JobSpec:
    """A single-container, non-restarting execution unit."""

    name: str
    namespace: str
    image: str
    args: List[str]
    volumes: List[VolumeMount] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    backoff_limit: int = 0
    restart_policy: str = "Never"
    termination_grace_period_seconds: int = 1
    active_deadline_seconds: Optional[int] = None
    service_account: str = ""


@dataclass
class JobCondition:
    type: str
    status: str = "True"
    reason: str = ""
    message: str = ""


@dataclass
class Job:
    spec: JobSpec
    conditions: List[JobCondition] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def selector(self) -> Dict[str, str]:
        return {JOB_NAME_LABEL: self.spec.name}


@dataclass
class Pod:
    name: str
    namespace: str
    phase: str = POD_PENDING
    containers: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.utcnow)
