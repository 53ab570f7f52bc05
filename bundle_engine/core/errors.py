# bundle_engine/core/errors.py

# -----------------------------
# Base Errors
# -----------------------------

class BundleEngineError(Exception):
    """Base class for all bundle engine errors."""
    pass


# -----------------------------
# Configuration Errors (fatal)
# -----------------------------

class ConfigurationError(BundleEngineError):
    """Invalid definition or input. Never retried."""
    pass


class MissingParameterError(ConfigurationError):

    def __init__(self, name: str):
        super().__init__(f"required parameter '{name}' not set")
        self.name = name


class UnknownSecretFormatError(ConfigurationError):

    def __init__(self, fmt: str):
        super().__init__(f"Unknown format: {fmt}")
        self.format = fmt


class UnknownResourceKindError(ConfigurationError):

    def __init__(self, kind: str):
        super().__init__(f"unrecognized resource rollout type '{kind}'")
        self.kind = kind


class InvalidApplicationError(ConfigurationError):
    pass


class UnknownSourceTypeError(ConfigurationError):
    pass


class UnknownConfigError(ConfigurationError):
    pass


# -----------------------------
# Dependency Errors
# -----------------------------

class DependencyError(BundleEngineError):
    """Aborts a whole register/install/deploy batch."""
    pass


class MissingDependencyError(DependencyError):
    pass


class SelfDependencyError(DependencyError):
    pass


class UnresolvableDependencyError(DependencyError):

    def __init__(self, message: str = "cannot resolve dependencies"):
        super().__init__(message)


# -----------------------------
# Execution Errors
# -----------------------------

class ExecutionFailedError(BundleEngineError):
    """The execution unit reported a Failed condition."""

    def __init__(self, message: str = "deploy failed"):
        super().__init__(message)


class ExecutionTimeoutError(BundleEngineError):
    """No terminal condition inside the bounded window."""

    def __init__(self, message: str = "timeout expired"):
        super().__init__(message)


class RolloutTimeoutError(ExecutionTimeoutError):
    pass


class RolloutError(BundleEngineError):
    pass


class InvalidStateTransition(BundleEngineError):
    pass


class LayerExecutionError(BundleEngineError):
    """One or more installs of a dependency layer failed."""

    def __init__(self, layer: int, failures: dict):
        names = ", ".join(sorted(failures))
        super().__init__(f"layer {layer} failed for: {names}")
        self.layer = layer
        self.failures = failures


# -----------------------------
# Admission Errors
# -----------------------------

class AdmissionError(BundleEngineError):
    """Cluster does not meet the flavor or manifest requirements."""
    pass


# -----------------------------
# Persistence Errors
# -----------------------------

class PersistenceError(BundleEngineError):
    pass


class ResourceNotFound(PersistenceError):
    pass


class ResourceAlreadyExists(PersistenceError):
    pass


class ResourceConflictError(PersistenceError):
    pass


# -----------------------------
# Bundle Source Errors
# -----------------------------

class SourceError(BundleEngineError):
    pass


class BundleNotFound(SourceError):
    pass


class SourceNotImplemented(SourceError):
    pass
