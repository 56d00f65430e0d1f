"""Error taxonomy for stream orchestration.

Every error raised across a subsystem boundary derives from SluiceError so
callers (CLI, API layers) can catch the family in one place:

- NotFoundError: unknown stream or component
- StateConflictError: operation invalid for the current state or backend
- ValidationError: malformed topology/properties, unresolved artifact
- BackendError: failure reported by a deployer or release manager
- PartialFailureError: a subset of components failed in a multi-component
  operation; carries label -> cause for each failed component
"""

from collections.abc import Mapping


class SluiceError(Exception):
    """Base class for all orchestration errors."""


class NotFoundError(SluiceError):
    """A stream or component is not known."""


class StreamNotFoundError(NotFoundError):
    """No definition exists for the named stream."""

    def __init__(self, stream_name: str) -> None:
        super().__init__(f"Stream '{stream_name}' not found")
        self.stream_name = stream_name


class StateConflictError(SluiceError):
    """Operation is invalid for the stream's current state."""


class AlreadyDeployedError(StateConflictError):
    """Deploy was requested for a stream that is not undeployed."""

    def __init__(self, stream_name: str, state: str) -> None:
        super().__init__(
            f"Stream '{stream_name}' is already deployed (state: {state})"
        )
        self.stream_name = stream_name
        self.state = state


class DeploymentModeConflictError(StateConflictError):
    """Stream is deployed through a different backend than the active one."""

    def __init__(self, stream_name: str, recorded: str, active: str) -> None:
        super().__init__(
            f"Stream '{stream_name}' was deployed with the '{recorded}' backend; "
            f"the active backend is '{active}'"
        )
        self.stream_name = stream_name
        self.recorded = recorded
        self.active = active


class UnsupportedOperationError(StateConflictError):
    """Operation is not supported by the active backend."""


class ValidationError(SluiceError):
    """Malformed topology or properties."""


class UnresolvedArtifactError(ValidationError):
    """An artifact reference could not be resolved to a location."""

    def __init__(self, ref: str, reason: str | None = None) -> None:
        message = f"Artifact '{ref}' could not be resolved"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.ref = ref


class BackendError(SluiceError):
    """A backend deployer or its collaborator reported a failure."""


class ReleaseManagerError(BackendError):
    """The release manager rejected or failed an operation.

    The manager's own message is surfaced unchanged; internal sequencing of
    the release is opaque to this subsystem.
    """


class PartialFailureError(SluiceError):
    """Some components of a multi-component operation failed.

    Attributes:
        stream_name: Stream the operation targeted
        failures: Component label -> cause, in the order attempted
    """

    action = "operation"

    def __init__(self, stream_name: str, failures: Mapping[str, str]) -> None:
        self.stream_name = stream_name
        self.failures = dict(failures)
        details = "; ".join(f"{label}: {cause}" for label, cause in self.failures.items())
        super().__init__(
            f"Stream '{stream_name}' {self.action} failed for "
            f"{len(self.failures)} component(s): {details}"
        )

    @property
    def failed_components(self) -> list[str]:
        """Labels of the components that failed."""
        return list(self.failures)


class DeploymentFailedError(PartialFailureError):
    """One or more components failed to deploy."""

    action = "deploy"


class UndeployFailedError(PartialFailureError):
    """One or more components failed to undeploy; their records are kept."""

    action = "undeploy"
