"""All status codes, roles, and kinds used across subsystem boundaries.

Stream-level states are always derived from live backend answers plus the
presence of deployment records. Nothing here is persisted except
BackendKind (stored in stream_deployments.backend).
"""

from enum import Enum


class ComponentRole(str, Enum):
    """Position of a component in a linear stream."""

    SOURCE = "source"
    PROCESSOR = "processor"
    SINK = "sink"


class BackendKind(str, Enum):
    """Deployment execution strategy.

    Uses (str, Enum) because this IS stored in the database
    (stream_deployments.backend).
    """

    DIRECT = "direct"
    RELEASE_MANAGED = "release_managed"


class InstanceState(str, Enum):
    """State of a single deployed component instance as a backend reports it."""

    DEPLOYING = "deploying"
    DEPLOYED = "deployed"
    FAILED = "failed"
    UNDEPLOYED = "undeployed"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: str | None) -> "InstanceState":
        """Map a backend-reported state string, falling back to UNKNOWN."""
        if value is None:
            return cls.UNKNOWN
        try:
            return cls(value.lower())
        except ValueError:
            return cls.UNKNOWN


class DeploymentState(str, Enum):
    """Aggregate state of a whole stream.

    UNDEPLOYING and UPGRADING are transitional: they are only reported
    while this process has that operation in flight for the stream.
    """

    UNDEPLOYED = "undeployed"
    DEPLOYING = "deploying"
    DEPLOYED = "deployed"
    PARTIAL = "partial"
    FAILED = "failed"
    UNKNOWN = "unknown"
    UNDEPLOYING = "undeploying"
    UPGRADING = "upgrading"
