"""RequestBuilder: stream topology + properties -> per-component requests.

Property precedence per component (highest wins, flat overwrite by key):

1. Deployment-time overrides keyed by label (``app.<label>.<key>``)
2. Component properties from the stream definition
3. Process-wide common properties
4. Artifact-declared defaults

Binding names are injected after the merge. For adjacent components
i -> i+1 the channel is ``<stream>.<i>.<label_i>``: it is the output
destination of i and the input destination of i+1, and it cannot be
overridden. The consumer group of every component with an input defaults to
``<stream>.<label>`` so redeploying under the same label keeps the group.
"""

from collections.abc import Mapping

import structlog

from sluice.contracts import (
    ArtifactResolver,
    ComponentDeploymentRequest,
    ResolvedArtifact,
    StreamDefinition,
)

APP_PREFIX = "app."
DEPLOYER_PREFIX = "deployer."

OUTPUT_DESTINATION = "bindings.output.destination"
INPUT_DESTINATION = "bindings.input.destination"
INPUT_GROUP = "bindings.input.group"
COUNT_PROPERTY = "count"


def channel_name(stream_name: str, index: int, label: str) -> str:
    """Name of the channel written by the component at ``index``."""
    return f"{stream_name}.{index}.{label}"


def consumer_group(stream_name: str, label: str) -> str:
    """Default consumer group of a component."""
    return f"{stream_name}.{label}"


def extract_prefixed(
    properties: Mapping[str, str], prefix: str, label: str
) -> dict[str, str]:
    """Return ``<prefix><label>.<key>`` entries as ``key -> value``."""
    scoped = f"{prefix}{label}."
    return {
        key[len(scoped):]: value
        for key, value in properties.items()
        if key.startswith(scoped) and len(key) > len(scoped)
    }


class RequestBuilder:
    """Builds one deployment request per component, in pipeline order.

    Example:
        builder = RequestBuilder()
        requests = builder.build(
            stream,
            {"app.enrich.threads": "4", "deployer.enrich.count": "2"},
            common_properties={"metrics.enabled": "true"},
            resolver=registry,
        )
    """

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._logger = logger or structlog.get_logger(__name__)

    def build(
        self,
        stream: StreamDefinition,
        deployment_properties: Mapping[str, str],
        common_properties: Mapping[str, str],
        resolver: ArtifactResolver,
    ) -> list[ComponentDeploymentRequest]:
        """Materialize component requests for ``stream``.

        Every artifact is resolved before any request is returned, so an
        unresolved artifact never yields a partial request list.

        Raises:
            ValidationError: If the topology is malformed
            UnresolvedArtifactError: If any artifact cannot be resolved
        """
        stream.validate()

        artifacts: list[ResolvedArtifact] = [
            resolver.resolve(component.artifact) for component in stream.components
        ]

        last = len(stream.components) - 1
        requests: list[ComponentDeploymentRequest] = []
        for index, (component, artifact) in enumerate(
            zip(stream.components, artifacts, strict=True)
        ):
            properties: dict[str, str] = {}
            properties.update(artifact.defaults)
            properties.update(common_properties)
            properties.update(component.properties)
            properties.update(
                extract_prefixed(deployment_properties, APP_PREFIX, component.label)
            )

            if index < last:
                properties[OUTPUT_DESTINATION] = channel_name(
                    stream.name, index, component.label
                )
            if index > 0:
                upstream = stream.components[index - 1]
                properties[INPUT_DESTINATION] = channel_name(
                    stream.name, index - 1, upstream.label
                )
                properties.setdefault(
                    INPUT_GROUP, consumer_group(stream.name, component.label)
                )

            deployer_properties = extract_prefixed(
                deployment_properties, DEPLOYER_PREFIX, component.label
            )

            requests.append(
                ComponentDeploymentRequest(
                    stream_name=stream.name,
                    label=component.label,
                    role=component.role,
                    index=index,
                    artifact_uri=artifact.uri,
                    properties=properties,
                    deployer_properties=deployer_properties,
                )
            )

        self._logger.debug(
            "Built deployment requests",
            stream=stream.name,
            components=[r.label for r in requests],
        )
        return requests
