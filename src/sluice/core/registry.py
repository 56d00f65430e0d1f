"""Settings-backed collaborators: artifact registry and stream definitions.

Both are read-only views over SluiceSettings, built once at startup.
"""

from collections.abc import Mapping

from sluice.contracts import (
    ComponentNode,
    ResolvedArtifact,
    StreamDefinition,
    UnresolvedArtifactError,
    infer_role,
)
from sluice.core.config import AppSettings, StreamSettings


class ArtifactRegistry:
    """Resolves registered app references to artifact locations."""

    def __init__(self, apps: Mapping[str, AppSettings]) -> None:
        self._apps = dict(apps)

    def resolve(self, ref: str) -> ResolvedArtifact:
        """Resolve ``ref`` to its URI and declared defaults.

        Raises:
            UnresolvedArtifactError: If ``ref`` is not registered
        """
        app = self._apps.get(ref)
        if app is None:
            raise UnresolvedArtifactError(ref, "not registered")
        return ResolvedArtifact(uri=app.uri, defaults=dict(app.defaults))

    def __contains__(self, ref: object) -> bool:
        return ref in self._apps


class InMemoryStreamDefinitionRepository:
    """Stream definitions held in memory, keyed by name."""

    def __init__(self, definitions: Mapping[str, StreamDefinition] | None = None) -> None:
        self._definitions: dict[str, StreamDefinition] = dict(definitions or {})

    @classmethod
    def from_settings(
        cls, streams: Mapping[str, StreamSettings]
    ) -> "InMemoryStreamDefinitionRepository":
        repository = cls()
        for name, stream in streams.items():
            repository.save(definition_from_settings(name, stream))
        return repository

    def save(self, definition: StreamDefinition) -> None:
        self._definitions[definition.name] = definition

    def find(self, name: str) -> StreamDefinition | None:
        return self._definitions.get(name)

    def names(self) -> list[str]:
        return sorted(self._definitions)


def definition_from_settings(name: str, stream: StreamSettings) -> StreamDefinition:
    """Build a StreamDefinition, inferring omitted roles from position."""
    count = len(stream.components)
    return StreamDefinition(
        name=name,
        components=tuple(
            ComponentNode(
                label=c.label,
                artifact=c.app,
                role=c.role if c.role is not None else infer_role(i, count),
                properties=dict(c.properties),
            )
            for i, c in enumerate(stream.components)
        ),
    )
