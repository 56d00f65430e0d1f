# src/sluice/engine/status.py
"""Status aggregation over every recorded component instance.

Fans out one status query per deployment record onto a fixed-width worker
pool and merges the answers into one stream-level state. A query that
raises or does not answer within the pool's timeout is reported as
``unknown`` for that instance only; siblings are unaffected and the
aggregation itself never raises for instance failures.

Merge rule, in priority order:
1. No records at all                         -> undeployed
2. Any instance failed                       -> failed
3. Any instance not deployed, or a component
   of the definition has no record           -> partial
4. Otherwise                                 -> deployed
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING

import structlog

from sluice.contracts import (
    ComponentStatus,
    DeploymentRecord,
    DeploymentState,
    InstanceState,
    StreamDefinition,
    StreamStatus,
)

if TYPE_CHECKING:
    from sluice.core.store import DeploymentIdStore
    from sluice.engine.backends import StreamBackend

# Upper bound on how long the collector sleeps between deadline checks
_POLL_SECONDS = 0.05


class StatusWorkerPool:
    """Bounded thread pool shared by every status aggregation.

    Constructed once at startup and passed to the aggregator; ``shutdown``
    is called when the process tears down.

    Usage:
        pool = StatusWorkerPool(pool_size=8, timeout_seconds=10.0)
        statuses = pool.query_all(records, backend.instance_status)
        pool.shutdown()
    """

    def __init__(
        self,
        pool_size: int = 8,
        timeout_seconds: float = 10.0,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        if pool_size <= 0:
            raise ValueError(f"pool_size must be positive, got {pool_size}")
        if timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive, got {timeout_seconds}")
        self._pool_size = pool_size
        self._timeout = timeout_seconds
        self._executor = ThreadPoolExecutor(
            max_workers=pool_size, thread_name_prefix="sluice-status"
        )
        self._logger = logger or structlog.get_logger(__name__)

    @property
    def pool_size(self) -> int:
        """Maximum concurrent status queries."""
        return self._pool_size

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    def shutdown(self, wait: bool = True) -> None:
        """Shutdown the pool.

        Args:
            wait: If True, wait for in-flight queries to finish
        """
        self._executor.shutdown(wait=wait, cancel_futures=not wait)

    def query_all(
        self,
        records: Iterable[DeploymentRecord],
        query_fn: Callable[[DeploymentRecord], InstanceState],
    ) -> list[ComponentStatus]:
        """Query every record concurrently.

        Each query gets its own timeout, counted from the moment a worker
        picks it up, so a query waiting behind a slow sibling is never
        charged for that wait. Queries still queued while every worker is
        held by an overdue query are reported unknown after one further
        timeout window.

        Returns:
            One ComponentStatus per record, in submission order
        """
        records = list(records)
        if not records:
            return []

        started: dict[int, float] = {}

        def run(index: int, record: DeploymentRecord) -> InstanceState:
            started[index] = time.monotonic()
            return query_fn(record)

        futures: list[Future[InstanceState]] = [
            self._executor.submit(run, index, record) for index, record in enumerate(records)
        ]
        results: dict[int, ComponentStatus] = {}
        pending = set(range(len(records)))
        # Timed out but still occupying a worker
        overdue: list[Future[InstanceState]] = []
        starved_since: float | None = None

        while pending:
            now = time.monotonic()
            for index in sorted(pending):
                future = futures[index]
                if future.done():
                    results[index] = self._collect(records[index], future)
                    pending.discard(index)
                elif index in started and now - started[index] >= self._timeout:
                    future.cancel()
                    overdue.append(future)
                    results[index] = self._unanswered(
                        records[index], f"no answer within {self._timeout}s"
                    )
                    pending.discard(index)

            queued = [index for index in pending if index not in started]
            stalled_workers = sum(1 for f in overdue if not f.done())
            if queued and stalled_workers >= self._pool_size:
                if starved_since is None:
                    starved_since = now
                if now - starved_since >= self._timeout:
                    for index in queued:
                        futures[index].cancel()
                        results[index] = self._unanswered(
                            records[index],
                            f"no status worker free within {self._timeout}s",
                        )
                        pending.discard(index)
                    continue
            else:
                starved_since = None

            if pending:
                deadlines = [started[i] + self._timeout for i in pending if i in started]
                if starved_since is not None:
                    deadlines.append(starved_since + self._timeout)
                next_check = min(deadlines, default=now + _POLL_SECONDS) - now
                wait(
                    [futures[i] for i in pending],
                    timeout=max(0.0, min(next_check, _POLL_SECONDS)),
                    return_when=FIRST_COMPLETED,
                )

        return [results[index] for index in range(len(records))]

    def _collect(
        self, record: DeploymentRecord, future: Future[InstanceState]
    ) -> ComponentStatus:
        error = future.exception()
        if error is not None:
            self._logger.warning(
                "Status query failed",
                stream=record.stream_name,
                label=record.label,
                deployment_id=record.deployment_id,
                error=str(error),
            )
            return ComponentStatus(
                label=record.label,
                deployment_id=record.deployment_id,
                state=InstanceState.UNKNOWN,
                error=f"{type(error).__name__}: {error}",
            )

        state = future.result()
        if not isinstance(state, InstanceState):
            state = InstanceState.parse(str(state))
        return ComponentStatus(
            label=record.label, deployment_id=record.deployment_id, state=state
        )

    def _unanswered(self, record: DeploymentRecord, reason: str) -> ComponentStatus:
        self._logger.warning(
            "Status query timed out",
            stream=record.stream_name,
            label=record.label,
            deployment_id=record.deployment_id,
            reason=reason,
        )
        return ComponentStatus(
            label=record.label,
            deployment_id=record.deployment_id,
            state=InstanceState.UNKNOWN,
            error=reason,
        )


def merge_states(components: Iterable[ComponentStatus]) -> DeploymentState:
    """Derive the stream state from per-component states.

    Components without a deployment id are defined but unrecorded.
    """
    components = list(components)
    recorded = [c for c in components if c.deployment_id is not None]
    if not recorded:
        return DeploymentState.UNDEPLOYED
    if any(c.state == InstanceState.FAILED for c in recorded):
        return DeploymentState.FAILED
    if len(recorded) < len(components):
        return DeploymentState.PARTIAL
    if all(c.state == InstanceState.DEPLOYED for c in recorded):
        return DeploymentState.DEPLOYED
    return DeploymentState.PARTIAL


class StatusAggregator:
    """Answers stream status from live backend queries and the identifier store."""

    def __init__(
        self,
        store: DeploymentIdStore,
        backend: StreamBackend,
        pool: StatusWorkerPool,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._store = store
        self._backend = backend
        self._pool = pool
        self._logger = logger or structlog.get_logger(__name__)

    def status(self, stream: StreamDefinition) -> StreamStatus:
        """Aggregate the live status of ``stream``.

        Components are listed in pipeline order; recorded components no
        longer in the definition follow at the end.
        """
        records = self._store.find_all(stream.name)
        queried = {
            s.label: s for s in self._pool.query_all(records, self._backend.instance_status)
        }

        components: list[ComponentStatus] = []
        for label in stream.labels:
            if label in queried:
                components.append(queried.pop(label))
            else:
                components.append(
                    ComponentStatus(
                        label=label,
                        deployment_id=None,
                        state=InstanceState.UNDEPLOYED,
                    )
                )
        components.extend(queried[label] for label in sorted(queried))

        state = merge_states(components)
        self._logger.debug(
            "Stream status aggregated",
            stream=stream.name,
            state=state.value,
            instances=len(records),
        )
        return StreamStatus(stream_name=stream.name, state=state, components=components)
