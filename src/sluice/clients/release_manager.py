# src/sluice/clients/release_manager.py
"""HTTP release manager client.

Release API:

    POST   /releases                              install
    POST   /releases/{name}/upgrade               upgrade
    POST   /releases/{name}/rollback/{version}    rollback (0 = previous)
    DELETE /releases/{name}                       delete
    GET    /releases/{name}/apps/{id}/status      instance status

Install, upgrade and rollback answer with the release:

    {"name": "orders", "version": 2, "status": "deployed",
     "deployment_ids": {"ingest": "orders.ingest-v2", ...}}

Any failure is raised as ReleaseManagerError carrying the manager's own
message unchanged.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from sluice.contracts import (
    InstanceState,
    Release,
    ReleaseDescriptor,
    ReleaseManagerError,
)


def _release_from_json(data: Any) -> Release:
    try:
        return Release(
            name=str(data["name"]),
            version=int(data["version"]),
            status=str(data.get("status", "unknown")),
            deployment_ids={
                str(k): str(v) for k, v in (data.get("deployment_ids") or {}).items()
            },
        )
    except (KeyError, TypeError, ValueError, AttributeError) as e:
        raise ReleaseManagerError(f"Malformed release response: {e}") from e


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text[:500] or f"HTTP {response.status_code}"
    if isinstance(data, dict) and "message" in data:
        return str(data["message"])
    return response.text[:500]


class HTTPReleaseManager:
    """ReleaseManager backed by a Skipper-style REST service."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)
        self._logger = logger or structlog.get_logger(__name__)
        self._logger.info("Release manager configured", url=base_url)

    def close(self) -> None:
        self._client.close()

    def install(self, descriptor: ReleaseDescriptor) -> Release:
        return _release_from_json(
            self._request("POST", "/releases", json=self._descriptor_body(descriptor))
        )

    def upgrade(self, descriptor: ReleaseDescriptor) -> Release:
        return _release_from_json(
            self._request(
                "POST",
                f"/releases/{descriptor.release_name}/upgrade",
                json=self._descriptor_body(descriptor),
            )
        )

    def rollback(self, release_name: str, version: int) -> Release:
        return _release_from_json(
            self._request("POST", f"/releases/{release_name}/rollback/{version}")
        )

    def delete(self, release_name: str) -> None:
        self._request("DELETE", f"/releases/{release_name}")

    def instance_status(self, release_name: str, deployment_id: str) -> InstanceState:
        data = self._request("GET", f"/releases/{release_name}/apps/{deployment_id}/status")
        state = data.get("state") if isinstance(data, dict) else None
        return InstanceState.parse(state)

    @staticmethod
    def _descriptor_body(descriptor: ReleaseDescriptor) -> dict[str, Any]:
        return {
            "release_name": descriptor.release_name,
            "package": {
                "name": descriptor.package.name,
                "version": descriptor.package.version,
                "repository": descriptor.package.repository,
            },
            "config": descriptor.yaml_overrides,
        }

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            raise ReleaseManagerError(f"{method} {url} failed: {e}") from e
        if response.is_error:
            raise ReleaseManagerError(_error_message(response))
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise ReleaseManagerError(f"{method} {url} returned a non-JSON body") from e
