# src/sluice/clients/http_deployer.py
"""HTTP instance deployer client.

Talks to a per-application deployer service:

    POST   /apps                    -> {"deployment_id": "..."}
    DELETE /apps/{deployment_id}
    GET    /apps/{deployment_id}/status -> {"state": "deployed"}

Transport and HTTP status failures are raised as BackendError. Unknown
state strings map to ``unknown``; a 404 on status maps to ``undeployed``.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from sluice.contracts import BackendError, ComponentDeploymentRequest, InstanceState


class HTTPInstanceDeployer:
    """InstanceDeployer backed by a REST deployer service."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)
        self._logger = logger or structlog.get_logger(__name__)
        self._logger.info("Instance deployer configured", url=base_url)

    def close(self) -> None:
        self._client.close()

    def deploy_one(self, request: ComponentDeploymentRequest) -> str:
        body = {
            "name": request.key,
            "stream": request.stream_name,
            "label": request.label,
            "role": request.role.value,
            "artifact": request.artifact_uri,
            "properties": request.properties,
            "deployer_properties": request.deployer_properties,
        }
        data = self._request("POST", "/apps", json=body)
        try:
            return str(data["deployment_id"])
        except (KeyError, TypeError) as e:
            raise BackendError(
                f"Deployer response for '{request.key}' has no deployment_id"
            ) from e

    def undeploy_one(self, deployment_id: str) -> None:
        self._request("DELETE", f"/apps/{deployment_id}")

    def status_one(self, deployment_id: str) -> InstanceState:
        try:
            response = self._client.get(f"/apps/{deployment_id}/status")
        except httpx.RequestError as e:
            raise BackendError(f"Status request for '{deployment_id}' failed: {e}") from e
        if response.status_code == 404:
            return InstanceState.UNDEPLOYED
        try:
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise BackendError(str(e)) from e
        except ValueError as e:
            raise BackendError(
                f"Status response for '{deployment_id}' is not valid JSON"
            ) from e
        state = data.get("state") if isinstance(data, dict) else None
        return InstanceState.parse(state)

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise BackendError(
                f"{method} {url} returned {e.response.status_code}: {e.response.text[:500]}"
            ) from e
        except httpx.RequestError as e:
            raise BackendError(f"{method} {url} failed: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(f"{method} {url} returned a non-JSON body") from e
