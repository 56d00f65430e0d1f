"""HTTP clients for the instance deployer and release manager services."""

from sluice.clients.http_deployer import HTTPInstanceDeployer
from sluice.clients.release_manager import HTTPReleaseManager

__all__ = ["HTTPInstanceDeployer", "HTTPReleaseManager"]
