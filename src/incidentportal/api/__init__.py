"""Backend API access."""

from incidentportal.api.client import PortalClient

__all__ = ["PortalClient"]
