"""Services for the maintenance request tracker backend."""

from .auth_service import AuthenticationError, AuthProvider, AuthService
from .maintenance_request_service import MaintenanceRequestService
from .snapshot_hub import SnapshotHub

__all__ = [
    "AuthenticationError",
    "AuthProvider",
    "AuthService",
    "MaintenanceRequestService",
    "SnapshotHub",
]
