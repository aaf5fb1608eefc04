"""Data models for the maintenance request tracker."""

from .maintenance_request import (
    ATTACHMENT_PLACEHOLDER,
    SYSTEM_OPTIONS,
    MaintenanceRequest,
    MaintenanceRequestCreate,
    RequestStatus,
    StatusUpdateRequest,
)
from .user import User

__all__ = [
    "ATTACHMENT_PLACEHOLDER",
    "SYSTEM_OPTIONS",
    "MaintenanceRequest",
    "MaintenanceRequestCreate",
    "RequestStatus",
    "StatusUpdateRequest",
    "User",
]
