"""Client-side application for the maintenance request tracker."""

from .app import MaintenanceApp
from .backend import BackendError, RemoteIdentityProvider, RemoteRequestStore
from .config import ClientConfig


def create_app(config: ClientConfig | None = None) -> MaintenanceApp:
    """Wire a MaintenanceApp to the remote API described by config."""
    config = config or ClientConfig.from_env()
    identity = RemoteIdentityProvider(config.api_url)
    store = RemoteRequestStore(config.api_url, config.namespace, identity)
    return MaintenanceApp(identity, store, initial_token=config.initial_token)


__all__ = [
    "BackendError",
    "ClientConfig",
    "MaintenanceApp",
    "RemoteIdentityProvider",
    "RemoteRequestStore",
    "create_app",
]
