"""Startup configuration for the maintenance request client."""

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ClientConfig:
    """Connection settings consumed when the application starts."""

    api_url: str
    namespace: str
    initial_token: str | None = None

    @classmethod
    def from_env(cls) -> "ClientConfig":
        return cls(
            api_url=os.environ.get("MAINTENANCE_API_URL", "http://localhost:8000"),
            namespace=os.environ.get("APP_NAMESPACE", "default-app"),
            initial_token=os.environ.get("INITIAL_AUTH_TOKEN") or None,
        )
