"""Ghost credential profiles and authentication strategies."""
from .credentials import (
    ADMIN_API_PROFILE,
    ADMIN_TOKEN_TTL_SECONDS,
    CONTENT_API_PROFILE,
    AdminApiTokenAuth,
    ContentApiKeyAuth,
    CredentialStore,
    GhostCredentials,
    RequestDescriptor,
    authentication_for,
)

__all__ = [
    "ADMIN_API_PROFILE",
    "ADMIN_TOKEN_TTL_SECONDS",
    "CONTENT_API_PROFILE",
    "AdminApiTokenAuth",
    "ContentApiKeyAuth",
    "CredentialStore",
    "GhostCredentials",
    "RequestDescriptor",
    "authentication_for",
]
