"""
Ghost credential profiles and authentication strategies.

A credential profile is a ``{url, api_key}`` pair resolved by name. Two
profiles exist, one per API family:

    ghostContentApi: read-only Content API key, sent as the ``key`` query
        parameter
    ghostAdminApi: Admin API key in ``{id}:{hex secret}`` form, exchanged
        for a short-lived HS256 JWT sent as ``Authorization: Ghost <token>``

Authentication strategies never mutate the request descriptor they are given;
they return a decorated copy.

Configuration Format:
    credentials:
      ghostAdminApi:
        url: "https://blog.example.com"
        api_key_file: "/run/secrets/ghost_admin_api_key"
      ghostContentApi:
        url: "https://blog.example.com"
        api_key: "22444f78447824223cefc48062"
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import jwt

from ghost.errors import MissingCredentials


logger = logging.getLogger(__name__)

CONTENT_API_PROFILE = "ghostContentApi"
ADMIN_API_PROFILE = "ghostAdminApi"

# Admin tokens are valid for at most 5 minutes
ADMIN_TOKEN_TTL_SECONDS = 300


@dataclass(frozen=True)
class GhostCredentials:
    """Resolved credential profile.

    Attributes:
        url: Base URL of the Ghost site (no trailing slash)
        api_key: Content API key or Admin API ``id:secret`` key
    """
    url: str
    api_key: str

    def __repr__(self) -> str:
        return f"GhostCredentials(url={self.url!r}, api_key='***')"


@dataclass
class RequestDescriptor:
    """Transport-neutral description of one HTTP request.

    Attributes:
        method: HTTP method
        uri: Absolute request URL
        params: Query string parameters
        headers: Request headers
        json: JSON body, if any
        data: Form fields for multipart requests
        files: Multipart file parts
    """
    method: str
    uri: str
    params: Dict[str, Any] = field(default_factory=dict)
    headers: Dict[str, str] = field(default_factory=dict)
    json: Any = None
    data: Optional[Dict[str, Any]] = None
    files: Optional[Dict[str, Any]] = None

    def copy(self) -> "RequestDescriptor":
        return RequestDescriptor(
            method=self.method,
            uri=self.uri,
            params=dict(self.params),
            headers=dict(self.headers),
            json=self.json,
            data=dict(self.data) if self.data is not None else None,
            files=dict(self.files) if self.files is not None else None
        )


class ContentApiKeyAuth:
    """Inject the Content API key as the ``key`` query parameter."""

    def authenticate(self, credentials: GhostCredentials, request: RequestDescriptor) -> RequestDescriptor:
        decorated = request.copy()
        decorated.params["key"] = credentials.api_key
        return decorated


class AdminApiTokenAuth:
    """Sign a short-lived Admin API JWT and inject it as an Authorization header.

    Attributes:
        audience: JWT ``aud`` claim, e.g. ``/v2/admin/`` or ``/admin/``
    """

    def __init__(self, audience: str = "/admin/"):
        self.audience = audience

    def create_token(self, credentials: GhostCredentials, now: Optional[int] = None) -> str:
        """Create the signed admin token.

        Args:
            credentials: Admin profile whose key is ``{id}:{hex secret}``
            now: Issue time as a UNIX timestamp (defaults to current time)

        Returns:
            Encoded JWT string

        Raises:
            MissingCredentials: If the key is not in ``id:secret`` form or the
                secret is not valid hex
        """
        key_id, sep, secret = credentials.api_key.partition(":")
        if not sep or not key_id or not secret:
            raise MissingCredentials(
                "Admin API key must be in the form '{id}:{secret}'",
                details={"profile": ADMIN_API_PROFILE}
            )
        try:
            secret_bytes = bytes.fromhex(secret)
        except ValueError:
            raise MissingCredentials(
                "Admin API key secret must be hexadecimal",
                details={"profile": ADMIN_API_PROFILE}
            )

        iat = int(now if now is not None else time.time())
        payload = {
            "iat": iat,
            "exp": iat + ADMIN_TOKEN_TTL_SECONDS,
            "aud": self.audience
        }
        return jwt.encode(
            payload,
            secret_bytes,
            algorithm="HS256",
            headers={"alg": "HS256", "typ": "JWT", "kid": key_id}
        )

    def authenticate(self, credentials: GhostCredentials, request: RequestDescriptor) -> RequestDescriptor:
        decorated = request.copy()
        decorated.headers["Authorization"] = f"Ghost {self.create_token(credentials)}"
        return decorated


class CredentialStore:
    """Resolve credential profiles by name.

    Profiles are plain mappings with ``url`` and ``api_key`` (or
    ``api_key_file`` pointing at a Docker secret, which takes precedence).

    Example:
        >>> from config import load_config
        >>> store = CredentialStore.from_config(load_config())
        >>> creds = store.get_credentials("ghostAdminApi")
    """

    def __init__(self, profiles: Optional[Dict[str, Dict[str, Any]]] = None):
        self.profiles = profiles or {}

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "CredentialStore":
        """Create a CredentialStore from the ``credentials`` section of config.yml."""
        from config import read_secret_file

        profiles: Dict[str, Dict[str, Any]] = {}
        for name, profile_config in (config.get("credentials") or {}).items():
            if not isinstance(profile_config, dict):
                logger.warning(f"Ignoring credential profile '{name}': expected a mapping")
                continue

            api_key = profile_config.get("api_key", "")
            api_key_file = profile_config.get("api_key_file")
            if api_key_file:
                api_key = read_secret_file(api_key_file) or api_key

            profiles[name] = {
                "url": profile_config.get("url", ""),
                "api_key": api_key
            }

        logger.info(f"Loaded {len(profiles)} Ghost credential profile(s)")
        return cls(profiles)

    def get_credentials(self, profile_name: str) -> GhostCredentials:
        """Return the named profile.

        Raises:
            MissingCredentials: If the profile does not exist or lacks a URL or key
        """
        profile = self.profiles.get(profile_name)
        if not profile:
            raise MissingCredentials(
                f"No credentials configured for '{profile_name}'",
                details={"profile": profile_name}
            )

        url = (profile.get("url") or "").rstrip("/")
        api_key = profile.get("api_key") or ""
        if not url or not api_key:
            missing = [name for name, value in (("url", url), ("api_key", api_key)) if not value]
            raise MissingCredentials(
                f"Credentials '{profile_name}' are missing: {', '.join(missing)}",
                details={"profile": profile_name, "missing": missing}
            )

        return GhostCredentials(url=url, api_key=api_key)


def authentication_for(profile_name: str, audience: str = "/admin/"):
    """Return the authentication strategy used by a credential profile."""
    if profile_name == CONTENT_API_PROFILE:
        return ContentApiKeyAuth()
    return AdminApiTokenAuth(audience=audience)
