"""
Ghost API Client.

This module builds and sends requests to the Ghost Content and Admin APIs,
follows Ghost's page-number pagination and posts multipart uploads.

The ``source`` discriminator selects the API family:

    contentApi: version tag v3, ``ghostContentApi`` profile, key in query string
    adminApi:   version tag v2, ``ghostAdminApi`` profile, signed token header

Request URLs are ``{url}/ghost/api/{version}{endpoint}`` where ``endpoint``
already names the family, e.g. ``/content/posts/`` or ``/admin/posts/``. The
``api_version`` setting can pin a tag (``v3``) or select the unversioned
``default`` path used by current Ghost releases.

Each call is a single attempt. Failures are raised as ApiRequestFailed.
"""
import contextlib
import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from credentials import (
    ADMIN_API_PROFILE,
    CONTENT_API_PROFILE,
    CredentialStore,
    RequestDescriptor,
    authentication_for,
)
from ghost.errors import ApiRequestFailed, InvalidConfiguration, MissingCredentials, normalize

logger = logging.getLogger(__name__)

CONTENT_API = "contentApi"
ADMIN_API = "adminApi"

# source -> (default version tag, credential profile)
SOURCE_SETTINGS: Dict[str, Tuple[str, str]] = {
    CONTENT_API: ("v3", CONTENT_API_PROFILE),
    ADMIN_API: ("v2", ADMIN_API_PROFILE),
}

# Unversioned paths; Ghost negotiates the version from this header
LIBRARY_DEFAULT_VERSION = "default"
LIBRARY_ACCEPT_VERSION = "v5.0"

PAGE_SIZE = 50


class GhostApiClient:
    """
    Client for the Ghost Content and Admin APIs.

    Attributes:
        credential_store: Resolves the profile for the selected source
        source: ``contentApi`` or ``adminApi``
        version: Version tag inserted into request paths, or ``default``
        timeout: Request timeout in seconds
        max_pages: Optional cap on pages fetched by request_all_items
        session: requests.Session used for all calls
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        source: str = ADMIN_API,
        api_version: Optional[str] = None,
        timeout: int = 30,
        max_pages: Optional[int] = None,
        session: Optional[requests.Session] = None
    ):
        if source not in SOURCE_SETTINGS:
            raise InvalidConfiguration(
                f"Unknown API source '{source}'",
                details={"source": source, "allowed": sorted(SOURCE_SETTINGS)}
            )

        default_version, profile = SOURCE_SETTINGS[source]
        self.credential_store = credential_store
        self.source = source
        self.profile = profile
        self.version = api_version or default_version
        self.timeout = timeout
        self.max_pages = max_pages
        self.session = session or requests.Session()

    @classmethod
    def from_config(
        cls,
        config: Dict[str, Any],
        credential_store: CredentialStore,
        source: str = ADMIN_API,
        session: Optional[requests.Session] = None
    ) -> "GhostApiClient":
        """
        Create a GhostApiClient from configuration dictionary.

        Args:
            config: Configuration dictionary with ghost.* settings
            credential_store: Store resolving the source's credential profile
            source: ``contentApi`` or ``adminApi``
            session: Optional requests session to reuse

        Returns:
            Configured GhostApiClient instance
        """
        ghost_config = config.get("ghost", {}) or {}
        return cls(
            credential_store=credential_store,
            source=source,
            api_version=ghost_config.get("api_version"),
            timeout=ghost_config.get("timeout", 30),
            max_pages=ghost_config.get("max_pages"),
            session=session
        )

    @property
    def is_library_default(self) -> bool:
        return self.version == LIBRARY_DEFAULT_VERSION

    def _base_path(self) -> str:
        if self.is_library_default:
            return "/ghost/api"
        return f"/ghost/api/{self.version}"

    def _audience(self) -> str:
        if self.is_library_default:
            return "/admin/"
        return f"/{self.version}/admin/"

    def build_request(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        query: Optional[Dict[str, Any]] = None,
        uri: Optional[str] = None
    ) -> RequestDescriptor:
        """
        Build the request descriptor for one call, before authentication.

        Args:
            method: HTTP method
            endpoint: Path below the version segment (e.g. ``/admin/posts/``)
            body: JSON body, omitted when empty
            query: Query string parameters
            uri: Explicit absolute URL overriding the computed one

        Returns:
            RequestDescriptor with method, URL, query, body and headers
        """
        if uri is None:
            credentials = self.credential_store.get_credentials(self.profile)
            uri = f"{credentials.url}{self._base_path()}{endpoint}"

        headers = {"Accept": "application/json"}
        if self.is_library_default:
            headers["Accept-Version"] = LIBRARY_ACCEPT_VERSION

        return RequestDescriptor(
            method=method.upper(),
            uri=uri,
            params=dict(query or {}),
            headers=headers,
            json=body if body else None
        )

    def send(self, descriptor: RequestDescriptor) -> Dict[str, Any]:
        """
        Authenticate and send a request descriptor.

        Returns:
            Decoded JSON response; ``{}`` for empty bodies (e.g. 204 on delete)

        Raises:
            MissingCredentials: If the source's profile is not configured
            ApiRequestFailed: On transport failure, non-2xx status or an
                undecodable response body
        """
        credentials = self.credential_store.get_credentials(self.profile)
        auth = authentication_for(self.profile, audience=self._audience())
        request = auth.authenticate(credentials, descriptor)

        logger.debug(f"Ghost API {request.method} {request.uri}")

        try:
            response = self.session.request(
                request.method,
                request.uri,
                params=request.params or None,
                headers=request.headers,
                json=request.json,
                data=request.data,
                files=request.files,
                timeout=self.timeout
            )
            response.raise_for_status()
        except requests.exceptions.Timeout as e:
            logger.error(f"Timeout requesting Ghost API: {request.uri}")
            raise normalize(e) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Request to Ghost API failed: {request.method} {request.uri}: {e}")
            raise normalize(e) from e

        if response.status_code == 204 or not response.content:
            return {}

        try:
            return response.json()
        except ValueError as e:
            raise ApiRequestFailed(
                "Ghost API returned a response that is not valid JSON",
                details={"statusCode": response.status_code, "responseData": response.text}
            ) from e

    def request(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        query: Optional[Dict[str, Any]] = None,
        uri: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Build and send one request.

        Example:
            >>> client = GhostApiClient(store, source="contentApi")
            >>> client.request("GET", "/content/posts/slug/welcome/")
        """
        return self.send(self.build_request(method, endpoint, body, query, uri))

    def request_all_items(
        self,
        property_name: str,
        method: str,
        endpoint: str,
        body: Any = None,
        query: Optional[Dict[str, Any]] = None
    ) -> List[Any]:
        """
        Fetch every page of a collection and concatenate ``property_name``.

        Starts at page 1 with 50 items per page and follows
        ``meta.pagination.next`` until it is null. Items keep server order.
        The caller's query mapping is not modified.

        With ``max_pages`` unset the loop runs for as long as the server keeps
        reporting a next page.

        Args:
            property_name: Response key holding the items (e.g. ``posts``)
            method: HTTP method
            endpoint: Collection endpoint
            body: Optional JSON body
            query: Extra query parameters (filter, fields, ...)

        Returns:
            All items from all pages
        """
        page_query = dict(query or {})
        page_query["limit"] = PAGE_SIZE
        page_query["page"] = 1

        items: List[Any] = []
        pages_fetched = 0

        while page_query["page"] is not None:
            response = self.request(method, endpoint, body, page_query)
            pages_fetched += 1

            pagination = (response.get("meta") or {}).get("pagination") or {}
            page_query["page"] = pagination.get("next")
            items.extend(response.get(property_name) or [])

            if (
                page_query["page"] is not None
                and self.max_pages is not None
                and pages_fetched >= self.max_pages
            ):
                logger.warning(
                    f"Reached maximum page limit ({self.max_pages}) when fetching {property_name} from {endpoint}"
                )
                break

        logger.debug(f"Fetched {len(items)} {property_name} in {pages_fetched} page(s)")
        return items

    def post_multipart(
        self,
        endpoint: str,
        files: Dict[str, Tuple[str, str, Optional[str]]],
        fields: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        POST a multipart form with file parts read from disk.

        Args:
            endpoint: Upload endpoint (e.g. ``/admin/images/upload/``)
            files: Form field -> (path on disk, upload filename, content type)
            fields: Extra form fields; None values are dropped

        Returns:
            Decoded JSON response
        """
        descriptor = self.build_request("POST", endpoint)
        descriptor.data = {k: v for k, v in (fields or {}).items() if v is not None}

        with contextlib.ExitStack() as stack:
            parts = {}
            for field_name, (path, filename, content_type) in files.items():
                handle = stack.enter_context(open(path, "rb"))
                if content_type:
                    parts[field_name] = (filename, handle, content_type)
                else:
                    parts[field_name] = (filename, handle)
            descriptor.files = parts
            return self.send(descriptor)

    def verify_credentials(self) -> bool:
        """
        Check that the configured credentials are accepted.

        Content API: ``GET /content/settings/``; Admin API: ``GET /admin/site/``.

        Returns:
            True if the API accepted the request, False otherwise
        """
        endpoint = "/content/settings/" if self.source == CONTENT_API else "/admin/site/"
        try:
            self.request("GET", endpoint)
            return True
        except (ApiRequestFailed, MissingCredentials) as e:
            logger.warning(f"Ghost credential check failed for {self.profile}: {e}")
            return False
