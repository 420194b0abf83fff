"""Ghost API Request/Upload Engine Package.

This package talks to the Ghost Content and Admin APIs on behalf of the
workflow node.

Key Components:
    ghost.errors: Error taxonomy and the normalize() function
    ghost.ghost_api: GhostApiClient (request building, pagination, multipart)
    ghost.uploads: BinaryUploader (temp-file staged image/media uploads)

Only the error types are re-exported here; import the client and uploader
from their modules.

Usage:
    >>> from ghost.ghost_api import GhostApiClient
    >>> client = GhostApiClient(store, source="contentApi")
    >>> posts = client.request_all_items("posts", "GET", "/content/posts/")
"""
from .errors import (
    ApiRequestFailed,
    EmptyPayload,
    InvalidConfiguration,
    InvalidContent,
    MissingBinaryData,
    MissingCredentials,
    NormalizedError,
    TempFileIoError,
    UnknownError,
    normalize,
)

__all__ = [
    "ApiRequestFailed",
    "EmptyPayload",
    "InvalidConfiguration",
    "InvalidContent",
    "MissingBinaryData",
    "MissingCredentials",
    "NormalizedError",
    "TempFileIoError",
    "UnknownError",
    "normalize",
]
