"""
Error taxonomy and normalization for the Ghost request/upload engine.

Every failure that leaves the engine is a NormalizedError: a message, a
structured ``details`` mapping and the index of the input item that was being
processed. The node executor uses the index to place the error in the output
sequence when continue-on-failure is enabled.

Normalization precedence (first match wins):
    1. Structured Ghost error list carried by the error itself
       (``{"errors": [...]}`` mapping or an ``errors`` attribute)
    2. Error list inside an HTTP response body (requests exceptions)
    3. Generic ``.message`` attribute
    4. ``str(error)``

Details keys:
    ghostErrors: Flattened list of Ghost error objects
    responseData: Parsed JSON (or text) body of a failed HTTP response
    statusCode: HTTP status code, when a response exists
    rawError: String form of an error no other rule recognised
"""
from typing import Any, Dict, List, Optional

import requests


# Keys kept from each Ghost error object when flattening
GHOST_ERROR_FIELDS = ("message", "context", "type", "details", "property", "help", "code", "id")


class NormalizedError(Exception):
    """Base class for all errors raised by the Ghost engine.

    Attributes:
        message: Human-readable description
        details: Structured diagnostic payload
        item_index: Index of the input item being processed, if known
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        item_index: Optional[int] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.item_index = item_index

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for output envelopes."""
        return {
            "error": self.message,
            "details": self.details,
            "itemIndex": self.item_index
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, item_index={self.item_index!r})"


class MissingCredentials(NormalizedError):
    """A credential profile is absent or incomplete."""


class ApiRequestFailed(NormalizedError):
    """Transport failure or non-2xx response from the Ghost API."""


class InvalidContent(NormalizedError):
    """Post content or fields are malformed (bad JSON, missing published_at)."""


class InvalidConfiguration(NormalizedError):
    """Node parameters name an unknown source, resource or operation."""


class MissingBinaryData(NormalizedError):
    """The input item carries no binary payload under the requested property."""


class EmptyPayload(NormalizedError):
    """The binary payload is present but has zero length."""


class TempFileIoError(NormalizedError):
    """Staging a temporary upload file failed."""


class UnknownError(NormalizedError):
    """Catch-all wrapper for errors with no recognised shape."""


def flatten_ghost_errors(errors: Any) -> List[Dict[str, Any]]:
    """Reduce a Ghost ``errors`` array to plain dictionaries.

    Non-dict entries are converted to ``{"message": str(entry)}``.
    """
    if not isinstance(errors, list):
        return []

    flattened = []
    for entry in errors:
        if isinstance(entry, dict):
            flattened.append({
                key: entry[key] for key in GHOST_ERROR_FIELDS
                if entry.get(key) is not None
            })
        else:
            flattened.append({"message": str(entry)})
    return flattened


def _ghost_errors_message(ghost_errors: List[Dict[str, Any]]) -> str:
    parts = []
    for err in ghost_errors:
        message = err.get("message") or "Unknown Ghost error"
        context = err.get("context")
        parts.append(f"{message} ({context})" if context else message)
    return "; ".join(parts)


def _structured_errors(raw_error: Any) -> Optional[List[Any]]:
    """Return the Ghost error list carried directly by ``raw_error``."""
    if isinstance(raw_error, dict):
        errors = raw_error.get("errors")
    else:
        errors = getattr(raw_error, "errors", None)
    if isinstance(errors, list) and errors:
        return errors
    return None


def _response_body(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


def normalize(raw_error: Any, item_index: Optional[int] = None) -> NormalizedError:
    """Convert any failure shape into a NormalizedError.

    Args:
        raw_error: Exception, Ghost error mapping or any other value
        item_index: Index of the input item that was being processed

    Returns:
        A NormalizedError (or subclass) with ``item_index`` attached. An
        error that is already normalized keeps its class and details; its
        index is only filled in when missing.
    """
    if isinstance(raw_error, NormalizedError):
        if raw_error.item_index is None:
            raw_error.item_index = item_index
        return raw_error

    structured = _structured_errors(raw_error)
    if structured is not None:
        ghost_errors = flatten_ghost_errors(structured)
        return ApiRequestFailed(
            _ghost_errors_message(ghost_errors),
            details={"ghostErrors": ghost_errors},
            item_index=item_index
        )

    if isinstance(raw_error, requests.exceptions.RequestException):
        response = raw_error.response
        if response is not None:
            body = _response_body(response)
            details: Dict[str, Any] = {
                "statusCode": response.status_code,
                "responseData": body
            }
            body_errors = _structured_errors(body) if isinstance(body, dict) else None
            if body_errors is not None:
                ghost_errors = flatten_ghost_errors(body_errors)
                details["ghostErrors"] = ghost_errors
                message = _ghost_errors_message(ghost_errors)
            else:
                message = f"Ghost API request failed with status {response.status_code}: {response.reason}"
            return ApiRequestFailed(message, details=details, item_index=item_index)

        return ApiRequestFailed(
            f"Ghost API request failed: {raw_error}",
            details={"rawError": str(raw_error)},
            item_index=item_index
        )

    message = getattr(raw_error, "message", None)
    if not isinstance(message, str) or not message:
        message = str(raw_error) or raw_error.__class__.__name__
    return UnknownError(
        message,
        details={"rawError": str(raw_error)},
        item_index=item_index
    )
