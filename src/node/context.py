"""
Host context and item model for the Ghost node.

The host runtime hands the node an explicit HostContext instead of ambient
state: the credential store, the logger to report through, and a reader for
item binaries. Items arrive in the host's wire shape:

    {
      "json": {"title": "Hello"},
      "binary": {
        "data": {"data": "<base64>", "fileName": "cover.png", "mimeType": "image/png"}
      }
    }
"""
import base64
import binascii
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from config import DEFAULT_TIMEOUT, get_timezone_name
from credentials import CredentialStore
from ghost.errors import InvalidContent
from ghost.uploads import BinaryAsset, BinaryReader


logger = logging.getLogger(__name__)


def decode_binary(entry: Dict[str, Any], property_name: str = "data") -> BinaryAsset:
    """Build a BinaryAsset from a host binary entry.

    ``data`` may be raw bytes or a base64 string.

    Raises:
        InvalidContent: If ``data`` is a string that is not valid base64
    """
    data = entry.get("data", b"")
    if isinstance(data, str):
        try:
            data = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidContent(
                f'Binary data property "{property_name}" is not valid base64',
                details={"binaryPropertyName": property_name, "rawError": str(e)}
            ) from e
    return BinaryAsset(
        data=bytes(data or b""),
        file_name=entry.get("fileName"),
        mime_type=entry.get("mimeType")
    )


@dataclass
class NodeItem:
    """One input item: JSON fields plus named binary attachments."""
    json: Dict[str, Any] = field(default_factory=dict)
    binary: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, item: Dict[str, Any]) -> "NodeItem":
        """Accept ``{"json": ..., "binary": ...}`` or a bare JSON mapping."""
        if "json" in item and isinstance(item["json"], dict):
            return cls(json=item["json"], binary=item.get("binary") or {})
        return cls(json=dict(item))


class ItemBinaryReader:
    """Default BinaryReader that decodes binaries carried on the items themselves."""

    def __init__(self, items: List[NodeItem]):
        self.items = items

    def __call__(self, index: int, property_name: str) -> Optional[BinaryAsset]:
        if index < 0 or index >= len(self.items):
            return None
        entry = self.items[index].binary.get(property_name)
        if not entry:
            return None
        return decode_binary(entry, property_name)


@dataclass
class HostContext:
    """Capabilities the host passes to the node for one execution.

    Attributes:
        credentials: Resolves ``ghostAdminApi`` / ``ghostContentApi`` profiles
        logger: Logger the node reports through
        binary_reader: Optional override for reading item binaries
        timezone: IANA zone for naive ``published_at`` values
        timeout: Request timeout in seconds
        max_pages: Optional cap on pages per paginated fetch
        api_version: Optional version tag override (``v3``, ``default``, ...)
    """
    credentials: CredentialStore
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("node"))
    binary_reader: Optional[BinaryReader] = None
    timezone: str = "UTC"
    timeout: int = DEFAULT_TIMEOUT
    max_pages: Optional[int] = None
    api_version: Optional[str] = None

    @classmethod
    def from_config(cls, config: Dict[str, Any], **overrides: Any) -> "HostContext":
        """Create a HostContext from a load_config() dictionary.

        Example:
            >>> from config import load_config
            >>> context = HostContext.from_config(load_config())
        """
        ghost_config = config.get("ghost", {}) or {}
        values: Dict[str, Any] = {
            "credentials": CredentialStore.from_config(config),
            "timezone": get_timezone_name(config),
            "timeout": ghost_config.get("timeout", DEFAULT_TIMEOUT),
            "max_pages": ghost_config.get("max_pages"),
            "api_version": ghost_config.get("api_version"),
        }
        values.update(overrides)
        return cls(**values)
