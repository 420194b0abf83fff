"""
Ghost Workflow Node Executor.

This module turns one node configuration plus a batch of input items into
Ghost API calls and a list of output entries.

Supported operations:
    contentApi / post:  get, getAll
    adminApi / post:    create, get, getAll, update, delete
    adminApi / image:   upload
    adminApi / media:   upload

Items are processed strictly in input order, one at a time. Every output
entry has the shape ``{"json": {...}, "pairedItem": {"item": index}}``.

Failure Policy:
    With ``continue_on_fail`` disabled the first failing item aborts the batch
    and its NormalizedError propagates. With it enabled the error is written
    to the output at that item's position and processing continues.

Output Shapes:
    Plain (default): raw Ghost objects; getAll yields one entry per post;
        delete yields ``{"success": true}``; failures ``{"error", "details",
        "itemIndex"}``.
    Envelope (``envelope: true``): ``{"success", "operation", "resource",
        "post" | "posts" | "image" | "media", "metadata"}``; failures carry
        ``success: false`` plus the error fields.

Example:
    >>> from config import load_config
    >>> context = HostContext.from_config(load_config())
    >>> node = GhostNode({"source": "adminApi", "resource": "post", "operation": "create",
    ...                   "title": "Hello", "content": "<p>World</p>"}, context)
    >>> node.execute([{"json": {}}])
"""
import json
from datetime import datetime, timezone as dt_timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import requests
from requests.utils import quote

from config import get_timezone
from ghost.errors import InvalidContent, NormalizedError, normalize
from ghost.ghost_api import ADMIN_API, CONTENT_API, GhostApiClient
from ghost.uploads import IMAGE, MEDIA, BinaryUploader, UploadOptions
from node.context import HostContext, ItemBinaryReader, NodeItem
from schema import validate_node_parameters

DEFAULT_LIMIT = 50
DEFAULT_BINARY_PROPERTY = "data"
DEFAULT_IMAGE_PURPOSE = "image"

# Query options whose list values Ghost expects comma-joined
LIST_QUERY_OPTIONS = ("fields", "formats", "include")

# Post fields given as comma-separated strings in the node UI
LIST_POST_FIELDS = ("tags", "authors")

Predicate = Callable[[NodeItem, Dict[str, Any]], bool]
Extractor = Callable[[NodeItem, Dict[str, Any]], Any]


def _item_string(key: str) -> Tuple[Predicate, Extractor]:
    return (
        lambda item, parameters: isinstance(item.json.get(key), str),
        lambda item, parameters: item.json[key],
    )


def _parameter_string(key: str) -> Tuple[Predicate, Extractor]:
    return (
        lambda item, parameters: isinstance(parameters.get(key), str),
        lambda item, parameters: parameters[key],
    )


# Ordered (predicate, extractor) pairs; the first matching pair wins
TITLE_SOURCES: List[Tuple[Predicate, Extractor]] = [
    _item_string("title"),
    _item_string("name"),
    _parameter_string("title"),
]

CONTENT_SOURCES: List[Tuple[Predicate, Extractor]] = [
    _item_string("content"),
    _item_string("text"),
    _item_string("html"),
    _parameter_string("content"),
]


def resolve_input(
    sources: List[Tuple[Predicate, Extractor]],
    item: NodeItem,
    parameters: Dict[str, Any]
) -> Optional[Any]:
    """Return the value of the first source whose predicate matches, else None."""
    for predicate, extractor in sources:
        if predicate(item, parameters):
            return extractor(item, parameters)
    return None


def to_utc_timestamp(value: Any, tz_name: str) -> str:
    """Convert a ``published_at`` value to UTC ``YYYY-MM-DDTHH:MM:SSZ``.

    Naive values are interpreted in ``tz_name`` (UTC when the zone is unknown).

    Example:
        >>> to_utc_timestamp("2024-01-15T12:00:00", "Europe/Berlin")
        '2024-01-15T11:00:00Z'

    Raises:
        InvalidContent: If the value is not an ISO-8601 date/time
    """
    if isinstance(value, datetime):
        moment = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError as e:
            raise InvalidContent(
                f"Published at '{value}' is not a valid ISO-8601 date",
                details={"published_at": value}
            ) from e

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=get_timezone({"timezone": tz_name}))
    return moment.astimezone(dt_timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _path_segment(value: Any) -> str:
    """Percent-encode an id or slug so it stays a single path segment."""
    return quote(str(value), safe="")


def build_query_options(options: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Copy query options, joining list values of fields/formats/include."""
    query: Dict[str, Any] = {}
    for key, value in (options or {}).items():
        if value in (None, "", []):
            continue
        if key in LIST_QUERY_OPTIONS and isinstance(value, (list, tuple)):
            value = ",".join(str(v) for v in value)
        query[key] = value
    return query


def _utc_now_iso() -> str:
    return datetime.now(dt_timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class GhostNode:
    """Execute one Ghost node configuration over a batch of items.

    Attributes:
        parameters: Validated node parameters
        context: HostContext with credentials, logger and settings
        continue_on_fail: Record per-item failures instead of aborting
        session: requests session shared by the node's API clients
    """

    def __init__(
        self,
        parameters: Dict[str, Any],
        context: HostContext,
        continue_on_fail: bool = False,
        session: Optional[requests.Session] = None
    ):
        validate_node_parameters(parameters)
        self.parameters = parameters
        self.context = context
        self.continue_on_fail = continue_on_fail
        self.session = session or requests.Session()
        self.source = parameters["source"]
        self.resource = parameters["resource"]
        self.operation = parameters["operation"]
        self.envelope = bool(parameters.get("envelope", False))
        self.logger = context.logger
        self._clients: Dict[str, GhostApiClient] = {}

        self._handlers: Dict[Tuple[str, str], Callable[[int, NodeItem], List[Dict[str, Any]]]] = {
            ("post", "create"): self._create_post,
            ("post", "get"): self._get_post,
            ("post", "getAll"): self._get_all_posts,
            ("post", "update"): self._update_post,
            ("post", "delete"): self._delete_post,
            (IMAGE, "upload"): self._upload_image,
            (MEDIA, "upload"): self._upload_media,
        }

    def client(self, source: Optional[str] = None) -> GhostApiClient:
        """Return (and cache) the API client for ``source``."""
        source = source or self.source
        if source not in self._clients:
            self._clients[source] = GhostApiClient(
                credential_store=self.context.credentials,
                source=source,
                api_version=self.context.api_version,
                timeout=self.context.timeout,
                max_pages=self.context.max_pages,
                session=self.session
            )
        return self._clients[source]

    @property
    def _family(self) -> str:
        return "content" if self.source == CONTENT_API else "admin"

    def execute(self, items: List[Any]) -> List[Dict[str, Any]]:
        """Run the configured operation for every item, in order.

        Args:
            items: NodeItem instances or host item mappings

        Returns:
            Output entries in input order

        Raises:
            NormalizedError: The first item failure when continue_on_fail is off
        """
        node_items = [item if isinstance(item, NodeItem) else NodeItem.from_dict(item) for item in items]
        self._binary_reader = self.context.binary_reader or ItemBinaryReader(node_items)
        handler = self._handlers[(self.resource, self.operation)]

        self.logger.info(
            f"Executing Ghost {self.source} {self.resource}:{self.operation} for {len(node_items)} item(s)"
        )

        results: List[Dict[str, Any]] = []
        for index, item in enumerate(node_items):
            try:
                outputs = handler(index, item)
            except Exception as e:
                error = normalize(e, index)
                if not self.continue_on_fail:
                    self.logger.error(f"Item {index} failed, aborting batch: {error.message}")
                    if error is e:
                        raise
                    raise error from e
                self.logger.warning(f"Item {index} failed, continuing: {error.message}")
                results.append({"json": self._error_output(error), "pairedItem": {"item": index}})
                continue

            results.extend({"json": output, "pairedItem": {"item": index}} for output in outputs)

        return results

    def _metadata(self, **extra: Any) -> Dict[str, Any]:
        metadata = {
            "timestamp": _utc_now_iso(),
            "operation": self.operation,
            "resource": self.resource,
        }
        metadata.update(extra)
        return metadata

    def _envelope_output(self, key: str, value: Any, **extra_metadata: Any) -> Dict[str, Any]:
        return {
            "success": True,
            "operation": self.operation,
            "resource": self.resource,
            key: value,
            "metadata": self._metadata(**extra_metadata),
        }

    def _error_output(self, error: NormalizedError) -> Dict[str, Any]:
        output = error.to_dict()
        if self.envelope:
            output.update({
                "success": False,
                "operation": self.operation,
                "resource": self.resource,
                "metadata": self._metadata(),
            })
        return output

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    def _prepare_post_fields(self, post: Dict[str, Any], fields: Dict[str, Any]) -> None:
        """Merge user fields into ``post`` and check scheduling rules."""
        for key, value in fields.items():
            if key in LIST_POST_FIELDS and isinstance(value, str):
                value = [part.strip() for part in value.split(",") if part.strip()]
            post[key] = value

        if post.get("published_at"):
            post["published_at"] = to_utc_timestamp(post["published_at"], self.context.timezone)
        else:
            post.pop("published_at", None)

        if post.get("status") == "scheduled" and "published_at" not in post:
            raise InvalidContent(
                "Published at must be defined when status is scheduled",
                details={"status": "scheduled"}
            )

    @staticmethod
    def _validate_mobiledoc(content: Any) -> None:
        try:
            json.loads(content)
        except (TypeError, ValueError) as e:
            raise InvalidContent(
                "Content must be a valid JSON",
                details={"contentFormat": "mobileDoc", "rawError": str(e)}
            ) from e

    def _create_post(self, index: int, item: NodeItem) -> List[Dict[str, Any]]:
        title = resolve_input(TITLE_SOURCES, item, self.parameters) or ""
        content = resolve_input(CONTENT_SOURCES, item, self.parameters) or ""
        query: Dict[str, Any] = {}

        post: Dict[str, Any] = {"title": title}
        if self.parameters.get("contentFormat", "html") == "html":
            post["html"] = content
            query["source"] = "html"
        else:
            self._validate_mobiledoc(content)
            post["mobiledoc"] = content

        self._prepare_post_fields(post, dict(self.parameters.get("additionalFields") or {}))

        self.logger.debug(f"Creating post '{title}' for item {index}")
        response = self.client().request("POST", "/admin/posts/", {"posts": [post]}, query)
        created = (response.get("posts") or [{}])[0]

        if self.envelope:
            return [self._envelope_output("post", created)]
        return [created]

    def _update_post(self, index: int, item: NodeItem) -> List[Dict[str, Any]]:
        post_id = self.parameters["postId"]
        update_fields = dict(self.parameters.get("updateFields") or {})
        query: Dict[str, Any] = {}
        post: Dict[str, Any] = {}

        title = update_fields.pop("title", None) or resolve_input(TITLE_SOURCES, item, self.parameters)
        if title:
            post["title"] = title

        if self.parameters.get("contentFormat", "html") == "html":
            content = update_fields.pop("content", None) or resolve_input(CONTENT_SOURCES, item, self.parameters)
            if content:
                post["html"] = content
                query["source"] = "html"
        else:
            content_json = update_fields.pop("contentJson", None)
            if content_json is not None:
                self._validate_mobiledoc(content_json)
                post["mobiledoc"] = content_json
        update_fields.pop("content", None)
        update_fields.pop("contentJson", None)

        self._prepare_post_fields(post, update_fields)

        current = self.client().request(
            "GET", f"/admin/posts/{_path_segment(post_id)}/", query={"fields": "id,updated_at"}
        )
        posts = current.get("posts") or []
        if posts:
            post["updated_at"] = posts[0].get("updated_at")

        self.logger.debug(f"Updating post {post_id} for item {index}")
        response = self.client().request("PUT", f"/admin/posts/{_path_segment(post_id)}/", {"posts": [post]}, query)
        updated = (response.get("posts") or [{}])[0]

        if self.envelope:
            return [self._envelope_output("post", updated)]
        return [updated]

    def _get_post(self, index: int, item: NodeItem) -> List[Dict[str, Any]]:
        identifier = self.parameters["identifier"]
        query = build_query_options(self.parameters.get("options"))

        if self.parameters.get("by", "id") == "slug":
            endpoint = f"/{self._family}/posts/slug/{_path_segment(identifier)}/"
        else:
            endpoint = f"/{self._family}/posts/{_path_segment(identifier)}/"

        posts = self.client().request("GET", endpoint, query=query).get("posts") or []

        if self.envelope:
            return [self._envelope_output("post", posts[0] if posts else None)]
        return posts

    def _get_all_posts(self, index: int, item: NodeItem) -> List[Dict[str, Any]]:
        query = build_query_options(self.parameters.get("options"))
        endpoint = f"/{self._family}/posts/"

        if self.parameters.get("returnAll", False):
            posts = self.client().request_all_items("posts", "GET", endpoint, query=query)
        else:
            query["limit"] = self.parameters.get("limit", DEFAULT_LIMIT)
            posts = self.client().request("GET", endpoint, query=query).get("posts") or []

        if self.envelope:
            return [self._envelope_output("posts", posts, total=len(posts))]
        return posts

    def _delete_post(self, index: int, item: NodeItem) -> List[Dict[str, Any]]:
        post_id = self.parameters["postId"]
        self.client().request("DELETE", f"/admin/posts/{_path_segment(post_id)}/")

        if self.envelope:
            return [self._envelope_output("postId", post_id)]
        return [{"success": True}]

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    def _uploader(self) -> BinaryUploader:
        return BinaryUploader(self.client(ADMIN_API), self._binary_reader)

    def _upload_image(self, index: int, item: NodeItem) -> List[Dict[str, Any]]:
        fields = self.parameters.get("additionalFields") or {}
        options = UploadOptions(
            file_name=fields.get("fileName") or None,
            ref=fields.get("ref") or None,
            purpose=fields.get("purpose") or DEFAULT_IMAGE_PURPOSE
        )
        property_name = self.parameters.get("binaryPropertyName", DEFAULT_BINARY_PROPERTY)
        image = self._uploader().upload_asset(IMAGE, property_name, index, options)

        if self.envelope:
            return [self._envelope_output("image", image)]
        return [image]

    def _upload_media(self, index: int, item: NodeItem) -> List[Dict[str, Any]]:
        fields = self.parameters.get("additionalFields") or {}
        options = UploadOptions(
            file_name=fields.get("fileName") or None,
            ref=fields.get("ref") or None,
            thumbnail_property=fields.get("thumbnailBinaryProperty") or None
        )
        property_name = self.parameters.get("binaryPropertyName", DEFAULT_BINARY_PROPERTY)
        media = self._uploader().upload_asset(MEDIA, property_name, index, options)

        if self.envelope:
            return [self._envelope_output("media", media)]
        return [media]

    # ------------------------------------------------------------------
    # Option loaders
    # ------------------------------------------------------------------

    def list_authors(self) -> List[Dict[str, Any]]:
        """Return every staff user as ``{"name", "value": id}`` options."""
        users = self.client(ADMIN_API).request_all_items("users", "GET", "/admin/users/")
        return [{"name": user.get("name"), "value": user.get("id")} for user in users]

    def list_tags(self) -> List[Dict[str, Any]]:
        """Return every tag as ``{"name", "value": name}`` options."""
        tags = self.client(ADMIN_API).request_all_items("tags", "GET", "/admin/tags/")
        return [{"name": tag.get("name"), "value": tag.get("name")} for tag in tags]
