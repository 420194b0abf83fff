"""
Binary upload pipeline for Ghost images and media.

An upload runs through these stages for one input item:

    Validating -> Staging -> Uploading -> Succeeded | Failed -> Cleanup

Validating reads the binary payload for the item and rejects missing or empty
payloads. Staging writes each payload (and an optional media thumbnail) to its
own uniquely named file in the system temp directory. Uploading posts the
staged files as a multipart form. Cleanup deletes every staged file whatever
the outcome; a cleanup failure is logged and never replaces the upload result.

Filename inference:
    Images: the extension of the override/source filename if it is an
    allowed image extension (``.jpeg`` becomes ``.jpg``), else the extension
    implied by an ``image/*`` content type, else the raw filename extension,
    else ``.jpg``.
    Media: any filename extension, else the content type's extension, else
    ``.bin``. Thumbnails follow the image rules.

Every character outside ``[A-Za-z0-9_.-]`` in the final name becomes ``_``.
"""
import contextlib
import logging
import mimetypes
import os
import re
import tempfile
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, Optional

from ghost.errors import (
    EmptyPayload,
    InvalidConfiguration,
    MissingBinaryData,
    NormalizedError,
    TempFileIoError,
    normalize,
)
from ghost.ghost_api import ADMIN_API, GhostApiClient

logger = logging.getLogger(__name__)

IMAGE = "image"
MEDIA = "media"

IMAGE_EXTENSIONS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".tiff"})

IMAGE_MIME_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/pjpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/svg+xml": ".svg",
    "image/tiff": ".tiff",
}

DEFAULT_IMAGE_EXTENSION = ".jpg"
DEFAULT_MEDIA_EXTENSION = ".bin"

UPLOAD_ENDPOINTS = {
    IMAGE: "/admin/images/upload/",
    MEDIA: "/admin/media/upload/",
}

# Response key holding the uploaded objects
RESPONSE_KEYS = {
    IMAGE: "images",
    MEDIA: "media",
}

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass
class BinaryAsset:
    """In-memory binary payload attached to an input item.

    Attributes:
        data: Raw bytes
        file_name: Original filename, if known
        mime_type: Declared content type, if known
    """
    data: bytes
    file_name: Optional[str] = None
    mime_type: Optional[str] = None

    def __repr__(self) -> str:
        return f"BinaryAsset(file_name={self.file_name!r}, mime_type={self.mime_type!r}, size={len(self.data)})"


@dataclass
class UploadOptions:
    """Caller-supplied overrides layered onto inferred defaults.

    Attributes:
        file_name: Filename to use instead of the asset's own
        ref: Reference Ghost stores with the upload
        purpose: Image purpose (``image``, ``profile_image`` or ``icon``)
        thumbnail_property: Binary property holding a media thumbnail
    """
    file_name: Optional[str] = None
    ref: Optional[str] = None
    purpose: Optional[str] = None
    thumbnail_property: Optional[str] = None


@dataclass
class StagedFile:
    """A temporary file holding one payload for the duration of an upload."""
    path: str
    file_name: str
    content_type: Optional[str]


# (item index, binary property name) -> asset or None
BinaryReader = Callable[[int, str], Optional[BinaryAsset]]


def sanitize_filename(name: str) -> str:
    """Replace every character outside ``[A-Za-z0-9_.-]`` with ``_``.

    Example:
        >>> sanitize_filename("my photo!@#.png")
        'my_photo___.png'
    """
    return _UNSAFE_FILENAME_CHARS.sub("_", name)


def _normalize_extension(extension: str) -> str:
    extension = extension.lower()
    return ".jpg" if extension == ".jpeg" else extension


def _split_filename(file_name: Optional[str], default_stem: str) -> tuple[str, str]:
    if not file_name:
        return default_stem, ""
    stem, extension = os.path.splitext(os.path.basename(file_name))
    # ".png" is an extension with no stem
    if not extension and stem.startswith(".") and stem.count(".") == 1:
        return default_stem, stem
    return stem or default_stem, extension


def image_extension_for(file_name: Optional[str], mime_type: Optional[str]) -> str:
    """Pick the extension for an image upload.

    Example:
        >>> image_extension_for("photo.JPEG", None)
        '.jpg'
        >>> image_extension_for(None, "image/png")
        '.png'
    """
    _, raw_extension = _split_filename(file_name, "")
    extension = _normalize_extension(raw_extension)
    if extension in IMAGE_EXTENSIONS:
        return extension

    if mime_type:
        mime_extension = IMAGE_MIME_EXTENSIONS.get(mime_type.split(";")[0].strip().lower())
        if mime_extension:
            return mime_extension

    if raw_extension:
        return raw_extension
    return DEFAULT_IMAGE_EXTENSION


def media_extension_for(file_name: Optional[str], mime_type: Optional[str]) -> str:
    """Pick the extension for a media upload; any filename extension is accepted."""
    _, raw_extension = _split_filename(file_name, "")
    if raw_extension:
        return _normalize_extension(raw_extension)

    if mime_type:
        guessed = mimetypes.guess_extension(mime_type.split(";")[0].strip().lower())
        if guessed:
            return guessed

    return DEFAULT_MEDIA_EXTENSION


def infer_image_filename(file_name: Optional[str], mime_type: Optional[str], default_stem: str = "image") -> str:
    """Return the sanitized upload filename for an image."""
    stem, _ = _split_filename(file_name, default_stem)
    return sanitize_filename(f"{stem}{image_extension_for(file_name, mime_type)}")


def infer_media_filename(file_name: Optional[str], mime_type: Optional[str], default_stem: str = "media") -> str:
    """Return the sanitized upload filename for a video or audio file."""
    stem, _ = _split_filename(file_name, default_stem)
    return sanitize_filename(f"{stem}{media_extension_for(file_name, mime_type)}")


@contextlib.contextmanager
def staged_file(
    asset: BinaryAsset,
    file_name: str,
    temp_dir: Optional[str] = None
) -> Iterator[StagedFile]:
    """Write ``asset`` to a uniquely named temp file and delete it on exit.

    The temp name embeds a millisecond timestamp and a random token ahead of
    the sanitized filename so concurrent uploads never share a path.

    Raises:
        TempFileIoError: If the file cannot be created or written
    """
    directory = temp_dir or tempfile.gettempdir()
    unique = f"{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
    path = os.path.join(directory, f"ghost_upload_{unique}_{file_name}")

    try:
        # 600 = rw-------; O_EXCL refuses to reuse an existing path
        fd = os.open(path, os.O_CREAT | os.O_WRONLY | os.O_EXCL, 0o600)
        try:
            os.write(fd, asset.data)
        finally:
            os.close(fd)
    except OSError as e:
        _remove_staged_file(path)
        raise TempFileIoError(
            f"Failed to stage upload file {file_name}: {e}",
            details={"path": path, "rawError": str(e)}
        ) from e

    logger.debug(f"Staged {len(asset.data)} bytes for {file_name} at {path}")
    try:
        yield StagedFile(
            path=path,
            file_name=file_name,
            content_type=asset.mime_type or mimetypes.guess_type(file_name)[0]
        )
    finally:
        _remove_staged_file(path)


def _remove_staged_file(path: str) -> None:
    try:
        os.unlink(path)
        logger.debug(f"Removed staged upload file {path}")
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove staged upload file {path}: {e}")


class BinaryUploader:
    """Upload item binaries to the Ghost Admin API.

    Attributes:
        client: Admin API client used for the multipart POST
        binary_reader: Returns the BinaryAsset for an item index and property
        temp_dir: Directory for staged files (system temp dir by default)

    Example:
        >>> uploader = BinaryUploader(admin_client, reader)
        >>> uploader.upload_asset("image", "data", 0, UploadOptions(ref="cover"))
        {'url': 'https://blog.example.com/content/images/2024/01/cover.jpg', 'ref': 'cover'}
    """

    def __init__(
        self,
        client: GhostApiClient,
        binary_reader: BinaryReader,
        temp_dir: Optional[str] = None
    ):
        if client.source != ADMIN_API:
            raise InvalidConfiguration(
                "Uploads require an Admin API client",
                details={"source": client.source}
            )
        self.client = client
        self.binary_reader = binary_reader
        self.temp_dir = temp_dir

    def _read_asset(self, index: int, property_name: str) -> BinaryAsset:
        asset = self.binary_reader(index, property_name)
        if asset is None:
            raise MissingBinaryData(
                f'No binary data property "{property_name}" exists on item!',
                details={"binaryPropertyName": property_name},
                item_index=index
            )
        if not asset.data:
            raise EmptyPayload(
                f'Binary data property "{property_name}" is empty',
                details={"binaryPropertyName": property_name},
                item_index=index
            )
        return asset

    def upload_asset(
        self,
        kind: str,
        property_name: str,
        index: int,
        options: Optional[UploadOptions] = None
    ) -> Dict[str, Any]:
        """Upload the binary stored under ``property_name`` on item ``index``.

        Args:
            kind: ``image`` or ``media``
            property_name: Binary property holding the payload
            index: Index of the input item
            options: Filename, ref, purpose and thumbnail overrides

        Returns:
            The uploaded object from Ghost (``url`` and ``ref``), or the whole
            response when it has no ``images``/``media`` list

        Raises:
            NormalizedError: Every failure, with ``item_index`` set to ``index``
        """
        if kind not in UPLOAD_ENDPOINTS:
            raise InvalidConfiguration(
                f"Unknown upload kind '{kind}'",
                details={"kind": kind, "allowed": sorted(UPLOAD_ENDPOINTS)},
                item_index=index
            )
        options = options or UploadOptions()

        try:
            with contextlib.ExitStack() as stack:
                asset = self._read_asset(index, property_name)
                thumbnail = None
                if kind == MEDIA and options.thumbnail_property:
                    thumbnail = self._read_asset(index, options.thumbnail_property)

                source_name = options.file_name or asset.file_name
                if kind == IMAGE:
                    file_name = infer_image_filename(source_name, asset.mime_type)
                else:
                    file_name = infer_media_filename(source_name, asset.mime_type)

                staged = stack.enter_context(staged_file(asset, file_name, self.temp_dir))
                files = {"file": (staged.path, staged.file_name, staged.content_type)}

                if thumbnail is not None:
                    thumbnail_name = infer_image_filename(thumbnail.file_name, thumbnail.mime_type, "thumbnail")
                    staged_thumbnail = stack.enter_context(staged_file(thumbnail, thumbnail_name, self.temp_dir))
                    files["thumbnail"] = (
                        staged_thumbnail.path,
                        staged_thumbnail.file_name,
                        staged_thumbnail.content_type
                    )

                fields: Dict[str, Any] = {"ref": options.ref}
                if kind == IMAGE:
                    fields["purpose"] = options.purpose
                elif not options.ref:
                    fields["ref"] = file_name

                logger.info(f"Uploading {kind} '{file_name}' for item {index}")
                response = self.client.post_multipart(UPLOAD_ENDPOINTS[kind], files, fields)
        except NormalizedError as e:
            raise normalize(e, index)
        except Exception as e:
            logger.error(f"Unexpected error uploading {kind} for item {index}: {e}")
            raise normalize(e, index) from e

        uploaded = response.get(RESPONSE_KEYS[kind])
        if isinstance(uploaded, list) and uploaded:
            return uploaded[0]
        return response
