"""
Media Uploader

Pushes inline (data URI / base64) images, PDF reports and videos to the
remote asset host (Cloudinary, through its SDK) and returns durable URLs.

The uploader never retries. Callers that can live without the remote copy
go through ``upload_or_inline`` which turns an UploadError into an explicit
inline result instead of an exception.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import cloudinary.api
import cloudinary.uploader
from cloudinary.exceptions import Error as CloudinaryError

from core.config import settings
from core.exceptions import UploadError

logger = logging.getLogger(__name__)

IMAGE = "image"
PDF = "pdf"
VIDEO = "video"

# kind -> upload options
UPLOAD_PROFILES: Dict[str, Dict[str, Any]] = {
    IMAGE: {"resource_type": "image", "format": "jpg", "quality": "auto:good", "subfolder": "screenshots"},
    # "auto" instead of "raw" avoids the untrusted-account block on raw PDFs
    PDF: {"resource_type": "auto", "format": "pdf", "subfolder": "reports"},
    VIDEO: {"resource_type": "video", "format": "webm", "subfolder": "videos"},
}

_DATA_URI_RE = re.compile(r"^data:(?P<mime>[^;,]*)(?P<params>(;[^,]*)?),", re.IGNORECASE)


def normalize_pdf_data_uri(data: str) -> str:
    """
    Make sure a PDF payload is framed as ``data:application/pdf;base64,``.

    Generic prefixes (``application/octet-stream``, empty MIME) are rewritten;
    bare base64 gets a prefix.
    """
    match = _DATA_URI_RE.match(data)
    if not match:
        return f"data:application/pdf;base64,{data}"
    if match.group("mime").lower() == "application/pdf":
        return data
    params = match.group("params") or ";base64"
    return f"data:application/pdf{params},{data[match.end():]}"


@dataclass
class MediaResult:
    """Outcome of an upload attempt with inline fallback."""
    value: str
    remote: bool
    error: Optional[str] = None


class MediaUploader:
    """
    Wraps the Cloudinary SDK with per-instance credentials.

    Credentials travel with every call instead of through the SDK's global
    config, so tests and scripts can hold differently configured uploaders.
    """

    def __init__(
        self,
        cloud_name: Optional[str] = None,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        upload_prefix: Optional[str] = None,
        timeout: Optional[int] = None,
        root_folder: Optional[str] = None,
    ):
        self.cloud_name = cloud_name if cloud_name is not None else settings.CLOUDINARY_CLOUD_NAME
        self.api_key = api_key if api_key is not None else settings.CLOUDINARY_API_KEY
        self.api_secret = api_secret if api_secret is not None else settings.CLOUDINARY_API_SECRET
        self.upload_prefix = upload_prefix or settings.CLOUDINARY_UPLOAD_PREFIX
        self.timeout = timeout or settings.MEDIA_UPLOAD_TIMEOUT_S
        self.root_folder = root_folder or settings.MEDIA_ROOT_FOLDER

    @property
    def configured(self) -> bool:
        return bool(self.cloud_name and self.api_key and self.api_secret)

    def folder_for(self, kind: str) -> str:
        return f"{self.root_folder}/{UPLOAD_PROFILES[kind]['subfolder']}"

    def _options(self, **options: Any) -> Dict[str, Any]:
        if not self.configured:
            raise UploadError("Media host credentials are not configured")
        options.update(
            cloud_name=self.cloud_name,
            api_key=self.api_key,
            api_secret=self.api_secret,
            upload_prefix=self.upload_prefix,
            timeout=self.timeout,
        )
        return {k: v for k, v in options.items() if v is not None}

    def upload(self, kind: str, data: str, folder: Optional[str] = None, public_id: Optional[str] = None) -> str:
        """
        Upload an inline payload and return its secure URL.

        Raises:
            UploadError: host not configured, unreachable, or rejected the upload
        """
        if kind not in UPLOAD_PROFILES:
            raise ValueError(f"Unknown media kind: {kind}")
        if not data:
            raise UploadError("Empty media payload")

        profile = UPLOAD_PROFILES[kind]
        options = self._options(
            folder=folder or self.folder_for(kind),
            public_id=public_id,
            resource_type=profile["resource_type"],
            format=profile["format"],
            quality=profile.get("quality"),
            access_mode="public",
        )
        if kind == PDF:
            data = normalize_pdf_data_uri(data)

        try:
            payload = cloudinary.uploader.upload(data, **options)
        except CloudinaryError as e:
            raise UploadError(str(e)) from e

        url = payload.get("secure_url")
        if not url:
            raise UploadError("Media host response did not include a URL")
        logger.info(f"Uploaded {kind} to media host: {payload.get('public_id', public_id)}")
        return url

    def delete(self, public_id: str, resource_type: str = "image") -> Dict[str, Any]:
        options = self._options(resource_type=resource_type)
        try:
            return cloudinary.uploader.destroy(public_id, **options)
        except CloudinaryError as e:
            raise UploadError(str(e)) from e

    def list_resources(self, prefix: str, resource_type: str = "image") -> List[Dict[str, Any]]:
        """Every uploaded resource under a folder prefix, following pagination."""
        resources: List[Dict[str, Any]] = []
        cursor = None
        while True:
            options = self._options(
                type="upload",
                prefix=prefix,
                resource_type=resource_type,
                max_results=500,
                next_cursor=cursor,
            )
            try:
                payload = cloudinary.api.resources(**options)
            except CloudinaryError as e:
                raise UploadError(str(e)) from e
            resources.extend(payload.get("resources", []))
            cursor = payload.get("next_cursor")
            if not cursor:
                return resources

    def make_public(self, public_id: str, resource_type: str = "image") -> Dict[str, Any]:
        """Re-issue an explicit call forcing public access on one resource."""
        options = self._options(type="upload", resource_type=resource_type, access_mode="public")
        try:
            return cloudinary.uploader.explicit(public_id, **options)
        except CloudinaryError as e:
            raise UploadError(str(e)) from e


def upload_or_inline(
    uploader: MediaUploader,
    kind: str,
    data: str,
    folder: Optional[str] = None,
    public_id: Optional[str] = None,
) -> MediaResult:
    """Try the remote host; on UploadError keep the inline payload."""
    try:
        return MediaResult(value=uploader.upload(kind, data, folder=folder, public_id=public_id), remote=True)
    except UploadError as e:
        logger.warning(
            f"{kind} upload failed, storing inline payload: {e}",
            extra={"extra_fields": {"media_kind": kind, "public_id": public_id}},
        )
        return MediaResult(value=data, remote=False, error=str(e))


def get_media_uploader() -> MediaUploader:
    """Dependency for FastAPI routes (overridden in tests)."""
    return MediaUploader()
