import os
import time
from urllib.parse import urlencode

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
import cloudinary.utils

from config.env import (
    CLOUDINARY_CLOUD_NAME,
    CLOUDINARY_API_KEY,
    CLOUDINARY_API_SECRET,
)
from utils.storage import StorageBackend, StorageError

cloudinary.config(
    cloud_name=CLOUDINARY_CLOUD_NAME,
    api_key=CLOUDINARY_API_KEY,
    api_secret=CLOUDINARY_API_SECRET,
    secure=True,
)


def _delivery_type(realm: str) -> str:
    # private realm objects are only served through signed URLs
    return "authenticated" if realm == "private" else "upload"


def _resource_type(key: str) -> str:
    ext = os.path.splitext(key)[1].lower()
    return "image" if ext in {".jpg", ".jpeg", ".png", ".webp", ".gif"} else "raw"


class CloudinaryStorage(StorageBackend):
    """
    Cloudinary has no presigned PUT; the upload URL carries a signed
    parameter set the client posts the file to before `timestamp` ages out.
    """

    def signed_put_url(self, realm, key, content_type, expires_in, metadata=None):
        params = {
            "public_id": key,
            "timestamp": int(time.time()),
            "type": _delivery_type(realm),
        }
        if metadata:
            params["context"] = "|".join(f"{k}={v}" for k, v in metadata.items())

        settings = cloudinary.config()
        params["signature"] = cloudinary.utils.api_sign_request(params, settings.api_secret)
        params["api_key"] = settings.api_key
        base = cloudinary.utils.cloudinary_api_url("upload", resource_type=_resource_type(key))
        return f"{base}?{urlencode(params)}"

    def signed_get_url(self, realm, key, expires_in):
        public_id, ext = os.path.splitext(key)
        resource_type = _resource_type(key)
        if resource_type == "raw":
            public_id, ext = key, ""
        return cloudinary.utils.private_download_url(
            public_id,
            ext.lstrip("."),
            resource_type=resource_type,
            type=_delivery_type(realm),
            expires_at=int(time.time()) + expires_in,
        )

    def object_url(self, realm, key):
        url, _ = cloudinary.utils.cloudinary_url(
            key,
            resource_type=_resource_type(key),
            type=_delivery_type(realm),
            secure=True,
        )
        return url

    def delete_object(self, realm, key):
        try:
            result = cloudinary.uploader.destroy(
                key,
                resource_type=_resource_type(key),
                type=_delivery_type(realm),
                invalidate=True,
            )
        except cloudinary.exceptions.Error as e:
            raise StorageError(f"Failed to delete Cloudinary asset: {e}") from e

        if result.get("result") not in {"ok", "not found"}:
            raise StorageError(f"Cloudinary delete returned {result}")
