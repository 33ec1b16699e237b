"""
Object storage capability.

Two realms: public objects have a deterministic URL, private objects are
only reachable through a short-lived signed URL. Backends are synchronous;
callers run them in a worker thread.
"""

from abc import ABC, abstractmethod

from config.env import STORAGE_PROVIDER
from utils.errors import UpstreamFatal


class StorageError(UpstreamFatal):
    code = "STORAGE_ERROR"
    default_message = "Object storage request failed"


class StorageBackend(ABC):

    @abstractmethod
    def signed_put_url(
        self,
        realm: str,
        key: str,
        content_type: str,
        expires_in: int,
        metadata: dict | None = None,
    ) -> str:
        """URL the client can upload the object to until it expires."""

    @abstractmethod
    def signed_get_url(self, realm: str, key: str, expires_in: int) -> str:
        """Time-limited download URL."""

    @abstractmethod
    def object_url(self, realm: str, key: str) -> str:
        """Deterministic URL. Only meaningful for the public realm."""

    @abstractmethod
    def delete_object(self, realm: str, key: str) -> None:
        """Deleting a missing object is not an error."""


_backend: StorageBackend | None = None


def build_storage() -> StorageBackend:
    global _backend
    if _backend is None:
        if STORAGE_PROVIDER == "cloudinary":
            from utils.cloudinary import CloudinaryStorage
            _backend = CloudinaryStorage()
        elif STORAGE_PROVIDER == "s3":
            from utils.s3 import S3Storage
            _backend = S3Storage()
        else:
            raise RuntimeError(f"Unknown STORAGE_PROVIDER: {STORAGE_PROVIDER}")
    return _backend
