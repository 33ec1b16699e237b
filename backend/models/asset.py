from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
from enum import Enum


class StorageRealm(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class MediaKind(str, Enum):
    PDF = "pdf"
    DOCUMENT = "document"
    ZIP = "zip"
    IMAGE = "image"


class AssetStatus(str, Enum):
    PENDING = "pending"
    UPLOADED = "uploaded"
    FAILED = "failed"
    DELETING = "deleting"


class AssetRole(str, Enum):
    IMAGE = "image"        # product imagery, public
    PREVIEW = "preview"    # browsable preview file, public
    MAIN = "main"          # downloadable main archive, private


# =========================
# REQUEST SCHEMAS
# =========================

class UploadTicketRequest(BaseModel):
    file_name: str
    file_type: str
    folder: str
    realm: StorageRealm = StorageRealm.PUBLIC


class AssetReport(BaseModel):
    object_key: str
    realm: StorageRealm
    kind: MediaKind
    original_name: str
    mimetype: str
    size: int = Field(..., gt=0)
    url: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    page_count: Optional[int] = None
    contains_files: Optional[int] = None
    is_preview: bool = False
    is_main: bool = False
    is_thumbnail: bool = False
    status: AssetStatus = AssetStatus.UPLOADED
    metadata: Dict[str, Any] = {}


class AttachAssetRequest(AssetReport):
    role: AssetRole


class DeleteAssetRequest(BaseModel):
    object_key: str
    realm: StorageRealm


class EntitlementGrant(BaseModel):
    buyer_id: str


# =========================
# TICKETS
# =========================

class UploadTicket(BaseModel):
    upload_url: str
    object_key: str
    final_url: Optional[str] = None  # public realm only
    expires_in: int


class DownloadTicket(BaseModel):
    download_url: str
    expires_in: int


def media_kind_for(content_type: str) -> MediaKind:
    if content_type.startswith("image/"):
        return MediaKind.IMAGE
    if content_type == "application/pdf":
        return MediaKind.PDF
    if "zip" in content_type:
        return MediaKind.ZIP
    return MediaKind.DOCUMENT
