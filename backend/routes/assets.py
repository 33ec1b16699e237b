from fastapi import APIRouter, Depends

from models.asset import AssetReport, DeleteAssetRequest, UploadTicketRequest
from services.providers import get_asset_controller
from utils.mongo import serialize_doc
from utils.security import get_current_user, get_optional_user

router = APIRouter(prefix="/assets", tags=["Assets"])


# =========================
# UPLOAD TICKET (1 hour)
# =========================
@router.post("/upload-url")
async def upload_url(
    data: UploadTicketRequest,
    user=Depends(get_current_user),
    assets=Depends(get_asset_controller),
):
    return await assets.issue_upload_ticket(user, data)


@router.post("/report")
async def report_upload(
    data: AssetReport,
    user=Depends(get_current_user),
    assets=Depends(get_asset_controller),
):
    return serialize_doc(await assets.report_uploaded(user, data))


# =========================
# DOWNLOAD TICKET (5 minutes)
# =========================
@router.get("/products/{product_id}/download")
async def download_url(
    product_id: str,
    user=Depends(get_optional_user),
    assets=Depends(get_asset_controller),
):
    return await assets.issue_download_ticket(product_id, user)


# =========================
# DELETE
# =========================
@router.post("/delete")
async def delete_asset(
    data: DeleteAssetRequest,
    user=Depends(get_current_user),
    assets=Depends(get_asset_controller),
):
    return await assets.delete_asset(user, data.object_key, data.realm)
