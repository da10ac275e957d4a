from fastapi import APIRouter, Depends, File, UploadFile

from couponhub.core.config import Settings
from couponhub.core.dependencies import get_app_settings, get_bulk_loader, get_store
from couponhub.schemas.coupon import (
    CouponListResponse,
    CouponRead,
    DistributionListResponse,
    DistributionRead,
    PoolStatsRead,
    PoolStatsResponse,
    UploadReportRead,
    UploadResponse,
)
from couponhub.services import admin as admin_service
from couponhub.services.bulk_loader import BulkLoader, parse_csv_rows
from couponhub.services.store import CouponStore
from couponhub.services.uploads import read_csv_upload

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/stats", response_model=PoolStatsResponse)
async def pool_stats(store: CouponStore = Depends(get_store)) -> PoolStatsResponse:
    stats = await admin_service.pool_stats(store)
    return PoolStatsResponse(
        data=PoolStatsRead(
            total_coupons=stats.total_coupons,
            distributed_coupons=stats.distributed_coupons,
            available_coupons=stats.available_coupons,
            distribution_rate=stats.distribution_rate,
        )
    )


@router.get("/distributions", response_model=DistributionListResponse)
async def list_distributions(store: CouponStore = Depends(get_store)) -> DistributionListResponse:
    rows = await store.list_distributions_with_coupons()
    return DistributionListResponse(
        data=[
            DistributionRead(
                id=row.distribution.id,
                mobile_number=row.distribution.mobile_number,
                coupon_code=row.coupon.code,
                distributed_at=row.distribution.distributed_at,
            )
            for row in rows
        ]
    )


@router.get("/coupons", response_model=CouponListResponse)
async def list_coupons(store: CouponStore = Depends(get_store)) -> CouponListResponse:
    coupons = await store.list_coupons()
    return CouponListResponse(
        data=[
            CouponRead(id=c.id, code=c.code, is_used=c.is_used, created_at=c.created_at)
            for c in coupons
        ]
    )


@router.post("/upload-coupons", response_model=UploadResponse)
async def upload_coupons(
    csv_file: UploadFile | None = File(default=None, alias="csvFile"),
    loader: BulkLoader = Depends(get_bulk_loader),
    app_settings: Settings = Depends(get_app_settings),
) -> UploadResponse:
    content = await read_csv_upload(csv_file, max_bytes=app_settings.upload_max_bytes)
    rows = parse_csv_rows(content)
    report = await loader.reload(rows)
    return UploadResponse(
        data=UploadReportRead(
            total_processed=report.total_processed,
            successfully_added=report.successfully_added,
            errors=report.errors,
            error_details=report.error_details,
        ),
        message=report.message,
    )
