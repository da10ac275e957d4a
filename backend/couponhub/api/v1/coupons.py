from fastapi import APIRouter, Depends, Query, Request

from couponhub.core.dependencies import get_allocation_engine
from couponhub.schemas.coupon import CouponAllocationRead, CouponAllocationResponse
from couponhub.services.allocation import AllocationEngine

router = APIRouter(tags=["coupons"])


async def coupon_rate_limit(request: Request) -> None:
    # Each application carries its own limiter, built from the settings it was created with.
    await request.app.state.coupon_rate_limit(request)


@router.get("/coupon", response_model=CouponAllocationResponse, dependencies=[Depends(coupon_rate_limit)])
async def get_coupon(
    mobile_number: str | None = Query(default=None, alias="mobileNumber"),
    engine: AllocationEngine = Depends(get_allocation_engine),
) -> CouponAllocationResponse:
    result = await engine.allocate(mobile_number)
    return CouponAllocationResponse(
        data=CouponAllocationRead(
            mobile_number=result.mobile_number,
            coupon_code=result.coupon_code,
            distributed_at=result.distributed_at,
            message=result.message,
        )
    )
