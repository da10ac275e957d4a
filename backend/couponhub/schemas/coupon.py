from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CouponAllocationRead(CamelModel):
    mobile_number: str
    coupon_code: str
    distributed_at: datetime
    message: str


class CouponAllocationResponse(CamelModel):
    success: bool = True
    data: CouponAllocationRead


class PoolStatsRead(CamelModel):
    total_coupons: int
    distributed_coupons: int
    available_coupons: int
    distribution_rate: str


class PoolStatsResponse(CamelModel):
    success: bool = True
    data: PoolStatsRead


class DistributionRead(CamelModel):
    id: int
    mobile_number: str
    coupon_code: str
    distributed_at: datetime


class DistributionListResponse(CamelModel):
    success: bool = True
    data: list[DistributionRead]


class CouponRead(CamelModel):
    id: int
    code: str
    is_used: bool
    created_at: datetime


class CouponListResponse(CamelModel):
    success: bool = True
    data: list[CouponRead]


class UploadReportRead(CamelModel):
    total_processed: int
    successfully_added: int
    errors: int
    error_details: list[str]


class UploadResponse(CamelModel):
    success: bool = True
    data: UploadReportRead
    message: str
