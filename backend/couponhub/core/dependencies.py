from fastapi import Depends, HTTPException, Request, status

from couponhub.core.config import Settings, settings as default_settings
from couponhub.db.session import build_engine, build_sessionmaker
from couponhub.services.allocation import AllocationEngine
from couponhub.services.bulk_loader import BulkLoader
from couponhub.services.sql_store import SqlCouponStore
from couponhub.services.store import CouponStore, MemoryCouponStore


def build_sql_store(database_url: str) -> SqlCouponStore:
    engine = build_engine(database_url)
    return SqlCouponStore(build_sessionmaker(engine), engine=engine)


def build_store(settings: Settings) -> CouponStore:
    """Pick the storage backend named in settings."""
    if settings.storage_backend == "database":
        return build_sql_store(settings.database_url)
    return MemoryCouponStore()


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or default_settings


def get_store(request: Request) -> CouponStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Coupon store not ready")
    return store


def get_allocation_engine(store: CouponStore = Depends(get_store)) -> AllocationEngine:
    return AllocationEngine(store)


def get_bulk_loader(store: CouponStore = Depends(get_store)) -> BulkLoader:
    return BulkLoader(store)
