from pathlib import Path

import pytest
from sqlalchemy import inspect, text

from couponhub.core.dependencies import build_sql_store
from couponhub.core.errors import DuplicateCode, DuplicateMobile
from couponhub.db.migrations import upgrade_database


def _schema(sync_conn) -> dict:
    inspector = inspect(sync_conn)
    return {
        "tables": set(inspector.get_table_names()),
        "coupon_indexes": {ix["name"]: ix["unique"] for ix in inspector.get_indexes("coupons")},
        "distribution_indexes": {
            ix["name"]: ix["unique"] for ix in inspector.get_indexes("coupon_distributions")
        },
        "distribution_fks": [fk["referred_table"] for fk in inspector.get_foreign_keys("coupon_distributions")],
    }


@pytest.mark.anyio("asyncio")
async def test_upgrade_creates_coupon_tables(tmp_path: Path) -> None:
    store = build_sql_store(f"sqlite+aiosqlite:///{tmp_path / 'migrated.db'}")
    try:
        await upgrade_database(store.engine)
        async with store.engine.connect() as conn:
            schema = await conn.run_sync(_schema)
            version = (await conn.execute(text("SELECT version_num FROM alembic_version"))).scalar_one()

        assert {"coupons", "coupon_distributions", "alembic_version"} <= schema["tables"]
        assert schema["coupon_indexes"] == {"ix_coupons_code": True}
        assert schema["distribution_indexes"] == {"ix_coupon_distributions_mobile_number": True}
        assert schema["distribution_fks"] == ["coupons"]
        assert version == "0001"
    finally:
        await store.close()


@pytest.mark.anyio("asyncio")
async def test_migrated_schema_enforces_uniqueness(tmp_path: Path) -> None:
    store = build_sql_store(f"sqlite+aiosqlite:///{tmp_path / 'migrated.db'}")
    try:
        await upgrade_database(store.engine)
        # A second upgrade is a no-op.
        await upgrade_database(store.engine)

        coupon = await store.create_coupon("SAVE10")
        with pytest.raises(DuplicateCode):
            await store.create_coupon("SAVE10")

        await store.claim("919996275888", coupon.id)
        with pytest.raises(DuplicateMobile):
            await store.create_distribution("919996275888", coupon.id)
        assert (await store.list_coupons())[0].is_used is True
    finally:
        await store.close()
