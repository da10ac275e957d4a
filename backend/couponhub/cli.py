import argparse
import asyncio
import json
from dataclasses import asdict
from pathlib import Path
from typing import Any

from couponhub import seeds
from couponhub.core.config import settings
from couponhub.core.dependencies import build_sql_store
from couponhub.core.errors import UploadRejected
from couponhub.db.migrations import upgrade_database
from couponhub.services import admin as admin_service
from couponhub.services.bulk_loader import BulkLoader, ReloadReport, parse_csv_rows
from couponhub.services.sql_store import SqlCouponStore


def _resolve_csv_path(raw_path: str) -> Path:
    raw = (raw_path or "").strip()
    if not raw:
        raise SystemExit("Path is required")
    path = Path(raw).expanduser().resolve(strict=False)
    if path.suffix.lower() != ".csv":
        raise SystemExit("Only .csv files can be loaded")
    if not path.is_file():
        raise SystemExit(f"Input file not found: {path}")
    return path


def _open_store(database_url: str | None = None) -> SqlCouponStore:
    return build_sql_store(database_url or settings.database_url)


async def init_db(database_url: str | None = None, *, seed_presets: bool = True) -> int:
    store = _open_store(database_url)
    try:
        await upgrade_database(store.engine)
        if not seed_presets:
            return 0
        return await seeds.seed(store)
    finally:
        await store.close()


async def load_coupons(path: Path, database_url: str | None = None) -> ReloadReport:
    try:
        rows = parse_csv_rows(path.read_bytes())
    except UploadRejected as exc:
        raise SystemExit(f"{exc.error}: {exc.message}") from exc
    store = _open_store(database_url)
    try:
        return await BulkLoader(store).reload(rows)
    finally:
        await store.close()


async def stats(database_url: str | None = None) -> dict[str, Any]:
    store = _open_store(database_url)
    try:
        pool = await admin_service.pool_stats(store)
    finally:
        await store.close()
    data = asdict(pool)
    data["distribution_rate"] = pool.distribution_rate
    return data


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CouponHub utilities")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    subparsers = parser.add_subparsers(dest="command")

    init_cmd = subparsers.add_parser("init-db", help="Apply migrations and seed the preset coupon codes")
    init_cmd.add_argument("--no-seed", action="store_true", help="Apply migrations only")

    load_cmd = subparsers.add_parser("load-coupons", help="Replace the coupon pool from a CSV file")
    load_cmd.add_argument("path", help="CSV file with one coupon code per row (first column)")

    subparsers.add_parser("stats", help="Print pool statistics as JSON")
    return parser


def _run_cli_command(args: argparse.Namespace) -> bool:
    database_url = getattr(args, "database_url", None)

    if args.command == "init-db":
        added = asyncio.run(init_db(database_url, seed_presets=not args.no_seed))
        print(f"Database ready; {added} preset coupon codes added")
        return True

    if args.command == "load-coupons":
        path = _resolve_csv_path(args.path)
        report = asyncio.run(load_coupons(path, database_url))
        print(report.message)
        for line in report.error_details:
            print(f"  {line}")
        return True

    if args.command == "stats":
        print(json.dumps(asyncio.run(stats(database_url)), indent=2))
        return True

    return False


def main():
    parser = _build_parser()
    args = parser.parse_args()
    if not _run_cli_command(args):
        parser.print_help()


if __name__ == "__main__":
    main()
