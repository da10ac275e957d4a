from __future__ import annotations

import argparse
import json
from pathlib import Path

import pytest

from couponhub import cli


def _db_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"


def test_init_db_seeds_presets_once(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    args = argparse.Namespace(command="init-db", database_url=_db_url(tmp_path), no_seed=False)

    assert cli._run_cli_command(args) is True
    assert "25 preset coupon codes added" in capsys.readouterr().out

    assert cli._run_cli_command(args) is True
    assert "0 preset coupon codes added" in capsys.readouterr().out


def test_load_coupons_then_stats(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    csv_path = tmp_path / "codes.csv"
    csv_path.write_text("ALPHA1\nBETA2\nbad code\n", encoding="utf-8")
    url = _db_url(tmp_path)

    assert cli._run_cli_command(argparse.Namespace(command="init-db", database_url=url, no_seed=False))
    capsys.readouterr()

    assert cli._run_cli_command(argparse.Namespace(command="load-coupons", database_url=url, path=str(csv_path)))
    out = capsys.readouterr().out
    assert "Successfully uploaded 2 coupon codes with 1 errors" in out
    assert 'Row 3: Invalid characters in coupon code "bad code"' in out

    assert cli._run_cli_command(argparse.Namespace(command="stats", database_url=url))
    stats = json.loads(capsys.readouterr().out)
    assert stats == {
        "total_coupons": 2,
        "distributed_coupons": 0,
        "available_coupons": 2,
        "distribution_rate": "0.0%",
    }


def test_resolve_csv_path_rejects_bad_input(tmp_path: Path) -> None:
    with pytest.raises(SystemExit):
        cli._resolve_csv_path("")
    with pytest.raises(SystemExit):
        cli._resolve_csv_path(str(tmp_path / "codes.txt"))
    with pytest.raises(SystemExit):
        cli._resolve_csv_path(str(tmp_path / "missing.csv"))


def test_load_coupons_refuses_empty_csv(tmp_path: Path) -> None:
    csv_path = tmp_path / "empty.csv"
    csv_path.write_text("\n\n", encoding="utf-8")
    with pytest.raises(SystemExit, match="Empty file"):
        cli._run_cli_command(
            argparse.Namespace(command="load-coupons", database_url=_db_url(tmp_path), path=str(csv_path))
        )


def test_unknown_command_is_not_handled() -> None:
    assert cli._run_cli_command(argparse.Namespace(command=None, database_url=None)) is False
