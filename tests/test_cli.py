from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
from db.client import session_scope
from openpyxl import load_workbook
from typer.testing import CliRunner

from btm_backoffice.api import list_uploads
from btm_backoffice.cli import app, cmd_refresh_tickers, cmd_upload

from tests.helpers.db import add_profile, add_transaction, denet_csv

runner = CliRunner()


@pytest.fixture(autouse=True)
def _cwd(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    # The CLI reads .env from the working directory.
    monkeypatch.chdir(tmp_path)


def _csv_file(tmp_path: Path, *ids: str) -> Path:
    path = tmp_path / "denet.csv"
    path.write_text(
        denet_csv(
            [
                (tx_id, "A1", "Mall", "BTC", "5.00", "", "50.00", "", "2024-03-01")
                for tx_id in ids
            ]
        ),
        encoding="utf-8",
    )
    return path


def _seed_march(db_url: str) -> None:
    with session_scope(database_url=db_url) as s:
        add_profile(s, atm_id="A1", installed_date=date(2023, 1, 1))
        add_transaction(s, "t1", atm_id="A1", sale=Decimal("200.00"), fee=Decimal("24.00"))


def test_upload_command_prints_summary(db_url, tmp_path) -> None:
    path = _csv_file(tmp_path, "t1", "t2")

    result = runner.invoke(app, ["--database-url", db_url, "upload", "--csv-path", str(path)])

    assert result.exit_code == 0, result.output
    assert "inserted:   2" in result.output
    assert "new tickers: BTC" in result.output

    again = runner.invoke(app, ["--database-url", db_url, "upload", "--csv-path", str(path)])
    assert again.exit_code == 0
    assert "duplicates: 2" in again.output


def test_upload_missing_file_reports_error(db_url, tmp_path) -> None:
    missing = tmp_path / "nope.csv"

    result = runner.invoke(
        app, ["--database-url", db_url, "upload", "--csv-path", str(missing)]
    )

    assert result.exit_code == 1
    assert "Error: File not found" in result.output


def test_upload_without_headers_is_a_single_error_line(db_url, tmp_path, capsys) -> None:
    path = tmp_path / "bad.csv"
    path.write_text("foo,bar\n1,2\n", encoding="utf-8")

    code = cmd_upload(str(path), database_url=db_url)

    errors = [line for line in capsys.readouterr().err.splitlines() if line.startswith("Error")]
    assert code == 1
    assert errors == ["Error: No valid records found in CSV. Please check column headers."]


def test_database_url_is_loaded_from_dotenv(db_url, tmp_path, monkeypatch) -> None:
    # Register DATABASE_URL with monkeypatch so the value loaded from .env is
    # removed again at teardown.
    monkeypatch.setenv("DATABASE_URL", "unset")
    monkeypatch.delenv("DATABASE_URL")
    (tmp_path / ".env").write_text(f"DATABASE_URL={db_url}\n", encoding="utf-8")
    path = _csv_file(tmp_path, "t1")

    result = runner.invoke(app, ["upload", "--csv-path", str(path)])

    assert result.exit_code == 0, result.output
    assert "inserted:   1" in result.output


def test_missing_database_url_fails_cleanly(capsys) -> None:
    code = cmd_refresh_tickers()

    assert code == 1
    assert "DATABASE_URL is not set" in capsys.readouterr().err


def test_pnl_prints_csv_to_stdout(db_url) -> None:
    _seed_march(db_url)

    result = runner.invoke(
        app, ["--database-url", db_url, "pnl", "--year", "2024", "--start-month", "3"]
    )

    assert result.exit_code == 0, result.output
    lines = result.output.strip().splitlines()
    assert lines[0].startswith("Status,Install,ATM ID")
    assert lines[1].startswith("Active,2023-01-01,A1")
    assert "12.00%" in lines[1]
    assert lines[-1].startswith("TOTAL")


def test_pnl_writes_csv_and_excel_files(db_url, tmp_path) -> None:
    _seed_march(db_url)
    csv_out = tmp_path / "pnl.csv"
    xlsx_out = tmp_path / "pnl.xlsx"

    result = runner.invoke(
        app,
        [
            "--database-url",
            db_url,
            "pnl",
            "--year",
            "2024",
            "--start-month",
            "1",
            "--end-month",
            "3",
            "--platform",
            "denet",
            "--csv-out",
            str(csv_out),
            "--xlsx-out",
            str(xlsx_out),
        ],
    )

    assert result.exit_code == 0, result.output
    assert f"Wrote {csv_out}" in result.output
    assert csv_out.read_text(encoding="utf-8").splitlines()[-1].startswith("TOTAL")
    ws = load_workbook(xlsx_out).active
    assert ws["A3"].value == "January 2024 - March 2024 (Denet)"


def test_pnl_reports_missing_profile_fields(db_url) -> None:
    with session_scope(database_url=db_url) as s:
        add_transaction(s, "t1", atm_id="GHOST")

    result = runner.invoke(
        app, ["--database-url", db_url, "pnl", "--year", "2024", "--start-month", "3"]
    )

    assert result.exit_code == 1
    assert "Error: Cannot compute profit and loss" in result.output
    assert "GHOST" in result.output


@pytest.mark.parametrize(
    "args, message",
    [
        (["--platform", "coinbase"], "Unknown platform"),
        (["--end-month", "1"], "Invalid reporting window"),
    ],
)
def test_pnl_rejects_bad_arguments(db_url, args, message) -> None:
    result = runner.invoke(
        app,
        ["--database-url", db_url, "pnl", "--year", "2024", "--start-month", "3", *args],
    )

    assert result.exit_code == 1
    assert message in result.output


def test_commissions_without_data_exits_nonzero(db_url) -> None:
    result = runner.invoke(
        app, ["--database-url", db_url, "commissions", "--year", "2024", "--month", "3"]
    )

    assert result.exit_code == 1
    assert "No transaction data found for 3/2024" in result.output


def test_delete_upload_command(db_url, tmp_path) -> None:
    path = _csv_file(tmp_path, "t1", "t2")
    runner.invoke(app, ["--database-url", db_url, "upload", "--csv-path", str(path)])
    with session_scope(database_url=db_url) as s:
        upload_id = list_uploads(s)[0].id

    result = runner.invoke(
        app, ["--database-url", db_url, "delete-upload", "--upload-id", upload_id]
    )
    assert result.exit_code == 0, result.output
    assert "and 2 transactions" in result.output

    missing = runner.invoke(
        app, ["--database-url", db_url, "delete-upload", "--upload-id", upload_id]
    )
    assert missing.exit_code == 1
    assert "not found" in missing.output


def test_maintenance_commands(db_url) -> None:
    for command in ("refresh-tickers", "recalculate-fees"):
        result = runner.invoke(app, ["--database-url", db_url, command])
        assert result.exit_code == 0, result.output
        assert "Updated" in result.output


def test_sales_summary_prints_csv(db_url) -> None:
    _seed_march(db_url)

    result = runner.invoke(app, ["--database-url", db_url, "sales-summary", "--year", "2024"])

    assert result.exit_code == 0, result.output
    lines = result.output.strip().splitlines()
    assert lines[0].startswith("Platform,Jan,Feb,Mar")
    assert lines[1] == "Denet Machines,0,0,200,0,0,0,0,0,0,0,0,0,200"
    assert lines[-1].startswith("TOTAL")


def test_atm_sales_writes_excel(db_url, tmp_path) -> None:
    _seed_march(db_url)
    xlsx_out = tmp_path / "atm-sales.xlsx"

    result = runner.invoke(
        app,
        [
            "--database-url",
            db_url,
            "atm-sales",
            "--year",
            "2024",
            "--start-month",
            "3",
            "--xlsx-out",
            str(xlsx_out),
        ],
    )

    assert result.exit_code == 0, result.output
    ws = load_workbook(xlsx_out).active
    assert ws["A1"].value == "ATM Sales Summary - March 2024 (Both platforms)"
    assert ws["A4"].value == "A1"


@pytest.mark.parametrize("command", ["atm-sales", "atm-monthly-sales"])
def test_sales_reports_reject_unknown_platform(db_url, command) -> None:
    args = ["--database-url", db_url, command, "--year", "2024", "--platform", "coinbase"]
    if command == "atm-sales":
        args += ["--start-month", "3"]

    result = runner.invoke(app, args)

    assert result.exit_code == 1
    assert "Unknown platform" in result.output


def test_atm_monthly_sales_csv_file(db_url, tmp_path) -> None:
    _seed_march(db_url)
    csv_out = tmp_path / "atm-monthly.csv"

    result = runner.invoke(
        app,
        [
            "--database-url",
            db_url,
            "atm-monthly-sales",
            "--year",
            "2024",
            "--platform",
            "denet",
            "--csv-out",
            str(csv_out),
        ],
    )

    assert result.exit_code == 0, result.output
    lines = csv_out.read_text(encoding="utf-8").splitlines()
    assert lines[1].startswith("Active,2023-01-01,,A1,Corner Store,Denet,0,0,200")
    assert lines[-1].startswith(",,,TOTAL")
