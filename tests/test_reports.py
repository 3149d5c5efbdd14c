import pytest
from filelock import FileLock

from pos_gateway.services.reports import ShiftReportManager


def _summary(shift_id, **overrides):
    summary = {
        "shift_id": shift_id,
        "opened_at": "2026-10-19T06:00:00+00:00",
        "closed_at": "2026-10-19T14:00:00+00:00",
        "orders_count": 12,
        "total_sales": 840.5,
        "cash_sales": 500.0,
        "card_sales": 340.5,
        "opening_cash": 200.0,
        "expected_cash": 700.0,
        "closing_cash": 690.0,
        "difference": -10.0,
    }
    summary.update(overrides)
    return summary


@pytest.fixture()
def reports(tmp_path) -> ShiftReportManager:
    return ShiftReportManager(data_dir=tmp_path / "reports", lock_timeout=1)


def test_export_appends_rows(reports):
    first = reports.export_shift_summary(_summary("shift-1", notes="Short 10"))
    second = reports.export_shift_summary(_summary("shift-2"))

    assert first["success"] and second["success"]
    assert first["message"] == "Shift shift-1 exported"
    assert reports.report_file.exists()

    rows = reports.get_all_shift_summaries()
    assert [r["shift_id"] for r in rows] == ["shift-1", "shift-2"]
    assert rows[0]["notes"] == "Short 10"
    assert rows[1]["notes"] is None
    assert rows[0]["difference"] == -10.0
    assert list(rows[0]) == ShiftReportManager.SHIFT_COLUMNS


def test_no_workbook_yet(reports):
    assert reports.get_all_shift_summaries() == []


def test_lock_timeout_reports_failure(tmp_path):
    reports = ShiftReportManager(data_dir=tmp_path, lock_timeout=0)

    with FileLock(str(reports.lock_file)):
        result = reports.export_shift_summary(_summary("shift-1"))

    assert result["success"] is False
    assert result["message"] == "Lock timeout (0s)"
    assert not reports.report_file.exists()


def test_clear_all(reports):
    reports.export_shift_summary(_summary("shift-1"))
    assert reports.clear_all() is True
    assert reports.get_all_shift_summaries() == []
