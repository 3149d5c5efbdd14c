"""
Shift Report Workbook

Appends closed-shift summaries to an Excel workbook. Several Celery
workers may export at once, so every read-modify-write of the workbook
happens under a file lock.
"""

import logging
from pathlib import Path
from typing import Any, Optional, Union

import pandas as pd
from filelock import FileLock, Timeout

from pos_gateway.core.config import get_settings
from pos_gateway.timeutils import utcnow_iso

logger = logging.getLogger(__name__)

SHIFT_REPORT_FILENAME = "shift_reports.xlsx"


class ShiftReportManager:
    """
    File-locked Excel store of shift summaries.

    Attributes:
        data_dir: Directory holding the workbook and its lock file
        lock_timeout: Seconds to wait for the lock
    """

    SHIFT_COLUMNS = [
        "shift_id",
        "opened_at",
        "closed_at",
        "orders_count",
        "total_sales",
        "cash_sales",
        "card_sales",
        "opening_cash",
        "expected_cash",
        "closing_cash",
        "difference",
        "notes",
        "exported_at",
    ]

    def __init__(
        self,
        data_dir: Optional[Union[str, Path]] = None,
        lock_timeout: Optional[int] = None,
    ):
        settings = get_settings()
        self.data_dir = Path(data_dir or settings.data_directory)
        self.lock_timeout = lock_timeout if lock_timeout is not None else settings.report_lock_timeout

    @property
    def report_file(self) -> Path:
        return self.data_dir / SHIFT_REPORT_FILENAME

    @property
    def lock_file(self) -> Path:
        return self.data_dir / f"{SHIFT_REPORT_FILENAME}.lock"

    def _ensure_data_dir(self) -> None:
        if not self.data_dir.exists():
            self.data_dir.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created data directory: {self.data_dir}")

    def _load_or_create_df(self) -> pd.DataFrame:
        if self.report_file.exists():
            try:
                return pd.read_excel(self.report_file, engine="openpyxl")
            except Exception as e:
                logger.warning(f"Error reading {self.report_file}: {e}")
        return pd.DataFrame(columns=self.SHIFT_COLUMNS)

    def export_shift_summary(self, summary: dict[str, Any]) -> dict[str, Any]:
        """
        Append one shift summary row.

        Returns:
            {"success", "message", "shift_id", "exported_at"}
        """
        self._ensure_data_dir()

        shift_id = summary.get("shift_id", "unknown")
        result = {
            "success": False,
            "message": "",
            "shift_id": shift_id,
            "exported_at": None,
        }

        try:
            with FileLock(str(self.lock_file), timeout=self.lock_timeout):
                logger.debug(f"Lock acquired for shift {shift_id}")

                df = self._load_or_create_df()
                export_time = utcnow_iso()
                row = {column: summary.get(column) for column in self.SHIFT_COLUMNS}
                row["shift_id"] = shift_id
                row["exported_at"] = export_time

                new_row = pd.DataFrame([row], columns=self.SHIFT_COLUMNS)
                df = new_row if df.empty else pd.concat([df, new_row], ignore_index=True)
                df.to_excel(str(self.report_file), index=False, engine="openpyxl")

                logger.info(f"Shift {shift_id} exported to {self.report_file.name}")
                result["success"] = True
                result["message"] = f"Shift {shift_id} exported"
                result["exported_at"] = export_time

        except Timeout:
            result["message"] = f"Lock timeout ({self.lock_timeout}s)"
            logger.error(f"Lock timeout for shift {shift_id}")

        return result

    def get_all_shift_summaries(self) -> list[dict[str, Any]]:
        if not self.report_file.exists():
            return []

        try:
            df = pd.read_excel(self.report_file, engine="openpyxl")
        except Exception as e:
            logger.error(f"Error reading shift reports: {e}")
            return []
        # NaN is not valid JSON
        return df.astype(object).where(pd.notna(df), None).to_dict("records")

    def clear_all(self) -> bool:
        """Delete the workbook and its lock file."""
        try:
            for f in (self.report_file, self.lock_file):
                if f.exists():
                    f.unlink()
        except OSError as e:
            logger.error(f"Error clearing shift reports: {e}")
            return False
        logger.info("Shift reports cleared")
        return True
