"""
Shift Report Verification Script

Checks the Excel workbook written by the report worker.
Run from project root: python scripts/verify.py
"""

import os
import sys
from datetime import datetime

import pandas as pd

REPORT_FILE = os.path.join(os.getenv("DATA_DIRECTORY", "data"), "shift_reports.xlsx")


def verify_report() -> bool:
    print("=" * 60)
    print("🔍 SHIFT REPORT VERIFICATION")
    print("=" * 60)
    print(f"⏰ Timestamp: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"📄 File: {REPORT_FILE}")
    print("=" * 60)

    if not os.path.exists(REPORT_FILE):
        print("\n❌ Report file not found!")
        print("   Close a shift with the Celery worker running first.")
        return False

    try:
        df = pd.read_excel(REPORT_FILE, engine="openpyxl")
        print("\n✅ File loaded successfully!")
    except Exception as e:
        print(f"\n❌ Could not read report file: {e}")
        return False

    print("\n📊 STATISTICS:")
    print(f"   Shifts: {len(df)}")
    print(f"   Columns: {len(df.columns)}")

    required = ["shift_id", "total_sales", "expected_cash", "closing_cash", "difference"]
    missing = [col for col in required if col not in df.columns]
    if missing:
        print(f"\n⚠️ Missing Columns: {missing}")
        return False
    print("\n✅ All required columns present")

    duplicates = df["shift_id"].duplicated().sum()
    if duplicates > 0:
        print(f"⚠️ {duplicates} shifts exported more than once")
    else:
        print("✅ No duplicate shifts")

    # difference must equal closing - expected
    mismatched = df[(df["closing_cash"] - df["expected_cash"] - df["difference"]).abs() > 0.01]
    if len(mismatched):
        print(f"⚠️ {len(mismatched)} rows where difference != closing - expected")
    else:
        print("✅ Cash differences reconcile")

    print("\n💰 SALES:")
    print(f"   Total: SAR {df['total_sales'].sum():.2f}")
    print(f"   Net drawer difference: SAR {df['difference'].sum():.2f}")

    print("\n📋 RECENT SHIFTS:")
    print("-" * 60)
    if len(df) > 0:
        print(df[required].tail(5).to_string(index=False))

    print("\n" + "=" * 60)
    print("✅ VERIFICATION COMPLETE")
    print("=" * 60)
    return not missing and duplicates == 0 and len(mismatched) == 0


if __name__ == "__main__":
    sys.exit(0 if verify_report() else 1)
