"""Run the subscription maintenance job once, e.g. from an external cron.

Usage: python scripts/run_subscription_maintenance.py
"""
import sys
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parents[1]
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from soloflow.db.session import init_db  # noqa: E402
from soloflow.jobs import run_maintenance_once  # noqa: E402


def main() -> int:
    init_db()
    report = run_maintenance_once()
    print(report.message)
    for item in report.results:
        if not item.success:
            print(f"  failed: user={item.user_id} subscription={item.subscription_id} error={item.error}")
    return 0 if all(item.success for item in report.results) else 1


if __name__ == "__main__":
    sys.exit(main())
