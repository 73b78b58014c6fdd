# clinicdesk/scripts/process_expired_trials.py
"""
Downgrade expired trials to the free plan.

Meant to run on a schedule (cron, systemd timer). Safe to run repeatedly:
a second run right after the first finds nothing to do.
"""
import logging
import sys

from ..core.logging import setup_logging
from ..database import SessionLocal, create_tables
from ..services.subscription_service import TrialService

logger = logging.getLogger(__name__)


def main() -> int:
    setup_logging()
    create_tables()
    print("Processing expired trials...")

    db = SessionLocal()
    try:
        result = TrialService(db).process_expired_trials()
    except Exception as e:
        logger.exception(f"Trial processing aborted: {e}")
        print(f"Error: {e}")
        return 1
    finally:
        db.close()

    print(f"Processed: {result['processed']}")
    print(f"Successful: {result['successful']}")
    print(f"Failed: {result['failed']}")
    for item in result["results"]:
        if item["success"]:
            print(f"  [ok] {item['clinic_name']}: {item['previous_plan']} -> {item['new_plan']}")
        else:
            print(f"  [failed] {item['clinic_name']}: {item['error']}")

    return 1 if result["failed"] else 0


if __name__ == "__main__":
    sys.exit(main())
