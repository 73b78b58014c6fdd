# clinicdesk/scripts/seed_plans.py
import logging
import sys

from ..core.logging import setup_logging
from ..database import SessionLocal, create_tables
from ..services.plan_service import PlanService

logger = logging.getLogger(__name__)


def main() -> int:
    """Create the default plan catalog; plans that already exist are left alone."""
    setup_logging()
    create_tables()

    db = SessionLocal()
    try:
        result = PlanService(db).seed_default_plans()
    finally:
        db.close()

    for item in result["results"]:
        plan_type = item["type"].value
        if not item["success"]:
            print(f"  [failed] {plan_type}: {item['error']}")
        elif item["created"]:
            print(f"  [created] {plan_type}")
        else:
            print(f"  [exists] {plan_type}")

    print(f"Created: {result['created']}, existing: {result['existing']}, failed: {result['failed']}")
    return 1 if result["failed"] else 0


if __name__ == "__main__":
    sys.exit(main())
