# clinicdesk/scripts/send_reminders.py
"""
Send reminders for appointments starting in the next two hours.

Meant to run every five minutes from a scheduler. Reminders already sent in
the last ten minutes are skipped, so overlapping runs do not double-notify.
"""
import logging
import sys

from ..core.logging import setup_logging
from ..database import SessionLocal, create_tables
from ..services.appointment_service import AppointmentService
from ..services.email_service import get_email_service

logger = logging.getLogger(__name__)


def main() -> int:
    setup_logging()
    create_tables()
    print("Sending appointment reminders...")

    db = SessionLocal()
    try:
        result = AppointmentService(db, get_email_service()).send_appointment_reminders()
    except Exception as e:
        logger.exception(f"Reminder run aborted: {e}")
        print(f"Error: {e}")
        return 1
    finally:
        db.close()

    print(f"Upcoming appointments: {result['processed']}")
    print(f"Reminders sent: {result['sent']}")
    print(f"Failed: {result['failed']}")
    for item in result["results"]:
        if item["success"]:
            via = " (email)" if item["emailed"] else ""
            print(f"  [sent] {item['client_name']} in {item['minutes_until']} minutes{via}")
        else:
            print(f"  [failed] {item['client_name']}: {item['error']}")

    return 1 if result["failed"] else 0


if __name__ == "__main__":
    sys.exit(main())
