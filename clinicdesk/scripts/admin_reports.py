# clinicdesk/scripts/admin_reports.py
"""
Print platform reports from the command line.

    clinicdesk-admin-reports dashboard
    clinicdesk-admin-reports revenue
"""
import logging
import sys
from typing import Any, Dict, List, Optional

from ..core.logging import setup_logging
from ..database import SessionLocal, create_tables
from ..services.report_service import ReportService

logger = logging.getLogger(__name__)

COMMANDS = {
    "dashboard": "Overview, usage, trials and system health with the health score",
    "subscriptions": "Subscription counts and MRR by status and plan",
    "trials": "Active trials, expiring trials and conversion",
    "revenue": "MRR by plan and subscription churn for the last 30 days",
    "health": "User, clinic and subscription health",
    "usage": "Client usage against plan limits per clinic",
}


def _section(title: str):
    print()
    print(title)
    print("-" * len(title))


def _rows(data: Dict[str, Any]):
    for key, value in data.items():
        print(f"  {key.replace('_', ' ')}: {value}")


def print_subscriptions(report: Dict[str, Any]):
    _section("Subscription overview")
    print(f"  total clinics: {report['total_clinics']}")
    print(f"  active subscriptions: {report['active_subscriptions']}")
    print(f"  total MRR: ${report['total_mrr']:.2f}")
    print("  by status:")
    for status_name, count in report["by_status"].items():
        print(f"    {status_name}: {count}")
    print("  by plan:")
    for plan_type, count in report["by_plan"].items():
        print(f"    {plan_type}: {count}")


def print_usage(report: Dict[str, Any]):
    _section("Client usage")
    _rows(report["summary"])
    for clinic in report["clinics"]:
        flag = " [AT LIMIT]" if clinic["is_at_limit"] else " [near limit]" if clinic["is_near_limit"] else ""
        print(f"    {clinic['clinic_name']} ({clinic['plan_type']}): "
              f"{clinic['client_count']}/{clinic['client_limit']}{flag}")


def print_trials(report: Dict[str, Any]):
    _section("Trials")
    print(f"  active: {report['total_active']}")
    print(f"  expiring soon: {report['expiring_soon']}")
    print(f"  expired (awaiting downgrade): {report['expired']}")
    print(f"  started: {report['trials_started']}, converted: {report['conversions']} "
          f"({report['conversion_rate']}%)")
    for trial in report["active_trials"]:
        print(f"    {trial['clinic_name']}: {trial['days_remaining']} days left")


def print_revenue(report: Dict[str, Any]):
    _section(f"Revenue {report['period_start']:%Y-%m-%d} to {report['period_end']:%Y-%m-%d}")
    for plan_type, mrr in report["mrr_by_plan"].items():
        print(f"  {plan_type}: ${mrr:.2f}")
    print(f"  total MRR: ${report['total_mrr']:.2f}")
    print(f"  new: {report['new_subscriptions']}, cancelled: {report['cancelled_subscriptions']}, "
          f"net: {report['net_growth']}")
    changes: List[Dict[str, Any]] = report["recent_changes"]
    if changes:
        print("  recent changes:")
        for change in changes:
            print(f"    {change['clinic_name']}: {change['plan_type']} ({change['status'].value})")


def print_health(report: Dict[str, Any]):
    _section("System health")
    _rows(report)


def print_dashboard(report: Dict[str, Any]):
    print(f"Platform health score: {report['health_score']}/100")
    print_subscriptions(report["overview"])
    _section("Client usage")
    _rows(report["client_usage"])
    print_trials(report["trials"])
    print_health(report["system_health"])


def print_help():
    print("Usage: clinicdesk-admin-reports <command>")
    print()
    for name, description in COMMANDS.items():
        print(f"  {name:<14} {description}")


def run_command(command: str, service: ReportService):
    if command == "dashboard":
        print_dashboard(service.get_dashboard_summary())
    elif command == "subscriptions":
        print_subscriptions(service.get_subscription_overview())
    elif command == "trials":
        print_trials(service.get_trial_report())
    elif command == "revenue":
        print_revenue(service.get_revenue_report())
    elif command == "health":
        print_health(service.get_system_health_report())
    elif command == "usage":
        print_usage(service.get_client_usage_report())


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    command = argv[0] if argv else "help"
    if command in ("help", "-h", "--help"):
        print_help()
        return 0
    if command not in COMMANDS:
        print(f"Unknown command: {command}")
        print_help()
        return 1

    setup_logging(logging.WARNING)
    create_tables()
    db = SessionLocal()
    try:
        run_command(command, ReportService(db))
    except Exception as e:
        logger.exception(f"Report '{command}' failed: {e}")
        print(f"Error: {e}")
        return 1
    finally:
        db.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
