"""
Notification Cleanup
One-off retention sweep for operators: python run_cleanup.py [--days 30]
"""

import argparse
import logging
import sys

from clinic.config import NOTIFICATION_RETENTION_DAYS
from clinic.worker import cleanup_notifications

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Delete old dashboard notifications")
    parser.add_argument(
        "--days",
        type=int,
        default=NOTIFICATION_RETENTION_DAYS,
        help=f"Keep notifications newer than this many days (default: {NOTIFICATION_RETENTION_DAYS})",
    )
    args = parser.parse_args()

    deleted = cleanup_notifications(args.days)
    logger.info(f"🧹 Removed {deleted} notifications older than {args.days} days")


if __name__ == "__main__":
    main()
