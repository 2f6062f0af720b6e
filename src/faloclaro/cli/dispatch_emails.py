"""CLI for running the campaign email dispatcher outside the cron endpoint.

Usage:
    faloclaro-dispatch-emails --limit 100
    faloclaro-dispatch-emails --loop --interval 300
"""

import argparse
import logging
import sys
import time

from faloclaro.services.email_engine import run_dispatcher_once
from faloclaro.utils.logging_config import configure_logging, stage_logger
from faloclaro.utils.resend_client import get_resend_client
from faloclaro.utils.supabase_client import get_supabase_admin

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Send due campaign emails")
    parser.add_argument("--limit", type=int, default=50, help="Enrollments per run (default: 50)")
    parser.add_argument("--loop", action="store_true", help="Keep running every --interval seconds")
    parser.add_argument(
        "--interval",
        type=float,
        default=300.0,
        help="Seconds between runs in --loop mode (default: 300)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(level=getattr(logging, args.log_level))

    client = get_resend_client()
    if client is None:
        logger.error("RESEND_API_KEY is not configured")
        return 1
    db = get_supabase_admin()

    while True:
        with stage_logger("dispatch_emails", limit=args.limit) as log:
            counts = run_dispatcher_once(db, limit=args.limit, client=client)
            log.info(
                f"processed={counts['processed']} sent={counts['sent']} "
                f"stopped={counts['stopped']} skipped={counts['skipped']} failed={counts['failed']}"
            )
        if not args.loop:
            return 1 if counts["failed"] else 0
        time.sleep(args.interval)


if __name__ == "__main__":
    sys.exit(main())
