"""CLI for importing lessons from the authoring directory tree.

Usage:
    faloclaro-import-lessons --base-dir Subsription            # every "{N} Day" folder
    faloclaro-import-lessons --base-dir Subsription --day 4    # one day

Each day folder holds ``day_NN.yaml`` plus optional per-task files
``dayNN_taskMM_<type>.yaml``. Existing lessons for a day are overwritten.
"""

import argparse
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from faloclaro.services.lesson_import import (
    find_lesson_days,
    load_lesson_directory,
    upsert_directory_lesson,
)
from faloclaro.services.vocabulary import sync_vocabulary
from faloclaro.utils.logging_config import configure_logging, stage_logger
from faloclaro.utils.supabase_client import get_supabase_admin

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Import lessons from YAML day folders")
    parser.add_argument(
        "--base-dir",
        type=Path,
        default=Path("Subsription"),
        help="Directory containing '{N} Day' folders (default: Subsription)",
    )
    parser.add_argument("--day", type=int, help="Import only this day number")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Assemble and validate lessons without writing to the database",
    )
    parser.add_argument(
        "--skip-vocabulary",
        action="store_true",
        help="Do not rebuild the global vocabulary after importing",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(level=getattr(logging, args.log_level))

    if not args.base_dir.is_dir():
        logger.error(f"Lessons directory not found: {args.base_dir}")
        return 1

    days = [args.day] if args.day else find_lesson_days(args.base_dir)
    if not days:
        logger.error(f"No '{{N}} Day' folders found in {args.base_dir}")
        return 1

    logger.info("=" * 80)
    logger.info("Lesson Import")
    logger.info("=" * 80)
    logger.info(f"Base dir: {args.base_dir}")
    logger.info(f"Days: {', '.join(str(d) for d in days)}")
    logger.info(f"Dry Run: {args.dry_run}")

    db = None if args.dry_run else get_supabase_admin()
    counts = {"created": 0, "updated": 0, "failed": 0}

    with stage_logger("import_lessons", base_dir=str(args.base_dir), days=len(days)) as log:
        for day in tqdm(days, desc="Importing", unit="lesson"):
            document = load_lesson_directory(args.base_dir, day)
            if document is None:
                counts["failed"] += 1
                continue
            if args.dry_run:
                log.info(f"Day {day}: {len(document.get('tasks') or [])} tasks")
                continue
            try:
                counts[upsert_directory_lesson(db, day, document)] += 1
            except Exception as e:
                log.error(f"✗ Day {day} failed: {e}")
                counts["failed"] += 1

        if db is not None and not args.skip_vocabulary and (counts["created"] or counts["updated"]):
            stats = sync_vocabulary(db)
            log.info(f"Vocabulary rebuilt: {stats['uniqueWords']} unique words")

    logger.info("=" * 80)
    logger.info(
        f"Created: {counts['created']}  Updated: {counts['updated']}  Failed: {counts['failed']}"
    )
    logger.info("=" * 80)
    return 1 if counts["failed"] else 0


if __name__ == "__main__":
    sys.exit(main())
