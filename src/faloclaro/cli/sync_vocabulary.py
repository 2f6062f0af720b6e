"""CLI for rebuilding the global vocabulary from every lesson."""

import argparse
import logging
import sys

from faloclaro.services.vocabulary import sync_vocabulary
from faloclaro.utils.logging_config import configure_logging, stage_logger
from faloclaro.utils.supabase_client import get_supabase_admin

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Rebuild the vocabulary methodology from lessons")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    configure_logging(level=getattr(logging, args.log_level))

    with stage_logger("sync_vocabulary") as log:
        stats = sync_vocabulary(get_supabase_admin())
        log.info(
            f"Processed {stats['processedLessons']} lessons, "
            f"{stats['totalWordsFound']} words found, {stats['uniqueWords']} unique"
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
